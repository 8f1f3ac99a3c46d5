"""Configure a network and its simulation loop.

A configuration can be loaded from YAML, given as a mapping, or built
directly from the dataclasses here. A YAML file may hold any of these
top-level sections:

    seed: 42
    simulation:        # SimulationConfig fields
      dt: 0.1
      steps_per_input: 1000
    topology:          # TopologyParams fields
      inhibitory_pool: 20
    regions:           # list of RegionSpec mappings
      - {name: sensory_cortex, size: 20, cell_type: sensory}
    projections:       # list of ProjectionSpec mappings
      - {source: sensory_cortex, target: thalamus, probability: 0.3, weight: 0.8}
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from spikenet.errors import ConfigurationError
from spikenet.simulation.topology import (
    DEFAULT_PROJECTIONS, DEFAULT_REGIONS, ProjectionSpec, RegionSpec,
    TopologyParams,
)


@dataclass(frozen=True)
class SimulationConfig:
    """Parameters of the simulation loop.

    Parameters
    ----------
    dt : float
        Integration timestep (ms).
    steps_per_input : int
        Episode length used by Network.process_input.
    sample_interval : int
        Record one activity sample per neuron every this many steps.
    input_region : str, optional
        Region receiving the input vector. Defaults to the first region.
    input_gain : float
        Input current per unit of the input vector (pA).
    excitatory_gain, inhibitory_gain : float
        Current per unit weight delivered by a spike (pA).
    stdp_window : float
        Spike recency window of the STDP rule (ms).
    stdp_consolidation : bool
        Dopamine/acetylcholine gain on spike-touched synapses.
    stdp_consolidation_rate : float
        Weight gain per unit of dopamine * acetylcholine.
    reward_threshold, reward_scale : float
        Eligibility threshold and weight gain of reward credit.
    homeostasis_high, homeostasis_low, homeostasis_step : float
        Serotonin homeostasis band and step.
    modulator_decay : float
        Per-step decay of dopamine and norepinephrine.
    reset_weights : bool
        Whether Network.reset restores the constructed weights.
    max_spike_history, max_activity_history : int
        Caps on retained spike and activity records.
    """
    dt: float = 0.1
    steps_per_input: int = 1000
    sample_interval: int = 10
    input_region: Optional[str] = None
    input_gain: float = 50.0
    excitatory_gain: float = 50.0
    inhibitory_gain: float = 30.0
    stdp_window: float = 1.0
    stdp_consolidation: bool = True
    stdp_consolidation_rate: float = 0.01
    reward_threshold: float = 0.5
    reward_scale: float = 0.1
    homeostasis_high: float = 0.3
    homeostasis_low: float = 0.1
    homeostasis_step: float = 0.01
    modulator_decay: float = 0.99
    reset_weights: bool = False
    max_spike_history: int = 10000
    max_activity_history: int = 50000

    def validate(self):
        if not self.dt > 0:
            raise ConfigurationError(f"dt must be positive, got {self.dt}")
        for name in ("steps_per_input", "sample_interval",
                     "max_spike_history", "max_activity_history"):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be >= 1")
        if not self.stdp_window > 0:
            raise ConfigurationError("stdp_window must be positive")
        if self.stdp_consolidation_rate < 0:
            raise ConfigurationError("stdp_consolidation_rate must be >= 0")
        if self.homeostasis_low > self.homeostasis_high:
            raise ConfigurationError("homeostasis_low exceeds homeostasis_high")
        if not 0.0 <= self.modulator_decay <= 1.0:
            raise ConfigurationError("modulator_decay must lie in [0, 1]")
        return self


@dataclass
class NetworkConfig:
    """Everything needed to construct a Network."""
    regions: tuple = DEFAULT_REGIONS
    projections: tuple = DEFAULT_PROJECTIONS
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    topology: TopologyParams = field(default_factory=TopologyParams)
    seed: Optional[int] = None


def _from_mapping(cls, mapping, section):
    """Instantiate a dataclass, rejecting unknown keys."""
    mapping = dict(mapping or {})
    known = {f.name for f in fields(cls)}
    unknown = set(mapping) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in '{section}': {sorted(unknown)}")
    return cls(**mapping)


def config_from_dict(data):
    """Build a NetworkConfig from a plain mapping."""
    data = dict(data or {})
    allowed = {"seed", "simulation", "topology", "regions", "projections"}
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown configuration section(s): {sorted(unknown)}")

    simulation = _from_mapping(SimulationConfig, data.get("simulation"),
                               "simulation").validate()
    topology = _from_mapping(TopologyParams, data.get("topology"), "topology")

    if "regions" in data:
        regions = tuple(RegionSpec.coerce(r) for r in data["regions"] or ())
        # An explicit region list without projections gets only its backbone
        projections = tuple(ProjectionSpec.coerce(p)
                            for p in data.get("projections") or ())
    else:
        regions = DEFAULT_REGIONS
        projections = tuple(ProjectionSpec.coerce(p)
                            for p in data.get("projections", DEFAULT_PROJECTIONS))

    return NetworkConfig(regions=regions, projections=projections,
                         simulation=simulation, topology=topology,
                         seed=data.get("seed"))


def load_config(path):
    """Load a NetworkConfig from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as err:
            raise ConfigurationError(f"Could not parse {path}: {err}")
    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return config_from_dict(data)


def save_config(config, path):
    """Write a NetworkConfig to YAML."""
    data = {
        "seed": config.seed,
        "simulation": asdict(config.simulation),
        "topology": asdict(config.topology),
        "regions": [dict(asdict(r), modulators=list(r.modulators))
                    for r in config.regions],
        "projections": [asdict(p) for p in config.projections],
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)

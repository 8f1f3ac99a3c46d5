"""Build a region-structured spiking network.

Neurons are grouped into named regions. Connectivity is generated in
three passes, all drawing from one seeded RandomState:

1. Inter-region projections: a Bernoulli(p) trial per ordered (source,
   target) neuron pair, weight w0 * (0.5 + U), delay 1-6 ms.
2. Lateral inhibition: a pool of fast-spiking interneurons projects
   sparsely into every other region with negative weight.
3. Local recurrence: every neuron targets a few random peers in its own
   region.

Within a region, every fifth neuron (index 0, 5, 10, ...) is an
interneuron and its outgoing synapses are inhibitory.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from spikenet.errors import ConfigurationError
from spikenet.models.neuron_params import (
    CELL_TYPES, INTERNEURON, MOTOR, PYRAMIDAL, SENSORY, get_preset,
)
from spikenet.simulation.dynamics import DYNAMICS, EXPONENTIAL, Population
from spikenet.simulation.modulation import (
    ACETYLCHOLINE, ALPHA, BAND_FREQUENCIES, BAND_GAINS, DOPAMINE, GAMMA,
    REGION_MODULATORS, THETA,
)
from spikenet.simulation.synapses import W_MAX, SynapseTable
from spikenet.utils import get_logger

LOG = get_logger("simulation.topology")

INHIBITORY_POOL = "inhibitory_network"


# ---------------------------------------------------------------------------
# Specs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionSpec:
    """Description of one region to build.

    Parameters
    ----------
    name : str
        Unique region name; neuron labels are "<name>_<i>".
    size : int
        Number of neurons, >= 1.
    cell_type : str
        Principal cell type (pyramidal, interneuron, sensory, motor).
    function : str
        Free-text function tag.
    rhythm : str, optional
        Oscillation band biasing this region (theta, alpha, gamma).
    modulators : tuple of str
        Region-level modulator sensitivity (dopamine, acetylcholine).
    probability, weight : float
        Feed-forward projection from this region to the next spec in the
        list. probability 0 means no backbone projection.
    dynamics : str
        Requested dynamics mode for the region's neurons.
    preset : str, optional
        Preset overriding the cell type's default for principal cells.
    """
    name: str
    size: int
    cell_type: str = PYRAMIDAL
    function: str = ""
    rhythm: Optional[str] = None
    modulators: Tuple[str, ...] = ()
    probability: float = 0.0
    weight: float = 0.0
    dynamics: str = EXPONENTIAL
    preset: Optional[str] = None

    _TUPLE_FIELDS = ("name", "size", "cell_type", "probability", "weight")

    @classmethod
    def coerce(cls, spec):
        """Accept a RegionSpec, a dict, or a (name, size, type, p, w) tuple."""
        if isinstance(spec, cls):
            return spec
        try:
            if isinstance(spec, dict):
                spec = dict(spec)
                mods = spec.get("modulators", ())
                spec["modulators"] = (mods,) if isinstance(mods, str) else tuple(mods)
                return cls(**spec)
            if len(spec) > len(cls._TUPLE_FIELDS):
                raise TypeError(f"expected at most {len(cls._TUPLE_FIELDS)} fields")
            return cls(**dict(zip(cls._TUPLE_FIELDS, spec)))
        except TypeError as err:
            raise ConfigurationError(f"Malformed region spec {spec!r}: {err}")


@dataclass(frozen=True)
class ProjectionSpec:
    """Random projection between two regions."""
    source: str
    target: str
    probability: float
    weight: float

    @classmethod
    def coerce(cls, spec):
        if isinstance(spec, cls):
            return spec
        try:
            if isinstance(spec, dict):
                return cls(**spec)
            return cls(*spec)
        except TypeError as err:
            raise ConfigurationError(f"Malformed projection spec {spec!r}: {err}")


@dataclass(frozen=True)
class TopologyParams:
    """Constants of the connectivity generator."""
    interneuron_every: int = 5
    delay_min: float = 1.0
    delay_range: float = 5.0
    plasticity_min: float = 0.01
    plasticity_range: float = 0.02
    inhibitory_pool: int = 20
    lateral_probability: float = 0.1
    lateral_weight: float = -0.8
    lateral_delay_min: float = 0.5
    lateral_delay_range: float = 2.0
    lateral_plasticity: float = 0.005
    recurrent_fan_out: int = 3
    recurrent_weight: float = 0.3
    recurrent_delay_min: float = 0.5
    recurrent_delay_range: float = 1.0
    recurrent_plasticity: float = 0.02
    w_max: float = W_MAX

    def validate(self):
        for name in ("delay_min", "delay_range", "lateral_delay_min",
                     "lateral_delay_range", "recurrent_delay_min",
                     "recurrent_delay_range"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0")
        if self.interneuron_every < 1:
            raise ConfigurationError("interneuron_every must be >= 1")
        if self.inhibitory_pool < 0 or self.recurrent_fan_out < 0:
            raise ConfigurationError(
                "inhibitory_pool and recurrent_fan_out must be >= 0")
        if not 0.0 <= self.lateral_probability <= 1.0:
            raise ConfigurationError("lateral_probability must lie in [0, 1]")
        if self.w_max <= 0:
            raise ConfigurationError("w_max must be positive")


# The seven-region layout the cognitive front end runs on.
DEFAULT_REGIONS = (
    RegionSpec("sensory_cortex", 20, SENSORY,
               "Input processing and feature detection",
               rhythm=GAMMA, modulators=(ACETYLCHOLINE,)),
    RegionSpec("hippocampus", 30, PYRAMIDAL,
               "Memory encoding and retrieval", rhythm=THETA),
    RegionSpec("prefrontal_cortex", 40, PYRAMIDAL,
               "Decision making and planning",
               rhythm=GAMMA, modulators=(DOPAMINE, ACETYLCHOLINE)),
    RegionSpec("motor_cortex", 10, MOTOR,
               "Action selection and execution",
               rhythm=GAMMA, modulators=(ACETYLCHOLINE,)),
    RegionSpec("thalamus", 15, PYRAMIDAL,
               "Information relay and attention gating", rhythm=ALPHA),
    RegionSpec("basal_ganglia", 25, PYRAMIDAL,
               "Action selection and reinforcement", modulators=(DOPAMINE,)),
    RegionSpec("amygdala", 15, PYRAMIDAL,
               "Emotional evaluation and fear response"),
)

DEFAULT_PROJECTIONS = (
    ProjectionSpec("sensory_cortex", "thalamus", 0.3, 0.8),
    ProjectionSpec("thalamus", "hippocampus", 0.2, 0.7),
    ProjectionSpec("thalamus", "prefrontal_cortex", 0.2, 0.7),
    ProjectionSpec("hippocampus", "prefrontal_cortex", 0.15, 0.6),
    ProjectionSpec("prefrontal_cortex", "hippocampus", 0.1, 0.5),
    ProjectionSpec("prefrontal_cortex", "motor_cortex", 0.3, 0.8),
    ProjectionSpec("prefrontal_cortex", "basal_ganglia", 0.2, 0.7),
    ProjectionSpec("basal_ganglia", "motor_cortex", 0.2, 0.7),
    ProjectionSpec("thalamus", "amygdala", 0.1, 0.9),
    ProjectionSpec("amygdala", "hippocampus", 0.15, 0.8),
    ProjectionSpec("amygdala", "prefrontal_cortex", 0.1, 0.6),
)


# ---------------------------------------------------------------------------
# Built topology
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Region:
    """A built region: immutable set of neuron indices plus tags."""
    name: str
    function: str
    neurons: Tuple[int, ...]
    cell_type: str = PYRAMIDAL
    rhythm: Optional[str] = None
    modulators: frozenset = frozenset()

    @property
    def size(self):
        return len(self.neurons)

    @property
    def indices(self):
        return np.asarray(self.neurons, dtype=np.int64)


@dataclass
class Topology:
    """Population, synapses and regions produced by build_topology.

    Attributes
    ----------
    population : Population
        All neurons.
    synapses : SynapseTable
        All synapses.
    regions : dict
        Region name -> Region, in build order.
    projections : list of ProjectionSpec
        Inter-region projections that were generated.
    seed : int, optional
        Seed used for the build.
    """
    population: Population
    synapses: SynapseTable
    regions: dict
    projections: list = field(default_factory=list)
    seed: Optional[int] = None

    @property
    def n_neurons(self):
        return self.population.n_neurons

    @property
    def n_synapses(self):
        return self.synapses.n_synapses

    def region_of(self):
        """Region name per neuron."""
        names = np.empty(self.n_neurons, dtype=object)
        for region in self.regions.values():
            names[region.indices] = region.name
        return names

    def modulator_mask(self, modulator):
        """Neurons in regions tagged with modulator."""
        mask = np.zeros(self.n_neurons, dtype=bool)
        for region in self.regions.values():
            if modulator in region.modulators:
                mask[region.indices] = True
        return mask

    def rhythm_bias_gains(self):
        """Per-neuron (band index, gain); band -1 means no rhythm."""
        bands = list(BAND_FREQUENCIES)
        band_idx = np.full(self.n_neurons, -1, dtype=np.int64)
        gains = np.zeros(self.n_neurons, dtype=np.float64)
        for region in self.regions.values():
            if region.rhythm is not None:
                band_idx[region.indices] = bands.index(region.rhythm)
                gains[region.indices] = BAND_GAINS[region.rhythm]
        return band_idx, gains

    def membership(self):
        """Region name -> list of neuron labels."""
        labels = self.population.labels
        return {name: [str(labels[i]) for i in region.neurons]
                for name, region in self.regions.items()}

    def region_table(self):
        """One row per region."""
        return pd.DataFrame([
            {"region": r.name, "function": r.function, "cell_type": r.cell_type,
             "n_neurons": r.size, "rhythm": r.rhythm,
             "modulators": ",".join(sorted(r.modulators))}
            for r in self.regions.values()
        ])

    def summary(self):
        """Return a summary string."""
        lines = [
            f"Topology: {self.n_neurons:,} neurons, {self.n_synapses:,} synapses, "
            f"{len(self.regions)} regions (seed={self.seed})",
        ]
        for r in self.regions.values():
            lines.append(f"  {r.name}: {r.size} {r.cell_type}")
        lines.append(self.synapses.summary())
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_probability(p, what):
    if not (np.isfinite(p) and 0.0 <= p <= 1.0):
        raise ConfigurationError(f"{what}: probability {p} outside [0, 1]")


def _validate_regions(specs):
    if not specs:
        raise ConfigurationError("At least one region spec is required")
    seen = set()
    for spec in specs:
        if not isinstance(spec.name, str) or not spec.name:
            raise ConfigurationError(f"Region name must be a non-empty string, "
                                     f"got {spec.name!r}")
        if spec.name in seen:
            raise ConfigurationError(f"Duplicate region name '{spec.name}'")
        if spec.name == INHIBITORY_POOL:
            raise ConfigurationError(f"Region name '{INHIBITORY_POOL}' is reserved")
        seen.add(spec.name)
        if (isinstance(spec.size, bool)
                or not isinstance(spec.size, (int, np.integer))
                or spec.size < 1):
            raise ConfigurationError(
                f"Region '{spec.name}': size must be a positive integer, "
                f"got {spec.size!r}")
        if spec.cell_type not in CELL_TYPES:
            raise ConfigurationError(
                f"Region '{spec.name}': unknown cell type '{spec.cell_type}'. "
                f"Available: {CELL_TYPES.list_types()}")
        if spec.preset is not None:
            get_preset(spec.preset)
        if spec.dynamics not in DYNAMICS:
            raise ConfigurationError(
                f"Region '{spec.name}': unknown dynamics '{spec.dynamics}'")
        if spec.rhythm is not None and spec.rhythm not in BAND_FREQUENCIES:
            raise ConfigurationError(
                f"Region '{spec.name}': unknown rhythm '{spec.rhythm}'. "
                f"Available: {list(BAND_FREQUENCIES)}")
        unknown = set(spec.modulators) - set(REGION_MODULATORS)
        if unknown:
            raise ConfigurationError(
                f"Region '{spec.name}': unknown modulator(s) {sorted(unknown)}. "
                f"Available: {list(REGION_MODULATORS)}")
        _check_probability(spec.probability, f"Region '{spec.name}'")
        if not np.isfinite(spec.weight):
            raise ConfigurationError(f"Region '{spec.name}': weight must be finite")


def _collect_projections(specs, projections, known):
    """Backbone projections from consecutive specs, then explicit ones."""
    result = []
    for spec, nxt in zip(specs[:-1], specs[1:]):
        if spec.probability > 0:
            result.append(ProjectionSpec(spec.name, nxt.name,
                                         spec.probability, spec.weight))
    for proj in projections:
        for end in (proj.source, proj.target):
            if end not in known:
                raise ConfigurationError(
                    f"Projection {proj.source} -> {proj.target}: "
                    f"unknown region '{end}'")
        _check_probability(proj.probability,
                           f"Projection {proj.source} -> {proj.target}")
        if not np.isfinite(proj.weight):
            raise ConfigurationError(
                f"Projection {proj.source} -> {proj.target}: weight must be finite")
        result.append(proj)
    return result


# ---------------------------------------------------------------------------
# Synapse generators
# ---------------------------------------------------------------------------

def _table(pre, post, weight, delay, excitatory, plasticity, w_max):
    return SynapseTable(pre, post, weight, delay, excitatory, plasticity,
                        w_max=w_max)


def connect_regions(rng, source, target, probability, base_weight,
                    inhibitory, params):
    """Random projection source -> target with Bernoulli(p) per pair."""
    src, tgt = source.indices, target.indices
    draws = rng.random_sample((len(src), len(tgt))) < probability
    si, ti = np.nonzero(draws)
    pre, post = src[si], tgt[ti]
    k = len(pre)
    weight = base_weight * (0.5 + rng.random_sample(k))
    delay = params.delay_min + rng.random_sample(k) * params.delay_range
    plasticity = params.plasticity_min + rng.random_sample(k) * params.plasticity_range
    return _table(pre, post, weight, delay, ~inhibitory[pre], plasticity,
                  params.w_max)


def lateral_inhibition(rng, pool, regions, params):
    """Sparse negative-weight synapses from the pool into other regions."""
    tables = []
    for region in regions:
        if region.name == pool.name:
            continue
        src, tgt = pool.indices, region.indices
        draws = rng.random_sample((len(src), len(tgt))) < params.lateral_probability
        si, ti = np.nonzero(draws)
        k = len(si)
        weight = params.lateral_weight * (0.5 + rng.random_sample(k))
        delay = (params.lateral_delay_min
                 + rng.random_sample(k) * params.lateral_delay_range)
        tables.append(_table(src[si], tgt[ti], weight, delay,
                             np.zeros(k, dtype=bool),
                             np.full(k, params.lateral_plasticity), params.w_max))
    return tables


def local_recurrence(rng, region, inhibitory, params):
    """Each neuron targets min(fan_out, size - 1) distinct peers."""
    neurons = region.indices
    fan = min(params.recurrent_fan_out, len(neurons) - 1)
    if fan < 1:
        return SynapseTable.empty()
    pre, post = [], []
    for j, source in enumerate(neurons):
        peers = np.delete(neurons, j)
        targets = rng.choice(peers, size=fan, replace=False)
        pre.append(np.full(fan, source, dtype=np.int64))
        post.append(targets)
    pre = np.concatenate(pre)
    post = np.concatenate(post)
    k = len(pre)
    weight = params.recurrent_weight * (0.5 + rng.random_sample(k))
    delay = (params.recurrent_delay_min
             + rng.random_sample(k) * params.recurrent_delay_range)
    return _table(pre, post, weight, delay, ~inhibitory[pre],
                  np.full(k, params.recurrent_plasticity), params.w_max)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_topology(region_specs, projections=None, params=None, seed=None):
    """Create neurons and synapses for a list of region specs.

    Parameters
    ----------
    region_specs : sequence
        RegionSpec objects, dicts, or (name, size, cell_type, probability,
        weight) tuples, in order. A spec's probability/weight wire it to
        the next spec (feed-forward backbone).
    projections : sequence, optional
        Additional ProjectionSpec objects (or dicts / tuples).
    params : TopologyParams, optional
        Generator constants.
    seed : int, optional
        Seed for the RandomState driving every random draw.

    Returns
    -------
    Topology
    """
    params = params or TopologyParams()
    params.validate()
    specs = []
    for spec in region_specs or ():
        spec = RegionSpec.coerce(spec)
        if isinstance(spec.modulators, str):
            spec = replace(spec, modulators=(spec.modulators,))
        specs.append(spec)
    _validate_regions(specs)
    known = {s.name for s in specs}
    if params.inhibitory_pool > 0:
        known.add(INHIBITORY_POOL)
    proj_specs = _collect_projections(
        specs, [ProjectionSpec.coerce(p) for p in (projections or ())], known)

    rng = np.random.RandomState(seed)

    # --- Neurons ---
    neuron_params, cell_types, labels, modes, inhibitory = [], [], [], [], []
    regions = {}
    for spec in specs:
        start = len(neuron_params)
        for i in range(spec.size):
            if spec.cell_type == INTERNEURON or i % params.interneuron_every == 0:
                ctype = INTERNEURON
                p = CELL_TYPES.resolve(INTERNEURON)
            else:
                ctype = spec.cell_type
                p = get_preset(spec.preset) if spec.preset else CELL_TYPES.resolve(ctype)
            neuron_params.append(p)
            cell_types.append(ctype)
            labels.append(f"{spec.name}_{i}")
            modes.append(spec.dynamics)
            inhibitory.append(CELL_TYPES.is_inhibitory(ctype))
        regions[spec.name] = Region(
            name=spec.name,
            function=spec.function,
            neurons=tuple(range(start, len(neuron_params))),
            cell_type=spec.cell_type,
            rhythm=spec.rhythm,
            modulators=frozenset(spec.modulators),
        )

    if params.inhibitory_pool > 0:
        start = len(neuron_params)
        for i in range(params.inhibitory_pool):
            neuron_params.append(CELL_TYPES.resolve(INTERNEURON))
            cell_types.append(INTERNEURON)
            labels.append(f"inhibitory_{i}")
            modes.append(EXPONENTIAL)
            inhibitory.append(True)
        regions[INHIBITORY_POOL] = Region(
            name=INHIBITORY_POOL,
            function="Global and local inhibition",
            neurons=tuple(range(start, len(neuron_params))),
            cell_type=INTERNEURON,
        )

    population = Population(neuron_params, cell_types=cell_types,
                            labels=labels, modes=modes, inhibitory=inhibitory)
    inhibitory = population.inhibitory

    # --- Synapses ---
    tables = []
    for proj in proj_specs:
        tables.append(connect_regions(rng, regions[proj.source],
                                      regions[proj.target], proj.probability,
                                      proj.weight, inhibitory, params))
    if params.inhibitory_pool > 0:
        tables.extend(lateral_inhibition(rng, regions[INHIBITORY_POOL],
                                         regions.values(), params))
    for region in regions.values():
        tables.append(local_recurrence(rng, region, inhibitory, params))

    synapses = SynapseTable.concatenate(tables, w_max=params.w_max)

    topology = Topology(population=population, synapses=synapses,
                        regions=regions, projections=proj_specs, seed=seed)
    LOG.info("Built topology: %d neurons, %d synapses, %d regions, seed=%s",
             topology.n_neurons, topology.n_synapses, len(regions), seed)
    return topology

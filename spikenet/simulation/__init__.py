"""simulation — Region-structured spiking network engine.

Vectorized numpy implementation of an exponential integrate-and-fire
network (with an optional Hodgkin-Huxley conductance mode), delayed
synaptic delivery, pair STDP with reward credit, and global oscillator
and neuromodulator state.

References:
    Brette & Gerstner 2005 — J Comp Neurosci 19:175-197
    Izhikevich 2007 — Cerebral Cortex 17:2443-2452
"""

from .dynamics import (
    Population,
    NeuronState,
    ExponentialDynamics,
    ConductanceDynamics,
    single_neuron,
    EXPONENTIAL,
    CONDUCTANCE,
)
from .synapses import (
    SynapseTable,
    Synapse,
    DeliveryQueue,
)
from .plasticity import (
    PairSTDP,
    reward_credit,
    weight_change_summary,
)
from .modulation import (
    ModulationState,
    Oscillator,
)
from .topology import (
    RegionSpec,
    ProjectionSpec,
    TopologyParams,
    Topology,
    build_topology,
    DEFAULT_REGIONS,
    DEFAULT_PROJECTIONS,
)
from .config import (
    SimulationConfig,
    NetworkConfig,
    config_from_dict,
    load_config,
    save_config,
)
from .network import (
    Network,
    EpisodeResult,
)
from .stimulus import (
    StimulusProtocol,
    constant_stimulus,
    step_stimulus,
    pulse_stimulus,
    combine_stimuli,
)
from .analysis import (
    firing_rates,
    spike_raster,
    active_fraction,
    population_rate,
    region_rates,
    activity_summary,
)

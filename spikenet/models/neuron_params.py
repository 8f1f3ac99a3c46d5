"""Point neuron parameter presets.

One frozen dataclass, NeuronParams, carries everything a neuron needs for
both dynamics modes:

  - AdEx terms (capacitance, leak, exponential threshold, adaptation,
    reset and peak potentials)
  - STDP constants used by the synapses it sends
  - optional Hodgkin-Huxley channel conductances; without them a neuron
    asked for conductance dynamics runs AdEx instead

Presets are keyed by firing pattern, and cell types resolve to presets
through the CellTypeDB registry.

References:
    Brette R, Gerstner W (2005). J Comp Neurosci 19(2):175-197.
    Naud R et al. (2008). Biol Cybern 99(4-5):335-347.
    Hodgkin AL, Huxley AF (1952). J Physiol 117(4):500-544.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

from spikenet.errors import ConfigurationError


@dataclass(frozen=True)
class NeuronParams:
    """Parameters for a single point neuron.

    Parameters
    ----------
    name : str
        Preset name (e.g., "regular_spiking").
    c : float
        Membrane capacitance (pF).
    g_l : float
        Leak conductance (nS).
    e_l : float
        Leak reversal potential (mV).
    v_t : float
        Threshold of the exponential term (mV).
    delta_t : float
        Exponential slope factor (mV).
    a : float
        Subthreshold adaptation coupling (nS).
    b : float
        Spike-triggered adaptation increment (pA).
    tau_w : float
        Adaptation time constant (ms).
    v_reset : float
        Post-spike reset potential (mV).
    v_peak : float
        Spike cutoff (mV).
    tau_plus, tau_minus : float
        STDP trace time constants (ms).
    a_plus, a_minus : float
        STDP potentiation / depression amplitudes.
    g_na, g_k, e_na, e_k : float, optional
        Sodium / potassium conductances and reversal potentials.
    v_init : float, optional
        Initial membrane potential. Defaults to e_l.
    """
    name: str
    c: float = 200.0
    g_l: float = 10.0
    e_l: float = -70.0
    v_t: float = -50.0
    delta_t: float = 2.0
    a: float = 0.02
    b: float = 5.0
    tau_w: float = 30.0
    v_reset: float = -58.0
    v_peak: float = 20.0
    tau_plus: float = 20.0
    tau_minus: float = 20.0
    a_plus: float = 0.01
    a_minus: float = 0.012
    g_na: Optional[float] = None
    g_k: Optional[float] = None
    e_na: Optional[float] = None
    e_k: Optional[float] = None
    v_init: Optional[float] = None

    @property
    def has_channels(self):
        """True if all conductance-mode channel parameters are present."""
        return None not in (self.g_na, self.g_k, self.e_na, self.e_k)

    @property
    def v_start(self):
        return self.e_l if self.v_init is None else self.v_init

    @property
    def tau_m(self):
        """Membrane time constant (ms) = C / g_L."""
        return self.c / self.g_l if self.g_l > 0 else float("inf")

    @property
    def rheobase(self):
        """Minimum constant current (pA) that elicits an AdEx spike.

        Valid for the usual regime a/g_L << 1 and tau_w > tau_m.
        """
        g = self.g_l + self.a
        return g * (self.v_t - self.e_l - self.delta_t
                    + self.delta_t * math.log(1.0 + self.a / self.g_l))

    def with_channels(self, g_na=120.0, g_k=36.0, e_na=50.0, e_k=-77.0):
        """Return a copy carrying Hodgkin-Huxley channels."""
        return replace(self, g_na=g_na, g_k=g_k, e_na=e_na, e_k=e_k)

    def to_dict(self):
        return {
            "name": self.name,
            "c_pF": self.c,
            "g_l_nS": self.g_l,
            "e_l_mV": self.e_l,
            "v_t_mV": self.v_t,
            "delta_t_mV": self.delta_t,
            "a_nS": self.a,
            "b_pA": self.b,
            "tau_w_ms": self.tau_w,
            "v_reset_mV": self.v_reset,
            "v_peak_mV": self.v_peak,
            "tau_plus_ms": self.tau_plus,
            "tau_minus_ms": self.tau_minus,
            "a_plus": self.a_plus,
            "a_minus": self.a_minus,
            "has_channels": self.has_channels,
        }


# Firing-pattern presets. The a/b/tau_w values are the per-class
# adaptation constants; membrane constants follow Naud et al. (2008).
PRESETS = {
    "regular_spiking": NeuronParams(
        name="regular_spiking",
        c=200.0, g_l=10.0, e_l=-70.0, v_t=-50.0, delta_t=2.0,
        a=0.02, b=5.0, tau_w=30.0, v_reset=-58.0, v_peak=20.0,
    ),
    "fast_spiking": NeuronParams(
        name="fast_spiking",
        c=100.0, g_l=10.0, e_l=-65.0, v_t=-50.0, delta_t=0.5,
        a=0.1, b=0.2, tau_w=10.0, v_reset=-65.0, v_peak=20.0,
    ),
    "bursting": NeuronParams(
        name="bursting",
        c=200.0, g_l=10.0, e_l=-60.0, v_t=-50.0, delta_t=2.0,
        a=0.03, b=8.0, tau_w=120.0, v_reset=-46.0, v_peak=20.0,
    ),
    "adapting": NeuronParams(
        name="adapting",
        c=200.0, g_l=12.0, e_l=-70.0, v_t=-50.0, delta_t=3.0,
        a=0.02, b=10.0, tau_w=100.0, v_reset=-55.0, v_peak=20.0,
    ),
    # Squid axon, per unit area: C in uF/cm^2, conductances in mS/cm^2.
    # The AdEx fields only matter if the channels are stripped.
    "hodgkin_huxley": NeuronParams(
        name="hodgkin_huxley",
        c=1.0, g_l=0.3, e_l=-54.387, v_t=-55.0, delta_t=2.0,
        a=0.0, b=0.0, tau_w=100.0, v_reset=-65.0, v_peak=20.0,
        g_na=120.0, g_k=36.0, e_na=50.0, e_k=-77.0, v_init=-65.0,
    ),
}


def get_preset(name):
    """Get a preset by name."""
    if name not in PRESETS:
        raise ConfigurationError(f"Unknown neuron preset '{name}'. "
                                 f"Available: {list(PRESETS.keys())}")
    return PRESETS[name]


# ---------------------------------------------------------------------------
# Cell type registry
# ---------------------------------------------------------------------------

PYRAMIDAL = "pyramidal"
INTERNEURON = "interneuron"
SENSORY = "sensory"
MOTOR = "motor"


class CellTypeDB:
    """Registry mapping cell types to parameter presets."""

    def __init__(self):
        self._types = {}

    def register(self, cell_type, preset, inhibitory=False):
        """Register a cell type with its preset name."""
        self._types[cell_type] = (preset, inhibitory)

    def resolve(self, cell_type):
        """Parameters for a cell type."""
        if cell_type not in self._types:
            raise ConfigurationError(f"Unknown cell type '{cell_type}'. "
                                     f"Available: {self.list_types()}")
        return get_preset(self._types[cell_type][0])

    def is_inhibitory(self, cell_type):
        return cell_type in self._types and self._types[cell_type][1]

    def list_types(self):
        """List all registered cell types."""
        return sorted(self._types.keys())

    def __contains__(self, cell_type):
        return cell_type in self._types

    def __len__(self):
        return len(self._types)


def _build_default_db():
    db = CellTypeDB()
    db.register(PYRAMIDAL, "regular_spiking")
    db.register(INTERNEURON, "fast_spiking", inhibitory=True)
    db.register(SENSORY, "adapting")
    db.register(MOTOR, "bursting")
    return db


CELL_TYPES = _build_default_db()

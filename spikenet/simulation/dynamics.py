"""Neuron population state and its two dynamics modes.

A Population packs per-neuron parameters and continuous state into numpy
arrays indexed by a dense neuron index [0, n_neurons). Each neuron runs
one of two interchangeable dynamics objects:

1. ExponentialDynamics (AdEx, the default)
       C dV/dt = -g_L (V - E_L) + g_L dT exp((V - V_T) / dT) - w + I + I_syn
       tau_w dw/dt = a (V - E_L) - w
   On spike (V at V_peak): V -> V_reset, w -> w + b.

2. ConductanceDynamics (Hodgkin-Huxley)
       C dV/dt = -g_Na m^3 h (V - E_Na) - g_K n^4 (V - E_K)
                 - g_L (V - E_L) + I + I_syn
   No reset; a spike is an upward crossing of -20 mV.

Both integrate with forward Euler. Both decay the spike trace (tau_plus)
and the synaptic current accumulator (5 ms) every step.

References:
    Brette R, Gerstner W (2005). J Comp Neurosci 19(2):175-197.
    Hodgkin AL, Huxley AF (1952). J Physiol 117(4):500-544.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from spikenet.errors import ConfigurationError, InputError
from spikenet.utils import get_logger

LOG = get_logger("simulation.dynamics")

EXPONENTIAL = "exponential"
CONDUCTANCE = "conductance"

SYN_TAU = 5.0           # synaptic current decay (ms)
EXP_CAP = 20.0          # cap on (V - V_T) / dT to keep exp() finite
V_DETECT = -20.0        # conductance-mode spike detection voltage (mV)


@dataclass
class NeuronState:
    """Snapshot of one neuron's identity and continuous state."""
    index: int
    label: str
    cell_type: str
    preset: str
    mode: str
    inhibitory: bool
    v: float
    w: float
    n: float
    m: float
    h: float
    trace: float
    last_spike: float
    syn_current: float


def _exprel(u):
    """u / (exp(u) - 1), with the removable singularity at u = 0 filled."""
    small = np.abs(u) < 1e-7
    safe = np.where(small, 1.0, u)
    return np.where(small, 1.0 - u / 2.0, safe / np.expm1(safe))


def gate_rates(v):
    """Hodgkin-Huxley opening/closing rates (1/ms) at potential v (mV)."""
    alpha_n = 0.1 * _exprel(-(v + 55.0) / 10.0)
    beta_n = 0.125 * np.exp(-(v + 65.0) / 80.0)
    alpha_m = 1.0 * _exprel(-(v + 40.0) / 10.0)
    beta_m = 4.0 * np.exp(-(v + 65.0) / 18.0)
    alpha_h = 0.07 * np.exp(-(v + 65.0) / 20.0)
    beta_h = 1.0 / (1.0 + np.exp(-(v + 35.0) / 10.0))
    return alpha_n, beta_n, alpha_m, beta_m, alpha_h, beta_h


def gate_steady_state(v):
    """Steady-state (n, m, h) at potential v."""
    a_n, b_n, a_m, b_m, a_h, b_h = gate_rates(np.asarray(v, dtype=np.float64))
    return a_n / (a_n + b_n), a_m / (a_m + b_m), a_h / (a_h + b_h)


class ExponentialDynamics:
    """Adaptive exponential integrate-and-fire."""

    name = EXPONENTIAL

    def integrate(self, pop, idx, dt, current, time):
        v = pop.v[idx]
        w = pop.w[idx]
        syn = pop.syn_current[idx]
        v_peak = pop.v_peak[idx]
        spiking = v >= v_peak

        # Derivatives from the pre-step state
        exp_arg = np.minimum((v - pop.v_t[idx]) / pop.delta_t[idx], EXP_CAP)
        dv = (-pop.g_l[idx] * (v - pop.e_l[idx])
              + pop.g_l[idx] * pop.delta_t[idx] * np.exp(exp_arg)
              - w + current + syn) / pop.c[idx]
        dw = (pop.a[idx] * (v - pop.e_l[idx]) - w) / pop.tau_w[idx]

        # V is held at the peak so the next call registers the spike
        pop.v[idx] = np.where(spiking, pop.v_reset[idx],
                              np.minimum(v + dv * dt, v_peak))
        pop.w[idx] = np.where(spiking, w + pop.b[idx], w + dw * dt)
        pop.trace[idx] = np.where(
            spiking, 1.0, pop.trace[idx] * np.exp(-dt / pop.tau_plus[idx]))
        pop.syn_current[idx] = np.where(spiking, syn,
                                        syn * np.exp(-dt / SYN_TAU))
        pop.last_spike[idx[spiking]] = time
        return spiking


class ConductanceDynamics:
    """Hodgkin-Huxley sodium/potassium/leak dynamics without reset."""

    name = CONDUCTANCE

    def integrate(self, pop, idx, dt, current, time):
        v = pop.v[idx]
        n, m, h = pop.n[idx], pop.m[idx], pop.h[idx]

        a_n, b_n, a_m, b_m, a_h, b_h = gate_rates(v)
        n = np.clip(n + dt * (a_n * (1.0 - n) - b_n * n), 0.0, 1.0)
        m = np.clip(m + dt * (a_m * (1.0 - m) - b_m * m), 0.0, 1.0)
        h = np.clip(h + dt * (a_h * (1.0 - h) - b_h * h), 0.0, 1.0)

        i_na = pop.g_na[idx] * m ** 3 * h * (v - pop.e_na[idx])
        i_k = pop.g_k[idx] * n ** 4 * (v - pop.e_k[idx])
        i_l = pop.g_l[idx] * (v - pop.e_l[idx])
        dv = (-i_na - i_k - i_l + current + pop.syn_current[idx]) / pop.c[idx]
        v_new = v + dv * dt

        spiked = (v < V_DETECT) & (v_new >= V_DETECT) & (dv > 0)

        pop.v[idx] = v_new
        pop.n[idx], pop.m[idx], pop.h[idx] = n, m, h
        pop.trace[idx] = np.where(
            spiked, 1.0, pop.trace[idx] * np.exp(-dt / pop.tau_plus[idx]))
        pop.syn_current[idx] *= np.exp(-dt / SYN_TAU)
        pop.last_spike[idx[spiked]] = time
        return spiked


DYNAMICS = {
    EXPONENTIAL: ExponentialDynamics(),
    CONDUCTANCE: ConductanceDynamics(),
}


class Population:
    """Per-neuron parameters and state for a fixed set of neurons.

    Parameters
    ----------
    params : list of NeuronParams
        One parameter set per neuron.
    cell_types : list of str, optional
        Cell type tag per neuron. Defaults to the preset name.
    labels : list of str, optional
        Human-readable neuron ids. Defaults to "n<index>".
    modes : list of str, optional
        Requested dynamics mode per neuron. Conductance mode needs
        channel parameters; neurons without them run exponential mode.
    inhibitory : array-like of bool, optional
        Inhibitory (interneuron) flag per neuron.
    """

    _PARAM_FIELDS = ("c", "g_l", "e_l", "v_t", "delta_t", "a", "b", "tau_w",
                     "v_reset", "v_peak", "tau_plus", "tau_minus",
                     "a_plus", "a_minus")
    _CHANNEL_FIELDS = ("g_na", "g_k", "e_na", "e_k")

    def __init__(self, params, cell_types=None, labels=None, modes=None,
                 inhibitory=None):
        params = list(params)
        n = len(params)
        self.n_neurons = n
        self.params = params
        self.presets = np.array([p.name for p in params], dtype=object)
        self.cell_types = np.array(
            cell_types if cell_types is not None else self.presets, dtype=object)
        self.labels = np.array(
            labels if labels is not None else [f"n{i}" for i in range(n)],
            dtype=object)
        self.inhibitory = (np.asarray(inhibitory, dtype=bool)
                           if inhibitory is not None else np.zeros(n, dtype=bool))

        for name in self._PARAM_FIELDS:
            setattr(self, name, np.array([getattr(p, name) for p in params],
                                         dtype=np.float64))
        for name in self._CHANNEL_FIELDS:
            setattr(self, name, np.array(
                [np.nan if getattr(p, name) is None else getattr(p, name)
                 for p in params], dtype=np.float64))
        self.v_start = np.array([p.v_start for p in params], dtype=np.float64)

        requested = list(modes) if modes is not None else [EXPONENTIAL] * n
        if len(requested) != n:
            raise ConfigurationError(
                f"Got {len(requested)} dynamics modes for {n} neurons")
        unknown = set(requested) - set(DYNAMICS)
        if unknown:
            raise ConfigurationError(f"Unknown dynamics mode(s) {sorted(unknown)}. "
                                     f"Available: {list(DYNAMICS.keys())}")
        resolved = [CONDUCTANCE if (mode == CONDUCTANCE and p.has_channels)
                    else EXPONENTIAL for mode, p in zip(requested, params)]
        n_fallback = sum(1 for mode, res in zip(requested, resolved)
                         if mode != res)
        if n_fallback:
            LOG.warning("%d neurons lack channel parameters, "
                        "using exponential dynamics", n_fallback)
        self.modes = np.array(resolved, dtype=object)
        self._mode_index = {
            name: np.where(self.modes == name)[0] for name in DYNAMICS
        }

        self.reset()

    def reset(self):
        """Restore all continuous state to baseline."""
        n = self.n_neurons
        self.v = self.v_start.copy()
        self.w = np.zeros(n, dtype=np.float64)
        self.n, self.m, self.h = (np.asarray(x, dtype=np.float64).copy()
                                  for x in gate_steady_state(self.v_start))
        self.trace = np.zeros(n, dtype=np.float64)
        self.last_spike = np.full(n, -np.inf, dtype=np.float64)
        self.syn_current = np.zeros(n, dtype=np.float64)

    def integrate(self, dt, current=0.0, time=0.0):
        """Advance every neuron by one timestep.

        Parameters
        ----------
        dt : float
            Timestep (ms).
        current : float or np.ndarray
            External current, scalar or one value per neuron.
        time : float
            Simulation time stamped on any spike (ms).

        Returns
        -------
        np.ndarray
            Boolean spike mask, shape (n_neurons,).
        """
        if not (np.isfinite(dt) and dt > 0):
            raise InputError(f"dt must be a positive finite number, got {dt}")
        current = np.asarray(current, dtype=np.float64)
        if not np.all(np.isfinite(current)):
            raise InputError("External current contains non-finite values")
        current = np.broadcast_to(current, (self.n_neurons,))

        spiked = np.zeros(self.n_neurons, dtype=bool)
        for name, idx in self._mode_index.items():
            if len(idx) > 0:
                spiked[idx] = DYNAMICS[name].integrate(
                    self, idx, dt, current[idx], time)
        return spiked

    def mode_counts(self):
        return {name: len(idx) for name, idx in self._mode_index.items()}

    def state(self, i):
        """NeuronState snapshot for neuron i."""
        return NeuronState(
            index=int(i),
            label=str(self.labels[i]),
            cell_type=str(self.cell_types[i]),
            preset=str(self.presets[i]),
            mode=str(self.modes[i]),
            inhibitory=bool(self.inhibitory[i]),
            v=float(self.v[i]),
            w=float(self.w[i]),
            n=float(self.n[i]),
            m=float(self.m[i]),
            h=float(self.h[i]),
            trace=float(self.trace[i]),
            last_spike=float(self.last_spike[i]),
            syn_current=float(self.syn_current[i]),
        )

    def to_frame(self):
        """Current state of all neurons as a DataFrame."""
        return pd.DataFrame({
            "neuron_id": self.labels,
            "cell_type": self.cell_types,
            "preset": self.presets,
            "mode": self.modes,
            "inhibitory": self.inhibitory,
            "v": self.v,
            "w": self.w,
            "spike_trace": self.trace,
            "last_spike": self.last_spike,
            "synaptic_current": self.syn_current,
        })

    def __len__(self):
        return self.n_neurons


def single_neuron(params, mode: Optional[str] = None, label="n0"):
    """A one-neuron Population, handy for probing a preset."""
    return Population([params], labels=[label],
                      modes=[mode or EXPONENTIAL])

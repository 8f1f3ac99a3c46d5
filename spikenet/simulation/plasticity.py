"""Plasticity rules for the network stepper.

PairSTDP is a callable run once per timestep:
    rule(time, dt, population, synapses, modulation)

It mutates synapses.weight, synapses.pre_trace and synapses.post_trace
in place. reward_credit() is the reward-driven counterpart: it scales
synapses whose eligibility traces are both high.

References:
    Bi GQ, Poo MM (1998). J Neurosci 18(24):10464-10472.
    Izhikevich EM (2007). Cerebral Cortex 17(10):2443-2452.
"""

from dataclasses import dataclass, field

import numpy as np

from spikenet.utils import get_logger

LOG = get_logger("simulation.plasticity")


@dataclass
class PairSTDP:
    """Trace-based pair STDP with neuromodulated consolidation.

    Each step, for every synapse:

    1. A neuron counts as having spiked if its last spike is less than
       `window` ms old. The window does not scale with dt.
    2. Presynaptic spike and post trace > 0: w += A_plus * post_trace.
    3. Postsynaptic spike and pre trace > 0: w -= A_minus * pre_trace.
    4. Traces are set to 1 on a spike, otherwise decay with tau_plus
       (pre) and tau_minus (post) of the presynaptic neuron.
    5. Synapses touched by a spike are scaled by
       1 + dopamine * acetylcholine * consolidation_rate.
    6. Weights are clamped to their bounds.

    A_minus slightly exceeds A_plus in every preset, so loose spike
    pairings depress on balance.

    Parameters
    ----------
    window : float
        Spike recency window (ms).
    consolidation : bool
        Apply the dopamine/acetylcholine gain (step 5).
    consolidation_rate : float
        Weight gain per unit of dopamine * acetylcholine, shared by all
        synapses.
    snapshot_interval_ms : float
        How often to record weight snapshots (ms). 0 to disable.
    """
    window: float = 1.0
    consolidation: bool = True
    consolidation_rate: float = 0.01
    snapshot_interval_ms: float = 0.0

    n_potentiated: int = field(init=False, default=0)
    n_depressed: int = field(init=False, default=0)
    weight_snapshots: list = field(init=False, repr=False, default_factory=list)
    snapshot_times: list = field(init=False, repr=False, default_factory=list)
    _last_snapshot: float = field(init=False, repr=False, default=-np.inf)

    def __post_init__(self):
        if self.window <= 0:
            raise ValueError(f"STDP window must be positive, got {self.window}")
        if self.consolidation_rate < 0:
            raise ValueError("consolidation_rate must be >= 0, "
                             f"got {self.consolidation_rate}")
        LOG.info("PairSTDP: window=%.2f ms, consolidation=%s (rate %.3f)",
                 self.window, self.consolidation, self.consolidation_rate)

    def recent_spikes(self, population, time):
        """Boolean mask of neurons that spiked within the window."""
        return (time - population.last_spike) < self.window

    def __call__(self, time, dt, population, synapses, modulation=None):
        """Called by the stepper each timestep.

        Returns
        -------
        tuple of int
            (potentiated, depressed) synapse counts for this step.
        """
        if synapses.n_synapses == 0:
            return 0, 0

        recent = self.recent_spikes(population, time)
        pre, post = synapses.pre, synapses.post
        pre_spk = recent[pre]
        post_spk = recent[post]

        # 1. Pre spike with a live post trace: potentiate
        ltp = pre_spk & (synapses.post_trace > 0)
        synapses.weight[ltp] += (population.a_plus[pre[ltp]]
                                 * synapses.post_trace[ltp])

        # 2. Post spike with a live pre trace: depress
        ltd = post_spk & (synapses.pre_trace > 0)
        synapses.weight[ltd] -= (population.a_minus[pre[ltd]]
                                 * synapses.pre_trace[ltd])

        # 3. Traces
        synapses.pre_trace[:] = np.where(
            pre_spk, 1.0,
            synapses.pre_trace * np.exp(-dt / population.tau_plus[pre]))
        synapses.post_trace[:] = np.where(
            post_spk, 1.0,
            synapses.post_trace * np.exp(-dt / population.tau_minus[pre]))

        # 4. Neuromodulated consolidation
        if self.consolidation and modulation is not None:
            active = pre_spk | post_spk
            if np.any(active):
                gain = modulation.dopamine * modulation.acetylcholine
                synapses.weight[active] *= 1.0 + gain * self.consolidation_rate

        # 5. Clamp
        synapses.clamp()

        n_ltp, n_ltd = int(ltp.sum()), int(ltd.sum())
        self.n_potentiated += n_ltp
        self.n_depressed += n_ltd

        # 6. Periodic snapshots
        if (self.snapshot_interval_ms > 0
                and time - self._last_snapshot >= self.snapshot_interval_ms):
            self.weight_snapshots.append(synapses.weight.copy())
            self.snapshot_times.append(time)
            self._last_snapshot = time

        return n_ltp, n_ltd

    def reset(self):
        self.n_potentiated = 0
        self.n_depressed = 0
        self.weight_snapshots = []
        self.snapshot_times = []
        self._last_snapshot = -np.inf


def reward_credit(synapses, reward, threshold=0.5, scale=0.1):
    """Scale eligible synapses by 1 + reward * scale.

    A synapse is eligible when both its pre and post traces exceed
    threshold, i.e. both sides spiked recently.

    Parameters
    ----------
    synapses : SynapseTable
        Weights are modified in place and clamped.
    reward : float
        Reward signal; negative values weaken eligible synapses.
    threshold : float
        Trace level required on both sides.
    scale : float
        Weight change per unit reward.

    Returns
    -------
    int
        Number of synapses changed.
    """
    if synapses.n_synapses == 0:
        return 0
    eligible = (synapses.pre_trace > threshold) & (synapses.post_trace > threshold)
    n = int(eligible.sum())
    if n > 0:
        synapses.weight[eligible] *= 1.0 + reward * scale
        synapses.clamp()
    return n


def weight_change_summary(synapses, initial_weights=None):
    """Summarize weight changes relative to initial values.

    Parameters
    ----------
    synapses : SynapseTable
        Current synapse state.
    initial_weights : np.ndarray, optional
        Reference weights. Defaults to the weights at construction.

    Returns
    -------
    dict
        Global and per-type weight change statistics.
    """
    initial = synapses.initial_weight if initial_weights is None else initial_weights
    delta = synapses.weight - initial
    summary = {
        "mean_change": float(np.mean(delta)) if len(delta) else 0.0,
        "n_potentiated": int(np.sum(delta > 1e-10)),
        "n_depressed": int(np.sum(delta < -1e-10)),
        "n_unchanged": int(np.sum(np.abs(delta) <= 1e-10)),
        "types": {},
    }
    for name, mask in (("excitatory", synapses.excitatory),
                       ("inhibitory", ~synapses.excitatory)):
        if np.any(mask):
            summary["types"][name] = {
                "n_synapses": int(mask.sum()),
                "mean_change": float(np.mean(delta[mask])),
            }
    return summary

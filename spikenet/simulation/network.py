"""The network: topology, modulation state and the simulation loop.

Network is the handle collaborators hold. It owns every piece of mutable
state (neurons, synapses, pending deliveries, modulation) and exposes:

    process_input(vector)       one episode, returns activity records
    run_episode(...)            the same with full control and results
    apply_reward(r)             dopamine shift plus eligibility credit
    set_attention(x)            acetylcholine level
    set_arousal(x)              norepinephrine level
    get_network_state()         neurons, synapses, phases, levels, regions
    reset()                     back to baseline state

Each step of an episode:
    1. advance oscillators
    2. per-neuron modulation factor
    3. rhythm bias current, scaled by the factor
    4. integrate neurons; spikes enqueue delayed deliveries
    5. deliver due currents
    6. STDP
    7. neuromodulator update
    8. every sample_interval steps, record activity

The loop is synchronous and runs to completion. One caller at a time.
"""

from collections import deque
from dataclasses import dataclass

import numpy as np
import pandas as pd

from spikenet.errors import ConfigurationError, InputError
from spikenet.simulation.config import (
    NetworkConfig, SimulationConfig, load_config,
)
from spikenet.simulation.modulation import (
    ACETYLCHOLINE, DOPAMINE, NOREPINEPHRINE, ModulationState,
)
from spikenet.simulation.plasticity import PairSTDP, reward_credit
from spikenet.simulation.synapses import DeliveryQueue
from spikenet.simulation.topology import (
    DEFAULT_PROJECTIONS, DEFAULT_REGIONS, build_topology,
)
from spikenet.utils import get_logger

LOG = get_logger("simulation.network")

REFRACTORY_MS = 2.0
ACTIVE_WINDOW_MS = 10.0
ACTIVITY_COLUMNS = ["neuron_id", "region", "timestamp", "potential", "fired"]


@dataclass
class EpisodeResult:
    """Results from one episode.

    Attributes
    ----------
    spike_times : list of np.ndarray
        spike_times[i] is an array of spike times (ms) for neuron i.
    activity : pd.DataFrame
        Sampled activity: neuron_id, region, timestamp, potential, fired.
    dt : float
        Timestep used (ms).
    duration : float
        Episode length (ms).
    start_time : float
        Network time at the start of the episode (ms).
    n_neurons : int
        Number of neurons.
    labels : np.ndarray
        Neuron ids.
    regions : np.ndarray
        Region name per neuron.
    """
    spike_times: list
    activity: pd.DataFrame
    dt: float = 0.1
    duration: float = 100.0
    start_time: float = 0.0
    n_neurons: int = 0
    labels: np.ndarray = None
    regions: np.ndarray = None

    @property
    def end_time(self):
        return self.start_time + self.duration

    @property
    def n_spikes(self):
        """Total number of spikes across all neurons."""
        return sum(len(st) for st in self.spike_times)

    def mean_rate(self):
        """Mean firing rate across all neurons (Hz)."""
        duration_s = self.duration / 1000.0
        return self.n_spikes / (self.n_neurons * duration_s) if self.n_neurons > 0 else 0.0

    def neuron_rates(self):
        """Per-neuron firing rates (Hz)."""
        duration_s = self.duration / 1000.0
        return np.array([len(st) / duration_s for st in self.spike_times])

    def spikes(self):
        """All spikes as a DataFrame sorted by time."""
        rows = [(self.labels[i], t) for i, st in enumerate(self.spike_times)
                for t in st]
        df = pd.DataFrame(rows, columns=["neuron_id", "timestamp"])
        return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


class Network:
    """A spiking network with global modulation.

    Parameters
    ----------
    regions : sequence, optional
        Region specs (see build_topology). Defaults to DEFAULT_REGIONS.
    projections : sequence, optional
        Explicit projections. Defaults to DEFAULT_PROJECTIONS when regions
        is also defaulted, otherwise none.
    simulation : SimulationConfig, optional
        Loop parameters.
    topology_params : TopologyParams, optional
        Connectivity generator constants.
    seed : int, optional
        Seed for topology generation.
    """

    def __init__(self, regions=None, projections=None, simulation=None,
                 topology_params=None, seed=None):
        if regions is None:
            regions = DEFAULT_REGIONS
            if projections is None:
                projections = DEFAULT_PROJECTIONS
        self.config = (simulation or SimulationConfig()).validate()
        self.seed = seed

        self.topology = build_topology(regions, projections,
                                       params=topology_params, seed=seed)
        self.population = self.topology.population
        self.synapses = self.topology.synapses
        self.regions = self.topology.regions

        input_region = self.config.input_region or next(iter(self.regions))
        if input_region not in self.regions:
            raise ConfigurationError(f"Input region '{input_region}' does not exist. "
                                     f"Available: {list(self.regions)}")
        self.input_region = input_region

        # Static per-neuron lookups
        self._region_names = self.topology.region_of()
        self._reward_mask = self.topology.modulator_mask(DOPAMINE)
        self._attention_mask = self.topology.modulator_mask(ACETYLCHOLINE)
        self._band_idx, self._band_gain = self.topology.rhythm_bias_gains()

        cfg = self.config
        self.modulation = ModulationState(
            homeostasis_high=cfg.homeostasis_high,
            homeostasis_low=cfg.homeostasis_low,
            homeostasis_step=cfg.homeostasis_step,
            decay=cfg.modulator_decay,
        )
        self.stdp = PairSTDP(window=cfg.stdp_window,
                             consolidation=cfg.stdp_consolidation,
                             consolidation_rate=cfg.stdp_consolidation_rate)
        self.queue = DeliveryQueue()
        self.time = 0.0
        self.spike_log = deque(maxlen=cfg.max_spike_history)
        self.activity_history = deque(maxlen=cfg.max_activity_history)

    @classmethod
    def from_config(cls, config):
        """Construct from a NetworkConfig."""
        if not isinstance(config, NetworkConfig):
            raise ConfigurationError(f"Expected NetworkConfig, got {type(config)}")
        return cls(regions=config.regions, projections=config.projections,
                   simulation=config.simulation, topology_params=config.topology,
                   seed=config.seed)

    @classmethod
    def from_yaml(cls, path):
        """Construct from a YAML configuration file."""
        return cls.from_config(load_config(path))

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def n_neurons(self):
        return self.population.n_neurons

    @property
    def n_synapses(self):
        return self.synapses.n_synapses

    @property
    def labels(self):
        return self.population.labels

    def neuron_index(self, label):
        """Dense index of a neuron id."""
        matches = np.where(self.population.labels == label)[0]
        if len(matches) == 0:
            raise KeyError(f"Unknown neuron id '{label}'")
        return int(matches[0])

    def region_indices(self, name):
        if name not in self.regions:
            raise KeyError(f"Region '{name}' not found")
        return self.regions[name].indices

    # -----------------------------------------------------------------------
    # Per-step pieces
    # -----------------------------------------------------------------------

    def modulation_factor(self):
        """Per-neuron multiplicative gain from the current modulator levels."""
        return self.modulation.gain(self._reward_mask, self._attention_mask,
                                    self.population.inhibitory)

    def rhythm_bias(self):
        """Per-neuron oscillatory current from each region's band."""
        values = self.modulation.band_values()
        has_band = self._band_idx >= 0
        bias = np.zeros(self.n_neurons, dtype=np.float64)
        bias[has_band] = self._band_gain[has_band] * values[self._band_idx[has_band]]
        return bias

    def inject(self, input_currents):
        """Queue an input vector onto the input region.

        Entry i drives the i-th neuron of the input region; entries beyond
        the region size are ignored. Amplitude is
        value * input_gain * (1 + acetylcholine).

        Returns
        -------
        int
            Number of neurons driven.
        """
        values = np.asarray(input_currents, dtype=np.float64).ravel()
        if not np.all(np.isfinite(values)):
            raise InputError("Input vector contains non-finite values")
        targets = self.region_indices(self.input_region)[:len(values)]
        if len(targets) == 0:
            return 0
        amplitude = (values[:len(targets)] * self.config.input_gain
                     * (1.0 + self.modulation.acetylcholine))
        self.queue.enqueue(targets, 0.0, amplitude, True, now=self.time)
        return len(targets)

    def _propagate(self, spiked, factor):
        """Queue deliveries on every outgoing synapse of spiking neurons."""
        syn = self.synapses
        out = syn.outgoing(spiked)
        if len(out) == 0:
            return 0
        exc = syn.excitatory[out]
        gain = np.where(exc, self.config.excitatory_gain, self.config.inhibitory_gain)
        amplitude = np.abs(syn.weight[out]) * factor[syn.post[out]] * gain
        self.queue.enqueue(syn.post[out], syn.delay[out], amplitude, exc,
                           now=self.time)
        return len(out)

    # -----------------------------------------------------------------------
    # Episodes
    # -----------------------------------------------------------------------

    def run_episode(self, input_currents=None, steps=None, dt=None,
                    stimulus=None):
        """Run a fixed number of steps.

        Parameters
        ----------
        input_currents : array-like, optional
            Input vector injected into the input region at the start.
        steps : int, optional
            Number of steps. Defaults to config.steps_per_input.
        dt : float, optional
            Timestep (ms). Defaults to config.dt.
        stimulus : np.ndarray, optional
            Direct external current, shape (n_neurons, steps).

        Returns
        -------
        EpisodeResult
        """
        steps = self.config.steps_per_input if steps is None else int(steps)
        dt = self.config.dt if dt is None else float(dt)
        if steps < 1:
            raise InputError(f"steps must be >= 1, got {steps}")
        if not (np.isfinite(dt) and dt > 0):
            raise InputError(f"dt must be a positive finite number, got {dt}")

        n = self.n_neurons
        if stimulus is not None:
            stimulus = np.asarray(stimulus, dtype=np.float64)
            if stimulus.shape != (n, steps):
                raise InputError(f"stimulus must have shape {(n, steps)}, "
                                 f"got {stimulus.shape}")
            if not np.all(np.isfinite(stimulus)):
                raise InputError("Stimulus contains non-finite values")
        if input_currents is not None:
            self.inject(input_currents)

        pop = self.population
        mod = self.modulation
        interval = self.config.sample_interval
        start_time = self.time
        spike_times = [[] for _ in range(n)]
        sampled_fired = 0
        samples = []

        for step in range(steps):
            # 1. Clock and oscillators
            self.time += dt
            t = self.time
            mod.advance(dt)

            # 2-3. Modulated external current
            factor = self.modulation_factor()
            current = self.rhythm_bias() * factor
            if stimulus is not None:
                current = current + stimulus[:, step]

            # 4. Integrate and propagate
            spiked = pop.integrate(dt, current, t)
            if np.any(spiked):
                spike_indices = np.where(spiked)[0]
                for idx in spike_indices:
                    spike_times[idx].append(t)
                    self.spike_log.append((pop.labels[idx], t))
                self._propagate(spiked, factor)

            # 5. Delivery
            self.queue.deliver_due(t, pop.syn_current)

            # 6. Plasticity
            self.stdp(t, dt, pop, self.synapses, mod)

            # 7. Neuromodulators, driven by the fired flags of sampled steps
            sample_step = step % interval == 0
            if sample_step:
                sampled_fired += int(spiked.sum())
            mod.update(sampled_fired / n)

            # 8. Sampling
            if sample_step:
                samples.append((t, pop.v.copy(), spiked.copy()))

        activity = self._activity_frame(samples)
        self.activity_history.extend(activity.itertuples(index=False, name=None))

        result = EpisodeResult(
            spike_times=[np.array(st) for st in spike_times],
            activity=activity,
            dt=dt,
            duration=steps * dt,
            start_time=start_time,
            n_neurons=n,
            labels=pop.labels,
            regions=self._region_names,
        )
        LOG.info("Episode complete: %d steps, %d spikes, mean rate %.2f Hz",
                 steps, result.n_spikes, result.mean_rate())
        return result

    def _activity_frame(self, samples):
        if not samples:
            return pd.DataFrame(columns=ACTIVITY_COLUMNS)
        n = self.n_neurons
        times, potentials, fired = zip(*samples)
        idx = np.tile(np.arange(n), len(samples))
        return pd.DataFrame({
            "neuron_id": self.population.labels[idx],
            "region": self._region_names[idx],
            "timestamp": np.repeat(np.asarray(times), n),
            "potential": np.concatenate(potentials),
            "fired": np.concatenate(fired),
        }, columns=ACTIVITY_COLUMNS)

    def process_input(self, input_currents):
        """Run one default-length episode and return its activity records."""
        return self.run_episode(input_currents).activity

    # -----------------------------------------------------------------------
    # Control signals
    # -----------------------------------------------------------------------

    @staticmethod
    def _scalar(value, what):
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InputError(f"{what} must be a number, got {value!r}")
        if not np.isfinite(value):
            raise InputError(f"{what} must be finite, got {value}")
        return value

    def apply_reward(self, reward):
        """Shift dopamine by reward and credit eligible synapses.

        Returns
        -------
        int
            Number of synapses strengthened (or weakened, for r < 0).
        """
        reward = self._scalar(reward, "reward")
        self.modulation.shift(DOPAMINE, reward)
        n_credited = reward_credit(self.synapses, reward,
                                   threshold=self.config.reward_threshold,
                                   scale=self.config.reward_scale)
        LOG.info("Reward %.3f: dopamine=%.3f, %d synapses credited",
                 reward, self.modulation.dopamine, n_credited)
        return n_credited

    def set_attention(self, level):
        """Set acetylcholine, clamped into [0, 1]."""
        return self.modulation.set_level(ACETYLCHOLINE,
                                         self._scalar(level, "attention"))

    def set_arousal(self, level):
        """Set norepinephrine, clamped into [0, 1]."""
        return self.modulation.set_level(NOREPINEPHRINE,
                                         self._scalar(level, "arousal"))

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    def get_network_state(self):
        """Snapshot of the whole network.

        Returns
        -------
        dict
            neurons : pd.DataFrame
            synapses : pd.DataFrame
            oscillations : dict of band -> {phase, frequency}
            neuromodulators : dict of name -> level
            regions : dict of region -> list of neuron ids
            spikes : list of (neuron_id, time), most recent last
            time : float
        """
        pop = self.population
        since = self.time - pop.last_spike
        with np.errstate(divide="ignore"):
            rate = np.where((since > 0) & (since < 1000.0), 1000.0 / since, 0.0)
        neurons = pop.to_frame()
        neurons.insert(1, "region", self._region_names)
        neurons["is_refractory"] = since < REFRACTORY_MS
        neurons["firing_rate"] = rate

        synapses = self.synapses.to_frame(labels=pop.labels)
        synapses["active"] = since[self.synapses.pre] < ACTIVE_WINDOW_MS

        return {
            "neurons": neurons,
            "synapses": synapses,
            "oscillations": self.modulation.phases(),
            "neuromodulators": self.modulation.levels(),
            "regions": self.topology.membership(),
            "spikes": list(self.spike_log),
            "time": self.time,
        }

    def reset(self, reset_weights=None):
        """Return the network to its baseline state.

        Neuron state, modulation, pending deliveries, histories and
        eligibility traces are always cleared. Learned weights survive
        unless reset_weights (or config.reset_weights) is True.
        """
        if reset_weights is None:
            reset_weights = self.config.reset_weights
        self.population.reset()
        self.modulation.reset()
        self.queue.clear()
        self.spike_log.clear()
        self.activity_history.clear()
        self.synapses.reset_traces()
        self.stdp.reset()
        if reset_weights:
            self.synapses.restore_weights()
        self.time = 0.0
        LOG.info("Network reset (weights %s)",
                 "restored" if reset_weights else "kept")

    def summary(self):
        """Return a summary string."""
        levels = ", ".join(f"{k}={v:.2f}" for k, v in self.modulation.levels().items())
        return "\n".join([
            self.topology.summary(),
            f"  input region: {self.input_region}",
            f"  time: {self.time:.1f} ms, pending deliveries: {len(self.queue)}",
            f"  modulators: {levels}",
        ])

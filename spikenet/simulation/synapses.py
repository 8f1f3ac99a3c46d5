"""Synapses and delayed spike delivery.

A SynapseTable packs a static directed multigraph into parallel numpy
arrays indexed by a dense synapse index. Only weights and the two
eligibility traces change after construction.

A DeliveryQueue holds the current pulses that spikes have scheduled but
that have not yet arrived. Amplitudes are already weighted and modulated
when they are queued; the queue only moves current into the postsynaptic
accumulator once the arrival time is reached.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from spikenet.errors import ConfigurationError

W_MAX = 2.0


@dataclass
class Synapse:
    """One synapse, as seen by collaborators."""
    index: int
    pre: int
    post: int
    weight: float
    delay: float
    excitatory: bool
    plasticity: float
    pre_trace: float
    post_trace: float

    @property
    def type(self):
        return "excitatory" if self.excitatory else "inhibitory"


def weight_bounds(weights, w_max=W_MAX):
    """Sign-preserving bounds: [0, w_max] or [-w_max, 0]."""
    weights = np.asarray(weights, dtype=np.float64)
    negative = weights < 0
    w_min = np.where(negative, -w_max, 0.0)
    w_hi = np.where(negative, 0.0, w_max)
    return w_min, w_hi


class SynapseTable:
    """A fixed set of weighted, delayed synapses.

    Parameters
    ----------
    pre, post : array-like of int
        Presynaptic / postsynaptic neuron indices.
    weight : array-like of float
        Initial weights. The sign at construction fixes the bounds.
    delay : array-like of float
        Transmission delays (ms), non-negative.
    excitatory : array-like of bool
        Synapse type, derived from the presynaptic cell class.
    plasticity : array-like of float
        Per-synapse plasticity rate.
    w_max : float
        Largest allowed weight magnitude.
    """

    def __init__(self, pre, post, weight, delay, excitatory, plasticity,
                 w_max=W_MAX):
        self.pre = np.asarray(pre, dtype=np.int64)
        self.post = np.asarray(post, dtype=np.int64)
        self.weight = np.asarray(weight, dtype=np.float64).copy()
        self.delay = np.asarray(delay, dtype=np.float64)
        self.excitatory = np.asarray(excitatory, dtype=bool)
        self.plasticity = np.asarray(plasticity, dtype=np.float64)

        n = len(self.pre)
        for name in ("post", "weight", "delay", "excitatory", "plasticity"):
            if len(getattr(self, name)) != n:
                raise ConfigurationError(
                    f"Synapse field '{name}' has {len(getattr(self, name))} "
                    f"entries, expected {n}")
        if np.any(self.delay < 0) or not np.all(np.isfinite(self.delay)):
            raise ConfigurationError("Synaptic delays must be finite and >= 0")

        self.w_max = w_max
        self.w_min, self.w_hi = weight_bounds(self.weight, w_max)
        self.clamp()
        self.initial_weight = self.weight.copy()
        self.pre_trace = np.zeros(n, dtype=np.float64)
        self.post_trace = np.zeros(n, dtype=np.float64)

    @classmethod
    def empty(cls):
        return cls([], [], [], [], [], [])

    @classmethod
    def concatenate(cls, tables, w_max=W_MAX):
        """Join several tables into one, in order."""
        tables = list(tables)
        if not tables:
            return cls.empty()
        return cls(
            pre=np.concatenate([t.pre for t in tables]),
            post=np.concatenate([t.post for t in tables]),
            weight=np.concatenate([t.weight for t in tables]),
            delay=np.concatenate([t.delay for t in tables]),
            excitatory=np.concatenate([t.excitatory for t in tables]),
            plasticity=np.concatenate([t.plasticity for t in tables]),
            w_max=w_max,
        )

    @property
    def n_synapses(self):
        return len(self.pre)

    def __len__(self):
        return self.n_synapses

    def clamp(self):
        """Force every weight back inside its bounds."""
        np.clip(self.weight, self.w_min, self.w_hi, out=self.weight)

    def outgoing(self, spiked):
        """Indices of synapses whose presynaptic neuron spiked.

        Parameters
        ----------
        spiked : np.ndarray
            Boolean spike mask over neurons.
        """
        if self.n_synapses == 0:
            return np.array([], dtype=np.int64)
        return np.where(spiked[self.pre])[0]

    def between(self, sources, targets):
        """Boolean mask of synapses from any of sources to any of targets."""
        return np.isin(self.pre, list(sources)) & np.isin(self.post, list(targets))

    def reset_traces(self):
        self.pre_trace[:] = 0.0
        self.post_trace[:] = 0.0

    def restore_weights(self):
        """Return weights to their values at construction."""
        self.weight[:] = self.initial_weight

    def synapse(self, k):
        return Synapse(
            index=int(k),
            pre=int(self.pre[k]),
            post=int(self.post[k]),
            weight=float(self.weight[k]),
            delay=float(self.delay[k]),
            excitatory=bool(self.excitatory[k]),
            plasticity=float(self.plasticity[k]),
            pre_trace=float(self.pre_trace[k]),
            post_trace=float(self.post_trace[k]),
        )

    def to_frame(self, labels=None):
        """All synapses as a DataFrame.

        Parameters
        ----------
        labels : np.ndarray, optional
            Neuron labels; adds source / target id columns.
        """
        df = pd.DataFrame({
            "pre": self.pre,
            "post": self.post,
            "weight": self.weight,
            "delay": self.delay,
            "type": np.where(self.excitatory, "excitatory", "inhibitory"),
            "plasticity": self.plasticity,
            "pre_trace": self.pre_trace,
            "post_trace": self.post_trace,
        })
        if labels is not None:
            df.insert(0, "source", labels[self.pre])
            df.insert(1, "target", labels[self.post])
        return df

    def summary(self):
        """Return a summary string."""
        n_exc = int(self.excitatory.sum())
        lines = [
            f"Synapses: {self.n_synapses:,} "
            f"({n_exc:,} excitatory, {self.n_synapses - n_exc:,} inhibitory)",
        ]
        if self.n_synapses > 0:
            lines.append(f"  weight range: [{self.weight.min():.3f}, "
                         f"{self.weight.max():.3f}]")
            lines.append(f"  delay range: [{self.delay.min():.2f}, "
                         f"{self.delay.max():.2f}] ms")
        return "\n".join(lines)


class DeliveryQueue:
    """Pending synaptic current deliveries.

    Items are stored as parallel arrays (target, arrival, amplitude,
    excitatory). Newly enqueued batches are kept as chunks and merged on
    the next delivery.
    """

    def __init__(self):
        self.clear()

    def clear(self):
        self._target = np.array([], dtype=np.int64)
        self._arrival = np.array([], dtype=np.float64)
        self._amplitude = np.array([], dtype=np.float64)
        self._excitatory = np.array([], dtype=bool)
        self._chunks = []

    def enqueue(self, targets, delays, amplitudes, excitatory=True, now=0.0):
        """Schedule deliveries at now + delay.

        Scalars broadcast against the longest array argument.
        """
        targets, delays, amplitudes, excitatory = np.broadcast_arrays(
            np.atleast_1d(np.asarray(targets, dtype=np.int64)),
            np.atleast_1d(np.asarray(delays, dtype=np.float64)),
            np.atleast_1d(np.asarray(amplitudes, dtype=np.float64)),
            np.atleast_1d(np.asarray(excitatory, dtype=bool)),
        )
        if np.any(delays < 0):
            raise ValueError("Delivery delay must be non-negative")
        if len(targets) == 0:
            return
        self._chunks.append((targets.copy(), now + delays,
                             amplitudes.copy(), excitatory.copy()))

    def _merge(self):
        if not self._chunks:
            return
        targets, arrivals, amps, excs = zip(*self._chunks)
        self._target = np.concatenate((self._target,) + targets)
        self._arrival = np.concatenate((self._arrival,) + arrivals)
        self._amplitude = np.concatenate((self._amplitude,) + amps)
        self._excitatory = np.concatenate((self._excitatory,) + excs)
        self._chunks = []

    def deliver_due(self, time, syn_current):
        """Apply every item with arrival <= time to syn_current.

        Excitatory items add their amplitude to the target's accumulator,
        inhibitory items subtract it. Applied items are removed.

        Returns
        -------
        int
            Number of items delivered.
        """
        self._merge()
        if len(self._target) == 0:
            return 0
        due = self._arrival <= time
        n_due = int(due.sum())
        if n_due == 0:
            return 0
        signed = np.where(self._excitatory[due],
                          self._amplitude[due], -self._amplitude[due])
        np.add.at(syn_current, self._target[due], signed)

        keep = ~due
        self._target = self._target[keep]
        self._arrival = self._arrival[keep]
        self._amplitude = self._amplitude[keep]
        self._excitatory = self._excitatory[keep]
        return n_due

    def pending(self, target=None):
        """Pending items as a DataFrame, optionally for one target."""
        self._merge()
        df = pd.DataFrame({
            "target": self._target,
            "arrival": self._arrival,
            "amplitude": self._amplitude,
            "excitatory": self._excitatory,
        })
        if target is not None:
            df = df[df["target"] == target]
        return df

    def __len__(self):
        return len(self._target) + sum(len(c[0]) for c in self._chunks)

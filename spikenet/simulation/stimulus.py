"""Direct current protocols for Network.run_episode(stimulus=...).

Each function returns (stimulus, protocol): an array of shape
(n_neurons, n_steps) holding external current (pA) per step, plus a
StimulusProtocol describing it. Times are relative to the start of the
episode the stimulus is passed to.

Stimulus current bypasses modulation and adds to the rhythm bias.
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class StimulusProtocol:
    """What a stimulus array was built from."""
    name: str
    target_indices: np.ndarray
    params: dict


def _steps(start_ms, end_ms, n_steps, dt):
    start = max(int(round(start_ms / dt)), 0)
    end = min(int(round(end_ms / dt)), n_steps)
    return start, end


def constant_stimulus(n_neurons, n_steps, target_indices, amplitude=200.0):
    """Hold current on targets for the whole episode."""
    target_indices = np.asarray(target_indices, dtype=np.int64)
    stimulus = np.zeros((n_neurons, n_steps), dtype=np.float64)
    stimulus[target_indices] = amplitude
    return stimulus, StimulusProtocol(
        name="constant",
        target_indices=target_indices,
        params={"amplitude": amplitude},
    )


def step_stimulus(n_neurons, n_steps, target_indices, amplitude=200.0,
                  start_ms=10.0, end_ms=80.0, dt=0.1):
    """Step current between start_ms and end_ms.

    Parameters
    ----------
    n_neurons : int
        Total number of neurons.
    n_steps : int
        Episode length in steps.
    target_indices : array-like
        Neurons receiving current.
    amplitude : float
        Current (pA).
    start_ms, end_ms : float
        Step window, relative to episode start (ms).
    dt : float
        Timestep (ms).

    Returns
    -------
    stimulus : np.ndarray
        Shape (n_neurons, n_steps).
    protocol : StimulusProtocol
    """
    if end_ms < start_ms:
        raise ValueError(f"end_ms ({end_ms}) precedes start_ms ({start_ms})")
    target_indices = np.asarray(target_indices, dtype=np.int64)
    stimulus = np.zeros((n_neurons, n_steps), dtype=np.float64)
    start, end = _steps(start_ms, end_ms, n_steps, dt)
    if start < end:
        stimulus[target_indices, start:end] = amplitude
    return stimulus, StimulusProtocol(
        name="step",
        target_indices=target_indices,
        params={"amplitude": amplitude, "start_ms": start_ms,
                "end_ms": end_ms, "dt": dt},
    )


def pulse_stimulus(n_neurons, n_steps, target_indices, amplitude=1000.0,
                   time_ms=10.0, pulse_ms=1.0, dt=0.1):
    """Brief current pulse of pulse_ms starting at time_ms."""
    stimulus, _ = step_stimulus(n_neurons, n_steps, target_indices,
                                amplitude=amplitude, start_ms=time_ms,
                                end_ms=time_ms + pulse_ms, dt=dt)
    protocol = StimulusProtocol(
        name="pulse",
        target_indices=np.asarray(target_indices, dtype=np.int64),
        params={"amplitude": amplitude, "time_ms": time_ms,
                "pulse_ms": pulse_ms, "dt": dt},
    )
    return stimulus, protocol


def combine_stimuli(*stimuli):
    """Element-wise sum of stimulus arrays of the same shape."""
    if not stimuli:
        raise ValueError("combine_stimuli needs at least one array")
    result = stimuli[0].copy()
    for s in stimuli[1:]:
        if s.shape != result.shape:
            raise ValueError(f"Shape mismatch: {s.shape} vs {result.shape}")
        result += s
    return result

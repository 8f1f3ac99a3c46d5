"""Post-episode analysis tools.

Functions over EpisodeResult objects. Spike times are absolute network
time, so time windows are too; population_rate bins relative to the
episode start.
"""

import numpy as np
import pandas as pd


def firing_rates(result, time_window=None):
    """Per-neuron firing rates (Hz).

    Parameters
    ----------
    result : EpisodeResult
        Episode output.
    time_window : tuple of float, optional
        (start_ms, end_ms) to restrict rate computation.
    """
    if time_window is None:
        return result.neuron_rates()
    t0, t1 = time_window
    duration_s = (t1 - t0) / 1000.0
    if duration_s <= 0:
        raise ValueError(f"Empty time window {time_window}")
    return np.array([np.sum((st >= t0) & (st < t1)) / duration_s
                     for st in result.spike_times])


def spike_raster(result, neuron_indices=None, time_window=None):
    """Spike times and neuron indices, for plotting.

    Returns
    -------
    times : np.ndarray
        Spike times (ms).
    neurons : np.ndarray
        Neuron index of each spike.
    """
    if neuron_indices is None:
        neuron_indices = range(result.n_neurons)

    times = []
    neurons = []
    for i in neuron_indices:
        st = result.spike_times[i]
        if time_window is not None:
            t0, t1 = time_window
            st = st[(st >= t0) & (st < t1)]
        times.append(st)
        neurons.append(np.full(len(st), i))

    if times:
        return np.concatenate(times), np.concatenate(neurons)
    return np.array([]), np.array([], dtype=int)


def active_fraction(result, threshold_hz=1.0, time_window=None):
    """Fraction of neurons firing above threshold_hz."""
    rates = firing_rates(result, time_window=time_window)
    return float(np.mean(rates > threshold_hz)) if len(rates) else 0.0


def population_rate(result, bin_ms=10.0):
    """Population-averaged firing rate over time.

    Returns
    -------
    times : np.ndarray
        Bin centers relative to episode start (ms).
    rates : np.ndarray
        Population rate (Hz) per bin.
    """
    n_bins = max(int(result.duration / bin_ms), 1)
    counts = np.zeros(n_bins)

    for st in result.spike_times:
        if len(st) > 0:
            rel = st - result.start_time
            bins = np.clip((rel / bin_ms).astype(int), 0, n_bins - 1)
            np.add.at(counts, bins, 1)

    bin_s = bin_ms / 1000.0
    rates = counts / (result.n_neurons * bin_s)
    times = np.arange(n_bins) * bin_ms + bin_ms / 2
    return times, rates


def region_rates(result):
    """Mean firing rate and active fraction per region.

    Returns
    -------
    pd.DataFrame
        Indexed by region: n_neurons, n_spikes, mean_rate_hz,
        active_fraction.
    """
    rates = firing_rates(result)
    counts = np.array([len(st) for st in result.spike_times])
    df = pd.DataFrame({
        "region": result.regions,
        "n_spikes": counts,
        "rate": rates,
    })
    grouped = df.groupby("region", sort=False)
    return pd.DataFrame({
        "n_neurons": grouped.size(),
        "n_spikes": grouped["n_spikes"].sum(),
        "mean_rate_hz": grouped["rate"].mean(),
        "active_fraction": grouped["rate"].apply(lambda r: float(np.mean(r > 0))),
    })


def activity_summary(activity):
    """Fired fraction and mean potential per sample time.

    Parameters
    ----------
    activity : pd.DataFrame
        Activity records from process_input / run_episode.
    """
    if len(activity) == 0:
        return pd.DataFrame(columns=["timestamp", "fired_fraction", "mean_potential"])
    grouped = activity.groupby("timestamp")
    return pd.DataFrame({
        "fired_fraction": grouped["fired"].mean(),
        "mean_potential": grouped["potential"].mean(),
    }).reset_index()

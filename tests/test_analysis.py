"""Tests for stimulus protocols and post-episode analysis."""

import numpy as np
import pandas as pd
import pytest

from spikenet.simulation.analysis import (
    active_fraction, activity_summary, firing_rates, population_rate,
    region_rates, spike_raster,
)
from spikenet.simulation.network import EpisodeResult
from spikenet.simulation.stimulus import (
    combine_stimuli, constant_stimulus, pulse_stimulus, step_stimulus,
)


@pytest.fixture
def result():
    """Four neurons over a 100 ms episode starting at t = 200 ms."""
    spike_times = [
        np.array([210.0, 250.0, 290.0]),
        np.array([205.0]),
        np.array([]),
        np.array([201.0, 202.0, 203.0, 204.0]),
    ]
    activity = pd.DataFrame({
        "neuron_id": ["a_0", "a_1", "b_0", "b_1"] * 2,
        "region": ["a", "a", "b", "b"] * 2,
        "timestamp": [200.1] * 4 + [201.1] * 4,
        "potential": [-70.0, -60.0, -65.0, -55.0] * 2,
        "fired": [False, True, False, False, True, False, False, False],
    })
    return EpisodeResult(
        spike_times=spike_times,
        activity=activity,
        dt=0.1,
        duration=100.0,
        start_time=200.0,
        n_neurons=4,
        labels=np.array(["a_0", "a_1", "b_0", "b_1"], dtype=object),
        regions=np.array(["a", "a", "b", "b"], dtype=object),
    )


# ---------------------------------------------------------------------------
# Stimulus
# ---------------------------------------------------------------------------

class TestStimulus:

    def test_constant(self):
        stim, protocol = constant_stimulus(5, 20, [1, 3], amplitude=100.0)
        assert stim.shape == (5, 20)
        assert np.all(stim[[1, 3]] == 100.0)
        assert stim[0].sum() == 0.0
        assert protocol.name == "constant"

    def test_step_window(self):
        stim, protocol = step_stimulus(3, 100, [0], amplitude=50.0,
                                       start_ms=2.0, end_ms=5.0, dt=0.1)
        assert np.all(stim[0, 20:50] == 50.0)
        assert stim[0, :20].sum() == 0.0
        assert stim[0, 50:].sum() == 0.0
        assert protocol.params["start_ms"] == 2.0

    def test_step_beyond_episode(self):
        stim, _ = step_stimulus(2, 10, [0], start_ms=5.0, end_ms=10.0, dt=0.1)
        assert stim.sum() == 0.0

    def test_step_reversed(self):
        with pytest.raises(ValueError):
            step_stimulus(2, 10, [0], start_ms=5.0, end_ms=1.0)

    def test_pulse(self):
        stim, protocol = pulse_stimulus(2, 100, [1], amplitude=10.0,
                                        time_ms=1.0, pulse_ms=0.5, dt=0.1)
        assert np.count_nonzero(stim[1]) == 5
        assert protocol.name == "pulse"

    def test_combine(self):
        a, _ = constant_stimulus(2, 5, [0], 1.0)
        b, _ = constant_stimulus(2, 5, [0, 1], 2.0)
        combined = combine_stimuli(a, b)
        assert np.all(combined[0] == 3.0)
        assert np.all(combined[1] == 2.0)
        with pytest.raises(ValueError):
            combine_stimuli(a, np.zeros((3, 5)))


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class TestAnalysis:

    def test_result_properties(self, result):
        assert result.n_spikes == 8
        assert result.end_time == 300.0
        assert result.mean_rate() == pytest.approx(8 / (4 * 0.1))
        spikes = result.spikes()
        assert list(spikes["timestamp"])[:2] == [201.0, 202.0]
        assert spikes["neuron_id"].iloc[0] == "b_1"

    def test_firing_rates(self, result):
        np.testing.assert_allclose(firing_rates(result), [30.0, 10.0, 0.0, 40.0])

    def test_firing_rates_window(self, result):
        rates = firing_rates(result, time_window=(200.0, 210.0))
        np.testing.assert_allclose(rates, [0.0, 100.0, 0.0, 400.0])

    def test_empty_window(self, result):
        with pytest.raises(ValueError):
            firing_rates(result, time_window=(210.0, 210.0))

    def test_spike_raster(self, result):
        times, neurons = spike_raster(result, neuron_indices=[0, 1])
        assert len(times) == 4
        np.testing.assert_array_equal(neurons, [0, 0, 0, 1])

    def test_active_fraction(self, result):
        assert active_fraction(result) == pytest.approx(0.75)
        assert active_fraction(result, threshold_hz=35.0) == pytest.approx(0.25)

    def test_population_rate(self, result):
        times, rates = population_rate(result, bin_ms=10.0)
        assert len(times) == 10
        assert times[0] == 5.0
        # bin 0: 205 from neuron 1 plus four from neuron 3
        assert rates[0] == pytest.approx(5 / (4 * 0.01))

    def test_region_rates(self, result):
        df = region_rates(result)
        assert list(df.index) == ["a", "b"]
        assert df.loc["a", "n_spikes"] == 4
        assert df.loc["b", "mean_rate_hz"] == pytest.approx(20.0)
        assert df.loc["b", "active_fraction"] == pytest.approx(0.5)

    def test_activity_summary(self, result):
        summary = activity_summary(result.activity)
        assert len(summary) == 2
        assert summary["fired_fraction"].iloc[0] == pytest.approx(0.25)
        assert summary["mean_potential"].iloc[0] == pytest.approx(-62.5)

"""Tests for oscillators and neuromodulator state."""

import numpy as np
import pytest

from spikenet.simulation.modulation import (
    ACETYLCHOLINE, BASELINE, DOPAMINE, SEROTONIN, TWO_PI, ModulationState,
    Oscillator,
)


class TestOscillator:

    def test_advance(self):
        osc = Oscillator("theta", 10.0)
        osc.advance(25.0)
        assert osc.phase == pytest.approx(TWO_PI * 0.25)
        assert osc.value == pytest.approx(1.0)

    def test_phase_wrap(self):
        mod = ModulationState()
        rng = np.random.RandomState(0)
        for dt in rng.uniform(0.01, 50.0, 2000):
            mod.advance(dt)
            for osc in mod.oscillators.values():
                assert 0.0 <= osc.phase < TWO_PI

    def test_full_cycle_returns_near_zero(self):
        osc = Oscillator("alpha", 10.0)
        for _ in range(1000):
            osc.advance(0.1)
        assert min(osc.phase, TWO_PI - osc.phase) < 1e-6


class TestLevels:

    def test_baseline(self):
        mod = ModulationState()
        assert mod.levels() == {name: BASELINE for name in mod.levels()}
        assert set(mod.phases()) == {"theta", "alpha", "gamma"}

    def test_set_level_clamps(self):
        mod = ModulationState()
        assert mod.set_level(ACETYLCHOLINE, 3.0) == 1.0
        assert mod.set_level(ACETYLCHOLINE, -3.0) == 0.0

    def test_unknown_modulator(self):
        with pytest.raises(KeyError):
            ModulationState().set_level("histamine", 0.5)

    def test_reward_saturation(self):
        mod = ModulationState()
        for _ in range(5):
            mod.shift(DOPAMINE, 10.0)
            assert mod.dopamine == 1.0

    def test_isolated_instances(self):
        a, b = ModulationState(), ModulationState()
        a.set_level(DOPAMINE, 1.0)
        a.advance(10.0)
        assert b.dopamine == BASELINE
        assert b.theta.phase == 0.0


class TestGain:

    def test_formula(self):
        mod = ModulationState(dopamine=1.0, serotonin=0.0,
                              acetylcholine=1.0, norepinephrine=0.5)
        reward = np.array([True, False, False, True])
        attention = np.array([False, True, False, True])
        inhibitory = np.array([False, False, True, False])
        factor = mod.gain(reward, attention, inhibitory)
        ne = 0.7 + 0.6 * 0.5
        np.testing.assert_allclose(factor, [
            1.5 * ne,
            1.2 * ne,
            0.5 * ne,
            1.5 * 1.2 * ne,
        ])

    def test_baseline_is_unity_for_plain_cells(self):
        mod = ModulationState()
        factor = mod.gain(np.zeros(3, bool), np.zeros(3, bool), np.zeros(3, bool))
        np.testing.assert_allclose(factor, 1.0)


class TestUpdate:

    def test_serotonin_rises_when_busy(self):
        mod = ModulationState()
        mod.update(0.5)
        assert mod.serotonin == pytest.approx(0.51)

    def test_serotonin_falls_when_quiet(self):
        mod = ModulationState()
        mod.update(0.0)
        assert mod.serotonin == pytest.approx(0.49)

    def test_serotonin_holds_inside_band(self):
        mod = ModulationState()
        mod.update(0.2)
        assert mod.serotonin == BASELINE

    def test_decay_and_acetylcholine(self):
        mod = ModulationState()
        mod.advance(12.0)
        mod.update(0.2)
        assert mod.dopamine == pytest.approx(0.495)
        assert mod.norepinephrine == pytest.approx(0.495)
        assert mod.acetylcholine == pytest.approx(0.5 + 0.3 * np.sin(mod.theta.phase))

    def test_reset(self):
        mod = ModulationState()
        mod.advance(3.0)
        mod.set_level(SEROTONIN, 0.9)
        mod.reset()
        assert mod.serotonin == BASELINE
        assert all(p["phase"] == 0.0 for p in mod.phases().values())

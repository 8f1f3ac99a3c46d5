"""Tests for neuron presets, the cell type registry and both dynamics modes.

Covers the AdEx equilibrium and reset law, rheobase behavior, the
Hodgkin-Huxley conductance mode, and the fallback to exponential
dynamics when channel parameters are missing.
"""

import numpy as np
import pytest

from spikenet.errors import ConfigurationError, InputError
from spikenet.models import (
    CELL_TYPES, INTERNEURON, PRESETS, PYRAMIDAL, CellTypeDB, get_preset,
)
from spikenet.simulation.dynamics import (
    CONDUCTANCE, EXPONENTIAL, Population, gate_steady_state, single_neuron,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def rs():
    return get_preset("regular_spiking")


@pytest.fixture
def hh():
    return get_preset("hodgkin_huxley")


def run_constant(pop, current, duration_ms, dt=0.1):
    """Integrate at constant current, return spike count per neuron."""
    counts = np.zeros(pop.n_neurons, dtype=int)
    for step in range(int(round(duration_ms / dt))):
        counts += pop.integrate(dt, current, (step + 1) * dt)
    return counts


# ---------------------------------------------------------------------------
# Presets and registry
# ---------------------------------------------------------------------------

class TestPresets:

    def test_all_presets_present(self):
        for name in ("regular_spiking", "fast_spiking", "bursting",
                     "adapting", "hodgkin_huxley"):
            assert name in PRESETS

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError, match="Unknown neuron preset"):
            get_preset("chattering")

    def test_regular_spiking_values(self, rs):
        assert rs.c == 200.0
        assert rs.v_reset == -58.0
        assert rs.b == 5.0
        assert rs.tau_m == pytest.approx(20.0)

    def test_rheobase(self, rs):
        assert 170.0 < rs.rheobase < 190.0

    def test_channels(self, rs, hh):
        assert hh.has_channels
        assert not rs.has_channels
        assert rs.with_channels().has_channels
        assert hh.v_start == -65.0
        assert rs.v_start == rs.e_l

    def test_to_dict(self, rs):
        d = rs.to_dict()
        assert d["name"] == "regular_spiking"
        assert d["c_pF"] == 200.0
        assert d["has_channels"] is False


class TestCellTypes:

    def test_default_registry(self):
        assert len(CELL_TYPES) == 4
        assert CELL_TYPES.resolve(PYRAMIDAL).name == "regular_spiking"
        assert CELL_TYPES.resolve(INTERNEURON).name == "fast_spiking"
        assert CELL_TYPES.is_inhibitory(INTERNEURON)
        assert not CELL_TYPES.is_inhibitory(PYRAMIDAL)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            CELL_TYPES.resolve("purkinje")

    def test_register(self):
        db = CellTypeDB()
        db.register("chandelier", "fast_spiking", inhibitory=True)
        assert "chandelier" in db
        assert db.list_types() == ["chandelier"]
        assert db.is_inhibitory("chandelier")


# ---------------------------------------------------------------------------
# Exponential mode
# ---------------------------------------------------------------------------

class TestExponential:

    def test_equilibrium(self, rs):
        """No current, starting at E_L: V stays at E_L."""
        pop = single_neuron(rs)
        counts = run_constant(pop, 0.0, 200.0)
        assert counts[0] == 0
        assert pop.v[0] == pytest.approx(rs.e_l, abs=1e-3)
        assert abs(pop.w[0]) < 1e-3

    def test_reset_law(self, rs):
        """On the spiking step V = V_reset exactly and w gains exactly b."""
        pop = single_neuron(rs)
        dt = 0.1
        for step in range(5000):
            w_before = pop.w[0]
            spiked = pop.integrate(dt, 1000.0, (step + 1) * dt)
            if spiked[0]:
                assert pop.v[0] == rs.v_reset
                assert pop.w[0] == w_before + rs.b
                assert pop.last_spike[0] == pytest.approx((step + 1) * dt)
                assert pop.trace[0] == 1.0
                break
        else:
            pytest.fail("neuron never spiked")

    def test_v_never_exceeds_peak(self, rs):
        pop = single_neuron(rs)
        for step in range(2000):
            pop.integrate(0.1, 2000.0, step * 0.1)
            assert pop.v[0] <= rs.v_peak

    def test_twice_rheobase_spikes(self, rs):
        pop = single_neuron(rs)
        counts = run_constant(pop, 2.0 * rs.rheobase, 100.0)
        assert counts[0] >= 1

    def test_zero_current_silent(self, rs):
        pop = single_neuron(rs)
        assert run_constant(pop, 0.0, 100.0)[0] == 0

    def test_synaptic_current_decays(self, rs):
        pop = single_neuron(rs)
        pop.syn_current[0] = 100.0
        pop.integrate(0.1, 0.0, 0.1)
        assert pop.syn_current[0] == pytest.approx(100.0 * np.exp(-0.1 / 5.0))

    def test_more_current_more_spikes(self, rs):
        pop = Population([rs, rs])
        counts = run_constant(pop, np.array([400.0, 800.0]), 200.0)
        assert counts[1] > counts[0] > 0


# ---------------------------------------------------------------------------
# Conductance mode
# ---------------------------------------------------------------------------

class TestConductance:

    def test_gates_start_at_steady_state(self, hh):
        pop = single_neuron(hh, mode=CONDUCTANCE)
        n_inf, m_inf, h_inf = gate_steady_state(-65.0)
        assert pop.n[0] == pytest.approx(n_inf)
        assert pop.m[0] == pytest.approx(m_inf)
        assert pop.h[0] == pytest.approx(h_inf)

    def test_rest(self, hh):
        pop = single_neuron(hh, mode=CONDUCTANCE)
        counts = run_constant(pop, 0.0, 20.0, dt=0.01)
        assert counts[0] == 0
        assert pop.v[0] == pytest.approx(-65.0, abs=0.5)

    def test_spikes_under_drive(self, hh):
        pop = single_neuron(hh, mode=CONDUCTANCE)
        counts = run_constant(pop, 10.0, 50.0, dt=0.01)
        assert counts[0] >= 2

    def test_no_reset(self, hh):
        """V overshoots the detection level on its own and is not reset."""
        pop = single_neuron(hh, mode=CONDUCTANCE)
        peak = -np.inf
        for step in range(2000):
            pop.integrate(0.01, 10.0, step * 0.01)
            peak = max(peak, pop.v[0])
        assert peak > 0.0

    def test_fallback_without_channels(self, rs):
        pop = single_neuron(rs, mode=CONDUCTANCE)
        assert pop.modes[0] == EXPONENTIAL
        assert pop.mode_counts() == {EXPONENTIAL: 1, CONDUCTANCE: 0}


# ---------------------------------------------------------------------------
# Population
# ---------------------------------------------------------------------------

class TestPopulation:

    def test_rejects_non_finite_current(self, rs):
        pop = single_neuron(rs)
        v_before = pop.v.copy()
        with pytest.raises(InputError):
            pop.integrate(0.1, np.nan, 0.1)
        np.testing.assert_array_equal(pop.v, v_before)

    def test_rejects_bad_dt(self, rs):
        pop = single_neuron(rs)
        with pytest.raises(InputError):
            pop.integrate(0.0)

    def test_unknown_mode(self, rs):
        with pytest.raises(ConfigurationError):
            Population([rs], modes=["izhikevich"])

    def test_mixed_modes(self, rs, hh):
        pop = Population([rs, hh], modes=[EXPONENTIAL, CONDUCTANCE])
        assert list(pop.modes) == [EXPONENTIAL, CONDUCTANCE]
        spiked = pop.integrate(0.01, 0.0, 0.01)
        assert spiked.shape == (2,)

    def test_reset(self, rs):
        pop = single_neuron(rs)
        run_constant(pop, 1000.0, 50.0)
        pop.reset()
        assert pop.v[0] == rs.e_l
        assert pop.w[0] == 0.0
        assert pop.last_spike[0] == -np.inf

    def test_state_and_frame(self, rs):
        pop = Population([rs, rs], labels=["a", "b"], cell_types=["pyramidal"] * 2)
        state = pop.state(1)
        assert state.label == "b"
        assert state.mode == EXPONENTIAL
        df = pop.to_frame()
        assert len(df) == 2
        assert list(df["neuron_id"]) == ["a", "b"]
        assert "spike_trace" in df.columns

"""Tests for synapse tables and delayed delivery."""

import numpy as np
import pytest

from spikenet.errors import ConfigurationError
from spikenet.simulation.synapses import (
    W_MAX, DeliveryQueue, SynapseTable, weight_bounds,
)


@pytest.fixture
def table():
    """0 -> 1 excitatory, 1 -> 2 inhibitory, 0 -> 2 excitatory."""
    return SynapseTable(
        pre=[0, 1, 0],
        post=[1, 2, 2],
        weight=[0.5, -0.8, 1.0],
        delay=[1.0, 2.0, 0.5],
        excitatory=[True, False, True],
        plasticity=[0.01, 0.01, 0.02],
    )


# ---------------------------------------------------------------------------
# SynapseTable
# ---------------------------------------------------------------------------

class TestSynapseTable:

    def test_construction(self, table):
        assert len(table) == 3
        assert table.n_synapses == 3
        np.testing.assert_array_equal(table.initial_weight, table.weight)
        assert np.all(table.pre_trace == 0)

    def test_sign_preserving_bounds(self):
        w_min, w_hi = weight_bounds([0.5, -0.5, 0.0])
        np.testing.assert_array_equal(w_min, [0.0, -W_MAX, 0.0])
        np.testing.assert_array_equal(w_hi, [W_MAX, 0.0, W_MAX])

    def test_clamp(self, table):
        table.weight[:] = [5.0, 1.0, -1.0]
        table.clamp()
        np.testing.assert_array_equal(table.weight, [W_MAX, 0.0, 0.0])

    def test_clamp_at_construction(self):
        t = SynapseTable([0], [1], [3.5], [1.0], [True], [0.01])
        assert t.weight[0] == W_MAX

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError, match="delay"):
            SynapseTable([0, 1], [1, 0], [0.1, 0.2], [1.0], [True, True],
                         [0.01, 0.01])

    def test_negative_delay(self):
        with pytest.raises(ConfigurationError):
            SynapseTable([0], [1], [0.1], [-1.0], [True], [0.01])

    def test_outgoing(self, table):
        spiked = np.array([True, False, False])
        np.testing.assert_array_equal(table.outgoing(spiked), [0, 2])

    def test_between(self, table):
        assert table.between([0], [1, 2]).sum() == 2
        assert table.between([1], [2]).sum() == 1

    def test_restore_weights(self, table):
        table.weight[:] = 0.0
        table.restore_weights()
        np.testing.assert_array_equal(table.weight, [0.5, -0.8, 1.0])

    def test_concatenate(self, table):
        joined = SynapseTable.concatenate([table, SynapseTable.empty(), table])
        assert len(joined) == 6
        np.testing.assert_array_equal(joined.pre[3:], table.pre)

    def test_synapse_view(self, table):
        syn = table.synapse(1)
        assert syn.pre == 1 and syn.post == 2
        assert syn.type == "inhibitory"

    def test_to_frame(self, table):
        labels = np.array(["a", "b", "c"], dtype=object)
        df = table.to_frame(labels=labels)
        assert list(df["source"]) == ["a", "b", "a"]
        assert list(df["type"]) == ["excitatory", "inhibitory", "excitatory"]

    def test_summary(self, table):
        assert "2 excitatory" in table.summary()


# ---------------------------------------------------------------------------
# DeliveryQueue
# ---------------------------------------------------------------------------

class TestDeliveryQueue:

    def test_delivers_when_due(self):
        q = DeliveryQueue()
        current = np.zeros(3)
        q.enqueue([1, 2], [0.0, 2.0], [10.0, 5.0], True, now=1.0)
        assert len(q) == 2

        assert q.deliver_due(1.0, current) == 1
        np.testing.assert_array_equal(current, [0.0, 10.0, 0.0])
        assert len(q) == 1

        assert q.deliver_due(2.9, current) == 0
        assert q.deliver_due(3.0, current) == 1
        np.testing.assert_array_equal(current, [0.0, 10.0, 5.0])
        assert len(q) == 0

    def test_inhibitory_subtracts(self):
        q = DeliveryQueue()
        current = np.zeros(2)
        q.enqueue(1, 0.0, 4.0, excitatory=False)
        q.deliver_due(0.0, current)
        assert current[1] == -4.0

    def test_repeated_target_accumulates(self):
        q = DeliveryQueue()
        current = np.zeros(1)
        q.enqueue([0, 0, 0], 0.0, [1.0, 2.0, 3.0])
        q.deliver_due(0.0, current)
        assert current[0] == 6.0

    def test_negative_delay(self):
        with pytest.raises(ValueError):
            DeliveryQueue().enqueue([0], [-0.5], [1.0])

    def test_pending_and_clear(self):
        q = DeliveryQueue()
        q.enqueue([0, 1], [1.0, 1.0], [1.0, 2.0])
        assert len(q.pending(target=1)) == 1
        q.clear()
        assert len(q) == 0
        assert q.deliver_due(100.0, np.zeros(2)) == 0

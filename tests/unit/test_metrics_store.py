"""Tests for step_feedback.learning.metrics_store."""

import pytest

from step_feedback.engine.state_manager import METRICS
from step_feedback.exceptions import StorageError
from step_feedback.learning.metrics_store import MetricsStore


class TestRecord:
    """Tests for MetricsStore.record."""

    def test_starts_empty(self, state_manager):
        assert MetricsStore(state_manager).all() == []

    def test_appends_across_calls(self, state_manager, make_metric):
        store = MetricsStore(state_manager)

        store.record([make_metric(step_id="a")])
        store.record([make_metric(step_id="b"), make_metric(step_id="c")])

        assert [m.step_id for m in store.all()] == ["a", "b", "c"]

    def test_round_trips_fields(self, state_manager, make_metric):
        store = MetricsStore(state_manager)
        metric = make_metric(step_type="branch", success=False, error_type="branch_conflict", layer="domain")

        store.record([metric])

        assert store.all() == [metric]

    def test_never_exceeds_capacity(self, state_manager, make_metric):
        store = MetricsStore(state_manager, capacity=1000)

        for batch in range(3):
            store.record([make_metric(step_id=f"{batch}-{i}") for i in range(450)])
            assert len(store.all()) <= 1000

        assert len(store.all()) == 1000

    def test_evicts_oldest_first(self, state_manager, make_metric):
        store = MetricsStore(state_manager, capacity=5)

        store.record([make_metric(step_id=str(i)) for i in range(4)])
        evicted = store.record([make_metric(step_id=str(i)) for i in range(4, 8)])

        assert evicted == 3
        assert [m.step_id for m in store.all()] == ["3", "4", "5", "6", "7"]

    def test_single_oversized_batch_keeps_its_tail(self, state_manager, make_metric):
        store = MetricsStore(state_manager, capacity=3)

        store.record([make_metric(step_id=str(i)) for i in range(10)])

        assert [m.step_id for m in store.all()] == ["7", "8", "9"]

    def test_rejects_non_positive_capacity(self, state_manager):
        with pytest.raises(ValueError):
            MetricsStore(state_manager, capacity=0)


class TestStorageFailures:
    """Storage problems surface as StorageError."""

    def test_non_list_document(self, state_manager, make_metric):
        state_manager.write(METRICS, {"oops": True})

        with pytest.raises(StorageError):
            MetricsStore(state_manager).record([make_metric()])

    def test_invalid_record(self, state_manager):
        state_manager.write(METRICS, [{"step_id": "x"}])

        with pytest.raises(StorageError):
            MetricsStore(state_manager).all()

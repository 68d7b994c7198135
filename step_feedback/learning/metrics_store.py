"""
Append-only, capacity-bounded log of execution metrics.

Retention is FIFO: once the cap is exceeded the oldest records are dropped,
regardless of how often their step types occur.
"""

from collections.abc import Iterable

import structlog

from step_feedback.engine.state_manager import METRICS, StateManager
from step_feedback.exceptions import StorageError
from step_feedback.models.domain import ExecutionMetric

log = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 1000


class MetricsStore:
    """Persisted metric log backed by the ``metrics.json`` resource."""

    def __init__(self, state: StateManager, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.state = state
        self.capacity = capacity

    def _load_raw(self) -> list[dict]:
        raw = self.state.read(METRICS, [])
        if not isinstance(raw, list):
            path = self.state.path_for(METRICS)
            raise StorageError(f"Metrics store is not a list: {path}", path=str(path))
        return raw

    def all(self) -> list[ExecutionMetric]:
        """Return every retained metric, oldest first."""
        raw = self._load_raw()
        try:
            return [ExecutionMetric.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            path = self.state.path_for(METRICS)
            raise StorageError(f"Invalid metric record in {path}: {e}", path=str(path)) from e

    def record(self, metrics: Iterable[ExecutionMetric]) -> int:
        """Append metrics and truncate to the most recent ``capacity`` entries.

        Returns:
            Number of evicted records
        """
        existing = self._load_raw()
        new_records = [metric.to_dict() for metric in metrics]
        existing.extend(new_records)

        evicted = max(len(existing) - self.capacity, 0)
        if evicted:
            existing = existing[evicted:]

        self.state.write(METRICS, existing)

        log.info("metrics_recorded", count=len(new_records), retained=len(existing), evicted=evicted)
        return evicted

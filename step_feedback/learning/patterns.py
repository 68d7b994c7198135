"""
Pattern tracking: running success statistics per (step type, outcome class).

Each metric is folded into the pattern keyed ``<step_type>_<outcome>`` (or
``<layer>_<step_type>_<outcome>`` when a layer context is present). The
success rate is a cumulative running average advanced one outcome at a
time; it is never rebuilt from the metric log, which may already have
evicted the records it was computed from.

Chronic failure keys (more than 3 occurrences with a success rate below
0.5) receive a canned fix suggestion. Suggestions are sticky: a recovering
rate does not clear them.
"""

from collections.abc import Iterable
from datetime import datetime

import structlog

from step_feedback.engine.state_manager import PATTERNS, StateManager
from step_feedback.enums import SUCCESS_OUTCOME, ErrorType, Layer
from step_feedback.exceptions import StorageError
from step_feedback.models.domain import ExecutionMetric, LearningPattern, utcnow

log = structlog.get_logger(__name__)

FIX_SUGGESTIONS: dict[str, str] = {
    ErrorType.LINT.value: "Add automatic lint fix step before validation",
    ErrorType.TEST.value: "Review test expectations and mock data",
    ErrorType.TYPESCRIPT.value: "Add type definitions or fix type mismatches",
    ErrorType.BRANCH_CONFLICT.value: "Add branch existence check before creation",
    ErrorType.PR_CREATION.value: "Ensure all changes are committed and pushed",
    ErrorType.PERMISSION.value: "Add git credential configuration step",
    ErrorType.MISSING_DEPENDENCY.value: "Add dependency installation step",
    ErrorType.GIT_OPERATION.value: "Add git status check and recovery steps",
    ErrorType.ARCHITECTURE_VIOLATION.value: "Review layer responsibilities and dependencies",
    ErrorType.CLEAN_ARCHITECTURE.value: "Follow clean architecture principles",
}

DEFAULT_FIX_SUGGESTION = "Review and debug the failing step"

LAYER_FIX_CONTEXT: dict[str, str] = {
    Layer.DOMAIN.value: " Ensure no external dependencies in domain layer.",
    Layer.DATA.value: " Implement domain interfaces and use repository pattern.",
    Layer.INFRA.value: " Add proper error handling and external service integration.",
    Layer.PRESENTATION.value: " Keep presentation logic separate from business logic.",
    Layer.MAIN.value: " Use dependency injection and factory patterns.",
}


def pattern_key(step_type: str, outcome: str, layer: str | None = None) -> str:
    """Build the pattern key for a step type and outcome class."""
    key = f"{step_type}_{outcome}"
    return f"{layer}_{key}" if layer else key


def suggest_fix(error_type: str, layer: str | None = None) -> str:
    """Look up the canned fix for an error type, with layer advice appended."""
    suggestion = FIX_SUGGESTIONS.get(error_type, DEFAULT_FIX_SUGGESTION)
    if layer:
        suggestion += LAYER_FIX_CONTEXT.get(layer, "")
    return suggestion


class PatternTracker:
    """Maintains the persisted key -> LearningPattern mapping.

    The whole mapping is loaded into memory once per tracker (the number of
    distinct keys is bounded by step types times error types) and written
    back wholesale.
    """

    def __init__(
        self,
        state: StateManager,
        fix_min_occurrences: int = 3,
        fix_max_success_rate: float = 0.5,
    ):
        self.state = state
        self.fix_min_occurrences = fix_min_occurrences
        self.fix_max_success_rate = fix_max_success_rate
        self._patterns: dict[str, LearningPattern] | None = None

    def load(self) -> dict[str, LearningPattern]:
        """Return the in-memory pattern mapping, loading it on first use."""
        if self._patterns is None:
            self._patterns = self._read()
        return self._patterns

    def _read(self) -> dict[str, LearningPattern]:
        raw = self.state.read(PATTERNS, {})
        path = self.state.path_for(PATTERNS)
        if not isinstance(raw, dict):
            raise StorageError(f"Pattern store is not a mapping: {path}", path=str(path))
        try:
            return {key: LearningPattern.from_dict(value) for key, value in raw.items()}
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Invalid pattern record in {path}: {e}", path=str(path)) from e

    def save(self) -> None:
        """Write the mapping back as a whole."""
        patterns = self.load()
        self.state.write(PATTERNS, {key: pattern.to_dict() for key, pattern in patterns.items()})

    def get(self, key: str) -> LearningPattern | None:
        return self.load().get(key)

    def update(self, metrics: Iterable[ExecutionMetric], now: datetime | None = None) -> list[str]:
        """Fold metrics into their patterns and persist the result.

        Returns:
            Keys touched by this update, in first-touch order
        """
        patterns = self.load()
        now = now or utcnow()
        touched: list[str] = []

        for metric in metrics:
            outcome = metric.outcome_class
            key = pattern_key(metric.step_type, outcome, metric.layer)
            pattern = patterns.get(key)
            if pattern is None:
                pattern = LearningPattern(
                    pattern=key,
                    step_type=metric.step_type,
                    outcome=outcome,
                    layer=metric.layer,
                    target=metric.target,
                )
                patterns[key] = pattern
            elif pattern.target is None:
                pattern.target = metric.target

            pattern.fold(metric.success, seen_at=now)

            if (
                pattern.suggested_fix is None
                and outcome != SUCCESS_OUTCOME
                and pattern.occurrences > self.fix_min_occurrences
                and pattern.success_rate < self.fix_max_success_rate
            ):
                pattern.suggested_fix = suggest_fix(outcome, pattern.layer)
                log.info("fix_suggested", pattern=key, suggestion=pattern.suggested_fix)

            if key not in touched:
                touched.append(key)

        self.save()
        log.info("patterns_updated", touched=len(touched), total=len(patterns))
        return touched

    def failure_patterns(self, step_type: str, layer: str | None = None) -> list[LearningPattern]:
        """Failure patterns recorded for a step type, most frequent first."""
        matches = [
            pattern
            for pattern in self.load().values()
            if pattern.step_type == step_type and pattern.outcome != SUCCESS_OUTCOME and pattern.layer == layer
        ]
        return sorted(matches, key=lambda p: p.occurrences, reverse=True)

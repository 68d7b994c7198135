"""
Improvement advisor: turns chronic failure patterns into template improvements.

Every analysis pass refreshes the patterns, then proposes one improvement
per pattern with more than 5 occurrences and a success rate below 0.3.
Improvements whose confidence exceeds 0.8 are auto-applied once per
pattern. Applying means bookkeeping only: the pattern is flagged and an
audit record is appended; rewriting the template belongs to the templating
collaborator.

The improvements snapshot is overwritten on every pass. The audit log of
applied improvements is append-only.
"""

from collections.abc import Iterable
from datetime import datetime

import structlog

from step_feedback.engine.state_manager import APPLIED_IMPROVEMENTS, IMPROVEMENTS, StateManager
from step_feedback.enums import Target
from step_feedback.exceptions import StorageError
from step_feedback.learning.patterns import FIX_SUGGESTIONS, PatternTracker
from step_feedback.models.domain import (
    AppliedImprovementRecord,
    ExecutionMetric,
    LearningPattern,
    TemplateImprovement,
    utcnow,
)

log = structlog.get_logger(__name__)

FALLBACK_SOLUTION = "Needs investigation"
DEFAULT_TEMPLATE = "templates/DOMAIN_TEMPLATE.yaml"
TEMPLATE_SECTIONS = frozenset({"create_file", "refactor_file", "branch", "pull_request"})


def infer_template_path(pattern: LearningPattern) -> str:
    """Guess which template (and section) produced the steps behind a pattern."""
    if pattern.layer:
        target = pattern.target or Target.BACKEND.value
        base = f"templates/{target}-{pattern.layer}-template.yaml"
    else:
        base = DEFAULT_TEMPLATE

    if pattern.step_type in TEMPLATE_SECTIONS:
        return f"{base}#{pattern.step_type}"
    return base


def confidence_for(occurrences: int) -> float:
    """Occurrence-based confidence, capped at 1."""
    return min(occurrences / 10, 1.0)


class ImprovementAdvisor:
    """Derives TemplateImprovements from pattern state and auto-applies confident ones."""

    def __init__(
        self,
        state: StateManager,
        tracker: PatternTracker,
        min_occurrences: int = 5,
        max_success_rate: float = 0.3,
        auto_apply_confidence: float = 0.8,
        auto_apply_enabled: bool = True,
    ):
        self.state = state
        self.tracker = tracker
        self.min_occurrences = min_occurrences
        self.max_success_rate = max_success_rate
        self.auto_apply_confidence = auto_apply_confidence
        self.auto_apply_enabled = auto_apply_enabled

    def qualifies(self, pattern: LearningPattern) -> bool:
        return pattern.occurrences > self.min_occurrences and pattern.success_rate < self.max_success_rate

    def solution_for(self, pattern: LearningPattern) -> str:
        if pattern.suggested_fix:
            return pattern.suggested_fix
        return FIX_SUGGESTIONS.get(pattern.outcome, FALLBACK_SOLUTION)

    def generate(
        self,
        metrics: Iterable[ExecutionMetric] = (),
        now: datetime | None = None,
    ) -> list[TemplateImprovement]:
        """Refresh patterns from ``metrics`` and rebuild the improvements snapshot.

        New audit records are committed before the pattern flags. A pattern
        already named in the audit log is never applied again; its flag is
        restored from the log instead.

        Args:
            metrics: Newly recorded metrics to fold in first (may be empty)
            now: Timestamp for applied improvements (defaults to current time)

        Returns:
            All current improvements, pending and applied
        """
        now = now or utcnow()
        self.tracker.update(metrics, now=now)
        audited = {record.improvement.problem_pattern: record for record in self.applied_records()}

        improvements: list[TemplateImprovement] = []
        to_apply: list[tuple[TemplateImprovement, LearningPattern]] = []
        restored = 0

        for key, pattern in sorted(self.tracker.load().items()):
            if not self.qualifies(pattern):
                continue

            if not pattern.auto_fix_applied and key in audited:
                record = audited[key]
                pattern.auto_fix_applied = True
                pattern.auto_fix_applied_at = record.improvement.applied_at or record.timestamp
                restored += 1
                log.warning("applied_flag_restored", pattern=key)

            improvement = TemplateImprovement(
                template_path=infer_template_path(pattern),
                problem_pattern=key,
                solution=self.solution_for(pattern),
                confidence=confidence_for(pattern.occurrences),
                applied_at=pattern.auto_fix_applied_at,
                layer=pattern.layer,
            )

            if (
                self.auto_apply_enabled
                and improvement.confidence > self.auto_apply_confidence
                and not pattern.auto_fix_applied
            ):
                to_apply.append((improvement, pattern))

            improvements.append(improvement)

        if to_apply:
            self._apply(to_apply, now)
        if to_apply or restored:
            self.tracker.save()

        self.state.write(IMPROVEMENTS, [improvement.to_dict() for improvement in improvements])

        log.info(
            "improvements_generated",
            total=len(improvements),
            pending=sum(1 for i in improvements if not i.is_applied),
            newly_applied=len(to_apply),
        )
        return improvements

    def _apply(self, batch: list[tuple[TemplateImprovement, LearningPattern]], now: datetime) -> None:
        """Append one audit record per improvement, then flag the patterns in memory."""
        records = []
        for improvement, _ in batch:
            log.info(
                "auto_applying_improvement",
                pattern=improvement.problem_pattern,
                solution=improvement.solution,
                confidence=round(improvement.confidence, 3),
                layer=improvement.layer,
            )
            improvement.applied_at = now
            records.append(AppliedImprovementRecord(improvement=improvement, timestamp=now).to_dict())

        with self.state.transaction(APPLIED_IMPROVEMENTS, []) as log_records:
            log_records.extend(records)

        for _, pattern in batch:
            pattern.auto_fix_applied = True
            pattern.auto_fix_applied_at = now

    def load_improvements(self) -> list[TemplateImprovement]:
        """Read the current improvements snapshot."""
        raw = self.state.read(IMPROVEMENTS, [])
        path = self.state.path_for(IMPROVEMENTS)
        if not isinstance(raw, list):
            raise StorageError(f"Improvements snapshot is not a list: {path}", path=str(path))
        try:
            return [TemplateImprovement.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Invalid improvement record in {path}: {e}", path=str(path)) from e

    def pending(self) -> list[TemplateImprovement]:
        return [i for i in self.load_improvements() if not i.is_applied]

    def applied_records(self) -> list[AppliedImprovementRecord]:
        """Read the append-only audit log."""
        raw = self.state.read(APPLIED_IMPROVEMENTS, [])
        path = self.state.path_for(APPLIED_IMPROVEMENTS)
        if not isinstance(raw, list):
            raise StorageError(f"Applied-improvements log is not a list: {path}", path=str(path))
        try:
            return [AppliedImprovementRecord.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Invalid audit record in {path}: {e}", path=str(path)) from e

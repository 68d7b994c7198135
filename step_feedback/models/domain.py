"""
Domain models for the step-feedback engine.

This module contains the records that flow through the feedback pipeline:
transient step outcomes handed over by the execution collaborator, the
persisted execution metrics derived from them, the per-key learning
patterns, and the template improvements derived from those patterns.

Persisted records serialize to plain JSON-compatible dictionaries through
``to_dict`` and are rebuilt with ``from_dict``. Timestamps are stored as
ISO-8601 strings in UTC.

Example:
    Folding an outcome into a pattern::

        pattern = LearningPattern(pattern="branch_success", step_type="branch",
                                  outcome="success")
        pattern.fold(success=True)
        assert pattern.success_rate == 1.0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from step_feedback.enums import SUCCESS_OUTCOME, ErrorType, Layer, Target


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class LayerInfo:
    """Architecture context of a generation run.

    When present, pattern keys are namespaced by layer and suggestions carry
    layer-specific advice.
    """

    layer: Layer
    target: Target = Target.BACKEND


@dataclass(frozen=True)
class StepOutcome:
    """Outcome of one executed step, as produced by the execution collaborator.

    Transient: it is converted into an ExecutionMetric immediately and never
    stored as-is.
    """

    step_id: str
    """Step identifier, unique within one run."""

    step_type: str
    """Category label such as "create_file", "branch" or "pull_request"."""

    success: bool
    """Whether the step succeeded."""

    duration_ms: int = 0
    """Execution time in milliseconds (0 when the log carried no marker)."""

    diagnostic: str | None = None
    """Raw diagnostic text; only present on failure."""

    template: str | None = None
    """Template content the step was generated from, if any."""


@dataclass
class ExecutionMetric:
    """Stored form of a StepOutcome.

    Append-only. The metrics store keeps the most recent records and evicts
    the oldest ones first.
    """

    step_id: str
    step_type: str
    success: bool
    duration_ms: int
    timestamp: datetime
    error_type: str | None = None
    """Taxonomy label for failed steps (``unknown`` if nothing matched)."""

    error_message: str | None = None
    """Truncated diagnostic excerpt for failed steps."""

    code_pattern: str | None = None
    """Fingerprint of the step's template content, or ``no_template``."""

    layer: str | None = None
    target: str | None = None

    @property
    def outcome_class(self) -> str:
        """The pattern outcome class: ``success`` or the error-type label."""
        if self.success:
            return SUCCESS_OUTCOME
        return self.error_type or ErrorType.UNKNOWN.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_type": self.step_type,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "timestamp": _format_dt(self.timestamp),
            "error_type": self.error_type,
            "error_message": self.error_message,
            "code_pattern": self.code_pattern,
            "layer": self.layer,
            "target": self.target,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionMetric:
        return cls(
            step_id=data["step_id"],
            step_type=data["step_type"],
            success=bool(data["success"]),
            duration_ms=int(data.get("duration_ms", 0)),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            error_type=data.get("error_type"),
            error_message=data.get("error_message"),
            code_pattern=data.get("code_pattern"),
            layer=data.get("layer"),
            target=data.get("target"),
        )


@dataclass
class LearningPattern:
    """Running statistics for one (step type, outcome class) key.

    The success rate is a cumulative running average. It is only ever
    advanced by ``fold`` and never recomputed from raw metrics, so evicting
    old metrics does not disturb it.
    """

    pattern: str
    """The key: ``[<layer>_]<step_type>_<outcome>``."""

    step_type: str
    outcome: str
    """``success`` or an error-type label."""

    success_rate: float = 0.0
    occurrences: int = 0
    last_seen: datetime | None = None
    suggested_fix: str | None = None
    """Sticky once set; only an applied improvement supersedes it."""

    auto_fix_applied: bool = False
    auto_fix_applied_at: datetime | None = None
    layer: str | None = None
    target: str | None = None
    """Build target of the runs that produced the pattern (first one seen)."""

    def fold(self, success: bool, seen_at: datetime | None = None) -> None:
        """Fold one outcome into the running average."""
        self.occurrences += 1
        hit = 1.0 if success else 0.0
        self.success_rate = (self.success_rate * (self.occurrences - 1) + hit) / self.occurrences
        self.last_seen = seen_at or utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "step_type": self.step_type,
            "outcome": self.outcome,
            "success_rate": self.success_rate,
            "occurrences": self.occurrences,
            "last_seen": _format_dt(self.last_seen),
            "suggested_fix": self.suggested_fix,
            "auto_fix_applied": self.auto_fix_applied,
            "auto_fix_applied_at": _format_dt(self.auto_fix_applied_at),
            "layer": self.layer,
            "target": self.target,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningPattern:
        return cls(
            pattern=data["pattern"],
            step_type=data["step_type"],
            outcome=data["outcome"],
            success_rate=float(data["success_rate"]),
            occurrences=int(data["occurrences"]),
            last_seen=_parse_dt(data.get("last_seen")),
            suggested_fix=data.get("suggested_fix"),
            auto_fix_applied=bool(data.get("auto_fix_applied", False)),
            auto_fix_applied_at=_parse_dt(data.get("auto_fix_applied_at")),
            layer=data.get("layer"),
            target=data.get("target"),
        )


@dataclass
class TemplateImprovement:
    """A suggested change to a generation template.

    Derived from pattern state on every analysis pass. ``applied_at`` is set
    once the improvement has been auto-applied; applied improvements are
    excluded from pending listings.
    """

    template_path: str
    problem_pattern: str
    solution: str
    confidence: float
    applied_at: datetime | None = None
    layer: str | None = None

    @property
    def is_applied(self) -> bool:
        return self.applied_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_path": self.template_path,
            "problem_pattern": self.problem_pattern,
            "solution": self.solution,
            "confidence": self.confidence,
            "applied_at": _format_dt(self.applied_at),
            "layer": self.layer,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TemplateImprovement:
        return cls(
            template_path=data["template_path"],
            problem_pattern=data["problem_pattern"],
            solution=data["solution"],
            confidence=float(data["confidence"]),
            applied_at=_parse_dt(data.get("applied_at")),
            layer=data.get("layer"),
        )


@dataclass
class AppliedImprovementRecord:
    """Audit entry written when an improvement is auto-applied.

    The template mutation itself belongs to the templating collaborator;
    this record notes that a backup checkpoint preceded it.
    """

    improvement: TemplateImprovement
    timestamp: datetime
    applied: bool = True
    backup_created: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "improvement": self.improvement.to_dict(),
            "applied": self.applied,
            "timestamp": _format_dt(self.timestamp),
            "backup_created": self.backup_created,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppliedImprovementRecord:
        return cls(
            improvement=TemplateImprovement.from_dict(data["improvement"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            applied=bool(data.get("applied", True)),
            backup_created=bool(data.get("backup_created", True)),
        )

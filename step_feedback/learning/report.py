"""Learning report: aggregate view over metrics, patterns and improvements."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from step_feedback.engine.state_manager import REPORT, StateManager
from step_feedback.enums import ErrorType
from step_feedback.learning.advisor import ImprovementAdvisor
from step_feedback.learning.metrics_store import MetricsStore
from step_feedback.learning.patterns import PatternTracker
from step_feedback.models.domain import (
    ExecutionMetric,
    LayerInfo,
    LearningPattern,
    TemplateImprovement,
    utcnow,
)

log = structlog.get_logger(__name__)


@dataclass
class LearningReport:
    """Aggregated learning state, optionally restricted to one layer."""

    generated_at: datetime
    layer: str = "all"
    target: str = "all"
    total_executions: int = 0
    success_rate: float = 0.0
    common_errors: dict[str, int] = field(default_factory=dict)
    avg_duration_ms: float = 0.0
    pattern_count: int = 0
    patterns: list[LearningPattern] = field(default_factory=list)
    pending_improvements: list[TemplateImprovement] = field(default_factory=list)
    applied_improvements: list[TemplateImprovement] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "layer": self.layer,
            "target": self.target,
            "summary": {
                "total_executions": self.total_executions,
                "success_rate": self.success_rate,
                "common_errors": self.common_errors,
                "avg_duration_ms": self.avg_duration_ms,
                "pattern_count": self.pattern_count,
            },
            "patterns": [p.to_dict() for p in self.patterns],
            "suggested_improvements": [i.to_dict() for i in self.pending_improvements],
            "applied_improvements": [i.to_dict() for i in self.applied_improvements],
        }

    def to_text(self) -> str:
        """Render the report for a terminal."""
        lines = [
            "Learning Report",
            "=" * 50,
            f"Layer: {self.layer}    Target: {self.target}",
            f"Total executions: {self.total_executions}",
            f"Success rate: {self.success_rate * 100:.1f}%",
            f"Average duration: {self.avg_duration_ms:.0f}ms",
            f"Patterns discovered: {self.pattern_count}",
        ]

        if self.common_errors:
            lines.append("")
            lines.append("Common errors:")
            for error_type, count in self.common_errors.items():
                lines.append(f"  {error_type:<24} {count}")

        if self.patterns:
            lines.append("")
            lines.append("Top patterns:")
            for pattern in self.patterns:
                lines.append(
                    f"  {pattern.pattern:<40} x{pattern.occurrences:<5} " f"success {pattern.success_rate * 100:5.1f}%"
                )

        lines.append("")
        lines.append(f"Pending improvements: {len(self.pending_improvements)}")
        for improvement in self.pending_improvements:
            lines.append(
                f"  - {improvement.problem_pattern}: {improvement.solution} "
                f"({improvement.confidence * 100:.0f}% confidence, {improvement.template_path})"
            )

        lines.append(f"Applied improvements: {len(self.applied_improvements)}")
        for improvement in self.applied_improvements:
            applied = improvement.applied_at.isoformat() if improvement.applied_at else "-"
            lines.append(f"  - {improvement.problem_pattern}: {improvement.solution} (applied {applied})")

        return "\n".join(lines)


def top_errors(metrics: list[ExecutionMetric]) -> dict[str, int]:
    """Frequency table of error types among failed metrics, most common first."""
    counts = Counter(m.error_type or ErrorType.UNKNOWN.value for m in metrics if not m.success)
    return dict(counts.most_common())


def report_filename(layer_info: LayerInfo | None) -> str:
    if layer_info is None:
        return REPORT
    return f"learning-report-{layer_info.layer.value}-{layer_info.target.value}.json"


class ReportGenerator:
    """Builds and writes learning reports. Never mutates the learning stores."""

    def __init__(
        self,
        state: StateManager,
        metrics: MetricsStore,
        tracker: PatternTracker,
        advisor: ImprovementAdvisor,
        top_patterns: int = 10,
    ):
        self.state = state
        self.metrics = metrics
        self.tracker = tracker
        self.advisor = advisor
        self.top_patterns = top_patterns

    def build(self, layer_info: LayerInfo | None = None) -> LearningReport:
        """Aggregate current state. Missing stores count as empty."""
        metrics = self.metrics.all()
        patterns = list(self.tracker.load().values())
        improvements = self.advisor.load_improvements()

        if layer_info is not None:
            layer = layer_info.layer.value
            metrics = [m for m in metrics if m.layer == layer]
            patterns = [p for p in patterns if p.layer == layer]
            improvements = [i for i in improvements if i.layer == layer]

        total = len(metrics)
        successes = sum(1 for m in metrics if m.success)

        return LearningReport(
            generated_at=utcnow(),
            layer=layer_info.layer.value if layer_info else "all",
            target=layer_info.target.value if layer_info else "all",
            total_executions=total,
            success_rate=successes / total if total else 0.0,
            common_errors=top_errors(metrics),
            avg_duration_ms=sum(m.duration_ms for m in metrics) / total if total else 0.0,
            pattern_count=len(patterns),
            patterns=sorted(patterns, key=lambda p: p.occurrences, reverse=True)[: self.top_patterns],
            pending_improvements=[i for i in improvements if not i.is_applied],
            applied_improvements=[i for i in improvements if i.is_applied],
        )

    def generate(self, layer_info: LayerInfo | None = None) -> tuple[LearningReport, Path]:
        """Build the report and write it as the summary artifact."""
        report = self.build(layer_info)
        name = report_filename(layer_info)
        self.state.write(name, report.to_dict())

        log.info(
            "report_generated",
            file=name,
            success_rate=round(report.success_rate, 3),
            patterns=report.pattern_count,
            pending=len(report.pending_improvements),
        )
        return report, self.state.path_for(name)

"""
Feedback orchestrator for the analyze / score / report operations.

This module provides the FeedbackOrchestrator class, the single entry point
that wires the learning components to one explicitly opened state handle.

Analysis Pipeline:
    1. Parse the workflow result (malformed input is rejected here, before
       any state is touched)
    2. Classify failures and build execution metrics
    3. Record metrics durably
    4. Update learning patterns from the new metrics
    5. Regenerate improvements, auto-applying confident ones

Phases commit in that order, so an interrupted pass leaves metrics
consistent and patterns at worst stale; the next pass continues
incrementally from newly submitted metrics.

Example:
    >>> with StateManager(settings.state_dir) as state:
    ...     orchestrator = FeedbackOrchestrator(settings, state)
    ...     result = orchestrator.analyze("runs/latest.yaml")
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from step_feedback.config.settings import FeedbackSettings
from step_feedback.engine.state_manager import StateManager
from step_feedback.engine.workflow_parser import load_workflow_result
from step_feedback.learning.advisor import ImprovementAdvisor
from step_feedback.learning.classifier import ErrorClassifier
from step_feedback.learning.metrics_store import MetricsStore
from step_feedback.learning.patterns import PatternTracker
from step_feedback.learning.report import LearningReport, ReportGenerator
from step_feedback.learning.scoring import ScoreCalculator
from step_feedback.models.domain import (
    ExecutionMetric,
    LayerInfo,
    StepOutcome,
    TemplateImprovement,
    utcnow,
)

log = structlog.get_logger(__name__)


@dataclass
class AnalysisResult:
    """Summary of one analysis pass."""

    metrics: list[ExecutionMetric] = field(default_factory=list)
    evicted: int = 0
    improvements: list[TemplateImprovement] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return sum(1 for m in self.metrics if not m.success)

    @property
    def pending(self) -> list[TemplateImprovement]:
        return [i for i in self.improvements if not i.is_applied]

    @property
    def applied(self) -> list[TemplateImprovement]:
        return [i for i in self.improvements if i.is_applied]


class FeedbackOrchestrator:
    """Coordinate the feedback components over one state handle.

    Attributes:
        settings: Engine configuration.
        state: Opened state handle shared by every component.
        classifier: Error classifier.
        metrics: Metrics store.
        patterns: Pattern tracker.
        advisor: Improvement advisor.
        scorer: Score calculator.
        reporter: Report generator.
    """

    def __init__(self, settings: FeedbackSettings, state: StateManager):
        self.settings = settings
        self.state = state

        self.classifier = ErrorClassifier(
            excerpt_length=settings.classifier.excerpt_length,
            fingerprint_length=settings.classifier.fingerprint_length,
        )
        self.metrics = MetricsStore(state, capacity=settings.storage.metrics_capacity)
        self.patterns = PatternTracker(
            state,
            fix_min_occurrences=settings.learning.fix_min_occurrences,
            fix_max_success_rate=settings.learning.fix_max_success_rate,
        )
        self.advisor = ImprovementAdvisor(
            state,
            self.patterns,
            min_occurrences=settings.learning.improvement_min_occurrences,
            max_success_rate=settings.learning.improvement_max_success_rate,
            auto_apply_confidence=settings.learning.auto_apply_confidence,
            auto_apply_enabled=settings.learning.auto_apply_enabled,
        )
        self.scorer = ScoreCalculator(self.patterns, self.classifier)
        self.reporter = ReportGenerator(
            state,
            self.metrics,
            self.patterns,
            self.advisor,
            top_patterns=settings.report.top_patterns,
        )

    def build_metrics(
        self,
        outcomes: Iterable[StepOutcome],
        layer_info: LayerInfo | None = None,
        now: datetime | None = None,
    ) -> list[ExecutionMetric]:
        """Classify outcomes into execution metrics."""
        now = now or utcnow()
        metrics = []
        for outcome in outcomes:
            metric = ExecutionMetric(
                step_id=outcome.step_id,
                step_type=outcome.step_type,
                success=outcome.success,
                duration_ms=outcome.duration_ms,
                timestamp=now,
                code_pattern=self.classifier.fingerprint(outcome.template),
                layer=layer_info.layer.value if layer_info else None,
                target=layer_info.target.value if layer_info else None,
            )
            if not outcome.success:
                classification = self.classifier.classify(outcome.diagnostic)
                metric.error_type = classification.error_type
                metric.error_message = classification.excerpt
            metrics.append(metric)
        return metrics

    def ingest(
        self,
        outcomes: Iterable[StepOutcome],
        layer_info: LayerInfo | None = None,
        now: datetime | None = None,
    ) -> AnalysisResult:
        """Run classify -> record -> update -> advise over already-parsed outcomes."""
        now = now or utcnow()
        metrics = self.build_metrics(outcomes, layer_info, now)

        evicted = self.metrics.record(metrics)
        improvements = self.advisor.generate(metrics, now=now)

        return AnalysisResult(metrics=metrics, evicted=evicted, improvements=improvements)

    def analyze(self, workflow_path: str | Path, layer_info: LayerInfo | None = None) -> AnalysisResult:
        """Full pipeline over a workflow result file."""
        log.info(
            "analysis_started",
            workflow=str(workflow_path),
            layer=layer_info.layer.value if layer_info else None,
            target=layer_info.target.value if layer_info else None,
        )

        outcomes = load_workflow_result(workflow_path, layer_info)
        result = self.ingest(outcomes, layer_info)

        log.info(
            "analysis_completed",
            steps=len(result.metrics),
            failures=result.failures,
            improvements=len(result.improvements),
            applied=len(result.applied),
        )
        return result

    def score(
        self,
        step_type: str,
        success: bool,
        error_message: str | None = None,
        layer_info: LayerInfo | None = None,
    ) -> float:
        layer = layer_info.layer.value if layer_info else None
        return self.scorer.score(step_type, success, error_message=error_message, layer=layer)

    def report(self, layer_info: LayerInfo | None = None) -> tuple[LearningReport, Path]:
        return self.reporter.generate(layer_info)

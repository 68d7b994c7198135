"""
Reinforcement scoring of single step outcomes.

Scores lie in [-2, 2]. Without history an outcome scores +1 (success) or
-1 (failure). With a pattern for the outcome's key the base score is
amplified by how rare the key still is and how strongly its history agrees
with the outcome::

    rarity = 1 - min(occurrences / 100, 1)
    impact = success_rate if success else 1 - success_rate
    score  = clamp(base * (1 + rarity * impact), -2, 2)
"""

import structlog

from step_feedback.enums import SUCCESS_OUTCOME
from step_feedback.learning.classifier import ErrorClassifier
from step_feedback.learning.patterns import PatternTracker, pattern_key
from step_feedback.models.domain import LearningPattern

log = structlog.get_logger(__name__)

MIN_SCORE = -2.0
MAX_SCORE = 2.0
DEFAULT_SUCCESS_SCORE = 1.0
DEFAULT_FAILURE_SCORE = -1.0
RARITY_HORIZON = 100


def compute_score(success: bool, pattern: LearningPattern | None) -> float:
    """Score an outcome against a pattern snapshot (pure)."""
    if pattern is None:
        return DEFAULT_SUCCESS_SCORE if success else DEFAULT_FAILURE_SCORE

    rarity = 1 - min(pattern.occurrences / RARITY_HORIZON, 1)
    impact = pattern.success_rate if success else 1 - pattern.success_rate
    base = 1.0 if success else -1.0
    raw = base * (1 + rarity * impact)
    return max(MIN_SCORE, min(MAX_SCORE, raw))


class ScoreCalculator:
    """Resolves the pattern behind an outcome and scores it.

    Read-only with respect to persisted state.
    """

    def __init__(self, tracker: PatternTracker, classifier: ErrorClassifier | None = None):
        self.tracker = tracker
        self.classifier = classifier or ErrorClassifier()

    def resolve_pattern(
        self,
        step_type: str,
        success: bool,
        error_message: str | None = None,
        layer: str | None = None,
    ) -> LearningPattern | None:
        """Find the pattern an outcome would be folded into.

        Failures with a diagnostic use the classified key; failures without
        one fall back to the step type's most frequent failure pattern.
        """
        if success:
            return self.tracker.get(pattern_key(step_type, SUCCESS_OUTCOME, layer))

        if error_message:
            error_type = self.classifier.classify(error_message).error_type
            return self.tracker.get(pattern_key(step_type, error_type, layer))

        failures = self.tracker.failure_patterns(step_type, layer)
        return failures[0] if failures else None

    def score(
        self,
        step_type: str,
        success: bool,
        error_message: str | None = None,
        layer: str | None = None,
    ) -> float:
        pattern = self.resolve_pattern(step_type, success, error_message, layer)
        score = compute_score(success, pattern)
        log.info(
            "score_calculated",
            step_type=step_type,
            success=success,
            pattern=pattern.pattern if pattern else None,
            score=score,
        )
        return score

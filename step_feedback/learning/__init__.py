"""Learning and feedback loop for code-generation steps.

This package turns executed step outcomes into statistics and advice that
improve later generation runs. "Learning" is deterministic: running
averages and rule tables, no model training.

Key Components:
    - ErrorClassifier: Ordered pattern matching of diagnostics onto the error taxonomy
    - MetricsStore: Capacity-bounded, append-only metric log
    - PatternTracker: Running success statistics per (step type, outcome class)
    - ImprovementAdvisor: Template improvements for chronic failures, auto-applied when confident
    - ScoreCalculator: Bounded [-2, 2] reinforcement score per step outcome
    - ReportGenerator: Aggregated learning report

Example:
    >>> from step_feedback.learning.scoring import compute_score
    >>> compute_score(success=True, pattern=None)
    1.0
"""

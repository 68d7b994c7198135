"""Domain models for the feedback engine.

Key Models:
    - StepOutcome: Transient outcome of one executed step
    - ExecutionMetric: Persisted, classified form of a step outcome
    - LearningPattern: Running statistics per (step type, outcome class)
    - TemplateImprovement: Suggested template change derived from patterns
    - AppliedImprovementRecord: Audit entry for an auto-applied improvement

Example:
    >>> from step_feedback.models.domain import LearningPattern
    >>> pattern = LearningPattern(pattern="branch_success", step_type="branch", outcome="success")
"""

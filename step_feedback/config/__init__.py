"""Configuration for the feedback engine.

This package provides type-safe configuration management using Pydantic,
including storage location, classifier limits, learning thresholds and
report sizing.

Example:
    >>> from step_feedback.config.settings import FeedbackSettings
    >>> settings = FeedbackSettings.from_yaml("step-feedback.yaml")
    >>> settings.learning.auto_apply_confidence
    0.8
"""

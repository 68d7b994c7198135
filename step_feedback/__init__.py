"""step-feedback: execution feedback and scoring for code-generation pipelines."""

__version__ = "0.3.0"

"""Custom exception hierarchy for the step-feedback engine.

This module defines a small, structured exception hierarchy so that callers
(most notably the CLI) can tell fatal storage and input problems apart from
everything else and report them with a descriptive message.

Exception Hierarchy:
    StepFeedbackError (base)
    ├── ConfigurationError
    ├── StorageError
    └── MalformedInputError

A diagnostic text that matches no known error pattern is *not* an error: it
is classified as ``unknown`` and shows up later as a low-volume pattern.

Example Usage:
    >>> from step_feedback.exceptions import StorageError
    >>> try:
    ...     data = json.loads(path.read_text())
    ... except OSError as e:
    ...     raise StorageError(f"Cannot read {path}", path=str(path)) from e
"""


class StepFeedbackError(Exception):
    """Base exception for all step-feedback errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(StepFeedbackError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found or unreadable
        - Invalid YAML syntax
        - Unset environment variable referenced by the configuration
        - Values rejected by validation
    """

    pass


class StorageError(StepFeedbackError):
    """Persisted state could not be read or written.

    Fatal to the current invocation. Storage errors are surfaced to the
    caller verbatim and never retried automatically.

    Attributes:
        message: Human-readable error description
        path: Path of the persisted resource that failed, if known
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class MalformedInputError(StepFeedbackError):
    """A workflow result is missing required structure.

    Raised while parsing, before any persisted state is mutated, so that a
    rejected input can never leave a partially committed update behind.

    Attributes:
        message: Human-readable error description
        source: Workflow result reference (usually a file path), if known
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        full_message = f"{message} (source: {source})" if source else message
        super().__init__(full_message)

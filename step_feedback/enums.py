"""Enumerations for step outcomes, error taxonomy and architecture layers."""

from enum import Enum


class ErrorType(str, Enum):
    """Taxonomy labels assigned to failed steps.

    The declaration order here is not significant; matching precedence is
    defined by the ordered pattern table in ``learning.classifier``.
    """

    LINT = "lint"
    TEST = "test"
    TYPESCRIPT = "typescript"
    BRANCH_CONFLICT = "branch_conflict"
    PR_CREATION = "pr_creation"
    PERMISSION = "permission"
    MISSING_DEPENDENCY = "missing_dependency"
    GIT_OPERATION = "git_operation"
    ARCHITECTURE_VIOLATION = "architecture_violation"
    CLEAN_ARCHITECTURE = "clean_architecture"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class StepStatus(str, Enum):
    """Status markers written by the execution collaborator.

    Only SUCCESS and FAILED steps were executed; anything else is skipped
    during ingestion.
    """

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


class Layer(str, Enum):
    """Clean-architecture layers a generation run can target."""

    DOMAIN = "domain"
    DATA = "data"
    INFRA = "infra"
    PRESENTATION = "presentation"
    MAIN = "main"

    def __str__(self) -> str:
        return self.value


class Target(str, Enum):
    """Application side a generation run targets."""

    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"

    def __str__(self) -> str:
        return self.value


SUCCESS_OUTCOME = "success"
"""Outcome-class marker used in pattern keys for successful steps."""

"""
Error classification for failed step diagnostics.

Maps raw execution-log text onto the error taxonomy with an ordered rule
table: the first matching rule wins, so a log showing several symptoms gets
the label of the earliest rule it matches. Text that matches nothing is
labeled ``unknown``.

Also home to the other fixed text extractors applied to execution logs and
step templates (duration marker, content fingerprint).
"""

import hashlib
import re
from dataclasses import dataclass

import structlog

from step_feedback.enums import ErrorType

log = structlog.get_logger(__name__)

# Order is significant.
ERROR_PATTERNS: tuple[tuple[re.Pattern[str], ErrorType], ...] = (
    (re.compile(r"LINT FAILED", re.IGNORECASE), ErrorType.LINT),
    (re.compile(r"TESTS FAILED", re.IGNORECASE), ErrorType.TEST),
    (re.compile(r"TypeScript.*error", re.IGNORECASE), ErrorType.TYPESCRIPT),
    (re.compile(r"branch.*exists", re.IGNORECASE), ErrorType.BRANCH_CONFLICT),
    (re.compile(r"PR.*failed", re.IGNORECASE), ErrorType.PR_CREATION),
    (re.compile(r"permission denied", re.IGNORECASE), ErrorType.PERMISSION),
    (re.compile(r"cannot find module", re.IGNORECASE), ErrorType.MISSING_DEPENDENCY),
    (re.compile(r"git.*failed", re.IGNORECASE), ErrorType.GIT_OPERATION),
    (re.compile(r"architecture.*violation", re.IGNORECASE), ErrorType.ARCHITECTURE_VIOLATION),
    (re.compile(r"clean.*architecture", re.IGNORECASE), ErrorType.CLEAN_ARCHITECTURE),
)

DURATION_PATTERN = re.compile(r"completed.*in (\d+)ms", re.IGNORECASE)

NO_TEMPLATE = "no_template"


@dataclass(frozen=True)
class Classification:
    """Result of classifying one diagnostic."""

    error_type: str
    excerpt: str

    @property
    def matched(self) -> bool:
        return self.error_type != ErrorType.UNKNOWN.value


class ErrorClassifier:
    """Classifies diagnostic text into error-type labels.

    Pure: classification has no side effects beyond a debug log on a miss.
    """

    def __init__(self, excerpt_length: int = 500, fingerprint_length: int = 200):
        self.excerpt_length = excerpt_length
        self.fingerprint_length = fingerprint_length

    def classify(self, text: str | None) -> Classification:
        """Return the label of the first matching rule and a bounded excerpt.

        Args:
            text: Raw diagnostic text (None is treated as empty)

        Returns:
            Classification with ``unknown`` when no rule matches
        """
        text = text or ""
        excerpt = text[: self.excerpt_length]

        for regex, error_type in ERROR_PATTERNS:
            if regex.search(text):
                return Classification(error_type=error_type.value, excerpt=excerpt)

        log.debug("classification_miss", excerpt=excerpt[:80])
        return Classification(error_type=ErrorType.UNKNOWN.value, excerpt=excerpt)

    def fingerprint(self, template: str | None) -> str:
        """Hash the leading part of a template so similar templates group together."""
        if not template:
            return NO_TEMPLATE
        prefix = template[: self.fingerprint_length]
        return hashlib.md5(prefix.encode("utf-8"), usedforsecurity=False).hexdigest()


def extract_duration(text: str | None) -> int:
    """Extract the ``completed ... in <N>ms`` duration from an execution log (0 if absent)."""
    if not text:
        return 0
    match = DURATION_PATTERN.search(text)
    return int(match.group(1)) if match else 0

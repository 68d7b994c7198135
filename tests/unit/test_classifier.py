"""Tests for step_feedback.learning.classifier."""

import hashlib

import pytest

from step_feedback.enums import ErrorType
from step_feedback.learning.classifier import (
    ERROR_PATTERNS,
    NO_TEMPLATE,
    ErrorClassifier,
    extract_duration,
)


@pytest.fixture
def classifier():
    return ErrorClassifier()


class TestClassify:
    """Tests for ErrorClassifier.classify."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("LINT FAILED: 3 problems", "lint"),
            ("npm test: TESTS FAILED (2 of 40)", "test"),
            ("TypeScript compile error TS2345", "typescript"),
            ("fatal: a branch named 'feat/x' already exists", "branch_conflict"),
            ("PR creation failed: no commits", "pr_creation"),
            ("Permission denied (publickey)", "permission"),
            ("Error: Cannot find module 'zod'", "missing_dependency"),
            ("git push failed", "git_operation"),
            ("Domain architecture violation detected", "architecture_violation"),
            ("does not follow clean architecture", "clean_architecture"),
        ],
    )
    def test_labels(self, classifier, text, expected):
        """Each rule maps its symptom to its label."""
        assert classifier.classify(text).error_type == expected

    def test_matching_is_case_insensitive(self, classifier):
        assert classifier.classify("lint failed").error_type == "lint"

    def test_lint_declared_before_typescript(self, classifier):
        """A log with both symptoms gets the earlier rule's label."""
        text = "TypeScript error in user.ts\nLINT FAILED"
        labels = [label for _, label in ERROR_PATTERNS]

        assert labels.index(ErrorType.LINT) < labels.index(ErrorType.TYPESCRIPT)
        assert classifier.classify(text).error_type == "lint"

    def test_typescript_declared_before_git(self, classifier):
        text = "git commit failed after TypeScript error"
        assert classifier.classify(text).error_type == "typescript"

    def test_no_match_is_unknown(self, classifier):
        result = classifier.classify("segfault in node")

        assert result.error_type == "unknown"
        assert not result.matched

    def test_none_is_unknown(self, classifier):
        result = classifier.classify(None)

        assert result.error_type == "unknown"
        assert result.excerpt == ""

    def test_excerpt_is_bounded(self, classifier):
        text = "LINT FAILED " + "x" * 1000
        result = classifier.classify(text)

        assert len(result.excerpt) == 500
        assert result.excerpt == text[:500]

    def test_custom_excerpt_length(self):
        result = ErrorClassifier(excerpt_length=10).classify("LINT FAILED badly")
        assert result.excerpt == "LINT FAILE"

    def test_patterns_do_not_span_lines(self, classifier):
        """Symptom fragments split across lines do not combine."""
        assert classifier.classify("git\nfailed").error_type == "unknown"


class TestFingerprint:
    """Tests for template fingerprints."""

    def test_no_template_sentinel(self, classifier):
        assert classifier.fingerprint(None) == NO_TEMPLATE
        assert classifier.fingerprint("") == NO_TEMPLATE

    def test_hashes_prefix_only(self, classifier):
        prefix = "a" * 200
        expected = hashlib.md5(prefix.encode()).hexdigest()

        assert classifier.fingerprint(prefix + "tail one") == expected
        assert classifier.fingerprint(prefix + "tail two") == expected


class TestExtractDuration:
    """Tests for extract_duration."""

    def test_extracts_milliseconds(self):
        assert extract_duration("Step completed successfully in 1234ms") == 1234

    def test_case_insensitive(self):
        assert extract_duration("COMPLETED in 5ms") == 5

    def test_missing_marker_is_zero(self):
        assert extract_duration("done") == 0
        assert extract_duration(None) == 0

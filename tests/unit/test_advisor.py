"""Tests for step_feedback.learning.advisor."""

import pytest

from step_feedback.engine.state_manager import APPLIED_IMPROVEMENTS, IMPROVEMENTS, PATTERNS
from step_feedback.exceptions import StorageError
from step_feedback.learning.advisor import (
    FALLBACK_SOLUTION,
    ImprovementAdvisor,
    confidence_for,
    infer_template_path,
)
from step_feedback.learning.patterns import PatternTracker
from step_feedback.models.domain import LearningPattern


def _pattern(key="lint_check_lint", step_type="lint_check", outcome="lint", rate=0.0, occurrences=6, **kwargs):
    return LearningPattern(
        pattern=key,
        step_type=step_type,
        outcome=outcome,
        success_rate=rate,
        occurrences=occurrences,
        **kwargs,
    )


def _seed(state, *patterns):
    state.write(PATTERNS, {p.pattern: p.to_dict() for p in patterns})


def _advisor(state, **kwargs):
    return ImprovementAdvisor(state, PatternTracker(state), **kwargs)


class TestQualification:
    """An improvement exists iff occurrences > 5 and success rate < 0.3."""

    @pytest.mark.parametrize(
        "occurrences,rate,expected",
        [
            (6, 0.0, True),
            (6, 0.29, True),
            (6, 0.3, False),
            (5, 0.0, False),
            (100, 0.1, True),
            (100, 0.5, False),
        ],
    )
    def test_threshold(self, state_manager, occurrences, rate, expected):
        _seed(state_manager, _pattern(rate=rate, occurrences=occurrences))

        improvements = _advisor(state_manager).generate()

        assert (len(improvements) == 1) is expected

    @pytest.mark.parametrize("occurrences,expected", [(6, 0.6), (8, 0.8), (10, 1.0), (42, 1.0)])
    def test_confidence(self, state_manager, occurrences, expected):
        _seed(state_manager, _pattern(occurrences=occurrences))

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.confidence == expected
        assert confidence_for(occurrences) == expected


class TestSolution:
    def test_prefers_suggested_fix(self, state_manager):
        _seed(state_manager, _pattern(suggested_fix="Run eslint --fix first"))

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.solution == "Run eslint --fix first"

    def test_falls_back_to_canned_remediation(self, state_manager):
        _seed(state_manager, _pattern(key="install_missing_dependency", step_type="install", outcome="missing_dependency"))

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.solution == "Add dependency installation step"

    def test_falls_back_to_needs_investigation(self, state_manager):
        _seed(state_manager, _pattern(key="deploy_unknown", step_type="deploy", outcome="unknown"))

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.solution == FALLBACK_SOLUTION


class TestAutoApply:
    """Auto-apply triggers once per pattern above the confidence threshold."""

    def test_applies_above_threshold(self, state_manager, fixed_now):
        _seed(state_manager, _pattern(occurrences=9))

        (improvement,) = _advisor(state_manager).generate(now=fixed_now)

        assert improvement.applied_at == fixed_now
        records = state_manager.read(APPLIED_IMPROVEMENTS)
        assert len(records) == 1
        assert records[0]["applied"] is True
        assert records[0]["backup_created"] is True
        assert records[0]["improvement"]["problem_pattern"] == "lint_check_lint"
        assert state_manager.read(PATTERNS)["lint_check_lint"]["auto_fix_applied"] is True

    def test_not_applied_at_threshold(self, state_manager):
        _seed(state_manager, _pattern(occurrences=8))

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.applied_at is None
        assert state_manager.read(APPLIED_IMPROVEMENTS) is None

    def test_second_pass_does_not_duplicate(self, state_manager, fixed_now):
        _seed(state_manager, _pattern(occurrences=9))
        _advisor(state_manager).generate(now=fixed_now)

        (improvement,) = _advisor(state_manager).generate()

        assert len(state_manager.read(APPLIED_IMPROVEMENTS)) == 1
        assert improvement.applied_at == fixed_now

    def test_applied_excluded_from_pending(self, state_manager):
        _seed(
            state_manager,
            _pattern(occurrences=9),
            _pattern(key="branch_branch_conflict", step_type="branch", outcome="branch_conflict", occurrences=7),
        )
        advisor = _advisor(state_manager)
        advisor.generate()

        assert [i.problem_pattern for i in advisor.pending()] == ["branch_branch_conflict"]
        assert [r.improvement.problem_pattern for r in advisor.applied_records()] == ["lint_check_lint"]

    def test_failed_pattern_save_does_not_duplicate_record(self, state_manager, fixed_now, monkeypatch):
        """A pass that fails after writing the audit log is not applied again by the next pass."""
        _seed(state_manager, _pattern(occurrences=9))
        advisor = _advisor(state_manager)
        original_save = advisor.tracker.save
        calls = []

        def failing_save():
            calls.append(1)
            if len(calls) == 2:
                raise StorageError("disk full")
            original_save()

        monkeypatch.setattr(advisor.tracker, "save", failing_save)

        with pytest.raises(StorageError):
            advisor.generate(now=fixed_now)

        (improvement,) = _advisor(state_manager).generate()

        assert len(state_manager.read(APPLIED_IMPROVEMENTS)) == 1
        assert improvement.applied_at == fixed_now
        assert state_manager.read(PATTERNS)["lint_check_lint"]["auto_fix_applied"] is True

    def test_failed_audit_write_leaves_pattern_unapplied(self, state_manager, monkeypatch):
        _seed(state_manager, _pattern(occurrences=9))
        original_write = state_manager.write

        def failing_write(name, data):
            if name == APPLIED_IMPROVEMENTS:
                raise StorageError("disk full")
            original_write(name, data)

        monkeypatch.setattr(state_manager, "write", failing_write)

        with pytest.raises(StorageError):
            _advisor(state_manager).generate()

        monkeypatch.undo()
        assert state_manager.read(PATTERNS)["lint_check_lint"]["auto_fix_applied"] is False

        (improvement,) = _advisor(state_manager).generate()

        assert improvement.is_applied
        assert len(state_manager.read(APPLIED_IMPROVEMENTS)) == 1

    def test_disabled(self, state_manager):
        _seed(state_manager, _pattern(occurrences=20))

        (improvement,) = _advisor(state_manager, auto_apply_enabled=False).generate()

        assert not improvement.is_applied
        assert state_manager.read(APPLIED_IMPROVEMENTS) is None


class TestSnapshot:
    def test_snapshot_is_overwritten(self, state_manager):
        _seed(state_manager, _pattern())
        _advisor(state_manager).generate()
        assert len(state_manager.read(IMPROVEMENTS)) == 1

        _seed(state_manager, _pattern(rate=0.9))
        _advisor(state_manager).generate()

        assert state_manager.read(IMPROVEMENTS) == []

    def test_generate_refreshes_patterns_first(self, state_manager, make_metric):
        failures = [make_metric("lint_check", success=False, error_type="lint") for _ in range(6)]

        (improvement,) = _advisor(state_manager).generate(failures)

        assert improvement.problem_pattern == "lint_check_lint"
        assert improvement.confidence == 0.6


class TestTemplatePath:
    def test_known_step_type(self):
        pattern = _pattern(key="create_file_lint", step_type="create_file")
        assert infer_template_path(pattern) == "templates/DOMAIN_TEMPLATE.yaml#create_file"

    def test_other_step_type(self):
        assert infer_template_path(_pattern()) == "templates/DOMAIN_TEMPLATE.yaml"

    def test_layer_and_target(self):
        pattern = _pattern(
            key="data_branch_git_operation",
            step_type="branch",
            outcome="git_operation",
            layer="data",
            target="frontend",
        )

        assert infer_template_path(pattern) == "templates/frontend-data-template.yaml#branch"

    def test_layer_without_target_defaults_to_backend(self):
        pattern = _pattern(key="data_branch_git_operation", step_type="branch", outcome="git_operation", layer="data")

        assert infer_template_path(pattern) == "templates/backend-data-template.yaml#branch"

    def test_path_stable_across_layer_passes(self, state_manager, make_metric):
        """A pass over another layer does not rewrite earlier template paths."""
        failure = make_metric("create_file", success=False, error_type="lint", layer="domain", target="frontend")
        advisor = _advisor(state_manager)
        advisor.generate([failure] * 6)

        improvements = advisor.generate([make_metric("branch", layer="data", target="backend")])

        paths = {i.problem_pattern: i.template_path for i in improvements}
        assert paths["domain_create_file_lint"] == "templates/frontend-domain-template.yaml#create_file"

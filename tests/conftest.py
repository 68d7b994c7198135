"""Pytest configuration and shared fixtures."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog

from step_feedback.config.settings import FeedbackSettings
from step_feedback.engine.orchestrator import FeedbackOrchestrator
from step_feedback.engine.state_manager import StateManager
from step_feedback.models.domain import ExecutionMetric


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo logging configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory (not created yet)."""
    return tmp_path / "state"


@pytest.fixture
def state_manager(temp_state_dir: Path) -> Iterator[StateManager]:
    """Opened StateManager over the temp directory."""
    with StateManager(temp_state_dir) as state:
        yield state


@pytest.fixture
def settings(temp_state_dir: Path) -> FeedbackSettings:
    """Default settings pointing at the temp state directory."""
    return FeedbackSettings(storage={"state_directory": str(temp_state_dir)})


@pytest.fixture
def orchestrator(settings: FeedbackSettings, state_manager: StateManager) -> FeedbackOrchestrator:
    """Orchestrator wired to the temp state."""
    return FeedbackOrchestrator(settings, state_manager)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_metric(fixed_now: datetime) -> Callable[..., ExecutionMetric]:
    """Factory for execution metrics."""

    def _make(
        step_type: str = "create_file",
        success: bool = True,
        error_type: str | None = None,
        step_id: str = "step-1",
        duration_ms: int = 100,
        layer: str | None = None,
        target: str | None = None,
    ) -> ExecutionMetric:
        return ExecutionMetric(
            step_id=step_id,
            step_type=step_type,
            success=success,
            duration_ms=duration_ms,
            timestamp=fixed_now,
            error_type=None if success else (error_type or "unknown"),
            error_message=None if success else "boom",
            code_pattern="no_template",
            layer=layer,
            target=target,
        )

    return _make


@pytest.fixture
def workflow_file(tmp_path: Path) -> Callable[[str], Path]:
    """Write a workflow result document and return its path."""

    def _write(content: str, name: str = "workflow.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write

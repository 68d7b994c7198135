"""
State management with atomic whole-file writes.

This module provides the StateManager class, the explicit handle through
which every engine component reads and writes persisted state. Each named
resource is a JSON document under one state directory, read and written
wholesale. Writes go to a temporary sibling that is then renamed over the
target, so a reader never observes a half-written file.

There is no locking: callers must serialize invocations against the same
state directory.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from step_feedback.exceptions import StorageError

log = structlog.get_logger(__name__)

METRICS = "metrics.json"
PATTERNS = "patterns.json"
IMPROVEMENTS = "improvements.json"
APPLIED_IMPROVEMENTS = "applied-improvements.json"
REPORT = "learning-report.json"


class StateManager:
    """Manage persisted feedback state with atomic file operations.

    Lifecycle: ``open()`` at invocation start (creates the directory on
    first use), ``close()`` at invocation end. Also usable as a context
    manager.
    """

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "StateManager":
        """Load-or-initialize the state directory."""
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create state directory: {self.state_dir}", path=str(self.state_dir)) from e
        self._open = True
        log.debug("state_opened", state_dir=str(self.state_dir))
        return self

    def close(self) -> None:
        """Close the handle. All writes are already flushed on return from ``write``."""
        if self._open:
            log.debug("state_closed", state_dir=str(self.state_dir))
        self._open = False

    def __enter__(self) -> "StateManager":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def path_for(self, name: str) -> Path:
        """Get path to the named resource."""
        return self.state_dir / name

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def read(self, name: str, default: Any = None) -> Any:
        """Read a resource, returning ``default`` if it does not exist yet.

        Raises:
            StorageError: If the resource exists but cannot be read or decoded
        """
        path = self.path_for(name)
        if not path.exists():
            return default

        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read state file: {path}", path=str(path)) from e
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt state file {path}: {e}", path=str(path)) from e

    def write(self, name: str, data: Any) -> None:
        """Atomically replace a resource with ``data``.

        Raises:
            StorageError: If the handle is not open or the write fails
        """
        if not self._open:
            raise StorageError(f"State handle is not open: {self.state_dir}", path=str(self.state_dir))

        path = self.path_for(name)
        tmp_path = path.with_suffix(".tmp")

        try:
            payload = json.dumps(data, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize state for {path}: {e}", path=str(path)) from e

        try:
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise StorageError(f"Cannot write state file: {path}", path=str(path)) from e

    @contextmanager
    def transaction(self, name: str, default: Any) -> Iterator[Any]:
        """Read-modify-write a resource as a whole.

        The resource is written back only if the block completes without
        raising.
        """
        data = self.read(name, default)
        try:
            yield data
        except Exception:
            log.error("state_transaction_failed", resource=name)
            raise
        self.write(name, data)

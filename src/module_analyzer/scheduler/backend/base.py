"""Backend interface for external worker invocations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class WorkerRunRequest:
    """Inputs required to run one worker process."""

    argv: list[str]
    log_path: Path
    timeout_seconds: int = 0
    env: dict[str, str] | None = None
    shutdown_requested: Callable[[], bool] | None = None


@dataclass(slots=True)
class WorkerRunResult:
    """Execution outcome from the backend runner."""

    exit_code: int
    timed_out: bool
    interrupted: bool
    log_path: Path
    duration_seconds: float


class WorkerBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: WorkerRunRequest) -> WorkerRunResult:
        """Run one worker process to completion or deadline."""

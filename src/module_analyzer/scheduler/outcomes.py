"""Per-item outcomes and their classification from backend results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from module_analyzer.scheduler.backend import BackendRunError, WorkerRunResult


class OutcomeStatus(str, Enum):
    """Terminal status of one dispatched item."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class FailureKind(str, Enum):
    """Why an item failed; every kind is retryable."""

    TIMEOUT = "timeout"
    WORKER_ERROR = "worker_error"
    LAUNCH_ERROR = "launch_error"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result routed to a phase's ``record_outcome``."""

    status: OutcomeStatus
    failure_kind: FailureKind | None = None
    exit_code: int | None = None
    detail: str | None = None
    log_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILURE

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED

    @classmethod
    def success(cls, *, log_path: Path | None = None, detail: str | None = None) -> Outcome:
        return cls(status=OutcomeStatus.SUCCESS, exit_code=0, log_path=log_path, detail=detail)

    @classmethod
    def skip(cls, reason: str) -> Outcome:
        return cls(status=OutcomeStatus.SKIPPED, detail=reason)

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        *,
        exit_code: int | None = None,
        detail: str | None = None,
        log_path: Path | None = None,
    ) -> Outcome:
        return cls(
            status=OutcomeStatus.FAILURE,
            failure_kind=kind,
            exit_code=exit_code,
            detail=detail,
            log_path=log_path,
        )

    def describe(self) -> str:
        if self.status is OutcomeStatus.SUCCESS:
            return "success"
        if self.status is OutcomeStatus.SKIPPED:
            return f"skipped ({self.detail})" if self.detail else "skipped"
        if self.failure_kind is FailureKind.WORKER_ERROR:
            return f"worker error (exit code: {self.exit_code})"
        if self.failure_kind is FailureKind.TIMEOUT:
            return f"timeout ({self.detail})" if self.detail else "timeout"
        kind = self.failure_kind.value.replace("_", " ") if self.failure_kind else "failure"
        return f"{kind} ({self.detail})" if self.detail else kind


def classify_result(result: WorkerRunResult, *, timeout_seconds: int = 0) -> Outcome:
    """Map a finished worker process to an outcome."""

    if result.interrupted:
        return Outcome.failure(
            FailureKind.INTERRUPTED,
            exit_code=result.exit_code,
            detail="terminated on shutdown",
            log_path=result.log_path,
        )
    if result.timed_out:
        return Outcome.failure(
            FailureKind.TIMEOUT,
            exit_code=result.exit_code,
            detail=f"after {timeout_seconds}s",
            log_path=result.log_path,
        )
    if result.exit_code == 0:
        return Outcome.success(log_path=result.log_path)
    return Outcome.failure(
        FailureKind.WORKER_ERROR,
        exit_code=result.exit_code,
        log_path=result.log_path,
    )


def classify_launch_error(
    error: BackendRunError | OSError,
    *,
    log_path: Path | None = None,
) -> Outcome:
    """A worker that never ran, because its command or its files could not be prepared."""

    return Outcome.failure(FailureKind.LAUNCH_ERROR, detail=str(error), log_path=log_path)

"""Worker invocation backends."""

from module_analyzer.scheduler.backend.base import (
    WorkerBackend,
    WorkerRunRequest,
    WorkerRunResult,
)
from module_analyzer.scheduler.backend.cli_backend import (
    BackendRunError,
    CliWorkerBackend,
    render_command,
)

__all__ = [
    "BackendRunError",
    "CliWorkerBackend",
    "WorkerBackend",
    "WorkerRunRequest",
    "WorkerRunResult",
    "render_command",
]

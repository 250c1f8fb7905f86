"""Subprocess-based backend runner for CLI workers."""

from __future__ import annotations

import os
import shlex
import signal
import subprocess
import time
from pathlib import Path
from typing import TextIO

from module_analyzer.scheduler.backend.base import WorkerRunRequest, WorkerRunResult

TIMEOUT_EXIT_CODE = 124
_KILL_GRACE_SECONDS = 2.0


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


def render_command(template: str, **values: str) -> list[str]:
    """Render a shell-style command template into argv.

    Placeholder values are quoted before substitution so a value with spaces
    stays one argument.
    """

    stripped = template.strip()
    if not stripped:
        raise BackendRunError("Command template is empty.", transient=False)
    try:
        rendered = stripped.format(**{key: shlex.quote(value) for key, value in values.items()})
    except (KeyError, IndexError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError("Command template rendered empty command.", transient=False)
    return argv


class CliWorkerBackend:
    """Run one worker in its own process group with a hard deadline."""

    def __init__(self, *, poll_interval_seconds: float = 0.1) -> None:
        self.poll_interval_seconds = poll_interval_seconds

    def run(self, request: WorkerRunRequest) -> WorkerRunResult:
        env = os.environ.copy()
        if request.env:
            env.update(request.env)

        try:
            request.log_path.parent.mkdir(parents=True, exist_ok=True)
            log_handle = request.log_path.open("w", encoding="utf-8")
        except OSError as error:
            raise BackendRunError(
                f"Cannot open worker log {request.log_path}: {error}",
                transient=False,
            ) from error

        with log_handle:
            try:
                return self._run_process(request=request, env=env, log_handle=log_handle)
            except FileNotFoundError as error:
                raise BackendRunError(
                    f"Worker command not found: {request.argv[0]}",
                    transient=False,
                ) from error
            except PermissionError as error:
                raise BackendRunError(
                    f"Worker command is not executable: {request.argv[0]}",
                    transient=False,
                ) from error
            except OSError as error:
                raise BackendRunError(
                    f"Worker failed to start: {error}",
                    transient=True,
                ) from error

    def _run_process(
        self,
        *,
        request: WorkerRunRequest,
        env: dict[str, str],
        log_handle: TextIO,
    ) -> WorkerRunResult:
        process = subprocess.Popen(  # noqa: S603
            request.argv,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=log_handle,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
        started = time.monotonic()
        deadline = started + request.timeout_seconds if request.timeout_seconds > 0 else None

        while True:
            returncode = process.poll()
            if returncode is not None:
                return _result(
                    request,
                    exit_code=returncode,
                    started=started,
                )

            if deadline is not None and time.monotonic() >= deadline:
                terminate_process_group(process)
                return _result(
                    request,
                    exit_code=TIMEOUT_EXIT_CODE,
                    started=started,
                    timed_out=True,
                )

            if request.shutdown_requested is not None and request.shutdown_requested():
                exit_code = terminate_process_group(process)
                return _result(
                    request,
                    exit_code=exit_code,
                    started=started,
                    interrupted=True,
                )

            time.sleep(self.poll_interval_seconds)


def terminate_process_group(process: subprocess.Popen[bytes]) -> int:
    """SIGTERM the whole group, escalate to SIGKILL, and reap the leader."""

    _signal_group(process, signal.SIGTERM)
    try:
        exit_code = process.wait(timeout=_KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        _signal_group(process, signal.SIGKILL)
        return process.wait()
    # Grandchildren may outlive a leader that exited on SIGTERM.
    _signal_group(process, signal.SIGKILL)
    return exit_code


def _signal_group(process: subprocess.Popen[bytes], signum: int) -> None:
    try:
        os.killpg(process.pid, signum)
    except ProcessLookupError:
        return
    except OSError:
        try:
            process.send_signal(signum)
        except OSError:
            return


def _result(
    request: WorkerRunRequest,
    *,
    exit_code: int,
    started: float,
    timed_out: bool = False,
    interrupted: bool = False,
) -> WorkerRunResult:
    return WorkerRunResult(
        exit_code=exit_code,
        timed_out=timed_out,
        interrupted=interrupted,
        log_path=Path(request.log_path),
        duration_seconds=time.monotonic() - started,
    )

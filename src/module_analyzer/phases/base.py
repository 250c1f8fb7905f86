"""Shared pieces of the analysis, validation and conversion phases."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from module_analyzer.scheduler.backend import (
    BackendRunError,
    WorkerBackend,
    WorkerRunRequest,
    render_command,
)
from module_analyzer.scheduler.outcomes import Outcome, classify_launch_error, classify_result

logger = logging.getLogger(__name__)


def resolve_timeout(table_value: int, *, no_timeout: bool, custom_timeout: int | None) -> int:
    """Pick the effective deadline: ``--no-timeout`` beats ``--timeout`` beats the table."""

    if no_timeout:
        return 0
    if custom_timeout is not None and custom_timeout > 0:
        return custom_timeout
    return table_value


def timeout_label(timeout_seconds: int) -> str:
    return f"timeout: {timeout_seconds}s" if timeout_seconds > 0 else "no timeout"


def run_worker(  # noqa: PLR0913
    backend: WorkerBackend,
    *,
    command_template: str,
    values: dict[str, str],
    log_path: Path,
    timeout_seconds: int,
    shutdown_requested: Callable[[], bool],
    item_label: str,
) -> Outcome:
    """Render the command, run it through the backend and classify what happened."""

    try:
        argv = render_command(command_template, **values)
        result = backend.run(
            WorkerRunRequest(
                argv=argv,
                log_path=log_path,
                timeout_seconds=timeout_seconds,
                env={"MODULE_ANALYZER_ITEM": item_label},
                shutdown_requested=shutdown_requested,
            ),
        )
    except (BackendRunError, OSError) as error:
        logger.error("Could not launch worker for %s: %s", item_label, error)
        return classify_launch_error(error, log_path=log_path)
    return classify_result(result, timeout_seconds=timeout_seconds)


def log_file_outcome(verb: str, label: str, outcome: Outcome) -> None:
    """Log the result of a validation/conversion item."""

    if outcome.succeeded:
        logger.info("[DONE] %s: %s", verb, label)
    elif outcome.failed:
        logger.error(
            "[FAIL] %s failed: %s, %s (see %s)",
            verb,
            label,
            outcome.describe(),
            outcome.log_path,
        )
    else:
        logger.info("[SKIP] %s: %s", verb, label)

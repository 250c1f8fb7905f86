"""Markdown validation phase."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from module_analyzer.phases.base import log_file_outcome, resolve_timeout, run_worker
from module_analyzer.phases.files import MarkdownFile, discover_markdown_files
from module_analyzer.scheduler.backend import WorkerBackend
from module_analyzer.scheduler.outcomes import Outcome
from module_analyzer.scheduler.tracker import RunCounters

logger = logging.getLogger(__name__)


class ValidationPhase:
    """Asks the worker to validate and auto-fix every generated markdown file.

    Nothing is persisted: a rerun validates every file again.
    """

    name = "validation"

    def __init__(  # noqa: PLR0913
        self,
        *,
        docs_dir: Path,
        backend: WorkerBackend,
        command_template: str,
        log_dir: Path,
        timeout_seconds: int = 0,
        no_timeout: bool = False,
        dry_run: bool = False,
        exclude_dirs: tuple[Path, ...] = (),
    ) -> None:
        self.docs_dir = docs_dir
        self.exclude_dirs = exclude_dirs
        self.backend = backend
        self.command_template = command_template
        self.log_dir = log_dir
        self.timeout_seconds = resolve_timeout(
            timeout_seconds,
            no_timeout=no_timeout,
            custom_timeout=None,
        )
        self.dry_run = dry_run
        self.counters = RunCounters()

    def build_items(self) -> list[MarkdownFile]:
        files = discover_markdown_files(self.docs_dir, exclude_dirs=self.exclude_dirs)
        if files:
            logger.info("Validating %d markdown files", len(files))
        else:
            logger.warning("No markdown files found to validate")
        return files

    def describe(self, item: MarkdownFile) -> str:
        return item.display_name

    def select(self, item: MarkdownFile) -> Outcome | None:
        return None

    def instruction_for(self, item: MarkdownFile) -> str:
        return f"/validate-markdown {item.path} --auto-fix"

    def invoke(self, item: MarkdownFile, shutdown_requested: Callable[[], bool]) -> Outcome:
        logger.info("[START] Validating: %s", item.display_name)
        if self.dry_run:
            logger.info("[DRY-RUN] Would validate: %s", item.display_name)
            return Outcome.success(detail="dry-run")
        return run_worker(
            self.backend,
            command_template=self.command_template,
            values={"instruction": self.instruction_for(item)},
            log_path=self.log_dir / f"validation_{item.log_stem}.log",
            timeout_seconds=self.timeout_seconds,
            shutdown_requested=shutdown_requested,
            item_label=item.display_name,
        )

    def record_outcome(self, item: MarkdownFile, outcome: Outcome) -> None:
        self.counters.record(outcome)
        log_file_outcome("Validation", item.display_name, outcome)

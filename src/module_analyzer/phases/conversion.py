"""DOCX conversion phase."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from module_analyzer.phases.base import log_file_outcome, resolve_timeout, run_worker
from module_analyzer.phases.files import MarkdownFile, discover_markdown_files
from module_analyzer.scheduler.backend import BackendRunError, WorkerBackend, render_command
from module_analyzer.scheduler.outcomes import Outcome, classify_launch_error
from module_analyzer.scheduler.tracker import RunCounters

logger = logging.getLogger(__name__)


class ConversionPhase:
    """Converts each markdown file to a DOCX mirrored under ``output_root``."""

    name = "conversion"

    def __init__(  # noqa: PLR0913
        self,
        *,
        docs_dir: Path,
        backend: WorkerBackend,
        command_template: str,
        output_root: Path,
        reference_doc: Path,
        log_dir: Path,
        timeout_seconds: int = 0,
        no_timeout: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.docs_dir = docs_dir
        self.exclude_dirs = (output_root,)
        self.backend = backend
        self.command_template = command_template
        self.output_root = output_root
        self.reference_doc = reference_doc
        self.log_dir = log_dir
        self.timeout_seconds = resolve_timeout(
            timeout_seconds,
            no_timeout=no_timeout,
            custom_timeout=None,
        )
        self.dry_run = dry_run
        self.counters = RunCounters()

    def available(self) -> bool:
        """True when the converter executable can be found on ``PATH``."""

        try:
            argv = render_command(
                self.command_template,
                source="source.md",
                output="output.docx",
                template=str(self.reference_doc),
            )
        except BackendRunError as error:
            logger.error("Invalid conversion command: %s", error)
            return False
        if shutil.which(argv[0]) is None:
            logger.error("Converter not found: %s", argv[0])
            return False
        return True

    def build_items(self) -> list[MarkdownFile]:
        files = discover_markdown_files(self.docs_dir, exclude_dirs=self.exclude_dirs)
        if files:
            logger.info("Converting %d markdown files to DOCX", len(files))
            if not self.reference_doc.is_file():
                logger.warning("Reference document not found: %s", self.reference_doc)
        else:
            logger.warning("No markdown files found to convert")
        return files

    def describe(self, item: MarkdownFile) -> str:
        return item.display_name

    def select(self, item: MarkdownFile) -> Outcome | None:
        return None

    def output_for(self, item: MarkdownFile) -> Path:
        return item.mirrored(self.output_root)

    def invoke(self, item: MarkdownFile, shutdown_requested: Callable[[], bool]) -> Outcome:
        output = self.output_for(item)
        logger.info("[START] Converting: %s -> %s", item.display_name, output)
        if self.dry_run:
            logger.info("[DRY-RUN] Would convert: %s -> %s", item.display_name, output)
            return Outcome.success(detail="dry-run")
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            logger.error("Cannot create output directory for %s: %s", item.display_name, error)
            return classify_launch_error(error)
        return run_worker(
            self.backend,
            command_template=self.command_template,
            values={
                "source": str(item.path),
                "output": str(output),
                "template": str(self.reference_doc),
            },
            log_path=self.log_dir / f"conversion_{item.log_stem}.log",
            timeout_seconds=self.timeout_seconds,
            shutdown_requested=shutdown_requested,
            item_label=item.display_name,
        )

    def record_outcome(self, item: MarkdownFile, outcome: Outcome) -> None:
        self.counters.record(outcome)
        log_file_outcome("Conversion", item.display_name, outcome)

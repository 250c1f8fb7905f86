"""Controller for the module-analyzer CLI command."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from module_analyzer.config import Settings
from module_analyzer.errors import (
    DiscoveryGeneratedError,
    MissingDocumentError,
    PrerequisiteError,
)
from module_analyzer.phases import (
    AnalysisPhase,
    ConversionPhase,
    DriverReport,
    PhaseDriver,
    PhaseSelection,
    ValidationPhase,
    discover_markdown_files,
)
from module_analyzer.phases.files import mirror_output_path
from module_analyzer.run_logging import configure_run_logging
from module_analyzer.scheduler.backend import (
    BackendRunError,
    CliWorkerBackend,
    WorkerRunRequest,
    render_command,
)
from module_analyzer.scheduler.dispatcher import Dispatcher
from module_analyzer.scheduler.queue_builder import build_queue, queue_sections
from module_analyzer.scheduler.tracker import CompletionTracker, RunCounters
from module_analyzer.store import DocumentStore, RetryQueue, WorkItem
from module_analyzer.store.fs import atomic_write_text

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


@dataclass(slots=True)
class AnalyzeRunCommand:
    """CLI input for one analysis run."""

    document_path: Path | None = None
    state_dir: Path | None = None
    dry_run: bool = False
    reset: bool = False
    module: str | None = None
    retry_failed: bool = False
    delay: float | None = None
    parallel: int | None = None
    no_timeout: bool = False
    timeout: int | None = None
    verbose: bool = False
    skip_validation: bool = False
    skip_conversion: bool = False
    validation_only: bool = False
    conversion_only: bool = False

    @property
    def reset_only(self) -> bool:
        """``--reset`` with nothing else that shapes a run (``--verbose`` aside)."""

        return self.reset and not any(
            (
                self.dry_run,
                self.module,
                self.retry_failed,
                self.delay is not None,
                self.parallel is not None,
                self.no_timeout,
                self.timeout is not None,
                self.skip_validation,
                self.skip_conversion,
                self.validation_only,
                self.conversion_only,
            ),
        )


@dataclass(slots=True)
class AnalyzeRunResult:
    """Lines to render plus the process exit code."""

    lines: list[str]
    exit_code: int = 0


class AnalyzerCliController:
    """Wires settings, stores, phases and the dispatcher for one CLI run."""

    def __init__(self, backend: CliWorkerBackend | None = None) -> None:
        self.backend = backend

    def run(self, command: AnalyzeRunCommand) -> AnalyzeRunResult:
        settings = Settings.from_env(
            document_path=command.document_path,
            state_dir=command.state_dir,
        )
        settings.validate()
        selection = PhaseSelection.from_flags(
            skip_validation=command.skip_validation,
            skip_conversion=command.skip_conversion,
            validation_only=command.validation_only,
            conversion_only=command.conversion_only,
        )

        settings.log_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(
            settings.session_file,
            datetime.now().strftime("%Y-%m-%d %H:%M:%S") + "\n",  # noqa: DTZ005
        )

        with configure_run_logging(settings.main_log, verbose=command.verbose):
            return self._run(command=command, settings=settings, selection=selection)

    def _run(
        self,
        *,
        command: AnalyzeRunCommand,
        settings: Settings,
        selection: PhaseSelection,
    ) -> AnalyzeRunResult:
        backend = self.backend or CliWorkerBackend(
            poll_interval_seconds=min(0.1, settings.scheduler.poll_interval_seconds),
        )
        store = DocumentStore(settings.document_path)
        retry_queue = RetryQueue(settings.failed_file)

        needs_document = selection.analysis or command.reset
        if needs_document and not store.exists():
            self._discover(settings=settings, backend=backend, dry_run=command.dry_run)
        if (selection.analysis or selection.validation) and not command.dry_run:
            _require_executable(settings.commands.worker, instruction="/analyze")

        if needs_document:
            store.load()
            if not command.dry_run:
                store.initialize()

        if command.reset:
            CompletionTracker(
                store=store,
                retry_queue=retry_queue,
                dry_run=command.dry_run,
            ).reset()
            if command.reset_only:
                logger.info("Reset complete")
                return AnalyzeRunResult(
                    lines=["Reset complete. Run without --reset to start analysis."],
                )

        lines: list[str] = []
        if command.dry_run:
            lines.extend(
                self._preview(
                    command=command,
                    settings=settings,
                    selection=selection,
                    store=store,
                ),
            )

        dispatcher = Dispatcher(
            limit=command.parallel or 1,
            max_parallel=settings.scheduler.max_parallel,
            delay_seconds=(
                settings.scheduler.delay_seconds if command.delay is None else command.delay
            ),
            poll_interval_seconds=settings.scheduler.poll_interval_seconds,
            dry_run=command.dry_run,
        )
        driver = PhaseDriver(
            dispatcher=dispatcher,
            analysis=self._analysis_phase(
                command=command,
                settings=settings,
                store=store,
                retry_queue=retry_queue,
                backend=backend,
            )
            if selection.analysis
            else None,
            validation=ValidationPhase(
                docs_dir=settings.docs_dir,
                backend=backend,
                command_template=settings.commands.worker,
                log_dir=settings.log_dir,
                timeout_seconds=settings.timeouts.validation,
                no_timeout=command.no_timeout,
                dry_run=command.dry_run,
                exclude_dirs=(settings.docx_output_dir,),
            )
            if selection.validation
            else None,
            conversion=ConversionPhase(
                docs_dir=settings.docs_dir,
                backend=backend,
                command_template=settings.commands.conversion,
                output_root=settings.docx_output_dir,
                reference_doc=settings.reference_doc,
                log_dir=settings.log_dir,
                timeout_seconds=settings.timeouts.conversion,
                no_timeout=command.no_timeout,
                dry_run=command.dry_run,
            )
            if selection.conversion
            else None,
        )
        report = driver.run()
        lines.extend(
            render_summary(
                report=report,
                settings=settings,
                store=store if needs_document else None,
                retry_queue=retry_queue,
            ),
        )
        return AnalyzeRunResult(
            lines=lines,
            exit_code=INTERRUPTED_EXIT_CODE if report.interrupted else 0,
        )

    def _analysis_phase(
        self,
        *,
        command: AnalyzeRunCommand,
        settings: Settings,
        store: DocumentStore,
        retry_queue: RetryQueue,
        backend: CliWorkerBackend,
    ) -> AnalysisPhase:
        return AnalysisPhase(
            store=store,
            retry_queue=retry_queue,
            backend=backend,
            command_template=settings.commands.worker,
            log_dir=settings.log_dir,
            timeouts=settings.timeouts,
            queue_file=settings.queue_file,
            module_filter=command.module,
            retry_failed=command.retry_failed,
            no_timeout=command.no_timeout,
            custom_timeout=command.timeout,
            dry_run=command.dry_run,
        )

    def _discover(self, *, settings: Settings, backend: CliWorkerBackend, dry_run: bool) -> None:
        """Generate the missing document out of band, then stop the run."""

        if not settings.commands.discovery or dry_run:
            raise MissingDocumentError(
                f"Module structure file not found: {settings.document_path}",
            )

        logger.warning(
            "Module structure file not found: %s; running discovery",
            settings.document_path,
        )
        log_path = settings.log_dir / "discovery.log"
        try:
            result = backend.run(
                WorkerRunRequest(
                    argv=render_command(
                        settings.commands.discovery,
                        instruction=settings.commands.discovery_instruction,
                    ),
                    log_path=log_path,
                ),
            )
        except BackendRunError as error:
            raise MissingDocumentError(f"Module discovery could not start: {error}") from error

        if result.exit_code != 0 or not settings.document_path.is_file():
            raise MissingDocumentError(
                f"Module discovery did not produce {settings.document_path} (see {log_path})",
            )
        raise DiscoveryGeneratedError(
            f"Module structure generated at {settings.document_path}. "
            "Review it and run again to start analysis.",
        )

    def _preview(
        self,
        *,
        command: AnalyzeRunCommand,
        settings: Settings,
        selection: PhaseSelection,
        store: DocumentStore,
    ) -> list[str]:
        if command.validation_only:
            files = discover_markdown_files(
                settings.docs_dir,
                exclude_dirs=(settings.docx_output_dir,),
            )
            lines = ["VALIDATION PREVIEW (DRY RUN)", ""]
            lines.extend(f"  {index:2d}. {file.path}" for index, file in enumerate(files, 1))
            lines.extend(["", f"Total: {len(files)} files to validate", ""])
            return lines

        if command.conversion_only:
            files = discover_markdown_files(
                settings.docs_dir,
                exclude_dirs=(settings.docx_output_dir,),
            )
            lines = ["CONVERSION PREVIEW (DRY RUN)", ""]
            for index, file in enumerate(files, 1):
                output = mirror_output_path(file.path, settings.docs_dir, settings.docx_output_dir)
                lines.append(f"  {index:2d}. {file.path}")
                lines.append(f"      -> {output}")
            lines.extend(["", f"Total: {len(files)} files to convert", ""])
            return lines

        queue = build_queue(store.items())
        lines = ["ANALYSIS QUEUE (DRY RUN)"]
        index = 0
        for label, bucket in queue_sections(queue):
            if not bucket:
                continue
            lines.extend(["", f"# {label}"])
            for item in bucket:
                index += 1
                status = "analyzed" if item.analyzed else "pending"
                lines.append(
                    f"  {index:2d}. {item.display_name:<35} [{item.complexity.value}] ({status})",
                )
        lines.extend(["", f"Total: {len(queue)} modules in queue"])
        followups = []
        if selection.validation:
            followups.append("  - Markdown validation")
        if selection.conversion:
            followups.append("  - DOCX conversion")
        if followups:
            lines.append("After analysis, will also run:")
            lines.extend(followups)
        lines.append("")
        return lines


def render_summary(
    *,
    report: DriverReport,
    settings: Settings,
    store: DocumentStore | None,
    retry_queue: RetryQueue,
) -> list[str]:
    """Render the end-of-run summary lines."""

    lines = ["WORKFLOW INTERRUPTED" if report.interrupted else "WORKFLOW COMPLETE", ""]

    analysis = report.get("analysis")
    if analysis is not None:
        lines.append("Module Analysis")
        if store is not None:
            items = store.items()
            modules = [item for item in items if not item.is_child]
            children = [item for item in items if item.is_child]
            lines.append(
                f"  Modules:     {_count_analyzed(modules)} / {len(modules)} analyzed",
            )
            lines.append(
                f"  Sub-modules: {_count_analyzed(children)} / {len(children)} analyzed",
            )
        lines.extend(_counter_lines(analysis.counters, success_label="Successful"))
        lines.append("")

    validation = report.get("validation")
    if validation is not None:
        lines.append("Markdown Validation")
        lines.extend(_counter_lines(validation.counters, success_label="Validated"))
        lines.append("")

    conversion = report.get("conversion")
    if conversion is not None or report.conversion_unavailable:
        lines.append("DOCX Conversion")
        if report.conversion_unavailable:
            lines.append("  Skipped: converter not available")
        elif conversion is not None:
            lines.extend(_counter_lines(conversion.counters, success_label="Converted"))
            if conversion.counters.succeeded:
                lines.append(f"  Output: {settings.docx_output_dir}")
        lines.append("")

    lines.append(f"Logs directory: {settings.log_dir}")
    if len(retry_queue):
        lines.append("Failed modules can be retried with: module-analyzer --retry-failed")
    if report.interrupted:
        lines.append("Run interrupted. Progress has been saved; run again to resume.")
    return lines


def _counter_lines(counters: RunCounters, *, success_label: str) -> list[str]:
    return [
        f"  {success_label + ':':<12}{counters.succeeded}",
        f"  {'Failed:':<12}{counters.failed}",
        f"  {'Skipped:':<12}{counters.skipped}",
    ]


def _count_analyzed(items: Sequence[WorkItem]) -> int:
    return sum(1 for item in items if item.analyzed)


def _require_executable(template: str, **values: str) -> None:
    try:
        argv = render_command(template, **values)
    except BackendRunError as error:
        raise PrerequisiteError(str(error)) from error
    if shutil.which(argv[0]) is None:
        raise PrerequisiteError(f"Required command not found: {argv[0]}")

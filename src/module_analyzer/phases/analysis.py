"""Module analysis phase: document items, persisted completion, retry set."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from module_analyzer.config import TimeoutSettings
from module_analyzer.phases.base import resolve_timeout, run_worker, timeout_label
from module_analyzer.scheduler.backend import WorkerBackend
from module_analyzer.scheduler.outcomes import Outcome
from module_analyzer.scheduler.queue_builder import (
    build_queue,
    order_records,
    resolve_filter,
    write_queue_snapshot,
)
from module_analyzer.scheduler.tracker import CompletionTracker
from module_analyzer.store import DocumentStore, ItemKey, RetryQueue, WorkItem

logger = logging.getLogger(__name__)


class AnalysisPhase:
    """Runs the analysis worker once per not-yet-analyzed module."""

    name = "analysis"

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: DocumentStore,
        retry_queue: RetryQueue,
        backend: WorkerBackend,
        command_template: str,
        log_dir: Path,
        timeouts: TimeoutSettings,
        queue_file: Path | None = None,
        module_filter: str | None = None,
        retry_failed: bool = False,
        no_timeout: bool = False,
        custom_timeout: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.backend = backend
        self.command_template = command_template
        self.log_dir = log_dir
        self.timeouts = timeouts
        self.queue_file = queue_file
        self.module_filter = module_filter
        self.retry_failed = retry_failed
        self.no_timeout = no_timeout
        self.custom_timeout = custom_timeout
        self.dry_run = dry_run
        self.tracker = CompletionTracker(store=store, retry_queue=retry_queue, dry_run=dry_run)
        self.counters = self.tracker.counters
        self._filter_key: ItemKey | None = None

    def build_items(self) -> list[WorkItem]:
        document_items = self.store.items()
        if self.module_filter:
            self._filter_key = resolve_filter(document_items, self.module_filter)
            if self._filter_key is None:
                logger.warning(
                    "Module %r not found in document; nothing to analyze",
                    self.module_filter,
                )

        if self.retry_failed:
            return self._retry_items()

        queue = build_queue(document_items)
        if self.queue_file is not None:
            write_queue_snapshot(self.queue_file, queue)
        return queue

    def describe(self, item: WorkItem) -> str:
        return item.display_name

    def timeout_for(self, item: WorkItem) -> int:
        return resolve_timeout(
            self.timeouts.for_complexity(item.complexity),
            no_timeout=self.no_timeout,
            custom_timeout=self.custom_timeout,
        )

    def log_path_for(self, item: WorkItem) -> Path:
        return self.log_dir / f"{item.key.log_stem}.log"

    def select(self, item: WorkItem) -> Outcome | None:
        if self.module_filter and item.key != self._filter_key:
            return Outcome.skip("filtered")
        if self.store.is_analyzed(item.key):
            logger.info("[SKIP] %s (already analyzed)", item.display_name)
            return Outcome.skip("already analyzed")
        return None

    def invoke(self, item: WorkItem, shutdown_requested: Callable[[], bool]) -> Outcome:
        timeout_seconds = self.timeout_for(item)
        logger.info(
            "[START] %s (complexity: %s, %s)",
            item.display_name,
            item.complexity.value,
            timeout_label(timeout_seconds),
        )
        if self.dry_run:
            logger.info("[DRY-RUN] Would analyze: %s", item.display_name)
            return Outcome.success(detail="dry-run")

        return run_worker(
            self.backend,
            command_template=self.command_template,
            values={"instruction": f"/analyze {item.display_name}"},
            log_path=self.log_path_for(item),
            timeout_seconds=timeout_seconds,
            shutdown_requested=shutdown_requested,
            item_label=item.display_name,
        )

    def record_outcome(self, item: WorkItem, outcome: Outcome) -> None:
        self.tracker.record(item, outcome)
        if outcome.succeeded:
            logger.info("[DONE] %s", item.display_name)
        elif outcome.failed:
            logger.error(
                "[FAIL] %s: %s (see %s)",
                item.display_name,
                outcome.describe(),
                outcome.log_path,
            )

    def _retry_items(self) -> list[WorkItem]:
        records = self.tracker.start_retry_run()
        if not records:
            logger.info("No failed modules to retry")
            return []
        items: list[WorkItem] = []
        for record in order_records(records):
            item = self.store.find(record.key)
            if item is None:
                logger.warning(
                    "Dropping failed module %s: no longer in document",
                    record.key.display_name,
                )
                continue
            items.append(item)
        logger.info("Retrying %d failed modules", len(items))
        return items

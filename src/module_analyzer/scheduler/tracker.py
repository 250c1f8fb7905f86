"""Completion tracking: applies outcomes to the document store and retry set."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from module_analyzer.scheduler.outcomes import Outcome, OutcomeStatus
from module_analyzer.store import DocumentStore, FailureRecord, ItemKey, RetryQueue, WorkItem

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCounters:
    """Process-lifetime counters for one phase; never persisted."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome.status is OutcomeStatus.SUCCESS:
            self.succeeded += 1
        elif outcome.status is OutcomeStatus.FAILURE:
            self.failed += 1
        else:
            self.skipped += 1


class CompletionTracker:
    """Routes analysis outcomes to persisted state and counters."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        retry_queue: RetryQueue,
        counters: RunCounters | None = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.retry_queue = retry_queue
        self.counters = counters or RunCounters()
        self.dry_run = dry_run
        self._completed: set[ItemKey] = set()

    def record(self, item: WorkItem, outcome: Outcome) -> None:
        if outcome.status is OutcomeStatus.SUCCESS:
            self._record_success(item, outcome)
        elif outcome.status is OutcomeStatus.FAILURE:
            self._record_failure(item, outcome)
        else:
            self.counters.record(outcome)

    def reset(self) -> None:
        """Clear every ``analyzed`` flag and empty the retry set."""

        if self.dry_run:
            logger.info("[DRY-RUN] Would reset all analysis states and clear failed modules")
            return
        self.store.reset()
        self.retry_queue.clear()

    def start_retry_run(self) -> list[FailureRecord]:
        """Take the current retry set as the queue source.

        The persisted set is emptied before dispatch so a repeated failure is
        re-added exactly once and a success is simply never re-added.
        """

        if self.dry_run:
            return self.retry_queue.records()
        return self.retry_queue.drain()

    def _record_success(self, item: WorkItem, outcome: Outcome) -> None:
        if item.key in self._completed:
            return
        self._completed.add(item.key)
        if not self.dry_run:
            self.store.mark_analyzed(item.key)
            self.retry_queue.remove(item.key)
        self.counters.record(outcome)

    def _record_failure(self, item: WorkItem, outcome: Outcome) -> None:
        if not self.dry_run:
            self.retry_queue.upsert(FailureRecord.from_item(item))
        self.counters.record(outcome)

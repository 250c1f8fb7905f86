"""Generic bounded-concurrency dispatcher over an ordered item queue."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from module_analyzer.scheduler.outcomes import Outcome
from module_analyzer.scheduler.shutdown import ShutdownController
from module_analyzer.scheduler.tracker import RunCounters

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")


class Phase(Protocol[ItemT]):
    """One parameterization of the dispatcher.

    ``select`` returns a skip outcome for items that must not be launched
    (filtered out, already complete) and ``None`` otherwise.
    """

    name: str
    counters: RunCounters

    def build_items(self) -> Sequence[ItemT]: ...

    def describe(self, item: ItemT) -> str: ...

    def select(self, item: ItemT) -> Outcome | None: ...

    def invoke(self, item: ItemT, shutdown_requested: Callable[[], bool]) -> Outcome: ...

    def record_outcome(self, item: ItemT, outcome: Outcome) -> None: ...


@dataclass(slots=True)
class DispatchSummary:
    """What one dispatcher pass did."""

    phase: str
    counters: RunCounters
    launched: int = 0
    peak_active: int = 0
    interrupted: bool = False
    launch_order: list[str] = field(default_factory=list)


def clamp_parallel(requested: int, max_parallel: int) -> int:
    """Clamp a requested job count into ``[1, max_parallel]``."""

    if requested < 1:
        return 1
    if requested > max_parallel:
        logger.warning(
            "Limiting parallel jobs to %d (requested: %d)",
            max_parallel,
            requested,
        )
        return max_parallel
    return requested


class Dispatcher:
    """Launches items in queue order with at most ``limit`` active at once."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        limit: int = 1,
        max_parallel: int = 8,
        delay_seconds: float = 0.0,
        poll_interval_seconds: float = 0.2,
        dry_run: bool = False,
        shutdown: ShutdownController | None = None,
    ) -> None:
        self.limit = clamp_parallel(limit, max_parallel)
        self.delay_seconds = delay_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.dry_run = dry_run
        self.shutdown = shutdown or ShutdownController()

    def run(self, phase: Phase[ItemT]) -> DispatchSummary:
        items = list(phase.build_items())
        phase.counters.total = len(items)
        summary = DispatchSummary(phase=phase.name, counters=phase.counters)
        if not items:
            return summary

        if self.limit == 1:
            self._run_sequential(phase, items, summary)
        else:
            logger.info(
                "Running %s in parallel mode with %d concurrent jobs",
                phase.name,
                self.limit,
            )
            self._run_parallel(phase, items, summary)
        summary.interrupted = self.shutdown.requested
        if summary.launched:
            logger.info(
                "%s complete. Launched %d jobs.",
                phase.name.capitalize(),
                summary.launched,
            )
        return summary

    def _run_sequential(
        self,
        phase: Phase[ItemT],
        items: list[ItemT],
        summary: DispatchSummary,
    ) -> None:
        for item in items:
            if self.shutdown.requested:
                return
            skip = phase.select(item)
            if skip is not None:
                phase.record_outcome(item, skip)
                continue
            if not self._pace(summary):
                return
            self._note_launch(phase, item, summary, active=1)
            phase.record_outcome(item, phase.invoke(item, self.shutdown))

    def _run_parallel(
        self,
        phase: Phase[ItemT],
        items: list[ItemT],
        summary: DispatchSummary,
    ) -> None:
        active: dict[Future[Outcome], ItemT] = {}
        with ThreadPoolExecutor(
            max_workers=self.limit,
            thread_name_prefix=f"{phase.name}-worker",
        ) as pool:
            try:
                for item in items:
                    if self.shutdown.requested:
                        break
                    skip = phase.select(item)
                    if skip is not None:
                        phase.record_outcome(item, skip)
                        continue
                    self._wait_for_slot(phase, active)
                    if not self._pace(summary):
                        break
                    future = pool.submit(phase.invoke, item, self.shutdown)
                    active[future] = item
                    self._note_launch(phase, item, summary, active=len(active))
                if active:
                    logger.info("Waiting for %d remaining jobs to complete...", len(active))
                while active:
                    self._reap(phase, active)
                    if active:
                        time.sleep(self.poll_interval_seconds)
            except BaseException:
                self.shutdown.request(signal_name="error")
                raise

    def _wait_for_slot(self, phase: Phase[ItemT], active: dict[Future[Outcome], ItemT]) -> None:
        while len(active) >= self.limit:
            self._reap(phase, active)
            if len(active) >= self.limit:
                time.sleep(self.poll_interval_seconds)

    def _reap(self, phase: Phase[ItemT], active: dict[Future[Outcome], ItemT]) -> None:
        for future in [future for future in active if future.done()]:
            item = active.pop(future)
            phase.record_outcome(item, future.result())

    def _pace(self, summary: DispatchSummary) -> bool:
        """Apply the inter-launch delay; False when shutdown interrupted it."""

        if summary.launched and self.delay_seconds > 0 and not self.dry_run:
            return not self.shutdown.wait(self.delay_seconds)
        return not self.shutdown.requested

    def _note_launch(
        self,
        phase: Phase[ItemT],
        item: ItemT,
        summary: DispatchSummary,
        *,
        active: int,
    ) -> None:
        summary.launched += 1
        summary.peak_active = max(summary.peak_active, active)
        summary.launch_order.append(phase.describe(item))
        logger.debug("Launched %s job for %s", phase.name, phase.describe(item))

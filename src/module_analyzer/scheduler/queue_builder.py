"""Deterministic analysis queue ordering and single-item filter resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from module_analyzer.store import Complexity, FailureRecord, ItemKey, WorkItem
from module_analyzer.store.fs import atomic_write_text

logger = logging.getLogger(__name__)


def build_queue(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Order items: children before top-level, then by complexity, then by id.

    Pure function of its input; ``analyzed`` flags are carried but never
    consulted, so the same document always yields the same queue.
    """

    return sorted(items, key=_queue_sort_key)


def _queue_sort_key(item: WorkItem) -> tuple[int, int, str, str]:
    group = 0 if item.is_child else 1
    return (group, item.complexity.rank, item.id, item.parent_id or "")


def queue_sections(queue: list[WorkItem]) -> list[tuple[str, list[WorkItem]]]:
    """Split an ordered queue into labelled (group, complexity) buckets."""

    sections: list[tuple[str, list[WorkItem]]] = []
    for is_child, group_label in ((True, "Submodules"), (False, "Parent Modules")):
        for complexity in Complexity:
            bucket = [
                item
                for item in queue
                if item.is_child == is_child and item.complexity is complexity
            ]
            sections.append((f"{group_label} ({complexity.value.upper()} complexity)", bucket))
    return sections


def write_queue_snapshot(path: Path, queue: list[WorkItem]) -> None:
    """Persist the built queue as ``id|parentId|complexity`` lines."""

    lines: list[str] = []
    for label, bucket in queue_sections(queue):
        lines.append(f"# {label}")
        lines.extend(
            f"{item.id}|{item.parent_id or ''}|{item.complexity.value}" for item in bucket
        )
    atomic_write_text(path, "\n".join(lines) + "\n")
    logger.info("Built analysis queue with %d items", len(queue))


def resolve_filter(items: Iterable[WorkItem], module_filter: str) -> ItemKey | None:
    """Resolve ``--module`` to exactly one item key.

    ``Parent/Child`` names one sub-module. A bare name resolves to the first
    item with that id in document order, whether it is a module or a
    sub-module, so a top-level ``X`` listed after ``Other/X`` loses to it.
    """

    target = module_filter.strip().strip("/")
    if not target:
        return None
    document_order = list(items)
    if "/" in target:
        parent, _, name = target.partition("/")
        key = ItemKey(name, parent)
        return key if any(item.key == key for item in document_order) else None
    for item in document_order:
        if item.id == target:
            return item.key
    return None


def order_records(records: Iterable[FailureRecord]) -> list[FailureRecord]:
    """Apply the queue ordering to retry records."""

    return sorted(
        records,
        key=lambda record: (
            0 if record.parent_id else 1,
            record.complexity.rank,
            record.id,
            record.parent_id or "",
        ),
    )

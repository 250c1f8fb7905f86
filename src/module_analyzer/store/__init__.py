"""Persistent completion state: document store and retry queue."""

from module_analyzer.store.document import Complexity, Document, ItemKey, WorkItem
from module_analyzer.store.document_store import DocumentStore
from module_analyzer.store.retry_queue import FailureRecord, RetryQueue

__all__ = [
    "Complexity",
    "Document",
    "DocumentStore",
    "FailureRecord",
    "ItemKey",
    "RetryQueue",
    "WorkItem",
]

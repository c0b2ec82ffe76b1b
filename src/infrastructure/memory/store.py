"""
In-memory record store for local development and tests.

Implements the RecordStore protocol with a plain dict keyed by document
path. Data is deep-copied on the way in and out so callers can't mutate
stored documents behind the store's back, which is what a real database
would guarantee.

Not suitable for production (nothing survives a restart), but perfect for:
- Local development
- Unit tests
- CI/CD environments
"""

import copy
import logging
import threading
from datetime import date, datetime
from typing import Any, Optional, Sequence

from src.core.tracking.dates import to_local_datetime
from src.core.tracking.models import StoreTimestamp
from src.core.tracking.store import (
    Document,
    FieldFilter,
    OrderBy,
    RecordStoreError,
    normalize_collection_path,
    split_path,
)

logger = logging.getLogger(__name__)


class InMemoryWriteBatch:
    """Queues writes and applies them in one step on commit."""

    def __init__(self, store: "InMemoryRecordStore") -> None:
        self._store = store
        self._operations: list[tuple[str, str, Optional[dict[str, Any]], bool]] = []
        self._committed = False

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> "InMemoryWriteBatch":
        split_path(path)
        self._operations.append(("set", path, copy.deepcopy(data), merge))
        return self

    def delete(self, path: str) -> "InMemoryWriteBatch":
        split_path(path)
        self._operations.append(("delete", path, None, False))
        return self

    def commit(self) -> None:
        if self._committed:
            raise RecordStoreError("Batch already committed")
        self._store._apply(self._operations)
        self._committed = True


class InMemoryRecordStore:
    """
    Dict-backed document store.

    Thread-safe for the simple case of FastAPI running sync dependencies
    in a thread pool: every public operation holds one lock.
    """

    def __init__(self) -> None:
        # {document_path: data}
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

        logger.info("Initialized in-memory record store")

    def get(self, path: str) -> Optional[dict[str, Any]]:
        split_path(path)
        with self._lock:
            data = self._documents.get(path.strip("/"))
            return copy.deepcopy(data) if data is not None else None

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._apply([("set", path, copy.deepcopy(data), merge)])

    def delete(self, path: str) -> None:
        self._apply([("delete", path, None, False)])

    def list_collection(self, collection_path: str) -> list[Document]:
        collection = normalize_collection_path(collection_path)
        with self._lock:
            documents = [
                Document(id=doc_id, path=path, data=copy.deepcopy(data))
                for path, data in self._documents.items()
                for parent, doc_id in [split_path(path)]
                if parent == collection
            ]
        return sorted(documents, key=lambda d: d.id)

    def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        documents = [
            document for document in self.list_collection(collection_path)
            if all(_matches(document.data, condition) for condition in filters)
        ]

        if order_by is not None:
            # Documents without the ordering field are left out, like document databases do
            documents = [d for d in documents if d.data.get(order_by.field) is not None]
            documents.sort(
                key=lambda d: _sort_key(d.data[order_by.field]),
                reverse=order_by.direction == "desc",
            )

        if limit is not None:
            documents = documents[:limit]

        return documents

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def _apply(self, operations: list[tuple[str, str, Optional[dict[str, Any]], bool]]) -> None:
        with self._lock:
            staged = dict(self._documents)
            for operation, path, data, merge in operations:
                split_path(path)
                key = path.strip("/")
                if operation == "delete":
                    staged.pop(key, None)
                elif merge and key in staged:
                    staged[key] = {**staged[key], **data}
                else:
                    staged[key] = data
            self._documents = staged

    # Helper methods for testing
    def _clear(self) -> None:
        with self._lock:
            self._documents.clear()


def _comparable(value: Any) -> Any:
    """Map timestamp representations onto epoch seconds so they order together."""
    if isinstance(value, StoreTimestamp):
        return value.seconds + value.nanoseconds / 1e9
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp()
    return value


def _sort_key(value: Any) -> tuple[int, Any]:
    """
    Total order across value types: booleans, then numbers and dates, then
    other strings, then anything else.

    Numbers are read as epoch millis and date strings are parsed, so a date
    field written in mixed formats still orders chronologically.
    """
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, str):
        moment = to_local_datetime(value)
        if moment is not None:
            return (1, moment.timestamp())
        return (2, value)
    if isinstance(value, (int, float)):
        return (1, value / 1000)
    value = _comparable(value)
    if isinstance(value, (int, float)):
        return (1, float(value))
    return (3, repr(value))


def _matches(data: dict[str, Any], condition: FieldFilter) -> bool:
    if condition.field not in data:
        return False

    left = _comparable(data[condition.field])
    right = _comparable(condition.value)

    try:
        if condition.op == "==":
            return left == right
        if condition.op == ">=":
            return left >= right
        if condition.op == "<=":
            return left <= right
        if condition.op == ">":
            return left > right
        if condition.op == "<":
            return left < right
    except TypeError:
        return False

    raise ValueError(f"Unsupported filter operator: {condition.op}")

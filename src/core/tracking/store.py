"""
Record store interface.

The tracking services only need a generic document store: documents
addressed by slash-separated paths ("clients/abc/payments/p1"), point
reads and writes, whole-collection listing and simple queries. Using a
Protocol keeps the services unaware of whether they talk to Snowflake or
to the in-memory store used in mock mode and tests.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Protocol, Sequence

FilterOp = Literal["==", ">=", "<=", ">", "<"]
Direction = Literal["asc", "desc"]


class RecordStoreError(Exception):
    """Raised when the underlying store can't complete a read or write."""
    pass


@dataclass(frozen=True)
class FieldFilter:
    """A single `field <op> value` condition on top-level document fields."""
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = "asc"


@dataclass
class Document:
    """A document read from the store."""
    id: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)


class WriteBatch(Protocol):
    """
    A group of writes applied together.

    Nothing is visible until `commit()` returns. If commit raises, none of
    the queued writes are applied.
    """

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> "WriteBatch": ...
    def delete(self, path: str) -> "WriteBatch": ...
    def commit(self) -> None: ...


class RecordStore(Protocol):
    """Generic keyed document store."""

    def get(self, path: str) -> Optional[dict[str, Any]]:
        """Return the document's data, or None if it doesn't exist."""
        ...

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document. With merge, update only the given fields."""
        ...

    def delete(self, path: str) -> None:
        ...

    def list_collection(self, collection_path: str) -> list[Document]:
        """All documents directly inside a collection."""
        ...

    def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        ...

    def batch(self) -> WriteBatch:
        ...


def split_path(path: str) -> tuple[str, str]:
    """
    Split a document path into (collection_path, document_id).

    Document paths have an even number of segments.
    """
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments or len(segments) % 2 != 0:
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def normalize_collection_path(path: str) -> str:
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments or len(segments) % 2 != 1:
        raise ValueError(f"Not a collection path: {path!r}")
    return "/".join(segments)

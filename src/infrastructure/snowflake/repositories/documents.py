"""
Snowflake-backed record store.

All tracking documents live in a single table with a VARIANT payload:

    CREATE TABLE IF NOT EXISTS documents (
        path            STRING NOT NULL PRIMARY KEY,
        collection_path STRING NOT NULL,
        document_id     STRING NOT NULL,
        data            VARIANT,
        updated_at      TIMESTAMP_NTZ DEFAULT CURRENT_TIMESTAMP()
    );

The repository translates between document dicts and rows. Store
timestamps are written as {"_seconds", "_nanoseconds"} objects so range
filters and ordering can be expressed in SQL against the VARIANT column.
The application code never writes SQL directly.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Protocol, Sequence

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

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$.]*$")
_SQL_OPS = {"==": "=", ">=": ">=", "<=": "<=", ">": ">", "<": "<"}


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a fake without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "COACH_PORTAL"
    schema: str = "TRACKING"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeWriteBatch:
    """
    Writes executed inside one Snowflake transaction.

    Merge writes read the current document inside the same transaction, so
    the merged result reflects anything queued earlier in the batch.
    """

    def __init__(self, store: "SnowflakeDocumentStore") -> None:
        self._store = store
        self._operations: list[tuple[str, str, Optional[dict[str, Any]], bool]] = []

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> "SnowflakeWriteBatch":
        split_path(path)
        self._operations.append(("set", path, data, merge))
        return self

    def delete(self, path: str) -> "SnowflakeWriteBatch":
        split_path(path)
        self._operations.append(("delete", path, None, False))
        return self

    def commit(self) -> None:
        self._store._execute_writes(self._operations)


class SnowflakeDocumentStore:
    """
    RecordStore implementation over a Snowflake documents table.

    Each method corresponds to a RecordStore operation. Failures from the
    connector are logged and re-raised as RecordStoreError so the services
    never see driver exceptions.
    """

    def __init__(self, connection: SnowflakeConnection, table: str = "documents") -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._conn = connection
        self._table = table

    def get(self, path: str) -> Optional[dict[str, Any]]:
        split_path(path)
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"SELECT data FROM {self._table} WHERE path = %s",
                (path.strip("/"),),
            )
            row = cursor.fetchone()
            return _load_variant(row[0]) if row else None

        except Exception as e:
            raise self._wrap("get", path, e)
        finally:
            cursor.close()

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._execute_writes([("set", path, data, merge)])

    def delete(self, path: str) -> None:
        self._execute_writes([("delete", path, None, False)])

    def list_collection(self, collection_path: str) -> list[Document]:
        return self.query(collection_path)

    def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        collection = normalize_collection_path(collection_path)

        clauses = ["collection_path = %s"]
        params: list[Any] = [collection]

        for condition in filters:
            clause, value = _filter_clause(condition)
            clauses.append(clause)
            if value is not None:
                params.append(value)

        sql = f"SELECT document_id, path, data FROM {self._table} WHERE " + " AND ".join(clauses)

        if order_by is not None:
            column = _field_expression(order_by.field)
            direction = "DESC" if order_by.direction == "desc" else "ASC"
            sql += f" AND {column} IS NOT NULL"
            sql += f" ORDER BY COALESCE({column}:\"_seconds\", {column}) {direction}"
        else:
            sql += " ORDER BY document_id"

        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))

        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, tuple(params))
            rows = cursor.fetchall()
            return [
                Document(id=row[0], path=row[1], data=_load_variant(row[2]) or {})
                for row in rows
            ]

        except Exception as e:
            raise self._wrap("query", collection, e)
        finally:
            cursor.close()

    def batch(self) -> SnowflakeWriteBatch:
        return SnowflakeWriteBatch(self)

    def ensure_table(self) -> None:
        """Create the documents table if it doesn't exist."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    path STRING NOT NULL PRIMARY KEY,
                    collection_path STRING NOT NULL,
                    document_id STRING NOT NULL,
                    data VARIANT,
                    updated_at TIMESTAMP_NTZ DEFAULT CURRENT_TIMESTAMP()
                )
            """)
            self._conn.commit()
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _execute_writes(self, operations: list[tuple[str, str, Optional[dict[str, Any]], bool]]) -> None:
        cursor = self._conn.cursor()

        try:
            cursor.execute("BEGIN")
            # Merged documents written earlier in this batch
            pending: dict[str, Optional[dict[str, Any]]] = {}

            for operation, path, data, merge in operations:
                key = path.strip("/")
                if operation == "delete":
                    cursor.execute(f"DELETE FROM {self._table} WHERE path = %s", (key,))
                    pending[key] = None
                    continue

                document = dict(data or {})
                if merge:
                    current = pending[key] if key in pending else self._read_in_transaction(cursor, key)
                    document = {**(current or {}), **document}

                self._upsert(cursor, key, document)
                pending[key] = document

            self._conn.commit()

        except Exception as e:
            try:
                self._conn.rollback()
            except Exception as rollback_error:
                logger.warning(
                    "Rollback failed",
                    extra={"error": str(rollback_error)}
                )
            raise self._wrap("write", ",".join(op[1] for op in operations), e)
        finally:
            cursor.close()

    def _read_in_transaction(self, cursor, key: str) -> Optional[dict[str, Any]]:
        cursor.execute(f"SELECT data FROM {self._table} WHERE path = %s", (key,))
        row = cursor.fetchone()
        return _load_variant(row[0]) if row else None

    def _upsert(self, cursor, key: str, document: dict[str, Any]) -> None:
        collection_path, document_id = split_path(key)
        cursor.execute(f"""
            MERGE INTO {self._table} AS target
            USING (
                SELECT %s AS path, %s AS collection_path, %s AS document_id,
                       PARSE_JSON(%s) AS data
            ) AS source
            ON target.path = source.path
            WHEN MATCHED THEN UPDATE SET
                data = source.data,
                updated_at = CURRENT_TIMESTAMP()
            WHEN NOT MATCHED THEN INSERT (
                path, collection_path, document_id, data, updated_at
            ) VALUES (
                source.path, source.collection_path, source.document_id,
                source.data, CURRENT_TIMESTAMP()
            )
        """, (key, collection_path, document_id, json.dumps(encode_value(document))))

    def _wrap(self, operation: str, target: str, error: Exception) -> RecordStoreError:
        if isinstance(error, RecordStoreError):
            return error
        logger.error(
            "Snowflake document operation failed",
            extra={"operation": operation, "target": target, "error": str(error)}
        )
        return RecordStoreError(f"{operation} failed for {target}: {error}")


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_value(value: Any) -> Any:
    """Make a document JSON-serializable, tagging timestamps."""
    if isinstance(value, StoreTimestamp):
        return {"_seconds": value.seconds, "_nanoseconds": value.nanoseconds}
    if isinstance(value, datetime):
        return encode_value(StoreTimestamp.from_datetime(value))
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"_seconds", "_nanoseconds"}:
            return StoreTimestamp(int(value["_seconds"]), int(value["_nanoseconds"]))
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _load_variant(raw: Any) -> Optional[dict[str, Any]]:
    # The connector returns VARIANT columns as JSON text
    if raw is None:
        return None
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    return decode_value(raw)


def _field_expression(field: str) -> str:
    if not _FIELD_NAME.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return f'data:"{field}"'


def _filter_clause(condition: FieldFilter) -> tuple[str, Any]:
    """SQL for one filter, cast according to the comparison value's type."""
    column = _field_expression(condition.field)
    if condition.op not in _SQL_OPS:
        raise ValueError(f"Unsupported filter operator: {condition.op}")
    op = _SQL_OPS[condition.op]
    value = condition.value

    if value is None:
        if condition.op != "==":
            raise ValueError("Only equality is supported for null filters")
        return f"{column} IS NULL", None

    if isinstance(value, (StoreTimestamp, datetime, date)):
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        if isinstance(value, datetime):
            value = StoreTimestamp.from_datetime(value)
        seconds = value.seconds + value.nanoseconds / 1e9
        expression = (
            f"({column}:\"_seconds\"::FLOAT"
            f" + COALESCE({column}:\"_nanoseconds\"::FLOAT, 0) / 1e9)"
        )
        return f"{expression} {op} %s", seconds

    if isinstance(value, bool):
        return f"{column}::BOOLEAN {op} %s", value

    if isinstance(value, (int, float)):
        return f"{column}::FLOAT {op} %s", float(value)

    return f"{column}::STRING {op} %s", str(value)

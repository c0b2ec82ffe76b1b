"""
Unit tests for the Snowflake document store.

A fake connection records the SQL it receives, so these tests check the
translation between documents and rows without a Snowflake account.
"""

import json

import pytest

from src.core.tracking.models import StoreTimestamp
from src.core.tracking.store import FieldFilter, OrderBy, RecordStoreError
from src.infrastructure.snowflake.repositories.documents import (
    SnowflakeDocumentStore,
    decode_value,
    encode_value,
)


# ---------------------------------------------------------------------------
# Test Doubles
# ---------------------------------------------------------------------------

class FakeCursor:
    def __init__(self, connection):
        self._connection = connection

    def execute(self, sql, params=None):
        statement = " ".join(sql.split())
        self._connection.executed.append((statement, params))
        if self._connection.fail_on and self._connection.fail_on in statement:
            raise RuntimeError("statement failed")

    def fetchone(self):
        rows = self._connection.rows.pop(0) if self._connection.rows else []
        return rows[0] if rows else None

    def fetchall(self):
        return self._connection.rows.pop(0) if self._connection.rows else []

    def close(self):
        pass


class FakeConnection:
    def __init__(self, rows=None, fail_on=None):
        self.rows = list(rows or [])
        self.fail_on = fail_on
        self.executed = []
        self.commits = 0
        self.rollbacks = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class TestEncoding:

    def test_timestamps_are_tagged(self):
        encoded = encode_value({"date": StoreTimestamp(10, 5), "nested": [StoreTimestamp(1)]})

        assert encoded == {
            "date": {"_seconds": 10, "_nanoseconds": 5},
            "nested": [{"_seconds": 1, "_nanoseconds": 0}],
        }
        json.dumps(encoded)

    def test_tagged_objects_decode_to_timestamps(self):
        decoded = decode_value({"date": {"_seconds": 10, "_nanoseconds": 5}, "n": 1})

        assert decoded == {"date": StoreTimestamp(10, 5), "n": 1}

    def test_other_dicts_are_left_alone(self):
        data = {"completedDates": {"2024-03-01": True}}
        assert decode_value(encode_value(data)) == data


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class TestSnowflakeDocumentStore:

    def test_get_decodes_variant_json(self):
        row = (json.dumps({"name": "Ana", "updatedAt": {"_seconds": 3, "_nanoseconds": 0}}),)
        connection = FakeConnection(rows=[[row]])

        data = SnowflakeDocumentStore(connection).get("clients/ana")

        assert data == {"name": "Ana", "updatedAt": StoreTimestamp(3)}
        sql, params = connection.executed[0]
        assert sql == "SELECT data FROM documents WHERE path = %s"
        assert params == ("clients/ana",)

    def test_get_missing_document(self):
        assert SnowflakeDocumentStore(FakeConnection()).get("clients/ana") is None

    def test_query_builds_typed_filters(self):
        connection = FakeConnection(rows=[[("f1", "dailyFeedback/f1", '{"clientId": "ana"}')]])

        documents = SnowflakeDocumentStore(connection).query(
            "dailyFeedback",
            filters=[
                FieldFilter("clientId", "==", "ana"),
                FieldFilter("date", ">=", StoreTimestamp(100, 500_000_000)),
            ],
            order_by=OrderBy("date", "desc"),
            limit=5,
        )

        assert [d.id for d in documents] == ["f1"]
        assert documents[0].data == {"clientId": "ana"}

        sql, params = connection.executed[0]
        assert 'data:"clientId"::STRING = %s' in sql
        assert 'data:"date":"_seconds"::FLOAT' in sql
        assert "DESC" in sql and "LIMIT %s" in sql
        assert params == ("dailyFeedback", "ana", 100.5, 5)

    def test_query_rejects_unsafe_field_names(self):
        store = SnowflakeDocumentStore(FakeConnection())

        with pytest.raises(ValueError):
            store.query("clients", filters=[FieldFilter('name" OR 1=1 --', "==", "x")])

    def test_merge_write_reads_current_document_in_transaction(self):
        connection = FakeConnection(rows=[[('{"name": "Ana", "status": "pending"}',)]])

        SnowflakeDocumentStore(connection).set("clients/ana", {"status": "active"}, merge=True)

        statements = [sql for sql, _ in connection.executed]
        assert statements[0] == "BEGIN"
        assert statements[1].startswith("SELECT data FROM documents")
        assert statements[2].startswith("MERGE INTO documents")
        written = json.loads(connection.executed[2][1][3])
        assert written == {"name": "Ana", "status": "active"}
        assert connection.commits == 1

    def test_batch_failure_rolls_back(self):
        connection = FakeConnection(fail_on="DELETE")
        store = SnowflakeDocumentStore(connection)

        batch = store.batch()
        batch.set("clients/ana", {"status": "pending"})
        batch.delete("clients/ana/payments/p1")

        with pytest.raises(RecordStoreError):
            batch.commit()

        assert connection.rollbacks == 1
        assert connection.commits == 0

    def test_rejects_invalid_table_name(self):
        with pytest.raises(ValueError):
            SnowflakeDocumentStore(FakeConnection(), table="documents; DROP TABLE x")

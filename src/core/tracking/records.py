"""
Personal records (RM and PR) and the peer comparison advisory.

Each client has one records document holding two arrays: `rms` (max
loads, value stored under "weight") and `prs` (best times, value stored
under "time"). Before a client saves a new entry, the comparator looks
through every other client's records for the same exercise and reports the
peers who already match or beat it. The advisory never blocks the save;
the caller decides whether to show it and lets the user save anyway.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from . import paths
from .models import (
    ComparisonResult,
    PersonalRecord,
    RecordKind,
    RecordSubmission,
    StoreTimestamp,
)
from .store import Document, RecordStore

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"(\d+\.?\d*)")
_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"\s*(\d+)")


class PersonalRecordNotFoundError(Exception):
    """Raised when editing or deleting a record id that doesn't exist."""
    pass


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

def normalize_exercise_name(exercise: str) -> str:
    """Trim, lowercase and collapse whitespace runs. No fuzzy matching."""
    return _WHITESPACE.sub(" ", exercise.strip().lower())


def extract_weight_value(weight: str) -> Optional[float]:
    """First numeric token of a weight: "100kg" -> 100.0, "50.5 lbs" -> 50.5."""
    match = _NUMBER.search(weight or "")
    if not match:
        return None
    return float(match.group(1))


def time_to_seconds(value: str) -> Optional[int]:
    """
    Parse "SS", "MM:SS" or "HH:MM:SS" into seconds.

    "25:30" -> 1530, "1:30:45" -> 5445. Each part counts its leading
    digits only, so units and fractions are ignored: "8:10 min" -> 490,
    "7:40.5" -> 460. None when a part has no leading digits.
    """
    parts = (value or "").split(":")
    if not 1 <= len(parts) <= 3:
        return None

    seconds = 0
    for part in parts:
        match = _LEADING_INT.match(part)
        if not match:
            return None
        seconds = seconds * 60 + int(match.group(1))
    return seconds


def record_score(kind: RecordKind, value: str) -> Optional[float]:
    """Comparable number for a record value, or None if it has none."""
    if kind is RecordKind.RM:
        return extract_weight_value(value)
    seconds = time_to_seconds(value)
    return float(seconds) if seconds is not None else None


def is_equal_or_better(kind: RecordKind, candidate: float, reference: float) -> bool:
    """Heavier is better for RM; faster (fewer seconds) is better for PR."""
    if kind is RecordKind.RM:
        return candidate >= reference
    return candidate <= reference


# ---------------------------------------------------------------------------
# Comparator
# ---------------------------------------------------------------------------

class PersonalRecordComparator:
    """
    Scans other clients' records for equal-or-better entries.

    Linear in the number of clients: one collection listing, then one
    document read per peer. A peer that can't be read or holds malformed
    data is logged and skipped.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def compare_against_peers(
        self,
        client_id: str,
        new_record: PersonalRecord,
        kind: RecordKind,
    ) -> list[ComparisonResult]:
        target_exercise = normalize_exercise_name(new_record.exercise)
        new_score = record_score(kind, new_record.value)

        if new_score is None:
            logger.info(
                "Record value has no comparable number, skipping comparison",
                extra={"client_id": client_id, "kind": kind.value}
            )
            return []

        try:
            clients = self._store.list_collection(paths.CLIENTS)
        except Exception as e:
            logger.error(
                "Failed to list clients for record comparison",
                extra={"client_id": client_id, "error": str(e)}
            )
            return []

        results: list[ComparisonResult] = []

        for client_document in clients:
            if client_document.id == client_id:
                continue

            try:
                match = self._first_match(client_document, kind, target_exercise, new_score)
            except Exception as e:
                logger.warning(
                    "Skipping peer during record comparison",
                    extra={"peer_id": client_document.id, "error": str(e)}
                )
                continue

            if match is not None:
                results.append(match)

        logger.info(
            "Compared record against peers",
            extra={
                "client_id": client_id,
                "kind": kind.value,
                "peers_checked": len(clients),
                "better_or_equal": len(results),
            }
        )
        return results

    def _first_match(
        self,
        client_document: Document,
        kind: RecordKind,
        target_exercise: str,
        new_score: float,
    ) -> Optional[ComparisonResult]:
        # Only the peer's first qualifying entry is reported, not their best
        data = self._store.get(paths.personal_records(client_document.id))
        if not data:
            return None

        for entry in data.get(kind.array_field) or []:
            if not isinstance(entry, dict):
                continue
            exercise = entry.get("exercise") or ""
            if normalize_exercise_name(exercise) != target_exercise:
                continue

            value = _entry_value(kind, entry)
            score = record_score(kind, value)
            if score is not None and is_equal_or_better(kind, score, new_score):
                return ComparisonResult(
                    client_id=client_document.id,
                    client_name=client_document.data.get("name") or "Client",
                    value=value,
                    exercise=exercise,
                    date=entry.get("date"),
                )

        return None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PersonalRecordService:
    """RM/PR bookkeeping on the per-client records document."""

    def __init__(
        self,
        store: RecordStore,
        comparator: Optional[PersonalRecordComparator] = None,
    ) -> None:
        self._store = store
        self._comparator = comparator or PersonalRecordComparator(store)

    def list_records(self, client_id: str) -> dict[RecordKind, list[PersonalRecord]]:
        data = self._load(client_id)
        result = {}
        for kind in RecordKind:
            records = []
            for entry in data.get(kind.array_field) or []:
                try:
                    records.append(_record_from_entry(kind, entry))
                except (AttributeError, TypeError, ValueError) as e:
                    logger.warning(
                        "Ignoring malformed record entry",
                        extra={"client_id": client_id, "kind": kind.value, "error": str(e)}
                    )
            result[kind] = records
        return result

    def compare(
        self,
        client_id: str,
        kind: RecordKind,
        exercise: str,
        value: str,
        implement: str = "",
    ) -> list[ComparisonResult]:
        candidate = PersonalRecord(
            id="",
            exercise=exercise.strip(),
            value=value.strip(),
            implement=implement.strip(),
        )
        return self._comparator.compare_against_peers(client_id, candidate, kind)

    def add_record(
        self,
        client_id: str,
        kind: RecordKind,
        exercise: str,
        value: str,
        implement: str = "",
        compare: bool = True,
        confirm: bool = False,
    ) -> RecordSubmission:
        """
        Add a record, checking peers first.

        With `compare` on and at least one peer at or above the new entry,
        nothing is saved unless `confirm` is set; the comparisons come back
        so the caller can ask. Comparisons are returned even when saving.
        """
        record = PersonalRecord(
            id=uuid4().hex,
            exercise=exercise.strip(),
            value=value.strip(),
            implement=implement.strip(),
            date=int(datetime.now().timestamp() * 1000),
        )

        comparisons: list[ComparisonResult] = []
        if compare:
            comparisons = self._comparator.compare_against_peers(client_id, record, kind)
            if comparisons and not confirm:
                return RecordSubmission(kind=kind, saved=None, comparisons=comparisons)

        data = self._load(client_id)
        entries = list(data.get(kind.array_field) or [])
        entries.append(_entry_from_record(kind, record))
        self._save(client_id, data, kind, entries)

        logger.info(
            "Personal record added",
            extra={"client_id": client_id, "kind": kind.value, "record_id": record.id}
        )
        return RecordSubmission(kind=kind, saved=record, comparisons=comparisons)

    def update_record(
        self,
        client_id: str,
        kind: RecordKind,
        record_id: str,
        exercise: str,
        value: str,
        implement: str = "",
    ) -> PersonalRecord:
        data = self._load(client_id)
        entries = list(data.get(kind.array_field) or [])

        for index, entry in enumerate(entries):
            if isinstance(entry, dict) and entry.get("id") == record_id:
                record = PersonalRecord(
                    id=record_id,
                    exercise=exercise.strip(),
                    value=value.strip(),
                    implement=implement.strip(),
                    date=entry.get("date"),
                )
                entries[index] = _entry_from_record(kind, record)
                self._save(client_id, data, kind, entries)
                return record

        raise PersonalRecordNotFoundError(f"{kind.value} {record_id} not found")

    def delete_record(self, client_id: str, kind: RecordKind, record_id: str) -> None:
        data = self._load(client_id)
        entries = list(data.get(kind.array_field) or [])
        remaining = [
            entry for entry in entries
            if not (isinstance(entry, dict) and entry.get("id") == record_id)
        ]
        if len(remaining) == len(entries):
            raise PersonalRecordNotFoundError(f"{kind.value} {record_id} not found")

        self._save(client_id, data, kind, remaining)

    def send_to_coach(self, client_id: str) -> None:
        data = self._load(client_id)
        now = StoreTimestamp.now()
        self._store.set(
            paths.personal_records(client_id),
            {
                "rms": list(data.get("rms") or []),
                "prs": list(data.get("prs") or []),
                "sentToCoach": True,
                "sentAt": now,
                "lastUpdated": now,
            },
            merge=True,
        )
        logger.info("Records sent to coach", extra={"client_id": client_id})

    def _load(self, client_id: str) -> dict[str, Any]:
        return self._store.get(paths.personal_records(client_id)) or {}

    def _save(
        self,
        client_id: str,
        data: dict[str, Any],
        kind: RecordKind,
        entries: list[dict[str, Any]],
    ) -> None:
        # Both arrays are written so the document always carries both keys
        document = {
            "rms": list(data.get("rms") or []),
            "prs": list(data.get("prs") or []),
            "lastUpdated": StoreTimestamp.now(),
        }
        document[kind.array_field] = entries
        self._store.set(paths.personal_records(client_id), document, merge=True)


def _entry_value(kind: RecordKind, entry: dict[str, Any]) -> str:
    value = entry.get(kind.value_field)
    if value is None:
        value = entry.get("value")
    return str(value) if value is not None else ""


def _record_from_entry(kind: RecordKind, entry: dict[str, Any]) -> PersonalRecord:
    return PersonalRecord(
        id=str(entry.get("id") or ""),
        exercise=entry.get("exercise") or "",
        value=_entry_value(kind, entry),
        implement=entry.get("implement") or "",
        date=entry.get("date"),
    )


def _entry_from_record(kind: RecordKind, record: PersonalRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "exercise": record.exercise,
        kind.value_field: record.value,
        "implement": record.implement,
        "date": record.date,
    }

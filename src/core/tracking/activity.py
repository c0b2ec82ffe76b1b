"""
Activity aggregation for the training calendar.

Three independently written sources say something about a client's day:

- the progress summary, a map of day key -> workout completed
- daily feedback documents (mood and RPE), one per day
- the load/effort log, an array of day-tagged implement loads

The aggregator merges them into one map of day key -> ActivityRecord.
Each source is read inside its own error boundary so that a broken or
unreadable source degrades the calendar instead of blanking it.
"""

import logging
from typing import Any, Callable, Optional

from . import paths
from .dates import to_day_key, to_local_datetime, format_day_key
from .models import ActivityCategory, ActivityRecord
from .store import FieldFilter, OrderBy, RecordStore

logger = logging.getLogger(__name__)


def entry_implements(entry: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Implement loads of a load/effort entry.

    Entries are stored under "implementos"; some older ones use "implements".
    """
    items = entry.get("implementos")
    if items is None:
        items = entry.get("implements")
    return [item for item in items or [] if isinstance(item, dict)]


def classify_day(record: Optional[ActivityRecord]) -> ActivityCategory:
    """Category for a calendar tile. Days without a record are NONE."""
    if record is None:
        return ActivityCategory.NONE
    return record.category


class ActivityAggregator:
    """
    Builds the per-day activity map for one client.

    Stateless apart from the store; every call reads fresh data and builds
    a new map, so calls are independent of each other.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def aggregate(self, client_id: str) -> dict[str, ActivityRecord]:
        """
        Merge all activity sources for a client.

        Returns the map sorted by day key. Flags are OR-merged: a source can
        switch a flag on but never off.
        """
        records: dict[str, ActivityRecord] = {}

        sources: list[tuple[str, Callable[[str, dict[str, ActivityRecord]], None]]] = [
            ("workout_progress", self._apply_workout_progress),
            ("daily_feedback", self._apply_feedback),
            ("load_effort", self._apply_load_effort),
        ]

        for source_name, apply in sources:
            try:
                apply(client_id, records)
            except Exception as e:
                logger.error(
                    "Activity source unavailable, continuing without it",
                    extra={
                        "client_id": client_id,
                        "source": source_name,
                        "error": str(e),
                    }
                )

        logger.debug(
            "Aggregated activity",
            extra={"client_id": client_id, "days": len(records)}
        )

        return {key: records[key] for key in sorted(records)}

    def load_effort_for_day(self, client_id: str, day_key: str) -> Optional[dict[str, Any]]:
        """First load/effort entry logged on the given day, if any."""
        data = self._store.get(paths.load_effort(client_id))
        if not data:
            return None

        for entry in data.get("records") or []:
            if not isinstance(entry, dict) or not entry.get("date"):
                continue
            moment = to_local_datetime(entry["date"])
            if moment is not None and format_day_key(moment) == day_key:
                return entry

        return None

    # -----------------------------------------------------------------------
    # Sources
    # -----------------------------------------------------------------------

    def _apply_workout_progress(self, client_id: str, records: dict[str, ActivityRecord]) -> None:
        summary = self._store.get(paths.progress_summary(client_id))
        if not summary:
            return

        completed = summary.get("completedDates") or {}
        for day_key, done in completed.items():
            if done is True:
                _touch(records, day_key).has_workout = True

    def _apply_feedback(self, client_id: str, records: dict[str, ActivityRecord]) -> None:
        documents = self._store.query(
            paths.DAILY_FEEDBACK,
            filters=[FieldFilter("clientId", "==", client_id)],
            order_by=OrderBy("date", "asc"),
        )

        for document in documents:
            record = _touch(records, to_day_key(document.data.get("date")))
            # Submitting feedback means the client trained that day
            record.has_feedback = True
            record.has_workout = True

    def _apply_load_effort(self, client_id: str, records: dict[str, ActivityRecord]) -> None:
        data = self._store.get(paths.load_effort(client_id))
        if not data:
            return

        for entry in data.get("records") or []:
            if not isinstance(entry, dict) or not entry.get("date"):
                continue
            _touch(records, to_day_key(entry["date"])).has_load_effort = True


def _touch(records: dict[str, ActivityRecord], day_key: str) -> ActivityRecord:
    record = records.get(day_key)
    if record is None:
        record = ActivityRecord(day_key=day_key)
        records[day_key] = record
    return record

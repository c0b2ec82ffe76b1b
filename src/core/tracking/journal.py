"""
Training journal: the writes behind the activity calendar.

Clients log how a day felt (mood and RPE), which implements they used and
with what load, and coaches tick workout days as completed. These are the
sources ActivityAggregator later reads back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from . import paths
from .dates import format_day_key, parse_day_key, start_of_day, start_of_day_millis
from .models import StoreTimestamp
from .store import FieldFilter, RecordStore

logger = logging.getLogger(__name__)


class FeedbackAlreadyRecordedError(Exception):
    """Raised when a client submits feedback twice on the same day."""
    pass


@dataclass
class ImplementLoad:
    implement: str
    load: str


class TrainingJournal:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def record_feedback(
        self,
        client_id: str,
        rpe: int,
        mood: str,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Save today's mood/RPE feedback. Returns the feedback id.

        Feedback is dated at local midnight so that "today" is a single
        equality match.
        """
        if not 1 <= rpe <= 10:
            raise ValueError("RPE must be between 1 and 10")
        if not mood or not mood.strip():
            raise ValueError("Mood is required")

        today = StoreTimestamp.from_datetime(start_of_day(now))

        existing = self._store.query(
            paths.DAILY_FEEDBACK,
            filters=[
                FieldFilter("clientId", "==", client_id),
                FieldFilter("date", "==", today),
            ],
            limit=1,
        )
        if existing:
            raise FeedbackAlreadyRecordedError(
                f"Feedback already recorded today for client {client_id}"
            )

        feedback_id = uuid4().hex
        self._store.set(paths.feedback(feedback_id), {
            "clientId": client_id,
            "rpe": rpe,
            "mood": mood.strip(),
            "date": today,
            "createdAt": StoreTimestamp.now(),
        })

        logger.info(
            "Daily feedback recorded",
            extra={"client_id": client_id, "feedback_id": feedback_id, "rpe": rpe}
        )
        return feedback_id

    def record_load_effort(
        self,
        client_id: str,
        implements: list[ImplementLoad],
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Append today's implement loads to the client's load/effort log."""
        valid = [
            item for item in implements
            if item.implement.strip() and item.load.strip()
        ]
        if not valid:
            raise ValueError("At least one implement with its load is required")

        data = self._store.get(paths.load_effort(client_id)) or {}
        entry = {
            "id": uuid4().hex,
            "date": start_of_day_millis(now),
            "implementos": [
                {"implement": item.implement.strip(), "load": item.load.strip()}
                for item in valid
            ],
        }

        self._store.set(
            paths.load_effort(client_id),
            {
                "records": [*(data.get("records") or []), entry],
                "lastUpdated": StoreTimestamp.now(),
            },
            merge=True,
        )

        logger.info(
            "Load/effort entry recorded",
            extra={"client_id": client_id, "implements": len(valid)}
        )
        return entry

    def mark_workout_completed(self, client_id: str, day_key: str) -> str:
        """Flag a day as trained in the progress summary. Returns the normalized key."""
        day_key = format_day_key(parse_day_key(day_key))

        summary = self._store.get(paths.progress_summary(client_id)) or {}
        completed = dict(summary.get("completedDates") or {})
        completed[day_key] = True

        self._store.set(
            paths.progress_summary(client_id),
            {"completedDates": completed, "completedDays": sum(1 for v in completed.values() if v)},
            merge=True,
        )
        return day_key

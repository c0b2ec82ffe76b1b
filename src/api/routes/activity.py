"""
Training calendar endpoints.

The calendar is rebuilt from its three sources on every read: workout
progress, daily feedback and the load/effort log. Writes go to those same
sources through the training journal.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.tracking.activity import classify_day, entry_implements
from ...core.tracking.dates import format_day_key, parse_day_key, to_day_key
from ...core.tracking.journal import FeedbackAlreadyRecordedError, ImplementLoad
from ..dependencies import (
    ActivityAggregatorDep,
    ClientAccess,
    TrainingJournalDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ActivityDay(BaseModel):
    """One calendar day with at least one activity."""
    day_key: str = Field(description="Local calendar day (YYYY-MM-DD)")
    has_workout: bool
    has_feedback: bool
    has_load_effort: bool
    category: str = Field(description="workout, feedback, load_effort or multiple")


class ActivityResponse(BaseModel):
    client_id: str
    days: list[ActivityDay]


class ImplementLoadItem(BaseModel):
    implement: str = Field(min_length=1, max_length=100)
    load: str = Field(min_length=1, max_length=100, description="Load as entered, e.g. '20kg'")


class LoadEffortEntry(BaseModel):
    id: str
    day_key: str
    implements: list[ImplementLoadItem]


class LoadEffortRequest(BaseModel):
    implements: list[ImplementLoadItem] = Field(min_length=1)


class FeedbackRequest(BaseModel):
    """How today's training felt."""
    rpe: int = Field(ge=1, le=10, description="Rate of perceived exertion")
    mood: str = Field(min_length=1, max_length=50)


class FeedbackResponse(BaseModel):
    feedback_id: str
    client_id: str


class WorkoutCompletedResponse(BaseModel):
    client_id: str
    day_key: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{client_id}/activity",
    response_model=ActivityResponse,
    summary="Per-day activity for the training calendar",
)
async def get_activity(
    client_id: str,
    access: ClientAccess,
    aggregator: ActivityAggregatorDep,
) -> ActivityResponse:
    """
    Days with any activity, in chronological order.

    A source that can't be read is left out rather than failing the request.
    """
    records = aggregator.aggregate(client_id)

    return ActivityResponse(
        client_id=client_id,
        days=[
            ActivityDay(
                day_key=record.day_key,
                has_workout=record.has_workout,
                has_feedback=record.has_feedback,
                has_load_effort=record.has_load_effort,
                category=classify_day(record).value,
            )
            for record in records.values()
        ],
    )


@router.get(
    "/{client_id}/activity/{day_key}/load-effort",
    response_model=LoadEffortEntry,
    summary="Implements and loads logged on a day",
)
async def get_load_effort(
    client_id: str,
    day_key: str,
    access: ClientAccess,
    aggregator: ActivityAggregatorDep,
) -> LoadEffortEntry:
    day_key = _normalize_day_key(day_key)
    entry = aggregator.load_effort_for_day(client_id, day_key)

    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No load/effort entry for {day_key}",
        )

    return LoadEffortEntry(
        id=str(entry.get("id") or ""),
        day_key=day_key,
        implements=[
            ImplementLoadItem(
                implement=str(item.get("implement") or "?"),
                load=str(item.get("load") or "?"),
            )
            for item in entry_implements(entry)
        ],
    )


@router.post(
    "/{client_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record today's mood and RPE",
)
async def record_feedback(
    client_id: str,
    request: FeedbackRequest,
    access: ClientAccess,
    journal: TrainingJournalDep,
) -> FeedbackResponse:
    """Only one feedback per client per day is accepted."""
    try:
        feedback_id = journal.record_feedback(client_id, request.rpe, request.mood)
    except FeedbackAlreadyRecordedError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Feedback already recorded today",
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return FeedbackResponse(feedback_id=feedback_id, client_id=client_id)


@router.post(
    "/{client_id}/load-effort",
    response_model=LoadEffortEntry,
    status_code=status.HTTP_201_CREATED,
    summary="Log today's implements and loads",
)
async def record_load_effort(
    client_id: str,
    request: LoadEffortRequest,
    access: ClientAccess,
    journal: TrainingJournalDep,
) -> LoadEffortEntry:
    try:
        entry = journal.record_load_effort(
            client_id,
            [ImplementLoad(item.implement, item.load) for item in request.implements],
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return LoadEffortEntry(
        id=entry["id"],
        day_key=to_day_key(entry["date"]),
        implements=[ImplementLoadItem(**item) for item in entry_implements(entry)],
    )


@router.post(
    "/{client_id}/workouts/{day_key}/complete",
    response_model=WorkoutCompletedResponse,
    summary="Mark a workout day as completed",
)
async def complete_workout(
    client_id: str,
    day_key: str,
    access: ClientAccess,
    journal: TrainingJournalDep,
) -> WorkoutCompletedResponse:
    day_key = journal.mark_workout_completed(client_id, _normalize_day_key(day_key))
    logger.info(
        "Workout day completed",
        extra={"client_id": client_id, "day_key": day_key}
    )
    return WorkoutCompletedResponse(client_id=client_id, day_key=day_key)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_day_key(day_key: str) -> str:
    try:
        return format_day_key(parse_day_key(day_key))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Day must be formatted as YYYY-MM-DD",
        )


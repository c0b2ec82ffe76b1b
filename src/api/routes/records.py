"""
Personal record endpoints (RM and PR).

Adding a record first checks the other clients' records for the same
exercise. If someone already matches or beats it, the record is not saved
until the client confirms; the response carries the comparisons so the
frontend can show who. Coaches entering records for a client skip the
comparison.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.tracking.models import ComparisonResult, PersonalRecord, RecordKind
from ...core.tracking.records import PersonalRecordNotFoundError
from ..dependencies import ClientAccess, IsCoach, RecordServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class RecordRequest(BaseModel):
    exercise: str = Field(min_length=1, max_length=100)
    value: str = Field(
        min_length=1,
        max_length=50,
        description="Load for an RM ('100kg'), time for a PR ('25:30')",
    )
    implement: str = Field("", max_length=100)


class RecordItem(BaseModel):
    id: str
    exercise: str
    value: str
    implement: str = ""
    date: Optional[Any] = Field(None, description="Epoch milliseconds when written by this API")


class RecordsResponse(BaseModel):
    client_id: str
    rms: list[RecordItem]
    prs: list[RecordItem]


class ComparisonItem(BaseModel):
    """A peer whose record equals or beats the submitted one."""
    client_id: str
    client_name: str
    value: str
    exercise: str
    date: Optional[Any] = None


class ComparisonResponse(BaseModel):
    kind: RecordKind
    comparisons: list[ComparisonItem]


class SubmissionResponse(BaseModel):
    kind: RecordKind
    saved: bool
    needs_confirmation: bool
    record: Optional[RecordItem] = None
    comparisons: list[ComparisonItem] = []


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{client_id}/records",
    response_model=RecordsResponse,
    summary="A client's RMs and PRs",
)
async def list_records(
    client_id: str,
    access: ClientAccess,
    service: RecordServiceDep,
) -> RecordsResponse:
    records = service.list_records(client_id)
    return RecordsResponse(
        client_id=client_id,
        rms=[_record_item(r) for r in records[RecordKind.RM]],
        prs=[_record_item(r) for r in records[RecordKind.PR]],
    )


@router.post(
    "/{client_id}/records/send-to-coach",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Flag the records for the coach's review",
)
async def send_to_coach(
    client_id: str,
    access: ClientAccess,
    service: RecordServiceDep,
) -> None:
    service.send_to_coach(client_id)


@router.post(
    "/{client_id}/records/{kind}",
    response_model=SubmissionResponse,
    summary="Add a record, checking it against other clients first",
    responses={
        200: {"description": "Saved, or held back until confirmed"},
    },
)
async def add_record(
    client_id: str,
    kind: RecordKind,
    request: RecordRequest,
    access: ClientAccess,
    is_coach: IsCoach,
    service: RecordServiceDep,
    confirm: bool = Query(False, description="Save even if peers match or beat it"),
) -> SubmissionResponse:
    """
    When `needs_confirmation` comes back true nothing was saved. Repeat the
    request with `confirm=true` to save anyway.
    """
    submission = _validated(lambda: service.add_record(
        client_id,
        kind,
        exercise=request.exercise,
        value=request.value,
        implement=request.implement,
        compare=not is_coach,
        confirm=confirm,
    ))

    return SubmissionResponse(
        kind=submission.kind,
        saved=submission.saved is not None,
        needs_confirmation=submission.needs_confirmation,
        record=_record_item(submission.saved) if submission.saved else None,
        comparisons=[_comparison_item(c) for c in submission.comparisons],
    )


@router.post(
    "/{client_id}/records/{kind}/compare",
    response_model=ComparisonResponse,
    summary="Peers with an equal or better record, without saving",
)
async def compare_record(
    client_id: str,
    kind: RecordKind,
    request: RecordRequest,
    access: ClientAccess,
    service: RecordServiceDep,
) -> ComparisonResponse:
    comparisons = _validated(lambda: service.compare(
        client_id,
        kind,
        exercise=request.exercise,
        value=request.value,
        implement=request.implement,
    ))
    return ComparisonResponse(
        kind=kind,
        comparisons=[_comparison_item(c) for c in comparisons],
    )


@router.put(
    "/{client_id}/records/{kind}/{record_id}",
    response_model=RecordItem,
    summary="Edit a record",
)
async def update_record(
    client_id: str,
    kind: RecordKind,
    record_id: str,
    request: RecordRequest,
    access: ClientAccess,
    service: RecordServiceDep,
) -> RecordItem:
    try:
        record = _validated(lambda: service.update_record(
            client_id,
            kind,
            record_id,
            exercise=request.exercise,
            value=request.value,
            implement=request.implement,
        ))
    except PersonalRecordNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Record not found",
        )
    return _record_item(record)


@router.delete(
    "/{client_id}/records/{kind}/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a record",
)
async def delete_record(
    client_id: str,
    kind: RecordKind,
    record_id: str,
    access: ClientAccess,
    service: RecordServiceDep,
) -> None:
    try:
        service.delete_record(client_id, kind, record_id)
    except PersonalRecordNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Record not found",
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _validated(call):
    # Blank-after-trim names and values are rejected by the domain model
    try:
        return call()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )


def _record_item(record: PersonalRecord) -> RecordItem:
    return RecordItem(
        id=record.id,
        exercise=record.exercise,
        value=record.value,
        implement=record.implement,
        date=record.date,
    )


def _comparison_item(result: ComparisonResult) -> ComparisonItem:
    return ComparisonItem(
        client_id=result.client_id,
        client_name=result.client_name,
        value=result.value,
        exercise=result.exercise,
        date=result.date,
    )

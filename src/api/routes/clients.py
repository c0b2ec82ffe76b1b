"""
Client subscription endpoints (coach only).

Payments, subscription window and payment exemption all feed the client's
status. Every mutation here recomputes the status and stores it together
with the change, so the dashboard never shows a status that disagrees
with the payment history.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Generator, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.tracking.models import PaymentFrequency, PaymentMethod, PaymentRecord
from ...core.tracking.status import (
    ClientNotFoundError,
    PaymentNotFoundError,
    StatusPersistenceError,
    new_payment,
)
from ..dependencies import CoachIdentity, StatusServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class PaymentRequest(BaseModel):
    """A payment as entered by the coach."""
    payment_date: date = Field(description="Day the payment was made")
    method: PaymentMethod = Field(description="How the client paid")
    amount: Optional[float] = Field(None, ge=0, description="Amount paid")
    frequency: Optional[PaymentFrequency] = Field(None, description="What the payment covers")
    notes: str = Field("", max_length=1000)
    other_method: Optional[str] = Field(
        None,
        max_length=100,
        description="Free-text method, only kept when method is 'other'",
    )

    def to_payment(self) -> PaymentRecord:
        return new_payment(
            date=datetime.combine(self.payment_date, datetime.min.time()),
            method=self.method,
            amount=self.amount,
            frequency=self.frequency,
            notes=self.notes,
            other_method=self.other_method,
        )


class PaymentItem(BaseModel):
    id: str
    date: str = Field(description="Payment day (YYYY-MM-DD)")
    method: str
    amount: Optional[float] = None
    frequency: Optional[str] = None
    notes: str = ""
    other_method: Optional[str] = None


class StatusResponse(BaseModel):
    client_id: str
    status: str = Field(description="pending, active or inactive")


class SubscriptionRequest(BaseModel):
    end_date: Optional[date] = Field(None, description="Last day covered. Null for open-ended.")
    start_date: Optional[date] = None
    payment: Optional[PaymentRequest] = Field(
        None, description="Payment registered together with the subscription"
    )


class ExemptionRequest(BaseModel):
    exempt: bool


class ClientItem(BaseModel):
    id: str
    name: str
    email: str
    status: str
    is_payment_exempt: bool
    payment_count: int


class ClientListResponse(BaseModel):
    clients: list[ClientItem]
    total: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=ClientListResponse,
    summary="List clients with their current status",
)
async def list_clients(
    coach: CoachIdentity,
    service: StatusServiceDep,
    status_filter: Literal["all", "active", "inactive", "pending"] = Query("all", alias="status"),
) -> ClientListResponse:
    """
    Clients ordered by name, each with a freshly computed status.

    The default "all" view hides inactive clients.
    """
    summaries = service.list_clients(status_filter)
    return ClientListResponse(
        clients=[
            ClientItem(
                id=s.id,
                name=s.name,
                email=s.email,
                status=s.status.value,
                is_payment_exempt=s.is_payment_exempt,
                payment_count=s.payment_count,
            )
            for s in summaries
        ],
        total=len(summaries),
    )


@router.post(
    "/{client_id}/status/recalculate",
    response_model=StatusResponse,
    summary="Recompute and store a client's status",
)
async def recalculate_status(
    client_id: str,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> StatusResponse:
    with _translate_errors(client_id):
        result = service.recalculate(client_id)
    return StatusResponse(client_id=client_id, status=result.value)


@router.get(
    "/{client_id}/payments",
    response_model=list[PaymentItem],
    summary="List a client's payments, most recent first",
)
async def list_payments(
    client_id: str,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> list[PaymentItem]:
    with _translate_errors(client_id):
        payments = service.list_payments(client_id)

    return [
        PaymentItem(
            id=p.id,
            date=p.date.date().isoformat(),
            method=p.method.value,
            amount=p.amount,
            frequency=p.frequency.value if p.frequency else None,
            notes=p.notes,
            other_method=p.other_method,
        )
        for p in payments
    ]


@router.post(
    "/{client_id}/payments",
    response_model=StatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a payment",
)
async def add_payment(
    client_id: str,
    request: PaymentRequest,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> StatusResponse:
    with _translate_errors(client_id):
        result = service.add_payment(client_id, request.to_payment())
    return StatusResponse(client_id=client_id, status=result.value)


@router.delete(
    "/{client_id}/payments/{payment_id}",
    response_model=StatusResponse,
    summary="Delete a payment",
)
async def delete_payment(
    client_id: str,
    payment_id: str,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> StatusResponse:
    with _translate_errors(client_id):
        result = service.delete_payment(client_id, payment_id)
    return StatusResponse(client_id=client_id, status=result.value)


@router.put(
    "/{client_id}/subscription",
    response_model=StatusResponse,
    summary="Set the subscription window",
)
async def register_subscription(
    client_id: str,
    request: SubscriptionRequest,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> StatusResponse:
    with _translate_errors(client_id):
        result = service.register_subscription(
            client_id,
            end_date=_day_start(request.end_date),
            start_date=_day_start(request.start_date),
            payment=request.payment.to_payment() if request.payment else None,
        )
    return StatusResponse(client_id=client_id, status=result.value)


@router.put(
    "/{client_id}/exemption",
    response_model=StatusResponse,
    summary="Mark a client as exempt from payments",
)
async def set_exemption(
    client_id: str,
    request: ExemptionRequest,
    coach: CoachIdentity,
    service: StatusServiceDep,
) -> StatusResponse:
    with _translate_errors(client_id):
        result = service.set_payment_exempt(client_id, request.exempt)
    return StatusResponse(client_id=client_id, status=result.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _day_start(value: Optional[date]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.combine(value, datetime.min.time())


@contextmanager
def _translate_errors(client_id: str) -> Generator[None, None, None]:
    """Map service errors onto HTTP responses."""
    try:
        yield
    except ClientNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    except PaymentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        )
    except StatusPersistenceError as e:
        logger.error(
            "Subscription change not saved",
            extra={"client_id": client_id, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not save the change. Please try again.",
        )

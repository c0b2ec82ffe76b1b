"""
Client subscription status.

`calculate_status` is the single source of truth for whether a client is
pending, active or inactive. The `status` field on the client document is
only a cache of it: every mutation that can change its inputs (payments,
end date, exemption) goes through ClientStatusService, which writes the
mutation and the recomputed status in one batch.
"""

import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence
from uuid import uuid4

from . import paths
from .auth import Authorizer, is_client_document
from .dates import to_local_datetime
from .models import (
    ClientSummary,
    PaymentFrequency,
    PaymentMethod,
    PaymentRecord,
    StoreTimestamp,
    SubscriptionStatus,
)
from .store import Document, OrderBy, RecordStore, RecordStoreError

logger = logging.getLogger(__name__)


class ClientNotFoundError(Exception):
    """Raised when a client document doesn't exist."""
    pass


class PaymentNotFoundError(Exception):
    """Raised when deleting a payment that doesn't exist."""
    pass


class StatusPersistenceError(Exception):
    """Raised when a mutation and its status update could not be written."""
    pass


def calculate_status(
    subscription_end_date: Any,
    payments: Optional[Sequence[Any]],
    is_exempt: bool,
    today: Optional[date] = None,
) -> SubscriptionStatus:
    """
    Derive a client's status. First matching rule wins:

    1. Exempt clients are always active.
    2. No payments at all: pending.
    3. Paid, no end date: active.
    4. Paid, end date can't be parsed: active. A malformed date must not
       lock out a paying client.
    5. Otherwise active until the end of the end date's day, then inactive.

    Pure: the result depends only on the arguments (and today's date).
    """
    if is_exempt is True:
        return SubscriptionStatus.ACTIVE

    if not payments:
        return SubscriptionStatus.PENDING

    if subscription_end_date is None or subscription_end_date == "":
        return SubscriptionStatus.ACTIVE

    end = to_local_datetime(subscription_end_date)
    if end is None:
        logger.warning(
            "Unparsable subscription end date, treating client as active",
            extra={"value": repr(subscription_end_date)[:64]}
        )
        return SubscriptionStatus.ACTIVE

    today = today or date.today()
    if today <= end.date():
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.INACTIVE


class ClientStatusService:
    """
    Payment and subscription mutations with status recomputation.

    No locks are taken. Status writers are expected to be serial per client
    (one coach registering one payment at a time).
    """

    def __init__(self, store: RecordStore, authorizer: Optional[Authorizer] = None) -> None:
        self._store = store
        self._authorizer = authorizer

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def list_payments(self, client_id: str) -> list[PaymentRecord]:
        """Payments, most recent first."""
        self._get_client(client_id)
        documents = self._store.query(
            paths.payments(client_id),
            order_by=OrderBy("date", "desc"),
        )
        return [_payment_from_document(document) for document in documents]

    def current_status(self, client_id: str, today: Optional[date] = None) -> SubscriptionStatus:
        """Compute without persisting."""
        client = self._get_client(client_id)
        payments = self._store.list_collection(paths.payments(client_id))
        return _status_for(client, payments, today)

    def list_clients(
        self,
        status_filter: str = "all",
        today: Optional[date] = None,
    ) -> list[ClientSummary]:
        """
        Clients with a freshly computed status, ordered by name.

        "all" hides inactive clients; any other value keeps only clients
        with that status.
        """
        summaries = []

        for document in self._store.list_collection(paths.CLIENTS):
            if not is_client_document(document.data, self._authorizer):
                continue

            try:
                payments = self._store.list_collection(paths.payments(document.id))
            except RecordStoreError as e:
                # Same fallback the dashboard has always used: no payments visible
                logger.error(
                    "Failed to load payments for client",
                    extra={"client_id": document.id, "error": str(e)}
                )
                payments = []

            status = _status_for(document.data, payments, today)
            summaries.append(ClientSummary(
                id=document.id,
                name=document.data.get("name") or "",
                email=document.data.get("email") or "",
                status=status,
                is_payment_exempt=document.data.get("isPaymentExempt") is True,
                subscription_end_date=document.data.get("subscriptionEndDate"),
                payment_count=len(payments),
            ))

        if status_filter == "all":
            summaries = [s for s in summaries if s.status is not SubscriptionStatus.INACTIVE]
        else:
            wanted = SubscriptionStatus(status_filter)
            summaries = [s for s in summaries if s.status is wanted]

        return sorted(summaries, key=lambda s: s.name.lower())

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def add_payment(
        self,
        client_id: str,
        payment: PaymentRecord,
        today: Optional[date] = None,
    ) -> SubscriptionStatus:
        client = self._get_client(client_id)
        payments = self._store.list_collection(paths.payments(client_id))

        # The new payment counts towards the status it is written with
        status = calculate_status(
            client.get("subscriptionEndDate"),
            [*payments, payment],
            client.get("isPaymentExempt") is True,
            today,
        )

        batch = self._store.batch()
        batch.set(paths.payment(client_id, payment.id), _payment_to_document(payment))
        batch.set(paths.client(client_id), _status_fields(status), merge=True)
        self._commit(batch, client_id, "add_payment")

        logger.info(
            "Payment registered",
            extra={
                "client_id": client_id,
                "payment_id": payment.id,
                "status": status.value,
            }
        )
        return status

    def delete_payment(
        self,
        client_id: str,
        payment_id: str,
        today: Optional[date] = None,
    ) -> SubscriptionStatus:
        client = self._get_client(client_id)
        payments = self._store.list_collection(paths.payments(client_id))

        remaining = [p for p in payments if p.id != payment_id]
        if len(remaining) == len(payments):
            raise PaymentNotFoundError(f"Payment {payment_id} not found")

        status = calculate_status(
            client.get("subscriptionEndDate"),
            remaining,
            client.get("isPaymentExempt") is True,
            today,
        )

        batch = self._store.batch()
        batch.delete(paths.payment(client_id, payment_id))
        batch.set(paths.client(client_id), _status_fields(status), merge=True)
        self._commit(batch, client_id, "delete_payment")

        logger.info(
            "Payment deleted",
            extra={
                "client_id": client_id,
                "payment_id": payment_id,
                "status": status.value,
            }
        )
        return status

    def register_subscription(
        self,
        client_id: str,
        end_date: Optional[datetime],
        start_date: Optional[datetime] = None,
        payment: Optional[PaymentRecord] = None,
        today: Optional[date] = None,
    ) -> SubscriptionStatus:
        """
        Set the subscription window, optionally registering its payment.

        A None end date clears it (open-ended subscription).
        """
        client = self._get_client(client_id)
        payments: list[Any] = list(self._store.list_collection(paths.payments(client_id)))
        if payment is not None:
            payments.append(payment)

        status = calculate_status(
            end_date,
            payments,
            client.get("isPaymentExempt") is True,
            today,
        )

        fields = _status_fields(status)
        fields["subscriptionEndDate"] = _timestamp_or_none(end_date)
        if start_date is not None:
            fields["subscriptionStartDate"] = _timestamp_or_none(start_date)

        batch = self._store.batch()
        if payment is not None:
            batch.set(paths.payment(client_id, payment.id), _payment_to_document(payment))
        batch.set(paths.client(client_id), fields, merge=True)
        self._commit(batch, client_id, "register_subscription")

        logger.info(
            "Subscription registered",
            extra={"client_id": client_id, "status": status.value}
        )
        return status

    def set_payment_exempt(
        self,
        client_id: str,
        exempt: bool,
        today: Optional[date] = None,
    ) -> SubscriptionStatus:
        client = self._get_client(client_id)
        payments = self._store.list_collection(paths.payments(client_id))

        status = calculate_status(client.get("subscriptionEndDate"), payments, exempt, today)

        fields = _status_fields(status)
        fields["isPaymentExempt"] = exempt

        batch = self._store.batch()
        batch.set(paths.client(client_id), fields, merge=True)
        self._commit(batch, client_id, "set_payment_exempt")

        return status

    def recalculate(self, client_id: str, today: Optional[date] = None) -> SubscriptionStatus:
        """
        Recompute and persist the cached status.

        Only writes when the cached value is stale.
        """
        client = self._get_client(client_id)
        payments = self._store.list_collection(paths.payments(client_id))
        status = _status_for(client, payments, today)

        if client.get("status") != status.value:
            batch = self._store.batch()
            batch.set(paths.client(client_id), _status_fields(status), merge=True)
            self._commit(batch, client_id, "recalculate")
            logger.info(
                "Corrected stale client status",
                extra={
                    "client_id": client_id,
                    "previous": client.get("status"),
                    "status": status.value,
                }
            )

        return status

    def recalculate_all(self, today: Optional[date] = None) -> dict[str, SubscriptionStatus]:
        results = {}
        for document in self._store.list_collection(paths.CLIENTS):
            if not is_client_document(document.data, self._authorizer):
                continue
            results[document.id] = self.recalculate(document.id, today)
        return results

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _get_client(self, client_id: str) -> dict[str, Any]:
        data = self._store.get(paths.client(client_id))
        if data is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return data

    def _commit(self, batch, client_id: str, operation: str) -> None:
        try:
            batch.commit()
        except RecordStoreError as e:
            logger.error(
                "Failed to persist mutation with status",
                extra={
                    "client_id": client_id,
                    "operation": operation,
                    "error": str(e),
                }
            )
            raise StatusPersistenceError(
                f"{operation} failed for client {client_id}: {e}"
            ) from e


def new_payment(
    date: datetime,
    method: PaymentMethod,
    amount: Optional[float] = None,
    frequency: Optional[PaymentFrequency] = None,
    notes: str = "",
    other_method: Optional[str] = None,
) -> PaymentRecord:
    """Create a payment with a fresh id."""
    return PaymentRecord(
        id=uuid4().hex,
        date=date,
        method=method,
        amount=amount,
        frequency=frequency,
        notes=notes,
        other_method=other_method,
    )


def _status_for(
    client: dict[str, Any],
    payments: Iterable[Any],
    today: Optional[date],
) -> SubscriptionStatus:
    return calculate_status(
        client.get("subscriptionEndDate"),
        list(payments),
        client.get("isPaymentExempt") is True,
        today,
    )


def _status_fields(status: SubscriptionStatus) -> dict[str, Any]:
    return {"status": status.value, "updatedAt": StoreTimestamp.now()}


def _timestamp_or_none(value: Optional[datetime]) -> Optional[StoreTimestamp]:
    if value is None:
        return None
    return StoreTimestamp.from_datetime(value)


def _payment_to_document(payment: PaymentRecord) -> dict[str, Any]:
    data: dict[str, Any] = {
        "date": StoreTimestamp.from_datetime(payment.date),
        "amount": payment.amount,
        "method": payment.method.value,
        "frequency": payment.frequency.value if payment.frequency else None,
        "notes": payment.notes,
        "createdAt": StoreTimestamp.now(),
    }
    if payment.other_method:
        data["otherMethod"] = payment.other_method
    return data


def _payment_from_document(document: Document) -> PaymentRecord:
    data = document.data
    frequency = data.get("frequency")
    return PaymentRecord(
        id=document.id,
        date=to_local_datetime(data.get("date")) or datetime.fromtimestamp(0),
        method=PaymentMethod(data.get("method") or PaymentMethod.OTHER.value),
        amount=data.get("amount"),
        frequency=PaymentFrequency(frequency) if frequency else None,
        notes=data.get("notes") or "",
        other_method=data.get("otherMethod"),
    )

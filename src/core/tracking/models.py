"""
Domain models for client tracking.

These models represent the core business concepts of the coaching portal:
activity days, payments, subscription status and personal records. They
have no dependencies on FastAPI or on a particular database. The record
store hands us plain dicts; the services translate them into these types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class SubscriptionStatus(Enum):
    """Three-state subscription status shown on the coach dashboard."""
    PENDING = "pending"    # No payment ever registered
    ACTIVE = "active"
    INACTIVE = "inactive"  # Subscription end date has passed


class PaymentMethod(Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    DEBIT = "debit"
    CREDIT = "credit"
    OTHER = "other"


class PaymentFrequency(Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    INSTALLMENTS = "installments"
    DAYS = "days"
    PER_CLASS = "per_class"


class RecordKind(Enum):
    """
    Kind of personal record.

    The two kinds compare in opposite directions: a heavier RM is better,
    a shorter PR time is better.
    """
    RM = "RM"  # Max load
    PR = "PR"  # Best time

    @property
    def array_field(self) -> str:
        """Name of the array holding this kind in the records document."""
        return "rms" if self is RecordKind.RM else "prs"

    @property
    def value_field(self) -> str:
        """Name of the value key inside each stored entry."""
        return "weight" if self is RecordKind.RM else "time"


class ActivityCategory(Enum):
    """
    How a calendar day renders.

    A day with exactly one activity flag renders as that activity. Two or
    three flags collapse into MULTIPLE.
    """
    NONE = "none"
    WORKOUT = "workout"
    FEEDBACK = "feedback"
    LOAD_EFFORT = "load_effort"
    MULTIPLE = "multiple"


@dataclass(frozen=True)
class StoreTimestamp:
    """
    The record store's native timestamp.

    Seconds and nanoseconds since the epoch, the same shape document
    databases use for server timestamps. Frozen because it's a value.
    """
    seconds: int
    nanoseconds: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.nanoseconds < 1_000_000_000:
            raise ValueError("nanoseconds must be in [0, 1e9)")

    def to_datetime(self) -> datetime:
        """Naive datetime in local time."""
        return datetime.fromtimestamp(self.seconds + self.nanoseconds / 1e9)

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanoseconds // 1_000_000

    @classmethod
    def from_datetime(cls, value: datetime) -> "StoreTimestamp":
        """Naive datetimes are interpreted as local time."""
        epoch = value.timestamp()
        seconds = int(epoch // 1)
        nanoseconds = int(round((epoch - seconds) * 1e9))
        if nanoseconds >= 1_000_000_000:
            seconds, nanoseconds = seconds + 1, 0
        return cls(seconds=seconds, nanoseconds=nanoseconds)

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> "StoreTimestamp":
        """Accept both {"seconds": ...} and the serialized {"_seconds": ...} form."""
        seconds = value.get("seconds", value.get("_seconds"))
        nanoseconds = value.get("nanoseconds", value.get("_nanoseconds", 0))
        if seconds is None:
            raise ValueError("Timestamp mapping has no seconds")
        return cls(seconds=int(seconds), nanoseconds=int(nanoseconds or 0))

    @classmethod
    def now(cls) -> "StoreTimestamp":
        return cls.from_datetime(datetime.now())


@dataclass
class ActivityRecord:
    """
    What happened on one calendar day for one client.

    Derived on every aggregation call and never persisted. Flags are only
    ever switched on while merging sources.
    """
    day_key: str
    has_workout: bool = False
    has_feedback: bool = False
    has_load_effort: bool = False

    @property
    def flag_count(self) -> int:
        return sum((self.has_workout, self.has_feedback, self.has_load_effort))

    @property
    def category(self) -> ActivityCategory:
        if self.flag_count >= 2:
            return ActivityCategory.MULTIPLE
        if self.has_workout:
            return ActivityCategory.WORKOUT
        if self.has_feedback:
            return ActivityCategory.FEEDBACK
        if self.has_load_effort:
            return ActivityCategory.LOAD_EFFORT
        return ActivityCategory.NONE


@dataclass
class PaymentRecord:
    """
    A payment registered by the coach.

    Immutable once created; the only allowed change is deletion.
    """
    id: str
    date: datetime
    method: PaymentMethod
    amount: Optional[float] = None
    frequency: Optional[PaymentFrequency] = None
    notes: str = ""
    other_method: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount is not None and self.amount < 0:
            raise ValueError("Payment amount cannot be negative")
        if self.method is not PaymentMethod.OTHER:
            # Free-text method only makes sense for "other"
            self.other_method = None
        elif self.other_method is not None:
            self.other_method = self.other_method.strip() or None


@dataclass
class PersonalRecord:
    """
    A client's RM (max load) or PR (best time) for one exercise.

    `value` is free text as the client typed it: "100kg" for an RM,
    "25:30" for a PR. `date` is whatever the store held (epoch millis for
    entries this service writes).
    """
    id: str
    exercise: str
    value: str
    implement: str = ""
    date: Any = None

    def __post_init__(self) -> None:
        if not self.exercise.strip():
            raise ValueError("Exercise name cannot be empty")
        if not self.value.strip():
            raise ValueError("Record value cannot be empty")


@dataclass
class ComparisonResult:
    """A peer's record that is equal to or better than a new entry."""
    client_id: str
    client_name: str
    value: str
    exercise: str
    date: Any = None


@dataclass
class ClientSummary:
    """A client row on the coach dashboard."""
    id: str
    name: str
    email: str
    status: SubscriptionStatus
    is_payment_exempt: bool = False
    subscription_end_date: Any = None
    payment_count: int = 0


@dataclass
class RecordSubmission:
    """
    Outcome of submitting a new personal record.

    When peers hold equal-or-better records and the caller did not confirm,
    `saved` is None and `comparisons` explains why.
    """
    kind: RecordKind
    saved: Optional[PersonalRecord] = None
    comparisons: list[ComparisonResult] = field(default_factory=list)

    @property
    def needs_confirmation(self) -> bool:
        return self.saved is None and bool(self.comparisons)

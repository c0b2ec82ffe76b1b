"""
Client tracking logic.

Contains the activity aggregation, subscription status and personal
record comparison rules, plus the services that write their inputs.
"""

from .activity import ActivityAggregator, classify_day
from .auth import AllowListAuthorizer, Authorizer
from .dates import to_day_key, to_local_datetime
from .journal import TrainingJournal
from .models import (
    ActivityCategory,
    ActivityRecord,
    ComparisonResult,
    PaymentFrequency,
    PaymentMethod,
    PaymentRecord,
    PersonalRecord,
    RecordKind,
    StoreTimestamp,
    SubscriptionStatus,
)
from .records import PersonalRecordComparator, PersonalRecordService
from .status import ClientStatusService, calculate_status
from .store import RecordStore

__all__ = [
    "ActivityAggregator",
    "ActivityCategory",
    "ActivityRecord",
    "AllowListAuthorizer",
    "Authorizer",
    "ClientStatusService",
    "ComparisonResult",
    "PaymentFrequency",
    "PaymentMethod",
    "PaymentRecord",
    "PersonalRecord",
    "PersonalRecordComparator",
    "PersonalRecordService",
    "RecordKind",
    "RecordStore",
    "StoreTimestamp",
    "SubscriptionStatus",
    "TrainingJournal",
    "calculate_status",
    "classify_day",
    "to_day_key",
    "to_local_datetime",
]

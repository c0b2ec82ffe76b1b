"""
FastAPI dependency injection.

Dependencies provide instances of services, stores, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests with an in-memory store
- Configuration is centralized
- Resource lifecycle (connections) is managed properly

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.tracking.activity import ActivityAggregator
from ..core.tracking import paths
from ..core.tracking.auth import AllowListAuthorizer, Authorizer, can_access_client
from ..core.tracking.journal import TrainingJournal
from ..core.tracking.records import PersonalRecordService
from ..core.tracking.status import ClientStatusService
from ..core.tracking.store import RecordStore, RecordStoreError
from ..infrastructure.memory.store import InMemoryRecordStore
from ..infrastructure.snowflake.client import create_snowflake_connection
from ..infrastructure.snowflake.repositories.documents import (
    SnowflakeConfig,
    SnowflakeDocumentStore,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Global mock store (shared across requests so data persists in mock mode)
_mock_record_store: Optional[InMemoryRecordStore] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


def get_authorizer(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Authorizer:
    """Coach allow-list from configuration."""
    return AllowListAuthorizer(settings.coach_emails_list)


async def get_identity(
    api_key: Annotated[str, Depends(verify_api_key)],
    x_user_email: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """
    Email of the user making the request.

    Authentication happens upstream; we only receive the resolved identity.
    """
    return x_user_email.strip().lower() if x_user_email else None


async def is_coach_request(
    identity: Annotated[Optional[str], Depends(get_identity)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
) -> bool:
    return authorizer.is_coach(identity)


async def require_coach(
    identity: Annotated[Optional[str], Depends(get_identity)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
) -> str:
    """Reject requests from anyone but a coach."""
    if not authorizer.is_coach(identity):
        logger.warning(
            "Coach-only operation attempted",
            extra={"identity": identity or "anonymous"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only coaches can perform this operation",
        )
    return identity or ""


# ---------------------------------------------------------------------------
# Store Dependencies
# ---------------------------------------------------------------------------

def get_record_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[RecordStore, None, None]:
    """
    Provide the record store.

    This is a generator function (yields instead of returns) because
    the Snowflake connection must be closed after the request.

    In mock mode, we reuse the same in-memory store across requests
    so that data persists during the session.
    """
    global _mock_record_store

    if settings.snowflake_mock_mode:
        if _mock_record_store is None:
            _mock_record_store = InMemoryRecordStore()
            logger.info("Created shared in-memory record store")
        yield _mock_record_store
    else:
        config = SnowflakeConfig(
            account=settings.snowflake_account,
            user=settings.snowflake_user,
            password=settings.snowflake_password or None,
            private_key_path=settings.snowflake_private_key_path,
            private_key_base64=settings.snowflake_private_key_base64,
            database=settings.snowflake_database,
            schema=settings.snowflake_schema,
            warehouse=settings.snowflake_warehouse,
            role=settings.snowflake_role,
        )

        with create_snowflake_connection(config=config) as conn:
            store = SnowflakeDocumentStore(conn, table=settings.snowflake_documents_table)
            logger.debug("Created SnowflakeDocumentStore")
            yield store


async def require_client_access(
    client_id: str,
    identity: Annotated[Optional[str], Depends(get_identity)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    store: Annotated[RecordStore, Depends(get_record_store)],
) -> str:
    """
    Restrict a client's routes to coaches and to the client themselves.

    Returns the client id from the path.
    """
    if authorizer.is_coach(identity):
        return client_id

    try:
        client_data = store.get(paths.client(client_id))
    except RecordStoreError as e:
        logger.error(
            "Failed to read client for access check",
            extra={"client_id": client_id, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client storage unavailable",
        )

    if not can_access_client(authorizer, identity, client_data):
        logger.warning(
            "Client access denied",
            extra={"client_id": client_id, "identity": identity or "anonymous"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access this client",
        )

    return client_id


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_activity_aggregator(
    store: Annotated[RecordStore, Depends(get_record_store)],
) -> ActivityAggregator:
    return ActivityAggregator(store)


def get_training_journal(
    store: Annotated[RecordStore, Depends(get_record_store)],
) -> TrainingJournal:
    return TrainingJournal(store)


def get_status_service(
    store: Annotated[RecordStore, Depends(get_record_store)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
) -> ClientStatusService:
    return ClientStatusService(store, authorizer)


def get_record_service(
    store: Annotated[RecordStore, Depends(get_record_store)],
) -> PersonalRecordService:
    return PersonalRecordService(store)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
CoachIdentity = Annotated[str, Depends(require_coach)]
ClientAccess = Annotated[str, Depends(require_client_access)]
IsCoach = Annotated[bool, Depends(is_coach_request)]
RecordStoreDep = Annotated[RecordStore, Depends(get_record_store)]
ActivityAggregatorDep = Annotated[ActivityAggregator, Depends(get_activity_aggregator)]
TrainingJournalDep = Annotated[TrainingJournal, Depends(get_training_journal)]
StatusServiceDep = Annotated[ClientStatusService, Depends(get_status_service)]
RecordServiceDep = Annotated[PersonalRecordService, Depends(get_record_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

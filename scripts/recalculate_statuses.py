#!/usr/bin/env python3
"""
Recompute and store the subscription status of every client.

The `status` field on a client document is a cache. Subscriptions expire
without anything being written, so a client whose end date passed
yesterday still reads "active" until something recomputes it. Run this
daily (cron, scheduled task) to correct stale values.

Usage:
    python scripts/recalculate_statuses.py
    python scripts/recalculate_statuses.py --dry-run

Requires:
    - .env file with Snowflake credentials and COACH_EMAILS
"""

import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.config.settings import get_settings  # noqa: E402
from src.core.tracking import paths  # noqa: E402
from src.core.tracking.auth import AllowListAuthorizer, is_client_document  # noqa: E402
from src.core.tracking.status import (  # noqa: E402
    ClientNotFoundError,
    ClientStatusService,
    StatusPersistenceError,
)
from src.infrastructure.snowflake.client import get_snowflake_connection  # noqa: E402
from src.infrastructure.snowflake.repositories.documents import (  # noqa: E402
    SnowflakeConfig,
    SnowflakeDocumentStore,
)


def recalculate(store, authorizer, dry_run: bool = False) -> bool:
    service = ClientStatusService(store, authorizer)

    if dry_run:
        print("\n=== DRY RUN - No status will be written ===\n")
        for document in store.list_collection(paths.CLIENTS):
            if not is_client_document(document.data, authorizer):
                continue
            status = service.current_status(document.id)
            marker = "" if document.data.get("status") == status.value else "  (stale)"
            print(f"{document.id}: {status.value}{marker}")
        return True

    errors = 0
    counts: dict[str, int] = {}

    for document in store.list_collection(paths.CLIENTS):
        if not is_client_document(document.data, authorizer):
            continue
        try:
            status = service.recalculate(document.id)
        except (ClientNotFoundError, StatusPersistenceError) as e:
            print(f"[ERR] {document.id}: {e}")
            errors += 1
            continue
        counts[status.value] = counts.get(status.value, 0) + 1

    print("\n=== Recalculation Complete ===")
    for status, count in sorted(counts.items()):
        print(f"  {status}: {count}")
    print(f"Errors: {errors}")

    return errors == 0


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Recompute every client\'s subscription status')
    parser.add_argument('--dry-run', action='store_true', help='Show statuses, don\'t write')
    args = parser.parse_args()

    settings = get_settings()
    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        sys.exit(1)

    if settings.snowflake_mock_mode:
        print("ERROR: SNOWFLAKE_MOCK_MODE is on; nothing to recalculate")
        sys.exit(1)

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

    print(f"Connecting to Snowflake account: {config.account}")
    with get_snowflake_connection(config) as conn:
        store = SnowflakeDocumentStore(conn, table=settings.snowflake_documents_table)
        success = recalculate(
            store,
            AllowListAuthorizer(settings.coach_emails_list),
            dry_run=args.dry_run,
        )

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()

"""
Repositories for the snapshots and snapshot_shares tables.

Each repository is constructed with the asyncpg pool created in the application
lifespan and runs the parameterized statements from ``emailmetrics.sql``.
Rows are returned as pydantic row models (SnapshotRecord, ShareRecord).
"""

import logging
from datetime import date, datetime
from typing import Optional

import asyncpg
from asyncpg import Pool

from emailmetrics.core.database import execute_command, fetch_one, rows_affected
from emailmetrics.models import ShareRecord, SnapshotRecord
from emailmetrics.sql.share_queries import (
    get_deactivate_expired_shares_query,
    get_deactivate_share_query,
    get_insert_share_query,
    get_record_access_query,
    get_share_by_token_query,
    get_snapshot_query,
    get_update_last_email_date_query,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Snapshot Repository
# =============================================================================


class SnapshotRepository:
    """Reads snapshot rows and records the last email date after processing."""

    def __init__(self, pool: Pool):
        self._pool = pool

    async def get(self, snapshot_id: str) -> Optional[SnapshotRecord]:
        """
        Fetch one snapshot.

        Returns:
            SnapshotRecord, or None when the id is unknown or not a valid uuid.
        """
        try:
            row = await fetch_one(self._pool, get_snapshot_query(), snapshot_id)
        except asyncpg.DataError:
            logger.info(f"Rejected malformed snapshot id {snapshot_id!r}")
            return None
        return SnapshotRecord(**dict(row)) if row else None

    async def set_last_email_date(self, snapshot_id: str, last_email_date: date) -> bool:
        status = await execute_command(
            self._pool,
            get_update_last_email_date_query(),
            snapshot_id,
            last_email_date,
        )
        return rows_affected(status) > 0


# =============================================================================
# Share Repository
# =============================================================================


class ShareRepository:
    """
    Data access for public share links.

    ``get_by_token`` joins the share with its snapshot so the resolver gets the
    account and upload identifiers in one round trip.
    """

    def __init__(self, pool: Pool):
        self._pool = pool

    async def get_by_token(self, token: str) -> Optional[ShareRecord]:
        row = await fetch_one(self._pool, get_share_by_token_query(), token)
        return ShareRecord(**dict(row)) if row else None

    async def record_access(self, token: str) -> bool:
        """Increment access_count and stamp last_accessed_at."""
        status = await execute_command(self._pool, get_record_access_query(), token)
        return rows_affected(status) > 0

    async def create(
        self,
        snapshot_id: str,
        token: str,
        created_by: Optional[str],
        expires_at: Optional[datetime],
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ShareRecord:
        """
        Insert a new active share.

        Raises:
            asyncpg.UniqueViolationError: If the token already exists.
        """
        row = await fetch_one(
            self._pool,
            get_insert_share_query(),
            snapshot_id,
            token,
            created_by,
            expires_at,
            title,
            description,
        )
        return ShareRecord(**dict(row))

    async def deactivate(self, snapshot_id: str, token: str) -> bool:
        status = await execute_command(self._pool, get_deactivate_share_query(), snapshot_id, token)
        return rows_affected(status) > 0

    async def deactivate_expired(self, now: datetime) -> int:
        """Deactivate every active share that expired before ``now``; returns the count."""
        status = await execute_command(self._pool, get_deactivate_expired_shares_query(), now)
        return rows_affected(status)

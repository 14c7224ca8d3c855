"""
Async PostgreSQL connection pool module for Supabase database connectivity.

This module owns the asyncpg connection pool used by the snapshot API. The pool
is created once in the FastAPI lifespan, stored on ``app.state`` and handed to
every repository through its constructor, so no component reaches for a
module-level client on its own.

Key Components:
- create_db_pool(): Build the connection pool from Settings
- close_db_pool(): Gracefully close a pool at shutdown
- fetch_rows() / fetch_one() / execute_command(): Thin query helpers that
  acquire and release a connection around a single statement

Connection Pool Configuration:
- min_size: 1 (minimum idle connections kept in pool)
- max_size: 10 (maximum connections in pool)
- command_timeout: 60 seconds (query timeout)

Usage:
    # At application startup (in FastAPI lifespan)
    app.state.db_pool = await create_db_pool(settings)

    # In repositories
    row = await fetch_one(pool, "SELECT * FROM snapshots WHERE id = $1", snapshot_id)

    # At application shutdown
    await close_db_pool(app.state.db_pool)
"""

from typing import Any, List, Optional

import asyncpg
from asyncpg import Pool

from emailmetrics.core.config import Settings


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def create_db_pool(settings: Settings) -> Pool:
    """
    Create the database connection pool.

    The pool is configured with:
    - min_size=1: Keep at least one idle connection ready
    - max_size=10: Allow up to 10 concurrent connections
    - command_timeout=60: Queries timeout after 60 seconds

    Supabase's pooler (pgbouncer in transaction mode) does not support
    prepared statements across transactions, so the statement cache is
    disabled.

    Args:
        settings: Application settings holding DATABASE_URL.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    return await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=1,
        max_size=10,
        command_timeout=60,
        statement_cache_size=0,
    )


async def close_db_pool(pool: Optional[Pool]) -> None:
    """
    Close the database connection pool gracefully.

    Waits for active queries to complete before closing connections. Calling
    it with None is a no-op so shutdown paths stay simple when startup failed.
    """
    if pool is not None:
        await pool.close()


# =============================================================================
# Query Execution Helpers
# =============================================================================

async def fetch_rows(pool: Pool, query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
    """
    Execute a query and return every row.

    Args:
        pool: Connection pool to acquire from.
        query: SQL query string with optional $1, $2, etc. parameter placeholders.
        *args: Query parameters corresponding to placeholders in the query.
        timeout: Optional per-statement timeout in seconds.

    Returns:
        List[asyncpg.Record]: Rows returned by the query (possibly empty).
    """
    async with pool.acquire() as conn:
        return await conn.fetch(query, *args, timeout=timeout)


async def fetch_one(pool: Pool, query: str, *args: Any) -> Optional[asyncpg.Record]:
    """
    Execute a query expected to return at most one row.

    Returns:
        Optional[asyncpg.Record]: The first row matching the query, or None.
    """
    async with pool.acquire() as conn:
        return await conn.fetchrow(query, *args)


async def execute_command(pool: Pool, query: str, *args: Any) -> str:
    """
    Execute a command (INSERT/UPDATE/DELETE) and return the status string.

    Returns:
        str: The command status string (e.g., 'UPDATE 1').
    """
    async with pool.acquire() as conn:
        return await conn.execute(query, *args)


def rows_affected(status: str) -> int:
    """Parse the row count out of an asyncpg command status such as 'UPDATE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

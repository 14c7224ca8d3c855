"""
SQL Query Module for the Email Metrics snapshot API.

Provides parameterized SQL queries for:
- Snapshot and share-link rows (share_queries)
- storage.objects pattern searches used by the storage path locator
  (storage_queries)

Follows the Repository Pattern for clean separation between business logic
and data access.

Example usage:
    from emailmetrics.sql import (
        get_share_by_token_query,
        get_object_pattern_query,
        snapshot_file_pattern,
    )

    row = await fetch_one(pool, get_share_by_token_query(), token)
    names = await fetch_rows(
        pool,
        get_object_pattern_query(),
        'uploads',
        snapshot_file_pattern(snapshot_id, 'campaigns.csv'),
        100,
    )
"""

# =============================================================================
# SHARE / SNAPSHOT QUERIES
# =============================================================================

from emailmetrics.sql.share_queries import (
    SHARE_COLUMNS,
    get_share_by_token_query,
    get_record_access_query,
    get_insert_share_query,
    get_deactivate_share_query,
    get_deactivate_expired_shares_query,
    get_snapshot_query,
    get_update_last_email_date_query,
)

# =============================================================================
# STORAGE INDEX QUERIES
# =============================================================================

from emailmetrics.sql.storage_queries import (
    LIKE_ESCAPE,
    escape_like,
    snapshot_file_pattern,
    any_file_pattern,
    get_object_pattern_query,
)


__all__ = [
    # Share / snapshot queries
    'SHARE_COLUMNS',
    'get_share_by_token_query',
    'get_record_access_query',
    'get_insert_share_query',
    'get_deactivate_share_query',
    'get_deactivate_expired_shares_query',
    'get_snapshot_query',
    'get_update_last_email_date_query',
    # Storage index queries
    'LIKE_ESCAPE',
    'escape_like',
    'snapshot_file_pattern',
    'any_file_pattern',
    'get_object_pattern_query',
]

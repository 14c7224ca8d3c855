"""
Parameterized SQL for snapshots and public share links.

Tables:
    snapshots: id, account_id, upload_id, status, last_email_date
    snapshot_shares: id, snapshot_id, share_token, title, description,
        created_by, created_at, expires_at, is_active, access_count,
        last_accessed_at

All statements use asyncpg positional parameters ($1, $2, ...).
"""


# Columns returned for a share, joined with the snapshot it points at
SHARE_COLUMNS: str = """
        sh.share_token,
        sh.snapshot_id::text AS snapshot_id,
        sh.is_active,
        sh.expires_at,
        COALESCE(sh.access_count, 0) AS access_count,
        sh.last_accessed_at,
        sh.title,
        sh.description,
        sh.created_at,
        s.account_id::text AS account_id,
        s.upload_id::text AS upload_id
"""


def get_share_by_token_query() -> str:
    """
    Look up one share by exact token match.

    Parameters:
        $1: share_token

    Returns:
        str: Query returning the share row joined with its snapshot, or no rows.
    """
    return f"""
    SELECT {SHARE_COLUMNS}
    FROM snapshot_shares sh
    LEFT JOIN snapshots s ON s.id = sh.snapshot_id
    WHERE sh.share_token = $1
    """


def get_record_access_query() -> str:
    """
    Increment a share's access counter and stamp the access time.

    Parameters:
        $1: share_token
    """
    return """
    UPDATE snapshot_shares
    SET access_count = COALESCE(access_count, 0) + 1,
        last_accessed_at = NOW()
    WHERE share_token = $1
    """


def get_insert_share_query() -> str:
    """
    Insert a new active share.

    Parameters:
        $1: snapshot_id
        $2: share_token
        $3: created_by
        $4: expires_at (nullable)
        $5: title (nullable)
        $6: description (nullable)

    Returns:
        str: INSERT ... RETURNING the same columns as the lookup query.
    """
    return f"""
    WITH inserted AS (
        INSERT INTO snapshot_shares (
            snapshot_id, share_token, created_by, expires_at,
            title, description, is_active, access_count, created_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, TRUE, 0, NOW())
        RETURNING *
    )
    SELECT {SHARE_COLUMNS}
    FROM inserted sh
    LEFT JOIN snapshots s ON s.id = sh.snapshot_id
    """


def get_deactivate_share_query() -> str:
    """
    Deactivate one share of a snapshot.

    Parameters:
        $1: snapshot_id
        $2: share_token
    """
    return """
    UPDATE snapshot_shares
    SET is_active = FALSE
    WHERE snapshot_id = $1
      AND share_token = $2
      AND is_active = TRUE
    """


def get_deactivate_expired_shares_query() -> str:
    """
    Deactivate every active share whose expiry has passed.

    Parameters:
        $1: reference timestamp (timestamptz)
    """
    return """
    UPDATE snapshot_shares
    SET is_active = FALSE
    WHERE is_active = TRUE
      AND expires_at IS NOT NULL
      AND expires_at < $1
    """


def get_snapshot_query() -> str:
    """
    Fetch one snapshot row.

    Parameters:
        $1: snapshot id
    """
    return """
    SELECT
        id::text AS id,
        account_id::text AS account_id,
        upload_id::text AS upload_id,
        status,
        last_email_date
    FROM snapshots
    WHERE id = $1
    """


def get_update_last_email_date_query() -> str:
    """
    Persist the last email date observed in a snapshot's data.

    Parameters:
        $1: snapshot id
        $2: last_email_date (date)
    """
    return """
    UPDATE snapshots
    SET last_email_date = $2
    WHERE id = $1
    """

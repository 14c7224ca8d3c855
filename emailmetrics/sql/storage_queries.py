"""
Parameterized SQL for searching Supabase's storage.objects metadata table.

The storage path locator uses these queries for its index-backed search steps:
a snapshot-scoped match (``%/{snapshotId}/%{filename}``) and a bucket-wide match
on the bare filename (``%/{filename}``). Identifiers are escaped before they are
embedded in an ILIKE pattern so that ``_`` and ``%`` inside an id match
literally.
"""


# ILIKE escape character used by every pattern built here
LIKE_ESCAPE: str = '\\'


def escape_like(value: str) -> str:
    """
    Escape ILIKE wildcards in a literal value.

    Args:
        value: Raw identifier or filename.

    Returns:
        str: Value safe to embed inside an ILIKE pattern.

    Example:
        >>> escape_like('flows_v2.csv')
        'flows\\\\_v2.csv'
    """
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace('%', LIKE_ESCAPE + '%')
        .replace('_', LIKE_ESCAPE + '_')
    )


def snapshot_file_pattern(snapshot_id: str, filename: str) -> str:
    """Pattern for any object below a ``{snapshotId}`` folder ending in ``filename``."""
    return f"%/{escape_like(snapshot_id)}/%{escape_like(filename)}"


def any_file_pattern(filename: str) -> str:
    """Pattern for ``filename`` inside any folder of the bucket."""
    return f"%/{escape_like(filename)}"


def get_object_pattern_query() -> str:
    """
    Generate the storage.objects pattern search.

    Parameters:
        $1: bucket_id
        $2: ILIKE pattern (already escaped)
        $3: row limit

    Returns:
        str: PostgreSQL query selecting matching object names, ordered by name
        so the first row is stable across calls.
    """
    return """
    SELECT name
    FROM storage.objects
    WHERE bucket_id = $1
      AND name ILIKE $2 ESCAPE '\\'
    ORDER BY name ASC
    LIMIT $3
    """

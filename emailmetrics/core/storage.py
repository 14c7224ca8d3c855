"""
Object storage access for uploaded CSV exports.

This module wraps the two external stores the storage path locator searches:

- SupabaseStorageClient: the Supabase Storage REST API (bucket listings and
  object downloads) over an injected ``httpx.AsyncClient``.
- StorageObjectIndex: the ``storage.objects`` metadata table queried through the
  asyncpg pool with ILIKE patterns.

Both are constructed once in the FastAPI lifespan and passed into the services
that need them. Neither keeps module-level client state.

Error Contract:
- A missing object or folder (HTTP 400/404) is a normal miss: ``None`` or ``[]``.
- Timeouts, transport failures and 5xx responses raise StorageTransientError so
  the locator can treat that single search step as a miss and keep widening.

Usage:
    client = SupabaseStorageClient(http_client, settings)
    entries = await client.list_folder("uploads", "acct-1/upload-1")
    payload = await client.download("uploads", "acct-1/upload-1/campaigns.csv")
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import asyncpg
from asyncpg import Pool

from emailmetrics.core.config import Settings
from emailmetrics.core.database import fetch_rows
from emailmetrics.sql.storage_queries import get_object_pattern_query


logger = logging.getLogger(__name__)

# Supabase caps one listing page at 1000 entries
LIST_PAGE_SIZE: int = 1000

# Responses meaning "no such object / prefix" rather than a failure
MISS_STATUS_CODES = frozenset({400, 404})


# =============================================================================
# Exceptions
# =============================================================================

class StorageTransientError(Exception):
    """A storage call timed out or failed in a way that may succeed on retry."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation}: {detail}")


class BlobNotFoundError(Exception):
    """No candidate location in any bucket holds the requested file."""

    def __init__(self, filename: str, snapshot_id: Optional[str] = None):
        self.filename = filename
        self.snapshot_id = snapshot_id
        super().__init__(f"{filename} not found for snapshot {snapshot_id}")


# =============================================================================
# Path Helpers
# =============================================================================

def join_path(*segments: Optional[str]) -> str:
    """Join storage path segments, ignoring empty ones and stray slashes."""
    parts = [s.strip('/') for s in segments if s and s.strip('/')]
    return '/'.join(parts)


def is_folder_entry(entry: Dict[str, Any]) -> bool:
    """Supabase listings report folders as entries without an object id."""
    return entry.get('id') is None


# =============================================================================
# Supabase Storage REST Client
# =============================================================================

class SupabaseStorageClient:
    """
    Thin async client for the Supabase Storage REST API.

    Args:
        http_client: Shared ``httpx.AsyncClient`` owned by the application lifespan.
        settings: Settings providing the project URL, service key and timeout.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self._http = http_client
        self._base_url = settings.supabase_url.rstrip('/') + '/storage/v1'
        self._timeout = settings.storage_timeout_seconds
        self._headers = {
            'Authorization': f'Bearer {settings.supabase_service_role_key}',
            'apikey': settings.supabase_service_role_key,
        }

    async def list_folder(self, bucket: str, prefix: str) -> List[Dict[str, Any]]:
        """
        List the immediate children of ``prefix`` in ``bucket``.

        Args:
            bucket: Bucket name.
            prefix: Folder path without a trailing slash ('' for the bucket root).

        Returns:
            List of raw listing entries (``name`` relative to the prefix, ``id``
            None for folders). Empty when the prefix does not exist.

        Raises:
            StorageTransientError: On timeout, transport error or 5xx.
        """
        url = f"{self._base_url}/object/list/{quote(bucket)}"
        body = {
            'prefix': prefix.strip('/'),
            'limit': LIST_PAGE_SIZE,
            'offset': 0,
            'sortBy': {'column': 'name', 'order': 'asc'},
        }
        response = await self._request('POST', url, f"list {bucket}/{prefix}", json=body)
        if response is None:
            return []

        data = response.json()
        if not isinstance(data, list):
            logger.warning(f"Unexpected listing payload for {bucket}/{prefix}")
            return []
        return data

    async def download(self, bucket: str, path: str) -> Optional[bytes]:
        """
        Download one object.

        Returns:
            Raw object bytes, or None when the object does not exist.

        Raises:
            StorageTransientError: On timeout, transport error or 5xx.
        """
        url = f"{self._base_url}/object/{quote(bucket)}/{quote(path.strip('/'))}"
        response = await self._request('GET', url, f"download {bucket}/{path}")
        if response is None:
            return None
        return response.content

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> Optional[httpx.Response]:
        try:
            response = await self._http.request(
                method,
                url,
                headers=self._headers,
                timeout=self._timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise StorageTransientError(operation, f"timed out: {e}") from e
        except httpx.RequestError as e:
            raise StorageTransientError(operation, f"request failed: {e}") from e

        if response.status_code in MISS_STATUS_CODES:
            logger.debug(f"Storage miss on {operation} ({response.status_code})")
            return None
        if response.status_code >= 500:
            raise StorageTransientError(operation, f"server error {response.status_code}")
        if response.status_code >= 300:
            # 401/403 are configuration problems, not misses
            logger.error(f"Storage rejected {operation} with {response.status_code}")
            response.raise_for_status()
        return response


# =============================================================================
# storage.objects Metadata Index
# =============================================================================

class StorageObjectIndex:
    """
    Pattern search over Supabase's ``storage.objects`` table.

    Results are ordered by object name so repeated searches over unchanged
    storage return the same first hit.
    """

    def __init__(self, pool: Pool, settings: Settings):
        self._pool = pool
        self._limit = settings.locator_index_limit
        self._timeout = settings.storage_timeout_seconds

    async def search(self, bucket: str, pattern: str) -> List[str]:
        """
        Return object names in ``bucket`` matching an ILIKE ``pattern``.

        Raises:
            StorageTransientError: When the query times out or the connection drops.
        """
        query = get_object_pattern_query()
        try:
            rows = await fetch_rows(
                self._pool,
                query,
                bucket,
                pattern,
                self._limit,
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise StorageTransientError(f"index {bucket}", "query timed out") from e
        except (OSError, asyncpg.InterfaceError, asyncpg.exceptions.ConnectionDoesNotExistError) as e:
            raise StorageTransientError(f"index {bucket}", f"connection failed: {e}") from e

        return [row['name'] for row in rows]

"""
Storage Path Locator for uploaded CSV exports.

Upload paths drifted across product iterations (folder per upload, folder per
snapshot, flat layouts), so a canonical file is found with a widening search.
For every bucket, in priority order, the steps below run cheapest and strictest
first and the first hit wins:

    A. exact_parent: {account}/{upload}/{file}, then {account}/{snapshot}/{file}
    B. account_scan: {account}/{sub}/{file} for every subfolder of {account}/
    C. snapshot_index: storage.objects name ILIKE %/{snapshot}/%{file}
    D. root_snapshot_scan: {top}/{snapshot}/{file} for every top-level folder
    E. root_file_scan: {top}/{file} for every top-level folder
    F. global_index: storage.objects name ILIKE %/{file}, preferring a path
       with a {snapshot} segment, then one rooted at {account}, then the first

Each step runs under a timeout. A timeout or StorageTransientError makes that
step a miss and the search moves on; when every step of every bucket misses
the result is None.

Folder listings are memoized for the duration of one search, so steps D and E
share the bucket root listing and repeated parents are listed once.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from emailmetrics.core.storage import (
    StorageObjectIndex,
    StorageTransientError,
    SupabaseStorageClient,
    is_folder_entry,
    join_path,
)
from emailmetrics.models import CanonicalFile, CsvBlobLocation, LocatorStep
from emailmetrics.sql.storage_queries import any_file_pattern, snapshot_file_pattern

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Filename Allow-List
# =============================================================================

ALLOWED_CSV_FILES = frozenset(f.value for f in CanonicalFile)

CSV_FILENAME_RE = re.compile(r'^[a-z0-9_\-]+\.csv$', re.IGNORECASE)


def sanitize_csv_filename(name: Optional[str]) -> Optional[str]:
    """
    Validate a requested CSV filename.

    Returns:
        The trimmed name when it is one of the canonical files, otherwise None.

    Example:
        >>> sanitize_csv_filename(' flows.csv ')
        'flows.csv'
        >>> sanitize_csv_filename('../secrets.csv') is None
        True
    """
    if not name:
        return None
    candidate = name.strip()
    if not CSV_FILENAME_RE.match(candidate):
        return None
    return candidate if candidate in ALLOWED_CSV_FILES else None


# =============================================================================
# Per-Search Listing Cache
# =============================================================================


class _ListingCache:
    """Memoized folder listings for one search. Failed listings are not cached."""

    def __init__(self, storage: SupabaseStorageClient):
        self._storage = storage
        self._entries: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}

    async def entries(self, bucket: str, prefix: str) -> List[Dict[str, Any]]:
        key = (bucket, prefix)
        if key not in self._entries:
            self._entries[key] = await self._storage.list_folder(bucket, prefix)
        return self._entries[key]

    async def folders(self, bucket: str, prefix: str) -> List[str]:
        entries = await self.entries(bucket, prefix)
        return sorted(e['name'] for e in entries if is_folder_entry(e) and e.get('name'))

    async def has_file(self, bucket: str, prefix: str, filename: str) -> bool:
        entries = await self.entries(bucket, prefix)
        return any(e.get('name') == filename and not is_folder_entry(e) for e in entries)


Probe = Callable[[], Awaitable[Optional[str]]]


def _basename(path: str) -> str:
    return path.rsplit('/', 1)[-1]


# =============================================================================
# Locator
# =============================================================================


class StoragePathLocator:
    """
    Resolves canonical CSV filenames to a concrete (bucket, path).

    Args:
        storage: Storage REST client used for folder listings.
        index: storage.objects pattern search.
        buckets: Bucket names, highest priority first.
        step_timeout: Upper bound in seconds for one search step.
    """

    def __init__(
        self,
        storage: SupabaseStorageClient,
        index: StorageObjectIndex,
        buckets: Sequence[str],
        step_timeout: float = 15.0,
    ):
        self._storage = storage
        self._index = index
        self._buckets = list(buckets)
        self._step_timeout = step_timeout

    async def locate(
        self,
        account_id: Optional[str],
        upload_id: Optional[str],
        snapshot_id: Optional[str],
        filename: str,
    ) -> Optional[CsvBlobLocation]:
        """
        Find ``filename`` for the given identifiers.

        Args:
            account_id: Owning account id.
            upload_id: Upload id; the upload-folder candidate is skipped when None.
            snapshot_id: Snapshot id.
            filename: Canonical file name, e.g. 'campaigns.csv'.

        Returns:
            CsvBlobLocation of the first hit, or None when nothing matches.
        """
        cache = _ListingCache(self._storage)
        return await self._search(cache, account_id, upload_id, snapshot_id, filename)

    async def discover(
        self,
        account_id: Optional[str],
        upload_id: Optional[str],
        snapshot_id: Optional[str],
        filenames: Iterable[str] = tuple(f.value for f in CanonicalFile),
    ) -> Dict[str, CsvBlobLocation]:
        """
        Locate several files, sharing folder listings between them.

        Returns:
            Mapping of filename to location, containing only the files found.
        """
        cache = _ListingCache(self._storage)
        found: Dict[str, CsvBlobLocation] = {}
        for filename in filenames:
            location = await self._search(cache, account_id, upload_id, snapshot_id, filename)
            if location is not None:
                found[filename] = location
        return found

    # -------------------------------------------------------------------------
    # Search driver
    # -------------------------------------------------------------------------

    async def _search(
        self,
        cache: _ListingCache,
        account_id: Optional[str],
        upload_id: Optional[str],
        snapshot_id: Optional[str],
        filename: str,
    ) -> Optional[CsvBlobLocation]:
        for bucket in self._buckets:
            steps = self._steps(cache, bucket, account_id, upload_id, snapshot_id, filename)
            for step, probe in steps:
                try:
                    path = await asyncio.wait_for(probe(), timeout=self._step_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Locator step {step.value} timed out in {bucket} for {filename}")
                    continue
                except StorageTransientError as e:
                    logger.warning(f"Locator step {step.value} failed in {bucket} for {filename}: {e}")
                    continue

                if path:
                    logger.info(f"Located {filename} at {bucket}/{path} via {step.value}")
                    return CsvBlobLocation(bucket=bucket, path=path, step=step)

        logger.warning(
            f"Could not locate {filename} (account={account_id}, upload={upload_id}, "
            f"snapshot={snapshot_id}) in buckets {self._buckets}"
        )
        return None

    def _steps(
        self,
        cache: _ListingCache,
        bucket: str,
        account_id: Optional[str],
        upload_id: Optional[str],
        snapshot_id: Optional[str],
        filename: str,
    ) -> List[Tuple[LocatorStep, Probe]]:
        """Ordered probes for one bucket; nothing runs until a probe is awaited."""
        steps: List[Tuple[LocatorStep, Probe]] = []

        if account_id:
            steps.append((
                LocatorStep.EXACT_PARENT,
                lambda: self._exact_parents(cache, bucket, account_id, upload_id, snapshot_id, filename),
            ))
            steps.append((
                LocatorStep.ACCOUNT_SCAN,
                lambda: self._account_scan(cache, bucket, account_id, filename),
            ))
        if snapshot_id:
            steps.append((
                LocatorStep.SNAPSHOT_INDEX,
                lambda: self._index_first(bucket, snapshot_file_pattern(snapshot_id, filename), filename),
            ))
            steps.append((
                LocatorStep.ROOT_SNAPSHOT_SCAN,
                lambda: self._root_scan(cache, bucket, snapshot_id, filename),
            ))
        steps.append((
            LocatorStep.ROOT_FILE_SCAN,
            lambda: self._root_scan(cache, bucket, None, filename),
        ))
        steps.append((
            LocatorStep.GLOBAL_INDEX,
            lambda: self._global_index(bucket, account_id, snapshot_id, filename),
        ))
        return steps

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def _exact_parents(
        self,
        cache: _ListingCache,
        bucket: str,
        account_id: str,
        upload_id: Optional[str],
        snapshot_id: Optional[str],
        filename: str,
    ) -> Optional[str]:
        parents = [join_path(account_id, child) for child in (upload_id, snapshot_id) if child]
        for parent in parents:
            if await cache.has_file(bucket, parent, filename):
                return join_path(parent, filename)
        return None

    async def _account_scan(
        self,
        cache: _ListingCache,
        bucket: str,
        account_id: str,
        filename: str,
    ) -> Optional[str]:
        for folder in await cache.folders(bucket, account_id):
            parent = join_path(account_id, folder)
            if await cache.has_file(bucket, parent, filename):
                return join_path(parent, filename)
        return None

    async def _root_scan(
        self,
        cache: _ListingCache,
        bucket: str,
        snapshot_id: Optional[str],
        filename: str,
    ) -> Optional[str]:
        for top in await cache.folders(bucket, ''):
            parent = join_path(top, snapshot_id)
            if await cache.has_file(bucket, parent, filename):
                return join_path(parent, filename)
        return None

    async def _index_matches(self, bucket: str, pattern: str, filename: str) -> List[str]:
        names = await self._index.search(bucket, pattern)
        # ILIKE is case-insensitive and '%{file}' also matches longer names
        return [name for name in names if _basename(name) == filename]

    async def _index_first(self, bucket: str, pattern: str, filename: str) -> Optional[str]:
        matches = await self._index_matches(bucket, pattern, filename)
        return matches[0] if matches else None

    async def _global_index(
        self,
        bucket: str,
        account_id: Optional[str],
        snapshot_id: Optional[str],
        filename: str,
    ) -> Optional[str]:
        matches = await self._index_matches(bucket, any_file_pattern(filename), filename)
        if not matches:
            return None
        if snapshot_id:
            for name in matches:
                if snapshot_id in name.split('/')[:-1]:
                    return name
        if account_id:
            for name in matches:
                if name.startswith(f"{account_id}/"):
                    return name
        return matches[0]

"""
Snapshot Assembler and snapshot service.

``assemble`` is pure orchestration over already-downloaded CSV text: parse the
three canonical files (any of them may be missing), aggregate, and wrap the
result in the SnapshotJSON metadata envelope. It never raises for missing files
or bad data.

``SnapshotService`` is the I/O layer around it. It locates the three files with
the storage path locator, downloads them concurrently, assembles the document
and, for processing runs, records the snapshot's last email date.

Compare Ranges:
- prev-period: the same number of days ending the day before dateRange.start
- prev-year: the same number of days starting one year before dateRange.start
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple, Union

from emailmetrics.core.config import Settings
from emailmetrics.core.storage import BlobNotFoundError, SupabaseStorageClient
from emailmetrics.models import (
    CanonicalFile,
    CompareMode,
    CsvBlobLocation,
    DateRange,
    ParseDiagnostic,
    ShareResolution,
    SnapshotJSON,
    SnapshotMeta,
    SnapshotRecord,
    SnapshotSection,
)
from emailmetrics.services.aggregator import DEFAULT_CAMPAIGN_TOP_N, aggregate
from emailmetrics.services.csv_parser import (
    decode_csv_bytes,
    parse_campaigns,
    parse_flows,
    parse_subscribers,
)
from emailmetrics.services.repositories import SnapshotRepository
from emailmetrics.services.storage_locator import StoragePathLocator

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Compare Range
# =============================================================================


def _shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def compute_compare_range(
    date_range: DateRange,
    mode: Optional[Union[CompareMode, str]],
) -> Optional[DateRange]:
    """
    Comparison window for a snapshot date range.

    Args:
        date_range: Inclusive range of the snapshot.
        mode: 'prev-period', 'prev-year', or None.

    Returns:
        DateRange of equal length, or None when no mode is requested.

    Example:
        >>> compute_compare_range(DateRange(start='2024-01-11', end='2024-01-20'), 'prev-period')
        DateRange(start='2024-01-01', end='2024-01-10')
    """
    if not mode:
        return None
    mode = CompareMode(mode)
    start = date.fromisoformat(date_range.start)
    end = date.fromisoformat(date_range.end)
    days = (end - start).days + 1

    if mode == CompareMode.PREV_YEAR:
        prev_start = _shift_years(start, -1)
        prev_end = prev_start + timedelta(days=days - 1)
    else:
        prev_end = start - timedelta(days=1)
        prev_start = prev_end - timedelta(days=days - 1)
    return DateRange(start=prev_start.isoformat(), end=prev_end.isoformat())


# =============================================================================
# Assembly
# =============================================================================


def build_snapshot(
    snapshot_id: str,
    account_id: str,
    upload_id: Optional[str],
    campaigns_csv: Optional[str],
    flows_csv: Optional[str],
    subscribers_csv: Optional[str],
    *,
    compare_mode: Optional[Union[CompareMode, str]] = None,
    campaign_top_n: int = DEFAULT_CAMPAIGN_TOP_N,
    report_timezone: str = 'UTC',
    generated_at: Optional[datetime] = None,
) -> Tuple[SnapshotJSON, List[ParseDiagnostic]]:
    """
    Parse, aggregate and package one snapshot.

    Returns:
        Tuple of (SnapshotJSON, parse diagnostics from all three files).
    """
    campaigns = parse_campaigns(campaigns_csv)
    flows = parse_flows(flows_csv)
    subscribers = parse_subscribers(subscribers_csv)

    generated_at = generated_at or datetime.now(timezone.utc)
    result = aggregate(
        events=campaigns.records + flows.records,
        subscribers=subscribers.records,
        campaign_top_n=campaign_top_n,
        report_timezone=report_timezone,
        today=generated_at.date(),
    )

    meta = SnapshotMeta(
        snapshotId=snapshot_id,
        generatedAt=generated_at.isoformat(),
        accountId=account_id,
        uploadId=upload_id,
        dateRange=result.date_range,
        compareRange=compute_compare_range(result.date_range, compare_mode),
        sections=result.sections,
    )
    snapshot = SnapshotJSON(
        meta=meta,
        audienceOverview=result.audience_overview,
        emailPerformance=result.email_performance,
        flows=result.flows,
        campaigns=result.campaigns,
        dow=result.dow,
        hour=result.hour,
    )
    diagnostics = campaigns.diagnostics + flows.diagnostics + subscribers.diagnostics
    return snapshot, diagnostics


def assemble(
    snapshot_id: str,
    account_id: str,
    upload_id: Optional[str],
    campaigns_csv: Optional[str],
    flows_csv: Optional[str],
    subscribers_csv: Optional[str],
    *,
    compare_mode: Optional[Union[CompareMode, str]] = None,
    campaign_top_n: int = DEFAULT_CAMPAIGN_TOP_N,
    report_timezone: str = 'UTC',
    generated_at: Optional[datetime] = None,
) -> SnapshotJSON:
    """
    Build the SnapshotJSON document from raw CSV text.

    Any of the three texts may be None or empty. Byte-identical inputs give
    identical documents apart from meta.generatedAt.

    Example:
        >>> doc = assemble('s1', 'a1', 'u1', campaigns_text, None, None)
        >>> doc.meta.sections
        ['emailPerformance', 'campaigns', 'dow', 'hour']
    """
    snapshot, _ = build_snapshot(
        snapshot_id,
        account_id,
        upload_id,
        campaigns_csv,
        flows_csv,
        subscribers_csv,
        compare_mode=compare_mode,
        campaign_top_n=campaign_top_n,
        report_timezone=report_timezone,
        generated_at=generated_at,
    )
    return snapshot


# =============================================================================
# Snapshot Service
# =============================================================================


@dataclass
class SnapshotRef:
    """Identifier triple the locator needs for one snapshot."""
    snapshot_id: str
    account_id: str
    upload_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: SnapshotRecord) -> "SnapshotRef":
        return cls(snapshot_id=record.id, account_id=record.account_id, upload_id=record.upload_id)

    @classmethod
    def from_share(cls, share: ShareResolution) -> "SnapshotRef":
        return cls(snapshot_id=share.snapshotId, account_id=share.accountId, upload_id=share.uploadId)


@dataclass
class SnapshotBuild:
    """A built snapshot plus what was found and what parsing reported."""
    snapshot: SnapshotJSON
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)
    locations: Dict[str, CsvBlobLocation] = field(default_factory=dict)


class SnapshotService:
    """
    Locate, download and assemble snapshots.

    Args:
        locator: Storage path locator over the configured buckets.
        storage: Storage client used for downloads.
        snapshots: Repository used to persist last_email_date.
        settings: Aggregation settings (campaign_top_n, report_timezone).
    """

    def __init__(
        self,
        locator: StoragePathLocator,
        storage: SupabaseStorageClient,
        snapshots: SnapshotRepository,
        settings: Settings,
    ):
        self._locator = locator
        self._storage = storage
        self._snapshots = snapshots
        self._campaign_top_n = settings.campaign_top_n
        self._report_timezone = settings.report_timezone

    async def fetch_csv(self, ref: SnapshotRef, filename: str) -> Tuple[CsvBlobLocation, bytes]:
        """
        Locate and download one canonical file.

        Raises:
            BlobNotFoundError: When no bucket holds the file or it vanished
                between listing and download.
            StorageTransientError: When the download itself fails transiently.
        """
        location = await self._locator.locate(ref.account_id, ref.upload_id, ref.snapshot_id, filename)
        if location is None:
            raise BlobNotFoundError(filename, ref.snapshot_id)

        data = await self._storage.download(location.bucket, location.path)
        if data is None:
            raise BlobNotFoundError(filename, ref.snapshot_id)
        return location, data

    async def discover(self, ref: SnapshotRef) -> Dict[str, CsvBlobLocation]:
        """Locations of every canonical file that can be found for ``ref``."""
        return await self._locator.discover(ref.account_id, ref.upload_id, ref.snapshot_id)

    async def _fetch_text(self, ref: SnapshotRef, filename: str) -> Optional[Tuple[CsvBlobLocation, str]]:
        try:
            location, data = await self.fetch_csv(ref, filename)
        except BlobNotFoundError:
            logger.info(f"{filename} missing for snapshot {ref.snapshot_id}")
            return None

        text = decode_csv_bytes(data)
        return (location, text) if text.strip() else None

    async def build(
        self,
        ref: SnapshotRef,
        compare_mode: Optional[Union[CompareMode, str]] = None,
    ) -> SnapshotBuild:
        """
        Build the snapshot document for ``ref``.

        The three files are located and downloaded concurrently.

        Raises:
            BlobNotFoundError: When none of the three canonical files is found.
            StorageTransientError: When a located file cannot be downloaded.
        """
        files = [f.value for f in CanonicalFile]
        fetched = await asyncio.gather(*(self._fetch_text(ref, name) for name in files))
        by_name = dict(zip(files, fetched))

        if all(hit is None for hit in fetched):
            raise BlobNotFoundError(', '.join(files), ref.snapshot_id)

        def _text(name: CanonicalFile) -> Optional[str]:
            hit = by_name[name.value]
            return hit[1] if hit else None

        snapshot, diagnostics = build_snapshot(
            ref.snapshot_id,
            ref.account_id,
            ref.upload_id,
            _text(CanonicalFile.CAMPAIGNS),
            _text(CanonicalFile.FLOWS),
            _text(CanonicalFile.SUBSCRIBERS),
            compare_mode=compare_mode,
            campaign_top_n=self._campaign_top_n,
            report_timezone=self._report_timezone,
        )
        locations = {name: hit[0] for name, hit in by_name.items() if hit}
        return SnapshotBuild(snapshot=snapshot, diagnostics=diagnostics, locations=locations)

    async def process(self, record: SnapshotRecord) -> SnapshotBuild:
        """
        Build a snapshot and persist its last email date.

        last_email_date is set to dateRange.end only when the snapshot holds
        at least one dated email event.
        """
        build = await self.build(SnapshotRef.from_record(record))
        snapshot = build.snapshot
        if SnapshotSection.EMAIL_PERFORMANCE.value in snapshot.meta.sections:
            last_email_date = date.fromisoformat(snapshot.meta.dateRange.end)
            await self._snapshots.set_last_email_date(record.id, last_email_date)
            logger.info(f"Snapshot {record.id} last_email_date set to {last_email_date}")
        else:
            logger.info(f"Snapshot {record.id} has no dated email events, last_email_date unchanged")
        return build

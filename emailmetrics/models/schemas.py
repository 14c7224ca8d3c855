"""
Pydantic request/response models for the Email Metrics snapshot API.

This module provides type-safe data validation and serialization for:
- Canonical records produced by the CSV parser (email events, subscribers)
- Parse diagnostics reported alongside parsed records
- The SnapshotJSON document served to the dashboard and the public share view
- Storage resolution results (CsvBlobLocation)
- Snapshot and share rows read from the metadata store
- Share management requests/responses

SnapshotJSON keys are camelCase because the dashboard renders the document as
is. Row models mirror their table columns and keep snake_case.

All models use Pydantic v2 syntax.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from emailmetrics.models.enums import (
    DiagnosticLevel,
    EmailCategory,
    LocatorStep,
)


# =============================================================================
# Parser Output Models
# =============================================================================


class ParseDiagnostic(BaseModel):
    """
    A data-quality note emitted while parsing a CSV.

    Diagnostics describe what was skipped or coerced; they never stop parsing.
    """
    field: str = Field(
        ...,
        description="Canonical field (or 'row' / 'header') the note refers to"
    )
    message: str = Field(
        ...,
        description="Human readable description"
    )
    row_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="1-based data row number (header excluded)"
    )
    level: DiagnosticLevel = Field(
        default=DiagnosticLevel.DEBUG,
        description="Severity of the note"
    )


class CanonicalEmailEvent(BaseModel):
    """
    One campaign send or one flow-message day, normalized.

    emailsSent holds recipients for campaigns and delivered for flows.
    Events whose sentAt could not be parsed are excluded from aggregation.
    """
    category: EmailCategory
    name: str
    sentAt: Optional[datetime] = None
    emailsSent: int = 0
    revenue: float = 0.0
    uniqueOpens: int = 0
    uniqueClicks: int = 0
    totalOrders: int = 0
    unsubscribes: int = 0
    spamComplaints: int = 0
    bounces: int = 0


class Subscriber(BaseModel):
    """A profile row from subscribers.csv."""
    email: str = Field(..., min_length=1)
    consentStatus: str = ""
    createdAt: Optional[datetime] = None


# =============================================================================
# SnapshotJSON Models
# =============================================================================


class DateRange(BaseModel):
    """Inclusive whole-day range, formatted YYYY-MM-DD."""
    start: str
    end: str


class SnapshotMeta(BaseModel):
    """Metadata envelope of a SnapshotJSON document."""
    snapshotId: str
    generatedAt: str = Field(
        ...,
        description="UTC ISO-8601 timestamp of the build"
    )
    accountId: str
    uploadId: Optional[str] = None
    dateRange: DateRange
    granularity: Literal['daily'] = 'daily'
    compareRange: Optional[DateRange] = Field(
        default=None,
        description="Comparison window, only present when a compare mode was requested"
    )
    sections: List[str] = Field(default_factory=list)


class AudienceOverview(BaseModel):
    totalSubscribers: int = Field(..., ge=0)
    subscribedCount: int = Field(..., ge=0)
    unsubscribedCount: int = Field(..., ge=0)
    percentSubscribed: float = Field(..., ge=0, le=100)


class EmailTotals(BaseModel):
    """Sums over every dated campaign and flow event."""
    revenue: float = 0.0
    emailsSent: int = 0
    totalOrders: int = 0
    uniqueOpens: int = 0
    uniqueClicks: int = 0
    unsubscribes: int = 0
    spamComplaints: int = 0
    bounces: int = 0


class DerivedRates(BaseModel):
    """
    Rates derived from EmailTotals.

    Percentages are on a 0-100 scale; revenuePerEmail and avgOrderValue are
    currency amounts. Every value is 0 when its denominator is 0.
    """
    openRate: float = 0.0
    clickRate: float = 0.0
    clickToOpenRate: float = 0.0
    conversionRate: float = 0.0
    revenuePerEmail: float = 0.0
    avgOrderValue: float = 0.0
    unsubscribeRate: float = 0.0
    spamRate: float = 0.0
    bounceRate: float = 0.0


class EmailPerformance(BaseModel):
    totals: EmailTotals
    derived: DerivedRates


class FlowRollupItem(BaseModel):
    name: str
    emails: int
    revenue: float


class FlowsSection(BaseModel):
    totalFlowEmails: int = Field(
        ...,
        ge=0,
        description="Number of flow rows included in the snapshot"
    )
    flowNames: List[FlowRollupItem] = Field(default_factory=list)


class CampaignRollupItem(BaseModel):
    name: str
    revenue: float
    emailsSent: int


class CampaignsSection(BaseModel):
    totalCampaigns: int = Field(..., ge=0)
    topByRevenue: List[CampaignRollupItem] = Field(default_factory=list)


class DowBucket(BaseModel):
    dow: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    revenue: float = 0.0
    emailsSent: int = 0
    orders: int = 0


class HourBucket(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    revenue: float = 0.0
    emailsSent: int = 0
    orders: int = 0


class SnapshotJSON(BaseModel):
    """
    Aggregate document consumed by the private dashboard and the share view.

    Optional sections are None when there is nothing to render and are left
    out of the serialized payload entirely.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "meta": {
                    "snapshotId": "6c1f0d0e-3d4b-4c1e-9a57-2f8e3b8f5b11",
                    "generatedAt": "2024-02-01T12:00:00+00:00",
                    "accountId": "a6f7f0d2-4d7e-4a0f-8f1a-0b7f1f7e2c33",
                    "uploadId": "u-20240201",
                    "dateRange": {"start": "2024-01-01", "end": "2024-01-31"},
                    "granularity": "daily",
                    "sections": ["emailPerformance", "campaigns", "dow", "hour"]
                }
            }
        }
    )

    meta: SnapshotMeta
    audienceOverview: Optional[AudienceOverview] = None
    emailPerformance: Optional[EmailPerformance] = None
    flows: Optional[FlowsSection] = None
    campaigns: Optional[CampaignsSection] = None
    dow: Optional[List[DowBucket]] = None
    hour: Optional[List[HourBucket]] = None

    def to_payload(self) -> Dict:
        """Serialize for the wire, omitting absent sections."""
        return self.model_dump(mode='json', exclude_none=True)


# =============================================================================
# Storage Resolution Models
# =============================================================================


class CsvBlobLocation(BaseModel):
    """Exactly one blob across the candidate storage buckets."""
    bucket: str
    path: str
    step: Optional[LocatorStep] = Field(
        default=None,
        description="Search step that produced the hit"
    )


class ManifestResponse(BaseModel):
    """Canonical files that could be located for a shared snapshot."""
    snapshotId: str
    files: Dict[str, CsvBlobLocation] = Field(default_factory=dict)


# =============================================================================
# Metadata Store Row Models
# =============================================================================


class SnapshotRecord(BaseModel):
    """Row of the snapshots table, restricted to the columns used here."""
    id: str
    account_id: str
    upload_id: Optional[str] = None
    status: Optional[str] = None
    last_email_date: Optional[date] = None


class ShareRecord(BaseModel):
    """Row of snapshot_shares joined with its snapshot."""
    share_token: str
    snapshot_id: str
    is_active: bool = True
    expires_at: Optional[datetime] = None
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    account_id: Optional[str] = None
    upload_id: Optional[str] = None


class ShareResolution(BaseModel):
    """Identifiers yielded by a valid share token."""
    token: str
    snapshotId: str
    accountId: str
    uploadId: str
    expiresAt: Optional[datetime] = None


# =============================================================================
# Share Management API Models
# =============================================================================


class ShareCreateRequest(BaseModel):
    """Request body for creating a public share link."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "January performance",
                "expiresInDays": 30
            }
        }
    )

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    expiresInDays: Optional[int] = Field(
        default=None,
        ge=1,
        le=365,
        description="Days until the link expires; omit for the configured default"
    )


class ShareResponse(BaseModel):
    shareToken: str
    snapshotId: str
    isActive: bool
    expiresAt: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ShareRecord) -> "ShareResponse":
        return cls(
            shareToken=record.share_token,
            snapshotId=record.snapshot_id,
            isActive=record.is_active,
            expiresAt=record.expires_at,
            title=record.title,
            description=record.description,
            createdAt=record.created_at,
        )


class ProcessResponse(BaseModel):
    """Result of a dashboard-triggered snapshot processing run."""
    snapshotId: str
    lastEmailDate: Optional[str] = None
    sections: List[str] = Field(default_factory=list)
    diagnostics: int = Field(
        default=0,
        ge=0,
        description="Number of parse diagnostics recorded during the build"
    )

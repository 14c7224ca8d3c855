"""
Package initialization file for emailmetrics models.

Re-exports all Pydantic schemas and enumerations from schemas.py and enums.py,
so other modules can import data models without knowing the internal module
structure.

Usage:
    from emailmetrics.models import (
        CanonicalEmailEvent,
        SnapshotJSON,
        CsvBlobLocation,
        ShareFailureReason,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from emailmetrics.models.enums import (
    EmailCategory,
    CanonicalFile,
    SnapshotSection,
    CompareMode,
    DiagnosticLevel,
    LocatorStep,
    ShareFailureReason,
)


# =============================================================================
# Schemas
# =============================================================================

from emailmetrics.models.schemas import (
    # Parser output
    ParseDiagnostic,
    CanonicalEmailEvent,
    Subscriber,
    # SnapshotJSON
    DateRange,
    SnapshotMeta,
    AudienceOverview,
    EmailTotals,
    DerivedRates,
    EmailPerformance,
    FlowRollupItem,
    FlowsSection,
    CampaignRollupItem,
    CampaignsSection,
    DowBucket,
    HourBucket,
    SnapshotJSON,
    # Storage resolution
    CsvBlobLocation,
    ManifestResponse,
    # Metadata store rows
    SnapshotRecord,
    ShareRecord,
    ShareResolution,
    # Share management
    ShareCreateRequest,
    ShareResponse,
    ProcessResponse,
)


__all__ = [
    # Enums
    'EmailCategory',
    'CanonicalFile',
    'SnapshotSection',
    'CompareMode',
    'DiagnosticLevel',
    'LocatorStep',
    'ShareFailureReason',
    # Parser output
    'ParseDiagnostic',
    'CanonicalEmailEvent',
    'Subscriber',
    # SnapshotJSON
    'DateRange',
    'SnapshotMeta',
    'AudienceOverview',
    'EmailTotals',
    'DerivedRates',
    'EmailPerformance',
    'FlowRollupItem',
    'FlowsSection',
    'CampaignRollupItem',
    'CampaignsSection',
    'DowBucket',
    'HourBucket',
    'SnapshotJSON',
    # Storage resolution
    'CsvBlobLocation',
    'ManifestResponse',
    # Metadata store rows
    'SnapshotRecord',
    'ShareRecord',
    'ShareResolution',
    # Share management
    'ShareCreateRequest',
    'ShareResponse',
    'ProcessResponse',
]

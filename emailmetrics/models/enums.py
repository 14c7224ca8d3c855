"""
Enumeration definitions for the Email Metrics snapshot API.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization in API
responses.
"""

from enum import Enum


class EmailCategory(str, Enum):
    """
    Source of a canonical email event.

    - campaign: one row of campaigns.csv (a one-off send)
    - flow: one row of flows.csv (an automated flow message on a given day)
    """
    CAMPAIGN = "campaign"
    FLOW = "flow"


class CanonicalFile(str, Enum):
    """
    The three fixed-name CSV exports every snapshot depends on.

    These are also the only file names the public CSV endpoint will serve.
    """
    CAMPAIGNS = "campaigns.csv"
    FLOWS = "flows.csv"
    SUBSCRIBERS = "subscribers.csv"

    @property
    def key(self) -> str:
        """Short name used in manifests and logs ('campaigns', 'flows', ...)."""
        return self.value[:-len(".csv")]


class SnapshotSection(str, Enum):
    """
    Optional sections of a SnapshotJSON document.

    A section is emitted only when its backing data is non-empty; the list of
    emitted sections is echoed in ``meta.sections`` in this order.
    """
    AUDIENCE_OVERVIEW = "audienceOverview"
    EMAIL_PERFORMANCE = "emailPerformance"
    FLOWS = "flows"
    CAMPAIGNS = "campaigns"
    DOW = "dow"
    HOUR = "hour"


class CompareMode(str, Enum):
    """
    Comparison window derived from a snapshot's date range.

    - prev-period: the same number of days immediately before the range
    - prev-year: the same days one year earlier
    """
    PREV_PERIOD = "prev-period"
    PREV_YEAR = "prev-year"


class DiagnosticLevel(str, Enum):
    """Severity of a parse diagnostic. Diagnostics never abort parsing."""
    DEBUG = "debug"
    WARNING = "warning"


class LocatorStep(str, Enum):
    """
    Search steps of the storage path locator, cheapest and strictest first.

    - exact_parent: {account}/{upload}/{file} then {account}/{snapshot}/{file}
    - account_scan: any immediate subfolder of {account}/ holding {file}
    - snapshot_index: storage.objects match on */{snapshot}/*{file}
    - root_snapshot_scan: {top}/{snapshot}/{file} for every top-level folder
    - root_file_scan: {top}/{file} for every top-level folder
    - global_index: storage.objects match on */{file} anywhere in the bucket
    """
    EXACT_PARENT = "exact_parent"
    ACCOUNT_SCAN = "account_scan"
    SNAPSHOT_INDEX = "snapshot_index"
    ROOT_SNAPSHOT_SCAN = "root_snapshot_scan"
    ROOT_FILE_SCAN = "root_file_scan"
    GLOBAL_INDEX = "global_index"


class ShareFailureReason(str, Enum):
    """
    Internal cause of a share resolution failure.

    Only ever written to logs. Every reason maps to the same external
    response so that a caller cannot tell an unknown token from a revoked
    or expired one.
    """
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    INCOMPLETE_SNAPSHOT = "incomplete_snapshot"

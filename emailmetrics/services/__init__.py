"""
Email Metrics Services Module

This module contains the business logic of the snapshot API.

Services:
- csv_parser: Tolerant parsing of campaigns.csv, flows.csv and subscribers.csv
- aggregator: Totals, derived rates and dow/hour/flow/campaign rollups
- snapshot_builder: SnapshotJSON assembly and the snapshot I/O service
- storage_locator: Widening multi-bucket search for uploaded CSVs
- share_tokens: Public share token resolution and share management
- repositories: Data access for snapshots and snapshot_shares

Parsing and aggregation are pure functions of their inputs. Services that do
I/O receive their clients through their constructors.

All services are designed to be consumed by the API layer (emailmetrics/api/).
"""

# =============================================================================
# CSV Parser Exports
# =============================================================================

from emailmetrics.services.csv_parser import (
    FieldSpec,
    ParseResult,
    CAMPAIGN_FIELDS,
    FLOW_FIELDS,
    SUBSCRIBER_FIELDS,
    to_number,
    parse_date,
    read_csv_rows,
    resolve_column,
    parse_campaigns,
    parse_flows,
    parse_subscribers,
)

# =============================================================================
# Aggregator Exports
# =============================================================================

from emailmetrics.services.aggregator import (
    AggregateResult,
    aggregate,
    calculate_derived_rates,
    safe_ratio,
)

# =============================================================================
# Repository Exports
# =============================================================================

from emailmetrics.services.repositories import (
    ShareRepository,
    SnapshotRepository,
)

# =============================================================================
# Storage Locator Exports
# =============================================================================

from emailmetrics.services.storage_locator import (
    ALLOWED_CSV_FILES,
    StoragePathLocator,
    sanitize_csv_filename,
)

# =============================================================================
# Snapshot Builder Exports
# =============================================================================

from emailmetrics.services.snapshot_builder import (
    SnapshotBuild,
    SnapshotRef,
    SnapshotService,
    assemble,
    build_snapshot,
    compute_compare_range,
)

# =============================================================================
# Share Token Exports
# =============================================================================

from emailmetrics.services.share_tokens import (
    ShareResolutionError,
    ShareTokenService,
    check_share,
    generate_share_token,
)


__all__ = [
    # CSV parser
    'FieldSpec',
    'ParseResult',
    'CAMPAIGN_FIELDS',
    'FLOW_FIELDS',
    'SUBSCRIBER_FIELDS',
    'to_number',
    'parse_date',
    'read_csv_rows',
    'resolve_column',
    'parse_campaigns',
    'parse_flows',
    'parse_subscribers',
    # Aggregator
    'AggregateResult',
    'aggregate',
    'calculate_derived_rates',
    'safe_ratio',
    # Repositories
    'ShareRepository',
    'SnapshotRepository',
    # Storage locator
    'ALLOWED_CSV_FILES',
    'StoragePathLocator',
    'sanitize_csv_filename',
    # Snapshot builder
    'SnapshotBuild',
    'SnapshotRef',
    'SnapshotService',
    'assemble',
    'build_snapshot',
    'compute_compare_range',
    # Share tokens
    'ShareResolutionError',
    'ShareTokenService',
    'check_share',
    'generate_share_token',
]

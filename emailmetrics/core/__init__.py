"""
Core infrastructure package for the Email Metrics snapshot API.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- Supabase Storage access via httpx and the storage.objects index

This module re-exports key components from submodules for convenient importing:

    from emailmetrics.core import get_settings, create_db_pool, SupabaseStorageClient

FastAPI dependencies live in ``emailmetrics.core.dependencies`` and are
imported from there directly, since they build service objects.

Components Re-exported:
    Settings: Pydantic settings class with all configuration parameters
    get_settings: Function returning the cached Settings singleton
    create_db_pool / close_db_pool: Connection pool lifecycle
    fetch_rows / fetch_one / execute_command: Query helpers
    SupabaseStorageClient: Storage REST client (listings, downloads)
    StorageObjectIndex: storage.objects pattern search
    StorageTransientError / BlobNotFoundError: Storage error types
"""

# =============================================================================
# Re-exports from emailmetrics.core.config
# =============================================================================
from emailmetrics.core.config import Settings, get_settings

# =============================================================================
# Re-exports from emailmetrics.core.database
# =============================================================================
from emailmetrics.core.database import (
    create_db_pool,
    close_db_pool,
    fetch_rows,
    fetch_one,
    execute_command,
)

# =============================================================================
# Re-exports from emailmetrics.core.storage
# =============================================================================
from emailmetrics.core.storage import (
    SupabaseStorageClient,
    StorageObjectIndex,
    StorageTransientError,
    BlobNotFoundError,
)

# =============================================================================
# Public API Definition
# =============================================================================

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle and helpers (from database.py)
    'create_db_pool',
    'close_db_pool',
    'fetch_rows',
    'fetch_one',
    'execute_command',
    # Object storage (from storage.py)
    'SupabaseStorageClient',
    'StorageObjectIndex',
    'StorageTransientError',
    'BlobNotFoundError',
]

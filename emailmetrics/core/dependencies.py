"""
FastAPI dependency injection module for the Email Metrics snapshot API.

Clients are created once in the application lifespan and stored on
``app.state`` (``db_pool``, ``storage``, ``object_index``). The dependencies here
read them from the request's app and build the services each endpoint needs,
so components receive their collaborators through constructors and tests can
swap any layer with ``app.dependency_overrides``.

Key Dependencies Provided:
- SettingsDep: The cached Settings singleton
- ShareServiceDep: ShareTokenService over the share repository
- SnapshotServiceDep: SnapshotService (locator + storage + snapshot repository)
- SnapshotRepoDep: SnapshotRepository for ownership checks
- AccountIdDep: Account id forwarded by the dashboard proxy (X-Account-Id)
- UserIdDep: Optional user id forwarded by the dashboard proxy (X-User-Id)

Usage Examples:
    @router.get("/{token}/data")
    async def shared_data(token: str, shares: ShareServiceDep, snapshots: SnapshotServiceDep):
        resolution = await shares.resolve(token)
        ...

    # In tests
    app.dependency_overrides[get_share_service] = lambda: fake_service
"""

from typing import Annotated, Optional

from asyncpg import Pool
from fastapi import Depends, Header, HTTPException, Request

from emailmetrics.core.config import Settings, get_settings
from emailmetrics.core.storage import StorageObjectIndex, SupabaseStorageClient
from emailmetrics.services.repositories import ShareRepository, SnapshotRepository
from emailmetrics.services.share_tokens import ShareTokenService
from emailmetrics.services.snapshot_builder import SnapshotService
from emailmetrics.services.storage_locator import StoragePathLocator


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() to enable FastAPI's
    dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Infrastructure Clients (from app.state)
# =============================================================================

def _state_client(request: Request, name: str):
    client = getattr(request.app.state, name, None)
    if client is None:
        raise HTTPException(status_code=503, detail="Service temporarily unavailable")
    return client


def get_db_pool(request: Request) -> Pool:
    """Connection pool created in the lifespan; 503 when startup could not create it."""
    return _state_client(request, 'db_pool')


def get_storage_client(request: Request) -> SupabaseStorageClient:
    return _state_client(request, 'storage')


def get_object_index(request: Request) -> StorageObjectIndex:
    return _state_client(request, 'object_index')


# =============================================================================
# Repositories and Services
# =============================================================================

def get_snapshot_repository(pool: Annotated[Pool, Depends(get_db_pool)]) -> SnapshotRepository:
    return SnapshotRepository(pool)


def get_share_repository(pool: Annotated[Pool, Depends(get_db_pool)]) -> ShareRepository:
    return ShareRepository(pool)


def get_locator(
    storage: Annotated[SupabaseStorageClient, Depends(get_storage_client)],
    index: Annotated[StorageObjectIndex, Depends(get_object_index)],
    settings: SettingsDep,
) -> StoragePathLocator:
    return StoragePathLocator(
        storage=storage,
        index=index,
        buckets=settings.csv_buckets,
        step_timeout=settings.locator_step_timeout_seconds,
    )


def get_share_service(
    shares: Annotated[ShareRepository, Depends(get_share_repository)],
    settings: SettingsDep,
) -> ShareTokenService:
    return ShareTokenService(
        shares,
        token_length=settings.share_token_length,
        default_expiry_days=settings.default_share_expiry_days,
    )


def get_snapshot_service(
    locator: Annotated[StoragePathLocator, Depends(get_locator)],
    storage: Annotated[SupabaseStorageClient, Depends(get_storage_client)],
    snapshots: Annotated[SnapshotRepository, Depends(get_snapshot_repository)],
    settings: SettingsDep,
) -> SnapshotService:
    return SnapshotService(locator=locator, storage=storage, snapshots=snapshots, settings=settings)


SnapshotRepoDep = Annotated[SnapshotRepository, Depends(get_snapshot_repository)]
ShareServiceDep = Annotated[ShareTokenService, Depends(get_share_service)]
SnapshotServiceDep = Annotated[SnapshotService, Depends(get_snapshot_service)]


# =============================================================================
# Caller Identity
# =============================================================================

async def get_account_id(
    x_account_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Account id of the dashboard caller.

    The Next.js proxy verifies the session with the identity provider and
    forwards the account in ``X-Account-Id``; requests without it are rejected.
    """
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(status_code=401, detail="Missing account")
    return x_account_id.strip()


async def get_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


AccountIdDep = Annotated[str, Depends(get_account_id)]
UserIdDep = Annotated[Optional[str], Depends(get_user_id)]

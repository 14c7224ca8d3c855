"""
FastAPI router for dashboard-side snapshot operations.

Implements GET /snapshots/{id}/data (private dashboard view),
POST /snapshots/{id}/process (build and record last_email_date),
POST /snapshots/{id}/shares (create a public share link) and
DELETE /snapshots/{id}/shares/{token} (revoke a share link).

The caller's account arrives in the X-Account-Id header from the dashboard
proxy; a snapshot owned by another account answers 403.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from emailmetrics.core.dependencies import (
    AccountIdDep,
    ShareServiceDep,
    SnapshotRepoDep,
    SnapshotServiceDep,
    UserIdDep,
)
from emailmetrics.core.storage import BlobNotFoundError, StorageTransientError
from emailmetrics.models import (
    CompareMode,
    ProcessResponse,
    ShareCreateRequest,
    ShareResponse,
    SnapshotRecord,
)
from emailmetrics.services.repositories import SnapshotRepository
from emailmetrics.services.snapshot_builder import SnapshotRef


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_snapshot(
    repo: SnapshotRepository,
    snapshot_id: str,
    account_id: str,
) -> SnapshotRecord:
    """
    Load a snapshot and check it belongs to the caller.

    Raises:
        HTTPException(404) if the snapshot does not exist
        HTTPException(403) if it belongs to another account
    """
    record = await repo.get(snapshot_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Snapshot {snapshot_id} not found")
    if record.account_id != account_id:
        logger.warning(f"Account {account_id} denied access to snapshot {snapshot_id}")
        raise HTTPException(status_code=403, detail="Forbidden")
    return record


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/{snapshot_id}/data")
async def get_snapshot_data(
    snapshot_id: str,
    account_id: AccountIdDep,
    repo: SnapshotRepoDep,
    snapshots: SnapshotServiceDep,
    compare: Optional[CompareMode] = Query(default=None, description="Comparison window"),
) -> JSONResponse:
    """
    Build the SnapshotJSON for the dashboard.

    Raises:
        HTTPException(404) if the snapshot or all of its CSVs are missing
        HTTPException(503) if a located CSV cannot be downloaded
    """
    record = await _owned_snapshot(repo, snapshot_id, account_id)
    try:
        build = await snapshots.build(SnapshotRef.from_record(record), compare_mode=compare)
    except BlobNotFoundError:
        raise HTTPException(status_code=404, detail="Snapshot data not found")
    except StorageTransientError as e:
        logger.warning(f"Storage unavailable building snapshot {snapshot_id}: {e}")
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable")
    except Exception:
        logger.exception(f"Error building snapshot {snapshot_id}")
        raise HTTPException(status_code=500, detail="Failed to build snapshot")

    return JSONResponse(content=build.snapshot.to_payload())


@router.post("/{snapshot_id}/process", response_model=ProcessResponse)
async def process_snapshot(
    snapshot_id: str,
    account_id: AccountIdDep,
    repo: SnapshotRepoDep,
    snapshots: SnapshotServiceDep,
) -> ProcessResponse:
    """Build the snapshot and record its last email date."""
    record = await _owned_snapshot(repo, snapshot_id, account_id)
    try:
        build = await snapshots.process(record)
    except BlobNotFoundError:
        raise HTTPException(status_code=404, detail="Snapshot data not found")
    except StorageTransientError as e:
        logger.warning(f"Storage unavailable processing snapshot {snapshot_id}: {e}")
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable")
    except Exception:
        logger.exception(f"Error processing snapshot {snapshot_id}")
        raise HTTPException(status_code=500, detail="Failed to process snapshot")

    meta = build.snapshot.meta
    return ProcessResponse(
        snapshotId=snapshot_id,
        lastEmailDate=meta.dateRange.end if 'emailPerformance' in meta.sections else None,
        sections=meta.sections,
        diagnostics=len(build.diagnostics),
    )


@router.post("/{snapshot_id}/shares", response_model=ShareResponse, status_code=201)
async def create_share(
    snapshot_id: str,
    request: ShareCreateRequest,
    account_id: AccountIdDep,
    user_id: UserIdDep,
    repo: SnapshotRepoDep,
    shares: ShareServiceDep,
) -> ShareResponse:
    """Create a public share link for a snapshot the caller owns."""
    record = await _owned_snapshot(repo, snapshot_id, account_id)
    if not record.upload_id:
        raise HTTPException(status_code=409, detail="Snapshot has no completed upload")

    try:
        share = await shares.create_share(
            snapshot_id=snapshot_id,
            created_by=user_id,
            expires_in_days=request.expiresInDays,
            title=request.title,
            description=request.description,
        )
    except Exception:
        logger.exception(f"Error creating share for snapshot {snapshot_id}")
        raise HTTPException(status_code=500, detail="Failed to create share")

    return ShareResponse.from_record(share)


@router.delete("/{snapshot_id}/shares/{token}", status_code=204)
async def delete_share(
    snapshot_id: str,
    token: str,
    account_id: AccountIdDep,
    repo: SnapshotRepoDep,
    shares: ShareServiceDep,
) -> Response:
    """Deactivate a share link; 404 when no active share matches."""
    await _owned_snapshot(repo, snapshot_id, account_id)
    if not await shares.deactivate_share(snapshot_id, token):
        raise HTTPException(status_code=404, detail="Share not found")
    return Response(status_code=204)

"""
FastAPI router for public share links.

Implements:
- GET /shared/{token}/data: SnapshotJSON for the shared snapshot
- GET /shared/{token}/csv?file=: raw bytes of one canonical CSV
- GET /shared/{token}/manifest: which canonical files can be located

Every share failure (unknown token, deactivated, expired, snapshot without an
upload) answers 404 with the same body, so responses never reveal why a token
was rejected. The reason is logged by the resolver.

A successful data fetch schedules the share access counter update as a
background task after the response is sent.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from emailmetrics.core.dependencies import ShareServiceDep, SnapshotServiceDep
from emailmetrics.core.storage import BlobNotFoundError, StorageTransientError
from emailmetrics.models import CompareMode, ManifestResponse, ShareResolution
from emailmetrics.services.share_tokens import ShareResolutionError, ShareTokenService
from emailmetrics.services.snapshot_builder import SnapshotRef
from emailmetrics.services.storage_locator import sanitize_csv_filename


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_SHARE_DETAIL = "Invalid or expired link"
STORAGE_UNAVAILABLE_DETAIL = "Storage temporarily unavailable"


async def _resolve_or_404(shares: ShareTokenService, token: str) -> ShareResolution:
    try:
        return await shares.resolve(token)
    except ShareResolutionError:
        raise HTTPException(status_code=404, detail=INVALID_SHARE_DETAIL)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/{token}/data")
async def get_shared_data(
    token: str,
    background_tasks: BackgroundTasks,
    shares: ShareServiceDep,
    snapshots: SnapshotServiceDep,
    compare: Optional[CompareMode] = Query(default=None, description="Comparison window"),
) -> JSONResponse:
    """
    Build and return the SnapshotJSON of a shared snapshot.

    Returns:
        200 with SnapshotJSON (absent sections omitted)

    Raises:
        HTTPException(404) for any invalid share or when no CSV can be found
        HTTPException(503) when a located CSV cannot be downloaded
    """
    resolution = await _resolve_or_404(shares, token)

    try:
        build = await snapshots.build(SnapshotRef.from_share(resolution), compare_mode=compare)
    except BlobNotFoundError:
        raise HTTPException(status_code=404, detail="Snapshot data not found")
    except StorageTransientError as e:
        logger.warning(f"Storage unavailable building shared snapshot {resolution.snapshotId}: {e}")
        raise HTTPException(status_code=503, detail=STORAGE_UNAVAILABLE_DETAIL)
    except Exception:
        logger.exception(f"Error building shared snapshot {resolution.snapshotId}")
        raise HTTPException(status_code=500, detail="Failed to build snapshot")

    background_tasks.add_task(shares.record_access, token)
    logger.info(
        f"Served shared snapshot {resolution.snapshotId} "
        f"({len(build.diagnostics)} parse diagnostics)"
    )
    return JSONResponse(content=build.snapshot.to_payload())


@router.get("/{token}/csv")
async def get_shared_csv(
    token: str,
    shares: ShareServiceDep,
    snapshots: SnapshotServiceDep,
    file: Optional[str] = Query(default=None, description="campaigns.csv, flows.csv or subscribers.csv"),
) -> Response:
    """
    Stream one canonical CSV of a shared snapshot.

    Raises:
        HTTPException(400) for a missing or disallowed filename
        HTTPException(404) for an invalid share or an unlocatable file
        HTTPException(503) when storage fails transiently
    """
    filename = sanitize_csv_filename(file)
    if filename is None:
        raise HTTPException(status_code=400, detail="Invalid or missing file parameter")

    resolution = await _resolve_or_404(shares, token)

    try:
        location, data = await snapshots.fetch_csv(SnapshotRef.from_share(resolution), filename)
    except BlobNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    except StorageTransientError as e:
        logger.warning(f"Storage unavailable serving {filename} for {resolution.snapshotId}: {e}")
        raise HTTPException(status_code=503, detail=STORAGE_UNAVAILABLE_DETAIL)

    logger.info(f"Served {filename} for snapshot {resolution.snapshotId} from {location.bucket}")
    return Response(
        content=data,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/{token}/manifest", response_model=ManifestResponse)
async def get_shared_manifest(
    token: str,
    shares: ShareServiceDep,
    snapshots: SnapshotServiceDep,
) -> ManifestResponse:
    """List the canonical files that can be located for a shared snapshot."""
    resolution = await _resolve_or_404(shares, token)

    try:
        files = await snapshots.discover(SnapshotRef.from_share(resolution))
    except Exception:
        logger.exception(f"Error discovering files for snapshot {resolution.snapshotId}")
        raise HTTPException(status_code=500, detail="Failed to list snapshot files")

    return ManifestResponse(snapshotId=resolution.snapshotId, files=files)

"""
API package initialization.

This package contains FastAPI router modules for the Email Metrics snapshot API:
- shared: Public share links (snapshot data, raw CSV, manifest)
- snapshots: Dashboard-side snapshot data, processing and share management
"""

from fastapi import APIRouter

# Import router modules
from emailmetrics.api.shared import router as shared_router
from emailmetrics.api.snapshots import router as snapshots_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(shared_router, prefix="/shared", tags=["shared"])
api_router.include_router(snapshots_router, prefix="/snapshots", tags=["snapshots"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "shared_router",
    "snapshots_router",
]

"""
Scheduled Jobs for the Email Metrics snapshot API.

This module provides batch job functions run outside the request path:
- Expired share cleanup (share_cleanup.py)

Every job returns a result dict (``success`` plus job-specific fields or an
``error`` message) instead of raising, so schedulers can log the outcome and
decide on retries. Jobs are idempotent and safe to re-run.

Usage:
    from emailmetrics.jobs import cleanup_expired_shares

    result = await cleanup_expired_shares()
"""

from emailmetrics.jobs.share_cleanup import cleanup_expired_shares


__all__ = [
    'cleanup_expired_shares',
]

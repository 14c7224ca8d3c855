"""
Expired share cleanup job.

Deactivates every active share link whose ``expires_at`` has passed. Resolution
already rejects expired shares on its own; this job keeps ``is_active`` in the
table consistent with what the public endpoints serve, so dashboards listing
shares show expired links as inactive.

The job is idempotent: a second run with no newly expired shares changes
nothing and reports a count of 0.

Usage:
    # From a scheduler (cron, Supabase scheduled function, CI)
    python -m emailmetrics.jobs.share_cleanup

    # From code
    result = await cleanup_expired_shares(pool)
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from asyncpg import Pool

from emailmetrics.core.config import get_settings
from emailmetrics.core.database import close_db_pool, create_db_pool
from emailmetrics.services.repositories import ShareRepository
from emailmetrics.services.share_tokens import ShareTokenService

logger = logging.getLogger(__name__)


async def cleanup_expired_shares(
    pool: Optional[Pool] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Deactivate expired share links.

    Args:
        pool: Connection pool to use. When None a pool is created from settings
            and closed again before returning.
        now: Reference time (default: current UTC time).

    Returns:
        Dict with:
        - success: True when the update ran
        - deactivated: Number of shares deactivated
        - ran_at: ISO timestamp used as the expiry cutoff
        - error: Error message (if failed)

    Raises:
        No exceptions are raised - all errors are captured in the return dict.

    Example:
        result = await cleanup_expired_shares()
        if result['success']:
            print(f"Deactivated {result['deactivated']} shares")
    """
    cutoff = now or datetime.now(timezone.utc)
    owns_pool = pool is None

    try:
        if owns_pool:
            pool = await create_db_pool(get_settings())
        service = ShareTokenService(ShareRepository(pool))
        count = await service.deactivate_expired(cutoff)
    except Exception as e:
        logger.exception("Expired share cleanup failed")
        return {
            'success': False,
            'error': f'Failed to deactivate expired shares: {str(e)}',
            'ran_at': cutoff.isoformat(),
        }
    finally:
        if owns_pool:
            await close_db_pool(pool)

    return {
        'success': True,
        'deactivated': count,
        'ran_at': cutoff.isoformat(),
    }


def main() -> int:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    result = asyncio.run(cleanup_expired_shares())
    if result['success']:
        logger.info(f"Deactivated {result['deactivated']} expired shares")
        return 0
    logger.error(result['error'])
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

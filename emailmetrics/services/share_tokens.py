"""
Share Token Resolver and share-link management.

A share is valid iff it exists, ``is_active`` is true, ``expires_at`` is null
or in the future, and its snapshot carries an upload id. Every failure raises
ShareResolutionError. The specific reason is logged but callers must map all
reasons to the same response so a token holder cannot tell an unknown token
from a revoked or expired one.

Access recording (counter + last access time) is a separate, best-effort call
made by the serving path after the response is produced.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from emailmetrics.models import ShareFailureReason, ShareRecord, ShareResolution
from emailmetrics.services.repositories import ShareRepository

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LENGTH: int = 32

# Only this many leading characters of a token ever reach the logs
TOKEN_LOG_PREFIX: int = 6


class ShareResolutionError(Exception):
    """A share token did not resolve to usable snapshot identifiers."""

    def __init__(self, reason: ShareFailureReason):
        self.reason = reason
        super().__init__(reason.value)


def mask_token(token: str) -> str:
    return f"{token[:TOKEN_LOG_PREFIX]}..." if token else "<empty>"


def generate_share_token(length: int = DEFAULT_TOKEN_LENGTH) -> str:
    """
    Generate a URL-safe random token of exactly ``length`` characters.

    Example:
        >>> len(generate_share_token())
        32
    """
    token = secrets.token_urlsafe(length)
    return token[:length]


def check_share(record: Optional[ShareRecord], now: Optional[datetime] = None) -> ShareResolution:
    """
    Validate a share row.

    Order of checks: existence, active flag, expiry, then the snapshot's
    upload id.

    Raises:
        ShareResolutionError: With the first failing reason.
    """
    if record is None:
        raise ShareResolutionError(ShareFailureReason.NOT_FOUND)
    if not record.is_active:
        raise ShareResolutionError(ShareFailureReason.INACTIVE)

    now = now or datetime.now(timezone.utc)
    expires_at = record.expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            raise ShareResolutionError(ShareFailureReason.EXPIRED)

    if not record.account_id or not record.upload_id:
        raise ShareResolutionError(ShareFailureReason.INCOMPLETE_SNAPSHOT)

    return ShareResolution(
        token=record.share_token,
        snapshotId=record.snapshot_id,
        accountId=record.account_id,
        uploadId=record.upload_id,
        expiresAt=record.expires_at,
    )


class ShareTokenService:
    """
    Resolves, creates and revokes share links.

    Args:
        shares: Repository over snapshot_shares.
        token_length: Length of generated tokens.
        default_expiry_days: Expiry applied when a share is created without one.
    """

    def __init__(
        self,
        shares: ShareRepository,
        token_length: int = DEFAULT_TOKEN_LENGTH,
        default_expiry_days: Optional[int] = None,
    ):
        self._shares = shares
        self._token_length = token_length
        self._default_expiry_days = default_expiry_days

    async def resolve(self, token: str) -> ShareResolution:
        """
        Resolve a public token to snapshot identifiers.

        Raises:
            ShareResolutionError: not_found, inactive, expired or incomplete_snapshot.
        """
        record = await self._shares.get_by_token(token) if token else None
        try:
            return check_share(record)
        except ShareResolutionError as e:
            logger.info(f"Share {mask_token(token)} rejected: {e.reason.value}")
            raise

    async def record_access(self, token: str) -> None:
        """Bump the access counter. Failures are logged and never raised."""
        try:
            await self._shares.record_access(token)
        except Exception:
            logger.exception(f"Failed to record access for share {mask_token(token)}")

    async def create_share(
        self,
        snapshot_id: str,
        created_by: Optional[str] = None,
        expires_in_days: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ShareRecord:
        """Create an active share with a fresh token."""
        days = expires_in_days if expires_in_days is not None else self._default_expiry_days
        expires_at = datetime.now(timezone.utc) + timedelta(days=days) if days else None

        record = await self._shares.create(
            snapshot_id=snapshot_id,
            token=generate_share_token(self._token_length),
            created_by=created_by,
            expires_at=expires_at,
            title=title,
            description=description,
        )
        logger.info(f"Created share {mask_token(record.share_token)} for snapshot {snapshot_id}")
        return record

    async def deactivate_share(self, snapshot_id: str, token: str) -> bool:
        """Deactivate one share of a snapshot; False when no active share matched."""
        changed = await self._shares.deactivate(snapshot_id, token)
        logger.info(f"Deactivate share {mask_token(token)} for snapshot {snapshot_id}: {changed}")
        return changed

    async def deactivate_expired(self, now: Optional[datetime] = None) -> int:
        count = await self._shares.deactivate_expired(now or datetime.now(timezone.utc))
        logger.info(f"Deactivated {count} expired shares")
        return count

"""
Tests for share token resolution and share management.

Covers:
- check_share() failure reasons and their order
- Expiry boundaries (naive timestamps read as UTC)
- ShareTokenService resolve / record_access / create / deactivate
"""

from datetime import datetime, timedelta, timezone

import pytest

from emailmetrics.models import ShareFailureReason, ShareRecord
from emailmetrics.services.share_tokens import (
    ShareResolutionError,
    ShareTokenService,
    check_share,
    generate_share_token,
    mask_token,
)

from emailmetrics.tests.conftest import one_second_ago

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(**fields):
    values = {'share_token': 'tok-abcdef-123', 'snapshot_id': 's1', 'account_id': 'a1', 'upload_id': 'u1'}
    values.update(fields)
    return ShareRecord(**values)


# ============================================================
# check_share()
# ============================================================

class TestCheckShare:
    """Tests for check_share()."""

    def test_valid_share(self):
        resolution = check_share(_record(expires_at=NOW + timedelta(days=1)), NOW)
        assert (resolution.snapshotId, resolution.accountId, resolution.uploadId) == ('s1', 'a1', 'u1')
        assert resolution.token == 'tok-abcdef-123'

    def test_no_expiry_is_valid(self):
        assert check_share(_record(), NOW).snapshotId == 's1'

    @pytest.mark.parametrize('record, reason', [
        (None, ShareFailureReason.NOT_FOUND),
        (_record(is_active=False), ShareFailureReason.INACTIVE),
        (_record(expires_at=NOW - timedelta(seconds=1)), ShareFailureReason.EXPIRED),
        (_record(expires_at=NOW), ShareFailureReason.EXPIRED),
        (_record(upload_id=None), ShareFailureReason.INCOMPLETE_SNAPSHOT),
        (_record(account_id=None), ShareFailureReason.INCOMPLETE_SNAPSHOT),
    ])
    def test_failure_reasons(self, record, reason):
        with pytest.raises(ShareResolutionError) as exc_info:
            check_share(record, NOW)
        assert exc_info.value.reason == reason

    def test_inactive_reported_before_expiry(self):
        record = _record(is_active=False, expires_at=NOW - timedelta(days=3))
        with pytest.raises(ShareResolutionError) as exc_info:
            check_share(record, NOW)
        assert exc_info.value.reason == ShareFailureReason.INACTIVE

    def test_naive_expiry_is_utc(self):
        naive_future = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert check_share(_record(expires_at=naive_future), NOW).snapshotId == 's1'

        naive_past = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        with pytest.raises(ShareResolutionError):
            check_share(_record(expires_at=naive_past), NOW)


# ============================================================
# Token Helpers
# ============================================================

class TestTokenHelpers:
    """Tests for generate_share_token() and mask_token()."""

    def test_token_length_and_charset(self):
        token = generate_share_token(32)
        assert len(token) == 32
        assert all(c.isalnum() or c in '-_' for c in token)

    def test_tokens_are_unique(self):
        assert len({generate_share_token() for _ in range(50)}) == 50

    def test_mask(self):
        assert mask_token('abcdefghijkl') == 'abcdef...'
        assert mask_token('') == '<empty>'


# ============================================================
# ShareTokenService
# ============================================================

class TestShareTokenService:
    """Tests for ShareTokenService over the in-memory repository."""

    pytestmark = pytest.mark.asyncio

    async def test_resolve_valid(self, share_repo):
        share_repo.add(share_token='good-token')
        resolution = await ShareTokenService(share_repo).resolve('good-token')
        assert resolution.snapshotId == 's1'

    @pytest.mark.scenario
    async def test_expired_share_rejected(self, share_repo):
        share_repo.add(share_token='old-token', expires_at=one_second_ago())
        with pytest.raises(ShareResolutionError) as exc_info:
            await ShareTokenService(share_repo).resolve('old-token')
        assert exc_info.value.reason == ShareFailureReason.EXPIRED

    async def test_unknown_and_empty_tokens(self, share_repo):
        service = ShareTokenService(share_repo)
        for token in ('missing', ''):
            with pytest.raises(ShareResolutionError) as exc_info:
                await service.resolve(token)
            assert exc_info.value.reason == ShareFailureReason.NOT_FOUND

    async def test_record_access_increments(self, share_repo):
        share_repo.add(share_token='good-token')
        await ShareTokenService(share_repo).record_access('good-token')
        assert share_repo.shares['good-token'].access_count == 1
        assert share_repo.shares['good-token'].last_accessed_at is not None

    async def test_record_access_failure_is_swallowed(self, share_repo):
        share_repo.fail_record_access = True
        await ShareTokenService(share_repo).record_access('good-token')

    async def test_create_share_with_expiry(self, share_repo):
        service = ShareTokenService(share_repo, token_length=24)
        before = datetime.now(timezone.utc)

        share = await service.create_share('s1', created_by='user-1', expires_in_days=7, title='Jan')

        assert len(share.share_token) == 24
        assert share.is_active is True
        assert share.title == 'Jan'
        assert before + timedelta(days=7) <= share.expires_at <= datetime.now(timezone.utc) + timedelta(days=7)
        assert (await service.resolve(share.share_token)).snapshotId == 's1'

    async def test_create_share_default_expiry(self, share_repo):
        share = await ShareTokenService(share_repo, default_expiry_days=30).create_share('s1')
        assert share.expires_at is not None

    async def test_create_share_never_expires(self, share_repo):
        share = await ShareTokenService(share_repo).create_share('s1')
        assert share.expires_at is None

    async def test_deactivate(self, share_repo):
        share_repo.add(share_token='good-token')
        service = ShareTokenService(share_repo)

        assert await service.deactivate_share('s1', 'good-token') is True
        assert await service.deactivate_share('s1', 'good-token') is False
        with pytest.raises(ShareResolutionError) as exc_info:
            await service.resolve('good-token')
        assert exc_info.value.reason == ShareFailureReason.INACTIVE

    async def test_deactivate_other_snapshot(self, share_repo):
        share_repo.add(share_token='good-token', snapshot_id='s1')
        assert await ShareTokenService(share_repo).deactivate_share('s2', 'good-token') is False

    async def test_deactivate_expired(self, share_repo):
        share_repo.add(share_token='expired', expires_at=NOW - timedelta(days=1))
        share_repo.add(share_token='current', expires_at=NOW + timedelta(days=1))
        share_repo.add(share_token='forever')

        count = await ShareTokenService(share_repo).deactivate_expired(NOW)

        assert count == 1
        assert share_repo.shares['expired'].is_active is False
        assert share_repo.shares['current'].is_active is True

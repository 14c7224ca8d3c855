"""
Pytest test module for the expired share cleanup job.

Test Classes:
- TestCleanupExpiredShares: result dicts for success and failure
- TestRepositoryStatements: the UPDATE issued through the pool
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from emailmetrics.jobs.share_cleanup import cleanup_expired_shares, main
from emailmetrics.services.repositories import ShareRepository


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestCleanupExpiredShares:
    """Tests for cleanup_expired_shares()."""

    pytestmark = pytest.mark.asyncio

    async def test_reports_deactivated_count(self, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.execute.return_value = 'UPDATE 3'

        result = await cleanup_expired_shares(mock_db_pool, now=NOW)

        assert result == {'success': True, 'deactivated': 3, 'ran_at': NOW.isoformat()}
        args = conn.execute.call_args.args
        assert 'is_active' in args[0]
        assert args[1] == NOW

    async def test_second_run_is_a_no_op(self, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.execute.side_effect = ['UPDATE 2', 'UPDATE 0']

        first = await cleanup_expired_shares(mock_db_pool, now=NOW)
        second = await cleanup_expired_shares(mock_db_pool, now=NOW)

        assert first['deactivated'] == 2
        assert second['deactivated'] == 0

    async def test_database_error_is_captured(self, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.execute.side_effect = ConnectionError('connection reset')

        result = await cleanup_expired_shares(mock_db_pool, now=NOW)

        assert result['success'] is False
        assert 'connection reset' in result['error']

    async def test_passed_pool_is_not_closed(self, mock_db_pool: AsyncMock) -> None:
        await cleanup_expired_shares(mock_db_pool, now=NOW)
        mock_db_pool.close.assert_not_awaited()

    async def test_owns_and_closes_pool(self, mock_db_pool: AsyncMock) -> None:
        with patch('emailmetrics.jobs.share_cleanup.create_db_pool', AsyncMock(return_value=mock_db_pool)), \
                patch('emailmetrics.jobs.share_cleanup.close_db_pool', AsyncMock()) as close_pool:
            result = await cleanup_expired_shares(now=NOW)

        assert result['success'] is True
        close_pool.assert_awaited_once_with(mock_db_pool)

    async def test_pool_creation_failure(self) -> None:
        with patch('emailmetrics.jobs.share_cleanup.create_db_pool', AsyncMock(side_effect=OSError('refused'))), \
                patch('emailmetrics.jobs.share_cleanup.close_db_pool', AsyncMock()):
            result = await cleanup_expired_shares(now=NOW)

        assert result['success'] is False
        assert 'refused' in result['error']


class TestRepositoryStatements:
    """Tests for ShareRepository over the mocked pool."""

    pytestmark = pytest.mark.asyncio

    async def test_get_by_token_maps_row(self, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetchrow.return_value = {
            'share_token': 'tok',
            'snapshot_id': 's1',
            'is_active': True,
            'expires_at': None,
            'access_count': 4,
            'last_accessed_at': None,
            'title': None,
            'description': None,
            'created_at': NOW,
            'account_id': 'a1',
            'upload_id': 'u1',
        }

        record = await ShareRepository(mock_db_pool).get_by_token('tok')

        assert record.access_count == 4
        assert record.upload_id == 'u1'

    async def test_get_by_token_missing(self, mock_db_pool: AsyncMock) -> None:
        assert await ShareRepository(mock_db_pool).get_by_token('tok') is None

    async def test_deactivate_reports_match(self, mock_db_pool: AsyncMock) -> None:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.execute.return_value = 'UPDATE 1'
        assert await ShareRepository(mock_db_pool).deactivate('s1', 'tok') is True


def test_main_exit_code() -> None:
    with patch('emailmetrics.jobs.share_cleanup.cleanup_expired_shares',
               AsyncMock(return_value={'success': False, 'error': 'boom', 'ran_at': NOW.isoformat()})):
        assert main() == 1

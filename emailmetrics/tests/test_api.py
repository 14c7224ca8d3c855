"""
Tests for the HTTP API.

The application is exercised with FastAPI's TestClient without running the
lifespan; services are replaced through ``app.dependency_overrides`` with
instances wired to in-memory storage and repositories.

Covers:
- /shared/{token}/data, /csv and /manifest
- Uniform 404 for every kind of invalid share
- /snapshots/{id} ownership checks, processing and share management
"""

import pytest
from fastapi.testclient import TestClient

from emailmetrics.core.dependencies import get_share_service, get_snapshot_repository, get_snapshot_service
from emailmetrics.main import app
from emailmetrics.services.share_tokens import ShareTokenService
from emailmetrics.services.snapshot_builder import SnapshotService
from emailmetrics.services.storage_locator import StoragePathLocator

from emailmetrics.tests.conftest import (
    CAMPAIGN_HEADERS,
    FakeIndex,
    campaign_row,
    create_csv_text,
    one_second_ago,
)

CAMPAIGNS = create_csv_text(CAMPAIGN_HEADERS, [campaign_row('Launch', '01/15/2024 10:00', 50, 10, 0, 0, 100)])
ACCOUNT_HEADERS = {'X-Account-Id': 'a1', 'X-User-Id': 'user-1'}


@pytest.fixture
def client(fake_storage, share_repo, snapshot_repo, test_settings):
    """TestClient with services bound to the in-memory fakes."""
    locator = StoragePathLocator(fake_storage, FakeIndex(fake_storage), test_settings.csv_buckets, step_timeout=0.5)
    snapshot_service = SnapshotService(locator, fake_storage, snapshot_repo, test_settings)

    app.dependency_overrides[get_share_service] = lambda: ShareTokenService(share_repo)
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    app.dependency_overrides[get_snapshot_repository] = lambda: snapshot_repo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stored_snapshot(fake_storage, share_repo, snapshot_repo):
    """Snapshot s1 of account a1 with campaigns.csv uploaded and share 'good-token'."""
    fake_storage.put('uploads', 'a1/u1/campaigns.csv', CAMPAIGNS)
    snapshot_repo.add('s1', 'a1', 'u1')
    share_repo.add(share_token='good-token')
    return 's1'


# ============================================================
# Public Share Endpoints
# ============================================================

class TestSharedData:
    """Tests for GET /shared/{token}/data."""

    def test_valid_share(self, client, stored_snapshot, share_repo):
        response = client.get('/shared/good-token/data')

        assert response.status_code == 200
        body = response.json()
        assert body['meta']['snapshotId'] == 's1'
        assert body['meta']['sections'] == ['emailPerformance', 'campaigns', 'dow', 'hour']
        assert body['emailPerformance']['derived']['openRate'] == pytest.approx(20.0)
        assert 'flows' not in body
        assert share_repo.shares['good-token'].access_count == 1

    def test_compare_query(self, client, stored_snapshot):
        response = client.get('/shared/good-token/data', params={'compare': 'prev-year'})
        assert response.json()['meta']['compareRange'] == {'start': '2023-01-15', 'end': '2023-01-15'}

    def test_invalid_compare(self, client, stored_snapshot):
        assert client.get('/shared/good-token/data', params={'compare': 'weekly'}).status_code == 422

    @pytest.mark.scenario
    def test_invalid_shares_are_indistinguishable(self, client, stored_snapshot, share_repo):
        share_repo.add(share_token='expired-token', expires_at=one_second_ago())
        share_repo.add(share_token='revoked-token', is_active=False)
        share_repo.add(share_token='no-upload-token', upload_id=None)

        responses = [
            client.get(f'/shared/{token}/data')
            for token in ('expired-token', 'revoked-token', 'no-upload-token', 'unknown-token')
        ]

        assert {r.status_code for r in responses} == {404}
        assert {r.text for r in responses} == {'{"detail":"Invalid or expired link"}'}

    def test_share_without_files(self, client, share_repo):
        share_repo.add(share_token='empty-token')
        response = client.get('/shared/empty-token/data')
        assert response.status_code == 404
        assert response.json()['detail'] == 'Snapshot data not found'
        assert share_repo.shares['empty-token'].access_count == 0

    def test_access_recording_failure_does_not_fail_request(self, client, stored_snapshot, share_repo):
        share_repo.fail_record_access = True
        assert client.get('/shared/good-token/data').status_code == 200

    def test_download_outage_is_503(self, client, stored_snapshot, fake_storage, share_repo):
        fake_storage.failing_downloads.add(('uploads', 'a1/u1/campaigns.csv'))

        response = client.get('/shared/good-token/data')

        assert response.status_code == 503
        assert response.json()['detail'] == 'Storage temporarily unavailable'
        assert share_repo.shares['good-token'].access_count == 0


class TestSharedCsv:
    """Tests for GET /shared/{token}/csv."""

    def test_download(self, client, stored_snapshot):
        response = client.get('/shared/good-token/csv', params={'file': 'campaigns.csv'})

        assert response.status_code == 200
        assert response.content == CAMPAIGNS.encode('utf-8')
        assert response.headers['content-type'].startswith('text/csv')
        assert response.headers['cache-control'] == 'no-store'
        assert 'campaigns.csv' in response.headers['content-disposition']

    @pytest.mark.parametrize('params', [{}, {'file': ''}, {'file': '../secret.csv'}, {'file': 'other.csv'}])
    def test_bad_filename(self, client, stored_snapshot, params):
        assert client.get('/shared/good-token/csv', params=params).status_code == 400

    def test_bad_filename_checked_before_token(self, client):
        assert client.get('/shared/unknown/csv', params={'file': 'x.txt'}).status_code == 400

    def test_missing_file(self, client, stored_snapshot):
        response = client.get('/shared/good-token/csv', params={'file': 'flows.csv'})
        assert response.status_code == 404
        assert response.json()['detail'] == 'File not found'

    def test_invalid_share(self, client, stored_snapshot):
        response = client.get('/shared/unknown/csv', params={'file': 'campaigns.csv'})
        assert response.status_code == 404
        assert response.json()['detail'] == 'Invalid or expired link'


class TestSharedManifest:
    """Tests for GET /shared/{token}/manifest."""

    def test_manifest(self, client, stored_snapshot):
        response = client.get('/shared/good-token/manifest')

        assert response.status_code == 200
        body = response.json()
        assert body['snapshotId'] == 's1'
        assert list(body['files']) == ['campaigns.csv']
        assert body['files']['campaigns.csv'] == {
            'bucket': 'uploads',
            'path': 'a1/u1/campaigns.csv',
            'step': 'exact_parent',
        }

    def test_manifest_invalid_share(self, client):
        assert client.get('/shared/nope/manifest').status_code == 404


# ============================================================
# Dashboard Snapshot Endpoints
# ============================================================

class TestSnapshotEndpoints:
    """Tests for /snapshots/{id}/..."""

    def test_missing_account_header(self, client, stored_snapshot):
        assert client.get('/snapshots/s1/data').status_code == 401

    def test_other_account_forbidden(self, client, stored_snapshot):
        response = client.get('/snapshots/s1/data', headers={'X-Account-Id': 'a2'})
        assert response.status_code == 403

    def test_unknown_snapshot(self, client):
        assert client.get('/snapshots/nope/data', headers=ACCOUNT_HEADERS).status_code == 404

    def test_data(self, client, stored_snapshot):
        response = client.get('/snapshots/s1/data', headers=ACCOUNT_HEADERS)
        assert response.status_code == 200
        assert response.json()['meta']['uploadId'] == 'u1'

    def test_data_download_outage_is_503(self, client, stored_snapshot, fake_storage):
        fake_storage.failing_downloads.add(('uploads', 'a1/u1/campaigns.csv'))
        assert client.get('/snapshots/s1/data', headers=ACCOUNT_HEADERS).status_code == 503

    def test_process_download_outage_is_503(self, client, stored_snapshot, fake_storage, snapshot_repo):
        fake_storage.failing_downloads.add(('uploads', 'a1/u1/campaigns.csv'))

        response = client.post('/snapshots/s1/process', headers=ACCOUNT_HEADERS)

        assert response.status_code == 503
        assert snapshot_repo.snapshots['s1'].last_email_date is None

    def test_process(self, client, stored_snapshot, snapshot_repo):
        response = client.post('/snapshots/s1/process', headers=ACCOUNT_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body['lastEmailDate'] == '2024-01-15'
        assert body['sections'] == ['emailPerformance', 'campaigns', 'dow', 'hour']
        assert snapshot_repo.snapshots['s1'].last_email_date.isoformat() == '2024-01-15'

    def test_create_and_use_share(self, client, stored_snapshot):
        response = client.post(
            '/snapshots/s1/shares',
            headers=ACCOUNT_HEADERS,
            json={'title': 'January', 'expiresInDays': 7},
        )

        assert response.status_code == 201
        share = response.json()
        assert share['snapshotId'] == 's1'
        assert share['isActive'] is True
        assert share['title'] == 'January'
        assert client.get(f"/shared/{share['shareToken']}/data").status_code == 200

    def test_create_share_validation(self, client, stored_snapshot):
        response = client.post('/snapshots/s1/shares', headers=ACCOUNT_HEADERS, json={'expiresInDays': 0})
        assert response.status_code == 422

    def test_create_share_without_upload(self, client, snapshot_repo):
        snapshot_repo.add('s2', 'a1', None)
        response = client.post('/snapshots/s2/shares', headers=ACCOUNT_HEADERS, json={})
        assert response.status_code == 409

    def test_delete_share(self, client, stored_snapshot):
        assert client.delete('/snapshots/s1/shares/good-token', headers=ACCOUNT_HEADERS).status_code == 204
        assert client.get('/shared/good-token/data').status_code == 404
        assert client.delete('/snapshots/s1/shares/good-token', headers=ACCOUNT_HEADERS).status_code == 404

    def test_delete_share_other_account(self, client, stored_snapshot):
        response = client.delete('/snapshots/s1/shares/good-token', headers={'X-Account-Id': 'a2'})
        assert response.status_code == 403


def test_health(client):
    assert client.get('/health').json() == {'status': 'healthy'}

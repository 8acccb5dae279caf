"""
Tests for httpdouble Admin API

Tests the remote control protocol served under the admin prefix.
"""

import pytest
from fastapi.testclient import TestClient

from httpdouble.mock.server import MockConfig, MockServer


ADMIN = '/__httpdouble__'


@pytest.fixture
def server():
    """In-process mock server (not listening)."""
    return MockServer(MockConfig())


@pytest.fixture
def client(server):
    """Test client bound to the server's app."""
    return TestClient(server.get_app())


def create(client, expectation, response=None):
    return client.post(f'{ADMIN}/mocks', json={'expectation': expectation, 'response': response or {}})


class TestCreate:
    """Test POST /mocks."""

    def test_create_returns_id(self, client):
        """Test 201 with sequential ids."""
        first = create(client, {'path': '/a'})
        second = create(client, {'path': '/b'})

        assert first.status_code == 201
        assert first.json() == {'id': 1}
        assert second.json() == {'id': 2}

    def test_round_trip_verbatim(self, client):
        """Test a created mock is returned with the same expectation and response."""
        expectation = {'method': 'GET', 'path': '/x'}
        response = {'status': 200, 'body': 'ok'}
        mock_id = create(client, expectation, response).json()['id']

        data = client.get(f'{ADMIN}/mocks/{mock_id}').json()

        assert data['expectation'] == expectation
        assert data['response'] == response
        assert data['hits'] == 0
        assert data['state'] == 'active'

    def test_created_mock_is_served(self, client):
        """Test mocks created over the API are dispatched."""
        create(client, {'method': 'GET', 'path': '/x'}, {'status': 202, 'json': {'ok': True}})

        response = client.get('/x')

        assert response.status_code == 202
        assert response.json() == {'ok': True}

    def test_binary_body_round_trip(self, client):
        """Test non-UTF-8 bodies travel as body_base64."""
        mock_id = create(client, {'path': '/bin'}, {'body_base64': '/wA='}).json()['id']

        assert client.get('/bin').content == b'\xff\x00'
        assert client.get(f'{ADMIN}/mocks/{mock_id}').json()['response']['body_base64'] == '/wA='

    @pytest.mark.parametrize('payload', [
        {'expectation': {'path_matches': ['([']}},
        {'expectation': {'bogus': 1}},
        {'expectation': {'max_hits': -1}},
        {'response': {'status': 42}},
        {'response': {'body': 'a', 'json': 1}},
        {'response': {'delay_ms': -5}},
        {'expectation': {}, 'extra': True},
    ])
    def test_malformed_definitions(self, client, payload):
        """Test malformed definitions are rejected with 400 and never stored."""
        response = client.post(f'{ADMIN}/mocks', json=payload)

        assert response.status_code == 400
        assert response.json()['kind'] == 'InvalidExpectation'
        assert client.get(f'{ADMIN}/mocks').json()['total'] == 0

    def test_non_json_body(self, client):
        """Test a body that is not a JSON object is rejected."""
        response = client.post(f'{ADMIN}/mocks', content=b'not json')

        assert response.status_code == 400
        assert 'error' in response.json()


class TestReadAndDelete:
    """Test GET and DELETE endpoints."""

    def test_list(self, client):
        """Test listing all mocks with hit counts."""
        create(client, {'path': '/a'})
        create(client, {'path': '/b'})
        client.get('/a')

        data = client.get(f'{ADMIN}/mocks').json()

        assert data['total'] == 2
        assert [m['hits'] for m in data['mocks']] == [1, 0]

    def test_get_unknown(self, client):
        """Test 404 for unknown and non-numeric ids."""
        assert client.get(f'{ADMIN}/mocks/99').status_code == 404
        response = client.get(f'{ADMIN}/mocks/abc')
        assert response.status_code == 404
        assert response.json()['kind'] == 'NotFound'

    def test_delete_then_no_match(self, client):
        """Test a deleted mock stops matching but keeps its hit count."""
        mock_id = create(client, {'path': '/x'}).json()['id']
        client.get('/x')

        deleted = client.delete(f'{ADMIN}/mocks/{mock_id}')

        assert deleted.json() == {'status': 'deleted', 'id': mock_id}
        assert client.get('/x').status_code == 404
        data = client.get(f'{ADMIN}/mocks/{mock_id}').json()
        assert data['hits'] == 1
        assert data['state'] == 'deleted'

    def test_delete_unknown(self, client):
        """Test deleting an unknown or already deleted mock returns 404."""
        mock_id = create(client, {'path': '/x'}).json()['id']
        client.delete(f'{ADMIN}/mocks/{mock_id}')

        assert client.delete(f'{ADMIN}/mocks/{mock_id}').status_code == 404
        assert client.delete(f'{ADMIN}/mocks/77').status_code == 404

    def test_delete_all(self, client):
        """Test clearing all mocks resets ids."""
        create(client, {'path': '/a'})
        create(client, {'path': '/b'})

        response = client.delete(f'{ADMIN}/mocks')

        assert response.json() == {'status': 'cleared', 'cleared_count': 2}
        assert client.get(f'{ADMIN}/mocks/1').status_code == 404
        assert create(client, {'path': '/c'}).json() == {'id': 1}


class TestVerify:
    """Test POST /mocks/{id}/verify."""

    def test_verify(self, client):
        """Test matched/expected/actual fields."""
        mock_id = create(client, {'path': '/x'}).json()['id']
        client.get('/x')

        ok = client.post(f'{ADMIN}/mocks/{mock_id}/verify', json={'count': 1})
        wrong = client.post(f'{ADMIN}/mocks/{mock_id}/verify', json={'count': 3})

        assert ok.json() == {'matched': True, 'expected': 1, 'actual': 1}
        assert wrong.json() == {'matched': False, 'expected': 3, 'actual': 1}

    def test_verify_unknown(self, client):
        """Test 404 for unknown ids."""
        response = client.post(f'{ADMIN}/mocks/5/verify', json={'count': 0})

        assert response.status_code == 404

    def test_verify_bad_count(self, client):
        """Test 400 for a missing or negative count."""
        mock_id = create(client, {'path': '/x'}).json()['id']

        assert client.post(f'{ADMIN}/mocks/{mock_id}/verify', json={}).status_code == 400
        assert client.post(f'{ADMIN}/mocks/{mock_id}/verify', json={'count': -1}).status_code == 400


class TestPrefix:
    """Test that the admin prefix is reserved."""

    def test_health(self, client):
        """Test the health endpoint."""
        assert client.get(f'{ADMIN}/health').json()['status'] == 'ok'

    def test_unknown_admin_path_not_dispatched(self, server, client):
        """Test unknown admin paths are 404 even with a catch-all mock."""
        catch_all = create(client, {}).json()['id']

        response = client.get(f'{ADMIN}/nope')
        wrong_method = client.put(f'{ADMIN}/mocks')

        assert response.status_code == 404
        assert response.json()['kind'] == 'NotFound'
        assert 'x-httpdouble-matched' not in response.headers
        assert wrong_method.status_code == 404
        assert server.hits(catch_all) == 0

    def test_catch_all_mock_serves_other_paths(self, client):
        """Test an empty expectation matches any non-admin request."""
        create(client, {}, {'body': 'anything'})

        assert client.delete('/whatever/path?x=1').text == 'anything'

    def test_custom_prefix(self):
        """Test a custom prefix moves the API."""
        client = TestClient(MockServer(MockConfig(admin_prefix='/_admin')).get_app())

        assert client.get('/_admin/health').status_code == 200
        assert client.get(f'{ADMIN}/health').status_code == 404

    def test_admin_disabled(self):
        """Test with the admin API off, prefix paths are ordinary requests."""
        client = TestClient(MockServer(MockConfig(admin_enabled=False)).get_app())

        response = client.get(f'{ADMIN}/health')

        assert response.status_code == 404
        assert response.headers['x-httpdouble-matched'] == 'false'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

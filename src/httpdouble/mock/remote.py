"""
httpdouble Remote Client

Drives a standalone mock server through its admin API.

Example:
    with RemoteMockServer('http://localhost:5000') as remote:
        remote.wait_until_ready()
        handle = remote.mock('GET', '/users').return_json_body([]).create()
        ...
        handle.assert_hits(1)
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..common import URLHelper
from .builder import MockBuilder
from .errors import InvalidExpectation, MockNotFound, RemoteServerError
from .matcher import Expectation
from .models import ResponseSpec
from .registry import Mock, Verification


DEFAULT_ADMIN_PREFIX = "/__httpdouble__"


class RemoteMockServer:
    """
    Client for the admin API of a mock server running in another process.

    Offers the same mock management surface as MockServer, so builders and
    handles work against either.
    """

    def __init__(
        self,
        base_url: str,
        admin_prefix: str = DEFAULT_ADMIN_PREFIX,
        timeout: float = 10.0
    ):
        """
        Initialize remote client.

        Args:
            base_url: Server URL such as http://localhost:5000
            admin_prefix: Path prefix of the admin API
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.admin_prefix = URLHelper.normalize_prefix(admin_prefix)
        self.timeout = timeout
        self._admin_url = f"{self.base_url}{self.admin_prefix}"
        self._client = httpx.Client(timeout=timeout)
        self.logger = logging.getLogger("httpdouble.mock.remote")

    def _request(self, method: str, path: str, json_body: Any = None, expected=(200,), mock_id=None) -> Dict[str, Any]:
        url = f"{self._admin_url}{path}"
        try:
            response = self._client.request(method, url, json=json_body)
        except httpx.HTTPError as e:
            raise RemoteServerError(f"{method} {url} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {'value': data}

        if response.status_code in expected:
            return data

        message = data.get('error') or f"{method} {url} returned {response.status_code}"
        if response.status_code == 404:
            raise MockNotFound(mock_id, message)
        if response.status_code == 400:
            raise InvalidExpectation(message)
        raise RemoteServerError(message)

    def create_mock(self, expectation: Expectation, response: ResponseSpec) -> int:
        """Register a mock and return its id."""
        data = self._request(
            'POST', '/mocks',
            json_body={'expectation': expectation.to_dict(), 'response': response.to_dict()},
            expected=(201,)
        )
        return int(data['id'])

    def delete_mock(self, mock_id: int):
        self._request('DELETE', f"/mocks/{mock_id}", mock_id=mock_id)

    def delete_all(self) -> int:
        """Remove all mocks; returns how many were removed."""
        return int(self._request('DELETE', '/mocks').get('cleared_count', 0))

    def get_mock(self, mock_id: int) -> Mock:
        """Snapshot of one mock, rebuilt from the server's representation."""
        return Mock.from_dict(self._request('GET', f"/mocks/{mock_id}", mock_id=mock_id))

    def list_mocks(self) -> List[Mock]:
        return [Mock.from_dict(item) for item in self._request('GET', '/mocks').get('mocks', [])]

    def hits(self, mock_id: int) -> int:
        return self.get_mock(mock_id).hits

    def verify(self, mock_id: int, expected_count: int) -> Verification:
        data = self._request('POST', f"/mocks/{mock_id}/verify", json_body={'count': expected_count}, mock_id=mock_id)
        return Verification(matched=data['matched'], expected=data['expected'], actual=data['actual'])

    def health_check(self) -> bool:
        """
        Check if the server is running and healthy.

        Returns:
            True if healthy
        """
        try:
            response = self._client.get(f"{self._admin_url}/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    def wait_until_ready(self, timeout: float = 30.0, poll_interval: float = 0.2) -> bool:
        """
        Wait for the server to become ready.

        Returns:
            True if ready, False if timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            if self.health_check():
                return True
            time.sleep(poll_interval)
        self.logger.warning(f"Mock server at {self.base_url} not ready after {timeout}s")
        return False

    def url(self, path: str = '/') -> str:
        return URLHelper.join(self.base_url, path)

    def mock(self, method: Optional[str] = None, path: Optional[str] = None) -> MockBuilder:
        """Start declaring a mock on the remote server."""
        return MockBuilder(self, method=method, path=path)

    def close(self):
        self._client.close()

    def __enter__(self) -> 'RemoteMockServer':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

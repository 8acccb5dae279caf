"""
httpdouble Mock Builder

Fluent API for declaring mocks against a local MockServer or a
RemoteMockServer.

Example:
    handle = (
        server.mock('POST', '/users')
        .expect_header('Content-Type', 'application/json')
        .expect_json_body_partial({'name': 'Fred'})
        .times(1)
        .return_status(201)
        .return_json_body({'id': 7})
        .create()
    )
    ...
    handle.assert_hits(1)
"""

import json
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import InvalidExpectation
from .matcher import (
    Expectation,
    Matcher,
    MethodMatcher,
    PathMatcher,
    PathContainsMatcher,
    PathPatternMatcher,
    HeaderMatcher,
    HeaderPatternMatcher,
    HeaderExistsMatcher,
    QueryParamMatcher,
    QueryParamPatternMatcher,
    QueryParamExistsMatcher,
    CookieMatcher,
    CookiePatternMatcher,
    CookieExistsMatcher,
    BodyMatcher,
    BodyContainsMatcher,
    BodyPatternMatcher,
    JsonBodyMatcher,
    JsonBodyPartialMatcher,
    FormFieldMatcher,
    FormFieldExistsMatcher,
    MultipartPartMatcher,
)
from .models import NOT_SET, ResponseSpec


def _json_document(value: Any) -> Any:
    # Strings are taken as JSON text
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError as e:
            raise InvalidExpectation(f"Invalid JSON document: {e}") from e
    return value


class MockHandle:
    """Reference to a created mock, for verification and cleanup."""

    def __init__(self, server, mock_id: int):
        self.server = server
        self.id = mock_id

    def hits(self) -> int:
        return self.server.hits(self.id)

    def verify(self, expected_count: int):
        return self.server.verify(self.id, expected_count)

    def assert_hits(self, expected_count: int):
        """
        Assert that the mock was matched exactly ``expected_count`` times.

        Raises:
            AssertionError: With the actual count in the message
        """
        result = self.verify(expected_count)
        if not result.matched:
            raise AssertionError(
                f"Mock #{self.id} was matched {result.actual} times, expected {expected_count}"
            )

    def delete(self):
        self.server.delete_mock(self.id)

    def __repr__(self):
        return f"<MockHandle id={self.id}>"


class MockBuilder:
    """
    Collects expectation clauses and response settings.

    Each ``expect_*`` call adds one clause; all clauses must hold for a
    request to match. ``return_*`` calls configure the response.
    """

    def __init__(self, server=None, method: Optional[str] = None, path: Optional[str] = None):
        self.server = server
        self._matchers: List[Matcher] = []
        self._max_hits: Optional[int] = None
        self._priority = 0
        self._status = 200
        self._headers: Dict[str, str] = {}
        self._body: Optional[bytes] = None
        self._json_body: Any = NOT_SET
        self._delay_ms = 0

        if method is not None:
            self.expect_method(method)
        if path is not None:
            self.expect_path(path)

    def _add(self, matcher: Matcher) -> 'MockBuilder':
        self._matchers.append(matcher)
        return self

    # Request clauses

    def expect_method(self, method: str) -> 'MockBuilder':
        return self._add(MethodMatcher(method))

    def expect_path(self, path: str) -> 'MockBuilder':
        return self._add(PathMatcher(path))

    def expect_path_contains(self, substring: str) -> 'MockBuilder':
        return self._add(PathContainsMatcher(substring))

    def expect_path_matches(self, pattern: str) -> 'MockBuilder':
        return self._add(PathPatternMatcher(pattern))

    def expect_header(self, name: str, value: str) -> 'MockBuilder':
        return self._add(HeaderMatcher(name, value))

    def expect_header_exists(self, name: str) -> 'MockBuilder':
        return self._add(HeaderExistsMatcher(name))

    def expect_header_matches(self, name: str, pattern: str) -> 'MockBuilder':
        return self._add(HeaderPatternMatcher(name, pattern))

    def expect_query_param(self, name: str, value: str) -> 'MockBuilder':
        return self._add(QueryParamMatcher(name, value))

    def expect_query_param_exists(self, name: str) -> 'MockBuilder':
        return self._add(QueryParamExistsMatcher(name))

    def expect_query_param_matches(self, name: str, pattern: str) -> 'MockBuilder':
        return self._add(QueryParamPatternMatcher(name, pattern))

    def expect_cookie(self, name: str, value: str) -> 'MockBuilder':
        return self._add(CookieMatcher(name, value))

    def expect_cookie_exists(self, name: str) -> 'MockBuilder':
        return self._add(CookieExistsMatcher(name))

    def expect_cookie_matches(self, name: str, pattern: str) -> 'MockBuilder':
        return self._add(CookiePatternMatcher(name, pattern))

    def expect_body(self, body: Union[str, bytes]) -> 'MockBuilder':
        return self._add(BodyMatcher(body))

    def expect_body_contains(self, substring: str) -> 'MockBuilder':
        return self._add(BodyContainsMatcher(substring))

    def expect_body_matches(self, pattern: str) -> 'MockBuilder':
        return self._add(BodyPatternMatcher(pattern))

    def expect_json_body(self, document: Any) -> 'MockBuilder':
        """Body must be JSON equal to ``document`` (a value or JSON text)."""
        return self._add(JsonBodyMatcher(_json_document(document)))

    def expect_json_body_partial(self, document: Any) -> 'MockBuilder':
        """Body must be JSON containing ``document`` (a value or JSON text)."""
        return self._add(JsonBodyPartialMatcher(_json_document(document)))

    def expect_form_field(self, name: str, value: str) -> 'MockBuilder':
        return self._add(FormFieldMatcher(name, value))

    def expect_form_field_exists(self, name: str) -> 'MockBuilder':
        return self._add(FormFieldExistsMatcher(name))

    def expect_multipart_part(
        self,
        name: str,
        content: Union[str, bytes, None] = None,
        filename: Optional[str] = None
    ) -> 'MockBuilder':
        return self._add(MultipartPartMatcher(name, content=content, filename=filename))

    def times(self, max_hits: int) -> 'MockBuilder':
        """Serve at most ``max_hits`` requests, then stop matching."""
        self._max_hits = max_hits
        return self

    def priority(self, priority: int) -> 'MockBuilder':
        self._priority = priority
        return self

    # Response

    def return_status(self, status: int) -> 'MockBuilder':
        self._status = status
        return self

    def return_header(self, name: str, value: str) -> 'MockBuilder':
        self._headers[name] = value
        return self

    def return_body(self, body: Union[str, bytes]) -> 'MockBuilder':
        self._body = body.encode('utf-8') if isinstance(body, str) else bytes(body)
        self._json_body = NOT_SET
        return self

    def return_json_body(self, document: Any) -> 'MockBuilder':
        self._json_body = document
        self._body = None
        return self

    def return_delay(self, delay_ms: int) -> 'MockBuilder':
        self._delay_ms = delay_ms
        return self

    def build(self) -> Tuple[Expectation, ResponseSpec]:
        """
        Validate and produce the expectation and response.

        Raises:
            InvalidExpectation: If a setting is invalid
        """
        expectation = Expectation(
            matchers=list(self._matchers),
            max_hits=self._max_hits,
            priority=self._priority
        )
        # Round-trip through the wire form for the same validation as the admin API
        response = ResponseSpec(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            json_body=self._json_body,
            delay_ms=self._delay_ms
        )
        ResponseSpec.from_dict(response.to_dict())
        return expectation, response

    def create(self) -> MockHandle:
        """Register the mock on the server and return a handle to it."""
        if self.server is None:
            raise RuntimeError("MockBuilder has no server; use build() instead")
        expectation, response = self.build()
        mock_id = self.server.create_mock(expectation, response)
        return MockHandle(self.server, mock_id)

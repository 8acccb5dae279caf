"""
Tests for httpdouble Mock Builder

Tests the fluent API for declaring mocks and the handles it returns.
"""

import pytest

from httpdouble.mock.builder import MockBuilder
from httpdouble.mock.errors import InvalidExpectation
from httpdouble.mock.models import MockRequest
from httpdouble.mock.evaluator import evaluate_expectation
from httpdouble.mock.server import MockConfig, MockServer


@pytest.fixture
def server():
    """In-process mock server (not listening)."""
    return MockServer(MockConfig())


class TestBuild:
    """Test building expectations and responses."""

    def test_method_and_path_shortcut(self):
        """Test method and path passed to the constructor become clauses."""
        expectation, response = MockBuilder(method='get', path='/users').build()

        assert expectation.to_dict() == {'method': 'GET', 'path': '/users'}
        assert response.status == 200

    def test_all_clauses_in_wire_form(self):
        """Test the expectation collects every declared clause."""
        expectation, _ = (
            MockBuilder()
            .expect_method('POST')
            .expect_path_contains('/api/')
            .expect_header('X-Api-Key', 'secret')
            .expect_query_param('page', '2')
            .expect_query_param_exists('debug')
            .expect_cookie('session', 'abc')
            .times(3)
            .priority(2)
            .build()
        )

        data = expectation.to_dict()

        assert data['method'] == 'POST'
        assert data['path_contains'] == ['/api/']
        assert data['headers'] == {'X-Api-Key': 'secret'}
        assert data['query_params'] == {'page': '2'}
        assert data['query_param_exists'] == ['debug']
        assert data['cookies'] == {'session': 'abc'}
        assert data['max_hits'] == 3
        assert data['priority'] == 2

    def test_json_text_is_parsed(self):
        """Test JSON bodies given as text are parsed into documents."""
        expectation, _ = MockBuilder().expect_json_body('{"a": [1, 2]}').build()
        request = MockRequest.from_url('POST', '/', body='{"a": [1, 2]}')

        assert evaluate_expectation(expectation, request).matched

    def test_invalid_json_text(self):
        """Test malformed JSON text is rejected immediately."""
        with pytest.raises(InvalidExpectation):
            MockBuilder().expect_json_body_partial('{oops')

    def test_invalid_regex(self):
        """Test an invalid pattern is rejected when the clause is added."""
        with pytest.raises(InvalidExpectation):
            MockBuilder().expect_header_matches('X-Id', '[')

    def test_body_and_json_are_exclusive(self):
        """Test the last body setting wins."""
        _, response = MockBuilder().return_json_body({'a': 1}).return_body('plain').build()

        assert response.has_json is False
        assert response.render_body() == b'plain'

        _, response = MockBuilder().return_body('plain').return_json_body(None).build()

        assert response.has_json is True
        assert response.render_body() == b'null'

    def test_invalid_status(self):
        """Test response settings are validated on build."""
        with pytest.raises(InvalidExpectation):
            MockBuilder().return_status(1000).build()
        with pytest.raises(InvalidExpectation):
            MockBuilder().return_delay(-1).build()

    def test_invalid_max_hits(self):
        """Test a negative hit budget is rejected."""
        with pytest.raises(InvalidExpectation):
            MockBuilder().times(-1).build()

    def test_repeated_method_rejected(self):
        """Test a second method clause is refused at build time."""
        with pytest.raises(InvalidExpectation):
            MockBuilder(method='GET', path='/x').expect_method('POST').build()

    def test_create_without_server(self):
        """Test create() needs a server."""
        with pytest.raises(RuntimeError):
            MockBuilder(method='GET').create()


class TestHandle:
    """Test MockHandle."""

    def test_hits_and_verify(self, server):
        """Test the handle reads the server's hit count."""
        handle = server.mock('GET', '/x').create()
        server.registry.find_best_match(MockRequest.from_url('GET', '/x'))

        assert handle.hits() == 1
        assert handle.verify(1).matched is True
        handle.assert_hits(1)

    def test_assert_hits_message(self, server):
        """Test a failed assertion reports the actual count."""
        handle = server.mock('GET', '/x').create()

        with pytest.raises(AssertionError, match=r'Mock #1 was matched 0 times, expected 1'):
            handle.assert_hits(1)

    def test_delete(self, server):
        """Test deleting through the handle."""
        handle = server.mock('GET', '/x').create()

        handle.delete()

        assert server.registry.find_best_match(MockRequest.from_url('GET', '/x')) is None
        assert repr(handle) == '<MockHandle id=1>'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

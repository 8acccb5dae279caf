"""
Tests for httpdouble Diagnostic Engine

Tests closest-mock ranking, tie-breaking and the rendered explanation.
"""

import pytest

from httpdouble.mock.diagnostics import diagnose
from httpdouble.mock.matcher import ClauseResult, Expectation, Matcher
from httpdouble.mock.models import MockRequest, ResponseSpec
from httpdouble.mock.registry import Mock, MockRegistry


class FixedDistanceMatcher(Matcher):
    """Clause that always fails with a chosen distance."""

    kind = 'fixed'

    def __init__(self, distance):
        self.distance = distance

    def evaluate(self, request):
        return ClauseResult(matched=False, distance=self.distance, detail=f"fixed {self.distance}")

    def wire_item(self):
        return self.distance


def fixed_mock(mock_id, distance):
    return Mock(
        id=mock_id,
        expectation=Expectation(matchers=[FixedDistanceMatcher(distance)]),
        response=ResponseSpec()
    )


@pytest.fixture
def request_x():
    """GET /users?id=2 request."""
    return MockRequest.from_url('GET', '/users?id=2')


class TestRanking:
    """Test candidate ordering."""

    def test_closest_by_distance(self, request_x):
        """Test the 0.3 mock is reported before the 0.7 one."""
        diagnosis = diagnose([fixed_mock(1, 0.7), fixed_mock(2, 0.3)], request_x)

        assert diagnosis.closest.mock_id == 2
        assert [c.mock_id for c in diagnosis.candidates] == [2, 1]

    def test_tie_broken_by_lower_id(self, request_x):
        """Test equal distances report the lower mock id."""
        diagnosis = diagnose([fixed_mock(4, 0.5), fixed_mock(2, 0.5)], request_x)

        assert diagnosis.closest.mock_id == 2

    def test_limit(self, request_x):
        """Test only the requested number of candidates is kept."""
        mocks = [fixed_mock(i, i / 10) for i in range(1, 6)]

        diagnosis = diagnose(mocks, request_x, limit=2)

        assert [c.mock_id for c in diagnosis.candidates] == [1, 2]
        assert diagnosis.total_mocks == 5

    def test_no_mocks(self, request_x):
        """Test an empty registry still produces a diagnosis."""
        diagnosis = diagnose([], request_x)

        assert diagnosis.closest is None
        assert diagnosis.to_dict()['closest_match'] is None
        assert 'No mocks are registered' in diagnosis.render()


class TestBreakdown:
    """Test the per-clause report."""

    def test_failed_clause_details(self, request_x):
        """Test the near-miss clause is named with expected value and distance."""
        registry = MockRegistry()
        registry.create(
            Expectation.from_dict({'method': 'GET', 'path': '/users', 'query_params': {'id': '1'}}),
            ResponseSpec()
        )

        closest = registry.diagnose(request_x).closest

        assert len(closest.failed) == 1
        diff = closest.failed[0].to_dict()
        assert diff['kind'] == 'query_params'
        assert diff['name'] == 'id'
        assert diff['expected'] == '1'
        assert diff['distance'] > 0
        assert "'2'" in diff['detail']

    def test_json_partial_reports_key(self):
        """Test a JSON partial miss names the differing key."""
        registry = MockRegistry()
        registry.create(Expectation.from_dict({'json_body_partial': [{'a': 1, 'b': 3}]}), ResponseSpec())
        request = MockRequest.from_url('POST', '/x', body='{"a": 1, "b": 2}')

        report = registry.diagnose(request).closest.to_dict()

        mismatch = report['failed_clauses'][0]['mismatches'][0]
        assert mismatch['path'] == 'b'
        assert report['distance'] > 0

    def test_exhausted_mock_is_flagged(self, request_x):
        """Test a mock that would match but is used up is reported as exhausted."""
        mock = Mock(
            id=1,
            expectation=Expectation.from_dict({'path': '/users', 'max_hits': 1}),
            response=ResponseSpec(),
            hits=1
        )

        diagnosis = diagnose([mock], request_x)

        assert diagnosis.closest.exhausted is True
        assert diagnosis.closest.failed == []
        assert 'exhausted' in diagnosis.render()

    def test_deleted_mocks_are_not_candidates(self, request_x):
        """Test the registry only diagnoses active mocks."""
        registry = MockRegistry()
        mock_id = registry.create(Expectation.from_dict({'path': '/users'}), ResponseSpec())
        registry.delete(mock_id)

        assert registry.diagnose(request_x).candidates == []

    def test_to_dict_shape(self, request_x):
        """Test the 404 body fields."""
        data = diagnose([fixed_mock(1, 0.2)], request_x).to_dict()

        assert data['error'] == 'No matching mock found'
        assert data['request']['path'] == '/users'
        assert data['request']['query'] == [['id', '2']]
        assert data['closest_match']['mock_id'] == 1
        assert len(data['candidates']) == 1
        assert data['message'].startswith('No mock matched GET /users?id=2.')

    def test_render_lists_failed_clauses(self, request_x):
        """Test the human-readable message names each failed clause."""
        mock = Mock(
            id=3,
            expectation=Expectation.from_dict({'method': 'POST', 'path': '/users'}),
            response=ResponseSpec()
        )

        message = diagnose([mock], request_x).render()

        assert 'Closest mock #3' in message
        assert 'method: method is GET, expected POST' in message


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

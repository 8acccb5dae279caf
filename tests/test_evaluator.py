"""
Tests for httpdouble Expectation Evaluator

Tests clause combination and the selection policy among matching mocks.
"""

import pytest

from httpdouble.mock.errors import InvalidExpectation
from httpdouble.mock.evaluator import (
    SelectionPolicy,
    evaluate,
    evaluate_expectation,
    select_best,
)
from httpdouble.mock.matcher import Expectation
from httpdouble.mock.models import MockRequest, ResponseSpec
from httpdouble.mock.registry import Mock


def make_mock(mock_id, max_hits=None, priority=0, **clauses):
    """Build a Mock outside of a registry."""
    expectation = Expectation.from_dict(dict(clauses, max_hits=max_hits, priority=priority))
    return Mock(id=mock_id, expectation=expectation, response=ResponseSpec())


@pytest.fixture
def get_users():
    """GET /users request."""
    return MockRequest.from_url('GET', '/users', headers={'Accept': 'application/json'})


class TestEvaluate:
    """Test combining clauses into a MatchResult."""

    def test_all_clauses_must_match(self, get_users):
        """Test logical AND over clauses."""
        mock = make_mock(1, method='GET', path='/users', headers={'Accept': 'application/json'})

        result = evaluate(mock, get_users)

        assert result.matched is True
        assert result.total_distance == 0.0
        assert len(result.clause_results) == 3

    def test_total_distance_is_sum(self):
        """Test total distance adds up per-clause distances."""
        request = MockRequest.from_url('POST', '/b')
        expectation = Expectation.from_dict({'method': 'GET', 'path': '/a'})

        result = evaluate_expectation(expectation, request)

        assert result.matched is False
        # method mismatch (1.0) plus 1 - ratio('/a', '/b') = 0.5
        assert result.total_distance == pytest.approx(1.5)
        assert [m.kind for m, _ in result.failed] == ['method', 'path']

    def test_minor_mismatch_outranks_major(self, get_users):
        """Test one near-miss header is closer than wrong method and path."""
        near = make_mock(1, method='GET', path='/users', headers={'Accept': 'application/jsonx'})
        far = make_mock(2, method='DELETE', path='/orders')

        assert evaluate(near, get_users).total_distance < evaluate(far, get_users).total_distance

    def test_empty_expectation_matches(self, get_users):
        """Test an expectation without clauses matches any request."""
        assert evaluate_expectation(Expectation(), get_users).matched

    def test_stop_on_failure(self):
        """Test evaluation can stop at the first failing clause."""
        request = MockRequest.from_url('POST', '/b')
        expectation = Expectation.from_dict({'method': 'GET', 'path': '/a'})

        result = evaluate_expectation(expectation, request, stop_on_failure=True)

        assert result.matched is False
        assert len(result.clause_results) == 1


class TestSelectionPolicy:
    """Test select_best ordering."""

    def test_most_recent_wins_among_equals(self):
        """Test the highest id wins when nothing else differs."""
        mocks = [make_mock(1), make_mock(2), make_mock(3)]

        assert select_best(mocks).id == 3

    def test_budget_first_prefers_bounded(self):
        """Test bounded mocks beat more recent unlimited ones."""
        mocks = [make_mock(1), make_mock(2, max_hits=1), make_mock(3)]

        assert select_best(mocks, SelectionPolicy.BUDGET_FIRST).id == 2

    def test_budget_first_beats_priority(self):
        """Test budget class is compared before priority."""
        mocks = [make_mock(1, max_hits=2), make_mock(2, priority=10)]

        assert select_best(mocks, SelectionPolicy.BUDGET_FIRST).id == 1

    def test_priority_within_budget_class(self):
        """Test higher priority wins inside the same budget class."""
        mocks = [make_mock(1, priority=5), make_mock(2)]

        assert select_best(mocks).id == 1

    def test_recency_first_ignores_budget(self):
        """Test recency_first picks the newest regardless of budget."""
        mocks = [make_mock(1), make_mock(2, max_hits=1), make_mock(3)]

        assert select_best(mocks, SelectionPolicy.RECENCY_FIRST).id == 3

    def test_no_candidates(self):
        """Test None when nothing matched."""
        assert select_best([]) is None

    @pytest.mark.parametrize('value,expected', [
        ('budget_first', SelectionPolicy.BUDGET_FIRST),
        ('Recency-First', SelectionPolicy.RECENCY_FIRST),
        (SelectionPolicy.RECENCY_FIRST, SelectionPolicy.RECENCY_FIRST),
    ])
    def test_parse(self, value, expected):
        """Test policy names are parsed leniently."""
        assert SelectionPolicy.parse(value) is expected

    def test_parse_unknown(self):
        """Test unknown policy names are rejected."""
        with pytest.raises(InvalidExpectation):
            SelectionPolicy.parse('random')


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

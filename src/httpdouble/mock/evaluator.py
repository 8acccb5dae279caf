"""
httpdouble Expectation Evaluator

Combines the clauses of an expectation into one match decision and a total
distance, and picks the winner when several mocks match the same request.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .errors import InvalidExpectation
from .matcher import ClauseResult, Expectation, Matcher
from .models import MockRequest


@dataclass
class MatchResult:
    """Outcome of evaluating one expectation against a request."""

    matched: bool
    total_distance: float = 0.0
    clause_results: List[Tuple[Matcher, ClauseResult]] = field(default_factory=list)

    @property
    def failed(self) -> List[Tuple[Matcher, ClauseResult]]:
        """Clauses that did not hold, in expectation order."""
        return [(m, r) for m, r in self.clause_results if not r.matched]


def evaluate_expectation(
    expectation: Expectation,
    request: MockRequest,
    stop_on_failure: bool = False
) -> MatchResult:
    """
    Evaluate every clause of an expectation.

    Args:
        expectation: Expectation to evaluate
        request: Inbound request
        stop_on_failure: Return at the first failing clause. The distance is
                         then partial, so only use this when just the
                         decision is needed.

    Returns:
        MatchResult with the summed clause distances
    """
    results = []
    total = 0.0
    matched = True

    for matcher in expectation.matchers:
        result = matcher.evaluate(request)
        results.append((matcher, result))
        if not result.matched:
            matched = False
            total += result.distance
            if stop_on_failure:
                break

    return MatchResult(matched=matched, total_distance=round(total, 6), clause_results=results)


def evaluate(mock, request: MockRequest) -> MatchResult:
    """Evaluate a registered mock's expectation against a request."""
    return evaluate_expectation(mock.expectation, request)


class SelectionPolicy(str, Enum):
    """
    Order in which matching mocks are preferred.

    BUDGET_FIRST: mocks with a bounded hit budget before unlimited ones,
                  then higher priority, then most recently registered.
    RECENCY_FIRST: higher priority, then most recently registered.
    """

    BUDGET_FIRST = 'budget_first'
    RECENCY_FIRST = 'recency_first'

    @classmethod
    def parse(cls, value) -> 'SelectionPolicy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace('-', '_'))
        except ValueError:
            choices = ', '.join(p.value for p in cls)
            raise InvalidExpectation(f"Unknown selection policy {value!r} (choose from {choices})") from None


def selection_key(mock, policy: SelectionPolicy) -> tuple:
    """Sort key under which the preferred mock is the largest."""
    if policy is SelectionPolicy.RECENCY_FIRST:
        return (mock.priority, mock.id)
    bounded = 1 if mock.max_hits is not None else 0
    return (bounded, mock.priority, mock.id)


def select_best(candidates: Iterable, policy: SelectionPolicy = SelectionPolicy.BUDGET_FIRST) -> Optional[object]:
    """
    Pick the mock to serve among several that all match.

    Callers pass only live (active, not exhausted) mocks.

    Returns:
        The preferred mock, or None if there are no candidates
    """
    candidates = list(candidates)
    if not candidates:
        return None
    return max(candidates, key=lambda mock: selection_key(mock, policy))

"""
httpdouble Mock Registry

Single source of truth for the mocks of one server instance.

All operations run under one lock per registry. Matching a request and
counting the hit on the winning mock happen in the same critical section, so
two concurrent requests can never both consume the last use of a bounded
mock.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .diagnostics import Diagnosis, diagnose
from .errors import InvalidExpectation, InvariantViolation, MockNotFound
from .evaluator import SelectionPolicy, evaluate_expectation, select_best
from .matcher import Expectation
from .models import MockRequest, MockState, ResponseSpec


@dataclass
class Mock:
    """A registered expectation/response pair and its hit counter."""

    id: int
    expectation: Expectation
    response: ResponseSpec
    hits: int = 0
    state: MockState = MockState.ACTIVE
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def max_hits(self) -> Optional[int]:
        return self.expectation.max_hits

    @property
    def priority(self) -> int:
        return self.expectation.priority

    @property
    def active(self) -> bool:
        return self.state is MockState.ACTIVE

    @property
    def remaining(self) -> Optional[int]:
        """Hits left before the mock is exhausted (None = unlimited)."""
        if self.max_hits is None:
            return None
        return max(self.max_hits - self.hits, 0)

    @property
    def exhausted(self) -> bool:
        return self.max_hits is not None and self.hits >= self.max_hits

    def snapshot(self) -> 'Mock':
        """Copy safe to hand out of the registry lock."""
        return dataclasses.replace(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Mock':
        """
        Rebuild a mock from its admin API representation.

        Raises:
            InvalidExpectation: If the definition cannot be parsed
        """
        try:
            return cls(
                id=int(data['id']),
                expectation=Expectation.from_dict(data.get('expectation')),
                response=ResponseSpec.from_dict(data.get('response')),
                hits=int(data.get('hits', 0)),
                state=MockState(data.get('state', MockState.ACTIVE.value)),
                created_at=data.get('created_at') or datetime.now().isoformat()
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidExpectation(f"Malformed mock representation: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'expectation': self.expectation.to_dict(),
            'response': self.response.to_dict(),
            'hits': self.hits,
            'remaining': self.remaining,
            'state': self.state.value,
            'created_at': self.created_at
        }


@dataclass
class Verification:
    """Result of comparing a mock's hit count with an expected count."""

    matched: bool
    expected: int
    actual: int

    def __bool__(self):
        return self.matched

    def to_dict(self) -> Dict[str, Any]:
        return {'matched': self.matched, 'expected': self.expected, 'actual': self.actual}


class MockRegistry:
    """
    Thread-safe store of mocks with atomic find-and-count.

    Example:
        registry = MockRegistry()
        mock_id = registry.create(
            Expectation.from_dict({'method': 'GET', 'path': '/users'}),
            ResponseSpec(status=200, json_body=[])
        )
        mock = registry.find_best_match(MockRequest.from_url('GET', '/users'))
        assert mock.id == mock_id and registry.hits(mock_id) == 1
    """

    def __init__(self, policy: SelectionPolicy = SelectionPolicy.BUDGET_FIRST):
        self.policy = SelectionPolicy.parse(policy)
        self._lock = threading.Lock()
        self._mocks: Dict[int, Mock] = {}
        self._next_id = 1
        self.logger = logging.getLogger("httpdouble.mock.registry")

    def create(self, expectation: Expectation, response: ResponseSpec) -> int:
        """
        Register a mock in the active state.

        Returns:
            The new mock id

        Raises:
            InvalidExpectation: If expectation or response has the wrong type
        """
        if not isinstance(expectation, Expectation):
            raise InvalidExpectation(f"Expected an Expectation, got {type(expectation).__name__}")
        if not isinstance(response, ResponseSpec):
            raise InvalidExpectation(f"Expected a ResponseSpec, got {type(response).__name__}")

        with self._lock:
            mock_id = self._next_id
            self._next_id += 1
            self._mocks[mock_id] = Mock(id=mock_id, expectation=expectation, response=response)

        self.logger.debug(f"Created mock #{mock_id}: {expectation.describe()}")
        return mock_id

    def delete(self, mock_id: int):
        """
        Mark a mock deleted. Its hit count stays queryable until delete_all().

        Raises:
            MockNotFound: If the id is unknown or already deleted
        """
        with self._lock:
            mock = self._mocks.get(mock_id)
            if mock is None or not mock.active:
                raise MockNotFound(mock_id)
            mock.state = MockState.DELETED
        self.logger.debug(f"Deleted mock #{mock_id}")

    def delete_all(self) -> int:
        """
        Remove every mock and restart the id sequence at 1.

        Returns:
            Number of mocks removed (deleted ones included)
        """
        with self._lock:
            count = len(self._mocks)
            self._mocks.clear()
            self._next_id = 1
        self.logger.debug(f"Cleared {count} mocks")
        return count

    def find_best_match(self, request: MockRequest) -> Optional[Mock]:
        """
        Find the mock to serve for a request and count the hit.

        Returns:
            Snapshot of the winning mock (hit already counted), or None
        """
        with self._lock:
            return self._match(request)

    def match_or_diagnose(self, request: MockRequest, limit: int = 3) -> Tuple[Optional[Mock], Optional[Diagnosis]]:
        """
        Find and count the mock for a request, or explain why none matched.

        The diagnosis ranks the mocks as they were when matching failed;
        mocks created afterwards are not candidates.

        Returns:
            (mock, None) on a match, (None, diagnosis) otherwise
        """
        with self._lock:
            mock = self._match(request)
            if mock is not None:
                return mock, None
            mocks = [m.snapshot() for m in self._mocks.values() if m.active]
        return None, diagnose(mocks, request, limit=limit)

    def _match(self, request: MockRequest) -> Optional[Mock]:
        # Called with the lock held
        candidates = [
            mock for mock in self._mocks.values()
            if mock.active and not mock.exhausted
            and evaluate_expectation(mock.expectation, request, stop_on_failure=True).matched
        ]
        winner = select_best(candidates, self.policy)
        if winner is None:
            return None
        self._count_hit(winner)
        return winner.snapshot()

    def _count_hit(self, mock: Mock):
        # Called with the lock held
        if self._mocks.get(mock.id) is not mock or mock.exhausted or not mock.active:
            raise InvariantViolation(f"Mock #{mock.id} selected in an unusable state")
        mock.hits += 1

    def _lookup(self, mock_id: int) -> Mock:
        mock = self._mocks.get(mock_id)
        if mock is None:
            raise MockNotFound(mock_id)
        return mock

    def get(self, mock_id: int) -> Mock:
        """Snapshot of one mock (deleted mocks included)."""
        with self._lock:
            return self._lookup(mock_id).snapshot()

    def list(self) -> List[Mock]:
        """Snapshots of all mocks in id order (deleted mocks included)."""
        with self._lock:
            return [self._mocks[key].snapshot() for key in sorted(self._mocks)]

    def hits(self, mock_id: int) -> int:
        with self._lock:
            return self._lookup(mock_id).hits

    def verify(self, mock_id: int, expected_count: int) -> Verification:
        """
        Compare a mock's hit count with the expected count.

        Raises:
            MockNotFound: If the id is unknown
        """
        with self._lock:
            actual = self._lookup(mock_id).hits
        return Verification(matched=actual == expected_count, expected=expected_count, actual=actual)

    def diagnose(self, request: MockRequest, limit: int = 3) -> Diagnosis:
        """
        Explain why a request matches no mock.

        Active mocks are copied under the lock and ranked outside of it.
        """
        with self._lock:
            mocks = [mock.snapshot() for mock in self._mocks.values() if mock.active]
        return diagnose(mocks, request, limit=limit)

    def __len__(self):
        with self._lock:
            return sum(1 for mock in self._mocks.values() if mock.active)

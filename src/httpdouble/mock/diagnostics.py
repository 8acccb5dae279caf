"""
httpdouble Diagnostic Engine

Explains why a request matched no mock by ranking the registered mocks by
their distance to it and breaking the closest one down clause by clause.

Ranking is by ascending total distance, ties broken by ascending mock id.
Nothing here mutates a mock.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .evaluator import evaluate_expectation
from .models import MockRequest


@dataclass
class ClauseDiff:
    """A failed clause of a candidate mock."""

    kind: str
    expected: Any
    distance: float
    detail: str
    name: Optional[str] = None
    mismatches: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'kind': self.kind,
            'expected': self.expected,
            'distance': round(self.distance, 3),
            'detail': self.detail
        }
        if self.name is not None:
            data['name'] = self.name
        if self.mismatches:
            data['mismatches'] = self.mismatches
        return data


@dataclass
class CandidateReport:
    """How far one mock is from the request."""

    mock_id: int
    total_distance: float
    expectation: Dict[str, Any]
    failed: List[ClauseDiff] = field(default_factory=list)
    exhausted: bool = False
    hits: int = 0
    max_hits: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mock_id': self.mock_id,
            'distance': round(self.total_distance, 3),
            'exhausted': self.exhausted,
            'hits': self.hits,
            'max_hits': self.max_hits,
            'expectation': self.expectation,
            'failed_clauses': [diff.to_dict() for diff in self.failed]
        }


@dataclass
class Diagnosis:
    """Ranked explanation of a request that matched no mock."""

    request: MockRequest
    candidates: List[CandidateReport] = field(default_factory=list)
    total_mocks: int = 0

    @property
    def closest(self) -> Optional[CandidateReport]:
        return self.candidates[0] if self.candidates else None

    def render(self) -> str:
        """
        Human-readable explanation.

        Example:
            No mock matched GET /users?id=2.
            Closest mock #3 (distance 0.412):
              - query_params: query parameter 'id' is '2', expected '1' (distance 0.412)
        """
        target = self.request.path
        if self.request.query:
            target += '?' + '&'.join(f"{k}={v}" for k, v in self.request.query)
        lines = [f"No mock matched {self.request.method} {target}."]

        closest = self.closest
        if closest is None:
            lines.append("No mocks are registered.")
            return '\n'.join(lines)

        if closest.exhausted and not closest.failed:
            lines.append(
                f"Closest mock #{closest.mock_id} matches, but its hit budget is exhausted "
                f"({closest.hits} of {closest.max_hits} used)."
            )
        else:
            lines.append(f"Closest mock #{closest.mock_id} (distance {closest.total_distance:.3f}):")
            for diff in closest.failed:
                lines.append(f"  - {diff.kind}: {diff.detail} (distance {diff.distance:.3f})")
            if closest.exhausted:
                lines.append("  (its hit budget is also exhausted)")

        others = self.candidates[1:]
        if others:
            ranked = ', '.join(f"#{c.mock_id} ({c.total_distance:.3f})" for c in others)
            lines.append(f"Other candidates: {ranked}")
        return '\n'.join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Body of the 404 response for an unmatched request."""
        closest = self.closest
        return {
            'error': 'No matching mock found',
            'request': self.request.to_dict(),
            'closest_match': closest.to_dict() if closest else None,
            'candidates': [candidate.to_dict() for candidate in self.candidates],
            'total_mocks': self.total_mocks,
            'message': self.render()
        }


def _report(mock, request: MockRequest) -> CandidateReport:
    result = evaluate_expectation(mock.expectation, request)
    failed = []
    for matcher, clause in result.failed:
        entry = matcher.to_dict()
        failed.append(ClauseDiff(
            kind=matcher.kind,
            name=entry.get('name'),
            expected=entry['expected'],
            distance=clause.distance,
            detail=clause.detail,
            mismatches=[m.to_dict() for m in clause.mismatches]
        ))
    return CandidateReport(
        mock_id=mock.id,
        total_distance=result.total_distance,
        expectation=mock.expectation.to_dict(),
        failed=failed,
        exhausted=mock.exhausted,
        hits=mock.hits,
        max_hits=mock.max_hits
    )


def diagnose(mocks, request: MockRequest, limit: int = 3) -> Diagnosis:
    """
    Rank mocks by similarity to a request.

    Args:
        mocks: Active mocks (exhausted ones included, they are flagged)
        request: The unmatched request
        limit: Number of candidates to keep (0 or less keeps all)

    Returns:
        Diagnosis with candidates closest first
    """
    mocks = list(mocks)
    reports = [_report(mock, request) for mock in mocks]
    reports.sort(key=lambda report: (report.total_distance, report.mock_id))
    if limit and limit > 0:
        reports = reports[:limit]
    return Diagnosis(request=request, candidates=reports, total_mocks=len(mocks))

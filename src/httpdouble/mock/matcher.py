"""
httpdouble Request Matcher

Matcher clauses evaluated against an inbound request, and the Expectation
that combines them.

Features:
- Method, path, header, query parameter and cookie clauses
- Equality, regex and presence variants
- Raw body, body substring and body regex clauses
- JSON body clauses (exact and partial/subset)
- Form-urlencoded field and multipart part clauses
- A normalized distance per clause for explaining near misses

Every clause kind has a wire key; an Expectation serializes to a flat JSON
object of those keys (see Expectation.from_dict).
"""

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from ..common import string_distance, decode_text, preview
from .errors import InvalidExpectation
from .models import MockRequest


MAX_DISTANCE = 1.0


@dataclass
class ClauseResult:
    """Outcome of evaluating one clause against a request."""

    matched: bool
    distance: float = 0.0
    detail: str = ''
    mismatches: List['JsonMismatch'] = field(default_factory=list)

    @classmethod
    def ok(cls) -> 'ClauseResult':
        return cls(matched=True, distance=0.0)

    @classmethod
    def fail(cls, distance: float, detail: str, mismatches=None) -> 'ClauseResult':
        distance = min(MAX_DISTANCE, max(distance, 0.0))
        # A failing clause is never reported as identical
        if distance == 0.0:
            distance = 0.01
        return cls(matched=False, distance=distance, detail=detail, mismatches=mismatches or [])


def _compile(pattern: Any, what: str) -> 're.Pattern':
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise InvalidExpectation(f"{what} pattern must be a string, got {type(pattern).__name__}")
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidExpectation(f"Invalid {what} pattern {pattern!r}: {e}") from e


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise InvalidExpectation(f"{what} must be a string, got {type(value).__name__}")
    return value


def _is_text(data: bytes) -> bool:
    try:
        data.decode('utf-8')
    except UnicodeDecodeError:
        return False
    return True


def _b64decode(value: Any, what: str) -> bytes:
    if not isinstance(value, str):
        raise InvalidExpectation(f"{what} must be a base64 string, got {type(value).__name__}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidExpectation(f"Invalid {what}: {e}") from e


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def _closest(expected: str, candidates: List[str]) -> Tuple[float, str]:
    """Smallest edit distance from expected to any candidate, and that candidate."""
    best = (MAX_DISTANCE, '')
    for candidate in candidates:
        distance = string_distance(expected, candidate)
        if distance < best[0]:
            best = (distance, candidate)
    return best


class Matcher:
    """
    Base class of all clause kinds.

    Subclasses set ``kind`` (the wire key) and ``wire`` (how values of that
    key are laid out: 'scalar', 'list' or 'mapping'). A scalar kind may
    appear at most once per expectation.
    """

    kind = ''
    wire = 'scalar'

    def evaluate(self, request: MockRequest) -> ClauseResult:
        raise NotImplementedError

    @property
    def wire_key(self) -> str:
        """Key this clause is serialized under (usually ``kind``)."""
        return self.kind

    def wire_item(self) -> Any:
        """Value of this clause in the wire format."""
        raise NotImplementedError

    def describe(self) -> str:
        return f"{self.kind} {self.wire_item()!r}"

    @classmethod
    def from_item(cls, item: Any) -> 'Matcher':
        return cls(item)

    @classmethod
    def from_wire(cls, key: str, item: Any) -> 'Matcher':
        """Build a clause from one wire item found under ``key``."""
        return cls.from_item(item)

    def to_dict(self) -> Dict[str, Any]:
        item = self.wire_item()
        if self.wire == 'mapping':
            name, value = item
            return {'kind': self.kind, 'name': name, 'expected': value}
        return {'kind': self.kind, 'expected': item}

    def __eq__(self, other):
        if not isinstance(other, Matcher):
            return NotImplemented
        return self.kind == other.kind and self.wire_item() == other.wire_item()

    def __repr__(self):
        return f"<{type(self).__name__} {self.describe()}>"


# ---------------------------------------------------------------------------
# Method and path
# ---------------------------------------------------------------------------

class MethodMatcher(Matcher):
    """Request method equality."""

    kind = 'method'

    def __init__(self, method: str):
        self.method = _require_str(method, 'method').upper()

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if request.method == self.method:
            return ClauseResult.ok()
        return ClauseResult.fail(MAX_DISTANCE, f"method is {request.method}, expected {self.method}")

    def wire_item(self):
        return self.method

    def describe(self):
        return f"method == {self.method}"


class PathMatcher(Matcher):
    """Exact, case-sensitive path equality."""

    kind = 'path'

    def __init__(self, path: str):
        self.path = _require_str(path, 'path')

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if request.path == self.path:
            return ClauseResult.ok()
        return ClauseResult.fail(
            string_distance(self.path, request.path),
            f"path is {request.path!r}, expected {self.path!r}"
        )

    def wire_item(self):
        return self.path

    def describe(self):
        return f"path == {self.path!r}"


class PathContainsMatcher(Matcher):
    """Path contains a substring."""

    kind = 'path_contains'
    wire = 'list'

    def __init__(self, substring: str):
        self.substring = _require_str(substring, 'path_contains')

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if self.substring in request.path:
            return ClauseResult.ok()
        return ClauseResult.fail(
            string_distance(self.substring, request.path),
            f"path {request.path!r} does not contain {self.substring!r}"
        )

    def wire_item(self):
        return self.substring

    def describe(self):
        return f"path contains {self.substring!r}"


class PathPatternMatcher(Matcher):
    """Path matches a regular expression (search semantics)."""

    kind = 'path_matches'
    wire = 'list'

    def __init__(self, pattern: Union[str, 're.Pattern']):
        self.pattern = _compile(pattern, 'path')

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if self.pattern.search(request.path):
            return ClauseResult.ok()
        return ClauseResult.fail(MAX_DISTANCE, f"path {request.path!r} does not match /{self.pattern.pattern}/")

    def wire_item(self):
        return self.pattern.pattern

    def describe(self):
        return f"path matches /{self.pattern.pattern}/"


# ---------------------------------------------------------------------------
# Named attributes: headers, query parameters, cookies, form fields
# ---------------------------------------------------------------------------

class _NamedMatcher(Matcher):
    """Clause over a named, possibly multi-valued request attribute."""

    wire = 'mapping'
    source = ''

    def _values(self, request: MockRequest) -> Optional[List[str]]:
        """Values of the attribute, or None when the source is unavailable."""
        raise NotImplementedError

    def _unavailable(self) -> str:
        return f"{self.source} {self.name!r} is missing"

    @classmethod
    def from_item(cls, item):
        name, value = item
        return cls(name, value)


class _NamedValueMatcher(_NamedMatcher):
    """Some value of the attribute equals the expected value."""

    def __init__(self, name: str, value: str):
        self.name = _require_str(name, f"{self.source} name")
        self.value = _require_str(value, f"{self.source} {name!r} value")

    def evaluate(self, request: MockRequest) -> ClauseResult:
        values = self._values(request)
        if not values:
            return ClauseResult.fail(MAX_DISTANCE, self._unavailable())
        if self.value in values:
            return ClauseResult.ok()
        distance, closest = _closest(self.value, values)
        return ClauseResult.fail(
            distance,
            f"{self.source} {self.name!r} is {closest!r}, expected {self.value!r}"
        )

    def wire_item(self):
        return self.name, self.value

    def describe(self):
        return f"{self.source} {self.name!r} == {self.value!r}"


class _NamedPatternMatcher(_NamedMatcher):
    """Some value of the attribute matches a regular expression."""

    def __init__(self, name: str, pattern: Union[str, 're.Pattern']):
        self.name = _require_str(name, f"{self.source} name")
        self.pattern = _compile(pattern, f"{self.source} {name!r}")

    def evaluate(self, request: MockRequest) -> ClauseResult:
        values = self._values(request)
        if not values:
            return ClauseResult.fail(MAX_DISTANCE, self._unavailable())
        if any(self.pattern.search(value) for value in values):
            return ClauseResult.ok()
        return ClauseResult.fail(
            MAX_DISTANCE,
            f"{self.source} {self.name!r} value {values[0]!r} does not match /{self.pattern.pattern}/"
        )

    def wire_item(self):
        return self.name, self.pattern.pattern

    def describe(self):
        return f"{self.source} {self.name!r} matches /{self.pattern.pattern}/"


class _NamedExistsMatcher(_NamedMatcher):
    """The attribute is present (with any value)."""

    wire = 'list'

    def __init__(self, name: str):
        self.name = _require_str(name, f"{self.source} name")

    @classmethod
    def from_item(cls, item):
        return cls(item)

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if self._values(request):
            return ClauseResult.ok()
        return ClauseResult.fail(MAX_DISTANCE, self._unavailable())

    def wire_item(self):
        return self.name

    def describe(self):
        return f"{self.source} {self.name!r} is present"


class _HeaderSource:
    source = 'header'

    def _values(self, request):
        return request.header_values(self.name)


class _QuerySource:
    source = 'query parameter'

    def _values(self, request):
        return request.query_values(self.name)


class _CookieSource:
    source = 'cookie'

    def _values(self, request):
        value = request.cookies.get(self.name)
        return None if value is None else [value]


class _FormSource:
    source = 'form field'

    def _values(self, request):
        fields = request.form_fields
        if fields is None:
            return None
        return [v for k, v in fields if k == self.name]

    def _unavailable(self):
        return f"form field {self.name!r} is missing (or body is not form-urlencoded)"


class HeaderMatcher(_HeaderSource, _NamedValueMatcher):
    """Header equality; the header name is case-insensitive."""

    kind = 'headers'


class HeaderPatternMatcher(_HeaderSource, _NamedPatternMatcher):
    kind = 'header_matches'


class HeaderExistsMatcher(_HeaderSource, _NamedExistsMatcher):
    kind = 'header_exists'


class QueryParamMatcher(_QuerySource, _NamedValueMatcher):
    """Query parameter equality against the percent-decoded value."""

    kind = 'query_params'


class QueryParamPatternMatcher(_QuerySource, _NamedPatternMatcher):
    kind = 'query_param_matches'


class QueryParamExistsMatcher(_QuerySource, _NamedExistsMatcher):
    kind = 'query_param_exists'


class CookieMatcher(_CookieSource, _NamedValueMatcher):
    kind = 'cookies'


class CookiePatternMatcher(_CookieSource, _NamedPatternMatcher):
    kind = 'cookie_matches'


class CookieExistsMatcher(_CookieSource, _NamedExistsMatcher):
    kind = 'cookie_exists'


class FormFieldMatcher(_FormSource, _NamedValueMatcher):
    """Field equality in an application/x-www-form-urlencoded body."""

    kind = 'form_fields'


class FormFieldExistsMatcher(_FormSource, _NamedExistsMatcher):
    kind = 'form_field_exists'


# ---------------------------------------------------------------------------
# Body
# ---------------------------------------------------------------------------

class BodyMatcher(Matcher):
    """Raw body equality (byte for byte)."""

    kind = 'body'

    def __init__(self, body: Union[str, bytes]):
        if isinstance(body, str):
            body = body.encode('utf-8')
        if not isinstance(body, (bytes, bytearray)):
            raise InvalidExpectation(f"body must be a string, got {type(body).__name__}")
        self.body = bytes(body)

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if request.body == self.body:
            return ClauseResult.ok()
        return ClauseResult.fail(
            string_distance(decode_text(self.body), request.text),
            f"body is {preview(request.body, 80)!r}, expected {preview(self.body, 80)!r}"
        )

    @property
    def wire_key(self):
        return 'body' if _is_text(self.body) else 'body_base64'

    def wire_item(self):
        if self.wire_key == 'body_base64':
            return _b64encode(self.body)
        return self.body.decode('utf-8')

    @classmethod
    def from_wire(cls, key, item):
        if key == 'body_base64':
            return cls(_b64decode(item, 'body_base64'))
        return cls(item)

    def describe(self):
        return f"body == {preview(self.body, 80)!r}"


class BodyContainsMatcher(Matcher):
    """Body text contains a substring."""

    kind = 'body_contains'
    wire = 'list'

    def __init__(self, substring: str):
        self.substring = _require_str(substring, 'body_contains')

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if self.substring in request.text:
            return ClauseResult.ok()
        return ClauseResult.fail(
            string_distance(self.substring, request.text),
            f"body does not contain {self.substring!r}"
        )

    def wire_item(self):
        return self.substring

    def describe(self):
        return f"body contains {self.substring!r}"


class BodyPatternMatcher(Matcher):
    """Body text matches a regular expression (search semantics)."""

    kind = 'body_matches'
    wire = 'list'

    def __init__(self, pattern: Union[str, 're.Pattern']):
        self.pattern = _compile(pattern, 'body')

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if self.pattern.search(request.text):
            return ClauseResult.ok()
        return ClauseResult.fail(MAX_DISTANCE, f"body does not match /{self.pattern.pattern}/")

    def wire_item(self):
        return self.pattern.pattern

    def describe(self):
        return f"body matches /{self.pattern.pattern}/"


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

_ABSENT = object()


@dataclass
class JsonMismatch:
    """One difference between an expected and an actual JSON document."""

    path: str
    expected: Any
    actual: Any
    reason: str  # missing, mismatch, unexpected
    weight: int = 1

    def to_dict(self) -> Dict[str, Any]:
        data = {'path': self.path, 'reason': self.reason}
        if self.expected is not _ABSENT:
            data['expected'] = self.expected
        if self.actual is not _ABSENT:
            data['actual'] = self.actual
        return data

    def describe(self) -> str:
        if self.reason == 'missing':
            return f"{self.path or '$'} is missing"
        if self.reason == 'unexpected':
            return f"{self.path or '$'} is not expected"
        return f"{self.path or '$'} is {preview(self.actual, 60)}, expected {preview(self.expected, 60)}"


def _child_path(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _index_path(path: str, index: int) -> str:
    return f"{path}[{index}]"


def count_leaves(value: Any) -> int:
    """Number of scalar positions in a document; empty containers count as one."""
    if isinstance(value, dict) and value:
        return sum(count_leaves(v) for v in value.values())
    if isinstance(value, list) and value:
        return sum(count_leaves(v) for v in value)
    return 1


def _scalars_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return expected == actual
    return type(expected) is type(actual) and expected == actual


def json_diff(expected: Any, actual: Any, partial: bool, path: str = '') -> List[JsonMismatch]:
    """
    Differences between two JSON documents.

    In partial mode every key of an expected object must be present in the
    actual object (extra actual keys are fine), and arrays are compared
    index by index with extra trailing actual elements allowed. In exact mode
    extra keys and elements are reported as 'unexpected'.
    """
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return [JsonMismatch(path, expected, actual, 'mismatch', count_leaves(expected))]
        mismatches = []
        for key, value in expected.items():
            child = _child_path(path, key)
            if key not in actual:
                mismatches.append(JsonMismatch(child, value, _ABSENT, 'missing', count_leaves(value)))
            else:
                mismatches.extend(json_diff(value, actual[key], partial, child))
        if not partial:
            for key, value in actual.items():
                if key not in expected:
                    mismatches.append(JsonMismatch(
                        _child_path(path, key), _ABSENT, value, 'unexpected', count_leaves(value)
                    ))
        return mismatches

    if isinstance(expected, list):
        if not isinstance(actual, list):
            return [JsonMismatch(path, expected, actual, 'mismatch', count_leaves(expected))]
        mismatches = []
        for index, value in enumerate(expected):
            child = _index_path(path, index)
            if index >= len(actual):
                mismatches.append(JsonMismatch(child, value, _ABSENT, 'missing', count_leaves(value)))
            else:
                mismatches.extend(json_diff(value, actual[index], partial, child))
        if not partial:
            for index in range(len(expected), len(actual)):
                mismatches.append(JsonMismatch(
                    _index_path(path, index), _ABSENT, actual[index], 'unexpected', count_leaves(actual[index])
                ))
        return mismatches

    if _scalars_equal(expected, actual):
        return []
    return [JsonMismatch(path, expected, actual, 'mismatch', 1)]


def json_distance(expected: Any, actual: Any, partial: bool) -> Tuple[float, List[JsonMismatch]]:
    """
    Fraction of expected leaves that are absent or different in actual.

    Exact mode also counts unexpected actual leaves (in both the numerator
    and the denominator).

    Returns:
        Tuple of (distance 0.0 to 1.0, mismatches)
    """
    mismatches = json_diff(expected, actual, partial)
    if not mismatches:
        return 0.0, []
    unexpected = sum(m.weight for m in mismatches if m.reason == 'unexpected')
    total = count_leaves(expected) + unexpected
    failed = sum(m.weight for m in mismatches)
    return min(MAX_DISTANCE, failed / total), mismatches


class _JsonMatcher(Matcher):
    partial = False

    def __init__(self, document: Any):
        self.document = document

    def evaluate(self, request: MockRequest) -> ClauseResult:
        ok, actual = request.json_document
        if not ok:
            return ClauseResult.fail(MAX_DISTANCE, "body is not valid JSON")
        distance, mismatches = json_distance(self.document, actual, self.partial)
        if not mismatches:
            return ClauseResult.ok()
        detail = '; '.join(m.describe() for m in mismatches[:5])
        if len(mismatches) > 5:
            detail += f"; and {len(mismatches) - 5} more"
        return ClauseResult.fail(distance, f"JSON body differs: {detail}", mismatches)

    def wire_item(self):
        return self.document


class JsonBodyMatcher(_JsonMatcher):
    """JSON body equals the expected document."""

    kind = 'json_body'

    def describe(self):
        return f"JSON body == {preview(self.document, 80)}"


class JsonBodyPartialMatcher(_JsonMatcher):
    """JSON body contains the expected document (subset containment)."""

    kind = 'json_body_partial'
    wire = 'list'
    partial = True

    def describe(self):
        return f"JSON body includes {preview(self.document, 80)}"


# ---------------------------------------------------------------------------
# Multipart
# ---------------------------------------------------------------------------

class MultipartPartMatcher(Matcher):
    """A multipart/form-data part with the given name (and optionally filename/content)."""

    kind = 'multipart_parts'
    wire = 'list'

    def __init__(self, name: str, content: Union[str, bytes, None] = None, filename: Optional[str] = None):
        self.name = _require_str(name, 'multipart part name')
        if isinstance(content, str):
            content = content.encode('utf-8')
        if content is not None and not isinstance(content, (bytes, bytearray)):
            raise InvalidExpectation("multipart part content must be a string")
        self.content = bytes(content) if content is not None else None
        self.filename = _require_str(filename, 'multipart filename') if filename is not None else None

    @classmethod
    def from_item(cls, item):
        if not isinstance(item, dict) or 'name' not in item:
            raise InvalidExpectation("multipart_parts entries must be objects with a 'name'")
        unknown = set(item) - {'name', 'content', 'content_base64', 'filename'}
        if unknown:
            raise InvalidExpectation(f"Unknown multipart part fields: {', '.join(sorted(unknown))}")
        if 'content_base64' in item:
            if 'content' in item:
                raise InvalidExpectation("multipart part may set only one of: content, content_base64")
            return cls(item['name'], _b64decode(item['content_base64'], 'content_base64'), item.get('filename'))
        return cls(item['name'], item.get('content'), item.get('filename'))

    def _part_distance(self, part) -> float:
        distances = []
        if self.filename is not None and part.filename != self.filename:
            distances.append(string_distance(self.filename, part.filename or ''))
        if self.content is not None and part.content != self.content:
            distances.append(string_distance(decode_text(self.content), part.text))
        if not distances:
            return 0.0
        return sum(distances) / len(distances)

    def evaluate(self, request: MockRequest) -> ClauseResult:
        if request.parts is None:
            return ClauseResult.fail(MAX_DISTANCE, "body is not multipart/form-data")
        candidates = [part for part in request.parts if part.name == self.name]
        if not candidates:
            return ClauseResult.fail(MAX_DISTANCE, f"multipart part {self.name!r} is missing")
        distance = min(self._part_distance(part) for part in candidates)
        if distance == 0.0:
            return ClauseResult.ok()
        return ClauseResult.fail(distance, f"multipart part {self.name!r} has different filename or content")

    def wire_item(self):
        item: Dict[str, Any] = {'name': self.name}
        if self.filename is not None:
            item['filename'] = self.filename
        if self.content is not None:
            if _is_text(self.content):
                item['content'] = self.content.decode('utf-8')
            else:
                item['content_base64'] = _b64encode(self.content)
        return item

    def describe(self):
        extra = ''
        if self.filename is not None:
            extra += f" filename={self.filename!r}"
        if self.content is not None:
            extra += f" content={preview(self.content, 40)!r}"
        return f"multipart part {self.name!r}{extra}"


MATCHER_TYPES: Dict[str, Type[Matcher]] = {
    cls.kind: cls for cls in (
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
}

# Alternate wire keys for non-text values
MATCHER_TYPES['body_base64'] = BodyMatcher


def parse_clauses(kind: str, value: Any) -> List[Matcher]:
    """
    Build the matchers for one wire key.

    Args:
        kind: Wire key such as 'headers' or 'json_body_partial'
        value: Wire value for that key

    Returns:
        List of matchers, in wire order

    Raises:
        InvalidExpectation: Unknown key or malformed value
    """
    cls = MATCHER_TYPES.get(kind)
    if cls is None:
        raise InvalidExpectation(f"Unknown expectation field: {kind!r}")

    if cls.wire == 'scalar':
        return [cls.from_wire(kind, value)]

    if cls.wire == 'list':
        items = value if isinstance(value, list) else [value]
        return [cls.from_wire(kind, item) for item in items]

    if not isinstance(value, dict):
        raise InvalidExpectation(f"{kind} must be an object mapping names to values")
    matchers = []
    for name, expected in value.items():
        for item in (expected if isinstance(expected, list) else [expected]):
            matchers.append(cls.from_wire(kind, (name, item)))
    return matchers


@dataclass
class Expectation:
    """
    Request pattern of a mock: all clauses must hold (logical AND).

    Attributes:
        matchers: Ordered clauses; an empty list matches every request
        max_hits: Times the mock may be matched before it is exhausted
                  (None = unlimited)
        priority: Tie-break among matching mocks, higher wins
    """

    matchers: List[Matcher] = field(default_factory=list)
    max_hits: Optional[int] = None
    priority: int = 0

    def __post_init__(self):
        if self.max_hits is not None and (
            isinstance(self.max_hits, bool) or not isinstance(self.max_hits, int) or self.max_hits < 1
        ):
            raise InvalidExpectation(f"max_hits must be a positive integer, got {self.max_hits!r}")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise InvalidExpectation(f"priority must be an integer, got {self.priority!r}")

        # One value per scalar wire key, so to_dict() keeps every clause
        seen = set()
        for matcher in self.matchers:
            if matcher.wire != 'scalar':
                continue
            if matcher.kind in seen:
                raise InvalidExpectation(f"{matcher.kind} clause given more than once")
            seen.add(matcher.kind)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Expectation':
        """
        Parse the wire representation of an expectation.

        Example:
            Expectation.from_dict({'method': 'GET', 'path': '/x', 'max_hits': 1})
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidExpectation("Expectation must be a JSON object")

        matchers: List[Matcher] = []
        for key, value in data.items():
            if key in ('max_hits', 'priority'):
                continue
            matchers.extend(parse_clauses(key, value))

        return cls(
            matchers=matchers,
            max_hits=data.get('max_hits'),
            priority=data.get('priority', 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation, clauses grouped by kind in first-seen order."""
        data: Dict[str, Any] = {}
        for matcher in self.matchers:
            item = matcher.wire_item()
            if matcher.wire == 'scalar':
                data[matcher.wire_key] = item
            elif matcher.wire == 'list':
                data.setdefault(matcher.wire_key, []).append(item)
            else:
                name, value = item
                group = data.setdefault(matcher.wire_key, {})
                if name not in group:
                    group[name] = value
                elif isinstance(group[name], list):
                    group[name].append(value)
                else:
                    group[name] = [group[name], value]
        if self.max_hits is not None:
            data['max_hits'] = self.max_hits
        if self.priority:
            data['priority'] = self.priority
        return data

    def describe(self) -> str:
        if not self.matchers:
            return 'any request'
        return ' and '.join(m.describe() for m in self.matchers)

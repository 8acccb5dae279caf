"""
httpdouble Request and Response Models

The internal request representation the matcher engine evaluates, and the
response specification a mock serves when it matches.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

from ..common import decode_text, preview, URLHelper
from .errors import InvalidExpectation


class _NotSet:
    """Marker for 'no JSON body configured' (JSON null is a valid body)."""

    def __repr__(self):
        return 'NOT_SET'


NOT_SET = _NotSet()

HeaderInput = Union[Dict[str, str], List[Tuple[str, str]], None]


class MockState(str, Enum):
    """Lifecycle tag of a registered mock."""

    ACTIVE = 'active'
    DELETED = 'deleted'


def _pairs(values: HeaderInput) -> List[Tuple[str, str]]:
    if not values:
        return []
    if isinstance(values, dict):
        return [(str(k), str(v)) for k, v in values.items()]
    return [(str(k), str(v)) for k, v in values]


@dataclass
class MultipartPart:
    """One decoded part of a multipart/form-data body."""

    name: str
    content: bytes = b''
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def text(self) -> str:
        return decode_text(self.content)

    def to_dict(self) -> Dict[str, Any]:
        data = {'name': self.name, 'content': preview(self.content)}
        if self.filename is not None:
            data['filename'] = self.filename
        if self.content_type is not None:
            data['content_type'] = self.content_type
        return data


@dataclass
class MockRequest:
    """
    Inbound HTTP request as seen by the matcher engine.

    Derived views (cookies, text, JSON document, form fields) are computed
    lazily and cached, since every registered mock inspects the same request.

    Example:
        request = MockRequest.from_url('GET', '/search?q=metallica')
        request.query_values('q')  # ['metallica']
    """

    method: str
    path: str
    query: List[Tuple[str, str]] = field(default_factory=list)
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b''
    parts: Optional[List[MultipartPart]] = None

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        headers: HeaderInput = None,
        body: Union[str, bytes, None] = None,
        parts: Optional[List[MultipartPart]] = None
    ) -> 'MockRequest':
        """
        Build a request from a URL (absolute or path with query string).

        Args:
            method: HTTP method
            url: Request URL or path
            headers: Header mapping or list of (name, value) pairs
            body: Request body (str is UTF-8 encoded)
            parts: Decoded multipart parts, if any

        Returns:
            MockRequest
        """
        path, query = URLHelper.split_path_and_query(url)
        if isinstance(body, str):
            body = body.encode('utf-8')
        return cls(
            method=method.upper(),
            path=path,
            query=query,
            headers=_pairs(headers),
            body=body or b'',
            parts=parts
        )

    def header_values(self, name: str) -> List[str]:
        """All values of a header (name compared case-insensitively)."""
        lowered = name.lower()
        return [v for k, v in self.headers if k.lower() == lowered]

    def query_values(self, name: str) -> List[str]:
        """All values of a query parameter (name compared case-sensitively)."""
        return [v for k, v in self.query if k == name]

    @cached_property
    def content_type(self) -> str:
        """Media type of the body, lower-cased and without parameters."""
        values = self.header_values('content-type')
        if not values:
            return ''
        return values[0].split(';', 1)[0].strip().lower()

    @cached_property
    def cookies(self) -> Dict[str, str]:
        """Cookies sent in Cookie headers; first occurrence of a name wins."""
        jar: Dict[str, str] = {}
        for header in self.header_values('cookie'):
            for chunk in header.split(';'):
                name, sep, value = chunk.strip().partition('=')
                if not sep or not name:
                    continue
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] == '"':
                    value = value[1:-1]
                jar.setdefault(name.strip(), value)
        return jar

    @cached_property
    def text(self) -> str:
        return decode_text(self.body)

    @cached_property
    def json_document(self) -> Tuple[bool, Any]:
        """
        Decoded JSON body.

        Returns:
            (True, document) when the body is valid JSON, (False, None) otherwise
        """
        if not self.body:
            return False, None
        try:
            return True, json.loads(self.body.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            return False, None

    @cached_property
    def form_fields(self) -> Optional[List[Tuple[str, str]]]:
        """
        Fields of an application/x-www-form-urlencoded body.

        Returns:
            List of (name, value) pairs, or None when the body is not
            form-urlencoded or cannot be decoded
        """
        if self.content_type != 'application/x-www-form-urlencoded':
            return None
        try:
            text = self.body.decode('utf-8')
        except UnicodeDecodeError:
            return None
        return parse_qsl(text, keep_blank_values=True)

    def to_dict(self) -> Dict[str, Any]:
        """Summary used in diagnostic responses and recordings."""
        data: Dict[str, Any] = {
            'method': self.method,
            'path': self.path,
            'query': [list(pair) for pair in self.query],
            'headers': [list(pair) for pair in self.headers],
            'body': preview(self.body, limit=500) if self.body else ''
        }
        if self.parts is not None:
            data['parts'] = [part.to_dict() for part in self.parts]
        return data


@dataclass(eq=False)
class ResponseSpec:
    """
    Response served by a mock.

    Header names are case-insensitive and their order is irrelevant, which
    is what equality compares. Either ``body`` or ``json_body`` may be set.
    """

    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    json_body: Any = NOT_SET
    delay_ms: int = 0

    def header(self, name: str) -> Optional[str]:
        """Look up a header value case-insensitively."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def has_json(self) -> bool:
        return self.json_body is not NOT_SET

    def render_body(self) -> bytes:
        """Body bytes exactly as they go on the wire."""
        if self.has_json:
            return json.dumps(self.json_body).encode('utf-8')
        return self.body or b''

    def render_headers(self) -> Dict[str, str]:
        """Headers to write; JSON bodies default to application/json."""
        headers = dict(self.headers)
        if self.has_json and self.header('content-type') is None:
            headers['Content-Type'] = 'application/json'
        return headers

    def __eq__(self, other):
        if not isinstance(other, ResponseSpec):
            return NotImplemented
        return (
            self.status == other.status
            and {k.lower(): v for k, v in self.headers.items()}
            == {k.lower(): v for k, v in other.headers.items()}
            and self.render_body() == other.render_body()
            and self.has_json == other.has_json
            and self.delay_ms == other.delay_ms
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ResponseSpec':
        """
        Parse the wire representation of a response.

        Raises:
            InvalidExpectation: If a field has the wrong type or value
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidExpectation("Response must be a JSON object")

        unknown = set(data) - {'status', 'headers', 'body', 'body_base64', 'json', 'delay_ms'}
        if unknown:
            raise InvalidExpectation(f"Unknown response fields: {', '.join(sorted(unknown))}")

        status = data.get('status', 200)
        if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
            raise InvalidExpectation(f"Invalid response status: {status!r}")

        headers = data.get('headers') or {}
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise InvalidExpectation("Response headers must map strings to strings")

        body_keys = [key for key in ('body', 'body_base64', 'json') if key in data]
        if len(body_keys) > 1:
            raise InvalidExpectation(f"Response may set only one of: {', '.join(body_keys)}")

        body = None
        json_body = NOT_SET
        if 'body' in data:
            if not isinstance(data['body'], str):
                raise InvalidExpectation("Response body must be a string (use 'json' for documents)")
            body = data['body'].encode('utf-8')
        elif 'body_base64' in data:
            try:
                body = base64.b64decode(data['body_base64'], validate=True)
            except (binascii.Error, TypeError, ValueError) as e:
                raise InvalidExpectation(f"Invalid body_base64: {e}") from e
        elif 'json' in data:
            json_body = data['json']

        delay_ms = data.get('delay_ms', 0)
        if isinstance(delay_ms, bool) or not isinstance(delay_ms, int) or delay_ms < 0:
            raise InvalidExpectation(f"Invalid delay_ms: {delay_ms!r}")

        return cls(status=status, headers=dict(headers), body=body, json_body=json_body, delay_ms=delay_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation; keys holding default values are omitted."""
        data: Dict[str, Any] = {'status': self.status}
        if self.headers:
            data['headers'] = dict(self.headers)
        if self.has_json:
            data['json'] = self.json_body
        elif self.body is not None:
            try:
                data['body'] = self.body.decode('utf-8')
            except UnicodeDecodeError:
                data['body_base64'] = base64.b64encode(self.body).decode('ascii')
        if self.delay_ms:
            data['delay_ms'] = self.delay_ms
        return data

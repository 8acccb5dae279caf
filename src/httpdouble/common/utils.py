"""
httpdouble Common Utilities

Shared helpers for JSON decoding, text similarity and environment lookups.
"""

import json
import os
from difflib import SequenceMatcher
from typing import Any, Optional, Union


# Bodies longer than this are compared on a prefix only, SequenceMatcher is quadratic
MAX_COMPARE_LENGTH = 4096


def get_env_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Read an ``HTTPDOUBLE_*`` setting from the environment.

    Args:
        name: Setting name without the prefix (e.g. ``PORT``)
        default: Value returned when the variable is unset or empty

    Returns:
        The raw environment value, or default

    Example:
        port = int(get_env_setting('PORT', '5000'))
    """
    value = os.environ.get(f'HTTPDOUBLE_{name}')
    if value is None or value == '':
        return default
    return value


def env_flag(name: str, default: bool = False) -> bool:
    """Interpret an ``HTTPDOUBLE_*`` variable as a boolean flag."""
    value = get_env_setting(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def safe_json_parse(data: Union[str, bytes, None], default: Any = None) -> Any:
    """
    Safely parse a JSON document with error handling.

    Args:
        data: JSON text or UTF-8 encoded bytes
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(request.body, default={})
    """
    if not data:
        return default

    try:
        if isinstance(data, (bytes, bytearray)):
            data = data.decode('utf-8')
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError):
        return default


def decode_text(data: Union[str, bytes, None]) -> str:
    """Decode bytes as UTF-8, replacing undecodable sequences."""
    if data is None:
        return ''
    if isinstance(data, str):
        return data
    return bytes(data).decode('utf-8', errors='replace')


def similarity(a: str, b: str) -> float:
    """
    Similarity ratio between two strings (0.0 to 1.0).

    Uses difflib's SequenceMatcher on (at most) the first
    MAX_COMPARE_LENGTH characters of each string.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a[:MAX_COMPARE_LENGTH], b[:MAX_COMPARE_LENGTH]).ratio()


def string_distance(expected: str, actual: str) -> float:
    """
    Normalized edit distance between two strings.

    Returns:
        0.0 for identical strings, up to 1.0 for completely different ones
    """
    return round(1.0 - similarity(expected, actual), 6)


def preview(value: Any, limit: int = 200) -> str:
    """Short printable preview of a value for diagnostics."""
    if isinstance(value, (bytes, bytearray)):
        text = decode_text(value)
    elif isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, sort_keys=True, default=str)

    if len(text) > limit:
        return text[:limit] + '... [truncated]'
    return text

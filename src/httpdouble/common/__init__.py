"""
httpdouble Common Utilities

Shared utilities and helpers used across httpdouble modules.
"""

from .utils import (
    get_env_setting,
    env_flag,
    safe_json_parse,
    decode_text,
    similarity,
    string_distance,
    preview,
)
from .url_utils import URLHelper

__all__ = [
    'get_env_setting',
    'env_flag',
    'safe_json_parse',
    'decode_text',
    'similarity',
    'string_distance',
    'preview',
    'URLHelper'
]

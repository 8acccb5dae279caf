"""
Tests for utility functions module.

Tests similarity scoring, JSON decoding, environment settings and URL
helpers without making actual system changes.
"""

import pytest

from httpdouble.common import (
    URLHelper,
    decode_text,
    env_flag,
    get_env_setting,
    preview,
    safe_json_parse,
    similarity,
    string_distance,
)


class TestSimilarity:
    """Test suite for similarity() and string_distance()."""

    def test_identical_strings(self):
        """Test identical strings have similarity 1 and distance 0."""
        assert similarity('/users', '/users') == 1.0
        assert string_distance('/users', '/users') == 0.0

    def test_empty_string(self):
        """Test comparing against an empty string."""
        assert similarity('', 'abc') == 0.0
        assert string_distance('abc', '') == 1.0

    def test_near_miss_is_closer(self):
        """Test a one-character difference scores closer than a different word."""
        near = string_distance('/users/1', '/users/2')
        far = string_distance('/users/1', '/orders')

        assert 0 < near < far <= 1

    def test_long_inputs_are_bounded(self):
        """Test very long strings still compare."""
        result = similarity('a' * 100000, 'a' * 99999 + 'b')

        assert 0.9 < result <= 1.0


class TestSafeJsonParse:
    """Test suite for safe_json_parse()."""

    def test_valid_json(self):
        """Test parsing text and bytes."""
        assert safe_json_parse('{"a": 1}') == {'a': 1}
        assert safe_json_parse(b'[1, 2]') == [1, 2]

    @pytest.mark.parametrize('data', [None, '', b'', '{broken', b'\xff\xfe'])
    def test_invalid_json_returns_default(self, data):
        """Test undecodable input returns the default."""
        assert safe_json_parse(data, default={}) == {}


class TestEnvironment:
    """Test suite for HTTPDOUBLE_* settings."""

    def test_get_env_setting(self, monkeypatch):
        """Test the prefix is added and empty values fall back to default."""
        monkeypatch.setenv('HTTPDOUBLE_PORT', '5000')
        monkeypatch.setenv('HTTPDOUBLE_HOST', '')

        assert get_env_setting('PORT') == '5000'
        assert get_env_setting('HOST', '127.0.0.1') == '127.0.0.1'
        assert get_env_setting('MISSING') is None

    @pytest.mark.parametrize('value,expected', [
        ('1', True), ('true', True), ('YES', True), ('on', True),
        ('0', False), ('false', False), ('nope', False),
    ])
    def test_env_flag(self, monkeypatch, value, expected):
        """Test boolean interpretation of flags."""
        monkeypatch.setenv('HTTPDOUBLE_RECORD', value)

        assert env_flag('RECORD') is expected

    def test_env_flag_default(self, monkeypatch):
        """Test unset flags use the default."""
        monkeypatch.delenv('HTTPDOUBLE_RECORD', raising=False)

        assert env_flag('RECORD', default=True) is True


class TestText:
    """Test suite for decode_text() and preview()."""

    def test_decode_text(self):
        """Test invalid UTF-8 is replaced, not raised."""
        assert decode_text(b'caf\xc3\xa9') == 'café'
        assert decode_text(b'\xff') == '�'
        assert decode_text(None) == ''

    def test_preview_truncates(self):
        """Test long values are cut at the limit."""
        result = preview('A' * 50, limit=10)

        assert result == 'A' * 10 + '... [truncated]'

    def test_preview_documents(self):
        """Test JSON values are rendered with sorted keys."""
        assert preview({'b': 1, 'a': 2}) == '{"a": 2, "b": 1}'


class TestURLHelper:
    """Test suite for URLHelper."""

    def test_split_path_and_query(self):
        """Test absolute and relative URLs are split with decoded values."""
        path, query = URLHelper.split_path_and_query('http://localhost:5000/search?q=a%20b&flag')

        assert path == '/search'
        assert query == [('q', 'a b'), ('flag', '')]

    def test_split_empty_path(self):
        """Test an empty path becomes '/'."""
        assert URLHelper.split_path_and_query('?x=1') == ('/', [('x', '1')])

    def test_join(self):
        """Test joining base URLs and paths."""
        assert URLHelper.join('http://127.0.0.1:5000/', 'users') == 'http://127.0.0.1:5000/users'
        assert URLHelper.join('http://127.0.0.1:5000', '/a/b') == 'http://127.0.0.1:5000/a/b'

    @pytest.mark.parametrize('prefix,expected', [
        ('/__httpdouble__', '/__httpdouble__'),
        ('admin/', '/admin'),
        ('/_admin/', '/_admin'),
    ])
    def test_normalize_prefix(self, prefix, expected):
        """Test admin prefixes are normalized."""
        assert URLHelper.normalize_prefix(prefix) == expected


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

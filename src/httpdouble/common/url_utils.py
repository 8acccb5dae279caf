"""
httpdouble URL Utilities

URL splitting and joining shared by the request model and the remote client.
"""

from urllib.parse import urlsplit, parse_qsl, urljoin
from typing import List, Tuple


class URLHelper:
    """Handles URL parsing used across httpdouble modules."""

    @staticmethod
    def split_path_and_query(url: str) -> Tuple[str, List[Tuple[str, str]]]:
        """
        Split a URL (absolute or origin-form) into path and query pairs.

        Query values are percent-decoded and blank values are kept, so
        ``?flag`` yields ``[('flag', '')]``.

        Args:
            url: Full URL or path such as ``/search?q=x``

        Returns:
            Tuple of (path, list of (name, value) pairs)
        """
        parsed = urlsplit(url)
        path = parsed.path or '/'
        query = parse_qsl(parsed.query, keep_blank_values=True)
        return path, query

    @staticmethod
    def join(base_url: str, path: str) -> str:
        """
        Join a server base URL with a request path.

        Args:
            base_url: Base URL such as http://127.0.0.1:5000
            path: Path, with or without leading slash

        Returns:
            Absolute URL
        """
        if not path.startswith('/'):
            path = '/' + path
        return urljoin(base_url.rstrip('/') + '/', path.lstrip('/'))

    @staticmethod
    def normalize_prefix(prefix: str) -> str:
        """Normalize an admin prefix to ``/name`` form without trailing slash."""
        prefix = '/' + prefix.strip('/')
        return prefix

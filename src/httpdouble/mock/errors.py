"""
httpdouble Errors

Exception kinds raised by the registry, the server lifecycle and the remote
client. A request that matches no mock is not an error: it produces a
diagnostic 404 instead.
"""

from typing import Optional


class HttpDoubleError(Exception):
    """Base exception for httpdouble errors."""

    kind = 'Error'
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        """Structured error body used by the admin API."""
        return {'error': self.message, 'kind': self.kind}


class MockNotFound(HttpDoubleError):
    """Raised for an unknown (or already deleted) mock id."""

    kind = 'NotFound'
    status_code = 404

    def __init__(self, mock_id: int, message: Optional[str] = None):
        super().__init__(message or f"No mock with id {mock_id}")
        self.mock_id = mock_id


class InvalidExpectation(HttpDoubleError):
    """Raised when a mock definition cannot be parsed, e.g. a bad regex."""

    kind = 'InvalidExpectation'
    status_code = 400


class BindFailure(HttpDoubleError):
    """Raised when the listener cannot bind its address."""

    kind = 'BindFailure'


class PoolExhausted(HttpDoubleError):
    """Raised when no pooled server frees up within the caller's wait."""

    kind = 'PoolExhausted'
    status_code = 503


class InvariantViolation(HttpDoubleError):
    """Internal registry state is inconsistent; the owning server is aborted."""

    kind = 'InvariantViolation'


class RemoteServerError(HttpDoubleError):
    """Raised when a standalone server cannot be reached or answers unexpectedly."""

    kind = 'RemoteServerError'
    status_code = 502

"""
httpdouble Mock Server Module

HTTP test double for automated test suites.

This module provides:
- FastAPI-based mock server with a diagnostic 404 on no match
- Request matcher clauses and expectations
- Thread-safe mock registry with bounded (one-shot) mocks
- Server pool for parallel tests
- Remote client and fluent builder
"""

from .server import MockServer, MockConfig, MockMetrics, ServerState
from .pool import MockServerPool, default_pool
from .remote import RemoteMockServer
from .builder import MockBuilder, MockHandle
from .registry import Mock, MockRegistry, Verification
from .matcher import Expectation, Matcher, ClauseResult, MATCHER_TYPES
from .evaluator import MatchResult, SelectionPolicy, evaluate, select_best
from .diagnostics import Diagnosis, CandidateReport, ClauseDiff, diagnose
from .models import MockRequest, MultipartPart, ResponseSpec, MockState
from .static import load_mock_file, load_mock_dir, load_static_mocks
from .errors import (
    HttpDoubleError,
    MockNotFound,
    InvalidExpectation,
    BindFailure,
    PoolExhausted,
    InvariantViolation,
    RemoteServerError
)

__all__ = [
    # Server
    'MockServer',
    'MockConfig',
    'MockMetrics',
    'ServerState',
    'MockServerPool',
    'default_pool',
    'RemoteMockServer',

    # Declaring mocks
    'MockBuilder',
    'MockHandle',
    'Expectation',
    'Matcher',
    'ClauseResult',
    'MATCHER_TYPES',
    'ResponseSpec',
    'load_mock_file',
    'load_mock_dir',
    'load_static_mocks',

    # Registry and matching
    'Mock',
    'MockRegistry',
    'Verification',
    'MockState',
    'MockRequest',
    'MultipartPart',
    'MatchResult',
    'SelectionPolicy',
    'evaluate',
    'select_best',
    'Diagnosis',
    'CandidateReport',
    'ClauseDiff',
    'diagnose',

    # Errors
    'HttpDoubleError',
    'MockNotFound',
    'InvalidExpectation',
    'BindFailure',
    'PoolExhausted',
    'InvariantViolation',
    'RemoteServerError',
]

__version__ = '1.0.0'

"""
httpdouble Mock Server

FastAPI-based HTTP test double serving responses from registered mocks.

Features:
- Request dispatch to the best matching mock
- Diagnostic 404 explaining the closest mock when nothing matches
- Admin API to create, inspect, verify and delete mocks at runtime
- Simulated latency per mock
- Request recording and metrics
- In-process lifecycle (background uvicorn thread) or standalone serving
"""

import asyncio
import dataclasses
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from ..common import URLHelper, env_flag, get_env_setting, safe_json_parse
from .builder import MockBuilder
from .errors import BindFailure, HttpDoubleError, InvalidExpectation, InvariantViolation, MockNotFound
from .evaluator import SelectionPolicy
from .matcher import Expectation
from .models import MockRequest, MultipartPart, ResponseSpec
from .registry import Mock, MockRegistry, Verification
from .static import load_static_mocks


DISPATCH_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE"]

# Computed by the server from the body it writes
HEADERS_TO_SKIP = {'content-length', 'transfer-encoding', 'connection'}

# Level names understood by both logging and uvicorn
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def parse_log_level(name: str) -> int:
    """Map a level name such as "info" to its logging constant."""
    if str(name).lower() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {name!r} (expected one of {', '.join(LOG_LEVELS)})")
    return getattr(logging, name.upper())


@dataclass
class MockConfig:
    """Configuration for mock server behavior."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 0  # 0 = ephemeral port
    log_level: str = "info"
    startup_timeout: float = 10.0

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__httpdouble__"

    # Matching
    selection_policy: str = "budget_first"  # budget_first, recency_first
    diagnostic_candidates: int = 3  # Mocks listed in a no-match response (0 = all)

    # Request recording
    recording_enabled: bool = False
    recording_limit: int = 1000  # Maximum number of requests to record (0 = unlimited)

    # Standalone mode
    static_mock_dir: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> 'MockConfig':
        """
        Build a config from HTTPDOUBLE_* environment variables.

        Recognized: HTTPDOUBLE_HOST, HTTPDOUBLE_PORT, HTTPDOUBLE_EXPOSE,
        HTTPDOUBLE_LOG_LEVEL, HTTPDOUBLE_ADMIN_PREFIX, HTTPDOUBLE_SELECTION_POLICY,
        HTTPDOUBLE_RECORD, HTTPDOUBLE_RECORD_LIMIT, HTTPDOUBLE_STATIC_MOCK_DIR.
        Keyword arguments override the environment.
        """
        defaults = cls()
        host = get_env_setting('HOST', defaults.host)
        if env_flag('EXPOSE'):
            host = '0.0.0.0'

        values: Dict[str, Any] = {
            'host': host,
            'port': int(get_env_setting('PORT', str(defaults.port))),
            'log_level': get_env_setting('LOG_LEVEL', defaults.log_level),
            'admin_prefix': get_env_setting('ADMIN_PREFIX', defaults.admin_prefix),
            'selection_policy': get_env_setting('SELECTION_POLICY', defaults.selection_policy),
            'recording_enabled': env_flag('RECORD', defaults.recording_enabled),
            'recording_limit': int(get_env_setting('RECORD_LIMIT', str(defaults.recording_limit))),
            'static_mock_dir': get_env_setting('STATIC_MOCK_DIR', defaults.static_mock_dir),
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    admin_requests: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'admin_requests': self.admin_requests,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class ServerState(str, Enum):
    """Lifecycle of a server instance; transitions only move forward."""

    CREATED = 'created'
    BOUND = 'bound'
    SERVING = 'serving'
    STOPPED = 'stopped'


def _parse_mock_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise MockNotFound(raw, f"No mock with id {raw!r}") from None


class MockServer:
    """
    HTTP test double with a runtime-configurable set of mocks.

    Example:
        with MockServer() as server:
            server.mock('GET', '/users').return_json_body([]).create()
            httpx.get(server.url('/users'))

        # Standalone, driven over the admin API
        server = MockServer(MockConfig(host='0.0.0.0', port=5000))
        server.serve_forever()
    """

    def __init__(self, config: Optional[MockConfig] = None, registry: Optional[MockRegistry] = None):
        """
        Initialize mock server.

        Args:
            config: Optional MockConfig for server behavior
            registry: Optional MockRegistry (created from config if None)

        Raises:
            ValueError: If config.log_level is not a known level name
        """
        self.config = dataclasses.replace(config or MockConfig())
        self.config.admin_prefix = URLHelper.normalize_prefix(self.config.admin_prefix)
        self.metrics = MockMetrics()
        self.recorded_requests: List[Dict[str, Any]] = []

        self.logger = logging.getLogger("httpdouble.mock")
        self.logger.setLevel(parse_log_level(self.config.log_level))

        self.registry = registry or MockRegistry(policy=SelectionPolicy.parse(self.config.selection_policy))

        self.state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

        if self.config.static_mock_dir:
            ids = load_static_mocks(self.registry, self.config.static_mock_dir)
            self.logger.info(f"Registered {len(ids)} static mocks from {self.config.static_mock_dir}")

        self.app = self._create_app()

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="httpdouble Mock Server",
            description="HTTP test double serving responses from registered mocks",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.exception_handler(HttpDoubleError)
        async def handle_error(request: Request, exc: HttpDoubleError):
            return JSONResponse(content=exc.to_dict(), status_code=exc.status_code)

        if self.config.admin_enabled:
            self._add_admin_routes(app)

        # Main catch-all route for mocking
        @app.api_route("/{path:path}", methods=DISPATCH_METHODS)
        async def mock_request(request: Request, path: str):
            """Handle incoming requests and serve mock responses."""
            return await self._handle_request(request)

        return app

    def _add_admin_routes(self, app: FastAPI):
        prefix = self.config.admin_prefix

        @app.post(f"{prefix}/mocks")
        async def create_mock(request: Request):
            """Register a mock from {expectation, response}."""
            self.metrics.admin_requests += 1
            data = safe_json_parse(await request.body())
            if not isinstance(data, dict):
                raise InvalidExpectation("Request body must be a JSON object with 'expectation' and 'response'")
            unknown = set(data) - {'expectation', 'response'}
            if unknown:
                raise InvalidExpectation(f"Unknown fields: {', '.join(sorted(unknown))}")

            expectation = Expectation.from_dict(data.get('expectation'))
            response = ResponseSpec.from_dict(data.get('response'))
            mock_id = self.registry.create(expectation, response)
            self.logger.info(f"Admin: created mock #{mock_id} ({expectation.describe()})")
            return JSONResponse(content={'id': mock_id}, status_code=201)

        @app.get(f"{prefix}/mocks")
        async def list_mocks():
            """List all mocks with hit counts."""
            self.metrics.admin_requests += 1
            mocks = self.registry.list()
            return JSONResponse(content={
                'total': len(mocks),
                'mocks': [mock.to_dict() for mock in mocks]
            })

        @app.delete(f"{prefix}/mocks")
        async def delete_all_mocks():
            """Remove all mocks and reset the id sequence."""
            self.metrics.admin_requests += 1
            count = self.registry.delete_all()
            self.logger.info(f"Admin: cleared {count} mocks")
            return JSONResponse(content={
                'status': 'cleared',
                'cleared_count': count
            })

        @app.get(f"{prefix}/mocks/{{mock_id}}")
        async def get_mock(mock_id: str):
            """Get one mock definition with its hit count."""
            self.metrics.admin_requests += 1
            mock = self.registry.get(_parse_mock_id(mock_id))
            return JSONResponse(content=mock.to_dict())

        @app.delete(f"{prefix}/mocks/{{mock_id}}")
        async def delete_mock(mock_id: str):
            """Delete one mock; its hit count stays queryable."""
            self.metrics.admin_requests += 1
            parsed = _parse_mock_id(mock_id)
            self.registry.delete(parsed)
            self.logger.info(f"Admin: deleted mock #{parsed}")
            return JSONResponse(content={'status': 'deleted', 'id': parsed})

        @app.post(f"{prefix}/mocks/{{mock_id}}/verify")
        async def verify_mock(mock_id: str, request: Request):
            """Compare a mock's hit count with {"count": n}."""
            self.metrics.admin_requests += 1
            parsed = _parse_mock_id(mock_id)
            data = safe_json_parse(await request.body())
            count = data.get('count') if isinstance(data, dict) else None
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise InvalidExpectation("Body must be {\"count\": <non-negative integer>}")
            result = self.registry.verify(parsed, count)
            return JSONResponse(content=result.to_dict())

        @app.get(f"{prefix}/health")
        async def health():
            """Liveness check."""
            return JSONResponse(content={'status': 'ok', 'mocks': len(self.registry)})

        @app.get(f"{prefix}/metrics")
        async def get_metrics():
            """Get server metrics."""
            return JSONResponse(content=self.metrics.to_dict())

        @app.get(f"{prefix}/recordings")
        async def get_recordings():
            """Get all recorded requests."""
            return JSONResponse(content={
                'total': len(self.recorded_requests),
                'limit': self.config.recording_limit,
                'recording_enabled': self.config.recording_enabled,
                'recordings': self.recorded_requests
            })

        @app.delete(f"{prefix}/recordings")
        async def clear_recordings():
            """Clear all recorded requests."""
            count = len(self.recorded_requests)
            self.recorded_requests.clear()
            return JSONResponse(content={
                'status': 'cleared',
                'cleared_count': count
            })

        # Everything else under the prefix is reserved
        @app.api_route(prefix, methods=DISPATCH_METHODS)
        @app.api_route(f"{prefix}/{{rest:path}}", methods=DISPATCH_METHODS)
        async def unknown_admin_endpoint(request: Request):
            return JSONResponse(
                content={'error': f"Unknown admin endpoint: {request.method} {request.url.path}", 'kind': 'NotFound'},
                status_code=404
            )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _read_request(self, request: Request) -> MockRequest:
        """Adapt a Starlette request into a MockRequest."""
        body = await request.body()
        mock_request = MockRequest(
            method=request.method.upper(),
            path=request.scope.get('path') or '/',
            query=parse_qsl(request.url.query, keep_blank_values=True),
            headers=list(request.headers.items()),
            body=body
        )
        if mock_request.content_type == 'multipart/form-data':
            mock_request.parts = await self._read_parts(request)
        return mock_request

    async def _read_parts(self, request: Request) -> Optional[List[MultipartPart]]:
        """Decode multipart parts; None when the body is not valid multipart."""
        try:
            form = await request.form()
        except (MultiPartException, StarletteHTTPException, ValueError) as e:
            self.logger.debug(f"Undecodable multipart body: {e}")
            return None

        parts = []
        try:
            for name, value in form.multi_items():
                if isinstance(value, UploadFile):
                    content = await value.read()
                    parts.append(MultipartPart(
                        name=name,
                        content=content,
                        filename=value.filename,
                        content_type=value.content_type
                    ))
                else:
                    parts.append(MultipartPart(name=name, content=value.encode('utf-8')))
        finally:
            await form.close()
        return parts

    async def _handle_request(self, request: Request) -> Response:
        """
        Handle incoming request and serve mock response.

        Args:
            request: FastAPI Request object

        Returns:
            The matched mock's response, or a diagnostic 404
        """
        start_time = time.time()
        self.metrics.total_requests += 1

        mock_request = await self._read_request(request)
        method, path = mock_request.method, mock_request.path
        self.logger.debug(f"Incoming: {method} {request.url}")

        try:
            mock, diagnosis = self.registry.match_or_diagnose(
                mock_request, limit=self.config.diagnostic_candidates
            )
        except InvariantViolation as e:
            self.logger.error(f"Registry invariant violated, stopping server: {e}")
            self._abort()
            return JSONResponse(content=e.to_dict(), status_code=500)

        if mock is None:
            self.metrics.unmatched_requests += 1
            closest = diagnosis.closest
            self.logger.warning(
                f"No match for {method} {path} "
                f"(closest mock: {'#' + str(closest.mock_id) if closest else 'none'})"
            )
            if self.config.recording_enabled:
                self._record_request(mock_request, None, 404, start_time)
            return JSONResponse(
                content=diagnosis.to_dict(),
                status_code=404,
                headers={'X-HttpDouble-Matched': 'false'}
            )

        self.metrics.matched_requests += 1
        spec = mock.response
        self.logger.info(f"Matched mock #{mock.id} for {method} {path} -> {spec.status}")

        if self.config.recording_enabled:
            self._record_request(mock_request, mock.id, spec.status, start_time)

        if spec.delay_ms > 0 and not await self._apply_delay(request, spec.delay_ms):
            self.logger.info(f"Client disconnected during delay of mock #{mock.id}, response dropped")
            return Response(status_code=499)

        return self._create_response(spec)

    def _create_response(self, spec: ResponseSpec) -> Response:
        """Write a ResponseSpec as-is (status, headers, body)."""
        headers = {
            k: v for k, v in spec.render_headers().items()
            if k.lower() not in HEADERS_TO_SKIP
        }
        return Response(content=spec.render_body(), status_code=spec.status, headers=headers)

    async def _apply_delay(self, request: Request, delay_ms: int) -> bool:
        """
        Sleep for the mock's delay unless the client goes away first.

        Returns:
            True if the delay elapsed, False if the client disconnected
        """
        sleeper = asyncio.ensure_future(asyncio.sleep(delay_ms / 1000))
        watcher = asyncio.ensure_future(self._wait_for_disconnect(request))
        done, pending = await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return sleeper in done

    @staticmethod
    async def _wait_for_disconnect(request: Request):
        while True:
            message = await request.receive()
            if message['type'] == 'http.disconnect':
                return

    def _record_request(self, request: MockRequest, mock_id: Optional[int], status: int, start_time: float):
        """Record an incoming request for later inspection."""
        # Apply recording limit
        if self.config.recording_limit > 0 and len(self.recorded_requests) >= self.config.recording_limit:
            # Remove oldest request (FIFO)
            self.recorded_requests.pop(0)

        recording = request.to_dict()
        recording.update({
            'timestamp': datetime.now().isoformat(),
            'matched': mock_id is not None,
            'mock_id': mock_id,
            'response_status': status,
            'elapsed_ms': round((time.time() - start_time) * 1000, 2)
        })
        self.recorded_requests.append(recording)
        self.logger.debug(f"Recorded request: {request.method} {request.path} (matched: {mock_id is not None})")

    # ------------------------------------------------------------------
    # In-process mock management (same surface as RemoteMockServer)
    # ------------------------------------------------------------------

    def mock(self, method: Optional[str] = None, path: Optional[str] = None) -> MockBuilder:
        """Start declaring a mock on this server."""
        return MockBuilder(self, method=method, path=path)

    def create_mock(self, expectation: Expectation, response: ResponseSpec) -> int:
        return self.registry.create(expectation, response)

    def delete_mock(self, mock_id: int):
        self.registry.delete(mock_id)

    def delete_all(self) -> int:
        return self.registry.delete_all()

    def get_mock(self, mock_id: int) -> Mock:
        return self.registry.get(mock_id)

    def list_mocks(self) -> List[Mock]:
        return self.registry.list()

    def hits(self, mock_id: int) -> int:
        return self.registry.hits(mock_id)

    def verify(self, mock_id: int, expected_count: int) -> Verification:
        return self.registry.verify(mock_id, expected_count)

    def reset(self):
        """Forget mocks, recordings and metrics (used before pooled reuse)."""
        self.registry.delete_all()
        self.recorded_requests.clear()
        self.metrics = MockMetrics()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bind(self) -> 'MockServer':
        """
        Reserve the listening socket (explicit or ephemeral port).

        Raises:
            BindFailure: If the address cannot be bound
        """
        with self._state_lock:
            if self.state is not ServerState.CREATED:
                if self.state is ServerState.STOPPED:
                    raise RuntimeError("Server is stopped and cannot be restarted")
                return self

            family = socket.AF_INET6 if ':' in self.config.host else socket.AF_INET
            sock = socket.socket(family, socket.SOCK_STREAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self.config.host, self.config.port))
                sock.listen(128)
            except OSError as e:
                sock.close()
                raise BindFailure(f"Cannot bind {self.config.host}:{self.config.port}: {e}") from e

            self._socket = sock
            self.state = ServerState.BOUND

        self.logger.debug(f"Bound to {self.address}")
        return self

    def _uvicorn_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            log_level=self.config.log_level.lower(),
            log_config=None,
            access_log=False,
            lifespan="off"
        )
        return uvicorn.Server(config)

    def start(self, timeout: Optional[float] = None) -> 'MockServer':
        """
        Serve in a background thread and wait until connections are accepted.

        Args:
            timeout: Seconds to wait for startup (default: config.startup_timeout)

        Raises:
            BindFailure: If binding fails or the server exits during startup
            TimeoutError: If the server does not come up in time
        """
        self.bind()
        with self._state_lock:
            if self.state is ServerState.SERVING:
                return self
            if self.state is not ServerState.BOUND:
                raise RuntimeError(f"Cannot start a server in state {self.state.value}")

            self._server = self._uvicorn_server()
            self._thread = threading.Thread(
                target=self._server.run,
                kwargs={'sockets': [self._socket]},
                name=f"httpdouble-{self.port}",
                daemon=True
            )
            self._thread.start()

        deadline = time.monotonic() + (timeout if timeout is not None else self.config.startup_timeout)
        while not self._server.started:
            if not self._thread.is_alive():
                self.stop()
                raise BindFailure(f"Server on {self.address} exited during startup")
            if time.monotonic() > deadline:
                self.stop()
                raise TimeoutError(f"Server on {self.address} did not start in time")
            time.sleep(0.01)

        with self._state_lock:
            if self.state is ServerState.BOUND:
                self.state = ServerState.SERVING
        self.logger.info(f"Serving on {self.url()}")
        return self

    def serve_forever(self):
        """
        Serve in the calling thread until interrupted (standalone mode).

        uvicorn installs its own SIGINT/SIGTERM handlers when called from the
        main thread.
        """
        self.bind()
        with self._state_lock:
            if self.state is not ServerState.BOUND:
                raise RuntimeError(f"Cannot serve a server in state {self.state.value}")
            self._server = self._uvicorn_server()
            self.state = ServerState.SERVING

        try:
            self._server.run(sockets=[self._socket])
        finally:
            self.stop()

    def _abort(self):
        """Stop serving from inside the event loop (no join, no socket close)."""
        with self._state_lock:
            self.state = ServerState.STOPPED
        if self._server is not None:
            self._server.should_exit = True
            self._server.force_exit = True

    def stop(self):
        """Stop serving, drop in-flight requests, release the port and discard mocks."""
        with self._state_lock:
            already_stopped = self.state is ServerState.STOPPED and self._socket is None
            self.state = ServerState.STOPPED
        if already_stopped:
            return

        if self._server is not None:
            self._server.should_exit = True
            self._server.force_exit = True
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        if self._socket is not None:
            self._socket.close()
            self._socket = None

        self.registry.delete_all()
        self.logger.info("Server stopped")

    def __enter__(self) -> 'MockServer':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    @property
    def port(self) -> int:
        """Bound port (the configured port before bind())."""
        if self._socket is not None:
            return self._socket.getsockname()[1]
        return self.config.port

    @property
    def host(self) -> str:
        """Host clients should connect to."""
        if self.config.host in ('0.0.0.0', ''):
            return '127.0.0.1'
        if self.config.host == '::':
            return '::1'
        return self.config.host

    @property
    def address(self) -> str:
        host = f"[{self.host}]" if ':' in self.host else self.host
        return f"{host}:{self.port}"

    def url(self, path: str = '/') -> str:
        """Absolute URL of a path on this server."""
        return URLHelper.join(f"http://{self.address}", path)

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app

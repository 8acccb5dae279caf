"""
httpdouble Server Pool

Bounded pool of running MockServer instances for parallel tests. Each lease
gets an isolated server; servers are reset and reused instead of re-bound.
"""

import atexit
import dataclasses
import logging
import threading
import time
from contextlib import contextmanager
from typing import List, Optional, Set

from ..common import get_env_setting
from .errors import PoolExhausted
from .server import MockConfig, MockServer, ServerState


DEFAULT_POOL_SIZE = 25

logger = logging.getLogger("httpdouble.mock.pool")


class MockServerPool:
    """
    Lazily started, bounded set of mock servers.

    Example:
        pool = MockServerPool(size=4)
        with pool.lease() as server:
            server.mock('GET', '/ping').return_body('pong').create()
            ...
        pool.close()
    """

    def __init__(self, size: int = DEFAULT_POOL_SIZE, config: Optional[MockConfig] = None):
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        self.size = size
        base = config or MockConfig()
        # Pooled servers always take ephemeral ports and start empty
        self.config = dataclasses.replace(base, port=0, static_mock_dir=None)
        self._cond = threading.Condition()
        self._idle: List[MockServer] = []
        self._leased: Set[MockServer] = set()
        self._created = 0
        self._closed = False

    @property
    def available(self) -> int:
        """Servers that can be acquired without waiting."""
        with self._cond:
            return len(self._idle) + (self.size - self._created)

    def acquire(self, timeout: Optional[float] = None) -> MockServer:
        """
        Take a running server, starting one if the pool is not full.

        Args:
            timeout: Seconds to wait for a free server (None = wait forever)

        Raises:
            PoolExhausted: If no server frees up within the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        stale = []

        try:
            with self._cond:
                while True:
                    if self._closed:
                        raise RuntimeError("Pool is closed")
                    while self._idle:
                        server = self._idle.pop()
                        if server.state is ServerState.SERVING:
                            self._leased.add(server)
                            return server
                        self._created -= 1
                        stale.append(server)
                    if self._created < self.size:
                        self._created += 1
                        break
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        raise PoolExhausted(f"All {self.size} pooled servers are in use")
                    self._cond.wait(remaining)
        finally:
            # Servers that stopped while idle still hold their socket
            for server in stale:
                logger.info(f"Discarded stopped pooled server {server.address}")
                server.stop()

        try:
            server = MockServer(dataclasses.replace(self.config)).start()
        except BaseException:
            with self._cond:
                self._created -= 1
                self._cond.notify()
            raise

        logger.debug(f"Started pooled server {server.address} ({self._created}/{self.size})")
        with self._cond:
            self._leased.add(server)
        return server

    def release(self, server: MockServer):
        """
        Return a server to the pool.

        Its mocks, recordings and metrics are cleared; a stopped server is
        discarded and its slot freed.
        """
        with self._cond:
            if server not in self._leased:
                raise ValueError("Server was not acquired from this pool")
            self._leased.remove(server)
            closed = self._closed

        reusable = server.state is ServerState.SERVING and not closed
        if reusable:
            server.reset()
        else:
            server.stop()

        with self._cond:
            if reusable:
                self._idle.append(server)
            else:
                self._created -= 1
                logger.info(f"Discarded pooled server {server.address}")
            self._cond.notify()

    @contextmanager
    def lease(self, timeout: Optional[float] = None):
        """Acquire a server for the duration of a with-block."""
        server = self.acquire(timeout)
        try:
            yield server
        finally:
            self.release(server)

    def close(self):
        """Stop every server; later acquire() calls fail."""
        with self._cond:
            self._closed = True
            servers = self._idle + list(self._leased)
            self._idle = []
            self._cond.notify_all()
        for server in servers:
            server.stop()
        logger.debug(f"Closed pool ({len(servers)} servers stopped)")

    def __enter__(self) -> 'MockServerPool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_default_pool: Optional[MockServerPool] = None
_default_pool_lock = threading.Lock()


def default_pool() -> MockServerPool:
    """
    Process-wide pool sized by HTTPDOUBLE_MAX_SERVERS (default 25).

    Closed automatically at interpreter exit.
    """
    global _default_pool
    with _default_pool_lock:
        if _default_pool is None:
            size = int(get_env_setting('MAX_SERVERS', str(DEFAULT_POOL_SIZE)))
            _default_pool = MockServerPool(size=size)
            atexit.register(_default_pool.close)
        return _default_pool

"""
Connection Pool

This module defines the pool handle contract the ConnectionManager owns and a
thread-safe Milvus implementation built on ``pymilvus.connections``.

The manager treats the pool as opaque: it only opens it, probes it, and closes
it. Everything callers do with the handle after ``acquire()`` is up to the
pool implementation.
"""

import uuid
import asyncio
import logging
import threading
import queue
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from pymilvus import connections, utility

from .connection_exceptions import (
    ConnectionClosedError,
    ConnectionError,
    ConnectionInitializationError,
    ConnectionPoolExhaustedError,
)

# Logger setup
logger = logging.getLogger(__name__)


class ConnectionPool(ABC):
    """
    Contract for a pool handle managed by ConnectionManager.

    Implementations must be safe to share between concurrent callers. ``open``
    may be called again after the connection was lost and must re-establish
    the pool; it is the only method the manager retries.
    """

    @abstractmethod
    async def open(self) -> None:
        """Establish the pool's connections. Raise on failure."""

    @abstractmethod
    async def ping(self) -> None:
        """Lightweight liveness probe. Raise if the service is not responsive."""

    @abstractmethod
    async def close(self) -> None:
        """Release every connection. Called once, at shutdown."""

    def get_metrics(self) -> Dict[str, Any]:
        """Pool-level metrics; empty unless the implementation tracks any."""
        return {}


class MilvusConnectionPool(ConnectionPool):
    """
    Thread-safe connection pool for Milvus.

    Connections are pymilvus aliases. ``open()`` creates ``min_pool_size``
    aliases up front and ``get_connection()`` grows the pool lazily up to
    ``max_pool_size``. Stale aliases are recreated on checkout and on return.
    Blocking pymilvus calls made by ``open``/``ping``/``close`` run on the given
    executor (the loop's default executor when None).

    Example:
        >>> pool = MilvusConnectionPool(settings.pool)
        >>> await pool.open()
        >>> with pool.get_connection() as conn_alias:
        ...     utility.list_collections(using=conn_alias)
    """

    def __init__(self, settings, executor: Optional[Executor] = None, alias_prefix: Optional[str] = None):
        """
        Initialize the pool without connecting.

        Args:
            settings: ``PoolSettings`` section with host, port and pool sizing
            executor: Executor used for blocking pymilvus calls
            alias_prefix: Prefix for connection aliases; unique per pool by default
        """
        self.settings = settings
        self._executor = executor
        self._alias_prefix = alias_prefix or f"pool-{uuid.uuid4().hex[:8]}"
        self._lock = threading.RLock()
        self._available_connections: "queue.Queue[str]" = queue.Queue()
        self._in_use_connections = set()
        self._aliases: List[str] = []
        self._next_index = 0
        self._opened = False
        self._closed = False

    async def open(self) -> None:
        await self._run_blocking(self._open_sync)

    async def ping(self) -> None:
        await self._run_blocking(self._ping_sync)

    async def close(self) -> None:
        await self._run_blocking(self._close_sync)

    async def _run_blocking(self, func: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func)

    def _open_sync(self) -> None:
        """
        Open ``min_pool_size`` connections, replacing any existing ones.

        Raises:
            ConnectionClosedError: If the pool was already closed
            ConnectionInitializationError: If any connection could not be created
        """
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("Connection pool is closed")
            self._disconnect_all()
            try:
                for _ in range(self.settings.min_pool_size):
                    alias = self._new_alias()
                    self._create_connection(alias)
                    self._aliases.append(alias)
                    self._available_connections.put(alias)
            except Exception as e:
                logger.error(f"Failed to open connection pool: {e}")
                self._disconnect_all()
                raise ConnectionInitializationError(f"Failed to open connection pool: {e}") from e
            self._opened = True
        logger.info(
            f"Connection pool opened with {len(self._aliases)} connections "
            f"(max {self.settings.max_pool_size}) to {self.settings.host}:{self.settings.port}"
        )

    def _ping_sync(self) -> None:
        with self._lock:
            if self._closed or not self._opened or not self._aliases:
                raise ConnectionClosedError("Connection pool is not open")
            alias = self._aliases[0]
        utility.get_server_version(using=alias)

    def _close_sync(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._in_use_connections:
                logger.warning(
                    f"{len(self._in_use_connections)} connections still in use during pool shutdown"
                )
            self._disconnect_all()
        logger.info("Connection pool closed")

    def _new_alias(self) -> str:
        alias = f"{self._alias_prefix}_{self._next_index}"
        self._next_index += 1
        return alias

    def _create_connection(self, alias: str) -> None:
        connections.connect(
            alias=alias,
            host=self.settings.host,
            port=self.settings.port,
            secure=self.settings.secure,
            timeout=self.settings.connect_timeout,
        )
        logger.debug(f"Created new connection: {alias}")

    def _disconnect_all(self) -> None:
        for alias in self._aliases:
            try:
                connections.disconnect(alias=alias)
            except Exception as e:
                logger.warning(f"Error closing connection {alias}: {e}")
        self._aliases = []
        self._in_use_connections.clear()
        self._available_connections = queue.Queue()
        self._opened = False

    def _is_connection_healthy(self, alias: str) -> bool:
        try:
            return connections.has_connection(alias)
        except Exception:
            return False

    def _checkout(self, timeout: float) -> str:
        with self._lock:
            if not self._available_connections.qsize() and len(self._aliases) < self.settings.max_pool_size:
                alias = self._new_alias()
                self._create_connection(alias)
                self._aliases.append(alias)
                return alias
        try:
            return self._available_connections.get(timeout=timeout)
        except queue.Empty:
            raise ConnectionPoolExhaustedError(
                f"No connections available in the pool within {timeout} seconds. "
                f"Consider increasing max_pool_size (current: {self.settings.max_pool_size})."
            )

    @contextmanager
    def get_connection(self, timeout: Optional[float] = None):
        """
        Borrow a connection alias for the duration of the ``with`` block.

        Args:
            timeout: Seconds to wait for a free connection; defaults to the
                    operation timeout

        Yields:
            str: Connection alias to pass as ``using=`` to pymilvus calls

        Raises:
            ConnectionClosedError: If the pool is closed or not open
            ConnectionPoolExhaustedError: If no connection frees up in time
        """
        if self._closed or not self._opened:
            raise ConnectionClosedError("Connection pool is not open")
        if timeout is None:
            timeout = self.settings.operation_timeout

        conn_alias = self._checkout(timeout)
        if not self._is_connection_healthy(conn_alias):
            logger.warning(f"Stale connection {conn_alias} detected, attempting to reconnect.")
            try:
                connections.disconnect(alias=conn_alias)
                self._create_connection(conn_alias)
            except Exception as e:
                logger.error(f"Failed to recreate connection {conn_alias}: {e}")
                self._available_connections.put(conn_alias)
                raise ConnectionError(f"Failed to restore connection {conn_alias}") from e

        with self._lock:
            self._in_use_connections.add(conn_alias)
        try:
            yield conn_alias
        finally:
            with self._lock:
                self._in_use_connections.discard(conn_alias)
                owned = conn_alias in self._aliases
            if self._closed or not owned:
                # pool was closed or reopened while the alias was out
                try:
                    connections.disconnect(alias=conn_alias)
                except Exception as e:
                    logger.debug(f"Ignoring error while discarding connection {conn_alias}: {e}")
            else:
                self._available_connections.put(conn_alias)

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "open": self._opened and not self._closed,
                "total_connections": len(self._aliases),
                "in_use_connections": len(self._in_use_connections),
                "available_connections": self._available_connections.qsize(),
                "min_pool_size": self.settings.min_pool_size,
                "max_pool_size": self.settings.max_pool_size,
            }

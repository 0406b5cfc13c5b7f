"""
Connection Manager

This module provides the lifecycle manager for a pooled connection to a
backing service: connect with single-flight coalescing, bounded retry with
exponential backoff, reconnection driven by operation failures or health
probes, fail-fast acquisition, and the drain interface used at shutdown.
"""

import time
import asyncio
import inspect
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from config import LifecycleSettings, load_settings
from lifecycle_exceptions import (
    ConfigurationError,
    LifecycleMisuseError,
    OperationTimeoutError,
)
from .backoff_policy import BackoffPolicy
from .cancellation import raise_if_cancel_requested
from .connection_pool import ConnectionPool
from .connection_state import (
    ConnectionState,
    LifecycleEvent,
    LifecycleEventType,
    ensure_transition,
    event_for_transition,
)
from .health_monitor import HealthCheckResult, HealthMonitor, HealthStatus
from .connection_exceptions import (
    ConnectCancelledError,
    ConnectionLostError,
    ConnectionTimeoutError,
    ManagerClosedError,
    MaxRetriesExceededError,
    ServiceUnavailableError,
    ShuttingDownError,
)

# Logger setup
logger = logging.getLogger(__name__)

StateChangeHandler = Callable[[LifecycleEvent], Any]

# Error messages that mean the connection itself went away
_CONNECTION_LOST_PATTERNS = (
    "connection refused",
    "connection reset",
    "cannot connect to server",
    "server unavailable",
    "broken pipe",
)

_NETWORK_LOST_ERRORS = (
    ConnectionLostError,
    ConnectionResetError,
    ConnectionAbortedError,
    ConnectionRefusedError,
    BrokenPipeError,
)

_ATTEMPTING_STATES = (ConnectionState.CONNECTING, ConnectionState.RECONNECTING)
_SHUTDOWN_STATES = (ConnectionState.DRAINING, ConnectionState.CLOSED)


class ConnectionManager:
    """
    Lifecycle manager for one pooled connection to one backing service.

    One instance exists per backing-service target. It is constructed
    explicitly, given its pool, and passed to whatever needs it; there is no
    module-level instance.

    Key guarantees:
    - Concurrent ``connect()`` calls share a single in-flight attempt
    - Connect failures are retried with BackoffPolicy delays up to ``max_attempts``
    - ``acquire()`` never waits: it fails fast unless the state is CONNECTED
    - State transitions are serialized and observers see them in order
    - Reconnection runs through RECONNECTING so observers can tell recovery
      from the first connect
    - The pool is closed exactly once, by the shutdown path

    Example:
        >>> manager = ConnectionManager(MilvusConnectionPool(settings.pool), settings)
        >>> await manager.connect()
        >>> result = await manager.execute(lambda pool: ...)
    """

    def __init__(
        self,
        pool: ConnectionPool,
        settings: Optional[LifecycleSettings] = None,
        backoff: Optional[BackoffPolicy] = None,
        name: str = "backing-service",
    ):
        """
        Initialize the connection manager without connecting.

        Args:
            pool: Pool handle owned by this manager from now on
            settings: LifecycleSettings; loaded from the environment when None
            backoff: Retry policy; built from ``settings.retry`` when None
            name: Name of the backing-service target, used in logs and events
        """
        if pool is None:
            raise ConfigurationError("ConnectionManager requires a pool")
        self.settings = settings if settings is not None else load_settings()
        self.name = name
        self._pool = pool
        self._backoff = backoff or BackoffPolicy.from_settings(self.settings.retry)

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.RLock()
        self._handlers: List[StateChangeHandler] = []
        self._pending_events: deque = deque()
        self._dispatching = False
        self._attempt_count = 0
        self._last_error: Optional[BaseException] = None

        # single-flight bookkeeping
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_is_reconnect = False
        self._waiters: Dict[asyncio.Task, int] = {}

        # in-flight operations, keyed by a per-operation token
        self._operations: Dict[object, asyncio.Task] = {}
        self._force_cancelled: Set[object] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._drain_started = asyncio.Event()
        self._pool_closed = False
        self._background: Set[asyncio.Task] = set()

        self._last_health: Optional[HealthCheckResult] = None
        self._consecutive_failures = 0
        self._health_monitor: Optional[HealthMonitor] = None
        if self.settings.health.enabled:
            self._health_monitor = HealthMonitor.from_settings(
                self.settings.health,
                probe=self.probe,
                on_result=self.handle_health_result,
                name=f"{name}-health",
            )

        # Blocking operations run here, sized to the pool so they never queue behind each other
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.pool.max_pool_size,
            thread_name_prefix=f"ConnMgr-{name}",
        )

        logger.info(
            f"ConnectionManager '{name}' initialized: max_attempts="
            f"{'unlimited' if self._backoff.unlimited else self._backoff.max_attempts}, "
            f"health checks {'enabled' if self._health_monitor else 'disabled'}"
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def status(self) -> ConnectionState:
        """Current state snapshot. Never blocks."""
        return self._state

    @property
    def attempt_count(self) -> int:
        """Consecutive failed connect attempts since the last time the manager was CONNECTED."""
        return self._attempt_count

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def last_health_check(self) -> Optional[HealthCheckResult]:
        return self._last_health

    @property
    def consecutive_health_failures(self) -> int:
        return self._consecutive_failures

    @property
    def health_monitor(self) -> Optional[HealthMonitor]:
        return self._health_monitor

    @property
    def backoff_policy(self) -> BackoffPolicy:
        return self._backoff

    @property
    def in_flight_operations(self) -> int:
        return len(self._operations)

    def health_status(self) -> HealthStatus:
        """
        Health surface for a status endpoint.

        Degraded as soon as the state leaves CONNECTED, without waiting for
        the next probe.
        """
        with self._state_lock:
            last = self._last_health
            healthy = self._state.accepts_operations() and (last is None or last.healthy)
            last_error = None
            if not healthy:
                if last is not None and not last.healthy:
                    last_error = last.error
                elif self._last_error is not None:
                    last_error = str(self._last_error) or type(self._last_error).__name__
            return HealthStatus(
                healthy=healthy,
                state=self._state,
                last_check=last.timestamp if last else None,
                last_error=last_error,
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Lifecycle metrics for monitoring and alerting."""
        with self._state_lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "attempt_count": self._attempt_count,
                "last_error": str(self._last_error) if self._last_error else None,
                "consecutive_health_failures": self._consecutive_failures,
                "last_health_check": self._last_health.to_dict() if self._last_health else None,
                "in_flight_operations": len(self._operations),
                "connect_in_flight": self._inflight is not None and not self._inflight.done(),
                "pool": self._pool.get_metrics(),
            }

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def on_state_change(self, handler: StateChangeHandler) -> Callable[[], bool]:
        """
        Register a listener for lifecycle events.

        Handlers are called synchronously, in transition order, and must
        return quickly. Coroutine functions are scheduled as tasks instead of
        being awaited. Exceptions raised by handlers are logged and ignored.

        Returns:
            Callable that unregisters the handler
        """
        with self._state_lock:
            self._handlers.append(handler)
        return partial(self.remove_state_change_handler, handler)

    def remove_state_change_handler(self, handler: StateChangeHandler) -> bool:
        with self._state_lock:
            try:
                self._handlers.remove(handler)
                return True
            except ValueError:
                return False

    def _dispatch(self, event: LifecycleEvent) -> None:
        # called with _state_lock held; a handler that triggers another
        # transition only queues it, so every handler sees events in order
        self._pending_events.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending_events:
                queued = self._pending_events.popleft()
                for handler in list(self._handlers):
                    try:
                        outcome = handler(queued)
                        if inspect.isawaitable(outcome):
                            self._spawn_background(outcome, f"{self.name}-event-{queued.event.value}")
                    except Exception:
                        logger.exception(f"[{self.name}] State change handler {handler!r} failed")
        finally:
            self._dispatching = False

    def _spawn_background(self, awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        target: ConnectionState,
        error: Optional[BaseException] = None,
        expected: Optional[Iterable[ConnectionState]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Move to ``target`` and notify observers.

        When ``expected`` is given the transition only happens from one of
        those states and False is returned otherwise. Illegal edges raise
        IllegalStateTransitionError.
        """
        with self._state_lock:
            current = self._state
            if expected is not None and current not in expected:
                return False
            ensure_transition(current, target)
            self._state = target
            if target is ConnectionState.CONNECTED:
                self._attempt_count = 0
                self._consecutive_failures = 0
            event = LifecycleEvent(
                event=event_for_transition(current, target),
                previous=current,
                current=target,
                error=str(error) if error is not None else None,
                details=details or {},
            )
            logger.info(f"[{self.name}] State change: {current.value} -> {target.value}")
            self._dispatch(event)
        return True

    # ------------------------------------------------------------------
    # Connect / reconnect
    # ------------------------------------------------------------------

    async def connect(self, timeout: Optional[float] = None) -> None:
        """
        Connect to the backing service, retrying with backoff.

        Returns immediately when already connected. If an attempt is already
        in flight (a first connect or a reconnect), waits for that attempt
        instead of starting another one; every waiter receives the same
        outcome.

        Args:
            timeout: Maximum seconds this caller waits. The shared attempt is
                    only cancelled once its last waiter has gone away.

        Raises:
            ManagerClosedError: The manager is closed
            ShuttingDownError: Shutdown started before or during the attempt
            MaxRetriesExceededError: Every allowed attempt failed
            ConnectCancelledError: ``timeout`` elapsed first
            asyncio.CancelledError: The calling task was cancelled
        """
        state = self._state
        if state.is_terminal():
            raise ManagerClosedError(f"Connection manager '{self.name}' is closed", state)
        if state is ConnectionState.DRAINING:
            raise ShuttingDownError(f"Connection manager '{self.name}' is shutting down", state)
        if state.accepts_operations():
            return

        task = self._inflight
        if task is None or task.done():
            self._transition(ConnectionState.CONNECTING)
            task = self._start_sequence(reconnect=False)
        await self._await_sequence(task, timeout)

    def _start_sequence(self, reconnect: bool) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        label = "reconnect" if reconnect else "connect"
        task = loop.create_task(self._connect_sequence(reconnect), name=f"{self.name}-{label}")
        self._inflight = task
        self._inflight_is_reconnect = reconnect
        task.add_done_callback(self._on_sequence_done)
        return task

    def _on_sequence_done(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        self._waiters.pop(task, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, ServiceUnavailableError):
            logger.debug(f"[{self.name}] Connect sequence ended with {type(error).__name__}: {error}")

    async def _await_sequence(self, task: asyncio.Task, timeout: Optional[float]) -> None:
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            if timeout is None:
                await asyncio.shield(task)
            else:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            if task.done():
                raise
            raise ConnectCancelledError(
                f"Gave up waiting for connection to '{self.name}' after {timeout}s"
            ) from None
        except asyncio.CancelledError:
            if task.cancelled() and self._state in _SHUTDOWN_STATES:
                raise ShuttingDownError(
                    f"Connection manager '{self.name}' shut down during connect", self._state
                ) from None
            raise
        finally:
            remaining = self._waiters.get(task, 1) - 1
            if remaining > 0:
                self._waiters[task] = remaining
            else:
                self._waiters.pop(task, None)
                if not task.done() and not self._inflight_is_reconnect:
                    logger.info(f"[{self.name}] Last waiter left, cancelling connect attempt")
                    task.cancel()

    async def _connect_sequence(self, reconnect: bool) -> None:
        label = "Reconnect" if reconnect else "Connect"
        retrying = AsyncRetrying(
            stop=self._should_stop,
            wait=self._retry_delay,
            retry=retry_if_exception(self.is_retriable),
            sleep=self._backoff_sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._attempt_connect()
        except asyncio.CancelledError:
            if self._transition(ConnectionState.DISCONNECTED, expected=_ATTEMPTING_STATES):
                await self._stop_health_monitor()
            raise
        except Exception as e:
            if self._state in _SHUTDOWN_STATES:
                if isinstance(e, ShuttingDownError):
                    raise
                raise ShuttingDownError(
                    f"Connection manager '{self.name}' is shutting down", self._state
                ) from e
            self._last_error = e
            if self._transition(ConnectionState.DISCONNECTED, error=e, expected=_ATTEMPTING_STATES):
                await self._stop_health_monitor()
            if not self.is_retriable(e):
                logger.error(f"[{self.name}] {label} failed with non-retriable error: {e}")
                raise
            logger.error(f"[{self.name}] {label} failed after {attempts} attempts: {e}")
            raise MaxRetriesExceededError(
                f"{label} to '{self.name}' failed after {attempts} attempts: {e}",
                attempts=attempts,
                last_error=e,
            ) from e
        logger.info(f"[{self.name}] {label} succeeded after {attempts} attempt(s)")

    async def _attempt_connect(self) -> None:
        if self._state in _SHUTDOWN_STATES:
            raise ShuttingDownError(f"Connection manager '{self.name}' is shutting down", self._state)

        connect_timeout = self.settings.pool.connect_timeout
        try:
            await asyncio.wait_for(self._pool.open(), timeout=connect_timeout)
        except asyncio.TimeoutError as e:
            raise_if_cancel_requested()
            error = ConnectionTimeoutError(f"Connect attempt exceeded {connect_timeout}s")
            self._record_failure(error)
            raise error from e
        except Exception as e:
            raise_if_cancel_requested()
            self._record_failure(e)
            raise
        raise_if_cancel_requested()

        if not self._transition(ConnectionState.CONNECTED, expected=_ATTEMPTING_STATES):
            # shutdown began while the pool was opening; the shutdown path closes it
            raise ShuttingDownError(f"Connection manager '{self.name}' is shutting down", self._state)
        if self._health_monitor is not None:
            self._health_monitor.start()

    def _record_failure(self, error: BaseException) -> None:
        with self._state_lock:
            self._attempt_count += 1
            self._last_error = error

    def _should_stop(self, retry_state: RetryCallState) -> bool:
        if self._state in _SHUTDOWN_STATES:
            return True
        return not self._backoff.allows_attempt(retry_state.attempt_number + 1)

    def _retry_delay(self, retry_state: RetryCallState) -> float:
        return self._backoff.next_delay(retry_state.attempt_number)

    async def _backoff_sleep(self, seconds: float) -> None:
        # wakes early once shutdown starts
        try:
            await asyncio.wait_for(self._drain_started.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        raise_if_cancel_requested()

    async def _stop_health_monitor(self) -> None:
        # probes only run while CONNECTED; the next CONNECTED restarts them
        if self._health_monitor is not None:
            await self._health_monitor.stop()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"[{self.name}] Connect attempt {retry_state.attempt_number} failed: {error}. "
            f"Retrying in {delay:.2f}s..."
        )

    @staticmethod
    def is_retriable(error: BaseException) -> bool:
        """
        Whether a connect failure should be retried.

        Caller-facing availability errors, configuration errors and misuse
        errors are final; everything else is treated as transient.
        """
        if isinstance(error, (ServiceUnavailableError, ConfigurationError, LifecycleMisuseError)):
            return False
        return isinstance(error, Exception)

    @staticmethod
    def is_connection_lost(error: BaseException) -> bool:
        """Classify an operation failure as the connection having gone away."""
        if isinstance(error, ServiceUnavailableError):
            return False
        if isinstance(error, _NETWORK_LOST_ERRORS):
            return True
        message = str(error).lower()
        return any(pattern in message for pattern in _CONNECTION_LOST_PATTERNS)

    def report_connection_lost(self, error: Optional[BaseException] = None) -> bool:
        """
        Start the reconnect path after an operation found the connection gone.

        Must be called from the event loop thread. Only the first report while
        CONNECTED starts a reconnect; later reports are ignored until the
        manager is connected again.

        Returns:
            bool: True if this call started a reconnect
        """
        return self._begin_reconnect(error or ConnectionLostError("connection lost"), source="operation")

    def _begin_reconnect(self, error: BaseException, source: str) -> bool:
        with self._state_lock:
            self._last_error = error
            if not self._transition(
                ConnectionState.RECONNECTING,
                error=error,
                expected=(ConnectionState.CONNECTED,),
                details={"source": source},
            ):
                return False
            self._consecutive_failures = 0
        logger.warning(f"[{self.name}] Connection lost ({source}): {error}. Reconnecting...")
        self._start_sequence(reconnect=True)
        return True

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def probe(self) -> None:
        """Health probe: ping the pool while connected."""
        state = self._state
        if not state.accepts_operations():
            raise ServiceUnavailableError(f"Connection manager '{self.name}' is {state.value}", state)
        await self._pool.ping()

    def handle_health_result(self, result: HealthCheckResult) -> None:
        """
        Consume a HealthMonitor result.

        ``unhealthy_threshold`` consecutive failures while CONNECTED start
        exactly one reconnect; the counter resets on any healthy result and
        on entering CONNECTED.
        """
        threshold = self.settings.health.unhealthy_threshold
        with self._state_lock:
            self._last_health = result
            if result.healthy:
                self._consecutive_failures = 0
                return
            self._consecutive_failures += 1
            failures = self._consecutive_failures
            state = self._state
            self._dispatch(LifecycleEvent(
                event=LifecycleEventType.HEALTH_CHECK_FAILED,
                previous=state,
                current=state,
                timestamp=result.timestamp,
                error=result.error,
                details={"consecutive_failures": failures, "latency": result.latency},
            ))
            if state is not ConnectionState.CONNECTED or failures < threshold:
                return
        logger.warning(
            f"[{self.name}] {failures} consecutive health checks failed (threshold {threshold})"
        )
        self._begin_reconnect(
            ConnectionLostError(f"health check failed {failures} times: {result.error}"),
            source="health_check",
        )

    # ------------------------------------------------------------------
    # Acquisition and operations
    # ------------------------------------------------------------------

    def _unavailable_error(self, state: ConnectionState) -> ServiceUnavailableError:
        if state.is_terminal():
            return ManagerClosedError(f"Connection manager '{self.name}' is closed", state)
        if state is ConnectionState.DRAINING:
            return ShuttingDownError(f"Connection manager '{self.name}' is shutting down", state)
        message = f"Backing service '{self.name}' is unavailable (state: {state.value})"
        if self._last_error is not None:
            message += f"; last error: {self._last_error}"
        return ServiceUnavailableError(message, state)

    def acquire(self) -> ConnectionPool:
        """
        Return the pool handle if CONNECTED, otherwise fail immediately.

        Raises:
            ServiceUnavailableError: Disconnected, connecting or reconnecting
            ShuttingDownError: Draining for shutdown
            ManagerClosedError: Closed
        """
        state = self._state
        if state.accepts_operations():
            return self._pool
        raise self._unavailable_error(state)

    @asynccontextmanager
    async def operation(self):
        """
        Acquire the handle for a tracked operation.

        Tracked operations delay shutdown until they finish or the grace
        period expires. Errors classified as connection loss start the
        reconnect path before propagating. If shutdown has to cancel the
        operation, the caller receives ShuttingDownError.

        Example:
            >>> async with manager.operation() as pool:
            ...     await do_work(pool)
        """
        handle = self.acquire()
        task = asyncio.current_task()
        token = object()
        self._operations[token] = task
        self._idle.clear()
        try:
            yield handle
        except asyncio.CancelledError:
            if token in self._force_cancelled:
                if hasattr(task, "uncancel"):
                    task.uncancel()
                raise ShuttingDownError(
                    f"Operation cancelled: '{self.name}' shutdown grace period expired",
                    self._state,
                ) from None
            raise
        except Exception as e:
            if self.is_connection_lost(e):
                self.report_connection_lost(e)
            raise
        finally:
            self._operations.pop(token, None)
            self._force_cancelled.discard(token)
            if not self._operations:
                self._idle.set()

    async def execute(self, operation: Callable, *args, timeout: Optional[float] = None, **kwargs):
        """
        Run ``operation(handle, *args, **kwargs)`` as a tracked operation.

        Coroutine functions are awaited; plain callables run on the manager's
        dedicated thread pool so blocking clients do not stall the event loop.

        Args:
            operation: Callable taking the pool handle as its first argument
            timeout: Seconds before the operation is abandoned; defaults to
                    ``pool.operation_timeout``

        Raises:
            ServiceUnavailableError: The manager is not connected
            OperationTimeoutError: The operation exceeded its timeout
            ShuttingDownError: Shutdown cancelled the operation
        """
        timeout = self.settings.pool.operation_timeout if timeout is None else timeout
        async with self.operation() as handle:
            if inspect.iscoroutinefunction(operation):
                call = operation(handle, *args, **kwargs)
            else:
                loop = asyncio.get_running_loop()
                call = loop.run_in_executor(self._executor, partial(operation, handle, *args, **kwargs))
            try:
                return await asyncio.wait_for(call, timeout=timeout)
            except asyncio.TimeoutError:
                raise OperationTimeoutError(
                    f"Operation exceeded timeout of {timeout}s. "
                    "Consider increasing timeout or optimizing the operation."
                ) from None

    # ------------------------------------------------------------------
    # Shutdown interface (driven by ShutdownCoordinator)
    # ------------------------------------------------------------------

    async def begin_draining(self, reason: str = "shutdown requested") -> bool:
        """
        Stop accepting new work. Called by ShutdownCoordinator.

        In-flight operations keep running; a connect sequence in progress
        stops at its next attempt or backoff sleep.

        Returns:
            bool: False if draining had already started
        """
        if not self._transition(
            ConnectionState.DRAINING,
            expected=(
                ConnectionState.DISCONNECTED,
                ConnectionState.CONNECTING,
                ConnectionState.CONNECTED,
                ConnectionState.RECONNECTING,
            ),
            details={"reason": reason, "in_flight_operations": len(self._operations)},
        ):
            return False
        self._drain_started.set()
        await self._stop_health_monitor()
        return True

    async def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until no tracked operation is in flight. Returns False on timeout."""
        if not self._operations:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return not self._operations
        return True

    async def force_close(self, reason: str = "shutdown") -> int:
        """
        Cancel outstanding work, close the pool, and enter CLOSED.

        Called by ShutdownCoordinator once draining is over. Repeated calls
        after CLOSED do nothing.

        Returns:
            int: Number of operations that were still in flight

        Raises:
            IllegalStateTransitionError: If draining has not started
        """
        if self._state.is_terminal():
            return 0
        ensure_transition(self._state, ConnectionState.CLOSED)

        outstanding = [(token, task) for token, task in self._operations.items() if not task.done()]
        for token, task in outstanding:
            self._force_cancelled.add(token)
            task.cancel()
        if outstanding:
            logger.warning(f"[{self.name}] Cancelled {len(outstanding)} in-flight operations")

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            inflight.cancel()

        await self._close_pool()
        self._transition(
            ConnectionState.CLOSED,
            expected=(ConnectionState.DRAINING,),
            details={"reason": reason, "cancelled_operations": len(outstanding)},
        )
        self._executor.shutdown(wait=False)
        return len(outstanding)

    async def _close_pool(self) -> None:
        if self._pool_closed:
            return
        self._pool_closed = True
        try:
            await asyncio.wait_for(self._pool.close(), timeout=self.settings.pool.connect_timeout)
            logger.info(f"[{self.name}] Pool closed")
        except Exception as e:
            self._last_error = e
            logger.error(f"[{self.name}] Error while closing pool: {e}")

    def __repr__(self) -> str:
        return (
            f"ConnectionManager(name='{self.name}', state={self._state.value}, "
            f"attempts={self._attempt_count}, in_flight={len(self._operations)})"
        )

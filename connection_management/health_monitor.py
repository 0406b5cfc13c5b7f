"""
Health Monitor

Periodic liveness probe for the backing service. The monitor only reports:
every probe produces a HealthCheckResult that is handed to a callback, and the
consumer (normally the ConnectionManager) decides what to do with it. Keeping
state changes out of the monitor means a burst of failed probes can never
start competing reconnect sequences on its own.
"""

import time
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from lifecycle_exceptions import ConfigurationError
from .cancellation import cancel_requested, raise_if_cancel_requested
from .connection_state import ConnectionState

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]
ResultCallback = Callable[["HealthCheckResult"], Any]


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a single probe."""
    timestamp: float
    healthy: bool
    latency: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "healthy": self.healthy,
            "latency": round(self.latency, 6),
            "error": self.error,
        }


@dataclass(frozen=True)
class HealthStatus:
    """
    Snapshot returned by the health surface.

    Suitable for serving from an HTTP health endpoint through ``to_dict()``.
    """
    healthy: bool
    state: ConnectionState
    last_check: Optional[float]
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "healthy": self.healthy,
            "state": self.state.value,
            "last_check": self.last_check,
        }
        if self.last_error is not None:
            payload["last_error"] = self.last_error
        return payload


class HealthMonitor:
    """
    Runs a probe on a fixed interval in a single background task.

    Each probe is bounded by its own timeout, which is shorter than the
    interval, and the next probe is only scheduled after the previous one
    finished, so probes never stack up. ``stop()`` cancels the task as one
    unit; a probe that is still running is abandoned.

    Example:
        >>> monitor = HealthMonitor(probe=pool.ping, on_result=print, interval=30.0, timeout=5.0)
        >>> monitor.start()
        >>> ...
        >>> await monitor.stop()
    """

    def __init__(
        self,
        probe: Probe,
        on_result: ResultCallback,
        interval: float = 30.0,
        timeout: float = 5.0,
        name: str = "health-monitor",
    ):
        """
        Initialize the health monitor.

        Args:
            probe: Coroutine function that raises if the service is unhealthy
            on_result: Called with every HealthCheckResult (sync or async)
            interval: Seconds between the start of two probes
            timeout: Seconds a single probe may take; must be below ``interval``
            name: Name used for logging and the background task

        Raises:
            ConfigurationError: If the timings are invalid
        """
        if interval <= 0:
            raise ConfigurationError(f"Health check interval must be positive (got {interval})")
        if timeout <= 0 or timeout >= interval:
            raise ConfigurationError(
                f"Health check timeout ({timeout}s) must be positive and shorter than the interval ({interval}s)"
            )
        self._probe = probe
        self._on_result = on_result
        self.interval = interval
        self.timeout = timeout
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._last_result: Optional[HealthCheckResult] = None
        self._probe_count = 0

    @classmethod
    def from_settings(cls, settings, probe: Probe, on_result: ResultCallback, name: str = "health-monitor"):
        """Build a monitor from a ``HealthCheckSettings`` section."""
        return cls(probe=probe, on_result=on_result, interval=settings.interval,
                   timeout=settings.timeout, name=name)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> Optional[HealthCheckResult]:
        return self._last_result

    @property
    def probe_count(self) -> int:
        return self._probe_count

    def start(self) -> None:
        """Start the probe loop on the running event loop (no-op if already running)."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._stopping = asyncio.Event()
        self._task = loop.create_task(self._run(self._stopping), name=self.name)
        logger.info(f"{self.name} started: interval={self.interval}s, timeout={self.timeout}s")

    async def stop(self) -> None:
        """
        Halt all future probes. Safe to call when not running.

        The loop checks its stop flag before every probe and before every
        delivery, so it ends even if the cancel request is lost.
        """
        task, self._task = self._task, None
        if self._stopping is not None:
            self._stopping.set()
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            if cancel_requested():
                raise
        logger.info(f"{self.name} stopped after {self._probe_count} probes")

    async def check_once(self) -> HealthCheckResult:
        """
        Run one probe, deliver its result, and return it.

        Probe failures and timeouts are reported as unhealthy results, never
        raised. Cancellation propagates.
        """
        result = await self._measure()
        await self._deliver(result)
        return result

    async def _measure(self) -> HealthCheckResult:
        started = time.monotonic()
        error: Optional[str] = None
        try:
            await asyncio.wait_for(self._probe(), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = f"health probe timed out after {self.timeout}s"
        except Exception as e:
            error = str(e) or type(e).__name__
        raise_if_cancel_requested()

        result = HealthCheckResult(
            timestamp=time.time(),
            healthy=error is None,
            latency=time.monotonic() - started,
            error=error,
        )
        self._last_result = result
        self._probe_count += 1

        if result.healthy:
            logger.debug(f"{self.name}: probe healthy ({result.latency * 1000:.1f}ms)")
        else:
            logger.warning(f"{self.name}: probe unhealthy: {error}")
        return result

    async def _deliver(self, result: HealthCheckResult) -> None:
        try:
            outcome = self._on_result(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception(f"{self.name}: result callback failed")

    async def _run(self, stopping: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + self.interval
        while not stopping.is_set():
            try:
                await asyncio.wait_for(stopping.wait(), timeout=max(0.0, next_run - loop.time()))
            except asyncio.TimeoutError:
                pass
            if stopping.is_set():
                break
            result = await self._measure()
            if stopping.is_set():
                break
            await self._deliver(result)
            next_run = max(next_run + self.interval, loop.time())

"""
Shutdown Coordinator

Coordinates process shutdown for a ConnectionManager: on a termination signal
it stops new work, lets in-flight operations finish within a grace period,
then force-closes the pool. Signal plumbing lives here and nowhere else.
"""

import time
import signal
import asyncio
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from lifecycle_exceptions import ConfigurationError, LifecycleMisuseError

logger = logging.getLogger(__name__)


class ShutdownPhase(str, Enum):
    """Coordinator phases: ARMED -> DRAINING -> DONE."""
    ARMED = "armed"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class ShutdownRequest:
    """
    A single termination event.

    ``deadline`` is on the event loop clock (``loop.time()``).
    """
    reason: str
    deadline: float
    signal: Optional[str] = None
    requested_at: float = 0.0


@dataclass(frozen=True)
class ShutdownReport:
    """Outcome of the drain sequence."""
    reason: str
    forced: bool
    outstanding_operations: int
    duration: float
    signal: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "forced": self.forced,
            "outstanding_operations": self.outstanding_operations,
            "duration": round(self.duration, 6),
            "signal": self.signal,
        }


class ShutdownCoordinator:
    """
    Drains and closes a ConnectionManager on termination.

    Only one drain sequence ever runs. A second request while draining cuts
    the remaining grace period to zero; requests after DONE are no-ops that
    return the same result.

    Example:
        >>> coordinator = ShutdownCoordinator(manager)
        >>> coordinator.arm()          # once, at startup, inside the event loop
        >>> report = await coordinator.wait_done()
    """

    _armed_by: Optional["ShutdownCoordinator"] = None
    _arm_lock = threading.Lock()

    def __init__(
        self,
        manager,
        grace_period: Optional[float] = None,
        signals: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the coordinator in the ARMED phase.

        Args:
            manager: ConnectionManager to drain
            grace_period: Seconds in-flight work gets before force-close;
                         defaults to ``settings.shutdown.grace_period``
            signals: Signal names handled by ``arm()``; defaults to
                    ``settings.shutdown.signals``
        """
        shutdown_settings = manager.settings.shutdown
        self.manager = manager
        self.grace_period = shutdown_settings.grace_period if grace_period is None else grace_period
        if self.grace_period < 0:
            raise ConfigurationError(f"grace_period cannot be negative (got {self.grace_period})")
        self.signal_names: List[str] = list(signals if signals is not None else shutdown_settings.signals)

        self._phase = ShutdownPhase.ARMED
        self._request: Optional[ShutdownRequest] = None
        self._report: Optional[ShutdownReport] = None
        self._task: Optional[asyncio.Task] = None
        self._force_event = asyncio.Event()
        self._done = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: List[signal.Signals] = []
        self._previous_handlers: Dict[signal.Signals, Any] = {}

    @property
    def phase(self) -> ShutdownPhase:
        return self._phase

    @property
    def request(self) -> Optional[ShutdownRequest]:
        return self._request

    @property
    def report(self) -> Optional[ShutdownReport]:
        return self._report

    @property
    def armed(self) -> bool:
        return ShutdownCoordinator._armed_by is self

    # ------------------------------------------------------------------
    # Signal registration
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_signal(name: str) -> signal.Signals:
        sig = getattr(signal, name.upper(), None)
        if not isinstance(sig, signal.Signals):
            raise ConfigurationError(f"Unknown or unsupported signal: {name}")
        return sig

    def arm(self) -> None:
        """
        Register the termination-signal handlers on the running event loop.

        Handlers are registered once per process: arming the same coordinator
        again does nothing, arming a different one raises.

        Raises:
            LifecycleMisuseError: Another coordinator is already armed
            ConfigurationError: A configured signal does not exist here
        """
        with ShutdownCoordinator._arm_lock:
            armed = ShutdownCoordinator._armed_by
            if armed is self:
                return
            if armed is not None:
                raise LifecycleMisuseError("Termination signal handlers are already registered by another coordinator")

            signals = [self._resolve_signal(name) for name in self.signal_names]
            loop = asyncio.get_running_loop()
            for sig in signals:
                try:
                    loop.add_signal_handler(sig, self._on_signal, sig)
                except NotImplementedError:
                    # loops without add_signal_handler support (Windows)
                    self._previous_handlers[sig] = signal.signal(
                        sig, lambda signum, frame: loop.call_soon_threadsafe(self._on_signal, signal.Signals(signum))
                    )
                self._installed.append(sig)
            self._loop = loop
            ShutdownCoordinator._armed_by = self
        logger.info(f"Shutdown coordinator armed for {', '.join(s.name for s in self._installed)}")

    def disarm(self) -> None:
        """Remove the handlers registered by ``arm()``."""
        with ShutdownCoordinator._arm_lock:
            if ShutdownCoordinator._armed_by is not self:
                return
            for sig in self._installed:
                if sig in self._previous_handlers:
                    signal.signal(sig, self._previous_handlers.pop(sig))
                elif self._loop is not None and not self._loop.is_closed():
                    self._loop.remove_signal_handler(sig)
            self._installed = []
            self._loop = None
            ShutdownCoordinator._armed_by = None
        logger.debug("Shutdown coordinator disarmed")

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}")
        self.request_shutdown(reason=f"received {sig.name}", signal_name=sig.name)

    # ------------------------------------------------------------------
    # Shutdown sequence
    # ------------------------------------------------------------------

    def request_shutdown(self, reason: str = "shutdown requested", signal_name: Optional[str] = None) -> asyncio.Task:
        """
        Start the drain sequence, or escalate the running one.

        Must be called on the event loop thread (signal handlers registered by
        ``arm()`` are).

        Returns:
            asyncio.Task: The single drain task; resolves to a ShutdownReport
        """
        if self._task is not None:
            if self._phase is ShutdownPhase.DRAINING and not self._force_event.is_set():
                logger.warning(f"Second shutdown request ({reason}) while draining, forcing close now")
                self._force_event.set()
            return self._task

        loop = asyncio.get_running_loop()
        self._request = ShutdownRequest(
            reason=reason,
            deadline=loop.time() + self.grace_period,
            signal=signal_name,
            requested_at=time.time(),
        )
        self._phase = ShutdownPhase.DRAINING
        self._task = loop.create_task(self._drain(self._request), name="shutdown-coordinator")
        return self._task

    async def shutdown(self, reason: str = "shutdown requested") -> ShutdownReport:
        """Request shutdown and wait for it to complete."""
        return await asyncio.shield(self.request_shutdown(reason))

    async def wait_done(self) -> Optional[ShutdownReport]:
        """Wait until the drain sequence has finished."""
        await self._done.wait()
        return self._report

    async def _drain(self, request: ShutdownRequest) -> ShutdownReport:
        loop = asyncio.get_running_loop()
        started = loop.time()
        logger.info(f"Shutdown started ({request.reason}); grace period {self.grace_period}s")
        try:
            await self.manager.begin_draining(request.reason)
            idle = await self._wait_for_idle(request.deadline - loop.time())
            outstanding = self.manager.in_flight_operations
            forced = not idle and outstanding > 0
            if forced:
                cause = (
                    "shutdown was escalated" if self._force_event.is_set()
                    else f"grace period of {self.grace_period}s expired"
                )
                logger.warning(
                    f"Forced shutdown: {cause} with {outstanding} operations still in flight"
                )
            await self.manager.force_close(request.reason)

            report = ShutdownReport(
                reason=request.reason,
                forced=forced,
                outstanding_operations=outstanding if forced else 0,
                duration=loop.time() - started,
                signal=request.signal,
            )
            self._report = report
            logger.info(f"Shutdown complete in {report.duration:.3f}s (forced={forced})")
            return report
        finally:
            self._phase = ShutdownPhase.DONE
            self._done.set()

    async def _wait_for_idle(self, remaining: float) -> bool:
        if self.manager.in_flight_operations == 0:
            return True
        if remaining <= 0 or self._force_event.is_set():
            return False

        idle_waiter = asyncio.ensure_future(self.manager.wait_for_idle())
        force_waiter = asyncio.ensure_future(self._force_event.wait())
        try:
            await asyncio.wait(
                {idle_waiter, force_waiter},
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            idle_waiter.cancel()
            force_waiter.cancel()
        return self.manager.in_flight_operations == 0

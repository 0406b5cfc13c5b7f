"""
Connection State

The finite set of connection lifecycle states, the legal transitions between
them, and the lifecycle events emitted when they change.
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from lifecycle_exceptions import LifecycleMisuseError


class ConnectionState(str, Enum):
    """
    Lifecycle states of a managed connection pool.

    - DISCONNECTED: No pool is open; the initial state and the state after retries are exhausted
    - CONNECTING: First connect sequence in progress
    - CONNECTED: Pool is open; the only state in which operations may proceed
    - RECONNECTING: Recovery sequence after the connection was lost
    - DRAINING: Shutdown started; no new work is accepted
    - CLOSED: Pool released; terminal
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DRAINING = "draining"
    CLOSED = "closed"

    def is_terminal(self) -> bool:
        return self is ConnectionState.CLOSED

    def accepts_operations(self) -> bool:
        return self is ConnectionState.CONNECTED


_LEGAL_TRANSITIONS: Mapping[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({
        ConnectionState.CONNECTING,
        ConnectionState.DRAINING,
    }),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.DRAINING,
    }),
    ConnectionState.CONNECTED: frozenset({
        ConnectionState.RECONNECTING,
        ConnectionState.DRAINING,
    }),
    ConnectionState.RECONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.DRAINING,
    }),
    ConnectionState.DRAINING: frozenset({
        ConnectionState.CLOSED,
    }),
    ConnectionState.CLOSED: frozenset(),
}


class IllegalStateTransitionError(LifecycleMisuseError):
    """
    Raised when code attempts a transition outside the legal-edge table.

    This is a programming error: it is never retried and never reported as a
    connection failure.
    """

    def __init__(self, current: ConnectionState, target: ConnectionState):
        super().__init__(f"Illegal connection state transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: ConnectionState, target: ConnectionState) -> bool:
    """Return True if ``current -> target`` is a legal edge."""
    return target in _LEGAL_TRANSITIONS[current]


def ensure_transition(current: ConnectionState, target: ConnectionState) -> None:
    """Raise IllegalStateTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise IllegalStateTransitionError(current, target)


class LifecycleEventType(str, Enum):
    """Events delivered to state-change listeners."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    HEALTH_CHECK_FAILED = "health_check_failed"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN_COMPLETE = "shutdown_complete"


def event_for_transition(previous: ConnectionState, current: ConnectionState) -> LifecycleEventType:
    """Map a legal transition to the event observers receive for it."""
    if current is ConnectionState.CONNECTED:
        if previous is ConnectionState.RECONNECTING:
            return LifecycleEventType.RECONNECTED
        return LifecycleEventType.CONNECTED
    return {
        ConnectionState.CONNECTING: LifecycleEventType.CONNECTING,
        ConnectionState.DISCONNECTED: LifecycleEventType.DISCONNECTED,
        ConnectionState.RECONNECTING: LifecycleEventType.RECONNECTING,
        ConnectionState.DRAINING: LifecycleEventType.SHUTTING_DOWN,
        ConnectionState.CLOSED: LifecycleEventType.SHUTDOWN_COMPLETE,
    }[current]


@dataclass(frozen=True)
class LifecycleEvent:
    """
    A single lifecycle event.

    For transitions ``previous`` and ``current`` differ; for
    ``health_check_failed`` they are both the state at probe time.
    """
    event: LifecycleEventType
    previous: ConnectionState
    current: ConnectionState
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_transition(self) -> bool:
        return self.previous is not self.current

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "previous": self.previous.value,
            "current": self.current.value,
            "timestamp": self.timestamp,
            "error": self.error,
            "details": dict(self.details),
        }

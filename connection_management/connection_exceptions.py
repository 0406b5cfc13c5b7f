"""
Connection Management Exceptions

This module defines specialized exceptions for connection lifecycle management,
providing detailed error reporting and handling for connection-related issues.

The hierarchy separates three kinds of failure:
- Transient failures that the retry loop handles locally
- Caller-facing failures returned immediately so callers can apply a fallback
- Shutdown failures that tell callers the process is going away
"""

from typing import Optional

from lifecycle_exceptions import ConnectionError as BaseConnectionError
from lifecycle_exceptions import LifecycleError


class ConnectionError(BaseConnectionError):
    """
    Base exception for all connection-related errors.

    This base class ensures consistent error handling across the connection
    management system and allows applications to catch all connection errors
    uniformly while still providing access to specific error details.
    """
    pass


class ConnectionTimeoutError(ConnectionError):
    """
    Raised when a single connect attempt exceeds the connect timeout.

    The retry loop treats this as transient and schedules another attempt.
    """
    pass


class ConnectionLostError(ConnectionError):
    """
    Raised when an established connection drops during an operation.

    Raising this from inside ``ConnectionManager.operation()`` triggers the
    reconnect path.
    """
    pass


class ConnectionInitializationError(ConnectionError):
    """
    Raised when the connection pool fails to open its connections.

    Pool implementations raise this from ``open()`` so the manager can count
    the attempt as failed and retry it.
    """
    pass


class ConnectionClosedError(ConnectionError):
    """
    Raised when attempting to use a closed pool.

    This exception prevents the use of disposed connections and helps detect
    connection lifecycle issues.
    """
    pass


class ConnectionPoolExhaustedError(ConnectionError):
    """
    Raised when the connection pool has no available connections.

    Applications can use this to implement queuing or graceful degradation
    when the pool is saturated.
    """
    pass


class MaxRetriesExceededError(ConnectionError):
    """
    Raised when the connect sequence used up all of its attempts.

    The last underlying failure is available as ``last_error`` (and as
    ``__cause__``), so callers can inspect why the service stayed unreachable.
    """

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ServiceUnavailableError(ConnectionError):
    """
    Raised when the backing service cannot be used right now.

    ``acquire()`` raises this immediately while the manager is not connected,
    instead of waiting for a connection to appear. The manager state at the
    time of the call is attached as ``state``.
    """

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state


class ShuttingDownError(ServiceUnavailableError):
    """
    Raised when the manager is draining for shutdown.

    New acquisitions fail with this error, and operations cancelled because
    the grace period expired receive it instead of a generic timeout.
    """
    pass


class ManagerClosedError(ServiceUnavailableError):
    """
    Raised when the manager has been closed.

    ``closed`` is terminal, so connecting or acquiring afterwards always
    fails with this error without touching the manager state.
    """
    pass


class ConnectCancelledError(LifecycleError):
    """
    Raised when a caller's connect deadline elapses before the attempt finishes.

    Kept outside the ``ConnectionError`` hierarchy so that giving up on the
    wait is never confused with the service being unreachable.
    """
    pass

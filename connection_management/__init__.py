"""
Connection Management Module

This module provides resilient lifecycle management for a pooled connection to
an external stateful backing service.

Key capabilities:
- Single-flight connect: concurrent callers share one in-flight attempt
- Bounded retry with exponential backoff and jitter
- Periodic health probes that drive reconnection after repeated failures
- Fail-fast acquisition while the service is unavailable
- Coordinated shutdown that drains in-flight work within a grace period
- A pymilvus-backed connection pool as the default backing service
"""

from .backoff_policy import BackoffPolicy
from .connection_state import (
    ConnectionState,
    LifecycleEvent,
    LifecycleEventType,
    IllegalStateTransitionError,
    can_transition,
)
from .health_monitor import HealthMonitor, HealthCheckResult, HealthStatus
from .connection_pool import ConnectionPool, MilvusConnectionPool
from .connection_manager import ConnectionManager
from .shutdown_coordinator import (
    ShutdownCoordinator,
    ShutdownPhase,
    ShutdownRequest,
    ShutdownReport,
)
from .service_connector import ServiceConnector, ConnectionStatus, ConnectionFeedback
from .connection_exceptions import (
    ConnectionError,
    ConnectionTimeoutError,
    ConnectionLostError,
    ConnectionInitializationError,
    ConnectionClosedError,
    ConnectionPoolExhaustedError,
    MaxRetriesExceededError,
    ServiceUnavailableError,
    ShuttingDownError,
    ManagerClosedError,
    ConnectCancelledError,
)

__all__ = [
    'BackoffPolicy',
    'ConnectionState',
    'LifecycleEvent',
    'LifecycleEventType',
    'IllegalStateTransitionError',
    'can_transition',
    'HealthMonitor',
    'HealthCheckResult',
    'HealthStatus',
    'ConnectionPool',
    'MilvusConnectionPool',
    'ConnectionManager',
    'ShutdownCoordinator',
    'ShutdownPhase',
    'ShutdownRequest',
    'ShutdownReport',
    'ServiceConnector',
    'ConnectionStatus',
    'ConnectionFeedback',
    'ConnectionError',
    'ConnectionTimeoutError',
    'ConnectionLostError',
    'ConnectionInitializationError',
    'ConnectionClosedError',
    'ConnectionPoolExhaustedError',
    'MaxRetriesExceededError',
    'ServiceUnavailableError',
    'ShuttingDownError',
    'ManagerClosedError',
    'ConnectCancelledError',
]

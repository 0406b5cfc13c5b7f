"""
Lifecycle Exceptions

This module defines the base exceptions for the pool lifecycle package
to provide clear error handling and reporting.
"""


class LifecycleError(Exception):
    """Base exception for all pool lifecycle errors"""
    pass


class ConnectionError(LifecycleError):
    """Raised when the connection to the backing service fails"""
    pass


class ConfigurationError(LifecycleError):
    """Raised when configuration is invalid or missing"""
    pass


class OperationTimeoutError(LifecycleError):
    """Raised when an operation times out"""
    pass


class LifecycleMisuseError(LifecycleError):
    """
    Raised when the lifecycle components are used incorrectly.

    These errors indicate programming mistakes (an illegal state transition,
    arming two shutdown coordinators) and are never retried.
    """
    pass

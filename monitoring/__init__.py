"""
Monitoring Module

This module turns connection lifecycle events into operator-facing signals:
- A state-change listener that logs every lifecycle event
- Logging configuration driven by MonitoringSettings
"""

from .event_logger import LifecycleEventLogger, configure_logging

__all__ = [
    'LifecycleEventLogger',
    'configure_logging',
]

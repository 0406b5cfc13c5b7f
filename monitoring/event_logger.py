"""
Lifecycle Event Logging

A state-change listener that writes every lifecycle event to the standard
logging system, and a helper to configure logging from MonitoringSettings.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# keyed by LifecycleEventType value
_EVENT_LEVELS: Dict[str, int] = {
    "connecting": logging.INFO,
    "connected": logging.INFO,
    "reconnected": logging.INFO,
    "disconnected": logging.WARNING,
    "reconnecting": logging.WARNING,
    "health_check_failed": logging.WARNING,
    "shutting_down": logging.INFO,
    "shutdown_complete": logging.INFO,
}


def configure_logging(settings=None) -> None:
    """
    Configure the root logger from a ``MonitoringSettings`` section.

    Args:
        settings: MonitoringSettings; INFO with the default format when None
    """
    level_name = settings.log_level if settings is not None else "INFO"
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    kwargs = {"level": level}
    if settings is not None:
        kwargs["format"] = settings.log_format
    logging.basicConfig(**kwargs)


class LifecycleEventLogger:
    """
    Listener that logs lifecycle events and keeps a bounded history.

    Register it with ``manager.on_state_change(LifecycleEventLogger(manager.name))``.
    """

    def __init__(self, name: str = "backing-service", history_size: int = 100,
                 target: Optional[logging.Logger] = None):
        self.name = name
        self.history_size = history_size
        self._logger = target or logger
        self._history: List[Any] = []

    @property
    def history(self) -> List[Any]:
        return list(self._history)

    def __call__(self, event) -> None:
        self._history.append(event)
        if len(self._history) > self.history_size:
            del self._history[0]

        message = f"[{self.name}] {event.event.value}"
        if event.is_transition:
            message += f" ({event.previous.value} -> {event.current.value})"
        if event.error:
            message += f": {event.error}"
        if event.details:
            message += f" {event.details}"
        self._logger.log(_EVENT_LEVELS.get(event.event.value, logging.INFO), message)

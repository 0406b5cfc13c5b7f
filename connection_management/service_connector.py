"""
Service Connector - Simplified Connection Interface

This module wires the lifecycle components together for an application:
one pool, one ConnectionManager, one ShutdownCoordinator, and lifecycle event
logging. It returns a clear status for each connection attempt instead of
raising, which suits application start-up code.
"""

import uuid
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from config import LifecycleSettings, load_settings
from monitoring import LifecycleEventLogger
from .connection_manager import ConnectionManager
from .connection_pool import ConnectionPool, MilvusConnectionPool
from .shutdown_coordinator import ShutdownCoordinator, ShutdownReport
from .connection_exceptions import (
    ConnectCancelledError,
    ConnectionError,
    MaxRetriesExceededError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """
    Defines the possible outcomes of a connection attempt.
    """
    SUCCESS = "success"
    FAILURE = "failure"
    UNAVAILABLE = "unavailable"


@dataclass
class ConnectionFeedback:
    """
    Detailed feedback on a connection attempt.

    Carries a unique correlation ID for tracing, the status, and a
    descriptive message for logging and debugging.
    """
    connection_id: str
    status: ConnectionStatus
    message: str
    connection_manager: Optional[ConnectionManager] = None


class ServiceConnector:
    """
    High-level connector that owns the lifecycle components for one service.

    Example:
        >>> async with ServiceConnector(settings) as connector:
        ...     manager = connector.connection_manager
        ...     await manager.execute(list_collections)
    """

    def __init__(
        self,
        settings: Optional[LifecycleSettings] = None,
        pool: Optional[ConnectionPool] = None,
        name: str = "backing-service",
        arm_signals: bool = False,
    ):
        """
        Initialize the connector and build its components without connecting.

        Args:
            settings: LifecycleSettings. If None, settings are loaded from the environment.
            pool: Pool to manage. Defaults to a MilvusConnectionPool for ``settings.pool``.
            name: Name of the backing-service target
            arm_signals: Whether ``establish_connection`` registers termination-signal handlers
        """
        self.settings = settings or load_settings()
        self.name = name
        self.arm_signals = arm_signals
        self.connection_manager = ConnectionManager(
            pool if pool is not None else MilvusConnectionPool(self.settings.pool),
            self.settings,
            name=name,
        )
        self.event_logger: Optional[LifecycleEventLogger] = None
        if self.settings.monitoring.log_events:
            self.event_logger = LifecycleEventLogger(name)
            self.connection_manager.on_state_change(self.event_logger)
        self.shutdown_coordinator = ShutdownCoordinator(self.connection_manager)

        logger.info(f"ServiceConnector initialized for '{name}'")

    async def establish_connection(self, timeout: Optional[float] = None) -> ConnectionFeedback:
        """
        Connect and report the outcome.

        Returns:
            ConnectionFeedback with:
            - SUCCESS when the manager is connected
            - UNAVAILABLE when every retry failed or shutdown is in progress
            - FAILURE for anything else (configuration problems, deadlines, ...)
        """
        connection_id = f"conn-{uuid.uuid4()}"
        logger.info(f"[{connection_id}] Attempting to connect to '{self.name}'...")

        if self.arm_signals:
            self.shutdown_coordinator.arm()

        try:
            await self.connection_manager.connect(timeout=timeout)
        except (MaxRetriesExceededError, ServiceUnavailableError) as e:
            logger.warning(f"[{connection_id}] '{self.name}' is unavailable: {e}")
            return ConnectionFeedback(
                connection_id=connection_id,
                status=ConnectionStatus.UNAVAILABLE,
                message=f"Service '{self.name}' is unavailable: {e}",
                connection_manager=self.connection_manager,
            )
        except ConnectCancelledError as e:
            logger.warning(f"[{connection_id}] {e}")
            return ConnectionFeedback(
                connection_id=connection_id,
                status=ConnectionStatus.FAILURE,
                message=str(e),
                connection_manager=self.connection_manager,
            )
        except ConnectionError as e:
            logger.error(f"[{connection_id}] Failed to connect: {e}", exc_info=True)
            return ConnectionFeedback(
                connection_id=connection_id,
                status=ConnectionStatus.FAILURE,
                message=f"Failed to connect: {e}",
                connection_manager=self.connection_manager,
            )
        except Exception as e:
            logger.critical(
                f"[{connection_id}] An unexpected error occurred while connecting: {e}",
                exc_info=True,
            )
            return ConnectionFeedback(
                connection_id=connection_id,
                status=ConnectionStatus.FAILURE,
                message=f"An unexpected error occurred: {e}",
                connection_manager=self.connection_manager,
            )

        logger.info(f"[{connection_id}] Connection to '{self.name}' established successfully.")
        return ConnectionFeedback(
            connection_id=connection_id,
            status=ConnectionStatus.SUCCESS,
            message=f"Connection to '{self.name}' established successfully.",
            connection_manager=self.connection_manager,
        )

    async def close_connection(self, reason: str = "connector closed") -> ShutdownReport:
        """Run the shutdown sequence and release all resources."""
        try:
            return await self.shutdown_coordinator.shutdown(reason)
        finally:
            self.shutdown_coordinator.disarm()

    async def __aenter__(self):
        """Enter context manager, establish connection."""
        feedback = await self.establish_connection()
        if feedback.status != ConnectionStatus.SUCCESS:
            await self.close_connection("connect failed")
            raise ConnectionError(f"Failed to establish connection: {feedback.message}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager, close connection."""
        await self.close_connection()

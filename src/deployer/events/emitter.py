"""Event emitter implementations for deployer observability.

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

The orchestrator only sees the EventEmitter interface, so sinks can be
combined without touching pipeline code.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from src.deployer.events.models import DeploymentEvent, EventType


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Event sinks selectable through configuration."""

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for deployment event emitters.

    emit() is called from the request task. Implementations must not raise
    for sink failures; a broken sink should never fail a deployment.
    """

    @abstractmethod
    async def emit(self, event: DeploymentEvent) -> None:
        pass

    async def close(self) -> None:
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as structured log entries.

    Errors are logged at ERROR level, everything else at INFO.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.DEPLOYMENT_STARTED: logging.INFO,
            EventType.DEPLOYMENT_COMPLETED: logging.INFO,
            EventType.DEPLOYMENT_ERROR: logging.ERROR,
            EventType.INSTALLATION_LINKED: logging.INFO,
        }

    async def emit(self, event: DeploymentEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Deployer event: %s for %s",
            event.event_type.value,
            event.repository or f"installation {event.installation_id}",
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child is called independently; a failing child is logged and the
    remaining children still receive the event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: DeploymentEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "repository": event.repository,
                        "error": str(e),
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: DeploymentEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Create an emitter for the requested sinks.

    Args:
        sink_types: Sinks to enable. None or empty yields a
            LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        A single emitter, or a CompositeEventEmitter when more than one
        sink is requested.
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name)

    emitters: List[EventEmitter] = []
    for sink_type in dict.fromkeys(sink_types):
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name))
        elif sink_type == EventSinkType.METRICS:
            # Imported lazily; metrics.py depends on this module.
            from src.deployer.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())

    if len(emitters) == 1:
        return emitters[0]
    return CompositeEventEmitter(emitters)

"""Deployment event emission and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events (for testing)

Metrics:
- DeployerMetrics: Container for all Prometheus metrics
- generate_metrics_output: Prometheus format output for /metrics
"""

from src.deployer.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.deployer.events.metrics import (
    DeployerMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.deployer.events.models import DeploymentEvent, EventType

__all__ = [
    "DeploymentEvent",
    "EventType",
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "DeployerMetrics",
    "get_metrics",
    "generate_metrics_output",
    "EventSinkType",
    "create_event_emitter",
]

"""Prometheus metrics for the deployer.

Metrics Defined:
- deployer_deployments_total: Counter of finished pipeline runs by result
- deployer_deployments_failed_total: Counter of failed runs by step
- deployer_deployment_duration_seconds: Histogram of successful run time
- deployer_installations_linked_total: Counter of linked installations

MetricsEventEmitter updates them from deployment events; the /metrics
endpoint serves them through generate_metrics_output().
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.deployer.events.emitter import EventEmitter
from src.deployer.events.models import DeploymentEvent, EventType


logger = logging.getLogger(__name__)


# Builds dominate run time; buckets span a few seconds to an hour.
DEFAULT_DURATION_BUCKETS = (
    5.0,
    15.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1200.0,
    1800.0,
    3600.0,
)


class DeployerMetrics:
    """Container for the deployer's Prometheus metrics.

    Pass a custom registry in tests so instances do not collide on the
    default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.deployments_total = Counter(
            "deployer_deployments_total",
            "Total number of pipeline runs that finished",
            labelnames=["repository", "result"],
            registry=self.registry,
        )

        self.deployments_failed_total = Counter(
            "deployer_deployments_failed_total",
            "Total number of pipeline runs that failed",
            labelnames=["repository", "step"],
            registry=self.registry,
        )

        self.deployment_duration_seconds = Histogram(
            "deployer_deployment_duration_seconds",
            "Time spent on successful pipeline runs in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.installations_linked_total = Counter(
            "deployer_installations_linked_total",
            "Total number of GitHub App installations linked",
            registry=self.registry,
        )

    def record_deployment(self, repository: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.deployments_total.labels(repository=repository, result=result).inc()

    def record_failure(self, repository: str, step: str) -> None:
        self.deployments_failed_total.labels(repository=repository, step=step).inc()

    def record_duration(self, repository: str, duration_seconds: float) -> None:
        self.deployment_duration_seconds.labels(repository=repository).observe(
            duration_seconds
        )


_default_metrics: Optional[DeployerMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> DeployerMetrics:
    """Get the metrics for the default registry, or new ones for a custom one."""
    global _default_metrics

    if registry is not None:
        return DeployerMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = DeployerMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Render metrics in Prometheus text format for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - DEPLOYMENT_COMPLETED: success count and duration
    - DEPLOYMENT_ERROR: failure count and per-step failure count
    - INSTALLATION_LINKED: installation count
    """

    def __init__(
        self,
        metrics: Optional[DeployerMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> DeployerMetrics:
        return self._metrics

    async def emit(self, event: DeploymentEvent) -> None:
        try:
            if event.event_type == EventType.DEPLOYMENT_COMPLETED:
                self._metrics.record_deployment(event.repository, success=True)
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_duration(event.repository, float(duration))
            elif event.event_type == EventType.DEPLOYMENT_ERROR:
                self._metrics.record_deployment(event.repository, success=False)
                self._metrics.record_failure(
                    event.repository,
                    event.details.get("step", "unknown"),
                )
            elif event.event_type == EventType.INSTALLATION_LINKED:
                self._metrics.installations_linked_total.inc()
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "repository": event.repository,
                    "error": str(e),
                },
            )

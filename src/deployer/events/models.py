"""Deployment event models for observability.

Events are emitted at the start and end of every pipeline run and when an
installation is linked. They carry the installation and repository they
concern so logs and metrics can be correlated with a webhook delivery.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the deployer.

    Attributes:
        DEPLOYMENT_STARTED: A pipeline run began for one repository.
        DEPLOYMENT_COMPLETED: The manifest was applied to the cluster.
        DEPLOYMENT_ERROR: A pipeline step failed; details name the step.
        INSTALLATION_LINKED: An app installation was linked to its account.
    """

    DEPLOYMENT_STARTED = "deployment_started"
    DEPLOYMENT_COMPLETED = "deployment_completed"
    DEPLOYMENT_ERROR = "deployment_error"
    INSTALLATION_LINKED = "installation_linked"


class DeploymentEvent(BaseModel):
    """Structured event emitted by the deployer.

    Attributes:
        event_type: The category of event.
        installation_id: GitHub App installation the delivery belongs to.
        repository: Full repository name, "{owner}/{repo}"; empty for
            installation-level events.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For DEPLOYMENT_ERROR events:
            - step: Pipeline step that failed (token, clone, extract, ...)
            - error_message: Human-readable error description
            - error_type: Exception class name

        For DEPLOYMENT_COMPLETED events:
            - deployment_id: Id of the stored AppDefinition
            - image: Full path of the built image
            - duration_seconds: Total run time
    """

    event_type: EventType
    installation_id: int
    repository: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging."""
        return {
            "event_type": self.event_type.value,
            "installation_id": self.installation_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }

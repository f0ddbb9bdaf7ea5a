"""Application specification models.

An AppSpec is the deploy-relevant description of a service read from a
repository. Only the fields the deployer itself needs are typed; anything
else in the document is preserved as-is and handed to the cluster applier.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceSpec(BaseModel):
    """The service declared by a repository.

    Attributes:
        name: Service name; also used as the image repository name.
        dockerfile_path: Dockerfile location relative to the repository root.
        port: Container port the service listens on, if any.
        replicas: Desired replica count.
        env: Environment variables passed to the container.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., min_length=1)
    dockerfile_path: str = Field(default="Dockerfile", alias="dockerfilePath")
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    replicas: int = Field(default=1, ge=0)
    env: Dict[str, str] = Field(default_factory=dict)


class AppSpec(BaseModel):
    """Structured application specification extracted from a repository."""

    model_config = ConfigDict(extra="allow")

    service: ServiceSpec

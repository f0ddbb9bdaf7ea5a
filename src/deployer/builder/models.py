"""Image build models."""

from pathlib import Path

from pydantic import BaseModel


class BuildArtifactRequest(BaseModel):
    """Ephemeral request to build one image; never persisted.

    Attributes:
        name: Image repository name, taken from the service name.
        path: Build context directory (the clone root).
        dockerfile: Absolute path to the Dockerfile.
        tag: Image tag.
    """

    name: str
    path: Path
    dockerfile: Path
    tag: str


class Image(BaseModel):
    """Reference to a built and pushed image.

    Attributes:
        registry: Registry host (and optional namespace) the image lives in.
        repository: Image repository name.
        tag: Image version.
    """

    registry: str
    repository: str
    tag: str

    @property
    def image(self) -> str:
        """Short reference in format "{repository}:{tag}"."""
        return f"{self.repository}:{self.tag}"

    @property
    def full_path(self) -> str:
        """Fully-qualified reference in format "{registry}/{repository}:{tag}"."""
        return f"{self.registry}/{self.repository}:{self.tag}"

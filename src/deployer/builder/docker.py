"""Container image builds with the docker CLI.

Builds an image from a cloned repository and pushes it to the configured
registry. Both commands honor a build timeout and are killed when the
deployment run is cancelled.
"""

import logging
from typing import Protocol

from src.deployer.builder.models import BuildArtifactRequest, Image
from src.deployer.process import run_command

logger = logging.getLogger(__name__)


class ImageBuildError(Exception):
    """Raised when an image cannot be built or pushed."""

    def __init__(self, image: str, message: str):
        self.image = image
        super().__init__(f"Failed to build {image}: {message}")


class ImageBuilder(Protocol):
    async def build(self, request: BuildArtifactRequest) -> Image:
        ...


class DockerImageBuilder:
    """Builds and pushes images using the docker CLI.

    Attributes:
        registry: Registry prefix for built images.
        docker_path: Path to the docker executable.
        timeout_seconds: Maximum duration of each docker command.
    """

    def __init__(self, registry: str, docker_path: str = "docker", timeout_seconds: int = 1800):
        self.registry = registry.rstrip("/")
        self.docker_path = docker_path
        self.timeout_seconds = timeout_seconds

    async def build(self, request: BuildArtifactRequest) -> Image:
        """Build and push an image.

        Args:
            request: What to build and how to tag it.

        Returns:
            Image referencing the pushed artifact.

        Raises:
            ImageBuildError: If docker build or docker push fails.
        """
        image = Image(registry=self.registry, repository=request.name, tag=request.tag)

        logger.info(
            "Building image",
            extra={
                "image": image.full_path,
                "context": str(request.path),
                "dockerfile": str(request.dockerfile),
            },
        )

        result = await run_command(
            [
                self.docker_path,
                "build",
                "--tag",
                image.full_path,
                "--file",
                str(request.dockerfile),
                str(request.path),
            ],
            timeout_seconds=self.timeout_seconds,
        )
        if not result.success:
            raise ImageBuildError(image.full_path, result.stderr.strip()[-500:])

        result = await run_command(
            [self.docker_path, "push", image.full_path],
            timeout_seconds=self.timeout_seconds,
        )
        if not result.success:
            raise ImageBuildError(image.full_path, f"push failed: {result.stderr.strip()[-500:]}")

        logger.info("Image pushed", extra={"image": image.full_path})
        return image

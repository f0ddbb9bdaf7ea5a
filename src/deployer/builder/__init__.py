"""Container image building for deployment runs."""

from src.deployer.builder.docker import DockerImageBuilder, ImageBuildError, ImageBuilder
from src.deployer.builder.models import BuildArtifactRequest, Image

__all__ = [
    "BuildArtifactRequest",
    "DockerImageBuilder",
    "Image",
    "ImageBuildError",
    "ImageBuilder",
]

"""Application spec extraction from cloned repositories."""

from src.deployer.extractor.models import AppSpec, ServiceSpec
from src.deployer.extractor.yaml_extractor import (
    ConfigExtractionError,
    ConfigExtractor,
    YamlConfigExtractor,
    extractor_session,
)

__all__ = [
    "AppSpec",
    "ConfigExtractionError",
    "ConfigExtractor",
    "ServiceSpec",
    "YamlConfigExtractor",
    "extractor_session",
]

"""Application config extraction from repository YAML files.

Extraction happens inside a session: callers open a session, extract one
or more configs with it, and close it. Sessions are tracked so a leaked
session shows up in ``open_sessions``.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Protocol, Set

import yaml
from pydantic import ValidationError

from src.deployer.extractor.models import AppSpec

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "app.yaml"


class ConfigExtractionError(Exception):
    """Raised when an application config cannot be extracted."""

    pass


class ConfigExtractor(Protocol):
    def open(self) -> str:
        ...

    def close(self, session_id: str) -> None:
        ...

    async def extract_config(self, session_id: str, path: Path) -> AppSpec:
        ...


class YamlConfigExtractor:
    """Reads an AppSpec from a YAML file at the repository root.

    Attributes:
        config_file: File name looked up in the repository root.
    """

    def __init__(self, config_file: str = DEFAULT_CONFIG_FILE):
        self.config_file = config_file
        self._sessions: Set[str] = set()

    @property
    def open_sessions(self) -> int:
        return len(self._sessions)

    def open(self) -> str:
        session_id = uuid.uuid4().hex
        self._sessions.add(session_id)
        return session_id

    def close(self, session_id: str) -> None:
        self._sessions.discard(session_id)

    async def extract_config(self, session_id: str, path: Path) -> AppSpec:
        """Extract the application spec from a cloned repository.

        Args:
            session_id: An open extractor session.
            path: Root of the cloned repository.

        Returns:
            The parsed AppSpec.

        Raises:
            ConfigExtractionError: If the session is unknown, the file is
                missing, or its content is not a valid spec.
        """
        if session_id not in self._sessions:
            raise ConfigExtractionError(f"Extractor session {session_id} is not open")

        config_path = Path(path) / self.config_file
        document = await asyncio.to_thread(self._load_document, config_path)

        try:
            spec = AppSpec.model_validate(document)
        except ValidationError as e:
            raise ConfigExtractionError(f"Invalid {self.config_file}: {e}") from e

        logger.info(
            "Extracted app config",
            extra={"service": spec.service.name, "config": str(config_path)},
        )
        return spec

    def _load_document(self, config_path: Path) -> Dict[str, Any]:
        if not config_path.is_file():
            raise ConfigExtractionError(f"{self.config_file} not found in repository")
        try:
            document = yaml.safe_load(config_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigExtractionError(f"Failed to parse {self.config_file}: {e}") from e
        if not isinstance(document, dict):
            raise ConfigExtractionError(f"{self.config_file} must contain a mapping")
        return document


@asynccontextmanager
async def extractor_session(extractor: ConfigExtractor) -> AsyncIterator[str]:
    """Hold an extractor session open for the duration of the block.

    The session is closed exactly once on success, error or cancellation.
    """
    session_id = extractor.open()
    try:
        yield session_id
    finally:
        extractor.close(session_id)

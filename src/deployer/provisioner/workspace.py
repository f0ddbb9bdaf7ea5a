"""Repository working directories for deployment runs.

Clones a repository into a fresh directory under a configurable base path
and guarantees the directory is removed when the deployment run ends,
whatever the outcome.

Private repositories are cloned with an installation access token embedded
in the HTTPS URL as the ``x-access-token`` user; public ones anonymously.
"""

import asyncio
import logging
import shutil
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Protocol
from urllib.parse import urlsplit, urlunsplit

from src.deployer.process import kill_process_group

logger = logging.getLogger(__name__)

WORKSPACE_DIR_PERMISSIONS = 0o755
WORKSPACE_CLONE_TIMEOUT_SECONDS = 300


@dataclass
class WorkspaceConfig:
    """Configuration for repository clones.

    Attributes:
        base_path: Root directory clones are created under.
        clone_timeout_seconds: Maximum duration of a single clone.
    """

    base_path: Path
    clone_timeout_seconds: float = WORKSPACE_CLONE_TIMEOUT_SECONDS


class WorkspaceProvisionError(Exception):
    """Raised when a working directory cannot be prepared."""

    pass


class GitCloneError(WorkspaceProvisionError):
    """Raised when a Git clone operation fails."""

    def __init__(self, clone_url: str, message: str):
        self.clone_url = clone_url
        super().__init__(f"Failed to clone {clone_url}: {message}")


class RepositoryCloner(Protocol):
    """Source control operations the deployment pipeline depends on."""

    async def clone(
        self, url: str, installation_id: int, repo_id: int, token: str
    ) -> Path:
        ...

    def remove(self, path: Path) -> None:
        ...


def authorized_clone_url(url: str, token: str) -> str:
    """Embed an installation token into an HTTPS clone URL.

    Args:
        url: Clone URL such as "https://github.com/owner/repo.git".
        token: Installation access token; empty for public repositories.

    Returns:
        The URL unchanged when token is empty, otherwise the URL with
        "x-access-token:{token}@" credentials.
    """
    if not token:
        return url
    parts = urlsplit(url)
    netloc = f"x-access-token:{token}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class GitCloner:
    """Clones repositories with the git CLI.

    Attributes:
        config: Workspace configuration (base path, clone timeout).
        git_path: Path to the git executable.
    """

    def __init__(self, config: WorkspaceConfig, git_path: str = "git"):
        self.config = config
        self.git_path = git_path

    async def clone(
        self, url: str, installation_id: int, repo_id: int, token: str
    ) -> Path:
        """Clone a repository into a new working directory.

        Args:
            url: HTTPS clone URL of the repository.
            installation_id: Installation the repository belongs to.
            repo_id: GitHub repository id.
            token: Installation access token, empty for public repositories.

        Returns:
            Path of the cloned working directory.

        Raises:
            WorkspaceProvisionError: If the base directory cannot be created.
            GitCloneError: If git fails, times out or cannot be started.
        """
        target_path = self._build_workspace_path(installation_id, repo_id)
        self._create_base_directory()

        logger.info(
            "Cloning repository",
            extra={
                "clone_url": url,
                "installation_id": installation_id,
                "repo_id": repo_id,
                "target": str(target_path),
            },
        )

        try:
            await self._run_git_clone(url, token, target_path)
        except BaseException:
            self.remove(target_path)
            raise

        target_path.chmod(WORKSPACE_DIR_PERMISSIONS)
        return target_path

    def remove(self, path: Path) -> None:
        """Remove a working directory and all its contents."""
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.info("Removed working directory", extra={"workspace": str(path)})
        except OSError:
            logger.exception(
                "Failed to remove working directory",
                extra={"workspace": str(path)},
            )

    def _build_workspace_path(self, installation_id: int, repo_id: int) -> Path:
        timestamp_suffix = str(time.time_ns())
        return self.config.base_path / f"{installation_id}_{repo_id}_{timestamp_suffix}"

    def _create_base_directory(self) -> None:
        try:
            self.config.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceProvisionError(
                f"Failed to create workspace base at {self.config.base_path}: {exc}"
            ) from exc

    async def _run_git_clone(self, clone_url: str, token: str, target_path: Path) -> None:
        """Run git clone as an async subprocess.

        git runs in its own session. When the clone times out or the calling
        task is cancelled, the whole process group (transport helpers
        included) is killed and reaped before the caller removes the target.
        Errors name the unauthorized URL only.

        Raises:
            GitCloneError: If the clone operation fails or times out.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_path,
                "clone",
                "--depth",
                "1",
                authorized_clone_url(clone_url, token),
                str(target_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise GitCloneError(clone_url, f"Failed to execute git: {exc}") from exc

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.clone_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await kill_process_group(process)
            raise GitCloneError(
                clone_url,
                f"Clone timed out after {self.config.clone_timeout_seconds}s",
            ) from exc
        except asyncio.CancelledError:
            await kill_process_group(process)
            raise

        if process.returncode != 0:
            error_output = stderr.decode(errors="replace").strip()
            if token:
                error_output = error_output.replace(token, "***")
            raise GitCloneError(clone_url, error_output)


@asynccontextmanager
async def cloned_repository(
    cloner: RepositoryCloner,
    url: str,
    installation_id: int,
    repo_id: int,
    token: str,
) -> AsyncIterator[Path]:
    """Clone a repository for the duration of the block.

    The working directory is removed exactly once when the block exits,
    on success, error or cancellation. Nothing is removed when the clone
    itself fails.
    """
    path = await cloner.clone(url, installation_id, repo_id, token)
    try:
        yield path
    finally:
        cloner.remove(path)

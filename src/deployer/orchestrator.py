"""Deployment orchestrator connecting webhook deliveries to the cluster.

Receives parsed webhook events and drives every resolved repository
through the pipeline:
token → clone → extract → build → persist → apply.

Installation deliveries first link the installation to the account that
installed the app. Repositories are then processed strictly in order; a
failure in one repository is recorded and the next one still runs. The
cloned directory and the extractor session are scoped with async context
managers so they are released on success, failure and cancellation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from src.deployer.builder.docker import ImageBuilder
from src.deployer.builder.models import BuildArtifactRequest
from src.deployer.cluster.kube import ClusterApplier
from src.deployer.errors import DeployerError, ErrorCode, unknown_error
from src.deployer.events.emitter import EventEmitter
from src.deployer.events.models import DeploymentEvent, EventType
from src.deployer.extractor.yaml_extractor import ConfigExtractor, extractor_session
from src.deployer.provisioner.workspace import RepositoryCloner, cloned_repository
from src.deployer.store.models import AppDefinition
from src.deployer.store.repository import DeploymentStore
from src.deployer.webhook.models import (
    GithubWebhookEvent,
    InstalledRepository,
    WebhookAction,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_TAG = "latest"


class InstallationTokenIssuer(Protocol):
    async def issue_installation_token(self, installation_id: int) -> str:
        ...


@dataclass
class DeploymentResult:
    """Outcome of one pipeline run.

    Attributes:
        repository_id: GitHub id of the repository.
        full_name: "{owner}/{repo}".
        success: Whether the manifest was applied.
        deployment_id: Id of the stored AppDefinition on success.
        step: Step that failed, empty on success.
        error: Failure message, empty on success.
    """

    repository_id: int
    full_name: str
    success: bool
    deployment_id: str = ""
    step: str = ""
    error: str = ""


@dataclass
class WebhookResult:
    """Outcome of handling one webhook delivery."""

    action: str
    results: List[DeploymentResult] = field(default_factory=list)

    @property
    def failures(self) -> List[DeploymentResult]:
        return [r for r in self.results if not r.success]

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def to_error(self) -> Optional[DeployerError]:
        """Aggregate failed runs into a single client-visible error."""
        failures = self.failures
        if not failures:
            return None
        return DeployerError(
            ErrorCode.UNKNOWN,
            failures[0].error,
            details={
                "failures": [
                    {
                        "repository": f.full_name,
                        "step": f.step,
                        "message": f.error,
                    }
                    for f in failures
                ]
            },
        )


class DeploymentOrchestrator:
    """Drives webhook deliveries through the deployment pipeline.

    Attributes:
        store: Persistence for installations and deployments.
        github_client: Issues installation tokens for private repositories.
        cloner: Clones repositories into scoped working directories.
        extractor: Reads the application spec from a clone.
        builder: Builds and pushes the application image.
        cluster: Defines and applies the workload manifest.
        event_emitter: Emits deployment events for observability.
        kube_config: Kubeconfig handed to the cluster applier.
    """

    def __init__(
        self,
        store: DeploymentStore,
        github_client: InstallationTokenIssuer,
        cloner: RepositoryCloner,
        extractor: ConfigExtractor,
        builder: ImageBuilder,
        cluster: ClusterApplier,
        event_emitter: EventEmitter,
        kube_config: Optional[str] = None,
        image_tag: str = DEFAULT_IMAGE_TAG,
    ):
        self.store = store
        self.github_client = github_client
        self.cloner = cloner
        self.extractor = extractor
        self.builder = builder
        self.cluster = cluster
        self.event_emitter = event_emitter
        self.kube_config = kube_config
        self.image_tag = image_tag

    async def handle_webhook(self, event: GithubWebhookEvent) -> WebhookResult:
        """Handle one webhook delivery.

        Args:
            event: Parsed GitHub App webhook event.

        Returns:
            Per-repository results; empty when the delivery resolves to no
            repositories.

        Raises:
            DeployerError: UNKNOWN if linking a new installation fails, in
                which case no repository is processed.
        """
        installation_id = event.installation.id
        repos = event.repos_to_process()

        logger.info(
            "Handling webhook",
            extra={
                "action": event.action,
                "installation_id": installation_id,
                "repositories": len(repos),
            },
        )

        if event.kind == WebhookAction.INSTALL_CREATED:
            await self.link_installation(event)

        result = WebhookResult(action=event.action)
        for repo in repos:
            result.results.append(await self.deploy_repository(event, repo))

        if result.failed:
            logger.warning(
                "Webhook finished with failures",
                extra={
                    "installation_id": installation_id,
                    "failed": len(result.failures),
                    "total": len(result.results),
                },
            )
        return result

    async def link_installation(self, event: GithubWebhookEvent) -> None:
        installation_id = event.installation.id
        try:
            await self.store.link_github_installation(
                installation_id,
                event.sender.login,
                event.repositories,
            )
        except Exception as exc:
            logger.exception(
                "Failed to link GitHub installation",
                extra={"installation_id": installation_id, "sender": event.sender.login},
            )
            raise unknown_error(exc) from exc

        await self._emit(
            EventType.INSTALLATION_LINKED,
            installation_id,
            "",
            {"account_login": event.sender.login, "repositories": len(event.repositories)},
        )

    async def deploy_repository(
        self,
        event: GithubWebhookEvent,
        repo: InstalledRepository,
    ) -> DeploymentResult:
        """Run the pipeline for one repository.

        Failures are caught here and returned as a failed result.
        Cancellation is not caught.
        """
        installation_id = event.installation.id
        started = time.monotonic()
        step = "token"

        await self._emit(
            EventType.DEPLOYMENT_STARTED,
            installation_id,
            repo.full_name,
            {"repository_id": repo.id, "sha": event.after, "branch": repo.branch},
        )

        try:
            token = ""
            if repo.private:
                token = await self.github_client.issue_installation_token(installation_id)

            step = "clone"
            async with cloned_repository(
                self.cloner, repo.clone_url, installation_id, repo.id, token
            ) as repo_dir:
                step = "extract"
                async with extractor_session(self.extractor) as session_id:
                    spec = await self.extractor.extract_config(session_id, repo_dir)

                step = "build"
                image = await self.builder.build(
                    BuildArtifactRequest(
                        name=spec.service.name,
                        path=repo_dir,
                        dockerfile=repo_dir / spec.service.dockerfile_path,
                        tag=self.image_tag,
                    )
                )

                step = "persist"
                app_def = await self.store.save_deployment(
                    AppDefinition(
                        app_id=str(repo.id),
                        app=spec,
                        tag=image.tag,
                        sha=event.after,
                        user=event.sender.login,
                    )
                )

                step = "apply"
                manifest = self.cluster.define_app(app_def.id, spec, image)
                await self.cluster.apply(self.kube_config, manifest)
        except Exception as exc:
            error = unknown_error(exc)
            logger.error(
                "Deployment failed",
                extra={
                    "installation_id": installation_id,
                    "repository_id": repo.id,
                    "repository": repo.full_name,
                    "step": step,
                    "error": error.message,
                },
            )
            await self._emit(
                EventType.DEPLOYMENT_ERROR,
                installation_id,
                repo.full_name,
                {
                    "step": step,
                    "error_message": error.message,
                    "error_type": type(exc).__name__,
                },
            )
            return DeploymentResult(
                repository_id=repo.id,
                full_name=repo.full_name,
                success=False,
                step=step,
                error=error.message,
            )

        duration = time.monotonic() - started
        logger.info(
            "Deployment completed",
            extra={
                "installation_id": installation_id,
                "repository": repo.full_name,
                "deployment_id": app_def.id,
                "image": image.full_path,
            },
        )
        await self._emit(
            EventType.DEPLOYMENT_COMPLETED,
            installation_id,
            repo.full_name,
            {
                "deployment_id": app_def.id,
                "image": image.full_path,
                "duration_seconds": duration,
            },
        )
        return DeploymentResult(
            repository_id=repo.id,
            full_name=repo.full_name,
            success=True,
            deployment_id=app_def.id,
        )

    async def _emit(self, event_type, installation_id, repository, details) -> None:
        try:
            await self.event_emitter.emit(
                DeploymentEvent(
                    event_type=event_type,
                    installation_id=installation_id,
                    repository=repository,
                    details=details,
                )
            )
        except Exception:
            logger.warning(
                "Failed to emit %s event",
                event_type.value,
                extra={"repository": repository},
            )

"""FastAPI application entry point for the deployer.

This module provides the HTTP surface of the deployer control plane. It
receives GitHub App webhook deliveries, runs the GitHub OAuth flow that
links a user's GitHub account, and handles identity provider logins.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from .auth.idp import IdentityProviderClient
from .auth.login import LoginService
from .auth.models import LoginRequest, LoginResponse
from .auth.oauth import GithubOAuthController
from .auth.profile import SESSION_COOKIE, resolve_profile, session_id_from_request
from .builder.docker import DockerImageBuilder
from .cluster.kube import KubectlApplier
from .config import DeployerSettings, get_settings
from .errors import DeployerError, ErrorCode
from .events.emitter import CompositeEventEmitter, LoggingEventEmitter
from .events.metrics import MetricsEventEmitter, generate_metrics_output
from .extractor.yaml_extractor import YamlConfigExtractor
from .github.client import GitHubAppClient
from .orchestrator import DeploymentOrchestrator
from .provisioner.workspace import GitCloner, WorkspaceConfig
from .store.memory import InMemoryStore
from .store.models import User
from .store.repository import PostgresStore
from .webhook.handler import WebhookHandler, create_webhook_handler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: DeployerSettings
store: Optional[Union[PostgresStore, InMemoryStore]] = None
orchestrator: Optional[DeploymentOrchestrator] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubAppClient] = None
oauth_controller: Optional[GithubOAuthController] = None
idp_client: Optional[IdentityProviderClient] = None
login_service: Optional[LoginService] = None
webhook_timeout_seconds: float = 3600


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: DeployerSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Deployer configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub App ID: {settings.github_app_id}")
    logger.info("  GitHub App Private Key: ****")
    logger.info(f"  GitHub Client ID: {settings.github_client_id}")
    logger.info(f"  GitHub Client Secret: {_redact_secret(settings.github_client_secret)}")
    logger.info(f"  GitHub Redirect URI: {settings.github_redirect_uri}")
    logger.info(f"  Auth State TTL Seconds: {settings.auth_state_ttl_seconds}")
    logger.info(f"  Identity Provider URL: {settings.idp_base_url}")
    logger.info(f"  Identity Provider Token: {_redact_secret(settings.idp_token)}")
    logger.info(f"  Workspace Base Path: {settings.workspace_base_path}")
    logger.info(f"  Docker Registry: {settings.docker_registry}")
    logger.info(f"  Kube Config Path: {settings.kube_config_path or '(default)'}")
    logger.info(f"  Kube Namespace: {settings.kube_namespace}")
    logger.info(f"  Webhook Timeout Seconds: {settings.webhook_timeout_seconds}")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def _create_store(cfg: DeployerSettings) -> Union[PostgresStore, InMemoryStore]:
    if cfg.database_url.startswith("memory://"):
        logger.warning("Using in-memory store; data will not survive a restart")
        return InMemoryStore(auth_state_ttl_seconds=cfg.auth_state_ttl_seconds)
    return PostgresStore(
        cfg.database_url,
        auth_state_ttl_seconds=cfg.auth_state_ttl_seconds,
    )


def _build_orchestrator(
    cfg: DeployerSettings,
    deployment_store: Union[PostgresStore, InMemoryStore],
    gh_client: GitHubAppClient,
) -> DeploymentOrchestrator:
    """Wire the pipeline collaborators into a DeploymentOrchestrator."""
    cloner = GitCloner(
        WorkspaceConfig(
            base_path=Path(cfg.workspace_base_path),
            clone_timeout_seconds=cfg.clone_timeout_seconds,
        )
    )
    builder = DockerImageBuilder(
        registry=cfg.docker_registry,
        docker_path=cfg.docker_path,
        timeout_seconds=cfg.build_timeout_seconds,
    )
    cluster = KubectlApplier(
        namespace=cfg.kube_namespace,
        kubectl_path=cfg.kubectl_path,
        timeout_seconds=cfg.apply_timeout_seconds,
    )
    event_emitter = CompositeEventEmitter(
        [LoggingEventEmitter(), MetricsEventEmitter()]
    )

    return DeploymentOrchestrator(
        store=deployment_store,
        github_client=gh_client,
        cloner=cloner,
        extractor=YamlConfigExtractor(cfg.extractor_config_file),
        builder=builder,
        cluster=cluster,
        event_emitter=event_emitter,
        kube_config=cfg.kube_config_path,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global settings, store, orchestrator, webhook_handler, github_client
    global oauth_controller, idp_client, login_service, webhook_timeout_seconds

    logger.info("Deployer starting up...")

    settings = get_settings()
    _log_configuration(settings)

    store = _create_store(settings)
    if isinstance(store, PostgresStore):
        await store.connect()

    webhook_handler = create_webhook_handler()
    github_client = GitHubAppClient(
        app_id=settings.github_app_id,
        private_key=settings.github_app_private_key,
        base_url=settings.github_base_url,
    )
    orchestrator = _build_orchestrator(settings, store, github_client)
    oauth_controller = GithubOAuthController(
        store=store,
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        redirect_uri=settings.github_redirect_uri,
        oauth_base_url=settings.github_oauth_base_url,
    )
    idp_client = IdentityProviderClient(
        base_url=settings.idp_base_url,
        token=settings.idp_token,
        success_url=settings.login_success_url,
        failure_url=settings.login_failure_url,
    )
    login_service = LoginService(idp=idp_client, store=store)
    webhook_timeout_seconds = settings.webhook_timeout_seconds

    logger.info("Deployer started successfully")

    yield

    logger.info("Deployer shutting down...")

    if github_client is not None:
        await github_client.close()
    if oauth_controller is not None:
        await oauth_controller.close()
    if idp_client is not None:
        await idp_client.close()
    if isinstance(store, PostgresStore):
        await store.disconnect()

    logger.info("Deployer shutdown complete")


app = FastAPI(
    title="Deployer",
    description="GitHub-triggered deployment control plane",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(DeployerError)
async def deployer_error_handler(request: Request, exc: DeployerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _not_initialized() -> DeployerError:
    logger.error("Deployer not initialized")
    return DeployerError(ErrorCode.UNKNOWN, "Deployer not initialized", status_code=503)


async def require_profile(request: Request) -> User:
    """Resolve the authenticated user from the request session."""
    if store is None:
        raise _not_initialized()
    return await resolve_profile(store, session_id_from_request(request))


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness probe endpoint.

    Reports 503 while the store or the GitHub App client is not initialized
    or not reachable.
    """
    database_status = "unavailable"
    if store is not None:
        database_status = "healthy" if await store.health_check() else "unhealthy"

    github_status = "unavailable"
    if github_client is not None:
        github_status = "healthy" if await github_client.health_check() else "unhealthy"

    dependencies = {"database": database_status, "github": github_status}
    ready_ = all(status == "healthy" for status in dependencies.values())
    return JSONResponse(
        status_code=200 if ready_ else 503,
        content={
            "status": "ready" if ready_ else "not_ready",
            "dependencies": dependencies,
        },
    )


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_metrics_output().decode("utf-8"))


@app.post("/webhooks/github")
async def github_webhook(request: Request):
    """GitHub App webhook receiver.

    Signature validation happens in front of this service. The delivery is
    processed inside the request, bounded by the webhook timeout.
    """
    if webhook_handler is None or orchestrator is None:
        raise _not_initialized()

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    event = webhook_handler.parse_event(payload)
    if event is None:
        raise DeployerError(
            ErrorCode.INVALID_PAYLOAD,
            "Invalid webhook payload",
            status_code=400,
        )

    try:
        result = await asyncio.wait_for(
            orchestrator.handle_webhook(event),
            timeout=webhook_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error(
            "Webhook processing timed out",
            extra={
                "installation_id": event.installation.id,
                "timeout_seconds": webhook_timeout_seconds,
            },
        )
        raise DeployerError(ErrorCode.UNKNOWN, "Webhook processing timed out")

    error = result.to_error()
    if error is not None:
        raise error

    return {
        "status": "ok",
        "results": [
            {
                "repository": r.full_name,
                "deployment_id": r.deployment_id,
            }
            for r in result.results
        ],
    }


@app.get("/auth/github")
async def github_auth(user: User = Depends(require_profile)):
    """Start linking the signed-in user's GitHub account."""
    if oauth_controller is None:
        raise _not_initialized()
    url = await oauth_controller.start(user.email)
    return RedirectResponse(url, status_code=307)


@app.get("/auth/github/callback")
async def github_auth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
):
    """OAuth callback from GitHub."""
    if oauth_controller is None:
        raise _not_initialized()
    await oauth_controller.handle_callback(code, state)
    return {"status": "ok"}


@app.post("/auth/login")
async def login(body: LoginRequest):
    """Start a login with the given identity provider."""
    if login_service is None:
        raise _not_initialized()
    url = await login_service.start_login(body.provider)
    return RedirectResponse(url, status_code=301)


@app.get("/auth/login/success")
async def login_success(intent: str = Query("", alias="id"), token: str = ""):
    """Identity provider redirect after a successful login."""
    if login_service is None:
        raise _not_initialized()
    session = await login_service.handle_login_success(intent, token)
    response = JSONResponse(
        content=LoginResponse(session_id=session.id, user_id=session.user_id).model_dump()
    )
    response.set_cookie(
        SESSION_COOKIE,
        session.id,
        httponly=True,
        secure=True,
        samesite="lax",
    )
    return response


@app.get("/auth/login/fail")
async def login_fail(request: Request):
    """Identity provider redirect after a failed login."""
    logger.error("Login failed", extra={"query": request.url.query})
    raise DeployerError(ErrorCode.LOGIN_FAILED, "Login failed", status_code=400)


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.deployer.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )

"""GitHub webhook handling for the deployer.

This module receives and parses GitHub App webhook deliveries:
- installation.created - App installed with an initial repository set
- installation_repositories.added - Repositories connected
- push - Commits pushed; only the primary branch is deployed
"""

from .handler import WebhookHandler, create_webhook_handler
from .models import (
    GithubWebhookEvent,
    InstalledRepository,
    WebhookAction,
)

__all__ = [
    "GithubWebhookEvent",
    "InstalledRepository",
    "WebhookAction",
    "WebhookHandler",
    "create_webhook_handler",
]

"""GitHub webhook handler for the deployer.

This module provides the WebhookHandler class for parsing GitHub App
webhook deliveries into GithubWebhookEvent objects. Signature validation is
expected to happen in front of this service.

GitHub Webhook Payload Structure (installation event):
{
  "action": "created",
  "installation": {"id": 42, "account": {"id": 7, "type": "User", "login": "alice"}},
  "repositories": [{"id": 1, "full_name": "alice/app", "private": false}],
  "sender": {"login": "alice"}
}

GitHub Webhook Payload Structure (push event):
{
  "ref": "refs/heads/main",
  "after": "abc123",
  "installation": {"id": 42},
  "repository": {"id": 1, "full_name": "alice/app", "private": false},
  "sender": {"login": "alice"}
}
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .models import GithubWebhookEvent

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Handler for parsing GitHub webhook deliveries.

    Signatures are verified in front of the service; the handler only
    shapes and validates the payload.
    """

    def parse_event(self, payload: Dict[str, Any]) -> Optional[GithubWebhookEvent]:
        """Parse a GitHub webhook delivery.

        Args:
            payload: The raw webhook payload as a dictionary.

        Returns:
            GithubWebhookEvent if parsing succeeds, None for payloads that
            are not JSON objects or do not match the expected structure.
            An unrecognized action is not a parse failure.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        try:
            event = GithubWebhookEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "Malformed webhook payload",
                extra={"errors": e.error_count()},
            )
            return None

        logger.info(
            "Parsed webhook event",
            extra={
                "action": event.kind.name,
                "installation_id": event.installation.id,
                "sender": event.sender.login,
                "ref": event.ref,
            },
        )
        return event


def create_webhook_handler() -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler()

"""Unit tests for webhook payload parsing."""

import pytest

from src.deployer.webhook import (
    GithubWebhookEvent,
    InstalledRepository,
    WebhookAction,
    create_webhook_handler,
)


@pytest.fixture
def handler():
    return create_webhook_handler()


def test_push_to_tag_is_ignored(handler):
    event = handler.parse_event(
        {
            "ref": "refs/tags/v1.0.0",
            "after": "abc",
            "installation": {"id": 1},
            "repository": {"id": 10, "full_name": "acme/api"},
        }
    )

    assert event.kind is WebhookAction.PUSH
    assert not event.is_primary_branch_push
    assert event.repos_to_process() == []


def test_push_to_feature_branch_named_like_main_is_ignored(handler):
    event = handler.parse_event(
        {
            "ref": "refs/heads/feature/main",
            "installation": {"id": 1},
            "repository": {"id": 10, "full_name": "acme/api"},
        }
    )

    assert event.repos_to_process() == []


def test_removed_action_is_parsed_but_not_processed(handler):
    event = handler.parse_event(
        {
            "action": "removed",
            "installation": {"id": 1},
            "repositories_removed": [{"id": 10, "full_name": "acme/api", "private": True}],
        }
    )

    assert event.kind is WebhookAction.REPO_REMOVED
    assert len(event.repositories_removed) == 1
    assert event.repos_to_process() == []


def test_unknown_action_maps_to_none(handler):
    event = handler.parse_event({"action": "suspend", "installation": {"id": 1}})

    assert event.kind is WebhookAction.NONE
    assert event.repos_to_process() == []


def test_literal_none_action_maps_to_none(handler):
    event = handler.parse_event({"action": "none", "installation": {"id": 1}})

    assert event.kind is WebhookAction.NONE


def test_unknown_keys_are_ignored(handler):
    event = handler.parse_event(
        {
            "action": "created",
            "installation": {"id": 5, "app_slug": "deployer"},
            "repositories": [{"id": 1, "full_name": "acme/api", "node_id": "R_1"}],
            "requester": None,
        }
    )

    assert event is not None
    assert event.installation.id == 5
    assert event.repos_to_process()[0].full_name == "acme/api"


def test_wrongly_typed_fields_are_rejected(handler):
    assert handler.parse_event({"installation": {"id": "not-a-number"}}) is None
    assert handler.parse_event({"repositories": [{"id": 1}]}) is None


def test_missing_fields_default_to_zero_values(handler):
    event = handler.parse_event({})

    assert event.action == ""
    assert event.after == ""
    assert event.installation.id == 0
    assert event.sender.login == ""
    assert event.repos_to_process() == []


def test_created_returns_a_copy_of_repositories(handler):
    event = handler.parse_event(
        {"action": "created", "repositories": [{"id": 1, "full_name": "acme/api"}]}
    )

    resolved = event.repos_to_process()
    resolved.clear()

    assert len(event.repositories) == 1


def test_clone_url_is_derived_from_full_name():
    repo = InstalledRepository(id=1, full_name="acme/api")

    assert repo.clone_url == "https://github.com/acme/api.git"


def test_push_ignores_embedded_clone_url():
    event = GithubWebhookEvent.model_validate(
        {
            "ref": "refs/heads/main",
            "repository": {
                "id": 3,
                "full_name": "acme/web",
                "clone_url": "https://mirror.example.com/acme/web.git",
            },
        }
    )

    [repo] = event.repos_to_process()
    assert repo.clone_url == "https://github.com/acme/web.git"
    assert repo.branch == "main"

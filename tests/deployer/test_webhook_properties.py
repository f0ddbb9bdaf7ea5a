"""Property-based tests for webhook parsing and repository resolution.

Uses Hypothesis to check that repos_to_process() follows the action rules
for arbitrary installation and push payloads.
"""

from hypothesis import given, settings, strategies as st

from src.deployer.webhook import GithubWebhookEvent, WebhookAction, WebhookHandler


repo_names = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789-_"),
    min_size=1,
    max_size=30,
)


@st.composite
def repository_payload(draw: st.DrawFn) -> dict:
    owner = draw(repo_names)
    name = draw(repo_names)
    return {
        "id": draw(st.integers(min_value=1, max_value=2**40)),
        "full_name": f"{owner}/{name}",
        "private": draw(st.booleans()),
    }


repository_lists = st.lists(repository_payload(), max_size=8)

other_actions = st.text(max_size=20).filter(lambda a: a not in {"created", "added", ""})


def _installation_payload(action: str, repos: list, added: list, removed: list) -> dict:
    return {
        "action": action,
        "installation": {"id": 42, "account": {"id": 7, "type": "User", "login": "alice"}},
        "sender": {"login": "alice"},
        "repositories": repos,
        "repositories_added": added,
        "repositories_removed": removed,
    }


def _push_payload(ref: str, repo: dict, after: str = "abc123") -> dict:
    return {
        "ref": ref,
        "after": after,
        "installation": {"id": 42},
        "sender": {"login": "alice"},
        "repository": {**repo, "clone_url": f"https://github.com/{repo['full_name']}.git"},
    }


handler = WebhookHandler()


@settings(max_examples=100)
@given(repos=repository_lists, added=repository_lists, removed=repository_lists)
def test_created_resolves_installation_repositories_in_order(repos, added, removed):
    event = handler.parse_event(_installation_payload("created", repos, added, removed))

    assert event is not None
    resolved = event.repos_to_process()
    assert [(r.id, r.full_name, r.private) for r in resolved] == [
        (r["id"], r["full_name"], r["private"]) for r in repos
    ]
    assert all(r.branch == "" for r in resolved)


@settings(max_examples=100)
@given(repos=repository_lists, added=repository_lists, removed=repository_lists)
def test_added_resolves_only_added_repositories(repos, added, removed):
    event = handler.parse_event(_installation_payload("added", repos, added, removed))

    assert event is not None
    assert [r.id for r in event.repos_to_process()] == [r["id"] for r in added]


@settings(max_examples=100)
@given(
    action=other_actions,
    repos=repository_lists,
    added=repository_lists,
    removed=repository_lists,
)
def test_other_actions_resolve_nothing(action, repos, added, removed):
    event = handler.parse_event(_installation_payload(action, repos, added, removed))

    assert event is not None
    assert event.repos_to_process() == []


@settings(max_examples=100)
@given(repo=repository_payload(), branch=st.sampled_from(["main", "master"]))
def test_primary_branch_push_resolves_one_repository(repo, branch):
    event = handler.parse_event(_push_payload(f"refs/heads/{branch}", repo))

    assert event is not None
    assert event.kind is WebhookAction.PUSH
    resolved = event.repos_to_process()
    assert len(resolved) == 1
    assert resolved[0].id == repo["id"]
    assert resolved[0].full_name == repo["full_name"]
    assert resolved[0].private == repo["private"]
    assert resolved[0].branch == branch


@settings(max_examples=100)
@given(repo=repository_payload(), branch=repo_names)
def test_other_branch_push_resolves_nothing(repo, branch):
    ref = f"refs/heads/{branch}"
    event = handler.parse_event(_push_payload(ref, repo))

    assert event is not None
    if branch in ("main", "master"):
        assert len(event.repos_to_process()) == 1
    else:
        assert event.repos_to_process() == []


@settings(max_examples=50)
@given(repos=repository_lists)
def test_resolution_is_deterministic(repos):
    event = GithubWebhookEvent.model_validate(
        _installation_payload("created", repos, [], [])
    )

    assert event.repos_to_process() == event.repos_to_process()


@settings(max_examples=50)
@given(
    payload=st.one_of(
        st.none(),
        st.integers(),
        st.text(),
        st.lists(st.integers(), max_size=3),
    )
)
def test_non_object_payloads_are_rejected(payload):
    assert handler.parse_event(payload) is None

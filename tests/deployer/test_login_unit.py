"""Unit tests for identity provider login, sessions and profile resolution."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.deployer.auth.idp import IdentityProviderClient, IdentityProviderError
from src.deployer.auth.login import LoginService
from src.deployer.auth.profile import resolve_profile
from src.deployer.errors import DeployerError, ErrorCode
from src.deployer.store.memory import InMemoryStore
from src.deployer.store.models import UserInfo


def run_async(coro):
    return asyncio.run(coro)


ALICE = UserInfo(id="idp-1", email="alice@example.com", display_name="Alice")


@pytest.fixture
def idp():
    idp = AsyncMock()
    idp.start_intent.return_value = "https://idp.example.com/authorize?intent=1"
    idp.get_idp_user.return_value = ALICE
    return idp


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(idp, store):
    return LoginService(idp=idp, store=store)


# ---------------------------------------------------------------------------
# start_login
# ---------------------------------------------------------------------------


def test_start_login_returns_provider_url(service, idp):
    url = run_async(service.start_login("github"))

    assert url == "https://idp.example.com/authorize?intent=1"
    idp.start_intent.assert_awaited_once_with("github")


def test_start_login_failure_maps_to_get_auth_url(service, idp):
    idp.start_intent.side_effect = IdentityProviderError("down")

    with pytest.raises(DeployerError) as exc_info:
        run_async(service.start_login("github"))

    assert exc_info.value.code is ErrorCode.GET_AUTH_URL


# ---------------------------------------------------------------------------
# handle_login_success
# ---------------------------------------------------------------------------


def test_first_login_creates_user_and_session(service, store, idp):
    session = run_async(service.handle_login_success("intent-1", "tok-1"))

    idp.get_idp_user.assert_awaited_once_with("intent-1", "tok-1")
    [user] = store.users.values()
    assert user.email == "alice@example.com"
    assert user.display_name == "Alice"
    assert session.user_id == user.id
    assert session.intent == "intent-1"
    assert session.token == "tok-1"
    assert store.sessions[session.id] == session


def test_returning_user_is_not_recreated(service, store):
    existing = run_async(store.create_user(ALICE))

    session = run_async(service.handle_login_success("intent-2", "tok-2"))

    assert list(store.users) == [existing.id]
    assert session.user_id == existing.id


def test_each_login_opens_a_new_session(service, store):
    first = run_async(service.handle_login_success("intent-1", "tok-1"))
    second = run_async(service.handle_login_success("intent-2", "tok-2"))

    assert first.id != second.id
    assert len(store.users) == 1
    assert len(store.sessions) == 2


def test_idp_failure_maps_to_get_user_failed(service, idp, store):
    idp.get_idp_user.side_effect = IdentityProviderError("intent expired")

    with pytest.raises(DeployerError) as exc_info:
        run_async(service.handle_login_success("intent-1", "tok-1"))

    assert exc_info.value.code is ErrorCode.GET_USER_FAILED
    assert exc_info.value.status_code == 400
    assert store.users == {}


def test_lookup_failure_other_than_not_found_aborts(idp):
    store = MagicMock()
    store.get_user_by_email = AsyncMock(side_effect=RuntimeError("db down"))
    store.create_user = AsyncMock()
    service = LoginService(idp=idp, store=store)

    with pytest.raises(DeployerError) as exc_info:
        run_async(service.handle_login_success("intent-1", "tok-1"))

    assert exc_info.value.code is ErrorCode.GET_USER_FAILED
    store.create_user.assert_not_called()


def test_create_user_failure(service, store):
    store.create_user = AsyncMock(side_effect=RuntimeError("unique violation"))

    with pytest.raises(DeployerError) as exc_info:
        run_async(service.handle_login_success("intent-1", "tok-1"))

    assert exc_info.value.code is ErrorCode.CREATE_USER_FAILED
    assert exc_info.value.status_code == 400
    assert store.sessions == {}


def test_create_session_failure(service, store):
    store.create_session = AsyncMock(side_effect=RuntimeError("db down"))

    with pytest.raises(DeployerError) as exc_info:
        run_async(service.handle_login_success("intent-1", "tok-1"))

    assert exc_info.value.code is ErrorCode.CREATE_SESSION_FAILED
    assert exc_info.value.status_code == 400


# ---------------------------------------------------------------------------
# Profile resolution
# ---------------------------------------------------------------------------


def test_resolve_profile_returns_session_user(store):
    user = run_async(store.create_user(ALICE))
    session = run_async(store.create_session(user.id, "intent-1", "tok-1"))

    assert run_async(resolve_profile(store, session.id)) == user


@pytest.mark.parametrize("session_id", [None, "", "unknown"])
def test_resolve_profile_rejects_missing_sessions(store, session_id):
    with pytest.raises(DeployerError) as exc_info:
        run_async(resolve_profile(store, session_id))

    assert exc_info.value.code is ErrorCode.UNAUTHORIZED
    assert exc_info.value.status_code == 401


# ---------------------------------------------------------------------------
# IdentityProviderClient
# ---------------------------------------------------------------------------


def _idp_client(handler) -> IdentityProviderClient:
    return IdentityProviderClient(
        base_url="https://idp.example.com/",
        token="svc-token",
        success_url="https://deployer/auth/login/success",
        failure_url="https://deployer/auth/login/fail",
        transport=httpx.MockTransport(handler),
    )


def test_start_intent_request_shape():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"authUrl": "https://github.com/login"})

    url = run_async(_idp_client(handler).start_intent("github-idp"))

    assert url == "https://github.com/login"
    [request] = requests
    assert request.url == "https://idp.example.com/v2/idp_intents"
    assert request.headers["Authorization"] == "Bearer svc-token"
    assert json.loads(request.content) == {
        "idpId": "github-idp",
        "urls": {
            "successUrl": "https://deployer/auth/login/success",
            "failureUrl": "https://deployer/auth/login/fail",
        },
    }


def test_get_idp_user_parses_identity():
    def handler(request):
        assert request.url.path == "/v2/idp_intents/intent-1"
        assert json.loads(request.content) == {"idpIntentToken": "tok-1"}
        return httpx.Response(
            200,
            json={
                "idpInformation": {
                    "userId": 99,
                    "userName": "alice-gh",
                    "rawInformation": {"email": "alice@example.com", "name": "Alice"},
                }
            },
        )

    info = run_async(_idp_client(handler).get_idp_user("intent-1", "tok-1"))

    assert info == UserInfo(id="99", email="alice@example.com", display_name="Alice")


def test_get_idp_user_falls_back_to_user_name():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "idpInformation": {
                    "userId": "u1",
                    "userName": "alice-gh",
                    "rawInformation": {"email": "alice@example.com"},
                }
            },
        )

    info = run_async(_idp_client(handler).get_idp_user("intent-1", "tok-1"))

    assert info.display_name == "alice-gh"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"message": "intent not found"}),
        httpx.Response(200, json={"idpInformation": {"rawInformation": {}}}),
        httpx.Response(200, text="<html>"),
    ],
)
def test_get_idp_user_errors(response):
    with pytest.raises(IdentityProviderError):
        run_async(_idp_client(lambda request: response).get_idp_user("i", "t"))


def test_start_intent_without_auth_url_fails():
    with pytest.raises(IdentityProviderError):
        run_async(
            _idp_client(lambda request: httpx.Response(200, json={})).start_intent("x")
        )

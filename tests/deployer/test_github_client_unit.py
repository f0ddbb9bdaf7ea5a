"""Unit tests for GitHub App authentication and installation tokens."""

import asyncio
import time

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from src.deployer.github import (
    GitHubAPIError,
    GitHubAppClient,
    GithubConfigurationError,
    RateLimitError,
    generate_app_jwt,
    load_private_key,
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture(scope="module")
def rsa_keys():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


def _client(private_pem, handler, **kwargs) -> GitHubAppClient:
    return GitHubAppClient(
        app_id="12345",
        private_key=private_pem,
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# App JWT
# ---------------------------------------------------------------------------


def test_app_jwt_claims(rsa_keys):
    private_pem, public_pem = rsa_keys
    now = int(time.time())

    token = generate_app_jwt("12345", private_pem)

    claims = jwt.decode(token, public_pem, algorithms=["RS256"])
    assert claims["iss"] == "12345"
    assert now - 70 <= claims["iat"] <= now - 50
    assert claims["exp"] - claims["iat"] <= 600


def test_load_private_key_unescapes_newlines(rsa_keys):
    private_pem, _ = rsa_keys
    escaped = private_pem.replace("\n", "\\n")

    assert load_private_key(escaped) == private_pem


def test_load_private_key_from_file(rsa_keys, tmp_path):
    private_pem, _ = rsa_keys
    key_file = tmp_path / "app.pem"
    key_file.write_text(private_pem)

    assert load_private_key(str(key_file)) == private_pem


def test_load_private_key_rejects_garbage(tmp_path):
    with pytest.raises(GithubConfigurationError):
        load_private_key(str(tmp_path / "missing.pem"))


# ---------------------------------------------------------------------------
# Installation tokens
# ---------------------------------------------------------------------------


def test_issue_installation_token_request_shape(rsa_keys):
    private_pem, public_pem = rsa_keys
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"token": "ghs_abc", "expires_at": "2030-01-01T00:00:00Z"})

    token = run_async(_client(private_pem, handler).issue_installation_token(42))

    assert token == "ghs_abc"
    [request] = requests
    assert request.method == "POST"
    assert request.url == "https://api.github.com/app/installations/42/access_tokens"
    assert request.headers["Accept"] == "application/vnd.github+json"
    scheme, _, app_jwt = request.headers["Authorization"].partition(" ")
    assert scheme == "Bearer"
    assert jwt.decode(app_jwt, public_pem, algorithms=["RS256"])["iss"] == "12345"


def test_tokens_are_not_cached(rsa_keys):
    private_pem, _ = rsa_keys
    counter = {"n": 0}

    def handler(request):
        counter["n"] += 1
        return httpx.Response(201, json={"token": f"ghs_{counter['n']}"})

    client = _client(private_pem, handler)

    async def issue_twice():
        return [
            await client.issue_installation_token(42),
            await client.issue_installation_token(42),
        ]

    assert run_async(issue_twice()) == ["ghs_1", "ghs_2"]


def test_missing_token_in_response(rsa_keys):
    private_pem, _ = rsa_keys

    with pytest.raises(GitHubAPIError, match="missing token"):
        run_async(
            _client(private_pem, lambda r: httpx.Response(201, json={})).issue_installation_token(1)
        )


def test_unknown_installation(rsa_keys):
    private_pem, _ = rsa_keys

    with pytest.raises(GitHubAPIError) as exc_info:
        run_async(
            _client(
                private_pem, lambda r: httpx.Response(404, json={"message": "Not Found"})
            ).issue_installation_token(1)
        )

    assert exc_info.value.status_code == 404


def test_retries_transient_errors(rsa_keys):
    private_pem, _ = rsa_keys
    responses = [
        httpx.Response(502),
        httpx.Response(503),
        httpx.Response(201, json={"token": "ghs_ok"}),
    ]

    token = run_async(
        _client(private_pem, lambda r: responses.pop(0)).issue_installation_token(1)
    )

    assert token == "ghs_ok"


def test_gives_up_after_max_retries(rsa_keys):
    private_pem, _ = rsa_keys
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(GitHubAPIError):
        run_async(_client(private_pem, handler, max_retries=2).issue_installation_token(1))

    assert len(calls) == 3


def test_connection_errors_are_retried_then_wrapped(rsa_keys):
    private_pem, _ = rsa_keys

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GitHubAPIError, match="retries"):
        run_async(_client(private_pem, handler, max_retries=1).issue_installation_token(1))


def test_rate_limit(rsa_keys):
    private_pem, _ = rsa_keys

    def handler(request):
        return httpx.Response(
            403,
            headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
            json={"message": "API rate limit exceeded"},
        )

    with pytest.raises(RateLimitError) as exc_info:
        run_async(_client(private_pem, handler).issue_installation_token(1))

    assert exc_info.value.retry_after == 30


def test_backoff_is_capped():
    client = GitHubAppClient(app_id="1", private_key="k", base_delay=1.0, max_delay=4.0)

    for attempt in range(10):
        assert 0 <= client._calculate_backoff(attempt) <= 4.0


def test_enterprise_base_url(rsa_keys):
    private_pem, _ = rsa_keys
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(201, json={"token": "t"})

    client = GitHubAppClient(
        app_id="1",
        private_key=private_pem,
        base_url="https://ghe.example.com/api/v3/",
        transport=httpx.MockTransport(handler),
    )
    run_async(client.issue_installation_token(9))

    assert seen == ["https://ghe.example.com/api/v3/app/installations/9/access_tokens"]


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


def test_health_check_authenticates_as_app(rsa_keys):
    private_pem, _ = rsa_keys
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": 12345})

    assert run_async(_client(private_pem, handler).health_check()) is True
    assert seen[0].url.path == "/app"
    assert seen[0].headers["Authorization"].startswith("Bearer ")


def test_health_check_reports_rejected_credentials(rsa_keys):
    private_pem, _ = rsa_keys

    def handler(request):
        return httpx.Response(401, json={"message": "Bad credentials"})

    assert run_async(_client(private_pem, handler).health_check()) is False

"""Unit tests for app.yaml extraction and extractor sessions."""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.deployer.extractor import (
    AppSpec,
    ConfigExtractionError,
    YamlConfigExtractor,
    extractor_session,
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def extractor():
    return YamlConfigExtractor()


def _write(repo, content, name="app.yaml"):
    (repo / name).write_text(content)
    return repo


def test_extracts_service_spec(extractor, tmp_path):
    _write(
        tmp_path,
        "service:\n"
        "  name: api\n"
        "  dockerfilePath: build/Dockerfile\n"
        "  port: 8000\n"
        "  replicas: 2\n"
        "  env:\n"
        "    LOG_LEVEL: debug\n",
    )
    session_id = extractor.open()

    spec = run_async(extractor.extract_config(session_id, tmp_path))

    assert spec.service.name == "api"
    assert spec.service.dockerfile_path == "build/Dockerfile"
    assert spec.service.port == 8000
    assert spec.service.replicas == 2
    assert spec.service.env == {"LOG_LEVEL": "debug"}


def test_defaults_and_extra_keys(extractor, tmp_path):
    _write(tmp_path, "service:\n  name: web\n  healthcheck: /healthz\nregion: eu\n")
    session_id = extractor.open()

    spec = run_async(extractor.extract_config(session_id, tmp_path))

    assert spec.service.dockerfile_path == "Dockerfile"
    assert spec.service.replicas == 1
    assert spec.service.port is None
    dumped = spec.model_dump()
    assert dumped["region"] == "eu"
    assert dumped["service"]["healthcheck"] == "/healthz"


def test_custom_config_file(tmp_path):
    _write(tmp_path, "service:\n  name: worker\n", name="deploy.yaml")
    extractor = YamlConfigExtractor(config_file="deploy.yaml")

    spec = run_async(extractor.extract_config(extractor.open(), tmp_path))

    assert spec.service.name == "worker"


@pytest.mark.parametrize(
    "content, match",
    [
        (None, "not found"),
        ("service: [unclosed", "Failed to parse"),
        ("- just\n- a list\n", "mapping"),
        ("other: value\n", "Invalid"),
        ("service:\n  name: ''\n", "Invalid"),
        ("service:\n  name: api\n  port: 70000\n", "Invalid"),
    ],
)
def test_invalid_documents(extractor, tmp_path, content, match):
    if content is not None:
        _write(tmp_path, content)

    with pytest.raises(ConfigExtractionError, match=match):
        run_async(extractor.extract_config(extractor.open(), tmp_path))


def test_closed_session_is_rejected(extractor, tmp_path):
    _write(tmp_path, "service:\n  name: api\n")
    session_id = extractor.open()
    extractor.close(session_id)

    with pytest.raises(ConfigExtractionError, match="not open"):
        run_async(extractor.extract_config(session_id, tmp_path))


def test_sessions_are_tracked(extractor):
    first = extractor.open()
    second = extractor.open()

    assert first != second
    assert extractor.open_sessions == 2

    extractor.close(first)
    extractor.close(first)
    assert extractor.open_sessions == 1


def test_extractor_session_closes_on_success(extractor):
    async def use():
        async with extractor_session(extractor) as session_id:
            assert extractor.open_sessions == 1
            return session_id

    run_async(use())

    assert extractor.open_sessions == 0


def test_extractor_session_closes_on_error():
    extractor = MagicMock()
    extractor.open.return_value = "s-1"

    async def use():
        async with extractor_session(extractor):
            raise ConfigExtractionError("bad")

    with pytest.raises(ConfigExtractionError):
        run_async(use())

    extractor.close.assert_called_once_with("s-1")


def test_app_spec_accepts_snake_case_dockerfile_path():
    spec = AppSpec.model_validate({"service": {"name": "api", "dockerfile_path": "D"}})

    assert spec.service.dockerfile_path == "D"

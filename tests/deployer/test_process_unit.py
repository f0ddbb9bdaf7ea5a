"""Unit tests for async subprocess execution."""

import asyncio
import signal
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.deployer.process import kill_process_group, run_command


def run_async(coro):
    return asyncio.run(coro)


def _process(returncode=0, stdout=b"", stderr=b"", communicate=None):
    process = MagicMock()
    process.pid = 4321
    process.returncode = returncode
    process.wait = AsyncMock(return_value=-9)
    process.communicate = communicate or AsyncMock(return_value=(stdout, stderr))
    return process


def test_successful_command_captures_output():
    process = _process(stdout=b"done\n")
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as exec_:
        result = run_async(run_command(["docker", "push", "img"], timeout_seconds=5))

    assert result.success
    assert result.exit_code == 0
    assert result.stdout == "done\n"
    assert exec_.call_args.args == ("docker", "push", "img")
    assert exec_.call_args.kwargs["start_new_session"] is True


def test_stdin_is_forwarded():
    process = _process()
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as exec_:
        run_async(run_command(["kubectl", "apply", "-f", "-"], timeout_seconds=5, stdin=b"kind: X"))

    process.communicate.assert_awaited_once_with(input=b"kind: X")
    assert exec_.call_args.kwargs["stdin"] == asyncio.subprocess.PIPE


def test_non_zero_exit():
    process = _process(returncode=2, stderr=b"boom")
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
        result = run_async(run_command(["docker", "build"], timeout_seconds=5))

    assert not result.success
    assert result.exit_code == 2
    assert result.stderr == "boom"


def test_missing_executable():
    with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("docker"))):
        result = run_async(run_command(["docker", "build"], timeout_seconds=5))

    assert not result.success
    assert result.exit_code == -1
    assert "Failed to start docker" in result.stderr


def test_timeout_kills_process_group():
    process = _process(communicate=AsyncMock(side_effect=asyncio.TimeoutError()))
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)), patch(
        "src.deployer.process.os.killpg"
    ) as killpg:
        result = run_async(run_command(["docker", "build"], timeout_seconds=1))

    assert not result.success
    assert "timed out" in result.stderr
    killpg.assert_called_once_with(4321, signal.SIGKILL)
    process.wait.assert_awaited_once()


def test_cancellation_kills_process_group():
    process = _process(communicate=AsyncMock(side_effect=asyncio.CancelledError()))
    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)), patch(
        "src.deployer.process.os.killpg"
    ) as killpg:
        with pytest.raises(asyncio.CancelledError):
            run_async(run_command(["kubectl", "apply"], timeout_seconds=5))

    killpg.assert_called_once_with(4321, signal.SIGKILL)
    process.wait.assert_awaited_once()


def test_kill_tolerates_exited_group():
    process = _process()
    with patch("src.deployer.process.os.killpg", side_effect=ProcessLookupError()):
        run_async(kill_process_group(process))

    process.wait.assert_awaited_once()


@pytest.mark.skipif(sys.platform == "win32", reason="requires POSIX process groups")
def test_timeout_reaps_real_process_and_its_children(tmp_path):
    marker = tmp_path / "marker"
    script = f"(sleep 0.3; touch {marker}) & sleep 5"

    async def run_then_wait():
        result = await run_command(["sh", "-c", script], timeout_seconds=0.1)
        await asyncio.sleep(0.6)
        return result

    result = run_async(run_then_wait())

    assert not result.success
    assert result.duration_seconds < 5
    assert not marker.exists()

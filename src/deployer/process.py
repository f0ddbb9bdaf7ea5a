"""Async subprocess execution for CLI-backed collaborators.

Runs a command as an async subprocess with timeout enforcement and
structured result capture. Children are started in their own session so
the whole process group, helpers included, is killed and reaped when the
timeout expires or the awaiting task is cancelled.
"""

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a subprocess execution.

    Attributes:
        success: True when the command exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float


async def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill a process started with ``start_new_session`` and everything it spawned.

    Waits for the child to be reaped before returning, so nothing in the
    group is still writing once the caller cleans up after it.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process group %d already exited", process.pid)
    await asyncio.shield(process.wait())


async def run_command(
    args: Sequence[str],
    timeout_seconds: float,
    stdin: Optional[bytes] = None,
) -> CommandResult:
    """Execute a command and capture its output.

    Args:
        args: Executable followed by its arguments.
        timeout_seconds: Maximum execution time before the process is killed.
        stdin: Optional bytes written to the process's standard input.

    Returns:
        CommandResult with exit code, captured output, and duration.

    Raises:
        asyncio.CancelledError: If the awaiting task is cancelled; the
            process is killed first.
    """
    start_time = time.monotonic()
    logger.debug("Starting %s", args[0], extra={"timeout": timeout_seconds})

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE if stdin is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        logger.error("Failed to start %s: %s", args[0], exc)
        return CommandResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Failed to start {args[0]}: {exc}",
            duration_seconds=time.monotonic() - start_time,
        )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(input=stdin),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        await kill_process_group(process)
        logger.error("%s timed out after %ds", args[0], timeout_seconds)
        return CommandResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Process timed out after {timeout_seconds}s",
            duration_seconds=time.monotonic() - start_time,
        )
    except asyncio.CancelledError:
        await kill_process_group(process)
        raise

    exit_code = process.returncode or 0
    duration = time.monotonic() - start_time
    if exit_code != 0:
        logger.error(
            "%s failed with exit code %d in %.1fs",
            args[0],
            exit_code,
            duration,
        )

    return CommandResult(
        success=exit_code == 0,
        exit_code=exit_code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        duration_seconds=duration,
    )

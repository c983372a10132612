"""Command runner used by HealAgent for lint, type-check, audit and tests.

Contract: ordinary command failure (non-zero exit) is ``success=False``,
never an exception. A command that could not be launched or was killed on
timeout has ``exit_code=None``.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shlex
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from warden.models import CommandResult
from warden.utils.logging import get_logger

log = get_logger(__name__)

MAX_OUTPUT_CHARS = 200_000


@runtime_checkable
class CommandRunner(Protocol):
    async def run(
        self,
        command: str,
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


class SubprocessCommandRunner:
    """Runs commands with ``asyncio.create_subprocess_exec`` (no shell)."""

    def __init__(self, default_timeout: float = 600.0) -> None:
        self._default_timeout = default_timeout

    async def run(
        self,
        command: str,
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        limit = timeout if timeout is not None else self._default_timeout
        start = time.monotonic()
        try:
            argv = shlex.split(command)
        except ValueError as exc:
            return CommandResult(command=command, success=False, error=f"invalid command: {exc}")
        if not argv:
            return CommandResult(command=command, success=False, error="empty command")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env={**os.environ},
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            log.warning("command_launch_failed", command=command, error=str(exc))
            return CommandResult(
                command=command,
                success=False,
                error=f"could not launch: {exc}",
                duration_ms=_elapsed_ms(start),
            )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=limit)
        except TimeoutError:
            await _kill(proc)
            log.warning("command_timeout", command=command, timeout_s=limit)
            return CommandResult(
                command=command,
                success=False,
                error=f"timeout after {limit} seconds",
                duration_ms=_elapsed_ms(start),
            )
        except asyncio.CancelledError:
            # Cancelled by the caller (attempt timeout, shutdown): no orphaned child
            await _kill(proc)
            log.warning("command_cancelled", command=command, pid=proc.pid)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS]
        stderr = stderr_bytes.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS]
        exit_code = proc.returncode if proc.returncode is not None else -1

        log.info(
            "command_done",
            command=command,
            exit_code=exit_code,
            stdout_len=len(stdout),
            stderr_len=len(stderr),
        )
        return CommandResult(
            command=command,
            success=exit_code == 0,
            output=stdout,
            error=stderr,
            exit_code=exit_code,
            duration_ms=_elapsed_ms(start),
        )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(proc.wait(), timeout=5.0)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

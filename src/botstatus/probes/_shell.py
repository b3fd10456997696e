"""Shell command helper shared by probes.

Commands run in their own session so the whole process group can be killed
when the deadline passes or the probe is cancelled; nothing outlives its
probe.
"""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Mapping, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class CommandResult:
    ok: bool
    output: str  # stdout, stripped
    returncode: Optional[int] = None
    timed_out: bool = False


def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


async def run_command(
    command: str,
    timeout: float,
    env: Optional[Mapping[str, str]] = None,
) -> CommandResult:
    """Run a shell command with a deadline.

    Args:
        command: Shell command line.
        timeout: Seconds before the process group is killed.
        env: Extra environment variables layered over os.environ.

    Returns:
        CommandResult; ok is True only for exit status 0.
    """
    timeout = float(timeout)
    full_env = {**os.environ, **{k: str(v) for k, v in (env or {}).items()}}
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            env=full_env,
            start_new_session=True,
        )
    except OSError as exc:
        logger.debug("command_spawn_failed", command=command, error=str(exc))
        return CommandResult(ok=False, output="")

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_process_group(proc)
        logger.debug("command_timed_out", command=command, timeout_seconds=timeout)
        return CommandResult(ok=False, output="", timed_out=True)
    except asyncio.CancelledError:
        _kill_process_group(proc)
        raise

    return CommandResult(
        ok=proc.returncode == 0,
        output=stdout.decode("utf-8", errors="replace").strip(),
        returncode=proc.returncode,
    )

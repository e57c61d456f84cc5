"""Run external programs without a shell and normalize their output."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional, Sequence

from core.errors import CommandTimeoutError, ProcessSpawnError

logger = logging.getLogger(__name__)

# Seconds a terminated child gets before it is killed outright.
_TERMINATE_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class CommandResult:
    command: str
    stdout: str
    stderr: str
    exit_code: int
    signal: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def build_command_text(program: str, args: Optional[Sequence[str]] = None) -> str:
    """Human-readable command line. Display only, never executed."""
    return " ".join([str(program), *[str(a) for a in (args or [])]]).strip()


def _signal_name(returncode: int) -> Optional[str]:
    if returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_command(
    program: str,
    args: Optional[Sequence[str]] = None,
    *,
    timeout_seconds: float = 0,
    input_text: str = "",
) -> CommandResult:
    """Run ``program`` with ``args`` as a discrete argv and capture its output.

    Any exit code produces a ``CommandResult``. Raises ``ProcessSpawnError``
    when the program cannot be started and ``CommandTimeoutError`` when the
    deadline passes (the child is terminated, no partial result).
    """
    argv = [str(a) for a in (args or [])]
    command_text = build_command_text(program, argv)

    try:
        process = await asyncio.create_subprocess_exec(
            str(program),
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessSpawnError(f"cannot start {program}: {e}") from e

    # stdin is always closed so readers see EOF when there is no input.
    stdin_bytes = input_text.encode("utf-8") if input_text else b""
    try:
        if timeout_seconds and timeout_seconds > 0:
            stdout_b, stderr_b = await asyncio.wait_for(
                process.communicate(stdin_bytes),
                timeout=timeout_seconds,
            )
        else:
            stdout_b, stderr_b = await process.communicate(stdin_bytes)
    except asyncio.TimeoutError:
        await _terminate(process)
        timeout_ms = int(timeout_seconds * 1000)
        logger.warning("Command timed out after %sms: %s", timeout_ms, command_text)
        raise CommandTimeoutError(
            f"command timeout after {timeout_ms}ms: {command_text}",
            timeout_seconds=timeout_seconds,
        ) from None
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    returncode = process.returncode if process.returncode is not None else 1
    sig = _signal_name(returncode)
    return CommandResult(
        command=command_text,
        stdout=(stdout_b or b"").decode("utf-8", errors="replace"),
        stderr=(stderr_b or b"").decode("utf-8", errors="replace"),
        exit_code=1 if sig else int(returncode),
        signal=sig,
    )

"""Async subprocess helpers for external collaborators (platform CLI, adb, xcrun)."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

from medic.shared.exceptions import ProcessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Exit code and captured output of one finished command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.args)


async def run_command(
    *args: str,
    cwd: str | None = None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion with piped output.

    Raises:
        ProcessError: If the binary is missing, cannot be started, or the
            command timed out.
    """
    logger.debug("running command: %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ProcessError(f"binary not found: {args[0]}") from exc
    except OSError as exc:
        raise ProcessError(f"cannot start {args[0]}: {exc}") from exc

    try:
        stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await _terminate(proc)
        raise ProcessError(f"command timed out after {timeout}s: {' '.join(args)}") from exc
    except BaseException:
        # Cancelled by the caller (e.g. the global run timeout): the child must not outlive it.
        logger.warning("killing process %d after cancellation: %s", proc.pid, " ".join(args))
        await _terminate(proc)
        raise

    return CommandResult(
        args=tuple(args),
        returncode=proc.returncode or 0,
        stdout=stdout_b.decode(errors="replace").strip(),
        stderr=stderr_b.decode(errors="replace").strip(),
    )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill ``proc`` and reap it."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class ProcessTracker:
    """Spawns long-running background processes and kills them by pid on cleanup."""

    def __init__(self) -> None:
        self._procs: dict[int, asyncio.subprocess.Process] = {}

    @property
    def pids(self) -> list[int]:
        return list(self._procs)

    async def spawn(self, *args: str, cwd: str | None = None) -> int:
        """Start a process without waiting for it; returns its pid.

        Raises:
            ProcessError: If the binary is missing or cannot be started.
        """
        logger.info("spawning background process: %s", " ".join(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as exc:
            raise ProcessError(f"binary not found: {args[0]}") from exc
        except OSError as exc:
            raise ProcessError(f"cannot start {args[0]}: {exc}") from exc
        self._procs[proc.pid] = proc
        return proc.pid

    def kill(self, pid: int) -> bool:
        """Kill one tracked process; returns False when it had already exited."""
        proc = self._procs.pop(pid, None)
        if proc is not None and proc.returncode is not None:
            return False
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("process %d already exited", pid)
            return False
        logger.info("killed process %d", pid)
        return True

    def kill_all(self) -> int:
        """Kill every tracked process still alive. Returns how many were signalled."""
        killed = 0
        for pid in list(self._procs):
            if self.kill(pid):
                killed += 1
        return killed

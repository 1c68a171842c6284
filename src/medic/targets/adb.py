"""ADB command wrapper for Android emulators and devices."""

from __future__ import annotations

import logging

from medic.shared.exceptions import AdbError, ProcessError
from medic.shared.process import CommandResult, run_command

logger = logging.getLogger(__name__)


class AdbClient:
    """Runs ``adb`` through async subprocess calls, one serial per command."""

    def __init__(self, *, adb_bin: str = "adb", timeout: int = 30) -> None:
        self._adb_bin = adb_bin
        self._timeout = timeout

    async def devices(self) -> list[str]:
        """Return serials of attached devices/emulators in the ``device`` state."""
        result = await self._run("devices")
        if not result.ok:
            raise AdbError(f"adb devices failed (rc={result.returncode}): {result.stderr}")
        serials: list[str] = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                serials.append(parts[0])
        return serials

    async def shell(self, serial: str, cmd: str) -> str:
        """Execute a shell command on ``serial`` and return its stdout.

        Raises:
            AdbError: If the command fails.
        """
        result = await self._run("-s", serial, "shell", cmd)
        if not result.ok:
            raise AdbError(f"adb shell failed on {serial} (rc={result.returncode}): {result.stderr}")
        return result.stdout

    async def logcat(self, serial: str) -> str:
        """Dump the current logcat buffer with timestamps."""
        result = await self._run("-s", serial, "logcat", "-d", "-v", "time")
        if not result.ok:
            raise AdbError(f"adb logcat failed on {serial} (rc={result.returncode}): {result.stderr}")
        return result.stdout

    async def uninstall(self, serial: str, package: str) -> None:
        result = await self._run("-s", serial, "uninstall", package)
        if not result.ok or "Failure" in result.stdout:
            raise AdbError(f"failed to uninstall {package} from {serial}: {result.stdout} {result.stderr}")
        logger.info("uninstalled %s from %s", package, serial)

    async def emu_kill(self, serial: str) -> None:
        result = await self._run("-s", serial, "emu", "kill")
        if not result.ok:
            raise AdbError(f"failed to kill emulator {serial}: {result.stderr}")
        logger.info("killed emulator %s", serial)

    async def _run(self, *args: str) -> CommandResult:
        try:
            return await run_command(self._adb_bin, *args, timeout=self._timeout)
        except ProcessError as exc:
            raise AdbError(str(exc)) from exc

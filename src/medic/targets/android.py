"""Android emulator control and target selection."""

from __future__ import annotations

import asyncio
import logging

from medic.shared.exceptions import AdbError, ProcessError
from medic.shared.models import TargetHandle
from medic.shared.process import ProcessTracker, run_command
from medic.shared.retry import retry_bounded
from medic.targets.adb import AdbClient
from medic.targets.interfaces import EmulatorControl

logger = logging.getLogger(__name__)

BOOT_ATTEMPTS = 3
BOOT_TIMEOUT_SECONDS = 300

# Console ports the emulator accepts: even numbers in 5554..5584.
_FIRST_CONSOLE_PORT = 5554
_LAST_CONSOLE_PORT = 5584


class AvdEmulatorControl:
    """Boots AVDs with the ``emulator`` binary and tracks them through ``adb``."""

    def __init__(
        self,
        adb: AdbClient,
        tracker: ProcessTracker,
        *,
        emulator_bin: str = "emulator",
        avd_name: str | None = None,
        poll_interval: float = 3.0,
    ) -> None:
        self._adb = adb
        self._tracker = tracker
        self._emulator_bin = emulator_bin
        self._avd_name = avd_name
        self._poll_interval = poll_interval

    async def list_started(self) -> list[str]:
        serials = await self._adb.devices()
        return [serial for serial in serials if serial.startswith("emulator-")]

    async def list_avds(self) -> list[str]:
        try:
            result = await run_command(self._emulator_bin, "-list-avds", timeout=30)
        except ProcessError as exc:
            logger.error("cannot list AVDs: %s", exc)
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def start(self, target: str | None, timeout: int) -> str | None:
        """Boot ``target`` (or the configured/first AVD) and wait until it reports boot_completed."""
        avd = target or self._avd_name
        if not avd:
            avds = await self.list_avds()
            if not avds:
                logger.error("no Android virtual devices available to boot")
                return None
            avd = avds[0]

        port = self._free_console_port(await self.list_started())
        if port is None:
            logger.error("no free emulator console port left")
            return None

        serial = f"emulator-{port}"
        try:
            await self._tracker.spawn(self._emulator_bin, "-avd", avd, "-port", str(port), "-no-snapshot-save")
        except ProcessError as exc:
            logger.error("failed to launch emulator %s: %s", avd, exc)
            return None

        if await self._wait_for_boot(serial, timeout):
            logger.info("emulator %s (%s) booted", serial, avd)
            return serial
        logger.warning("emulator %s (%s) did not boot within %ds", serial, avd, timeout)
        return None

    async def kill_all(self) -> None:
        try:
            started = await self.list_started()
        except AdbError as exc:
            logger.warning("cannot list emulators to kill: %s", exc)
            started = []
        for serial in started:
            try:
                await self._adb.emu_kill(serial)
            except AdbError as exc:
                logger.warning("failed to kill %s: %s", serial, exc)
        self._tracker.kill_all()

    async def _wait_for_boot(self, serial: str, timeout: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            try:
                if (await self._adb.shell(serial, "getprop sys.boot_completed")).strip() == "1":
                    return True
            except AdbError as exc:
                logger.debug("waiting for %s: %s", serial, exc)
            await asyncio.sleep(self._poll_interval)
        return False

    @staticmethod
    def _free_console_port(started: list[str]) -> int | None:
        used = {serial.removeprefix("emulator-") for serial in started}
        for port in range(_FIRST_CONSOLE_PORT, _LAST_CONSOLE_PORT + 1, 2):
            if str(port) not in used:
                return port
        return None


class AndroidTargetChooser:
    """Explicit target, else a running emulator, else boot one with bounded retries."""

    def __init__(
        self,
        control: EmulatorControl,
        *,
        attempts: int = BOOT_ATTEMPTS,
        boot_timeout: int = BOOT_TIMEOUT_SECONDS,
    ) -> None:
        self._control = control
        self._attempts = attempts
        self._boot_timeout = boot_timeout

    async def choose(self, target: str | None) -> TargetHandle | None:
        if target:
            logger.info("android target defined as: %s", target)
            return TargetHandle(target_id=target)

        started = await self._control.list_started()
        if started:
            logger.info("using already started emulator %s", started[0])
            return TargetHandle(target_id=started[0])

        async def _boot(_attempt: int) -> str | None:
            return await self._control.start(None, self._boot_timeout)

        emulator_id = await retry_bounded(
            _boot,
            attempts=self._attempts,
            between=self._control.kill_all,
            label="start android emulator",
        )
        if emulator_id is None:
            logger.error("could not start an android emulator")
            return None
        return TargetHandle(target_id=emulator_id)

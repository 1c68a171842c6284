"""App uninstall and emulator shutdown for the resolved target."""

from __future__ import annotations

import logging

from medic.shared.enums import Platform
from medic.shared.exceptions import ProcessError
from medic.shared.models import TargetHandle
from medic.shared.process import run_command
from medic.targets.adb import AdbClient

logger = logging.getLogger(__name__)


class AppUninstaller:
    """Removes the test app from the target it was installed on."""

    def __init__(self, platform_id: str, *, adb: AdbClient, xcrun_bin: str = "xcrun") -> None:
        self._platform = Platform.parse(platform_id)
        self._adb = adb
        self._xcrun_bin = xcrun_bin

    async def uninstall(self, target: TargetHandle | None, app_id: str) -> bool:
        """Uninstall ``app_id``; returns False when there was nothing to uninstall from.

        Raises:
            ProcessError: If the uninstall command fails.
        """
        if target is None or target.is_empty:
            return False

        if self._platform is Platform.ANDROID:
            await self._adb.uninstall(target.target_id, app_id)
            return True

        if self._platform is Platform.IOS and target.simulator_id:
            result = await run_command(self._xcrun_bin, "simctl", "uninstall", target.simulator_id, app_id, timeout=120)
            if not result.ok:
                raise ProcessError(f"failed to uninstall the app with the error code: {result.returncode}")
            logger.info("uninstalled %s from simulator %s", app_id, target.simulator_id)
            return True

        return False


class EmulatorShutdown:
    """Stops the emulator/simulator a run booted or attached to."""

    def __init__(self, platform_id: str, *, adb: AdbClient, xcrun_bin: str = "xcrun") -> None:
        self._platform = Platform.parse(platform_id)
        self._adb = adb
        self._xcrun_bin = xcrun_bin

    async def shutdown(self, target: TargetHandle | None) -> None:
        if target is None or target.is_empty:
            return

        if self._platform is Platform.ANDROID and target.target_id.startswith("emulator-"):
            logger.info("killing the emulator process %s", target.target_id)
            await self._adb.emu_kill(target.target_id)
        elif self._platform is Platform.IOS and target.simulator_id:
            logger.info("shutting down simulator %s", target.simulator_id)
            result = await run_command(self._xcrun_bin, "simctl", "shutdown", target.simulator_id, timeout=60)
            if not result.ok:
                raise ProcessError(f"failed to shut down simulator {target.simulator_id}: {result.stderr}")

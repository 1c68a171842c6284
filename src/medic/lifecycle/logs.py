"""Device log collection after a local run."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from medic.shared.enums import Platform
from medic.shared.exceptions import AdbError
from medic.shared.models import TargetHandle
from medic.targets.adb import AdbClient

logger = logging.getLogger(__name__)


class DeviceLogCollector:
    """Writes platform logs into the output directory.

    Android dumps ``logcat`` from the target; iOS copies the known log files
    out of the project as ``ios-<name>``. Other platforms are skipped.
    """

    def __init__(self, platform_id: str, *, adb: AdbClient) -> None:
        self._platform_id = platform_id
        self._adb = adb

    async def collect(self, project_dir: Path, output_dir: Path, target: TargetHandle | None) -> list[Path]:
        platform = Platform.parse(self._platform_id)
        if platform is Platform.ANDROID:
            written = await self._collect_android(output_dir, target)
            return [written] if written is not None else []
        if platform is Platform.IOS:
            return self._collect_ios(project_dir, output_dir)
        logger.info("logging is unsupported for %s, skipping", self._platform_id)
        return []

    async def _collect_android(self, output_dir: Path, target: TargetHandle | None) -> Path | None:
        if target is None or target.is_empty:
            logger.warning("no target provided to get logs from")
            return None

        devices = await self._adb.devices()
        if len(devices) != 1:
            logger.error("exactly one emulator/device must be attached to collect logs (found %d)", len(devices))
            return None

        try:
            output = await self._adb.logcat(target.target_id)
        except AdbError as exc:
            logger.error("failed to dump logcat from %s: %s", target.target_id, exc)
            return None

        log_file = output_dir / f"{self._platform_id}_logs.txt"
        output_dir.mkdir(parents=True, exist_ok=True)
        log_file.write_text(output, encoding="utf-8")
        logger.info("logfiles are written to: %s", log_file)
        return log_file

    def _collect_ios(self, project_dir: Path, output_dir: Path) -> list[Path]:
        known_logs = [
            project_dir / "platforms" / "ios" / "cordova" / "console.log",
            project_dir / "appium.log",
        ]
        output_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        for log in known_logs:
            if not log.is_file():
                continue
            destination = output_dir / f"{self._platform_id}-{log.name}"
            if log.parent.resolve() == output_dir.resolve():
                log.rename(destination)
            else:
                shutil.copyfile(log, destination)
            written.append(destination)
        logger.info("copied %d ios log file(s) to %s", len(written), output_dir)
        return written

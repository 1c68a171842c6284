"""Entry point: wire the session from settings and run it once."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
from pathlib import Path

from medic.channel.server import EventChannelServer
from medic.config import Settings, get_settings, load_settings
from medic.lifecycle.coordinator import SessionCoordinator
from medic.lifecycle.logs import DeviceLogCollector
from medic.lifecycle.uninstall import AppUninstaller, EmulatorShutdown
from medic.project.app import ProjectScaffold
from medic.project.cli import PlatformCli
from medic.shared.enums import Platform
from medic.shared.exceptions import MedicError
from medic.shared.models import RunResult, TargetHandle
from medic.shared.process import ProcessTracker, run_command
from medic.targets.adb import AdbClient
from medic.targets.android import AndroidTargetChooser, AvdEmulatorControl
from medic.targets.ios import IosTargetChooser, SimctlDiscovery
from medic.targets.resolver import TargetResolver

logger = logging.getLogger(__name__)


class CommandUiTestRunner:
    """Runs the UI-automation suite as an external command.

    The target is handed over through ``MEDIC_*`` environment variables so
    any driver (Appium, WebdriverIO, ...) can pick it up.
    """

    def __init__(self, command: str, *, timeout: float | None = None) -> None:
        self._argv = shlex.split(command)
        self._timeout = timeout

    async def run(self, project_dir: Path | None, target: TargetHandle | None, *, cloud: bool) -> bool:
        if not self._argv:
            logger.warning("no UI test command configured")
            return True

        env = dict(os.environ)
        env["MEDIC_CLOUD"] = "1" if cloud else "0"
        if project_dir is not None:
            env["MEDIC_PROJECT_DIR"] = str(project_dir)
        if target is not None:
            env["MEDIC_TARGET"] = target.target_id
            env["MEDIC_SIMULATOR_ID"] = target.simulator_id or ""

        result = await run_command(
            *self._argv,
            cwd=str(project_dir) if project_dir is not None else None,
            timeout=self._timeout,
            env=env,
        )
        if not result.ok:
            logger.error("ui tests failed with code %d: %s", result.returncode, result.stderr or result.stdout)
        return result.ok


def build_coordinator(settings: Settings, *, stored_cwd: str | None = None) -> SessionCoordinator:
    """Wire the production collaborators for one run."""
    stored_cwd = stored_cwd or os.getcwd()
    cli = PlatformCli(settings.cli)
    adb = AdbClient(adb_bin=settings.adb_bin)
    tracker = ProcessTracker()

    control = AvdEmulatorControl(adb, tracker, emulator_bin=settings.emulator_bin, avd_name=settings.avd_name)
    resolver = TargetResolver(
        {
            Platform.ANDROID: AndroidTargetChooser(
                control,
                attempts=settings.emulator_boot_attempts,
                boot_timeout=settings.emulator_boot_timeout_seconds,
            ),
            Platform.IOS: IosTargetChooser(SimctlDiscovery(cli)),
        }
    )

    return SessionCoordinator(
        settings,
        cli=cli,
        scaffold=ProjectScaffold(
            cli,
            platform=settings.platform,
            plugins=settings.plugins,
            framework_plugins=settings.test_framework_plugins,
            stored_cwd=stored_cwd,
        ),
        resolver=resolver,
        server=EventChannelServer(
            host=settings.server_host,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            heartbeat_timeout=settings.heartbeat_timeout_seconds,
        ),
        log_collector=DeviceLogCollector(settings.platform_id, adb=adb),
        uninstaller=AppUninstaller(settings.platform_id, adb=adb),
        emulator=EmulatorShutdown(settings.platform_id, adb=adb),
        tracker=tracker,
        ui_runner=CommandUiTestRunner(settings.ui_test_command) if settings.ui_test_command.strip() else None,
    )


async def run_from_settings(settings: Settings) -> RunResult:
    """Wire dependencies from settings and run one session."""
    coordinator = build_coordinator(settings)
    return await coordinator.run()


def main() -> None:
    try:
        settings = load_settings(sys.argv[1]) if len(sys.argv) > 1 else get_settings()
    except MedicError as exc:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        logger.error("%s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    result = asyncio.run(run_from_settings(settings))
    sys.exit(0 if result.passed else 1)


if __name__ == "__main__":
    main()

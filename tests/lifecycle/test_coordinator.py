"""Tests for SessionCoordinator."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from medic.config import Settings
from medic.lifecycle.coordinator import SessionContext, SessionCoordinator
from medic.project.cli import PlatformCli
from medic.shared.enums import EventKind, SessionState
from medic.shared.exceptions import InvalidTransitionError, PluginInstallError
from medic.shared.models import Disconnect, JasmineDone, TargetHandle


def _done(failed: int = 0) -> JasmineDone:
    return JasmineDone(data={"specResults": {"specExecuted": 4, "specFailed": failed}})


@pytest.fixture
def deps(fake_channel, android_target: TargetHandle, tmp_path: Path) -> dict[str, Any]:
    cli = PlatformCli("cordova")
    cli.run_argv = AsyncMock()  # type: ignore[method-assign]

    scaffold = MagicMock()
    scaffold.create = AsyncMock(return_value=tmp_path)
    scaffold.prepare = AsyncMock()

    resolver = AsyncMock()
    resolver.resolve.return_value = android_target

    tracker = MagicMock()
    tracker.spawn = AsyncMock(return_value=4242)

    return {
        "cli": cli,
        "scaffold": scaffold,
        "resolver": resolver,
        "server": fake_channel,
        "log_collector": AsyncMock(),
        "uninstaller": AsyncMock(),
        "emulator": AsyncMock(),
        "tracker": tracker,
    }


def _report(channel, *events) -> AsyncMock:
    """A run command that makes the device report ``events`` while it runs."""

    async def _run(*_args: Any, **_kwargs: Any) -> None:
        for event in events:
            channel.emit(event)

    return AsyncMock(side_effect=_run)


class TestSessionContext:
    def test_advance_forward(self) -> None:
        ctx = SessionContext(platform_id="android")
        ctx.advance(SessionState.PREPARED)
        assert ctx.state is SessionState.PREPARED

    def test_advance_backward_rejected(self) -> None:
        ctx = SessionContext(platform_id="android", state=SessionState.RUNNING)
        with pytest.raises(InvalidTransitionError):
            ctx.advance(SessionState.PREPARED)


class TestSessionCoordinator:
    async def test_android_run_passes(self, settings: Settings, deps: dict[str, Any], android_target) -> None:
        deps["cli"].run_argv = _report(deps["server"], _done(0))

        result = await SessionCoordinator(settings, **deps).run()

        assert result.passed
        assert result.state is SessionState.COMPLETED
        assert result.main_passed is True
        argv = deps["cli"].run_argv.await_args.args[0]
        assert argv[:3] == ["cordova", "run", "android"]
        assert argv[-2:] == ["--target", "emulator-5554"]
        deps["server"].start.assert_awaited_once_with(7008, 7010)
        deps["scaffold"].write_medic_config.assert_called_once_with("ws://127.0.0.1:7008")
        deps["uninstaller"].uninstall.assert_awaited_once_with(android_target, "io.cordova.hellocordova")
        deps["log_collector"].collect.assert_awaited_once()
        deps["emulator"].shutdown.assert_not_awaited()
        deps["scaffold"].remove.assert_not_called()

    async def test_failed_specs_complete_with_failure(self, settings: Settings, deps: dict[str, Any]) -> None:
        deps["cli"].run_argv = _report(deps["server"], _done(3))

        result = await SessionCoordinator(settings, **deps).run()

        assert not result.passed
        assert result.state is SessionState.COMPLETED
        assert result.error_message is None

    async def test_disconnect_before_done_fails(self, settings: Settings, deps: dict[str, Any]) -> None:
        deps["cli"].run_argv = _report(deps["server"], Disconnect())

        result = await SessionCoordinator(settings, **deps).run()

        assert not result.passed
        assert result.state is SessionState.FAILED
        assert "disconnected" in (result.error_message or "")

    async def test_failure_before_server_started_still_tears_down(
        self, settings: Settings, deps: dict[str, Any]
    ) -> None:
        deps["scaffold"].prepare.side_effect = PluginInstallError("failed to install plugin x")

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert result.error_message == "failed to install plugin x"
        deps["tracker"].kill_all.assert_called_once()
        deps["server"].start.assert_not_awaited()
        deps["server"].stop.assert_not_awaited()
        deps["uninstaller"].uninstall.assert_awaited_once_with(None, "io.cordova.hellocordova")

    async def test_global_timeout(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="android", end_port=7010, timeout_seconds=0.05, connection_timeout_seconds=30)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert result.error_message == "timed out after waiting for 0.05s"
        deps["server"].stop.assert_awaited_once()
        deps["tracker"].kill_all.assert_called_once()
        # The result watcher is detached during teardown.
        assert deps["server"].handlers[EventKind.DISCONNECT] == []

    async def test_teardown_step_failure_does_not_mask_result(self, settings: Settings, deps: dict[str, Any]) -> None:
        deps["cli"].run_argv = _report(deps["server"], _done(0))
        deps["log_collector"].collect.side_effect = RuntimeError("disk full")

        result = await SessionCoordinator(settings, **deps).run()

        assert result.passed
        deps["uninstaller"].uninstall.assert_awaited_once()
        deps["server"].stop.assert_awaited_once()

    async def test_unresolved_target_fails(self, settings: Settings, deps: dict[str, Any]) -> None:
        deps["resolver"].resolve.return_value = None

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert "unable to resolve" in (result.error_message or "")
        deps["cli"].run_argv.assert_not_awaited()

    async def test_both_test_types_skipped(self, deps: dict[str, Any]) -> None:
        settings = Settings(skip_main_tests=True, skip_ui_tests=True)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert "no tests to run" in (result.error_message or "")
        deps["scaffold"].create.assert_not_awaited()
        deps["tracker"].kill_all.assert_called_once()

    async def test_overall_result_is_main_and_ui(self, settings: Settings, deps: dict[str, Any], android_target) -> None:
        deps["cli"].run_argv = _report(deps["server"], _done(0))
        ui_runner = AsyncMock()
        ui_runner.run.return_value = False

        result = await SessionCoordinator(settings, ui_runner=ui_runner, **deps).run()

        assert not result.passed
        assert result.main_passed is True
        assert result.ui_passed is False
        ui_runner.run.assert_awaited_once_with(Path(deps["scaffold"].create.return_value), android_target, cloud=False)

    async def test_ui_only_android_run(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="android", skip_main_tests=True)
        ui_runner = AsyncMock()
        ui_runner.run.return_value = True

        result = await SessionCoordinator(settings, ui_runner=ui_runner, **deps).run()

        assert result.passed
        assert result.main_passed is None
        deps["server"].start.assert_not_awaited()
        deps["cli"].run_argv.assert_awaited_once()

    async def test_browser_run_spawned_in_background(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="browser", end_port=7010)
        deps["tracker"].spawn = _report(deps["server"], _done(0))

        result = await SessionCoordinator(settings, **deps).run()

        assert result.passed
        deps["resolver"].resolve.assert_not_awaited()
        assert deps["tracker"].spawn.await_args.args[:3] == ("cordova", "run", "browser")
        deps["cli"].run_argv.assert_not_awaited()
        deps["tracker"].kill_all.assert_called_once()

    async def test_build_only(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="android", action="build", end_port=7010)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.passed
        deps["resolver"].resolve.assert_not_awaited()
        deps["log_collector"].collect.assert_not_awaited()
        deps["uninstaller"].uninstall.assert_not_awaited()

    async def test_cleanup_after_run(self, deps: dict[str, Any], android_target) -> None:
        settings = Settings(platform="android", end_port=7010, cleanup_after_run=True)
        deps["cli"].run_argv = _report(deps["server"], _done(0))

        await SessionCoordinator(settings, **deps).run()

        deps["emulator"].shutdown.assert_awaited_once_with(android_target)
        deps["scaffold"].remove.assert_called_once()

    async def test_cloud_run(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="ios", use_cloud=True, skip_ui_tests=True, end_port=7010)
        cloud = AsyncMock()
        cloud.run_tests.return_value = True

        result = await SessionCoordinator(settings, cloud=cloud, **deps).run()

        assert result.passed
        cloud.run_tests.assert_awaited_once()
        cloud.display_details.assert_awaited_once()
        deps["uninstaller"].uninstall.assert_not_awaited()

    async def test_cloud_requested_without_runner(self, deps: dict[str, Any]) -> None:
        settings = Settings(platform="ios", use_cloud=True)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert "cloud" in (result.error_message or "")

    async def test_jasmine_done_during_slow_command_is_not_lost(self, settings: Settings, deps: dict[str, Any]) -> None:
        async def _slow_run(*_args: Any) -> None:
            deps["server"].emit(_done(0))
            await asyncio.sleep(0.01)

        deps["cli"].run_argv = AsyncMock(side_effect=_slow_run)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.passed

    async def test_global_timeout_kills_running_command(self, deps: dict[str, Any], tmp_path: Path) -> None:
        pid_file = tmp_path / "cli.pid"
        script = tmp_path / "slow-cli"
        script.write_text(f'#!/bin/sh\necho $$ > "{pid_file}"\nexec sleep 30\n')
        script.chmod(0o755)
        deps["cli"] = PlatformCli(str(script))
        settings = Settings(platform="android", end_port=7010, timeout_seconds=1.0, connection_timeout_seconds=30)

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert result.error_message == "timed out after waiting for 1.0s"
        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    async def test_non_executable_cli_fails(self, settings: Settings, deps: dict[str, Any], tmp_path: Path) -> None:
        script = tmp_path / "notexec"
        script.write_text("#!/bin/sh\nexit 0\n")
        script.chmod(0o644)
        deps["cli"] = PlatformCli(str(script))

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert "cannot start" in (result.error_message or "")
        deps["server"].stop.assert_awaited_once()

    async def test_unexpected_error_fails_run(self, settings: Settings, deps: dict[str, Any]) -> None:
        deps["scaffold"].write_medic_config.side_effect = OSError("read-only file system")

        result = await SessionCoordinator(settings, **deps).run()

        assert result.state is SessionState.FAILED
        assert result.error_message == "unexpected OSError: read-only file system"
        deps["tracker"].kill_all.assert_called_once()
        deps["server"].stop.assert_awaited_once()

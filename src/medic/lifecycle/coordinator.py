"""Session lifecycle: scaffold -> serve -> run -> await result -> teardown."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from medic.config import Settings
from medic.lifecycle.interfaces import CloudRunner, EventChannel, UiTestRunner
from medic.lifecycle.logs import DeviceLogCollector
from medic.lifecycle.results import ResultRecorder, ResultWatcher, subscribe_device_output
from medic.lifecycle.uninstall import AppUninstaller, EmulatorShutdown
from medic.project.app import ProjectScaffold
from medic.project.cli import PlatformCli
from medic.shared.enums import Platform, SessionState, can_transition
from medic.shared.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    MedicError,
    RunTimeoutError,
    TargetResolutionError,
)
from medic.shared.models import RunResult, TargetHandle
from medic.shared.process import ProcessTracker
from medic.targets.resolver import TargetResolver

logger = logging.getLogger(__name__)

# Platforms the UI-automation run supports.
_UI_TEST_PLATFORMS = (Platform.ANDROID, Platform.IOS)


@dataclass
class SessionContext:
    """Everything one session accumulates while moving through its stages."""

    platform_id: str
    state: SessionState = SessionState.CREATED
    project_dir: Path | None = None
    target: TargetHandle | None = None
    watcher: ResultWatcher | None = None
    server_started: bool = False
    main_passed: bool | None = None
    ui_passed: bool | None = None
    torn_down: bool = False
    started_at: float = field(default_factory=time.monotonic)

    @property
    def platform(self) -> Platform | None:
        return Platform.parse(self.platform_id)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def advance(self, new: SessionState) -> None:
        if not can_transition(self.state, new):
            raise InvalidTransitionError(f"cannot move session from {self.state.value} to {new.value}")
        logger.debug("session %s -> %s (%.1fs)", self.state.value, new.value, self.elapsed)
        self.state = new


class SessionCoordinator:
    """Drive one end-to-end test session and always tear it down."""

    def __init__(
        self,
        settings: Settings,
        *,
        cli: PlatformCli,
        scaffold: ProjectScaffold,
        resolver: TargetResolver,
        server: EventChannel,
        log_collector: DeviceLogCollector,
        uninstaller: AppUninstaller,
        emulator: EmulatorShutdown,
        tracker: ProcessTracker,
        ui_runner: UiTestRunner | None = None,
        cloud: CloudRunner | None = None,
    ) -> None:
        self.settings = settings
        self.cli = cli
        self.scaffold = scaffold
        self.resolver = resolver
        self.server = server
        self.log_collector = log_collector
        self.uninstaller = uninstaller
        self.emulator = emulator
        self.tracker = tracker
        self.ui_runner = ui_runner
        self.cloud = cloud

    @property
    def _cloud_mode(self) -> bool:
        return self.settings.use_cloud and self.cloud is not None

    async def run(self) -> RunResult:
        """Run the pipeline under the global timeout; teardown runs exactly once."""
        ctx = SessionContext(platform_id=self.settings.platform_id)
        timeout = self.settings.timeout_seconds
        try:
            ctx = await asyncio.wait_for(self._pipeline(ctx), timeout=timeout)
            result = self._complete(ctx)
        except asyncio.TimeoutError:
            result = self._fail(ctx, str(RunTimeoutError(f"timed out after waiting for {timeout}s")))
        except MedicError as exc:
            result = self._fail(ctx, str(exc))
        except Exception as exc:
            result = self._fail(ctx, f"unexpected {type(exc).__name__}: {exc}")
        finally:
            await self._teardown(ctx)

        logger.info(
            "run %s on %s after %.1fs",
            "passed" if result.passed else "failed",
            ctx.platform_id,
            result.elapsed_seconds,
        )
        return result

    async def _pipeline(self, ctx: SessionContext) -> SessionContext:
        ctx = self._check_config(ctx)
        ctx = await self._prepare(ctx)
        ctx = await self._start_server(ctx)
        ctx = await self._run_tests(ctx)
        return ctx

    # ── stages ──────────────────────────────────────────────────

    def _check_config(self, ctx: SessionContext) -> SessionContext:
        if not self.settings.run_main_tests and not self.settings.run_ui_tests:
            raise ConfigurationError("no tests to run: both main and UI tests are skipped")
        if self.settings.use_cloud and self.cloud is None:
            raise ConfigurationError("cloud run requested but no cloud runner is configured")

        if self.cli.cli not in ("cordova", "phonegap") and not os.path.isabs(self.cli.cli):
            self.cli.cli = os.path.abspath(self.cli.cli)
        logger.info("will use the following cli: %s", self.cli.cli)
        return ctx

    async def _prepare(self, ctx: SessionContext) -> SessionContext:
        logger.info(
            "creating app with platform %s and plugin(s): %s",
            self.settings.platform,
            ", ".join(self.settings.plugins),
        )
        ctx.project_dir = await self.scaffold.create()
        await self.scaffold.prepare()
        ctx.advance(SessionState.PREPARED)
        return ctx

    async def _start_server(self, ctx: SessionContext) -> SessionContext:
        no_listener = ctx.platform is Platform.BROWSER and self._cloud_mode
        if self.settings.run_main_tests and not no_listener:
            logger.info("starting local server to receive test results")
            await self.server.start(self.settings.start_port, self.settings.end_port)
            ctx.server_started = True

            subscribe_device_output(self.server)
            ResultRecorder(self._output_dir(ctx)).attach(self.server)
            ctx.watcher = ResultWatcher(self.server)
            ctx.watcher.attach()

            self.scaffold.write_medic_config(self.server.address_for(ctx.platform_id))
            logger.info("start running tests at %s", time.strftime("%H:%M:%S"))
        ctx.advance(SessionState.SERVER_STARTED)
        return ctx

    async def _run_tests(self, ctx: SessionContext) -> SessionContext:
        if self._cloud_mode:
            assert self.cloud is not None
            ctx.advance(SessionState.RUNNING)
            ctx.main_passed = await self.cloud.run_tests(ctx.project_dir)
            ctx.ui_passed = await self._run_ui_tests(ctx, cloud=True)
        else:
            ctx.main_passed = await self._run_local_tests(ctx)
            ctx.ui_passed = await self._run_ui_tests(ctx, cloud=False)
        return ctx

    async def _run_local_tests(self, ctx: SessionContext) -> bool | None:
        # Android still boots an emulator for the UI run even when main tests are skipped.
        if not self.settings.run_main_tests and ctx.platform is not Platform.ANDROID:
            logger.info("skipping main tests")
            ctx.advance(SessionState.RUNNING)
            return None

        logger.info("running tests locally")
        argv = await self._command_for_tests(ctx)
        ctx.advance(SessionState.RUNNING)
        if ctx.platform is Platform.BROWSER:
            await self.tracker.spawn(*argv, cwd=str(ctx.project_dir) if ctx.project_dir else None)
        else:
            await self.cli.run_argv(argv)

        if not self.settings.run_main_tests:
            logger.info("skipping main tests")
            return None
        if not self.settings.waits_for_results or ctx.watcher is None:
            # Build-only: nothing reports back, count as passed.
            return True

        ctx.advance(SessionState.AWAITING_RESULT)
        return await ctx.watcher.wait(self.settings.connection_timeout_seconds)

    async def _command_for_tests(self, ctx: SessionContext) -> list[str]:
        needs_target = ctx.platform is not Platform.BROWSER and not self.settings.is_build_only
        if needs_target:
            target = await self.resolver.resolve(ctx.platform_id, self.settings.target)
            if target is None:
                raise TargetResolutionError(f"unable to resolve a {ctx.platform_id} target")
            ctx.target = target
        return self.cli.build_command(
            self.settings.action,
            ctx.platform_id,
            target=ctx.target,
            emulator=ctx.platform is Platform.IOS,
            extra_args=self.settings.args,
        )

    async def _run_ui_tests(self, ctx: SessionContext, *, cloud: bool) -> bool | None:
        if self.settings.is_build_only:
            logger.info("skipping UI tests: action = build")
            return None
        if not self.settings.run_ui_tests or self.ui_runner is None:
            logger.info("skipping UI tests: not configured to run")
            return None
        if ctx.platform not in _UI_TEST_PLATFORMS:
            logger.warning("unsupported platform for UI test run: %s", ctx.platform_id)
            return None
        if not cloud and (ctx.target is None or ctx.target.is_empty):
            raise TargetResolutionError("cannot determine local device name for UI tests")

        logger.info("running UI tests %s", "on the cloud" if cloud else "locally")
        return await self.ui_runner.run(ctx.project_dir, None if cloud else ctx.target, cloud=cloud)

    # ── outcome ─────────────────────────────────────────────────

    def _complete(self, ctx: SessionContext) -> RunResult:
        # A skipped run (None) counts as passed.
        passed = ctx.main_passed is not False and ctx.ui_passed is not False
        ctx.advance(SessionState.COMPLETED)
        logger.info("completed tests at %s", time.strftime("%H:%M:%S"))
        return RunResult(
            passed=passed,
            state=ctx.state,
            main_passed=ctx.main_passed,
            ui_passed=ctx.ui_passed,
            elapsed_seconds=ctx.elapsed,
        )

    def _fail(self, ctx: SessionContext, message: str) -> RunResult:
        logger.error(
            "run failed during %s on %s after %.1fs: %s",
            ctx.state.value,
            ctx.platform_id,
            ctx.elapsed,
            message,
            exc_info=self.settings.verbose,
        )
        if not ctx.state.is_terminal:
            ctx.advance(SessionState.FAILED)
        return RunResult(
            passed=False,
            state=ctx.state,
            main_passed=ctx.main_passed,
            ui_passed=ctx.ui_passed,
            error_message=message,
            elapsed_seconds=ctx.elapsed,
        )

    # ── teardown ────────────────────────────────────────────────

    async def _teardown(self, ctx: SessionContext) -> None:
        if ctx.torn_down:
            return
        ctx.torn_down = True

        if not self.settings.is_build_only and not self._cloud_mode:
            if ctx.project_dir is not None:
                await self._step("collect device logs", self._collect_logs, ctx)
            await self._step("uninstall app", self.uninstaller.uninstall, ctx.target, self.settings.app_id)
            if self.settings.cleanup_after_run:
                await self._step("shut down emulator", self.emulator.shutdown, ctx.target)
        elif self._cloud_mode:
            assert self.cloud is not None
            await self._step("display cloud details", self.cloud.display_details)

        await self._step("kill background processes", self.tracker.kill_all)
        if ctx.watcher is not None:
            await self._step("detach result watcher", ctx.watcher.detach)
        if ctx.server_started:
            await self._step("stop local server", self.server.stop)
        if self.settings.cleanup_after_run:
            await self._step("remove project", self.scaffold.remove)

    async def _collect_logs(self, ctx: SessionContext) -> None:
        assert ctx.project_dir is not None
        logger.info("collecting logs for the devices")
        await self.log_collector.collect(ctx.project_dir, self._output_dir(ctx), ctx.target)

    async def _step(self, name: str, func: Callable[..., Any], *args: Any) -> None:
        try:
            outcome = func(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:  # teardown never masks the run result
            logger.error("teardown step '%s' failed: %s", name, exc, exc_info=self.settings.verbose)

    def _output_dir(self, ctx: SessionContext) -> Path | None:
        if self.settings.output_dir:
            return Path(self.settings.output_dir)
        return ctx.project_dir

"""Async wrapper around the platform CLI (``cordova``-compatible)."""

from __future__ import annotations

import logging
import shlex

from medic.shared.exceptions import PlatformCommandError, ProcessError
from medic.shared.models import TargetHandle
from medic.shared.process import CommandResult, run_command

logger = logging.getLogger(__name__)

COMMON_CLI_ARGS = ("--no-telemetry",)


class PlatformCli:
    """Runs platform CLI subcommands inside the scaffolded project."""

    def __init__(self, cli: str = "cordova", *, project_dir: str | None = None) -> None:
        self.cli = cli
        self.project_dir = project_dir

    def bind(self, project_dir: str) -> None:
        """Run subsequent commands inside ``project_dir``."""
        self.project_dir = project_dir

    async def create(self, path: str) -> None:
        logger.info("creating project at %s", path)
        await self._exec("create", path, in_project=False)

    async def add_platform(self, platform: str) -> None:
        logger.info("adding platform %s", platform)
        await self._exec("platform", "add", platform)
        logger.info("successfully finished adding platform %s", platform)

    async def add_plugin(self, plugin: str, *extra: str) -> CommandResult:
        return await self._exec("plugin", "add", plugin, *extra, check=False)

    async def list_plugins(self) -> str:
        return (await self._exec("plugins", check=False)).stdout

    async def requirements(self, platform_id: str) -> None:
        logger.info("checking the requirements for platform: %s", platform_id)
        await self._exec("requirements", platform_id)

    async def list_emulators(self, platform_id: str) -> list[str]:
        """Lines of ``run <platform> --list --emulator``; empty lines dropped."""
        result = await self._exec("run", platform_id, "--list", "--emulator", check=False)
        if not result.ok:
            raise PlatformCommandError(f"failed to list {platform_id} emulators: {result.stderr}")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def build_command(
        self,
        action: str,
        platform_id: str,
        *,
        target: TargetHandle | None = None,
        emulator: bool = False,
        extra_args: str = "",
    ) -> list[str]:
        """Assemble ``<cli> <action> <platform> [--target X] [--emulator] <extra>``."""
        cmd = [self.cli, action, platform_id, *COMMON_CLI_ARGS]
        if target is not None and not target.is_empty:
            cmd += ["--target", target.target_id]
            # Without --emulator an iOS run hangs waiting for a physical device of that name.
            if emulator:
                cmd.append("--emulator")
        if extra_args.strip():
            cmd += shlex.split(extra_args)
        return cmd

    async def run_argv(self, argv: list[str]) -> CommandResult:
        """Run an assembled command line; non-zero exit raises."""
        logger.info("running command %s", " ".join(argv))
        return await self._execute(argv, self.project_dir, check=True)

    async def _exec(self, *args: str, in_project: bool = True, check: bool = True) -> CommandResult:
        argv = [self.cli, *args, *COMMON_CLI_ARGS]
        logger.debug("executing cli command: %s", " ".join(argv))
        return await self._execute(argv, self.project_dir if in_project else None, check=check)

    @staticmethod
    async def _execute(argv: list[str], cwd: str | None, *, check: bool) -> CommandResult:
        try:
            result = await run_command(*argv, cwd=cwd)
        except ProcessError as exc:
            raise PlatformCommandError(str(exc)) from exc
        if check and not result.ok:
            raise PlatformCommandError(
                f"{' '.join(argv)} exited with code {result.returncode}: {result.stderr or result.stdout}"
            )
        return result

"""Plugin installation into the scaffolded project."""

from __future__ import annotations

import logging
from pathlib import Path

from medic.project.cli import PlatformCli
from medic.shared.exceptions import PluginInstallError

logger = logging.getLogger(__name__)


class PluginsManager:
    """Installs plugins (local paths or registry specs) and their bundled test plugins."""

    def __init__(self, cli: PlatformCli, project_dir: str, stored_cwd: str) -> None:
        self._cli = cli
        self._project_dir = Path(project_dir)
        self._stored_cwd = Path(stored_cwd)

    async def install_plugins(self, plugins: list[str]) -> None:
        for plugin in plugins:
            await self.install_single_plugin(plugin)

    async def install_single_plugin(self, plugin: str, *cli_args: str) -> None:
        """Install one plugin.

        Raises:
            PluginInstallError: If a local plugin path is missing or the CLI fails.
        """
        spec = self._resolve_spec(plugin)
        result = await self._cli.add_plugin(spec, *cli_args)
        if not result.ok:
            raise PluginInstallError(f"failed to install plugin {plugin}: {result.stderr or result.stdout}")
        logger.info("installed plugin %s", plugin)

    async def install_tests_for_existing_plugins(self) -> list[str]:
        """Install ``<plugin>/tests`` for every installed plugin that ships one."""
        installed: list[str] = []
        plugins_dir = self._project_dir / "plugins"
        if plugins_dir.is_dir():
            for plugin_dir in sorted(p for p in plugins_dir.iterdir() if p.is_dir()):
                tests_dir = plugin_dir / "tests"
                if (tests_dir / "plugin.xml").is_file():
                    await self.install_single_plugin(str(tests_dir))
                    installed.append(plugin_dir.name)

        logger.info("installed plugins:\n%s", await self._cli.list_plugins())
        return installed

    def _resolve_spec(self, plugin: str) -> str:
        candidate = (self._stored_cwd / Path(plugin).expanduser()).resolve()
        if candidate.exists():
            return str(candidate)
        if plugin.startswith((".", "/", "~")):
            raise PluginInstallError(f"failed to locate plugin: {plugin}")
        # Registry id, git url or "github:" shorthand
        return plugin

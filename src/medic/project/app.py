"""Scaffolding of the temporary hybrid-app project that hosts the tests."""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from pathlib import Path

from medic.project.cli import PlatformCli
from medic.project.plugins import PluginsManager
from medic.shared.enums import Platform
from medic.shared.exceptions import MedicError

logger = logging.getLogger(__name__)

MEDIC_CONFIG_FILE = "medic.json"


class ProjectScaffold:
    """Create project -> add platform -> install plugins -> point start page at the tests."""

    def __init__(
        self,
        cli: PlatformCli,
        *,
        platform: str,
        plugins: list[str],
        framework_plugins: list[str],
        stored_cwd: str,
    ) -> None:
        self._cli = cli
        self._platform = platform
        self._plugins = list(plugins)
        self._framework_plugins = list(framework_plugins)
        self._stored_cwd = stored_cwd
        self.project_dir: Path | None = None

    @property
    def platform_id(self) -> str:
        return self._platform.split("@")[0].strip().lower()

    async def create(self) -> Path:
        """Create an empty project in a fresh temp directory."""
        path = Path(tempfile.mkdtemp(prefix="medic-"))
        self.project_dir = path
        logger.info("creating temp project at %s", path)
        await self._cli.create(str(path))
        self._cli.bind(str(path))
        return path

    async def prepare(self) -> None:
        """Install platform and plugins, then make the test page the start page."""
        project_dir = self._require_project()
        await self._cli.add_platform(self._platform)

        manager = PluginsManager(self._cli, str(project_dir), self._stored_cwd)
        logger.info("installing ci framework plugins: %s", ", ".join(self._framework_plugins))
        await manager.install_plugins(self._framework_plugins)
        logger.info("installing plugins: %s", ", ".join(self._plugins))
        await manager.install_plugins(self._plugins)
        logger.info("installing tests for existing plugins")
        await manager.install_tests_for_existing_plugins()

        self.set_start_page()
        if Platform.parse(self.platform_id) is not Platform.BROWSER:
            await self._cli.requirements(self.platform_id)

    def set_start_page(self) -> None:
        config_xml = self._require_project() / "config.xml"
        if not config_xml.is_file():
            logger.warning("no config.xml in %s; start page unchanged", config_xml.parent)
            return
        text = config_xml.read_text(encoding="utf-8")
        config_xml.write_text(text.replace('src="index.html"', 'src="cdvtests/index.html"'), encoding="utf-8")
        logger.info("set the app start page to the test page")

    def write_medic_config(self, log_url: str) -> Path:
        """Write the ``medic.json`` handoff file the reporting bridge reads at startup."""
        www = self._require_project() / "www"
        www.mkdir(parents=True, exist_ok=True)
        path = www / MEDIC_CONFIG_FILE
        path.write_text(json.dumps({"logurl": log_url}), encoding="utf-8")
        logger.info("wrote medic log url %s to %s", log_url, path)
        return path

    def remove(self) -> None:
        if self.project_dir is None:
            return
        logger.info("deleting the application: %s", self.project_dir)
        shutil.rmtree(self.project_dir, ignore_errors=True)
        self.project_dir = None

    def _require_project(self) -> Path:
        if self.project_dir is None:
            raise MedicError("project has not been created, call create() first")
        return self.project_dir

"""Centralised configuration via Pydantic Settings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings

from medic.shared.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Run configuration loaded from environment variables (and optionally a JSON file)."""

    model_config = {"env_prefix": "MEDIC_", "frozen": True}

    # Project / platform CLI
    platform: str = "android"
    plugins: list[str] = []
    # Modes:
    # - run: build, launch on a target and wait for results
    # - emulate: same as run, emulator only
    # - build: build only, no target, no result wait
    action: str = "run"
    args: str = ""
    cli: str = "cordova"
    target: str | None = None
    app_id: str = "io.cordova.hellocordova"
    framework_plugins: list[str] = ["github:apache/cordova-plugin-test-framework"]
    ci: bool = False
    # Extra framework plugins installed only when running under CI.
    ci_plugins: list[str] = []

    # Event channel
    start_port: int = 7008
    end_port: int = 7208
    server_host: str = "0.0.0.0"
    heartbeat_interval_seconds: float = 25.0
    heartbeat_timeout_seconds: float = 60.0

    # Timeouts
    timeout_seconds: float = 3600
    connection_timeout_seconds: float = 540

    # Emulators
    adb_bin: str = "adb"
    emulator_bin: str = "emulator"
    avd_name: str | None = None
    emulator_boot_attempts: int = 3
    emulator_boot_timeout_seconds: int = 300

    # Test selection
    skip_main_tests: bool = False
    skip_ui_tests: bool = False
    # Shell command for the UI-automation run, e.g. "npx wdio run wdio.conf.js".
    # Leave blank to skip the UI run.
    ui_test_command: str = ""
    use_cloud: bool = False

    # Output / cleanup
    output_dir: str | None = None
    cleanup_after_run: bool = False
    verbose: bool = False

    @property
    def platform_id(self) -> str:
        """Platform name without a version spec (``android@12`` -> ``android``)."""
        return self.platform.split("@")[0].strip().lower()

    @property
    def run_main_tests(self) -> bool:
        return not self.skip_main_tests

    @property
    def run_ui_tests(self) -> bool:
        return not self.skip_ui_tests

    @property
    def is_build_only(self) -> bool:
        return self.action == "build"

    @property
    def test_framework_plugins(self) -> list[str]:
        """Framework plugins to install, plus the CI-only ones when ``ci`` is set."""
        if self.ci:
            return [*self.framework_plugins, *self.ci_plugins]
        return list(self.framework_plugins)

    @property
    def waits_for_results(self) -> bool:
        return self.action.startswith("run") or self.action.startswith("emulate")


def load_settings(path: str | Path, **overrides: Any) -> Settings:
    """Build settings from a JSON config file; keyword overrides win over file values."""
    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"cannot read config file {config_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"config file {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {config_path} must contain a JSON object")
    data.update(overrides)
    return Settings(**data)


def get_settings() -> Settings:
    """Factory, allows overriding in tests."""
    return Settings()

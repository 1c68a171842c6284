"""Tests for run configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from medic.config import Settings, load_settings
from medic.shared.exceptions import ConfigurationError


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.start_port == 7008
        assert settings.end_port == 7208
        assert settings.timeout_seconds == 3600
        assert settings.connection_timeout_seconds == 540
        assert settings.heartbeat_interval_seconds == 25.0
        assert settings.heartbeat_timeout_seconds == 60.0

    def test_platform_id_strips_version(self) -> None:
        assert Settings(platform="Android@12.0.0").platform_id == "android"

    def test_action_modes(self) -> None:
        assert Settings(action="build").is_build_only
        assert not Settings(action="build").waits_for_results
        assert Settings(action="emulate").waits_for_results
        assert Settings(action="run").waits_for_results

    def test_ci_plugins_only_under_ci(self) -> None:
        local = Settings(framework_plugins=["fw"], ci_plugins=["ci-plugin"])
        assert local.test_framework_plugins == ["fw"]
        ci = Settings(framework_plugins=["fw"], ci_plugins=["ci-plugin"], ci=True)
        assert ci.test_framework_plugins == ["fw", "ci-plugin"]

    def test_skip_flags(self) -> None:
        settings = Settings(skip_main_tests=True)
        assert not settings.run_main_tests
        assert settings.run_ui_tests

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MEDIC_PLATFORM", "ios")
        monkeypatch.setenv("MEDIC_START_PORT", "9000")
        settings = Settings()
        assert settings.platform == "ios"
        assert settings.start_port == 9000


class TestLoadSettings:
    def test_reads_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "medic.config.json"
        path.write_text(json.dumps({"platform": "browser", "plugins": ["a", "b"]}))

        settings = load_settings(path, verbose=True)

        assert settings.platform == "browser"
        assert settings.plugins == ["a", "b"]
        assert settings.verbose

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_settings(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{nope")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_settings(path)

    def test_non_object(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError, match="JSON object"):
            load_settings(path)

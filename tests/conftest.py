"""Shared pytest fixtures for the medic test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from medic.config import Settings
from medic.shared.enums import EventKind
from medic.shared.models import TargetHandle


@pytest.fixture()
def settings() -> Settings:
    """Return a Settings instance with test defaults."""
    return Settings(
        platform="android",
        plugins=["cordova-plugin-device"],
        start_port=7008,
        end_port=7010,
        timeout_seconds=30,
        connection_timeout_seconds=5,
    )


@pytest.fixture()
def android_target() -> TargetHandle:
    return TargetHandle(target_id="emulator-5554")


@pytest.fixture()
def ios_target() -> TargetHandle:
    return TargetHandle(
        target_id="iPhone 8",
        simulator_id="1A2B3C4D-0000-1111-2222-333344445555",
        device_name="iPhone 8",
        os_version="11.2",
    )


class FakeChannel:
    """In-memory EventChannel: records handlers and lets tests emit events."""

    def __init__(self, *, connected: bool = True) -> None:
        self.handlers: dict[EventKind, list] = {kind: [] for kind in EventKind}
        self.connected = connected
        self.start = AsyncMock(return_value=7008)
        self.stop = AsyncMock()

    def address_for(self, platform) -> str:
        return "ws://127.0.0.1:7008"

    def is_device_connected(self) -> bool:
        return self.connected

    def on(self, kind, handler) -> None:
        self.handlers[EventKind(kind)].append(handler)

    def off(self, kind, handler) -> None:
        if handler in self.handlers[EventKind(kind)]:
            self.handlers[EventKind(kind)].remove(handler)

    def emit(self, event) -> None:
        for handler in list(self.handlers[event.kind]):
            handler(event)


@pytest.fixture()
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def mock_proc() -> AsyncMock:
    """Finished subprocess with empty output, for patching create_subprocess_exec."""
    proc = AsyncMock()
    proc.communicate.return_value = (b"", b"")
    proc.returncode = 0
    proc.pid = 4242
    return proc

"""Jasmine-style reporter that forwards spec lifecycle callbacks through the bridge."""

from __future__ import annotations

import logging
import platform as host_platform
from typing import Any

from medic.bridge.client import DeviceLogHandler, ReportingBridge
from medic.shared.enums import EventKind

# Device names reported by some webviews mapped to their platform id.
_PLATFORM_ALIASES = {"ipod touch": "ios", "iphone": "ios"}


class SpecReporter:
    """Counts executed/failed specs and forwards every callback as an event."""

    def __init__(self, bridge: ReportingBridge, *, device: dict[str, str] | None = None) -> None:
        self._bridge = bridge
        self._device = device
        self.spec_executed = 0
        self.spec_failed = 0

    def jasmine_started(self, payload: dict[str, Any] | None = None) -> None:
        self._bridge.send(EventKind.JASMINE_STARTED, payload)

    def spec_started(self, payload: dict[str, Any] | None = None) -> None:
        self._bridge.send(EventKind.SPEC_STARTED, payload)

    def spec_done(self, payload: dict[str, Any]) -> None:
        status = payload.get("status")
        if status != "disabled":
            self.spec_executed += 1
        if status == "failed":
            self.spec_failed += 1
        self._bridge.send(EventKind.SPEC_DONE, payload)

    def suite_started(self, payload: dict[str, Any] | None = None) -> None:
        self._bridge.send(EventKind.SUITE_STARTED, payload)

    def suite_done(self, payload: dict[str, Any] | None = None) -> None:
        self._bridge.send(EventKind.SUITE_DONE, payload)

    def jasmine_done(self, payload: dict[str, Any] | None = None) -> None:
        """Send the terminal event with platform info and the spec counters attached."""
        body = dict(payload or {})
        body["cordova"] = self._platform_info()
        body["specResults"] = {
            "specExecuted": self.spec_executed,
            "specFailed": self.spec_failed,
        }
        self._bridge.send(EventKind.JASMINE_DONE, body)

    def device_info(self) -> None:
        self._bridge.send(EventKind.DEVICE_INFO, self._platform_info())

    def _platform_info(self) -> dict[str, str]:
        if self._device is None:
            return {"platform": "Desktop", "version": host_platform.python_version(), "model": "none"}
        name = self._device.get("platform", "").lower()
        return {
            "platform": _PLATFORM_ALIASES.get(name, name),
            "version": self._device.get("version", "").lower(),
            "model": self._device.get("model") or self._device.get("name", "none"),
        }


def capture_console(bridge: ReportingBridge, logger: logging.Logger | None = None) -> DeviceLogHandler:
    """Mirror ``logger`` output (root by default) into ``deviceLog`` events."""
    handler = DeviceLogHandler(bridge)
    (logger or logging.getLogger()).addHandler(handler)
    return handler

"""Tests for the Jasmine-style spec reporter."""

from __future__ import annotations

import logging

from medic.bridge.reporter import SpecReporter, capture_console
from medic.shared.enums import EventKind


class _RecordingBridge:
    def __init__(self) -> None:
        self.sent: list[tuple[EventKind, object]] = []

    def send(self, kind: EventKind, payload: object = None) -> None:
        self.sent.append((kind, payload))


class TestSpecReporter:
    def test_counts_executed_and_failed(self) -> None:
        bridge = _RecordingBridge()
        reporter = SpecReporter(bridge)  # type: ignore[arg-type]

        reporter.jasmine_started({"totalSpecsDefined": 3})
        reporter.spec_done({"status": "passed"})
        reporter.spec_done({"status": "failed"})
        reporter.spec_done({"status": "disabled"})
        reporter.jasmine_done()

        assert reporter.spec_executed == 2
        assert reporter.spec_failed == 1
        kind, body = bridge.sent[-1]
        assert kind is EventKind.JASMINE_DONE
        assert body["specResults"] == {"specExecuted": 2, "specFailed": 1}
        assert "cordova" in body

    def test_forwards_every_callback(self) -> None:
        bridge = _RecordingBridge()
        reporter = SpecReporter(bridge)  # type: ignore[arg-type]

        reporter.suite_started({"id": "suite1"})
        reporter.spec_started({"id": "spec1"})
        reporter.spec_done({"id": "spec1", "status": "passed"})
        reporter.suite_done({"id": "suite1"})

        assert [kind for kind, _ in bridge.sent] == [
            EventKind.SUITE_STARTED,
            EventKind.SPEC_STARTED,
            EventKind.SPEC_DONE,
            EventKind.SUITE_DONE,
        ]

    def test_device_platform_aliases(self) -> None:
        bridge = _RecordingBridge()
        reporter = SpecReporter(bridge, device={"platform": "iPhone", "version": "11.2", "model": "iPhone10,4"})  # type: ignore[arg-type]

        reporter.device_info()

        assert bridge.sent == [(EventKind.DEVICE_INFO, {"platform": "ios", "version": "11.2", "model": "iPhone10,4"})]

    def test_capture_console_attaches_handler(self) -> None:
        bridge = _RecordingBridge()
        log = logging.getLogger("medic.test.console")
        log.propagate = False
        handler = capture_console(bridge, log)  # type: ignore[arg-type]
        log.setLevel(logging.INFO)
        try:
            log.info("hello")
        finally:
            log.removeHandler(handler)

        assert bridge.sent == [(EventKind.DEVICE_LOG, {"type": "log", "msg": ["hello"]})]

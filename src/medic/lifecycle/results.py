"""Turning channel events into a run outcome and a results report."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from medic.lifecycle.interfaces import EventChannel
from medic.shared.enums import EventKind
from medic.shared.exceptions import ConnectionTimeoutError, DeviceDisconnectedError
from medic.shared.models import JasmineDone, TestEvent

logger = logging.getLogger(__name__)

RESULTS_FILE = "medic-results.json"


class ResultWatcher:
    """Settles once: on ``jasmineDone``, on ``disconnect`` or on the connection timer.

    Attach as soon as the server listens so a terminal event arriving while
    the run command is still executing is not missed.
    """

    def __init__(self, server: EventChannel) -> None:
        self._server = server
        self._outcome: asyncio.Future[bool] | None = None

    @property
    def settled(self) -> bool:
        return self._outcome is not None and self._outcome.done()

    def attach(self) -> None:
        self._outcome = asyncio.get_running_loop().create_future()
        self._server.on(EventKind.JASMINE_DONE, self._on_jasmine_done)
        self._server.on(EventKind.DISCONNECT, self._on_disconnect)

    def detach(self) -> None:
        self._server.off(EventKind.JASMINE_DONE, self._on_jasmine_done)
        self._server.off(EventKind.DISCONNECT, self._on_disconnect)
        outcome = self._outcome
        if outcome is None:
            return
        if not outcome.done():
            outcome.cancel()
        elif not outcome.cancelled():
            # Mark a failure nobody awaited as retrieved.
            outcome.exception()

    async def wait(self, connection_timeout: float) -> bool:
        """Block until the run settles.

        Raises:
            ConnectionTimeoutError: If no device connected within ``connection_timeout``.
            DeviceDisconnectedError: If the device disconnected before ``jasmineDone``.
        """
        if self._outcome is None:
            self.attach()
        assert self._outcome is not None
        logger.info("waiting for test results")
        timer = asyncio.get_running_loop().call_later(connection_timeout, self._check_connected, connection_timeout)
        try:
            return await self._outcome
        finally:
            timer.cancel()

    def _settle(self, passed: bool | None = None, error: Exception | None = None) -> None:
        if self._outcome is None or self._outcome.done():
            return
        if error is not None:
            self._outcome.set_exception(error)
        else:
            self._outcome.set_result(bool(passed))

    def _on_jasmine_done(self, event: TestEvent) -> None:
        assert isinstance(event, JasmineDone)
        results = event.spec_results
        if results is None:
            logger.warning("jasmineDone carried no specResults; counting the run as failed")
        else:
            logger.info(
                "tests have been completed: %d executed, %d failed",
                results.spec_executed,
                results.spec_failed,
            )
        self._settle(passed=event.passed)

    def _on_disconnect(self, _event: TestEvent) -> None:
        self._settle(error=DeviceDisconnectedError("device is disconnected before passing the tests"))

    def _check_connected(self, timeout: float) -> None:
        if not self._server.is_device_connected():
            self._settle(
                error=ConnectionTimeoutError(f"device not connected to local server in {timeout:.0f} secs")
            )


class ResultRecorder:
    """Logs failed specs and writes a JSON summary when the run finishes."""

    def __init__(self, output_dir: Path | None = None) -> None:
        self._output_dir = output_dir
        self.specs: list[dict[str, Any]] = []
        self.suites: list[dict[str, Any]] = []
        self.summary: dict[str, Any] | None = None

    def attach(self, server: EventChannel) -> None:
        server.on(EventKind.SPEC_DONE, self._on_spec_done)
        server.on(EventKind.SUITE_DONE, self._on_suite_done)
        server.on(EventKind.JASMINE_DONE, self._on_jasmine_done)

    def _on_spec_done(self, event: TestEvent) -> None:
        spec = event.data if isinstance(event.data, dict) else {}
        self.specs.append(spec)
        if spec.get("status") == "failed":
            messages = [
                str(expectation.get("message", ""))
                for expectation in spec.get("failedExpectations") or []
                if isinstance(expectation, dict)
            ]
            logger.warning("spec failed: %s %s", spec.get("fullName", "<unnamed>"), "; ".join(messages))

    def _on_suite_done(self, event: TestEvent) -> None:
        if isinstance(event.data, dict):
            self.suites.append(event.data)

    def _on_jasmine_done(self, event: TestEvent) -> None:
        assert isinstance(event, JasmineDone)
        results = event.spec_results
        self.summary = {
            "passed": event.passed,
            "specExecuted": results.spec_executed if results else None,
            "specFailed": results.spec_failed if results else None,
            "device": event.data.get("cordova") if isinstance(event.data, dict) else None,
            "specs": self.specs,
            "suites": self.suites,
        }
        if self._output_dir is not None:
            self.write(self._output_dir / RESULTS_FILE)

    def write(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.summary, indent=2, default=str), encoding="utf-8")
            logger.info("test results written to %s", path)
        except OSError as exc:
            logger.error("cannot write test results to %s: %s", path, exc)


def subscribe_device_output(server: EventChannel) -> None:
    """Surface ``deviceLog`` (verbose) and ``deviceInfo`` events in the local log."""

    def _on_device_log(event: TestEvent) -> None:
        data = event.data if isinstance(event.data, dict) else {}
        messages = data.get("msg") or [""]
        first = messages[0] if isinstance(messages, list) and messages else messages
        logger.debug("device|console.%s: %s", data.get("type", "log"), first)

    def _on_device_info(event: TestEvent) -> None:
        logger.info("device info: %s", json.dumps(event.data))

    server.on(EventKind.DEVICE_LOG, _on_device_log)
    server.on(EventKind.DEVICE_INFO, _on_device_info)

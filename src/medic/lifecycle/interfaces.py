"""Protocol interfaces for session lifecycle dependency injection."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from medic.shared.enums import EventKind, Platform
from medic.shared.models import TargetHandle, TestEvent


@runtime_checkable
class EventChannel(Protocol):
    """Protocol for the local server the device reports into."""

    async def start(self, start_port: int, end_port: int) -> int: ...

    async def stop(self) -> None: ...

    def address_for(self, platform: Platform | str) -> str: ...

    def is_device_connected(self) -> bool: ...

    def on(self, kind: EventKind, handler: Callable[[TestEvent], Any]) -> None: ...

    def off(self, kind: EventKind, handler: Callable[[TestEvent], Any]) -> None: ...


@runtime_checkable
class UiTestRunner(Protocol):
    """Protocol for the secondary, UI-automation driven test run."""

    async def run(self, project_dir: Path | None, target: TargetHandle | None, *, cloud: bool) -> bool:
        """Run the UI tests against the built app.

        Args:
            project_dir: Scaffolded project holding the built app.
            target: Resolved local target (None for cloud runs).
            cloud: Whether the app runs on a cloud device farm.

        Returns:
            True if every UI test passed.
        """
        ...


@runtime_checkable
class CloudRunner(Protocol):
    """Protocol for delegating the main test run to a cloud device farm."""

    async def run_tests(self, project_dir: Path | None) -> bool:
        """Package, upload and run the app remotely; True if the tests passed."""
        ...

    async def display_details(self) -> None:
        """Log where the remote job's results can be found."""
        ...

"""Protocol interfaces for target resolution dependency injection."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from medic.shared.models import TargetHandle


@runtime_checkable
class EmulatorControl(Protocol):
    """Protocol for listing and booting Android-like emulators."""

    async def list_started(self) -> list[str]:
        """Return ids of emulators that are already running."""
        ...

    async def start(self, target: str | None, timeout: int) -> str | None:
        """Boot an emulator and wait for it.

        Args:
            target: Optional AVD name to boot.
            timeout: Maximum seconds to wait for the boot to finish.

        Returns:
            The emulator id, or None if it did not come up in time.
        """
        ...

    async def kill_all(self) -> None:
        """Force-kill every running emulator."""
        ...


@runtime_checkable
class SimulatorDiscovery(Protocol):
    """Protocol for listing iOS-like simulator models and instances."""

    async def list_models(self) -> list[str]:
        """Return model lines such as ``"iPhone-XR, 12.2"``."""
        ...

    async def list_devices(self) -> list[str]:
        """Return device lines such as ``"iPhone XR (12.2) [UDID]"``."""
        ...


@runtime_checkable
class TargetChooser(Protocol):
    """Protocol for per-platform target discovery."""

    async def choose(self, target: str | None) -> TargetHandle | None:
        """Resolve a handle, or None when nothing could be booted."""
        ...

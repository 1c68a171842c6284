"""Hierarchical exception types for the medic test orchestrator."""

from __future__ import annotations


class MedicError(Exception):
    """Base exception for all medic errors."""


class ConfigurationError(MedicError):
    """Run configuration is unusable."""


class InvalidTransitionError(MedicError):
    """A session state transition went backwards or left a terminal state."""


# ── Event channel ───────────────────────────────────────────────


class ChannelError(MedicError):
    """Event channel server error."""


class PortExhaustionError(ChannelError):
    """No free port left in the configured range."""


class ProtocolError(ChannelError):
    """Inbound frame could not be decoded."""


# ── Targets ─────────────────────────────────────────────────────


class TargetResolutionError(MedicError):
    """No emulator, simulator or device could be resolved."""


class NoMatchingSimulatorError(TargetResolutionError):
    """Simulator listing has no entry matching the requested filter."""


# ── Connectivity ────────────────────────────────────────────────


class ConnectivityError(MedicError):
    """Device under test did not report back over the event channel."""


class ConnectionTimeoutError(ConnectivityError):
    """Device never connected within the initial connection window."""


class DeviceDisconnectedError(ConnectivityError):
    """Device disconnected before sending the terminal event."""


class RunTimeoutError(MedicError):
    """The whole run exceeded its global timeout."""


# ── External processes ──────────────────────────────────────────


class ProcessError(MedicError):
    """External command could not be run or exited non-zero."""


class PlatformCommandError(ProcessError):
    """Platform CLI (create/platform/build/run) failed."""


class PluginInstallError(PlatformCommandError):
    """Plugin could not be located or installed."""


class AdbError(ProcessError):
    """ADB connection or command error."""

"""Domain enumerations used across all modules."""

from __future__ import annotations

from enum import Enum, unique


@unique
class SessionState(str, Enum):
    """Lifecycle cursor for one test session."""

    CREATED = "created"
    PREPARED = "prepared"
    SERVER_STARTED = "server_started"
    RUNNING = "running"
    AWAITING_RESULT = "awaiting_result"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


_SESSION_ORDER = {state: index for index, state in enumerate(SessionState)}


def can_transition(current: SessionState, new: SessionState) -> bool:
    """Forward-only transitions; FAILED is reachable from any non-terminal state."""
    if current.is_terminal:
        return False
    if new is SessionState.FAILED:
        return True
    return _SESSION_ORDER[new] > _SESSION_ORDER[current]


@unique
class EventKind(str, Enum):
    """Test lifecycle events recognised on the event channel."""

    JASMINE_STARTED = "jasmineStarted"
    SPEC_STARTED = "specStarted"
    SPEC_DONE = "specDone"
    SUITE_STARTED = "suiteStarted"
    SUITE_DONE = "suiteDone"
    JASMINE_DONE = "jasmineDone"
    DEVICE_LOG = "deviceLog"
    DEVICE_INFO = "deviceInfo"
    DISCONNECT = "disconnect"


@unique
class Platform(str, Enum):
    """Platforms the orchestrator knows how to target."""

    ANDROID = "android"
    IOS = "ios"
    BROWSER = "browser"
    ELECTRON = "electron"
    WINDOWS = "windows"

    @classmethod
    def parse(cls, platform_id: str) -> Platform | None:
        try:
            return cls(platform_id.strip().lower())
        except ValueError:
            return None

"""Domain models shared by all modules."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from medic.shared.enums import EventKind, SessionState


@dataclass(frozen=True, slots=True)
class TargetHandle:
    """One concrete emulator, simulator or device instance."""

    target_id: str
    simulator_id: str | None = None
    device_name: str | None = None
    os_version: str | None = None

    @classmethod
    def empty(cls) -> TargetHandle:
        """Handle for platforms that run without an emulator/simulator."""
        return cls(target_id="")

    @property
    def is_empty(self) -> bool:
        return not self.target_id


@dataclass(slots=True)
class ConnectionRecord:
    """Liveness bookkeeping for one connected device socket."""

    last_activity: float = field(default_factory=time.monotonic)

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def idle_for(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_activity


class SpecResults(BaseModel):
    """Aggregate counters the reporting bridge attaches to ``jasmineDone``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    spec_executed: int = Field(default=0, alias="specExecuted")
    spec_failed: int = Field(default=0, alias="specFailed")


# ── Channel events ──────────────────────────────────────────────


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: Any = None

    @property
    def kind(self) -> EventKind:
        return EventKind(getattr(self, "event"))


class JasmineStarted(_EventBase):
    event: Literal["jasmineStarted"] = "jasmineStarted"


class SpecStarted(_EventBase):
    event: Literal["specStarted"] = "specStarted"


class SpecDone(_EventBase):
    event: Literal["specDone"] = "specDone"


class SuiteStarted(_EventBase):
    event: Literal["suiteStarted"] = "suiteStarted"


class SuiteDone(_EventBase):
    event: Literal["suiteDone"] = "suiteDone"


class JasmineDone(_EventBase):
    event: Literal["jasmineDone"] = "jasmineDone"

    @property
    def spec_results(self) -> SpecResults | None:
        """Parsed ``specResults`` aggregate, or None when absent/invalid."""
        if not isinstance(self.data, dict):
            return None
        raw = self.data.get("specResults")
        if not isinstance(raw, dict):
            return None
        try:
            return SpecResults.model_validate(raw)
        except ValidationError:
            return None

    @property
    def passed(self) -> bool:
        results = self.spec_results
        return results is not None and results.spec_failed == 0


class DeviceLog(_EventBase):
    event: Literal["deviceLog"] = "deviceLog"


class DeviceInfo(_EventBase):
    event: Literal["deviceInfo"] = "deviceInfo"


class Disconnect(_EventBase):
    event: Literal["disconnect"] = "disconnect"


TestEvent = Annotated[
    Union[
        JasmineStarted,
        SpecStarted,
        SpecDone,
        SuiteStarted,
        SuiteDone,
        JasmineDone,
        DeviceLog,
        DeviceInfo,
        Disconnect,
    ],
    Field(discriminator="event"),
]


# ── Run outcome ─────────────────────────────────────────────────


class RunResult(BaseModel):
    """Outcome of one session, produced exactly once."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    state: SessionState
    main_passed: bool | None = None
    ui_passed: bool | None = None
    error_message: str | None = None
    elapsed_seconds: float = 0.0

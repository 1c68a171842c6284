"""Wire format of the event channel: one JSON object ``{"event", "data"}`` per frame."""

from __future__ import annotations

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from medic.shared.enums import EventKind
from medic.shared.exceptions import ProtocolError
from medic.shared.models import TestEvent

_EVENT_ADAPTER: TypeAdapter[TestEvent] = TypeAdapter(TestEvent)
_KNOWN_EVENTS = frozenset(kind.value for kind in EventKind)


def encode_frame(kind: EventKind | str, data: Any = None) -> str:
    """Serialise one event frame."""
    name = kind.value if isinstance(kind, EventKind) else kind
    return json.dumps({"event": name, "data": data})


def decode_frame(raw: str | bytes) -> TestEvent | None:
    """Decode one inbound frame.

    Returns:
        The typed event, or None when the event name is not recognised.

    Raises:
        ProtocolError: If the frame is not a JSON object.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON frame: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError(f"frame must be a JSON object, got {type(message).__name__}")

    event = message.get("event")
    if not isinstance(event, str) or event not in _KNOWN_EVENTS:
        return None
    try:
        return _EVENT_ADAPTER.validate_python({"event": event, "data": message.get("data")})
    except ValidationError as exc:  # pragma: no cover - every known kind accepts any payload
        raise ProtocolError(f"invalid {event} frame: {exc}") from exc

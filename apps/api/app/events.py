from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(event_type: str, actor_id: str, payload: dict[str, Any], *, system: bool = False) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_id": actor_id,
        "correlation_id": get_correlation_id(),
        "version": 1,
        "payload": payload,
    }
    if system:
        envelope["meta"] = {"system": True}

    published_events.append(envelope)
    event_bus.publish(event_type, envelope)
    return envelope


def events_of_type(event_type: str) -> list[dict[str, Any]]:
    return [envelope for envelope in published_events if envelope["event_type"] == event_type]

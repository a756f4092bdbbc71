"""In-process telemetry for quiz, entitlement and billing events.

Events are fanned out to registered listeners (the audit trail, tests) and
logged as a single ``TELEMETRY {...}`` JSON line on ``quizquest.telemetry``.
Events that describe a learner being blocked or a payment failing are logged
at WARNING so they surface without raising the telemetry log level.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel

logger = logging.getLogger("quizquest.telemetry")

Listener = Callable[["TelemetryEvent"], None]

WARNING_EVENTS: FrozenSet[str] = frozenset(
    {
        "answer_blocked",
        "billing_payment_failed",
        "chat_message_blocked",
    }
)


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]

    @property
    def learner_id(self) -> Optional[str]:
        value = self.payload.get("learner_id")
        if isinstance(value, str) and value.strip():
            return value
        return None


_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> Listener:
    """Register an in-process listener and return it for later removal."""
    with _lock:
        _listeners.append(listener)
    return listener


def remove_listener(listener: Listener) -> bool:
    with _lock:
        try:
            _listeners.remove(listener)
        except ValueError:
            return False
    return True


def emit_event(name: str, **fields: Any) -> None:
    payload = {key: _to_payload(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    level = logging.WARNING if name in WARNING_EVENTS else logging.INFO
    logger.log(level, "TELEMETRY %s", json.dumps({"event": name, **payload}, default=str))


def _to_payload(value: Any) -> Any:
    # Payloads end up in JSON columns, so every value must already be JSON-safe.
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


__all__ = [
    "Listener",
    "TelemetryEvent",
    "WARNING_EVENTS",
    "emit_event",
    "register_listener",
    "remove_listener",
]

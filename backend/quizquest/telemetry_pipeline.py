"""Audit trail: persists learner-facing telemetry into a record store.

The trail is bound to one store and installed explicitly, at app startup or
by a test, so nothing writes audit rows until a store has been chosen.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional, Protocol

from .telemetry import TelemetryEvent, register_listener, remove_listener

logger = logging.getLogger(__name__)

MONITORED_EVENTS: FrozenSet[str] = frozenset(
    {
        "answer_recorded",
        "answer_blocked",
        "subscription_plan_changed",
        "billing_plan_applied",
        "billing_payment_failed",
    }
)


class AuditSink(Protocol):
    def record_audit_event(self, learner_id: Optional[str], event_type: str, payload: dict) -> None: ...


class AuditTrail:
    def __init__(self, store: AuditSink, events: Iterable[str] = MONITORED_EVENTS) -> None:
        self.store = store
        self.events = frozenset(events)

    def __call__(self, event: TelemetryEvent) -> None:
        if event.name not in self.events or event.learner_id is None:
            return
        try:
            self.store.record_audit_event(event.learner_id, event.name, event.payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist %s for learner=%s", event.name, event.learner_id)


def install(store: AuditSink, events: Iterable[str] = MONITORED_EVENTS) -> AuditTrail:
    trail = AuditTrail(store, events)
    register_listener(trail)
    logger.info("Audit trail installed for %s events", len(trail.events))
    return trail


def uninstall(trail: AuditTrail) -> None:
    remove_listener(trail)


__all__ = ["AuditSink", "AuditTrail", "MONITORED_EVENTS", "install", "uninstall"]

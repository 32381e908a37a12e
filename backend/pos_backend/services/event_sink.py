# Overview: Audit/event emission used by the sale, void and stock engines.

"""
Engines never write SystemLog rows directly. They receive an EventSink and
call emit(); the request layer decides where events go (the system_logs
table in production, a list in tests).

Event emission is best-effort: a failing sink must never fail or roll back
the business operation that produced the event. emit_safely() is the single
place where sink failures are absorbed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from flask import current_app

from ..extensions import db
from ..models import SystemLog
from ..models.logs import LOG_LEVELS


class EventSink(Protocol):
    def emit(
        self,
        level: str,
        module: str,
        action: str,
        message: str,
        metadata: dict | None = None,
        actor_id: int | None = None,
    ) -> None:
        ...


@dataclass
class Event:
    level: str
    module: str
    action: str
    message: str
    metadata: dict = field(default_factory=dict)
    actor_id: int | None = None


class DatabaseEventSink:
    """Writes each event as a SystemLog row in its own commit."""

    def __init__(self, ip_address: str | None = None):
        self.ip_address = ip_address

    def emit(self, level, module, action, message, metadata=None, actor_id=None) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {level}")
        try:
            db.session.add(SystemLog(
                level=level,
                module=module,
                action=action,
                message=message,
                user_id=actor_id,
                ip_address=self.ip_address,
                meta=metadata or None,
            ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


class InMemoryEventSink:
    """Collects events in a list. Used by tests and dry runs."""

    def __init__(self):
        self.events: list[Event] = []

    def emit(self, level, module, action, message, metadata=None, actor_id=None) -> None:
        self.events.append(Event(level, module, action, message, dict(metadata or {}), actor_id))

    def actions(self) -> list[str]:
        return [e.action for e in self.events]

    def by_action(self, action: str) -> list[Event]:
        return [e for e in self.events if e.action == action]


def emit_safely(sink: EventSink, *, level: str, module: str, action: str, message: str,
                metadata: dict | None = None, actor_id: int | None = None) -> None:
    try:
        sink.emit(level, module, action, message, metadata, actor_id)
    except Exception:
        current_app.logger.exception("Event emission failed (%s.%s)", module, action)


class EventBuffer:
    """
    Events produced inside a transaction, held until it commits.
    """

    def __init__(self, sink: EventSink):
        self.sink = sink
        self._pending: list[Event] = []

    def queue(self, level: str, module: str, action: str, message: str,
              metadata: dict[str, Any] | None = None, actor_id: int | None = None) -> None:
        self._pending.append(Event(level, module, action, message, dict(metadata or {}), actor_id))

    def discard(self) -> None:
        self._pending.clear()

    def flush(self) -> None:
        pending, self._pending = self._pending, []
        for ev in pending:
            emit_safely(
                self.sink,
                level=ev.level,
                module=ev.module,
                action=ev.action,
                message=ev.message,
                metadata=ev.metadata,
                actor_id=ev.actor_id,
            )

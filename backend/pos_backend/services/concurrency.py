# Overview: Transaction boundary helpers shared by every write path.

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import current_app
from sqlalchemy import text

from ..errors import PosError, TransactionFailure
from ..extensions import db
from ..validation import ConflictError, ValidationError
from .event_sink import EventBuffer, EventSink, emit_safely


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes the locked read overwrite whatever the identity
    map already holds, so the caller always sees the row as locked.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the write transaction
    opened by begin_write_transaction() serializes writers instead.
    """
    return query.with_for_update().populate_existing()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    Without it two sessions can both pass a stock check before either
    writes. Other dialects rely on lock_for_update() row locks plus the
    version_id compare-and-swap on products.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if raw.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def write_transaction(
    *,
    events: EventSink,
    module: str,
    failed_action: str,
    actor_id: int | None = None,
    failure: type[TransactionFailure] = TransactionFailure,
) -> Iterator[EventBuffer]:
    """
    Run one logical transaction: all writes commit together or not at all.

    - Business errors (PosError, ValidationError, ConflictError) roll back and propagate
      unchanged.
    - Anything else rolls back, emits a single error event carrying the
      internal detail, and raises `failure` with its generic message.
    - Events queued on the yielded buffer are emitted only after commit, so
      a rolled-back attempt leaves no trace besides the failure event.

    No retries: the caller decides whether to resubmit.
    """
    pending = EventBuffer(events)
    try:
        begin_write_transaction()
        yield pending
        db.session.commit()
    except (PosError, ValidationError, ConflictError):
        db.session.rollback()
        pending.discard()
        raise
    except Exception as exc:
        db.session.rollback()
        pending.discard()
        current_app.logger.exception("%s.%s: transaction rolled back", module, failed_action)
        emit_safely(
            events,
            level="error",
            module=module,
            action=failed_action,
            message=f"Transaction failed: {exc}",
            metadata={"error": str(exc), "error_type": type(exc).__name__},
            actor_id=actor_id,
        )
        raise failure() from exc

    pending.flush()

# Overview: Service-layer operations for the system log; read-only queries over SystemLog.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import SystemLog
from ..models.logs import LOG_LEVELS
from ..validation import ValidationError


def list_system_logs(
    *,
    level: str | None = None,
    module: str | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
) -> list[SystemLog]:
    """
    Newest first. date_to is inclusive; a bare date covers the whole day.
    search matches message or action (case-insensitive substring).
    """
    if level is not None and level not in LOG_LEVELS:
        raise ValidationError(f"level must be one of: {', '.join(LOG_LEVELS)}")

    q = db.session.query(SystemLog)
    if level:
        q = q.filter(SystemLog.level == level)
    if module:
        q = q.filter(SystemLog.module == module)
    if user_id is not None:
        q = q.filter(SystemLog.user_id == user_id)
    if date_from is not None:
        q = q.filter(SystemLog.created_at >= date_from)
    if date_to is not None:
        if date_to.time() == datetime.min.time():
            q = q.filter(SystemLog.created_at < date_to + timedelta(days=1))
        else:
            q = q.filter(SystemLog.created_at <= date_to)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(SystemLog.message.ilike(pattern), SystemLog.action.ilike(pattern)))

    limit = max(1, min(limit, 500))
    return q.order_by(SystemLog.id.desc()).limit(limit).all()

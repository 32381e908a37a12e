from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOG_LEVELS = ("debug", "info", "warn", "error", "audit")


class SystemLog(db.Model):
    """
    Structured business event (who did what, from where).

    Written through an EventSink only; never updated.
    """
    __tablename__ = "system_logs"
    __table_args__ = (
        db.Index("ix_system_logs_module_action", "module", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.String(8), nullable=False, index=True)
    module = db.Column(db.String(64), nullable=False, index=True)  # e.g. 'sales', 'inventory'
    action = db.Column(db.String(64), nullable=False)  # e.g. 'sale_created', 'low_stock'
    message = db.Column(db.Text, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    meta = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.level,
            "module": self.module,
            "action": self.action,
            "message": self.message,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "ip_address": self.ip_address,
            "meta": self.meta,
            "created_at": to_utc_z(self.created_at),
        }

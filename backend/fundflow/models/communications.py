from __future__ import annotations

from ..extensions import db
from fundflow.time_utils import to_utc_z


class NotificationOutbox(db.Model):
    """
    Outbound notifications (credentials issued, approval requested, decided).

    Rows are written in the same transaction as the change that caused them.
    An external worker delivers them and stamps delivered_at.
    """
    __tablename__ = "notification_outbox"
    __table_args__ = (
        db.Index("ix_notification_outbox_pending", "delivered_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id"), nullable=True, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=True, index=True)

    template = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "person_id": self.person_id,
            "account_id": self.account_id,
            "template": self.template,
            "payload": self.payload or {},
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
        }

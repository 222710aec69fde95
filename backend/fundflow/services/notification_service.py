# Overview: Service-layer operations for outbound notifications.

from __future__ import annotations

import logging

from flask import current_app, has_app_context

from ..extensions import db
from ..models import NotificationOutbox
from fundflow.time_utils import utcnow

logger = logging.getLogger(__name__)


TEMPLATE_CREDENTIALS_ISSUED = "credentials_issued"
TEMPLATE_APPROVAL_REQUESTED = "approval_requested"
TEMPLATE_REQUEST_APPROVED = "request_approved"
TEMPLATE_REQUEST_REJECTED = "request_rejected"
VALID_TEMPLATES = {
    TEMPLATE_CREDENTIALS_ISSUED,
    TEMPLATE_APPROVAL_REQUESTED,
    TEMPLATE_REQUEST_APPROVED,
    TEMPLATE_REQUEST_REJECTED,
}


def _dispatcher():
    if not has_app_context():
        return None
    return current_app.config.get("NOTIFICATION_DISPATCHER")


def notify(
    person_id: int | None,
    template: str,
    payload: dict | None = None,
    *,
    account_id: int | None = None,
) -> NotificationOutbox:
    """
    Queue a notification in the caller's transaction.

    The row is flushed, not committed: it lands or disappears together with
    the change that caused it. If NOTIFICATION_DISPATCHER is configured it is
    called with the row; its failures are logged and never raised.
    """
    if template not in VALID_TEMPLATES:
        raise ValueError(f"Unknown notification template: {template}")

    row = NotificationOutbox(
        person_id=person_id,
        account_id=account_id,
        template=template,
        payload=dict(payload or {}),
    )
    db.session.add(row)
    db.session.flush()

    logger.info(
        "Notification queued",
        extra={"notification_id": row.id, "template": template, "person_id": person_id, "account_id": account_id},
    )

    dispatcher = _dispatcher()
    if dispatcher is not None:
        try:
            dispatcher(row)
        except Exception:
            logger.exception("Notification dispatcher failed", extra={"notification_id": row.id})

    return row


def list_pending(limit: int = 100) -> list[NotificationOutbox]:
    return (
        db.session.query(NotificationOutbox)
        .filter(NotificationOutbox.delivered_at.is_(None))
        .order_by(NotificationOutbox.id.asc())
        .limit(limit)
        .all()
    )


def mark_delivered(notification_id: int) -> bool:
    row = db.session.get(NotificationOutbox, notification_id)
    if not row or row.delivered_at is not None:
        return False
    row.delivered_at = utcnow()
    db.session.commit()
    return True

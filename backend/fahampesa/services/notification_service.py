"""
In-app notification dispatcher.

dispatch() is fire-and-forget: it is called after a workflow has committed,
writes the notification in its own transaction, and never raises. A failure
is logged and the session rolled back so the caller's result is unaffected.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification
from ..time_utils import utcnow
from .tenant_service import require_owned


def dispatch(
    user_id: str,
    event_type: str,
    title: str,
    message: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
) -> Notification | None:
    try:
        notification = Notification(
            user_id=user_id,
            event_type=event_type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to dispatch notification: tenant=%s event=%s entity=%s:%s",
            user_id, event_type, entity_type, entity_id,
        )
        return None


def list_notifications(user_id: str, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(user_id: str, notification_id: int) -> Notification:
    notification = require_owned(Notification, notification_id, user_id, label="Notification")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification

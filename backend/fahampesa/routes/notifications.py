# backend/fahampesa/routes/notifications.py
"""
In-app notification API routes.
"""
from flask import Blueprint, g

from ..decorators import handle_service_errors, require_tenant
from ..responses import query_flag, query_int, success
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_tenant
@handle_service_errors
def list_notifications():
    """
    Query params: unread_only (bool), limit
    """
    notifications = notification_service.list_notifications(
        g.tenant_id, unread_only=query_flag("unread_only"), limit=query_int("limit", 50)
    )
    return success([n.to_dict() for n in notifications])


@notifications_bp.post("/<int:notification_id>/read")
@require_tenant
@handle_service_errors
def mark_read(notification_id: int):
    return success(notification_service.mark_read(g.tenant_id, notification_id).to_dict())

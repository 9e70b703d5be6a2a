# backend/fahampesa/routes/purchase_orders.py
"""
Purchase order API routes.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_int, success
from ..services import purchase_order_service
from ..validation import coerce_flag


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_tenant
@handle_service_errors
def list_purchase_orders():
    """
    Query params: status, supplier_id, branch_id, limit, offset
    """
    orders = purchase_order_service.list_purchase_orders(
        g.tenant_id,
        status=request.args.get("status"),
        supplier_id=query_int("supplier_id"),
        branch_id=query_int("branch_id"),
        limit=query_int("limit", 50),
        offset=query_int("offset", 0),
    )
    return success([po.to_dict() for po in orders])


@purchase_orders_bp.post("")
@require_tenant
@handle_service_errors
def create_purchase_order():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "user_id": str,
        "supplier_id": int,
        "branch_id": int,
        "items": [{"product_id": int, "quantity_ordered": int, "unit_cost_cents": int}],
        "expected_delivery_date": ISO datetime (must be in the future),
        "requested_by": str (optional),
        "priority": str (optional),
        "payment_terms": str (optional),
        "shipping_cents": int (optional),
        "tax_cents": int (optional),
        "notes": str (optional)
    }

    Returns:
        201: Purchase order created
        400: Invalid request
        403: Supplier or branch belongs to another tenant
    """
    data = json_body()
    po = purchase_order_service.create_purchase_order(
        g.tenant_id,
        data["supplier_id"],
        data["branch_id"],
        data["items"],
        data["expected_delivery_date"],
        data.get("requested_by") or g.tenant_id,
        priority=data.get("priority") or "NORMAL",
        payment_terms=data.get("payment_terms"),
        shipping_cents=data.get("shipping_cents"),
        tax_cents=data.get("tax_cents"),
        notes=data.get("notes"),
    )
    return success(po.to_dict(), 201)


@purchase_orders_bp.get("/overdue")
@require_tenant
@handle_service_errors
def overdue_purchase_orders():
    orders = purchase_order_service.get_overdue_purchase_orders(g.tenant_id)
    return success([po.to_dict() for po in orders])


@purchase_orders_bp.get("/pending-approvals")
@require_tenant
@handle_service_errors
def pending_approvals():
    orders = purchase_order_service.get_pending_approvals(g.tenant_id)
    return success([po.to_dict() for po in orders])


@purchase_orders_bp.get("/summary")
@require_tenant
@handle_service_errors
def purchase_order_summary():
    return success(purchase_order_service.get_purchase_order_summary(g.tenant_id))


@purchase_orders_bp.get("/<int:po_id>")
@require_tenant
@handle_service_errors
def get_purchase_order(po_id: int):
    return success(purchase_order_service.get_purchase_order(g.tenant_id, po_id).to_dict())


@purchase_orders_bp.post("/<int:po_id>/submit")
@require_tenant
@handle_service_errors
def submit_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.submit_purchase_order(g.tenant_id, po_id, data.get("submitted_by"))
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/approve")
@require_tenant
@handle_service_errors
def approve_purchase_order(po_id: int):
    """
    Request body:
    {
        "user_id": str,
        "approved_by": str,
        "approved": bool (optional, default true),
        "reason": str (required when rejecting)
    }
    """
    data = json_body()
    po = purchase_order_service.approve_purchase_order(
        g.tenant_id,
        po_id,
        data.get("approved_by") or g.tenant_id,
        approved=coerce_flag(data.get("approved"), "approved", default=True),
        reason=data.get("reason"),
    )
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/send")
@require_tenant
@handle_service_errors
def send_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.send_purchase_order(
        g.tenant_id, po_id, sent_at=data.get("sent_at"), supplier_notes=data.get("supplier_notes")
    )
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/acknowledge")
@require_tenant
@handle_service_errors
def acknowledge_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.acknowledge_purchase_order(
        g.tenant_id,
        po_id,
        supplier_notes=data.get("supplier_notes"),
        expected_delivery_date=data.get("expected_delivery_date"),
    )
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/delay")
@require_tenant
@handle_service_errors
def delay_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.mark_delayed(g.tenant_id, po_id, reason=data.get("reason"))
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_tenant
@handle_service_errors
def receive_purchase_order(po_id: int):
    """
    Receive goods against a SENT, ACKNOWLEDGED or PARTIALLY_RECEIVED order.

    Request body:
    {
        "user_id": str,
        "received_by": str,
        "items": [{"product_id": int, "quantity_received": int, "defective_quantity": int (optional)}],
        "notes": str (optional)
    }

    Returns:
        200: Purchase order PARTIALLY_RECEIVED or RECEIVED
        400: Cumulative quantity above ordered, or not receivable
    """
    data = json_body()
    po = purchase_order_service.receive_purchase_order(
        g.tenant_id,
        po_id,
        data["items"],
        data.get("received_by") or g.tenant_id,
        notes=data.get("notes"),
    )
    return success(po.to_dict())


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_tenant
@handle_service_errors
def cancel_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.cancel_purchase_order(
        g.tenant_id, po_id, data.get("cancelled_by") or g.tenant_id, data.get("reason")
    )
    return success(po.to_dict())

# backend/fahampesa/routes/inventory.py
"""
Inventory API routes: stock levels, the movement ledger, adjustments,
low-stock alerts and physical stock audits.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_int, success
from ..services import audit_service, inventory_service
from ..validation import coerce_flag


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/stock")
@require_tenant
@handle_service_errors
def get_stock():
    """
    Query params: product_id, branch_id

    With both ids, returns the single InventoryItem; otherwise lists items
    (optionally for one branch).

    Returns:
        200: item or list of items
        404: No inventory record for (product, branch)
    """
    product_id = query_int("product_id")
    branch_id = query_int("branch_id")
    if product_id is not None and branch_id is not None:
        item = inventory_service.get_inventory_item(g.tenant_id, product_id, branch_id)
        return success(item.to_dict())

    items = inventory_service.list_inventory_items(g.tenant_id, branch_id=branch_id)
    if product_id is not None:
        items = [i for i in items if i.product_id == product_id]
    return success([i.to_dict() for i in items])


@inventory_bp.get("/movements")
@require_tenant
@handle_service_errors
def list_movements():
    """
    Query params: product_id, branch_id, movement_type, status,
    reference_type, reference_id, limit, offset
    """
    movements = inventory_service.list_movements(
        g.tenant_id,
        product_id=query_int("product_id"),
        branch_id=query_int("branch_id"),
        movement_type=request.args.get("movement_type"),
        status=request.args.get("status"),
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id"),
        limit=query_int("limit", 100),
        offset=query_int("offset", 0),
    )
    return success([m.to_dict() for m in movements])


@inventory_bp.post("/movements")
@require_tenant
@handle_service_errors
def record_movement():
    """
    Record a stock movement.

    Request body:
    {
        "user_id": str,
        "product_id": int,
        "branch_id": int,
        "movement_type": str,  // SALE, PURCHASE, INITIAL, ...
        "quantity": int,       // always positive
        "unit_cost_cents": int (optional),
        "direction": 1 | -1 (ADJUSTMENT only),
        "allow_negative": bool (ADJUSTMENT only),
        "status": "APPROVED" | "PENDING" (optional),
        "reference_type": str (optional),
        "reference_id": str (optional),
        "reason": str (optional),
        "notes": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Movement recorded
        400: Invalid request or insufficient stock
        403: Branch belongs to another tenant
        404: Product or inventory record not found
        409: Concurrent update conflict
    """
    data = json_body()
    movement = inventory_service.record_movement(
        g.tenant_id,
        data["product_id"],
        data["branch_id"],
        data["movement_type"],
        data["quantity"],
        reference_type=data.get("reference_type"),
        reference_id=data.get("reference_id"),
        unit_cost_cents=data.get("unit_cost_cents"),
        direction=data.get("direction"),
        allow_negative=coerce_flag(data.get("allow_negative"), "allow_negative", default=False),
        status=data.get("status") or "APPROVED",
        created_by=data.get("created_by"),
        reason=data.get("reason"),
        notes=data.get("notes"),
    )
    return success(movement.to_dict(), 201)


@inventory_bp.post("/movements/<int:movement_id>/approve")
@require_tenant
@handle_service_errors
def approve_movement(movement_id: int):
    data = json_body()
    movement = inventory_service.approve_movement(
        g.tenant_id, movement_id, data.get("approved_by") or g.tenant_id
    )
    return success(movement.to_dict())


@inventory_bp.post("/movements/<int:movement_id>/cancel")
@require_tenant
@handle_service_errors
def cancel_movement(movement_id: int):
    data = json_body()
    movement = inventory_service.cancel_movement(
        g.tenant_id, movement_id, data.get("cancelled_by") or g.tenant_id, reason=data.get("reason")
    )
    return success(movement.to_dict())


@inventory_bp.post("/adjust")
@require_tenant
@handle_service_errors
def adjust_stock():
    """
    Request body:
    {
        "user_id": str,
        "product_id": int,
        "branch_id": int,
        "quantity_delta": int,  // signed, non-zero
        "reason": str,
        "allow_negative": bool (optional),
        "status": "APPROVED" | "PENDING" (optional)
    }
    """
    data = json_body()
    movement = inventory_service.adjust_stock(
        g.tenant_id,
        data["product_id"],
        data["branch_id"],
        data["quantity_delta"],
        data["reason"],
        created_by=data.get("created_by"),
        allow_negative=coerce_flag(data.get("allow_negative"), "allow_negative", default=False),
        status=data.get("status") or "APPROVED",
        notes=data.get("notes"),
    )
    return success(movement.to_dict(), 201)


@inventory_bp.put("/settings")
@require_tenant
@handle_service_errors
def update_settings():
    """
    Request body:
    {
        "user_id": str,
        "product_id": int,
        "branch_id": int,
        "min_stock_level": int (optional),
        "max_stock_level": int (optional),
        "reorder_point": int (optional),
        "reorder_quantity": int (optional)
    }
    """
    data = json_body()
    item = inventory_service.update_stock_settings(g.tenant_id, data["product_id"], data["branch_id"], data)
    return success(item.to_dict())


@inventory_bp.get("/alerts")
@require_tenant
@handle_service_errors
def low_stock_alerts():
    items = inventory_service.get_low_stock_items(g.tenant_id, branch_id=query_int("branch_id"))
    return success([i.to_dict() for i in items])


@inventory_bp.get("/dashboard")
@require_tenant
@handle_service_errors
def dashboard():
    return success(inventory_service.get_inventory_dashboard(g.tenant_id, branch_id=query_int("branch_id")))


@inventory_bp.get("/verify")
@require_tenant
@handle_service_errors
def verify():
    """
    Replay the ledger against the materialized stock rows.

    Returns:
        200: {"consistent": bool, "drift": [...]}
    """
    drift = inventory_service.verify_inventory(g.tenant_id, branch_id=query_int("branch_id"))
    return success({"consistent": not drift, "drift": drift})


@inventory_bp.get("/audits")
@require_tenant
@handle_service_errors
def list_audits():
    audits = audit_service.list_stock_audits(
        g.tenant_id, branch_id=query_int("branch_id"), status=request.args.get("status")
    )
    return success([a.to_dict() for a in audits])


@inventory_bp.post("/audits")
@require_tenant
@handle_service_errors
def create_audit():
    """
    Start a stock audit.

    Request body:
    {
        "user_id": str,
        "branch_id": int,
        "audit_type": "FULL" | "PARTIAL" | "CYCLE" (optional),
        "product_ids": [int] (required unless FULL),
        "audited_by": str (optional),
        "notes": str (optional)
    }
    """
    data = json_body()
    audit = audit_service.create_stock_audit(
        g.tenant_id,
        data["branch_id"],
        data.get("audited_by") or g.tenant_id,
        audit_type=data.get("audit_type") or "FULL",
        product_ids=data.get("product_ids"),
        notes=data.get("notes"),
    )
    return success(audit.to_dict(), 201)


@inventory_bp.get("/audits/<int:audit_id>")
@require_tenant
@handle_service_errors
def get_audit(audit_id: int):
    return success(audit_service.get_stock_audit(g.tenant_id, audit_id).to_dict())


@inventory_bp.post("/audits/<int:audit_id>/reconcile")
@require_tenant
@handle_service_errors
def reconcile_audit(audit_id: int):
    """
    Request body:
    {
        "user_id": str,
        "counts": [{"product_id": int, "physical_stock": int, "notes": str (optional)}],
        "reviewed_by": str (optional),
        "notes": str (optional)
    }

    Returns:
        200: Audit completed, adjustments posted
        400: Invalid counts or audit not IN_PROGRESS
    """
    data = json_body()
    audit = audit_service.reconcile_stock_audit(
        g.tenant_id,
        audit_id,
        data["counts"],
        data.get("reviewed_by") or g.tenant_id,
        notes=data.get("notes"),
    )
    return success(audit.to_dict())


@inventory_bp.post("/audits/<int:audit_id>/cancel")
@require_tenant
@handle_service_errors
def cancel_audit(audit_id: int):
    data = json_body()
    audit = audit_service.cancel_stock_audit(
        g.tenant_id, audit_id, data.get("cancelled_by") or g.tenant_id, reason=data.get("reason")
    )
    return success(audit.to_dict())

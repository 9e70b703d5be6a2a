# backend/fahampesa/routes/suppliers.py
"""
Supplier registry API routes.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_int, success
from ..services import supplier_service
from ..validation import coerce_flag


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_tenant
@handle_service_errors
def list_suppliers():
    """
    Query params: status (archived suppliers are hidden unless requested), category, search
    """
    suppliers = supplier_service.list_suppliers(
        g.tenant_id,
        status=request.args.get("status"),
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return success([s.to_dict() for s in suppliers])


@suppliers_bp.get("/dashboard")
@require_tenant
@handle_service_errors
def supplier_dashboard():
    """Supplier counts, top suppliers by orders, recent orders, pending approvals and overdue deliveries."""
    return success(supplier_service.get_supplier_dashboard(g.tenant_id))


@suppliers_bp.post("")
@require_tenant
@handle_service_errors
def create_supplier():
    data = json_body()
    supplier = supplier_service.create_supplier(g.tenant_id, data, created_by=data.get("created_by"))
    return success(supplier.to_dict(), 201)


@suppliers_bp.get("/<int:supplier_id>")
@require_tenant
@handle_service_errors
def get_supplier(supplier_id: int):
    return success(supplier_service.get_supplier(g.tenant_id, supplier_id).to_dict())


@suppliers_bp.put("/<int:supplier_id>")
@require_tenant
@handle_service_errors
def update_supplier(supplier_id: int):
    supplier = supplier_service.update_supplier(g.tenant_id, supplier_id, json_body())
    return success(supplier.to_dict())


@suppliers_bp.delete("/<int:supplier_id>")
@require_tenant
@handle_service_errors
def delete_supplier(supplier_id: int):
    """
    Hard delete. Blocked with 409 (can_archive: true) when purchase orders
    reference the supplier.
    """
    supplier_service.delete_supplier(g.tenant_id, supplier_id)
    return success({"id": supplier_id, "deleted": True})


@suppliers_bp.post("/<int:supplier_id>/archive")
@require_tenant
@handle_service_errors
def archive_supplier(supplier_id: int):
    return success(supplier_service.archive_supplier(g.tenant_id, supplier_id).to_dict())


@suppliers_bp.get("/<int:supplier_id>/performance")
@require_tenant
@handle_service_errors
def get_supplier_performance(supplier_id: int):
    return success(supplier_service.get_supplier_performance(g.tenant_id, supplier_id))


@suppliers_bp.post("/<int:supplier_id>/performance")
@require_tenant
@handle_service_errors
def update_supplier_performance(supplier_id: int):
    """
    Request body:
    {
        "user_id": str,
        "on_time_delivery": bool (with delivery_days),
        "delivery_days": int,
        "quality_rating": 1-5 (optional),
        "service_rating": 1-5 (optional),
        "pricing_rating": 1-5 (optional)
    }
    """
    data = json_body()
    supplier = supplier_service.update_supplier_performance(
        g.tenant_id,
        supplier_id,
        on_time_delivery=coerce_flag(data.get("on_time_delivery"), "on_time_delivery", default=None),
        delivery_days=data.get("delivery_days"),
        quality_rating=data.get("quality_rating"),
        service_rating=data.get("service_rating"),
        pricing_rating=data.get("pricing_rating"),
    )
    return success(supplier.to_dict())


@suppliers_bp.get("/<int:supplier_id>/price-history")
@require_tenant
@handle_service_errors
def get_price_history(supplier_id: int):
    """
    Query params: product_id (optional)

    Newest first; the row with is_active=true is the current price.
    """
    history = supplier_service.get_price_history(
        g.tenant_id, supplier_id, product_id=query_int("product_id")
    )
    return success([entry.to_dict() for entry in history])

# backend/fahampesa/routes/branches.py
"""
Branch registry API routes.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_flag, query_int_list, success
from ..services import branch_service, transfer_service


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_tenant
@handle_service_errors
def list_branches():
    """
    Query params: status, branch_type, search, active_only (bool)

    Returns:
        200: list of branches
    """
    if query_flag("active_only"):
        branches = branch_service.get_active_branches(g.tenant_id)
    else:
        branches = branch_service.list_branches(
            g.tenant_id,
            status=request.args.get("status"),
            branch_type=request.args.get("branch_type"),
            search=request.args.get("search"),
        )
    return success([b.to_dict() for b in branches])


@branches_bp.post("")
@require_tenant
@handle_service_errors
def create_branch():
    """
    Create a branch. branch_code is allocated automatically (BR001, ...).

    Request body:
    {
        "user_id": str,
        "name": str,
        "location": {"address": str, "city": str, ...},
        "contact": {"phone": str, "email": str, ...} (optional),
        "opening_hours": [{"day_of_week": str, "is_open": bool, "open_time": "HH:MM", "close_time": "HH:MM"}] (optional),
        "branch_type": str (optional),
        "manager_id": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Branch created
        400: Invalid request
    """
    data = json_body()
    branch = branch_service.create_branch(g.tenant_id, data, created_by=data.get("created_by"))
    return success(branch.to_dict(), 201)


@branches_bp.get("/dashboard")
@require_tenant
@handle_service_errors
def branch_dashboard():
    return success(branch_service.get_branch_dashboard(g.tenant_id))


@branches_bp.get("/stock-summary")
@require_tenant
@handle_service_errors
def multibranch_stock_summary():
    """
    Query params: product_ids (comma-separated, optional)

    Returns:
        200: per-product stock across every branch
    """
    summary = branch_service.get_multibranch_stock_summary(g.tenant_id, query_int_list("product_ids"))
    return success(summary)


@branches_bp.get("/<int:branch_id>")
@require_tenant
@handle_service_errors
def get_branch(branch_id: int):
    branch = branch_service.get_branch(g.tenant_id, branch_id)
    return success(branch.to_dict())


@branches_bp.put("/<int:branch_id>")
@require_tenant
@handle_service_errors
def update_branch(branch_id: int):
    """
    Partial update. Status changes away from ACTIVE are blocked while
    transfers are pending.

    Returns:
        200: Branch updated
        400: Invalid request
        403: Branch belongs to another tenant
        404: Branch not found
        409: Branch has pending transfers
    """
    branch = branch_service.update_branch(g.tenant_id, branch_id, json_body())
    return success(branch.to_dict())


@branches_bp.delete("/<int:branch_id>")
@require_tenant
@handle_service_errors
def delete_branch(branch_id: int):
    """
    Deactivate a branch, or hard-delete it with ?permanent=true.

    Returns:
        200: Branch deactivated / deleted
        409: Branch in use; body carries can_archive and the blocking reasons
    """
    if query_flag("permanent"):
        branch_service.delete_branch(g.tenant_id, branch_id)
        return success({"id": branch_id, "deleted": True})

    reason = request.args.get("reason") or json_body().get("reason")
    branch = branch_service.deactivate_branch(g.tenant_id, branch_id, reason=reason)
    return success(branch.to_dict())


@branches_bp.get("/<int:branch_id>/inventory")
@require_tenant
@handle_service_errors
def branch_inventory(branch_id: int):
    return success(branch_service.get_branch_inventory_summary(g.tenant_id, branch_id))


@branches_bp.get("/<int:branch_id>/transfers")
@require_tenant
@handle_service_errors
def branch_transfer_history(branch_id: int):
    return success(transfer_service.get_transfer_history(g.tenant_id, branch_id))

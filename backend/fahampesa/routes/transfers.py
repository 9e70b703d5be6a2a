# backend/fahampesa/routes/transfers.py
"""
Inter-branch transfer API routes.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_int, success
from ..services import transfer_service
from ..validation import coerce_flag


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_tenant
@handle_service_errors
def list_transfers():
    """
    Query params: status, branch_id (either side), priority, limit, offset
    """
    transfers = transfer_service.list_transfers(
        g.tenant_id,
        status=request.args.get("status"),
        branch_id=query_int("branch_id"),
        priority=request.args.get("priority"),
        limit=query_int("limit", 50),
        offset=query_int("offset", 0),
    )
    return success([t.to_dict() for t in transfers])


@transfers_bp.post("")
@require_tenant
@handle_service_errors
def create_transfer():
    """
    Request a transfer between two branches.

    Request body:
    {
        "user_id": str,
        "from_branch_id": int,
        "to_branch_id": int,
        "items": [{"product_id": int, "requested_quantity": int, "notes": str (optional)}],
        "requested_by": str,
        "priority": "LOW" | "NORMAL" | "HIGH" | "URGENT" (optional),
        "transfer_type": str (optional),
        "transport_method": str (optional),
        "request_reason": str (optional),
        "estimated_arrival": ISO datetime (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (REQUESTED)
        400: Invalid request (same branch, unknown product, insufficient stock)
        403: Branch belongs to another tenant
    """
    data = json_body()
    transfer = transfer_service.create_transfer(
        g.tenant_id,
        data["from_branch_id"],
        data["to_branch_id"],
        data["items"],
        data.get("requested_by") or g.tenant_id,
        priority=data.get("priority") or "NORMAL",
        transfer_type=data.get("transfer_type") or "STOCK_REBALANCING",
        transport_method=data.get("transport_method"),
        request_reason=data.get("request_reason"),
        estimated_arrival=data.get("estimated_arrival"),
        notes=data.get("notes"),
    )
    return success(transfer.to_dict(), 201)


@transfers_bp.get("/<int:transfer_id>")
@require_tenant
@handle_service_errors
def get_transfer(transfer_id: int):
    return success(transfer_service.get_transfer(g.tenant_id, transfer_id).to_dict())


@transfers_bp.post("/<int:transfer_id>/approve")
@require_tenant
@handle_service_errors
def approve_transfer(transfer_id: int):
    """
    Approve (reserving source stock) or reject a REQUESTED transfer.

    Request body:
    {
        "user_id": str,
        "approved_by": str,
        "approved": bool (optional, default true),
        "items": [{"product_id": int, "approved_quantity": int}] (optional; defaults to requested),
        "rejection_reason": str (required when approved is false)
    }

    Returns:
        200: Transfer APPROVED or REJECTED
        400: Self-approval, quantity above requested, or not REQUESTED
    """
    data = json_body()
    transfer = transfer_service.approve_transfer(
        g.tenant_id,
        transfer_id,
        data["approved_by"],
        approvals=data.get("items"),
        approved=coerce_flag(data.get("approved"), "approved", default=True),
        rejection_reason=data.get("rejection_reason"),
    )
    return success(transfer.to_dict())


@transfers_bp.post("/<int:transfer_id>/ship")
@require_tenant
@handle_service_errors
def ship_transfer(transfer_id: int):
    data = json_body()
    transfer = transfer_service.ship_transfer(
        g.tenant_id,
        transfer_id,
        data.get("shipped_by") or g.tenant_id,
        tracking_number=data.get("tracking_number"),
        estimated_arrival=data.get("estimated_arrival"),
        transport_method=data.get("transport_method"),
        shipping_notes=data.get("shipping_notes"),
    )
    return success(transfer.to_dict())


@transfers_bp.post("/<int:transfer_id>/receive")
@require_tenant
@handle_service_errors
def receive_transfer(transfer_id: int):
    """
    Receive (part of) an IN_TRANSIT transfer.

    Request body:
    {
        "user_id": str,
        "received_by": str,
        "items": [{"product_id": int, "received_quantity": int, "damaged_quantity": int (optional)}],
        "receiving_notes": str (optional)
    }

    Returns:
        200: Transfer RECEIVED, or still IN_TRANSIT after a partial receipt
        400: Quantity above approved, or not IN_TRANSIT
    """
    data = json_body()
    transfer = transfer_service.receive_transfer(
        g.tenant_id,
        transfer_id,
        data.get("received_by") or g.tenant_id,
        data["items"],
        receiving_notes=data.get("receiving_notes"),
    )
    return success(transfer.to_dict())


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_tenant
@handle_service_errors
def cancel_transfer(transfer_id: int):
    data = json_body()
    transfer = transfer_service.cancel_transfer(
        g.tenant_id,
        transfer_id,
        data.get("cancelled_by") or g.tenant_id,
        data.get("reason"),
    )
    return success(transfer.to_dict())

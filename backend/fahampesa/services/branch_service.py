# Overview: Branch registry; CRUD with guarded deactivation and hard deletion.

"""
Branch lifecycle rules:
- branch_code is allocated as BR001, BR002, ... per tenant, one past the
  highest code the tenant currently holds
- deactivation (status INACTIVE) is blocked while any REQUESTED, APPROVED or
  IN_TRANSIT transfer references the branch
- hard deletion is only allowed for a branch with no transfer history, no
  inventory items and no stock movements or audits; otherwise
  BranchInUseError carries can_archive=True so the client can offer
  deactivation instead
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import func, or_

from ..errors import BranchInUseError, ValidationError
from ..extensions import db
from ..models import Branch, BranchTransfer, InventoryItem, PurchaseOrder, StockAudit, StockMovement
from ..models.branches import (
    BRANCH_STATUS_ACTIVE,
    BRANCH_STATUS_INACTIVE,
    BRANCH_STATUSES,
    BRANCH_TYPES,
)
from ..models.transfers import TRANSFER_OPEN_STATUSES, TRANSFER_STATUS_IN_TRANSIT, TRANSFER_STATUS_REQUESTED
from ..schemas import BranchContact, BranchLocation, parse_opening_hours
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, require_choice, validate_payload
from .concurrency import run_with_retry
from .inventory_service import get_low_stock_items, list_inventory_items, list_movements
from .tenant_service import require_owned


BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "branch_type", "description", "status",
        "manager_id", "manager_name", "max_capacity", "currency",
    },
    required_on_create={"name"},
)

_CODE_RE = re.compile(r"^[A-Z]+(\d+)$")


def _next_branch_code(user_id: str) -> str:
    prefix = current_app.config.get("BRANCH_CODE_PREFIX", "BR")
    codes = db.session.query(Branch.branch_code).filter(Branch.user_id == user_id).all()
    highest = 0
    for (code,) in codes:
        match = _CODE_RE.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}{highest + 1:03d}"


def _clean_scalar_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=partial)
    if "branch_type" in patch:
        patch["branch_type"] = require_choice(patch["branch_type"], "branch_type", BRANCH_TYPES)
    if "status" in patch:
        patch["status"] = require_choice(patch["status"], "status", BRANCH_STATUSES)
    if patch.get("max_capacity") is not None and patch["max_capacity"] < 0:
        raise ValidationError("max_capacity must be >= 0")
    return patch


def _open_transfer_count(branch_id: int) -> int:
    return db.session.query(func.count(BranchTransfer.id)).filter(
        or_(BranchTransfer.from_branch_id == branch_id, BranchTransfer.to_branch_id == branch_id),
        BranchTransfer.status.in_(TRANSFER_OPEN_STATUSES),
    ).scalar()


def _guard_deactivation(branch: Branch) -> None:
    if _open_transfer_count(branch.id):
        raise BranchInUseError(
            "Cannot deactivate branch with pending transfers. Complete or cancel them first.",
            has_pending_transfers=True,
        )


def create_branch(user_id: str, payload: dict, created_by: str | None = None) -> Branch:
    """
    Create a branch (status ACTIVE unless given).

    name and location.address are required; opening hours default to
    Mon-Sat 08:00-18:00 with Sunday closed.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = _clean_scalar_patch(payload, partial=False)

    location = BranchLocation.from_dict(payload.get("location"))
    location.validate()
    contact = BranchContact.from_dict(payload.get("contact"))
    contact.validate()
    opening_hours = parse_opening_hours(payload.get("opening_hours"))
    patch.setdefault("currency", current_app.config.get("DEFAULT_CURRENCY", "KES"))

    def _op():
        branch = Branch(
            user_id=user_id,
            branch_code=_next_branch_code(user_id),
            created_by=created_by or user_id,
            **patch,
        )
        branch.location = location
        branch.contact = contact
        branch.opening_hours = opening_hours
        db.session.add(branch)
        db.session.commit()
        return branch

    branch = run_with_retry(_op)
    current_app.logger.info("Branch created: tenant=%s id=%s code=%s", user_id, branch.id, branch.branch_code)
    return branch


def get_branch(user_id: str, branch_id: int) -> Branch:
    return require_owned(Branch, branch_id, user_id, label="Branch")


def list_branches(
    user_id: str,
    *,
    status: str | None = None,
    branch_type: str | None = None,
    search: str | None = None,
) -> list[Branch]:
    query = db.session.query(Branch).filter_by(user_id=user_id)
    if status:
        query = query.filter(Branch.status == status.upper())
    if branch_type:
        query = query.filter(Branch.branch_type == branch_type.upper())
    branches = query.order_by(Branch.name.asc()).all()

    if search:
        needle = search.strip().lower()
        branches = [
            b for b in branches
            if needle in b.name.lower()
            or needle in (b.branch_code or "").lower()
            or needle in (b.location.address or "").lower()
            or needle in (b.location.city or "").lower()
        ]
    return branches


def get_active_branches(user_id: str) -> list[Branch]:
    return list_branches(user_id, status=BRANCH_STATUS_ACTIVE)


def update_branch(user_id: str, branch_id: int, payload: dict) -> Branch:
    """
    Partial update. Nested documents are replaced whole after validation;
    name and address may not be blanked.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = _clean_scalar_patch(payload, partial=True)

    location = contact = opening_hours = None
    if "location" in payload:
        location = BranchLocation.from_dict(payload["location"])
        location.validate()
    if "contact" in payload:
        contact = BranchContact.from_dict(payload["contact"])
        contact.validate()
    if "opening_hours" in payload:
        opening_hours = parse_opening_hours(payload["opening_hours"])

    if not patch and location is None and contact is None and opening_hours is None:
        raise ValidationError("No updatable fields provided")

    def _op():
        branch = require_owned(Branch, branch_id, user_id, lock=True, label="Branch")
        new_status = patch.get("status")
        if new_status and new_status != branch.status:
            if new_status == BRANCH_STATUS_INACTIVE:
                _guard_deactivation(branch)
                branch.deactivated_at = utcnow()
            elif branch.status == BRANCH_STATUS_INACTIVE:
                branch.deactivated_at = None
                branch.deactivation_reason = None

        for key, value in patch.items():
            setattr(branch, key, value)
        if location is not None:
            branch.location = location
        if contact is not None:
            branch.contact = contact
        if opening_hours is not None:
            branch.opening_hours = opening_hours

        db.session.commit()
        return branch

    return run_with_retry(_op)


def deactivate_branch(user_id: str, branch_id: int, reason: str | None = None) -> Branch:
    """Soft delete: status INACTIVE. Blocked by open transfers."""
    def _op():
        branch = require_owned(Branch, branch_id, user_id, lock=True, label="Branch")
        if branch.status == BRANCH_STATUS_INACTIVE:
            return branch
        _guard_deactivation(branch)
        branch.status = BRANCH_STATUS_INACTIVE
        branch.deactivated_at = utcnow()
        branch.deactivation_reason = reason
        db.session.commit()
        return branch

    branch = run_with_retry(_op)
    current_app.logger.info("Branch deactivated: tenant=%s id=%s", user_id, branch_id)
    return branch


def delete_branch(user_id: str, branch_id: int) -> None:
    """
    Hard delete. Raises BranchInUseError (can_archive=True) when the branch
    has transfer history, inventory, purchase orders, stock movements or
    stock audits.
    """
    def _op():
        branch = require_owned(Branch, branch_id, user_id, lock=True, label="Branch")

        has_transfer_history = bool(db.session.query(func.count(BranchTransfer.id)).filter(
            or_(BranchTransfer.from_branch_id == branch.id, BranchTransfer.to_branch_id == branch.id)
        ).scalar())
        has_inventory = bool(
            db.session.query(func.count(InventoryItem.id)).filter(InventoryItem.branch_id == branch.id).scalar()
        )
        has_purchase_orders = bool(
            db.session.query(func.count(PurchaseOrder.id)).filter(PurchaseOrder.branch_id == branch.id).scalar()
        )
        has_movement_history = bool(db.session.query(func.count(StockMovement.id)).filter(
            or_(
                StockMovement.branch_id == branch.id,
                StockMovement.from_branch_id == branch.id,
                StockMovement.to_branch_id == branch.id,
            )
        ).scalar()) or bool(
            db.session.query(func.count(StockAudit.id)).filter(StockAudit.branch_id == branch.id).scalar()
        )

        if has_transfer_history or has_inventory or has_purchase_orders or has_movement_history:
            raise BranchInUseError(
                "Cannot permanently delete a branch with inventory or ledger history. "
                "Deactivate it instead.",
                can_archive=True,
                can_deactivate=not _open_transfer_count(branch.id),
                has_transfer_history=has_transfer_history,
                has_inventory=has_inventory,
                has_purchase_orders=has_purchase_orders,
                has_movement_history=has_movement_history,
            )

        db.session.delete(branch)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Branch deleted: tenant=%s id=%s", user_id, branch_id)


def get_branch_inventory_summary(user_id: str, branch_id: int) -> dict:
    branch = get_branch(user_id, branch_id)
    items = list_inventory_items(user_id, branch.id)
    low_stock = get_low_stock_items(user_id, branch.id)

    return {
        "branch_id": branch.id,
        "branch_name": branch.name,
        "total_products": len(items),
        "total_inventory_value_cents": sum(i.current_stock * i.average_cost_cents for i in items),
        "low_stock_items": len(low_stock),
        "out_of_stock_items": sum(1 for i in items if i.current_stock <= 0),
        "recent_movements": [m.to_dict() for m in list_movements(user_id, branch_id=branch.id, limit=10)],
        "alerts": {
            "low_stock": [
                {
                    "product_id": i.product_id,
                    "product_name": i.product.name if i.product else None,
                    "current_stock": i.current_stock,
                    "min_stock_level": i.min_stock_level,
                }
                for i in low_stock
            ],
        },
    }


def get_multibranch_stock_summary(user_id: str, product_ids: list[int] | None = None) -> list[dict]:
    """Per-product stock totals across ACTIVE branches, with the per-branch breakdown."""
    branches = {b.id: b for b in get_active_branches(user_id)}
    summary: dict[int, dict] = {}
    for item in list_inventory_items(user_id):
        branch = branches.get(item.branch_id)
        if branch is None:
            continue
        if product_ids and item.product_id not in product_ids:
            continue
        entry = summary.setdefault(item.product_id, {
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "total_stock": 0,
            "total_available": 0,
            "total_reserved": 0,
            "branch_stocks": [],
        })
        entry["total_stock"] += item.current_stock
        entry["total_available"] += item.available_stock
        entry["total_reserved"] += item.reserved_stock
        entry["branch_stocks"].append({
            "branch_id": branch.id,
            "branch_name": branch.name,
            "current_stock": item.current_stock,
            "available_stock": item.available_stock,
            "is_low_stock": item.is_low_stock,
        })
    return list(summary.values())


def get_branch_dashboard(user_id: str) -> dict:
    branches = list_branches(user_id)
    active = [b for b in branches if b.status == BRANCH_STATUS_ACTIVE]
    transfer_counts = dict(
        db.session.query(BranchTransfer.status, func.count(BranchTransfer.id))
        .filter(BranchTransfer.user_id == user_id)
        .group_by(BranchTransfer.status)
        .all()
    )
    recent = (
        db.session.query(BranchTransfer)
        .filter_by(user_id=user_id)
        .order_by(BranchTransfer.created_at.desc(), BranchTransfer.id.desc())
        .limit(10)
        .all()
    )

    per_branch = []
    for branch in active:
        summary = get_branch_inventory_summary(user_id, branch.id)
        per_branch.append({
            "branch_id": branch.id,
            "branch_name": branch.name,
            "inventory_value_cents": summary["total_inventory_value_cents"],
            "products_count": summary["total_products"],
            "low_stock_items": summary["low_stock_items"],
        })

    return {
        "total_branches": len(branches),
        "active_branches": len(active),
        "total_products": sum(b["products_count"] for b in per_branch),
        "total_inventory_value_cents": sum(b["inventory_value_cents"] for b in per_branch),
        "low_stock_alerts": sum(b["low_stock_items"] for b in per_branch),
        "pending_transfers": transfer_counts.get(TRANSFER_STATUS_REQUESTED, 0),
        "in_transit_transfers": transfer_counts.get(TRANSFER_STATUS_IN_TRANSIT, 0),
        "recent_transfers": [t.to_dict() for t in recent],
        "top_branches": sorted(per_branch, key=lambda b: b["inventory_value_cents"], reverse=True)[:5],
    }

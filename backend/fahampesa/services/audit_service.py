# backend/fahampesa/services/audit_service.py
"""
Physical stock audit (count) service.

WHY: Regular physical counts keep the ledger honest. An audit snapshots
system stock per product, collects physical counts, and posts the
differences as ADJUSTMENT movements (reference AUDIT).

LIFECYCLE:
1. IN_PROGRESS: System stock snapshotted, counts being entered
2. COMPLETED: Counts reconciled, adjustments posted in one transaction
3. CANCELLED: Abandoned before reconciliation
"""
from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, InventoryItem, StockAudit, StockAuditItem
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_INITIAL
from ..time_utils import utcnow
from ..validation import require_choice, require_item_list, require_non_negative_int, require_positive_int, require_text
from .catalog_service import product_catalog
from .concurrency import run_with_retry
from .inventory_service import _get_item_for_update, _record_movement_inner
from .tenant_service import require_owned


AUDIT_STATUS_IN_PROGRESS = "IN_PROGRESS"
AUDIT_STATUS_COMPLETED = "COMPLETED"
AUDIT_STATUS_CANCELLED = "CANCELLED"

AUDIT_TYPES = {"FULL", "PARTIAL", "CYCLE"}


def create_stock_audit(
    user_id: str,
    branch_id,
    audited_by: str,
    *,
    audit_type: str = "FULL",
    product_ids=None,
    notes: str | None = None,
) -> StockAudit:
    """
    Start an audit for a branch.

    FULL audits cover every inventory item at the branch. PARTIAL and CYCLE
    audits cover the given product_ids; products without an inventory row
    are included with system stock 0.
    """
    branch_id = require_positive_int(branch_id, "branch_id")
    audited_by = require_text(audited_by, "audited_by")
    audit_type = require_choice(audit_type or "FULL", "audit_type", AUDIT_TYPES)
    if product_ids is not None:
        if not isinstance(product_ids, list):
            raise ValidationError("product_ids must be a list")
        product_ids = sorted({require_positive_int(pid, "product_id") for pid in product_ids})
    if audit_type != "FULL" and not product_ids:
        raise ValidationError(f"product_ids are required for a {audit_type} audit")

    def _op():
        require_owned(Branch, branch_id, user_id, label="Branch")
        stock = {
            item.product_id: item
            for item in db.session.query(InventoryItem).filter_by(branch_id=branch_id).all()
        }
        targets = product_ids if product_ids else sorted(stock)
        if not targets:
            raise ValidationError("Branch has no inventory to audit")

        audit = StockAudit(
            user_id=user_id,
            branch_id=branch_id,
            audit_type=audit_type,
            status=AUDIT_STATUS_IN_PROGRESS,
            audited_by=audited_by,
            notes=notes,
        )
        for product_id in targets:
            if product_id not in stock:
                try:
                    product_catalog.get_product(user_id, product_id)
                except NotFoundError as exc:
                    raise ValidationError(f"Product {product_id} not found in catalog") from exc
            item = stock.get(product_id)
            audit.items.append(StockAuditItem(
                product_id=product_id,
                system_stock=item.current_stock if item else 0,
                unit_cost_cents=item.average_cost_cents if item else 0,
            ))
        audit.total_items_audited = len(audit.items)

        db.session.add(audit)
        db.session.commit()
        return audit

    return run_with_retry(_op)


def reconcile_stock_audit(
    user_id: str,
    audit_id: int,
    counts,
    reviewed_by: str,
    *,
    notes: str | None = None,
) -> StockAudit:
    """
    Record physical counts and post the differences.

    counts: [{product_id, physical_stock, notes?}]. For each counted line the
    discrepancy against the snapshot is recorded, and an ADJUSTMENT brings
    live stock to the physical count. Uncounted lines stay unreconciled.
    All adjustments and the COMPLETED status commit together.
    """
    reviewed_by = require_text(reviewed_by, "reviewed_by")
    parsed: dict[int, tuple[int, str | None]] = {}
    for entry in require_item_list(counts, "counts"):
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        if product_id in parsed:
            raise ValidationError(f"Product {product_id} appears more than once")
        parsed[product_id] = (require_non_negative_int(entry.get("physical_stock"), "physical_stock"), entry.get("notes"))

    def _op():
        audit = require_owned(StockAudit, audit_id, user_id, lock=True, label="Stock audit")
        if audit.status != AUDIT_STATUS_IN_PROGRESS:
            raise InvalidStateTransitionError("stock audit", "reconcile", audit.status, {AUDIT_STATUS_IN_PROGRESS})

        by_product = {line.product_id: line for line in audit.items}
        unknown = sorted(set(parsed) - set(by_product))
        if unknown:
            raise ValidationError(f"Product {unknown[0]} is not part of this audit")

        now = utcnow()
        discrepancies = 0
        value_adjustment = 0
        for product_id, (physical, line_notes) in parsed.items():
            line = by_product[product_id]
            line.physical_stock = physical
            line.discrepancy = physical - line.system_stock
            line.discrepancy_value_cents = line.discrepancy * line.unit_cost_cents
            line.reconciliation_notes = line_notes
            line.is_reconciled = True
            if line.discrepancy:
                discrepancies += 1
                value_adjustment += line.discrepancy_value_cents

            item = _get_item_for_update(user_id, product_id, audit.branch_id, create_for=MOVEMENT_INITIAL)
            delta = physical - item.current_stock
            if delta:
                movement = _record_movement_inner(
                    user_id=user_id,
                    product_id=product_id,
                    branch_id=audit.branch_id,
                    movement_type=MOVEMENT_ADJUSTMENT,
                    quantity=abs(delta),
                    direction=1 if delta > 0 else -1,
                    created_by=reviewed_by,
                    reference_type="AUDIT",
                    reference_id=audit.id,
                    allow_negative=True,
                    reason=f"Stock audit {audit.id} reconciliation",
                    notes=line_notes,
                )
                line.adjustment_movement_id = movement.id
            item.last_count_at = now
            item.last_count_stock = physical
            item.last_count_user_id = reviewed_by

        audit.total_discrepancies = discrepancies
        audit.total_value_adjustment_cents = value_adjustment
        audit.status = AUDIT_STATUS_COMPLETED
        audit.reviewed_by = reviewed_by
        audit.completed_at = now
        if notes:
            audit.notes = f"{audit.notes}\n{notes}" if audit.notes else notes

        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    current_app.logger.info(
        "Stock audit reconciled: tenant=%s id=%s discrepancies=%s", user_id, audit.id, audit.total_discrepancies
    )
    return audit


def cancel_stock_audit(user_id: str, audit_id: int, cancelled_by: str, reason: str | None = None) -> StockAudit:
    cancelled_by = require_text(cancelled_by, "cancelled_by")

    def _op():
        audit = require_owned(StockAudit, audit_id, user_id, lock=True, label="Stock audit")
        if audit.status != AUDIT_STATUS_IN_PROGRESS:
            raise InvalidStateTransitionError("stock audit", "cancel", audit.status, {AUDIT_STATUS_IN_PROGRESS})
        audit.status = AUDIT_STATUS_CANCELLED
        audit.reviewed_by = cancelled_by
        if reason:
            audit.notes = f"{audit.notes}\nCancelled: {reason}" if audit.notes else f"Cancelled: {reason}"
        db.session.commit()
        return audit

    return run_with_retry(_op)


def get_stock_audit(user_id: str, audit_id: int) -> StockAudit:
    return require_owned(StockAudit, audit_id, user_id, label="Stock audit")


def list_stock_audits(user_id: str, *, branch_id: int | None = None, status: str | None = None) -> list[StockAudit]:
    query = db.session.query(StockAudit).filter_by(user_id=user_id)
    if branch_id is not None:
        query = query.filter(StockAudit.branch_id == branch_id)
    if status:
        query = query.filter(StockAudit.status == status.upper())
    return query.order_by(StockAudit.created_at.desc(), StockAudit.id.desc()).all()

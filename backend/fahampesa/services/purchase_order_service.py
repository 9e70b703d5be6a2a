# backend/fahampesa/services/purchase_order_service.py
"""
Purchase-order workflow.

LIFECYCLE:
1. DRAFT: Created with items and expected delivery date
2. PENDING: Submitted for approval
3. APPROVED / REJECTED: Approval decision
4. SENT: Sent to supplier
5. ACKNOWLEDGED: Supplier confirmed (also reachable from DELAYED)
6. PARTIALLY_RECEIVED: Some, but not all, ordered quantity received
7. RECEIVED: Every item's quantity_received == quantity_ordered
Side exits: CANCELLED from DRAFT/PENDING/APPROVED/SENT; DELAYED from
SENT/ACKNOWLEDGED once expected_delivery_date has passed.

RECEIVING:
- quantity_received accumulates across calls and never exceeds quantity_ordered
- defective_quantity is recorded but never enters stock; only the good
  quantity is posted as a PURCHASE movement at the line's unit cost
- completion updates supplier delivery performance in the same transaction
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, PurchaseOrder, PurchaseOrderItem, Supplier
from ..models.inventory import MOVEMENT_PURCHASE
from ..models.purchasing import (
    PAYMENT_TERMS,
    PO_PRIORITIES,
    PO_STATUS_ACKNOWLEDGED,
    PO_STATUS_APPROVED,
    PO_STATUS_CANCELLED,
    PO_STATUS_DELAYED,
    PO_STATUS_DRAFT,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
    PO_STATUS_REJECTED,
    PO_STATUS_SENT,
    SUPPLIER_STATUS_ARCHIVED,
)
from ..time_utils import utcnow
from ..validation import (
    enforce_rules_unit_cost,
    optional_non_negative_int,
    require_choice,
    require_datetime,
    require_item_list,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from . import notification_service
from .catalog_service import product_catalog
from .concurrency import run_with_retry
from .document_service import next_document_number
from .inventory_service import _record_movement_inner
from .supplier_service import record_price, record_purchase_order_delivery
from .tenant_service import require_owned


RECEIVABLE_STATUSES = {PO_STATUS_SENT, PO_STATUS_ACKNOWLEDGED, PO_STATUS_PARTIALLY_RECEIVED}
CANCELLABLE_STATUSES = {PO_STATUS_DRAFT, PO_STATUS_PENDING, PO_STATUS_APPROVED, PO_STATUS_SENT}
DELAYABLE_STATUSES = {PO_STATUS_SENT, PO_STATUS_ACKNOWLEDGED}
ACKNOWLEDGEABLE_STATUSES = {PO_STATUS_SENT, PO_STATUS_DELAYED}
OPEN_STATUSES = {
    PO_STATUS_DRAFT, PO_STATUS_PENDING, PO_STATUS_APPROVED, PO_STATUS_SENT,
    PO_STATUS_ACKNOWLEDGED, PO_STATUS_DELAYED, PO_STATUS_PARTIALLY_RECEIVED,
}


def _require_status(po: PurchaseOrder, action: str, allowed: set[str]) -> None:
    if po.status not in allowed:
        raise InvalidStateTransitionError("purchase order", action, po.status, allowed)


def _notify(po: PurchaseOrder, event_type: str, title: str, message: str) -> None:
    notification_service.dispatch(
        po.user_id, event_type, title, message, entity_type="purchase_order", entity_id=po.id,
    )


def _parse_order_items(items) -> list[tuple[int, int, int, str | None]]:
    parsed = []
    seen = set()
    for entry in require_item_list(items):
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        quantity = require_positive_int(entry.get("quantity_ordered"), "quantity_ordered")
        unit_cost = enforce_rules_unit_cost(entry.get("unit_cost_cents"), required=True)
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        parsed.append((product_id, quantity, unit_cost, entry.get("notes")))
    return parsed


def create_purchase_order(
    user_id: str,
    supplier_id,
    branch_id,
    items,
    expected_delivery_date,
    requested_by: str,
    *,
    priority: str = "NORMAL",
    payment_terms: str | None = None,
    shipping_cents=None,
    tax_cents=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a purchase order (status: DRAFT).

    expected_delivery_date must be strictly in the future. Each item needs a
    positive quantity_ordered and unit_cost_cents and a product in the
    tenant's catalog. Increments the supplier's total_orders and records
    each line's unit cost as the supplier's current price for that product.
    """
    supplier_id = require_positive_int(supplier_id, "supplier_id")
    branch_id = require_positive_int(branch_id, "branch_id")
    requested_by = require_text(requested_by, "requested_by")
    lines = _parse_order_items(items)
    expected = require_datetime(expected_delivery_date, "expected_delivery_date")
    if expected <= utcnow():
        raise ValidationError("expected_delivery_date must be in the future")
    priority = require_choice(priority or "NORMAL", "priority", PO_PRIORITIES)
    if payment_terms is not None:
        payment_terms = require_choice(payment_terms, "payment_terms", PAYMENT_TERMS)
    shipping = optional_non_negative_int(shipping_cents, "shipping_cents") or 0
    tax = optional_non_negative_int(tax_cents, "tax_cents") or 0

    def _op():
        supplier = require_owned(Supplier, supplier_id, user_id, lock=True, label="Supplier")
        if supplier.status == SUPPLIER_STATUS_ARCHIVED:
            raise ValidationError(f"Supplier {supplier.name} is archived")
        branch = require_owned(Branch, branch_id, user_id, label="Branch")

        po_items = []
        for product_id, quantity, unit_cost, line_notes in lines:
            try:
                product = product_catalog.get_product(user_id, product_id)
            except NotFoundError as exc:
                raise ValidationError(f"Product {product_id} not found in catalog", product_id=product_id) from exc
            po_items.append(PurchaseOrderItem(
                product_id=product_id,
                product_name=product["name"],
                product_sku=product["sku"],
                quantity_ordered=quantity,
                unit_cost_cents=unit_cost,
                total_cost_cents=quantity * unit_cost,
                notes=line_notes,
            ))

        subtotal = sum(item.total_cost_cents for item in po_items)
        now = utcnow()
        po = PurchaseOrder(
            user_id=user_id,
            po_number=next_document_number(
                user_id=user_id,
                document_type="PURCHASE_ORDER",
                prefix=current_app.config.get("PO_NUMBER_PREFIX", "PO"),
            ),
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            branch_id=branch.id,
            branch_name=branch.name,
            status=PO_STATUS_DRAFT,
            priority=priority,
            payment_terms=payment_terms or supplier.payment_terms,
            subtotal_cents=subtotal,
            tax_cents=tax,
            shipping_cents=shipping,
            total_cents=subtotal + tax + shipping,
            currency=branch.currency,
            expected_delivery_date=expected,
            requested_by=requested_by,
            internal_notes=notes,
            items=po_items,
        )
        db.session.add(po)
        db.session.flush()

        for item in po_items:
            record_price(
                supplier, item.product_id, item.unit_cost_cents,
                purchase_order_id=po.id, currency=po.currency, effective_from=now,
            )

        supplier.total_orders = (supplier.total_orders or 0) + 1
        supplier.last_order_at = now

        db.session.commit()
        return po

    po = run_with_retry(_op)
    current_app.logger.info(
        "Purchase order created: tenant=%s number=%s supplier=%s total=%s",
        user_id, po.po_number, supplier_id, po.total_cents,
    )
    return po


def submit_purchase_order(user_id: str, po_id: int, submitted_by: str | None = None) -> PurchaseOrder:
    """DRAFT -> PENDING."""
    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "submit", {PO_STATUS_DRAFT})
        po.status = PO_STATUS_PENDING
        db.session.commit()
        return po

    po = run_with_retry(_op)
    _notify(po, "purchase_order.submitted", "Purchase order awaiting approval",
            f"Purchase order {po.po_number} for {po.supplier_name} is awaiting approval.")
    return po


def approve_purchase_order(
    user_id: str,
    po_id: int,
    approver_id: str,
    *,
    approved: bool = True,
    reason: str | None = None,
) -> PurchaseOrder:
    """PENDING -> APPROVED, or PENDING -> REJECTED (reason required)."""
    approver_id = require_text(approver_id, "approver_id")
    if not approved:
        reason = require_text(reason, "reason")
    action = "approve" if approved else "reject"

    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, action, {PO_STATUS_PENDING})
        now = utcnow()
        if approved:
            po.status = PO_STATUS_APPROVED
            po.approved_by = approver_id
            po.approved_at = now
        else:
            po.status = PO_STATUS_REJECTED
            po.rejected_by = approver_id
            po.rejected_at = now
            po.rejection_reason = reason
        db.session.commit()
        return po

    po = run_with_retry(_op)
    _notify(po, f"purchase_order.{po.status.lower()}", f"Purchase order {po.status.lower()}",
            f"Purchase order {po.po_number} was {po.status.lower()}.")
    return po


def send_purchase_order(
    user_id: str,
    po_id: int,
    *,
    sent_at=None,
    supplier_notes: str | None = None,
) -> PurchaseOrder:
    """APPROVED -> SENT."""
    sent_dt = require_datetime(sent_at, "sent_at") if sent_at else None

    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "send", {PO_STATUS_APPROVED})
        po.status = PO_STATUS_SENT
        po.sent_at = sent_dt or utcnow()
        if supplier_notes:
            po.supplier_notes = supplier_notes
        db.session.commit()
        return po

    return run_with_retry(_op)


def acknowledge_purchase_order(
    user_id: str,
    po_id: int,
    *,
    supplier_notes: str | None = None,
    expected_delivery_date=None,
) -> PurchaseOrder:
    """SENT/DELAYED -> ACKNOWLEDGED. The supplier may confirm a revised delivery date."""
    revised = require_datetime(expected_delivery_date, "expected_delivery_date") if expected_delivery_date else None

    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "acknowledge", ACKNOWLEDGEABLE_STATUSES)
        po.status = PO_STATUS_ACKNOWLEDGED
        po.acknowledged_at = utcnow()
        if supplier_notes:
            po.supplier_notes = supplier_notes
        if revised is not None:
            po.expected_delivery_date = revised
        db.session.commit()
        return po

    return run_with_retry(_op)


def mark_delayed(user_id: str, po_id: int, *, reason: str | None = None) -> PurchaseOrder:
    """SENT/ACKNOWLEDGED -> DELAYED; only once expected_delivery_date has passed."""
    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "mark delayed", DELAYABLE_STATUSES)
        now = utcnow()
        if po.expected_delivery_date > now:
            raise ValidationError("Purchase order is not yet past its expected delivery date")
        po.status = PO_STATUS_DELAYED
        po.delayed_at = now
        if reason:
            po.supplier_notes = f"{po.supplier_notes}\n{reason}" if po.supplier_notes else reason
        db.session.commit()
        return po

    po = run_with_retry(_op)
    _notify(po, "purchase_order.delayed", "Purchase order delayed",
            f"Purchase order {po.po_number} from {po.supplier_name} is past its expected delivery date.")
    return po


def get_overdue_purchase_orders(user_id: str) -> list[PurchaseOrder]:
    """Sent or acknowledged orders whose expected delivery date has passed."""
    return (
        db.session.query(PurchaseOrder)
        .filter(
            PurchaseOrder.user_id == user_id,
            PurchaseOrder.status.in_(DELAYABLE_STATUSES | {PO_STATUS_DELAYED, PO_STATUS_PARTIALLY_RECEIVED}),
            PurchaseOrder.expected_delivery_date < utcnow(),
        )
        .order_by(PurchaseOrder.expected_delivery_date.asc())
        .all()
    )


def mark_overdue_purchase_orders(user_id: str) -> list[PurchaseOrder]:
    """Move every overdue SENT/ACKNOWLEDGED order to DELAYED. Returns the orders moved."""
    moved = []
    for po in get_overdue_purchase_orders(user_id):
        if po.status in DELAYABLE_STATUSES:
            moved.append(mark_delayed(user_id, po.id))
    if moved:
        current_app.logger.info("Marked %s purchase orders delayed: tenant=%s", len(moved), user_id)
    return moved


def _parse_receipt_items(items) -> list[tuple[int, int, int]]:
    parsed = []
    seen = set()
    for entry in require_item_list(items):
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        received = require_non_negative_int(entry.get("quantity_received"), "quantity_received")
        defective = optional_non_negative_int(entry.get("defective_quantity"), "defective_quantity") or 0
        if defective > received:
            raise ValidationError(
                f"Defective quantity ({defective}) cannot exceed received quantity ({received}) "
                f"for product {product_id}"
            )
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        parsed.append((product_id, received, defective))

    if not any(received > 0 for _, received, _ in parsed):
        raise ValidationError("At least one item must have a positive quantity_received")
    return parsed


def receive_purchase_order(
    user_id: str,
    po_id: int,
    items,
    received_by: str,
    *,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Receive goods against a SENT/ACKNOWLEDGED/PARTIALLY_RECEIVED order.

    items: [{product_id, quantity_received, defective_quantity?}] with the
    quantities received in THIS call. Posts PURCHASE movements for the good
    quantity. One transaction for all lines.
    """
    received_by = require_text(received_by, "received_by")
    lines = _parse_receipt_items(items)

    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "receive", RECEIVABLE_STATUSES)

        now = utcnow()
        for product_id, received, defective in lines:
            item = po.item_for(product_id)
            if item is None:
                raise ValidationError(f"Product {product_id} is not part of this purchase order")
            if item.quantity_received + received > item.quantity_ordered:
                raise ValidationError(
                    f"Cannot receive {received} of product {product_id}: "
                    f"{item.quantity_received} of {item.quantity_ordered} already received",
                    product_id=product_id,
                )
            if received == 0:
                continue

            item.quantity_received += received
            item.defective_quantity += defective

            good = received - defective
            if good > 0:
                _record_movement_inner(
                    user_id=user_id,
                    product_id=product_id,
                    branch_id=po.branch_id,
                    movement_type=MOVEMENT_PURCHASE,
                    quantity=good,
                    direction=1,
                    created_by=received_by,
                    reference_type="PURCHASE",
                    reference_id=po.id,
                    unit_cost_cents=item.unit_cost_cents,
                    notes=f"Purchase order {po.po_number}",
                )

        if po.receiving_started_at is None:
            po.receiving_started_at = now
        po.received_by = received_by
        if notes:
            po.receiving_notes = f"{po.receiving_notes}\n{notes}" if po.receiving_notes else notes

        if po.is_fully_received:
            po.status = PO_STATUS_RECEIVED
            po.receiving_completed_at = now
            po.actual_delivery_date = now
            supplier = require_owned(Supplier, po.supplier_id, user_id, lock=True, label="Supplier")
            record_purchase_order_delivery(supplier, po.expected_delivery_date, now)
        else:
            po.status = PO_STATUS_PARTIALLY_RECEIVED

        db.session.commit()
        return po

    po = run_with_retry(_op)
    current_app.logger.info(
        "Purchase order receipt: tenant=%s number=%s status=%s", user_id, po.po_number, po.status
    )
    if po.status == PO_STATUS_RECEIVED:
        _notify(po, "purchase_order.received", "Purchase order received",
                f"Purchase order {po.po_number} from {po.supplier_name} was fully received.")
    return po


def cancel_purchase_order(user_id: str, po_id: int, cancelled_by: str, reason: str) -> PurchaseOrder:
    """DRAFT/PENDING/APPROVED/SENT -> CANCELLED."""
    cancelled_by = require_text(cancelled_by, "cancelled_by")
    reason = require_text(reason, "reason")

    def _op():
        po = require_owned(PurchaseOrder, po_id, user_id, lock=True, label="Purchase order")
        _require_status(po, "cancel", CANCELLABLE_STATUSES)
        po.status = PO_STATUS_CANCELLED
        po.cancelled_by = cancelled_by
        po.cancelled_at = utcnow()
        po.cancellation_reason = reason
        db.session.commit()
        return po

    po = run_with_retry(_op)
    _notify(po, "purchase_order.cancelled", "Purchase order cancelled",
            f"Purchase order {po.po_number} was cancelled: {reason}")
    return po


def get_purchase_order(user_id: str, po_id: int) -> PurchaseOrder:
    return require_owned(PurchaseOrder, po_id, user_id, label="Purchase order")


def list_purchase_orders(
    user_id: str,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    branch_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder).filter_by(user_id=user_id)
    if status:
        query = query.filter(PurchaseOrder.status == status.upper())
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if branch_id is not None:
        query = query.filter(PurchaseOrder.branch_id == branch_id)
    limit = max(1, min(int(limit), 200))
    offset = max(0, int(offset))
    return (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_pending_approvals(user_id: str) -> list[PurchaseOrder]:
    return list_purchase_orders(user_id, status=PO_STATUS_PENDING, limit=200)


def get_purchase_order_summary(user_id: str) -> dict:
    rows = (
        db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id), func.sum(PurchaseOrder.total_cents))
        .filter(PurchaseOrder.user_id == user_id)
        .group_by(PurchaseOrder.status)
        .all()
    )
    by_status = {status: {"count": int(count), "total_cents": int(total or 0)} for status, count, total in rows}
    return {
        "by_status": by_status,
        "open_orders": sum(v["count"] for k, v in by_status.items() if k in OPEN_STATUSES),
        "open_value_cents": sum(v["total_cents"] for k, v in by_status.items() if k in OPEN_STATUSES),
        "overdue_orders": len(get_overdue_purchase_orders(user_id)),
    }

# backend/fahampesa/services/transfer_service.py
"""
Inter-branch transfer workflow.

WHY: Move stock between branches with approval and accountability, keeping
the ledger and materialized stock consistent at both ends.

LIFECYCLE:
1. REQUESTED: Transfer created; source availability checked
2. APPROVED: Approver (not the requester) sets per-item approved quantities;
   those quantities are reserved at the source branch
3. IN_TRANSIT: Shipped; tracking metadata only, no stock effect
4. RECEIVED: Every item's received quantity equals its approved quantity
5. REJECTED: Declined from REQUESTED
6. CANCELLED: Cancelled from REQUESTED or APPROVED (reservations released)

STOCK EFFECT:
Each receive call, in ONE transaction and for exactly the quantity received:
release the reservation at the source, post TRANSFER_OUT at the source,
post TRANSFER_IN at the destination, and post DAMAGE at the destination for
any damaged part. Any failing line rolls the whole receipt back.
"""
from __future__ import annotations

from flask import current_app

from ..errors import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, BranchTransfer, BranchTransferItem, InventoryItem
from ..models.inventory import (
    MOVEMENT_DAMAGE,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
)
from ..models.transfers import (
    TRANSFER_PRIORITIES,
    TRANSFER_STATUS_APPROVED,
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_REJECTED,
    TRANSFER_STATUS_REQUESTED,
    TRANSFER_TYPES,
    TRANSPORT_METHODS,
)
from ..time_utils import utcnow
from ..validation import (
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
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import (
    _record_movement_inner,
    _release_inner,
    _reserve_inner,
    get_available_stock,
    notify_if_low_stock,
)
from .tenant_service import require_owned


def _parse_request_items(items) -> list[tuple[int, int, str | None]]:
    parsed = []
    seen = set()
    for entry in require_item_list(items):
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        quantity = require_positive_int(entry.get("requested_quantity"), "requested_quantity")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        notes = str(entry["notes"]).strip() if entry.get("notes") else None
        parsed.append((product_id, quantity, notes))
    return parsed


def _resolve_product(user_id: str, product_id: int) -> dict:
    try:
        return product_catalog.get_product(user_id, product_id)
    except NotFoundError as exc:
        raise ValidationError(f"Product {product_id} not found in catalog", product_id=product_id) from exc


def _lock_source_item(transfer: BranchTransfer, product_id: int, quantity: int) -> InventoryItem:
    item = lock_for_update(
        db.session.query(InventoryItem).filter_by(product_id=product_id, branch_id=transfer.from_branch_id)
    ).first()
    if item is None:
        raise InsufficientStockError(
            product_id=product_id, branch_id=transfer.from_branch_id, available=0, requested=quantity,
        )
    return item


def _notify(transfer: BranchTransfer, event_type: str, title: str, message: str) -> None:
    notification_service.dispatch(
        transfer.user_id,
        event_type,
        title,
        message,
        entity_type="branch_transfer",
        entity_id=transfer.id,
    )


def create_transfer(
    user_id: str,
    from_branch_id,
    to_branch_id,
    items,
    requested_by: str,
    *,
    priority: str = "NORMAL",
    transfer_type: str = "STOCK_REBALANCING",
    transport_method: str | None = None,
    request_reason: str | None = None,
    estimated_arrival=None,
    notes: str | None = None,
) -> BranchTransfer:
    """
    Create a transfer request (status: REQUESTED).

    All input validation, including from != to, happens before any write.

    Raises:
        ValidationError: bad input, same branch, inactive branch, unknown product
        InsufficientStockError: source available stock does not cover a line
    """
    from_branch_id = require_positive_int(from_branch_id, "from_branch_id")
    to_branch_id = require_positive_int(to_branch_id, "to_branch_id")
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branches must be different")
    requested_by = require_text(requested_by, "requested_by")
    lines = _parse_request_items(items)
    priority = require_choice(priority or "NORMAL", "priority", TRANSFER_PRIORITIES)
    transfer_type = require_choice(transfer_type or "STOCK_REBALANCING", "transfer_type", TRANSFER_TYPES)
    if transport_method is not None:
        transport_method = require_choice(transport_method, "transport_method", TRANSPORT_METHODS)
    if estimated_arrival is not None:
        estimated_arrival = require_datetime(estimated_arrival, "estimated_arrival")

    def _op():
        from_branch = require_owned(Branch, from_branch_id, user_id, label="Branch")
        to_branch = require_owned(Branch, to_branch_id, user_id, label="Branch")
        if not from_branch.is_active:
            raise ValidationError(f"Source branch {from_branch.name} is not active")
        if not to_branch.is_active:
            raise ValidationError(f"Destination branch {to_branch.name} is not active")

        transfer_items = []
        total_value = 0
        for product_id, quantity, line_notes in lines:
            product = _resolve_product(user_id, product_id)
            available = get_available_stock(product_id, from_branch_id)
            if available < quantity:
                raise InsufficientStockError(
                    product_id=product_id, branch_id=from_branch_id, available=available, requested=quantity,
                )
            source = db.session.query(InventoryItem).filter_by(
                product_id=product_id, branch_id=from_branch_id
            ).first()
            unit_cost = (source.average_cost_cents if source else 0) or product.get("cost_price_cents") or 0
            total_value += unit_cost * quantity
            transfer_items.append(BranchTransferItem(
                product_id=product_id,
                product_name=product["name"],
                product_sku=product["sku"],
                requested_quantity=quantity,
                unit_cost_cents=unit_cost,
                notes=line_notes,
            ))

        transfer = BranchTransfer(
            user_id=user_id,
            transfer_number=next_document_number(
                user_id=user_id,
                document_type="TRANSFER",
                prefix=current_app.config.get("TRANSFER_NUMBER_PREFIX", "TR"),
            ),
            from_branch_id=from_branch.id,
            from_branch_name=from_branch.name,
            to_branch_id=to_branch.id,
            to_branch_name=to_branch.name,
            status=TRANSFER_STATUS_REQUESTED,
            priority=priority,
            transfer_type=transfer_type,
            transport_method=transport_method,
            total_items=sum(q for _, q, _ in lines),
            total_value_cents=total_value,
            currency=from_branch.currency,
            requested_by=requested_by,
            requested_at=utcnow(),
            request_reason=request_reason,
            estimated_arrival=estimated_arrival,
            internal_notes=notes,
            items=transfer_items,
        )
        db.session.add(transfer)
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    current_app.logger.info(
        "Transfer requested: tenant=%s number=%s from=%s to=%s",
        user_id, transfer.transfer_number, from_branch_id, to_branch_id,
    )
    _notify(
        transfer, "transfer.requested", "Transfer requested",
        f"Transfer {transfer.transfer_number} from {transfer.from_branch_name} "
        f"to {transfer.to_branch_name} is awaiting approval.",
    )
    return transfer


def _parse_approvals(approvals) -> dict[int, int]:
    if approvals is None:
        return {}
    if not isinstance(approvals, list):
        raise ValidationError("approvals must be a list")
    parsed: dict[int, int] = {}
    for entry in approvals:
        if not isinstance(entry, dict):
            raise ValidationError("Each approval must be an object")
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        if product_id in parsed:
            raise ValidationError(f"Product {product_id} appears more than once")
        parsed[product_id] = require_non_negative_int(entry.get("approved_quantity"), "approved_quantity")
    return parsed


def approve_transfer(
    user_id: str,
    transfer_id: int,
    approver_id: str,
    *,
    approvals=None,
    approved: bool = True,
    rejection_reason: str | None = None,
) -> BranchTransfer:
    """
    Approve (REQUESTED -> APPROVED) or reject (REQUESTED -> REJECTED) a transfer.

    approvals: [{product_id, approved_quantity}]; items not listed are
    approved at their requested quantity. Approved quantities are reserved
    at the source branch in the same transaction.
    """
    approver_id = require_text(approver_id, "approver_id")
    approved_by_product = _parse_approvals(approvals)
    if not approved:
        rejection_reason = require_text(rejection_reason, "rejection_reason")
    action = "approve" if approved else "reject"

    def _op():
        transfer = require_owned(BranchTransfer, transfer_id, user_id, lock=True, label="Transfer")
        if transfer.status != TRANSFER_STATUS_REQUESTED:
            raise InvalidStateTransitionError("transfer", action, transfer.status, {TRANSFER_STATUS_REQUESTED})
        if transfer.requested_by == approver_id:
            raise ValidationError("You cannot approve your own transfer request")

        now = utcnow()
        if not approved:
            transfer.status = TRANSFER_STATUS_REJECTED
            transfer.rejected_by = approver_id
            transfer.rejected_at = now
            transfer.rejection_reason = rejection_reason
            db.session.commit()
            return transfer

        known = {item.product_id for item in transfer.items}
        unknown = sorted(set(approved_by_product) - known)
        if unknown:
            raise ValidationError(f"Product {unknown[0]} is not part of this transfer")

        total_approved = 0
        for item in transfer.items:
            quantity = approved_by_product.get(item.product_id, item.requested_quantity)
            if quantity > item.requested_quantity:
                raise ValidationError(
                    f"Approved quantity for product {item.product_id} ({quantity}) "
                    f"exceeds requested quantity ({item.requested_quantity})"
                )
            if quantity > 0:
                _reserve_inner(_lock_source_item(transfer, item.product_id, quantity), quantity)
            item.approved_quantity = quantity
            item.item_status = "APPROVED"
            total_approved += quantity

        if total_approved == 0:
            raise ValidationError("At least one item must be approved with a positive quantity")

        transfer.total_items = total_approved
        transfer.total_value_cents = sum(i.unit_cost_cents * (i.approved_quantity or 0) for i in transfer.items)
        transfer.status = TRANSFER_STATUS_APPROVED
        transfer.approved_by = approver_id
        transfer.approved_at = now
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    current_app.logger.info(
        "Transfer %s: tenant=%s number=%s by=%s", transfer.status.lower(), user_id, transfer.transfer_number, approver_id
    )
    if approved:
        _notify(transfer, "transfer.approved", "Transfer approved",
                f"Transfer {transfer.transfer_number} was approved and is ready to ship.")
    else:
        _notify(transfer, "transfer.rejected", "Transfer rejected",
                f"Transfer {transfer.transfer_number} was rejected: {rejection_reason}")
    return transfer


def ship_transfer(
    user_id: str,
    transfer_id: int,
    shipped_by: str,
    *,
    tracking_number: str | None = None,
    estimated_arrival=None,
    transport_method: str | None = None,
    shipping_notes: str | None = None,
) -> BranchTransfer:
    """APPROVED -> IN_TRANSIT. Records tracking metadata; stock stays reserved at the source."""
    shipped_by = require_text(shipped_by, "shipped_by")
    if estimated_arrival is not None:
        estimated_arrival = require_datetime(estimated_arrival, "estimated_arrival")
    if transport_method is not None:
        transport_method = require_choice(transport_method, "transport_method", TRANSPORT_METHODS)

    def _op():
        transfer = require_owned(BranchTransfer, transfer_id, user_id, lock=True, label="Transfer")
        if transfer.status != TRANSFER_STATUS_APPROVED:
            raise InvalidStateTransitionError("transfer", "ship", transfer.status, {TRANSFER_STATUS_APPROVED})

        transfer.status = TRANSFER_STATUS_IN_TRANSIT
        transfer.shipped_by = shipped_by
        transfer.shipped_at = utcnow()
        transfer.tracking_number = tracking_number or transfer.tracking_number
        transfer.estimated_arrival = estimated_arrival or transfer.estimated_arrival
        transfer.transport_method = transport_method or transfer.transport_method
        transfer.shipping_notes = shipping_notes
        for item in transfer.items:
            if item.approved_quantity:
                item.item_status = "SHIPPED"

        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    _notify(transfer, "transfer.shipped", "Transfer shipped",
            f"Transfer {transfer.transfer_number} is in transit to {transfer.to_branch_name}.")
    return transfer


def _parse_receipt_items(items) -> list[tuple[int, int, int]]:
    parsed = []
    seen = set()
    for entry in require_item_list(items):
        product_id = require_positive_int(entry.get("product_id"), "product_id")
        received = require_non_negative_int(entry.get("received_quantity"), "received_quantity")
        damaged = optional_non_negative_int(entry.get("damaged_quantity"), "damaged_quantity") or 0
        if damaged > received:
            raise ValidationError(
                f"Damaged quantity ({damaged}) cannot exceed received quantity ({received}) "
                f"for product {product_id}"
            )
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        parsed.append((product_id, received, damaged))

    if not any(received > 0 for _, received, _ in parsed):
        raise ValidationError("At least one item must have a positive received_quantity")
    return parsed


def receive_transfer(
    user_id: str,
    transfer_id: int,
    received_by: str,
    items,
    *,
    receiving_notes: str | None = None,
) -> BranchTransfer:
    """
    Receive some or all of an IN_TRANSIT transfer.

    Quantities accumulate across calls; cumulative received never exceeds
    approved. The transfer becomes RECEIVED only when every item is fully
    received, otherwise it stays IN_TRANSIT.
    """
    received_by = require_text(received_by, "received_by")
    lines = _parse_receipt_items(items)

    def _op():
        transfer = require_owned(BranchTransfer, transfer_id, user_id, lock=True, label="Transfer")
        if transfer.status != TRANSFER_STATUS_IN_TRANSIT:
            raise InvalidStateTransitionError("transfer", "receive", transfer.status, {TRANSFER_STATUS_IN_TRANSIT})

        for product_id, received, damaged in lines:
            item = transfer.item_for(product_id)
            if item is None:
                raise ValidationError(f"Product {product_id} is not part of this transfer")
            if received > item.outstanding_quantity:
                raise ValidationError(
                    f"Cannot receive {received} of product {product_id}: "
                    f"only {item.outstanding_quantity} of {item.approved_quantity or 0} approved remain",
                    product_id=product_id,
                )
            if received == 0:
                continue

            _release_inner(_lock_source_item(transfer, product_id, received), received)

            common = dict(
                user_id=user_id,
                product_id=product_id,
                quantity=received,
                created_by=received_by,
                reference_type="TRANSFER",
                reference_id=transfer.id,
                unit_cost_cents=item.unit_cost_cents or None,
                from_branch_id=transfer.from_branch_id,
                to_branch_id=transfer.to_branch_id,
                notes=f"Transfer {transfer.transfer_number}",
            )
            _record_movement_inner(
                branch_id=transfer.from_branch_id, movement_type=MOVEMENT_TRANSFER_OUT, direction=-1, **common
            )
            _record_movement_inner(
                branch_id=transfer.to_branch_id, movement_type=MOVEMENT_TRANSFER_IN, direction=1, **common
            )
            if damaged:
                common["quantity"] = damaged
                _record_movement_inner(
                    branch_id=transfer.to_branch_id,
                    movement_type=MOVEMENT_DAMAGE,
                    direction=-1,
                    reason="Damaged in transit",
                    **common,
                )

            item.received_quantity += received
            item.damaged_quantity += damaged
            if item.outstanding_quantity == 0:
                item.item_status = "DAMAGED" if item.damaged_quantity else "RECEIVED"

        if receiving_notes:
            transfer.receiving_notes = (
                f"{transfer.receiving_notes}\n{receiving_notes}" if transfer.receiving_notes else receiving_notes
            )
        transfer.received_by = received_by

        if transfer.is_fully_received:
            transfer.status = TRANSFER_STATUS_RECEIVED
            transfer.received_at = utcnow()
            for item in transfer.items:
                if item.item_status not in ("RECEIVED", "DAMAGED"):
                    item.item_status = "RECEIVED"

        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    current_app.logger.info(
        "Transfer receipt: tenant=%s number=%s status=%s", user_id, transfer.transfer_number, transfer.status
    )
    for product_id, received, _ in lines:
        if received:
            notify_if_low_stock(user_id, product_id, transfer.from_branch_id)
    if transfer.status == TRANSFER_STATUS_RECEIVED:
        _notify(transfer, "transfer.received", "Transfer received",
                f"Transfer {transfer.transfer_number} was fully received at {transfer.to_branch_name}.")
    else:
        _notify(transfer, "transfer.partially_received", "Transfer partially received",
                f"Part of transfer {transfer.transfer_number} was received at {transfer.to_branch_name}.")
    return transfer


def cancel_transfer(user_id: str, transfer_id: int, cancelled_by: str, reason: str) -> BranchTransfer:
    """REQUESTED/APPROVED -> CANCELLED. Releases reservations taken at approval."""
    cancelled_by = require_text(cancelled_by, "cancelled_by")
    reason = require_text(reason, "reason")
    allowed = {TRANSFER_STATUS_REQUESTED, TRANSFER_STATUS_APPROVED}

    def _op():
        transfer = require_owned(BranchTransfer, transfer_id, user_id, lock=True, label="Transfer")
        if transfer.status not in allowed:
            raise InvalidStateTransitionError("transfer", "cancel", transfer.status, allowed)

        if transfer.status == TRANSFER_STATUS_APPROVED:
            for item in transfer.items:
                if item.approved_quantity:
                    source = lock_for_update(
                        db.session.query(InventoryItem).filter_by(
                            product_id=item.product_id, branch_id=transfer.from_branch_id
                        )
                    ).first()
                    if source is not None:
                        _release_inner(source, item.approved_quantity)

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by = cancelled_by
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    _notify(transfer, "transfer.cancelled", "Transfer cancelled",
            f"Transfer {transfer.transfer_number} was cancelled: {reason}")
    return transfer


def get_transfer(user_id: str, transfer_id: int) -> BranchTransfer:
    return require_owned(BranchTransfer, transfer_id, user_id, label="Transfer")


def list_transfers(
    user_id: str,
    *,
    status: str | None = None,
    branch_id: int | None = None,
    priority: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[BranchTransfer]:
    """branch_id matches transfers in either direction."""
    query = db.session.query(BranchTransfer).filter_by(user_id=user_id)
    if status:
        query = query.filter(BranchTransfer.status == status.upper())
    if priority:
        query = query.filter(BranchTransfer.priority == priority.upper())
    if branch_id is not None:
        query = query.filter(
            (BranchTransfer.from_branch_id == branch_id) | (BranchTransfer.to_branch_id == branch_id)
        )
    limit = max(1, min(int(limit), 200))
    offset = max(0, int(offset))
    return (
        query.order_by(BranchTransfer.created_at.desc(), BranchTransfer.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_transfer_history(user_id: str, branch_id: int) -> dict:
    branch = require_owned(Branch, branch_id, user_id, label="Branch")
    transfers = list_transfers(user_id, branch_id=branch.id, limit=200)
    return {
        "branch_id": branch.id,
        "outgoing": [t.to_dict() for t in transfers if t.from_branch_id == branch.id],
        "incoming": [t.to_dict() for t in transfers if t.to_branch_id == branch.id],
    }

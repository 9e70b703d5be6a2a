# Overview: Stock ledger and materialized inventory levels; every stock change goes through here.

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func

from ..errors import (
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Branch, InventoryItem, StockMovement
from ..models.inventory import (
    INBOUND_MOVEMENT_TYPES,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INITIAL,
    MOVEMENT_PURCHASE,
    MOVEMENT_STATUS_APPROVED,
    MOVEMENT_STATUS_CANCELLED,
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TYPES,
    REFERENCE_TYPES,
)
from ..time_utils import utcnow
from ..validation import (
    coerce_int,
    enforce_rules_unit_cost,
    optional_non_negative_int,
    require_choice,
    require_positive_int,
    require_text,
)
from . import notification_service
from .catalog_service import product_catalog
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import require_owned
"""
Inventory invariants (authoritative)

Ledger:
- StockMovement rows are append-only. quantity is always > 0 and direction
  (+1/-1) is implied by movement_type; only ADJUSTMENT takes an explicit
  direction.
- The only permitted update of a movement is PENDING -> APPROVED/CANCELLED.

Materialized stock:
- InventoryItem.current_stock always equals the sum of signed APPROVED
  movement quantities for its (product, branch). verify_inventory() replays
  the ledger to check this.
- available_stock == current_stock - reserved_stock.
- Outbound movements may not consume more than available_stock. The single
  exception is ADJUSTMENT with allow_negative=True.

Transactions:
- Applying a movement locks the InventoryItem row, writes the movement with
  previous/new stock, and updates the item in the same DB transaction.
- Items are auto-created with zero stock only for INITIAL, TRANSFER_IN and
  PURCHASE; any other movement against a missing item is NotFoundError.
- Costing: inbound movements carrying a unit cost update the weighted
  average (nearest cent, half-up) and last cost.
"""


AUTO_CREATE_MOVEMENT_TYPES = {MOVEMENT_INITIAL, MOVEMENT_TRANSFER_IN, MOVEMENT_PURCHASE}
MOVEMENT_STATUSES = {MOVEMENT_STATUS_PENDING, MOVEMENT_STATUS_APPROVED}


def movement_direction(movement_type: str, direction: int | None = None) -> int:
    """Resolve the sign of a movement: +1 inbound, -1 outbound."""
    if movement_type == MOVEMENT_ADJUSTMENT:
        if direction is None:
            raise ValidationError("direction (1 or -1) is required for ADJUSTMENT movements")
        direction = coerce_int(direction, "direction")
        if direction not in (1, -1):
            raise ValidationError("direction must be 1 or -1")
        return direction

    implied = 1 if movement_type in INBOUND_MOVEMENT_TYPES else -1
    if direction is not None and coerce_int(direction, "direction") != implied:
        raise ValidationError(f"direction is implied by movement type {movement_type}")
    return implied


def _weighted_average_cents(prev_qty: int, prev_avg: int, qty: int, unit_cost: int) -> int:
    if prev_qty <= 0:
        return unit_cost
    total_qty = prev_qty + qty
    numerator = prev_qty * prev_avg + qty * unit_cost
    return (numerator + total_qty // 2) // total_qty


def _get_item_for_update(
    user_id: str,
    product_id: int,
    branch_id: int,
    *,
    create_for: str | None = None,
) -> InventoryItem:
    """
    Lock and return the InventoryItem for (product, branch).

    create_for: movement type being applied; a missing row is created with
    zero stock only when that type is in AUTO_CREATE_MOVEMENT_TYPES.
    """
    item = lock_for_update(
        db.session.query(InventoryItem).filter_by(product_id=product_id, branch_id=branch_id)
    ).first()

    if item is None:
        if create_for not in AUTO_CREATE_MOVEMENT_TYPES:
            raise NotFoundError(
                f"No inventory record for product {product_id} at branch {branch_id}",
                product_id=product_id,
                branch_id=branch_id,
            )
        item = InventoryItem(
            user_id=user_id,
            product_id=product_id,
            branch_id=branch_id,
            current_stock=0,
            reserved_stock=0,
            available_stock=0,
        )
        db.session.add(item)
        db.session.flush()

    return item


def _apply_movement(item: InventoryItem, movement: StockMovement, *, allow_negative: bool = False) -> None:
    """Apply an APPROVED movement to its locked item. No commit."""
    previous = item.current_stock

    if movement.direction < 0:
        override = movement.movement_type == MOVEMENT_ADJUSTMENT and allow_negative
        if not override and movement.quantity > item.available_stock:
            raise InsufficientStockError(
                product_id=item.product_id,
                branch_id=item.branch_id,
                available=item.available_stock,
                requested=movement.quantity,
            )

    new = previous + movement.signed_quantity

    if movement.direction > 0 and movement.unit_cost_cents is not None:
        item.average_cost_cents = _weighted_average_cents(
            previous, item.average_cost_cents, movement.quantity, movement.unit_cost_cents
        )
        item.last_cost_cents = movement.unit_cost_cents

    item.current_stock = new
    item.recompute_available()

    movement.previous_stock = previous
    movement.new_stock = new
    if movement.unit_cost_cents is None and item.average_cost_cents:
        movement.unit_cost_cents = item.average_cost_cents
    if movement.unit_cost_cents is not None:
        movement.total_value_cents = movement.unit_cost_cents * movement.quantity


def _record_movement_inner(
    *,
    user_id: str,
    product_id: int,
    branch_id: int,
    movement_type: str,
    quantity: int,
    direction: int,
    created_by: str,
    reference_type: str | None = None,
    reference_id=None,
    unit_cost_cents: int | None = None,
    allow_negative: bool = False,
    status: str = MOVEMENT_STATUS_APPROVED,
    from_branch_id: int | None = None,
    to_branch_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Core movement logic without ownership checks, retry, or commit.

    Callers pass validated values. Used by record_movement() and by the
    transfer, purchase-order and audit workflows inside their own transaction.
    """
    movement = StockMovement(
        user_id=user_id,
        product_id=product_id,
        branch_id=branch_id,
        movement_type=movement_type,
        quantity=quantity,
        direction=direction,
        unit_cost_cents=unit_cost_cents,
        from_branch_id=from_branch_id,
        to_branch_id=to_branch_id,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        status=status,
        reason=reason,
        notes=notes,
        created_by=created_by,
    )

    if status == MOVEMENT_STATUS_APPROVED:
        item = _get_item_for_update(user_id, product_id, branch_id, create_for=movement_type)
        _apply_movement(item, movement, allow_negative=allow_negative)
        movement.approved_by = created_by
        movement.approved_at = utcnow()

    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement(
    user_id: str,
    product_id,
    branch_id,
    movement_type: str,
    quantity,
    *,
    reference_type: str | None = None,
    reference_id=None,
    unit_cost_cents=None,
    direction=None,
    allow_negative: bool = False,
    status: str = MOVEMENT_STATUS_APPROVED,
    created_by: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Record a stock movement and, unless PENDING, apply it to the
    materialized InventoryItem in the same transaction.

    commit=False runs inside the caller's transaction without retry; the
    caller owns commit/rollback.

    Raises:
        ValidationError: bad type/quantity/direction/status
        NotFoundError: unknown product, branch, or inventory item
        AccessDeniedError: branch belongs to another tenant
        InsufficientStockError: outbound movement exceeds available stock
        ConflictError: concurrent-write retries exhausted
    """
    movement_type = require_choice(movement_type, "movement_type", MOVEMENT_TYPES)
    quantity = require_positive_int(quantity, "quantity")
    direction = movement_direction(movement_type, direction)
    status = require_choice(status or MOVEMENT_STATUS_APPROVED, "status", MOVEMENT_STATUSES)
    if reference_type is not None:
        reference_type = require_choice(reference_type, "reference_type", REFERENCE_TYPES)
    unit_cost_cents = enforce_rules_unit_cost(unit_cost_cents, required=False)
    product_id = require_positive_int(product_id, "product_id")
    branch_id = require_positive_int(branch_id, "branch_id")
    if allow_negative and movement_type != MOVEMENT_ADJUSTMENT:
        raise ValidationError("allow_negative is only permitted for ADJUSTMENT movements")
    created_by = created_by or user_id

    def _op():
        require_owned(Branch, branch_id, user_id)
        product_catalog.get_product(user_id, product_id)

        movement = _record_movement_inner(
            user_id=user_id,
            product_id=product_id,
            branch_id=branch_id,
            movement_type=movement_type,
            quantity=quantity,
            direction=direction,
            created_by=created_by,
            reference_type=reference_type,
            reference_id=reference_id,
            unit_cost_cents=unit_cost_cents,
            allow_negative=allow_negative,
            status=status,
            reason=reason,
            notes=notes,
        )
        if commit:
            db.session.commit()
        return movement

    if not commit:
        return _op()

    movement = run_with_retry(_op)
    current_app.logger.info(
        "Stock movement recorded: tenant=%s id=%s type=%s qty=%s product=%s branch=%s status=%s",
        user_id, movement.id, movement_type, direction * quantity, product_id, branch_id, status,
    )
    if movement.status == MOVEMENT_STATUS_APPROVED and direction < 0:
        notify_if_low_stock(user_id, product_id, branch_id)
    return movement


def approve_movement(user_id: str, movement_id: int, approver_id: str) -> StockMovement:
    """PENDING -> APPROVED; applies the movement against current stock."""
    if not approver_id:
        raise ValidationError("approver_id is required")

    def _op():
        movement = require_owned(StockMovement, movement_id, user_id, lock=True, label="Stock movement")
        if movement.status != MOVEMENT_STATUS_PENDING:
            raise InvalidStateTransitionError(
                "stock movement", "approve", movement.status, {MOVEMENT_STATUS_PENDING}
            )

        item = _get_item_for_update(
            user_id, movement.product_id, movement.branch_id, create_for=movement.movement_type
        )
        _apply_movement(item, movement)
        movement.status = MOVEMENT_STATUS_APPROVED
        movement.approved_by = approver_id
        movement.approved_at = utcnow()

        db.session.commit()
        return movement

    movement = run_with_retry(_op)
    if movement.direction < 0:
        notify_if_low_stock(user_id, movement.product_id, movement.branch_id)
    return movement


def cancel_movement(user_id: str, movement_id: int, cancelled_by: str, reason: str | None = None) -> StockMovement:
    """PENDING -> CANCELLED; stock is untouched."""
    def _op():
        movement = require_owned(StockMovement, movement_id, user_id, lock=True, label="Stock movement")
        if movement.status != MOVEMENT_STATUS_PENDING:
            raise InvalidStateTransitionError(
                "stock movement", "cancel", movement.status, {MOVEMENT_STATUS_PENDING}
            )
        movement.status = MOVEMENT_STATUS_CANCELLED
        movement.cancelled_by = cancelled_by
        movement.cancelled_at = utcnow()
        if reason:
            movement.notes = f"{movement.notes}\nCancelled: {reason}" if movement.notes else f"Cancelled: {reason}"

        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(
    user_id: str,
    product_id,
    branch_id,
    quantity_delta,
    reason: str,
    *,
    created_by: str | None = None,
    allow_negative: bool = False,
    status: str = MOVEMENT_STATUS_APPROVED,
    notes: str | None = None,
) -> StockMovement:
    """Signed-delta convenience wrapper over an ADJUSTMENT movement."""
    quantity_delta = coerce_int(quantity_delta, "quantity_delta")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")
    reason = require_text(reason, "reason")

    return record_movement(
        user_id,
        product_id,
        branch_id,
        MOVEMENT_ADJUSTMENT,
        abs(quantity_delta),
        direction=1 if quantity_delta > 0 else -1,
        reference_type="ADJUSTMENT",
        allow_negative=allow_negative,
        status=status,
        created_by=created_by,
        reason=reason,
        notes=notes,
    )


# =============================================================================
# Reservations
# =============================================================================

def _reserve_inner(item: InventoryItem, quantity: int) -> None:
    if quantity > item.available_stock:
        raise InsufficientStockError(
            product_id=item.product_id,
            branch_id=item.branch_id,
            available=item.available_stock,
            requested=quantity,
        )
    item.reserved_stock += quantity
    item.recompute_available()


def _release_inner(item: InventoryItem, quantity: int) -> None:
    item.reserved_stock = max(0, item.reserved_stock - quantity)
    item.recompute_available()


def reserve_stock(user_id: str, product_id: int, branch_id: int, quantity, *, commit: bool = True) -> InventoryItem:
    """Move quantity from available to reserved."""
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        require_owned(Branch, branch_id, user_id)
        item = _get_item_for_update(user_id, product_id, branch_id)
        _reserve_inner(item, quantity)
        if commit:
            db.session.commit()
        return item

    return run_with_retry(_op) if commit else _op()


def release_reservation(user_id: str, product_id: int, branch_id: int, quantity, *, commit: bool = True) -> InventoryItem:
    """Return reserved quantity to available; never drops reserved below zero."""
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        require_owned(Branch, branch_id, user_id)
        item = _get_item_for_update(user_id, product_id, branch_id)
        _release_inner(item, quantity)
        if commit:
            db.session.commit()
        return item

    return run_with_retry(_op) if commit else _op()


# =============================================================================
# Queries
# =============================================================================

def get_inventory_item(user_id: str, product_id: int, branch_id: int) -> InventoryItem:
    require_owned(Branch, branch_id, user_id)
    item = db.session.query(InventoryItem).filter_by(product_id=product_id, branch_id=branch_id).first()
    if item is None:
        raise NotFoundError(f"No inventory record for product {product_id} at branch {branch_id}")
    return item


def get_available_stock(product_id: int, branch_id: int) -> int:
    item = db.session.query(InventoryItem).filter_by(product_id=product_id, branch_id=branch_id).first()
    return item.available_stock if item else 0


def list_inventory_items(user_id: str, branch_id: int | None = None) -> list[InventoryItem]:
    query = db.session.query(InventoryItem).filter_by(user_id=user_id)
    if branch_id is not None:
        require_owned(Branch, branch_id, user_id)
        query = query.filter_by(branch_id=branch_id)
    return query.order_by(InventoryItem.branch_id.asc(), InventoryItem.product_id.asc()).all()


def list_movements(
    user_id: str,
    *,
    product_id: int | None = None,
    branch_id: int | None = None,
    movement_type: str | None = None,
    status: str | None = None,
    reference_type: str | None = None,
    reference_id=None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter_by(user_id=user_id)
    if product_id is not None:
        query = query.filter_by(product_id=product_id)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    if movement_type:
        query = query.filter_by(movement_type=movement_type.upper())
    if status:
        query = query.filter_by(status=status.upper())
    if reference_type:
        query = query.filter_by(reference_type=reference_type.upper())
    if reference_id is not None:
        query = query.filter_by(reference_id=str(reference_id))

    limit = max(1, min(int(limit), 500))
    offset = max(0, int(offset))
    return (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_ledger_stock(product_id: int, branch_id: int) -> int:
    """Stock derived from the ledger: SUM(direction * quantity) over APPROVED movements."""
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.direction * StockMovement.quantity), 0))
        .filter(
            StockMovement.product_id == product_id,
            StockMovement.branch_id == branch_id,
            StockMovement.status == MOVEMENT_STATUS_APPROVED,
        )
        .scalar()
    )
    return int(total or 0)


def verify_inventory(user_id: str, branch_id: int | None = None) -> list[dict]:
    """
    Replay the ledger against materialized stock.

    Returns one row per InventoryItem whose current_stock differs from the
    ledger sum, or whose available_stock breaks the reservation invariant.
    An empty list means the store is consistent.
    """
    ledger = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.branch_id,
            func.sum(StockMovement.direction * StockMovement.quantity),
        )
        .filter(StockMovement.user_id == user_id, StockMovement.status == MOVEMENT_STATUS_APPROVED)
        .group_by(StockMovement.product_id, StockMovement.branch_id)
    )
    if branch_id is not None:
        ledger = ledger.filter(StockMovement.branch_id == branch_id)
    ledger_totals = {(p, b): int(total or 0) for p, b, total in ledger.all()}

    drift = []
    for item in list_inventory_items(user_id, branch_id):
        expected = ledger_totals.get((item.product_id, item.branch_id), 0)
        available_ok = item.available_stock == item.current_stock - item.reserved_stock
        if item.current_stock != expected or not available_ok:
            drift.append({
                "product_id": item.product_id,
                "branch_id": item.branch_id,
                "current_stock": item.current_stock,
                "ledger_stock": expected,
                "difference": item.current_stock - expected,
                "reserved_stock": item.reserved_stock,
                "available_stock": item.available_stock,
                "available_consistent": available_ok,
            })

    if drift:
        current_app.logger.warning("Inventory drift detected: tenant=%s rows=%s", user_id, len(drift))
    return drift


STOCK_SETTING_FIELDS = ("min_stock_level", "max_stock_level", "reorder_point", "reorder_quantity")


def update_stock_settings(user_id: str, product_id: int, branch_id: int, settings: dict) -> InventoryItem:
    """Update alert thresholds on an InventoryItem. Stock levels are not touchable here."""
    if not isinstance(settings, dict):
        raise ValidationError("settings must be an object")
    patch = {
        key: optional_non_negative_int(settings[key], key)
        for key in STOCK_SETTING_FIELDS
        if key in settings
    }
    if not patch:
        raise ValidationError(f"Provide at least one of: {', '.join(STOCK_SETTING_FIELDS)}")
    if "min_stock_level" in patch and patch["min_stock_level"] is None:
        raise ValidationError("min_stock_level cannot be null")

    def _op():
        require_owned(Branch, branch_id, user_id)
        item = _get_item_for_update(user_id, product_id, branch_id)
        for key, value in patch.items():
            setattr(item, key, value)
        if item.max_stock_level is not None and item.max_stock_level < item.min_stock_level:
            raise ValidationError("max_stock_level must be >= min_stock_level")
        db.session.commit()
        return item

    return run_with_retry(_op)


def get_low_stock_items(user_id: str, branch_id: int | None = None) -> list[InventoryItem]:
    query = db.session.query(InventoryItem).filter(
        InventoryItem.user_id == user_id,
        InventoryItem.current_stock <= InventoryItem.min_stock_level,
    )
    if branch_id is not None:
        require_owned(Branch, branch_id, user_id)
        query = query.filter(InventoryItem.branch_id == branch_id)
    return query.order_by(InventoryItem.current_stock.asc(), InventoryItem.id.asc()).all()


def get_inventory_dashboard(user_id: str, branch_id: int | None = None) -> dict:
    query = db.session.query(
        func.count(InventoryItem.id),
        func.coalesce(func.sum(InventoryItem.current_stock), 0),
        func.coalesce(func.sum(InventoryItem.reserved_stock), 0),
        func.coalesce(func.sum(InventoryItem.current_stock * InventoryItem.average_cost_cents), 0),
        func.coalesce(func.sum(case(
            (InventoryItem.current_stock <= 0, 1), else_=0,
        )), 0),
        func.coalesce(func.sum(case(
            ((InventoryItem.current_stock > 0) & (InventoryItem.current_stock <= InventoryItem.min_stock_level), 1),
            else_=0,
        )), 0),
    ).filter(InventoryItem.user_id == user_id)
    if branch_id is not None:
        require_owned(Branch, branch_id, user_id)
        query = query.filter(InventoryItem.branch_id == branch_id)

    total_items, total_units, reserved_units, value_cents, out_of_stock, low_stock = query.one()

    recent = list_movements(user_id, branch_id=branch_id, limit=10)
    pending = (
        db.session.query(func.count(StockMovement.id))
        .filter(StockMovement.user_id == user_id, StockMovement.status == MOVEMENT_STATUS_PENDING)
    )
    if branch_id is not None:
        pending = pending.filter(StockMovement.branch_id == branch_id)

    return {
        "branch_id": branch_id,
        "total_items": int(total_items),
        "total_stock_units": int(total_units),
        "reserved_stock_units": int(reserved_units),
        "total_value_cents": int(value_cents),
        "low_stock_count": int(low_stock),
        "out_of_stock_count": int(out_of_stock),
        "pending_movements": int(pending.scalar() or 0),
        "recent_movements": [m.to_dict() for m in recent],
    }


def notify_if_low_stock(user_id: str, product_id: int, branch_id: int) -> None:
    """Dispatch an inventory.low_stock notification after a committed outbound movement."""
    item = db.session.query(InventoryItem).filter_by(product_id=product_id, branch_id=branch_id).first()
    if item is None or not item.needs_reorder:
        return
    name = item.product.name if item.product else f"Product {product_id}"
    notification_service.dispatch(
        user_id,
        "inventory.low_stock",
        "Low stock alert",
        f"{name} is at {item.current_stock} units at branch {branch_id} (minimum {item.min_stock_level}).",
        entity_type="inventory_item",
        entity_id=item.id,
    )

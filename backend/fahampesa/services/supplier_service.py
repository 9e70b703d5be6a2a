# Overview: Supplier registry, price history and delivery-performance metrics.

from __future__ import annotations

import math

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, InvalidStateTransitionError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, Supplier, SupplierPriceHistory
from ..models.purchasing import (
    PAYMENT_TERMS,
    PO_STATUS_ACKNOWLEDGED,
    PO_STATUS_CANCELLED,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
    PO_STATUS_SENT,
    SUPPLIER_STATUS_ACTIVE,
    SUPPLIER_STATUS_ARCHIVED,
    SUPPLIER_STATUSES,
)
from ..schemas import EMAIL_RE
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, coerce_int, require_choice, validate_payload
from .concurrency import run_with_retry
from .tenant_service import require_owned


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "contact_person", "email", "phone", "address", "category",
        "payment_terms", "tax_id", "notes", "status",
    },
    required_on_create={"name"},
)

RATING_FIELDS = ("quality_rating", "service_rating", "pricing_rating")


def _enforce_supplier_rules(patch: dict) -> None:
    if patch.get("email") and not EMAIL_RE.match(patch["email"]):
        raise ValidationError("Invalid email format")
    if "payment_terms" in patch:
        patch["payment_terms"] = require_choice(patch["payment_terms"], "payment_terms", PAYMENT_TERMS)
    if "status" in patch:
        patch["status"] = require_choice(patch["status"], "status", SUPPLIER_STATUSES)


def create_supplier(user_id: str, payload: dict, created_by: str | None = None) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    _enforce_supplier_rules(patch)

    def _op():
        supplier = Supplier(user_id=user_id, created_by=created_by or user_id, **patch)
        db.session.add(supplier)
        db.session.commit()
        return supplier

    supplier = run_with_retry(_op)
    current_app.logger.info("Supplier created: tenant=%s id=%s name=%s", user_id, supplier.id, supplier.name)
    return supplier


def get_supplier(user_id: str, supplier_id: int) -> Supplier:
    return require_owned(Supplier, supplier_id, user_id, label="Supplier")


def list_suppliers(
    user_id: str,
    *,
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
) -> list[Supplier]:
    query = db.session.query(Supplier).filter_by(user_id=user_id)
    if status:
        query = query.filter(Supplier.status == status.upper())
    else:
        query = query.filter(Supplier.status != SUPPLIER_STATUS_ARCHIVED)
    if category:
        query = query.filter(Supplier.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Supplier.name.ilike(pattern),
            Supplier.contact_person.ilike(pattern),
            Supplier.email.ilike(pattern),
        ))
    return query.order_by(Supplier.name.asc()).all()


def update_supplier(user_id: str, supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    if not patch:
        raise ValidationError("No updatable fields provided")
    _enforce_supplier_rules(patch)

    def _op():
        supplier = require_owned(Supplier, supplier_id, user_id, lock=True, label="Supplier")
        for key, value in patch.items():
            setattr(supplier, key, value)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def archive_supplier(user_id: str, supplier_id: int) -> Supplier:
    def _op():
        supplier = require_owned(Supplier, supplier_id, user_id, lock=True, label="Supplier")
        if supplier.status == SUPPLIER_STATUS_ARCHIVED:
            raise InvalidStateTransitionError("supplier", "archive", supplier.status)
        supplier.status = SUPPLIER_STATUS_ARCHIVED
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def delete_supplier(user_id: str, supplier_id: int) -> None:
    """Hard delete; only allowed when no purchase orders reference the supplier."""
    def _op():
        supplier = require_owned(Supplier, supplier_id, user_id, lock=True, label="Supplier")
        order_count = db.session.query(func.count(PurchaseOrder.id)).filter(
            PurchaseOrder.supplier_id == supplier.id
        ).scalar()
        if order_count:
            raise ConflictError(
                "Cannot delete supplier with purchase orders. Archive it instead.",
                can_archive=True,
                has_purchase_orders=True,
            )
        db.session.delete(supplier)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Supplier deleted: tenant=%s id=%s", user_id, supplier_id)


def _require_rating(value, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        rating = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not 1 <= rating <= 5:
        raise ValidationError(f"{name} must be between 1 and 5")
    return rating


def _record_delivery(supplier: Supplier, on_time: bool, delivery_days: int) -> None:
    """
    Fold one completed delivery into the running performance averages.

    delivery_days is the absolute number of days early or late. Caller
    commits.
    """
    completed = supplier.completed_orders or 0
    current_rate = supplier.on_time_delivery_rate if supplier.on_time_delivery_rate is not None else 100.0
    on_time_count = round(current_rate / 100 * completed) + (1 if on_time else 0)
    total = completed + 1

    supplier.on_time_delivery_rate = float(round(on_time_count / total * 100))
    supplier.average_delivery_days = float(round(((supplier.average_delivery_days or 0) * completed + delivery_days) / total))
    supplier.completed_orders = total


def record_purchase_order_delivery(supplier: Supplier, expected_at, delivered_at) -> None:
    """Inner helper for the purchase-order workflow; runs in its transaction."""
    seconds = (delivered_at - expected_at).total_seconds()
    delivery_days = abs(math.ceil(seconds / 86400))
    _record_delivery(supplier, on_time=seconds <= 0, delivery_days=delivery_days)


def update_supplier_performance(
    user_id: str,
    supplier_id: int,
    *,
    on_time_delivery: bool | None = None,
    delivery_days=None,
    quality_rating=None,
    service_rating=None,
    pricing_rating=None,
) -> Supplier:
    """Record a delivery outcome and/or set ratings (1-5)."""
    if (on_time_delivery is None) != (delivery_days is None):
        raise ValidationError("on_time_delivery and delivery_days must be provided together")
    if delivery_days is not None:
        delivery_days = abs(coerce_int(delivery_days, "delivery_days"))
    ratings = {
        name: _require_rating(value, name)
        for name, value in zip(RATING_FIELDS, (quality_rating, service_rating, pricing_rating))
        if value is not None
    }
    if on_time_delivery is None and not ratings:
        raise ValidationError("Nothing to update")

    def _op():
        supplier = require_owned(Supplier, supplier_id, user_id, lock=True, label="Supplier")
        if on_time_delivery is not None:
            _record_delivery(supplier, bool(on_time_delivery), delivery_days)
        for key, value in ratings.items():
            setattr(supplier, key, value)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def get_supplier_performance(user_id: str, supplier_id: int) -> dict:
    supplier = require_owned(Supplier, supplier_id, user_id, label="Supplier")
    counts = dict(
        db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id))
        .filter(PurchaseOrder.supplier_id == supplier.id)
        .group_by(PurchaseOrder.status)
        .all()
    )
    total_spend = (
        db.session.query(func.coalesce(func.sum(PurchaseOrder.total_cents), 0))
        .filter(PurchaseOrder.supplier_id == supplier.id, PurchaseOrder.status != PO_STATUS_CANCELLED)
        .scalar()
    )
    completed = counts.get(PO_STATUS_RECEIVED, 0)
    fulfillment = round(completed / supplier.total_orders * 100) if supplier.total_orders else 100

    return {
        "supplier_id": supplier.id,
        "supplier_name": supplier.name,
        "status": supplier.status,
        "is_active": supplier.status == SUPPLIER_STATUS_ACTIVE,
        "total_orders": supplier.total_orders,
        "completed_orders": completed,
        "cancelled_orders": counts.get(PO_STATUS_CANCELLED, 0),
        "order_fulfillment_rate": fulfillment,
        "on_time_delivery_rate": supplier.on_time_delivery_rate,
        "average_delivery_days": supplier.average_delivery_days,
        "overall_rating": supplier.overall_rating,
        "total_spend_cents": int(total_spend or 0),
    }


def record_price(
    supplier: Supplier,
    product_id: int,
    unit_cost_cents: int,
    *,
    purchase_order_id: int | None = None,
    currency: str = "KES",
    effective_from=None,
) -> SupplierPriceHistory:
    """
    Make unit_cost_cents the supplier's active price for product_id.

    Closes the previous active row for the pair. Runs inside the caller's
    transaction; caller commits.
    """
    now = effective_from or utcnow()
    previous = (
        db.session.query(SupplierPriceHistory)
        .filter_by(supplier_id=supplier.id, product_id=product_id, is_active=True)
        .all()
    )
    for row in previous:
        row.is_active = False
        row.effective_to = now

    entry = SupplierPriceHistory(
        user_id=supplier.user_id,
        supplier_id=supplier.id,
        product_id=product_id,
        purchase_order_id=purchase_order_id,
        unit_cost_cents=unit_cost_cents,
        currency=currency,
        effective_from=now,
        is_active=True,
    )
    db.session.add(entry)
    return entry


def get_price_history(user_id: str, supplier_id: int, product_id=None) -> list[SupplierPriceHistory]:
    """Price rows for a supplier, newest first; optionally one product."""
    supplier = require_owned(Supplier, supplier_id, user_id, label="Supplier")
    query = db.session.query(SupplierPriceHistory).filter(SupplierPriceHistory.supplier_id == supplier.id)
    if product_id is not None:
        query = query.filter(SupplierPriceHistory.product_id == coerce_int(product_id, "product_id"))
    return query.order_by(SupplierPriceHistory.effective_from.desc(), SupplierPriceHistory.id.desc()).all()


def get_supplier_dashboard(user_id: str, top_limit: int = 5, recent_limit: int = 10) -> dict:
    suppliers = db.session.query(Supplier).filter(Supplier.user_id == user_id).all()

    spend = dict(
        db.session.query(PurchaseOrder.supplier_id, func.sum(PurchaseOrder.total_cents))
        .filter(PurchaseOrder.user_id == user_id, PurchaseOrder.status != PO_STATUS_CANCELLED)
        .group_by(PurchaseOrder.supplier_id)
        .all()
    )
    ranked = sorted(
        (s for s in suppliers if s.total_orders),
        key=lambda s: (s.total_orders, s.on_time_delivery_rate, -s.id),
        reverse=True,
    )[:top_limit]

    recent_orders = (
        db.session.query(PurchaseOrder)
        .filter(PurchaseOrder.user_id == user_id)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(recent_limit)
        .all()
    )
    pending_approvals = (
        db.session.query(func.count(PurchaseOrder.id))
        .filter(PurchaseOrder.user_id == user_id, PurchaseOrder.status == PO_STATUS_PENDING)
        .scalar()
    )
    overdue_deliveries = (
        db.session.query(func.count(PurchaseOrder.id))
        .filter(
            PurchaseOrder.user_id == user_id,
            PurchaseOrder.status.in_((PO_STATUS_SENT, PO_STATUS_ACKNOWLEDGED)),
            PurchaseOrder.expected_delivery_date < utcnow(),
        )
        .scalar()
    )

    return {
        "total_suppliers": len(suppliers),
        "active_suppliers": sum(1 for s in suppliers if s.status == SUPPLIER_STATUS_ACTIVE),
        "top_suppliers": [
            {
                "supplier_id": s.id,
                "supplier_name": s.name,
                "total_orders": s.total_orders,
                "total_amount_cents": int(spend.get(s.id) or 0),
                "on_time_delivery_rate": s.on_time_delivery_rate,
            }
            for s in ranked
        ],
        "recent_orders": [po.to_dict() for po in recent_orders],
        "pending_approvals": int(pending_approvals or 0),
        "overdue_deliveries": int(overdue_deliveries or 0),
    }

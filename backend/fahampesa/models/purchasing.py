from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SUPPLIER_STATUS_ACTIVE = "ACTIVE"
SUPPLIER_STATUS_INACTIVE = "INACTIVE"
SUPPLIER_STATUS_ARCHIVED = "ARCHIVED"
SUPPLIER_STATUSES = {SUPPLIER_STATUS_ACTIVE, SUPPLIER_STATUS_INACTIVE, SUPPLIER_STATUS_ARCHIVED}

PAYMENT_TERMS = {"NET_7", "NET_15", "NET_30", "NET_60", "COD", "PREPAID"}

PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_PENDING = "PENDING"
PO_STATUS_APPROVED = "APPROVED"
PO_STATUS_REJECTED = "REJECTED"
PO_STATUS_SENT = "SENT"
PO_STATUS_ACKNOWLEDGED = "ACKNOWLEDGED"
PO_STATUS_DELAYED = "DELAYED"
PO_STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_STATUS_RECEIVED = "RECEIVED"
PO_STATUS_CANCELLED = "CANCELLED"

PO_PRIORITIES = {"LOW", "NORMAL", "HIGH", "URGENT"}


class Supplier(db.Model):
    """
    Vendor master data plus denormalized delivery performance.

    Performance fields are maintained by the purchase-order workflow when an
    order is fully received, and may also be set via the ratings endpoint.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)
    payment_terms = db.Column(db.String(16), nullable=False, default="NET_30")
    tax_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SUPPLIER_STATUS_ACTIVE, index=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    completed_orders = db.Column(db.Integer, nullable=False, default=0)
    # Starts optimistic until the first completed delivery
    on_time_delivery_rate = db.Column(db.Float, nullable=False, default=100.0)
    average_delivery_days = db.Column(db.Float, nullable=False, default=0.0)
    quality_rating = db.Column(db.Float, nullable=True)
    service_rating = db.Column(db.Float, nullable=True)
    pricing_rating = db.Column(db.Float, nullable=True)
    last_order_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def overall_rating(self):
        ratings = [r for r in (self.quality_rating, self.service_rating, self.pricing_rating) if r is not None]
        if not ratings:
            return None
        return round(sum(ratings) / len(ratings), 2)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "category": self.category,
            "payment_terms": self.payment_terms,
            "tax_id": self.tax_id,
            "notes": self.notes,
            "status": self.status,
            "performance": {
                "total_orders": self.total_orders,
                "completed_orders": self.completed_orders,
                "on_time_delivery_rate": self.on_time_delivery_rate,
                "average_delivery_days": self.average_delivery_days,
                "quality_rating": self.quality_rating,
                "service_rating": self.service_rating,
                "pricing_rating": self.pricing_rating,
                "overall_rating": self.overall_rating,
            },
            "last_order_at": to_utc_z(self.last_order_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PurchaseOrder(db.Model):
    """
    Supplier order document.

    LIFECYCLE:
    DRAFT -> PENDING -> APPROVED -> SENT -> ACKNOWLEDGED -> PARTIALLY_RECEIVED -> RECEIVED
    Side exits: PENDING -> REJECTED; DRAFT/PENDING/APPROVED/SENT -> CANCELLED;
    SENT/ACKNOWLEDGED -> DELAYED once expected_delivery_date has passed.

    Each receive call posts PURCHASE movements for the good (non-defective)
    quantity of each line and accumulates quantity_received on the items.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("user_id", "po_number", name="uq_purchase_orders_user_number"),
        db.Index("ix_purchase_orders_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    po_number = db.Column(db.String(32), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    branch_name = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(24), nullable=False, default=PO_STATUS_DRAFT, index=True)
    priority = db.Column(db.String(8), nullable=False, default="NORMAL")
    payment_terms = db.Column(db.String(16), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="KES")

    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=False)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    requested_by = db.Column(db.String(128), nullable=False)
    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delayed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    supplier_notes = db.Column(db.Text, nullable=True)

    receiving_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receiving_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by = db.Column(db.String(128), nullable=True)
    receiving_notes = db.Column(db.Text, nullable=True)

    cancelled_by = db.Column(db.String(128), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    internal_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem", backref="purchase_order", lazy=True, order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )
    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy="dynamic"))
    __mapper_args__ = {"version_id_col": version_id}

    def item_for(self, product_id: int):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def is_fully_received(self) -> bool:
        return all(item.quantity_received >= item.quantity_ordered for item in self.items)

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.po_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "status": self.status,
            "priority": self.priority,
            "payment_terms": self.payment_terms,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "actual_delivery_date": to_utc_z(self.actual_delivery_date),
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "sent_at": to_utc_z(self.sent_at),
            "acknowledged_at": to_utc_z(self.acknowledged_at),
            "delayed_at": to_utc_z(self.delayed_at),
            "supplier_notes": self.supplier_notes,
            "receiving_started_at": to_utc_z(self.receiving_started_at),
            "receiving_completed_at": to_utc_z(self.receiving_completed_at),
            "received_by": self.received_by,
            "receiving_notes": self.receiving_notes,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "internal_notes": self.internal_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_purchase_order_items_product"),
        db.CheckConstraint("quantity_received <= quantity_ordered", name="ck_purchase_order_items_received"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=True)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    defective_quantity = db.Column(db.Integer, nullable=False, default=0)

    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity_ordered - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "defective_quantity": self.defective_quantity,
            "outstanding_quantity": self.outstanding_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
        }


class SupplierPriceHistory(db.Model):
    """
    Unit cost quoted by a supplier for a product over time.

    At most one row per (supplier, product) is active; recording a new price
    closes the previous one by setting effective_to.
    """
    __tablename__ = "supplier_price_history"
    __table_args__ = (
        db.Index("ix_supplier_price_history_supplier_product", "supplier_id", "product_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True)

    unit_cost_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="KES")
    effective_from = db.Column(db.DateTime(timezone=True), nullable=False)
    effective_to = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<SupplierPriceHistory supplier_id={self.supplier_id} product_id={self.product_id} "
            f"unit_cost_cents={self.unit_cost_cents} active={self.is_active}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "product_id": self.product_id,
            "purchase_order_id": self.purchase_order_id,
            "unit_cost_cents": self.unit_cost_cents,
            "currency": self.currency,
            "effective_from": to_utc_z(self.effective_from),
            "effective_to": to_utc_z(self.effective_to),
            "is_active": self.is_active,
        }

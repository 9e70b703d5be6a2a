from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSFER_STATUS_REQUESTED = "REQUESTED"
TRANSFER_STATUS_APPROVED = "APPROVED"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_REJECTED = "REJECTED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_TERMINAL_STATUSES = {TRANSFER_STATUS_RECEIVED, TRANSFER_STATUS_REJECTED, TRANSFER_STATUS_CANCELLED}
TRANSFER_OPEN_STATUSES = {TRANSFER_STATUS_REQUESTED, TRANSFER_STATUS_APPROVED, TRANSFER_STATUS_IN_TRANSIT}

TRANSFER_PRIORITIES = {"LOW", "NORMAL", "HIGH", "URGENT"}
TRANSFER_TYPES = {"STOCK_REBALANCING", "NEW_BRANCH_SETUP", "EMERGENCY_STOCK", "RETURN", "OTHER"}
TRANSPORT_METHODS = {"INTERNAL_DELIVERY", "COURIER", "PICKUP", "OTHER"}


class BranchTransfer(db.Model):
    """
    Inter-branch stock transfer document.

    LIFECYCLE:
    1. REQUESTED: created, source stock checked
    2. APPROVED: approved quantities reserved at the source branch
    3. IN_TRANSIT: shipped (tracking metadata only, no stock effect)
    4. RECEIVED: every item's received quantity equals its approved quantity
    Side exits: REQUESTED -> REJECTED, REQUESTED/APPROVED -> CANCELLED

    Stock moves on receipt: each receive call posts TRANSFER_OUT at the source
    and TRANSFER_IN at the destination for exactly the quantity received, in
    one DB transaction, and releases the matching reservation.
    """
    __tablename__ = "branch_transfers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "transfer_number", name="uq_branch_transfers_user_number"),
        db.Index("ix_branch_transfers_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    transfer_number = db.Column(db.String(32), nullable=False)

    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    from_branch_name = db.Column(db.String(120), nullable=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_name = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_REQUESTED, index=True)
    priority = db.Column(db.String(8), nullable=False, default="NORMAL")
    transfer_type = db.Column(db.String(24), nullable=False, default="STOCK_REBALANCING")
    transport_method = db.Column(db.String(24), nullable=True)

    total_items = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="KES")

    requested_by = db.Column(db.String(128), nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    request_reason = db.Column(db.Text, nullable=True)

    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    shipped_by = db.Column(db.String(128), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    estimated_arrival = db.Column(db.DateTime(timezone=True), nullable=True)
    shipping_notes = db.Column(db.Text, nullable=True)

    received_by = db.Column(db.String(128), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
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
        "BranchTransferItem", backref="transfer", lazy=True, order_by="BranchTransferItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def item_for(self, product_id: int):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def is_fully_received(self) -> bool:
        return all(item.outstanding_quantity == 0 for item in self.items)

    def __repr__(self) -> str:
        return f"<BranchTransfer id={self.id} number={self.transfer_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transfer_number": self.transfer_number,
            "from_branch_id": self.from_branch_id,
            "from_branch_name": self.from_branch_name,
            "to_branch_id": self.to_branch_id,
            "to_branch_name": self.to_branch_name,
            "status": self.status,
            "priority": self.priority,
            "transfer_type": self.transfer_type,
            "transport_method": self.transport_method,
            "total_items": self.total_items,
            "total_value_cents": self.total_value_cents,
            "currency": self.currency,
            "requested_by": self.requested_by,
            "requested_at": to_utc_z(self.requested_at),
            "request_reason": self.request_reason,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "shipped_by": self.shipped_by,
            "shipped_at": to_utc_z(self.shipped_at),
            "tracking_number": self.tracking_number,
            "estimated_arrival": to_utc_z(self.estimated_arrival),
            "shipping_notes": self.shipping_notes,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
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


class BranchTransferItem(db.Model):
    """
    One product line on a transfer.

    received_quantity and damaged_quantity accumulate across partial receipts;
    received_quantity never exceeds approved_quantity.
    """
    __tablename__ = "branch_transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_branch_transfer_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("branch_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=True)
    product_sku = db.Column(db.String(64), nullable=True)

    requested_quantity = db.Column(db.Integer, nullable=False)
    approved_quantity = db.Column(db.Integer, nullable=True)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    damaged_quantity = db.Column(db.Integer, nullable=False, default=0)

    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # PENDING, APPROVED, SHIPPED, RECEIVED, DAMAGED
    item_status = db.Column(db.String(16), nullable=False, default="PENDING")
    notes = db.Column(db.Text, nullable=True)

    @property
    def outstanding_quantity(self) -> int:
        return (self.approved_quantity or 0) - self.received_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "requested_quantity": self.requested_quantity,
            "approved_quantity": self.approved_quantity,
            "received_quantity": self.received_quantity,
            "damaged_quantity": self.damaged_quantity,
            "outstanding_quantity": self.outstanding_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "item_status": self.item_status,
            "notes": self.notes,
        }

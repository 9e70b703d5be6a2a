from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Movement types: direction is implied by type, except ADJUSTMENT
MOVEMENT_SALE = "SALE"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_WASTAGE = "WASTAGE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_DAMAGE = "DAMAGE"
MOVEMENT_THEFT = "THEFT"
MOVEMENT_INITIAL = "INITIAL"

INBOUND_MOVEMENT_TYPES = {MOVEMENT_PURCHASE, MOVEMENT_TRANSFER_IN, MOVEMENT_RETURN, MOVEMENT_INITIAL}
OUTBOUND_MOVEMENT_TYPES = {MOVEMENT_SALE, MOVEMENT_TRANSFER_OUT, MOVEMENT_WASTAGE, MOVEMENT_DAMAGE, MOVEMENT_THEFT}
MOVEMENT_TYPES = INBOUND_MOVEMENT_TYPES | OUTBOUND_MOVEMENT_TYPES | {MOVEMENT_ADJUSTMENT}

MOVEMENT_STATUS_PENDING = "PENDING"
MOVEMENT_STATUS_APPROVED = "APPROVED"
MOVEMENT_STATUS_CANCELLED = "CANCELLED"

REFERENCE_TYPES = {"SALE", "PURCHASE", "TRANSFER", "ADJUSTMENT", "AUDIT"}


class InventoryItem(db.Model):
    """
    Materialized stock level for one product at one branch.

    INVARIANTS:
    - available_stock == current_stock - reserved_stock
    - current_stock is only changed by applying a StockMovement, in the same
      DB transaction that writes the movement (inventory_service)
    - reserved_stock is only changed by transfer reservations

    version_id_col makes concurrent read-modify-write cycles on the same row
    fail with StaleDataError instead of silently overwriting each other.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_inventory_items_product_branch"),
        db.Index("ix_inventory_items_user_branch", "user_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)

    # Alert thresholds
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    max_stock_level = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=True)
    reorder_quantity = db.Column(db.Integer, nullable=True)

    # Costing (cents); average is weighted over inbound movements with cost
    average_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    last_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    last_count_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_count_stock = db.Column(db.Integer, nullable=True)
    last_count_user_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    branch = db.relationship("Branch", backref=db.backref("inventory_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock_level

    @property
    def needs_reorder(self) -> bool:
        threshold = self.reorder_point if self.reorder_point is not None else self.min_stock_level
        return self.current_stock <= threshold

    def recompute_available(self) -> None:
        self.available_stock = self.current_stock - self.reserved_stock

    def __repr__(self) -> str:
        return (
            f"<InventoryItem product_id={self.product_id} branch_id={self.branch_id} "
            f"current={self.current_stock} reserved={self.reserved_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "branch_id": self.branch_id,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "reorder_point": self.reorder_point,
            "reorder_quantity": self.reorder_quantity,
            "average_cost_cents": self.average_cost_cents,
            "last_cost_cents": self.last_cost_cents,
            "is_low_stock": self.is_low_stock,
            "last_count_at": to_utc_z(self.last_count_at),
            "last_count_stock": self.last_count_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is always positive; direction (+1 inbound / -1 outbound) is
    implied by movement_type and stored explicitly so ADJUSTMENT can go
    either way. previous_stock/new_stock are captured when the movement is
    applied (APPROVED); PENDING movements have not touched stock yet.

    IMMUTABLE: the only permitted change after insert is
    PENDING -> APPROVED or PENDING -> CANCELLED.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_branch", "product_id", "branch_id"),
        db.Index("ix_stock_movements_user_created", "user_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.CheckConstraint("direction IN (-1, 1)", name="ck_stock_movements_direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.Integer, nullable=False)

    previous_stock = db.Column(db.Integer, nullable=True)
    new_stock = db.Column(db.Integer, nullable=True)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_value_cents = db.Column(db.Integer, nullable=True)

    # Transfer context
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    reference_type = db.Column(db.String(16), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=MOVEMENT_STATUS_APPROVED, index=True)
    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(128), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def signed_quantity(self) -> int:
        return self.direction * self.quantity

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} type={self.movement_type} qty={self.signed_quantity} "
            f"product_id={self.product_id} branch_id={self.branch_id} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "direction": self.direction,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_cost_cents": self.unit_cost_cents,
            "total_value_cents": self.total_value_cents,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "reason": self.reason,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class StockAudit(db.Model):
    """
    Physical stock count for a branch.

    LIFECYCLE:
    1. IN_PROGRESS: system stock snapshotted per product, awaiting counts
    2. COMPLETED: counts reconciled; discrepancies posted as ADJUSTMENT movements
    3. CANCELLED: abandoned before reconciliation
    """
    __tablename__ = "stock_audits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    audit_type = db.Column(db.String(16), nullable=False, default="FULL")
    status = db.Column(db.String(16), nullable=False, default="IN_PROGRESS", index=True)

    total_items_audited = db.Column(db.Integer, nullable=False, default=0)
    total_discrepancies = db.Column(db.Integer, nullable=False, default=0)
    total_value_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)

    audited_by = db.Column(db.String(128), nullable=False)
    reviewed_by = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "StockAuditItem", backref="audit", lazy=True, order_by="StockAuditItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "audit_type": self.audit_type,
            "status": self.status,
            "total_items_audited": self.total_items_audited,
            "total_discrepancies": self.total_discrepancies,
            "total_value_adjustment_cents": self.total_value_adjustment_cents,
            "audited_by": self.audited_by,
            "reviewed_by": self.reviewed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "items": [item.to_dict() for item in self.items],
        }


class StockAuditItem(db.Model):
    __tablename__ = "stock_audit_items"
    __table_args__ = (
        db.UniqueConstraint("audit_id", "product_id", name="uq_stock_audit_items_audit_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audit_id = db.Column(db.Integer, db.ForeignKey("stock_audits.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    system_stock = db.Column(db.Integer, nullable=False)
    physical_stock = db.Column(db.Integer, nullable=True)
    discrepancy = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discrepancy_value_cents = db.Column(db.Integer, nullable=False, default=0)
    is_reconciled = db.Column(db.Boolean, nullable=False, default=False)
    reconciliation_notes = db.Column(db.Text, nullable=True)
    adjustment_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_id": self.audit_id,
            "product_id": self.product_id,
            "system_stock": self.system_stock,
            "physical_stock": self.physical_stock,
            "discrepancy": self.discrepancy,
            "unit_cost_cents": self.unit_cost_cents,
            "discrepancy_value_cents": self.discrepancy_value_cents,
            "is_reconciled": self.is_reconciled,
            "reconciliation_notes": self.reconciliation_notes,
            "adjustment_movement_id": self.adjustment_movement_id,
        }

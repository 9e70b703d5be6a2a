from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data owned by a tenant.

    The inventory core treats the catalog as a lookup: product ids are
    validated and names/SKUs denormalized onto transfer and purchase lines.
    Stock itself lives on InventoryItem, per branch.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("user_id", "sku", name="uq_products_user_sku"),
        db.Index("ix_products_user_active", "user_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit_of_measure = db.Column(db.String(32), nullable=True)

    # Default cost used when a movement carries no explicit unit cost
    cost_price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} user_id={self.user_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "sku": self.sku,
            "name": self.name,
            "unit_of_measure": self.unit_of_measure,
            "cost_price_cents": self.cost_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

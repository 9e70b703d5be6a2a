"""Add supplier price history

Revision ID: 20261020_price_history
Revises: 20261019_initial
Create Date: 2026-10-20 09:00:00.000000

One row per (supplier, product) price; the active row is the current price.
Rows are written when purchase orders are created.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_price_history"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "supplier_price_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("effective_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"],
                                name=op.f("fk_supplier_price_history_supplier_id_suppliers")),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"],
                                name=op.f("fk_supplier_price_history_product_id_products")),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"],
                                name=op.f("fk_supplier_price_history_purchase_order_id_purchase_orders")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_supplier_price_history")),
        sqlite_autoincrement=True
    )
    op.create_index(op.f("ix_supplier_price_history_user_id"), "supplier_price_history", ["user_id"])
    op.create_index(
        "ix_supplier_price_history_supplier_product",
        "supplier_price_history",
        ["supplier_id", "product_id", "is_active"],
    )


def downgrade():
    op.drop_index("ix_supplier_price_history_supplier_product", table_name="supplier_price_history")
    op.drop_index(op.f("ix_supplier_price_history_user_id"), table_name="supplier_price_history")
    op.drop_table("supplier_price_history")

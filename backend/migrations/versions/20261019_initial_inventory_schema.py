"""initial inventory schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete FahamPesa inventory schema:
- products: tenant product catalog
- branches: branch registry with JSON location/contact/opening hours
- suppliers: supplier registry with denormalized performance metrics
- inventory_items: materialized stock per (product, branch)
- stock_movements: append-only stock ledger
- stock_audits / stock_audit_items: physical counts
- branch_transfers / branch_transfer_items: inter-branch transfer workflow
- purchase_orders / purchase_order_items: supplier order workflow
- document_sequences: per-tenant yearly document numbering
- notifications: in-app notifications
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'))
        )
    return columns


def upgrade():
    """
    Create all tables from scratch.

    Mutable workflow rows (branches, suppliers, inventory_items, stock_audits,
    branch_transfers, purchase_orders) carry version_id for optimistic
    concurrency.
    """

    # ============================================================================
    # products: tenant product catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_of_measure', sa.String(length=32), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('user_id', 'sku', name='uq_products_user_sku'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_products_user_id'), 'products', ['user_id'])
    op.create_index('ix_products_user_active', 'products', ['user_id', 'is_active'])

    # ============================================================================
    # branches: branch registry
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('branch_code', sa.String(length=16), nullable=False),
        sa.Column('branch_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.JSON(), nullable=False),
        sa.Column('contact', sa.JSON(), nullable=False),
        sa.Column('opening_hours', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('manager_id', sa.String(length=128), nullable=True),
        sa.Column('manager_name', sa.String(length=255), nullable=True),
        sa.Column('max_capacity', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivation_reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_branches')),
        sa.UniqueConstraint('user_id', 'branch_code', name='uq_branches_user_code'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_branches_user_id'), 'branches', ['user_id'])
    op.create_index(op.f('ix_branches_status'), 'branches', ['status'])
    op.create_index('ix_branches_user_status', 'branches', ['user_id', 'status'])

    # ============================================================================
    # suppliers: supplier registry + performance metrics
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('payment_terms', sa.String(length=16), nullable=False),
        sa.Column('tax_id', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('completed_orders', sa.Integer(), nullable=False),
        sa.Column('on_time_delivery_rate', sa.Float(), nullable=False),
        sa.Column('average_delivery_days', sa.Float(), nullable=False),
        sa.Column('quality_rating', sa.Float(), nullable=True),
        sa.Column('service_rating', sa.Float(), nullable=True),
        sa.Column('pricing_rating', sa.Float(), nullable=True),
        sa.Column('last_order_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_suppliers')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_suppliers_user_id'), 'suppliers', ['user_id'])
    op.create_index(op.f('ix_suppliers_status'), 'suppliers', ['status'])
    op.create_index('ix_suppliers_user_status', 'suppliers', ['user_id', 'status'])

    # ============================================================================
    # inventory_items: materialized stock per (product, branch)
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('reserved_stock', sa.Integer(), nullable=False),
        sa.Column('available_stock', sa.Integer(), nullable=False),
        sa.Column('min_stock_level', sa.Integer(), nullable=False),
        sa.Column('max_stock_level', sa.Integer(), nullable=True),
        sa.Column('reorder_point', sa.Integer(), nullable=True),
        sa.Column('reorder_quantity', sa.Integer(), nullable=True),
        sa.Column('average_cost_cents', sa.Integer(), nullable=False),
        sa.Column('last_cost_cents', sa.Integer(), nullable=False),
        sa.Column('last_count_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_count_stock', sa.Integer(), nullable=True),
        sa.Column('last_count_user_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_inventory_items_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_inventory_items_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory_items')),
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_inventory_items_product_branch'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_inventory_items_user_id'), 'inventory_items', ['user_id'])
    op.create_index(op.f('ix_inventory_items_product_id'), 'inventory_items', ['product_id'])
    op.create_index(op.f('ix_inventory_items_branch_id'), 'inventory_items', ['branch_id'])
    op.create_index('ix_inventory_items_user_branch', 'inventory_items', ['user_id', 'branch_id'])

    # ============================================================================
    # stock_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('direction', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=True),
        sa.Column('new_stock', sa.Integer(), nullable=True),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('total_value_cents', sa.Integer(), nullable=True),
        sa.Column('from_branch_id', sa.Integer(), nullable=True),
        sa.Column('to_branch_id', sa.Integer(), nullable=True),
        sa.Column('reference_type', sa.String(length=16), nullable=True),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('approved_by', sa.String(length=128), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=128), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.CheckConstraint('direction IN (-1, 1)', name='ck_stock_movements_direction'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_stock_movements_product_id_products')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_stock_movements_branch_id_branches')),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id'],
                                name=op.f('fk_stock_movements_from_branch_id_branches')),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id'],
                                name=op.f('fk_stock_movements_to_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_movements')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_movements_user_id'), 'stock_movements', ['user_id'])
    op.create_index(op.f('ix_stock_movements_movement_type'), 'stock_movements', ['movement_type'])
    op.create_index(op.f('ix_stock_movements_status'), 'stock_movements', ['status'])
    op.create_index('ix_stock_movements_product_branch', 'stock_movements', ['product_id', 'branch_id'])
    op.create_index('ix_stock_movements_user_created', 'stock_movements', ['user_id', 'created_at'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    # ============================================================================
    # stock_audits: physical counts
    # ============================================================================
    op.create_table(
        'stock_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('audit_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('total_items_audited', sa.Integer(), nullable=False),
        sa.Column('total_discrepancies', sa.Integer(), nullable=False),
        sa.Column('total_value_adjustment_cents', sa.Integer(), nullable=False),
        sa.Column('audited_by', sa.String(length=128), nullable=False),
        sa.Column('reviewed_by', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_stock_audits_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_audits')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_audits_user_id'), 'stock_audits', ['user_id'])
    op.create_index(op.f('ix_stock_audits_branch_id'), 'stock_audits', ['branch_id'])
    op.create_index(op.f('ix_stock_audits_status'), 'stock_audits', ['status'])

    op.create_table(
        'stock_audit_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('system_stock', sa.Integer(), nullable=False),
        sa.Column('physical_stock', sa.Integer(), nullable=True),
        sa.Column('discrepancy', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('discrepancy_value_cents', sa.Integer(), nullable=False),
        sa.Column('is_reconciled', sa.Boolean(), nullable=False),
        sa.Column('reconciliation_notes', sa.Text(), nullable=True),
        sa.Column('adjustment_movement_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['audit_id'], ['stock_audits.id'],
                                name=op.f('fk_stock_audit_items_audit_id_stock_audits')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_stock_audit_items_product_id_products')),
        sa.ForeignKeyConstraint(['adjustment_movement_id'], ['stock_movements.id'],
                                name=op.f('fk_stock_audit_items_adjustment_movement_id_stock_movements')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_audit_items')),
        sa.UniqueConstraint('audit_id', 'product_id', name='uq_stock_audit_items_audit_product'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_stock_audit_items_audit_id'), 'stock_audit_items', ['audit_id'])

    # ============================================================================
    # branch_transfers: REQUESTED -> APPROVED -> IN_TRANSIT -> RECEIVED
    # ============================================================================
    op.create_table(
        'branch_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('transfer_number', sa.String(length=32), nullable=False),
        sa.Column('from_branch_id', sa.Integer(), nullable=False),
        sa.Column('from_branch_name', sa.String(length=120), nullable=True),
        sa.Column('to_branch_id', sa.Integer(), nullable=False),
        sa.Column('to_branch_name', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.String(length=8), nullable=False),
        sa.Column('transfer_type', sa.String(length=24), nullable=False),
        sa.Column('transport_method', sa.String(length=24), nullable=True),
        sa.Column('total_items', sa.Integer(), nullable=False),
        sa.Column('total_value_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('requested_by', sa.String(length=128), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('request_reason', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.String(length=128), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.String(length=128), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('shipped_by', sa.String(length=128), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('estimated_arrival', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipping_notes', sa.Text(), nullable=True),
        sa.Column('received_by', sa.String(length=128), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receiving_notes', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(length=128), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id'],
                                name=op.f('fk_branch_transfers_from_branch_id_branches')),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id'],
                                name=op.f('fk_branch_transfers_to_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_branch_transfers')),
        sa.UniqueConstraint('user_id', 'transfer_number', name='uq_branch_transfers_user_number'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_branch_transfers_user_id'), 'branch_transfers', ['user_id'])
    op.create_index(op.f('ix_branch_transfers_from_branch_id'), 'branch_transfers', ['from_branch_id'])
    op.create_index(op.f('ix_branch_transfers_to_branch_id'), 'branch_transfers', ['to_branch_id'])
    op.create_index(op.f('ix_branch_transfers_status'), 'branch_transfers', ['status'])
    op.create_index('ix_branch_transfers_user_status', 'branch_transfers', ['user_id', 'status'])

    op.create_table(
        'branch_transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('product_sku', sa.String(length=64), nullable=True),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('approved_quantity', sa.Integer(), nullable=True),
        sa.Column('received_quantity', sa.Integer(), nullable=False),
        sa.Column('damaged_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('item_status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['transfer_id'], ['branch_transfers.id'],
                                name=op.f('fk_branch_transfer_items_transfer_id_branch_transfers')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_branch_transfer_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_branch_transfer_items')),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_branch_transfer_items_product'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_branch_transfer_items_transfer_id'), 'branch_transfer_items', ['transfer_id'])

    # ============================================================================
    # purchase_orders: DRAFT -> ... -> RECEIVED
    # ============================================================================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('po_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('branch_name', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('priority', sa.String(length=8), nullable=False),
        sa.Column('payment_terms', sa.String(length=16), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('expected_delivery_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actual_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requested_by', sa.String(length=128), nullable=False),
        sa.Column('approved_by', sa.String(length=128), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.String(length=128), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delayed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('supplier_notes', sa.Text(), nullable=True),
        sa.Column('receiving_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receiving_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_by', sa.String(length=128), nullable=True),
        sa.Column('receiving_notes', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(length=128), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'],
                                name=op.f('fk_purchase_orders_supplier_id_suppliers')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name=op.f('fk_purchase_orders_branch_id_branches')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_orders')),
        sa.UniqueConstraint('user_id', 'po_number', name='uq_purchase_orders_user_number'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_purchase_orders_user_id'), 'purchase_orders', ['user_id'])
    op.create_index(op.f('ix_purchase_orders_supplier_id'), 'purchase_orders', ['supplier_id'])
    op.create_index(op.f('ix_purchase_orders_branch_id'), 'purchase_orders', ['branch_id'])
    op.create_index(op.f('ix_purchase_orders_status'), 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_user_status', 'purchase_orders', ['user_id', 'status'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('product_sku', sa.String(length=64), nullable=True),
        sa.Column('quantity_ordered', sa.Integer(), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('defective_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity_received <= quantity_ordered', name='ck_purchase_order_items_received'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'],
                                name=op.f('fk_purchase_order_items_purchase_order_id_purchase_orders')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name=op.f('fk_purchase_order_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_order_items')),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_purchase_order_items_product'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_purchase_order_items_purchase_order_id'), 'purchase_order_items',
                    ['purchase_order_id'])

    # ============================================================================
    # document_sequences: PREFIX-YYYY-NNN allocation
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_document_sequences')),
        sa.UniqueConstraint('user_id', 'document_type', 'period', name='uq_document_sequences_scope'),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_document_sequences_user_id'), 'document_sequences', ['user_id'])

    # ============================================================================
    # notifications: in-app notifications
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_notifications')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'])
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])


def downgrade():
    for table in (
        'notifications',
        'document_sequences',
        'purchase_order_items',
        'purchase_orders',
        'branch_transfer_items',
        'branch_transfers',
        'stock_audit_items',
        'stock_audits',
        'stock_movements',
        'inventory_items',
        'suppliers',
        'branches',
        'products',
    ):
        op.drop_table(table)

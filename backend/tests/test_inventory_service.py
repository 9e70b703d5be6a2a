# Overview: Pytest coverage for the stock ledger and materialized inventory.

"""
Inventory Service Tests

Covers:
1. Outbound movements never drive available stock below zero
2. The materialized stock always matches a replay of the movement ledger
3. PENDING movements leave stock untouched until approved
4. Reservations move stock between available and reserved
5. Auto-creation of inventory rows is limited to inbound opening types
"""

import pytest

from conftest import TENANT_A, TENANT_B, stock
from fahampesa.errors import (
    AccessDeniedError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from fahampesa.models import StockMovement
from fahampesa.services import inventory_service


def _item(product, branch):
    return inventory_service.get_inventory_item(TENANT_A, product.id, branch.id)


class TestRecordMovement:
    """Applying approved movements to InventoryItem."""

    def test_sale_reduces_stock(self, stocked, main_branch, product):
        """10 on hand, SALE 7 leaves 3."""
        movement = inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 7)

        assert movement.previous_stock == 10
        assert movement.new_stock == 3
        assert movement.direction == -1
        item = _item(product, main_branch)
        assert item.current_stock == 3
        assert item.available_stock == 3

    def test_sale_exceeding_available_rejected(self, stocked, main_branch, product):
        """A second SALE of 5 against 3 on hand fails and leaves stock at 3."""
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 7)

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 5)

        assert exc.value.to_dict()["available"] == 3
        assert exc.value.to_dict()["requested"] == 5
        assert _item(product, main_branch).current_stock == 3
        assert StockMovement.query.filter_by(movement_type="SALE").count() == 1

    def test_zero_quantity_rejected(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 0)

    def test_unknown_movement_type_rejected(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "GIFT", 1)

    def test_adjustment_requires_direction(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "ADJUSTMENT", 1)

    def test_inbound_updates_weighted_average_cost(self, db_session, main_branch, product):
        """10 @ 100 then 10 @ 200 averages to 150."""
        stock(product.id, main_branch.id, 10, unit_cost_cents=100)
        inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "PURCHASE", 10, unit_cost_cents=200
        )

        item = _item(product, main_branch)
        assert item.current_stock == 20
        assert item.average_cost_cents == 150
        assert item.last_cost_cents == 200

    def test_outbound_without_inventory_row_not_found(self, db_session, main_branch, product):
        """Only INITIAL, TRANSFER_IN and PURCHASE create a missing row."""
        with pytest.raises(NotFoundError):
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "RETURN", 1)

    def test_purchase_auto_creates_row(self, db_session, main_branch, product):
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "PURCHASE", 4)
        assert _item(product, main_branch).current_stock == 4

    def test_unknown_product_not_found(self, db_session, main_branch):
        with pytest.raises(NotFoundError):
            inventory_service.record_movement(TENANT_A, 99999, main_branch.id, "INITIAL", 1)

    def test_foreign_branch_denied(self, db_session, foreign_branch, product):
        with pytest.raises(AccessDeniedError):
            inventory_service.record_movement(TENANT_A, product.id, foreign_branch.id, "INITIAL", 1)


class TestLedgerConsistency:
    """Materialized stock equals the replayed ledger."""

    def test_verify_is_clean_after_mixed_movements(self, stocked, main_branch, product):
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 4)
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "RETURN", 1)
        inventory_service.adjust_stock(TENANT_A, product.id, main_branch.id, -2, "Breakage")
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 1, status="PENDING")

        assert inventory_service.verify_inventory(TENANT_A) == []
        assert inventory_service.get_ledger_stock(product.id, main_branch.id) == 5
        assert _item(product, main_branch).current_stock == 5

    def test_verify_reports_drift(self, stocked, main_branch, product, db_session):
        item = _item(product, main_branch)
        item.current_stock = 99
        db_session.commit()

        drift = inventory_service.verify_inventory(TENANT_A)

        assert len(drift) == 1
        assert drift[0]["ledger_stock"] == 10
        assert drift[0]["difference"] == 89

    def test_verify_is_tenant_scoped(self, stocked, foreign_branch):
        assert inventory_service.verify_inventory(TENANT_B) == []


class TestAdjustments:
    """Signed ADJUSTMENT movements."""

    def test_negative_adjustment_blocked_without_override(self, stocked, main_branch, product):
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_stock(TENANT_A, product.id, main_branch.id, -11, "Count correction")
        assert _item(product, main_branch).current_stock == 10

    def test_negative_adjustment_with_override(self, stocked, main_branch, product):
        movement = inventory_service.adjust_stock(
            TENANT_A, product.id, main_branch.id, -11, "Count correction", allow_negative=True
        )

        assert movement.new_stock == -1
        assert _item(product, main_branch).current_stock == -1
        assert inventory_service.verify_inventory(TENANT_A) == []

    def test_override_only_for_adjustments(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(
                TENANT_A, product.id, main_branch.id, "SALE", 11, allow_negative=True
            )

    def test_zero_delta_rejected(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(TENANT_A, product.id, main_branch.id, 0, "Nothing")

    def test_reason_required(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(TENANT_A, product.id, main_branch.id, 1, "  ")


class TestPendingMovements:
    """PENDING -> APPROVED/CANCELLED."""

    def test_pending_does_not_touch_stock(self, stocked, main_branch, product):
        movement = inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "SALE", 3, status="PENDING"
        )
        assert movement.status == "PENDING"
        assert movement.previous_stock is None
        assert _item(product, main_branch).current_stock == 10

    def test_approve_applies_movement(self, stocked, main_branch, product):
        movement = inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "SALE", 3, status="PENDING"
        )

        approved = inventory_service.approve_movement(TENANT_A, movement.id, "manager-1")

        assert approved.status == "APPROVED"
        assert approved.approved_by == "manager-1"
        assert approved.new_stock == 7
        assert _item(product, main_branch).current_stock == 7

    def test_approve_rechecks_available_stock(self, stocked, main_branch, product):
        pending = inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "SALE", 8, status="PENDING"
        )
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 5)

        with pytest.raises(InsufficientStockError):
            inventory_service.approve_movement(TENANT_A, pending.id, "manager-1")

        assert _item(product, main_branch).current_stock == 5

    def test_cancel_leaves_stock(self, stocked, main_branch, product):
        movement = inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "SALE", 3, status="PENDING"
        )

        cancelled = inventory_service.cancel_movement(TENANT_A, movement.id, "manager-1", "Customer left")

        assert cancelled.status == "CANCELLED"
        assert "Customer left" in cancelled.notes
        assert _item(product, main_branch).current_stock == 10

    def test_approved_movement_is_final(self, stocked, main_branch, product):
        movement = inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 1)

        with pytest.raises(InvalidStateTransitionError):
            inventory_service.cancel_movement(TENANT_A, movement.id, "manager-1")

    def test_other_tenant_cannot_approve(self, stocked, main_branch, product):
        movement = inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "SALE", 1, status="PENDING"
        )
        with pytest.raises(AccessDeniedError):
            inventory_service.approve_movement(TENANT_B, movement.id, "intruder")


class TestReservations:
    """available_stock == current_stock - reserved_stock."""

    def test_reserve_and_release(self, stocked, main_branch, product):
        item = inventory_service.reserve_stock(TENANT_A, product.id, main_branch.id, 4)
        assert (item.current_stock, item.reserved_stock, item.available_stock) == (10, 4, 6)

        item = inventory_service.release_reservation(TENANT_A, product.id, main_branch.id, 10)
        assert (item.reserved_stock, item.available_stock) == (0, 10)

    def test_reserve_more_than_available(self, stocked, main_branch, product):
        inventory_service.reserve_stock(TENANT_A, product.id, main_branch.id, 8)
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve_stock(TENANT_A, product.id, main_branch.id, 3)

    def test_sale_cannot_consume_reserved_units(self, stocked, main_branch, product):
        inventory_service.reserve_stock(TENANT_A, product.id, main_branch.id, 8)
        with pytest.raises(InsufficientStockError):
            inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 3)


class TestSettingsAndAlerts:
    """Thresholds, low stock listing and notifications."""

    def test_update_settings(self, stocked, main_branch, product):
        item = inventory_service.update_stock_settings(
            TENANT_A, product.id, main_branch.id, {"min_stock_level": 5, "max_stock_level": 50}
        )
        assert item.min_stock_level == 5
        assert item.max_stock_level == 50

    def test_max_below_min_rejected(self, stocked, main_branch, product):
        with pytest.raises(ValidationError):
            inventory_service.update_stock_settings(
                TENANT_A, product.id, main_branch.id, {"min_stock_level": 5, "max_stock_level": 2}
            )

    def test_low_stock_sale_notifies(self, stocked, main_branch, product):
        from fahampesa.services import notification_service

        inventory_service.update_stock_settings(TENANT_A, product.id, main_branch.id, {"min_stock_level": 5})
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 6)

        low = inventory_service.get_low_stock_items(TENANT_A, main_branch.id)
        assert [i.product_id for i in low] == [product.id]
        events = [n.event_type for n in notification_service.list_notifications(TENANT_A)]
        assert "inventory.low_stock" in events

    def test_dashboard_totals(self, stocked, main_branch, product):
        dashboard = inventory_service.get_inventory_dashboard(TENANT_A, main_branch.id)
        assert dashboard["total_items"] == 1
        assert dashboard["total_stock_units"] == 10
        assert dashboard["total_value_cents"] == 10 * 15000
        assert len(dashboard["recent_movements"]) == 1

# Overview: Pytest coverage for physical stock audits and reconciliation.

import pytest

from conftest import TENANT_A, TENANT_B
from fahampesa.errors import AccessDeniedError, InvalidStateTransitionError, ValidationError
from fahampesa.models import StockMovement
from fahampesa.services import audit_service, inventory_service


def _stock_of(product, branch):
    return inventory_service.get_inventory_item(TENANT_A, product.id, branch.id)


class TestCreateAudit:
    """Snapshots of system stock."""

    def test_full_audit_snapshots_branch(self, stocked, main_branch, product):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")

        assert audit.status == "IN_PROGRESS"
        assert audit.total_items_audited == 1
        line = audit.items[0]
        assert (line.product_id, line.system_stock, line.unit_cost_cents) == (product.id, 10, 15000)
        assert line.is_reconciled is False

    def test_empty_branch_rejected(self, main_branch):
        with pytest.raises(ValidationError, match="no inventory"):
            audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")

    def test_partial_requires_products(self, stocked, main_branch):
        with pytest.raises(ValidationError):
            audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1", audit_type="PARTIAL")

    def test_partial_includes_unstocked_catalog_product(self, stocked, main_branch, second_product):
        audit = audit_service.create_stock_audit(
            TENANT_A, main_branch.id, "auditor-1", audit_type="CYCLE", product_ids=[second_product.id]
        )
        assert [(i.product_id, i.system_stock) for i in audit.items] == [(second_product.id, 0)]

    def test_unknown_product_rejected(self, stocked, main_branch):
        with pytest.raises(ValidationError):
            audit_service.create_stock_audit(
                TENANT_A, main_branch.id, "auditor-1", audit_type="PARTIAL", product_ids=[99999]
            )

    def test_foreign_branch_denied(self, foreign_branch):
        with pytest.raises(AccessDeniedError):
            audit_service.create_stock_audit(TENANT_A, foreign_branch.id, "auditor-1")


class TestReconcileAudit:
    """Counts become ADJUSTMENT movements referencing the audit."""

    def test_shortage_posts_adjustment(self, stocked, main_branch, product):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")

        done = audit_service.reconcile_stock_audit(
            TENANT_A, audit.id, [{"product_id": product.id, "physical_stock": 7}], "manager-1"
        )

        assert done.status == "COMPLETED"
        assert done.total_discrepancies == 1
        assert done.total_value_adjustment_cents == -3 * 15000
        line = done.items[0]
        assert line.discrepancy == -3
        assert line.is_reconciled is True

        movement = StockMovement.query.filter_by(reference_type="AUDIT").one()
        assert movement.id == line.adjustment_movement_id
        assert movement.movement_type == "ADJUSTMENT"
        assert movement.signed_quantity == -3
        item = _stock_of(product, main_branch)
        assert item.current_stock == 7
        assert item.last_count_stock == 7
        assert inventory_service.verify_inventory(TENANT_A) == []

    def test_sales_during_count_measured_against_live_stock(self, stocked, main_branch, product):
        """Discrepancy uses the snapshot; the adjustment lands stock on the count."""
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        inventory_service.record_movement(TENANT_A, product.id, main_branch.id, "SALE", 2)

        done = audit_service.reconcile_stock_audit(
            TENANT_A, audit.id, [{"product_id": product.id, "physical_stock": 7}], "manager-1"
        )

        assert done.items[0].discrepancy == -3
        movement = StockMovement.query.filter_by(reference_type="AUDIT").one()
        assert movement.signed_quantity == -1
        assert _stock_of(product, main_branch).current_stock == 7

    def test_matching_count_posts_nothing(self, stocked, main_branch, product):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")

        done = audit_service.reconcile_stock_audit(
            TENANT_A, audit.id, [{"product_id": product.id, "physical_stock": 10}], "manager-1"
        )

        assert done.total_discrepancies == 0
        assert done.items[0].adjustment_movement_id is None
        assert StockMovement.query.filter_by(reference_type="AUDIT").count() == 0

    def test_count_below_reserved_is_allowed(self, stocked, main_branch, product):
        inventory_service.reserve_stock(TENANT_A, product.id, main_branch.id, 8)
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")

        audit_service.reconcile_stock_audit(
            TENANT_A, audit.id, [{"product_id": product.id, "physical_stock": 5}], "manager-1"
        )

        item = _stock_of(product, main_branch)
        assert (item.current_stock, item.reserved_stock, item.available_stock) == (5, 8, -3)

    def test_unknown_line_rejected(self, stocked, main_branch, product, second_product):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        with pytest.raises(ValidationError):
            audit_service.reconcile_stock_audit(
                TENANT_A, audit.id, [{"product_id": second_product.id, "physical_stock": 1}], "manager-1"
            )
        assert audit_service.get_stock_audit(TENANT_A, audit.id).status == "IN_PROGRESS"

    def test_reconcile_twice_rejected(self, stocked, main_branch, product):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        counts = [{"product_id": product.id, "physical_stock": 9}]
        audit_service.reconcile_stock_audit(TENANT_A, audit.id, counts, "manager-1")

        with pytest.raises(InvalidStateTransitionError):
            audit_service.reconcile_stock_audit(TENANT_A, audit.id, counts, "manager-1")
        assert _stock_of(product, main_branch).current_stock == 9


class TestCancelAndList:
    def test_cancel(self, stocked, main_branch):
        audit = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        cancelled = audit_service.cancel_stock_audit(TENANT_A, audit.id, "manager-1", "Power cut")
        assert cancelled.status == "CANCELLED"
        assert "Power cut" in cancelled.notes

    def test_list_by_status(self, stocked, main_branch):
        first = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        second = audit_service.create_stock_audit(TENANT_A, main_branch.id, "auditor-1")
        audit_service.cancel_stock_audit(TENANT_A, first.id, "manager-1")

        in_progress = audit_service.list_stock_audits(TENANT_A, status="in_progress")
        assert [a.id for a in in_progress] == [second.id]
        assert audit_service.list_stock_audits(TENANT_B) == []

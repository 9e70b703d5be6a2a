# Overview: Pytest coverage for the purchase-order lifecycle and receiving.

"""
Purchase Order Tests

Covers:
- creation rules (future delivery date, catalog products, supplier counters)
- DRAFT -> PENDING -> APPROVED -> SENT -> ACKNOWLEDGED transitions
- cumulative receiving capped at the ordered quantity
- defective units recorded but never stocked
- supplier performance updated on completion
"""

from datetime import timedelta

import pytest

from conftest import TENANT_A, TENANT_B
from fahampesa.errors import AccessDeniedError, InvalidStateTransitionError, ValidationError
from fahampesa.models import StockMovement
from fahampesa.services import inventory_service, purchase_order_service, supplier_service
from fahampesa.time_utils import utcnow


def _create(supplier, branch, product, quantity=20, unit_cost=12000, days=5, **extra):
    return purchase_order_service.create_purchase_order(
        TENANT_A,
        supplier.id,
        branch.id,
        [{"product_id": product.id, "quantity_ordered": quantity, "unit_cost_cents": unit_cost}],
        utcnow() + timedelta(days=days),
        "buyer-1",
        **extra,
    )


def _sent(supplier, branch, product, **kwargs):
    po = _create(supplier, branch, product, **kwargs)
    purchase_order_service.submit_purchase_order(TENANT_A, po.id)
    purchase_order_service.approve_purchase_order(TENANT_A, po.id, "manager-1")
    return purchase_order_service.send_purchase_order(TENANT_A, po.id)


def _receive(po, product, quantity, defective=0):
    return purchase_order_service.receive_purchase_order(
        TENANT_A,
        po.id,
        [{"product_id": product.id, "quantity_received": quantity, "defective_quantity": defective}],
        "storekeeper-1",
    )


class TestCreatePurchaseOrder:
    """DRAFT creation."""

    def test_create_computes_totals(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product, tax_cents=1000, shipping_cents=500)

        assert po.status == "DRAFT"
        assert po.po_number == f"PO-{utcnow().year}-001"
        assert po.subtotal_cents == 20 * 12000
        assert po.total_cents == 20 * 12000 + 1500
        assert po.payment_terms == "NET_30"
        assert supplier_service.get_supplier(TENANT_A, supplier.id).total_orders == 1

    def test_past_delivery_date_rejected(self, supplier, main_branch, product):
        with pytest.raises(ValidationError, match="future"):
            _create(supplier, main_branch, product, days=-1)

    def test_item_requires_unit_cost(self, supplier, main_branch, product):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                TENANT_A, supplier.id, main_branch.id,
                [{"product_id": product.id, "quantity_ordered": 5}],
                utcnow() + timedelta(days=3), "buyer-1",
            )

    def test_unknown_product_rejected(self, supplier, main_branch):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                TENANT_A, supplier.id, main_branch.id,
                [{"product_id": 99999, "quantity_ordered": 5, "unit_cost_cents": 100}],
                utcnow() + timedelta(days=3), "buyer-1",
            )

    def test_archived_supplier_rejected(self, supplier, main_branch, product):
        supplier_service.archive_supplier(TENANT_A, supplier.id)
        with pytest.raises(ValidationError, match="archived"):
            _create(supplier, main_branch, product)

    def test_foreign_branch_denied(self, supplier, foreign_branch, product):
        with pytest.raises(AccessDeniedError):
            _create(supplier, foreign_branch, product)


class TestTransitions:
    """Workflow state machine."""

    def test_happy_path_to_acknowledged(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)
        assert po.status == "SENT"
        assert po.sent_at is not None

        acknowledged = purchase_order_service.acknowledge_purchase_order(
            TENANT_A, po.id, supplier_notes="Dispatching Friday"
        )
        assert acknowledged.status == "ACKNOWLEDGED"
        assert acknowledged.supplier_notes == "Dispatching Friday"

    def test_send_requires_approval(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product)
        with pytest.raises(InvalidStateTransitionError) as exc:
            purchase_order_service.send_purchase_order(TENANT_A, po.id)
        assert exc.value.to_dict()["current_status"] == "DRAFT"

    def test_reject_requires_reason(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product)
        purchase_order_service.submit_purchase_order(TENANT_A, po.id)

        with pytest.raises(ValidationError):
            purchase_order_service.approve_purchase_order(TENANT_A, po.id, "manager-1", approved=False)

        rejected = purchase_order_service.approve_purchase_order(
            TENANT_A, po.id, "manager-1", approved=False, reason="Over budget"
        )
        assert rejected.status == "REJECTED"
        with pytest.raises(InvalidStateTransitionError):
            purchase_order_service.cancel_purchase_order(TENANT_A, po.id, "manager-1", "Too late")

    def test_cancel_draft(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product)
        cancelled = purchase_order_service.cancel_purchase_order(TENANT_A, po.id, "buyer-1", "Duplicate")
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "Duplicate"

    def test_pending_approvals_lists_submitted(self, supplier, main_branch, product):
        draft = _create(supplier, main_branch, product)
        submitted = _create(supplier, main_branch, product)
        purchase_order_service.submit_purchase_order(TENANT_A, submitted.id)

        pending = purchase_order_service.get_pending_approvals(TENANT_A)
        assert [po.id for po in pending] == [submitted.id]
        assert draft.id not in [po.id for po in pending]

    def test_other_tenant_cannot_submit(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product)
        with pytest.raises(AccessDeniedError):
            purchase_order_service.submit_purchase_order(TENANT_B, po.id)


class TestDelays:
    """Overdue detection and DELAYED status."""

    def _make_overdue(self, po, db_session):
        po.expected_delivery_date = utcnow() - timedelta(days=2)
        db_session.commit()

    def test_mark_delayed_requires_passed_date(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)
        with pytest.raises(ValidationError):
            purchase_order_service.mark_delayed(TENANT_A, po.id)

    def test_overdue_order_marked_and_reacknowledged(self, supplier, main_branch, product, db_session):
        po = _sent(supplier, main_branch, product)
        self._make_overdue(po, db_session)

        assert [o.id for o in purchase_order_service.get_overdue_purchase_orders(TENANT_A)] == [po.id]
        moved = purchase_order_service.mark_overdue_purchase_orders(TENANT_A)

        assert [o.id for o in moved] == [po.id]
        assert purchase_order_service.get_purchase_order(TENANT_A, po.id).status == "DELAYED"

        revised = utcnow() + timedelta(days=3)
        acknowledged = purchase_order_service.acknowledge_purchase_order(
            TENANT_A, po.id, expected_delivery_date=revised
        )
        assert acknowledged.status == "ACKNOWLEDGED"


class TestReceiving:
    """Goods receipt against SENT/ACKNOWLEDGED/PARTIALLY_RECEIVED orders."""

    def test_partial_then_full_receipt(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)

        partial = _receive(po, product, 8)
        assert partial.status == "PARTIALLY_RECEIVED"
        assert partial.items[0].quantity_received == 8
        assert inventory_service.get_inventory_item(TENANT_A, product.id, main_branch.id).current_stock == 8

        done = _receive(po, product, 12)
        assert done.status == "RECEIVED"
        assert done.actual_delivery_date is not None
        item = inventory_service.get_inventory_item(TENANT_A, product.id, main_branch.id)
        assert item.current_stock == 20
        assert item.last_cost_cents == 12000
        assert inventory_service.verify_inventory(TENANT_A) == []

    def test_cumulative_receipt_capped_at_ordered(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)
        _receive(po, product, 15)

        with pytest.raises(ValidationError):
            _receive(po, product, 6)

        refreshed = purchase_order_service.get_purchase_order(TENANT_A, po.id)
        assert refreshed.items[0].quantity_received == 15
        assert refreshed.status == "PARTIALLY_RECEIVED"

    def test_defective_units_not_stocked(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)

        done = _receive(po, product, 20, defective=3)

        assert done.status == "RECEIVED"
        assert done.items[0].defective_quantity == 3
        assert inventory_service.get_inventory_item(TENANT_A, product.id, main_branch.id).current_stock == 17
        movement = StockMovement.query.filter_by(reference_type="PURCHASE").one()
        assert movement.quantity == 17
        assert movement.reference_id == str(po.id)

    def test_defective_above_received_rejected(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)
        with pytest.raises(ValidationError):
            _receive(po, product, 2, defective=3)

    def test_receive_draft_rejected(self, supplier, main_branch, product):
        po = _create(supplier, main_branch, product)
        with pytest.raises(InvalidStateTransitionError):
            _receive(po, product, 1)

    def test_completion_updates_supplier_performance(self, supplier, main_branch, product):
        po = _sent(supplier, main_branch, product)
        _receive(po, product, 20)

        performance = supplier_service.get_supplier_performance(TENANT_A, supplier.id)
        assert performance["completed_orders"] == 1
        assert performance["on_time_delivery_rate"] == 100.0
        assert performance["order_fulfillment_rate"] == 100
        assert performance["total_spend_cents"] == 20 * 12000


class TestSummary:
    def test_summary_groups_by_status(self, supplier, main_branch, product):
        _create(supplier, main_branch, product)
        po = _create(supplier, main_branch, product, quantity=1, unit_cost=500)
        purchase_order_service.cancel_purchase_order(TENANT_A, po.id, "buyer-1", "Duplicate")

        summary = purchase_order_service.get_purchase_order_summary(TENANT_A)

        assert summary["by_status"]["DRAFT"]["count"] == 1
        assert summary["by_status"]["CANCELLED"]["total_cents"] == 500
        assert summary["open_orders"] == 1
        assert summary["open_value_cents"] == 20 * 12000
        assert summary["overdue_orders"] == 0

# Overview: Pytest coverage for the supplier registry, price history, dashboard and performance metrics.

from datetime import timedelta

import pytest

from conftest import TENANT_A, TENANT_B
from fahampesa.errors import AccessDeniedError, ConflictError, InvalidStateTransitionError, ValidationError
from fahampesa.models import SupplierPriceHistory
from fahampesa.services import purchase_order_service, supplier_service
from fahampesa.time_utils import utcnow


class TestSupplierRegistry:
    """Create, update, list, archive and delete."""

    def test_create_defaults(self, supplier):
        assert supplier.status == "ACTIVE"
        assert supplier.total_orders == 0
        assert supplier.on_time_delivery_rate == 100.0
        assert supplier.created_by == TENANT_A

    def test_invalid_email_rejected(self, db_session):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(TENANT_A, {"name": "Bad", "email": "not-an-email"})

    def test_invalid_payment_terms_rejected(self, db_session):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(TENANT_A, {"name": "Bad", "payment_terms": "NET_999"})

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(TENANT_A, {"email": "a@b.co"})

    def test_update(self, supplier):
        updated = supplier_service.update_supplier(TENANT_A, supplier.id, {"phone": "+254700000000"})
        assert updated.phone == "+254700000000"

    def test_list_hides_archived_and_searches(self, supplier):
        other = supplier_service.create_supplier(TENANT_A, {"name": "Kisumu Traders"})
        supplier_service.archive_supplier(TENANT_A, other.id)

        assert [s.id for s in supplier_service.list_suppliers(TENANT_A)] == [supplier.id]
        assert [s.id for s in supplier_service.list_suppliers(TENANT_A, status="archived")] == [other.id]
        assert [s.id for s in supplier_service.list_suppliers(TENANT_A, search="mombasa")] == [supplier.id]
        assert supplier_service.list_suppliers(TENANT_B) == []

    def test_archive_twice_rejected(self, supplier):
        supplier_service.archive_supplier(TENANT_A, supplier.id)
        with pytest.raises(InvalidStateTransitionError):
            supplier_service.archive_supplier(TENANT_A, supplier.id)

    def test_delete_without_orders(self, supplier):
        supplier_service.delete_supplier(TENANT_A, supplier.id)
        assert supplier_service.list_suppliers(TENANT_A, status="ACTIVE") == []

    def test_delete_with_orders_suggests_archive(self, supplier, main_branch, product):
        purchase_order_service.create_purchase_order(
            TENANT_A, supplier.id, main_branch.id,
            [{"product_id": product.id, "quantity_ordered": 1, "unit_cost_cents": 100}],
            utcnow() + timedelta(days=1), "buyer-1",
        )

        with pytest.raises(ConflictError) as exc:
            supplier_service.delete_supplier(TENANT_A, supplier.id)

        body = exc.value.to_dict()
        assert body["can_archive"] is True
        assert body["has_purchase_orders"] is True

    def test_other_tenant_cannot_read(self, supplier):
        with pytest.raises(AccessDeniedError):
            supplier_service.get_supplier(TENANT_B, supplier.id)


class TestSupplierPerformance:
    """Running on-time rate and average delivery days."""

    def test_running_averages(self, supplier):
        supplier_service.update_supplier_performance(
            TENANT_A, supplier.id, on_time_delivery=True, delivery_days=2
        )
        updated = supplier_service.update_supplier_performance(
            TENANT_A, supplier.id, on_time_delivery=False, delivery_days=4
        )

        assert updated.completed_orders == 2
        assert updated.on_time_delivery_rate == 50.0
        assert updated.average_delivery_days == 3.0

    def test_ratings(self, supplier):
        updated = supplier_service.update_supplier_performance(
            TENANT_A, supplier.id, quality_rating=5, service_rating=4, pricing_rating=3
        )
        assert updated.overall_rating == 4.0

    def test_rating_out_of_range(self, supplier):
        with pytest.raises(ValidationError):
            supplier_service.update_supplier_performance(TENANT_A, supplier.id, quality_rating=6)

    def test_delivery_fields_go_together(self, supplier):
        with pytest.raises(ValidationError):
            supplier_service.update_supplier_performance(TENANT_A, supplier.id, on_time_delivery=True)

    def test_nothing_to_update(self, supplier):
        with pytest.raises(ValidationError):
            supplier_service.update_supplier_performance(TENANT_A, supplier.id)

    def test_performance_report_without_orders(self, supplier):
        report = supplier_service.get_supplier_performance(TENANT_A, supplier.id)
        assert report["order_fulfillment_rate"] == 100
        assert report["total_spend_cents"] == 0
        assert report["is_active"] is True


def _order(supplier, branch, product, unit_cost, quantity=5):
    return purchase_order_service.create_purchase_order(
        TENANT_A,
        supplier.id,
        branch.id,
        [{"product_id": product.id, "quantity_ordered": quantity, "unit_cost_cents": unit_cost}],
        utcnow() + timedelta(days=5),
        "buyer-1",
    )


class TestPriceHistory:
    """One active price per supplier and product."""

    def test_new_order_closes_previous_price(self, supplier, main_branch, product):
        first = _order(supplier, main_branch, product, 14000)
        second = _order(supplier, main_branch, product, 15000)

        history = supplier_service.get_price_history(TENANT_A, supplier.id)

        assert [h.unit_cost_cents for h in history] == [15000, 14000]
        current, previous = history
        assert current.is_active is True
        assert current.purchase_order_id == second.id
        assert current.effective_to is None
        assert previous.is_active is False
        assert previous.purchase_order_id == first.id
        assert previous.effective_to == current.effective_from
        assert SupplierPriceHistory.query.filter_by(is_active=True).count() == 1

    def test_filter_by_product(self, supplier, main_branch, product, second_product):
        _order(supplier, main_branch, product, 14000)
        _order(supplier, main_branch, second_product, 29000)

        history = supplier_service.get_price_history(TENANT_A, supplier.id, product_id=second_product.id)

        assert [(h.product_id, h.unit_cost_cents, h.is_active) for h in history] == [
            (second_product.id, 29000, True)
        ]

    def test_prices_are_per_supplier(self, supplier, main_branch, product):
        other = supplier_service.create_supplier(TENANT_A, {"name": "Kisumu Traders"})
        _order(supplier, main_branch, product, 14000)
        _order(other, main_branch, product, 13500)

        assert supplier_service.get_price_history(TENANT_A, supplier.id)[0].is_active is True
        assert supplier_service.get_price_history(TENANT_A, other.id)[0].unit_cost_cents == 13500

    def test_rejected_order_records_no_price(self, supplier, main_branch, product):
        supplier_service.archive_supplier(TENANT_A, supplier.id)
        with pytest.raises(ValidationError):
            _order(supplier, main_branch, product, 14000)
        assert SupplierPriceHistory.query.count() == 0

    def test_other_tenant_denied(self, supplier):
        with pytest.raises(AccessDeniedError):
            supplier_service.get_price_history(TENANT_B, supplier.id)


class TestSupplierDashboard:
    def test_counts_and_rankings(self, supplier, main_branch, product, db_session):
        other = supplier_service.create_supplier(TENANT_A, {"name": "Kisumu Traders"})
        idle = supplier_service.create_supplier(TENANT_A, {"name": "Idle Supplies"})
        supplier_service.archive_supplier(TENANT_A, idle.id)

        _order(supplier, main_branch, product, 10000, quantity=2)
        pending = _order(supplier, main_branch, product, 10000, quantity=3)
        purchase_order_service.submit_purchase_order(TENANT_A, pending.id)
        late = _order(other, main_branch, product, 12000, quantity=1)
        purchase_order_service.submit_purchase_order(TENANT_A, late.id)
        purchase_order_service.approve_purchase_order(TENANT_A, late.id, "manager-1")
        late = purchase_order_service.send_purchase_order(TENANT_A, late.id)
        late.expected_delivery_date = utcnow() - timedelta(days=1)
        db_session.commit()

        dashboard = supplier_service.get_supplier_dashboard(TENANT_A)

        assert dashboard["total_suppliers"] == 3
        assert dashboard["active_suppliers"] == 2
        top = dashboard["top_suppliers"]
        assert [t["supplier_id"] for t in top] == [supplier.id, other.id]
        assert top[0]["total_orders"] == 2
        assert top[0]["total_amount_cents"] == 5 * 10000
        assert len(dashboard["recent_orders"]) == 3
        assert dashboard["pending_approvals"] == 1
        assert dashboard["overdue_deliveries"] == 1

    def test_empty_tenant(self, db_session):
        dashboard = supplier_service.get_supplier_dashboard(TENANT_B)
        assert dashboard == {
            "total_suppliers": 0,
            "active_suppliers": 0,
            "top_suppliers": [],
            "recent_orders": [],
            "pending_approvals": 0,
            "overdue_deliveries": 0,
        }

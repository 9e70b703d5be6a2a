# Overview: Pytest coverage for branch CRUD, deactivation guards and summaries.

"""
Branch Service Tests

Covers:
1. Sequential per-tenant branch codes
2. Nested location/contact/opening-hours validation
3. Deactivation blocked by open transfers
4. Hard deletion blocked by history, with an archive hint
5. Multi-branch stock summaries
"""

import pytest

from conftest import TENANT_A, TENANT_B, make_branch, stock
from fahampesa.errors import AccessDeniedError, BranchInUseError, NotFoundError, ValidationError
from fahampesa.models import StockMovement
from fahampesa.services import branch_service, inventory_service, transfer_service


class TestCreateBranch:
    """Branch creation and codes."""

    def test_codes_are_sequential_per_tenant(self, main_branch, second_branch, foreign_branch):
        assert main_branch.branch_code == "BR001"
        assert second_branch.branch_code == "BR002"
        assert foreign_branch.branch_code == "BR001"

    def test_defaults(self, main_branch):
        assert main_branch.status == "ACTIVE"
        assert main_branch.branch_type == "MAIN"
        assert main_branch.currency == "KES"
        hours = {h.day_of_week: h for h in main_branch.opening_hours}
        assert len(hours) == 7
        assert hours["SUNDAY"].is_open is False
        assert hours["MONDAY"].open_time == "08:00"

    def test_address_required(self, db_session):
        with pytest.raises(ValidationError, match="address"):
            branch_service.create_branch(TENANT_A, {"name": "Nowhere", "location": {"city": "Nairobi"}})

    def test_invalid_branch_type(self, db_session):
        with pytest.raises(ValidationError):
            make_branch(TENANT_A, "Odd", branch_type="SPACESHIP")

    def test_invalid_contact_email(self, db_session):
        with pytest.raises(ValidationError):
            make_branch(TENANT_A, "Mail", contact={"email": "broken"})

    def test_invalid_opening_time(self, db_session):
        with pytest.raises(ValidationError, match="HH:MM"):
            make_branch(
                TENANT_A, "Hours",
                opening_hours=[{"day_of_week": "MONDAY", "open_time": "8am", "close_time": "17:00"}],
            )

    def test_partial_opening_hours_fill_closed_days(self, db_session):
        branch = make_branch(
            TENANT_A, "Weekday Only",
            opening_hours=[{"day_of_week": "monday", "open_time": "09:00", "close_time": "17:00"}],
        )
        hours = {h.day_of_week: h for h in branch.opening_hours}
        assert hours["MONDAY"].is_open is True
        assert hours["TUESDAY"].is_open is False


class TestUpdateAndList:
    def test_update_replaces_location(self, main_branch):
        updated = branch_service.update_branch(
            TENANT_A, main_branch.id, {"location": {"address": "Moi Avenue 1", "city": "Mombasa"}}
        )
        assert updated.location.city == "Mombasa"

    def test_empty_update_rejected(self, main_branch):
        with pytest.raises(ValidationError):
            branch_service.update_branch(TENANT_A, main_branch.id, {})

    def test_list_filters(self, main_branch, second_branch):
        assert len(branch_service.list_branches(TENANT_A)) == 2
        assert [b.id for b in branch_service.list_branches(TENANT_A, branch_type="main")] == [main_branch.id]
        assert [b.id for b in branch_service.list_branches(TENANT_A, search="westlands")] == [second_branch.id]

    def test_cross_tenant_read_denied(self, foreign_branch):
        with pytest.raises(AccessDeniedError):
            branch_service.get_branch(TENANT_A, foreign_branch.id)

    def test_missing_branch(self, db_session):
        with pytest.raises(NotFoundError):
            branch_service.get_branch(TENANT_A, 99999)


class TestDeactivateBranch:
    """Soft delete guarded by open transfers."""

    def test_deactivate(self, main_branch):
        branch = branch_service.deactivate_branch(TENANT_A, main_branch.id, "Lease ended")
        assert branch.status == "INACTIVE"
        assert branch.deactivation_reason == "Lease ended"
        assert branch.deactivated_at is not None
        assert branch_service.get_active_branches(TENANT_A) == []

    def test_blocked_by_open_transfer(self, stocked, main_branch, second_branch, product):
        transfer_service.create_transfer(
            TENANT_A, main_branch.id, second_branch.id,
            [{"product_id": product.id, "requested_quantity": 2}], "clerk-1",
        )

        with pytest.raises(BranchInUseError) as exc:
            branch_service.deactivate_branch(TENANT_A, second_branch.id)

        assert exc.value.status_code == 409
        assert exc.value.to_dict()["has_pending_transfers"] is True
        assert branch_service.get_branch(TENANT_A, second_branch.id).status == "ACTIVE"

    def test_status_update_uses_same_guard(self, stocked, main_branch, second_branch, product):
        transfer_service.create_transfer(
            TENANT_A, main_branch.id, second_branch.id,
            [{"product_id": product.id, "requested_quantity": 2}], "clerk-1",
        )
        with pytest.raises(BranchInUseError):
            branch_service.update_branch(TENANT_A, main_branch.id, {"status": "INACTIVE"})

    def test_reactivation_clears_reason(self, main_branch):
        branch_service.deactivate_branch(TENANT_A, main_branch.id, "Renovation")
        branch = branch_service.update_branch(TENANT_A, main_branch.id, {"status": "ACTIVE"})
        assert branch.deactivated_at is None
        assert branch.deactivation_reason is None


class TestDeleteBranch:
    """Hard delete only for unused branches."""

    def test_delete_unused_branch(self, main_branch):
        branch_service.delete_branch(TENANT_A, main_branch.id)
        with pytest.raises(NotFoundError):
            branch_service.get_branch(TENANT_A, main_branch.id)

    def test_delete_with_inventory_suggests_archive(self, stocked, main_branch):
        with pytest.raises(BranchInUseError) as exc:
            branch_service.delete_branch(TENANT_A, main_branch.id)

        body = exc.value.to_dict()
        assert body["success"] is False
        assert body["can_archive"] is True
        assert body["has_inventory"] is True
        assert body["has_transfer_history"] is False

    def test_delete_with_pending_movement_only_is_blocked(self, main_branch, product):
        inventory_service.record_movement(
            TENANT_A, product.id, main_branch.id, "INITIAL", 5, status="PENDING"
        )

        with pytest.raises(BranchInUseError) as exc:
            branch_service.delete_branch(TENANT_A, main_branch.id)

        body = exc.value.to_dict()
        assert body["has_movement_history"] is True
        assert body["can_archive"] is True
        assert branch_service.get_branch(TENANT_A, main_branch.id).id == main_branch.id
        assert StockMovement.query.filter_by(branch_id=main_branch.id).count() == 1

    def test_next_code_follows_highest_remaining(self, main_branch, second_branch):
        branch_service.delete_branch(TENANT_A, main_branch.id)
        third = make_branch(TENANT_A, "Karen")
        assert third.branch_code == "BR003"

    def test_other_tenant_cannot_delete(self, foreign_branch):
        with pytest.raises(AccessDeniedError):
            branch_service.delete_branch(TENANT_A, foreign_branch.id)


class TestSummaries:
    def test_multibranch_stock_summary(self, stocked, main_branch, second_branch, product, second_product):
        stock(product.id, second_branch.id, 5)
        stock(second_product.id, second_branch.id, 2, unit_cost_cents=30000)

        summary = {s["product_id"]: s for s in branch_service.get_multibranch_stock_summary(TENANT_A)}

        assert summary[product.id]["total_stock"] == 15
        assert len(summary[product.id]["branch_stocks"]) == 2
        assert summary[second_product.id]["total_stock"] == 2

        only = branch_service.get_multibranch_stock_summary(TENANT_A, [second_product.id])
        assert [s["product_id"] for s in only] == [second_product.id]

    def test_summary_skips_inactive_branches(self, stocked, main_branch, second_branch, product):
        stock(product.id, second_branch.id, 5)
        branch_service.deactivate_branch(TENANT_A, second_branch.id)

        summary = branch_service.get_multibranch_stock_summary(TENANT_A)
        assert summary[0]["total_stock"] == 10

    def test_dashboard(self, stocked, main_branch, second_branch, product):
        transfer_service.create_transfer(
            TENANT_A, main_branch.id, second_branch.id,
            [{"product_id": product.id, "requested_quantity": 2}], "clerk-1",
        )

        dashboard = branch_service.get_branch_dashboard(TENANT_A)

        assert dashboard["total_branches"] == 2
        assert dashboard["active_branches"] == 2
        assert dashboard["pending_transfers"] == 1
        assert dashboard["total_inventory_value_cents"] == 10 * 15000
        assert dashboard["top_branches"][0]["branch_id"] == main_branch.id

    def test_inventory_summary_is_tenant_scoped(self, foreign_branch):
        with pytest.raises(AccessDeniedError):
            branch_service.get_branch_inventory_summary(TENANT_A, foreign_branch.id)
        assert branch_service.get_branch_dashboard(TENANT_B)["total_branches"] == 1

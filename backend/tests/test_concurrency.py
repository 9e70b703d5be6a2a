# Overview: Pytest coverage for transaction retry, optimistic locking and document numbering.

"""
Concurrency Tests

SQLite ignores SELECT ... FOR UPDATE, so most of these tests exercise the
retry policy directly and force version conflicts by bumping version_id
behind the ORM's back. The concurrent sale test runs two threads against a
file-backed database so each thread has its own connection.
"""

import threading

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from conftest import TENANT_A, TENANT_B, make_branch, stock
from fahampesa import create_app
from fahampesa.errors import ConflictError, InsufficientStockError, ValidationError
from fahampesa.extensions import db
from fahampesa.models import InventoryItem, StockMovement
from fahampesa.services import catalog_service, inventory_service
from fahampesa.services.catalog_service import product_catalog
from fahampesa.services.concurrency import run_with_retry
from fahampesa.services.document_service import next_document_number
from fahampesa.time_utils import utcnow


class TestRunWithRetry:
    """Bounded retry on concurrency failures only."""

    def test_returns_result(self, db_session):
        assert run_with_retry(lambda: 42) == 42

    def test_retries_then_succeeds(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_exhausted_retries_raise_conflict(self, db_session):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(ConflictError) as exc:
            run_with_retry(always_stale, attempts=2, backoff_base=0)

        assert len(calls) == 2
        assert exc.value.status_code == 409
        assert exc.value.to_dict()["retryable"] is True

    def test_operational_error_is_retried(self, db_session):
        calls = []

        def locked():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return "done"

        assert run_with_retry(locked, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_domain_errors_propagate_without_retry(self, db_session):
        calls = []

        def invalid():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            run_with_retry(invalid, attempts=5, backoff_base=0)
        assert len(calls) == 1

    def test_failure_rolls_back_pending_changes(self, db_session, main_branch, product):
        def half_done():
            db.session.add(InventoryItem(
                user_id=TENANT_A, product_id=product.id, branch_id=main_branch.id,
                current_stock=5, reserved_stock=0, available_stock=5,
            ))
            db.session.flush()
            raise ValidationError("abort")

        with pytest.raises(ValidationError):
            run_with_retry(half_done)
        assert InventoryItem.query.count() == 0


class TestOptimisticLocking:
    """version_id_col catches lost updates."""

    def test_stale_write_detected(self, stocked, db_session):
        loaded_version = stocked.version_id
        db_session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == stocked.id)
            .values(version_id=loaded_version + 1)
            .execution_options(synchronize_session=False)
        )

        stocked.current_stock = 9
        with pytest.raises(StaleDataError):
            db_session.flush()
        db_session.rollback()


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so threads get separate connections."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'TX_RETRY_BACKOFF_SECONDS': 0,
    })
    with app.app_context():
        db.create_all()
        product_catalog.clear()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    product_catalog.clear()


class TestConcurrentSales:
    """Two overdrawing sales racing on the same item."""

    def test_only_one_sale_applies(self, file_app, monkeypatch):
        branch = make_branch(TENANT_A, "Main Branch")
        product = catalog_service.create_product(
            TENANT_A, {"sku": "SUG-1KG", "name": "Sugar 1kg", "cost_price_cents": 15000}
        )
        stock(product.id, branch.id, 10)
        product_id, branch_id = product.id, branch.id

        both_read = threading.Barrier(2, timeout=10)
        waited = set()
        original_get_item = inventory_service._get_item_for_update

        def read_then_wait(*args, **kwargs):
            item = original_get_item(*args, **kwargs)
            ident = threading.get_ident()
            if ident not in waited:
                waited.add(ident)
                both_read.wait()
            return item

        monkeypatch.setattr(inventory_service, "_get_item_for_update", read_then_wait)

        outcomes = []

        def sell():
            with file_app.app_context():
                try:
                    inventory_service.record_movement(TENANT_A, product_id, branch_id, "SALE", 7)
                    outcomes.append("ok")
                except InsufficientStockError:
                    outcomes.append("insufficient")
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=sell) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["insufficient", "ok"]
        db.session.expire_all()
        item = InventoryItem.query.filter_by(product_id=product_id, branch_id=branch_id).one()
        assert item.current_stock == 3
        assert item.available_stock == 3
        assert StockMovement.query.filter_by(movement_type="SALE").count() == 1


class TestDocumentNumbers:
    """PREFIX-YYYY-NNN per tenant and document type."""

    def test_sequence_per_scope(self, db_session):
        year = utcnow().year

        first = next_document_number(user_id=TENANT_A, document_type="TRANSFER", prefix="TR")
        second = next_document_number(user_id=TENANT_A, document_type="TRANSFER", prefix="TR")
        other_type = next_document_number(user_id=TENANT_A, document_type="PURCHASE_ORDER", prefix="PO")
        other_tenant = next_document_number(user_id=TENANT_B, document_type="TRANSFER", prefix="TR")
        db_session.commit()

        assert first == f"TR-{year}-001"
        assert second == f"TR-{year}-002"
        assert other_type == f"PO-{year}-001"
        assert other_tenant == f"TR-{year}-001"

    def test_period_and_padding(self, db_session):
        number = next_document_number(
            user_id=TENANT_A, document_type="TRANSFER", prefix="TR", pad=5, period="2030"
        )
        assert number == "TR-2030-00001"

    def test_rolled_back_number_is_reissued(self, db_session):
        first = next_document_number(user_id=TENANT_A, document_type="TRANSFER", prefix="TR")
        db_session.rollback()
        again = next_document_number(user_id=TENANT_A, document_type="TRANSFER", prefix="TR")
        assert first == again

    def test_document_type_required(self, db_session):
        with pytest.raises(ValidationError):
            next_document_number(user_id=TENANT_A, document_type="", prefix="TR")

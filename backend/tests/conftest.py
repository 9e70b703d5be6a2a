"""
Pytest fixtures for FahamPesa backend tests.

Provides an in-memory database, per-test cleanup, two tenants with branches,
products and a supplier, and a test client.
"""

import pytest

from fahampesa import create_app
from fahampesa.extensions import db
from fahampesa.services import branch_service, catalog_service, inventory_service, supplier_service
from fahampesa.services.catalog_service import product_catalog


TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'TX_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        product_catalog.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_branch(user_id: str, name: str, **extra):
    payload = {"name": name, "location": {"address": f"{name} Street", "city": "Nairobi"}}
    payload.update(extra)
    return branch_service.create_branch(user_id, payload)


@pytest.fixture(scope='function')
def main_branch(db_session):
    """BR001 for tenant A."""
    return make_branch(TENANT_A, "Main Branch", branch_type="MAIN")


@pytest.fixture(scope='function')
def second_branch(db_session, main_branch):
    """BR002 for tenant A."""
    return make_branch(TENANT_A, "Westlands")


@pytest.fixture(scope='function')
def foreign_branch(db_session):
    """A branch owned by tenant B."""
    return make_branch(TENANT_B, "Other Tenant Branch")


@pytest.fixture(scope='function')
def product(db_session):
    return catalog_service.create_product(
        TENANT_A, {"sku": "SUG-1KG", "name": "Sugar 1kg", "cost_price_cents": 15000}
    )


@pytest.fixture(scope='function')
def second_product(db_session):
    return catalog_service.create_product(
        TENANT_A, {"sku": "RICE-2KG", "name": "Rice 2kg", "cost_price_cents": 30000}
    )


@pytest.fixture(scope='function')
def supplier(db_session):
    return supplier_service.create_supplier(
        TENANT_A, {"name": "Mombasa Wholesalers", "email": "orders@mombasa.example", "payment_terms": "NET_30"}
    )


def stock(product_id: int, branch_id: int, quantity: int, unit_cost_cents: int = 15000, user_id: str = TENANT_A):
    """Seed stock with an INITIAL movement."""
    return inventory_service.record_movement(
        user_id, product_id, branch_id, "INITIAL", quantity, unit_cost_cents=unit_cost_cents
    )


@pytest.fixture(scope='function')
def stocked(db_session, main_branch, product):
    """Main branch holds 10 units of product."""
    stock(product.id, main_branch.id, 10)
    return inventory_service.get_inventory_item(TENANT_A, product.id, main_branch.id)

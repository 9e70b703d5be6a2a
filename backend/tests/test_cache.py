# Overview: Pytest coverage for the TTL cache and the product catalog lookup.

import pytest

from conftest import TENANT_A, TENANT_B
from fahampesa.cache import TTLCache
from fahampesa.errors import NotFoundError
from fahampesa.services import catalog_service
from fahampesa.services.catalog_service import ProductCatalog


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestTTLCache:
    """Expiry driven by an injected clock."""

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = TTLCache(30, clock=clock)
        cache.set("k", "v")

        clock.advance(29.9)
        assert cache.get("k") == "v"
        clock.advance(0.1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_expiry(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("k", 1)
        clock.advance(8)
        cache.set("k", 2)
        clock.advance(8)
        assert cache.get("k") == 2

    def test_invalidate_and_clear(self):
        cache = TTLCache(10, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert "a" not in cache
        assert "b" in cache

        cache.clear()
        assert "b" not in cache

    def test_default_returned_on_miss(self):
        assert TTLCache(1).get("missing", default=42) == 42

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            TTLCache(-1)

    def test_full_cache_sweeps_expired_entries(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock, max_entries=2)
        cache.set("idle-tenant", 1)
        clock.advance(5)
        cache.set("b", 2)
        clock.advance(5)

        cache.set("c", 3)

        assert len(cache) == 2
        assert "idle-tenant" not in cache._entries
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_full_cache_drops_entry_closest_to_expiry(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock, max_entries=2)
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)

        cache.set("c", 3)

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_overwriting_key_in_full_cache_keeps_others(self):
        cache = TTLCache(10, clock=FakeClock(), max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert (cache.get("a"), cache.get("b")) == (3, 2)


class TestProductCatalog:
    """Per-tenant product lookups served from the cache."""

    def test_stale_until_expiry(self, db_session, product):
        clock = FakeClock()
        catalog = ProductCatalog(ttl_seconds=60, clock=clock)
        assert catalog.get_product(TENANT_A, product.id)["name"] == "Sugar 1kg"

        product.name = "Sugar 1kg Premium"
        db_session.commit()
        assert catalog.get_product(TENANT_A, product.id)["name"] == "Sugar 1kg"

        clock.advance(60)
        assert catalog.get_product(TENANT_A, product.id)["name"] == "Sugar 1kg Premium"

    def test_update_invalidates_shared_catalog(self, db_session, product):
        from fahampesa.services.catalog_service import product_catalog

        assert product_catalog.get_product(TENANT_A, product.id)["sku"] == "SUG-1KG"
        catalog_service.update_product(TENANT_A, product.id, {"sku": "SUG-1KG-B"})
        assert product_catalog.get_product(TENANT_A, product.id)["sku"] == "SUG-1KG-B"

    def test_products_are_tenant_scoped(self, db_session, product):
        catalog = ProductCatalog(ttl_seconds=60, clock=FakeClock())
        with pytest.raises(NotFoundError):
            catalog.get_product(TENANT_B, product.id)

    def test_inactive_products_hidden(self, db_session, product):
        catalog_service.update_product(TENANT_A, product.id, {"is_active": False})
        with pytest.raises(NotFoundError):
            catalog_service.product_catalog.get_product(TENANT_A, product.id)

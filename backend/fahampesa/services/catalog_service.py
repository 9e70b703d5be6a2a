"""
Product catalog lookup with an explicit per-tenant TTL cache.

Workflows use the catalog to validate product ids and denormalize names and
SKUs onto document lines. Lookups go through the ProductCatalog singleton,
which caches each tenant's active product list for CATALOG_CACHE_TTL_SECONDS.

INVALIDATION:
- create_product / update_product invalidate the owning tenant's entry
- tests call product_catalog.clear() between cases
"""
from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..cache import TTLCache
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from .concurrency import run_with_retry
from .tenant_service import require_owned


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "unit_of_measure", "cost_price_cents", "is_active"},
    required_on_create={"sku", "name"},
)


class ProductCatalog:
    def __init__(self, ttl_seconds: float = 300, clock=time.monotonic):
        self._clock = clock
        self._cache = TTLCache(ttl_seconds, clock=clock)

    def init_app(self, app) -> None:
        self._cache = TTLCache(app.config.get("CATALOG_CACHE_TTL_SECONDS", 300), clock=self._clock)

    def get_products(self, user_id: str) -> list[dict]:
        """Active products for a tenant: [{id, name, sku, cost_price_cents}]."""
        products = self._cache.get(user_id)
        if products is None:
            rows = (
                db.session.query(Product)
                .filter_by(user_id=user_id, is_active=True)
                .order_by(Product.name.asc(), Product.id.asc())
                .all()
            )
            products = [
                {"id": p.id, "name": p.name, "sku": p.sku, "cost_price_cents": p.cost_price_cents}
                for p in rows
            ]
            self._cache.set(user_id, products)
        return products

    def get_product(self, user_id: str, product_id) -> dict:
        for product in self.get_products(user_id):
            if product["id"] == product_id:
                return product
        raise NotFoundError(f"Product {product_id} not found")

    def invalidate(self, user_id: str) -> None:
        self._cache.invalidate(user_id)

    def clear(self) -> None:
        self._cache.clear()


product_catalog = ProductCatalog()


def list_products(user_id: str, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).filter_by(user_id=user_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name.asc()).all()


def create_product(user_id: str, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        product = Product(user_id=user_id, **patch)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"SKU {patch['sku']} already exists")
        return product

    product = run_with_retry(_op)
    product_catalog.invalidate(user_id)
    current_app.logger.info("Product created: tenant=%s id=%s sku=%s", user_id, product.id, product.sku)
    return product


def update_product(user_id: str, product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if not patch:
        raise ValidationError("No updatable fields provided")
    enforce_rules_product(patch)

    def _op():
        product = require_owned(Product, product_id, user_id, lock=True)
        for key, value in patch.items():
            setattr(product, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"SKU {patch.get('sku')} already exists")
        return product

    product = run_with_retry(_op)
    product_catalog.invalidate(user_id)
    return product

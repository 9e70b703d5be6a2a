# backend/fahampesa/routes/products.py
"""
Product catalog API routes.
"""
from flask import Blueprint, g

from ..decorators import handle_service_errors, require_tenant
from ..responses import json_body, query_flag, success
from ..services import catalog_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_tenant
@handle_service_errors
def list_products():
    """
    Query params: include_inactive (bool)

    Returns:
        200: list of products
    """
    products = catalog_service.list_products(g.tenant_id, include_inactive=query_flag("include_inactive"))
    return success([p.to_dict() for p in products])


@products_bp.post("")
@require_tenant
@handle_service_errors
def create_product():
    """
    Request body:
    {
        "user_id": str,
        "name": str,
        "sku": str,
        "unit_of_measure": str (optional),
        "cost_price_cents": int (optional)
    }

    Returns:
        201: Product created
        400: Invalid request
        409: SKU already exists
    """
    product = catalog_service.create_product(g.tenant_id, json_body())
    return success(product.to_dict(), 201)


@products_bp.put("/<int:product_id>")
@require_tenant
@handle_service_errors
def update_product(product_id: int):
    product = catalog_service.update_product(g.tenant_id, product_id, json_body())
    return success(product.to_dict())

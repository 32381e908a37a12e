# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/pos_backend/routes/products.py
"""
Product catalog and stock routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS
- Catalog writes require MANAGE_PRODUCTS
- Stock movements require ADJUST_STOCK
- Ledger reads require VIEW_LEDGER

Business errors raised by the services are turned into the JSON envelope by
the app-wide error handlers (see responses.py).
"""
from flask import Blueprint, request, g

from ..models import Product
from ..services import inventory_service, ledger_service, products_service
from ..services.event_sink import DatabaseEventSink
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_stock_adjustment_payload,
)
from ..decorators import require_auth, require_permission
from ..responses import ok

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "description",
        "unit",
        "category_id",
        "cost_price_cents",
        "selling_price_cents",
        "stock_quantity",
        "low_stock_threshold",
        "is_active",
    },
    required_on_create={"sku", "name", "selling_price_cents"},
)

# Stock is ledger-owned: updates may not carry stock_quantity
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_CREATE_POLICY.writable_fields - {"stock_quantity"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _event_sink() -> DatabaseEventSink:
    return DatabaseEventSink(ip_address=request.remote_addr)


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    Query params:
    - search: str (optional) - name or SKU substring
    - category_id: int (optional)
    - low_stock: "1"/"true" (optional) - only products at or below threshold
    - include_inactive: "1"/"true" (optional, admins only)
    - limit: int (optional, default 100, max 500)
    """
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true")
    products = products_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        low_stock=request.args.get("low_stock", "").lower() in ("1", "true"),
        include_inactive=include_inactive and g.current_user.is_admin,
        limit=request.args.get("limit", default=100, type=int),
    )
    return ok([p.to_dict() for p in products])


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product(product_id: int):
    product = products_service.get_product(product_id, include_inactive=g.current_user.is_admin)
    return ok(product.to_dict())


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a product. An initial stock_quantity is booked as a restock
    movement, so the product's ledger starts at zero.
    """
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(
        patch=patch,
        actor_id=g.current_user.id,
        events=_event_sink(),
    )
    return ok(created.to_dict(), message="Product created successfully.", status=201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(
        product_id=product_id,
        patch=patch,
        actor_id=g.current_user.id,
        events=_event_sink(),
    )
    return ok(updated.to_dict(), message="Product updated successfully.")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, never purged."""
    products_service.delete_product(
        product_id=product_id,
        actor_id=g.current_user.id,
        events=_event_sink(),
    )
    return ok(message="Product deleted successfully.")


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_stock_route(product_id: int):
    """
    Record a manual stock movement.

    Body: {"type": "restock|adjustment|damage|return", "quantity": <non-zero int>, "reason": "..."}
    """
    payload = request.get_json(silent=True) or {}
    movement = parse_stock_adjustment_payload(payload)

    entry = inventory_service.adjust_stock(
        product_id=product_id,
        actor_id=g.current_user.id,
        events=_event_sink(),
        **movement,
    )
    return ok(
        {"stock_quantity": entry.quantity_after, "movement": entry.to_dict()},
        message="Stock updated successfully.",
    )


@products_bp.get("/<int:product_id>/ledger")
@require_auth
@require_permission("VIEW_LEDGER")
def product_ledger(product_id: int):
    """
    Ledger entries (newest first) plus a replay check of the full chain.

    Query params:
    - limit: int (optional, default 100)
    """
    check = ledger_service.verify_product_ledger(product_id)
    limit = max(1, min(request.args.get("limit", default=100, type=int), 1000))
    entries = ledger_service.list_movements(product_id, limit=limit)
    return ok({
        "product_id": product_id,
        "entries": [e.to_dict() for e in entries],
        "verification": check.to_dict(),
    })

# backend/pos_backend/services/products_service.py
"""
Catalog Service

Products are soft-deleted only: sale items and ledger rows keep referring to
them. stock_quantity is not a catalog field; initial stock given at creation
is booked as a restock movement so the ledger starts at zero.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import NotFoundError
from ..extensions import db
from ..models import Category, Product
from ..models.inventory import MOVEMENT_RESTOCK
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .concurrency import write_transaction
from .event_sink import EventSink
from .ledger_service import record_movement

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "unit",
    "category_id",
    "cost_price_cents",
    "selling_price_cents",
    "low_stock_threshold",
    "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("SKU already exists.")


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if not db.session.query(Category.id).filter_by(id=category_id).first():
        raise ValidationError("category_id does not exist")


def get_product(product_id: int, include_inactive: bool = False) -> Product:
    p = db.session.query(Product).filter_by(id=product_id).first()
    if p is None or (not include_inactive and not p.is_active):
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return p


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    limit: int = 100,
) -> list[Product]:
    """
    Catalog listing ordered by name.

    search matches name or SKU (case-insensitive substring); low_stock keeps
    products at or below their threshold.
    """
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if low_stock:
        q = q.filter(Product.stock_quantity <= Product.low_stock_threshold)

    limit = max(1, min(limit, 500))
    return q.order_by(Product.name.asc(), Product.id.asc()).limit(limit).all()


def create_product(*, patch: dict, actor_id: int, events: EventSink) -> Product:
    """
    Create product using a validated patch dict.

    patch may carry stock_quantity: it is recorded as the product's first
    ledger movement ("Initial stock"), never written directly.
    """
    initial_stock = patch.get("stock_quantity") or 0

    with write_transaction(
        events=events,
        module="inventory",
        failed_action="product_create_failed",
        actor_id=actor_id,
    ) as pending:
        _require_unique_sku(patch["sku"])
        _require_category(patch.get("category_id"))

        p = Product(stock_quantity=0)
        if patch.get("low_stock_threshold") is None:
            p.low_stock_threshold = current_app.config["DEFAULT_LOW_STOCK_THRESHOLD"]
        apply_product_patch(p, {k: v for k, v in patch.items() if v is not None})

        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger entry

        if initial_stock:
            record_movement(
                product_id=p.id,
                actor_id=actor_id,
                movement_type=MOVEMENT_RESTOCK,
                quantity_change=initial_stock,
                reason="Initial stock",
            )

        pending.queue(
            "audit",
            "inventory",
            "product_created",
            f"New product added: {p.name}",
            {
                "product_id": p.id,
                "sku": p.sku,
                "price_cents": p.selling_price_cents,
                "stock": p.stock_quantity,
            },
            actor_id=actor_id,
        )

    return p


def update_product(*, product_id: int, patch: dict, actor_id: int, events: EventSink) -> Product:
    """
    Update catalog fields. Never touches stock_quantity.

    A selling price change is audited as price_updated with old and new
    prices; anything else as product_updated.
    """
    if "stock_quantity" in patch:
        raise ValidationError("stock_quantity can only change through stock movements")

    with write_transaction(
        events=events,
        module="inventory",
        failed_action="product_update_failed",
        actor_id=actor_id,
    ) as pending:
        p = get_product(product_id, include_inactive=True)

        if "sku" in patch and patch["sku"] != p.sku:
            _require_unique_sku(patch["sku"], exclude_id=p.id)
        if "category_id" in patch:
            _require_category(patch["category_id"])

        old_price = p.selling_price_cents
        apply_product_patch(p, patch)
        if patch.get("is_active") is True:
            p.deleted_at = None
        elif patch.get("is_active") is False and p.deleted_at is None:
            p.deleted_at = utcnow()
        db.session.flush()

        new_price = p.selling_price_cents
        if "selling_price_cents" in patch and new_price != old_price:
            pending.queue(
                "audit",
                "inventory",
                "price_updated",
                f"Price changed for: {p.name}",
                {"product_id": p.id, "old_price_cents": old_price, "new_price_cents": new_price},
                actor_id=actor_id,
            )
        else:
            pending.queue(
                "audit",
                "inventory",
                "product_updated",
                f"Product updated: {p.name}",
                {"product_id": p.id, "fields": sorted(patch.keys())},
                actor_id=actor_id,
            )

    return p


def delete_product(*, product_id: int, actor_id: int, events: EventSink) -> Product:
    """
    Soft-delete a product: preserve IDs and historical references.
    """
    with write_transaction(
        events=events,
        module="inventory",
        failed_action="product_delete_failed",
        actor_id=actor_id,
    ) as pending:
        p = get_product(product_id)
        p.is_active = False
        p.deleted_at = utcnow()

        pending.queue(
            "audit",
            "inventory",
            "product_deleted",
            f"Product deleted: {p.name}",
            {"product_id": p.id, "sku": p.sku},
            actor_id=actor_id,
        )

    return p


def get_or_create_category(name: str) -> Category:
    """Used by seeding; flushes, does not commit."""
    category = db.session.query(Category).filter_by(name=name).first()
    if category is None:
        category = Category(name=name)
        db.session.add(category)
        db.session.flush()
    return category

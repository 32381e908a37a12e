# Overview: Service-layer operations for stock levels; manual stock adjustments and the low-stock rule.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import InventoryLog, Product
from ..models.inventory import MANUAL_MOVEMENT_TYPES
from ..validation import ValidationError
from .concurrency import write_transaction
from .event_sink import EventBuffer, EventSink
from .ledger_service import record_movement
"""
Stock Invariants

- A product's stock only moves through ledger_service.record_movement().
- Low stock means quantity <= low_stock_threshold (inclusive). The warning is
  raised after any movement that leaves the product at or below it.
- Manual movements (restock, adjustment, damage, return) may be positive or
  negative but never zero, and never take stock below zero.
"""


def is_low_stock(quantity: int, threshold: int) -> bool:
    return quantity <= threshold


def queue_low_stock_warning(
    pending: EventBuffer,
    product: Product,
    quantity: int,
    *,
    actor_id: int | None,
    message: str,
) -> None:
    """Queue the inventory.low_stock warning if `quantity` is at or below threshold."""
    if not is_low_stock(quantity, product.low_stock_threshold):
        return
    pending.queue(
        "warn",
        "inventory",
        "low_stock",
        message,
        {
            "product_id": product.id,
            "stock": quantity,
            "threshold": product.low_stock_threshold,
        },
        actor_id=actor_id,
    )


def get_stock_on_hand(product_id: int) -> int:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product.stock_quantity


def adjust_stock(
    *,
    product_id: int,
    movement_type: str,
    quantity_change: int,
    actor_id: int,
    events: EventSink,
    reason: str | None = None,
) -> InventoryLog:
    """
    Record a restock / adjustment / damage / return movement.

    One logical transaction; emits inventory.stock_adjusted (audit) and, when
    the product ends at or below its threshold, inventory.low_stock (warn).
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}")

    with write_transaction(
        events=events,
        module="inventory",
        failed_action="stock_adjust_failed",
        actor_id=actor_id,
    ) as pending:
        entry = record_movement(
            product_id=product_id,
            actor_id=actor_id,
            movement_type=movement_type,
            quantity_change=quantity_change,
            reason=reason,
        )
        product = entry.product

        pending.queue(
            "audit",
            "inventory",
            "stock_adjusted",
            f"Stock adjusted for: {product.name}",
            {
                "product_id": product.id,
                "type": movement_type,
                "before": entry.quantity_before,
                "change": entry.quantity_change,
                "after": entry.quantity_after,
            },
            actor_id=actor_id,
        )
        queue_low_stock_warning(
            pending,
            product,
            entry.quantity_after,
            actor_id=actor_id,
            message=f"Low stock alert: {product.name}",
        )

    return entry


def list_low_stock_products(include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product).filter(Product.stock_quantity <= Product.low_stock_threshold)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.stock_quantity.asc(), Product.name.asc()).all()

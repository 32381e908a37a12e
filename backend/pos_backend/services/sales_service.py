"""
Sales Service - checkout and void

WHY: A sale is one indivisible unit: the header, every line item, every
ledger movement and every stock decrement are committed together or not at
all. Voiding is the mirror image: stock comes back through the ledger and
the sale is flagged, in one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..errors import InsufficientPaymentError, InsufficientStockError, InvalidStateError, NotFoundError, SaleFailed
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.inventory import MOVEMENT_RETURN, MOVEMENT_SALE
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED
from ..time_utils import utcnow
from ..validation import CartLine, ValidationError, validate_checkout, validate_void_reason
from .concurrency import lock_for_update, write_transaction
from .event_sink import EventSink
from .inventory_service import queue_low_stock_warning
from .ledger_service import record_movement
from .numbering_service import next_sale_number


@dataclass
class _PricedLine:
    product: Product
    quantity: int
    unit_price_cents: int
    discount_cents: int
    subtotal_cents: int


def _lock_products(cart: list[CartLine]) -> dict[int, Product]:
    product_ids = sorted({line.product_id for line in cart})
    # Lock in id order so two carts touching the same products cannot deadlock
    products = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(product_ids)))
        .order_by(Product.id.asc())
        .all()
    )
    by_id = {p.id: p for p in products}

    for product_id in product_ids:
        product = by_id.get(product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product not found", details={"product_id": product_id})
    return by_id


def _check_stock(cart: list[CartLine], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for line in cart:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    for product_id, qty in requested.items():
        product = products[product_id]
        if product.stock_quantity < qty:
            raise InsufficientStockError(
                product_id=product_id,
                available=product.stock_quantity,
                requested=qty,
                product_name=product.name,
            )


def _price_cart(cart: list[CartLine], products: dict[int, Product]) -> list[_PricedLine]:
    priced = []
    for i, line in enumerate(cart):
        product = products[line.product_id]
        gross = product.selling_price_cents * line.quantity
        if line.discount_cents > gross:
            raise ValidationError(f"items[{i}].discount_cents cannot exceed the line total ({gross})")
        priced.append(_PricedLine(
            product=product,
            quantity=line.quantity,
            unit_price_cents=product.selling_price_cents,
            discount_cents=line.discount_cents,
            subtotal_cents=gross - line.discount_cents,
        ))
    return priced


def create_sale(
    *,
    cart: list[CartLine],
    payment_method: str,
    amount_tendered_cents: int,
    actor_id: int,
    events: EventSink,
    customer_name: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """
    Record a completed sale.

    Every check (products exist, stock suffices, payment covers the total)
    runs before the first write. Raises NotFoundError, InsufficientStockError,
    InsufficientPaymentError or ValidationError for rejected carts and
    SaleFailed for anything unexpected; in every failure case nothing is
    persisted.
    """
    validate_checkout(cart, payment_method, amount_tendered_cents)
    now = now or utcnow()

    with write_transaction(
        events=events,
        module="sales",
        failed_action="sale_failed",
        actor_id=actor_id,
        failure=SaleFailed,
    ) as pending:
        products = _lock_products(cart)
        _check_stock(cart, products)
        priced = _price_cart(cart, products)

        subtotal_cents = sum(line.subtotal_cents for line in priced)
        total_amount_cents = subtotal_cents  # tax and sale-level discounts would apply here
        change_cents = amount_tendered_cents - total_amount_cents
        if change_cents < 0:
            raise InsufficientPaymentError(total_amount_cents, amount_tendered_cents)

        sale_number = next_sale_number(now)

        sale = Sale(
            sale_number=sale_number,
            user_id=actor_id,
            subtotal_cents=subtotal_cents,
            total_amount_cents=total_amount_cents,
            amount_tendered_cents=amount_tendered_cents,
            change_amount_cents=change_cents,
            payment_method=payment_method,
            status=SALE_STATUS_COMPLETED,
            customer_name=customer_name,
            notes=notes,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line in priced:
            sale.items.append(SaleItem(
                product_id=line.product.id,
                product_name=line.product.name,
                unit_price_cents=line.unit_price_cents,
                quantity=line.quantity,
                discount_cents=line.discount_cents,
                subtotal_cents=line.subtotal_cents,
            ))
        db.session.flush()

        for line in priced:
            entry = record_movement(
                product_id=line.product.id,
                actor_id=actor_id,
                movement_type=MOVEMENT_SALE,
                quantity_change=-line.quantity,
                reason=f"Sale #{sale_number}",
            )
            queue_low_stock_warning(
                pending,
                line.product,
                entry.quantity_after,
                actor_id=actor_id,
                message=f"Low stock after sale: {line.product.name}",
            )

        pending.queue(
            "info",
            "sales",
            "sale_created",
            f"Sale completed: {sale_number}",
            {
                "sale_id": sale.id,
                "sale_number": sale_number,
                "total_amount_cents": total_amount_cents,
                "item_count": len(priced),
                "payment": payment_method,
            },
            actor_id=actor_id,
        )

    return sale


def void_sale(
    *,
    sale_id: int,
    reason: str,
    actor_id: int,
    events: EventSink,
    now: datetime | None = None,
) -> Sale:
    """
    Void a completed sale and return its stock through the ledger.

    One-way: voided sales cannot be voided again (InvalidStateError). Payment
    fields are left untouched; no refund record is created.
    """
    reason = validate_void_reason(reason)
    now = now or utcnow()

    with write_transaction(
        events=events,
        module="sales",
        failed_action="void_failed",
        actor_id=actor_id,
    ) as pending:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        if sale.status != SALE_STATUS_COMPLETED:
            raise InvalidStateError(
                "Only completed sales can be voided.",
                details={"sale_id": sale.id, "status": sale.status},
            )

        void_note = f"VOIDED: {reason}"
        sale.status = SALE_STATUS_VOIDED
        sale.notes = f"{sale.notes}\n{void_note}" if sale.notes else void_note
        sale.voided_by_user_id = actor_id
        sale.voided_at = now

        for item in sorted(sale.items, key=lambda i: i.product_id):
            record_movement(
                product_id=item.product_id,
                actor_id=actor_id,
                movement_type=MOVEMENT_RETURN,
                quantity_change=item.quantity,
                reason=f"Voided Sale #{sale.sale_number}",
            )

        pending.queue(
            "audit",
            "sales",
            "sale_voided",
            f"Sale voided: {sale.sale_number}",
            {
                "sale_id": sale.id,
                "sale_number": sale.sale_number,
                "total_amount_cents": sale.total_amount_cents,
                "reason": reason,
            },
            actor_id=actor_id,
        )

    return sale

# Overview: Service-layer operations for the inventory ledger; the only writer of stock quantities.

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import InventoryLog, Product
from ..models.inventory import MOVEMENT_TYPES
from ..validation import ValidationError
from .concurrency import lock_for_update
"""
Inventory Ledger Invariants (authoritative)

- inventory_logs is append-only: rows are inserted, never updated or deleted.
- Every row satisfies quantity_after = quantity_before + quantity_change.
- For a product, rows ordered by id chain: row[i].quantity_after == row[i+1].quantity_before.
- products.stock_quantity always equals quantity_after of the product's latest row.
- Stock never goes below zero, whatever the movement type.
- record_movement() flushes but never commits; the caller owns the transaction.
"""


def record_movement(
    *,
    product_id: int,
    actor_id: int,
    movement_type: str,
    quantity_change: int,
    reason: str | None = None,
) -> InventoryLog:
    """
    Append one ledger row and move the product's cached stock with it.

    The product row is locked for the rest of the transaction, so the
    before/after pair is computed against the value no other writer can
    change until commit.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
    if not isinstance(quantity_change, int) or isinstance(quantity_change, bool):
        raise ValidationError("quantity_change must be an integer")
    if quantity_change == 0:
        raise ValidationError("quantity_change must be non-zero")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    quantity_before = product.stock_quantity
    quantity_after = quantity_before + quantity_change
    if quantity_after < 0:
        raise InsufficientStockError(
            product_id=product.id,
            available=quantity_before,
            requested=-quantity_change,
            product_name=product.name,
        )

    entry = InventoryLog(
        product_id=product.id,
        user_id=actor_id,
        type=movement_type,
        quantity_before=quantity_before,
        quantity_change=quantity_change,
        quantity_after=quantity_after,
        reason=reason,
    )
    product.stock_quantity = quantity_after

    db.session.add(entry)
    db.session.flush()  # assigns entry.id and applies the version-checked product UPDATE
    return entry


def list_movements(product_id: int, limit: int | None = None, newest_first: bool = True) -> list[InventoryLog]:
    q = db.session.query(InventoryLog).filter_by(product_id=product_id)
    q = q.order_by(InventoryLog.id.desc() if newest_first else InventoryLog.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


@dataclass
class LedgerCheck:
    """Result of replaying one product's ledger."""
    product_id: int
    entries: int
    stock_quantity: int
    ledger_quantity: int | None
    problems: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "entries": self.entries,
            "stock_quantity": self.stock_quantity,
            "ledger_quantity": self.ledger_quantity,
            "ok": self.ok,
            "problems": self.problems,
        }


def verify_product_ledger(product_id: int) -> LedgerCheck:
    """
    Replay a product's ledger from its first row and compare the result to
    the cached stock_quantity.
    """
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    entries = list_movements(product_id, newest_first=False)
    check = LedgerCheck(
        product_id=product_id,
        entries=len(entries),
        stock_quantity=product.stock_quantity,
        ledger_quantity=None,
    )

    running = None
    for entry in entries:
        if entry.quantity_before + entry.quantity_change != entry.quantity_after:
            check.problems.append({
                "entry_id": entry.id,
                "problem": "arithmetic",
                "detail": f"{entry.quantity_before} + {entry.quantity_change} != {entry.quantity_after}",
            })
        if running is not None and entry.quantity_before != running:
            check.problems.append({
                "entry_id": entry.id,
                "problem": "chain_break",
                "detail": f"expected quantity_before {running}, found {entry.quantity_before}",
            })
        running = (entry.quantity_before if running is None else running) + entry.quantity_change

    check.ledger_quantity = running

    if running is None:
        if product.stock_quantity != 0:
            check.problems.append({
                "entry_id": None,
                "problem": "missing_history",
                "detail": f"stock_quantity is {product.stock_quantity} but the ledger is empty",
            })
    elif running != product.stock_quantity:
        check.problems.append({
            "entry_id": entries[-1].id,
            "problem": "stock_mismatch",
            "detail": f"ledger replays to {running}, product holds {product.stock_quantity}",
        })

    return check


def verify_all_ledgers() -> list[LedgerCheck]:
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    return [verify_product_ledger(pid) for pid in product_ids]

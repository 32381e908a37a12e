from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_RESTOCK = "restock"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_DAMAGE = "damage"
MOVEMENT_RETURN = "return"

MOVEMENT_TYPES = (
    MOVEMENT_RESTOCK,
    MOVEMENT_SALE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DAMAGE,
    MOVEMENT_RETURN,
)

# Movement types an operator may record by hand; SALE only comes from the sale engine
MANUAL_MOVEMENT_TYPES = (
    MOVEMENT_RESTOCK,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DAMAGE,
    MOVEMENT_RETURN,
)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Catalog item with a cached stock balance.

    STOCK DESIGN DECISION:
    InventoryLog is the source of truth for quantities. stock_quantity is a
    projection of the latest ledger entry, written only by the ledger
    service in the same transaction as the entry it mirrors.

    - version_id_col turns every UPDATE into a compare-and-swap: a concurrent
      writer holding a stale row gets StaleDataError instead of a lost update
    - ck_products_stock_non_negative is the database-level backstop for the
      non-negative stock invariant

    SOFT DELETE:
    Historical sale items reference products, so deleting a product only
    clears is_active and stamps deleted_at.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_products_threshold_non_negative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="pcs")

    # Authoritative storage in cents (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLog(db.Model):
    """
    One stock movement. Append-only.

    quantity_after = quantity_before + quantity_change, and for a product the
    entries ordered by id form an unbroken chain ending at the product's
    current stock_quantity.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.CheckConstraint("quantity_after = quantity_before + quantity_change", name="ck_inventory_logs_arithmetic"),
        db.CheckConstraint("quantity_change <> 0", name="ck_inventory_logs_nonzero"),
        db.Index("ix_inventory_logs_product_id_id", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)  # positive = in, negative = out
    quantity_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("inventory_logs", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity_before": self.quantity_before,
            "quantity_change": self.quantity_change,
            "quantity_after": self.quantity_after,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to rewrite or remove ledger history."""


@event.listens_for(InventoryLog, "before_update")
def _reject_inventory_log_update(mapper, connection, target):
    raise AppendOnlyViolation("inventory_logs is append-only; entries cannot be updated")


@event.listens_for(InventoryLog, "before_delete")
def _reject_inventory_log_delete(mapper, connection, target):
    raise AppendOnlyViolation("inventory_logs is append-only; entries cannot be deleted")

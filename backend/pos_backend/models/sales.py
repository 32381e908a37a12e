from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "gcash", "credit_card", "others")

SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_VOIDED = "voided"
# Declared for schema compatibility; no workflow moves a sale into it
SALE_STATUS_REFUNDED = "refunded"

SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED, SALE_STATUS_REFUNDED)


class Sale(db.Model):
    """
    One checkout, created together with all of its items.

    Lifecycle: completed -> voided (one-way). Voided sales keep their items
    for audit; the stock they took is returned through the inventory ledger.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "payment_method IN ('cash', 'gcash', 'credit_card', 'others')",
            name="ck_sales_payment_method",
        ),
        db.CheckConstraint(
            "status IN ('completed', 'voided', 'refunded')",
            name="ck_sales_status",
        ),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "SALE-20260214-0007"
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    # Operator who rang up the sale
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_tendered_cents = db.Column(db.Integer, nullable=False, default=0)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    cashier = db.relationship("User", foreign_keys=[user_id])
    voided_by = db.relationship("User", foreign_keys=[voided_by_user_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SaleItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "user_id": self.user_id,
            "cashier_name": self.cashier.name if self.cashier else None,
            "subtotal_cents": self.subtotal_cents,
            "total_amount_cents": self.total_amount_cents,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_amount_cents": self.change_amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    product_name and unit_price_cents are snapshots taken when the sale was
    recorded; later catalog edits never change them.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sale_items_discount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class SaleNumberSequence(db.Model):
    """
    Per-day counter behind sale numbers.

    One row per calendar day; next_number is incremented with an atomic
    UPDATE inside the sale's transaction.
    """
    __tablename__ = "sale_number_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_date = db.Column(db.Date, nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

"""
Sale engine and void engine tests.

Verifies:
- Stock, ledger and low-stock warnings for completed sales
- Rejected carts leave no rows behind
- Unexpected failures surface only a generic message
- Voids restore stock through the ledger and are one-way
"""

from datetime import datetime

import pytest

from pos_backend.errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    SaleFailed,
    TransactionFailure,
)
from pos_backend.models import InventoryLog, Sale, SaleItem
from pos_backend.services import ledger_service, sales_service
from pos_backend.services.products_service import delete_product, update_product
from pos_backend.validation import CartLine, ValidationError


def _sell(product, qty, user, events, tendered=None, discount=0, **kwargs):
    cart = [CartLine(product_id=product.id, quantity=qty, discount_cents=discount)]
    if tendered is None:
        tendered = product.selling_price_cents * qty
    return sales_service.create_sale(
        cart=cart,
        payment_method="cash",
        amount_tendered_cents=tendered,
        actor_id=user.id,
        events=events,
        **kwargs,
    )


def _sale_rows(db_session):
    return (
        db_session.query(Sale).count(),
        db_session.query(SaleItem).count(),
        db_session.query(InventoryLog).filter(InventoryLog.type == "sale").count(),
    )


# =============================================================================
# EXAMPLE WALKTHROUGH
# =============================================================================


class TestSaleWalkthrough:
    """Stock 10, threshold 5: sell 3, sell 6, try 50, underpay, void the first."""

    def test_first_sale_decrements_stock_without_warning(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=10, threshold=5)

        sale = _sell(p, 3, cashier_user, events)

        assert p.stock_quantity == 7
        assert sale.status == "completed"
        entry = ledger_service.list_movements(p.id, limit=1)[0]
        assert (entry.type, entry.quantity_before, entry.quantity_change, entry.quantity_after) == ("sale", 10, -3, 7)
        assert entry.reason == f"Sale #{sale.sale_number}"
        assert events.actions() == ["sale_created"]

    def test_second_sale_crossing_threshold_warns(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=10, threshold=5)
        _sell(p, 3, cashier_user, events)

        _sell(p, 6, cashier_user, events)

        assert p.stock_quantity == 1
        entry = ledger_service.list_movements(p.id, limit=1)[0]
        assert (entry.quantity_before, entry.quantity_change, entry.quantity_after) == (7, -6, 1)

        warnings = events.by_action("low_stock")
        assert len(warnings) == 1
        assert warnings[0].level == "warn"
        assert warnings[0].module == "inventory"
        assert warnings[0].metadata == {"product_id": p.id, "stock": 1, "threshold": 5}

    def test_oversell_rejected_with_available_and_requested(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=1, threshold=5)
        before = _sale_rows(db_session)

        with pytest.raises(InsufficientStockError) as exc:
            _sell(p, 50, cashier_user, events)

        assert exc.value.details == {"product_id": p.id, "available": 1, "requested": 50}
        assert p.stock_quantity == 1
        assert _sale_rows(db_session) == before
        assert events.events == []

    def test_underpayment_rejected(self, db_session, cashier_user, make_product, events):
        p = make_product(price_cents=1000, stock=10)

        with pytest.raises(InsufficientPaymentError):
            _sell(p, 1, cashier_user, events, tendered=800)

        assert p.stock_quantity == 10
        assert _sale_rows(db_session) == (0, 0, 0)

    def test_void_restores_stock_and_is_one_way(self, db_session, admin_user, cashier_user, make_product, events):
        p = make_product(stock=10, threshold=5)
        sale = _sell(p, 3, cashier_user, events)
        _sell(p, 2, cashier_user, events)
        assert p.stock_quantity == 5

        voided = sales_service.void_sale(sale_id=sale.id, reason="Wrong item", actor_id=admin_user.id, events=events)

        assert voided.status == "voided"
        assert voided.voided_by_user_id == admin_user.id
        assert voided.voided_at is not None
        assert p.stock_quantity == 8
        entry = ledger_service.list_movements(p.id, limit=1)[0]
        assert (entry.type, entry.quantity_change) == ("return", 3)
        assert entry.reason == f"Voided Sale #{sale.sale_number}"

        audit = events.by_action("sale_voided")[0]
        assert audit.level == "audit"
        assert audit.metadata["reason"] == "Wrong item"
        assert audit.metadata["total_amount_cents"] == sale.total_amount_cents

        log_count = db_session.query(InventoryLog).count()
        with pytest.raises(InvalidStateError):
            sales_service.void_sale(sale_id=sale.id, reason="Again", actor_id=admin_user.id, events=events)
        assert p.stock_quantity == 8
        assert db_session.query(InventoryLog).count() == log_count


# =============================================================================
# SALE ENGINE
# =============================================================================


class TestCreateSale:

    def test_totals_change_and_items(self, db_session, cashier_user, make_product, events):
        a = make_product(sku="A", price_cents=1250, stock=10)
        b = make_product(sku="B", price_cents=300, stock=10)

        sale = sales_service.create_sale(
            cart=[CartLine(a.id, 2, 500), CartLine(b.id, 3)],
            payment_method="gcash",
            amount_tendered_cents=5000,
            actor_id=cashier_user.id,
            events=events,
            customer_name="Juan",
            notes="Counter 2",
        )

        assert sale.subtotal_cents == 2000 + 900
        assert sale.total_amount_cents == 2900
        assert sale.change_amount_cents == 2100
        assert sale.payment_method == "gcash"
        assert sale.customer_name == "Juan"
        assert [(i.product_id, i.quantity, i.discount_cents, i.subtotal_cents) for i in sale.items] == [
            (a.id, 2, 500, 2000),
            (b.id, 3, 0, 900),
        ]
        created = events.by_action("sale_created")[0]
        assert created.metadata["item_count"] == 2
        assert created.metadata["total_amount_cents"] == 2900

    def test_exact_payment_gives_zero_change(self, db_session, cashier_user, make_product, events):
        p = make_product(price_cents=999, stock=3)
        sale = _sell(p, 3, cashier_user, events, tendered=2997)
        assert sale.change_amount_cents == 0

    def test_failing_line_rolls_back_whole_cart(self, db_session, cashier_user, make_product, events):
        a = make_product(sku="A", stock=10)
        b = make_product(sku="B", stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                cart=[CartLine(a.id, 4), CartLine(b.id, 3)],
                payment_method="cash",
                amount_tendered_cents=100_000,
                actor_id=cashier_user.id,
                events=events,
            )

        assert exc.value.product_id == b.id
        assert a.stock_quantity == 10
        assert b.stock_quantity == 2
        assert _sale_rows(db_session) == (0, 0, 0)

    def test_same_product_on_several_lines_is_checked_in_aggregate(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=5)

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                cart=[CartLine(p.id, 3), CartLine(p.id, 3)],
                payment_method="cash",
                amount_tendered_cents=100_000,
                actor_id=cashier_user.id,
                events=events,
            )

        assert exc.value.details["requested"] == 6
        assert exc.value.details["available"] == 5
        assert p.stock_quantity == 5

    def test_same_product_on_several_lines_chains_ledger(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=5, threshold=0)

        sales_service.create_sale(
            cart=[CartLine(p.id, 2), CartLine(p.id, 3)],
            payment_method="cash",
            amount_tendered_cents=100_000,
            actor_id=cashier_user.id,
            events=events,
        )

        assert p.stock_quantity == 0
        assert ledger_service.verify_product_ledger(p.id).ok

    def test_unknown_product(self, db_session, cashier_user, events):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                cart=[CartLine(999_999, 1)],
                payment_method="cash",
                amount_tendered_cents=100,
                actor_id=cashier_user.id,
                events=events,
            )
        assert _sale_rows(db_session) == (0, 0, 0)

    def test_deleted_product_cannot_be_sold(self, db_session, admin_user, cashier_user, make_product, events):
        p = make_product(stock=5)
        delete_product(product_id=p.id, actor_id=admin_user.id, events=events)

        with pytest.raises(NotFoundError):
            _sell(p, 1, cashier_user, events)

    def test_discount_larger_than_line_rejected(self, db_session, cashier_user, make_product, events):
        p = make_product(price_cents=1000, stock=5)

        with pytest.raises(ValidationError):
            _sell(p, 1, cashier_user, events, tendered=0, discount=1001)

        assert _sale_rows(db_session) == (0, 0, 0)

    @pytest.mark.parametrize(
        "cart,method,tendered",
        [
            ([], "cash", 100),
            ([CartLine(1, 0)], "cash", 100),
            ([CartLine(1, 1, -5)], "cash", 100),
            ([CartLine(1, 1)], "bitcoin", 100),
            ([CartLine(1, 1)], "cash", -1),
        ],
    )
    def test_preconditions_checked_before_database_work(self, db_session, cashier_user, events, cart, method, tendered):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                cart=cart,
                payment_method=method,
                amount_tendered_cents=tendered,
                actor_id=cashier_user.id,
                events=events,
            )
        assert events.events == []

    def test_snapshot_survives_price_edit(self, db_session, admin_user, cashier_user, make_product, events):
        p = make_product(name="Gaming Mouse", price_cents=1500, stock=5)
        sale = _sell(p, 1, cashier_user, events)

        update_product(
            product_id=p.id,
            patch={"name": "Gaming Mouse v2", "selling_price_cents": 1800},
            actor_id=admin_user.id,
            events=events,
        )

        item = db_session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert item.product_name == "Gaming Mouse"
        assert item.unit_price_cents == 1500
        assert events.by_action("price_updated")[0].metadata == {
            "product_id": p.id,
            "old_price_cents": 1500,
            "new_price_cents": 1800,
        }

    def test_sale_numbers_follow_daily_sequence(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=10)
        day = datetime(2026, 3, 14, 9, 30)

        first = _sell(p, 1, cashier_user, events, now=day)
        second = _sell(p, 1, cashier_user, events, now=day.replace(hour=17))
        next_day = _sell(p, 1, cashier_user, events, now=datetime(2026, 3, 15, 8, 0))

        assert first.sale_number == "SALE-20260314-0001"
        assert second.sale_number == "SALE-20260314-0002"
        assert next_day.sale_number == "SALE-20260315-0001"


# =============================================================================
# FAILURE HANDLING
# =============================================================================


class ExplodingSink:
    def emit(self, level, module, action, message, metadata=None, actor_id=None):
        raise RuntimeError("log store unavailable")


class TestSaleFailures:

    def test_unexpected_error_is_generic_and_rolled_back(self, db_session, cashier_user, make_product, events, monkeypatch):
        p = make_product(stock=10)

        def broken_numbering(now=None):
            raise RuntimeError("database disk image is malformed")

        monkeypatch.setattr(sales_service, "next_sale_number", broken_numbering)

        with pytest.raises(SaleFailed) as exc:
            _sell(p, 2, cashier_user, events)

        assert exc.value.message == "Sale failed. Please try again."
        assert "malformed" not in str(exc.value)
        assert p.stock_quantity == 10
        assert _sale_rows(db_session) == (0, 0, 0)

        assert events.actions() == ["sale_failed"]
        failure = events.events[0]
        assert failure.level == "error"
        assert "malformed" in failure.metadata["error"]

    def test_failing_event_sink_does_not_fail_the_sale(self, db_session, cashier_user, make_product):
        p = make_product(stock=10, threshold=9)

        sale = _sell(p, 2, cashier_user, ExplodingSink())

        assert sale.id is not None
        assert p.stock_quantity == 8
        assert db_session.query(Sale).count() == 1

    def test_business_errors_emit_nothing(self, db_session, cashier_user, make_product, events):
        p = make_product(stock=1)
        with pytest.raises(InsufficientStockError):
            _sell(p, 2, cashier_user, events)
        assert events.events == []


# =============================================================================
# VOID ENGINE
# =============================================================================


class TestVoidSale:

    def test_void_restores_every_line(self, db_session, admin_user, cashier_user, make_product, events):
        a = make_product(sku="A", stock=10)
        b = make_product(sku="B", stock=10)
        sale = sales_service.create_sale(
            cart=[CartLine(a.id, 4), CartLine(b.id, 1)],
            payment_method="cash",
            amount_tendered_cents=100_000,
            actor_id=cashier_user.id,
            events=events,
        )

        sales_service.void_sale(sale_id=sale.id, reason="Customer changed mind", actor_id=admin_user.id, events=events)

        assert (a.stock_quantity, b.stock_quantity) == (10, 10)
        assert ledger_service.verify_product_ledger(a.id).ok
        assert ledger_service.verify_product_ledger(b.id).ok

    def test_void_keeps_payment_and_appends_note(self, db_session, admin_user, cashier_user, make_product, events):
        p = make_product(stock=10)
        sale = _sell(p, 1, cashier_user, events, tendered=5000, notes="Paid in coins")

        voided = sales_service.void_sale(sale_id=sale.id, reason="Duplicate", actor_id=admin_user.id, events=events)

        assert voided.notes == "Paid in coins\nVOIDED: Duplicate"
        assert voided.amount_tendered_cents == 5000
        assert voided.change_amount_cents == 4000

    def test_void_requires_reason(self, db_session, admin_user, cashier_user, make_product, events):
        p = make_product(stock=10)
        sale = _sell(p, 1, cashier_user, events)

        with pytest.raises(ValidationError):
            sales_service.void_sale(sale_id=sale.id, reason="   ", actor_id=admin_user.id, events=events)
        assert db_session.get(Sale, sale.id).status == "completed"

    def test_void_unknown_sale(self, db_session, admin_user, events):
        with pytest.raises(NotFoundError):
            sales_service.void_sale(sale_id=424242, reason="x", actor_id=admin_user.id, events=events)

    def test_void_locks_products_in_id_order(self, db_session, admin_user, cashier_user, make_product, events, monkeypatch):
        first = make_product(sku="FIRST", stock=10)
        second = make_product(sku="SECOND", stock=10)
        sale = sales_service.create_sale(
            cart=[CartLine(second.id, 1), CartLine(first.id, 2)],
            payment_method="cash",
            amount_tendered_cents=100_000,
            actor_id=cashier_user.id,
            events=events,
        )

        touched = []
        real_record_movement = sales_service.record_movement

        def recording(**kwargs):
            touched.append(kwargs["product_id"])
            return real_record_movement(**kwargs)

        monkeypatch.setattr(sales_service, "record_movement", recording)
        sales_service.void_sale(sale_id=sale.id, reason="Wrong items", actor_id=admin_user.id, events=events)

        assert touched == sorted([first.id, second.id])

    def test_unexpected_void_error_is_generic_and_rolled_back(self, db_session, admin_user, cashier_user, make_product, events, monkeypatch):
        p = make_product(stock=10)
        sale = _sell(p, 3, cashier_user, events)
        logged_before = db_session.query(InventoryLog).count()

        def broken_movement(**kwargs):
            raise RuntimeError("disk I/O error on inventory_logs")

        monkeypatch.setattr(sales_service, "record_movement", broken_movement)
        events.events.clear()

        with pytest.raises(TransactionFailure) as exc:
            sales_service.void_sale(sale_id=sale.id, reason="Duplicate", actor_id=admin_user.id, events=events)

        assert exc.value.message == "Operation failed. Please try again."
        assert "disk" not in str(exc.value)

        refreshed = db_session.get(Sale, sale.id)
        assert refreshed.status == "completed"
        assert refreshed.voided_at is None
        assert p.stock_quantity == 7
        assert db_session.query(InventoryLog).count() == logged_before

        assert events.actions() == ["void_failed"]
        assert events.events[0].level == "error"
        assert "disk I/O error" in events.events[0].metadata["error"]

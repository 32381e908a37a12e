"""
Inventory ledger tests: chain arithmetic, replay verification, append-only rows.
"""

import pytest
from sqlalchemy import update

from pos_backend.errors import InsufficientStockError, NotFoundError
from pos_backend.models import InventoryLog, Product
from pos_backend.models.inventory import AppendOnlyViolation
from pos_backend.services import ledger_service
from pos_backend.validation import ValidationError


class TestRecordMovement:

    def test_initial_stock_starts_the_chain_at_zero(self, db_session, make_product):
        p = make_product(stock=12)

        entries = ledger_service.list_movements(p.id, newest_first=False)

        assert len(entries) == 1
        first = entries[0]
        assert (first.type, first.quantity_before, first.quantity_change, first.quantity_after) == ("restock", 0, 12, 12)
        assert first.reason == "Initial stock"

    def test_product_without_initial_stock_has_empty_ledger(self, db_session, make_product):
        p = make_product(stock=0)
        assert ledger_service.list_movements(p.id) == []
        assert ledger_service.verify_product_ledger(p.id).ok

    def test_movement_updates_cached_stock(self, db_session, admin_user, make_product):
        p = make_product(stock=5)

        entry = ledger_service.record_movement(
            product_id=p.id,
            actor_id=admin_user.id,
            movement_type="damage",
            quantity_change=-2,
            reason="Dropped",
        )
        db_session.commit()

        assert (entry.quantity_before, entry.quantity_after) == (5, 3)
        assert p.stock_quantity == 3
        assert entry.user_id == admin_user.id

    def test_negative_result_rejected_for_any_type(self, db_session, admin_user, make_product):
        p = make_product(stock=2)

        for movement_type in ("adjustment", "damage", "return", "restock"):
            with pytest.raises(InsufficientStockError):
                ledger_service.record_movement(
                    product_id=p.id,
                    actor_id=admin_user.id,
                    movement_type=movement_type,
                    quantity_change=-3,
                )
            db_session.rollback()

        assert p.stock_quantity == 2

    @pytest.mark.parametrize("change", [0, True, 1.5])
    def test_change_must_be_non_zero_integer(self, db_session, admin_user, make_product, change):
        p = make_product(stock=2)
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                product_id=p.id, actor_id=admin_user.id, movement_type="adjustment", quantity_change=change
            )

    def test_unknown_type(self, db_session, admin_user, make_product):
        p = make_product(stock=2)
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                product_id=p.id, actor_id=admin_user.id, movement_type="theft", quantity_change=-1
            )

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            ledger_service.record_movement(
                product_id=123456, actor_id=admin_user.id, movement_type="restock", quantity_change=1
            )


class TestAppendOnly:

    def test_entries_cannot_be_updated(self, db_session, make_product):
        p = make_product(stock=3)
        entry = ledger_service.list_movements(p.id)[0]

        entry.reason = "rewritten"
        with pytest.raises(AppendOnlyViolation):
            db_session.flush()
        db_session.rollback()

    def test_entries_cannot_be_deleted(self, db_session, make_product):
        p = make_product(stock=3)
        entry = ledger_service.list_movements(p.id)[0]

        db_session.delete(entry)
        with pytest.raises(AppendOnlyViolation):
            db_session.flush()
        db_session.rollback()


class TestVerifyLedger:

    def test_chain_replays_to_cached_stock(self, db_session, admin_user, make_product):
        p = make_product(stock=10)
        for change in (-3, 5, -12):
            ledger_service.record_movement(
                product_id=p.id, actor_id=admin_user.id, movement_type="adjustment", quantity_change=change
            )
        db_session.commit()

        check = ledger_service.verify_product_ledger(p.id)

        assert check.ok
        assert check.entries == 4
        assert check.ledger_quantity == check.stock_quantity == 0

        entries = ledger_service.list_movements(p.id, newest_first=False)
        for prev, nxt in zip(entries, entries[1:]):
            assert prev.quantity_after == nxt.quantity_before

    def test_stock_written_outside_ledger_is_reported(self, db_session, make_product):
        p = make_product(stock=10)
        db_session.execute(update(Product).where(Product.id == p.id).values(stock_quantity=7))
        db_session.commit()

        check = ledger_service.verify_product_ledger(p.id)

        assert not check.ok
        assert [problem["problem"] for problem in check.problems] == ["stock_mismatch"]
        assert check.to_dict()["ledger_quantity"] == 10

    def test_stock_without_history_is_reported(self, db_session, make_product):
        p = make_product(stock=0)
        db_session.execute(update(Product).where(Product.id == p.id).values(stock_quantity=4))
        db_session.commit()

        check = ledger_service.verify_product_ledger(p.id)
        assert [problem["problem"] for problem in check.problems] == ["missing_history"]

    def test_chain_break_is_reported(self, db_session, admin_user, make_product):
        p = make_product(stock=10)
        # A row inserted behind the service's back, skipping the real balance
        db_session.add(InventoryLog(
            product_id=p.id,
            user_id=admin_user.id,
            type="adjustment",
            quantity_before=8,
            quantity_change=2,
            quantity_after=10,
        ))
        db_session.commit()

        problems = ledger_service.verify_product_ledger(p.id).problems
        assert [problem["problem"] for problem in problems] == ["chain_break", "stock_mismatch"]

    def test_verify_all(self, db_session, make_product):
        make_product(sku="A", stock=1)
        make_product(sku="B", stock=2)

        checks = ledger_service.verify_all_ledgers()

        assert len(checks) == 2
        assert all(c.ok for c in checks)

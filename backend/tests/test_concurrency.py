"""
Concurrency tests against a file-backed SQLite database.

Every worker thread runs in its own app context, so each has its own
SQLAlchemy session and connection; they race for the same product row.
"""

import threading

import pytest

from pos_backend import create_app
from pos_backend.config import TestConfig
from pos_backend.errors import InsufficientStockError, InvalidStateError
from pos_backend.extensions import db
from pos_backend.models import Product, Sale, User
from pos_backend.services import ledger_service, sales_service
from pos_backend.services.event_sink import InMemoryEventSink
from pos_backend.services.products_service import create_product
from pos_backend.validation import CartLine

WORKERS = 12


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'pos-concurrency.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    with file_app.app_context():
        admin = User(name="Admin", email="admin@example.com", role="admin")
        cashier = User(name="Cashier", email="cashier@example.com", role="cashier")
        db.session.add_all([admin, cashier])
        db.session.commit()

        product = create_product(
            patch={"sku": "RACE-1", "name": "Race Item", "selling_price_cents": 100,
                   "stock_quantity": 5, "low_stock_threshold": 0},
            actor_id=admin.id,
            events=InMemoryEventSink(),
        )
        return {"admin_id": admin.id, "cashier_id": cashier.id, "product_id": product.id}


def _run_concurrently(target, count):
    barrier = threading.Barrier(count)
    results = []
    lock = threading.Lock()

    def worker(n):
        barrier.wait()
        outcome = target(n)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_concurrent_sales_never_oversell(file_app, seeded):
    def sell_one(n):
        with file_app.app_context():
            try:
                sale = sales_service.create_sale(
                    cart=[CartLine(seeded["product_id"], 1)],
                    payment_method="cash",
                    amount_tendered_cents=100,
                    actor_id=seeded["cashier_id"],
                    events=InMemoryEventSink(),
                )
                return ("ok", sale.sale_number)
            except InsufficientStockError:
                return ("insufficient", None)
            except Exception as e:
                return ("error", repr(e))

    results = _run_concurrently(sell_one, WORKERS)

    errors = [r for r in results if r[0] == "error"]
    assert errors == []
    sold = [number for status, number in results if status == "ok"]
    assert len(sold) == 5
    assert len(set(sold)) == 5
    assert sum(1 for r in results if r[0] == "insufficient") == WORKERS - 5

    with file_app.app_context():
        product = db.session.get(Product, seeded["product_id"])
        assert product.stock_quantity == 0
        assert db.session.query(Sale).count() == 5
        assert ledger_service.verify_product_ledger(product.id).ok
        numbers = sorted(n for (n,) in db.session.query(Sale.sale_number).all())
        assert [n[-4:] for n in numbers] == ["0001", "0002", "0003", "0004", "0005"]


def test_concurrent_voids_restore_stock_once(file_app, seeded):
    with file_app.app_context():
        sale = sales_service.create_sale(
            cart=[CartLine(seeded["product_id"], 2)],
            payment_method="cash",
            amount_tendered_cents=200,
            actor_id=seeded["cashier_id"],
            events=InMemoryEventSink(),
        )
        sale_id = sale.id

    def void(n):
        with file_app.app_context():
            try:
                sales_service.void_sale(
                    sale_id=sale_id,
                    reason=f"attempt {n}",
                    actor_id=seeded["admin_id"],
                    events=InMemoryEventSink(),
                )
                return "ok"
            except InvalidStateError:
                return "invalid_state"
            except Exception as e:
                return repr(e)

    results = _run_concurrently(void, 4)

    assert sorted(results) == ["invalid_state", "invalid_state", "invalid_state", "ok"]
    with file_app.app_context():
        assert db.session.get(Product, seeded["product_id"]).stock_quantity == 5
        assert ledger_service.verify_product_ledger(seeded["product_id"]).ok

"""
Catalog service tests.
"""

import pytest

from pos_backend.errors import NotFoundError
from pos_backend.models import InventoryLog
from pos_backend.services import products_service
from pos_backend.validation import ConflictError, ValidationError


def test_create_uses_configured_default_threshold(db_session, admin_user, events):
    p = products_service.create_product(
        patch={"sku": "KB-1", "name": "Keyboard", "selling_price_cents": 2500},
        actor_id=admin_user.id,
        events=events,
    )

    assert p.low_stock_threshold == 10
    assert p.stock_quantity == 0
    assert events.actions() == ["product_created"]
    assert db_session.query(InventoryLog).filter_by(product_id=p.id).count() == 0


def test_create_with_initial_stock_books_restock(db_session, admin_user, events):
    p = products_service.create_product(
        patch={"sku": "KB-2", "name": "Keyboard", "selling_price_cents": 2500, "stock_quantity": 7},
        actor_id=admin_user.id,
        events=events,
    )

    entry = db_session.query(InventoryLog).filter_by(product_id=p.id).one()
    assert (entry.type, entry.quantity_after, entry.user_id) == ("restock", 7, admin_user.id)
    assert events.events[0].metadata["stock"] == 7


def test_duplicate_sku_conflicts(db_session, make_product, admin_user, events):
    make_product(sku="DUP")
    with pytest.raises(ConflictError):
        products_service.create_product(
            patch={"sku": "DUP", "name": "Other", "selling_price_cents": 1},
            actor_id=admin_user.id,
            events=events,
        )


def test_unknown_category_rejected(db_session, admin_user, events):
    with pytest.raises(ValidationError):
        products_service.create_product(
            patch={"sku": "X", "name": "X", "selling_price_cents": 1, "category_id": 999},
            actor_id=admin_user.id,
            events=events,
        )


def test_update_never_touches_stock(db_session, make_product, admin_user, events):
    p = make_product(stock=4)
    with pytest.raises(ValidationError):
        products_service.update_product(
            product_id=p.id, patch={"stock_quantity": 100}, actor_id=admin_user.id, events=events
        )
    assert p.stock_quantity == 4


def test_update_non_price_field_audited_as_product_updated(db_session, make_product, admin_user, events):
    p = make_product()
    products_service.update_product(
        product_id=p.id, patch={"description": "Blue switches"}, actor_id=admin_user.id, events=events
    )
    assert events.actions() == ["product_updated"]
    assert events.events[0].metadata["fields"] == ["description"]


def test_soft_delete_hides_but_keeps_row(db_session, make_product, admin_user, events):
    p = make_product(sku="OLD")

    products_service.delete_product(product_id=p.id, actor_id=admin_user.id, events=events)

    with pytest.raises(NotFoundError):
        products_service.get_product(p.id)
    kept = products_service.get_product(p.id, include_inactive=True)
    assert kept.is_active is False
    assert kept.deleted_at is not None
    assert events.actions() == ["product_deleted"]

    products_service.update_product(
        product_id=p.id, patch={"is_active": True}, actor_id=admin_user.id, events=events
    )
    assert products_service.get_product(p.id).deleted_at is None


def test_deactivating_through_update_stamps_deleted_at(db_session, make_product, admin_user, events):
    p = make_product(sku="RETIRED")

    products_service.update_product(
        product_id=p.id, patch={"is_active": False}, actor_id=admin_user.id, events=events
    )

    kept = products_service.get_product(p.id, include_inactive=True)
    assert kept.is_active is False
    assert kept.deleted_at is not None
    with pytest.raises(NotFoundError):
        products_service.get_product(p.id)


def test_list_products_filters(db_session, make_product):
    category = products_service.get_or_create_category("Networking")
    db_session.commit()
    make_product(sku="RTR-1", name="WiFi Router", stock=20, threshold=5, category_id=category.id)
    make_product(sku="SW-1", name="Network Switch", stock=3, threshold=5, category_id=category.id)
    make_product(sku="CBL-1", name="HDMI Cable", stock=50, threshold=5)

    assert [p.sku for p in products_service.list_products(search="net")] == ["SW-1"]
    assert [p.sku for p in products_service.list_products(search="rtr")] == ["RTR-1"]
    assert {p.sku for p in products_service.list_products(category_id=category.id)} == {"RTR-1", "SW-1"}
    assert [p.sku for p in products_service.list_products(low_stock=True)] == ["SW-1"]

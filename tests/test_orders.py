"""Tests for the order lifecycle."""

from datetime import timedelta
from decimal import Decimal

import pytest

from bookshop.errors import (
    AddressNotFoundError,
    InsufficientStockError,
    InvalidArgumentError,
    OrderNotFoundError,
    OrderStateError,
    PermissionDeniedError,
)
from bookshop.models import OrderStatus, PaymentStatus, _utc_now

USER = 2


class TestCreateOrder:
    def test_reserves_stock_and_keeps_cart(self, shop):
        shop.carts.add_item(USER, 1, 2)
        shop.carts.add_item(USER, 6, 3)

        order = shop.orders.create_order(USER)

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.total_price == Decimal("57.95")
        assert [(i.product_id, i.quantity) for i in order.items] == [(1, 2), (6, 3)]
        assert shop.catalog.get_product(1).stock_quantity == 13
        assert shop.catalog.get_product(6).stock_quantity == 0
        assert len(shop.carts.get_cart(USER).items) == 2

    def test_expires_in_fifteen_minutes(self, shop):
        shop.carts.add_item(USER, 1, 1)
        before = _utc_now()

        order = shop.orders.create_order(USER)

        window = order.expires_at - before
        assert timedelta(minutes=14, seconds=59) < window <= timedelta(minutes=15, seconds=1)

    def test_total_includes_discount_and_snapshots_code(self, shop):
        shop.carts.add_item(USER, 1, 1)
        shop.coupons.apply(USER, "WELCOME5")

        order = shop.orders.create_order(USER)

        assert order.total_price == Decimal("5.99")
        assert order.coupon_code == "WELCOME5"

    def test_empty_cart(self, shop):
        with pytest.raises(InvalidArgumentError):
            shop.orders.create_order(USER)

    def test_address_must_belong_to_user(self, shop):
        shop.carts.add_item(USER, 1, 1)

        with pytest.raises(AddressNotFoundError):
            shop.orders.create_order(USER, shipping_address_id=4)  # user 3's address

        order = shop.orders.create_order(USER, shipping_address_id=2)
        assert order.shipping_address_id == 2

    def test_stock_rechecked_at_creation(self, shop):
        shop.carts.add_item(USER, 6, 3)
        shop.carts.add_item(3, 6, 2)
        shop.orders.create_order(3)

        with pytest.raises(InsufficientStockError):
            shop.orders.create_order(USER)

        assert shop.catalog.get_product(6).stock_quantity == 1
        assert len(shop.store.orders) == 1

    def test_order_items_survive_catalog_edits(self, shop, admin):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        shop.catalog.update_product(admin, 1, name="Renamed", price=Decimal("1.00"))

        assert order.items[0].product_name == "The Great Gatsby"
        assert order.items[0].unit_price == Decimal("10.99")


class TestCancelOrder:
    def test_round_trip_restores_stock(self, shop):
        before = shop.catalog.get_product(1).stock_quantity
        shop.carts.add_item(USER, 1, 4)
        order = shop.orders.create_order(USER)

        shop.orders.cancel_order(USER, order.id)

        assert shop.catalog.get_product(1).stock_quantity == before
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.FAILED

    def test_cannot_cancel_twice(self, shop):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)
        shop.orders.cancel_order(USER, order.id)

        with pytest.raises(OrderStateError):
            shop.orders.cancel_order(USER, order.id)
        assert shop.catalog.get_product(1).stock_quantity == 15

    def test_other_users_order_is_not_found(self, shop):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        with pytest.raises(OrderNotFoundError):
            shop.orders.cancel_order(3, order.id)

    def test_cannot_cancel_after_admin_cancel(self, shop, admin):
        before = shop.catalog.get_product(1).stock_quantity
        shop.carts.add_item(USER, 1, 2)
        order = shop.orders.create_order(USER)
        shop.orders.update_status(admin, order.id, OrderStatus.CANCELLED)

        with pytest.raises(OrderStateError):
            shop.orders.cancel_order(USER, order.id)
        assert shop.catalog.get_product(1).stock_quantity == before
        assert order.payment_status == PaymentStatus.FAILED


class TestExpiration:
    def test_expire_if_due(self, shop):
        shop.carts.add_item(USER, 1, 2)
        order = shop.orders.create_order(USER)
        order.expires_at = _utc_now() - timedelta(seconds=1)

        assert shop.orders.expire_if_due(order) is True
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.FAILED
        assert shop.catalog.get_product(1).stock_quantity == 15

        # Already expired: no second restore
        assert shop.orders.expire_if_due(order) is False
        assert shop.catalog.get_product(1).stock_quantity == 15

    def test_not_due(self, shop):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        assert shop.orders.expire_if_due(order) is False
        assert order.status == OrderStatus.PENDING


class TestUpdateStatus:
    def test_cancel_restores_stock_once(self, shop, admin):
        shop.carts.add_item(USER, 1, 3)
        order = shop.orders.create_order(USER)

        shop.orders.update_status(admin, order.id, OrderStatus.CANCELLED)
        shop.orders.update_status(admin, order.id, OrderStatus.CANCELLED)

        assert shop.catalog.get_product(1).stock_quantity == 15

    def test_other_transitions_just_overwrite(self, shop, admin):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        shop.orders.update_status(admin, order.id, OrderStatus.SHIPPED)
        shop.orders.update_status(admin, order.id, OrderStatus.PENDING)

        assert order.status == OrderStatus.PENDING
        assert shop.catalog.get_product(1).stock_quantity == 14

    def test_requires_admin(self, shop, customer):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        with pytest.raises(PermissionDeniedError):
            shop.orders.update_status(customer, order.id, OrderStatus.SHIPPED)


class TestCheckout:
    def test_legacy_checkout_clears_cart_and_records_coupon(self, shop):
        shop.carts.add_item(USER, 1, 1)
        shop.coupons.apply(USER, "SAVE10")

        order = shop.orders.checkout(USER)

        assert order.expires_at is None
        assert order.total_price == Decimal("9.89")
        assert shop.carts.get_cart(USER).items == []
        assert shop.coupons.find_by_code("SAVE10").current_uses == 1
        assert shop.catalog.get_product(1).stock_quantity == 14

    def test_empty_cart(self, shop):
        with pytest.raises(InvalidArgumentError):
            shop.orders.checkout(USER)


class TestQueries:
    def test_get_order_visibility(self, shop, admin, customer):
        shop.carts.add_item(3, 1, 1)
        order = shop.orders.create_order(3)

        assert shop.orders.get_order(admin, order.id) is order
        with pytest.raises(OrderNotFoundError):
            shop.orders.get_order(customer, order.id)

    def test_pending_orders(self, shop):
        shop.carts.add_item(USER, 1, 1)
        order = shop.orders.create_order(USER)

        pending = shop.orders.pending_orders(USER)

        assert [p["id"] for p in pending] == [order.id]
        assert 14 < pending[0]["minutes_remaining"] <= 15
        assert pending[0]["is_expired"] is False

    def test_delete_pending_order_restores_stock(self, shop, admin):
        shop.carts.add_item(USER, 1, 2)
        order = shop.orders.create_order(USER)

        shop.orders.delete_order(admin, order.id)

        assert len(shop.store.orders) == 0
        assert shop.catalog.get_product(1).stock_quantity == 15

"""Order lifecycle: creation with stock reservation, cancellation and expiry."""

import logging
from datetime import datetime, timedelta
from typing import Any

from . import config
from .auth import Identity, require_role
from .cart import CartManager
from .catalog import Catalog
from .coupons import CouponEngine
from .errors import (
    AddressNotFoundError,
    InvalidArgumentError,
    OrderNotFoundError,
    OrderStateError,
)
from .models import Cart, Order, OrderItem, OrderStatus, PaymentStatus, Role, _utc_now
from .store import Store

logger = logging.getLogger(__name__)


class OrderService:
    """
    Turns carts into orders.

    Stock is reserved when the order is created and given back when the
    order is cancelled, expires unpaid, or is fully refunded.
    """

    def __init__(
        self,
        store: Store,
        catalog: Catalog | None = None,
        carts: CartManager | None = None,
        coupons: CouponEngine | None = None,
    ):
        self.store = store
        self.catalog = catalog or Catalog(store)
        self.carts = carts or CartManager(store, self.catalog)
        self.coupons = coupons or CouponEngine(store, self.carts)

    def _new_order(self, cart: Cart, expires_at: datetime | None, shipping_address_id: int | None) -> Order:
        items = [
            OrderItem(
                id=n,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for n, item in enumerate(cart.items, start=1)
        ]
        # Raises before anything is written if a line can't be reserved
        self.catalog.reserve((item.product_id, item.quantity) for item in items)
        return self.store.orders.insert(Order(
            id=0,
            user_id=cart.user_id,
            items=items,
            total_price=cart.total_price,
            expires_at=expires_at,
            shipping_address_id=shipping_address_id,
            coupon_code=cart.applied_coupon_code,
        ))

    def _restore_stock(self, order: Order) -> None:
        self.catalog.restore(order.stock_lines())

    def create_order(self, user_id: int, shipping_address_id: int | None = None) -> Order:
        """
        Create a pending order from the user's cart and reserve its stock.

        The cart is left as is; it is cleared once payment succeeds.

        Raises:
            InvalidArgumentError: If the cart is empty.
            AddressNotFoundError: If the address isn't the user's.
            ProductNotFoundError: If a product was deleted meanwhile.
            InsufficientStockError: If any line exceeds live stock.
        """
        with self.store.lock():
            cart = self.carts.find_cart(user_id)
            if cart is None or not cart.items:
                raise InvalidArgumentError("Cart is empty.")

            if shipping_address_id is not None:
                address = self.store.addresses.get(shipping_address_id)
                if address is None or address.user_id != user_id:
                    raise AddressNotFoundError(shipping_address_id)

            expires_at = _utc_now() + timedelta(minutes=config.ORDER_EXPIRATION_MINUTES)
            order = self._new_order(cart, expires_at, shipping_address_id)

        logger.info(
            "Created order %d for user %d, total %s, expires %s",
            order.id, user_id, order.total_price, order.expires_at,
        )
        return order

    def checkout(self, user_id: int) -> Order:
        """
        One-step checkout: reserve stock, record the coupon and empty the cart.

        The order has no payment window and stays pending until an admin
        moves it along.
        """
        with self.store.lock():
            cart = self.carts.find_cart(user_id)
            if cart is None or not cart.items:
                raise InvalidArgumentError("Cart is empty.")
            order = self._new_order(cart, None, None)
            self.coupons.record_usage(order.coupon_code, user_id, order.id)
            cart.clear()

        logger.info("Checked out cart of user %d as order %d", user_id, order.id)
        return order

    def get_owned_order(self, user_id: int, order_id: int) -> Order:
        order = self.store.orders.get(order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFoundError(order_id)
        return order

    def get_order(self, identity: Identity, order_id: int) -> Order:
        """Get an order the caller owns. Admins can read any order."""
        order = self.store.orders.get(order_id)
        if order is None or (order.user_id != identity.user_id and not identity.is_admin):
            raise OrderNotFoundError(order_id)
        return order

    def cancel_order(self, user_id: int, order_id: int) -> Order:
        """
        Cancel an unpaid order and give its stock back.

        Raises:
            OrderNotFoundError: If the order isn't the user's.
            OrderStateError: If payment already completed or failed.
        """
        with self.store.lock():
            order = self.get_owned_order(user_id, order_id)
            if order.payment_status != PaymentStatus.PENDING or order.status == OrderStatus.CANCELLED:
                raise OrderStateError(order_id, "Only pending orders can be cancelled.")
            self._restore_stock(order)
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.FAILED

        logger.info("Order %d cancelled by user %d", order_id, user_id)
        return order

    def expire_if_due(self, order: Order, now: datetime | None = None) -> bool:
        """
        Cancel ``order`` if its payment window has passed.

        Returns True if the order expired on this call.
        """
        with self.store.lock():
            if order.payment_status != PaymentStatus.PENDING:
                return False
            if order.status == OrderStatus.CANCELLED or not order.is_expired(now):
                return False
            self._restore_stock(order)
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.FAILED

        logger.info("Order %d expired unpaid; stock restored", order.id)
        return True

    def update_status(self, identity: Identity, order_id: int, new_status: OrderStatus) -> Order:
        """Set an order's status. Cancelling restores stock once."""
        require_role(identity, Role.ADMIN)
        with self.store.lock():
            order = self.store.orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if new_status == OrderStatus.CANCELLED and order.status != OrderStatus.CANCELLED:
                self._restore_stock(order)
                if order.payment_status == PaymentStatus.PENDING:
                    order.payment_status = PaymentStatus.FAILED
            old_status = order.status
            order.status = new_status

        logger.info("Order %d status %s -> %s", order_id, old_status.value, new_status.value)
        return order

    def list_orders(self, identity: Identity) -> list[Order]:
        require_role(identity, Role.ADMIN)
        return sorted(self.store.orders.all(), key=lambda o: o.order_date, reverse=True)

    def my_orders(self, user_id: int) -> list[Order]:
        orders = self.store.orders.filter(lambda o: o.user_id == user_id)
        return sorted(orders, key=lambda o: o.order_date, reverse=True)

    def pending_orders(self, user_id: int, now: datetime | None = None) -> list[dict[str, Any]]:
        """Unpaid orders with the time left in their payment window."""
        now = now or _utc_now()
        orders = self.store.orders.filter(
            lambda o: o.user_id == user_id
            and o.payment_status == PaymentStatus.PENDING
            and o.status == OrderStatus.PENDING
        )
        return [
            {
                **order.to_dict(),
                "minutes_remaining": round(order.minutes_remaining(now), 1),
                "is_expired": order.is_expired(now),
            }
            for order in sorted(orders, key=lambda o: o.order_date, reverse=True)
        ]

    def delete_order(self, identity: Identity, order_id: int) -> Order:
        """Remove an order. An unpaid, uncancelled order gives its stock back first."""
        require_role(identity, Role.ADMIN)
        with self.store.lock():
            order = self.store.orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if (
                order.status != OrderStatus.CANCELLED
                and order.payment_status == PaymentStatus.PENDING
            ):
                self._restore_stock(order)
            self.store.orders.delete(order_id)

        logger.info("Deleted order %d", order_id)
        return order

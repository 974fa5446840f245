"""Per-user shopping carts."""

import logging
from decimal import Decimal

from .catalog import Catalog
from .errors import (
    CartItemNotFoundError,
    CartNotFoundError,
    InsufficientStockError,
    InvalidArgumentError,
)
from .models import Cart, CartItem
from .store import Store

logger = logging.getLogger(__name__)


class CartManager:
    """
    Maintains one cart per user.

    Stock is checked against the live catalog on every change, but never
    reserved here; reservation happens when an order is created.
    """

    def __init__(self, store: Store, catalog: Catalog | None = None):
        self.store = store
        self.catalog = catalog or Catalog(store)

    def _refresh_discount(self, cart: Cart) -> None:
        # Keep an applied coupon's discount in line with the new subtotal
        if not cart.applied_coupon_code:
            return
        code = cart.applied_coupon_code.upper()
        coupon = self.store.coupons.find(lambda c: c.code.upper() == code)
        if coupon is None:
            cart.applied_coupon_code = None
            cart.discount_amount = Decimal("0.00")
            return
        cart.discount_amount = coupon.discount_for(cart.subtotal)

    def find_cart(self, user_id: int) -> Cart | None:
        return self.store.carts.find(lambda c: c.user_id == user_id)

    def get_cart(self, user_id: int) -> Cart:
        """
        Get a user's existing cart.

        Raises:
            CartNotFoundError: If the user has never had a cart.
        """
        cart = self.find_cart(user_id)
        if cart is None:
            raise CartNotFoundError(user_id)
        return cart

    def get_or_create_cart(self, user_id: int) -> Cart:
        with self.store.lock():
            cart = self.find_cart(user_id)
            if cart is None:
                cart = self.store.carts.insert(Cart(id=0, user_id=user_id))
            return cart

    def add_item(self, user_id: int, product_id: int, quantity: int) -> Cart:
        """
        Add a product to the cart, merging with an existing line.

        Raises:
            InvalidArgumentError: If quantity is not positive.
            ProductNotFoundError: If the product doesn't exist.
            InsufficientStockError: If the resulting quantity exceeds stock.
        """
        if quantity <= 0:
            raise InvalidArgumentError("Quantity must be greater than zero.")

        with self.store.lock():
            product = self.catalog.get_product(product_id)
            cart = self.get_or_create_cart(user_id)
            existing = next((i for i in cart.items if i.product_id == product_id), None)
            wanted = quantity + (existing.quantity if existing else 0)
            if not product.is_available(wanted):
                raise InsufficientStockError(
                    product.id, product.name, product.stock_quantity, wanted
                )

            if existing:
                existing.quantity = wanted
            else:
                cart.items.append(CartItem(
                    id=cart.next_item_id(),
                    product_id=product.id,
                    product_name=product.name,
                    unit_price=product.price,
                    quantity=quantity,
                    author=product.author,
                ))
            self._refresh_discount(cart)
            cart.touch()

        logger.debug("User %d added %d x product %d", user_id, quantity, product_id)
        return cart

    def update_item_quantity(self, user_id: int, item_id: int, quantity: int) -> Cart:
        """
        Overwrite the quantity of a cart line.

        Raises:
            InvalidArgumentError: If quantity is not positive.
            CartNotFoundError: If the user has no cart.
            CartItemNotFoundError: If the line isn't in the cart.
            InsufficientStockError: If quantity exceeds stock.
        """
        if quantity <= 0:
            raise InvalidArgumentError("Quantity must be greater than zero.")

        with self.store.lock():
            cart = self.get_cart(user_id)
            item = cart.find_item(item_id)
            if item is None:
                raise CartItemNotFoundError(item_id)
            product = self.catalog.get_product(item.product_id)
            if not product.is_available(quantity):
                raise InsufficientStockError(
                    product.id, product.name, product.stock_quantity, quantity
                )
            item.quantity = quantity
            self._refresh_discount(cart)
            cart.touch()
        return cart

    def remove_item(self, user_id: int, item_id: int) -> Cart:
        """
        Remove a line from the cart.

        Raises:
            CartNotFoundError: If the user has no cart.
            CartItemNotFoundError: If the line isn't in the cart (including
                when it was already removed).
        """
        with self.store.lock():
            cart = self.get_cart(user_id)
            item = cart.find_item(item_id)
            if item is None:
                raise CartItemNotFoundError(item_id)
            cart.items.remove(item)
            self._refresh_discount(cart)
            cart.touch()
        return cart

    def clear(self, user_id: int) -> Cart:
        with self.store.lock():
            cart = self.get_cart(user_id)
            cart.clear()
        return cart

    def clear_if_exists(self, user_id: int) -> None:
        with self.store.lock():
            cart = self.find_cart(user_id)
            if cart is not None:
                cart.clear()

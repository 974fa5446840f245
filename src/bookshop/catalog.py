"""Product catalog and stock counters."""

import logging
from collections import Counter
from decimal import Decimal
from typing import Any, Iterable

from .auth import Identity, require_role
from .errors import InsufficientStockError, InvalidArgumentError, ProductNotFoundError
from .models import Product, Role, to_money
from .store import Store

logger = logging.getLogger(__name__)

SORT_KEYS = {
    "name": lambda p: p.name.lower(),
    "author": lambda p: p.author.lower(),
    "price": lambda p: p.price,
    "genre": lambda p: p.genre.lower(),
}


class Catalog:
    """Reads products and owns every change to their stock."""

    def __init__(self, store: Store):
        self.store = store

    def get_product(self, product_id: int) -> Product:
        """
        Get a product by ID.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
        """
        product = self.store.products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def list_products(
        self,
        search: str | None = None,
        genre: str | None = None,
        author: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> list[Product]:
        """Filter and sort the catalog. Unknown sort keys sort by name."""
        products = self.store.products.all()

        if search and search.strip():
            term = search.lower()
            products = [
                p for p in products
                if term in p.name.lower()
                or term in p.author.lower()
                or term in p.description.lower()
            ]
        if genre and genre.strip():
            products = [p for p in products if p.genre.lower() == genre.lower()]
        if author and author.strip():
            products = [p for p in products if p.author.lower() == author.lower()]
        if min_price is not None:
            products = [p for p in products if p.price >= min_price]
        if max_price is not None:
            products = [p for p in products if p.price <= max_price]

        key = SORT_KEYS.get((sort_by or "name").lower(), SORT_KEYS["name"])
        return sorted(products, key=key, reverse=(sort_order or "").lower() == "desc")

    def check_availability(self, product_id: int, quantity: int = 1) -> dict[str, Any]:
        product = self.get_product(product_id)
        return {
            "product_id": product.id,
            "product_name": product.name,
            "stock_quantity": product.stock_quantity,
            "stock_status": product.stock_status.value,
            "requested_quantity": quantity,
            "is_available": product.is_available(quantity),
        }

    # --- Reservation ---

    def reserve(self, lines: Iterable[tuple[int, int]]) -> None:
        """
        Decrement stock for every (product_id, quantity) line.

        All lines are validated before any counter changes, so a failure
        leaves stock untouched. Repeated product ids are checked on their
        combined quantity.

        Raises:
            ProductNotFoundError: If a product no longer exists.
            InsufficientStockError: If any line exceeds live stock.
        """
        wanted: Counter[int] = Counter()
        for product_id, quantity in lines:
            wanted[product_id] += quantity

        with self.store.lock():
            products = {pid: self.get_product(pid) for pid in wanted}
            for pid, quantity in wanted.items():
                product = products[pid]
                if not product.is_available(quantity):
                    raise InsufficientStockError(
                        pid, product.name, product.stock_quantity, quantity
                    )
            for pid, quantity in wanted.items():
                products[pid].stock_quantity -= quantity

    def restore(self, lines: Iterable[tuple[int, int]]) -> None:
        """Give reserved quantities back. Deleted products are skipped."""
        with self.store.lock():
            for product_id, quantity in lines:
                product = self.store.products.get(product_id)
                if product is not None:
                    product.stock_quantity += quantity

    # --- Admin ---

    def set_stock(self, identity: Identity, product_id: int, quantity: int) -> Product:
        require_role(identity, Role.ADMIN)
        if quantity < 0:
            raise InvalidArgumentError("Stock quantity cannot be negative.")
        with self.store.lock():
            product = self.get_product(product_id)
            product.stock_quantity = quantity
        logger.info("Stock for product %d set to %d", product_id, quantity)
        return product

    def increase_stock(self, identity: Identity, product_id: int, amount: int) -> Product:
        require_role(identity, Role.ADMIN)
        if amount <= 0:
            raise InvalidArgumentError("Amount must be greater than zero.")
        with self.store.lock():
            product = self.get_product(product_id)
            product.stock_quantity += amount
        return product

    def decrease_stock(self, identity: Identity, product_id: int, amount: int) -> Product:
        require_role(identity, Role.ADMIN)
        if amount <= 0:
            raise InvalidArgumentError("Amount must be greater than zero.")
        with self.store.lock():
            product = self.get_product(product_id)
            if product.stock_quantity < amount:
                raise InsufficientStockError(
                    product.id, product.name, product.stock_quantity, amount
                )
            product.stock_quantity -= amount
        return product

    def create_product(
        self,
        identity: Identity,
        name: str,
        price: Decimal,
        author: str = "",
        genre: str = "",
        isbn: str = "",
        description: str = "",
        stock_quantity: int = 0,
        low_stock_threshold: int = 5,
    ) -> Product:
        require_role(identity, Role.ADMIN)
        if not name or not name.strip():
            raise InvalidArgumentError("Product name is required.")
        if price < 0:
            raise InvalidArgumentError("Price cannot be negative.")
        if stock_quantity < 0:
            raise InvalidArgumentError("Stock quantity cannot be negative.")
        with self.store.lock():
            product = self.store.products.insert(Product(
                id=0,
                name=name,
                price=to_money(price),
                author=author,
                genre=genre,
                isbn=isbn,
                description=description,
                stock_quantity=stock_quantity,
                low_stock_threshold=low_stock_threshold,
            ))
        logger.info("Created product %d (%s)", product.id, product.name)
        return product

    def update_product(
        self,
        identity: Identity,
        product_id: int,
        name: str | None = None,
        price: Decimal | None = None,
        description: str | None = None,
    ) -> Product:
        """Edit catalog fields. Existing cart and order snapshots keep their prices."""
        require_role(identity, Role.ADMIN)
        if price is not None and price < 0:
            raise InvalidArgumentError("Price cannot be negative.")
        with self.store.lock():
            product = self.get_product(product_id)
            if name is not None:
                product.name = name
            if price is not None:
                product.price = to_money(price)
            if description is not None:
                product.description = description
        return product

    def delete_product(self, identity: Identity, product_id: int) -> Product:
        require_role(identity, Role.ADMIN)
        with self.store.lock():
            product = self.get_product(product_id)
            self.store.products.delete(product_id)
        logger.info("Deleted product %d", product_id)
        return product

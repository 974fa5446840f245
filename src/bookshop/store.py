"""In-memory storage for bookshop."""

import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

from .models import (
    Address,
    Cart,
    Coupon,
    CouponUsage,
    Order,
    PaymentMethod,
    PaymentTransaction,
    Product,
    Refund,
    User,
)

T = TypeVar("T")


class Table(Generic[T]):
    """An insertion-ordered collection of records keyed by integer ``id``."""

    def __init__(self) -> None:
        self._rows: dict[int, T] = {}
        self._last_id = 0

    def next_id(self) -> int:
        """Ids only grow, so a deleted row's id is never handed out again."""
        return self._last_id + 1

    def insert(self, row: T) -> T:
        """
        Add a row. A row whose id is 0 gets the next free id.

        Raises:
            ValueError: If the id is already taken.
        """
        row_id = getattr(row, "id")
        if row_id == 0:
            row_id = self.next_id()
            # frozen dataclasses need object.__setattr__
            object.__setattr__(row, "id", row_id)
        if row_id in self._rows:
            raise ValueError(f"duplicate id {row_id}")
        self._rows[row_id] = row
        self._last_id = max(self._last_id, row_id)
        return row

    def get(self, row_id: int) -> T | None:
        return self._rows.get(row_id)

    def find(self, predicate: Callable[[T], bool]) -> T | None:
        """Return the first row matching ``predicate``."""
        return next((r for r in self._rows.values() if predicate(r)), None)

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [r for r in self._rows.values() if predicate(r)]

    def delete(self, row_id: int) -> T | None:
        return self._rows.pop(row_id, None)

    def all(self) -> list[T]:
        return list(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._rows.values()))


class Store:
    """
    Process-wide data store.

    Services wrap every read-validate-mutate sequence in ``lock()`` so that
    concurrent requests never interleave inside a stock reservation or a
    payment state change.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.products: Table[Product] = Table()
        self.users: Table[User] = Table()
        self.addresses: Table[Address] = Table()
        self.carts: Table[Cart] = Table()
        self.coupons: Table[Coupon] = Table()
        self.coupon_usages: Table[CouponUsage] = Table()
        self.orders: Table[Order] = Table()
        self.payment_methods: Table[PaymentMethod] = Table()
        self.transactions: Table[PaymentTransaction] = Table()
        self.refunds: Table[Refund] = Table()

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the store lock for a multi-step operation."""
        with self._lock:
            yield

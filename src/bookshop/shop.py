"""Wiring of the bookshop services around one store."""

from .auth import UserService
from .cart import CartManager
from .catalog import Catalog
from .coupons import CouponEngine
from .orders import OrderService
from .payment_methods import PaymentMethodService
from .payments import PaymentService, PaymentSimulator
from .seed import seed_store
from .store import Store


class Shop:
    """All services sharing a single store and lock."""

    def __init__(self, store: Store | None = None, simulator: PaymentSimulator | None = None):
        self.store = store or Store()
        self.users = UserService(self.store)
        self.catalog = Catalog(self.store)
        self.carts = CartManager(self.store, self.catalog)
        self.coupons = CouponEngine(self.store, self.carts)
        self.orders = OrderService(self.store, self.catalog, self.carts, self.coupons)
        self.payments = PaymentService(self.store, self.orders, simulator)
        self.payment_methods = PaymentMethodService(self.store)

    @classmethod
    def create(cls, seed: bool = True, simulator: PaymentSimulator | None = None) -> "Shop":
        store = Store()
        if seed:
            seed_store(store)
        return cls(store, simulator)

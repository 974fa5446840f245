"""Pytest fixtures for bookshop tests."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from bookshop.auth import Identity, create_access_token
from bookshop.models import Coupon, DiscountType, Product, Role
from bookshop.payments import PaymentSimulator
from bookshop.shop import Shop
from bookshop.store import Store

CUSTOMER_ID = 2  # seeded "User": cards 3 (0000, default), 4 (1111), 8 (4444), 9 (6666), PayPal 5
OTHER_CUSTOMER_ID = 3


@pytest.fixture
def shop():
    """A seeded shop whose payment simulator answers immediately."""
    return Shop.create(seed=True, simulator=PaymentSimulator(latency=0))


@pytest.fixture
def empty_shop():
    """A shop with no data at all."""
    return Shop(Store(), PaymentSimulator(latency=0))


@pytest.fixture
def admin():
    return Identity(user_id=1, username="admin", role=Role.ADMIN)


@pytest.fixture
def customer():
    return Identity(user_id=CUSTOMER_ID, username="User", role=Role.USER)


@pytest.fixture
def add_product(shop):
    """Insert a product straight into the store and return it."""

    def _add(price: str, stock: int = 10, name: str = "Test Book") -> Product:
        return shop.store.products.insert(
            Product(id=0, name=name, price=Decimal(price), author="Test Author",
                    stock_quantity=stock)
        )

    return _add


@pytest.fixture
def add_coupon(shop):
    def _add(code: str, discount_type: DiscountType, value: str, **kwargs) -> Coupon:
        return shop.store.coupons.insert(
            Coupon(id=0, code=code, type=discount_type, value=Decimal(value), **kwargs)
        )

    return _add


@pytest.fixture
def client(shop):
    """Test client bound to the ``shop`` fixture."""
    from bookshop.api import app, get_shop

    app.dependency_overrides[get_shop] = lambda: shop
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _bearer(shop, user_id: int) -> dict[str, str]:
    token = create_access_token(shop.store.users.get(user_id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(shop):
    return _bearer(shop, CUSTOMER_ID)


@pytest.fixture
def admin_headers(shop):
    return _bearer(shop, 1)

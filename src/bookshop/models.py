"""Data models for bookshop."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Any
import uuid

CENT = Decimal("0.01")


def _utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 with a trailing Z."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_transaction_id() -> str:
    """Generate an opaque payment transaction ID like TXN_1A2B3C4D."""
    return f"TXN_{uuid.uuid4().hex[:8].upper()}"


def to_money(value: Any) -> Decimal:
    """Coerce a number to a Decimal rounded to cents (banker's rounding)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def _money(value: Decimal) -> float:
    return float(to_money(value))


class Role(str, Enum):
    ADMIN = "Admin"
    USER = "User"


class StockStatus(str, Enum):
    IN_STOCK = "InStock"
    LOW_STOCK = "LowStock"
    OUT_OF_STOCK = "OutOfStock"


class DiscountType(str, Enum):
    PERCENTAGE = "Percentage"
    FIXED_AMOUNT = "FixedAmount"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    PARTIALLY_REFUNDED = "PartiallyRefunded"


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "CreditCard"
    DEBIT_CARD = "DebitCard"
    PAYPAL = "PayPal"

    @property
    def is_card(self) -> bool:
        return self in (PaymentMethodType.CREDIT_CARD, PaymentMethodType.DEBIT_CARD)


class AddressType(str, Enum):
    SHIPPING = "Shipping"
    BILLING = "Billing"
    BOTH = "Both"


# Catalog


@dataclass
class Product:
    """A book in the catalog with a live stock counter."""

    id: int
    name: str
    price: Decimal
    author: str = ""
    genre: str = ""
    isbn: str = ""
    description: str = ""
    type: str = "Book"
    stock_quantity: int = 0
    low_stock_threshold: int = 5

    @property
    def stock_status(self) -> StockStatus:
        if self.stock_quantity == 0:
            return StockStatus.OUT_OF_STOCK
        if self.stock_quantity <= self.low_stock_threshold:
            return StockStatus.LOW_STOCK
        return StockStatus.IN_STOCK

    def is_available(self, quantity: int) -> bool:
        return self.stock_quantity >= quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "genre": self.genre,
            "isbn": self.isbn,
            "price": _money(self.price),
            "description": self.description,
            "type": self.type,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "stock_status": self.stock_status.value,
        }


# Cart


@dataclass
class CartItem:
    """A cart line; name, author and unit price are snapshots taken when added."""

    id: int
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    author: str = ""

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "author": self.author,
            "unit_price": _money(self.unit_price),
            "quantity": self.quantity,
            "total_price": _money(self.total_price),
        }


@dataclass
class Cart:
    """A user's shopping cart."""

    id: int
    user_id: int
    items: list[CartItem] = field(default_factory=list)
    applied_coupon_code: str | None = None
    discount_amount: Decimal = Decimal("0.00")
    last_updated: datetime = field(default_factory=_utc_now)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total_price for item in self.items), Decimal("0.00"))

    @property
    def total_price(self) -> Decimal:
        return self.subtotal - self.discount_amount

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_item(self, item_id: int) -> CartItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def next_item_id(self) -> int:
        return max((i.id for i in self.items), default=0) + 1

    def touch(self) -> None:
        self.last_updated = _utc_now()

    def clear(self) -> None:
        """Drop all items and any applied coupon."""
        self.items.clear()
        self.applied_coupon_code = None
        self.discount_amount = Decimal("0.00")
        self.touch()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "applied_coupon_code": self.applied_coupon_code,
            "subtotal": _money(self.subtotal),
            "discount_amount": _money(self.discount_amount),
            "total_price": _money(self.total_price),
            "total_items": self.total_items,
            "last_updated": _isoformat(self.last_updated),
        }


# Coupons


@dataclass
class Coupon:
    """A discount code. Validity is computed on demand, never stored."""

    id: int
    code: str
    type: DiscountType
    value: Decimal
    expiration_date: datetime | None = None
    max_uses_total: int | None = None
    is_active: bool = True
    current_uses: int = 0
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def uses_remaining(self) -> int | None:
        if self.max_uses_total is None:
            return None
        return self.max_uses_total - self.current_uses

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiration_date is None:
            return False
        return self.expiration_date < (now or _utc_now())

    def discount_for(self, subtotal: Decimal) -> Decimal:
        """Discount this coupon gives on ``subtotal``, never more than the subtotal."""
        if self.type == DiscountType.PERCENTAGE:
            discount = subtotal * self.value / Decimal(100)
        else:
            discount = min(self.value, subtotal)
        return to_money(min(discount, subtotal))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "type": self.type.value,
            "value": _money(self.value),
            "expiration_date": _isoformat(self.expiration_date),
            "max_uses_total": self.max_uses_total,
            "is_active": self.is_active,
            "current_uses": self.current_uses,
            "uses_remaining": self.uses_remaining,
            "is_expired": self.is_expired(),
            "created_at": _isoformat(self.created_at),
        }


@dataclass(frozen=True)
class CouponUsage:
    """Audit row written once per redeemed coupon."""

    id: int
    coupon_id: int
    user_id: int
    order_id: int | None
    used_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "used_at": _isoformat(self.used_at),
        }


# Orders


@dataclass(frozen=True)
class OrderItem:
    """Snapshot of a cart line at order time."""

    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
        }


@dataclass
class Order:
    """An order and its payment state.

    Status and payment status move independently: a successful payment only
    sets ``payment_status`` to Completed and leaves ``status`` at Pending.
    """

    id: int
    user_id: int
    items: list[OrderItem]
    total_price: Decimal
    order_date: datetime = field(default_factory=_utc_now)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: str | None = None
    payment_method_id: int | None = None
    shipping_address_id: int | None = None
    expires_at: datetime | None = None
    coupon_code: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or _utc_now())

    def minutes_remaining(self, now: datetime | None = None) -> float:
        if self.expires_at is None:
            return 0.0
        delta = self.expires_at - (now or _utc_now())
        return max(0.0, delta.total_seconds() / 60)

    def stock_lines(self) -> list[tuple[int, int]]:
        return [(item.product_id, item.quantity) for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [i.to_dict() for i in self.items],
            "total_price": _money(self.total_price),
            "order_date": _isoformat(self.order_date),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "transaction_id": self.transaction_id,
            "payment_method_id": self.payment_method_id,
            "shipping_address_id": self.shipping_address_id,
            "expires_at": _isoformat(self.expires_at),
            "coupon_code": self.coupon_code,
        }


# Payments


@dataclass
class PaymentMethod:
    """A stored payment instrument. Only the last four card digits are kept."""

    id: int
    user_id: int
    type: PaymentMethodType
    card_holder_name: str | None = None
    card_number_masked: str | None = None  # "**** **** **** 0000"
    card_number_last4: str | None = None
    expiry_month: str | None = None
    expiry_year: str | None = None
    paypal_email: str | None = None
    is_default: bool = False
    created_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "card_holder_name": self.card_holder_name,
            "card_number_masked": self.card_number_masked,
            "card_number_last4": self.card_number_last4,
            "expiry_month": self.expiry_month,
            "expiry_year": self.expiry_year,
            "paypal_email": self.paypal_email,
            "is_default": self.is_default,
            "created_at": _isoformat(self.created_at),
        }


@dataclass
class PaymentTransaction:
    """One payment attempt. Only refund accounting mutates it afterwards."""

    id: int
    transaction_id: str
    user_id: int
    amount: Decimal
    status: PaymentStatus
    payment_method_id: int
    processed_at: datetime
    response_message: str = ""
    order_id: int | None = None  # set only when the payment succeeded
    failure_reason: str | None = None
    refunded_amount: Decimal = Decimal("0.00")

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.refunded_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "amount": _money(self.amount),
            "status": self.status.value,
            "payment_method_id": self.payment_method_id,
            "processed_at": _isoformat(self.processed_at),
            "response_message": self.response_message,
            "failure_reason": self.failure_reason,
            "refunded_amount": _money(self.refunded_amount),
            "remaining_amount": _money(self.remaining_amount),
        }


@dataclass(frozen=True)
class Refund:
    """Append-only record of a refund attempt against a transaction."""

    id: int
    transaction_id: str
    amount: Decimal
    reason: str
    success: bool
    message: str
    processed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "amount": _money(self.amount),
            "reason": self.reason,
            "success": self.success,
            "message": self.message,
            "processed_at": _isoformat(self.processed_at),
        }


# Users


@dataclass
class User:
    """A registered account. ``password_hash`` is never serialized."""

    id: int
    username: str
    password_hash: str
    role: Role = Role.USER
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


@dataclass
class Address:
    id: int
    user_id: int
    address_type: AddressType
    street: str
    city: str
    state: str
    postal_code: str
    country: str
    is_default: bool = False

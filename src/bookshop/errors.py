"""Custom exceptions for bookshop."""


class BookshopError(Exception):
    """Base exception for all bookshop errors."""

    pass


class NotFoundError(BookshopError):
    """Raised when an entity is absent or not owned by the caller."""

    entity = "Entity"

    def __init__(self, entity_id: object, message: str | None = None):
        self.entity_id = entity_id
        super().__init__(message or f"{self.entity} not found: {entity_id}")


class ProductNotFoundError(NotFoundError):
    entity = "Product"


class CartNotFoundError(NotFoundError):
    """Raised when a user has no cart yet."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(user_id, "Cart not found.")


class CartItemNotFoundError(NotFoundError):
    """Raised when an item id is not in the user's cart."""

    def __init__(self, item_id: int):
        super().__init__(item_id, f"Item not found in cart: {item_id}")


class OrderNotFoundError(NotFoundError):
    entity = "Order"


class CouponNotFoundError(NotFoundError):
    """Raised when no coupon matches a code or id."""

    def __init__(self, code: object):
        super().__init__(code, f"Invalid coupon code: {code}")


class PaymentMethodNotFoundError(NotFoundError):
    entity = "Payment method"


class TransactionNotFoundError(NotFoundError):
    entity = "Transaction"


class AddressNotFoundError(NotFoundError):
    entity = "Shipping address"


class UserNotFoundError(NotFoundError):
    entity = "User"


class InvalidArgumentError(BookshopError):
    """Raised for non-positive quantities or amounts and malformed input."""

    pass


class DuplicateError(BookshopError):
    """Raised when a unique value (username, coupon code) already exists."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} already exists: {value}")


class InsufficientStockError(BookshopError):
    """Raised when a requested quantity exceeds live stock."""

    def __init__(self, product_id: int, name: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for '{name}'. Available: {available}, Requested: {requested}"
        )


class InvalidStateError(BookshopError):
    """Raised when an entity is in the wrong state for the requested operation."""

    pass


class CouponNotApplicableError(InvalidStateError):
    """Raised when a coupon is inactive, expired or used up."""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(reason)


class OrderStateError(InvalidStateError):
    """Raised when an order's status forbids the transition."""

    def __init__(self, order_id: int, reason: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id}: {reason}")


class OrderExpiredError(InvalidStateError):
    """Raised when paying for an order whose payment window has passed."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(
            "Order has expired. Stock has been restored. Please create a new order."
        )


class PaymentMethodInUseError(InvalidStateError):
    """Raised when deleting a payment method referenced by pending orders."""

    def __init__(self, method_id: int):
        self.method_id = method_id
        super().__init__(
            "Cannot delete payment method with pending orders. "
            "Please complete or cancel those orders first."
        )


class AuthenticationError(BookshopError):
    """Raised when the caller is not authenticated."""

    def __init__(self, message: str = "User not authenticated."):
        super().__init__(message)


class PermissionDeniedError(BookshopError):
    """Raised when the caller lacks the required role."""

    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(f"Requires role: {required_role}")

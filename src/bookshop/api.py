"""FastAPI REST API for the bookshop."""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__, config
from .auth import Identity, identity_from_token, token_expiration
from .errors import (
    AuthenticationError,
    BookshopError,
    DuplicateError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from .models import DiscountType, OrderStatus, PaymentMethodType, PaymentStatus, _isoformat
from .shop import Shop

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class ProductSchema(BaseModel):
    id: int
    name: str
    author: str
    genre: str
    isbn: str
    price: float
    description: str
    type: str
    stock_quantity: int
    low_stock_threshold: int
    stock_status: str


class ProductCreateRequest(BaseModel):
    name: str
    price: Decimal
    author: str = ""
    genre: str = ""
    isbn: str = ""
    description: str = ""
    stock_quantity: int = 0
    low_stock_threshold: int = 5


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    description: Optional[str] = None


class StockSetRequest(BaseModel):
    quantity: int


class StockAdjustRequest(BaseModel):
    amount: int


class CartItemSchema(BaseModel):
    id: int
    product_id: int
    product_name: str
    author: str
    unit_price: float
    quantity: int
    total_price: float


class CartSchema(BaseModel):
    id: int
    user_id: int
    items: list[CartItemSchema]
    applied_coupon_code: Optional[str] = None
    subtotal: float
    discount_amount: float
    total_price: float
    total_items: int
    last_updated: str


class CartItemAddRequest(BaseModel):
    product_id: int
    quantity: int = 1


class CartItemUpdateRequest(BaseModel):
    quantity: int


class ApplyCouponRequest(BaseModel):
    code: str


class CouponSchema(BaseModel):
    id: int
    code: str
    type: str
    value: float
    expiration_date: Optional[str] = None
    max_uses_total: Optional[int] = None
    is_active: bool
    current_uses: int
    uses_remaining: Optional[int] = None
    is_expired: bool
    created_at: str


class CouponCreateRequest(BaseModel):
    code: str
    type: DiscountType
    value: Decimal
    expiration_date: Optional[datetime] = None
    max_uses_total: Optional[int] = None
    is_active: bool = True


class CouponUpdateRequest(BaseModel):
    type: Optional[DiscountType] = None
    value: Optional[Decimal] = None
    expiration_date: Optional[datetime] = None
    max_uses_total: Optional[int] = None
    is_active: Optional[bool] = None


class OrderItemSchema(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_price: float


class OrderSchema(BaseModel):
    id: int
    user_id: int
    items: list[OrderItemSchema]
    total_price: float
    order_date: str
    status: str
    payment_status: str
    transaction_id: Optional[str] = None
    payment_method_id: Optional[int] = None
    shipping_address_id: Optional[int] = None
    expires_at: Optional[str] = None
    coupon_code: Optional[str] = None


class PendingOrderSchema(OrderSchema):
    minutes_remaining: float
    is_expired: bool


class OrderCreateRequest(BaseModel):
    shipping_address_id: Optional[int] = None


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class TransactionSchema(BaseModel):
    id: int
    transaction_id: str
    order_id: Optional[int] = None
    user_id: int
    amount: float
    status: str
    payment_method_id: int
    processed_at: str
    response_message: str
    failure_reason: Optional[str] = None
    refunded_amount: float
    remaining_amount: float


class PaymentRequest(BaseModel):
    order_id: int
    payment_method_id: int


class RefundRequest(BaseModel):
    transaction_id: str
    amount: Decimal
    reason: str = ""


class PaymentMethodSchema(BaseModel):
    id: int
    user_id: int
    type: str
    card_holder_name: Optional[str] = None
    card_number_masked: Optional[str] = None
    card_number_last4: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    paypal_email: Optional[str] = None
    is_default: bool
    created_at: str


class PaymentMethodCreateRequest(BaseModel):
    """Request body for storing a payment method.

    Card fields are required for card types, ``paypal_email`` for PayPal.
    The full card number and CVV are never stored.
    """

    type: PaymentMethodType
    card_holder_name: Optional[str] = None
    card_number: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    cvv: Optional[str] = None
    paypal_email: Optional[str] = None
    is_default: bool = False


class PaymentMethodUpdateRequest(BaseModel):
    card_holder_name: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    paypal_email: Optional[str] = None
    is_default: Optional[bool] = None


class UserSchema(BaseModel):
    id: int
    username: str
    role: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    phone_number: Optional[str] = None
    created_at: str
    updated_at: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    message: str
    token: str
    user: UserSchema


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Dependencies ---


_shop: Optional[Shop] = None


def get_shop() -> Shop:
    """Get the process-wide Shop, creating it on first use."""
    global _shop
    if _shop is None:
        _shop = Shop.create(seed=config.SEED_DEMO_DATA)
    return _shop


def _request_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(config.AUTH_COOKIE_NAME) or None


def optional_identity(request: Request) -> Optional[Identity]:
    """Identity from the bearer header or auth cookie, or None when absent."""
    token = _request_token(request)
    if token is None:
        return None
    return identity_from_token(token)


def current_identity(identity: Optional[Identity] = Depends(optional_identity)) -> Identity:
    if identity is None:
        raise AuthenticationError()
    return identity


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# --- FastAPI App ---


app = FastAPI(
    title="bookshop API",
    description="Bookstore backend: catalog, carts, coupons, orders and simulated payments",
    version=__version__,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404)},
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes; subclasses inherit their base's code
ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    InvalidArgumentError: 400,
    InsufficientStockError: 400,
    InvalidStateError: 400,
    DuplicateError: 400,
    AuthenticationError: 401,
    PermissionDeniedError: 403,
}


def _status_code_for(exc: BookshopError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(BookshopError)
async def bookshop_error_handler(request: Request, exc: BookshopError) -> JSONResponse:
    """Map BookshopError subclasses to appropriate HTTP responses."""
    status_code = _status_code_for(exc)
    if status_code >= 500:
        logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(shop: Shop = Depends(get_shop)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "product_count": len(shop.store.products),
        "order_count": len(shop.store.orders),
    }


# --- User Endpoints ---


@app.post("/api/users/register", response_model=UserSchema, status_code=201)
def register(request: RegisterRequest, shop: Shop = Depends(get_shop)):
    user = shop.users.register(
        request.username,
        request.password,
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
        phone_number=request.phone_number,
    )
    return user.to_dict()


@app.post("/api/users/login", response_model=LoginResponse)
def login(request: LoginRequest, response: Response, shop: Shop = Depends(get_shop)):
    """Check credentials, set the auth cookie and return the token."""
    user, token = shop.users.login(request.username, request.password)
    response.set_cookie(
        config.AUTH_COOKIE_NAME,
        token,
        httponly=True,
        samesite="lax",
        max_age=config.TOKEN_EXPIRE_MINUTES * 60,
    )
    return {"message": "Login successful", "token": token, "user": user.to_dict()}


@app.post("/api/users/logout")
def logout(response: Response):
    response.delete_cookie(config.AUTH_COOKIE_NAME)
    return {"message": "Logged out"}


@app.get("/api/session")
def session(request: Request, shop: Shop = Depends(get_shop)):
    """Describe the caller's session. Never fails on a missing or bad token."""
    token = _request_token(request)
    if token is None:
        return {"authenticated": False}
    try:
        identity = identity_from_token(token)
    except AuthenticationError:
        return {"authenticated": False}
    user = shop.store.users.get(identity.user_id)
    return {
        "authenticated": True,
        "user": user.to_dict() if user else None,
        "role": identity.role.value,
        "expires_at": _isoformat(token_expiration(token)),
    }


# --- Product Endpoints ---


@app.get("/api/products", response_model=list[ProductSchema])
def list_products(
    search: Optional[str] = Query(default=None),
    genre: Optional[str] = Query(default=None),
    author: Optional[str] = Query(default=None),
    min_price: Optional[Decimal] = Query(default=None),
    max_price: Optional[Decimal] = Query(default=None),
    sort_by: str = Query(default="name", description="name, author, price or genre"),
    sort_order: str = Query(default="asc", description="asc or desc"),
    shop: Shop = Depends(get_shop),
):
    products = shop.catalog.list_products(
        search=search,
        genre=genre,
        author=author,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return [p.to_dict() for p in products]


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: int, shop: Shop = Depends(get_shop)):
    return shop.catalog.get_product(product_id).to_dict()


@app.get("/api/products/{product_id}/availability")
def product_availability(
    product_id: int,
    quantity: int = Query(default=1),
    shop: Shop = Depends(get_shop),
):
    return shop.catalog.check_availability(product_id, quantity)


@app.post("/api/products", response_model=ProductSchema, status_code=201)
def create_product(
    request: ProductCreateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    product = shop.catalog.create_product(identity, **request.model_dump())
    return product.to_dict()


@app.put("/api/products/{product_id}", response_model=ProductSchema)
def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    product = shop.catalog.update_product(
        identity, product_id,
        name=request.name, price=request.price, description=request.description,
    )
    return product.to_dict()


@app.delete("/api/products/{product_id}", response_model=ProductSchema)
def delete_product(
    product_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.catalog.delete_product(identity, product_id).to_dict()


@app.put("/api/products/{product_id}/stock", response_model=ProductSchema)
def set_stock(
    product_id: int,
    request: StockSetRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.catalog.set_stock(identity, product_id, request.quantity).to_dict()


@app.post("/api/products/{product_id}/stock/increase", response_model=ProductSchema)
def increase_stock(
    product_id: int,
    request: StockAdjustRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.catalog.increase_stock(identity, product_id, request.amount).to_dict()


@app.post("/api/products/{product_id}/stock/decrease", response_model=ProductSchema)
def decrease_stock(
    product_id: int,
    request: StockAdjustRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.catalog.decrease_stock(identity, product_id, request.amount).to_dict()


# --- Cart Endpoints ---


@app.get("/api/cart", response_model=CartSchema)
def get_cart(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return shop.carts.get_or_create_cart(identity.user_id).to_dict()


@app.post("/api/cart/items", response_model=CartSchema)
def add_cart_item(
    request: CartItemAddRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    cart = shop.carts.add_item(identity.user_id, request.product_id, request.quantity)
    return cart.to_dict()


@app.put("/api/cart/items/{item_id}", response_model=CartSchema)
def update_cart_item(
    item_id: int,
    request: CartItemUpdateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    cart = shop.carts.update_item_quantity(identity.user_id, item_id, request.quantity)
    return cart.to_dict()


@app.delete("/api/cart/items/{item_id}", response_model=CartSchema)
def remove_cart_item(
    item_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.carts.remove_item(identity.user_id, item_id).to_dict()


@app.delete("/api/cart", response_model=CartSchema)
def clear_cart(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return shop.carts.clear(identity.user_id).to_dict()


@app.post("/api/cart/apply-coupon", response_model=CartSchema)
def apply_coupon(
    request: ApplyCouponRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.coupons.apply(identity.user_id, request.code).to_dict()


@app.delete("/api/cart/remove-coupon", response_model=CartSchema)
def remove_coupon(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return shop.coupons.remove(identity.user_id).to_dict()


@app.post("/api/cart/checkout")
def checkout(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    order = shop.orders.checkout(identity.user_id)
    return {"message": "Checkout successful", "order": order.to_dict()}


# --- Coupon Endpoints ---


@app.get("/api/coupons/validate/{code}")
def validate_coupon(code: str, shop: Shop = Depends(get_shop)):
    return shop.coupons.preview(code)


@app.get("/api/coupons/admin/coupons", response_model=list[CouponSchema])
def list_coupons(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return [c.to_dict() for c in shop.coupons.list_coupons(identity)]


@app.post("/api/coupons/admin/coupons", response_model=CouponSchema, status_code=201)
def create_coupon(
    request: CouponCreateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    coupon = shop.coupons.create_coupon(
        identity,
        request.code,
        request.type,
        request.value,
        expiration_date=_as_utc(request.expiration_date),
        max_uses_total=request.max_uses_total,
        is_active=request.is_active,
    )
    return coupon.to_dict()


@app.put("/api/coupons/admin/coupons/{coupon_id}", response_model=CouponSchema)
def update_coupon(
    coupon_id: int,
    request: CouponUpdateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    coupon = shop.coupons.update_coupon(
        identity,
        coupon_id,
        discount_type=request.type,
        value=request.value,
        expiration_date=_as_utc(request.expiration_date),
        max_uses_total=request.max_uses_total,
        is_active=request.is_active,
    )
    return coupon.to_dict()


@app.delete("/api/coupons/admin/coupons/{coupon_id}", response_model=CouponSchema)
def delete_coupon(
    coupon_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.coupons.delete_coupon(identity, coupon_id).to_dict()


@app.get("/api/coupons/admin/coupons/{coupon_id}/usage")
def coupon_usage(
    coupon_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.coupons.usage_report(identity, coupon_id)


# --- Order Endpoints ---


@app.post("/api/orders/create", response_model=OrderSchema, status_code=201)
def create_order(
    request: Optional[OrderCreateRequest] = None,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    address_id = request.shipping_address_id if request else None
    return shop.orders.create_order(identity.user_id, address_id).to_dict()


@app.get("/api/orders", response_model=list[OrderSchema])
def list_orders(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return [o.to_dict() for o in shop.orders.list_orders(identity)]


@app.get("/api/orders/my-orders", response_model=list[OrderSchema])
def my_orders(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return [o.to_dict() for o in shop.orders.my_orders(identity.user_id)]


@app.get("/api/orders/pending", response_model=list[PendingOrderSchema])
def pending_orders(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return shop.orders.pending_orders(identity.user_id)


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(
    order_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.orders.get_order(identity, order_id).to_dict()


@app.delete("/api/orders/{order_id}", response_model=OrderSchema)
def delete_order(
    order_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.orders.delete_order(identity, order_id).to_dict()


@app.delete("/api/orders/{order_id}/cancel", response_model=OrderSchema)
def cancel_order(
    order_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.orders.cancel_order(identity.user_id, order_id).to_dict()


@app.put("/api/orders/{order_id}/status", response_model=OrderSchema)
def update_order_status(
    order_id: int,
    request: OrderStatusUpdateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.orders.update_status(identity, order_id, request.status).to_dict()


# --- Payment Endpoints ---


@app.post("/api/payments/process")
def process_payment(
    request: PaymentRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    """
    Pay for an order.

    A declined payment answers 400 with the recorded transaction and
    ``can_retry`` set; the order stays pending.
    """
    # Sync handler: the store lock is taken on a worker thread, never on the event loop
    transaction = asyncio.run(shop.payments.process_payment(
        identity.user_id, request.order_id, request.payment_method_id
    ))
    order = shop.store.orders.get(request.order_id)
    if transaction.status != PaymentStatus.COMPLETED:
        return JSONResponse(
            status_code=400,
            content={
                "error": transaction.response_message,
                "can_retry": True,
                "transaction": transaction.to_dict(),
            },
        )
    return {
        "message": transaction.response_message,
        "order": order.to_dict() if order else None,
        "transaction": transaction.to_dict(),
    }


@app.get("/api/payments/transactions", response_model=list[TransactionSchema])
def my_transactions(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return [t.to_dict() for t in shop.payments.my_transactions(identity.user_id)]


@app.get("/api/payments/transactions/{transaction_id}", response_model=TransactionSchema)
def get_transaction(
    transaction_id: str,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.payments.get_transaction(identity, transaction_id).to_dict()


@app.post("/api/payments/refund")
def refund_payment(
    request: RefundRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    refund, transaction = asyncio.run(shop.payments.process_refund(
        identity, request.transaction_id, request.amount, request.reason
    ))
    if not refund.success:
        return JSONResponse(
            status_code=400,
            content={"error": refund.message, "refund": refund.to_dict()},
        )
    return {
        "message": refund.message,
        "refund": refund.to_dict(),
        "transaction": transaction.to_dict(),
    }


@app.get("/api/payments/admin/transactions", response_model=list[TransactionSchema])
def all_transactions(
    status: Optional[PaymentStatus] = Query(default=None),
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return [t.to_dict() for t in shop.payments.all_transactions(identity, status)]


@app.get("/api/payments/admin/statistics")
def payment_statistics(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return shop.payments.statistics(identity)


# --- Payment Method Endpoints ---


@app.get("/api/payment-methods", response_model=list[PaymentMethodSchema])
def list_payment_methods(identity: Identity = Depends(current_identity), shop: Shop = Depends(get_shop)):
    return [m.to_dict() for m in shop.payment_methods.list_methods(identity.user_id)]


@app.post("/api/payment-methods", response_model=PaymentMethodSchema, status_code=201)
def add_payment_method(
    request: PaymentMethodCreateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    method = shop.payment_methods.add_method(
        identity.user_id,
        request.type,
        card_holder_name=request.card_holder_name,
        card_number=request.card_number,
        expiry_month=request.expiry_month,
        expiry_year=request.expiry_year,
        cvv=request.cvv,
        paypal_email=request.paypal_email,
        is_default=request.is_default,
    )
    return method.to_dict()


@app.get("/api/payment-methods/{method_id}", response_model=PaymentMethodSchema)
def get_payment_method(
    method_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.payment_methods.get_method(identity.user_id, method_id).to_dict()


@app.put("/api/payment-methods/{method_id}", response_model=PaymentMethodSchema)
def update_payment_method(
    method_id: int,
    request: PaymentMethodUpdateRequest,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    method = shop.payment_methods.update_method(
        identity.user_id, method_id, **request.model_dump()
    )
    return method.to_dict()


@app.delete("/api/payment-methods/{method_id}", response_model=PaymentMethodSchema)
def delete_payment_method(
    method_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.payment_methods.delete_method(identity.user_id, method_id).to_dict()


@app.put("/api/payment-methods/{method_id}/set-default", response_model=PaymentMethodSchema)
def set_default_payment_method(
    method_id: int,
    identity: Identity = Depends(current_identity),
    shop: Shop = Depends(get_shop),
):
    return shop.payment_methods.set_default(identity.user_id, method_id).to_dict()

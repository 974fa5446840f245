"""Coupon validation, application and usage tracking."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from .auth import Identity, require_role
from .cart import CartManager
from .errors import (
    CouponNotApplicableError,
    CouponNotFoundError,
    DuplicateError,
    InvalidArgumentError,
    InvalidStateError,
)
from .models import Cart, Coupon, CouponUsage, DiscountType, Role, _isoformat, _utc_now, to_money
from .store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponValidation:
    is_valid: bool
    reason: str | None = None


def validate(coupon: Coupon, now: datetime | None = None) -> CouponValidation:
    """
    Check whether a coupon can be applied right now.

    Checks run in order and the first failure wins: inactive, expired,
    usage limit reached.
    """
    if not coupon.is_active:
        return CouponValidation(False, "Coupon is inactive")
    if coupon.is_expired(now):
        return CouponValidation(False, "Coupon has expired")
    if coupon.max_uses_total is not None and coupon.current_uses >= coupon.max_uses_total:
        return CouponValidation(False, "Coupon has reached maximum usage limit")
    return CouponValidation(True)


def _check_value(discount_type: DiscountType, value: Decimal) -> None:
    if value <= 0:
        raise InvalidArgumentError("Coupon value must be greater than zero.")
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise InvalidArgumentError("Percentage discount cannot exceed 100.")


class CouponEngine:
    """Applies coupons to carts and keeps usage counts."""

    def __init__(self, store: Store, carts: CartManager | None = None):
        self.store = store
        self.carts = carts or CartManager(store)

    def find_by_code(self, code: str) -> Coupon | None:
        wanted = code.strip().upper()
        return self.store.coupons.find(lambda c: c.code.upper() == wanted)

    def get_coupon(self, coupon_id: int) -> Coupon:
        coupon = self.store.coupons.get(coupon_id)
        if coupon is None:
            raise CouponNotFoundError(coupon_id)
        return coupon

    def apply(self, user_id: int, code: str) -> Cart:
        """
        Apply a coupon code to the user's cart, replacing any earlier one.

        Raises:
            InvalidArgumentError: If the code is blank or the cart is empty.
            CouponNotFoundError: If no coupon has this code.
            CouponNotApplicableError: If the coupon fails validation.
        """
        if not code or not code.strip():
            raise InvalidArgumentError("Coupon code is required.")

        with self.store.lock():
            cart = self.carts.get_or_create_cart(user_id)
            if not cart.items:
                raise InvalidArgumentError("Cannot apply coupon to empty cart.")

            coupon = self.find_by_code(code)
            if coupon is None:
                raise CouponNotFoundError(code)

            result = validate(coupon)
            if not result.is_valid:
                raise CouponNotApplicableError(coupon.code, result.reason)

            cart.applied_coupon_code = coupon.code
            cart.discount_amount = coupon.discount_for(cart.subtotal)
            cart.touch()

        logger.info("Coupon %s applied to cart of user %d", coupon.code, user_id)
        return cart

    def remove(self, user_id: int) -> Cart:
        """
        Remove the applied coupon from the user's cart.

        Raises:
            CartNotFoundError: If the user has no cart.
            InvalidStateError: If no coupon is applied.
        """
        with self.store.lock():
            cart = self.carts.get_cart(user_id)
            if not cart.applied_coupon_code:
                raise InvalidStateError("No coupon applied to cart.")
            cart.applied_coupon_code = None
            cart.discount_amount = Decimal("0.00")
            cart.touch()
        return cart

    def record_usage(self, coupon_code: str | None, user_id: int, order_id: int | None) -> bool:
        """
        Count one redemption of ``coupon_code`` for an order.

        A second call for the same order is ignored. Returns True when a
        usage row was written.
        """
        if not coupon_code:
            return False

        with self.store.lock():
            coupon = self.find_by_code(coupon_code)
            if coupon is None:
                logger.warning("Coupon %s vanished before usage was recorded", coupon_code)
                return False
            if order_id is not None and self.store.coupon_usages.find(
                lambda u: u.coupon_id == coupon.id and u.order_id == order_id
            ):
                return False

            coupon.current_uses += 1
            self.store.coupon_usages.insert(CouponUsage(
                id=0,
                coupon_id=coupon.id,
                user_id=user_id,
                order_id=order_id,
                used_at=_utc_now(),
            ))

        logger.info("Coupon %s used by user %d (order %s)", coupon.code, user_id, order_id)
        return True

    def preview(self, code: str) -> dict[str, Any]:
        """Describe a coupon for the public lookup endpoint."""
        coupon = self.find_by_code(code)
        if coupon is None:
            raise CouponNotFoundError(code)
        result = validate(coupon)
        return {
            "code": coupon.code,
            "type": coupon.type.value,
            "value": float(coupon.value),
            "is_valid": result.is_valid,
            "message": "Coupon is valid" if result.is_valid else result.reason,
            "expiration_date": _isoformat(coupon.expiration_date),
            "uses_remaining": coupon.uses_remaining,
        }

    # --- Admin ---

    def list_coupons(self, identity: Identity) -> list[Coupon]:
        require_role(identity, Role.ADMIN)
        return sorted(self.store.coupons.all(), key=lambda c: c.created_at, reverse=True)

    def create_coupon(
        self,
        identity: Identity,
        code: str,
        discount_type: DiscountType,
        value: Decimal,
        expiration_date: datetime | None = None,
        max_uses_total: int | None = None,
        is_active: bool = True,
    ) -> Coupon:
        """
        Create a coupon. Codes are stored upper-case.

        Raises:
            InvalidArgumentError: If the code is too short or the value is out of range.
            DuplicateError: If the code already exists.
        """
        require_role(identity, Role.ADMIN)
        if not code or len(code.strip()) < 3:
            raise InvalidArgumentError("Coupon code must be at least 3 characters long.")
        _check_value(discount_type, value)
        if max_uses_total is not None and max_uses_total <= 0:
            raise InvalidArgumentError("Maximum uses must be greater than zero.")

        with self.store.lock():
            if self.find_by_code(code):
                raise DuplicateError("Coupon code", code.strip().upper())
            coupon = self.store.coupons.insert(Coupon(
                id=0,
                code=code.strip().upper(),
                type=discount_type,
                value=to_money(value),
                expiration_date=expiration_date,
                max_uses_total=max_uses_total,
                is_active=is_active,
            ))

        logger.info("Created coupon %s", coupon.code)
        return coupon

    def update_coupon(
        self,
        identity: Identity,
        coupon_id: int,
        discount_type: DiscountType | None = None,
        value: Decimal | None = None,
        expiration_date: datetime | None = None,
        max_uses_total: int | None = None,
        is_active: bool | None = None,
    ) -> Coupon:
        """Update the given fields. The code itself cannot change."""
        require_role(identity, Role.ADMIN)
        with self.store.lock():
            coupon = self.get_coupon(coupon_id)
            new_type = discount_type or coupon.type
            new_value = value if value is not None else coupon.value
            _check_value(new_type, new_value)

            coupon.type = new_type
            coupon.value = to_money(new_value)
            if expiration_date is not None:
                coupon.expiration_date = expiration_date
            if max_uses_total is not None:
                coupon.max_uses_total = max_uses_total
            if is_active is not None:
                coupon.is_active = is_active
        return coupon

    def delete_coupon(self, identity: Identity, coupon_id: int) -> Coupon:
        require_role(identity, Role.ADMIN)
        with self.store.lock():
            coupon = self.get_coupon(coupon_id)
            for usage in self.store.coupon_usages.filter(lambda u: u.coupon_id == coupon_id):
                self.store.coupon_usages.delete(usage.id)
            self.store.coupons.delete(coupon_id)
        logger.info("Deleted coupon %s", coupon.code)
        return coupon

    def usage_report(self, identity: Identity, coupon_id: int) -> dict[str, Any]:
        require_role(identity, Role.ADMIN)
        coupon = self.get_coupon(coupon_id)
        usages = sorted(
            self.store.coupon_usages.filter(lambda u: u.coupon_id == coupon_id),
            key=lambda u: u.used_at,
            reverse=True,
        )
        return {
            "coupon": coupon.to_dict(),
            "total_uses": len(usages),
            "unique_users": len({u.user_id for u in usages}),
            "usages": [u.to_dict() for u in usages],
        }

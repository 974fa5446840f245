"""Stored payment instruments."""

import logging

from .errors import (
    InvalidArgumentError,
    PaymentMethodInUseError,
    PaymentMethodNotFoundError,
)
from .models import OrderStatus, PaymentMethod, PaymentMethodType, PaymentStatus
from .store import Store

logger = logging.getLogger(__name__)


def mask_card_number(last4: str) -> str:
    return f"**** **** **** {last4}"


def _validate_card(
    card_holder_name: str | None,
    card_number: str | None,
    expiry_month: str | None,
    expiry_year: str | None,
    cvv: str | None,
) -> str:
    """Check card fields and return the digits of the card number."""
    if not card_holder_name or not card_holder_name.strip():
        raise InvalidArgumentError("Card holder name is required.")
    digits = "".join(ch for ch in (card_number or "") if ch.isdigit())
    if len(digits) < 13:
        raise InvalidArgumentError("Valid card number is required.")
    if not expiry_month or not expiry_year:
        raise InvalidArgumentError("Expiry date is required.")
    if not cvv or len(cvv) < 3:
        raise InvalidArgumentError("Valid CVV is required.")
    return digits


class PaymentMethodService:
    """
    Per-user payment methods.

    Only the last four card digits and a masked number are stored; the full
    number and CVV are checked and then discarded. Each user has at most one
    default method.
    """

    def __init__(self, store: Store):
        self.store = store

    def list_methods(self, user_id: int) -> list[PaymentMethod]:
        methods = self.store.payment_methods.filter(lambda m: m.user_id == user_id)
        return sorted(methods, key=lambda m: (not m.is_default, m.created_at))

    def get_method(self, user_id: int, method_id: int) -> PaymentMethod:
        method = self.store.payment_methods.get(method_id)
        if method is None or method.user_id != user_id:
            raise PaymentMethodNotFoundError(method_id)
        return method

    def _set_default(self, user_id: int, method: PaymentMethod) -> None:
        for other in self.store.payment_methods.filter(lambda m: m.user_id == user_id):
            other.is_default = other.id == method.id

    def add_method(
        self,
        user_id: int,
        method_type: PaymentMethodType,
        card_holder_name: str | None = None,
        card_number: str | None = None,
        expiry_month: str | None = None,
        expiry_year: str | None = None,
        cvv: str | None = None,
        paypal_email: str | None = None,
        is_default: bool = False,
    ) -> PaymentMethod:
        """
        Store a new payment method. A user's first method becomes the default.

        Raises:
            InvalidArgumentError: If a required field is missing or malformed.
        """
        method = PaymentMethod(id=0, user_id=user_id, type=method_type)
        if method_type.is_card:
            digits = _validate_card(card_holder_name, card_number, expiry_month, expiry_year, cvv)
            method.card_holder_name = card_holder_name.strip()
            method.card_number_last4 = digits[-4:]
            method.card_number_masked = mask_card_number(method.card_number_last4)
            method.expiry_month = expiry_month
            method.expiry_year = expiry_year
        else:
            if not paypal_email or not paypal_email.strip():
                raise InvalidArgumentError("PayPal email is required.")
            method.paypal_email = paypal_email.strip()

        with self.store.lock():
            first = not self.store.payment_methods.find(lambda m: m.user_id == user_id)
            self.store.payment_methods.insert(method)
            if first or is_default:
                self._set_default(user_id, method)

        logger.info("User %d added %s payment method %d", user_id, method_type.value, method.id)
        return method

    def update_method(
        self,
        user_id: int,
        method_id: int,
        card_holder_name: str | None = None,
        expiry_month: str | None = None,
        expiry_year: str | None = None,
        paypal_email: str | None = None,
        is_default: bool | None = None,
    ) -> PaymentMethod:
        """Update editable fields. The card number can't be changed."""
        with self.store.lock():
            method = self.get_method(user_id, method_id)
            if method.type.is_card:
                if card_holder_name is not None:
                    if not card_holder_name.strip():
                        raise InvalidArgumentError("Card holder name is required.")
                    method.card_holder_name = card_holder_name.strip()
                if expiry_month is not None:
                    method.expiry_month = expiry_month
                if expiry_year is not None:
                    method.expiry_year = expiry_year
            elif paypal_email is not None:
                if not paypal_email.strip():
                    raise InvalidArgumentError("PayPal email is required.")
                method.paypal_email = paypal_email.strip()
            if is_default:
                self._set_default(user_id, method)
        return method

    def set_default(self, user_id: int, method_id: int) -> PaymentMethod:
        with self.store.lock():
            method = self.get_method(user_id, method_id)
            self._set_default(user_id, method)
        return method

    def delete_method(self, user_id: int, method_id: int) -> PaymentMethod:
        """
        Delete a payment method.

        Raises:
            PaymentMethodNotFoundError: If the method isn't the user's.
            PaymentMethodInUseError: If a pending order still references it.
        """
        with self.store.lock():
            method = self.get_method(user_id, method_id)
            in_use = self.store.orders.find(
                lambda o: o.payment_method_id == method_id
                and o.payment_status == PaymentStatus.PENDING
                and o.status != OrderStatus.CANCELLED
            )
            if in_use:
                raise PaymentMethodInUseError(method_id)

            self.store.payment_methods.delete(method_id)
            if method.is_default:
                successor = self.store.payment_methods.find(lambda m: m.user_id == user_id)
                if successor is not None:
                    successor.is_default = True

        logger.info("User %d deleted payment method %d", user_id, method_id)
        return method

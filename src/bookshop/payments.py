"""Simulated payment gateway, payment processing and refunds."""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from . import config
from .auth import Identity, require_role
from .errors import (
    InvalidArgumentError,
    InvalidStateError,
    OrderExpiredError,
    OrderStateError,
    PaymentMethodNotFoundError,
    TransactionNotFoundError,
)
from .models import (
    OrderStatus,
    PaymentMethod,
    PaymentMethodType,
    PaymentStatus,
    PaymentTransaction,
    Refund,
    Role,
    _generate_transaction_id,
    _isoformat,
    _utc_now,
    to_money,
)
from .orders import OrderService
from .store import Store

logger = logging.getLogger(__name__)

# Card last-4 digits -> (failure reason, message). Unlisted digits succeed.
CARD_OUTCOMES: dict[str, tuple[str, str]] = {
    "1111": ("INSUFFICIENT_FUNDS", "Payment failed: Insufficient funds"),
    "2222": ("NETWORK_TIMEOUT", "Payment failed: Network timeout"),
    "3333": ("FRAUD_DETECTED", "Payment failed: Fraud detection triggered"),
    "4444": ("CARD_EXPIRED", "Payment failed: Card expired"),
    "5555": ("INVALID_CVV", "Payment failed: Invalid CVV"),
    "6666": ("CARD_DECLINED", "Payment failed: Card declined by issuer"),
}

INVALID_AMOUNT = Decimal("666.00")
LUCKY_AMOUNT = Decimal("777.00")
AMOUNT_LIMIT = Decimal("10000.00")
UNLUCKY_REFUND = Decimal("13.00")
NO_REFUND_MARKER = "NOREFUND"

REVENUE_STATUSES = (
    PaymentStatus.COMPLETED,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
)


@dataclass
class PaymentResult:
    success: bool
    status: PaymentStatus
    transaction_id: str
    message: str
    failure_reason: str | None = None
    processed_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "transaction_id": self.transaction_id,
            "message": self.message,
            "failure_reason": self.failure_reason,
            "processed_at": _isoformat(self.processed_at),
        }


@dataclass
class RefundResult:
    success: bool
    transaction_id: str
    refunded_amount: Decimal
    message: str
    processed_at: datetime = field(default_factory=_utc_now)


class PaymentSimulator:
    """
    Deterministic stand-in for a payment gateway.

    The instrument decides first: a card by its last four digits (see
    ``CARD_OUTCOMES``), PayPal by whether the email contains "fail". Amount
    rules are applied afterwards and win over the instrument:

    - 666.00 fails with INVALID_AMOUNT
    - 777.00 always succeeds
    - 10000.00 and above fails with AMOUNT_LIMIT_EXCEEDED
    """

    def __init__(self, latency: float | None = None):
        self.latency = config.PAYMENT_LATENCY if latency is None else latency

    async def _delay(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def decide(self, method: PaymentMethod, amount: Decimal) -> PaymentResult:
        """Compute the outcome of charging ``amount`` to ``method``."""
        amount = to_money(amount)
        result = PaymentResult(
            success=True,
            status=PaymentStatus.COMPLETED,
            transaction_id=_generate_transaction_id(),
            message="Payment successful",
        )

        if method.type.is_card:
            outcome = CARD_OUTCOMES.get(method.card_number_last4 or "0000")
            if outcome is not None:
                result.failure_reason, result.message = outcome
        elif method.type == PaymentMethodType.PAYPAL:
            if "fail" in (method.paypal_email or ""):
                result.failure_reason = "PAYPAL_ACCOUNT_ISSUE"
                result.message = "Payment failed: PayPal account issue"
            else:
                result.message = "PayPal payment successful"

        if amount == INVALID_AMOUNT:
            result.failure_reason = "INVALID_AMOUNT"
            result.message = "Payment failed: Amount validation failed"
        elif amount == LUCKY_AMOUNT:
            result.failure_reason = None
            result.message = "Payment successful (lucky amount)"
        elif amount >= AMOUNT_LIMIT:
            result.failure_reason = "AMOUNT_LIMIT_EXCEEDED"
            result.message = "Payment failed: Amount exceeds limit"

        if result.failure_reason is not None:
            result.success = False
            result.status = PaymentStatus.FAILED
        return result

    async def process_payment(self, method: PaymentMethod, amount: Decimal) -> PaymentResult:
        await self._delay()
        return self.decide(method, amount)

    async def process_refund(self, transaction_id: str, amount: Decimal, reason: str = "") -> RefundResult:
        await self._delay()
        amount = to_money(amount)
        if NO_REFUND_MARKER in transaction_id:
            return RefundResult(False, transaction_id, Decimal("0.00"),
                                "Refund failed: Transaction not refundable")
        if amount == UNLUCKY_REFUND:
            return RefundResult(False, transaction_id, Decimal("0.00"),
                                "Refund failed: Unlucky amount")
        return RefundResult(True, transaction_id, amount, f"Refund successful: ${amount}")


class PaymentService:
    """
    Charges orders through the simulator and keeps transaction records.

    The simulator is awaited without holding the store lock; the order is
    re-checked once the result is back.
    """

    def __init__(
        self,
        store: Store,
        orders: OrderService | None = None,
        simulator: PaymentSimulator | None = None,
    ):
        self.store = store
        self.orders = orders or OrderService(store)
        self.simulator = simulator or PaymentSimulator()

    def _owned_method(self, user_id: int, method_id: int) -> PaymentMethod:
        method = self.store.payment_methods.get(method_id)
        if method is None or method.user_id != user_id:
            raise PaymentMethodNotFoundError(method_id)
        return method

    async def process_payment(self, user_id: int, order_id: int, payment_method_id: int) -> PaymentTransaction:
        """
        Pay for an order with a stored payment method.

        A declined payment is not an error: the failed transaction is
        returned, the order stays pending and the cart is untouched.

        Raises:
            OrderNotFoundError: If the order isn't the user's.
            OrderStateError: If the order is not awaiting payment.
            OrderExpiredError: If the payment window has passed. The order
                is cancelled and its stock restored first.
            PaymentMethodNotFoundError: If the method isn't the user's.
        """
        with self.store.lock():
            order = self.orders.get_owned_order(user_id, order_id)
            if order.payment_status != PaymentStatus.PENDING:
                raise OrderStateError(
                    order_id,
                    f"Order payment status is {order.payment_status.value}, cannot process payment",
                )
            if self.orders.expire_if_due(order):
                raise OrderExpiredError(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise OrderStateError(order_id, "Order has been cancelled")
            method = self._owned_method(user_id, payment_method_id)
            amount = order.total_price

        result = await self.simulator.process_payment(method, amount)

        with self.store.lock():
            still_payable = (
                order.payment_status == PaymentStatus.PENDING
                and order.status != OrderStatus.CANCELLED
            )
            transaction = self.store.transactions.insert(PaymentTransaction(
                id=0,
                transaction_id=result.transaction_id,
                user_id=user_id,
                amount=amount,
                status=result.status,
                payment_method_id=method.id,
                processed_at=result.processed_at,
                response_message=result.message,
                failure_reason=result.failure_reason,
                order_id=order.id if result.success else None,
            ))
            if not still_payable:
                raise OrderStateError(order_id, "Order changed while the payment was processing")

            # A declined attempt still ties the method to the pending order
            order.payment_method_id = method.id
            if result.success:
                order.payment_status = PaymentStatus.COMPLETED
                order.transaction_id = result.transaction_id
                self.orders.coupons.record_usage(order.coupon_code, user_id, order.id)
                self.orders.carts.clear_if_exists(user_id)

        if result.success:
            logger.info("Payment %s completed for order %d (%s)",
                        result.transaction_id, order_id, amount)
        else:
            logger.warning("Payment %s failed for order %d: %s",
                           result.transaction_id, order_id, result.failure_reason)
        return transaction

    def get_transaction(self, identity: Identity, transaction_id: str) -> PaymentTransaction:
        """Look up a transaction by its gateway id. Admins see every user's."""
        transaction = self.store.transactions.find(lambda t: t.transaction_id == transaction_id)
        if transaction is None or (
            transaction.user_id != identity.user_id and not identity.is_admin
        ):
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def my_transactions(self, user_id: int) -> list[PaymentTransaction]:
        transactions = self.store.transactions.filter(lambda t: t.user_id == user_id)
        return sorted(transactions, key=lambda t: t.processed_at, reverse=True)

    async def process_refund(
        self,
        identity: Identity,
        transaction_id: str,
        amount: Decimal,
        reason: str = "",
    ) -> tuple[Refund, PaymentTransaction]:
        """
        Refund part or all of a completed payment.

        Every attempt is recorded as a ``Refund`` row. A refund that brings
        the remaining amount to zero also cancels the order and gives its
        stock back.

        Raises:
            PermissionDeniedError: If the caller is not an admin.
            TransactionNotFoundError: If no transaction has this id.
            InvalidStateError: If the transaction was not completed.
            InvalidArgumentError: If the amount is not within the refundable balance.
        """
        require_role(identity, Role.ADMIN)
        amount = to_money(amount)

        with self.store.lock():
            transaction = self.get_transaction(identity, transaction_id)
            self._check_refundable(transaction, amount)

        result = await self.simulator.process_refund(transaction_id, amount, reason)

        with self.store.lock():
            self._check_refundable(transaction, amount)
            refund = self.store.refunds.insert(Refund(
                id=0,
                transaction_id=transaction_id,
                amount=amount,
                reason=reason,
                success=result.success,
                message=result.message,
                processed_at=result.processed_at,
            ))
            if result.success:
                self._apply_refund(transaction, result.refunded_amount)

        if result.success:
            logger.info("Refunded %s of %s (%s)", amount, transaction_id, transaction.status.value)
        else:
            logger.warning("Refund of %s on %s rejected: %s", amount, transaction_id, result.message)
        return refund, transaction

    @staticmethod
    def _check_refundable(transaction: PaymentTransaction, amount: Decimal) -> None:
        if transaction.status not in (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED):
            raise InvalidStateError("Can only refund completed transactions")
        if amount <= 0 or amount > transaction.remaining_amount:
            raise InvalidArgumentError("Invalid refund amount")

    def _apply_refund(self, transaction: PaymentTransaction, amount: Decimal) -> None:
        transaction.refunded_amount += amount
        fully_refunded = transaction.remaining_amount <= 0
        transaction.status = (
            PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PARTIALLY_REFUNDED
        )

        order = self.store.orders.get(transaction.order_id) if transaction.order_id else None
        if order is None or order.transaction_id != transaction.transaction_id:
            return
        order.payment_status = transaction.status
        if fully_refunded and order.status != OrderStatus.CANCELLED:
            self.orders.catalog.restore(order.stock_lines())
            order.status = OrderStatus.CANCELLED
            logger.info("Order %d cancelled after full refund", order.id)

    def all_transactions(self, identity: Identity, status: PaymentStatus | None = None) -> list[PaymentTransaction]:
        require_role(identity, Role.ADMIN)
        transactions = self.store.transactions.all()
        if status is not None:
            transactions = [t for t in transactions if t.status == status]
        return sorted(transactions, key=lambda t: t.processed_at, reverse=True)

    def statistics(self, identity: Identity) -> dict[str, Any]:
        require_role(identity, Role.ADMIN)
        transactions = self.store.transactions.all()
        successful = [t for t in transactions if t.status in REVENUE_STATUSES]
        failed = [t for t in transactions if t.status == PaymentStatus.FAILED]
        refunds = self.store.refunds.all()

        revenue = sum((t.amount - t.refunded_amount for t in successful), Decimal("0.00"))
        refunded = sum((t.refunded_amount for t in transactions), Decimal("0.00"))
        success_rate = (
            round(len(successful) / len(transactions) * 100, 2) if transactions else 0.0
        )
        reasons = Counter(t.failure_reason for t in failed if t.failure_reason)

        return {
            "total_transactions": len(transactions),
            "successful_transactions": len(successful),
            "failed_transactions": len(failed),
            "total_revenue": float(to_money(revenue)),
            "total_refunded": float(to_money(refunded)),
            "success_rate": success_rate,
            "failure_reasons": [
                {"reason": reason, "count": count} for reason, count in reasons.most_common()
            ],
            "refund_attempts": len(refunds),
            "failed_refunds": sum(1 for r in refunds if not r.success),
        }

"""Tests for the payment simulator and PaymentService."""

import asyncio
import re
from datetime import timedelta
from decimal import Decimal

import pytest

from bookshop.errors import (
    InvalidArgumentError,
    InvalidStateError,
    OrderExpiredError,
    OrderStateError,
    PaymentMethodNotFoundError,
    PermissionDeniedError,
    TransactionNotFoundError,
)
from bookshop.models import (
    OrderStatus,
    PaymentMethod,
    PaymentMethodType,
    PaymentStatus,
    _utc_now,
)
from bookshop.payments import CARD_OUTCOMES, PaymentSimulator

USER = 2
GOOD_CARD = 3  # last4 0000
POOR_CARD = 4  # last4 1111


def card(last4):
    return PaymentMethod(id=1, user_id=1, type=PaymentMethodType.CREDIT_CARD, card_number_last4=last4)


def paypal(email):
    return PaymentMethod(id=1, user_id=1, type=PaymentMethodType.PAYPAL, paypal_email=email)


@pytest.fixture
def simulator():
    return PaymentSimulator(latency=0)


class TestSimulator:
    @pytest.mark.parametrize(
        "last4, reason",
        [
            ("1111", "INSUFFICIENT_FUNDS"),
            ("2222", "NETWORK_TIMEOUT"),
            ("3333", "FRAUD_DETECTED"),
            ("4444", "CARD_EXPIRED"),
            ("5555", "INVALID_CVV"),
            ("6666", "CARD_DECLINED"),
        ],
    )
    def test_card_failures(self, simulator, last4, reason):
        result = simulator.decide(card(last4), Decimal("20.00"))

        assert result.success is False
        assert result.status == PaymentStatus.FAILED
        assert result.failure_reason == reason

    @pytest.mark.parametrize("last4", ["0000", "4242", None])
    def test_card_successes(self, simulator, last4):
        result = simulator.decide(card(last4), Decimal("20.00"))
        assert result.success is True
        assert result.status == PaymentStatus.COMPLETED

    def test_paypal(self, simulator):
        assert simulator.decide(paypal("me@example.com"), Decimal("5")).success
        failed = simulator.decide(paypal("fail@example.com"), Decimal("5"))
        assert failed.failure_reason == "PAYPAL_ACCOUNT_ISSUE"

    def test_insufficient_funds_at_any_ordinary_amount(self, simulator):
        for amount in ("0.01", "13.00", "665.99", "778.00", "9999.99"):
            result = simulator.decide(card("1111"), Decimal(amount))
            assert result.failure_reason == "INSUFFICIENT_FUNDS"

    def test_amount_rules_override_instrument(self, simulator):
        assert simulator.decide(card("1111"), Decimal("777.00")).success is True
        assert simulator.decide(card("0000"), Decimal("666.00")).failure_reason == "INVALID_AMOUNT"
        assert simulator.decide(card("1111"), Decimal("666")).failure_reason == "INVALID_AMOUNT"
        assert (
            simulator.decide(card("0000"), Decimal("10000.00")).failure_reason
            == "AMOUNT_LIMIT_EXCEEDED"
        )
        assert simulator.decide(paypal("fail@x.com"), Decimal("777")).message == (
            "Payment successful (lucky amount)"
        )

    def test_fresh_transaction_ids(self, simulator):
        ids = {simulator.decide(card("0000"), Decimal("1")).transaction_id for _ in range(20)}
        assert len(ids) == 20
        assert all(re.fullmatch(r"TXN_[0-9A-F]{8}", i) for i in ids)

    def test_refund_rules(self, simulator):
        ok = asyncio.run(simulator.process_refund("TXN_ABCDEF12", Decimal("5.00")))
        assert ok.success and ok.refunded_amount == Decimal("5.00")

        blocked = asyncio.run(simulator.process_refund("TXN_NOREFUND", Decimal("5.00")))
        assert not blocked.success

        unlucky = asyncio.run(simulator.process_refund("TXN_ABCDEF12", Decimal("13.00")))
        assert not unlucky.success
        assert unlucky.message == "Refund failed: Unlucky amount"


def pay(shop, order_id, method_id, user_id=USER):
    return asyncio.run(shop.payments.process_payment(user_id, order_id, method_id))


@pytest.fixture
def order(shop):
    shop.carts.add_item(USER, 1, 2)
    shop.coupons.apply(USER, "WELCOME5")
    return shop.orders.create_order(USER)


class TestProcessPayment:
    def test_success(self, shop, order):
        transaction = pay(shop, order.id, GOOD_CARD)

        assert transaction.status == PaymentStatus.COMPLETED
        assert transaction.amount == Decimal("16.98")
        assert transaction.order_id == order.id
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.transaction_id == transaction.transaction_id
        assert order.payment_method_id == GOOD_CARD
        # Status is not advanced by payment
        assert order.status == OrderStatus.PENDING
        assert shop.carts.get_cart(USER).items == []
        assert shop.coupons.find_by_code("WELCOME5").current_uses == 1

    def test_failure_is_recorded_and_retryable(self, shop, order):
        transaction = pay(shop, order.id, POOR_CARD)

        assert transaction.status == PaymentStatus.FAILED
        assert transaction.failure_reason == "INSUFFICIENT_FUNDS"
        assert order.payment_status == PaymentStatus.PENDING
        assert len(shop.carts.get_cart(USER).items) == 1
        assert shop.coupons.find_by_code("WELCOME5").current_uses == 0

        retry = pay(shop, order.id, GOOD_CARD)
        assert retry.status == PaymentStatus.COMPLETED
        assert len(shop.store.transactions) == 2
        assert shop.coupons.find_by_code("WELCOME5").current_uses == 1

    def test_paid_order_cannot_be_paid_again(self, shop, order):
        pay(shop, order.id, GOOD_CARD)

        with pytest.raises(OrderStateError):
            pay(shop, order.id, GOOD_CARD)
        assert shop.coupons.find_by_code("WELCOME5").current_uses == 1

    def test_expired_order_is_cancelled_and_restocked(self, shop, order):
        order.expires_at = _utc_now() - timedelta(minutes=1)

        with pytest.raises(OrderExpiredError):
            pay(shop, order.id, GOOD_CARD)

        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.FAILED
        assert shop.catalog.get_product(1).stock_quantity == 15
        assert len(shop.store.transactions) == 0

    def test_cancelled_order(self, shop, order):
        shop.orders.cancel_order(USER, order.id)
        with pytest.raises(OrderStateError):
            pay(shop, order.id, GOOD_CARD)

    def test_foreign_payment_method(self, shop, order):
        with pytest.raises(PaymentMethodNotFoundError):
            pay(shop, order.id, 6)  # belongs to user 3

    def test_lucky_amount_beats_poor_card(self, shop, add_product):
        book = add_product("777.00")
        shop.carts.add_item(USER, book.id, 1)
        order = shop.orders.create_order(USER)

        assert pay(shop, order.id, POOR_CARD).status == PaymentStatus.COMPLETED


@pytest.fixture
def paid(shop, order):
    return pay(shop, order.id, GOOD_CARD)


def refund(shop, identity, transaction_id, amount, reason="test"):
    return asyncio.run(
        shop.payments.process_refund(identity, transaction_id, Decimal(amount), reason)
    )


class TestRefunds:
    def test_partial_then_full(self, shop, admin, order, paid):
        row, transaction = refund(shop, admin, paid.transaction_id, "6.98")
        assert row.success
        assert transaction.status == PaymentStatus.PARTIALLY_REFUNDED
        assert transaction.remaining_amount == Decimal("10.00")
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED
        assert shop.catalog.get_product(1).stock_quantity == 13

        row, transaction = refund(shop, admin, paid.transaction_id, "10.00")
        assert transaction.status == PaymentStatus.REFUNDED
        assert transaction.refunded_amount == Decimal("16.98")
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.CANCELLED
        assert shop.catalog.get_product(1).stock_quantity == 15
        assert len(shop.store.refunds) == 2

    def test_over_refund(self, shop, admin, paid):
        with pytest.raises(InvalidArgumentError):
            refund(shop, admin, paid.transaction_id, "16.99")

    def test_fully_refunded_cannot_be_refunded_again(self, shop, admin, paid):
        refund(shop, admin, paid.transaction_id, "16.98")
        with pytest.raises(InvalidStateError):
            refund(shop, admin, paid.transaction_id, "1.00")

    def test_unlucky_amount_is_recorded_not_applied(self, shop, admin, paid):
        row, transaction = refund(shop, admin, paid.transaction_id, "13.00")

        assert row.success is False
        assert transaction.refunded_amount == Decimal("0.00")
        assert transaction.status == PaymentStatus.COMPLETED
        assert len(shop.store.refunds) == 1

    def test_failed_transaction_not_refundable(self, shop, admin, order):
        failed = pay(shop, order.id, POOR_CARD)
        with pytest.raises(InvalidStateError):
            refund(shop, admin, failed.transaction_id, "1.00")

    def test_requires_admin(self, shop, customer, paid):
        with pytest.raises(PermissionDeniedError):
            refund(shop, customer, paid.transaction_id, "1.00")

    def test_unknown_transaction(self, shop, admin):
        with pytest.raises(TransactionNotFoundError):
            refund(shop, admin, "TXN_00000000", "1.00")

    def test_refund_after_order_deleted_leaves_new_orders_alone(self, shop, admin, order, paid):
        shop.orders.delete_order(admin, order.id)
        shop.carts.add_item(3, 2, 1)
        other = shop.orders.create_order(3)
        stock = shop.catalog.get_product(2).stock_quantity

        refund(shop, admin, paid.transaction_id, "16.98")

        assert other.id != order.id
        assert other.status == OrderStatus.PENDING
        assert other.payment_status == PaymentStatus.PENDING
        assert shop.catalog.get_product(2).stock_quantity == stock


class TestStatistics:
    def test_counts_and_revenue(self, shop, admin, order):
        pay(shop, order.id, POOR_CARD)
        paid = pay(shop, order.id, GOOD_CARD)
        refund(shop, admin, paid.transaction_id, "1.98")

        stats = shop.payments.statistics(admin)

        assert stats["total_transactions"] == 2
        assert stats["successful_transactions"] == 1
        assert stats["failed_transactions"] == 1
        assert stats["total_revenue"] == 15.0
        assert stats["total_refunded"] == 1.98
        assert stats["success_rate"] == 50.0
        assert stats["failure_reasons"] == [{"reason": "INSUFFICIENT_FUNDS", "count": 1}]

    def test_filter_by_status(self, shop, admin, order):
        pay(shop, order.id, POOR_CARD)
        pay(shop, order.id, GOOD_CARD)

        failed = shop.payments.all_transactions(admin, PaymentStatus.FAILED)
        assert [t.failure_reason for t in failed] == ["INSUFFICIENT_FUNDS"]


class TestSeededMethods:
    def test_every_simulator_outcome_is_reachable(self, shop):
        methods = shop.store.payment_methods.all()
        last4s = {m.card_number_last4 for m in methods}

        assert set(CARD_OUTCOMES) <= last4s
        assert any("fail" in (m.paypal_email or "").lower() for m in methods)

from decimal import Decimal

import pytest

from domain.common.exceptions import (
    DomainValidationException,
    InvalidPaymentTransitionException,
    OrderStatusTransitionException,
    PaymentInvariantError,
)
from domain.order.entity import Order, OrderStatus
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentRefund,
    PaymentStatus,
    PaymentType,
    RefundStatus,
)
from domain.settlement.entity import SettlementStatus, VendorSettlement


def _standalone(**kwargs) -> Payment:
    defaults = dict(id=1, order_id=10, amount=Decimal("100.00"), currency="usd", method=PaymentMethod.STRIPE, vendor_id=5)
    defaults.update(kwargs)
    return Payment(**defaults)


def test_mark_as_paid_resolves_amounts_once():
    payment = _standalone()
    payment.mark_as_paid("ch_1")
    assert payment.status == PaymentStatus.PAID
    assert payment.processed_at is not None
    assert payment.vendor_amount == Decimal("100.00")
    assert payment.platform_fee == Decimal("0.00")

    processed_at = payment.processed_at
    payment.mark_as_paid("ch_other")
    assert payment.transaction_id == "ch_1"
    assert payment.processed_at == processed_at


def test_split_amounts_are_memoized():
    payment = _standalone(is_split_payment=True, commission_rate=Decimal("0.10"))
    assert payment.calculate_vendor_amount() == Decimal("90.00")
    payment.resolve_amounts(Decimal("90.00"), Decimal("10.00"), Decimal("0.10"))
    # a different rate no longer changes the stored split
    assert payment.calculate_vendor_amount(Decimal("0.50")) == Decimal("90.00")
    assert payment.calculate_platform_fee(Decimal("0.50")) == Decimal("10.00")


def test_resolve_amounts_must_reconcile():
    payment = _standalone()
    with pytest.raises(PaymentInvariantError):
        payment.resolve_amounts(Decimal("90.00"), Decimal("5.00"))


def test_failed_payment_never_becomes_paid():
    payment = _standalone()
    payment.mark_failed("declined")
    payment.mark_failed("declined again")
    assert payment.failure_reason == "declined"
    with pytest.raises(InvalidPaymentTransitionException):
        payment.mark_as_paid("ch_1")


def test_paid_payment_cannot_fail():
    payment = _standalone()
    payment.mark_as_paid("ch_1")
    with pytest.raises(InvalidPaymentTransitionException):
        payment.mark_failed("late failure")


def test_settlement_pending_counts_as_captured():
    payment = _standalone()
    payment.mark_as_paid("ch_1")
    payment.mark_settlement_pending()
    assert payment.is_captured
    assert payment.is_settleable
    payment.mark_as_paid("ch_2")
    assert payment.status == PaymentStatus.SETTLEMENT_PENDING


def test_amount_must_be_positive():
    with pytest.raises(DomainValidationException):
        _standalone(amount=Decimal("0"))


def test_parent_graph_rules():
    parent = Payment.new_parent(10, Decimal("100"), "USD", PaymentMethod.STRIPE, vendor_count=2)
    assert parent.status == PaymentStatus.SPLIT_PENDING
    assert parent.amount == Decimal("100.00")
    with pytest.raises(PaymentInvariantError):
        parent.create_child(vendor_id=1, amount=Decimal("60"))

    parent.id = 7
    child = parent.create_child(vendor_id=1, amount=Decimal("60"))
    assert child.parent_payment_id == 7
    assert child.payment_type == PaymentType.CHILD
    assert child.method == PaymentMethod.STRIPE

    details = parent.refresh_split_details([child])
    assert details["child_count"] == 1
    assert details["total_amount"] == "60.00"

    with pytest.raises(PaymentInvariantError):
        parent.resolve_amounts(Decimal("85"), Decimal("15"))
    with pytest.raises(PaymentInvariantError):
        parent.mark_settlement_pending()


def test_only_parent_creates_children():
    with pytest.raises(PaymentInvariantError, match="non-parent"):
        _standalone().create_child(vendor_id=1, amount=Decimal("10"))


def test_parent_cannot_carry_vendor():
    with pytest.raises(PaymentInvariantError):
        Payment(
            id=1, order_id=1, amount=Decimal("10"), currency="USD", method=PaymentMethod.STRIPE,
            payment_type=PaymentType.PARENT, vendor_id=3,
        )


def test_refund_status_derivation():
    payment = _standalone()
    payment.mark_as_paid("ch_1")
    payment.apply_refund(Decimal("40.00"))
    assert payment.status == PaymentStatus.PARTIALLY_REFUNDED
    assert payment.refundable_balance(Decimal("40.00")) == Decimal("60.00")

    assert payment.restore_after_refund_failure(Decimal("0.00")) is True
    assert payment.status == PaymentStatus.PAID

    payment.apply_refund(Decimal("100.00"))
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.restore_after_refund_failure(Decimal("0.00")) is False
    assert payment.status == PaymentStatus.REFUNDED


def test_refund_entity_transitions():
    refund = PaymentRefund(id=1, payment_id=1, amount=Decimal("5.00"), currency="usd")
    assert refund.is_pending
    refund.mark_processed("re_1", {"id": "re_1"})
    assert refund.status == RefundStatus.PROCESSED
    with pytest.raises(DomainValidationException):
        refund.mark_failed("too late")
    with pytest.raises(DomainValidationException):
        PaymentRefund(id=None, payment_id=1, amount=Decimal("0"), currency="USD")


def test_settlement_retry_only_from_failed():
    settlement = VendorSettlement(
        id=1, vendor_id=1, payment_id=1, amount=Decimal("85.00"), currency="USD", method="bank_transfer"
    )
    with pytest.raises(DomainValidationException):
        settlement.reset_for_retry()
    settlement.mark_failed("payout timeout")
    settlement.reset_for_retry("stripe")
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.method == "stripe"
    settlement.mark_processed("po_1")
    assert settlement.processed_at is not None


def test_order_totals_and_transitions():
    with pytest.raises(DomainValidationException):
        Order(id=None, user_id=1, subtotal=Decimal("10"), tax=Decimal("1"), total=Decimal("12"))

    order = Order(id=None, user_id=1, subtotal=Decimal("10"), tax=Decimal("1"), total=Decimal("11"))
    assert order.order_number.startswith("ORD-")
    order.mark_processing()
    order.mark_shipped()
    with pytest.raises(OrderStatusTransitionException):
        order.cancel()
    assert order.status == OrderStatus.SHIPPED


def test_authorized_payment_can_be_captured():
    payment = _standalone()
    assert payment.is_standalone_payment()
    assert not payment.is_parent_payment() and not payment.is_child_payment()

    payment.mark_authorized("auth_1")
    assert payment.status == PaymentStatus.AUTHORIZED
    payment.mark_as_paid()
    assert payment.status == PaymentStatus.PAID
    assert payment.transaction_id == "auth_1"

    with pytest.raises(InvalidPaymentTransitionException):
        payment.mark_authorized()

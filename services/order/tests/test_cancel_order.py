from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import NOW, ORDER_NUMBER, details, order_lookup

from order_management.events import OrderCancellationFailed, OrderCancelled
from order_management.models import OrderStatus
from order_management.pipelines import cancel_order
from order_management.pipelines.cancel_order import (
    CancelledOrder,
    InvalidCancelRequest,
    UnvalidatedCancelRequest,
    refund_percentage,
    refund_rate,
)

REASON = "Found a better price elsewhere"


def run(order_details, order_number=ORDER_NUMBER, reason=REASON):
    request = UnvalidatedCancelRequest(order_number=order_number, reason=reason)
    return cancel_order.execute(request, order_lookup(ORDER_NUMBER, order_details), NOW)


class TestValidation:
    def test_collects_number_and_reason_errors(self):
        result = run(details(), order_number="bad", reason="short")
        assert isinstance(result, InvalidCancelRequest)
        assert result.reasons == (
            "Invalid order number format: bad. Expected format: ORD-YYYYMMDD-XXXXXXXX",
            "Cancellation reason must be at least 10 characters long",
        )
        assert result.reason == "short"

    def test_reason_too_short(self):
        result = run(details(), reason="short")
        assert result.reasons == ("Cancellation reason must be at least 10 characters long",)


class TestVerifyOrder:
    def test_not_found(self):
        result = run(None)
        assert result.reasons == (f"Order {ORDER_NUMBER} not found or does not exist",)

    def test_shipped_order_cannot_be_cancelled(self):
        result = run(details(status=OrderStatus.SHIPPED))
        assert isinstance(result, InvalidCancelRequest)
        assert "cannot be cancelled" in result.reasons[0]
        assert "Current status: Shipped" in result.reasons[0]


class TestRefund:
    @pytest.mark.parametrize(
        "age, rate",
        [
            (timedelta(hours=10), Decimal("1.00")),
            (timedelta(hours=24), Decimal("1.00")),
            (timedelta(hours=30), Decimal("0.80")),
            (timedelta(hours=48), Decimal("0.80")),
            (timedelta(days=5), Decimal("0.50")),
            (timedelta(days=7), Decimal("0.50")),
            (timedelta(days=10), Decimal("0")),
        ],
    )
    def test_refund_tiers(self, age, rate):
        assert refund_rate(age) == rate
        result = run(details(total="200.00", age=age))
        assert isinstance(result, CancelledOrder)
        assert result.refund_amount == Decimal("200.00") * rate

    def test_just_over_a_tier_boundary(self):
        assert refund_rate(timedelta(hours=24, seconds=1)) == Decimal("0.80")

    def test_percentage_of_zero_total(self):
        assert refund_percentage(Decimal("0"), Decimal("0")) == Decimal("0")


class TestOutcome:
    def test_cancelled_event(self):
        outcome = cancel_order.final_state_to_outcome(run(details(age=timedelta(hours=30))))
        assert isinstance(outcome, OrderCancelled)
        assert outcome.original_total == Decimal("100.00")
        assert outcome.refund_amount == Decimal("80.00")
        assert outcome.refund_percentage == Decimal("80")
        assert outcome.cancelled_date == NOW
        assert "- Refund Amount: $80.00 (80% of total)" in outcome.summary
        assert f"- Cancellation Reason: {REASON}" in outcome.summary

    def test_failed_event(self):
        outcome = cancel_order.final_state_to_outcome(run(None))
        assert isinstance(outcome, OrderCancellationFailed)

    def test_non_terminal_state(self):
        request = UnvalidatedCancelRequest(order_number=ORDER_NUMBER, reason=REASON)
        assert cancel_order.final_state_to_outcome(request).reasons == (
            "Unexpected unvalidated state",
        )

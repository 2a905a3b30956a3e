from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import NOW, ORDER_NUMBER, details, order_lookup

from order_management.events import OrderModified
from order_management.models import OrderStatus, UnvalidatedOrderLine
from order_management.pipelines import modify_order
from order_management.pipelines.modify_order import (
    InvalidModifyRequest,
    ModifiedOrder,
    UnvalidatedModifyRequest,
)


def make_request(*lines: tuple[str, str], order_number: str = ORDER_NUMBER):
    return UnvalidatedModifyRequest(
        order_number=order_number,
        new_order_lines=tuple(UnvalidatedOrderLine(product_code=c, quantity=q) for c, q in lines),
    )


def run(request, order_details, catalog_checks):
    return modify_order.execute(
        request, order_lookup(ORDER_NUMBER, order_details), *catalog_checks, NOW
    )


class TestValidateRequest:
    def test_collects_number_and_line_errors(self, catalog_checks):
        result = run(make_request(("bad", "1"), order_number="X"), details(), catalog_checks)
        assert isinstance(result, InvalidModifyRequest)
        assert result.order_number == "X"
        assert result.reasons == (
            "Invalid order number format: X. Expected format: ORD-YYYYMMDD-XXXXXXXX",
            "Invalid product code: bad",
        )

    def test_empty_lines(self, catalog_checks):
        result = run(make_request(), details(), catalog_checks)
        assert result.reasons == (
            "At least one product must be specified for order modification",
        )


class TestEligibility:
    def test_order_not_found(self, catalog_checks):
        result = run(make_request(("AB1234", "1")), None, catalog_checks)
        assert result.reasons == (f"Order {ORDER_NUMBER} not found or does not exist",)

    def test_status_must_be_confirmed(self, catalog_checks):
        result = run(
            make_request(("AB1234", "1")), details(status=OrderStatus.SHIPPED), catalog_checks
        )
        assert result.reasons == (
            f"Order {ORDER_NUMBER} cannot be modified. Current status: Shipped. "
            "Only confirmed orders can be modified.",
        )

    def test_window_expired(self, catalog_checks):
        result = run(make_request(("AB1234", "1")), details(age=timedelta(hours=30)), catalog_checks)
        assert isinstance(result, InvalidModifyRequest)
        assert result.reasons[0].endswith("This order was placed 30.0 hours ago.")

    def test_exactly_24_hours_is_allowed(self, catalog_checks):
        result = run(make_request(("AB1234", "1")), details(age=timedelta(hours=24)), catalog_checks)
        assert isinstance(result, ModifiedOrder)


class TestProductsAndStock:
    def test_reports_every_failing_line(self, catalog_checks):
        result = run(
            make_request(("ZZ9999", "1"), ("CD5678", "5"), ("AB1234", "1")),
            details(),
            catalog_checks,
        )
        assert result.reasons == (
            "Product not found: ZZ9999",
            "Insufficient stock for product CD5678 (Mouse). Requested: 5",
        )


class TestPriceDifference:
    @pytest.mark.parametrize(
        "quantity, difference, wording",
        [
            ("12", Decimal("20.00"), "Additional Charge: $20.00"),
            ("8", Decimal("-20.00"), "Refund Amount: $20.00"),
            ("10", Decimal("0"), "Price Difference: None (same total as original order)"),
        ],
    )
    def test_difference_against_original_total(self, catalog_checks, quantity, difference, wording):
        result = run(make_request(("AB1234", quantity)), details(total="100.00"), catalog_checks)
        assert isinstance(result, ModifiedOrder)
        assert result.price_difference == difference
        assert result.modified_date == NOW

        outcome = modify_order.final_state_to_outcome(result)
        assert isinstance(outcome, OrderModified)
        assert outcome.price_difference == difference
        assert wording in outcome.summary
        assert "Modified on: 2024-01-15 12:00" in outcome.summary

    def test_lines_are_replaced_not_merged(self, catalog_checks):
        result = run(make_request(("CD5678", "1")), details(), catalog_checks)
        assert [line.product_code.value for line in result.new_order_lines] == ["CD5678"]
        assert result.new_total_price == Decimal("20.00")


class TestFinalStateToOutcome:
    def test_non_terminal_state(self):
        outcome = modify_order.final_state_to_outcome(make_request(("AB1234", "1")))
        assert outcome.reasons == ("Unexpected unvalidated state",)

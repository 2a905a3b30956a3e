from decimal import Decimal

import pytest
from pydantic import ValidationError

from order_management.models import (
    Address,
    CancellationReason,
    OrderNumber,
    ProductCode,
    Quantity,
    ReturnReason,
    ReturnReasonType,
    classify_return_reason,
)


class TestProductCode:
    @pytest.mark.parametrize("raw", ["AB1234", "ZZ0000"])
    def test_valid(self, raw):
        ok, code, reason = ProductCode.try_parse(raw)
        assert ok
        assert code.value == raw
        assert reason is None

    @pytest.mark.parametrize("raw", ["ab1234", "A1234", "AB123", "AB12345", "", "1234AB"])
    def test_invalid_names_the_code(self, raw):
        ok, code, reason = ProductCode.try_parse(raw)
        assert not ok
        assert code is None
        assert reason == f"Invalid product code: {raw}"

    def test_constructor_raises(self):
        with pytest.raises(ValidationError):
            ProductCode(value="bad")

    def test_value_equality(self):
        assert ProductCode(value="AB1234") == ProductCode(value="AB1234")


class TestQuantity:
    def test_decimal_allowed(self):
        ok, qty, _ = Quantity.try_parse(" 1.5 ")
        assert ok
        assert qty.value == Decimal("1.5")

    @pytest.mark.parametrize("raw", ["0", "-1", "abc", "", None])
    def test_invalid(self, raw):
        ok, qty, reason = Quantity.try_parse(raw)
        assert not ok
        assert qty is None
        assert reason.startswith("Invalid quantity")

    def test_str_drops_trailing_zeros(self):
        assert str(Quantity(value=Decimal("2.000"))) == "2"
        assert str(Quantity(value=Decimal("10"))) == "10"


class TestOrderNumber:
    def test_valid(self):
        ok, number, _ = OrderNumber.try_parse("ORD-20240101-ABCDEF12")
        assert ok
        assert str(number) == "ORD-20240101-ABCDEF12"

    @pytest.mark.parametrize("raw", ["ORDER-1", "", "   ", "ORD-1", "XRD-20240101-ABCDEF12", None])
    def test_invalid(self, raw):
        ok, number, reason = OrderNumber.try_parse(raw)
        assert not ok
        assert number is None
        assert reason == (
            f"Invalid order number format: {raw}. Expected format: ORD-YYYYMMDD-XXXXXXXX"
        )


class TestReasons:
    def test_cancellation_reason_minimum_length(self):
        assert CancellationReason.try_parse("Changed plans")[0]
        ok, _, reason = CancellationReason.try_parse("too short")
        assert not ok
        assert reason == "Cancellation reason must be at least 10 characters long"

    def test_blank_reason_rejected(self):
        assert not CancellationReason.try_parse(" " * 12)[0]
        assert not ReturnReason.try_parse(None)[0]

    def test_return_reason_message(self):
        _, _, reason = ReturnReason.try_parse("bad")
        assert reason == "Return reason must be at least 10 characters long"


class TestClassifyReturnReason:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("The screen arrived damaged", ReturnReasonType.DEFECTIVE),
            ("Device is BROKEN on arrival", ReturnReasonType.DEFECTIVE),
            ("You sent the wrong colour", ReturnReasonType.WRONG_ITEM),
            ("Item was not as described online", ReturnReasonType.NOT_AS_DESCRIBED),
            ("Looks different from the photo", ReturnReasonType.NOT_AS_DESCRIBED),
            ("I changed my mind about this", ReturnReasonType.CHANGED_MIND),
        ],
    )
    def test_keywords(self, text, expected):
        assert classify_return_reason(text) == expected

    def test_defective_takes_priority(self):
        assert classify_return_reason("wrong item and it is broken") == ReturnReasonType.DEFECTIVE

    def test_reason_type_property(self):
        reason = ReturnReason(value="It is defective, sadly")
        assert reason.reason_type == ReturnReasonType.DEFECTIVE
        assert reason.reason_type.description == "Defective Product"


class TestAddress:
    def test_valid(self):
        ok, address, _ = Address.try_parse("1 Main St", "Springfield", "12345", "US")
        assert ok
        assert str(address) == "1 Main St, Springfield, 12345, US"

    @pytest.mark.parametrize(
        "fields",
        [
            ("", "Springfield", "12345", "US"),
            ("1 Main St", "  ", "12345", "US"),
            ("1 Main St", "Springfield", None, "US"),
            ("1 Main St", "Springfield", "12345", ""),
        ],
    )
    def test_missing_field(self, fields):
        ok, address, reason = Address.try_parse(*fields)
        assert not ok
        assert address is None
        assert reason == "Invalid shipping address: all fields must be provided"

"""
返品パイプライン

状態遷移:
    Unvalidated → Validated → OrderVerified → ReturnApproved → Processed

返金額は注文合計から返送料を引いた額 (明細単位の按分はしない)。
返送料は「気が変わった」場合のみ顧客負担。
"""

from datetime import datetime, timedelta
from decimal import Decimal

from ..events import OrderReturnFailed, OrderReturned, ReturnItemSummary
from ..models import (
    DomainModel,
    OrderDetails,
    OrderNumber,
    OrderStatus,
    ReturnReason,
    ReturnReasonType,
    UnvalidatedReturnItem,
    ValidatedReturnItem,
)
from .common import (
    CheckOrderExists,
    ReferenceGenerator,
    format_money,
    generate_reference,
    validate_line,
)

RETURN_WINDOW = timedelta(days=14)
STANDARD_SHIPPING_FEE = Decimal("15.00")
RETURN_NUMBER_PREFIX = "RET"


# ── 状態 ─────────────────────────────────────────


class UnvalidatedReturnRequest(DomainModel):
    order_number: str | None
    return_reason: str | None
    return_items: tuple[UnvalidatedReturnItem, ...]


class InvalidReturnRequest(DomainModel):
    order_number: str | None
    reasons: tuple[str, ...]


class ValidatedReturnRequest(DomainModel):
    order_number: OrderNumber
    return_reason: ReturnReason
    return_items: tuple[ValidatedReturnItem, ...]


class OrderVerifiedReturnRequest(DomainModel):
    order_number: OrderNumber
    return_reason: ReturnReason
    return_items: tuple[ValidatedReturnItem, ...]
    original_order_details: OrderDetails


class ReturnApprovedRequest(DomainModel):
    order_number: OrderNumber
    return_reason: ReturnReason
    return_items: tuple[ValidatedReturnItem, ...]
    original_order_details: OrderDetails
    refund_amount: Decimal
    shipping_fee: Decimal


class ProcessedReturn(DomainModel):
    order_number: OrderNumber
    return_reason: ReturnReason
    return_items: tuple[ValidatedReturnItem, ...]
    refund_amount: Decimal
    shipping_fee: Decimal
    processed_date: datetime
    return_number: str


ReturnOrderState = (
    UnvalidatedReturnRequest
    | InvalidReturnRequest
    | ValidatedReturnRequest
    | OrderVerifiedReturnRequest
    | ReturnApprovedRequest
    | ProcessedReturn
)


# ── ステージ ─────────────────────────────────────


def validate_request(request: ReturnOrderState) -> ReturnOrderState:
    match request:
        case UnvalidatedReturnRequest():
            errors: list[str] = []
            validated_items: list[ValidatedReturnItem] = []

            number_ok, order_number, reason = OrderNumber.try_parse(request.order_number)
            if not number_ok:
                errors.append(reason)
            reason_ok, return_reason, reason = ReturnReason.try_parse(request.return_reason)
            if not reason_ok:
                errors.append(reason)

            if not request.return_items:
                errors.append("At least one item must be specified for return")
            for item in request.return_items:
                validated = validate_line(item.product_code, item.quantity, errors)
                if validated is not None:
                    validated_items.append(
                        ValidatedReturnItem(
                            product_code=validated.product_code, quantity=validated.quantity
                        )
                    )

            if errors:
                return InvalidReturnRequest(
                    order_number=request.order_number, reasons=tuple(errors)
                )
            return ValidatedReturnRequest(
                order_number=order_number,
                return_reason=return_reason,
                return_items=tuple(validated_items),
            )
        case _:
            return request


def verify_order_can_be_returned(
    request: ReturnOrderState, check_order_exists: CheckOrderExists, now: datetime
) -> ReturnOrderState:
    """注文の存在・状態・返品受付期間 (14 日) を確認する。"""
    match request:
        case ValidatedReturnRequest():
            number = request.order_number
            exists, details = check_order_exists(number)
            if not exists or details is None:
                return _invalid(number, f"Order {number} not found or does not exist")
            if details.status != OrderStatus.CONFIRMED:
                return _invalid(
                    number,
                    f"Order {number} cannot be returned. "
                    f"Current status: {details.status.value}. "
                    "Only confirmed orders can be returned.",
                )
            elapsed = now - details.order_date
            if elapsed > RETURN_WINDOW:
                days = elapsed.days
                return _invalid(
                    number,
                    "Return window expired. "
                    "Orders can only be returned within 14 days of placement. "
                    f"This order was placed {days} days ago.",
                )
            return OrderVerifiedReturnRequest(
                order_number=number,
                return_reason=request.return_reason,
                return_items=request.return_items,
                original_order_details=details,
            )
        case _:
            return request


def shipping_fee_for(reason_type: ReturnReasonType) -> Decimal:
    if reason_type == ReturnReasonType.CHANGED_MIND:
        return STANDARD_SHIPPING_FEE
    return Decimal("0")


def calculate_refund(request: ReturnOrderState) -> ReturnOrderState:
    """
    返金額 = 注文合計 - 返送料。
    合計が返送料より小さい注文を「気が変わった」で返品すると返金額は負になる (下限は設けない)。
    """
    match request:
        case OrderVerifiedReturnRequest():
            fee = shipping_fee_for(request.return_reason.reason_type)
            refund = request.original_order_details.total_amount - fee
            return ReturnApprovedRequest(
                order_number=request.order_number,
                return_reason=request.return_reason,
                return_items=request.return_items,
                original_order_details=request.original_order_details,
                refund_amount=refund,
                shipping_fee=fee,
            )
        case _:
            return request


def process_return(
    request: ReturnOrderState,
    now: datetime,
    generate_number: ReferenceGenerator = generate_reference,
) -> ReturnOrderState:
    match request:
        case ReturnApprovedRequest():
            return ProcessedReturn(
                order_number=request.order_number,
                return_reason=request.return_reason,
                return_items=request.return_items,
                refund_amount=request.refund_amount,
                shipping_fee=request.shipping_fee,
                processed_date=now,
                return_number=generate_number(RETURN_NUMBER_PREFIX, now),
            )
        case _:
            return request


def execute(
    request: UnvalidatedReturnRequest,
    check_order_exists: CheckOrderExists,
    now: datetime,
    generate_number: ReferenceGenerator = generate_reference,
) -> ReturnOrderState:
    state: ReturnOrderState = request
    # 1. 入力検証 (注文番号・理由・返品明細)
    state = validate_request(state)
    # 2. 注文の存在・状態・受付期間
    state = verify_order_can_be_returned(state, check_order_exists, now)
    # 3. 返送料と返金額
    state = calculate_refund(state)
    # 4. 返品番号を採番して確定
    state = process_return(state, now, generate_number)
    return state


def _invalid(order_number: OrderNumber, reason: str) -> InvalidReturnRequest:
    return InvalidReturnRequest(order_number=order_number.value, reasons=(reason,))


# ── 結果への投影 ─────────────────────────────────


def final_state_to_outcome(request: ReturnOrderState) -> OrderReturned | OrderReturnFailed:
    match request:
        case ProcessedReturn():
            return OrderReturned(
                order_number=request.order_number.value,
                return_number=request.return_number,
                refund_amount=request.refund_amount,
                shipping_fee=request.shipping_fee,
                reason_type=request.return_reason.reason_type,
                items=tuple(ReturnItemSummary.from_item(item) for item in request.return_items),
                processed_date=request.processed_date,
                summary=build_summary(request),
            )
        case InvalidReturnRequest():
            return OrderReturnFailed(reasons=request.reasons)
        case UnvalidatedReturnRequest():
            return OrderReturnFailed(reasons=("Unexpected unvalidated state",))
        case ValidatedReturnRequest():
            return OrderReturnFailed(reasons=("Unexpected validated state",))
        case OrderVerifiedReturnRequest():
            return OrderReturnFailed(reasons=("Unexpected order verified state",))
        case ReturnApprovedRequest():
            return OrderReturnFailed(reasons=("Unexpected return approved state",))
    raise TypeError(f"Unknown return-order state: {type(request).__name__}")


def build_summary(processed: ProcessedReturn) -> str:
    lines = [
        "Return request has been successfully processed.",
        "",
        f"Order Number: {processed.order_number}",
        f"Return Number: {processed.return_number}",
        "",
        "Return Details:",
        f"  Return Reason: {processed.return_reason}",
        f"  Reason Category: {processed.return_reason.reason_type.description}",
        "",
        "Returned Items:",
    ]
    lines += [
        f"  - Product: {item.product_code}, Quantity: {item.quantity}"
        for item in processed.return_items
    ]
    lines.append("")
    if processed.shipping_fee > 0:
        lines.append(f"Shipping Fee: {format_money(processed.shipping_fee)}")
    else:
        lines.append("Shipping Fee: None (company responsibility)")
    lines += [
        f"Refund Amount: {format_money(processed.refund_amount)}",
        "",
        "The refund will be processed within 5-7 business days.",
        "You will receive return instructions via email.",
    ]
    return "\n".join(lines)

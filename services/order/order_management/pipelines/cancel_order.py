"""
注文キャンセルパイプライン

状態遷移:
    Unvalidated → Validated → OrderVerified → RefundCalculated → Cancelled

返金率は注文からの経過時間で段階的に下がる (境界は含む):
    24 時間以内 100% / 48 時間以内 80% / 7 日以内 50% / それ以降 0%
"""

from datetime import datetime, timedelta
from decimal import Decimal

from ..events import OrderCancellationFailed, OrderCancelled
from ..models import (
    CancellationReason,
    DomainModel,
    OrderDetails,
    OrderNumber,
    OrderStatus,
)
from .common import CheckOrderExists, format_money, format_timestamp

REFUND_TIERS: tuple[tuple[timedelta, Decimal], ...] = (
    (timedelta(hours=24), Decimal("1.00")),
    (timedelta(hours=48), Decimal("0.80")),
    (timedelta(days=7), Decimal("0.50")),
)
NO_REFUND = Decimal("0")


# ── 状態 ─────────────────────────────────────────


class UnvalidatedCancelRequest(DomainModel):
    order_number: str | None
    reason: str | None


class InvalidCancelRequest(DomainModel):
    order_number: str | None
    reason: str | None
    reasons: tuple[str, ...]


class ValidatedCancelRequest(DomainModel):
    order_number: OrderNumber
    reason: CancellationReason


class OrderVerifiedCancelRequest(DomainModel):
    order_number: OrderNumber
    reason: CancellationReason
    order_details: OrderDetails


class RefundCalculatedCancelRequest(DomainModel):
    order_number: OrderNumber
    reason: CancellationReason
    order_details: OrderDetails
    refund_amount: Decimal


class CancelledOrder(DomainModel):
    order_number: OrderNumber
    reason: CancellationReason
    order_details: OrderDetails
    refund_amount: Decimal
    cancelled_date: datetime


CancelOrderState = (
    UnvalidatedCancelRequest
    | InvalidCancelRequest
    | ValidatedCancelRequest
    | OrderVerifiedCancelRequest
    | RefundCalculatedCancelRequest
    | CancelledOrder
)


# ── ステージ ─────────────────────────────────────


def validate_request(request: CancelOrderState) -> CancelOrderState:
    """注文番号 → 理由の順に検証し、エラーはすべて集める。"""
    match request:
        case UnvalidatedCancelRequest():
            errors: list[str] = []
            number_ok, order_number, reason = OrderNumber.try_parse(request.order_number)
            if not number_ok:
                errors.append(reason)
            reason_ok, cancellation_reason, reason = CancellationReason.try_parse(request.reason)
            if not reason_ok:
                errors.append(reason)
            if errors:
                return InvalidCancelRequest(
                    order_number=request.order_number,
                    reason=request.reason,
                    reasons=tuple(errors),
                )
            return ValidatedCancelRequest(order_number=order_number, reason=cancellation_reason)
        case _:
            return request


def verify_order_exists(
    request: CancelOrderState, check_order_exists: CheckOrderExists
) -> CancelOrderState:
    """注文が存在し、Confirmed 状態であることを確認する。"""
    match request:
        case ValidatedCancelRequest():
            number = request.order_number
            exists, details = check_order_exists(number)
            if not exists or details is None:
                return _invalid(
                    number.value,
                    request.reason.value,
                    f"Order {number} not found or does not exist",
                )
            if details.status != OrderStatus.CONFIRMED:
                return _invalid(
                    number.value,
                    request.reason.value,
                    f"Order {number} cannot be cancelled. "
                    f"Current status: {details.status.value}. "
                    "Only confirmed orders can be cancelled.",
                )
            return OrderVerifiedCancelRequest(
                order_number=number, reason=request.reason, order_details=details
            )
        case _:
            return request


def refund_rate(elapsed: timedelta) -> Decimal:
    for limit, rate in REFUND_TIERS:
        if elapsed <= limit:
            return rate
    return NO_REFUND


def calculate_refund(request: CancelOrderState, now: datetime) -> CancelOrderState:
    match request:
        case OrderVerifiedCancelRequest():
            rate = refund_rate(now - request.order_details.order_date)
            return RefundCalculatedCancelRequest(
                order_number=request.order_number,
                reason=request.reason,
                order_details=request.order_details,
                refund_amount=request.order_details.total_amount * rate,
            )
        case _:
            return request


def process_cancellation(request: CancelOrderState, now: datetime) -> CancelOrderState:
    match request:
        case RefundCalculatedCancelRequest():
            return CancelledOrder(
                order_number=request.order_number,
                reason=request.reason,
                order_details=request.order_details,
                refund_amount=request.refund_amount,
                cancelled_date=now,
            )
        case _:
            return request


def execute(
    request: UnvalidatedCancelRequest,
    check_order_exists: CheckOrderExists,
    now: datetime,
) -> CancelOrderState:
    state: CancelOrderState = request
    # 1. 入力検証 (注文番号の形式・理由の長さ)
    state = validate_request(state)
    # 2. 注文の存在と状態
    state = verify_order_exists(state, check_order_exists)
    # 3. 経過時間に応じた返金額
    state = calculate_refund(state, now)
    # 4. キャンセルの確定
    state = process_cancellation(state, now)
    return state


def _invalid(order_number: str | None, reason: str | None, error: str) -> InvalidCancelRequest:
    return InvalidCancelRequest(order_number=order_number, reason=reason, reasons=(error,))


# ── 結果への投影 ─────────────────────────────────


def refund_percentage(refund_amount: Decimal, total_amount: Decimal) -> Decimal:
    if total_amount == 0:
        return Decimal("0")
    return refund_amount / total_amount * 100


def final_state_to_outcome(
    request: CancelOrderState,
) -> OrderCancelled | OrderCancellationFailed:
    match request:
        case CancelledOrder():
            return OrderCancelled(
                order_number=request.order_number.value,
                original_total=request.order_details.total_amount,
                refund_amount=request.refund_amount,
                refund_percentage=refund_percentage(
                    request.refund_amount, request.order_details.total_amount
                ),
                cancelled_date=request.cancelled_date,
                summary=build_summary(request),
            )
        case InvalidCancelRequest():
            return OrderCancellationFailed(reasons=request.reasons)
        case UnvalidatedCancelRequest():
            return OrderCancellationFailed(reasons=("Unexpected unvalidated state",))
        case ValidatedCancelRequest():
            return OrderCancellationFailed(reasons=("Unexpected validated state",))
        case OrderVerifiedCancelRequest():
            return OrderCancellationFailed(reasons=("Unexpected order verified state",))
        case RefundCalculatedCancelRequest():
            return OrderCancellationFailed(reasons=("Unexpected refund calculated state",))
    raise TypeError(f"Unknown cancel-order state: {type(request).__name__}")


def build_summary(order: CancelledOrder) -> str:
    total = order.order_details.total_amount
    percentage = refund_percentage(order.refund_amount, total)
    return "\n".join([
        f"Order {order.order_number} has been successfully cancelled.",
        "Cancellation Details:",
        f"- Order Number: {order.order_number}",
        f"- Original Order Total: {format_money(total)}",
        f"- Refund Amount: {format_money(order.refund_amount)} ({percentage:.0f}% of total)",
        f"- Cancellation Reason: {order.reason}",
        f"- Cancelled Date: {format_timestamp(order.cancelled_date)}",
        "The refund will be processed within 3-5 business days.",
    ])

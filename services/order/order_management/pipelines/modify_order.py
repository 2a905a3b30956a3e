"""
注文変更パイプライン

状態遷移:
    Unvalidated → Validated → OrderVerified → ProductsVerified
        → PriceRecalculated → Modified

変更は明細の全置き換え (差分マージではない)。
変更できるのは Confirmed 状態かつ注文から 24 時間以内の注文のみ。
"""

from datetime import datetime, timedelta
from decimal import Decimal

from ..events import LineSummary, OrderModificationFailed, OrderModified
from ..models import (
    DomainModel,
    OrderDetails,
    OrderNumber,
    OrderStatus,
    PricedOrderLine,
    ProductVerifiedOrderLine,
    UnvalidatedOrderLine,
    ValidatedOrderLine,
)
from .common import (
    CheckInventory,
    CheckOrderExists,
    CheckProductCatalog,
    format_money,
    format_timestamp,
    validate_line,
)

MODIFICATION_WINDOW = timedelta(hours=24)


# ── 状態 ─────────────────────────────────────────


class UnvalidatedModifyRequest(DomainModel):
    order_number: str | None
    new_order_lines: tuple[UnvalidatedOrderLine, ...]


class InvalidModifyRequest(DomainModel):
    order_number: str | None
    reasons: tuple[str, ...]


class ValidatedModifyRequest(DomainModel):
    order_number: OrderNumber
    new_order_lines: tuple[ValidatedOrderLine, ...]


class OrderVerifiedModifyRequest(DomainModel):
    order_number: OrderNumber
    new_order_lines: tuple[ValidatedOrderLine, ...]
    original_order_details: OrderDetails


class ProductsVerifiedModifyRequest(DomainModel):
    order_number: OrderNumber
    new_order_lines: tuple[ProductVerifiedOrderLine, ...]
    original_order_details: OrderDetails


class PriceRecalculatedModifyRequest(DomainModel):
    order_number: OrderNumber
    new_order_lines: tuple[PricedOrderLine, ...]
    original_order_details: OrderDetails
    new_total_price: Decimal
    price_difference: Decimal


class ModifiedOrder(DomainModel):
    order_number: OrderNumber
    new_order_lines: tuple[PricedOrderLine, ...]
    new_total_price: Decimal
    price_difference: Decimal
    modified_date: datetime


ModifyOrderState = (
    UnvalidatedModifyRequest
    | InvalidModifyRequest
    | ValidatedModifyRequest
    | OrderVerifiedModifyRequest
    | ProductsVerifiedModifyRequest
    | PriceRecalculatedModifyRequest
    | ModifiedOrder
)


# ── ステージ ─────────────────────────────────────


def validate_request(request: ModifyOrderState) -> ModifyOrderState:
    match request:
        case UnvalidatedModifyRequest():
            errors: list[str] = []
            validated_lines: list[ValidatedOrderLine] = []

            number_ok, order_number, reason = OrderNumber.try_parse(request.order_number)
            if not number_ok:
                errors.append(reason)

            if not request.new_order_lines:
                errors.append("At least one product must be specified for order modification")
            for line in request.new_order_lines:
                validated = validate_line(line.product_code, line.quantity, errors)
                if validated is not None:
                    validated_lines.append(validated)

            if errors:
                return InvalidModifyRequest(
                    order_number=request.order_number, reasons=tuple(errors)
                )
            return ValidatedModifyRequest(
                order_number=order_number, new_order_lines=tuple(validated_lines)
            )
        case _:
            return request


def verify_order_can_be_modified(
    request: ModifyOrderState, check_order_exists: CheckOrderExists, now: datetime
) -> ModifyOrderState:
    """注文の存在・状態・変更可能期間 (24 時間) を確認する。"""
    match request:
        case ValidatedModifyRequest():
            number = request.order_number
            exists, details = check_order_exists(number)
            if not exists or details is None:
                return _invalid(number, f"Order {number} not found or does not exist")
            if details.status != OrderStatus.CONFIRMED:
                return _invalid(
                    number,
                    f"Order {number} cannot be modified. "
                    f"Current status: {details.status.value}. "
                    "Only confirmed orders can be modified.",
                )
            elapsed = now - details.order_date
            if elapsed > MODIFICATION_WINDOW:
                hours = elapsed.total_seconds() / 3600
                return _invalid(
                    number,
                    f"Order {number} cannot be modified. "
                    "Orders can only be modified within 24 hours of placement. "
                    f"This order was placed {hours:.1f} hours ago.",
                )
            return OrderVerifiedModifyRequest(
                order_number=number,
                new_order_lines=request.new_order_lines,
                original_order_details=details,
            )
        case _:
            return request


def verify_new_products_and_stock(
    request: ModifyOrderState,
    check_product_catalog: CheckProductCatalog,
    check_inventory: CheckInventory,
) -> ModifyOrderState:
    """新しい明細ごとにカタログと在庫をまとめて確認する。"""
    match request:
        case OrderVerifiedModifyRequest():
            errors: list[str] = []
            verified_lines: list[ProductVerifiedOrderLine] = []
            for line in request.new_order_lines:
                exists, product_name, price = check_product_catalog(line.product_code)
                if not exists:
                    errors.append(f"Product not found: {line.product_code}")
                    continue
                if not check_inventory(line.product_code, line.quantity):
                    errors.append(
                        f"Insufficient stock for product {line.product_code} ({product_name}). "
                        f"Requested: {line.quantity}"
                    )
                    continue
                verified_lines.append(
                    ProductVerifiedOrderLine(
                        product_code=line.product_code,
                        quantity=line.quantity,
                        product_name=product_name,
                        price=price,
                    )
                )
            if errors:
                return InvalidModifyRequest(
                    order_number=request.order_number.value, reasons=tuple(errors)
                )
            return ProductsVerifiedModifyRequest(
                order_number=request.order_number,
                new_order_lines=tuple(verified_lines),
                original_order_details=request.original_order_details,
            )
        case _:
            return request


def recalculate_price(request: ModifyOrderState) -> ModifyOrderState:
    """新しい合計と差額を求める。差額 = 新合計 - 元の合計。"""
    match request:
        case ProductsVerifiedModifyRequest():
            priced_lines = tuple(
                PricedOrderLine.from_verified(line) for line in request.new_order_lines
            )
            new_total = sum((line.line_total for line in priced_lines), Decimal("0"))
            return PriceRecalculatedModifyRequest(
                order_number=request.order_number,
                new_order_lines=priced_lines,
                original_order_details=request.original_order_details,
                new_total_price=new_total,
                price_difference=new_total - request.original_order_details.total_amount,
            )
        case _:
            return request


def process_modification(request: ModifyOrderState, now: datetime) -> ModifyOrderState:
    match request:
        case PriceRecalculatedModifyRequest():
            return ModifiedOrder(
                order_number=request.order_number,
                new_order_lines=request.new_order_lines,
                new_total_price=request.new_total_price,
                price_difference=request.price_difference,
                modified_date=now,
            )
        case _:
            return request


def execute(
    request: UnvalidatedModifyRequest,
    check_order_exists: CheckOrderExists,
    check_product_catalog: CheckProductCatalog,
    check_inventory: CheckInventory,
    now: datetime,
) -> ModifyOrderState:
    state: ModifyOrderState = request
    # 1. 入力検証 (注文番号・商品コード・数量)
    state = validate_request(state)
    # 2. 注文の存在と変更可否 (状態・期間)
    state = verify_order_can_be_modified(state, check_order_exists, now)
    # 3. 新しい商品の存在と在庫
    state = verify_new_products_and_stock(state, check_product_catalog, check_inventory)
    # 4. 価格の再計算
    state = recalculate_price(state)
    # 5. 変更の確定
    state = process_modification(state, now)
    return state


def _invalid(order_number: OrderNumber, reason: str) -> InvalidModifyRequest:
    return InvalidModifyRequest(order_number=order_number.value, reasons=(reason,))


# ── 結果への投影 ─────────────────────────────────


def final_state_to_outcome(
    request: ModifyOrderState,
) -> OrderModified | OrderModificationFailed:
    match request:
        case ModifiedOrder():
            return OrderModified(
                order_number=request.order_number.value,
                new_total_price=request.new_total_price,
                price_difference=request.price_difference,
                lines=tuple(LineSummary.from_line(line) for line in request.new_order_lines),
                modified_date=request.modified_date,
                summary=build_summary(request),
            )
        case InvalidModifyRequest():
            return OrderModificationFailed(reasons=request.reasons)
        case UnvalidatedModifyRequest():
            return OrderModificationFailed(reasons=("Unexpected unvalidated state",))
        case ValidatedModifyRequest():
            return OrderModificationFailed(reasons=("Unexpected validated state",))
        case OrderVerifiedModifyRequest():
            return OrderModificationFailed(reasons=("Unexpected order verified state",))
        case ProductsVerifiedModifyRequest():
            return OrderModificationFailed(reasons=("Unexpected products verified state",))
        case PriceRecalculatedModifyRequest():
            return OrderModificationFailed(reasons=("Unexpected price recalculated state",))
    raise TypeError(f"Unknown modify-order state: {type(request).__name__}")


def build_summary(order: ModifiedOrder) -> str:
    lines = [
        f"Order {order.order_number} has been successfully modified.",
        "",
        "Modified Order Items:",
    ]
    lines += [
        f"  - {line.product_name} ({line.product_code}) x {line.quantity} "
        f"@ {format_money(line.price)} = {format_money(line.line_total)}"
        for line in order.new_order_lines
    ]
    lines += ["", f"New Order Total: {format_money(order.new_total_price)}"]
    if order.price_difference > 0:
        lines += [
            f"Additional Charge: {format_money(order.price_difference)}",
            "The additional amount will be charged to your payment method.",
        ]
    elif order.price_difference < 0:
        lines += [
            f"Refund Amount: {format_money(abs(order.price_difference))}",
            "The refund will be processed within 3-5 business days.",
        ]
    else:
        lines.append("Price Difference: None (same total as original order)")
    lines += ["", f"Modified on: {format_timestamp(order.modified_date)}"]
    return "\n".join(lines)

"""
注文作成パイプライン

状態遷移:
    Unvalidated → Validated → ProductVerified → Priced → Confirmed
    (どの段階でも失敗すれば Invalid で打ち切り)

各ステージは自分が扱う状態だけを変換し、それ以外はそのまま返す。
"""

from datetime import datetime
from decimal import Decimal

from ..events import LineSummary, OrderPlaced, OrderPlacementFailed
from ..models import (
    Address,
    DomainModel,
    OrderNumber,
    PricedOrderLine,
    ProductVerifiedOrderLine,
    UnvalidatedOrderLine,
    ValidatedOrderLine,
)
from .common import (
    CheckInventory,
    CheckProductCatalog,
    ReferenceGenerator,
    format_money,
    generate_reference,
    to_unvalidated,
    validate_line,
)

ORDER_NUMBER_PREFIX = "ORD"


# ── 状態 ─────────────────────────────────────────


class UnvalidatedOrder(DomainModel):
    order_lines: tuple[UnvalidatedOrderLine, ...]
    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None


class InvalidOrder(DomainModel):
    order_lines: tuple[UnvalidatedOrderLine, ...]
    reasons: tuple[str, ...]


class ValidatedOrder(DomainModel):
    order_lines: tuple[ValidatedOrderLine, ...]
    shipping_address: Address


class ProductVerifiedOrder(DomainModel):
    order_lines: tuple[ProductVerifiedOrderLine, ...]
    shipping_address: Address


class PricedOrder(DomainModel):
    order_lines: tuple[PricedOrderLine, ...]
    shipping_address: Address
    total_price: Decimal


class ConfirmedOrder(DomainModel):
    order_lines: tuple[PricedOrderLine, ...]
    shipping_address: Address
    total_price: Decimal
    order_number: OrderNumber
    placed_date: datetime


PlaceOrderState = (
    UnvalidatedOrder
    | InvalidOrder
    | ValidatedOrder
    | ProductVerifiedOrder
    | PricedOrder
    | ConfirmedOrder
)


# ── ステージ ─────────────────────────────────────


def validate_order(order: PlaceOrderState) -> PlaceOrderState:
    """全明細と配送先住所を検証する。エラーは途中で止めずにすべて集める。"""
    match order:
        case UnvalidatedOrder():
            errors: list[str] = []
            validated_lines: list[ValidatedOrderLine] = []
            if not order.order_lines:
                errors.append("At least one product must be specified")
            for line in order.order_lines:
                validated = validate_line(line.product_code, line.quantity, errors)
                if validated is not None:
                    validated_lines.append(validated)

            address_ok, address, reason = Address.try_parse(
                order.street, order.city, order.postal_code, order.country
            )
            if not address_ok:
                errors.append(reason)

            if errors:
                return InvalidOrder(order_lines=order.order_lines, reasons=tuple(errors))
            return ValidatedOrder(order_lines=tuple(validated_lines), shipping_address=address)
        case _:
            return order


def verify_products(
    order: PlaceOrderState, check_product_catalog: CheckProductCatalog
) -> PlaceOrderState:
    """商品カタログに存在するか確認し、商品名と単価を付与する。"""
    match order:
        case ValidatedOrder():
            errors: list[str] = []
            verified_lines: list[ProductVerifiedOrderLine] = []
            for line in order.order_lines:
                exists, product_name, price = check_product_catalog(line.product_code)
                if not exists:
                    errors.append(f"Product not found: {line.product_code}")
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
                return InvalidOrder(
                    order_lines=to_unvalidated(order.order_lines), reasons=tuple(errors)
                )
            return ProductVerifiedOrder(
                order_lines=tuple(verified_lines), shipping_address=order.shipping_address
            )
        case _:
            return order


def verify_stock(order: PlaceOrderState, check_inventory: CheckInventory) -> PlaceOrderState:
    """在庫を確認する。問題なければ状態は変えずに通過させる。"""
    match order:
        case ProductVerifiedOrder():
            errors = [
                f"Insufficient stock for product {line.product_code} ({line.product_name}). "
                f"Requested: {line.quantity}"
                for line in order.order_lines
                if not check_inventory(line.product_code, line.quantity)
            ]
            if errors:
                return InvalidOrder(
                    order_lines=to_unvalidated(order.order_lines), reasons=tuple(errors)
                )
            return order
        case _:
            return order


def calculate_price(order: PlaceOrderState) -> PlaceOrderState:
    match order:
        case ProductVerifiedOrder():
            priced_lines = tuple(PricedOrderLine.from_verified(line) for line in order.order_lines)
            total = sum((line.line_total for line in priced_lines), Decimal("0"))
            return PricedOrder(
                order_lines=priced_lines,
                shipping_address=order.shipping_address,
                total_price=total,
            )
        case _:
            return order


def confirm_order(
    order: PlaceOrderState,
    now: datetime,
    generate_number: ReferenceGenerator = generate_reference,
) -> PlaceOrderState:
    """注文番号を採番して確定する。"""
    match order:
        case PricedOrder():
            return ConfirmedOrder(
                order_lines=order.order_lines,
                shipping_address=order.shipping_address,
                total_price=order.total_price,
                order_number=OrderNumber(value=generate_number(ORDER_NUMBER_PREFIX, now)),
                placed_date=now,
            )
        case _:
            return order


def execute(
    order: UnvalidatedOrder,
    check_product_catalog: CheckProductCatalog,
    check_inventory: CheckInventory,
    now: datetime,
    generate_number: ReferenceGenerator = generate_reference,
) -> PlaceOrderState:
    """パイプライン全体を実行する (I/O なし)。"""
    state: PlaceOrderState = order
    # 1. 入力検証
    state = validate_order(state)
    # 2. 商品の存在確認
    state = verify_products(state, check_product_catalog)
    # 3. 在庫確認
    state = verify_stock(state, check_inventory)
    # 4. 価格計算
    state = calculate_price(state)
    # 5. 確定
    state = confirm_order(state, now, generate_number)
    return state


# ── 結果への投影 ─────────────────────────────────


def final_state_to_outcome(order: PlaceOrderState) -> OrderPlaced | OrderPlacementFailed:
    match order:
        case ConfirmedOrder():
            return OrderPlaced(
                order_number=order.order_number.value,
                total_price=order.total_price,
                lines=tuple(LineSummary.from_line(line) for line in order.order_lines),
                placed_date=order.placed_date,
                summary=build_summary(order),
            )
        case InvalidOrder():
            return OrderPlacementFailed(reasons=order.reasons)
        case UnvalidatedOrder():
            return OrderPlacementFailed(reasons=("Unexpected unvalidated state",))
        case ValidatedOrder():
            return OrderPlacementFailed(reasons=("Unexpected validated state",))
        case ProductVerifiedOrder():
            return OrderPlacementFailed(reasons=("Unexpected product verified state",))
        case PricedOrder():
            return OrderPlacementFailed(reasons=("Unexpected priced state",))
    raise TypeError(f"Unknown place-order state: {type(order).__name__}")


def build_summary(order: ConfirmedOrder) -> str:
    lines = [
        f"Order Number: {order.order_number}",
        f"Shipping Address: {order.shipping_address}",
        "",
        "Order Items:",
    ]
    lines += [
        f"  - {line.product_name} ({line.product_code}) x {line.quantity} "
        f"@ {format_money(line.price)} = {format_money(line.line_total)}"
        for line in order.order_lines
    ]
    lines += ["", f"Total: {format_money(order.total_price)}"]
    return "\n".join(lines)

"""
Order Service: コマンドハンドラ (ワークフローのオーケストレーション)

各ハンドラの流れ:
    1. リポジトリからスナップショットを読む (I/O)
    2. 純粋なパイプラインを実行する (I/O なし)
    3. 成功した場合だけ結果を書き戻す (I/O)
    4. Redis Pub/Sub で成功イベントを発行する

現在時刻 now はハンドラごとに 1 回だけ取得し、パイプライン全体で共有する。
外部呼び出しで発生した想定外の例外はここでだけ捕捉し、
1 件の汎用的な失敗理由に変換する (スタックトレースは結果に含めない)。
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from .errors import DuplicateOrderNumberError
from .events import (
    OrderCancellationFailed,
    OrderCancelled,
    OrderModificationFailed,
    OrderModified,
    OrderPlaced,
    OrderPlacementFailed,
    OrderReturned,
    OrderReturnFailed,
    WorkflowFailed,
)
from .models import (
    OrderDetails,
    OrderNumber,
    OrderStatus,
    ProductCode,
    ProductInfo,
    Quantity,
    UnvalidatedOrderLine,
)
from .pipelines import cancel_order as cancel
from .pipelines import modify_order as modify
from .pipelines import place_order as place
from .pipelines import return_order as returns
from .pipelines.common import (
    CheckInventory,
    CheckOrderExists,
    CheckProductCatalog,
    ReferenceGenerator,
    generate_reference,
)
from .publisher import EventPublisher
from .repositories import OrdersRepository, ProductsRepository

logger = logging.getLogger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 3


async def place_order(
    order: place.UnvalidatedOrder,
    products: ProductsRepository,
    orders: OrdersRepository,
    publisher: EventPublisher,
    now: datetime | None = None,
    generate_number: ReferenceGenerator = generate_reference,
) -> OrderPlaced | OrderPlacementFailed:
    """
    注文作成コマンド

    採番した注文番号が既に使われていた場合は、同じスナップショットで
    パイプラインを再実行して新しい番号を採番する (最大 3 回)。
    """
    now = now or datetime.now(timezone.utc)
    logger.info("Placing order with %d line(s)", len(order.order_lines))
    try:
        catalog = await products.get_products_by_codes(_parseable_codes(order.order_lines))
        check_product_catalog, check_inventory = _catalog_checks(catalog)

        for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
            state = place.execute(
                order, check_product_catalog, check_inventory, now, generate_number
            )
            if not isinstance(state, place.ConfirmedOrder):
                break
            try:
                await orders.save_order(state)
                break
            except DuplicateOrderNumberError as exc:
                logger.warning(
                    "Order number %s already taken (attempt %d/%d)",
                    exc.order_number, attempt, MAX_ORDER_NUMBER_ATTEMPTS,
                )
        else:
            return OrderPlacementFailed(reasons=("Could not allocate a unique order number",))
    except Exception:
        logger.exception("Unexpected error while placing order")
        return OrderPlacementFailed(reasons=("Unexpected error while placing order",))

    event = place.final_state_to_outcome(state)
    return await _finish(publisher, event)


async def modify_order(
    request: modify.UnvalidatedModifyRequest,
    products: ProductsRepository,
    orders: OrdersRepository,
    publisher: EventPublisher,
    now: datetime | None = None,
) -> OrderModified | OrderModificationFailed:
    """注文変更コマンド (明細の全置き換え)"""
    now = now or datetime.now(timezone.utc)
    logger.info("Modifying order %s", request.order_number)
    try:
        check_order_exists = await _order_check(orders, request.order_number)
        catalog = await products.get_products_by_codes(
            _parseable_codes(request.new_order_lines)
        )
        check_product_catalog, check_inventory = _catalog_checks(catalog)

        state = modify.execute(
            request, check_order_exists, check_product_catalog, check_inventory, now
        )
        if isinstance(state, modify.ModifiedOrder):
            await orders.update_order(
                state.order_number, state.new_total_price, state.new_order_lines
            )
    except Exception:
        logger.exception("Unexpected error while modifying order %s", request.order_number)
        return OrderModificationFailed(reasons=("Unexpected error while modifying order",))

    event = modify.final_state_to_outcome(state)
    return await _finish(publisher, event)


async def cancel_order(
    request: cancel.UnvalidatedCancelRequest,
    orders: OrdersRepository,
    publisher: EventPublisher,
    now: datetime | None = None,
) -> OrderCancelled | OrderCancellationFailed:
    """注文キャンセルコマンド"""
    now = now or datetime.now(timezone.utc)
    logger.info("Cancelling order %s", request.order_number)
    try:
        check_order_exists = await _order_check(orders, request.order_number)
        state = cancel.execute(request, check_order_exists, now)
        if isinstance(state, cancel.CancelledOrder):
            await orders.update_order_status(state.order_number, OrderStatus.CANCELLED)
    except Exception:
        logger.exception("Unexpected error while cancelling order %s", request.order_number)
        return OrderCancellationFailed(reasons=("Unexpected error while cancelling order",))

    event = cancel.final_state_to_outcome(state)
    return await _finish(publisher, event)


async def return_order(
    request: returns.UnvalidatedReturnRequest,
    orders: OrdersRepository,
    publisher: EventPublisher,
    now: datetime | None = None,
    generate_number: ReferenceGenerator = generate_reference,
) -> OrderReturned | OrderReturnFailed:
    """返品コマンド"""
    now = now or datetime.now(timezone.utc)
    logger.info("Processing return for order %s", request.order_number)
    try:
        check_order_exists = await _order_check(orders, request.order_number)
        state = returns.execute(request, check_order_exists, now, generate_number)
        if isinstance(state, returns.ProcessedReturn):
            await orders.update_order_status(state.order_number, OrderStatus.RETURNED)
    except Exception:
        logger.exception("Unexpected error while returning order %s", request.order_number)
        return OrderReturnFailed(reasons=("Unexpected error while returning order",))

    event = returns.final_state_to_outcome(state)
    return await _finish(publisher, event)


# ── スナップショット → 照会関数 ─────────────────


def _parseable_codes(lines: tuple[UnvalidatedOrderLine, ...]) -> list[str]:
    """形式として正しい商品コードだけを返す (不正なものはパイプラインが報告する)。"""
    return [
        line.product_code for line in lines if ProductCode.try_parse(line.product_code)[0]
    ]


def _catalog_checks(
    catalog: dict[str, ProductInfo],
) -> tuple[CheckProductCatalog, CheckInventory]:
    """一括取得した商品スナップショットから、カタログ・在庫の照会関数を作る。"""

    def check_product_catalog(code: ProductCode) -> tuple[bool, str, Decimal]:
        product = catalog.get(code.value)
        if product is None:
            return False, "", Decimal("0")
        return True, product.name, product.price

    def check_inventory(code: ProductCode, quantity: Quantity) -> bool:
        product = catalog.get(code.value)
        return product is not None and Decimal(product.stock) >= quantity.value

    return check_product_catalog, check_inventory


async def _order_check(orders: OrdersRepository, raw_number: str | None) -> CheckOrderExists:
    """注文番号が形式として正しければ 1 回だけ読み、その結果を返す照会関数を作る。"""
    number_ok, order_number, _ = OrderNumber.try_parse(raw_number)
    details = await orders.get_order_details(order_number) if number_ok else None

    def check_order_exists(number: OrderNumber) -> tuple[bool, OrderDetails | None]:
        if details is None or number != order_number:
            return False, None
        return True, details

    return check_order_exists


async def _finish(publisher: EventPublisher, event):
    """成功イベントだけを発行する。"""
    if isinstance(event, WorkflowFailed):
        logger.info("%s: %s", type(event).__name__, "; ".join(event.reasons))
        return event
    logger.info("%s: %s", type(event).__name__, event.order_number)
    await publisher.publish(event)
    return event

"""
Order Service: イベント定義 (ワークフローの結果)

各パイプラインの最終状態は、ここで定義するイベントに投影される。
成功イベントは Redis Pub/Sub で他サービスへ通知される。
イベントは過去形で命名し、不変(immutable)として扱う。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from .models import PricedOrderLine, ReturnReasonType, ValidatedReturnItem


class LineSummary(BaseModel):
    product_code: str
    product_name: str
    quantity: Decimal
    price: Decimal
    line_total: Decimal

    @classmethod
    def from_line(cls, line: PricedOrderLine) -> "LineSummary":
        return cls(
            product_code=line.product_code.value,
            product_name=line.product_name,
            quantity=line.quantity.value,
            price=line.price,
            line_total=line.line_total,
        )


class ReturnItemSummary(BaseModel):
    product_code: str
    quantity: Decimal

    @classmethod
    def from_item(cls, item: ValidatedReturnItem) -> "ReturnItemSummary":
        return cls(product_code=item.product_code.value, quantity=item.quantity.value)


class WorkflowFailed(BaseModel):
    """失敗イベントの共通形。理由は発生順に並ぶ。"""
    reasons: tuple[str, ...]


# ── 注文作成 ─────────────────────────────────────


class OrderPlaced(BaseModel):
    """注文が確定された"""
    order_number: str
    total_price: Decimal
    lines: tuple[LineSummary, ...]
    placed_date: datetime
    summary: str


class OrderPlacementFailed(WorkflowFailed):
    """注文を確定できなかった"""


# ── 注文変更 ─────────────────────────────────────


class OrderModified(BaseModel):
    """注文明細が置き換えられた。price_difference > 0 は追加請求、< 0 は返金。"""
    order_number: str
    new_total_price: Decimal
    price_difference: Decimal
    lines: tuple[LineSummary, ...]
    modified_date: datetime
    summary: str


class OrderModificationFailed(WorkflowFailed):
    """注文を変更できなかった"""


# ── 注文キャンセル ───────────────────────────────


class OrderCancelled(BaseModel):
    """注文がキャンセルされた"""
    order_number: str
    original_total: Decimal
    refund_amount: Decimal
    refund_percentage: Decimal
    cancelled_date: datetime
    summary: str


class OrderCancellationFailed(WorkflowFailed):
    """注文をキャンセルできなかった"""


# ── 返品 ─────────────────────────────────────────


class OrderReturned(BaseModel):
    """返品が受け付けられた"""
    order_number: str
    return_number: str
    refund_amount: Decimal
    shipping_fee: Decimal
    reason_type: ReturnReasonType
    items: tuple[ReturnItemSummary, ...]
    processed_date: datetime
    summary: str


class OrderReturnFailed(WorkflowFailed):
    """返品を受け付けられなかった"""

"""
パイプライン共通部品

- 外部照会関数の型 (カタログ・在庫・注文ストア)
- 明細行の検証
- 注文番号 / 返品番号の採番
- サマリー文面用の書式
"""

import secrets
import string
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from ..models import (
    OrderDetails,
    OrderNumber,
    ProductCode,
    ProductVerifiedOrderLine,
    Quantity,
    UnvalidatedOrderLine,
    ValidatedOrderLine,
)

# ── 外部照会関数 (パイプラインから見ると同期・副作用なし) ──

CheckProductCatalog = Callable[[ProductCode], tuple[bool, str, Decimal]]
CheckInventory = Callable[[ProductCode, Quantity], bool]
CheckOrderExists = Callable[[OrderNumber], tuple[bool, OrderDetails | None]]
ReferenceGenerator = Callable[[str, datetime], str]

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_SUFFIX_LENGTH = 8


def generate_reference(prefix: str, now: datetime) -> str:
    """
    <prefix>-<yyyyMMdd>-<英大文字・数字 8 桁> を生成する。

    一意性は保証しない。衝突の検出は保存側 (一意制約) の責務。
    """
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{prefix}-{now:%Y%m%d}-{suffix}"


def validate_line(
    product_code: str, quantity: str, errors: list[str]
) -> ValidatedOrderLine | None:
    """
    明細 1 行を検証する。エラーは errors に追記し、None を返す。
    商品コードと数量の両方が不正なら両方のエラーを積む。
    """
    line_errors: list[str] = []
    code_ok, code, _ = ProductCode.try_parse(product_code)
    if not code_ok:
        line_errors.append(f"Invalid product code: {product_code}")
    qty_ok, qty, _ = Quantity.try_parse(quantity)
    if not qty_ok:
        line_errors.append(f"Invalid quantity for product {product_code}: {quantity}")
    if line_errors:
        errors.extend(line_errors)
        return None
    return ValidatedOrderLine(product_code=code, quantity=qty)


def to_unvalidated(
    lines: tuple[ValidatedOrderLine, ...] | tuple[ProductVerifiedOrderLine, ...],
) -> tuple[UnvalidatedOrderLine, ...]:
    """エラー報告用に、検証済み明細を生の入力形式へ戻す。"""
    return tuple(
        UnvalidatedOrderLine(product_code=line.product_code.value, quantity=str(line.quantity))
        for line in lines
    )


# ── 表示用の書式 (判定には使わない) ───────────────


def format_money(amount: Decimal) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_timestamp(value: datetime) -> str:
    return f"{value:%Y-%m-%d %H:%M}"

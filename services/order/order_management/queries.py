"""
Order Service: クエリハンドラ (読み取り側)

ワークフローが参照するスナップショット (注文・商品) と、
一覧・詳細表示用の辞書を返す。書き込みは行わない。
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OrderDetails, OrderNumber, ProductInfo

_ORDER_COLUMNS = {
    "order_number": String,
    "total_amount": Numeric(asdecimal=True),
    "status": String,
    "order_date": DateTime(timezone=True),
    "street": String,
    "city": String,
    "postal_code": String,
    "country": String,
}

_ITEM_COLUMNS = {
    "line_no": Integer,
    "product_code": String,
    "product_name": String,
    "quantity": Numeric(asdecimal=True),
    "price": Numeric(asdecimal=True),
    "line_total": Numeric(asdecimal=True),
}

_PRODUCT_COLUMNS = {
    "code": String,
    "name": String,
    "price": Numeric(asdecimal=True),
    "stock": Integer,
    "is_active": Boolean,
}

_SELECT_ORDER = """
    SELECT order_number, total_amount, status, order_date,
           street, city, postal_code, country
    FROM orders
"""


def as_utc(value: datetime) -> datetime:
    """タイムゾーンを保持しない DB (SQLite) から読んだ値は UTC とみなす。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_order_details(
    session: AsyncSession, order_number: OrderNumber
) -> OrderDetails | None:
    """注文のスナップショット (合計・注文日時・状態) を取得する。"""
    result = await session.execute(
        text(_SELECT_ORDER + " WHERE order_number = :number").columns(**_ORDER_COLUMNS),
        {"number": order_number.value},
    )
    row = result.fetchone()
    if not row:
        return None
    return OrderDetails(
        total_amount=row.total_amount,
        order_date=as_utc(row.order_date),
        status=row.status,
    )


async def get_order(session: AsyncSession, order_number: str) -> dict | None:
    """注文ヘッダと明細を表示用の辞書で返す。"""
    result = await session.execute(
        text(_SELECT_ORDER + " WHERE order_number = :number").columns(**_ORDER_COLUMNS),
        {"number": order_number},
    )
    row = result.fetchone()
    if not row:
        return None

    items = await session.execute(
        text("""
            SELECT line_no, product_code, product_name, quantity, price, line_total
            FROM order_items
            WHERE order_number = :number
            ORDER BY line_no ASC
        """).columns(**_ITEM_COLUMNS),
        {"number": order_number},
    )
    order = _order_to_dict(row)
    order["items"] = [
        {
            "product_code": item.product_code,
            "product_name": item.product_name,
            "quantity": float(item.quantity),
            "price": float(item.price),
            "line_total": float(item.line_total),
        }
        for item in items.fetchall()
    ]
    return order


async def list_orders(session: AsyncSession) -> list[dict]:
    """全注文を新しい順に返す。"""
    result = await session.execute(
        text(_SELECT_ORDER + " ORDER BY order_date DESC").columns(**_ORDER_COLUMNS),
    )
    return [_order_to_dict(row) for row in result.fetchall()]


async def get_products_by_codes(
    session: AsyncSession, codes: list[str]
) -> dict[str, ProductInfo]:
    """
    指定コードの有効な商品を 1 回のクエリでまとめて取得する。
    存在しない・無効なコードは結果に含まれない。
    """
    if not codes:
        return {}
    result = await session.execute(
        text("""
            SELECT code, name, price, stock, is_active
            FROM products
            WHERE code IN :codes AND is_active
        """)
        .bindparams(bindparam("codes", expanding=True))
        .columns(**_PRODUCT_COLUMNS),
        {"codes": sorted(set(codes))},
    )
    return {
        row.code: ProductInfo(code=row.code, name=row.name, price=row.price, stock=row.stock)
        for row in result.fetchall()
    }


async def list_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        text("""
            SELECT code, name, price, stock, is_active
            FROM products
            WHERE is_active
            ORDER BY code ASC
        """).columns(**_PRODUCT_COLUMNS),
    )
    return [
        {
            "code": row.code,
            "name": row.name,
            "price": float(row.price),
            "stock": row.stock,
        }
        for row in result.fetchall()
    ]


def _order_to_dict(row) -> dict:
    return {
        "order_number": row.order_number,
        "total_amount": float(row.total_amount),
        "status": row.status,
        "order_date": as_utc(row.order_date).isoformat(),
        "street": row.street,
        "city": row.city,
        "postal_code": row.postal_code,
        "country": row.country,
    }

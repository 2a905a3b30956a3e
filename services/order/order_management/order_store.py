"""
Order Service: 注文ストア (書き込み側)

ワークフローが成功したときだけ呼ばれる書き戻し処理。

注意: 読み取り (資格チェック) と書き込みの間にロックやトランザクションはない。
同じ注文への同時リクエストは両方とも資格チェックを通過しうる。
厳密さが必要なら version 列による楽観的ロックをここに追加する。
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, bindparam, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import DuplicateOrderNumberError
from .models import OrderNumber, OrderStatus, PricedOrderLine
from .pipelines.place_order import ConfirmedOrder

_INSERT_ORDER = text("""
    INSERT INTO orders
        (order_number, total_amount, status, order_date,
         street, city, postal_code, country, updated_at)
    VALUES
        (:order_number, :total_amount, :status, :order_date,
         :street, :city, :postal_code, :country, :now)
""").bindparams(
    bindparam("total_amount", type_=Numeric(asdecimal=True)),
    bindparam("order_date", type_=DateTime(timezone=True)),
    bindparam("now", type_=DateTime(timezone=True)),
)

_INSERT_ITEM = text("""
    INSERT INTO order_items
        (order_number, line_no, product_code, product_name, quantity, price, line_total)
    VALUES
        (:order_number, :line_no, :product_code, :product_name, :quantity, :price, :line_total)
""").bindparams(
    bindparam("quantity", type_=Numeric(asdecimal=True)),
    bindparam("price", type_=Numeric(asdecimal=True)),
    bindparam("line_total", type_=Numeric(asdecimal=True)),
)


async def save_order(session: AsyncSession, order: ConfirmedOrder) -> None:
    """
    確定した注文 (ヘッダ + 明細) を保存する。

    注文番号が既に存在すれば DuplicateOrderNumberError。
    呼び出し側は新しい番号で再試行できる。
    """
    number = order.order_number.value
    address = order.shipping_address
    try:
        await session.execute(
            _INSERT_ORDER,
            {
                "order_number": number,
                "total_amount": order.total_price,
                "status": OrderStatus.CONFIRMED.value,
                "order_date": order.placed_date,
                "street": address.street,
                "city": address.city,
                "postal_code": address.postal_code,
                "country": address.country,
                "now": datetime.now(timezone.utc),
            },
        )
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateOrderNumberError(number) from exc

    await _insert_items(session, number, order.order_lines)
    await session.commit()


async def update_order(
    session: AsyncSession,
    order_number: OrderNumber,
    new_total: Decimal,
    lines: tuple[PricedOrderLine, ...],
) -> None:
    """合計金額を更新し、明細を全件置き換える (1 トランザクション)。"""
    await session.execute(
        text("""
            UPDATE orders
            SET total_amount = :total, updated_at = :now
            WHERE order_number = :number
        """).bindparams(
            bindparam("total", type_=Numeric(asdecimal=True)),
            bindparam("now", type_=DateTime(timezone=True)),
        ),
        {"total": new_total, "now": datetime.now(timezone.utc), "number": order_number.value},
    )
    await session.execute(
        text("DELETE FROM order_items WHERE order_number = :number"),
        {"number": order_number.value},
    )
    await _insert_items(session, order_number.value, lines)
    await session.commit()


async def update_order_status(
    session: AsyncSession, order_number: OrderNumber, status: OrderStatus
) -> None:
    await session.execute(
        text("""
            UPDATE orders
            SET status = :status, updated_at = :now
            WHERE order_number = :number
        """).bindparams(bindparam("now", type_=DateTime(timezone=True))),
        {"status": status.value, "now": datetime.now(timezone.utc), "number": order_number.value},
    )
    await session.commit()


async def _insert_items(
    session: AsyncSession, order_number: str, lines: tuple[PricedOrderLine, ...]
) -> None:
    if not lines:
        return
    await session.execute(
        _INSERT_ITEM,
        [
            {
                "order_number": order_number,
                "line_no": line_no,
                "product_code": line.product_code.value,
                "product_name": line.product_name,
                "quantity": line.quantity.value,
                "price": line.price,
                "line_total": line.line_total,
            }
            for line_no, line in enumerate(lines, start=1)
        ],
    )

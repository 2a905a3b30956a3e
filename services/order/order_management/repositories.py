"""
Order Service: リポジトリ (ワークフローが依存する境界)

ワークフローはここで定義する Protocol だけに依存する。
SQL 実装は queries / order_store の関数に委譲する薄いラッパー。
"""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from . import order_store, queries
from .models import OrderDetails, OrderNumber, OrderStatus, PricedOrderLine, ProductInfo
from .pipelines.place_order import ConfirmedOrder


class ProductsRepository(Protocol):
    async def get_products_by_codes(self, codes: list[str]) -> dict[str, ProductInfo]: ...

    async def list_products(self) -> list[dict]: ...


class OrdersRepository(Protocol):
    async def get_order_details(self, order_number: OrderNumber) -> OrderDetails | None: ...

    async def get_order(self, order_number: str) -> dict | None: ...

    async def list_orders(self) -> list[dict]: ...

    async def save_order(self, order: ConfirmedOrder) -> None: ...

    async def update_order(
        self, order_number: OrderNumber, new_total: Decimal, lines: tuple[PricedOrderLine, ...]
    ) -> None: ...

    async def update_order_status(self, order_number: OrderNumber, status: OrderStatus) -> None: ...


class SqlProductsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_products_by_codes(self, codes: list[str]) -> dict[str, ProductInfo]:
        return await queries.get_products_by_codes(self.session, codes)

    async def list_products(self) -> list[dict]:
        return await queries.list_products(self.session)


class SqlOrdersRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_order_details(self, order_number: OrderNumber) -> OrderDetails | None:
        return await queries.get_order_details(self.session, order_number)

    async def get_order(self, order_number: str) -> dict | None:
        return await queries.get_order(self.session, order_number)

    async def list_orders(self) -> list[dict]:
        return await queries.list_orders(self.session)

    async def save_order(self, order: ConfirmedOrder) -> None:
        await order_store.save_order(self.session, order)

    async def update_order(
        self, order_number: OrderNumber, new_total: Decimal, lines: tuple[PricedOrderLine, ...]
    ) -> None:
        await order_store.update_order(self.session, order_number, new_total, lines)

    async def update_order_status(self, order_number: OrderNumber, status: OrderStatus) -> None:
        await order_store.update_order_status(self.session, order_number, status)

"""テスト共通のフィクスチャとインメモリ実装"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from order_management.errors import DuplicateOrderNumberError
from order_management.models import (
    OrderDetails,
    OrderNumber,
    OrderStatus,
    PricedOrderLine,
    ProductInfo,
)
from order_management.pipelines.place_order import ConfirmedOrder

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
ORDER_NUMBER = "ORD-20240115-ABCDEF12"

CATALOG = {
    "AB1234": ProductInfo(code="AB1234", name="Laptop", price=Decimal("10.00"), stock=50),
    "CD5678": ProductInfo(code="CD5678", name="Mouse", price=Decimal("20.00"), stock=3),
    "EF9012": ProductInfo(code="EF9012", name="Keyboard", price=Decimal("40.00"), stock=0),
}


def details(
    total: str = "100.00",
    age: timedelta = timedelta(hours=1),
    status: OrderStatus = OrderStatus.CONFIRMED,
) -> OrderDetails:
    """NOW から age だけ前に注文された注文のスナップショット"""
    return OrderDetails(total_amount=Decimal(total), order_date=NOW - age, status=status)


def fixed_number(*numbers: str):
    """採番関数の代わりに、指定した番号を順に返す。"""
    remaining = list(numbers)

    def generate(prefix: str, now: datetime) -> str:
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return generate


class FakeProductsRepository:
    def __init__(self, catalog: dict[str, ProductInfo] | None = None):
        self.catalog = dict(CATALOG if catalog is None else catalog)
        self.requested: list[list[str]] = []

    async def get_products_by_codes(self, codes):
        self.requested.append(list(codes))
        return {code: self.catalog[code] for code in codes if code in self.catalog}

    async def list_products(self):
        return [
            {"code": p.code, "name": p.name, "price": float(p.price), "stock": p.stock}
            for p in sorted(self.catalog.values(), key=lambda p: p.code)
        ]


class FakeOrdersRepository:
    """注文番号 → (OrderDetails, 明細) の辞書で注文を保持する。"""

    def __init__(self):
        self.orders: dict[str, OrderDetails] = {}
        self.lines: dict[str, tuple[PricedOrderLine, ...]] = {}
        self.taken_numbers: set[str] = set()
        self.detail_reads = 0

    def add(self, order_number: str, order_details: OrderDetails) -> None:
        self.orders[order_number] = order_details
        self.lines[order_number] = ()

    async def get_order_details(self, order_number: OrderNumber):
        self.detail_reads += 1
        return self.orders.get(order_number.value)

    async def get_order(self, order_number: str):
        found = self.orders.get(order_number)
        if found is None:
            return None
        return {
            "order_number": order_number,
            "total_amount": float(found.total_amount),
            "status": found.status.value,
            "items": [{"product_code": line.product_code.value} for line in self.lines[order_number]],
        }

    async def list_orders(self):
        return [await self.get_order(number) for number in self.orders]

    async def save_order(self, order: ConfirmedOrder):
        number = order.order_number.value
        if number in self.orders or number in self.taken_numbers:
            raise DuplicateOrderNumberError(number)
        self.orders[number] = OrderDetails(
            total_amount=order.total_price,
            order_date=order.placed_date,
            status=OrderStatus.CONFIRMED,
        )
        self.lines[number] = order.order_lines

    async def update_order(self, order_number: OrderNumber, new_total, lines):
        current = self.orders[order_number.value]
        self.orders[order_number.value] = current.model_copy(update={"total_amount": new_total})
        self.lines[order_number.value] = lines

    async def update_order_status(self, order_number: OrderNumber, status: OrderStatus):
        current = self.orders[order_number.value]
        self.orders[order_number.value] = current.model_copy(update={"status": status})


class RecordingPublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def products():
    return FakeProductsRepository()


@pytest.fixture
def orders():
    return FakeOrdersRepository()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def catalog_checks():
    """CATALOG を参照するカタログ・在庫の照会関数"""

    def check_product_catalog(code):
        product = CATALOG.get(code.value)
        if product is None:
            return False, "", Decimal("0")
        return True, product.name, product.price

    def check_inventory(code, quantity):
        product = CATALOG.get(code.value)
        return product is not None and product.stock >= quantity.value

    return check_product_catalog, check_inventory


def order_lookup(order_number: str, order_details: OrderDetails | None):
    """指定した注文番号だけが存在する照会関数"""

    def check_order_exists(number: OrderNumber):
        if order_details is None or number.value != order_number:
            return False, None
        return True, order_details

    return check_order_exists

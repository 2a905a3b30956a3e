"""
Order Service: FastAPI エントリーポイント

CQRS パターンに従い、Command (POST/PUT) と Query (GET) のエンドポイントを分離。
Command は各ワークフローを実行し、成功イベントを Redis Pub/Sub に発行する。

業務上の失敗は 400 {"error": ..., "reasons": [...]} で返す。
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, config, schema
from .events import WorkflowFailed
from .models import OrderNumber, UnvalidatedOrderLine, UnvalidatedReturnItem
from .pipelines.cancel_order import UnvalidatedCancelRequest
from .pipelines.modify_order import UnvalidatedModifyRequest
from .pipelines.place_order import UnvalidatedOrder
from .pipelines.return_order import UnvalidatedReturnRequest
from .publisher import EventPublisher, RedisEventPublisher
from .repositories import SqlOrdersRepository, SqlProductsRepository

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時にテーブルを作成し、必要なら商品カタログを投入する。"""
    global redis_pool
    redis_pool = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    async with engine.begin() as conn:
        await schema.create_all(conn)
        if config.SEED_PRODUCTS:
            seeded = await schema.seed_products(conn)
            if seeded:
                logger.info("Seeded %d products", seeded)
    yield
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)


# ── Dependencies ─────────────────────────────────

async def get_session():
    async with async_session() as session:
        yield session


def get_products_repository(session: AsyncSession = Depends(get_session)):
    return SqlProductsRepository(session)


def get_orders_repository(session: AsyncSession = Depends(get_session)):
    return SqlOrdersRepository(session)


def get_publisher() -> EventPublisher:
    return RedisEventPublisher(redis_pool, config.ORDER_EVENTS_CHANNEL)


# ── Request Models ───────────────────────────────

class OrderLineInput(BaseModel):
    product_code: str = ""
    quantity: Decimal | str = ""

    def to_unvalidated(self) -> UnvalidatedOrderLine:
        return UnvalidatedOrderLine(product_code=self.product_code, quantity=str(self.quantity))


class PlaceOrderRequest(BaseModel):
    order_lines: list[OrderLineInput] = []
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""


class ModifyOrderRequest(BaseModel):
    order_lines: list[OrderLineInput] = []


class CancelOrderRequest(BaseModel):
    reason: str = ""


class ReturnOrderRequest(BaseModel):
    reason: str = ""
    items: list[OrderLineInput] = []


def _respond(event: BaseModel):
    """成功イベントはそのまま返し、失敗イベントは 400 にする。"""
    if isinstance(event, WorkflowFailed):
        return JSONResponse(
            status_code=400,
            content={"error": type(event).__name__, "reasons": list(event.reasons)},
        )
    return event


# ── Command Endpoints (Write 側) ─────────────────

@app.post("/commands/orders")
async def cmd_place_order(
    req: PlaceOrderRequest,
    products=Depends(get_products_repository),
    orders=Depends(get_orders_repository),
    publisher=Depends(get_publisher),
):
    """注文作成コマンド"""
    order = UnvalidatedOrder(
        order_lines=tuple(line.to_unvalidated() for line in req.order_lines),
        street=req.street,
        city=req.city,
        postal_code=req.postal_code,
        country=req.country,
    )
    return _respond(await commands.place_order(order, products, orders, publisher))


@app.put("/commands/orders/{order_number}")
async def cmd_modify_order(
    order_number: str,
    req: ModifyOrderRequest,
    products=Depends(get_products_repository),
    orders=Depends(get_orders_repository),
    publisher=Depends(get_publisher),
):
    """注文変更コマンド (明細の全置き換え)"""
    request = UnvalidatedModifyRequest(
        order_number=order_number,
        new_order_lines=tuple(line.to_unvalidated() for line in req.order_lines),
    )
    return _respond(await commands.modify_order(request, products, orders, publisher))


@app.post("/commands/orders/{order_number}/cancel")
async def cmd_cancel_order(
    order_number: str,
    req: CancelOrderRequest,
    orders=Depends(get_orders_repository),
    publisher=Depends(get_publisher),
):
    """注文キャンセルコマンド"""
    request = UnvalidatedCancelRequest(order_number=order_number, reason=req.reason)
    return _respond(await commands.cancel_order(request, orders, publisher))


@app.post("/commands/orders/{order_number}/return")
async def cmd_return_order(
    order_number: str,
    req: ReturnOrderRequest,
    orders=Depends(get_orders_repository),
    publisher=Depends(get_publisher),
):
    """返品コマンド"""
    request = UnvalidatedReturnRequest(
        order_number=order_number,
        return_reason=req.reason,
        return_items=tuple(
            UnvalidatedReturnItem(product_code=item.product_code, quantity=str(item.quantity))
            for item in req.items
        ),
    )
    return _respond(await commands.return_order(request, orders, publisher))


# ── Query Endpoints (Read 側) ────────────────────

@app.get("/queries/orders")
async def query_list_orders(orders=Depends(get_orders_repository)):
    """全注文を新しい順に取得"""
    return await orders.list_orders()


@app.get("/queries/orders/{order_number}")
async def query_get_order(order_number: str, orders=Depends(get_orders_repository)):
    """指定注文を明細付きで取得"""
    number_ok, _, reason = OrderNumber.try_parse(order_number)
    if not number_ok:
        raise HTTPException(400, reason)
    order = await orders.get_order(order_number)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@app.get("/queries/products")
async def query_list_products(products=Depends(get_products_repository)):
    """有効な商品の一覧"""
    return await products.list_products()


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}

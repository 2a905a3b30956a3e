"""
Order Service: スキーマ定義

PostgreSQL と SQLite の両方で動く DDL だけを使う。
何度実行しても安全 (CREATE TABLE IF NOT EXISTS)。
"""

from decimal import Decimal

from sqlalchemy import Numeric, bindparam, text
from sqlalchemy.ext.asyncio import AsyncConnection

DDL_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS products (
        code        VARCHAR(6)     PRIMARY KEY,
        name        VARCHAR(200)   NOT NULL,
        price       NUMERIC        NOT NULL,
        stock       INTEGER        NOT NULL DEFAULT 0,
        is_active   BOOLEAN        NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        order_number  VARCHAR(32)    PRIMARY KEY,
        total_amount  NUMERIC        NOT NULL,
        status        VARCHAR(20)    NOT NULL,
        order_date    TIMESTAMPTZ    NOT NULL,
        street        VARCHAR(200)   NOT NULL,
        city          VARCHAR(100)   NOT NULL,
        postal_code   VARCHAR(20)    NOT NULL,
        country       VARCHAR(100)   NOT NULL,
        updated_at    TIMESTAMPTZ    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_items (
        order_number  VARCHAR(32)    NOT NULL REFERENCES orders (order_number),
        line_no       INTEGER        NOT NULL,
        product_code  VARCHAR(6)     NOT NULL,
        product_name  VARCHAR(200)   NOT NULL,
        quantity      NUMERIC        NOT NULL,
        price         NUMERIC        NOT NULL,
        line_total    NUMERIC        NOT NULL,
        PRIMARY KEY (order_number, line_no)
    )
    """,
)

# 開発用の商品カタログ
DEMO_PRODUCTS = (
    ("AB1234", "Laptop", Decimal("999.99"), 10),
    ("CD5678", "Mouse", Decimal("29.99"), 50),
    ("EF9012", "Keyboard", Decimal("79.99"), 25),
    ("GH3456", "Monitor", Decimal("299.99"), 5),
    ("IJ7890", "Headphones", Decimal("149.99"), 15),
    ("KL1357", "Webcam", Decimal("89.99"), 20),
    ("MN2468", "USB Cable", Decimal("12.99"), 100),
    ("OP3579", "Mouse Pad", Decimal("9.99"), 75),
    ("QR4680", "Laptop Stand", Decimal("49.99"), 30),
    ("ST5791", "External SSD 1TB", Decimal("199.99"), 12),
)


async def create_all(conn: AsyncConnection) -> None:
    for statement in DDL_STATEMENTS:
        await conn.execute(text(statement))


async def seed_products(
    conn: AsyncConnection,
    products: tuple[tuple[str, str, Decimal, int], ...] = DEMO_PRODUCTS,
) -> int:
    """products テーブルが空のときだけ商品を投入する。投入件数を返す。"""
    result = await conn.execute(text("SELECT COUNT(*) FROM products"))
    if result.scalar_one() > 0:
        return 0

    insert = text("""
        INSERT INTO products (code, name, price, stock, is_active)
        VALUES (:code, :name, :price, :stock, :is_active)
    """).bindparams(bindparam("price", type_=Numeric(asdecimal=True)))
    await conn.execute(
        insert,
        [
            {"code": code, "name": name, "price": price, "stock": stock, "is_active": True}
            for code, name, price, stock in products
        ],
    )
    return len(products)

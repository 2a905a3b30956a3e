"""
Order Service: 値オブジェクト (Value Objects)

注文パイプラインが扱うプリミティブ型。すべて不変(frozen)で、
生成時に検証され、値で比較される。

try_parse は不正な入力でも例外を投げず、
(ok, value, reason) のタプルで結果を返す。
直接コンストラクタを呼んだ場合は pydantic の ValidationError になる。
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

PRODUCT_CODE_PATTERN = re.compile(r"[A-Z]{2}[0-9]{4}")
ORDER_NUMBER_PREFIX = "ORD-"
ORDER_NUMBER_MIN_LENGTH = 20
REASON_MIN_LENGTH = 10


class DomainModel(BaseModel):
    """ドメイン型の基底クラス。生成後は変更できない。"""

    model_config = ConfigDict(frozen=True)


# ── 値オブジェクト ───────────────────────────────


class ProductCode(DomainModel):
    value: str

    @field_validator("value")
    @classmethod
    def check_format(cls, v: str) -> str:
        if not PRODUCT_CODE_PATTERN.fullmatch(v):
            raise ValueError(f"Invalid product code: {v}")
        return v

    @classmethod
    def try_parse(cls, raw: str | None) -> tuple[bool, "ProductCode | None", str | None]:
        try:
            return True, cls(value=raw), None
        except ValidationError:
            return False, None, f"Invalid product code: {raw}"

    def __str__(self) -> str:
        return self.value


class Quantity(DomainModel):
    """数量。小数を許すが 0 以下は不可。丸めは行わない。"""

    value: Decimal = Field(gt=0)

    @classmethod
    def try_parse(cls, raw: str | None) -> tuple[bool, "Quantity | None", str | None]:
        if isinstance(raw, str):
            raw = raw.strip()
        try:
            return True, cls(value=raw), None
        except ValidationError:
            return False, None, f"Invalid quantity: {raw}"

    def __str__(self) -> str:
        return format(self.value.normalize(), "f")


class OrderNumber(DomainModel):
    """注文番号 (ORD-YYYYMMDD-XXXXXXXX)"""

    value: str

    @field_validator("value")
    @classmethod
    def check_format(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Order number must not be blank")
        if not v.startswith(ORDER_NUMBER_PREFIX) or len(v) < ORDER_NUMBER_MIN_LENGTH:
            raise ValueError(f"Invalid order number format: {v}")
        return v

    @classmethod
    def try_parse(cls, raw: str | None) -> tuple[bool, "OrderNumber | None", str | None]:
        try:
            return True, cls(value=raw), None
        except ValidationError:
            return (
                False,
                None,
                f"Invalid order number format: {raw}. Expected format: ORD-YYYYMMDD-XXXXXXXX",
            )

    def __str__(self) -> str:
        return self.value


def check_reason_length(v: str) -> str:
    if not v.strip() or len(v) < REASON_MIN_LENGTH:
        raise ValueError(f"Reason must be at least {REASON_MIN_LENGTH} characters long")
    return v


class CancellationReason(DomainModel):
    value: str

    @field_validator("value")
    @classmethod
    def check_length(cls, v: str) -> str:
        return check_reason_length(v)

    @classmethod
    def try_parse(cls, raw: str | None) -> tuple[bool, "CancellationReason | None", str | None]:
        try:
            return True, cls(value=raw), None
        except ValidationError:
            return False, None, "Cancellation reason must be at least 10 characters long"

    def __str__(self) -> str:
        return self.value


class ReturnReasonType(str, Enum):
    DEFECTIVE = "Defective"
    WRONG_ITEM = "WrongItem"
    NOT_AS_DESCRIBED = "NotAsDescribed"
    CHANGED_MIND = "ChangedMind"

    @property
    def description(self) -> str:
        return {
            ReturnReasonType.DEFECTIVE: "Defective Product",
            ReturnReasonType.WRONG_ITEM: "Wrong Item Shipped",
            ReturnReasonType.NOT_AS_DESCRIBED: "Not As Described",
            ReturnReasonType.CHANGED_MIND: "Customer Changed Mind",
        }[self]


# 優先順に評価する。先にマッチした分類が採用される。
_REASON_KEYWORDS: tuple[tuple[ReturnReasonType, tuple[str, ...]], ...] = (
    (ReturnReasonType.DEFECTIVE, ("defect", "damaged", "broken")),
    (ReturnReasonType.WRONG_ITEM, ("wrong", "incorrect", "mistake")),
    (ReturnReasonType.NOT_AS_DESCRIBED, ("not as described", "different")),
)


def classify_return_reason(text: str) -> ReturnReasonType:
    """返品理由の文面からキーワードで分類する (大文字小文字は区別しない)。"""
    lowered = text.lower()
    for reason_type, keywords in _REASON_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return reason_type
    return ReturnReasonType.CHANGED_MIND


class ReturnReason(DomainModel):
    value: str

    @field_validator("value")
    @classmethod
    def check_length(cls, v: str) -> str:
        return check_reason_length(v)

    @property
    def reason_type(self) -> ReturnReasonType:
        return classify_return_reason(self.value)

    @classmethod
    def try_parse(cls, raw: str | None) -> tuple[bool, "ReturnReason | None", str | None]:
        try:
            return True, cls(value=raw), None
        except ValidationError:
            return False, None, "Return reason must be at least 10 characters long"

    def __str__(self) -> str:
        return self.value


class Address(DomainModel):
    street: str
    city: str
    postal_code: str
    country: str

    @field_validator("street", "city", "postal_code", "country")
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @classmethod
    def try_parse(
        cls,
        street: str | None,
        city: str | None,
        postal_code: str | None,
        country: str | None,
    ) -> tuple[bool, "Address | None", str | None]:
        try:
            address = cls(street=street, city=city, postal_code=postal_code, country=country)
            return True, address, None
        except ValidationError:
            return False, None, "Invalid shipping address: all fields must be provided"

    def __str__(self) -> str:
        return f"{self.street}, {self.city}, {self.postal_code}, {self.country}"


class OrderStatus(str, Enum):
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"


class OrderDetails(DomainModel):
    """
    外部ストアから見た注文のスナップショット。
    パイプラインからは読み取り専用。
    """

    total_amount: Decimal = Field(ge=0)
    order_date: datetime
    status: OrderStatus


# ── 注文明細 (段階的に詳細化される) ──────────────


class UnvalidatedOrderLine(DomainModel):
    product_code: str
    quantity: str


class ValidatedOrderLine(DomainModel):
    product_code: ProductCode
    quantity: Quantity


class ProductVerifiedOrderLine(DomainModel):
    product_code: ProductCode
    quantity: Quantity
    product_name: str
    price: Decimal


class PricedOrderLine(DomainModel):
    product_code: ProductCode
    quantity: Quantity
    product_name: str
    price: Decimal
    line_total: Decimal

    @classmethod
    def from_verified(cls, line: ProductVerifiedOrderLine) -> "PricedOrderLine":
        return cls(
            product_code=line.product_code,
            quantity=line.quantity,
            product_name=line.product_name,
            price=line.price,
            line_total=line.price * line.quantity.value,
        )


class UnvalidatedReturnItem(DomainModel):
    product_code: str
    quantity: str


class ValidatedReturnItem(DomainModel):
    product_code: ProductCode
    quantity: Quantity


class ProductInfo(DomainModel):
    """商品カタログ + 在庫のスナップショット (ProductsRepository が返す)"""

    code: str
    name: str
    price: Decimal
    stock: int

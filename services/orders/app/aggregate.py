"""
Orders Service: 注文集約(Aggregate)

注文は自分の明細(line)を所有する。各明細は作成時点の商品名と単価を
スナップショットとして保持するため、後からカタログが変わっても
過去の注文には影響しない。

状態遷移:
    PENDING (永続化されない) → CONFIRMED  (全明細の在庫引き当て成功)
    CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    SHIPPED / DELIVERED 以外の任意の状態 → CANCELLED
    FAILED にはステータスの上書きでのみ到達する。
"""


from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from .exceptions import InvalidOrderState

ZERO = Decimal("0.00")


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


NON_CANCELLABLE = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestedLine:
    product_id: int
    quantity: int


class OrderLine:
    def __init__(
        self,
        product_id: int,
        product_name: str,
        price: Decimal,
        quantity: int,
        id: int | None = None,
    ) -> None:
        self.id = id
        self.product_id = product_id
        self.product_name = product_name
        self.price = price
        self.quantity = quantity
        self.subtotal: Decimal = ZERO
        self.calculate_subtotal()

    def calculate_subtotal(self) -> None:
        self.subtotal = self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }


class Order:
    def __init__(
        self,
        user_id: int,
        shipping_address: str | None = None,
        payment_method: str | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        id: int | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        self.id = id
        self.user_id = user_id
        self.lines: list[OrderLine] = []
        self.status = status
        self.shipping_address = shipping_address
        self.payment_method = payment_method
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at or self.created_at
        self._total_amount: Decimal = ZERO

    @property
    def total_amount(self) -> Decimal:
        """明細から導出される。変更するのは ``calculate_total`` のみ"""
        return self._total_amount

    def add_line(self, line: OrderLine) -> None:
        self.lines.append(line)

    def calculate_total(self) -> None:
        self._total_amount = sum((line.subtotal for line in self.lines), ZERO)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def change_status(self, status: OrderStatus) -> OrderStatus:
        """ステータスを上書きし、変更前のステータスを返す"""
        old_status = self.status
        self.status = status
        return old_status

    def cancel(self) -> OrderStatus:
        if self.status in NON_CANCELLABLE:
            raise InvalidOrderState(self.status.value)
        return self.change_status(OrderStatus.CANCELLED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "items": [line.to_dict() for line in self.lines],
            "totalAmount": self.total_amount,
            "status": self.status.value,
            "shippingAddress": self.shipping_address,
            "paymentMethod": self.payment_method,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

"""
Common: イベントエンベロープとパブリッシャー

各サービスは自分が所有する事実(イベント)を単一の topic exchange に発行する。
事実ごとに routing key (``order.created``, ``product.stock.updated``...) があり、
サブスクライバーは routing key ごとに 1 チャネルを購読する。

exchange の役割は Redis Pub/Sub が担う。チャネル名は
``<exchange>:<routing key>``。

発行はベストエフォート。``EventPublisher.publish`` は送信失敗をログに残して
握りつぶすため、ブローカーに届かなくてもイベントの元になった状態変更は
ロールバックされない(at-most-once、リトライなし)。
"""


import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

EXCHANGE = "ecommerce.exchange"

# Exclusive upper bound of a Numeric(15, 2) money column.
MAX_AMOUNT = Decimal("1e13")


class EventType(str, Enum):
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"
    STOCK_UPDATED = "STOCK_UPDATED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_UPDATED = "ORDER_STATUS_UPDATED"
    ORDER_CANCELLED = "ORDER_CANCELLED"


ROUTING_KEYS: dict[EventType, str] = {
    EventType.PRODUCT_CREATED: "product.created",
    EventType.PRODUCT_UPDATED: "product.updated",
    EventType.PRODUCT_DELETED: "product.deleted",
    EventType.STOCK_UPDATED: "product.stock.updated",
    EventType.USER_REGISTERED: "user.registered",
    EventType.USER_UPDATED: "user.updated",
    EventType.USER_DELETED: "user.deleted",
    EventType.ORDER_CREATED: "order.created",
    EventType.ORDER_STATUS_UPDATED: "order.status.updated",
    EventType.ORDER_CANCELLED: "order.cancelled",
}

EVENT_TYPES_BY_ROUTING_KEY: dict[str, EventType] = {
    key: event_type for event_type, key in ROUTING_KEYS.items()
}

# Wire name of the primary subject id for each family of facts.
SUBJECT_FIELDS: dict[EventType, str] = {
    EventType.PRODUCT_CREATED: "productId",
    EventType.PRODUCT_UPDATED: "productId",
    EventType.PRODUCT_DELETED: "productId",
    EventType.STOCK_UPDATED: "productId",
    EventType.USER_REGISTERED: "userId",
    EventType.USER_UPDATED: "userId",
    EventType.USER_DELETED: "userId",
    EventType.ORDER_CREATED: "orderId",
    EventType.ORDER_STATUS_UPDATED: "orderId",
    EventType.ORDER_CANCELLED: "orderId",
}


def channel_for(routing_key: str, exchange: str = EXCHANGE) -> str:
    return f"{exchange}:{routing_key}"


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class DomainEvent:
    """
    所有サービスで起きた事実

    ``subject_id`` は事実の対象エンティティ、``secondary_id`` は操作した
    ユーザー(注文の事実のみ持つ)。``payload`` は事実固有のフィールドを
    ワイヤ上の名前をキーとして保持する。
    """

    event_type: EventType
    subject_id: int | None
    secondary_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: int = field(default_factory=_now_millis)

    @property
    def routing_key(self) -> str:
        return ROUTING_KEYS[self.event_type]

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "eventType": self.event_type.value,
            "eventId": self.event_id,
            SUBJECT_FIELDS[self.event_type]: self.subject_id,
        }
        if self.secondary_id is not None:
            message["userId"] = self.secondary_id
        message.update(self.payload)
        message["timestamp"] = self.timestamp
        return message

    def serialize(self) -> str:
        return json.dumps(self.to_message(), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


# ── Decoding (subscriber side) ────────────────────


def decode_message(raw: str | bytes) -> dict[str, Any]:
    """ブローカーのペイロードを解析する。イベントオブジェクトでなければ ValueError"""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError("Event payload is not a JSON object")
    if not isinstance(message.get("eventType"), str):
        raise ValueError("Event payload has no eventType")
    return message


def as_int(value: Any) -> int | None:
    """壊れた id や欠けた id はメッセージを失敗させず None にする"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def as_decimal(value: Any) -> Decimal | None:
    """非有限の金額と金額列に収まらない金額は None にする"""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or abs(amount) >= MAX_AMOUNT:
        return None
    return amount


# ── Publisher ─────────────────────────────────────


class EventPublisher:
    """シリアライズした事実を ``exchange`` 配下でブローカーに渡す"""

    def __init__(
        self,
        redis: aioredis.Redis | None = None,
        exchange: str = EXCHANGE,
    ):
        self.redis = redis
        self.exchange = exchange

    async def send(self, routing_key: str, body: str) -> None:
        """1 メッセージを発行する。通信エラーは伝播する"""
        if self.redis is None:
            raise ConnectionError("Broker connection is not initialised")
        await self.redis.publish(channel_for(routing_key, self.exchange), body)

    async def publish(self, event: DomainEvent) -> bool:
        """ベストエフォートの発行: 失敗はログに残して握りつぶす"""
        try:
            await self.send(event.routing_key, event.serialize())
        except Exception:
            logger.exception(
                "Error publishing %s event for %s",
                event.routing_key,
                event.subject_id,
            )
            return False
        logger.info(
            "Published %s event for %s", event.routing_key, event.subject_id
        )
        return True

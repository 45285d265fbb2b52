"""
Notifications Service: イベントハンドラー

受信した事実をテンプレートに対応づける:

  order.created          -> 注文したユーザーへの注文確認
  order.status.updated   -> 注文したユーザーへのステータス変更通知
  user.registered        -> ウェルカムメール
  product.stock.updated  -> 在庫がしきい値を下回ったとき管理者 (user 1) への
                            在庫僅少アラート

必須フィールドが欠けたメッセージは例外を送出し、サブスクライバーが
ログに残して破棄する。配信失敗はログに残すだけでリトライしない。
"""


import logging
from typing import Any

from services.common.messaging import ROUTING_KEYS, EventType
from services.common.subscriber import Handler

from . import templates
from .channels import NotificationChannel
from .templates import RenderedMessage

logger = logging.getLogger(__name__)

ADMIN_USER_ID = 1
LOW_STOCK_THRESHOLD = 10


def _required_int(message: dict[str, Any], key: str) -> int:
    value = message.get(key)
    if value is None or isinstance(value, bool):
        raise ValueError(f"Event is missing {key}")
    return int(value)


def _required_str(message: dict[str, Any], key: str) -> str:
    value = message.get(key)
    if value is None:
        raise ValueError(f"Event is missing {key}")
    return str(value)


class NotificationHandlers:
    def __init__(
        self,
        channel: NotificationChannel,
        low_stock_threshold: int = LOW_STOCK_THRESHOLD,
    ):
        self.channel = channel
        self.low_stock_threshold = low_stock_threshold

    async def deliver(self, user_id: int, message: RenderedMessage) -> bool:
        try:
            await self.channel.send(user_id, message)
        except Exception:
            logger.exception(
                "Failed to deliver '%s' to user: %s", message.subject, user_id
            )
            return False
        return True

    async def on_order_created(self, message: dict[str, Any], raw: str) -> None:
        order_id = _required_int(message, "orderId")
        user_id = _required_int(message, "userId")
        total_amount = _required_str(message, "totalAmount")
        logger.info(
            "Sending order confirmation to user: %s for order: %s", user_id, order_id
        )
        await self.deliver(
            user_id, templates.order_confirmation(order_id, total_amount)
        )

    async def on_order_status_updated(self, message: dict[str, Any], raw: str) -> None:
        order_id = _required_int(message, "orderId")
        user_id = _required_int(message, "userId")
        old_status = _required_str(message, "oldStatus")
        new_status = _required_str(message, "newStatus")
        logger.info(
            "Sending order status update to user: %s for order: %s", user_id, order_id
        )
        await self.deliver(
            user_id, templates.order_status_update(order_id, old_status, new_status)
        )

    async def on_user_registered(self, message: dict[str, Any], raw: str) -> None:
        user_id = _required_int(message, "userId")
        full_name = _required_str(message, "fullName")
        email = _required_str(message, "email")
        logger.info("Sending welcome email to user: %s", user_id)
        await self.deliver(user_id, templates.welcome(full_name, email))

    async def on_stock_updated(self, message: dict[str, Any], raw: str) -> None:
        product_id = _required_int(message, "productId")
        stock = _required_int(message, "stock")
        if stock >= self.low_stock_threshold:
            return
        product_name = message.get("name") or f"Product #{product_id}"
        logger.info("Sending low stock alert for product: %s", product_id)
        await self.deliver(
            ADMIN_USER_ID, templates.low_stock_alert(product_id, product_name, stock)
        )

    def bindings(self) -> dict[str, Handler]:
        return {
            ROUTING_KEYS[EventType.ORDER_CREATED]: self.on_order_created,
            ROUTING_KEYS[EventType.ORDER_STATUS_UPDATED]: self.on_order_status_updated,
            ROUTING_KEYS[EventType.USER_REGISTERED]: self.on_user_registered,
            ROUTING_KEYS[EventType.STOCK_UPDATED]: self.on_stock_updated,
        }

"""
Notifications Service: 配信チャネル

チャネルはレンダリング済みメッセージと宛先ユーザー id を受け取る。
デフォルトのチャネルはメールサーバーには接続せず、メールをログに書き出す。
"""


import asyncio
import logging
from typing import Protocol

from .templates import RenderedMessage

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    async def send(self, user_id: int, message: RenderedMessage) -> None: ...


class LoggingEmailChannel:
    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def send(self, user_id: int, message: RenderedMessage) -> None:
        logger.info(
            "\n==================== EMAIL ====================\n"
            "To: User ID %s\n"
            "Subject: %s\n"
            "Message:\n%s\n"
            "===============================================",
            user_id,
            message.subject,
            message.body,
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        logger.info("Email sent successfully to user: %s", user_id)

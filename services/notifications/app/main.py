"""
Notifications Service: FastAPI エントリーポイント

DB は持たない。バックグラウンドタスクが order / user / 在庫の事実を購読し、
設定されたチャネル経由でテンプレートメッセージを送る。
"""


import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.common.logconfig import configure_logging
from services.common.subscriber import run_subscriber

from .channels import LoggingEmailChannel
from .handlers import NotificationHandlers

configure_logging("notifications-service")
logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

handlers = NotificationHandlers(
    LoggingEmailChannel(), low_stock_threshold=LOW_STOCK_THRESHOLD
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    shutdown_event = asyncio.Event()
    subscriber_task = asyncio.create_task(
        run_subscriber(REDIS_URL, handlers.bindings(), shutdown_event)
    )
    yield
    shutdown_event.set()
    subscriber_task.cancel()
    try:
        await subscriber_task
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Notifications Service", lifespan=lifespan)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "notifications-service"}

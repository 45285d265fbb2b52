"""
Common: Redis Pub/Sub サブスクライバー

routing key ごとに 1 チャネルを購読し、受信メッセージをその key に
登録されたハンドラーに渡す。

処理の失敗(不正な JSON、必須フィールドの欠落、ハンドラーの例外)は
メッセージ単位で捕捉してログに残し、そのメッセージは処理済みとみなす。
リトライもデッドレターチャネルもない。

注意: Redis Pub/Sub は fire-and-forget 方式。
サブスクライバーが停止している間に発行されたメッセージは失われる。
"""


import asyncio
import logging
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .messaging import EXCHANGE, channel_for, decode_message

logger = logging.getLogger(__name__)

# handler(message, raw_payload)
Handler = Callable[[dict[str, Any], str], Awaitable[None]]


async def dispatch(
    handlers: dict[str, Handler],
    routing_key: str,
    raw: str | bytes,
) -> bool:
    """1 配信を処理する。メッセージを破棄した場合は False"""
    handler = handlers.get(routing_key)
    if handler is None:
        logger.warning("No handler bound to %s", routing_key)
        return False
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = decode_message(raw)
        await handler(message, raw)
    except Exception:
        logger.exception("Error processing %s event", routing_key)
        return False
    logger.info("Processed %s event", routing_key)
    return True


async def run_subscriber(
    redis_url: str,
    handlers: dict[str, Handler],
    shutdown_event: asyncio.Event,
    exchange: str = EXCHANGE,
) -> None:
    """
    ``handlers`` の全 routing key を購読し、``shutdown_event`` が
    セットされるまでメッセージを処理する。配信は到着順に 1 件ずつ処理する。
    """
    channels = {channel_for(key, exchange): key for key in handlers}
    redis_conn = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = redis_conn.pubsub()
    try:
        await pubsub.subscribe(*channels)
    except RedisError:
        logger.exception("Could not subscribe to %s", ", ".join(channels))
        await pubsub.aclose()
        await redis_conn.aclose()
        return
    logger.info("Subscribed to %s", ", ".join(channels))

    try:
        while not shutdown_event.is_set():
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                routing_key = channels.get(message["channel"])
                if routing_key is None:
                    continue
                await dispatch(handlers, routing_key, message["data"])
            else:
                await asyncio.sleep(0.1)
    finally:
        await pubsub.unsubscribe(*channels)
        await pubsub.aclose()
        await redis_conn.aclose()

"""
Analytics Service: ブローカーのバインディング

カタログの全 routing key を購読し、各メッセージを分析ストアに投影する。
メッセージごとに 1 セッション。
"""


import logging
from functools import partial

from sqlalchemy.orm import sessionmaker

from services.common.messaging import ROUTING_KEYS, EventType
from services.common.subscriber import Handler

from . import projections

logger = logging.getLogger(__name__)


async def _consume(
    async_session_factory: sessionmaker,
    event_type: EventType,
    deduplicate: bool,
    message: dict,
    raw: str,
) -> None:
    logger.info("Received %s event: %s", event_type.value, raw)
    async with async_session_factory() as session:
        await projections.handle_event(
            session, event_type, message, raw, deduplicate=deduplicate
        )


def build_handlers(
    async_session_factory: sessionmaker,
    deduplicate: bool = False,
) -> dict[str, Handler]:
    return {
        routing_key: partial(_consume, async_session_factory, event_type, deduplicate)
        for event_type, routing_key in ROUTING_KEYS.items()
    }

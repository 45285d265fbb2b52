"""
Orders Service: イベント配信

EVENT_DELIVERY=direct (デフォルト)
    注文トランザクションのコミット直後に発行する。ブローカーの失敗は
    ログに残して握りつぶすため、サブスクライバーが事実を取りこぼすことがある。

EVENT_DELIVERY=outbox
    イベント行を注文の変更と同じトランザクションで ``event_outbox`` に書く。
    バックグラウンドのディスパッチャーが未発行の行を送り出して発行済みにし、
    失敗した行は次のパスまで未発行のまま残る。
    配信は at-least-once になるので、サブスクライバーは重複を受け取りうる。
"""


import asyncio
import logging
from enum import Enum

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from services.common.messaging import DomainEvent, EventPublisher

from .aggregate import utcnow
from .schema import event_outbox

logger = logging.getLogger(__name__)


class DeliveryMode(str, Enum):
    DIRECT = "direct"
    OUTBOX = "outbox"


class DirectDelivery:
    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher

    async def stage(self, session: AsyncSession, event: DomainEvent) -> None:
        pass

    async def dispatch(self, event: DomainEvent) -> None:
        await self.publisher.publish(event)


class OutboxDelivery:
    def __init__(self, wakeup: asyncio.Event | None = None):
        self.wakeup = wakeup

    async def stage(self, session: AsyncSession, event: DomainEvent) -> None:
        await session.execute(
            insert(event_outbox).values(
                event_id=event.event_id,
                routing_key=event.routing_key,
                body=event.serialize(),
                created_at=utcnow(),
                attempts=0,
            )
        )

    async def dispatch(self, event: DomainEvent) -> None:
        # Committed already; nudge the dispatcher instead of publishing here.
        if self.wakeup is not None:
            self.wakeup.set()


def make_delivery(
    mode: DeliveryMode,
    publisher: EventPublisher,
    wakeup: asyncio.Event | None = None,
) -> DirectDelivery | OutboxDelivery:
    if mode == DeliveryMode.OUTBOX:
        return OutboxDelivery(wakeup)
    return DirectDelivery(publisher)


async def drain_outbox(
    session: AsyncSession,
    publisher: EventPublisher,
    batch_size: int = 100,
) -> int:
    """
    未発行の行を挿入順に発行する。注文ごとの順序を保つため、
    最初の失敗で止まる。発行した行数を返す。
    """
    result = await session.execute(
        select(event_outbox)
        .where(event_outbox.c.published_at.is_(None))
        .order_by(event_outbox.c.id)
        .limit(batch_size)
    )
    published = 0
    for row in result.all():
        try:
            await publisher.send(row.routing_key, row.body)
        except Exception:
            logger.exception(
                "Outbox publish failed for %s (%s), will retry",
                row.event_id,
                row.routing_key,
            )
            await session.execute(
                update(event_outbox)
                .where(event_outbox.c.id == row.id)
                .values(attempts=row.attempts + 1)
            )
            break
        await session.execute(
            update(event_outbox)
            .where(event_outbox.c.id == row.id)
            .values(published_at=utcnow(), attempts=row.attempts + 1)
        )
        published += 1
        logger.info("Published %s event %s from outbox", row.routing_key, row.event_id)
    await session.commit()
    return published


async def run_dispatcher(
    async_session_factory: sessionmaker,
    publisher: EventPublisher,
    shutdown_event: asyncio.Event,
    wakeup: asyncio.Event,
    interval: float = 1.0,
) -> None:
    """``interval`` 秒ごと、または起こされたときに outbox を送り出す"""
    logger.info("Outbox dispatcher started")
    while not shutdown_event.is_set():
        try:
            async with async_session_factory() as session:
                await drain_outbox(session, publisher)
        except Exception:
            logger.exception("Outbox drain failed")
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        wakeup.clear()
    logger.info("Outbox dispatcher stopped")

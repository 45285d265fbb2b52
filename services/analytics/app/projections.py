"""
Analytics Service: イベントの投影(Projection)

受信したメッセージはそれぞれ:
  1. ``events`` ログにそのまま追記される
  2. 単一の ``analytics_summary`` 行に差分として畳み込まれる
     (order.created: 注文 +1, 売上 +totalAmount;
      user.registered: ユーザー +1; product.created: 商品 +1)

畳み込みは合計値を再計算せず加算するため、重複配信されたメッセージは
重複排除を有効にしない限り二重にカウントされる。
重複排除を有効にすると、同じトランザクション内で ``eventId`` を
``processed_events`` に記録し、既出の id をスキップする。

サマリーの更新は行ロックなしの read-modify-write。サブスクライバーは
1 メッセージずつ処理するので、1 インスタンスなら書き込み手は 1 つ。
複数インスタンスを動かすと畳み込みが競合する。
``rebuild_summary`` はイベントログからサマリー行を再計算する。
"""


import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.messaging import (
    SUBJECT_FIELDS,
    EventType,
    as_decimal,
    as_int,
    decode_message,
)

from .schema import analytics_summary, events, processed_events

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


async def handle_event(
    session: AsyncSession,
    event_type: EventType,
    message: dict,
    raw: str,
    deduplicate: bool = False,
) -> bool:
    """1 メッセージを記録して畳み込む。重複としてスキップした場合は False"""
    event_id = message.get("eventId")
    if deduplicate and isinstance(event_id, str) and event_id:
        if await _already_processed(session, event_id):
            logger.info("Skipping duplicate %s event %s", event_type.value, event_id)
            return False
        await session.execute(
            insert(processed_events).values(
                event_id=event_id, processed_at=datetime.now(timezone.utc)
            )
        )

    entity_id = as_int(message.get(SUBJECT_FIELDS[event_type]))
    user_id = as_int(message.get("userId"))
    await track_event(session, event_type, entity_id, user_id, raw)

    fold = _FOLDS.get(event_type)
    if fold:
        await fold(session, message)
    await session.commit()
    return True


async def track_event(
    session: AsyncSession,
    event_type: EventType,
    entity_id: int | None,
    user_id: int | None,
    metadata: str | None,
) -> None:
    logger.info(
        "Tracking event: %s for entity: %s, user: %s",
        event_type.value,
        entity_id,
        user_id,
    )
    await session.execute(
        insert(events).values(
            event_type=event_type.value,
            entity_id=entity_id,
            user_id=user_id,
            metadata=metadata,
            created_at=datetime.now(timezone.utc),
        )
    )


async def _already_processed(session: AsyncSession, event_id: str) -> bool:
    result = await session.execute(
        select(processed_events.c.event_id).where(
            processed_events.c.event_id == event_id
        )
    )
    return result.first() is not None


# ── Summary folds ────────────────────────────────


async def current_summary(session: AsyncSession):
    result = await session.execute(
        select(analytics_summary)
        .order_by(analytics_summary.c.updated_at.desc(), analytics_summary.c.id.desc())
        .limit(1)
    )
    return result.first()


async def _fold(
    session: AsyncSession,
    orders: int = 0,
    revenue: Decimal = ZERO,
    users: int = 0,
    products: int = 0,
) -> None:
    now = datetime.now(timezone.utc)
    summary = await current_summary(session)
    if summary is None:
        await session.execute(
            insert(analytics_summary).values(
                total_orders=orders,
                total_revenue=revenue.quantize(CENTS),
                total_users=users,
                total_products=products,
                updated_at=now,
            )
        )
        return

    total_revenue = Decimal(str(summary.total_revenue)) + revenue
    await session.execute(
        update(analytics_summary)
        .where(analytics_summary.c.id == summary.id)
        .values(
            total_orders=summary.total_orders + orders,
            total_revenue=total_revenue.quantize(CENTS),
            total_users=summary.total_users + users,
            total_products=summary.total_products + products,
            updated_at=now,
        )
    )


async def _fold_order_created(session: AsyncSession, message: dict) -> None:
    revenue = as_decimal(message.get("totalAmount")) or ZERO
    await _fold(session, orders=1, revenue=revenue)


async def _fold_user_registered(session: AsyncSession, message: dict) -> None:
    await _fold(session, users=1)


async def _fold_product_created(session: AsyncSession, message: dict) -> None:
    await _fold(session, products=1)


_FOLDS = {
    EventType.ORDER_CREATED: _fold_order_created,
    EventType.USER_REGISTERED: _fold_user_registered,
    EventType.PRODUCT_CREATED: _fold_product_created,
}


# ── Recomputation ────────────────────────────────


async def rebuild_summary(session: AsyncSession) -> None:
    """
    ``events`` ログからサマリーを再計算し、行を上書きする。

    既出の ``eventId`` を繰り返すログ行は 1 回だけ数えるので、
    再計算により再配信メッセージの影響も取り除かれる。
    """
    result = await session.execute(
        select(events.c.event_type, events.c["metadata"]).order_by(events.c.id)
    )
    rows = result.all()
    totals = {"orders": 0, "revenue": ZERO, "users": 0, "products": 0}
    seen: set[str] = set()
    for event_type, raw in rows:
        try:
            message = decode_message(raw) if raw else {}
        except ValueError:
            message = {}
        event_id = message.get("eventId")
        if isinstance(event_id, str) and event_id:
            if event_id in seen:
                continue
            seen.add(event_id)

        if event_type == EventType.ORDER_CREATED.value:
            totals["orders"] += 1
            totals["revenue"] += as_decimal(message.get("totalAmount")) or ZERO
        elif event_type == EventType.USER_REGISTERED.value:
            totals["users"] += 1
        elif event_type == EventType.PRODUCT_CREATED.value:
            totals["products"] += 1

    values = dict(
        total_orders=totals["orders"],
        total_revenue=totals["revenue"].quantize(CENTS),
        total_users=totals["users"],
        total_products=totals["products"],
        updated_at=datetime.now(timezone.utc),
    )
    summary = await current_summary(session)
    if summary is None:
        await session.execute(insert(analytics_summary).values(**values))
    else:
        await session.execute(
            update(analytics_summary)
            .where(analytics_summary.c.id == summary.id)
            .values(**values)
        )
    await session.commit()
    logger.info("Rebuilt analytics summary from %d logged event(s)", len(rows))

"""
Analytics Service: クエリハンドラー
"""


from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.messaging import EventType

from .projections import current_summary
from .schema import events


def _event_to_dict(row) -> dict:
    return {
        "id": row.id,
        "eventType": row.event_type,
        "entityId": row.entity_id,
        "userId": row.user_id,
        "metadata": row._mapping["metadata"],
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


async def get_summary(session: AsyncSession) -> dict:
    summary = await current_summary(session)
    if summary is None:
        return {
            "totalOrders": 0,
            "totalRevenue": Decimal("0.00"),
            "totalUsers": 0,
            "totalProducts": 0,
            "lastUpdated": None,
        }
    return {
        "totalOrders": summary.total_orders,
        "totalRevenue": Decimal(str(summary.total_revenue)),
        "totalUsers": summary.total_users,
        "totalProducts": summary.total_products,
        "lastUpdated": summary.updated_at.isoformat() if summary.updated_at else None,
    }


async def list_recent_events(session: AsyncSession, hours: int = 24) -> list[dict]:
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    result = await session.execute(
        select(events)
        .where(events.c.created_at >= since)
        .order_by(events.c.created_at.desc(), events.c.id.desc())
    )
    return [_event_to_dict(row) for row in result.all()]


async def list_events_by_type(
    session: AsyncSession, event_type: EventType
) -> list[dict]:
    result = await session.execute(
        select(events)
        .where(events.c.event_type == event_type.value)
        .order_by(events.c.id)
    )
    return [_event_to_dict(row) for row in result.all()]


async def list_events_by_user(session: AsyncSession, user_id: int) -> list[dict]:
    result = await session.execute(
        select(events).where(events.c.user_id == user_id).order_by(events.c.id)
    )
    return [_event_to_dict(row) for row in result.all()]

"""
Analytics read model: append-only event log plus a folded summary row.
"""

from decimal import Decimal

import pytest

from services.analytics.app import projections, queries
from services.analytics.app.subscriber import build_handlers
from services.common.messaging import DomainEvent, EventType
from services.common.subscriber import dispatch


def _order_created(order_id=1, user_id=7, total="20.00") -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_CREATED,
        subject_id=order_id,
        secondary_id=user_id,
        payload={"totalAmount": Decimal(total), "status": "CONFIRMED", "itemCount": 1},
    )


async def _deliver(handlers, event: DomainEvent) -> bool:
    return await dispatch(handlers, event.routing_key, event.serialize())


async def _summary(analytics_db) -> dict:
    async with analytics_db() as session:
        return await queries.get_summary(session)


async def test_empty_summary(analytics_db):
    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 0
    assert summary["totalRevenue"] == Decimal("0.00")
    assert summary["lastUpdated"] is None


async def test_folds_orders_users_and_products(analytics_db):
    handlers = build_handlers(analytics_db)

    await _deliver(handlers, _order_created(1, total="20.00"))
    await _deliver(handlers, _order_created(2, total="5.50"))
    await _deliver(handlers, DomainEvent(event_type=EventType.USER_REGISTERED, subject_id=7))
    await _deliver(handlers, DomainEvent(event_type=EventType.PRODUCT_CREATED, subject_id=3))
    await _deliver(handlers, DomainEvent(event_type=EventType.PRODUCT_UPDATED, subject_id=3))

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 2
    assert summary["totalRevenue"] == Decimal("25.50")
    assert summary["totalUsers"] == 1
    assert summary["totalProducts"] == 1
    assert summary["lastUpdated"] is not None


async def test_every_bound_fact_lands_in_the_log(analytics_db):
    handlers = build_handlers(analytics_db)
    assert len(handlers) == len(EventType)

    await _deliver(handlers, _order_created(11, user_id=7))
    await _deliver(
        handlers,
        DomainEvent(
            event_type=EventType.ORDER_STATUS_UPDATED,
            subject_id=11,
            secondary_id=7,
            payload={"oldStatus": "CONFIRMED", "newStatus": "SHIPPED"},
        ),
    )

    async with analytics_db() as session:
        by_user = await queries.list_events_by_user(session, 7)
        by_type = await queries.list_events_by_type(session, EventType.ORDER_STATUS_UPDATED)
        recent = await queries.list_recent_events(session, hours=1)

    assert [e["eventType"] for e in by_user] == ["ORDER_CREATED", "ORDER_STATUS_UPDATED"]
    assert by_type[0]["entityId"] == 11
    assert '"newStatus": "SHIPPED"' in by_type[0]["metadata"]
    assert len(recent) == 2


async def test_redelivery_is_counted_twice(analytics_db):
    handlers = build_handlers(analytics_db)
    event = _order_created(total="20.00")

    await _deliver(handlers, event)
    await _deliver(handlers, event)

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 2
    assert summary["totalRevenue"] == Decimal("40.00")


async def test_deduplication_skips_seen_event_ids(analytics_db):
    handlers = build_handlers(analytics_db, deduplicate=True)
    event = _order_created(total="20.00")

    await _deliver(handlers, event)
    await _deliver(handlers, event)

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 1
    assert summary["totalRevenue"] == Decimal("20.00")
    async with analytics_db() as session:
        assert len(await queries.list_events_by_type(session, EventType.ORDER_CREATED)) == 1


async def test_garbled_fields_are_tolerated(analytics_db):
    async with analytics_db() as session:
        handled = await projections.handle_event(
            session,
            EventType.ORDER_CREATED,
            {"eventType": "ORDER_CREATED", "orderId": "x", "totalAmount": "n/a"},
            "{}",
        )
    assert handled is True

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 1
    assert summary["totalRevenue"] == Decimal("0.00")


@pytest.mark.parametrize("raw", ["{broken", "[]"])
async def test_undecodable_message_changes_nothing(analytics_db, raw):
    handlers = build_handlers(analytics_db)

    assert await dispatch(handlers, "order.created", raw) is False

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 0


async def test_rebuild_counts_each_event_id_once(analytics_db):
    handlers = build_handlers(analytics_db)
    event = _order_created(total="20.00")
    await _deliver(handlers, event)
    await _deliver(handlers, event)
    await _deliver(handlers, _order_created(2, total="5.00"))
    await _deliver(handlers, DomainEvent(event_type=EventType.USER_REGISTERED, subject_id=7))
    assert (await _summary(analytics_db))["totalOrders"] == 3

    async with analytics_db() as session:
        await projections.rebuild_summary(session)

    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 2
    assert summary["totalRevenue"] == Decimal("25.00")
    assert summary["totalUsers"] == 1


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "1e30"])
async def test_unusable_amount_still_logs_and_counts(analytics_db, amount):
    handlers = build_handlers(analytics_db)
    raw = (
        '{"eventType": "ORDER_CREATED", "eventId": "e1", "orderId": 9, '
        f'"userId": 7, "totalAmount": "{amount}"}}'
    )

    assert await dispatch(handlers, "order.created", raw) is True

    async with analytics_db() as session:
        assert len(await queries.list_events_by_user(session, 7)) == 1
    summary = await _summary(analytics_db)
    assert summary["totalOrders"] == 1
    assert summary["totalRevenue"] == Decimal("0.00")

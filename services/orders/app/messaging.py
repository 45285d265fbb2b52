"""
Orders Service: 注文の事実(イベント)

``order.created``, ``order.status.updated``, ``order.cancelled`` で
発行するイベントを組み立てる。
"""


from services.common.messaging import DomainEvent, EventType

from .aggregate import Order, OrderStatus


def order_created(order: Order) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_CREATED,
        subject_id=order.id,
        secondary_id=order.user_id,
        payload={
            "totalAmount": order.total_amount,
            "status": order.status.value,
            "itemCount": len(order.lines),
        },
    )


def order_status_updated(order: Order, old_status: OrderStatus) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_STATUS_UPDATED,
        subject_id=order.id,
        secondary_id=order.user_id,
        payload={
            "oldStatus": old_status.value,
            "newStatus": order.status.value,
        },
    )


def order_cancelled(order: Order) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.ORDER_CANCELLED,
        subject_id=order.id,
        secondary_id=order.user_id,
    )

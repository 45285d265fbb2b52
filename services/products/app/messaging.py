"""
Products Service: 商品の事実(イベント)

product.created / product.updated / product.deleted / product.stock.updated
"""


from services.common.messaging import DomainEvent, EventType


def product_created(product: dict) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.PRODUCT_CREATED,
        subject_id=product["id"],
        payload={
            "name": product["name"],
            "price": product["price"],
            "category": product["category"],
        },
    )


def product_updated(product: dict) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.PRODUCT_UPDATED,
        subject_id=product["id"],
        payload={
            "name": product["name"],
            "price": product["price"],
            "stock": product["stock"],
            "category": product["category"],
            "active": product["active"],
        },
    )


def product_deleted(product: dict) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.PRODUCT_DELETED,
        subject_id=product["id"],
        payload={"name": product["name"]},
    )


def stock_updated(product: dict) -> DomainEvent:
    return DomainEvent(
        event_type=EventType.STOCK_UPDATED,
        subject_id=product["id"],
        payload={"name": product["name"], "stock": product["stock"]},
    )

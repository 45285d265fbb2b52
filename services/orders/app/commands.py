"""
Orders Service: コマンドハンドラー

create_order が注文処理の流れ全体を担う:

    1. 注文を組み立てる (明細ごとに価格と在庫を確認)
    2. 全明細の在庫を引き当てる
    3. CONFIRMED にして永続化する
    4. order.created を発行する (fire-and-forget)

1-3 のいずれかが失敗するとコマンドは中断し、どの呼び出し元からも
注文は見えない。発行の失敗で注文がロールバックされることはない。
"""


import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import messaging, repository
from .aggregate import Order, OrderStatus, RequestedLine
from .builder import build_order
from .exceptions import InvalidOrder
from .outbox import DirectDelivery, OutboxDelivery
from .product_client import ProductServiceClient
from .reservation import ReservationMode, StockReservationCoordinator

logger = logging.getLogger(__name__)

Delivery = DirectDelivery | OutboxDelivery


async def create_order(
    session: AsyncSession,
    products: ProductServiceClient,
    delivery: Delivery,
    user_id: int,
    items: Sequence[RequestedLine],
    shipping_address: str | None = None,
    payment_method: str | None = None,
    reservation_mode: ReservationMode = ReservationMode.NONE,
) -> Order:
    logger.info("Creating new order for user: %s", user_id)

    order = await build_order(
        products, user_id, items, shipping_address, payment_method
    )

    coordinator = StockReservationCoordinator(products, reservation_mode)
    await coordinator.reserve_all(order)

    order.status = OrderStatus.CONFIRMED
    try:
        await repository.create(session, order)
        event = messaging.order_created(order)
        await delivery.stage(session, event)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        if coordinator.compensating:
            await coordinator.release_reserved()
        raise

    await delivery.dispatch(event)
    logger.info("Created order %s for user %s", order.id, user_id)
    return order


async def update_order_status(
    session: AsyncSession,
    delivery: Delivery,
    order_id: int,
    status: OrderStatus,
) -> Order:
    """
    ステータス更新コマンド

    永続化済みのステータス間で直接上書きする(遷移表による検証はしない)。
    PENDING は初回保存前にしか存在しないため、更新先としては拒否する。
    """
    logger.info("Updating status for order: %s to %s", order_id, status.value)
    if status == OrderStatus.PENDING:
        raise InvalidOrder(f"Cannot set order status to: {status.value}")
    order = await repository.get(session, order_id)

    old_status = order.change_status(status)
    await repository.save(session, order)

    event = messaging.order_status_updated(order, old_status)
    await delivery.stage(session, event)
    await session.commit()

    await delivery.dispatch(event)
    return order


async def cancel_order(
    session: AsyncSession,
    delivery: Delivery,
    order_id: int,
) -> Order:
    """注文キャンセルコマンド。引き当て済みの在庫は戻さない"""
    logger.info("Cancelling order: %s", order_id)
    order = await repository.get(session, order_id)

    order.cancel()
    await repository.save(session, order)

    event = messaging.order_cancelled(order)
    await delivery.stage(session, event)
    await session.commit()

    await delivery.dispatch(event)
    return order

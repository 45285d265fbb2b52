"""
Orders Service: クエリハンドラー

注文ストアの Read 側。レスポンス形式の dict を返す。
"""


from sqlalchemy.ext.asyncio import AsyncSession

from . import repository
from .aggregate import OrderStatus


async def get_order(session: AsyncSession, order_id: int) -> dict:
    order = await repository.get(session, order_id)
    return order.to_dict()


async def list_orders(session: AsyncSession) -> list[dict]:
    return [order.to_dict() for order in await repository.list_all(session)]


async def list_orders_by_user(session: AsyncSession, user_id: int) -> list[dict]:
    orders = await repository.find_by_user(session, user_id)
    return [order.to_dict() for order in orders]


async def list_orders_by_status(
    session: AsyncSession, status: OrderStatus
) -> list[dict]:
    orders = await repository.find_by_status(session, status)
    return [order.to_dict() for order in orders]

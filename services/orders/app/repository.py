"""
Orders Service: 注文ストア

注文と明細を永続化する。関数は flush までしか行わず、
トランザクションのコミットは呼び出し側のコマンドが持つ。

バージョン列は持たない。同じ注文への同時更新は競合し、最後の書き込みが勝つ。
"""


from decimal import Decimal

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .aggregate import Order, OrderLine, OrderStatus, utcnow
from .exceptions import InvalidOrder, OrderNotFound
from .schema import order_items, orders

CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS)


async def create(session: AsyncSession, order: Order) -> Order:
    """新しい注文を明細ごと挿入し、id とタイムスタンプを割り当てる"""
    if not order.lines:
        raise InvalidOrder("Order must contain at least one item")

    now = utcnow()
    order.created_at = now
    order.updated_at = now
    result = await session.execute(
        insert(orders)
        .values(
            user_id=order.user_id,
            total_amount=_money(order.total_amount),
            status=order.status.value,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            created_at=now,
            updated_at=now,
        )
        .returning(orders.c.id)
    )
    order.id = result.scalar_one()

    for line in order.lines:
        line_result = await session.execute(
            insert(order_items)
            .values(
                order_id=order.id,
                product_id=line.product_id,
                product_name=line.product_name,
                price=_money(line.price),
                quantity=line.quantity,
                subtotal=_money(line.subtotal),
            )
            .returning(order_items.c.id)
        )
        line.id = line_result.scalar_one()

    return order


async def save(session: AsyncSession, order: Order) -> Order:
    """ステータスと合計を書き戻す。``updated_at`` は常に更新する"""
    order.touch()
    result = await session.execute(
        update(orders)
        .where(orders.c.id == order.id)
        .values(
            status=order.status.value,
            total_amount=_money(order.total_amount),
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            updated_at=order.updated_at,
        )
    )
    if result.rowcount == 0:
        raise OrderNotFound(order.id)
    return order


async def get(session: AsyncSession, order_id: int) -> Order:
    result = await session.execute(select(orders).where(orders.c.id == order_id))
    row = result.first()
    if row is None:
        raise OrderNotFound(order_id)
    return (await _hydrate(session, [row]))[0]


async def list_all(session: AsyncSession) -> list[Order]:
    result = await session.execute(select(orders).order_by(orders.c.id))
    return await _hydrate(session, result.all())


async def find_by_user(session: AsyncSession, user_id: int) -> list[Order]:
    result = await session.execute(
        select(orders).where(orders.c.user_id == user_id).order_by(orders.c.id)
    )
    return await _hydrate(session, result.all())


async def find_by_status(session: AsyncSession, status: OrderStatus) -> list[Order]:
    result = await session.execute(
        select(orders).where(orders.c.status == status.value).order_by(orders.c.id)
    )
    return await _hydrate(session, result.all())


async def _hydrate(session: AsyncSession, rows) -> list[Order]:
    if not rows:
        return []
    ids = [row.id for row in rows]
    line_result = await session.execute(
        select(order_items)
        .where(order_items.c.order_id.in_(ids))
        .order_by(order_items.c.id)
    )
    lines_by_order: dict[int, list[OrderLine]] = {order_id: [] for order_id in ids}
    for line_row in line_result.all():
        lines_by_order[line_row.order_id].append(
            OrderLine(
                id=line_row.id,
                product_id=line_row.product_id,
                product_name=line_row.product_name,
                price=Decimal(str(line_row.price)),
                quantity=line_row.quantity,
            )
        )

    loaded = []
    for row in rows:
        order = Order(
            id=row.id,
            user_id=row.user_id,
            status=OrderStatus(row.status),
            shipping_address=row.shipping_address,
            payment_method=row.payment_method,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        for line in lines_by_order[row.id]:
            order.add_line(line)
        order.calculate_total()
        loaded.append(order)
    return loaded

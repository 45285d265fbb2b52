"""
Products Service: コマンドハンドラー

カタログの変更はトランザクションのコミット後に商品の事実を発行する。

reserve_stock は Orders Service が使う在庫境界。在庫確認と減算を
1 つの条件付き UPDATE で行うため、同時に引き当てても在庫が負にならない。
release_stock はその補償操作。
"""


import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.messaging import EventPublisher

from . import messaging, queries
from .exceptions import InsufficientStock, ProductNotFound
from .schema import products

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "description",
    "price",
    "stock",
    "category",
    "image_url",
    "active",
)


async def create_product(
    session: AsyncSession,
    publisher: EventPublisher,
    name: str,
    price: Decimal,
    category: str,
    stock: int = 0,
    description: str | None = None,
    image_url: str | None = None,
) -> dict:
    logger.info("Creating new product: %s", name)
    now = datetime.now(timezone.utc)
    result = await session.execute(
        insert(products)
        .values(
            name=name,
            description=description,
            price=price,
            stock=stock,
            category=category,
            image_url=image_url,
            active=True,
            created_at=now,
            updated_at=now,
        )
        .returning(products.c.id)
    )
    product_id = result.scalar_one()
    await session.commit()

    product = await queries.get_product(session, product_id)
    await publisher.publish(messaging.product_created(product))
    return product


async def update_product(
    session: AsyncSession,
    publisher: EventPublisher,
    product_id: int,
    changes: dict,
) -> dict:
    """部分更新: ``changes`` にあるキーだけを書き込む"""
    logger.info("Updating product with id: %s", product_id)
    values = {
        key: changes[key] for key in UPDATABLE_FIELDS if changes.get(key) is not None
    }
    values["updated_at"] = datetime.now(timezone.utc)

    result = await session.execute(
        update(products).where(products.c.id == product_id).values(**values)
    )
    if result.rowcount == 0:
        raise ProductNotFound(product_id)
    await session.commit()

    product = await queries.get_product(session, product_id)
    await publisher.publish(messaging.product_updated(product))
    return product


async def delete_product(
    session: AsyncSession,
    publisher: EventPublisher,
    product_id: int,
) -> None:
    """論理削除: 商品は削除せず無効化する"""
    logger.info("Deleting product with id: %s", product_id)
    result = await session.execute(
        update(products)
        .where(products.c.id == product_id)
        .values(active=False, updated_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        raise ProductNotFound(product_id)
    await session.commit()

    product = await queries.get_product(session, product_id)
    await publisher.publish(messaging.product_deleted(product))


async def update_stock(
    session: AsyncSession,
    publisher: EventPublisher,
    product_id: int,
    quantity: int,
) -> dict:
    """符号付きの在庫差分を適用する。結果が負になってはならない"""
    logger.info(
        "Updating stock for product: %s, quantity: %s", product_id, quantity
    )
    product = await queries.get_product(session, product_id)

    new_stock = product["stock"] + quantity
    if new_stock < 0:
        raise InsufficientStock(product["name"], product["stock"], -quantity)

    await session.execute(
        update(products)
        .where(products.c.id == product_id)
        .values(stock=new_stock, updated_at=datetime.now(timezone.utc))
    )
    await session.commit()

    product = await queries.get_product(session, product_id)
    await publisher.publish(messaging.stock_updated(product))
    return product


async def reserve_stock(session: AsyncSession, product_id: int, quantity: int) -> bool:
    logger.info(
        "Reserving stock for product: %s, quantity: %s", product_id, quantity
    )
    result = await session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.stock >= quantity)
        .values(
            stock=products.c.stock - quantity,
            updated_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount == 1:
        await session.commit()
        return True

    await session.rollback()
    product = await queries.get_product(session, product_id)
    logger.warning(
        "Insufficient stock for product: %s. Available: %s, Requested: %s",
        product_id,
        product["stock"],
        quantity,
    )
    return False


async def release_stock(session: AsyncSession, product_id: int, quantity: int) -> None:
    logger.info(
        "Releasing stock for product: %s, quantity: %s", product_id, quantity
    )
    result = await session.execute(
        update(products)
        .where(products.c.id == product_id)
        .values(
            stock=products.c.stock + quantity,
            updated_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount == 0:
        raise ProductNotFound(product_id)
    await session.commit()

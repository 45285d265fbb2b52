"""
Products Service: クエリハンドラー
"""


from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import ProductNotFound
from .schema import products

LOW_STOCK_THRESHOLD = 10


def _to_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "price": Decimal(str(row.price)),
        "stock": row.stock,
        "category": row.category,
        "imageUrl": row.image_url,
        "active": row.active,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


async def get_product(session: AsyncSession, product_id: int) -> dict:
    result = await session.execute(select(products).where(products.c.id == product_id))
    row = result.first()
    if row is None:
        raise ProductNotFound(product_id)
    return _to_dict(row)


async def list_products(session: AsyncSession) -> list[dict]:
    """有効な商品のみ"""
    result = await session.execute(
        select(products).where(products.c.active.is_(True)).order_by(products.c.id)
    )
    return [_to_dict(row) for row in result.all()]


async def list_products_by_category(session: AsyncSession, category: str) -> list[dict]:
    result = await session.execute(
        select(products)
        .where(products.c.category == category, products.c.active.is_(True))
        .order_by(products.c.id)
    )
    return [_to_dict(row) for row in result.all()]


async def list_low_stock(
    session: AsyncSession, threshold: int = LOW_STOCK_THRESHOLD
) -> list[dict]:
    """``stock <= threshold`` の有効な商品"""
    result = await session.execute(
        select(products)
        .where(products.c.stock <= threshold, products.c.active.is_(True))
        .order_by(products.c.stock)
    )
    return [_to_dict(row) for row in result.all()]


async def search_products(session: AsyncSession, term: str) -> list[dict]:
    """名前または説明に大文字小文字を区別せず一致する商品(無効な商品も含む)"""
    pattern = f"%{term}%"
    result = await session.execute(
        select(products)
        .where(products.c.name.ilike(pattern) | products.c.description.ilike(pattern))
        .order_by(products.c.id)
    )
    return [_to_dict(row) for row in result.all()]

"""
Users Service: クエリハンドラー
"""


from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import UserNotFound
from .schema import users


def _to_dict(row) -> dict:
    return {
        "id": row.id,
        "email": row.email,
        "fullName": row.full_name,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


async def get_user(session: AsyncSession, user_id: int) -> dict:
    result = await session.execute(select(users).where(users.c.id == user_id))
    row = result.first()
    if row is None:
        raise UserNotFound(user_id)
    return _to_dict(row)


async def find_by_email(session: AsyncSession, email: str) -> dict | None:
    result = await session.execute(select(users).where(users.c.email == email))
    row = result.first()
    return _to_dict(row) if row else None


async def list_users(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(users).order_by(users.c.id))
    return [_to_dict(row) for row in result.all()]

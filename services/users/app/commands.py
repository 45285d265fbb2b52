"""
Users Service: コマンドハンドラー

変更ごとに、トランザクションのコミット後にユーザーの事実を発行する:
user.registered, user.updated, user.deleted.
"""


import logging
from datetime import datetime, timezone

from sqlalchemy import delete, insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.messaging import DomainEvent, EventPublisher, EventType

from . import queries
from .exceptions import EmailAlreadyRegistered, UserNotFound
from .schema import users

logger = logging.getLogger(__name__)


def _user_event(event_type: EventType, user: dict) -> DomainEvent:
    payload = {"email": user["email"]}
    if event_type != EventType.USER_DELETED:
        payload["fullName"] = user["fullName"]
    return DomainEvent(event_type=event_type, subject_id=user["id"], payload=payload)


async def register_user(
    session: AsyncSession,
    publisher: EventPublisher,
    email: str,
    full_name: str,
) -> dict:
    logger.info("Registering new user: %s", email)
    if await queries.find_by_email(session, email) is not None:
        raise EmailAlreadyRegistered(email)

    now = datetime.now(timezone.utc)
    result = await session.execute(
        insert(users)
        .values(email=email, full_name=full_name, created_at=now, updated_at=now)
        .returning(users.c.id)
    )
    user_id = result.scalar_one()
    await session.commit()

    user = await queries.get_user(session, user_id)
    await publisher.publish(_user_event(EventType.USER_REGISTERED, user))
    return user


async def update_user(
    session: AsyncSession,
    publisher: EventPublisher,
    user_id: int,
    email: str | None = None,
    full_name: str | None = None,
) -> dict:
    logger.info("Updating user with id: %s", user_id)
    current = await queries.get_user(session, user_id)
    if email is not None and email != current["email"]:
        if await queries.find_by_email(session, email) is not None:
            raise EmailAlreadyRegistered(email)

    values: dict = {"updated_at": datetime.now(timezone.utc)}
    if email is not None:
        values["email"] = email
    if full_name is not None:
        values["full_name"] = full_name
    await session.execute(update(users).where(users.c.id == user_id).values(**values))
    await session.commit()

    user = await queries.get_user(session, user_id)
    await publisher.publish(_user_event(EventType.USER_UPDATED, user))
    return user


async def delete_user(
    session: AsyncSession,
    publisher: EventPublisher,
    user_id: int,
) -> None:
    logger.info("Deleting user with id: %s", user_id)
    user = await queries.get_user(session, user_id)
    result = await session.execute(delete(users).where(users.c.id == user_id))
    if result.rowcount == 0:
        raise UserNotFound(user_id)
    await session.commit()

    await publisher.publish(_user_event(EventType.USER_DELETED, user))

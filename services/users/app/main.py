"""
Users Service: FastAPI エントリーポイント

ユーザーレコードを所有し、ユーザーのライフサイクルの事実を発行する。
認証情報とトークン発行はこのサービスの外で扱う。
"""


import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.common.logconfig import configure_logging
from services.common.messaging import EventPublisher

from . import commands, queries
from .exceptions import UserServiceError
from .schema import init_schema

configure_logging("users-service")
logger = logging.getLogger(__name__)

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
publisher = EventPublisher()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_schema(engine)
    publisher.redis = aioredis.from_url(REDIS_URL, decode_responses=True)
    yield
    await publisher.redis.aclose()
    await engine.dispose()


app = FastAPI(title="Users Service", lifespan=lifespan)


@app.exception_handler(UserServiceError)
async def user_service_error_handler(request: Request, exc: UserServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ── Request Models ───────────────────────────────


class RegisterUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    full_name: str = Field(min_length=1, alias="fullName")


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    full_name: str | None = Field(default=None, alias="fullName")


# ── Endpoints ────────────────────────────────────


@app.post("/api/users", status_code=201)
async def register_user(req: RegisterUserRequest):
    async with async_session() as session:
        return await commands.register_user(
            session, publisher, req.email, req.full_name
        )


@app.put("/api/users/{user_id}")
async def update_user(user_id: int, req: UpdateUserRequest):
    async with async_session() as session:
        return await commands.update_user(
            session, publisher, user_id, req.email, req.full_name
        )


@app.delete("/api/users/{user_id}", status_code=204)
async def delete_user(user_id: int):
    async with async_session() as session:
        await commands.delete_user(session, publisher, user_id)
    return Response(status_code=204)


@app.get("/api/users")
async def list_users():
    async with async_session() as session:
        return await queries.list_users(session)


@app.get("/api/users/{user_id}")
async def get_user(user_id: int):
    async with async_session() as session:
        return await queries.get_user(session, user_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "users-service"}

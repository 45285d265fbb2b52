"""
Analytics Service: FastAPI エントリーポイント

Read 側のみのサービス。バックグラウンドタスクが product / user / order の
全 routing key を購読し、ローカルストアに畳み込む。HTTP API は
その結果のサマリーとイベントログを返す。

┌────────────────┐                  ┌───────────────────┐
│ Orders/Products│  ecommerce.      │ Analytics Service │
│ /Users         │ ── exchange ───▶ │ (read side only)  │
└────────────────┘  Redis Pub/Sub   └────────┬──────────┘
                                             │
                                    ┌────────▼──────────┐
                                    │  Analytics DB     │
                                    │  events + summary │
                                    └───────────────────┘
"""


import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.common.logconfig import configure_logging
from services.common.messaging import EventType
from services.common.subscriber import run_subscriber

from . import projections, queries
from .schema import init_schema
from .subscriber import build_handlers

configure_logging("analytics-service")
logger = logging.getLogger(__name__)

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ANALYTICS_DEDUPLICATE = os.environ.get("ANALYTICS_DEDUPLICATE", "false").lower() in (
    "1",
    "true",
    "yes",
)

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """ブローカーのサブスクライバーをバックグラウンドタスクとして起動"""
    await init_schema(engine)
    shutdown_event = asyncio.Event()
    subscriber_task = asyncio.create_task(
        run_subscriber(
            REDIS_URL,
            build_handlers(async_session, deduplicate=ANALYTICS_DEDUPLICATE),
            shutdown_event,
        )
    )
    yield
    shutdown_event.set()
    subscriber_task.cancel()
    try:
        await subscriber_task
    except asyncio.CancelledError:
        pass
    await engine.dispose()


app = FastAPI(title="Analytics Service", lifespan=lifespan)


@app.get("/api/analytics/summary")
async def get_summary():
    async with async_session() as session:
        return await queries.get_summary(session)


@app.post("/api/analytics/summary/rebuild")
async def rebuild_summary():
    async with async_session() as session:
        await projections.rebuild_summary(session)
        return await queries.get_summary(session)


@app.get("/api/analytics/events/recent")
async def get_recent_events(hours: int = 24):
    async with async_session() as session:
        return await queries.list_recent_events(session, hours)


@app.get("/api/analytics/events/type/{event_type}")
async def get_events_by_type(event_type: EventType):
    async with async_session() as session:
        return await queries.list_events_by_type(session, event_type)


@app.get("/api/analytics/events/user/{user_id}")
async def get_events_by_user(user_id: int):
    async with async_session() as session:
        return await queries.list_events_by_user(session, user_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "analytics-service"}

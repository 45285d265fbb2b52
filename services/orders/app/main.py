"""
Orders Service: FastAPI エントリーポイント

注文とその明細を所有する。注文作成時は Products Service を同期的に呼び出し
(商品照会 + 在庫引き当て)、その後 analytics / notifications が購読する
ブローカーに注文の事実を発行する。
"""


import asyncio
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
from .aggregate import OrderStatus, RequestedLine
from .exceptions import OrderServiceError
from .outbox import DeliveryMode, make_delivery, run_dispatcher
from .product_client import ProductServiceClient
from .reservation import ReservationMode
from .schema import init_schema

configure_logging("orders-service")
logger = logging.getLogger(__name__)

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
PRODUCTS_SERVICE_URL = os.environ.get("PRODUCTS_SERVICE_URL", "http://localhost:8081")
RESERVATION_MODE = ReservationMode(os.environ.get("RESERVATION_MODE", "none"))
EVENT_DELIVERY = DeliveryMode(os.environ.get("EVENT_DELIVERY", "direct"))
OUTBOX_POLL_INTERVAL = float(os.environ.get("OUTBOX_POLL_INTERVAL", "1.0"))

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
publisher = EventPublisher()
outbox_wakeup = asyncio.Event()
delivery = make_delivery(EVENT_DELIVERY, publisher, outbox_wakeup)
product_client = ProductServiceClient(PRODUCTS_SERVICE_URL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_schema(engine)
    publisher.redis = aioredis.from_url(REDIS_URL, decode_responses=True)

    shutdown_event = asyncio.Event()
    dispatcher_task = None
    if EVENT_DELIVERY == DeliveryMode.OUTBOX:
        dispatcher_task = asyncio.create_task(
            run_dispatcher(
                async_session,
                publisher,
                shutdown_event,
                outbox_wakeup,
                OUTBOX_POLL_INTERVAL,
            )
        )
    logger.info(
        "Orders service started (reservation=%s, delivery=%s)",
        RESERVATION_MODE.value,
        EVENT_DELIVERY.value,
    )
    yield
    shutdown_event.set()
    if dispatcher_task is not None:
        outbox_wakeup.set()
        await dispatcher_task
    await publisher.redis.aclose()
    await engine.dispose()


app = FastAPI(title="Orders Service", lifespan=lifespan)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ── Request Models ───────────────────────────────


class CreateOrderItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    items: list[CreateOrderItemRequest]
    shipping_address: str | None = Field(default=None, alias="shippingAddress")
    payment_method: str | None = Field(default=None, alias="paymentMethod")


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


# ── Command Endpoints (Write 側) ──────────────────


@app.post("/api/orders", status_code=201)
async def create_order(req: CreateOrderRequest):
    async with async_session() as session:
        order = await commands.create_order(
            session,
            product_client,
            delivery,
            user_id=req.user_id,
            items=[
                RequestedLine(product_id=item.product_id, quantity=item.quantity)
                for item in req.items
            ],
            shipping_address=req.shipping_address,
            payment_method=req.payment_method,
            reservation_mode=RESERVATION_MODE,
        )
        return order.to_dict()


@app.put("/api/orders/{order_id}/status")
async def update_order_status(order_id: int, req: UpdateOrderStatusRequest):
    async with async_session() as session:
        order = await commands.update_order_status(
            session, delivery, order_id, req.status
        )
        return order.to_dict()


@app.delete("/api/orders/{order_id}", status_code=204)
async def cancel_order(order_id: int):
    async with async_session() as session:
        await commands.cancel_order(session, delivery, order_id)
    return Response(status_code=204)


# ── Query Endpoints (Read 側) ─────────────────────


@app.get("/api/orders")
async def list_orders():
    async with async_session() as session:
        return await queries.list_orders(session)


@app.get("/api/orders/user/{user_id}")
async def list_orders_by_user(user_id: int):
    async with async_session() as session:
        return await queries.list_orders_by_user(session, user_id)


@app.get("/api/orders/status/{status}")
async def list_orders_by_status(status: OrderStatus):
    async with async_session() as session:
        return await queries.list_orders_by_status(session, status)


@app.get("/api/orders/{order_id}")
async def get_order(order_id: int):
    async with async_session() as session:
        return await queries.get_order(session, order_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "orders-service"}

"""
Products Service: FastAPI エントリーポイント

カタログと在庫数を所有する。Orders Service が使う同期の在庫境界
(照会 / 引き当て / 戻し)を公開し、商品の事実をブローカーに発行する。
"""


import logging
import os
from contextlib import asynccontextmanager
from decimal import Decimal

import redis.asyncio as aioredis
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.common.logconfig import configure_logging
from services.common.messaging import EventPublisher

from . import commands, queries
from .exceptions import ProductServiceError
from .schema import init_schema

configure_logging("products-service")
logger = logging.getLogger(__name__)

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
LOW_STOCK_THRESHOLD = int(
    os.environ.get("LOW_STOCK_THRESHOLD", str(queries.LOW_STOCK_THRESHOLD))
)

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


app = FastAPI(title="Products Service", lifespan=lifespan)


@app.exception_handler(ProductServiceError)
async def product_service_error_handler(request: Request, exc: ProductServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ── Request Models ───────────────────────────────


class ProductCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: str | None = None
    price: Decimal = Field(gt=0)
    stock: int = Field(default=0, ge=0)
    category: str = Field(min_length=1)
    image_url: str | None = Field(default=None, alias="imageUrl")


class ProductUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    description: str | None = None
    price: Decimal | None = Field(default=None, gt=0)
    stock: int | None = Field(default=None, ge=0)
    category: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    active: bool | None = None


class ProductStockUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int


# ── Command Endpoints (Write 側) ──────────────────


@app.post("/api/products", status_code=201)
async def create_product(req: ProductCreateRequest):
    async with async_session() as session:
        return await commands.create_product(
            session,
            publisher,
            name=req.name,
            price=req.price,
            category=req.category,
            stock=req.stock,
            description=req.description,
            image_url=req.image_url,
        )


@app.put("/api/products/{product_id}")
async def update_product(product_id: int, req: ProductUpdateRequest):
    async with async_session() as session:
        return await commands.update_product(
            session, publisher, product_id, req.model_dump(exclude_none=True)
        )


@app.delete("/api/products/{product_id}", status_code=204)
async def delete_product(product_id: int):
    async with async_session() as session:
        await commands.delete_product(session, publisher, product_id)
    return Response(status_code=204)


@app.post("/api/products/stock")
async def update_stock(req: ProductStockUpdate):
    async with async_session() as session:
        return await commands.update_stock(
            session, publisher, req.product_id, req.quantity
        )


@app.post("/api/products/{product_id}/reserve")
async def reserve_stock(product_id: int, quantity: int = Query(ge=1)):
    """在庫境界: 在庫が足りればアトミックに減算する"""
    async with async_session() as session:
        reserved = await commands.reserve_stock(session, product_id, quantity)
        return {"reserved": reserved}


@app.post("/api/products/{product_id}/release")
async def release_stock(product_id: int, quantity: int = Query(ge=1)):
    """作成されなかった注文の引き当てを戻す補償操作"""
    async with async_session() as session:
        await commands.release_stock(session, product_id, quantity)
        return {"released": True}


# ── Query Endpoints (Read 側) ─────────────────────


@app.get("/api/products")
async def list_products():
    async with async_session() as session:
        return await queries.list_products(session)


@app.get("/api/products/search")
async def search_products(search_term: str = Query(alias="searchTerm")):
    async with async_session() as session:
        return await queries.search_products(session, search_term)


@app.get("/api/products/low-stock")
async def list_low_stock(threshold: int = LOW_STOCK_THRESHOLD):
    async with async_session() as session:
        return await queries.list_low_stock(session, threshold)


@app.get("/api/products/category/{category}")
async def list_products_by_category(category: str):
    async with async_session() as session:
        return await queries.list_products_by_category(session, category)


@app.get("/api/products/{product_id}")
async def get_product(product_id: int):
    async with async_session() as session:
        return await queries.get_product(session, product_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "products-service"}

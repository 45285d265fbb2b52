import json
import os
import tempfile
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

# Service entry points read their configuration at import time.
_DB_DIR = tempfile.mkdtemp(prefix="ecommerce-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/services.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399")
os.environ.setdefault("PRODUCTS_SERVICE_URL", "http://products.test")

from services.common.messaging import EventPublisher  # noqa: E402
from services.orders.app.product_client import ProductServiceClient  # noqa: E402

PRODUCTS_URL = "http://products.test"


class FakeProductsService:
    """In-memory stand-in for the Products Service HTTP API."""

    def __init__(self, catalogue: dict[int, dict]):
        self.catalogue = catalogue
        self.calls: list[tuple[str, str]] = []
        self.broken: set[int] = set()

    def add(self, product_id: int, name: str, price: str, stock: int) -> None:
        self.catalogue[product_id] = {
            "id": product_id,
            "name": name,
            "price": price,
            "stock": stock,
        }

    def stock(self, product_id: int) -> int:
        return self.catalogue[product_id]["stock"]

    def calls_to(self, action: str) -> list[str]:
        return [path for method, path in self.calls if path.endswith(action)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        parts = request.url.path.strip("/").split("/")
        product_id = int(parts[2])
        product = self.catalogue.get(product_id)
        if product is None:
            return httpx.Response(404, json={"detail": f"Product not found with id: {product_id}"})
        if len(parts) == 3:
            return httpx.Response(200, json=product)

        if product_id in self.broken:
            return httpx.Response(503, json={"detail": "unavailable"})
        quantity = int(request.url.params["quantity"])
        if parts[3] == "reserve":
            if product["stock"] < quantity:
                return httpx.Response(200, json={"reserved": False})
            product["stock"] -= quantity
            return httpx.Response(200, json={"reserved": True})
        if parts[3] == "release":
            product["stock"] += quantity
            return httpx.Response(200, json={"released": True})
        return httpx.Response(404)


@pytest.fixture
def products_service():
    return FakeProductsService({})


@pytest.fixture
def product_client(products_service):
    return ProductServiceClient(
        PRODUCTS_URL, transport=httpx.MockTransport(products_service)
    )


@pytest.fixture
def redis_mock():
    return AsyncMock()


@pytest.fixture
def publisher(redis_mock):
    return EventPublisher(redis=redis_mock)


def published(redis_mock) -> list[tuple[str, dict]]:
    """(channel, message) pairs handed to the broker, in order."""
    return [
        (call.args[0], json.loads(call.args[1]))
        for call in redis_mock.publish.await_args_list
    ]


async def _session(tmp_path, name, init_schema):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/{name}.db")
    await init_schema(engine)
    return engine, sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def orders_db(tmp_path):
    from services.orders.app.schema import init_schema

    engine, factory = await _session(tmp_path, "orders", init_schema)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def orders_session(orders_db):
    async with orders_db() as session:
        yield session


@pytest_asyncio.fixture
async def products_session(tmp_path):
    from services.products.app.schema import init_schema

    engine, factory = await _session(tmp_path, "products", init_schema)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def users_session(tmp_path):
    from services.users.app.schema import init_schema

    engine, factory = await _session(tmp_path, "users", init_schema)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def analytics_db(tmp_path):
    from services.analytics.app.schema import init_schema

    engine, factory = await _session(tmp_path, "analytics", init_schema)
    yield factory
    await engine.dispose()


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))

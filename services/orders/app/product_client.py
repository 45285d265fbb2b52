"""
Orders Service: Products Service クライアント

在庫の所有者との同期 request/response 境界:
    GET  /api/products/{id}                    → {id, name, price, stock}
    POST /api/products/{id}/reserve?quantity=N → {"reserved": bool}
    POST /api/products/{id}/release?quantity=N → {"released": bool}
"""


import logging
from dataclasses import dataclass
from decimal import Decimal

import httpx

from .exceptions import ProductNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductInfo:
    id: int
    name: str
    price: Decimal
    stock: int


class ProductServiceClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def get_product(self, product_id: int) -> ProductInfo:
        """照会の失敗はすべて ProductNotFound として報告する"""
        logger.info("Fetching product %s from Products Service", product_id)
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}/api/products/{product_id}")
                resp.raise_for_status()
                data = resp.json()
            return ProductInfo(
                id=int(data["id"]),
                name=str(data["name"]),
                price=Decimal(str(data["price"])),
                stock=int(data["stock"]),
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error("Failed to fetch product %s: %s", product_id, e)
            raise ProductNotFound(product_id) from e

    async def reserve_stock(self, product_id: int, quantity: int) -> bool:
        """通信エラーとデコードエラーは呼び出し元に伝播する"""
        logger.info(
            "Reserving stock for product %s, quantity: %s", product_id, quantity
        )
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/api/products/{product_id}/reserve",
                params={"quantity": quantity},
            )
            resp.raise_for_status()
            return bool(resp.json().get("reserved", False))

    async def release_stock(self, product_id: int, quantity: int) -> bool:
        logger.info(
            "Releasing stock for product %s, quantity: %s", product_id, quantity
        )
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/api/products/{product_id}/release",
                params={"quantity": quantity},
            )
            resp.raise_for_status()
            return bool(resp.json().get("released", False))

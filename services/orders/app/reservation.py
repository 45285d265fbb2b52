"""
Orders Service: 在庫引き当て

組み立て済みの注文の全明細について、入力順に 1 行ずつ在庫を引き当てる。

2 つのポリシー:

  none        後の明細で失敗しても、先に引き当てた明細はそのまま残る。
              作成されなかった注文のために在庫が減ったままになりうる。
              従来の挙動であり、デフォルト。

  compensate  後続で失敗したら、引き当て済みの明細を新しい順に戻す
              (補償トランザクション)。戻しに失敗した場合はログに残し、
              元のエラーはそのまま伝播する。
"""


import logging
from enum import Enum

import httpx

from .aggregate import Order, OrderLine
from .exceptions import InsufficientStock, InvalidOrder
from .product_client import ProductServiceClient

logger = logging.getLogger(__name__)


class ReservationMode(str, Enum):
    NONE = "none"
    COMPENSATE = "compensate"


class StockReservationCoordinator:
    def __init__(
        self,
        products: ProductServiceClient,
        mode: ReservationMode = ReservationMode.NONE,
    ):
        self.products = products
        self.mode = mode
        self.reserved: list[OrderLine] = []

    @property
    def compensating(self) -> bool:
        return self.mode == ReservationMode.COMPENSATE

    async def reserve_all(self, order: Order) -> None:
        for line in order.lines:
            try:
                await self._reserve(line)
            except (InsufficientStock, InvalidOrder):
                if self.compensating:
                    await self.release_reserved()
                elif self.reserved:
                    logger.warning(
                        "Reservation failed for product %s; %d earlier reservation(s) "
                        "left in place",
                        line.product_id,
                        len(self.reserved),
                    )
                raise
            self.reserved.append(line)

    async def _reserve(self, line: OrderLine) -> None:
        try:
            reserved = await self.products.reserve_stock(
                line.product_id, line.quantity
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Failed to reserve stock for product %s: %s", line.product_id, e
            )
            raise InvalidOrder(
                f"Failed to reserve stock for product: {line.product_id}"
            ) from e

        if not reserved:
            raise InsufficientStock(line.product_id, line.product_name)

    async def release_reserved(self) -> None:
        """補償ステップ: ここまでに引き当てた分をすべて戻す"""
        while self.reserved:
            line = self.reserved.pop()
            try:
                await self.products.release_stock(line.product_id, line.quantity)
                logger.info(
                    "Released %s unit(s) of product %s (COMPENSATING)",
                    line.quantity,
                    line.product_id,
                )
            except (httpx.HTTPError, ValueError):
                logger.exception(
                    "Failed to release %s unit(s) of product %s",
                    line.quantity,
                    line.product_id,
                )

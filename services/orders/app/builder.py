"""
Orders Service: 注文ビルダー

要求された明細を 1 行ずつ、入力順に Products Service に問い合わせ、
メモリ上の注文を組み立てる。ここでは何も永続化しない。
どこかで失敗したらビルド全体を中断する。
"""


import logging
from collections.abc import Sequence

from .aggregate import Order, OrderLine, RequestedLine
from .exceptions import InsufficientStock, InvalidOrder
from .product_client import ProductServiceClient

logger = logging.getLogger(__name__)


async def build_order(
    products: ProductServiceClient,
    user_id: int,
    items: Sequence[RequestedLine],
    shipping_address: str | None = None,
    payment_method: str | None = None,
) -> Order:
    if not items:
        raise InvalidOrder("Order must contain at least one item")
    for item in items:
        if item.quantity < 1:
            raise InvalidOrder(
                f"Quantity must be at least 1 for product: {item.product_id}"
            )

    order = Order(
        user_id=user_id,
        shipping_address=shipping_address,
        payment_method=payment_method,
    )

    for item in items:
        product = await products.get_product(item.product_id)

        if product.stock < item.quantity:
            raise InsufficientStock(
                product.id, product.name, product.stock, item.quantity
            )

        order.add_line(
            OrderLine(
                product_id=product.id,
                product_name=product.name,
                price=product.price,
                quantity=item.quantity,
            )
        )

    order.calculate_total()
    logger.info(
        "Built order for user %s: %d line(s), total %s",
        user_id,
        len(order.lines),
        order.total_amount,
    )
    return order

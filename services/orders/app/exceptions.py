"""
Orders Service: エラー分類

NotFound -> 404, Invalid -> 400, InsufficientStock -> 409.
どの失敗もその操作にとっては終端(リトライしない)。
"""



class OrderServiceError(Exception):
    status_code = 500


class NotFound(OrderServiceError):
    status_code = 404


class OrderNotFound(NotFound):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found with id: {order_id}")


class ProductNotFound(NotFound):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class InvalidOrder(OrderServiceError):
    status_code = 400


class InvalidOrderState(InvalidOrder):
    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Cannot cancel order with status: {status}")


class InsufficientStock(OrderServiceError):
    status_code = 409

    def __init__(
        self,
        product_id: int,
        product_name: str | None = None,
        available: int | None = None,
        requested: int | None = None,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        if available is None:
            # Reservation refused: the product service does not report a count.
            message = f"Failed to reserve stock for product: {product_id}"
        else:
            message = (
                f"Insufficient stock for product: {product_name or product_id}. "
                f"Available: {available}, Requested: {requested}"
            )
        super().__init__(message)

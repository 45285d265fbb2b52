"""Products Service: コマンド / クエリハンドラーが送出するエラー"""



class ProductServiceError(Exception):
    status_code = 500


class ProductNotFound(ProductServiceError):
    status_code = 404

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found with id: {product_id}")


class InsufficientStock(ProductServiceError):
    status_code = 409

    def __init__(self, name: str, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product: {name}. "
            f"Available: {available}, Requested: {requested}"
        )

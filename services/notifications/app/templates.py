"""
Notifications Service: メッセージテンプレート

各テンプレートは件名とプレーンテキストの本文をレンダリングする。
"""


from dataclasses import dataclass


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


SIGNATURE = "Best regards,\nE-Commerce Team"


def order_confirmation(order_id: int, total_amount: str) -> RenderedMessage:
    return RenderedMessage(
        subject=f"Order Confirmation #{order_id}",
        body=(
            "Thank you for your order!\n\n"
            f"Order ID: {order_id}\n"
            f"Total Amount: {total_amount}\n\n"
            "Your order has been confirmed and will be processed soon.\n\n"
            f"{SIGNATURE}"
        ),
    )


def order_status_update(
    order_id: int, old_status: str, new_status: str
) -> RenderedMessage:
    return RenderedMessage(
        subject=f"Order Status Update #{order_id}",
        body=(
            "Your order status has been updated.\n\n"
            f"Order ID: {order_id}\n"
            f"Previous Status: {old_status}\n"
            f"New Status: {new_status}\n\n"
            "Thank you for your patience.\n\n"
            f"{SIGNATURE}"
        ),
    )


def welcome(full_name: str, email: str) -> RenderedMessage:
    return RenderedMessage(
        subject="Welcome to Our E-Commerce Platform!",
        body=(
            f"Hello {full_name},\n\n"
            "Welcome to our e-commerce platform! "
            "We're excited to have you on board.\n\n"
            f"Your account has been successfully created with email: {email}\n\n"
            "Start exploring our products and enjoy shopping!\n\n"
            f"{SIGNATURE}"
        ),
    )


def low_stock_alert(product_id: int, product_name: str, stock: int) -> RenderedMessage:
    return RenderedMessage(
        subject=f"Low Stock Alert: {product_name}",
        body=(
            "ALERT: Low stock detected\n\n"
            f"Product: {product_name} (ID: {product_id})\n"
            f"Current Stock: {stock} units\n\n"
            "Please restock this product soon.\n\n"
            "E-Commerce System"
        ),
    )

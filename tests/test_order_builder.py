from decimal import Decimal

import pytest

from services.orders.app.aggregate import Order, OrderLine, OrderStatus, RequestedLine
from services.orders.app.builder import build_order
from services.orders.app.exceptions import (
    InsufficientStock,
    InvalidOrder,
    InvalidOrderState,
    ProductNotFound,
)


class TestOrderAggregate:
    def test_line_subtotal_is_price_times_quantity(self):
        line = OrderLine(product_id=1, product_name="Pen", price=Decimal("2.50"), quantity=4)
        assert line.subtotal == Decimal("10.00")

    def test_total_only_changes_on_calculate(self):
        order = Order(user_id=1)
        order.add_line(OrderLine(1, "Pen", Decimal("2.50"), 2))
        order.add_line(OrderLine(2, "Ink", Decimal("3.25"), 1))
        assert order.total_amount == Decimal("0.00")

        order.calculate_total()
        assert order.total_amount == Decimal("8.25")

    def test_total_is_read_only(self):
        order = Order(user_id=1)
        with pytest.raises(AttributeError):
            order.total_amount = Decimal("1.00")

    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_cancel_rejected_after_shipping(self, status):
        order = Order(user_id=1, status=status)
        with pytest.raises(InvalidOrderState, match=status.value):
            order.cancel()
        assert order.status == status

    def test_cancel_returns_previous_status(self):
        order = Order(user_id=1, status=OrderStatus.PROCESSING)
        assert order.cancel() == OrderStatus.PROCESSING
        assert order.status == OrderStatus.CANCELLED


class TestBuildOrder:
    async def test_prices_lines_from_catalogue(self, product_client, products_service):
        products_service.add(3, "Widget", "10.00", 5)
        products_service.add(4, "Gadget", "2.50", 100)

        order = await build_order(
            product_client,
            user_id=7,
            items=[RequestedLine(3, 2), RequestedLine(4, 3)],
            shipping_address="1 Main St",
        )

        assert order.status == OrderStatus.PENDING
        assert order.id is None
        assert [line.product_name for line in order.lines] == ["Widget", "Gadget"]
        assert order.lines[0].subtotal == Decimal("20.00")
        assert order.total_amount == Decimal("27.50")
        assert order.shipping_address == "1 Main St"

    async def test_empty_item_list_makes_no_lookups(self, product_client, products_service):
        with pytest.raises(InvalidOrder):
            await build_order(product_client, user_id=7, items=[])
        assert products_service.calls == []

    async def test_non_positive_quantity_rejected(self, product_client, products_service):
        products_service.add(3, "Widget", "10.00", 5)
        with pytest.raises(InvalidOrder):
            await build_order(product_client, 7, [RequestedLine(3, 0)])
        assert products_service.calls == []

    async def test_insufficient_stock_reports_counts(self, product_client, products_service):
        products_service.add(3, "Widget", "10.00", 1)

        with pytest.raises(InsufficientStock) as excinfo:
            await build_order(product_client, 7, [RequestedLine(3, 5)])

        assert excinfo.value.available == 1
        assert excinfo.value.requested == 5
        assert "Available: 1, Requested: 5" in str(excinfo.value)

    async def test_stops_at_first_failing_line(self, product_client, products_service):
        products_service.add(1, "A", "1.00", 0)
        products_service.add(2, "B", "1.00", 10)

        with pytest.raises(InsufficientStock):
            await build_order(product_client, 7, [RequestedLine(1, 1), RequestedLine(2, 1)])

        assert products_service.calls == [("GET", "/api/products/1")]

    async def test_unknown_product(self, product_client):
        with pytest.raises(ProductNotFound):
            await build_order(product_client, 7, [RequestedLine(99, 1)])

"""Tests for order placement, cancellation and status updates."""

import asyncio

import fakeredis
import fakeredis.aioredis
import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from conftest import auth_header, order_payload
from storefront.common import redis_client
from storefront.common.database import AsyncSessionLocal
from storefront.common.errors import InsufficientStock, InvalidTransition, ProductUnavailable, StoreUnavailable
from storefront.inventory import guard
from storefront.orders import service as order_service
from storefront.orders.model import Order, OrderStatus
from storefront.orders.schemas import CreateOrderRequest
from storefront.orders.service import cancel_order, place_order, update_order_status


async def count_orders() -> int:
    async with AsyncSessionLocal() as session:
        return (await session.execute(sa.select(sa.func.count(Order.id)))).scalar()


async def order_status(order_id: int) -> str:
    async with AsyncSessionLocal() as session:
        return (await session.get(Order, order_id)).status


def disk_error() -> OperationalError:
    return OperationalError("UPDATE product_sizes", {}, Exception("disk I/O error"))


def unreachable_redis():
    server = fakeredis.FakeServer()
    server.connected = False
    return fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)


class _BrokenSession:
    """Stands in for a session whose database has gone away."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def begin(self):
        return self

    async def get(self, *args, **kwargs):
        raise OperationalError("SELECT orders", {}, Exception("database is locked"))


class TestPlaceOrder:
    async def test_reserves_stock_and_prices_order(self, client, customer, customer_headers, make_product):
        product = await make_product(sizes={"S": 5, "M": 8})
        response = await client.post(
            "/api/orders", json=order_payload((product.id, "M", 3)), headers=customer_headers
        )
        assert response.status_code == 201
        order = (await response.get_json())["order"]
        assert order["status"] == "pending"
        assert order["user"] == customer.id
        assert order["orderNumber"].startswith("ORD")
        assert order["items"][0]["price"] == pytest.approx(299.99)
        assert order["pricing"]["subtotal"] == pytest.approx(899.97)
        assert order["pricing"]["tax"] == pytest.approx(89.997)
        assert order["pricing"]["shipping"] == 0
        assert order["pricing"]["total"] == pytest.approx(989.967)
        assert order["billingAddress"] == order["shippingAddress"]
        assert await guard.get_stock(product.id, "M") == 5
        assert await guard.get_stock(product.id, "S") == 5

    async def test_refreshes_stock_cache(self, store, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        await client.post("/api/orders", json=order_payload((product.id, "M", 2)), headers=customer_headers)
        assert await store.get(f"product:{product.id}:stock:M") == "6"

    async def test_out_of_stock_size(self, client, customer_headers, make_product):
        product = await make_product(sizes={"S": 0, "M": 8})
        response = await client.post(
            "/api/orders", json=order_payload((product.id, "S", 1)), headers=customer_headers
        )
        assert response.status_code == 400
        body = await response.get_json()
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert body["details"] == {"product": product.id, "size": "S", "requested": 1, "available": 0}
        assert await count_orders() == 0

    async def test_size_not_stocked_counts_as_zero(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        response = await client.post(
            "/api/orders", json=order_payload((product.id, "XXL", 1)), headers=customer_headers
        )
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "INSUFFICIENT_STOCK"

    async def test_inactive_product(self, client, customer_headers, admin_headers, make_product):
        product = await make_product(sizes={"M": 8})
        await client.delete(f"/api/products/{product.id}", headers=admin_headers)
        response = await client.post(
            "/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers
        )
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "PRODUCT_UNAVAILABLE"
        assert await guard.get_stock(product.id, "M") == 8

    async def test_unknown_product(self, client, customer_headers):
        response = await client.post("/api/orders", json=order_payload((404, "M", 1)), headers=customer_headers)
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "PRODUCT_UNAVAILABLE"

    async def test_failing_line_leaves_earlier_lines_untouched(self, client, customer_headers, make_product):
        dress = await make_product(name="Casual Summer Dress", price="89.99", sizes={"M": 4})
        gown = await make_product(name="Wedding Guest Dress", price="199.99", sizes={"L": 1})
        response = await client.post(
            "/api/orders",
            json=order_payload((dress.id, "M", 2), (gown.id, "L", 2)),
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert (await response.get_json())["details"]["product"] == gown.id
        assert await guard.get_stock(dress.id, "M") == 4
        assert await guard.get_stock(gown.id, "L") == 1
        assert await count_orders() == 0

    async def test_same_size_on_two_lines_is_checked_in_total(self, customer, make_product):
        product = await make_product(sizes={"M": 3})
        request = CreateOrderRequest.model_validate(order_payload((product.id, "M", 2), (product.id, "M", 2)))
        with pytest.raises(InsufficientStock):
            await place_order(customer.id, request)
        assert await guard.get_stock(product.id, "M") == 3
        assert await count_orders() == 0

    async def test_price_is_captured_at_order_time(self, client, customer_headers, admin_headers, make_product):
        product = await make_product(price="50.00", sizes={"M": 4})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        await client.put(f"/api/products/{product.id}", json={"price": "75.00"}, headers=admin_headers)
        response = await client.get(f"/api/orders/{order_id}", headers=customer_headers)
        order = (await response.get_json())["order"]
        assert order["items"][0]["price"] == pytest.approx(50.0)
        assert order["pricing"]["shipping"] == 15

    async def test_order_numbers_are_sequential(self, customer, make_product):
        product = await make_product(sizes={"M": 5})
        request = CreateOrderRequest.model_validate(order_payload((product.id, "M", 1)))
        first = await place_order(customer.id, request)
        second = await place_order(customer.id, request)
        assert first.order_number[:-4] == second.order_number[:-4]
        assert int(second.order_number[-4:]) == int(first.order_number[-4:]) + 1

    async def test_requires_token(self, client, make_product):
        product = await make_product(sizes={"M": 5})
        response = await client.post("/api/orders", json=order_payload((product.id, "M", 1)))
        assert response.status_code == 401
        assert (await response.get_json())["error"] == "TOKEN_REQUIRED"

    async def test_validation_error(self, client, customer_headers):
        response = await client.post(
            "/api/orders", json={"items": [], "paymentInfo": {"method": "barter"}}, headers=customer_headers
        )
        assert response.status_code == 400
        body = await response.get_json()
        assert body["error"] == "VALIDATION_ERROR"
        fields = {e["field"] for e in body["details"]["errors"]}
        assert "items" in fields
        assert "shippingAddress" in fields

    async def test_zero_quantity_rejected(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 5})
        response = await client.post(
            "/api/orders", json=order_payload((product.id, "M", 0)), headers=customer_headers
        )
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "VALIDATION_ERROR"

    async def test_rejected_carts_do_not_consume_numbers(self, customer, make_product):
        product = await make_product(sizes={"M": 1})
        with pytest.raises(InsufficientStock):
            await place_order(customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 2))))
        with pytest.raises(ProductUnavailable):
            await place_order(customer.id, CreateOrderRequest.model_validate(order_payload((999, "M", 1))))
        order = await place_order(customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 1))))
        assert order.order_number.endswith("0001")

    async def test_unknown_product_reported_while_redis_is_down(self, monkeypatch, customer):
        monkeypatch.setattr(redis_client, "_redis", unreachable_redis())
        with pytest.raises(ProductUnavailable):
            await place_order(customer.id, CreateOrderRequest.model_validate(order_payload((999, "M", 1))))

    async def test_redis_down_leaves_stock_untouched(self, monkeypatch, customer, make_product):
        product = await make_product(sizes={"M": 4})
        monkeypatch.setattr(redis_client, "_redis", unreachable_redis())
        with pytest.raises(StoreUnavailable):
            await place_order(customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 2))))
        assert await guard.get_stock(product.id, "M") == 4
        assert await count_orders() == 0

    async def test_store_failure_mid_reservation_rolls_back(self, monkeypatch, customer, make_product):
        dress = await make_product(name="Casual Summer Dress", price="89.99", sizes={"M": 4})
        gown = await make_product(name="Wedding Guest Dress", price="199.99", sizes={"L": 3})
        real_adjust = guard.adjust_stock
        calls = []

        async def failing_adjust(product_id, size, delta, session=None):
            calls.append((product_id, size))
            if len(calls) == 2:
                raise disk_error()
            return await real_adjust(product_id, size, delta, session=session)

        monkeypatch.setattr(guard, "adjust_stock", failing_adjust)
        request = CreateOrderRequest.model_validate(order_payload((dress.id, "M", 2), (gown.id, "L", 1)))
        with pytest.raises(StoreUnavailable):
            await place_order(customer.id, request)
        assert calls == [(dress.id, "M"), (gown.id, "L")]
        assert await guard.get_stock(dress.id, "M") == 4
        assert await guard.get_stock(gown.id, "L") == 3
        assert await count_orders() == 0

    async def test_concurrent_orders_for_last_unit(self, customer, make_product):
        product = await make_product(sizes={"M": 1})
        request = CreateOrderRequest.model_validate(order_payload((product.id, "M", 1)))
        results = await asyncio.gather(
            *[place_order(customer.id, request) for _ in range(6)],
            return_exceptions=True,
        )
        placed = [r for r in results if isinstance(r, Order)]
        rejected = [r for r in results if isinstance(r, InsufficientStock)]
        assert len(placed) == 1
        assert len(rejected) == 5
        assert await guard.get_stock(product.id, "M") == 0
        assert await count_orders() == 1


class TestCancelOrder:
    async def test_restores_stock(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 3)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        assert await guard.get_stock(product.id, "M") == 5

        response = await client.put(f"/api/orders/{order_id}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert (await response.get_json())["order"]["status"] == "cancelled"
        assert await guard.get_stock(product.id, "M") == 8

    async def test_double_cancel_restores_once(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 3)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        await client.put(f"/api/orders/{order_id}/cancel", headers=customer_headers)

        response = await client.put(f"/api/orders/{order_id}/cancel", headers=customer_headers)
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "INVALID_TRANSITION"
        assert await guard.get_stock(product.id, "M") == 8

    async def test_concurrent_cancels_restore_once(self, customer, make_product):
        product = await make_product(sizes={"M": 8})
        order = await place_order(
            customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 3)))
        )
        results = await asyncio.gather(
            *[cancel_order(order.id, customer.id) for _ in range(4)],
            return_exceptions=True,
        )
        assert len([r for r in results if isinstance(r, Order)]) == 1
        assert len([r for r in results if isinstance(r, InvalidTransition)]) == 3
        assert await guard.get_stock(product.id, "M") == 8

    async def test_multi_line_restore(self, client, customer_headers, make_product):
        dress = await make_product(name="Casual Summer Dress", price="89.99", sizes={"S": 10, "M": 12})
        created = await client.post(
            "/api/orders",
            json=order_payload((dress.id, "S", 2), (dress.id, "M", 1)),
            headers=customer_headers,
        )
        order_id = (await created.get_json())["order"]["id"]
        await client.put(f"/api/orders/{order_id}/cancel", headers=customer_headers)
        assert await guard.get_stock(dress.id, "S") == 10
        assert await guard.get_stock(dress.id, "M") == 12

    @pytest.mark.parametrize("status", ["shipped", "delivered"])
    async def test_not_cancellable_once_dispatched(self, status, customer, make_product):
        product = await make_product(sizes={"M": 8})
        order = await place_order(
            customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 1)))
        )
        await update_order_status(order.id, OrderStatus(status))
        with pytest.raises(InvalidTransition):
            await cancel_order(order.id, customer.id)
        assert await guard.get_stock(product.id, "M") == 7

    async def test_confirmed_order_can_be_cancelled(self, customer, make_product):
        product = await make_product(sizes={"M": 8})
        order = await place_order(
            customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 2)))
        )
        await update_order_status(order.id, OrderStatus.CONFIRMED)
        cancelled = await cancel_order(order.id, customer.id)
        assert cancelled.status == "cancelled"
        assert await guard.get_stock(product.id, "M") == 8

    async def test_other_customer_forbidden(self, client, customer_headers, other_customer, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]

        response = await client.put(f"/api/orders/{order_id}/cancel", headers=auth_header(other_customer))
        assert response.status_code == 403
        assert (await response.get_json())["error"] == "FORBIDDEN"
        assert await guard.get_stock(product.id, "M") == 7

    async def test_store_failure_during_restore_rolls_back(self, monkeypatch, customer, make_product):
        product = await make_product(sizes={"M": 8})
        order = await place_order(
            customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "M", 3)))
        )

        async def failing_restore(session, product_id, size, quantity):
            raise disk_error()

        monkeypatch.setattr(guard, "restore_stock", failing_restore)
        with pytest.raises(StoreUnavailable):
            await cancel_order(order.id, customer.id)
        assert await order_status(order.id) == "pending"
        assert await guard.get_stock(product.id, "M") == 5

    async def test_unknown_order(self, client, customer_headers):
        response = await client.put("/api/orders/999/cancel", headers=customer_headers)
        assert response.status_code == 404
        assert (await response.get_json())["error"] == "NOT_FOUND"

    async def test_recreates_removed_size_entry(self, customer, make_product):
        product = await make_product(sizes={"M": 2, "L": 1})
        order = await place_order(
            customer.id, CreateOrderRequest.model_validate(order_payload((product.id, "L", 1)))
        )
        async with AsyncSessionLocal() as session:
            async with session.begin():
                await session.execute(sa.text("DELETE FROM product_sizes WHERE size = 'L'"))
        await cancel_order(order.id, customer.id)
        assert await guard.get_stock(product.id, "L") == 1


class TestOrderQueries:
    async def test_my_orders(self, client, customer_headers, other_customer, make_product):
        product = await make_product(sizes={"M": 8})
        await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=auth_header(other_customer))

        response = await client.get("/api/orders/my-orders?limit=1", headers=customer_headers)
        assert response.status_code == 200
        body = await response.get_json()
        assert len(body["orders"]) == 1
        assert body["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalOrders": 2,
            "hasNextPage": True,
            "hasPrevPage": False,
        }

    async def test_my_orders_status_filter(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        await client.put(f"/api/orders/{order_id}/cancel", headers=customer_headers)

        response = await client.get("/api/orders/my-orders?status=cancelled", headers=customer_headers)
        orders = (await response.get_json())["orders"]
        assert [o["id"] for o in orders] == [order_id]

    async def test_detail_visible_to_admin_not_to_others(
        self, client, customer_headers, admin_headers, other_customer, make_product
    ):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]

        assert (await client.get(f"/api/orders/{order_id}", headers=admin_headers)).status_code == 200
        assert (await client.get(f"/api/orders/{order_id}", headers=auth_header(other_customer))).status_code == 403


class TestStatusUpdate:
    async def test_admin_sets_status_without_touching_stock(self, client, customer_headers, admin_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 2)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]

        response = await client.put(
            f"/api/orders/{order_id}/status", json={"status": "shipped", "note": "Left the warehouse"}, headers=admin_headers
        )
        assert response.status_code == 200
        order = (await response.get_json())["order"]
        assert order["status"] == "shipped"
        assert order["notes"] == "Left the warehouse"
        assert await guard.get_stock(product.id, "M") == 6

    async def test_admin_cancel_status_does_not_restore(self, client, customer_headers, admin_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 2)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        await client.put(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=admin_headers)
        assert await guard.get_stock(product.id, "M") == 6

    async def test_customer_cannot_set_status(self, client, customer_headers, make_product):
        product = await make_product(sizes={"M": 8})
        created = await client.post("/api/orders", json=order_payload((product.id, "M", 1)), headers=customer_headers)
        order_id = (await created.get_json())["order"]["id"]
        response = await client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=customer_headers)
        assert response.status_code == 403

    async def test_unknown_status_rejected(self, client, admin_headers):
        response = await client.put("/api/orders/1/status", json={"status": "lost"}, headers=admin_headers)
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "VALIDATION_ERROR"

    async def test_store_failure_reported_as_unavailable(self, monkeypatch):
        monkeypatch.setattr(order_service, "AsyncSessionLocal", _BrokenSession)
        with pytest.raises(StoreUnavailable):
            await update_order_status(1, OrderStatus.SHIPPED)

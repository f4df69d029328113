"""Order placement, cancellation and order queries.

Placement and cancellation each run in one database transaction: stock moves
and the order row commit together or not at all. Cache refresh, events and
metrics happen only after the commit.
"""
import logging
from typing import List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from ..auth.model import User
from ..common.database import AsyncSessionLocal
from ..common.errors import Forbidden, InsufficientStock, InvalidTransition, NotFound, ProductUnavailable, StoreUnavailable
from ..common.kafka_client import publish_event
from ..common.metrics import ORDER_REJECTIONS, ORDERS_CANCELLED, ORDERS_PLACED
from ..common.pagination import paginate
from ..common.sequence import ORDER_PREFIX, next_number
from ..inventory import guard
from ..inventory.model import Product
from ..inventory.service import refresh_stock_cache
from .model import NON_CANCELLABLE, Order, OrderItem, OrderStatus
from .pricing import price_order
from .schemas import AdminOrderQuery, CreateOrderRequest, OrderQuery

_logger = logging.getLogger(__name__)


async def place_order(user_id: int, request: CreateOrderRequest) -> Order:
    """Validate the cart, reserve stock for every line and persist a pending order.

    Raises ProductUnavailable or InsufficientStock (naming the failing line)
    with no stock moved, or StoreUnavailable if the database fails.
    """
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                items: List[OrderItem] = []
                for line in request.items:
                    product = await session.get(Product, line.product)
                    if product is None or not product.is_active:
                        raise ProductUnavailable(line.product)
                    size = line.size.value
                    try:
                        available = await guard.get_stock(product.id, size, session=session)
                    except NotFound:
                        available = 0
                    if line.quantity > available:
                        raise InsufficientStock(product.id, size, line.quantity, available, name=product.name)
                    items.append(
                        OrderItem(
                            product_id=product.id,
                            product_name=product.name,
                            quantity=line.quantity,
                            size=size,
                            color=line.color,
                            price=product.price,
                        )
                    )

                pricing = price_order((item.price, item.quantity) for item in items)

                # The conditional decrement is authoritative. A failure here
                # rolls back the lines already reserved.
                for item in items:
                    await guard.adjust_stock(item.product_id, item.size, -item.quantity, session=session)

                # Numbered only once the cart is reserved, so rejected carts
                # never consume a number.
                order_number = await next_number(ORDER_PREFIX)

                shipping = request.shippingAddress.model_dump()
                billing = request.billingAddress.model_dump() if request.billingAddress else shipping
                order = Order(
                    order_number=order_number,
                    user_id=user_id,
                    status=OrderStatus.PENDING.value,
                    items=items,
                    shipping_address=shipping,
                    billing_address=billing,
                    payment_method=request.paymentInfo.method,
                    subtotal=pricing.subtotal,
                    tax=pricing.tax,
                    shipping=pricing.shipping,
                    total=pricing.total,
                    notes=request.notes,
                )
                session.add(order)
            await session.refresh(order)
    except ProductUnavailable:
        ORDER_REJECTIONS.labels(reason="product_unavailable").inc()
        raise
    except InsufficientStock as e:
        ORDER_REJECTIONS.labels(reason="insufficient_stock").inc()
        _logger.info("Order rejected | user_id=%s product_id=%s size=%s requested=%s available=%s", user_id, e.product_id, e.size, e.requested, e.available)
        raise
    except SQLAlchemyError as e:
        _logger.error("Order placement failed in store | user_id=%s err=%s", user_id, e)
        raise StoreUnavailable("Failed to create order") from e

    ORDERS_PLACED.inc()
    _logger.info("Order placed | order_id=%s number=%s user_id=%s total=%s", order.id, order.order_number, user_id, order.total)
    await refresh_stock_cache(item.product_id for item in order.items)
    await publish_event("order.placed", _event_payload(order), key=order.order_number)
    return order


async def cancel_order(order_id: int, user_id: int) -> Order:
    """Owner-initiated cancellation; gives back exactly what the order reserved."""
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                order = await session.get(Order, order_id)
                if order is None:
                    raise NotFound("Order", order_id)
                if order.user_id != user_id:
                    raise Forbidden()
                observed = order.status
                if observed in NON_CANCELLABLE:
                    raise InvalidTransition(order_id, observed, OrderStatus.CANCELLED.value)

                # Keyed on the status we saw: a concurrent cancel that got there
                # first leaves zero rows to update, so stock is restored once.
                res = await session.execute(
                    sa.update(Order)
                    .where(Order.id == order_id, Order.status == observed)
                    .values(status=OrderStatus.CANCELLED.value)
                    .execution_options(synchronize_session=False)
                )
                if not res.rowcount:
                    raise InvalidTransition(order_id, observed, OrderStatus.CANCELLED.value)

                for item in order.items:
                    await guard.restore_stock(session, item.product_id, item.size, item.quantity)
            await session.refresh(order)
    except SQLAlchemyError as e:
        _logger.error("Order cancellation failed in store | order_id=%s err=%s", order_id, e)
        raise StoreUnavailable("Failed to cancel order") from e

    ORDERS_CANCELLED.inc()
    _logger.info("Order cancelled | order_id=%s number=%s user_id=%s from_status=%s", order.id, order.order_number, user_id, observed)
    await refresh_stock_cache(item.product_id for item in order.items)
    await publish_event("order.cancelled", _event_payload(order), key=order.order_number)
    return order


async def update_order_status(order_id: int, status: OrderStatus, note: Optional[str] = None) -> Order:
    """Admin override: any status is accepted and stock is left untouched."""
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                order = await session.get(Order, order_id)
                if order is None:
                    raise NotFound("Order", order_id)
                previous = order.status
                order.status = status.value
                if note:
                    order.notes = note
            await session.refresh(order)
    except SQLAlchemyError as e:
        _logger.error("Order status update failed in store | order_id=%s err=%s", order_id, e)
        raise StoreUnavailable("Failed to update order status") from e
    _logger.info("Order status set | order_id=%s from=%s to=%s", order_id, previous, status.value)
    await publish_event("order.status_changed", {**_event_payload(order), "previous": previous}, key=order.order_number)
    return order


async def get_order(order_id: int, user: User) -> Order:
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
    if order is None:
        raise NotFound("Order", order_id)
    if order.user_id != user.id and not user.is_admin:
        raise Forbidden()
    return order


async def list_user_orders(user_id: int, query: OrderQuery) -> Tuple[List[Order], int]:
    stmt = sa.select(Order).where(Order.user_id == user_id)
    if query.status:
        stmt = stmt.where(Order.status == query.status.value)
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)


async def list_all_orders(query: AdminOrderQuery) -> Tuple[List[Order], int]:
    stmt = sa.select(Order)
    if query.status:
        stmt = stmt.where(Order.status == query.status.value)
    if query.search:
        pattern = f"%{query.search}%"
        stmt = stmt.where(
            sa.or_(
                Order.order_number.ilike(pattern),
                Order.shipping_address["name"].as_string().ilike(pattern),
            )
        )
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)


def _event_payload(order: Order) -> dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status,
        "total": str(order.total),
        "items": [
            {"product_id": i.product_id, "size": i.size, "quantity": i.quantity}
            for i in order.items
        ],
    }

from quart import Blueprint, g, jsonify

from ..auth.guards import require_admin, require_user
from ..common.pagination import pagination_block
from ..common.validation import parse_args, parse_body
from .schemas import CreateOrderRequest, OrderQuery, StatusUpdateRequest
from .service import cancel_order, get_order, list_user_orders, place_order, update_order_status

bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@bp.post("")
@require_user
async def order_create():
    data = await parse_body(CreateOrderRequest)
    order = await place_order(g.user.id, data)
    return jsonify({"message": "Order created successfully", "order": order.to_dict()}), 201


@bp.get("/my-orders")
@require_user
async def my_orders():
    query = parse_args(OrderQuery)
    orders, total = await list_user_orders(g.user.id, query)
    return jsonify({
        "message": "Orders retrieved successfully",
        "orders": [o.to_dict() for o in orders],
        "pagination": pagination_block(query.page, query.limit, total, "totalOrders"),
    })


@bp.get("/<int:order_id>")
@require_user
async def order_detail(order_id: int):
    order = await get_order(order_id, g.user)
    return jsonify({"message": "Order retrieved successfully", "order": order.to_dict()})


@bp.put("/<int:order_id>/cancel")
@require_user
async def order_cancel(order_id: int):
    order = await cancel_order(order_id, g.user.id)
    return jsonify({"message": "Order cancelled successfully", "order": order.to_dict()})


@bp.put("/<int:order_id>/status")
@require_admin
async def order_status(order_id: int):
    data = await parse_body(StatusUpdateRequest)
    order = await update_order_status(order_id, data.status, data.note)
    return jsonify({"message": "Order status updated successfully", "order": order.to_dict()})

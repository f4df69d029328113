from quart import Blueprint, jsonify

from ..auth.guards import require_admin
from ..common.pagination import pagination_block
from ..common.validation import parse_args
from ..custom_requests.schemas import AdminRequestQuery
from ..custom_requests.service import list_all_requests
from ..orders.schemas import AdminOrderQuery
from ..orders.service import list_all_orders
from .service import UserQuery, list_users

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@bp.get("/orders")
@require_admin
async def admin_orders():
    query = parse_args(AdminOrderQuery)
    orders, total = await list_all_orders(query)
    return jsonify({
        "message": "Orders retrieved successfully",
        "orders": [o.to_dict() for o in orders],
        "pagination": pagination_block(query.page, query.limit, total, "totalOrders"),
    })


@bp.get("/custom-requests")
@require_admin
async def admin_custom_requests():
    query = parse_args(AdminRequestQuery)
    requests, total = await list_all_requests(query)
    return jsonify({
        "message": "Custom requests retrieved successfully",
        "requests": [r.to_dict() for r in requests],
        "pagination": pagination_block(query.page, query.limit, total, "totalRequests"),
    })


@bp.get("/users")
@require_admin
async def admin_users():
    query = parse_args(UserQuery)
    users, total = await list_users(query)
    return jsonify({
        "message": "Users retrieved successfully",
        "users": [u.to_dict() for u in users],
        "pagination": pagination_block(query.page, query.limit, total, "totalUsers"),
    })

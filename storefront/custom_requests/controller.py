from quart import Blueprint, g, jsonify

from ..auth.guards import optional_user, require_admin, require_user
from ..common.pagination import pagination_block
from ..common.validation import parse_args, parse_body
from .schemas import CommunicationRequest, CreateCustomRequest, RequestQuery, StatusUpdateRequest
from .service import add_communication, get_request, list_user_requests, submit_request, update_request_status

bp = Blueprint("custom_requests", __name__, url_prefix="/api/custom-requests")


@bp.post("")
@optional_user
async def request_create():
    data = await parse_body(CreateCustomRequest)
    request = await submit_request(g.user.id if g.user else None, data)
    return jsonify({"message": "Custom request submitted successfully", "request": request.to_dict()}), 201


@bp.get("/my-requests")
@require_user
async def my_requests():
    query = parse_args(RequestQuery)
    requests, total = await list_user_requests(g.user.id, query)
    return jsonify({
        "message": "Custom requests retrieved successfully",
        "requests": [r.to_dict() for r in requests],
        "pagination": pagination_block(query.page, query.limit, total, "totalRequests"),
    })


@bp.get("/<int:request_id>")
@require_user
async def request_detail(request_id: int):
    request = await get_request(request_id, g.user)
    return jsonify({"message": "Custom request retrieved successfully", "request": request.to_dict()})


@bp.post("/<int:request_id>/communications")
@require_user
async def request_communicate(request_id: int):
    data = await parse_body(CommunicationRequest)
    communication = await add_communication(request_id, g.user, data.message)
    return jsonify({"message": "Communication added successfully", "communication": communication.to_dict()}), 201


@bp.put("/<int:request_id>/status")
@require_admin
async def request_status(request_id: int):
    data = await parse_body(StatusUpdateRequest)
    request = await update_request_status(request_id, g.user, data)
    return jsonify({"message": "Custom request updated successfully", "request": request.to_dict()})

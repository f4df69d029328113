import logging
from typing import List, Optional, Tuple

import sqlalchemy as sa

from ..auth.model import User
from ..common.database import AsyncSessionLocal
from ..common.db import as_naive_utc, isoformat, utcnow
from ..common.errors import Forbidden, NotFound
from ..common.pagination import paginate
from ..common.sequence import CUSTOM_REQUEST_PREFIX, next_number
from .model import SENDER_ADMIN, SENDER_CUSTOMER, Communication, CustomRequest
from .schemas import AdminRequestQuery, CreateCustomRequest, RequestQuery, StatusUpdateRequest

_logger = logging.getLogger(__name__)


def _check_access(request: CustomRequest, user: User) -> None:
    if request.user_id != user.id and not user.is_admin:
        raise Forbidden()


async def submit_request(user_id: Optional[int], data: CreateCustomRequest) -> CustomRequest:
    request_number = await next_number(CUSTOM_REQUEST_PREFIX)
    timeline = data.timeline.model_dump(mode="json", exclude={"preferredDate"})
    async with AsyncSessionLocal() as session:
        async with session.begin():
            request = CustomRequest(
                request_number=request_number,
                user_id=user_id,
                contact_info=data.contactInfo.model_dump(mode="json"),
                dress_details=data.dressDetails.model_dump(mode="json"),
                measurements=data.measurements,
                budget=data.budget.model_dump(mode="json"),
                timeline=timeline,
                preferred_date=as_naive_utc(data.timeline.preferredDate),
                tags=data.tags,
                communications=[],
            )
            session.add(request)
        await session.refresh(request)
    _logger.info("Custom request submitted | request_id=%s number=%s user_id=%s", request.id, request_number, user_id)
    return request


async def get_request(request_id: int, user: User) -> CustomRequest:
    async with AsyncSessionLocal() as session:
        request = await session.get(CustomRequest, request_id)
    if request is None:
        raise NotFound("Custom request", request_id)
    _check_access(request, user)
    return request


async def add_communication(request_id: int, user: User, message: str) -> Communication:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            request = await session.get(CustomRequest, request_id)
            if request is None:
                raise NotFound("Custom request", request_id)
            _check_access(request, user)
            communication = Communication(
                sender=SENDER_ADMIN if user.is_admin else SENDER_CUSTOMER,
                message=message,
            )
            request.communications.append(communication)
    return communication


async def update_request_status(request_id: int, admin: User, data: StatusUpdateRequest) -> CustomRequest:
    """Admin status change; a status change is echoed into the conversation."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            request = await session.get(CustomRequest, request_id)
            if request is None:
                raise NotFound("Custom request", request_id)
            previous = request.status
            request.status = data.status.value
            if data.priority:
                request.priority = data.priority.value
            if data.adminResponse:
                response = data.adminResponse.model_dump(mode="json", exclude_none=True)
                request.admin_response = {
                    **request.admin_response,
                    **response,
                    "respondedBy": admin.id,
                    "respondedAt": isoformat(utcnow()),
                }
            if previous != request.status:
                request.communications.append(
                    Communication(sender=SENDER_ADMIN, message=f"Status updated to: {request.status}")
                )
        await session.refresh(request)
    _logger.info("Custom request status set | request_id=%s from=%s to=%s", request_id, previous, data.status.value)
    return request


async def list_user_requests(user_id: int, query: RequestQuery) -> Tuple[List[CustomRequest], int]:
    stmt = sa.select(CustomRequest).where(CustomRequest.user_id == user_id)
    if query.status:
        stmt = stmt.where(CustomRequest.status == query.status.value)
    stmt = stmt.order_by(CustomRequest.created_at.desc(), CustomRequest.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)


async def list_all_requests(query: AdminRequestQuery) -> Tuple[List[CustomRequest], int]:
    stmt = sa.select(CustomRequest)
    if query.status:
        stmt = stmt.where(CustomRequest.status == query.status.value)
    if query.priority:
        stmt = stmt.where(CustomRequest.priority == query.priority.value)
    stmt = stmt.order_by(CustomRequest.created_at.desc(), CustomRequest.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)

from typing import List, Literal, Optional, Tuple

import sqlalchemy as sa
from pydantic import BaseModel, Field

from ..auth.model import User
from ..common.database import AsyncSessionLocal
from ..common.pagination import paginate


class UserQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    role: Optional[Literal["customer", "admin"]] = None
    search: Optional[str] = None


async def list_users(query: UserQuery) -> Tuple[List[User], int]:
    stmt = sa.select(User)
    if query.role:
        stmt = stmt.where(User.role == query.role)
    if query.search:
        pattern = f"%{query.search}%"
        stmt = stmt.where(sa.or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)

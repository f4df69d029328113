import math
from typing import Any, Dict, List, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(session: AsyncSession, stmt: sa.Select, page: int, limit: int) -> Tuple[List[Any], int]:
    total_stmt = sa.select(sa.func.count()).select_from(stmt.order_by(None).subquery())
    total = int((await session.execute(total_stmt)).scalar() or 0)
    res = await session.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(res.scalars().all()), total


def pagination_block(page: int, limit: int, total: int, total_key: str) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit)
    return {
        "currentPage": page,
        "totalPages": total_pages,
        total_key: total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }

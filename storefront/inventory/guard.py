"""Catalog Guard: per-size stock counters.

Every stock write is a single conditional UPDATE, so a check and the write it
guards can never be split by a concurrent request. Callers that need several
adjustments to succeed or fail together pass their own session and own the
transaction; without one, each call commits on its own.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.database import AsyncSessionLocal
from ..common.errors import InsufficientStock, NotFound
from .model import ProductSize

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def _transaction(session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
    if session is not None:
        yield session
        return
    async with AsyncSessionLocal() as own:
        async with own.begin():
            yield own


async def _read_stock(session: AsyncSession, product_id: int, size: str) -> Optional[int]:
    stmt = sa.select(ProductSize.stock).where(ProductSize.product_id == product_id, ProductSize.size == size)
    row = (await session.execute(stmt)).first()
    return int(row[0]) if row else None


async def get_stock(product_id: int, size: str, session: Optional[AsyncSession] = None) -> int:
    async with _transaction(session) as s:
        stock = await _read_stock(s, product_id, size)
    if stock is None:
        raise NotFound("Size entry", {"product": product_id, "size": size})
    return stock


async def adjust_stock(product_id: int, size: str, delta: int, session: Optional[AsyncSession] = None) -> int:
    """Apply ``stock += delta`` atomically and return the new level.

    Raises InsufficientStock when a decrement would go below zero and NotFound
    when the size entry does not exist; in both cases nothing is written.
    """
    async with _transaction(session) as s:
        stmt = sa.update(ProductSize).where(ProductSize.product_id == product_id, ProductSize.size == size)
        if delta < 0:
            stmt = stmt.where(ProductSize.stock >= -delta)
        stmt = stmt.values(stock=ProductSize.stock + delta).execution_options(synchronize_session=False)
        res = await s.execute(stmt)
        current = await _read_stock(s, product_id, size)
        if not res.rowcount:
            if current is None:
                raise NotFound("Size entry", {"product": product_id, "size": size})
            raise InsufficientStock(product_id, size, requested=-delta, available=current)
    _logger.debug("Stock adjusted | product_id=%s size=%s delta=%s stock=%s", product_id, size, delta, current)
    return current


async def restore_stock(session: AsyncSession, product_id: int, size: str, quantity: int) -> int:
    """Give back a reservation. Additive and never clamped.

    A size entry removed after the order was placed is recreated with the
    restored quantity so the units are not lost.
    """
    try:
        return await adjust_stock(product_id, size, quantity, session=session)
    except NotFound:
        _logger.warning(
            "Size entry missing on restore, recreating | product_id=%s size=%s qty=%s",
            product_id,
            size,
            quantity,
        )
        session.add(ProductSize(product_id=product_id, size=size, stock=quantity))
        await session.flush()
        return quantity

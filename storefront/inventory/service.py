import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

import sqlalchemy as sa
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError

from ..common.database import AsyncSessionLocal
from ..auth.model import User
from ..common.config import settings
from ..common.errors import BadRequest, Conflict, NotFound
from ..common.pagination import paginate
from ..common.redis_client import get_redis
from .model import SIZE_ORDER, Product, ProductReview, ProductSize
from .schemas import ProductCreate, ProductQuery, ProductUpdate, ReviewCreate

_logger = logging.getLogger(__name__)

FEATURED_LIMIT = 8

_SORTS = {
    "price_asc": Product.price.asc(),
    "price_desc": Product.price.desc(),
    "name_asc": Product.name.asc(),
    "name_desc": Product.name.desc(),
    "rating": Product.rating_average.desc(),
    "newest": Product.created_at.desc(),
}


def redis_stock_key(product_id: int, size: str) -> str:
    return f"product:{product_id}:stock:{size}"


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


# -- stock cache --------------------------------------------------------------

async def _db_stock_levels(product_id: int) -> Optional[Dict[str, int]]:
    async with AsyncSessionLocal() as session:
        product = await session.get(Product, product_id)
        if product is None:
            return None
        return {s.size: s.stock for s in product.sizes}


async def get_stock_levels(product_id: int) -> Dict[str, int]:
    """Per-size stock for display. Reads Redis first, falls back to the database.

    Advisory only: order placement always checks the database.
    """
    try:
        r = await get_redis()
        keys = [redis_stock_key(product_id, size) for size in SIZE_ORDER]
        cached = await r.mget(keys)
        if any(v is not None for v in cached):
            _logger.debug("Cache hit: stock | product_id=%s", product_id)
            return {size: int(v) for size, v in zip(SIZE_ORDER, cached) if v is not None}
    except RedisError as e:
        _logger.warning("Stock cache read failed | product_id=%s err=%s", product_id, e)

    levels = await _db_stock_levels(product_id)
    if levels is None:
        raise NotFound("Product", product_id)
    _logger.info("DB get stock | product_id=%s levels=%s (cache miss)", product_id, levels)
    await _write_cache(product_id, levels)
    return levels


async def _write_cache(product_id: int, levels: Dict[str, int]) -> None:
    if not levels:
        return
    try:
        r = await get_redis()
        async with r.pipeline(transaction=False) as pipe:
            for size, stock in levels.items():
                pipe.set(redis_stock_key(product_id, size), stock, ex=settings.STOCK_CACHE_TTL)
            await pipe.execute()
    except RedisError as e:
        _logger.warning("Stock cache write failed | product_id=%s err=%s", product_id, e)


async def refresh_stock_cache(product_ids: Iterable[int]) -> None:
    """Re-read committed stock for the given products and push it to Redis."""
    for product_id in sorted(set(product_ids)):
        levels = await _db_stock_levels(product_id)
        if levels is not None:
            await _write_cache(product_id, levels)


# -- catalog ------------------------------------------------------------------

def _filters(query: ProductQuery) -> list:
    clauses = [Product.is_active.is_(True)]
    if query.category:
        clauses.append(Product.category == query.category.value)
    if query.featured:
        clauses.append(Product.featured.is_(True))
    if query.minPrice is not None:
        clauses.append(Product.price >= query.minPrice)
    if query.maxPrice is not None:
        clauses.append(Product.price <= query.maxPrice)
    if query.search:
        pattern = f"%{query.search}%"
        clauses.append(sa.or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    return clauses


async def list_products(query: ProductQuery) -> Tuple[List[Product], int]:
    stmt = sa.select(Product).where(*_filters(query)).order_by(_SORTS[query.sort], Product.id.desc())
    async with AsyncSessionLocal() as session:
        return await paginate(session, stmt, query.page, query.limit)


async def featured_products() -> List[Product]:
    stmt = (
        sa.select(Product)
        .where(Product.is_active.is_(True), Product.featured.is_(True))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(FEATURED_LIMIT)
    )
    async with AsyncSessionLocal() as session:
        res = await session.execute(stmt)
        return list(res.scalars().all())


async def categories() -> List[str]:
    stmt = sa.select(Product.category).where(Product.is_active.is_(True)).distinct().order_by(Product.category)
    async with AsyncSessionLocal() as session:
        res = await session.execute(stmt)
        return [row[0] for row in res.all()]


async def get_product(identifier: str) -> Product:
    """Look up an active product by numeric id, then by slug."""
    async with AsyncSessionLocal() as session:
        product = None
        if identifier.isdigit():
            product = await session.get(Product, int(identifier))
        if product is None:
            res = await session.execute(sa.select(Product).where(Product.slug == identifier))
            product = res.scalar_one_or_none()
    if product is None or not product.is_active:
        raise NotFound("Product", identifier)
    return product


async def create_product(data: ProductCreate) -> Product:
    slug = slugify(data.slug or data.name)
    async with AsyncSessionLocal() as session:
        async with session.begin():
            taken = await session.execute(sa.select(Product.id).where(Product.slug == slug))
            if taken.first():
                raise Conflict(f"A product with slug '{slug}' already exists", kind="PRODUCT_EXISTS")
            product = Product(
                name=data.name,
                slug=slug,
                description=data.description,
                price=data.price,
                category=data.category.value,
                images=data.images,
                colors=[c.model_dump() for c in data.colors],
                tags=data.tags,
                featured=data.featured,
                sizes=[ProductSize(size=s.size.value, stock=s.stock) for s in data.sizes],
            )
            session.add(product)
    _logger.info("Product created | product_id=%s slug=%s", product.id, slug)
    await _write_cache(product.id, {s.size: s.stock for s in product.sizes})
    return product


async def update_product(product_id: int, data: ProductUpdate) -> Product:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    async with AsyncSessionLocal() as session:
        async with session.begin():
            product = await session.get(Product, product_id)
            if product is None:
                raise NotFound("Product", product_id)
            for field, value in changes.items():
                if field == "category":
                    value = data.category.value
                setattr(product, field, value)
        await session.refresh(product)
    _logger.info("Product updated | product_id=%s fields=%s", product_id, sorted(changes))
    return product


async def deactivate_product(product_id: int) -> None:
    """Soft delete; orders keep referencing the row."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(
                sa.update(Product).where(Product.id == product_id).values(is_active=False)
            )
            if not res.rowcount:
                raise NotFound("Product", product_id)
    _logger.info("Product deactivated | product_id=%s", product_id)


async def add_review(product_id: int, user: User, data: ReviewCreate) -> ProductReview:
    """Record a customer's single review and recompute the product's average."""
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                product = await session.get(Product, product_id)
                if product is None or not product.is_active:
                    raise NotFound("Product", product_id)
                if any(r.user_id == user.id for r in product.reviews):
                    raise BadRequest("You have already reviewed this product", kind="REVIEW_EXISTS")
                review = ProductReview(
                    product_id=product.id,
                    user_id=user.id,
                    user_name=user.name,
                    rating=data.rating,
                    comment=data.comment or None,
                )
                session.add(review)
                await session.flush()
                average, count = (
                    await session.execute(
                        sa.select(sa.func.avg(ProductReview.rating), sa.func.count(ProductReview.id))
                        .where(ProductReview.product_id == product.id)
                    )
                ).one()
                product.rating_average = round(float(average), 2)
                product.rating_count = count
    except IntegrityError as e:
        # Lost a race with the same customer's concurrent review
        raise BadRequest("You have already reviewed this product", kind="REVIEW_EXISTS") from e
    _logger.info("Review added | product_id=%s user_id=%s rating=%s average=%s", product_id, user.id, data.rating, product.rating_average)
    return review

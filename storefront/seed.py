"""Seed users and the sample catalog.

Usage:
    python -m storefront.seed
"""
import asyncio
import logging
from decimal import Decimal

import sqlalchemy as sa

from .auth.model import ROLE_ADMIN, ROLE_CUSTOMER, User
from .auth.service import hash_password
from .common.config import settings
from .common.database import AsyncSessionLocal, init_db
from .inventory.model import Product, ProductSize
from .inventory.service import refresh_stock_cache

log = logging.getLogger(__name__)

SAMPLE_USERS = [
    {"name": "Admin User", "email": settings.ADMIN_EMAIL, "password": settings.ADMIN_PASSWORD, "role": ROLE_ADMIN, "phone": "+1234567890"},
    {"name": "Jane Doe", "email": "customer@example.com", "password": "Customer123", "role": ROLE_CUSTOMER, "phone": "+1987654321"},
]

SAMPLE_PRODUCTS = [
    {
        "name": "Elegant Evening Dress",
        "slug": "elegant-evening-dress",
        "description": "A stunning black evening dress perfect for special occasions. Made with premium silk fabric and featuring intricate beadwork.",
        "price": Decimal("299.99"),
        "category": "evening",
        "sizes": {"S": 5, "M": 8, "L": 6, "XL": 3},
        "colors": [{"name": "Black", "hexCode": "#000000"}, {"name": "Navy Blue", "hexCode": "#000080"}],
        "tags": ["elegant", "evening", "formal", "silk"],
        "featured": True,
    },
    {
        "name": "Casual Summer Dress",
        "slug": "casual-summer-dress",
        "description": "Light and breezy summer dress perfect for everyday wear. Comfortable cotton blend with a flattering A-line silhouette.",
        "price": Decimal("89.99"),
        "category": "casual",
        "sizes": {"XS": 4, "S": 10, "M": 12, "L": 8, "XL": 5},
        "colors": [{"name": "White", "hexCode": "#FFFFFF"}, {"name": "Light Blue", "hexCode": "#ADD8E6"}, {"name": "Pink", "hexCode": "#FFC0CB"}],
        "tags": ["casual", "summer", "cotton"],
        "featured": True,
    },
    {
        "name": "Wedding Guest Dress",
        "slug": "wedding-guest-dress",
        "description": "Graceful midi dress for wedding celebrations, cut from flowing chiffon with a softly draped neckline.",
        "price": Decimal("199.99"),
        "category": "formal",
        "sizes": {"S": 6, "M": 9, "L": 7, "XL": 4},
        "colors": [{"name": "Blush Pink", "hexCode": "#F8BBD9"}, {"name": "Sage Green", "hexCode": "#9CAF88"}, {"name": "Dusty Blue", "hexCode": "#6B8CAE"}],
        "tags": ["wedding", "guest", "chiffon"],
        "featured": True,
    },
    {
        "name": "Bohemian Maxi Dress",
        "slug": "bohemian-maxi-dress",
        "description": "Free-spirited maxi dress with tiered skirt and floral print, made for long summer days.",
        "price": Decimal("149.99"),
        "category": "casual",
        "sizes": {"S": 7, "M": 10, "L": 8, "XL": 5},
        "colors": [{"name": "Floral Print", "hexCode": "#FF6B6B"}, {"name": "Earth Tones", "hexCode": "#8B4513"}],
        "tags": ["boho", "maxi", "floral"],
        "featured": True,
    },
]


async def seed() -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        async with session.begin():
            users_added = 0
            for u in SAMPLE_USERS:
                res = await session.execute(sa.select(User.id).where(User.email == u["email"]))
                if res.first():
                    continue
                session.add(User(
                    name=u["name"],
                    email=u["email"],
                    password_hash=hash_password(u["password"]),
                    role=u["role"],
                    phone=u["phone"],
                ))
                users_added += 1

            products_added = 0
            for p in SAMPLE_PRODUCTS:
                # avoid duplicates by slug
                res = await session.execute(sa.select(Product.id).where(Product.slug == p["slug"]))
                if res.first():
                    continue
                session.add(Product(
                    name=p["name"],
                    slug=p["slug"],
                    description=p["description"],
                    price=p["price"],
                    category=p["category"],
                    images=[f"/images/{p['slug']}.svg"],
                    colors=p["colors"],
                    tags=p["tags"],
                    featured=p["featured"],
                    sizes=[ProductSize(size=size, stock=stock) for size, stock in p["sizes"].items()],
                ))
                products_added += 1
    log.info("Seed complete | users_added=%s products_added=%s", users_added, products_added)

    # Warm the stock cache with the whole catalog
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product.id))
        product_ids = [row[0] for row in res.all()]
    await refresh_stock_cache(product_ids)


async def amain():
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    await seed()


if __name__ == "__main__":
    asyncio.run(amain())

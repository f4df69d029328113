"""Pytest fixtures for storefront tests."""

import os
import tempfile

# Settings are read at import time, so point them at throwaway stores first.
_TMP_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["KAFKA_ENABLED"] = "0"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "DEBUG"

from decimal import Decimal  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402

from storefront.app import create_app  # noqa: E402
from storefront.auth.model import ROLE_ADMIN  # noqa: E402
from storefront.auth.schemas import RegisterRequest  # noqa: E402
from storefront.auth.service import create_access_token, register_user  # noqa: E402
from storefront.common import redis_client  # noqa: E402
from storefront.common.database import dispose_engine, drop_db, init_db  # noqa: E402
from storefront.inventory.schemas import ProductCreate  # noqa: E402
from storefront.inventory.service import create_product  # noqa: E402

SHIPPING_ADDRESS = {
    "name": "Jane Doe",
    "street": "12 Market Street",
    "city": "Springfield",
    "state": "IL",
    "zipCode": "62701",
    "country": "US",
}


@pytest.fixture(autouse=True)
async def store():
    """Fresh schema and an in-memory Redis for every test."""
    await drop_db()
    await init_db()
    fake = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await fake.flushall()
    redis_client._redis = fake
    yield fake
    redis_client._redis = None
    await fake.aclose()
    await dispose_engine()


@pytest.fixture
def app():
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
async def customer():
    return await register_user(
        RegisterRequest(name="Jane Doe", email="jane@example.com", password="Secret123")
    )


@pytest.fixture
async def other_customer():
    return await register_user(
        RegisterRequest(name="John Roe", email="john@example.com", password="Secret123")
    )


@pytest.fixture
async def admin():
    return await register_user(
        RegisterRequest(name="Store Admin", email="admin@example.com", password="Admin123"),
        role=ROLE_ADMIN,
    )


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def customer_headers(customer):
    return auth_header(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def make_product():
    """Factory creating an active product with the given per-size stock."""

    async def _make(name="Elegant Evening Dress", price="299.99", sizes=None, category="evening", featured=False):
        sizes = sizes if sizes is not None else {"S": 5, "M": 8, "L": 6}
        return await create_product(
            ProductCreate(
                name=name,
                description=f"{name} for tests",
                price=Decimal(price),
                category=category,
                sizes=[{"size": size, "stock": stock} for size, stock in sizes.items()],
                images=["/images/test.svg"],
                featured=featured,
            )
        )

    return _make


def order_payload(*lines, **extra) -> dict:
    """Build an order body from ``(product_id, size, quantity)`` lines."""
    payload = {
        "items": [{"product": pid, "size": size, "quantity": qty} for pid, size, qty in lines],
        "shippingAddress": dict(SHIPPING_ADDRESS),
        "paymentInfo": {"method": "credit_card"},
    }
    payload.update(extra)
    return payload

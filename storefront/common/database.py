import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base

# Register every table on Base.metadata
from ..auth import model as _auth_model  # noqa: F401
from ..inventory import model as _inventory_model  # noqa: F401
from ..orders import model as _orders_model  # noqa: F401
from ..custom_requests import model as _custom_requests_model  # noqa: F401

_logger = logging.getLogger(__name__)


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


if engine.dialect.name == "sqlite":
    # pysqlite defers BEGIN until the first write, so two transactions that
    # read and then write can deadlock. Take the write lock up front instead.
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _logger.info("Database schema ready | url=%s", engine.url.render_as_string(hide_password=True))


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine() -> None:
    await engine.dispose()

import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from craft_orders.config import settings

logger = logging.getLogger(__name__)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """SQLite: писатель берёт блокировку уже на BEGIN, а не при первой записи"""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    pool_size: int = settings.DB_POOL_SIZE,
    max_overflow: int = settings.DB_MAX_OVERFLOW,
    pool_timeout: float = settings.DB_POOL_TIMEOUT,
) -> AsyncEngine:
    is_sqlite = database_url.startswith("sqlite")
    kwargs = {"pool_pre_ping": True}
    if is_sqlite:
        # timeout: ожидание блокировки файла БД
        kwargs["connect_args"] = {"timeout": max(pool_timeout, 5.0)}
    if ":memory:" not in database_url:
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)

    engine = create_async_engine(database_url, **kwargs)
    if is_sqlite:
        _use_immediate_transactions(engine)
    logger.info(f"Engine создан: {engine.url.render_as_string(hide_password=True)}")
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)

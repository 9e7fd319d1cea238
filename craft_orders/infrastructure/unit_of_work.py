import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from craft_orders.application.interfaces import UnitOfWork as AbstractUnitOfWork
from craft_orders.domain.exceptions import TransientInfrastructureError
from craft_orders.infrastructure.repositories import (
    SQLAlchemyAggregateRepository,
    SQLAlchemyOrderEventLedger,
    SQLAlchemyOrderRepository,
    SQLAlchemyStockLedger
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Одна транзакция на одном соединении; соединение возвращается в пул на любом выходе"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        try:
            async with self._session_factory() as session:
                try:
                    uow_impl = _UnitOfWorkImpl(session)
                    yield uow_impl
                    # Без commit изменения откатываются
                    await session.rollback()
                except Exception:
                    await session.rollback()
                    raise
        except PoolTimeoutError as e:
            logger.error(f"Пул соединений исчерпан: {e}")
            raise TransientInfrastructureError("Database connection pool exhausted") from e
        except (OperationalError, InterfaceError) as e:
            logger.error(f"Ошибка соединения с БД: {e}", exc_info=True)
            raise TransientInfrastructureError("Database temporarily unavailable") from e


class _UnitOfWorkImpl(AbstractUnitOfWork):
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.stock = SQLAlchemyStockLedger(session)
        self.aggregates = SQLAlchemyAggregateRepository(session)
        self.ledger = SQLAlchemyOrderEventLedger(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()

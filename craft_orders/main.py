# craft_orders/main.py
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from craft_orders.config import settings
from craft_orders.database import engine
from craft_orders.infrastructure.db_schema import metadata
from craft_orders.presentation.api import router, register_exception_handlers

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    if not settings.is_production:
        # В production схему ведёт alembic
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Таблицы созданы")

    yield

    logger.info("Приложение останавливается...")
    await engine.dispose()


app = FastAPI(
    title="Craft Orders",
    description="Заказы и складские остатки маркетплейса ремесленников",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")
register_exception_handlers(app)


@app.get("/")
async def root():
    return {"message": "Craft Orders service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}

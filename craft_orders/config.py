import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", "./craft_orders.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "20"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "0"))
    # Секунды ожидания свободного соединения, потом TransientInfrastructureError
    DB_POOL_TIMEOUT: float = float(os.getenv("DB_POOL_TIMEOUT", "2"))

    # API
    API_TOKEN: str = os.getenv("API_TOKEN", "")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Orders
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "INR")
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0"))

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        url = self.POSTGRES_CONNECTION_STRING
        if not url:
            return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()

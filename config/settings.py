"""
Application configuration for api-stock-ticks.

Centralizes environment variables using python-dotenv.

Note:
- TICK_STORE_BACKEND picks the persistence adapter: memory | mongodb | sql.
- MongoDB needs a replica set (multi-document transactions).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _int_list(raw: str) -> list[int]:
    return [int(x) for x in (s.strip() for s in (raw or "").split(",")) if x]


class Settings:
    """
    Configuration settings for the api-stock-ticks service.
    """

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    APP_NAME: str = os.getenv("APP_NAME", "api-stock-ticks")

    TICK_STORE_BACKEND: str = os.getenv("TICK_STORE_BACKEND", "memory").lower().strip()

    # Mongo
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://mongo-stock-ticks:27017/?replicaSet=rs0")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "api_stock_ticks")

    # SQL (SQLAlchemy async URL)
    SQL_DATABASE_URL: str = os.getenv("SQL_DATABASE_URL", "sqlite+aiosqlite:///./stock_ticks.db")

    # Ingestion buffer
    BUFFER_MAX_BATCH_SIZE: int = int(os.getenv("BUFFER_MAX_BATCH_SIZE", "100"))
    BUFFER_MAX_BATCH_AGE_MS: int = int(os.getenv("BUFFER_MAX_BATCH_AGE_MS", "500"))

    # Writer retry policy
    WRITER_RETRY_BASE_MS: int = int(os.getenv("WRITER_RETRY_BASE_MS", "100"))
    WRITER_RETRY_CAP_MS: int = int(os.getenv("WRITER_RETRY_CAP_MS", "5000"))
    WRITER_MAX_ATTEMPTS: int = int(os.getenv("WRITER_MAX_ATTEMPTS", "5"))

    # Queries
    QUERY_TIMEOUT_S: float = float(os.getenv("QUERY_TIMEOUT_S", "5.0"))

    # Demo random-walk producer
    SIMULATOR_ENABLED: bool = os.getenv("SIMULATOR_ENABLED", "false").lower() == "true"
    SIMULATOR_STOCK_IDS: list[int] = _int_list(os.getenv("SIMULATOR_STOCK_IDS", "1,2,3"))
    SIMULATOR_INTERVAL_MS: int = int(os.getenv("SIMULATOR_INTERVAL_MS", "100"))
    SIMULATOR_INITIAL_PRICE: float = float(os.getenv("SIMULATOR_INITIAL_PRICE", "100.0"))
    SIMULATOR_MAX_STEP: float = float(os.getenv("SIMULATOR_MAX_STEP", "2.0"))


settings = Settings()

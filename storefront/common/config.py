import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    INSTANCE_ID: str = os.getenv("INSTANCE_ID", "unknown")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite by default in a Docker volume)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:////data/storefront.db")
    DB_ECHO: bool = _get_bool("DB_ECHO", False)

    # Redis (stock cache and sequence counters)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    STOCK_CACHE_TTL: int = int(os.getenv("STOCK_CACHE_TTL", "300"))

    # Kafka
    KAFKA_ENABLED: bool = _get_bool("KAFKA_ENABLED", False)
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")
    # Seconds to wait after a failed producer start before trying the broker again
    KAFKA_RETRY_COOLDOWN: float = float(os.getenv("KAFKA_RETRY_COOLDOWN", "30"))

    # Auth
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

    # Seeding
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@mideyateller.com")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "Admin123")


settings = Settings()

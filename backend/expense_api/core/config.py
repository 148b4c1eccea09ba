import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    environment: str
    host: str
    port: int
    log_level: str
    redis_url: str | None
    redis_prefix: str
    redis_timeout: float
    rate_limit_enabled: bool
    rate_limit: int
    rate_limit_window: int
    retry_after_default: int
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    exchange_api_key: str
    rates_timeout: float
    clerk_secret_key: str
    clerk_api_url: str
    delete_requires_owner: bool
    cors_allow_origins: tuple[str, ...]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    environment = (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development").strip().lower()

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    origins = tuple(o.strip() for o in (os.getenv("CORS_ALLOW_ORIGINS") or "").split(",") if o.strip())

    return Settings(
        database_url=database_url,
        environment=environment,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5001")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "expense").strip() or "expense",
        redis_timeout=float(os.getenv("REDIS_TIMEOUT", "0.5")),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", environment == "production"),
        rate_limit=max(1, int(os.getenv("RATE_LIMIT", "100"))),
        rate_limit_window=max(1, int(os.getenv("RATE_LIMIT_WINDOW", "60"))),
        retry_after_default=max(1, int(os.getenv("RETRY_AFTER_DEFAULT", "10"))),
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        exchange_api_key=(os.getenv("EXCHANGE_API_KEY") or "").strip(),
        rates_timeout=float(os.getenv("RATES_TIMEOUT", "5")),
        clerk_secret_key=(os.getenv("CLERK_SECRET_KEY") or "").strip(),
        clerk_api_url=(os.getenv("CLERK_API_URL") or "https://api.clerk.com/v1").rstrip("/"),
        delete_requires_owner=_env_bool("DELETE_REQUIRES_OWNER", False),
        cors_allow_origins=origins,
    )

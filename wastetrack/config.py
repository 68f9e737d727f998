import os
from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    mongodb_url: str = "mongodb://localhost:27017"
    database_name: str = "wastetrack"
    # Multi-document transactions need a replica set; standalone servers must turn this off
    mongodb_use_transactions: bool = True

    jwt_secret: str = "wastetrack-development-secret-change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30
    max_active_sessions: int = 5

    app_timezone: str = "Asia/Jakarta"
    token_cleanup_interval_seconds: int = 3600
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.app_timezone)

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            mongodb_url=os.getenv("MONGODB_URL", defaults.mongodb_url),
            database_name=os.getenv("DATABASE_NAME", defaults.database_name),
            mongodb_use_transactions=_env_bool("MONGODB_USE_TRANSACTIONS", defaults.mongodb_use_transactions),
            jwt_secret=os.getenv("JWT_SECRET", defaults.jwt_secret),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", defaults.jwt_algorithm),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", defaults.access_token_expire_minutes)),
            refresh_token_expire_days=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", defaults.refresh_token_expire_days)),
            max_active_sessions=int(os.getenv("MAX_ACTIVE_SESSIONS", defaults.max_active_sessions)),
            app_timezone=os.getenv("APP_TIMEZONE", defaults.app_timezone),
            token_cleanup_interval_seconds=int(
                os.getenv("TOKEN_CLEANUP_INTERVAL_SECONDS", defaults.token_cleanup_interval_seconds)
            ),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )


@lru_cache
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings.from_env()

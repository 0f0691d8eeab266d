"""
Runtime configuration for the MedStay booking engine.
Values come from the environment (optionally a .env file).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    def __init__(self):
        # Database - SQLite for local dev only
        self.database_url = os.getenv("DATABASE_URL") or os.getenv(
            "POSTGRES_URL",
            "sqlite+aiosqlite:///./medstay.db"
        )

        # Redis (locks, events, calendar cache)
        self.redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.redis_enabled = _flag("REDIS_ENABLED")
        self.lock_backend = os.getenv("LOCK_BACKEND", "local").lower()
        self.lock_timeout_seconds = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))
        self.lock_ttl_seconds = int(os.getenv("LOCK_TTL_SECONDS", "30"))
        self.calendar_cache_seconds = int(os.getenv("CALENDAR_CACHE_SECONDS", "300"))
        self.events_channel = os.getenv("EVENTS_CHANNEL", "medstay:booking-events")

        # Booking rules
        self.max_stay_nights = int(os.getenv("MAX_STAY_NIGHTS", "365"))
        self.enforce_blocked_dates = _flag("ENFORCE_BLOCKED_DATES")

        # HTTP
        self.cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()

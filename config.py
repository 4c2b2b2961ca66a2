from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Gemini
    GEMINI_API_KEY: Optional[str] = None  # No key = remote analysis unavailable
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = 0.4
    THINKING_BUDGET: int = 1024
    RESPONSE_LANGUAGE: str = "Korean"

    # Local user (single user per store)
    USER_ID: str = "user-1"
    USER_NAME: str = "User"
    TIMEZONE: str = "Asia/Seoul"
    EVENING_HOUR: int = 18
    FEEDBACK_DELAY_SECONDS: float = 1.0
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024

    # Persistence
    STORE_PATH: str = "data/lifelog.json"
    STORE_VERSION: str = "1"
    REDIS_URL: Optional[str] = None
    REDIS_KEY_PREFIX: str = "lifelog:state"

    # Remote API (used by client.py)
    BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT: float = 15.0

    # Server Config
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def local_now() -> datetime:
    return datetime.now(local_tz())


def local_today() -> date:
    return local_now().date()

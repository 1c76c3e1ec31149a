# App configuration using Pydantic BaseSettings (loads from .env or defaults).

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./campus_connect.sqlite"

    # all cutoff slots are wall-clock minutes in this zone
    APP_TIME_ZONE: str = "Asia/Kolkata"

    DISPLAY_ID_PREFIX: str = "NITAP"
    PLATFORM_FEE_PERCENT: int = 0

    STALE_BATCH_MINUTES: int = 30
    BATCH_CLOSER_INTERVAL_SECONDS: int = 60

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()

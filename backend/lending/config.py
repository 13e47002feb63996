import os
import tempfile
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./lending.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # per-item locks guarding the availability check and the item status write
    LOCK_DIR: str = os.path.join(tempfile.gettempdir(), "lending_locks")
    LOCK_TIMEOUT_SECONDS: float = 10.0

    RESERVATION_ENFORCE_OPENING_HOURS: bool = True
    # local time, "<weekday> HH:MM-HH:MM"
    OPENING_HOURS: List[str] = [
        "mon 15:00-19:00",
        "thu 15:00-19:00",
        "fri 15:00-19:00",
        "sat 10:00-14:00",
    ]

    SCHEDULER_ENABLED: bool = True
    CLEAR_RESERVATIONS_INTERVAL_SECONDS: int = 3600
    OVERDUE_BOOKINGS_INTERVAL_SECONDS: int = 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

"""
Configuration module for Paste Vault.
Loads environment variables and provides config objects.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
        self.STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "redis").lower()
        self.DEBUG: bool = _env_bool("DEBUG", "False")
        self.APP_DOMAIN: str = os.getenv("APP_DOMAIN", "http://localhost:8000")
        self.TEST_MODE: bool = _env_bool("TEST_MODE", "0")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        # Background sweep of time-expired pastes
        self.REAPER_ENABLED: bool = _env_bool("REAPER_ENABLED", "True")
        self.REAPER_INTERVAL_SECONDS: float = float(os.getenv("REAPER_INTERVAL_SECONDS", "60"))
        self.REAPER_BATCH_SIZE: int = int(os.getenv("REAPER_BATCH_SIZE", "500"))

        # Retries on paste id collision before giving up
        self.ID_MAX_ATTEMPTS: int = int(os.getenv("ID_MAX_ATTEMPTS", "5"))


settings = Settings()

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings sourced from environment variables."""

    API_BASE_URL: str = "https://api.vivaitable.com"  # remote system of record
    REDIS_URL: str | None = None  # e.g. redis://localhost:6379/0; unset keeps storage and broadcast in-process

    # Session lifecycle
    SESSION_STORAGE_KEY: str = "jwtToken"
    RENEWAL_LEAD_SECONDS: int = 300
    MIN_RENEWAL_DELAY_SECONDS: int = 30
    LOGIN_PATH: str = "/login"

    # Reservation sync
    BROADCAST_CHANNEL: str = "reservations"
    POLL_INTERVAL_SECONDS: float = 3.0
    DEFAULT_TIME_ZONE: str = "America/Los_Angeles"
    HTTP_TIMEOUT_SECONDS: float | None = None

    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api/v1"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()

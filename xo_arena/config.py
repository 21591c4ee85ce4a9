import logging
import sys
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App config
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    DEBUG: bool = False

    # WebSocket config
    WS_HEARTBEAT_INTERVAL: int = 30
    WS_CONNECTION_TIMEOUT: int = 120
    WS_SEND_TIMEOUT: float = 5.0

    # Room lifecycle
    ROOM_IDLE_GRACE_SECONDS: float = 300
    ROOM_EVICTION_INTERVAL: float = 30

    # Fun mode: admins may only use cheats when this is on and they opted in
    CHEATS_ALLOWED: bool = True

    @field_validator("ROOM_IDLE_GRACE_SECONDS", "ROOM_EVICTION_INTERVAL", "WS_SEND_TIMEOUT")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v


def configure_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    log_level = logging.DEBUG if debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    configure_logging(settings.DEBUG)
    logger.info("Settings loaded successfully")
    logger.debug(
        "Room grace window: %ss, eviction interval: %ss, cheats allowed: %s",
        settings.ROOM_IDLE_GRACE_SECONDS,
        settings.ROOM_EVICTION_INTERVAL,
        settings.CHEATS_ALLOWED,
    )
    return settings

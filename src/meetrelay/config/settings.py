"""Configuration management for the meeting relay."""

import os
import logging
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ROOM_STORE_BACKEND = "backend"
ROOM_STORE_MEMORY = "memory"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _str_to_bool(value: Optional[str]) -> bool:
    """Interpret common truthy strings."""
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_origins(value: Optional[str]) -> List[str]:
    return [origin.strip() for origin in (value or "").split(",") if origin.strip()]


class Settings(BaseModel):
    """Relay settings"""

    # Service configuration
    service_name: str = "meetrelay"
    host: str = "0.0.0.0"
    port: int = 8080
    origins: List[str] = Field(default_factory=list)

    # Socket.IO heartbeats
    ping_interval: int = 25
    ping_timeout: int = 30

    # Backend of record
    backend_url: str = ""
    backend_timeout: float = 10.0

    # Room membership
    room_store: str = ROOM_STORE_BACKEND
    room_capacity: int = 10

    # Authentication
    auth_required: bool = True
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file, if any)."""
        load_dotenv()
        settings = cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            origins=_split_origins(os.getenv("ORIGINS")),
            backend_url=os.getenv("BACKEND_URL", ""),
            backend_timeout=float(os.getenv("BACKEND_TIMEOUT_SECONDS", "10")),
            room_store=os.getenv("ROOM_STORE", ROOM_STORE_BACKEND).strip().lower(),
            room_capacity=int(os.getenv("ROOM_CAPACITY", "10")),
            auth_required=not _str_to_bool(os.getenv("DISABLE_AUTH")),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
        )
        settings.validate_store()
        return settings

    def validate_store(self) -> None:
        """Reject store configurations the relay cannot run with."""
        if self.room_store not in (ROOM_STORE_BACKEND, ROOM_STORE_MEMORY):
            raise ValueError(
                f"ROOM_STORE must be '{ROOM_STORE_BACKEND}' or '{ROOM_STORE_MEMORY}', "
                f"got '{self.room_store}'"
            )
        if self.room_store == ROOM_STORE_BACKEND and not self.backend_url:
            raise ValueError("BACKEND_URL is required when ROOM_STORE=backend")
        if self.room_capacity < 1:
            raise ValueError("ROOM_CAPACITY must be at least 1")

    @property
    def uses_backend(self) -> bool:
        return self.room_store == ROOM_STORE_BACKEND


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        filename=settings.log_file if settings.log_file else None,
    )

    logger.info("Initialized %s", settings.service_name)
    logger.info("Relay will run on %s:%s", settings.host, settings.port)
    logger.info("Room store: %s (capacity %d)", settings.room_store, settings.room_capacity)
    if not settings.auth_required:
        logger.warning("Authentication DISABLED (DISABLE_AUTH=true)")
    elif not settings.jwt_secret:
        logger.warning("JWT_SECRET not configured - authenticated connections will be refused")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings

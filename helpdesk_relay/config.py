from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


INSECURE_DEFAULT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """
    Relay settings loaded from environment variables.
    Environment variables take precedence over the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./helpdesk_relay.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Shared secret used to verify handshake tokens.
    # The default is only meant for local development.
    JWT_SECRET: str = INSECURE_DEFAULT_SECRET

    # Socket.IO transport
    SOCKETIO_PATH: str = "/api/widget/socket"
    CORS_ORIGINS: str = ""

    # Attachment storage
    UPLOADS_DIR: str = "uploads"
    UPLOADS_URL_PREFIX: str = "/api/uploads"

    @property
    def cors_origins(self) -> List[str] | str:
        """Parsed CORS origins; an empty setting allows every origin."""
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return origins or "*"

    @property
    def uses_insecure_secret(self) -> bool:
        return self.JWT_SECRET == INSECURE_DEFAULT_SECRET


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Global settings instance
settings = get_settings()

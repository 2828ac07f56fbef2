"""Application configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Defaults for command line options, read from environment variables."""

    # WebSocket connection
    url: str = "wss://127.0.0.1:8443"
    origin: str = "http://127.0.0.1"
    proto: str = "sip"
    insecure: bool = True

    # Payload
    template: Optional[str] = None
    fields: Optional[str] = None
    crlf: bool = False

    # Exchange
    receive: bool = True
    timeout_recv: int = 20000  # milliseconds
    timeout_send: int = 10000  # milliseconds

    # Digest authentication
    auth_user: str = ""
    auth_password: str = ""

    # Logging
    log_level: str = "WARNING"

    model_config = {
        "env_prefix": "WSCTL_",
        "env_file": ".env",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"invalid WSCTL_ environment setting: {e}") from e

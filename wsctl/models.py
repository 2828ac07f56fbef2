"""Pydantic models for run options."""

from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import Settings
from .errors import ConfigurationError


class ClientOptions(BaseModel):
    """Options for a single send/receive run."""

    url: str = Field("wss://127.0.0.1:8443", description="WebSocket URL (ws:// or wss://)")
    origin: str = Field("http://127.0.0.1", description="Origin HTTP URL")
    proto: str = Field("sip", min_length=1, description="WebSocket sub-protocol")
    insecure: bool = Field(True, description="Skip TLS certificate validation for wss")
    template: Optional[str] = Field(None, description="Path to template file")
    fields: Optional[str] = Field(None, description="Path to JSON fields file")
    crlf: bool = Field(False, description="Replace LF with CRLF in the payload")
    receive: bool = Field(True, description="Wait for a response from the server")
    timeout_recv: int = Field(20000, ge=1, description="Receive timeout in milliseconds")
    timeout_send: int = Field(10000, ge=1, description="Send timeout in milliseconds")
    auth_user: str = Field("", description="Username for digest authentication")
    auth_password: str = Field("", description="Password for digest authentication")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Validate URL is a ws:// or wss:// URL with a host."""
        parsed = urlparse(v)
        if parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            raise ValueError('URL must be ws://host[:port][/path] or wss://...')
        return v

    @field_validator('origin')
    @classmethod
    def validate_origin(cls, v):
        """Validate origin is an http(s) URL."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError('Origin must be an http:// or https:// URL')
        return v

    @property
    def secure(self) -> bool:
        """Whether the connection uses TLS."""
        return urlparse(self.url).scheme == "wss"

    @property
    def auth_enabled(self) -> bool:
        """Digest authentication is attempted only when a password is set."""
        return bool(self.auth_password)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ClientOptions":
        """Build options from settings, replacing any non-None overrides."""
        data = settings.model_dump(exclude={"log_level"})
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

"""Environment-based configuration for the FindFace client."""

from __future__ import annotations

import logging

import httpx
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from FINDFACE_* environment variables.

    The object stays mutable after construction; clients apply changes
    through ``configure`` so the cached connection is rebuilt.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINDFACE_",
        case_sensitive=False,
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )

    # Authentication (required before the first request)
    access_token: SecretStr | None = None

    # Outbound proxy URL, e.g. http://proxy.local:3128
    proxy: str | None = None

    # Request/response trace sink (None = no tracing)
    logger: logging.Logger | None = None
    log_headers: bool = False

    # HTTP executor override (None = httpx default transport)
    adapter: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None

    # None keeps the executor's own default
    timeout: float | None = Field(default=None, gt=0)


def get_settings() -> Settings:
    """Create and return client settings."""
    return Settings()

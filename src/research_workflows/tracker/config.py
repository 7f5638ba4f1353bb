"""Configuration for the workflow tracker client.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    """Settings for talking to the workflow execution service.

    Environment variables:
    - WORKFLOWS_API_URL
    - WORKFLOWS_API_TOKEN               (optional)
    - WORKFLOWS_POLL_INTERVAL_SECONDS   (optional)
    - WORKFLOWS_REQUEST_TIMEOUT_SECONDS (optional)
    - LOG_LEVEL                         (optional)

    Notes:
        Tests can override the env file via `TrackerSettings(_env_file=path)`.
    """

    api_url: str = Field(
        default="http://localhost:8000",
        validation_alias="WORKFLOWS_API_URL",
        description="Base URL of the workflow execution service",
    )
    api_token: str = Field(
        default="",
        validation_alias="WORKFLOWS_API_TOKEN",
        description="Bearer token issued by the identity provider, forwarded as-is",
    )
    poll_interval_seconds: float = Field(
        default=2.5,
        gt=0,
        validation_alias="WORKFLOWS_POLL_INTERVAL_SECONDS",
        description="Fixed interval between status polls",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="WORKFLOWS_REQUEST_TIMEOUT_SECONDS",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

"""Configuration for the local execution service."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API and the simulated step runner."""

    state_path: Path = Field(
        default=Path("workflow_state"),
        validation_alias="WORKFLOWS_STATE_PATH",
        description="Directory where workflow and report records are persisted",
    )

    step_delay_seconds: float = Field(
        default=1.5,
        ge=0,
        validation_alias="WORKFLOWS_STEP_DELAY_SECONDS",
        description="Simulated duration of each workflow step",
    )

    runner_enabled: bool = Field(
        default=True,
        validation_alias="WORKFLOWS_RUNNER_ENABLED",
        description=(
            "If false, launched/retried workflows are recorded but no runner thread is "
            "started. Useful in tests that drive the runner directly."
        ),
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        validation_alias="WORKFLOWS_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def workflows_state_file(self) -> Path:
        return self.state_path / "workflows.json"

    @property
    def reports_state_file(self) -> Path:
        return self.state_path / "reports.json"

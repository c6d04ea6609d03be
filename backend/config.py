"""Configuration utilities for the onboarding API."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment."""

    environment: str = Field(
        default="development",
        description="Name of the current environment (development, staging, production).",
    )
    data_path: Path = Field(
        default=Path("data/sessions.json"),
        description="Filesystem location where completed session hand-offs are stored as JSON.",
    )

    openai_api_key: Optional[str] = Field(default=None, description="API key for the generation service.")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat model used for open-ended turns.")

    collaborator_base_url: HttpUrl | None = Field(
        default=None,
        description="Base URL of the lead, booking and campaign API.",
    )
    collaborator_api_key: Optional[str] = Field(default=None, description="Bearer key for the collaborator API.")

    pacing_delay: float = Field(
        default=0.6,
        ge=0.0,
        description="Seconds to wait before presenting the next question.",
    )
    transitive_cascade: bool = Field(
        default=False,
        description="Remove dependents of dependents when an action is deselected.",
    )
    default_leads_per_day: int = Field(default=10, ge=1)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def generation_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def collaborators_enabled(self) -> bool:
        return self.collaborator_base_url is not None


@lru_cache
def get_settings() -> Settings:
    return Settings()


def ensure_data_directory(path: Path) -> None:
    """Ensure the directory containing the data file exists."""

    path.parent.mkdir(parents=True, exist_ok=True)

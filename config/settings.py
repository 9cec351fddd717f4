"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``NIRBACHON_`` prefix; GCP / infrastructure settings use
their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Bangladesh Standard Time (UTC+6, no DST).
BST = timezone(timedelta(hours=6), name="BST")


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the Nirbachon Live collector.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``NIRBACHON_``; GCP / infra keys
    use their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="NIRBACHON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── GCP ────────────────────────────────────────────────────────────
    gcp_project_id: str = Field(default="", validation_alias="GCP_PROJECT_ID")

    # ── Firestore ──────────────────────────────────────────────────────
    firestore_database: str = Field(default="(default)", validation_alias="FIRESTORE_DATABASE")

    # ── Vertex AI / Gemini ─────────────────────────────────────────────
    vertex_ai_model: str = Field(default="gemini-2.5-flash-lite", validation_alias="VERTEX_AI_MODEL")
    vertex_ai_location: str = Field(default="asia-south1", validation_alias="VERTEX_AI_LOCATION")

    # ── Tavily web search ──────────────────────────────────────────────
    tavily_api_key: str = Field(default="", validation_alias="TAVILY_API_KEY")
    use_search_backend: bool = True  # prefer Tavily over Gemini for scheduled fetches

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")

    # ── Admin API Key ──────────────────────────────────────────────────
    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")

    # ── CORS ───────────────────────────────────────────────────────────
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")  # comma-separated

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Election timing ────────────────────────────────────────────────
    voting_start: datetime = datetime(2026, 2, 12, 7, 30, tzinfo=BST)
    voting_end: datetime = datetime(2026, 2, 12, 16, 30, tzinfo=BST)

    # ── Collection ─────────────────────────────────────────────────────
    enable_auto_collection: bool = False
    source_fetch_timeout_seconds: float = Field(default=45.0, gt=0)
    news_every_n_cycles: int = Field(default=3, ge=1)
    news_cooldown_seconds: int = Field(default=120, ge=0)

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def firestore_enabled(self) -> bool:
        return bool(self.gcp_project_id)


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()

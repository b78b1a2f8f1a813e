from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Payables API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", description="Logging level")
    allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        description="CORS origins allowed to call the API",
    )

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./payables.db",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    # Auth / JWT
    jwt_secret: str = Field(default="change_me", description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Access token expiry in minutes")

    # Storage
    uploads_dir: str = Field(
        default="./uploads",
        description="Root directory for invoice attachments",
        validation_alias=AliasChoices("UPLOAD_DIR", "UPLOADS_DIR"),
    )

    # Workflow rules
    due_soon_threshold_days: int = Field(
        default=3,
        ge=0,
        description="Invoices due within this many days are flagged due-soon",
        validation_alias=AliasChoices("DUE_SOON_THRESHOLD_DAYS", "DUE_SOON_DAYS"),
    )
    reason_min_length: int = Field(default=10, ge=1, description="Minimum length of hold/rejection reasons")
    reason_max_length: int = Field(default=500, ge=1, description="Maximum length of hold/rejection reasons")
    max_resubmissions: int = Field(default=2, ge=0, description="Resubmissions allowed per master data request")

    # Worklist
    default_page_size: int = Field(default=20, ge=1, description="Default worklist page size")
    max_page_size: int = Field(default=100, ge=1, description="Largest worklist page size accepted")

    # Email delivery
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Base URL for portal links in emails",
        validation_alias=AliasChoices("APP_BASE_URL", "FRONTEND_BASE_URL"),
    )
    email_provider: str = Field(
        default="disabled",
        description="Email provider: resend, postmark, disabled",
        validation_alias=AliasChoices("EMAIL_PROVIDER"),
    )
    email_api_key: str | None = Field(
        default=None,
        description="API key for Resend/Postmark",
        validation_alias=AliasChoices("EMAIL_API_KEY"),
    )
    email_from: str | None = Field(
        default=None,
        description="From address for outbound email",
        validation_alias=AliasChoices("EMAIL_FROM"),
    )

    @field_validator("email_provider")
    @classmethod
    def normalize_email_provider(cls, value: str) -> str:
        provider = (value or "").strip().lower()
        if provider in {"", "none"}:
            return "disabled"
        return provider

    def ensure_uploads_dir(self) -> Path:
        uploads_path = Path(self.uploads_dir).expanduser().resolve()
        uploads_path.mkdir(parents=True, exist_ok=True)
        return uploads_path

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "ExamPrep Session Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Auth collaborator
    # IMPORTANT: JWT_SECRET_KEY MUST be set in .env file - no default for security
    JWT_SECRET_KEY: str = Field(..., description="JWT signing secret key (required)")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Session policy
    SESSION_GRACE_PERIOD_MINUTES: int = Field(
        default=30,
        ge=0,
        description="Minutes past the test duration during which an open session can be resumed",
    )
    SESSION_RETENTION_HOURS: int = Field(
        default=24,
        ge=1,
        description="Hours after start before a session row is eligible for purging",
    )
    SESSION_PURGE_INTERVAL_SECONDS: int = Field(
        default=3600,
        ge=0,
        description="Interval of the in-process expired-session sweep (0 disables it)",
    )
    SESSION_START_MAX_ATTEMPTS: int = Field(
        default=2,
        ge=1,
        description="Attempts made by start before a uniqueness race surfaces as a conflict",
    )

    # Scoring defaults, applied when a test definition carries no weights
    DEFAULT_SCORING_CORRECT: float = 4.0
    DEFAULT_SCORING_WRONG: float = -1.0
    DEFAULT_SCORING_UNANSWERED: float = 0.0

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_default_scoring(self) -> Self:
        """Default weights must reward correct answers and never reward wrong ones."""
        if self.DEFAULT_SCORING_CORRECT <= 0:
            raise ValueError(
                f"DEFAULT_SCORING_CORRECT must be positive, got {self.DEFAULT_SCORING_CORRECT}"
            )
        if self.DEFAULT_SCORING_WRONG > 0:
            raise ValueError(
                f"DEFAULT_SCORING_WRONG must not be positive, got {self.DEFAULT_SCORING_WRONG}"
            )
        return self


# mypy doesn't understand that pydantic_settings loads required fields from env vars
settings = Settings()  # type: ignore[call-arg]

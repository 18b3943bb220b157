"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --- Core ---
    APP_NAME: str = "OnboardX Onboarding API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Completion capability ---
    COMPLETION_PROVIDER: str = "gateway"  # gateway | gemini
    AI_GATEWAY_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    AI_GATEWAY_API_KEY: str = Field(
        "", validation_alias=AliasChoices("AI_GATEWAY_API_KEY", "LOVABLE_API_KEY")
    )
    CHAT_MODEL: str = "google/gemini-3-flash-preview"
    VISION_MODEL: str = "google/gemini-2.5-pro"

    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash-latest"

    # --- Deliverability (AbstractAPI) ---
    ABSTRACT_EMAIL_API_KEY: str = ""
    ABSTRACT_PHONE_API_KEY: str = ""
    EMAIL_VALIDATION_URL: str = "https://emailvalidation.abstractapi.com/v1/"
    PHONE_VALIDATION_URL: str = "https://phonevalidation.abstractapi.com/v1/"

    # --- E-mail dispatch ---
    EMAIL_API_KEY: str = ""
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "OnboardX <onboarding@resend.dev>"

    # --- Onboarding rules ---
    MIN_MONTHLY_INCOME: int = 500
    BRANCH_NAME: str = "OnboardX Digital Bank"
    SESSION_EXPIRY_MINUTES: int = 30  # idle chats are closed after this

    # --- Transport ---
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # --- Security ---
    CORS_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = [
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
        "session-id",
        "x-supabase-client-platform",
        "x-supabase-client-platform-version",
        "x-supabase-client-runtime",
        "x-supabase-client-runtime-version",
    ]
    RATE_LIMIT_REQUESTS: int = 30
    RATE_LIMIT_WINDOW: int = 60

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_QUESTION_BANK_PATH = Path(__file__).resolve().parent / "data" / "questions.json"


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="QUIZQUEST_DATABASE_URL")
    database_pool_size: int = Field(10, alias="QUIZQUEST_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="QUIZQUEST_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="QUIZQUEST_DATABASE_ECHO")
    question_bank_path: Path = Field(DEFAULT_QUESTION_BANK_PATH, alias="QUIZQUEST_QUESTION_BANK_PATH")
    session_length: int = Field(10, ge=1, alias="QUIZQUEST_SESSION_LENGTH")
    trial_days: int = Field(7, ge=0, alias="QUIZQUEST_TRIAL_DAYS")
    public_app_url: str = Field("http://localhost:5173", alias="QUIZQUEST_PUBLIC_APP_URL")
    log_level: str = Field("INFO", alias="QUIZQUEST_LOG_LEVEL")
    root_log_level: str = Field("WARNING", alias="QUIZQUEST_ROOT_LOG_LEVEL")
    telemetry_log_level: str = Field("INFO", alias="QUIZQUEST_TELEMETRY_LOG_LEVEL")
    debug_http: bool = Field(False, alias="QUIZQUEST_DEBUG_HTTP")
    stripe_secret_key: Optional[str] = Field(None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_api_base: str = Field("https://api.stripe.com/v1", alias="STRIPE_API_BASE")
    stripe_timeout_ms: int = Field(10000, alias="STRIPE_TIMEOUT_MS")
    stripe_professional_price_id: str = Field(
        "price_1S4kXUHdUmhkdYH4kJVGAxuV",
        alias="STRIPE_PROFESSIONAL_PRICE_ID",
    )
    stripe_premium_price_id: str = Field(
        "price_1S4kYeHdUmhkdYH4b4fXVluo",
        alias="STRIPE_PREMIUM_PRICE_ID",
    )

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def price_to_plan(self) -> dict[str, str]:
        return {
            self.stripe_professional_price_id: "professional",
            self.stripe_premium_price_id: "premium",
        }


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc

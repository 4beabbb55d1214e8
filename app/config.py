"""
app/config.py — Pydantic BaseSettings configuration
Upstream Gemini credentials, model tuning, admission quotas and timeouts.
Every value has a default; only GEMINI_API_KEY gates the AI endpoints.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"

    # ── Google Gemini ──────────────────────────────────────────────────────────
    # The game frontend historically exposed the key as NEXT_PUBLIC_GEMINI_API_KEY
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "next_public_gemini_api_key"),
    )
    gemini_model: str = "gemini-2.5-flash"
    gemini_max_tokens: int = 500
    gemini_temperature: float = 0.7
    gemini_top_p: float = 0.8
    gemini_top_k: int = 20

    # ── Question generation ────────────────────────────────────────────────────
    gemini_question_model: str = "gemini-2.0-flash"
    question_max_tokens: int = 2048
    question_temperature: float = 0.9
    question_top_p: float = 0.95
    question_top_k: int = 40
    question_batch_delay_seconds: float = 2.0
    question_duplicate_threshold: int = 90   # fuzzy score at/above → same question
    question_min_level_specific_ratio: float = 0.7
    question_max_generic_ratio: float = 0.2

    # ── Chat admission control ─────────────────────────────────────────────────
    chat_rate_limit_max_requests: int = 10
    chat_rate_limit_window_ms: int = 60_000
    rate_limit_cleanup_threshold: int = 1000
    rate_limit_message: str = (
        "Too many requests. Please wait a moment before sending another message."
    )

    # ── Upstream timeouts ──────────────────────────────────────────────────────
    upstream_timeout_ms: int = 10_000
    question_timeout_ms: int = 30_000

    # ── Chat payload limits ────────────────────────────────────────────────────
    chat_message_max_length: int = 500
    chat_history_max_messages: int = 10

    # ── slowapi limits for the non-chat endpoints ─────────────────────────────
    rate_limits: dict[str, str] = {
        "status": "30/minute",
        "levels": "60/minute",
        "questions": "5/minute",
        "ping": "60/minute",
    }

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()

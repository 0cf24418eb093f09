"""
Configuration settings for the cortex-srs study core.

Uses Pydantic Settings for environment variable management with .env file support.
Every field can be overridden with a CORTEX_SRS_ prefixed environment variable.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CORTEX_SRS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # FSRS Scheduler
    # ========================================
    fsrs_desired_retention: float = Field(
        default=0.9,
        ge=0.7,
        le=0.97,
        description="Target retention rate for scheduling",
    )
    fsrs_maximum_interval: int = Field(
        default=365,
        ge=1,
        description="Longest interval (days) the scheduler may assign",
    )
    fsrs_enable_fuzzing: bool = Field(
        default=True,
        description="Randomise intervals slightly to avoid review clustering",
    )

    # ========================================
    # Review Sessions
    # ========================================
    session_max_cards: int = Field(
        default=20,
        description="Maximum cards presented in one review session",
    )
    session_max_new_cards: int = Field(
        default=10,
        description="Maximum never-seen cards introduced per session",
    )
    session_new_card_ratio: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Fraction of the session reserved for new cards",
    )

    # ========================================
    # Adaptive Quiz
    # ========================================
    quiz_max_retry_rounds: int = Field(
        default=2,
        ge=0,
        description="Retry rounds for missed questions before the quiz ends",
    )
    quiz_retry_pass_threshold: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Round correct rate that ends retries early (1.0 = perfect round)",
    )

    def get_scheduler_config(self) -> dict[str, Any]:
        """Get FSRS scheduler configuration as a dictionary."""
        return {
            "desired_retention": self.fsrs_desired_retention,
            "maximum_interval": self.fsrs_maximum_interval,
            "enable_fuzzing": self.fsrs_enable_fuzzing,
        }

    def get_session_config(self) -> dict[str, Any]:
        """Get review session limits as a dictionary."""
        return {
            "max_cards": self.session_max_cards,
            "max_new_cards": self.session_max_new_cards,
            "new_card_ratio": self.session_new_card_ratio,
        }

    def get_quiz_config(self) -> dict[str, Any]:
        """Get adaptive quiz configuration as a dictionary."""
        return {
            "max_retry_rounds": self.quiz_max_retry_rounds,
            "retry_pass_threshold": self.quiz_retry_pass_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

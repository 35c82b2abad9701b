"""
Configuration settings for the adaptive-recall scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # General
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Log level for CLI entry points",
    )
    progress_store_path: Path = Field(
        default=Path.home() / ".recall" / "progress.json",
        description="JSON file holding progress records per learner",
    )
    default_learner_id: str = Field(
        default="local",
        description="Learner used when the CLI is called without --learner",
    )

    # ========================================
    # Ease Factor (SM-2)
    # ========================================
    scheduler_default_ease: float = Field(
        default=2.5,
        description="Ease factor for items that have never been reviewed",
    )
    scheduler_minimum_ease: float = Field(
        default=1.3,
        description="Floor for the ease factor after lapses",
    )
    scheduler_maximum_ease: float = Field(
        default=2.6,
        description="Cap for the ease factor after correct answers",
    )
    scheduler_minimum_ease_gain: float = Field(
        default=0.02,
        description="Smallest ease increase granted for a correct answer",
    )

    # ========================================
    # Intervals (days)
    # ========================================
    scheduler_first_interval: int = Field(default=1, description="Interval after the first correct answer")
    scheduler_second_interval: int = Field(default=6, description="Interval after the second correct answer")
    scheduler_lapse_interval: int = Field(default=1, description="Interval after an incorrect answer")
    scheduler_maximum_interval: int = Field(default=365, description="Longest interval ever scheduled")

    # ========================================
    # Quality Grading
    # ========================================
    scheduler_fast_response_ms: int = Field(
        default=2000,
        description="Correct answers at or under this time get quality 5",
    )
    scheduler_hesitant_response_ms: int = Field(
        default=5000,
        description="Correct answers at or under this time get quality 4 (slower get 3)",
    )

    # ========================================
    # Difficulty Estimate
    # ========================================
    scheduler_difficulty_correct_step: float = Field(
        default=0.05,
        description="Difficulty decrease for an instant correct answer",
    )
    scheduler_difficulty_speed_relief: float = Field(
        default=0.04,
        description="Part of the correct-answer decrease lost when answering slowly",
    )
    scheduler_difficulty_incorrect_step: float = Field(
        default=0.12,
        description="Difficulty increase for an incorrect answer",
    )
    scheduler_difficulty_slowness_penalty: float = Field(
        default=0.06,
        description="Extra difficulty increase for a slow incorrect answer",
    )
    scheduler_slow_response_ms: int = Field(
        default=12000,
        description="Response time treated as maximally slow",
    )

    # ========================================
    # Forgetting Curve
    # ========================================
    scheduler_retention_threshold: float = Field(
        default=0.5,
        description="Recall probability below which an item counts as forgotten",
    )
    scheduler_repetition_weight: float = Field(
        default=0.25,
        description="Stability gain per consecutive correct answer",
    )
    scheduler_repetition_cap: int = Field(
        default=10,
        description="Repetitions beyond this add no further stability",
    )
    scheduler_difficulty_weight: float = Field(
        default=0.5,
        description="Stability lost at maximum difficulty (fraction)",
    )
    scheduler_max_predict_days: int = Field(
        default=60,
        description="Longest forgetting-time prediction",
    )

    # ========================================
    # Study Session
    # ========================================
    session_repeat_spacing: int = Field(
        default=3,
        description="Positions ahead a missed item is reinserted",
    )
    session_repeat_limit: int = Field(
        default=2,
        description="Maximum reinsertions per item per session",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""
Configuration settings for recall-coach.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INTERVALS: tuple[int, ...] = (1, 3, 7, 14, 30)

_CLOCK_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def validate_intervals(intervals: list[int]) -> list[int]:
    """
    Check a review interval ladder.

    Args:
        intervals: Day counts, one per stage

    Returns:
        The same list, as ints

    Raises:
        ValueError: if the list is empty, not positive, or not ascending
    """
    if not intervals:
        raise ValueError("review intervals must not be empty")
    values = [int(v) for v in intervals]
    if any(v <= 0 for v in values):
        raise ValueError(f"review intervals must be positive day counts: {values}")
    if any(b <= a for a, b in zip(values, values[1:])):
        raise ValueError(f"review intervals must be strictly ascending: {values}")
    return values


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".recall_coach",
        description="Directory holding the review document",
    )
    database_file: str = Field(
        default="review_db.json",
        description="File name of the review document inside data_dir",
    )

    # ========================================
    # Spaced Repetition
    # ========================================
    review_intervals: list[int] = Field(
        default_factory=lambda: list(DEFAULT_INTERVALS),
        description="Days until the next review, indexed by stage",
    )
    weekly_window_days: int = Field(
        default=7,
        ge=1,
        description="Trailing window summarized by the weekly report",
    )

    # ========================================
    # Learner
    # ========================================
    user_level: Literal["beginner", "intermediate", "advanced", "expert"] = Field(
        default="intermediate",
        description="Learner level, used as the default item difficulty",
    )

    # ========================================
    # Delivery & Triggers
    # ========================================
    delivery_channel: str = Field(
        default="",
        description="Destination channel handed to the delivery collaborator",
    )
    timezone: str = Field(
        default="UTC",
        description="IANA zone for trigger times and for 'today'",
    )
    morning_review_time: str = Field(
        default="08:00",
        description="Daily due-review trigger (HH:MM)",
    )
    evening_review_time: str = Field(
        default="21:00",
        description="Daily evening summary trigger (HH:MM)",
    )
    weekly_report_weekday: int = Field(
        default=6,
        ge=0,
        le=6,
        description="Weekly report day (Monday=0, Sunday=6)",
    )
    weekly_report_time: str = Field(
        default="10:00",
        description="Weekly report trigger (HH:MM)",
    )
    trigger_poll_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How often the trigger loop checks for due jobs",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="WARNING",
        description="Minimum level written to stderr",
    )

    @field_validator("review_intervals")
    @classmethod
    def _check_intervals(cls, value: list[int]) -> list[int]:
        return validate_intervals(value)

    @field_validator("morning_review_time", "evening_review_time", "weekly_report_time")
    @classmethod
    def _check_clock_time(cls, value: str) -> str:
        if not _CLOCK_TIME.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def database_path(self) -> Path:
        """Full path of the review document."""
        return Path(self.data_dir).expanduser() / self.database_file

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def get_schedule_config(self) -> dict[str, Any]:
        """Get spaced repetition configuration as a dictionary."""
        return {
            "intervals": list(self.review_intervals),
            "weekly_window_days": self.weekly_window_days,
        }

    def get_trigger_config(self) -> dict[str, Any]:
        """Get trigger schedule configuration as a dictionary."""
        return {
            "channel": self.delivery_channel,
            "timezone": self.timezone,
            "morning": self.morning_review_time,
            "evening": self.evening_review_time,
            "weekly": {
                "weekday": self.weekly_report_weekday,
                "time": self.weekly_report_time,
            },
            "poll_seconds": self.trigger_poll_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

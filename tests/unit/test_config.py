"""
Unit tests for Settings and interval validation.
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from recall_coach.clock import FixedClock, ensure_utc
from recall_coach.config import DEFAULT_INTERVALS, Settings, validate_intervals
from recall_coach.models import parse_timestamp


class TestValidateIntervals:
    def test_default_ladder(self):
        assert validate_intervals(list(DEFAULT_INTERVALS)) == [1, 3, 7, 14, 30]

    @pytest.mark.parametrize("intervals", [[], [1, -3], [7, 3], [2, 2]])
    def test_rejects_bad_ladders(self, intervals):
        with pytest.raises(ValueError):
            validate_intervals(intervals)


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=tmp_path)

        assert settings.review_intervals == [1, 3, 7, 14, 30]
        assert settings.user_level == "intermediate"
        assert settings.database_path == tmp_path / "review_db.json"
        assert settings.log_level == "WARNING"

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REVIEW_INTERVALS", "[2, 4, 8]")
        monkeypatch.setenv("USER_LEVEL", "expert")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None, data_dir=tmp_path)

        assert settings.review_intervals == [2, 4, 8]
        assert settings.user_level == "expert"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"review_intervals": [3, 1]},
            {"morning_review_time": "8am"},
            {"evening_review_time": "24:00"},
            {"timezone": "Mars/Olympus"},
            {"weekly_report_weekday": 7},
            {"user_level": "wizard"},
        ],
    )
    def test_invalid_values_rejected(self, tmp_path, overrides):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, data_dir=tmp_path, **overrides)

    def test_trigger_config(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=tmp_path, delivery_channel="#study")
        config = settings.get_trigger_config()

        assert config["channel"] == "#study"
        assert config["weekly"] == {"weekday": 6, "time": "10:00"}
        assert settings.get_schedule_config() == {"intervals": [1, 3, 7, 14, 30], "weekly_window_days": 7}


class TestTime:
    def test_naive_timestamps_read_as_utc(self):
        assert parse_timestamp("2026-01-05T08:00:00") == datetime(2026, 1, 5, 8, 0, tzinfo=UTC)

    def test_zulu_suffix(self):
        assert parse_timestamp("2026-01-05T08:00:00.000Z") == datetime(2026, 1, 5, 8, 0, tzinfo=UTC)

    def test_empty_timestamp(self):
        assert parse_timestamp("") is None

    def test_fixed_clock_advances(self):
        clock = FixedClock(datetime(2026, 1, 5, 8, 0))

        assert clock().tzinfo is not None
        assert clock.advance(days=2) == ensure_utc(datetime(2026, 1, 7, 8, 0))

"""
recall-coach: spaced repetition review coach.

Turns study notes into review items and schedules them on a stage ladder
of growing intervals.

Components:
- StateStore: JSON document persistence
- SpacedRepetitionScheduler: Stage ladder with streak acceleration
- WeeklyAggregator: Trailing-window statistics and recommendations
- ReviewCoach: The service behind the CLI and the triggers
- ReviewTriggers: Morning, evening and weekly background jobs
"""

from .clock import FixedClock, system_clock
from .config import Settings, get_settings
from .errors import ConfigurationError, PersistenceError, RecallCoachError
from .models import (
    Item,
    ItemDraft,
    ReviewRecord,
    ReviewResult,
    SchedulingState,
    Session,
    SessionMethod,
    SparringRound,
    SparringSession,
    WeaknessItem,
    WeeklyReport,
)
from .scheduler import (
    REVIEW_ARCHETYPES,
    ReviewArchetype,
    SchedulerConfig,
    SpacedRepetitionScheduler,
    get_review_archetype,
)
from .state_store import StateStore
from .triggers import ReviewTriggers
from .tutor import ExtractedItem, ReviewCoach, SparringStart
from .weekly_report import WeeklyAggregator

__version__ = "0.3.0"

__all__ = [
    # Records
    "Item",
    "ItemDraft",
    "ReviewRecord",
    "ReviewResult",
    "SchedulingState",
    "Session",
    "SessionMethod",
    "SparringRound",
    "SparringSession",
    "WeaknessItem",
    "WeeklyReport",
    # Persistence
    "StateStore",
    # Scheduling
    "SpacedRepetitionScheduler",
    "SchedulerConfig",
    "ReviewArchetype",
    "REVIEW_ARCHETYPES",
    "get_review_archetype",
    # Reporting
    "WeeklyAggregator",
    # Service
    "ReviewCoach",
    "ExtractedItem",
    "SparringStart",
    "ReviewTriggers",
    # Config & time
    "Settings",
    "get_settings",
    "FixedClock",
    "system_clock",
    # Errors
    "RecallCoachError",
    "ConfigurationError",
    "PersistenceError",
]

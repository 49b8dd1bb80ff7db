"""
Stage-Ladder Spaced Repetition Scheduler.

Implements:
- Interval ladder progression (default 1 -> 3 -> 7 -> 14 -> 30 days)
- Streak acceleration: from the third consecutive correct answer on,
  each correct answer climbs two stages instead of one
- Lapse regression: a wrong answer drops exactly one stage
- Review archetypes: what kind of question to ask at each stage

Archetype ladder:
0 - recall     Name one key idea
1 - apply      Use it in a current project
2 - integrate  Connect it to another concept
3 - critique   Find a counterexample
4 - teach      Explain it to a newcomer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from .clock import Clock, ensure_utc, system_clock
from .config import DEFAULT_INTERVALS, validate_intervals
from .errors import ConfigurationError
from .models import Item, SchedulingState
from .state_store import StateStore

# =============================================================================
# Review Archetypes
# =============================================================================


@dataclass(frozen=True)
class ReviewArchetype:
    """The cognitive framing of a review question."""

    kind: str
    template: str
    description: str

    def render(self, topic: str) -> str:
        """Fill the template with a topic."""
        return self.template.replace("{topic}", topic)


REVIEW_ARCHETYPES: tuple[ReviewArchetype, ...] = (
    ReviewArchetype(
        kind="recall",
        template='Remember "{topic}" from yesterday? Name just one key idea.',
        description="Short-term memory check - recall a key term",
    ),
    ReviewArchetype(
        kind="apply",
        template='How would you apply "{topic}" to the project you are working on right now?',
        description="Application - use it in a real situation",
    ),
    ReviewArchetype(
        kind="integrate",
        template='What does "{topic}" have in common with another concept you learned recently?',
        description="Integration - connect pieces of knowledge",
    ),
    ReviewArchetype(
        kind="critique",
        template='Give one counterexample or exception to "{topic}".',
        description="Critical thinking - look for counterexamples",
    ),
    ReviewArchetype(
        kind="teach",
        template='Explain "{topic}" in one minute to someone who knows nothing about the field.',
        description="Teaching - the Feynman technique",
    ),
)


def get_review_archetype(stage: int) -> ReviewArchetype:
    """
    Pick the question archetype for a stage.

    Stages past the end of the table clamp to the last entry (teach).
    """
    index = min(max(stage, 0), len(REVIEW_ARCHETYPES) - 1)
    return REVIEW_ARCHETYPES[index]


# =============================================================================
# Scheduler
# =============================================================================


@dataclass
class SchedulerConfig:
    """Configuration for the stage ladder."""

    intervals: list[int] = field(default_factory=lambda: list(DEFAULT_INTERVALS))
    acceleration_streak: int = 3  # Consecutive correct answers that unlock +2

    def __post_init__(self) -> None:
        try:
            self.intervals = validate_intervals(list(self.intervals))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
        if self.acceleration_streak < 1:
            raise ConfigurationError("acceleration_streak must be at least 1")

    @property
    def last_stage(self) -> int:
        return len(self.intervals) - 1


class SpacedRepetitionScheduler:
    """
    Decides when items are due and how their stage moves.

    The scheduler holds no state of its own: everything is read from and
    written back to the StateStore, and every "now" comes from the clock.
    """

    def __init__(
        self,
        store: StateStore,
        config: SchedulerConfig | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Repository holding items and scheduling state
            config: Interval ladder (uses [1, 3, 7, 14, 30] if None)
            clock: Time source (defaults to the system clock)
        """
        self.store = store
        self.config = config or SchedulerConfig()
        self.clock = clock or system_clock

    @property
    def intervals(self) -> list[int]:
        return self.config.intervals

    def _due_after(self, now: datetime, stage: int) -> datetime:
        return now + timedelta(days=self.intervals[stage])

    def _clamp_stage(self, stage: int) -> int:
        return min(max(stage, 0), self.config.last_stage)

    def initialize(self, item_id: str) -> SchedulingState:
        """
        Create scheduling state for a new item (idempotent).

        The first review is due intervals[0] days from now. An existing
        state is returned unchanged.
        """
        return self.store.get_or_create_scheduling_state(item_id, self._due_after(self.clock(), 0))

    def initialize_many(self, item_ids: list[str]) -> list[SchedulingState]:
        return [self.initialize(item_id) for item_id in item_ids]

    def get_due(self, as_of: datetime | None = None) -> list[Item]:
        """
        Items due for review.

        Args:
            as_of: Reference time (defaults to now)

        Returns:
            Due items in repository order; ids without an item are skipped
        """
        now = ensure_utc(as_of) if as_of else self.clock()
        due: list[Item] = []
        for item_id in self.store.get_due_item_ids(now):
            item = self.store.get_item(item_id)
            if item is None:
                logger.debug(f"Skipping due state for missing item {item_id}")
                continue
            due.append(item)
        return due

    def record_outcome(self, item_id: str, correct: bool) -> SchedulingState:
        """
        Apply a review outcome to an item's stage.

        Args:
            item_id: The reviewed item
            correct: Whether the answer was correct

        Returns:
            The updated, persisted SchedulingState
        """
        with self.store.lock:
            now = self.clock()
            state = self.store.get_or_create_scheduling_state(item_id, self._due_after(now, 0))

            stage = self._clamp_stage(state.stage)
            total_attempts = state.total_attempts + 1
            total_correct = state.total_correct
            consecutive = state.consecutive_correct

            if correct:
                total_correct += 1
                consecutive += 1
                # The streak is not reset after a jump: once fast, stays fast
                advance = 2 if consecutive >= self.config.acceleration_streak else 1
                stage = min(stage + advance, self.config.last_stage)
            else:
                consecutive = 0
                stage = max(stage - 1, 0)

            updated = self.store.update_scheduling_state(
                item_id,
                stage=stage,
                next_due=self._due_after(now, stage),
                consecutive_correct=consecutive,
                total_attempts=total_attempts,
                total_correct=total_correct,
                last_reviewed=now,
            )

        logger.debug(
            f"Recorded outcome for {item_id}: correct={correct}, stage={updated.stage}, "
            f"next_due={updated.next_due:%Y-%m-%d}, streak={updated.consecutive_correct}"
        )
        return updated

    def get_review_archetype(self, stage: int) -> ReviewArchetype:
        return get_review_archetype(stage)

    def build_review_question(self, item: Item) -> str:
        """Render the review question for an item at its current stage."""
        state = self.initialize(item.id)
        archetype = self.get_review_archetype(self._clamp_stage(state.stage))
        return archetype.render(item.topic)

    def categorize_by_stage(self, as_of: datetime | None = None) -> dict[int, list[Item]]:
        """Group due items by their (clamped) stage."""
        now = ensure_utc(as_of) if as_of else self.clock()
        result: dict[int, list[Item]] = {}
        for state in self.store.get_all_scheduling_states():
            if not state.is_due(now):
                continue
            item = self.store.get_item(state.item_id)
            if item is None:
                continue
            result.setdefault(self._clamp_stage(state.stage), []).append(item)
        return result

    def get_summary(self, as_of: datetime | None = None) -> dict[str, float | int]:
        """
        Summarize the whole schedule.

        Returns:
            total_items, due_today, mastered, struggling, average_correct_rate (%)
        """
        now = ensure_utc(as_of) if as_of else self.clock()
        states = self.store.get_all_scheduling_states()

        total_attempts = sum(s.total_attempts for s in states)
        total_correct = sum(s.total_correct for s in states)

        return {
            "total_items": len(states),
            "due_today": sum(1 for s in states if s.is_due(now)),
            "mastered": sum(1 for s in states if s.stage >= self.config.last_stage),
            "struggling": sum(1 for s in states if s.total_attempts >= 3 and s.correct_rate < 0.5),
            "average_correct_rate": (total_correct / total_attempts * 100) if total_attempts else 0.0,
        }

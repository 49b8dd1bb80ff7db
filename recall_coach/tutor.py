"""
Review Coach: the service behind every entry point.

Wires the StateStore, SpacedRepetitionScheduler and WeeklyAggregator
together and exposes the operations the CLI and the trigger loop call:

- register_extracted_items: store items from the extraction collaborator
- handle_due / next_question: pick the next review question
- process_review_answer / skip_review: record what the learner did
- start_sparring / record_sparring_round: adversarial practice sessions
- handle_evening_summary / handle_weekly_report: periodic summaries
- status_report / level_info: on-demand dashboards

Every method returns plain text or data. Sending it anywhere is the
caller's job (see delivery.py and triggers.py).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .clock import Clock, system_clock
from .config import Settings
from .models import (
    Item,
    ItemDraft,
    ReviewResult,
    SchedulingState,
    Session,
    SessionMethod,
    SparringRound,
    SparringSession,
    WeeklyReport,
    clamp_difficulty,
)
from .prompts import evening_summary_message, sparring_prompt, weekly_report_prompt
from .scheduler import ReviewArchetype, SchedulerConfig, SpacedRepetitionScheduler
from .state_store import StateStore
from .weekly_report import WeeklyAggregator

LEVEL_DIFFICULTY = {"beginner": 1, "intermediate": 2, "advanced": 3, "expert": 4}

# =============================================================================
# Inputs & Results
# =============================================================================


class ExtractedItem(BaseModel):
    """A question/answer pair as returned by the extraction collaborator."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    topic: str = Field(min_length=1)
    question: str = Field(min_length=1)
    expected_answer: str = Field(default="", alias="expectedAnswer")
    difficulty: int | None = None
    tags: list[str] = Field(default_factory=list)
    source_file: str | None = Field(default=None, alias="sourceFile")

    @field_validator("difficulty", mode="before")
    @classmethod
    def _clamp_difficulty(cls, value: object) -> int | None:
        if value is None:
            return None
        return clamp_difficulty(value)

    def to_draft(self, default_difficulty: int = 2) -> ItemDraft:
        return ItemDraft(
            topic=self.topic,
            question=self.question,
            expected_answer=self.expected_answer,
            difficulty=self.difficulty if self.difficulty is not None else default_difficulty,
            tags=list(self.tags),
            source_file=self.source_file,
        )


@dataclass
class IngestResult:
    items: list[Item]
    session: Session | None
    message: str


@dataclass
class DueQuestion:
    """The next question to ask, with the context needed to present it."""

    item: Item
    stage: int
    archetype: ReviewArchetype
    text: str
    due_count: int


@dataclass
class SparringStart:
    """A freshly stored sparring session with the texts to open it."""

    session: SparringSession
    system_prompt: str
    first_challenge: str


@dataclass
class ReviewOutcome:
    """Result of recording an answer. ``state`` is None when the item is unknown."""

    state: SchedulingState | None
    message: str
    found: bool = True


# =============================================================================
# Coach
# =============================================================================


class ReviewCoach:
    """
    The learning-review service.

    Usage:
        coach = ReviewCoach.from_settings(get_settings())
        print(coach.handle_due())
    """

    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        scheduler: SpacedRepetitionScheduler,
        aggregator: WeeklyAggregator,
        clock: Clock | None = None,
    ):
        self.settings = settings
        self.store = store
        self.scheduler = scheduler
        self.aggregator = aggregator
        self.clock = clock or system_clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> ReviewCoach:
        """Build the store, scheduler and aggregator from settings."""
        clock = clock or system_clock
        store = StateStore(settings.database_path, clock=clock)
        scheduler = SpacedRepetitionScheduler(
            store,
            SchedulerConfig(intervals=list(settings.review_intervals)),
            clock=clock,
        )
        aggregator = WeeklyAggregator(store, clock=clock, window_days=settings.weekly_window_days)
        return cls(settings, store, scheduler, aggregator, clock=clock)

    def _format_date(self, value: datetime) -> str:
        return value.astimezone(self.settings.tzinfo).strftime("%m/%d (%a)")

    def difficulty_for_level(self) -> int:
        return LEVEL_DIFFICULTY.get(self.settings.user_level, 2)

    # =========================================================================
    # Ingest
    # =========================================================================

    def register_extracted_items(
        self,
        extracted: Iterable[ExtractedItem | dict],
        session_topic: str,
    ) -> IngestResult:
        """
        Store extracted question/answer pairs and schedule them.

        Args:
            extracted: Items from the extraction collaborator
            session_topic: Topic recorded on the ingest session

        Returns:
            IngestResult with the created items, the session and a message
        """
        entries = [e if isinstance(e, ExtractedItem) else ExtractedItem.model_validate(e) for e in extracted]
        if not entries:
            return IngestResult(items=[], session=None, message="No review items to register.")

        difficulty = self.difficulty_for_level()
        items = self.store.add_items(entry.to_draft(difficulty) for entry in entries)
        states = self.scheduler.initialize_many([item.id for item in items])
        session = self.store.create_session(
            topic=session_topic,
            summary=f"Registered {len(items)} review items",
            item_ids=[item.id for item in items],
            method=SessionMethod.INGEST,
        )

        logger.info(f"Registered {len(items)} items for '{session_topic}'")

        first_due = min(state.next_due for state in states)
        lines = [f"Registered {len(items)} review items!", ""]
        lines += [f"  {i}. [{item.topic}] {item.question[:60]}" for i, item in enumerate(items, 1)]
        lines += ["", f"First review: {self._format_date(first_due)}"]
        return IngestResult(items=items, session=session, message="\n".join(lines))

    # =========================================================================
    # Review
    # =========================================================================

    def next_question(self, as_of: datetime | None = None) -> DueQuestion | None:
        """The first due item rendered as a question, or None if nothing is due."""
        due = self.scheduler.get_due(as_of)
        if not due:
            return None

        item = due[0]
        state = self.scheduler.initialize(item.id)
        archetype = self.scheduler.get_review_archetype(state.stage)
        return DueQuestion(
            item=item,
            stage=state.stage,
            archetype=archetype,
            text=archetype.render(item.topic),
            due_count=len(due),
        )

    def handle_due(self) -> str:
        """Morning trigger: the first due question, or a nothing-due note."""
        question = self.next_question()
        if question is None:
            return "Good morning! Nothing is due for review today. How about learning something new?"

        return (
            f"Due for review today: {question.due_count}\n\n"
            f"[{question.archetype.kind}] {question.text}\n\n"
            f"(item id: {question.item.id})"
        )

    def process_review_answer(
        self,
        item_id: str,
        user_answer: str | None,
        correct: bool,
        feedback: str | None = None,
    ) -> ReviewOutcome:
        """
        Record a graded answer and move the item along the ladder.

        Returns:
            ReviewOutcome; for an unknown item nothing is recorded and
            ``found`` is False
        """
        item = self.store.get_item(item_id)
        if item is None:
            return ReviewOutcome(state=None, message=f"Item {item_id} not found.", found=False)

        self.store.add_review(
            item_id,
            ReviewResult.PASS if correct else ReviewResult.FAIL,
            user_answer=user_answer,
            feedback=feedback,
        )
        state = self.scheduler.record_outcome(item_id, correct)
        next_date = self._format_date(state.next_due)

        if correct:
            lines = [
                "Correct! You remember this well.",
                "",
                f"Streak: {state.consecutive_correct}",
                f"Next review: {next_date}",
            ]
        else:
            lines = [
                "Not quite this time.",
                "",
                f"Expected: {item.expected_answer or '(no reference answer)'}",
                f"Next review: {next_date} (one stage back)",
            ]
        if feedback:
            lines += ["", f"Feedback: {feedback}"]

        return ReviewOutcome(state=state, message="\n".join(lines))

    def skip_review(self, item_id: str, user_answer: str | None = None) -> ReviewOutcome:
        """Record a skipped review. The schedule does not move."""
        item = self.store.get_item(item_id)
        if item is None:
            return ReviewOutcome(state=None, message=f"Item {item_id} not found.", found=False)

        self.store.add_review(item_id, ReviewResult.SKIP, user_answer=user_answer)
        state = self.scheduler.initialize(item_id)
        return ReviewOutcome(
            state=state,
            message=f"Skipped. The item stays scheduled for {self._format_date(state.next_due)}.",
        )

    # =========================================================================
    # Sparring
    # =========================================================================

    def start_sparring(self, topic: str) -> SparringStart:
        """
        Open an adversarial practice session on a topic.

        Args:
            topic: What the learner will defend

        Returns:
            SparringStart with the stored session, the system prompt for
            the language model and the opening challenge for the learner
        """
        session = SparringSession(id=str(uuid4()), topic=topic, started_at=self.clock())
        self.store.save_sparring_session(session.to_dict())
        logger.info(f"Sparring session {session.id} started on '{topic}'")

        return SparringStart(
            session=session,
            system_prompt=sparring_prompt(topic, self.settings.user_level),
            first_challenge=(
                f'Sparring starts now!\n\nTopic: "{topic}"\n\n'
                "Explain this topic in your own words. I will look for the weak spots."
            ),
        )

    def record_sparring_round(
        self,
        session_id: str,
        sparring_round: SparringRound | dict,
    ) -> SparringSession | None:
        """
        Append a round to a stored sparring session.

        Returns:
            The updated session, or None if the session is unknown
        """
        with self.store.lock:
            raw = self.store.get_sparring_session(session_id)
            if raw is None:
                logger.debug(f"Sparring session {session_id} not found")
                return None

            try:
                session = SparringSession.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Sparring session {session_id} is malformed: {exc}")
                return None
            if not isinstance(sparring_round, SparringRound):
                sparring_round = SparringRound.from_dict(sparring_round)
            session.rounds.append(sparring_round)
            self.store.save_sparring_session(session.to_dict())

        return session

    # =========================================================================
    # Summaries
    # =========================================================================

    def handle_evening_summary(self) -> str:
        """Evening trigger: topics and items from sessions started today."""
        now_local = self.clock().astimezone(self.settings.tzinfo)
        start_of_day = now_local.replace(hour=0, minute=0, second=0, microsecond=0)
        sessions = self.store.get_sessions_since(start_of_day)

        topics = list(dict.fromkeys(s.topic for s in sessions))
        item_count = sum(len(s.item_ids) for s in sessions)
        return evening_summary_message(topics, item_count)

    def handle_weekly_report(self) -> str:
        """Weekly trigger: build, store and format the weekly report."""
        report = self.aggregator.build_report()
        self.store.save_weekly_report(report)
        logger.info(f"Weekly report stored ({report.total_reviews} reviews)")
        return self.format_weekly_report(report)

    def weekly_report_prompt(self) -> str:
        """Prompt for a language model to write up the latest window."""
        report = self.aggregator.build_report()
        failed, strong = self.aggregator.split_topics()
        return weekly_report_prompt(report, failed, strong)

    def format_weekly_report(self, report: WeeklyReport) -> str:
        tz = self.settings.tzinfo
        lines = [
            f"Period: {report.period_start.astimezone(tz):%m/%d} ~ {report.period_end.astimezone(tz):%m/%d}",
            "",
            "This week:",
            f"  - Reviews: {report.total_reviews}",
            f"  - Correct rate: {report.correct_rate:.1f}%",
            f"  - Topics studied: {report.topics_studied}",
            "",
        ]

        if report.top_weaknesses:
            lines.append("Weak spots:")
            lines += [f"  - {w.topic} ({w.fail_count} wrong)" for w in report.top_weaknesses]
            lines.append("")

        if report.recommendations:
            lines.append("Recommendations:")
            lines += [f"  - {rec}" for rec in report.recommendations]

        return "\n".join(lines)

    def status_report(self) -> str:
        """Dashboard of overall progress."""
        stats = self.store.get_stats()
        summary = self.scheduler.get_summary()

        return "\n".join(
            [
                "Learning dashboard",
                "-" * 25,
                "",
                f"Items: {stats['total_items']}",
                f"Reviews: {stats['total_reviews']}",
                f"Overall correct rate: {stats['overall_correct_rate']:.1f}%",
                "",
                f"Due today: {summary['due_today']}",
                f"Mastered: {summary['mastered']}",
                f"Struggling: {summary['struggling']}",
                "",
                f"Sparring sessions: {stats['total_sparrings']}",
                f"Study sessions: {stats['total_sessions']}",
                "",
                f"Level: {self.settings.user_level}",
            ]
        )

    def level_info(self) -> str:
        """Current level with a recommendation based on the average correct rate."""
        rate = self.scheduler.get_summary()["average_correct_rate"]

        if rate > 85:
            recommendation = "Your correct rate is high. Try raising the difficulty."
        elif rate > 60:
            recommendation = "You are at the right level. Keep the current difficulty."
        else:
            recommendation = "Your correct rate is low. Consider lowering the difficulty."

        return "\n".join(
            [
                "Learning level",
                "",
                f"Current level: {self.settings.user_level}",
                f"Average correct rate: {rate:.1f}%",
                "",
                recommendation,
            ]
        )

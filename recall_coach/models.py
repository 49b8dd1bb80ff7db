"""
Data records for the review document.

Records are plain dataclasses. On disk they are stored as camelCase JSON
objects inside one document (see StateStore); timestamps are ISO-8601
strings and are always read back as timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .clock import ensure_utc

# =============================================================================
# Helpers
# =============================================================================


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as ISO-8601 UTC."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, reading naive values as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    # Older documents written by JS runtimes end in "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def _require_timestamp(value: Any, name: str) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Missing timestamp '{name}'")
    return parsed


MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


def clamp_difficulty(value: Any) -> int:
    """Coerce a difficulty into 1..5."""
    return min(max(int(value), MIN_DIFFICULTY), MAX_DIFFICULTY)


# =============================================================================
# Enums
# =============================================================================


class ReviewResult(str, Enum):
    """Outcome of a single review."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class SessionMethod(str, Enum):
    """What kind of interaction batch a session records."""

    INGEST = "ingest"
    SPAR = "spar"
    REVIEW = "review"
    REPORT = "report"


# =============================================================================
# Items
# =============================================================================


@dataclass
class ItemDraft:
    """An item as supplied by the extraction collaborator, before storage."""

    topic: str
    question: str
    expected_answer: str
    difficulty: int = 2
    tags: list[str] = field(default_factory=list)
    source_file: str | None = None


@dataclass
class Item:
    """A reviewable item. Immutable once created except for its tags."""

    id: str
    topic: str
    question: str
    expected_answer: str
    difficulty: int
    tags: list[str]
    created_at: datetime
    source_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "topic": self.topic,
            "question": self.question,
            "expectedAnswer": self.expected_answer,
            "difficulty": self.difficulty,
            "tags": list(self.tags),
            "createdAt": format_timestamp(self.created_at),
        }
        if self.source_file is not None:
            data["sourceFile"] = self.source_file
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Item:
        return cls(
            id=str(data["id"]),
            topic=str(data["topic"]),
            question=str(data["question"]),
            expected_answer=str(data.get("expectedAnswer", "")),
            difficulty=clamp_difficulty(data.get("difficulty", 2)),
            tags=[str(t) for t in data.get("tags") or []],
            created_at=_require_timestamp(data.get("createdAt"), "createdAt"),
            source_file=data.get("sourceFile"),
        )


# =============================================================================
# Reviews
# =============================================================================


@dataclass
class ReviewRecord:
    """A single review event. Append-only."""

    item_id: str
    reviewed_at: datetime
    result: ReviewResult
    user_answer: str | None = None
    feedback: str | None = None

    @property
    def passed(self) -> bool:
        return self.result == ReviewResult.PASS

    @property
    def failed(self) -> bool:
        return self.result == ReviewResult.FAIL

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "itemId": self.item_id,
            "reviewedAt": format_timestamp(self.reviewed_at),
            "result": self.result.value,
        }
        if self.user_answer is not None:
            data["userAnswer"] = self.user_answer
        if self.feedback is not None:
            data["feedback"] = self.feedback
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ReviewRecord:
        return cls(
            item_id=str(data["itemId"]),
            reviewed_at=_require_timestamp(data.get("reviewedAt"), "reviewedAt"),
            result=ReviewResult(data["result"]),
            user_answer=data.get("userAnswer"),
            feedback=data.get("feedback"),
        )


# =============================================================================
# Scheduling State
# =============================================================================


@dataclass
class SchedulingState:
    """Spaced repetition state for a single item."""

    item_id: str
    stage: int = 0  # Index into the configured interval list
    next_due: datetime | None = None
    consecutive_correct: int = 0
    total_attempts: int = 0
    total_correct: int = 0
    last_reviewed: datetime | None = None

    @property
    def correct_rate(self) -> float:
        """Fraction of attempts answered correctly (0.0 with no attempts)."""
        if self.total_attempts == 0:
            return 0.0
        return self.total_correct / self.total_attempts

    def is_due(self, as_of: datetime) -> bool:
        if self.next_due is None:
            return True
        return self.next_due <= ensure_utc(as_of)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "itemId": self.item_id,
            "stage": self.stage,
            "nextDue": format_timestamp(self.next_due),
            "consecutiveCorrect": self.consecutive_correct,
            "totalAttempts": self.total_attempts,
            "totalCorrect": self.total_correct,
        }
        if self.last_reviewed is not None:
            data["lastReviewed"] = format_timestamp(self.last_reviewed)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SchedulingState:
        return cls(
            item_id=str(data["itemId"]),
            stage=int(data.get("stage", 0)),
            next_due=_require_timestamp(data.get("nextDue"), "nextDue"),
            consecutive_correct=int(data.get("consecutiveCorrect", 0)),
            total_attempts=int(data.get("totalAttempts", 0)),
            total_correct=int(data.get("totalCorrect", 0)),
            last_reviewed=parse_timestamp(data.get("lastReviewed")),
        )


# =============================================================================
# Sessions
# =============================================================================


@dataclass
class Session:
    """A write-once record of an interaction batch."""

    id: str
    started_at: datetime
    topic: str
    summary: str
    item_ids: list[str]
    method: SessionMethod
    ended_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "startedAt": format_timestamp(self.started_at),
            "topic": self.topic,
            "summary": self.summary,
            "itemIds": list(self.item_ids),
            "method": self.method.value,
        }
        if self.ended_at is not None:
            data["endedAt"] = format_timestamp(self.ended_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        return cls(
            id=str(data["id"]),
            started_at=_require_timestamp(data.get("startedAt"), "startedAt"),
            topic=str(data.get("topic", "")),
            summary=str(data.get("summary", "")),
            item_ids=[str(i) for i in data.get("itemIds") or []],
            method=SessionMethod(data.get("method", SessionMethod.INGEST.value)),
            ended_at=parse_timestamp(data.get("endedAt")),
        )


# =============================================================================
# Sparring
# =============================================================================


@dataclass
class SparringRound:
    """One challenge/response exchange in a sparring session."""

    round: int
    ai_challenge: str
    user_response: str | None = None
    evaluation: str | None = None
    weakness_found: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"round": self.round, "aiChallenge": self.ai_challenge}
        if self.user_response is not None:
            data["userResponse"] = self.user_response
        if self.evaluation is not None:
            data["evaluation"] = self.evaluation
        if self.weakness_found is not None:
            data["weaknessFound"] = self.weakness_found
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SparringRound:
        return cls(
            round=int(data["round"]),
            ai_challenge=str(data.get("aiChallenge", "")),
            user_response=data.get("userResponse"),
            evaluation=data.get("evaluation"),
            weakness_found=data.get("weaknessFound"),
        )


@dataclass
class SparringSession:
    """An adversarial practice session on one topic."""

    id: str
    topic: str
    started_at: datetime
    rounds: list[SparringRound] = field(default_factory=list)
    final_evaluation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "topic": self.topic,
            "startedAt": format_timestamp(self.started_at),
            "rounds": [r.to_dict() for r in self.rounds],
        }
        if self.final_evaluation is not None:
            data["finalEvaluation"] = self.final_evaluation
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SparringSession:
        return cls(
            id=str(data["id"]),
            topic=str(data.get("topic", "")),
            started_at=_require_timestamp(data.get("startedAt"), "startedAt"),
            rounds=[SparringRound.from_dict(r) for r in data.get("rounds") or []],
            final_evaluation=data.get("finalEvaluation"),
        )


# =============================================================================
# Weekly Report
# =============================================================================


@dataclass
class WeaknessItem:
    """An item ranked by its failures in the report window."""

    item_id: str
    topic: str
    fail_count: int
    suggestion: str
    sample_wrong_answer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "itemId": self.item_id,
            "topic": self.topic,
            "failCount": self.fail_count,
            "suggestion": self.suggestion,
        }
        if self.sample_wrong_answer is not None:
            data["sampleWrongAnswer"] = self.sample_wrong_answer
        return data


@dataclass
class WeeklyReport:
    """Statistics for a trailing review window."""

    period_start: datetime
    period_end: datetime
    generated_at: datetime
    total_reviews: int
    correct_rate: float
    topics_studied: int
    top_weaknesses: list[WeaknessItem] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "periodStart": format_timestamp(self.period_start),
            "periodEnd": format_timestamp(self.period_end),
            "generatedAt": format_timestamp(self.generated_at),
            "totalReviews": self.total_reviews,
            "correctRate": self.correct_rate,
            "topicsStudied": self.topics_studied,
            "topWeaknesses": [w.to_dict() for w in self.top_weaknesses],
            "recommendations": list(self.recommendations),
        }


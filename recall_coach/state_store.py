"""
JSON State Store for recall-coach.

Provides durable persistence for:
- Items produced by the extraction collaborator
- Review history (append-only)
- Spaced repetition state per item
- Study sessions
- Sparring sessions and weekly reports (stored opaquely)

The whole dataset lives in one JSON document, rewritten atomically after
every mutating call. Document location: ~/.recall_coach/review_db.json
"""

from __future__ import annotations

import copy
import json
import os
import threading
from dataclasses import fields, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar
from uuid import uuid4

from loguru import logger

from .clock import Clock, ensure_utc, system_clock
from .errors import PersistenceError
from .models import (
    Item,
    ItemDraft,
    ReviewRecord,
    ReviewResult,
    SchedulingState,
    Session,
    SessionMethod,
    WeeklyReport,
    clamp_difficulty,
    format_timestamp,
    parse_timestamp,
)

T = TypeVar("T")

# Top-level arrays of the document, in write order
COLLECTIONS = (
    "items",
    "reviews",
    "schedulingStates",
    "sessions",
    "sparringSessions",
    "weeklyReports",
)

_STATE_FIELDS = frozenset(f.name for f in fields(SchedulingState)) - {"item_id"}


class StateStore:
    """
    JSON-backed state persistence.

    Handles:
    - Item CRUD (items are immutable apart from their tags)
    - Review log
    - Scheduling state per item (exactly one per item once created)
    - Session history, sparring sessions and weekly reports

    Every public method runs under one re-entrant lock, so mutations are
    serialized per document. Callers that need a read-modify-write across
    several calls (the scheduler) can hold ``store.lock`` themselves.

    Records handed out are copies; change them through the store.
    """

    DEFAULT_DB_PATH = Path.home() / ".recall_coach" / "review_db.json"

    def __init__(self, db_path: Path | str | None = None, clock: Clock | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom document path (defaults to ~/.recall_coach/review_db.json)
            clock: Time source for stamps (defaults to the system clock)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._clock = clock or system_clock
        self._lock = threading.RLock()

        self._items: dict[str, Item] = {}
        self._reviews: list[ReviewRecord] = []
        self._states: dict[str, SchedulingState] = {}
        self._sessions: list[Session] = []
        self._sparring_sessions: list[dict[str, Any]] = []
        self._weekly_reports: list[dict[str, Any]] = []
        self._last_updated: datetime = self._clock()

        self._load()

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def lock(self) -> threading.RLock:
        """The lock guarding the dataset."""
        return self._lock

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    # =========================================================================
    # File I/O
    # =========================================================================

    def _read_document(self) -> dict[str, Any]:
        if not self.db_path.exists():
            return {}
        try:
            with open(self.db_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read review document: {exc}", str(self.db_path)) from exc
        if not isinstance(raw, dict):
            raise PersistenceError(
                f"Review document is a {type(raw).__name__}, expected an object",
                str(self.db_path),
            )
        return raw

    def _write_document(self, document: dict[str, Any]) -> None:
        tmp_path = self.db_path.with_name(self.db_path.name + ".tmp")
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            # Atomic swap
            os.replace(tmp_path, self.db_path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.debug(f"Could not remove temp file {tmp_path}")
            raise PersistenceError(f"Cannot write review document: {exc}", str(self.db_path)) from exc

    def _load(self) -> None:
        """Load the document once; any read failure leaves an empty dataset."""
        try:
            raw = self._read_document()
        except PersistenceError as exc:
            logger.warning(f"{exc} - starting with an empty dataset")
            raw = {}
        self._apply_document(self.normalize_document(raw))

    def _save(self) -> bool:
        """
        Persist the complete dataset.

        A failed write is logged and the in-memory state stays authoritative,
        so the next successful save still writes everything.

        Returns:
            True if the document was written
        """
        self._last_updated = self._clock()
        try:
            self._write_document(self.to_document())
        except PersistenceError as exc:
            logger.error(f"{exc} - keeping in-memory state")
            return False
        return True

    @staticmethod
    def normalize_document(raw: Any) -> dict[str, Any]:
        """
        Coerce a raw document into the expected shape.

        Any missing or non-list top-level array becomes an empty list.
        """
        source = raw if isinstance(raw, dict) else {}
        document: dict[str, Any] = {}
        for key in COLLECTIONS:
            value = source.get(key)
            if value is not None and not isinstance(value, list):
                logger.warning(f"Ignoring malformed '{key}' field ({type(value).__name__})")
            document[key] = value if isinstance(value, list) else []
        document["lastUpdated"] = source.get("lastUpdated")
        return document

    def _apply_document(self, document: dict[str, Any]) -> None:
        for item in self._parse_records(document["items"], Item.from_dict, "item"):
            if item.id in self._items:
                logger.warning(f"Dropping duplicate item {item.id}")
                continue
            self._items[item.id] = item

        self._reviews = self._parse_records(document["reviews"], ReviewRecord.from_dict, "review")

        for state in self._parse_records(
            document["schedulingStates"], SchedulingState.from_dict, "scheduling state"
        ):
            if state.item_id in self._states:
                logger.warning(f"Dropping duplicate scheduling state for {state.item_id}")
                continue
            self._states[state.item_id] = state

        self._sessions = self._parse_records(document["sessions"], Session.from_dict, "session")
        self._sparring_sessions = [s for s in document["sparringSessions"] if isinstance(s, dict)]
        self._weekly_reports = [r for r in document["weeklyReports"] if isinstance(r, dict)]

        try:
            last_updated = parse_timestamp(document["lastUpdated"])
        except ValueError:
            last_updated = None
        self._last_updated = last_updated or self._clock()

    @staticmethod
    def _parse_records(
        raw_records: Iterable[Any],
        parse: Callable[[dict], T],
        label: str,
    ) -> list[T]:
        records: list[T] = []
        for index, raw in enumerate(raw_records):
            if not isinstance(raw, dict):
                logger.warning(f"Dropping malformed {label} at index {index}")
                continue
            try:
                records.append(parse(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Dropping malformed {label} at index {index}: {exc}")
        return records

    def to_document(self) -> dict[str, Any]:
        """Serialize the whole dataset as the persisted document."""
        with self._lock:
            return {
                "items": [item.to_dict() for item in self._items.values()],
                "reviews": [review.to_dict() for review in self._reviews],
                "schedulingStates": [state.to_dict() for state in self._states.values()],
                "sessions": [session.to_dict() for session in self._sessions],
                "sparringSessions": copy.deepcopy(self._sparring_sessions),
                "weeklyReports": copy.deepcopy(self._weekly_reports),
                "lastUpdated": format_timestamp(self._last_updated),
            }

    # =========================================================================
    # Items
    # =========================================================================

    def add_items(self, drafts: Iterable[ItemDraft]) -> list[Item]:
        """
        Store several items at once.

        Args:
            drafts: Item contents without id or creation time

        Returns:
            The created items, in input order
        """
        with self._lock:
            now = self._clock()
            created = [
                Item(
                    id=str(uuid4()),
                    topic=draft.topic,
                    question=draft.question,
                    expected_answer=draft.expected_answer,
                    difficulty=clamp_difficulty(draft.difficulty),
                    tags=list(draft.tags),
                    created_at=now,
                    source_file=draft.source_file,
                )
                for draft in drafts
            ]
            for item in created:
                self._items[item.id] = item
            if created:
                self._save()
            return copy.deepcopy(created)

    def add_item(self, draft: ItemDraft) -> Item:
        return self.add_items([draft])[0]

    def get_item(self, item_id: str) -> Item | None:
        with self._lock:
            item = self._items.get(item_id)
            return copy.deepcopy(item) if item else None

    def get_all_items(self) -> list[Item]:
        with self._lock:
            return copy.deepcopy(list(self._items.values()))

    def find_by_tag(self, tag: str) -> list[Item]:
        """Items carrying the tag (case-insensitive)."""
        wanted = tag.casefold()
        with self._lock:
            return copy.deepcopy(
                [i for i in self._items.values() if any(t.casefold() == wanted for t in i.tags)]
            )

    def find_by_topic(self, topic: str) -> list[Item]:
        """Items whose topic contains the substring (case-insensitive)."""
        wanted = topic.casefold()
        with self._lock:
            return copy.deepcopy([i for i in self._items.values() if wanted in i.topic.casefold()])

    def update_item_tags(self, item_id: str, tags: Iterable[str]) -> Item | None:
        """Replace an item's tags; the only edit items allow."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            updated = replace(item, tags=list(tags))
            self._items[item_id] = updated
            self._save()
            return copy.deepcopy(updated)

    def remove_item(self, item_id: str) -> bool:
        """Delete an item and its scheduling state. Reviews are kept."""
        with self._lock:
            if item_id not in self._items:
                return False
            del self._items[item_id]
            self._states.pop(item_id, None)
            self._save()
            return True

    # =========================================================================
    # Reviews
    # =========================================================================

    def add_review(
        self,
        item_id: str,
        result: ReviewResult | str,
        user_answer: str | None = None,
        feedback: str | None = None,
    ) -> ReviewRecord:
        """
        Append a review event.

        Args:
            item_id: The reviewed item
            result: pass, fail or skip
            user_answer: What the learner answered
            feedback: Evaluator feedback

        Returns:
            The stored record, stamped with the review time
        """
        with self._lock:
            record = ReviewRecord(
                item_id=item_id,
                reviewed_at=self._clock(),
                result=ReviewResult(result),
                user_answer=user_answer,
                feedback=feedback,
            )
            self._reviews.append(record)
            self._save()
            return copy.deepcopy(record)

    def get_reviews_for_item(self, item_id: str) -> list[ReviewRecord]:
        with self._lock:
            return copy.deepcopy([r for r in self._reviews if r.item_id == item_id])

    def get_recent_reviews(self, window_days: float, as_of: datetime | None = None) -> list[ReviewRecord]:
        """
        Reviews inside a trailing window.

        Args:
            window_days: Window length in days
            as_of: End of the window (defaults to now)

        Returns:
            Reviews with reviewed_at >= as_of - window_days, oldest first
        """
        end = ensure_utc(as_of) if as_of else self._clock()
        cutoff = end - timedelta(days=window_days)
        with self._lock:
            return copy.deepcopy([r for r in self._reviews if r.reviewed_at >= cutoff])

    # =========================================================================
    # Scheduling State
    # =========================================================================

    def get_or_create_scheduling_state(self, item_id: str, first_due: datetime) -> SchedulingState:
        """
        Get the scheduling state for an item, creating it at stage 0 if missing.

        Args:
            item_id: The item identifier
            first_due: Due date used only when the state is created

        Returns:
            The existing or newly created state
        """
        with self._lock:
            state = self._states.get(item_id)
            if state is None:
                state = SchedulingState(item_id=item_id, stage=0, next_due=ensure_utc(first_due))
                self._states[item_id] = state
                self._save()
            return copy.deepcopy(state)

    def get_scheduling_state(self, item_id: str) -> SchedulingState | None:
        with self._lock:
            state = self._states.get(item_id)
            return copy.deepcopy(state) if state else None

    def update_scheduling_state(self, item_id: str, **patch: Any) -> SchedulingState | None:
        """
        Merge a partial update into an existing state.

        Args:
            item_id: The item whose state to update
            **patch: SchedulingState fields to overwrite

        Returns:
            The updated state, or None if the item has no state (no-op)
        """
        unknown = set(patch) - _STATE_FIELDS
        if unknown:
            raise TypeError(f"Unknown scheduling state fields: {sorted(unknown)}")

        with self._lock:
            state = self._states.get(item_id)
            if state is None:
                return None
            updated = replace(state, **patch)
            self._states[item_id] = updated
            self._save()
            return copy.deepcopy(updated)

    def get_due_item_ids(self, as_of: datetime | None = None) -> list[str]:
        """
        Get item IDs that are due for review.

        Args:
            as_of: Reference time (defaults to now)

        Returns:
            IDs whose next_due <= as_of, in insertion order
        """
        now = ensure_utc(as_of) if as_of else self._clock()
        with self._lock:
            return [s.item_id for s in self._states.values() if s.is_due(now)]

    def get_all_scheduling_states(self) -> list[SchedulingState]:
        with self._lock:
            return copy.deepcopy(list(self._states.values()))

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(
        self,
        topic: str,
        summary: str,
        item_ids: Iterable[str],
        method: SessionMethod | str,
        ended_at: datetime | None = None,
    ) -> Session:
        """Record a study session (write-once)."""
        with self._lock:
            session = Session(
                id=str(uuid4()),
                started_at=self._clock(),
                topic=topic,
                summary=summary,
                item_ids=list(item_ids),
                method=SessionMethod(method),
                ended_at=ensure_utc(ended_at) if ended_at else None,
            )
            self._sessions.append(session)
            self._save()
            return copy.deepcopy(session)

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            for session in self._sessions:
                if session.id == session_id:
                    return copy.deepcopy(session)
            return None

    def get_recent_sessions(self, count: int) -> list[Session]:
        """The last ``count`` sessions, oldest first."""
        if count <= 0:
            return []
        with self._lock:
            return copy.deepcopy(self._sessions[-count:])

    def get_sessions_since(self, since: datetime) -> list[Session]:
        cutoff = ensure_utc(since)
        with self._lock:
            return copy.deepcopy([s for s in self._sessions if s.started_at >= cutoff])

    # =========================================================================
    # Sparring Sessions & Weekly Reports (opaque)
    # =========================================================================

    def save_sparring_session(self, session: dict[str, Any]) -> None:
        """Insert or replace a sparring session, matched by its 'id' key."""
        with self._lock:
            stored = copy.deepcopy(session)
            session_id = stored.get("id")
            for index, existing in enumerate(self._sparring_sessions):
                if session_id is not None and existing.get("id") == session_id:
                    self._sparring_sessions[index] = stored
                    break
            else:
                self._sparring_sessions.append(stored)
            self._save()

    def get_sparring_session(self, session_id: str) -> dict[str, Any] | None:
        with self._lock:
            for session in self._sparring_sessions:
                if session.get("id") == session_id:
                    return copy.deepcopy(session)
            return None

    def get_recent_sparring_sessions(self, count: int) -> list[dict[str, Any]]:
        if count <= 0:
            return []
        with self._lock:
            return copy.deepcopy(self._sparring_sessions[-count:])

    def save_weekly_report(self, report: WeeklyReport | dict[str, Any]) -> None:
        with self._lock:
            data = report.to_dict() if isinstance(report, WeeklyReport) else copy.deepcopy(report)
            self._weekly_reports.append(data)
            self._save()

    def get_latest_report(self) -> dict[str, Any] | None:
        with self._lock:
            if not self._weekly_reports:
                return None
            return copy.deepcopy(self._weekly_reports[-1])

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """
        Get overall learning statistics.

        Returns:
            Dictionary with aggregate counts and the all-time correct rate (%)
        """
        with self._lock:
            total_reviews = len(self._reviews)
            passed = sum(1 for r in self._reviews if r.passed)
            return {
                "total_items": len(self._items),
                "total_reviews": total_reviews,
                "total_sessions": len(self._sessions),
                "total_sparrings": len(self._sparring_sessions),
                "overall_correct_rate": (passed / total_reviews * 100) if total_reviews else 0.0,
            }

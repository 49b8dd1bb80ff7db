"""
Weekly Aggregator.

Summarizes a trailing window of review activity:
- Review count and correct rate
- Number of distinct topics studied
- Items ranked by failures (top 5)
- Rule-based recommendations for next week
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from loguru import logger

from .clock import Clock, ensure_utc, system_clock
from .models import Item, ReviewRecord, Session, WeaknessItem, WeeklyReport
from .state_store import StateStore

MAX_WEAKNESSES = 5
UNKNOWN_TOPIC = "unknown"

ItemLookup = Callable[[str], Item | None]


def correct_rate(reviews: list[ReviewRecord]) -> float:
    """Percentage of passed reviews (0.0 for an empty window)."""
    if not reviews:
        return 0.0
    return sum(1 for r in reviews if r.passed) / len(reviews) * 100


def rank_weaknesses(reviews: Iterable[ReviewRecord], item_lookup: ItemLookup) -> list[WeaknessItem]:
    """
    Rank items by failure count.

    Counts fails per item, sorts descending (ties keep first-encountered
    order) and keeps the top five.
    """
    failures: Counter[str] = Counter()
    wrong_answers: dict[str, str] = {}
    for review in reviews:
        if not review.failed:
            continue
        failures[review.item_id] += 1
        if review.user_answer:
            wrong_answers[review.item_id] = review.user_answer

    # sorted() is stable and Counter keeps insertion order
    ranked = sorted(failures.items(), key=lambda pair: pair[1], reverse=True)[:MAX_WEAKNESSES]

    weaknesses = []
    for item_id, fail_count in ranked:
        item = item_lookup(item_id)
        topic = item.topic if item else UNKNOWN_TOPIC
        weaknesses.append(
            WeaknessItem(
                item_id=item_id,
                topic=topic,
                fail_count=fail_count,
                suggestion=f'Revisit "{topic}" and start a sparring round on it.',
                sample_wrong_answer=wrong_answers.get(item_id),
            )
        )
    return weaknesses


def build_recommendations(
    rate: float,
    weaknesses: list[WeaknessItem],
    topics_studied: int,
) -> list[str]:
    """Every applicable rule fires, in a fixed order."""
    recommendations: list[str] = []

    if rate < 50:
        recommendations.append(
            "Correct rate is below 50%. Go back over the fundamentals and lower the difficulty one level."
        )
    elif rate < 75:
        recommendations.append(
            "Correct rate is solid. Focus adversarial sparring practice on your weak topics."
        )
    else:
        recommendations.append(
            "Correct rate is excellent! Raise the difficulty and take on deeper questions."
        )

    if weaknesses:
        recommendations.append(f'Your weakest topic is "{weaknesses[0].topic}". Start a sparring session on it.')

    if topics_studied < 3:
        recommendations.append("Study volume was light this week. Try to learn at least one concept a day.")

    return recommendations


def summarize_window(
    reviews: list[ReviewRecord],
    sessions: Iterable[Session],
    item_lookup: ItemLookup,
    period_start: datetime,
    period_end: datetime,
    generated_at: datetime | None = None,
) -> WeeklyReport:
    """
    Build a report from the reviews and sessions of one window.

    Args:
        reviews: Reviews inside the window
        sessions: Sessions to consider; only those started in the window count
        item_lookup: Resolves item ids to items (None when missing)
        period_start: Window start
        period_end: Window end
        generated_at: Report timestamp (defaults to period_end)

    Returns:
        WeeklyReport
    """
    start = ensure_utc(period_start)
    end = ensure_utc(period_end)

    rate = correct_rate(reviews)
    topics_studied = len({s.topic for s in sessions if start <= s.started_at <= end})
    weaknesses = rank_weaknesses(reviews, item_lookup)

    return WeeklyReport(
        period_start=start,
        period_end=end,
        generated_at=ensure_utc(generated_at) if generated_at else end,
        total_reviews=len(reviews),
        correct_rate=rate,
        topics_studied=topics_studied,
        top_weaknesses=weaknesses,
        recommendations=build_recommendations(rate, weaknesses, topics_studied),
    )


class WeeklyAggregator:
    """Reads a trailing window from the store and summarizes it."""

    def __init__(self, store: StateStore, clock: Clock | None = None, window_days: int = 7):
        self.store = store
        self.clock = clock or system_clock
        self.window_days = window_days

    def build_report(self, as_of: datetime | None = None) -> WeeklyReport:
        end = ensure_utc(as_of) if as_of else self.clock()
        start = end - timedelta(days=self.window_days)

        reviews = [r for r in self.store.get_recent_reviews(self.window_days, as_of=end) if r.reviewed_at <= end]
        sessions = self.store.get_sessions_since(start)

        report = summarize_window(reviews, sessions, self.store.get_item, start, end, generated_at=end)
        logger.debug(
            f"Weekly report: {report.total_reviews} reviews, {report.correct_rate:.1f}% correct, "
            f"{len(report.top_weaknesses)} weak items"
        )
        return report

    def split_topics(self, as_of: datetime | None = None) -> tuple[list[str], list[str]]:
        """
        Topics failed and passed in the window, deduplicated in first-seen order.

        Returns:
            (failed_topics, strong_topics)
        """
        end = ensure_utc(as_of) if as_of else self.clock()
        failed: dict[str, None] = {}
        strong: dict[str, None] = {}
        for review in self.store.get_recent_reviews(self.window_days, as_of=end):
            if review.reviewed_at > end:
                continue
            item = self.store.get_item(review.item_id)
            if item is None:
                continue
            if review.failed:
                failed[item.topic] = None
            elif review.passed:
                strong[item.topic] = None
        return list(failed), list(strong)

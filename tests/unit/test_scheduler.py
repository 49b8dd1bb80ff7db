"""
Unit tests for the stage-ladder scheduler.

Uses a real StateStore on a temp file and a FixedClock, so every due date
is exact.
"""

import threading
from datetime import timedelta

import pytest

from recall_coach.errors import ConfigurationError
from recall_coach.models import ItemDraft
from recall_coach.scheduler import (
    REVIEW_ARCHETYPES,
    SchedulerConfig,
    SpacedRepetitionScheduler,
    get_review_archetype,
)


def make_item(store, topic="Closures", tags=None):
    return store.add_item(
        ItemDraft(topic=topic, question=f"What is {topic}?", expected_answer="...", tags=tags or [])
    )


class TestSchedulerConfig:
    def test_defaults(self):
        config = SchedulerConfig()
        assert config.intervals == [1, 3, 7, 14, 30]
        assert config.last_stage == 4

    @pytest.mark.parametrize("intervals", [[], [0, 3], [3, 1, 7], [1, 1, 2]])
    def test_invalid_intervals_rejected(self, intervals):
        with pytest.raises(ConfigurationError):
            SchedulerConfig(intervals=intervals)

    def test_acceleration_streak_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            SchedulerConfig(acceleration_streak=0)


class TestInitialize:
    def test_new_item_due_after_first_interval(self, store, scheduler, clock):
        item = make_item(store)
        state = scheduler.initialize(item.id)

        assert state.stage == 0
        assert state.next_due == clock() + timedelta(days=1)
        assert state.consecutive_correct == 0
        assert state.total_attempts == 0

    def test_initialize_is_idempotent(self, store, scheduler, clock):
        item = make_item(store)
        first = scheduler.initialize(item.id)
        clock.advance(days=5)
        second = scheduler.initialize(item.id)

        assert second == first
        assert len(store.get_all_scheduling_states()) == 1


class TestRecordOutcome:
    def test_ladder_scenario_with_lapse_and_acceleration(self, store, scheduler, clock):
        t0 = clock()
        item = make_item(store)
        scheduler.initialize(item.id)

        clock.set(t0 + timedelta(days=1))
        state = scheduler.record_outcome(item.id, correct=False)
        assert state.stage == 0
        assert state.next_due == t0 + timedelta(days=2)
        assert state.consecutive_correct == 0

        clock.set(t0 + timedelta(days=2))
        state = scheduler.record_outcome(item.id, correct=True)
        assert (state.stage, state.consecutive_correct) == (1, 1)
        assert state.next_due == clock() + timedelta(days=3)

        clock.advance(days=3)
        state = scheduler.record_outcome(item.id, correct=True)
        assert (state.stage, state.consecutive_correct) == (2, 2)
        assert state.next_due == clock() + timedelta(days=7)

        # Third consecutive pass climbs two stages
        clock.advance(days=7)
        state = scheduler.record_outcome(item.id, correct=True)
        assert (state.stage, state.consecutive_correct) == (4, 3)
        assert state.next_due == clock() + timedelta(days=30)

        assert state.total_attempts == 4
        assert state.total_correct == 3
        assert state.last_reviewed == clock()

    def test_streak_keeps_accelerating_after_jump(self, store, clock):
        scheduler = SpacedRepetitionScheduler(
            store, SchedulerConfig(intervals=[1, 2, 3, 4, 5, 6, 7, 8, 9]), clock=clock
        )
        item = make_item(store)
        scheduler.initialize(item.id)

        stages = [scheduler.record_outcome(item.id, correct=True).stage for _ in range(5)]

        assert stages == [1, 2, 4, 6, 8]

    def test_stage_capped_at_last_interval(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)

        for _ in range(10):
            state = scheduler.record_outcome(item.id, correct=True)

        assert state.stage == 4
        assert state.next_due == clock() + timedelta(days=30)

    def test_fail_drops_exactly_one_stage(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)
        store.update_scheduling_state(item.id, stage=3, consecutive_correct=5)

        state = scheduler.record_outcome(item.id, correct=False)

        assert state.stage == 2
        assert state.consecutive_correct == 0
        assert state.next_due == clock() + timedelta(days=7)

    def test_fail_at_stage_zero_stays_at_zero(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)

        state = scheduler.record_outcome(item.id, correct=False)

        assert state.stage == 0
        assert state.next_due == clock() + timedelta(days=1)

    def test_out_of_range_stage_is_clamped_before_update(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)
        store.update_scheduling_state(item.id, stage=12)

        state = scheduler.record_outcome(item.id, correct=False)

        assert state.stage == 3

    def test_outcome_without_state_initializes_first(self, store, scheduler, clock):
        item = make_item(store)

        state = scheduler.record_outcome(item.id, correct=True)

        assert state.stage == 1
        assert state.total_attempts == 1

    def test_outcome_is_persisted(self, store, scheduler, db_path, clock):
        from recall_coach.state_store import StateStore

        item = make_item(store)
        scheduler.initialize(item.id)
        scheduler.record_outcome(item.id, correct=True)

        reloaded = StateStore(db_path, clock=clock).get_scheduling_state(item.id)

        assert reloaded.stage == 1
        assert reloaded.consecutive_correct == 1

    def test_concurrent_outcomes_are_all_counted(self, store, scheduler, db_path, clock):
        from recall_coach.state_store import StateStore

        item = make_item(store)
        scheduler.initialize(item.id)
        barrier = threading.Barrier(40)

        def answer(correct):
            barrier.wait()
            scheduler.record_outcome(item.id, correct=correct)

        threads = [threading.Thread(target=answer, args=(i % 2 == 0,)) for i in range(40)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        state = store.get_scheduling_state(item.id)
        assert state.total_attempts == 40
        assert state.total_correct == 20

        reloaded = StateStore(db_path, clock=clock).get_scheduling_state(item.id)
        assert reloaded.total_attempts == 40
        assert reloaded.total_correct == 20


class TestGetDue:
    def test_nothing_due_before_first_interval(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)

        assert scheduler.get_due() == []
        assert [i.id for i in scheduler.get_due(clock() + timedelta(days=1))] == [item.id]

    def test_due_boundary_is_inclusive(self, store, scheduler, clock):
        item = make_item(store)
        state = scheduler.initialize(item.id)

        assert scheduler.get_due(state.next_due - timedelta(seconds=1)) == []
        assert len(scheduler.get_due(state.next_due)) == 1

    def test_due_items_keep_repository_order(self, store, scheduler, clock):
        first = make_item(store, "First")
        second = make_item(store, "Second")
        scheduler.initialize_many([first.id, second.id])

        due = scheduler.get_due(clock() + timedelta(days=2))

        assert [i.topic for i in due] == ["First", "Second"]

    def test_state_without_item_is_skipped(self, store, scheduler, clock):
        item = make_item(store)
        scheduler.initialize(item.id)
        store.get_or_create_scheduling_state("ghost", clock())

        due = scheduler.get_due(clock() + timedelta(days=1))

        assert [i.id for i in due] == [item.id]


class TestArchetypes:
    def test_one_archetype_per_stage(self):
        kinds = [get_review_archetype(stage).kind for stage in range(5)]
        assert kinds == ["recall", "apply", "integrate", "critique", "teach"]

    @pytest.mark.parametrize("stage, kind", [(-1, "recall"), (5, "teach"), (40, "teach")])
    def test_out_of_range_stage_clamps(self, stage, kind):
        assert get_review_archetype(stage).kind == kind

    def test_templates_mention_topic(self):
        for archetype in REVIEW_ARCHETYPES:
            assert "Monads" in archetype.render("Monads")

    def test_build_review_question_uses_current_stage(self, store, scheduler):
        item = make_item(store, "Monads")
        scheduler.initialize(item.id)
        store.update_scheduling_state(item.id, stage=3)

        question = scheduler.build_review_question(item)

        assert question == get_review_archetype(3).render("Monads")


class TestSummary:
    def test_summary_counts(self, store, scheduler, clock):
        mastered = make_item(store, "Mastered")
        struggling = make_item(store, "Struggling")
        fresh = make_item(store, "Fresh")
        scheduler.initialize_many([mastered.id, struggling.id, fresh.id])

        store.update_scheduling_state(mastered.id, stage=4, total_attempts=5, total_correct=5)
        store.update_scheduling_state(struggling.id, total_attempts=4, total_correct=1)

        summary = scheduler.get_summary(clock() + timedelta(days=1))

        assert summary["total_items"] == 3
        assert summary["due_today"] == 3
        assert summary["mastered"] == 1
        assert summary["struggling"] == 1
        assert summary["average_correct_rate"] == pytest.approx(6 / 9 * 100)

    def test_empty_summary(self, scheduler):
        summary = scheduler.get_summary()
        assert summary["total_items"] == 0
        assert summary["average_correct_rate"] == 0.0

    def test_categorize_by_stage(self, store, scheduler, clock):
        a = make_item(store, "A")
        b = make_item(store, "B")
        scheduler.initialize_many([a.id, b.id])
        store.update_scheduling_state(b.id, stage=2, next_due=clock())

        groups = scheduler.categorize_by_stage(clock() + timedelta(days=1))

        assert [i.id for i in groups[0]] == [a.id]
        assert [i.id for i in groups[2]] == [b.id]

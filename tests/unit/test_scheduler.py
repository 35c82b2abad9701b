"""
Unit tests for the AdaptiveScheduler state update.

Covers quality grading, ease/interval/level/difficulty updates and the
clamping of corrupt input. No store or session involved.
"""

import math
from dataclasses import fields
from datetime import datetime, timedelta, timezone

import pytest

from src.recall.progress import ProgressRecord
from src.recall.scheduler import AdaptiveScheduler, SchedulerConfig


class TestComputeQuality:
    @pytest.mark.parametrize(
        "was_correct, response_ms, expected",
        [
            (False, 500, 2),
            (False, None, 2),
            (True, None, 4),
            (True, 1500, 5),
            (True, 2000, 5),
            (True, 4000, 4),
            (True, 5000, 4),
            (True, 9000, 3),
            (True, 60000, 3),
        ],
    )
    def test_quality_bands(self, scheduler, was_correct, response_ms, expected):
        assert scheduler.compute_quality(was_correct, response_ms) == expected


class TestCorrectAnswer:
    def test_fresh_record_fast_correct(self, scheduler, fresh_record, now):
        updated = scheduler.advance(fresh_record, True, 1500, now)

        assert updated.repetitions == 1
        assert updated.level == 1
        assert updated.ease_factor > 2.5
        assert updated.interval_days >= 1
        assert updated.difficulty < 0.5
        assert updated.correct_count == 1
        assert updated.incorrect_count == 0
        assert updated.last_quality == 5
        assert updated.last_response_ms == 1500
        assert updated.last_attempt_at == now
        assert updated.next_review_at == now + timedelta(days=updated.interval_days)

    def test_fast_answer_lowers_difficulty_more_than_slow(self, scheduler, fresh_record, now):
        fast = scheduler.advance(fresh_record, True, 500, now)
        slow = scheduler.advance(fresh_record, True, 11000, now)

        assert fast.difficulty < slow.difficulty < 0.5

    def test_interval_growth_sequence(self, scheduler, fresh_record, now):
        record = fresh_record
        intervals = []
        for _ in range(4):
            record = scheduler.advance(record, True, 1000, now)
            intervals.append(record.interval_days)

        # 1, 6, then previous interval x ease (2.6 at the cap)
        assert intervals == [1, 6, 16, 42]

    def test_level_caps_at_three(self, scheduler, fresh_record, now):
        record = fresh_record
        for _ in range(6):
            record = scheduler.advance(record, True, 1000, now)
        assert record.level == 3
        assert record.repetitions == 6

    @pytest.mark.parametrize("response_ms", [None, 800, 3000, 8000, 20000])
    def test_ease_strictly_increases_until_cap(self, scheduler, fresh_record, now, response_ms):
        cap = scheduler.config.maximum_ease
        record = ProgressRecord(item_id="card-001", ease_factor=1.4)
        for _ in range(15):
            updated = scheduler.advance(record, True, response_ms, now)
            assert updated.ease_factor > record.ease_factor or updated.ease_factor == cap
            assert updated.ease_factor <= cap
            record = updated

    def test_interval_non_decreasing_over_streak(self, scheduler, now):
        record = ProgressRecord(item_id="card-001", repetitions=1, interval_days=20)
        previous = record.interval_days
        for _ in range(10):
            record = scheduler.advance(record, True, 7000, now)
            assert record.interval_days >= previous
            assert record.interval_days >= scheduler.config.first_interval
            previous = record.interval_days

    def test_interval_capped_at_maximum(self, scheduler, now):
        record = ProgressRecord(item_id="card-001", repetitions=30, interval_days=300, ease_factor=2.6)
        for _ in range(5):
            record = scheduler.advance(record, True, 1000, now)
        assert record.interval_days == scheduler.config.maximum_interval


class TestIncorrectAnswer:
    def test_fresh_record_incorrect(self, scheduler, fresh_record, now):
        updated = scheduler.advance(fresh_record, False, 4000, now)

        assert updated.repetitions == 0
        assert updated.level == 0
        assert scheduler.config.minimum_ease <= updated.ease_factor < 2.5
        assert updated.interval_days == 1
        assert updated.difficulty > 0.5
        assert updated.incorrect_count == 1
        assert updated.last_quality == 2

    def test_lapse_resets_mastered_item(self, scheduler, now):
        mastered = ProgressRecord(
            item_id="card-001",
            level=3,
            repetitions=5,
            interval_days=120,
            ease_factor=2.6,
            difficulty=0.1,
        )
        updated = scheduler.advance(mastered, False, 3000, now)

        assert updated.level == 0
        assert updated.repetitions == 0
        assert updated.interval_days == scheduler.config.lapse_interval

    def test_ease_never_below_floor(self, scheduler, now):
        record = ProgressRecord(item_id="card-001", ease_factor=1.35)
        for _ in range(10):
            record = scheduler.advance(record, False, 1000, now)
            assert record.ease_factor >= scheduler.config.minimum_ease
        assert record.ease_factor == scheduler.config.minimum_ease

    def test_mastery_is_never_locked_in(self, scheduler, fresh_record, now):
        record = fresh_record
        for _ in range(8):
            record = scheduler.advance(record, True, 1000, now)
        assert record.level == 3

        record = scheduler.advance(record, False, 1000, now)
        assert record.level == 0


class TestBoundedDifficulty:
    def test_difficulty_saturates_at_one(self, scheduler, fresh_record, now):
        record = fresh_record
        for _ in range(40):
            record = scheduler.advance(record, False, 30000, now)
            assert 0.0 <= record.difficulty <= 1.0
        assert record.difficulty == 1.0

    def test_difficulty_saturates_at_zero(self, scheduler, fresh_record, now):
        record = fresh_record
        for _ in range(40):
            record = scheduler.advance(record, True, 100, now)
            assert 0.0 <= record.difficulty <= 1.0
        assert record.difficulty == 0.0

    def test_mixed_sequence_stays_in_range(self, scheduler, fresh_record, now):
        record = fresh_record
        pattern = [True, False, False, True, True, True, False, True] * 10
        for i, outcome in enumerate(pattern):
            record = scheduler.advance(record, outcome, (i * 1700) % 15000, now)
            assert 0.0 <= record.difficulty <= 1.0
            assert record.interval_days >= 0


class TestDefensiveInput:
    def test_missing_record_uses_defaults(self, scheduler, now):
        updated = scheduler.advance(None, True, 1500, now, item_id="q-42")

        assert updated.item_id == "q-42"
        assert updated.repetitions == 1
        assert updated.level == 1

    def test_corrupt_numeric_fields_are_clamped(self, scheduler, now):
        corrupt = ProgressRecord(
            item_id="card-001",
            level=9,
            ease_factor=math.nan,
            interval_days=-4,
            repetitions=-2,
            difficulty=7.0,
        )
        updated = scheduler.advance(corrupt, True, -250, now)

        assert updated.ease_factor > 2.5
        assert updated.level == 3
        assert updated.repetitions == 1
        assert 0.0 <= updated.difficulty <= 1.0
        assert updated.last_response_ms == 0
        assert updated.interval_days >= 1

    def test_nan_response_time_counts_as_unknown(self, scheduler, fresh_record, now):
        updated = scheduler.advance(fresh_record, True, math.nan, now)
        assert updated.last_response_ms is None
        assert updated.last_quality == 4

    def test_naive_now_is_treated_as_utc(self, scheduler, fresh_record, now):
        naive = datetime(2026, 1, 15, 12, 0)
        updated = scheduler.advance(fresh_record, True, 1500, naive)
        assert updated.last_attempt_at == now

    def test_input_record_is_not_modified(self, scheduler, fresh_record, now):
        before = fresh_record.to_dict()
        scheduler.advance(fresh_record, False, 1000, now)
        assert fresh_record.to_dict() == before

    def test_huge_stored_interval_is_capped(self, scheduler, now):
        record = ProgressRecord("a", interval_days=10**7, repetitions=5)

        updated = scheduler.advance(record, True, 1000, now)

        assert updated.interval_days == 365
        assert updated.next_review_at == now + timedelta(days=365)

    def test_huge_integer_response_time_counts_as_unknown(self, scheduler, fresh_record, now):
        updated = scheduler.advance(fresh_record, True, 10**400, now)

        assert updated.last_response_ms is None
        assert updated.last_quality == 4

    def test_huge_integer_fields_fall_back_to_defaults(self, scheduler, now):
        record = ProgressRecord("a", ease_factor=10**400, difficulty=10**400, level=10**400)

        updated = scheduler.advance(record, False, 1000, now)

        assert updated.level == 0
        assert 1.3 <= updated.ease_factor < 2.5
        assert updated.difficulty > 0.5

    def test_due_date_saturates_at_calendar_end(self, scheduler, fresh_record):
        end_of_calendar = datetime(9999, 12, 31, 12, 0, tzinfo=timezone.utc)

        updated = scheduler.advance(fresh_record, False, 1000, end_of_calendar)

        assert updated.next_review_at == datetime.max.replace(tzinfo=timezone.utc)
        assert scheduler.is_due(updated, end_of_calendar) is False

    def test_ease_above_cap_is_clamped_into_range(self, scheduler, now):
        record = ProgressRecord("a", ease_factor=2.9, repetitions=3, interval_days=10)

        updated = scheduler.advance(record, True, 1000, now)

        assert updated.ease_factor == pytest.approx(2.6)

    def test_ease_below_floor_is_raised_into_range(self, scheduler, now):
        record = ProgressRecord("a", ease_factor=1.0, repetitions=3, interval_days=10)

        updated = scheduler.advance(record, True, 1000, now)

        assert updated.ease_factor == pytest.approx(1.4)


class TestConfiguration:
    def test_custom_lapse_interval(self, fresh_record, now):
        scheduler = AdaptiveScheduler(SchedulerConfig(lapse_interval=0))
        updated = scheduler.advance(fresh_record, False, 1000, now)
        assert updated.interval_days == 0
        assert updated.next_review_at == now

    def test_from_settings(self):
        from config import Settings

        settings = Settings(scheduler_minimum_ease=1.5, scheduler_maximum_interval=90)
        config = SchedulerConfig.from_settings(settings)
        assert config.minimum_ease == 1.5
        assert config.maximum_interval == 90

    def test_every_constant_has_a_setting(self):
        from config import Settings

        settings = Settings()
        config = SchedulerConfig.from_settings(settings)

        for config_field in fields(SchedulerConfig):
            if config_field.name == "thresholds":
                continue
            assert getattr(config, config_field.name) == getattr(settings, f"scheduler_{config_field.name}")

    def test_grading_and_curve_settings_are_applied(self):
        from config import Settings

        settings = Settings(
            scheduler_fast_response_ms=1000,
            scheduler_hesitant_response_ms=3000,
            scheduler_repetition_weight=0.5,
            scheduler_repetition_cap=4,
            scheduler_difficulty_weight=0.2,
        )
        scheduler = AdaptiveScheduler(SchedulerConfig.from_settings(settings))

        assert scheduler.compute_quality(True, 1500) == 4
        assert scheduler.compute_quality(True, 4000) == 3
        assert scheduler.config.repetition_weight == 0.5
        assert scheduler.config.repetition_cap == 4
        assert scheduler.config.difficulty_weight == 0.2

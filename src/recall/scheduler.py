"""
Adaptive SM-2 Scheduler.

Implements:
- SM-2 state update with latency-aware quality grading
- Incremental per-learner difficulty estimate
- Due-date, difficulty-label and forgetting-time derivations
- Priority ordering of a study queue

SM-2 Quality Scale (as graded here):
2 - Incorrect
3 - Correct, slow (> 5s)
4 - Correct, some hesitation (<= 5s), or latency unknown
5 - Correct, fast (<= 2s)

Every function is pure: records go in, new records come out.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from loguru import logger

from .progress import (
    DEFAULT_EASE,
    MAX_LEVEL,
    ProgressRecord,
    add_days,
    as_utc,
    clamp,
    finite_or,
    normalize_record,
    utcnow,
)

if TYPE_CHECKING:
    from config import Settings

    from .recall_model import LearnerRecallModel

T = TypeVar("T")

SECONDS_PER_DAY = 86400.0


# =============================================================================
# Difficulty Labels
# =============================================================================


class DifficultyLabel(str, Enum):
    """Bucketed difficulty shown to learners."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class DifficultyThresholds:
    """Lower bounds of the medium and hard buckets."""

    medium: float = 0.45
    hard: float = 0.70

    def label(self, difficulty: float) -> DifficultyLabel:
        value = finite_or(difficulty, 0.5)
        if value >= self.hard:
            return DifficultyLabel.HARD
        if value >= self.medium:
            return DifficultyLabel.MEDIUM
        return DifficultyLabel.EASY


DIFFICULTY_THRESHOLDS = DifficultyThresholds()


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SchedulerConfig:
    """Configuration for the adaptive scheduler."""

    # Ease factor
    default_ease: float = DEFAULT_EASE
    minimum_ease: float = 1.3
    maximum_ease: float = 2.6
    minimum_ease_gain: float = 0.02

    # Intervals (days)
    first_interval: int = 1
    second_interval: int = 6
    lapse_interval: int = 1
    maximum_interval: int = 365

    # Quality grading by response time
    fast_response_ms: int = 2000
    hesitant_response_ms: int = 5000

    # Difficulty estimate
    difficulty_correct_step: float = 0.05
    difficulty_speed_relief: float = 0.04
    difficulty_incorrect_step: float = 0.12
    difficulty_slowness_penalty: float = 0.06
    slow_response_ms: int = 12000

    # Forgetting curve
    retention_threshold: float = 0.5
    repetition_weight: float = 0.25
    repetition_cap: int = 10
    difficulty_weight: float = 0.5
    max_predict_days: int = 60

    thresholds: DifficultyThresholds = field(default_factory=lambda: DIFFICULTY_THRESHOLDS)

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        """Build a config from application settings."""
        return cls(
            default_ease=settings.scheduler_default_ease,
            minimum_ease=settings.scheduler_minimum_ease,
            maximum_ease=settings.scheduler_maximum_ease,
            minimum_ease_gain=settings.scheduler_minimum_ease_gain,
            first_interval=settings.scheduler_first_interval,
            second_interval=settings.scheduler_second_interval,
            lapse_interval=settings.scheduler_lapse_interval,
            maximum_interval=settings.scheduler_maximum_interval,
            fast_response_ms=settings.scheduler_fast_response_ms,
            hesitant_response_ms=settings.scheduler_hesitant_response_ms,
            difficulty_correct_step=settings.scheduler_difficulty_correct_step,
            difficulty_speed_relief=settings.scheduler_difficulty_speed_relief,
            difficulty_incorrect_step=settings.scheduler_difficulty_incorrect_step,
            difficulty_slowness_penalty=settings.scheduler_difficulty_slowness_penalty,
            slow_response_ms=settings.scheduler_slow_response_ms,
            retention_threshold=settings.scheduler_retention_threshold,
            repetition_weight=settings.scheduler_repetition_weight,
            repetition_cap=settings.scheduler_repetition_cap,
            difficulty_weight=settings.scheduler_difficulty_weight,
            max_predict_days=settings.scheduler_max_predict_days,
        )


# Composite priority score weights (informational ranking shown in the CLI)
DUE_BONUS = 40.0
UPCOMING_WINDOW_DAYS = 20.0
LEVEL_WEIGHT = 8.0
DIFFICULTY_WEIGHT = 18.0
ERROR_RATIO_WEIGHT = 12.0
IDLE_DAYS_CAP = 30.0
IDLE_WEIGHT = 0.4


# =============================================================================
# Adaptive Scheduler
# =============================================================================


class AdaptiveScheduler:
    """
    SM-2 based scheduler with a running difficulty estimate.

    Each record carries:
    - Ease Factor (EF): growth rate of the interval (2.5 default, 1.3 floor)
    - Interval: days until next review
    - Repetitions: consecutive correct answers
    - Level: coarse 0-3 mastery bucket
    - Difficulty: 0-1 estimate, nudged on every answer
    """

    def __init__(self, config: SchedulerConfig | None = None):
        """
        Initialize the scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SchedulerConfig()

    # -------------------------------------------------------------------------
    # State update
    # -------------------------------------------------------------------------

    def compute_quality(self, was_correct: bool, response_ms: float | None = None) -> int:
        """
        Convert an answer to an SM-2 quality grade.

        Args:
            was_correct: Whether the answer was correct
            response_ms: Time taken to respond (None if unknown)

        Returns:
            Quality 2-5
        """
        if not was_correct:
            return 2
        if response_ms is None:
            return 4
        if response_ms <= self.config.fast_response_ms:
            return 5
        if response_ms <= self.config.hesitant_response_ms:
            return 4
        return 3

    def advance(
        self,
        record: ProgressRecord | None,
        was_correct: bool,
        response_ms: float | None = None,
        now: datetime | None = None,
        item_id: str | None = None,
    ) -> ProgressRecord:
        """
        Apply one answered attempt to a record.

        Args:
            record: Current record (None for a first-ever attempt)
            was_correct: Whether the answer was correct
            response_ms: Answer latency in ms; negative values count as 0
            now: Attempt time (defaults to current UTC time)
            item_id: Item identifier, required when record is None

        Returns:
            New ProgressRecord; the input is left untouched
        """
        cfg = self.config
        now = as_utc(now) or utcnow()
        base = normalize_record(record, item_id, now)
        # stored ease outside the configured range is clamped before the update
        current_ease = clamp(base.ease_factor, cfg.minimum_ease, cfg.maximum_ease)
        response_ms = self._clean_response_ms(response_ms)

        quality = self.compute_quality(was_correct, response_ms)
        slowness = self._slowness(response_ms)
        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)

        if was_correct:
            repetitions = base.repetitions + 1
            ease = clamp(
                current_ease + max(ef_delta, cfg.minimum_ease_gain),
                cfg.minimum_ease,
                cfg.maximum_ease,
            )
            previous = min(base.interval_days, cfg.maximum_interval)
            if repetitions == 1:
                candidate = cfg.first_interval
            elif repetitions == 2:
                candidate = cfg.second_interval
            else:
                candidate = round(max(previous, 1) * ease)
            interval = min(cfg.maximum_interval, max(candidate, previous, 1))
            level = min(base.level + 1, MAX_LEVEL)
            step = cfg.difficulty_correct_step - cfg.difficulty_speed_relief * slowness
            difficulty = clamp(base.difficulty - max(step, 0.0), 0.0, 1.0)
        else:
            repetitions = 0
            ease = clamp(current_ease + ef_delta, cfg.minimum_ease, cfg.maximum_ease)
            interval = max(0, cfg.lapse_interval)
            level = 0
            step = cfg.difficulty_incorrect_step + cfg.difficulty_slowness_penalty * slowness
            difficulty = clamp(base.difficulty + max(step, 0.0), 0.0, 1.0)

        updated = ProgressRecord(
            item_id=base.item_id,
            level=level,
            ease_factor=ease,
            interval_days=interval,
            repetitions=repetitions,
            last_quality=quality,
            last_response_ms=None if response_ms is None else int(response_ms),
            difficulty=difficulty,
            correct_count=base.correct_count + (1 if was_correct else 0),
            incorrect_count=base.incorrect_count + (0 if was_correct else 1),
            last_attempt_at=now,
            next_review_at=add_days(now, interval),
        )

        logger.debug(
            f"Advanced {updated.item_id}: correct={was_correct}, quality={quality}, "
            f"ef={ease:.2f}, interval={interval}d, level={level}, difficulty={difficulty:.2f}"
        )
        return updated

    # -------------------------------------------------------------------------
    # Derived metrics
    # -------------------------------------------------------------------------

    def days_until_due(self, record: ProgressRecord | None, now: datetime | None = None) -> float:
        """
        Signed days until the record is due (negative = overdue).

        Records never studied are due now.
        """
        if record is None:
            return 0.0
        now = as_utc(now) or utcnow()
        base = normalize_record(record, now=now)
        return (base.next_review_at - now).total_seconds() / SECONDS_PER_DAY

    def due_in_days(self, record: ProgressRecord | None, now: datetime | None = None) -> int:
        """Whole days until due, for display (never negative)."""
        return max(0, math.ceil(self.days_until_due(record, now)))

    def is_due(self, record: ProgressRecord | None, now: datetime | None = None) -> bool:
        return self.days_until_due(record, now) <= 0

    def difficulty_label(self, difficulty: float) -> DifficultyLabel:
        """Map a 0-1 difficulty to easy / medium / hard."""
        return self.config.thresholds.label(difficulty)

    def predict_forget_in_days(
        self,
        record: ProgressRecord | None,
        recall_model: LearnerRecallModel | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Estimate days until the learner forgets the item without review.

        Uses the learner's trained recall model when one is given,
        otherwise an exponential forgetting curve R(t) = exp(-t / S) whose
        stability S grows with interval, ease and repetitions and shrinks
        with difficulty.

        Args:
            record: Progress record (None = never studied)
            recall_model: Optional per-learner model
            now: Reference time

        Returns:
            Days in [1, max_predict_days]
        """
        cfg = self.config
        base = normalize_record(record, now=now)

        if recall_model is not None and recall_model.is_trained:
            return recall_model.predict_forget_in_days(
                base,
                threshold=cfg.retention_threshold,
                max_days=cfg.max_predict_days,
            )

        threshold = clamp(cfg.retention_threshold, 1e-6, 1 - 1e-6)
        stability = (
            max(1, base.interval_days)
            * (base.ease_factor / cfg.default_ease)
            * (1 + cfg.repetition_weight * min(base.repetitions, cfg.repetition_cap))
            * (1 - cfg.difficulty_weight * base.difficulty)
        )
        days = stability * math.log(1 / threshold)
        return int(clamp(round(days), 1, cfg.max_predict_days))

    def priority_score(self, record: ProgressRecord | None, now: datetime | None = None) -> float:
        """
        Composite urgency score (higher = more urgent).

        Combines due state, mastery level, difficulty, error ratio and
        idle time. Used for display; queue order comes from sort_by_priority.
        """
        if record is None:
            return 0.0
        now = as_utc(now) or utcnow()
        base = normalize_record(record, now=now)

        due_in = math.ceil(self.days_until_due(base, now))
        idle_days = 0.0
        if base.last_attempt_at is not None:
            elapsed = (now - base.last_attempt_at).total_seconds() / SECONDS_PER_DAY
            idle_days = clamp(elapsed, 0.0, IDLE_DAYS_CAP)
        attempts = base.correct_count + base.incorrect_count
        error_ratio = base.incorrect_count / attempts if attempts else 0.5

        score = DUE_BONUS if due_in <= 0 else max(0.0, UPCOMING_WINDOW_DAYS - due_in)
        score += (MAX_LEVEL - base.level) * LEVEL_WEIGHT
        score += (base.difficulty - 0.5) * DIFFICULTY_WEIGHT
        score += error_ratio * ERROR_RATIO_WEIGHT
        score += idle_days * IDLE_WEIGHT
        return score

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    def sort_by_priority(self, items: Iterable[T], now: datetime | None = None) -> list[T]:
        """
        Order a study queue.

        Overdue items first (most overdue leading), then upcoming items
        soonest first; ties go to the lower level, then the item id.
        The sort is stable, so re-sorting a sorted queue is a no-op.

        Args:
            items: Objects or mappings exposing `record` and `item_id`
            now: Reference time

        Returns:
            New sorted list
        """
        now = as_utc(now) or utcnow()

        def sort_key(item: T) -> tuple[float, int, str]:
            record = _field(item, "record")
            item_id = _field(item, "item_id") or (record.item_id if record else "")
            base = normalize_record(record, str(item_id), now)
            return (self.days_until_due(base, now), base.level, str(item_id))

        return sorted(items, key=sort_key)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _clean_response_ms(response_ms: float | None) -> float | None:
        if response_ms is None or not _is_number(response_ms):
            return None
        return max(0.0, float(response_ms))

    def _slowness(self, response_ms: float | None) -> float:
        """0 = instant, 1 = at or beyond slow_response_ms; unknown counts as 0.5."""
        if response_ms is None:
            return 0.5
        return clamp(response_ms / max(1, self.config.slow_response_ms), 0.0, 1.0)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _is_number(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return False
    return not (math.isnan(number) or math.isinf(number))

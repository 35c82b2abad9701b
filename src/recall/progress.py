"""
Progress Records.

One record per learner x item (flashcard or quiz question). The
scheduler reads and returns these; persistence lives in store.py.

Lifecycle:
- created with defaults the first time a learner opens an item
- replaced exactly once per answered attempt (see AdaptiveScheduler.advance)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from loguru import logger

DEFAULT_EASE = 2.5
DEFAULT_DIFFICULTY = 0.5
MAX_LEVEL = 3
MAX_QUALITY = 5
MAX_INTERVAL_DAYS = 36500  # stored intervals beyond a century are corrupt


class MasteryState(str, Enum):
    """Coarse per-item lifecycle state."""

    UNSEEN = "unseen"
    LEARNING = "learning"  # level 0-2
    MASTERED = "mastered"  # level 3, demoted again on any miss


@dataclass(frozen=True)
class ProgressRecord:
    """Spaced-repetition state for one item."""

    item_id: str
    level: int = 0  # 0: untrained ... 3: perfectly trained
    ease_factor: float = DEFAULT_EASE
    interval_days: int = 0
    repetitions: int = 0  # consecutive correct answers since last lapse
    last_quality: int = 0  # SM-2 quality 0-5
    last_response_ms: int | None = None
    difficulty: float = DEFAULT_DIFFICULTY  # 0 (easy) - 1 (hard)
    correct_count: int = 0
    incorrect_count: int = 0
    last_attempt_at: datetime | None = None
    next_review_at: datetime | None = None

    @classmethod
    def new(cls, item_id: str, now: datetime | None = None) -> ProgressRecord:
        """Default record for an item opened for the first time (due immediately)."""
        return cls(item_id=item_id, next_review_at=as_utc(now) or utcnow())

    @property
    def attempts(self) -> int:
        return self.correct_count + self.incorrect_count

    @property
    def mastery_state(self) -> MasteryState:
        if self.attempts == 0 and self.last_attempt_at is None:
            return MasteryState.UNSEEN
        if self.level >= MAX_LEVEL:
            return MasteryState.MASTERED
        return MasteryState.LEARNING

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly mapping."""
        return {
            "item_id": self.item_id,
            "level": self.level,
            "ease_factor": self.ease_factor,
            "interval_days": self.interval_days,
            "repetitions": self.repetitions,
            "last_quality": self.last_quality,
            "last_response_ms": self.last_response_ms,
            "difficulty": self.difficulty,
            "correct_count": self.correct_count,
            "incorrect_count": self.incorrect_count,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "next_review_at": self.next_review_at.isoformat() if self.next_review_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], item_id: str | None = None) -> ProgressRecord:
        """
        Build a record from a stored mapping.

        Accepts both snake_case keys and the camelCase keys used by the
        web client's documents (cardId/questionId, easeFactor, ...).
        Unparseable values fall back to defaults; the result is normalized.

        Args:
            data: Stored mapping
            item_id: Identifier to use when the mapping carries none

        Returns:
            Normalized ProgressRecord
        """

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        resolved_id = pick("item_id", "itemId", "cardId", "questionId") or item_id
        if resolved_id is None:
            raise ValueError("progress record has no item identifier")

        raw = cls(
            item_id=str(resolved_id),
            level=_coerce_int(pick("level"), 0),
            ease_factor=_coerce_float(pick("ease_factor", "easeFactor"), DEFAULT_EASE),
            interval_days=_coerce_int(pick("interval_days", "intervalDays"), 0),
            repetitions=_coerce_int(pick("repetitions"), 0),
            last_quality=_coerce_int(pick("last_quality", "lastQuality"), 0),
            last_response_ms=_coerce_optional_int(pick("last_response_ms", "lastResponseMs")),
            difficulty=_coerce_float(pick("difficulty"), DEFAULT_DIFFICULTY),
            correct_count=_coerce_int(pick("correct_count", "correctCount"), 0),
            incorrect_count=_coerce_int(pick("incorrect_count", "incorrectCount"), 0),
            last_attempt_at=_parse_datetime(pick("last_attempt_at", "lastAttemptAt")),
            next_review_at=_parse_datetime(pick("next_review_at", "nextReviewAt")),
        )
        return normalize_record(raw)


# =============================================================================
# Normalization
# =============================================================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        edge = datetime.max if value.year > datetime.min.year else datetime.min
        return edge.replace(tzinfo=timezone.utc)


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def finite_or(value: Any, default: float) -> float:
    """Return value as float, or default when missing, NaN or infinite."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def add_days(moment: datetime, days: float) -> datetime:
    """moment + days, saturating at the largest representable datetime."""
    try:
        return moment + timedelta(days=days)
    except OverflowError:
        return datetime.max.replace(tzinfo=timezone.utc)


def normalize_record(
    record: ProgressRecord | None,
    item_id: str | None = None,
    now: datetime | None = None,
) -> ProgressRecord:
    """
    Validate-and-clamp a record so every field is in range.

    Missing records become a fresh default record due at `now`.
    Corrupt numeric fields are replaced by defaults and out-of-range
    values are clamped; this never raises.

    Args:
        record: Record to normalize (None for a first-ever study)
        item_id: Identifier for the default record when record is None
        now: Reference time (defaults to current UTC time)

    Returns:
        A record satisfying all ProgressRecord invariants
    """
    now = as_utc(now) or utcnow()
    if record is None:
        return ProgressRecord.new(item_id or "", now)

    ease = finite_or(record.ease_factor, DEFAULT_EASE)
    if ease <= 0:
        ease = DEFAULT_EASE
    difficulty = clamp(finite_or(record.difficulty, DEFAULT_DIFFICULTY), 0.0, 1.0)
    interval = int(clamp(int(finite_or(record.interval_days, 0)), 0, MAX_INTERVAL_DAYS))
    response_ms = record.last_response_ms
    if response_ms is not None:
        response_ms = max(0, int(finite_or(response_ms, 0)))

    last_attempt_at = as_utc(record.last_attempt_at)
    next_review_at = as_utc(record.next_review_at)
    if next_review_at is None:
        base = last_attempt_at or now
        next_review_at = add_days(base, interval)

    normalized = replace(
        record,
        level=int(clamp(int(finite_or(record.level, 0)), 0, MAX_LEVEL)),
        ease_factor=ease,
        interval_days=interval,
        repetitions=max(0, int(finite_or(record.repetitions, 0))),
        last_quality=int(clamp(int(finite_or(record.last_quality, 0)), 0, MAX_QUALITY)),
        last_response_ms=response_ms,
        difficulty=difficulty,
        correct_count=max(0, int(finite_or(record.correct_count, 0))),
        incorrect_count=max(0, int(finite_or(record.incorrect_count, 0))),
        last_attempt_at=last_attempt_at,
        next_review_at=next_review_at,
    )
    if normalized != record:
        logger.debug(f"Normalized progress record for {record.item_id}")
    return normalized


def _coerce_float(value: Any, default: float) -> float:
    return finite_or(value, default)


def _coerce_int(value: Any, default: int) -> int:
    return int(finite_or(value, default))


def _coerce_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    number = finite_or(value, -1.0)
    return None if number < 0 else int(number)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        logger.warning(f"Ignoring unparseable timestamp {value!r}")
        return None

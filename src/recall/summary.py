"""Deck/quiz progress summary over a learner's records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from .progress import MAX_LEVEL, ProgressRecord, as_utc, normalize_record, utcnow


@dataclass
class ProgressSummary:
    """Aggregate progress for one learner over a set of items."""

    total_items: int = 0
    level_counts: list[int] = field(default_factory=lambda: [0] * (MAX_LEVEL + 1))
    completion_rate: int = 0  # percent of items at level 3
    due_count: int = 0
    last_study_at: datetime | None = None


def summarize_progress(
    records: Iterable[ProgressRecord],
    now: datetime | None = None,
) -> ProgressSummary:
    """
    Summarize records into level counts, completion rate and due count.

    Args:
        records: Progress records of one learner
        now: Reference time for the due count

    Returns:
        ProgressSummary
    """
    now = as_utc(now) or utcnow()
    summary = ProgressSummary()

    for raw in records:
        record = normalize_record(raw, now=now)
        summary.total_items += 1
        summary.level_counts[record.level] += 1
        if record.next_review_at <= now:
            summary.due_count += 1
        if record.last_attempt_at and (
            summary.last_study_at is None or record.last_attempt_at > summary.last_study_at
        ):
            summary.last_study_at = record.last_attempt_at

    if summary.total_items > 0:
        summary.completion_rate = round(summary.level_counts[MAX_LEVEL] / summary.total_items * 100)
    return summary

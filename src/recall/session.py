"""
Study Session Driver.

Runs one study session over a pool of items:
1. Loads (or creates) each item's progress record and orders the queue
   by priority
2. Applies the scheduler once per answer and persists the result
3. Reinserts missed items a few positions later, a bounded number of
   times, so the session always terminates
4. Offers a follow-up review pass over the items that went wrong

A failed write never blocks the learner: the record stays in memory,
is queued in pending_writes and can be retried later.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from .progress import ProgressRecord, as_utc, utcnow
from .recall_model import LearnerRecallModel
from .scheduler import AdaptiveScheduler, DifficultyLabel
from .store import ProgressStore, ProgressStoreError

if TYPE_CHECKING:
    from config import Settings


@dataclass
class StudyItem:
    """A flashcard or question together with its progress."""

    item_id: str
    payload: Any = None
    record: ProgressRecord | None = None


@dataclass
class SessionConfig:
    """Within-session repeat policy."""

    repeat_spacing: int = 3  # positions ahead a missed item comes back
    repeat_limit: int = 2  # extra appearances per item per session

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionConfig:
        return cls(
            repeat_spacing=settings.session_repeat_spacing,
            repeat_limit=settings.session_repeat_limit,
        )


@dataclass(frozen=True)
class AdaptiveInfo:
    """Scheduling facts about the current item, ready for display."""

    due_in_days: int
    is_due: bool
    difficulty_label: DifficultyLabel
    forget_in_days: int
    priority: float


class StudySession:
    """
    Drives the question/answer loop of a single session.

    Usage:
        session = StudySession("learner-1", items, store)
        session.start()
        while not session.is_finished:
            item = session.current
            session.answer(was_correct=True, response_ms=1800)
            session.next()
    """

    def __init__(
        self,
        learner_id: str,
        items: Iterable[StudyItem],
        store: ProgressStore,
        scheduler: AdaptiveScheduler | None = None,
        config: SessionConfig | None = None,
        recall_model: LearnerRecallModel | None = None,
        review_mode: bool = False,
    ):
        """
        Initialize the session.

        Args:
            learner_id: Learner whose progress is read and written
            items: Item pool; duplicate ids are collapsed
            store: Progress store collaborator
            scheduler: AdaptiveScheduler (creates default if None)
            config: Repeat policy
            recall_model: Optional learner model, fed with every answer
            review_mode: Review passes do not reinsert missed items
        """
        self.learner_id = learner_id
        self.store = store
        self.scheduler = scheduler or AdaptiveScheduler()
        self.config = config or SessionConfig()
        self.recall_model = recall_model
        self.review_mode = review_mode

        self._pool: dict[str, StudyItem] = {}
        for item in items:
            self._pool.setdefault(item.item_id, item)
        self.records: dict[str, ProgressRecord] = {}

        self.queue: list[StudyItem] = []
        self.current_index = 0
        self.repeat_counts: dict[str, int] = {}
        self.pending_writes: dict[str, ProgressRecord] = {}
        self.correct_answers = 0
        self.incorrect_answers = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, now: datetime | None = None) -> list[StudyItem]:
        """
        Resolve progress records and build the ordered queue.

        Records missing from the items are fetched from the store; items
        the learner has never studied get a default record due now.

        Returns:
            The ordered queue
        """
        now = as_utc(now) or utcnow()

        missing = [item_id for item_id, item in self._pool.items() if item.record is None]
        loaded = self._load_records(missing) if missing else {}

        for item_id, item in self._pool.items():
            self.records[item_id] = item.record or loaded.get(item_id) or ProgressRecord.new(item_id, now)

        self.queue = self.scheduler.sort_by_priority(self.items, now)
        self.current_index = 0
        self.repeat_counts.clear()

        due = sum(1 for item in self.queue if self.scheduler.is_due(item.record, now))
        logger.info(
            f"Session started for {self.learner_id}: {len(self.queue)} items "
            f"({due} due){' [review]' if self.review_mode else ''}"
        )
        return self.queue

    @property
    def items(self) -> list[StudyItem]:
        """Unique items with their latest records."""
        return [
            replace(item, record=self.records.get(item_id, item.record))
            for item_id, item in self._pool.items()
        ]

    @property
    def current(self) -> StudyItem | None:
        if 0 <= self.current_index < len(self.queue):
            return self.queue[self.current_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.current_index >= len(self.queue)

    @property
    def remaining(self) -> int:
        return max(0, len(self.queue) - self.current_index)

    @property
    def progress_percent(self) -> int:
        if not self.queue:
            return 0
        return round(min(self.current_index, len(self.queue)) / len(self.queue) * 100)

    @property
    def success_rate(self) -> int:
        total = self.correct_answers + self.incorrect_answers
        return round(self.correct_answers / total * 100) if total > 0 else 0

    # -------------------------------------------------------------------------
    # Answering
    # -------------------------------------------------------------------------

    def answer(
        self,
        was_correct: bool,
        response_ms: float | None = None,
        now: datetime | None = None,
    ) -> ProgressRecord:
        """
        Record an answer to the current item.

        Args:
            was_correct: Outcome of the answer
            response_ms: Answer latency in ms
            now: Answer time

        Returns:
            The updated progress record
        """
        item = self.current
        if item is None:
            raise RuntimeError("No current item: the session is finished or not started")

        now = as_utc(now) or utcnow()
        previous = self.records.get(item.item_id)
        updated = self.scheduler.advance(previous, was_correct, response_ms, now, item_id=item.item_id)

        self._update_local(updated)
        if was_correct:
            self.correct_answers += 1
        else:
            self.incorrect_answers += 1

        if self.recall_model is not None:
            self.recall_model.record_attempt(previous, was_correct, response_ms, now)

        self._persist(updated)

        if not was_correct and not self.review_mode:
            self._schedule_repeat(item)

        return updated

    def next(self) -> StudyItem | None:
        """Move to the next item; returns it, or None when finished."""
        if self.current_index < len(self.queue):
            self.current_index += 1
        if self.is_finished:
            logger.info(
                f"Session finished for {self.learner_id}: "
                f"{self.correct_answers} correct, {self.incorrect_answers} incorrect "
                f"({self.success_rate}%)"
            )
        return self.current

    def adaptive_info(self, now: datetime | None = None) -> AdaptiveInfo | None:
        """Due/difficulty/forgetting facts for the current item."""
        item = self.current
        if item is None:
            return None
        now = as_utc(now) or utcnow()
        record = self.records.get(item.item_id, item.record)
        return AdaptiveInfo(
            due_in_days=self.scheduler.due_in_days(record, now),
            is_due=self.scheduler.is_due(record, now),
            difficulty_label=self.scheduler.difficulty_label(record.difficulty if record else 0.5),
            forget_in_days=self.scheduler.predict_forget_in_days(record, self.recall_model, now),
            priority=self.scheduler.priority_score(record, now),
        )

    # -------------------------------------------------------------------------
    # Review pass
    # -------------------------------------------------------------------------

    def wrong_items(self) -> list[StudyItem]:
        """Items at level 0 or with any lifetime miss."""
        return [
            item
            for item in self.items
            if item.record is not None and (item.record.level == 0 or item.record.incorrect_count > 0)
        ]

    def review_session(self, now: datetime | None = None) -> StudySession:
        """
        Start a follow-up pass over the wrong items.

        Returns:
            A started StudySession in review mode
        """
        review = StudySession(
            learner_id=self.learner_id,
            items=self.wrong_items(),
            store=self.store,
            scheduler=self.scheduler,
            config=self.config,
            recall_model=self.recall_model,
            review_mode=True,
        )
        review.start(now)
        return review

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def retry_pending_writes(self) -> int:
        """
        Retry writes that failed earlier.

        Returns:
            Number of writes still pending
        """
        for item_id, record in list(self.pending_writes.items()):
            try:
                self.store.save(self.learner_id, record)
            except ProgressStoreError as exc:
                logger.warning(f"Retry failed for {item_id}: {exc}")
                continue
            del self.pending_writes[item_id]
        return len(self.pending_writes)

    def _load_records(self, item_ids: list[str]) -> dict[str, ProgressRecord]:
        """Batch load; on failure, load item by item so one bad record only resets itself."""
        try:
            return self.store.load(self.learner_id, item_ids)
        except ProgressStoreError as exc:
            logger.warning(f"Could not load progress for {self.learner_id}: {exc}")

        loaded: dict[str, ProgressRecord] = {}
        for item_id in item_ids:
            try:
                record = self.store.get(self.learner_id, item_id)
            except ProgressStoreError as exc:
                logger.warning(f"Starting {item_id} from defaults: {exc}")
                continue
            if record is not None:
                loaded[item_id] = record
        return loaded

    def _persist(self, record: ProgressRecord) -> None:
        try:
            self.store.save(self.learner_id, record)
        except ProgressStoreError as exc:
            logger.warning(f"Saving progress for {record.item_id} failed, queued for retry: {exc}")
            self.pending_writes[record.item_id] = record
            return
        self.pending_writes.pop(record.item_id, None)

    # -------------------------------------------------------------------------
    # Queue maintenance
    # -------------------------------------------------------------------------

    def _update_local(self, record: ProgressRecord) -> None:
        self.records[record.item_id] = record
        self.queue = [
            replace(entry, record=record) if entry.item_id == record.item_id else entry
            for entry in self.queue
        ]

    def _schedule_repeat(self, item: StudyItem) -> None:
        repeats = self.repeat_counts.get(item.item_id, 0)
        if repeats >= self.config.repeat_limit:
            logger.debug(f"Repeat limit reached for {item.item_id}")
            return

        self.repeat_counts[item.item_id] = repeats + 1
        insert_index = min(self.current_index + self.config.repeat_spacing, len(self.queue))
        self.queue.insert(insert_index, replace(item, record=self.records[item.item_id]))
        logger.debug(f"Repeating {item.item_id} at position {insert_index}")

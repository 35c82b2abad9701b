"""
Unit tests for the StudySession driver.

Uses the in-memory store; a stub store simulates persistence failures.
"""

import json

import pytest

from src.recall.progress import MAX_INTERVAL_DAYS, ProgressRecord
from src.recall.recall_model import LearnerRecallModel
from src.recall.scheduler import DifficultyLabel
from src.recall.session import SessionConfig, StudyItem, StudySession
from src.recall.store import InMemoryProgressStore, JsonProgressStore, ProgressStoreError


class FlakyStore(InMemoryProgressStore):
    """Store whose writes fail while `failing` is set."""

    def __init__(self):
        super().__init__()
        self.failing = True
        self.save_attempts = 0

    def save(self, learner_id, record):
        self.save_attempts += 1
        if self.failing:
            raise ProgressStoreError("backend unavailable")
        super().save(learner_id, record)


def make_items(count=5):
    return [StudyItem(f"q{i}", payload=f"Question {i}") for i in range(1, count + 1)]


def queue_ids(session):
    return [item.item_id for item in session.queue]


@pytest.fixture
def session(store, now):
    session = StudySession("learner-1", make_items(), store)
    session.start(now)
    return session


class TestSessionStart:
    def test_fresh_items_ordered_by_id(self, session):
        assert queue_ids(session) == ["q1", "q2", "q3", "q4", "q5"]
        assert session.current.item_id == "q1"
        assert session.remaining == 5
        assert session.progress_percent == 0

    def test_creates_default_records(self, session, now):
        for item in session.queue:
            assert item.record.level == 0
            assert item.record.ease_factor == 2.5
            assert item.record.difficulty == 0.5
            assert item.record.next_review_at == now

    def test_loads_existing_records_from_store(self, store, make_record, now):
        store.save("learner-1", make_record("q4", -6, level=2))
        store.save("learner-1", make_record("q2", 5, level=1))

        session = StudySession("learner-1", make_items(), store)
        session.start(now)

        assert queue_ids(session) == ["q4", "q1", "q3", "q5", "q2"]
        assert session.current.record.level == 2

    def test_duplicate_items_are_collapsed(self, store, now):
        items = make_items(2) + [StudyItem("q1", payload="again")]
        session = StudySession("learner-1", items, store)
        session.start(now)
        assert queue_ids(session) == ["q1", "q2"]

    def test_load_failure_falls_back_to_defaults(self, now):
        class BrokenStore(InMemoryProgressStore):
            def load(self, learner_id, item_ids):
                raise ProgressStoreError("offline")

        session = StudySession("learner-1", make_items(3), BrokenStore())
        session.start(now)
        assert queue_ids(session) == ["q1", "q2", "q3"]

    def test_corrupt_stored_record_only_resets_that_item(self, tmp_path, make_record, now):
        good = make_record("q2", -3, level=2)
        document = {
            "learners": {
                "learner-1": {
                    "q1": "not a record",
                    "q2": good.to_dict(),
                    "q3": {"itemId": "q3", "intervalDays": 10**7, "lastAttemptAt": "2026-01-01T00:00:00Z"},
                }
            }
        }
        path = tmp_path / "progress.json"
        path.write_text(json.dumps(document), encoding="utf-8")

        session = StudySession("learner-1", make_items(3), JsonProgressStore(path))
        session.start(now)

        records = {item.item_id: item.record for item in session.queue}
        assert records["q2"] == good
        assert records["q1"].level == 0
        assert records["q1"].next_review_at == now
        assert records["q3"].interval_days == MAX_INTERVAL_DAYS
        assert queue_ids(session) == ["q2", "q1", "q3"]


class TestAnswering:
    def test_answer_updates_and_persists(self, session, store, now):
        updated = session.answer(True, 1500, now)

        assert updated.level == 1
        assert store.get("learner-1", "q1") == updated
        assert session.current.record == updated
        assert session.correct_answers == 1

    def test_missed_item_reinserted_three_ahead(self, session, now):
        session.answer(True, 1000, now)
        session.next()
        session.answer(False, 1000, now)  # q2 at index 1

        assert queue_ids(session) == ["q1", "q2", "q3", "q4", "q2", "q5"]
        assert session.queue[4].record.incorrect_count == 1

    def test_reinsertion_clamped_to_queue_end(self, session, now):
        for _ in range(4):
            session.answer(True, 1000, now)
            session.next()
        session.answer(False, 1000, now)  # q5, last item

        assert queue_ids(session) == ["q1", "q2", "q3", "q4", "q5", "q5"]

    def test_repeat_limit_guarantees_termination(self, session, now):
        outcomes = {"q1": [True], "q2": [False, False, False], "q3": [True], "q4": [True], "q5": [True]}
        seen = []
        steps = 0
        while not session.is_finished:
            item_id = session.current.item_id
            seen.append(item_id)
            session.answer(outcomes[item_id].pop(0), 1000, now)
            session.next()
            steps += 1
            assert steps < 20

        assert seen == ["q1", "q2", "q3", "q4", "q2", "q5", "q2"]
        assert seen.count("q2") == 3
        assert session.repeat_counts["q2"] == 2

    def test_custom_repeat_policy(self, store, now):
        session = StudySession("learner-1", make_items(), store, config=SessionConfig(repeat_spacing=1, repeat_limit=1))
        session.start(now)
        session.answer(False, 1000, now)
        session.answer(False, 1000, now)

        assert queue_ids(session) == ["q1", "q1", "q2", "q3", "q4", "q5"]

    def test_answer_after_finish_raises(self, store, now):
        session = StudySession("learner-1", make_items(1), store)
        session.start(now)
        session.answer(True, 1000, now)
        assert session.next() is None
        assert session.is_finished
        with pytest.raises(RuntimeError):
            session.answer(True, 1000, now)

    def test_success_rate(self, session, now):
        session.answer(True, 1000, now)
        session.next()
        session.answer(False, 1000, now)
        session.next()
        session.answer(True, 1000, now)

        assert session.success_rate == 67
        assert session.incorrect_answers == 1


class TestPersistenceFailures:
    def test_failed_write_does_not_block_session(self, now):
        store = FlakyStore()
        session = StudySession("learner-1", make_items(3), store)
        session.start(now)

        updated = session.answer(True, 1500, now)
        session.next()

        assert updated.level == 1
        assert session.pending_writes == {"q1": updated}
        assert session.records["q1"] == updated
        assert session.current.item_id == "q2"

    def test_pending_writes_can_be_retried(self, now):
        store = FlakyStore()
        session = StudySession("learner-1", make_items(3), store)
        session.start(now)
        updated = session.answer(False, 1500, now)

        assert session.retry_pending_writes() == 1

        store.failing = False
        assert session.retry_pending_writes() == 0
        assert store.get("learner-1", "q1") == updated


class TestReviewPass:
    def test_wrong_items_and_review_session(self, session, now):
        session.answer(True, 1000, now)
        session.next()
        session.answer(False, 1000, now)
        while session.next() is not None:
            session.answer(True, 1000, now)

        wrong = session.wrong_items()
        assert [item.item_id for item in wrong] == ["q2"]

        review = session.review_session(now)
        assert review.review_mode is True
        assert queue_ids(review) == ["q2"]

    def test_review_mode_does_not_reinsert(self, store, now):
        session = StudySession("learner-1", make_items(3), store, review_mode=True)
        session.start(now)
        session.answer(False, 1000, now)
        assert queue_ids(session) == ["q1", "q2", "q3"]


class TestAdaptiveInfo:
    def test_fresh_item_info(self, session, now):
        info = session.adaptive_info(now)

        assert info.is_due is True
        assert info.due_in_days == 0
        assert info.difficulty_label == DifficultyLabel.MEDIUM
        assert info.forget_in_days == 1

    def test_info_after_finish_is_none(self, store, now):
        session = StudySession("learner-1", [], store)
        session.start(now)
        assert session.adaptive_info(now) is None
        assert session.is_finished


class TestRecallModelFeed:
    def test_every_answer_becomes_a_sample(self, store, now):
        model = LearnerRecallModel("learner-1")
        session = StudySession("learner-1", make_items(3), store, recall_model=model)
        session.start(now)

        session.answer(True, 1000, now)
        session.next()
        session.answer(False, 4000, now)

        assert [sample.label for sample in model.samples] == [1, 0]

    def test_given_records_are_used(self, store, now):
        record = ProgressRecord(item_id="q1", level=3, repetitions=4, interval_days=30, next_review_at=now)
        session = StudySession("learner-1", [StudyItem("q1", record=record)], store)
        session.start(now)
        assert session.current.record.level == 3

"""
Recall: Adaptive Spaced-Repetition Scheduling.

Components:
- ProgressRecord: Per learner x item scheduling state
- AdaptiveScheduler: SM-2 update, due/difficulty/forgetting estimates, queue order
- LearnerRecallModel: Per-learner recall probability model
- StudySession: Session driver with repeat-on-miss policy
- ProgressStore: Persistence contract (in-memory and JSON implementations)
"""

from .progress import MasteryState, ProgressRecord, normalize_record
from .recall_model import LearnerRecallModel, RecallSample
from .scheduler import (
    DIFFICULTY_THRESHOLDS,
    AdaptiveScheduler,
    DifficultyLabel,
    DifficultyThresholds,
    SchedulerConfig,
)
from .session import AdaptiveInfo, SessionConfig, StudyItem, StudySession
from .store import InMemoryProgressStore, JsonProgressStore, ProgressStore, ProgressStoreError
from .summary import ProgressSummary, summarize_progress

__all__ = [
    # Records
    "ProgressRecord",
    "MasteryState",
    "normalize_record",
    # Scheduling
    "AdaptiveScheduler",
    "SchedulerConfig",
    "DifficultyLabel",
    "DifficultyThresholds",
    "DIFFICULTY_THRESHOLDS",
    # Learner model
    "LearnerRecallModel",
    "RecallSample",
    # Sessions
    "StudySession",
    "StudyItem",
    "SessionConfig",
    "AdaptiveInfo",
    # Persistence
    "ProgressStore",
    "ProgressStoreError",
    "InMemoryProgressStore",
    "JsonProgressStore",
    # Summary
    "ProgressSummary",
    "summarize_progress",
]

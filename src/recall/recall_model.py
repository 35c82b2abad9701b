"""
Per-Learner Recall Model.

Learns a learner's recall probability from their own answer history and
turns it into a "days until forgotten" prediction.

Model: logistic regression over six normalized features, fitted with
projected gradient descent. Weight signs are constrained so that recall
never improves with elapsed time or difficulty and never worsens with
ease, repetitions or level; forgetting predictions therefore stay
monotone in those inputs however noisy the samples are.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import numpy as np
from loguru import logger

from .progress import MAX_LEVEL, ProgressRecord, as_utc, clamp, finite_or, normalize_record, utcnow

MAX_SAMPLES = 800
MIN_TRAIN_SAMPLES = 50
MAX_PREDICT_DAYS = 60
FEATURE_COUNT = 6
FEATURE_MAX_EASE = 2.6
FEATURE_MAX_REPETITIONS = 10
FEATURE_SLOW_RESPONSE_MS = 15000

# Feature order: days_since, ease, repetitions, difficulty, response, level
# -1: weight kept <= 0, +1: weight kept >= 0, 0: unconstrained
WEIGHT_SIGNS = np.array([-1.0, 1.0, 1.0, -1.0, 0.0, 1.0])


@dataclass
class RecallSample:
    """One answered attempt as a training example."""

    features: list[float]
    label: int  # 1 = recalled, 0 = forgotten
    timestamp: float  # POSIX seconds

    def to_dict(self) -> dict[str, Any]:
        return {"features": list(self.features), "label": self.label, "timestamp": self.timestamp}


def build_features(
    record: ProgressRecord,
    days_since: float,
    response_ms: float | None,
) -> list[float]:
    """Normalize a record plus context into the model's feature vector."""
    days_norm = clamp(days_since, 0.0, MAX_PREDICT_DAYS) / MAX_PREDICT_DAYS
    ease_norm = record.ease_factor / FEATURE_MAX_EASE
    repetition_norm = min(FEATURE_MAX_REPETITIONS, record.repetitions) / FEATURE_MAX_REPETITIONS
    if response_ms is None:
        response_norm = 0.5
    else:
        response = finite_or(response_ms, FEATURE_SLOW_RESPONSE_MS)
        response_norm = clamp(response / FEATURE_SLOW_RESPONSE_MS, 0.0, 1.0)
    level_norm = clamp(record.level, 0, MAX_LEVEL) / MAX_LEVEL
    return [days_norm, ease_norm, repetition_norm, record.difficulty, response_norm, level_norm]


class LearnerRecallModel:
    """
    Recall-probability model for a single learner.

    Collects samples through record_attempt() and refits once enough
    exist. Until then is_trained is False and callers fall back to the
    analytic forgetting curve.
    """

    def __init__(
        self,
        learner_id: str,
        max_samples: int = MAX_SAMPLES,
        min_train_samples: int = MIN_TRAIN_SAMPLES,
        learning_rate: float = 0.5,
        epochs: int = 300,
        l2: float = 1e-3,
    ):
        self.learner_id = learner_id
        self.max_samples = max_samples
        self.min_train_samples = min_train_samples
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.l2 = l2

        self.samples: list[RecallSample] = []
        self.weights: np.ndarray | None = None
        self.bias: float = 0.0

    @property
    def is_trained(self) -> bool:
        return self.weights is not None

    def record_attempt(
        self,
        record: ProgressRecord | None,
        was_correct: bool,
        response_ms: float | None = None,
        now: datetime | None = None,
    ) -> RecallSample:
        """
        Store an attempt as a sample and refit when enough samples exist.

        Args:
            record: The record as it was before this attempt
            was_correct: Outcome of the attempt
            response_ms: Answer latency
            now: Attempt time

        Returns:
            The stored sample
        """
        now = as_utc(now) or utcnow()
        base = normalize_record(record, now=now)
        last_attempt_at = base.last_attempt_at or now
        days_since = max(0.0, (now - last_attempt_at).total_seconds() / 86400.0)

        sample = RecallSample(
            features=build_features(base, days_since, response_ms),
            label=1 if was_correct else 0,
            timestamp=now.timestamp(),
        )
        self.samples.append(sample)
        if len(self.samples) > self.max_samples:
            del self.samples[: len(self.samples) - self.max_samples]

        if len(self.samples) >= self.min_train_samples:
            self.train()
        return sample

    def train(self) -> bool:
        """
        Fit the model on the stored samples.

        Returns:
            True if a model was fitted
        """
        if len(self.samples) < self.min_train_samples:
            return False

        x = np.array([s.features for s in self.samples], dtype=float)
        y = np.array([s.label for s in self.samples], dtype=float)
        n = len(y)

        weights = np.zeros(FEATURE_COUNT)
        bias = 0.0
        for _ in range(self.epochs):
            p = _sigmoid(x @ weights + bias)
            error = p - y
            grad_w = x.T @ error / n + self.l2 * weights
            grad_b = float(error.mean())
            weights -= self.learning_rate * grad_w
            bias -= self.learning_rate * grad_b
            weights = _project(weights)

        self.weights = weights
        self.bias = bias
        logger.debug(f"Trained recall model for {self.learner_id} on {n} samples")
        return True

    def predict_recall(
        self,
        record: ProgressRecord,
        days_since: float,
        response_ms: float | None = None,
    ) -> float:
        """Probability (0-1) that the item is recalled after days_since days."""
        if self.weights is None:
            return 0.5
        if response_ms is None:
            response_ms = record.last_response_ms
        features = np.array(build_features(record, days_since, response_ms))
        return float(_sigmoid(features @ self.weights + self.bias))

    def predict_forget_in_days(
        self,
        record: ProgressRecord,
        threshold: float = 0.5,
        max_days: int = MAX_PREDICT_DAYS,
    ) -> int:
        """First day on which predicted recall drops below threshold."""
        for day in range(0, max_days + 1):
            if self.predict_recall(record, day) < threshold:
                return max(1, day)
        return max_days

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "samples": [s.to_dict() for s in self.samples],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnerRecallModel:
        """Restore samples and refit; malformed samples are dropped."""
        model = cls(learner_id=str(data.get("learner_id", "")))
        samples = data.get("samples")
        for raw in samples if isinstance(samples, list) else []:
            features = raw.get("features") if isinstance(raw, dict) else None
            if not isinstance(features, list) or len(features) != FEATURE_COUNT:
                continue
            values = [finite_or(f, math.nan) for f in features]
            if any(math.isnan(v) for v in values):
                continue
            model.samples.append(
                RecallSample(
                    features=values,
                    label=1 if raw.get("label") else 0,
                    timestamp=finite_or(raw.get("timestamp"), 0.0),
                )
            )
        model.samples = model.samples[-model.max_samples :]
        model.train()
        return model


def _sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(z, -30.0, 30.0)))


def _project(weights: np.ndarray) -> np.ndarray:
    """Clip weights onto their sign constraints."""
    projected = weights.copy()
    projected[WEIGHT_SIGNS > 0] = np.maximum(projected[WEIGHT_SIGNS > 0], 0.0)
    projected[WEIGHT_SIGNS < 0] = np.minimum(projected[WEIGHT_SIGNS < 0], 0.0)
    return projected

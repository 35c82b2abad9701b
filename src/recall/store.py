"""
Progress Stores.

Persistence collaborators for the scheduler:
- ProgressStore: the read/write contract a study session relies on
- InMemoryProgressStore: dict-backed, for tests and simulations
- JsonProgressStore: portable single-file persistence for records and
  learner recall models

Storage failures raise ProgressStoreError so callers can tell them
apart from scheduling problems.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from .progress import ProgressRecord
from .recall_model import LearnerRecallModel

# =============================================================================
# Contract
# =============================================================================


class ProgressStoreError(Exception):
    """A progress record could not be read or written."""


class ProgressStore(Protocol):
    """Read/write access to one progress record per learner x item."""

    def get(self, learner_id: str, item_id: str) -> ProgressRecord | None: ...

    def load(self, learner_id: str, item_ids: Iterable[str]) -> dict[str, ProgressRecord]: ...

    def save(self, learner_id: str, record: ProgressRecord) -> None: ...


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryProgressStore:
    """Progress kept in a nested dict; last write wins."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, ProgressRecord]] = {}

    def get(self, learner_id: str, item_id: str) -> ProgressRecord | None:
        return self._records.get(learner_id, {}).get(item_id)

    def load(self, learner_id: str, item_ids: Iterable[str]) -> dict[str, ProgressRecord]:
        learner = self._records.get(learner_id, {})
        return {item_id: learner[item_id] for item_id in item_ids if item_id in learner}

    def save(self, learner_id: str, record: ProgressRecord) -> None:
        self._records.setdefault(learner_id, {})[record.item_id] = record

    def all_records(self, learner_id: str) -> list[ProgressRecord]:
        return list(self._records.get(learner_id, {}).values())


# =============================================================================
# JSON File Store
# =============================================================================


class JsonProgressStore:
    """
    JSON-file persistence for progress records and learner recall models.

    Layout: {"learners": {learner_id: {item_id: record_dict}},
             "models": {learner_id: model_dict}}
    The file is rewritten atomically on every save.
    """

    DEFAULT_PATH = Path.home() / ".recall" / "progress.json"

    def __init__(self, path: Path | None = None):
        """
        Initialize the store.

        Args:
            path: Custom file path (defaults to ~/.recall/progress.json)
        """
        self.path = Path(path) if path else self.DEFAULT_PATH
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ProgressStoreError(f"Cannot create {self.path.parent}: {exc}") from exc

        logger.info(f"JsonProgressStore initialized at {self.path}")

    # -------------------------------------------------------------------------
    # Progress records
    # -------------------------------------------------------------------------

    def get(self, learner_id: str, item_id: str) -> ProgressRecord | None:
        raw = self._learner(self._read(), learner_id).get(item_id)
        if raw is None:
            return None
        return self._decode(raw, item_id)

    def load(self, learner_id: str, item_ids: Iterable[str]) -> dict[str, ProgressRecord]:
        learner = self._learner(self._read(), learner_id)
        return {
            item_id: self._decode(learner[item_id], item_id)
            for item_id in item_ids
            if item_id in learner
        }

    def all_records(self, learner_id: str) -> list[ProgressRecord]:
        learner = self._learner(self._read(), learner_id)
        return [self._decode(raw, item_id) for item_id, raw in learner.items()]

    def save(self, learner_id: str, record: ProgressRecord) -> None:
        document = self._read()
        learners = document["learners"]
        learners[learner_id] = self._learner(document, learner_id)
        learners[learner_id][record.item_id] = record.to_dict()
        self._write(document)
        logger.debug(f"Saved progress for {learner_id}/{record.item_id}")

    # -------------------------------------------------------------------------
    # Learner recall models
    # -------------------------------------------------------------------------

    def load_model(self, learner_id: str) -> LearnerRecallModel | None:
        """Restore a learner's recall model, or None if nothing was saved."""
        raw = self._models(self._read()).get(learner_id)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ProgressStoreError(f"Invalid recall model for {learner_id} in {self.path}")
        return LearnerRecallModel.from_dict({**raw, "learner_id": learner_id})

    def save_model(self, model: LearnerRecallModel) -> None:
        document = self._read()
        document["models"] = self._models(document)
        document["models"][model.learner_id] = model.to_dict()
        self._write(document)
        logger.debug(f"Saved recall model for {model.learner_id} ({len(model.samples)} samples)")

    # -------------------------------------------------------------------------
    # File access
    # -------------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"learners": {}, "models": {}}
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as exc:
            raise ProgressStoreError(f"Corrupt progress file {self.path}: {exc}") from exc
        except OSError as exc:
            raise ProgressStoreError(f"Cannot read {self.path}: {exc}") from exc

        if not isinstance(document, dict) or not isinstance(document.get("learners"), dict):
            raise ProgressStoreError(f"Unexpected layout in {self.path}")
        document.setdefault("models", {})
        return document

    def _write(self, document: dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise ProgressStoreError(f"Cannot write {self.path}: {exc}") from exc

    def _learner(self, document: dict[str, Any], learner_id: str) -> dict[str, Any]:
        learner = document["learners"].get(learner_id, {})
        if not isinstance(learner, dict):
            raise ProgressStoreError(f"Unexpected layout for learner {learner_id} in {self.path}")
        return learner

    def _models(self, document: dict[str, Any]) -> dict[str, Any]:
        models = document.get("models")
        if not isinstance(models, dict):
            raise ProgressStoreError(f"Unexpected models layout in {self.path}")
        return models

    @staticmethod
    def _decode(raw: Any, item_id: str) -> ProgressRecord:
        if not isinstance(raw, dict):
            raise ProgressStoreError(f"Invalid record for {item_id}: expected an object")
        try:
            return ProgressRecord.from_dict(raw, item_id=item_id)
        except (TypeError, ValueError, AttributeError, OverflowError) as exc:
            raise ProgressStoreError(f"Invalid record for {item_id}: {exc}") from exc

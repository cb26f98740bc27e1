"""
Snapshot-based undo/redo over the live operation collection.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from PySide6.QtCore import QObject, Signal

from .data_provider import DataProvider
from .errors import PersistenceError, TimelineError
from .models import Snapshot
from .timeline_model import TimelineModel

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class HistoryManager(QObject):
    """
    Bounded undo/redo stacks of full operation snapshots.

    Undo and redo restore a snapshot by reconciling it against the data
    provider: ids live now but absent from the snapshot are deleted, and
    every operation in the snapshot is upserted, changed or not.
    """

    # (can_undo, can_redo), emitted after every push/pop
    availability_changed = Signal(bool, bool)

    # Emitted after a snapshot has been restored ("undo" or "redo")
    replayed = Signal(str)

    def __init__(
        self,
        model: TimelineModel,
        provider: DataProvider,
        limit: int = DEFAULT_HISTORY_LIMIT,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self._model = model
        self._provider = provider
        self._limit = limit
        # deque(maxlen) drops the oldest entry on overflow
        self._undo: deque[Snapshot] = deque(maxlen=limit)
        self._redo: deque[Snapshot] = deque(maxlen=limit)
        self._replaying = False

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def is_replaying(self) -> bool:
        return self._replaying

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def undo_snapshots(self) -> list[Snapshot]:
        """Undo stack, oldest first."""
        return list(self._undo)

    def undo_description(self) -> str:
        return self._undo[-1].description if self._undo else ""

    def redo_description(self) -> str:
        return self._redo[-1].description if self._redo else ""

    def push(self, description: str = "") -> bool:
        """
        Snapshot the live collection before a mutating gesture.

        Ignored while a snapshot is being replayed. Clears the redo stack.

        Returns:
            True if a snapshot was pushed.
        """
        if self._replaying:
            return False
        self._undo.append(self._model.snapshot(description))
        self._redo.clear()
        logger.debug("History push %r (undo depth %d)", description, len(self._undo))
        self._emit_availability()
        return True

    def undo(self) -> bool:
        """Restore the most recent undo snapshot. Returns False if there is none."""
        if not self._undo or self._replaying:
            return False
        target = self._undo.pop()
        self._redo.append(self._model.snapshot(target.description))
        try:
            self._replay(target)
        finally:
            self._emit_availability()
        self.replayed.emit("undo")
        return True

    def redo(self) -> bool:
        """Restore the most recent redo snapshot. Returns False if there is none."""
        if not self._redo or self._replaying:
            return False
        target = self._redo.pop()
        self._undo.append(self._model.snapshot(target.description))
        try:
            self._replay(target)
        finally:
            self._emit_availability()
        self.replayed.emit("redo")
        return True

    def clear(self) -> None:
        """Drop both stacks (e.g. after the database was replaced)."""
        self._undo.clear()
        self._redo.clear()
        self._emit_availability()

    def _replay(self, target: Snapshot) -> None:
        self._replaying = True
        try:
            self._reconcile(target)
        finally:
            self._replaying = False

    def _reconcile(self, target: Snapshot) -> None:
        """Bring the provider and the live collection to the target snapshot."""
        current_ids = {op.id for op in self._model.operations}
        target_ops = target.restore()
        target_ids = {op.id for op in target_ops}

        failure: Optional[TimelineError] = None
        try:
            for op_id in sorted(current_ids - target_ids):
                self._provider.delete_operation(op_id)
            for op in target_ops:
                self._provider.upsert_operation(op)
        except TimelineError as e:
            logger.exception("Failed to persist restored snapshot %r", target.description)
            failure = e

        self._model.set_operations(target_ops)
        logger.info(
            "Restored %r: %d operations (%d deleted)",
            target.description, len(target_ops), len(current_ids - target_ids),
        )
        if failure is not None:
            raise PersistenceError(f"Failed to persist restored state: {failure}") from failure

    def _emit_availability(self) -> None:
        self.availability_changed.emit(self.can_undo, self.can_redo)

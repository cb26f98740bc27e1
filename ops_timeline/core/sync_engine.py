"""
Optimistic editing with debounced persistence.

Drag frames move the visual items immediately; one single-shot timer, restarted
on every frame, commits the whole gesture after a quiet period. Discrete
actions (resize, duplicate, delete, edit) persist immediately.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional, Sequence

from PySide6.QtCore import QObject, QTimer, Signal

from .data_provider import DataProvider, partial_fields
from .errors import PersistenceError, RecordNotFoundError, TimelineError
from .history import HistoryManager
from .models import Operation, ResizeEdge
from .timeline_model import TimelineModel

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 300
DEFAULT_DUPLICATE_OFFSET = timedelta(hours=24)

# Default for duplicate(): keep each source operation's own batch
KEEP_BATCH = object()


@dataclass(frozen=True)
class _Origin:
    """Position of an item when the current gesture started."""
    start: datetime
    end: datetime
    group: str


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class SyncEngine(QObject):
    """Applies edits to the timeline model and persists them through the provider."""

    # Coarse, user-facing description of a persistence failure
    save_failed = Signal(str)

    def __init__(
        self,
        model: TimelineModel,
        provider: DataProvider,
        history: HistoryManager,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        duplicate_offset: timedelta = DEFAULT_DUPLICATE_OFFSET,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self._model = model
        self._provider = provider
        self._history = history
        self.duplicate_offset = duplicate_offset

        self._origins: dict[str, _Origin] = {}

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(debounce_ms)
        self._timer.timeout.connect(self._commit_gesture)

    @property
    def debounce_ms(self) -> int:
        return self._timer.interval()

    @property
    def has_pending(self) -> bool:
        """True while a drag gesture is waiting to be persisted."""
        return bool(self._origins)

    @property
    def timer_active(self) -> bool:
        return self._timer.isActive()

    def pending_ids(self) -> list[str]:
        return list(self._origins)

    # =========================================================================
    # Drag (debounced)
    # =========================================================================

    def move(
        self,
        item_id: str,
        new_start: datetime,
        new_group: Optional[str] = None,
        selection: Sequence[str] = ()
    ) -> list[str]:
        """
        Apply one drag frame.

        If the dragged item is part of a multi-selection, every selected item
        gets the same time delta (and row delta) relative to its own position
        at gesture start. Nothing is persisted until the debounce timer fires.

        Returns:
            Ids of the items moved by this frame.
        """
        if self._model.get_item(item_id) is None:
            return []

        if item_id in selection and len(selection) > 1:
            ids = [item_id] + [i for i in selection if i != item_id and self._model.get_item(i)]
        else:
            ids = [item_id]

        # A different set of items means a new gesture: commit the old one first
        if self._origins and set(ids) != set(self._origins):
            self.flush()

        if not self._origins:
            for i in ids:
                item = self._model.get_item(i)
                self._origins[i] = _Origin(item.start, item.end, item.group)

        anchor = self._origins[item_id]
        delta = new_start - anchor.start

        group_ids = self._model.group_ids()
        row_delta = 0
        if new_group is not None and new_group in group_ids and anchor.group in group_ids:
            row_delta = group_ids.index(new_group) - group_ids.index(anchor.group)

        for i in ids:
            origin = self._origins[i]
            self._model.move_item(
                i,
                origin.start + delta,
                origin.end + delta,
                self._shift_group(origin.group, row_delta, group_ids),
                notify=False,
            )
        self._model.notify_items_changed()

        self._timer.start()
        return ids

    @staticmethod
    def _shift_group(group: str, row_delta: int, group_ids: list[str]) -> str:
        if not row_delta or group not in group_ids:
            return group
        index = group_ids.index(group) + row_delta
        index = max(0, min(len(group_ids) - 1, index))
        return group_ids[index]

    def flush(self) -> None:
        """Commit a pending drag gesture immediately."""
        self._timer.stop()
        if self._origins:
            self._commit_gesture()

    def _commit_gesture(self) -> None:
        """Persist the final position of every item touched by the gesture."""
        ids = list(self._origins)
        self._origins.clear()
        self._timer.stop()

        changes = []
        for op_id in ids:
            item = self._model.get_item(op_id)
            op = self._model.get_operation(op_id)
            if item is None or op is None:
                continue
            if (item.start, item.end, item.group) == (op.start_time, op.end_time, op.equipment_id):
                continue
            changes.append((op, item))

        if not changes:
            return

        self._history.push(f"Move {_plural(len(changes), 'operation')}")

        failed = 0
        for op, item in changes:
            optimistic = replace(
                op, start_time=item.start, end_time=item.end, equipment_id=item.group
            )
            try:
                saved = self._provider.save_operation({
                    "id": op.id,
                    "start_time": item.start,
                    "end_time": item.end,
                    "equipment_id": item.group,
                })
            except TimelineError:
                logger.exception("Failed to save moved operation %s", op.id)
                failed += 1
                saved = optimistic
            self._model.upsert_operation(saved)

        logger.info("Committed move of %d operation(s)", len(changes))
        if failed:
            self.save_failed.emit(
                f"Failed to save {failed} of {_plural(len(changes), 'moved operation')}"
            )

    # =========================================================================
    # Discrete actions (immediate)
    # =========================================================================

    def resize(
        self,
        item_id: str,
        time: datetime,
        edge: ResizeEdge,
        selection: Sequence[str] = ()
    ) -> bool:
        """
        Move one edge of a single operation and persist it.

        Disabled while more than one item is selected.

        Returns:
            True if the resize was applied.
        """
        if len(selection) > 1:
            return False
        self.flush()
        op = self._model.get_operation(item_id)
        if op is None:
            return False

        if edge is ResizeEdge.LEFT:
            start, end = time, op.end_time
        else:
            start, end = op.start_time, time

        self._history.push("Resize operation")
        self._model.move_item(item_id, start, end)
        self._persist(
            {"id": op.id, "start_time": start, "end_time": end},
            replace(op, start_time=start, end_time=end),
        )
        return True

    def duplicate(
        self,
        operation_ids: Iterable[str],
        batch_id: Any = KEEP_BATCH,
        offset: Optional[timedelta] = None
    ) -> list[str]:
        """
        Copy operations with new ids, shifted in time by offset (24 h by default).

        batch_id overrides the batch of every copy (None means "no batch").

        Returns:
            Ids of the created operations, in source order.
        """
        self.flush()
        shift = self.duplicate_offset if offset is None else offset
        sources = [op for op in map(self._model.get_operation, operation_ids) if op is not None]
        if not sources:
            return []

        self._history.push(f"Duplicate {_plural(len(sources), 'operation')}")

        created: list[str] = []
        failed = 0
        for src in sources:
            partial = {
                "equipment_id": src.equipment_id,
                "batch_id": src.batch_id if batch_id is KEEP_BATCH else batch_id,
                "start_time": src.start_time + shift,
                "end_time": src.end_time + shift,
                "type": src.type,
                "description": src.description,
                "allow_overlap": src.allow_overlap,
            }
            try:
                saved = self._provider.save_operation(partial)
            except PersistenceError:
                logger.exception("Failed to duplicate operation %s", src.id)
                failed += 1
                continue
            self._model.upsert_operation(saved)
            created.append(saved.id)

        if failed:
            self.save_failed.emit(
                f"Failed to duplicate {failed} of {_plural(len(sources), 'operation')}"
            )
        return created

    def delete(self, operation_ids: Iterable[str]) -> int:
        """Delete operations. Returns the number removed from the board."""
        self.flush()
        ids = [i for i in dict.fromkeys(operation_ids) if self._model.get_operation(i)]
        if not ids:
            return 0

        self._history.push(f"Delete {_plural(len(ids), 'operation')}")

        failed = 0
        for op_id in ids:
            try:
                self._provider.delete_operation(op_id)
            except PersistenceError:
                logger.exception("Failed to delete operation %s", op_id)
                failed += 1
        self._model.remove_operations(ids)

        if failed:
            self.save_failed.emit(f"Failed to delete {failed} of {_plural(len(ids), 'operation')}")
        return len(ids)

    def create(self, partial: Mapping[str, Any]) -> Optional[Operation]:
        """Create a new operation (e.g. from a double-click on empty canvas)."""
        if partial.get("id"):
            raise ValueError("create() expects a partial without an id")
        self.flush()
        self._history.push("Add operation")
        try:
            saved = self._provider.save_operation(partial)
        except PersistenceError:
            logger.exception("Failed to create operation")
            self.save_failed.emit("Failed to save the new operation")
            return None
        self._model.upsert_operation(saved)
        return saved

    def apply_edit(self, partial: Mapping[str, Any]) -> Optional[Operation]:
        """Merge edited fields into an existing operation and persist them."""
        op_id = partial.get("id")
        if not op_id:
            raise ValueError("apply_edit() requires an operation id")
        self.flush()
        op = self._model.get_operation(op_id)
        if op is None:
            raise RecordNotFoundError("Operation", op_id)

        fields = partial_fields(partial, Operation)
        fields.pop("id", None)
        self._history.push("Edit operation")
        return self._persist(partial, replace(op, **fields))

    def _persist(self, partial: Mapping[str, Any], optimistic: Operation) -> Optional[Operation]:
        """Save one operation; on failure keep the optimistic value and report it."""
        try:
            saved = self._provider.save_operation(partial)
        except PersistenceError:
            logger.exception("Failed to save operation %s", optimistic.id)
            self._model.upsert_operation(optimistic)
            self.save_failed.emit("Failed to save operation changes")
            return None
        self._model.upsert_operation(saved)
        return saved

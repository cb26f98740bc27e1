"""
In-memory state of the board: the authoritative operation collection and the
visual items derived from it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from PySide6.QtCore import QObject, Signal

from .models import Batch, Equipment, Operation, Snapshot, TimelineItem


def equipment_sort_key(equipment: Equipment) -> tuple:
    """Display order: by order field (unset last), then tag."""
    return (equipment.order is None, equipment.order or 0, equipment.tag)


class TimelineModel(QObject):
    """
    Holds the live operation collection and its visual items.

    Operations change only when a mutation has been committed (or a snapshot
    restored). Items may run ahead of operations during a drag gesture.
    """

    # Emitted when the operation collection changes
    operations_changed = Signal()

    # Emitted when visual items change (including mid-gesture moves)
    items_changed = Signal()

    # Emitted when equipment or batches are reloaded
    reference_data_changed = Signal()

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._operations: dict[str, Operation] = {}
        self._items: dict[str, TimelineItem] = {}
        self._equipment: list[Equipment] = []
        self._batches: list[Batch] = []

    # =========================================================================
    # Reference data
    # =========================================================================

    @property
    def equipment(self) -> list[Equipment]:
        """Equipment sorted by display order."""
        return list(self._equipment)

    @property
    def batches(self) -> list[Batch]:
        return list(self._batches)

    def set_reference_data(self, equipment: Iterable[Equipment], batches: Iterable[Batch]) -> None:
        self._equipment = sorted(equipment, key=equipment_sort_key)
        self._batches = list(batches)
        self.reference_data_changed.emit()

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        for eq in self._equipment:
            if eq.id == equipment_id:
                return eq
        return None

    def group_ids(self) -> list[str]:
        """Equipment ids in display order."""
        return [eq.id for eq in self._equipment]

    # =========================================================================
    # Operations
    # =========================================================================

    @property
    def operations(self) -> list[Operation]:
        return list(self._operations.values())

    def get_operation(self, operation_id: str) -> Optional[Operation]:
        return self._operations.get(operation_id)

    def set_operations(self, operations: Iterable[Operation]) -> None:
        """Replace the whole collection and rebuild every item from it."""
        self._operations = {op.id: op for op in operations}
        self.rebuild_items()
        self.operations_changed.emit()

    def upsert_operation(self, operation: Operation) -> None:
        """Insert or replace one operation (keeping its position) and its item."""
        self._operations[operation.id] = operation
        self._items[operation.id] = TimelineItem.from_operation(operation)
        self.operations_changed.emit()
        self.items_changed.emit()

    def remove_operations(self, operation_ids: Iterable[str]) -> None:
        for op_id in operation_ids:
            self._operations.pop(op_id, None)
            self._items.pop(op_id, None)
        self.operations_changed.emit()
        self.items_changed.emit()

    def snapshot(self, description: str = "") -> Snapshot:
        return Snapshot.capture(self._operations.values(), description)

    # =========================================================================
    # Items
    # =========================================================================

    @property
    def items(self) -> list[TimelineItem]:
        return list(self._items.values())

    def get_item(self, item_id: str) -> Optional[TimelineItem]:
        return self._items.get(item_id)

    def rebuild_items(self) -> None:
        self._items = {
            op.id: TimelineItem.from_operation(op) for op in self._operations.values()
        }
        self.items_changed.emit()

    def move_item(
        self,
        item_id: str,
        start: datetime,
        end: datetime,
        group: Optional[str] = None,
        notify: bool = True,
    ) -> None:
        """Update one item's visual position without touching its operation."""
        item = self._items.get(item_id)
        if item is None:
            return
        item.start = start
        item.end = end
        if group is not None:
            item.group = group
        if notify:
            self.items_changed.emit()

    def notify_items_changed(self) -> None:
        self.items_changed.emit()

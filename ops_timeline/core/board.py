"""
Board controller: the single input-handling layer between the UI and the engine.

The board owns the authoritative UI state (selection, edit/view mode, zoom and
visible range) and turns user commands into calls on the sync engine, the
history manager and the data provider.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum, auto
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from PySide6.QtCore import QObject, Signal

from .config import BoardSettings
from .data_provider import DataProvider, Partial
from .errors import PersistenceError, RecordNotFoundError
from .history import HistoryManager
from .layout import BoardLayout, compose_layout
from .models import Batch, Equipment, Operation, ResizeEdge, Selection
from .record_store import StoreHandle, atomic_write_bytes
from .schedule_export import export_schedule_csv
from .sync_engine import KEEP_BATCH, SyncEngine
from .timeline_model import TimelineModel
from .viewport import ZoomLevel, parse_zoom, visible_range
from .window_controller import WindowController

logger = logging.getLogger(__name__)


class Command(Enum):
    """Discrete user commands (keyboard shortcuts and menu actions)."""
    UNDO = auto()
    REDO = auto()
    DELETE = auto()
    DUPLICATE = auto()
    SELECT_ALL = auto()
    CLEAR_SELECTION = auto()
    TOGGLE_EDIT_MODE = auto()


# Commands that change records and are refused in view mode
MUTATING_COMMANDS = frozenset({Command.UNDO, Command.REDO, Command.DELETE, Command.DUPLICATE})


class Board(QObject):
    """
    Scheduling board state and command dispatch.

    Signals:
        selection_changed: Selected operation ids
        edit_mode_changed: True in edit mode, False in view mode
        range_changed: New visible (start, end)
        layout_changed: Anything the chart draws may have changed
        refused: Description of an action refused in view mode
        save_failed: Persistence failure message for the status bar
    """

    selection_changed = Signal(list)
    edit_mode_changed = Signal(bool)
    range_changed = Signal(object, object)
    layout_changed = Signal()
    refused = Signal(str)
    save_failed = Signal(str)

    def __init__(
        self,
        provider: DataProvider,
        handle: Optional[StoreHandle] = None,
        settings: Optional[BoardSettings] = None,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.settings = settings or BoardSettings()
        self._provider = provider
        self._handle = handle

        self.model = TimelineModel(self)
        self.history = HistoryManager(
            self.model, provider, limit=self.settings.history_limit, parent=self
        )
        self.sync = SyncEngine(
            self.model,
            provider,
            self.history,
            debounce_ms=self.settings.debounce_ms,
            duplicate_offset=timedelta(hours=self.settings.duplicate_offset_hours),
            parent=self,
        )
        self.window = WindowController(
            row_height=self.settings.row_height,
            header_height=self.settings.header_height,
            wheel_step=self.settings.wheel_step_px,
            parent=self,
        )

        self._selection = Selection()
        self._edit_mode = True
        self._zoom = parse_zoom(self.settings.initial_zoom)
        self._start, self._end = visible_range(self._zoom)

        self.sync.save_failed.connect(self.save_failed)
        self.model.operations_changed.connect(self._prune_selection)
        self.model.items_changed.connect(self.layout_changed)
        self.model.reference_data_changed.connect(self.layout_changed)
        self.window.offset_changed.connect(self._on_window_changed)
        self.window.rows_per_page_changed.connect(self._on_window_changed)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def provider(self) -> DataProvider:
        return self._provider

    @property
    def selection(self) -> list[str]:
        return list(self._selection.ids)

    @property
    def edit_mode(self) -> bool:
        return self._edit_mode

    @property
    def zoom(self) -> ZoomLevel:
        return self._zoom

    @property
    def visible_range(self) -> tuple[datetime, datetime]:
        return self._start, self._end

    def layout(self) -> BoardLayout:
        """Rows and items for the chart, for the current window and range."""
        return compose_layout(
            self.model.equipment,
            self.model.items,
            self._start,
            self._end,
            self._edit_mode,
            self.window,
        )

    def _on_window_changed(self, _value: int) -> None:
        self.layout_changed.emit()

    def _editable(self, action: str) -> bool:
        if self._edit_mode:
            return True
        logger.debug("Refused '%s' in view mode", action)
        self.refused.emit(f"{action} is not available in view mode")
        return False

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self) -> None:
        """Load equipment, batches and every operation from the provider."""
        equipment = self._provider.get_equipment()
        batches = self._provider.get_batches()
        operations = self._provider.get_operations(datetime.min, datetime.max)
        self.model.set_reference_data(equipment, batches)
        self.model.set_operations(operations)
        logger.info(
            "Loaded %d equipment, %d batches, %d operations",
            len(equipment), len(batches), len(operations),
        )

    def reload_reference_data(self) -> None:
        self.model.set_reference_data(self._provider.get_equipment(), self._provider.get_batches())

    def close(self) -> None:
        """Commit anything still pending."""
        self.sync.flush()

    # =========================================================================
    # Commands
    # =========================================================================

    def execute(self, command: Command) -> Any:
        """Dispatch one command. Returns the command's result, if any."""
        if command in MUTATING_COMMANDS and not self._editable(command.name.title()):
            return None

        if command is Command.UNDO:
            return self.undo()
        if command is Command.REDO:
            return self.redo()
        if command is Command.DELETE:
            return self.delete_selected()
        if command is Command.DUPLICATE:
            return self.duplicate_selected()
        if command is Command.SELECT_ALL:
            return self.select_all()
        if command is Command.CLEAR_SELECTION:
            return self.clear_selection()
        if command is Command.TOGGLE_EDIT_MODE:
            return self.set_edit_mode(not self._edit_mode)
        raise ValueError(f"Unknown command: {command!r}")

    def undo(self) -> bool:
        if not self._editable("Undo"):
            return False
        self.sync.flush()
        return self._replay(self.history.undo, "undo")

    def redo(self) -> bool:
        if not self._editable("Redo"):
            return False
        self.sync.flush()
        return self._replay(self.history.redo, "redo")

    def _replay(self, step, name: str) -> bool:
        try:
            return step()
        except PersistenceError as e:
            logger.error("Failed to %s: %s", name, e)
            self.save_failed.emit(f"Failed to save {name}: {e}")
            return True

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, ids: Iterable[str]) -> list[str]:
        self._selection.set(i for i in ids if self.model.get_operation(i))
        self.selection_changed.emit(self.selection)
        return self.selection

    def toggle_selection(self, item_id: str) -> list[str]:
        if self.model.get_operation(item_id) is None:
            return self.selection
        self._selection.toggle(item_id)
        self.selection_changed.emit(self.selection)
        return self.selection

    def select_all(self) -> list[str]:
        """Select every operation drawn in the current window."""
        return self.select(
            item.id for item in self.layout().items if not item.placeholder
        )

    def clear_selection(self) -> list[str]:
        if self._selection.ids:
            self._selection.clear()
            self.selection_changed.emit([])
        return []

    def _prune_selection(self) -> None:
        gone = [i for i in self._selection.ids if self.model.get_operation(i) is None]
        if gone:
            self._selection.discard(gone)
            self.selection_changed.emit(self.selection)

    # =========================================================================
    # Operations
    # =========================================================================

    def move_item(
        self,
        item_id: str,
        new_start: datetime,
        new_group: Optional[str] = None
    ) -> list[str]:
        """One drag frame; moves the whole selection when the item is part of it."""
        if not self._editable("Move"):
            return []
        return self.sync.move(item_id, new_start, new_group, self._selection.ids)

    def resize_item(self, item_id: str, time: datetime, edge: ResizeEdge) -> bool:
        if not self._editable("Resize"):
            return False
        return self.sync.resize(item_id, time, edge, self._selection.ids)

    def delete_selected(self) -> int:
        return self.delete_operations(self._selection.ids)

    def delete_operations(self, ids: Iterable[str]) -> int:
        if not self._editable("Delete"):
            return 0
        count = self.sync.delete(list(ids))
        self._prune_selection()
        return count

    def duplicate_selected(
        self,
        batch_id: Any = KEEP_BATCH,
        offset: Optional[timedelta] = None
    ) -> list[str]:
        """Duplicate the selection; the copies become the new selection."""
        if not self._editable("Duplicate"):
            return []
        created = self.sync.duplicate(self._selection.ids, batch_id=batch_id, offset=offset)
        if created:
            self.select(created)
        return created

    def _check_equipment(self, equipment_id: Optional[str]) -> None:
        if not equipment_id or self.model.get_equipment(equipment_id) is None:
            raise RecordNotFoundError("Equipment", equipment_id or "")

    def create_operation(self, partial: Mapping[str, Any]) -> Optional[Operation]:
        """Create an operation on an existing equipment row and select it."""
        if not self._editable("Add operation"):
            return None
        self._check_equipment(partial.get("equipment_id"))
        created = self.sync.create(partial)
        if created is not None:
            self.select([created.id])
        return created

    def edit_operation(self, partial: Mapping[str, Any]) -> Optional[Operation]:
        if not self._editable("Edit operation"):
            return None
        if "equipment_id" in partial:
            self._check_equipment(partial["equipment_id"])
        return self.sync.apply_edit(partial)

    # =========================================================================
    # Equipment and batches
    # =========================================================================

    def save_equipment(self, partial: Partial) -> Optional[Equipment]:
        """Create or update an equipment row."""
        if not self._editable("Edit equipment"):
            return None
        equipment = self._provider.save_equipment(partial)
        self.reload_reference_data()
        return equipment

    def move_equipment(self, equipment_id: str, new_index: int) -> bool:
        """
        Move an equipment row to a new display position.

        Every row is renumbered so that order runs 0..n-1 in display order.
        """
        if not self._editable("Reorder equipment"):
            return False
        rows = self.model.equipment
        current = next((i for i, eq in enumerate(rows) if eq.id == equipment_id), None)
        if current is None:
            raise RecordNotFoundError("Equipment", equipment_id)

        new_index = max(0, min(len(rows) - 1, new_index))
        moved = rows.pop(current)
        rows.insert(new_index, moved)
        for order, eq in enumerate(rows):
            self._provider.save_equipment({"id": eq.id, "order": order})
        self.reload_reference_data()
        logger.info("Moved equipment %s to position %d", moved.tag, new_index)
        return current != new_index

    def delete_equipment(self, equipment_id: str) -> None:
        self._provider.delete_equipment(equipment_id)

    def save_batch(self, partial: Partial) -> Optional[Batch]:
        """Create or rename a batch. Existing operations keep their batch keys."""
        if not self._editable("Edit batch"):
            return None
        batch = self._provider.save_batch(partial)
        self.reload_reference_data()
        return batch

    def delete_batch(self, batch_id: str) -> None:
        self._provider.delete_batch(batch_id)

    # =========================================================================
    # Mode and viewport
    # =========================================================================

    def set_edit_mode(self, enabled: bool) -> bool:
        enabled = bool(enabled)
        if enabled != self._edit_mode:
            self.sync.flush()
            self._edit_mode = enabled
            self.edit_mode_changed.emit(enabled)
            self.layout_changed.emit()
        return self._edit_mode

    def set_zoom(self, zoom: Union[ZoomLevel, str], now: Optional[datetime] = None) -> None:
        if not isinstance(zoom, ZoomLevel):
            zoom = ZoomLevel(zoom)
        self._zoom = zoom
        self.set_visible_range(*visible_range(zoom, now))

    def jump_to_now(self, now: Optional[datetime] = None) -> None:
        self.set_visible_range(*visible_range(self._zoom, now))

    def set_visible_range(self, start: datetime, end: datetime) -> None:
        if end < start:
            raise ValueError("Visible range end is before its start")
        self._start, self._end = start, end
        self.range_changed.emit(start, end)
        self.layout_changed.emit()

    # =========================================================================
    # Files
    # =========================================================================

    def _require_handle(self) -> StoreHandle:
        if self._handle is None:
            raise PersistenceError("No local database is attached to this board")
        return self._handle

    def export_database(self, path: Union[str, Path]) -> int:
        """Write the raw database image to path. Returns its size in bytes."""
        handle = self._require_handle()
        self.sync.flush()
        data = handle.export_bytes()
        atomic_write_bytes(Path(path), data)
        logger.info("Exported database to %s (%d bytes)", path, len(data))
        return len(data)

    def import_database(self, path: Union[str, Path]) -> None:
        """
        Replace the live database with the image stored at path.

        Pending saves are committed first. History is cleared because its
        snapshots describe the previous database.
        """
        handle = self._require_handle()
        self.sync.flush()
        data = Path(path).read_bytes()
        handle.import_bytes(data)
        self.history.clear()
        self.clear_selection()
        self.load()
        logger.info("Imported database from %s", path)

    def export_schedule(self, path: Union[str, Path]) -> int:
        """Write all operations as a CSV schedule. Returns the row count."""
        self.sync.flush()
        return export_schedule_csv(path, self.model.operations, self.model.equipment)

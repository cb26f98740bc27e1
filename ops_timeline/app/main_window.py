"""
Main Window for the Operations Timeline application.
"""
from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QPoint, Qt, Slot
from PySide6.QtGui import QAction, QActionGroup, QKeySequence
from PySide6.QtWidgets import (
    QDialog,
    QFileDialog,
    QInputDialog,
    QMainWindow,
    QMenu,
    QMessageBox,
    QToolBar,
)

from ..chart import TimelineWidget
from ..core import (
    Board,
    Command,
    Equipment,
    PolicyViolationError,
    TimelineError,
    ZoomLevel,
)
from .dialogs import (
    BatchManagementDialog,
    DuplicateDialog,
    EquipmentDialog,
    OperationDialog,
)

logger = logging.getLogger(__name__)

DB_FILTER = "Database Files (*.sqlite *.db);;All Files (*)"

# How long transient status messages stay visible (ms)
STATUS_TIMEOUT = 5000

# Keys that delete the selection
DELETE_KEYS = (QKeySequence.StandardKey.Delete, Qt.Key.Key_Backspace)


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(self, board: Board):
        super().__init__()
        self.board = board

        self.setWindowTitle("Operations Timeline")
        self.setMinimumSize(1000, 600)
        self.resize(1400, 800)

        self.timeline = TimelineWidget(board, self)
        self.setCentralWidget(self.timeline)

        self._setup_menus()
        self._setup_toolbar()
        self._setup_connections()

        self.statusBar().showMessage("Ready")

    def _setup_menus(self):
        """Set up the menu bar."""
        menubar = self.menuBar()

        # File menu
        file_menu = menubar.addMenu("&File")

        export_db_action = QAction("Export Database...", self)
        export_db_action.triggered.connect(self.on_export_database)
        file_menu.addAction(export_db_action)

        import_db_action = QAction("Import Database...", self)
        import_db_action.triggered.connect(self.on_import_database)
        file_menu.addAction(import_db_action)

        file_menu.addSeparator()

        export_csv_action = QAction("Export Schedule as CSV...", self)
        export_csv_action.setShortcut(QKeySequence("Ctrl+Shift+E"))
        export_csv_action.triggered.connect(self.on_export_schedule)
        file_menu.addAction(export_csv_action)

        file_menu.addSeparator()

        exit_action = QAction("Exit", self)
        exit_action.setShortcut(QKeySequence.StandardKey.Quit)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        # Edit menu
        edit_menu = menubar.addMenu("&Edit")

        self.undo_action = QAction("Undo", self)
        self.undo_action.setShortcut(QKeySequence.StandardKey.Undo)
        self.undo_action.setEnabled(False)
        self.undo_action.triggered.connect(lambda: self.run_command(Command.UNDO))
        edit_menu.addAction(self.undo_action)

        self.redo_action = QAction("Redo", self)
        self.redo_action.setShortcuts([QKeySequence.StandardKey.Redo, QKeySequence("Ctrl+Y")])
        self.redo_action.setEnabled(False)
        self.redo_action.triggered.connect(lambda: self.run_command(Command.REDO))
        edit_menu.addAction(self.redo_action)

        edit_menu.addSeparator()

        add_op_action = QAction("Add Operation...", self)
        add_op_action.setShortcut(QKeySequence.StandardKey.New)
        add_op_action.triggered.connect(lambda: self.on_create_operation("", None))
        edit_menu.addAction(add_op_action)

        duplicate_action = QAction("Duplicate Selected...", self)
        duplicate_action.setShortcut(QKeySequence("Ctrl+D"))
        duplicate_action.triggered.connect(self.on_duplicate)
        edit_menu.addAction(duplicate_action)

        delete_action = QAction("Delete Selected", self)
        delete_action.setShortcuts([QKeySequence(key) for key in DELETE_KEYS])
        delete_action.triggered.connect(self.on_delete)
        edit_menu.addAction(delete_action)

        edit_menu.addSeparator()

        select_all_action = QAction("Select All", self)
        select_all_action.setShortcut(QKeySequence.StandardKey.SelectAll)
        select_all_action.triggered.connect(lambda: self.run_command(Command.SELECT_ALL))
        edit_menu.addAction(select_all_action)

        clear_selection_action = QAction("Clear Selection", self)
        clear_selection_action.setShortcut(QKeySequence("Esc"))
        clear_selection_action.triggered.connect(lambda: self.run_command(Command.CLEAR_SELECTION))
        edit_menu.addAction(clear_selection_action)

        # Equipment menu
        equipment_menu = menubar.addMenu("E&quipment")

        add_eq_action = QAction("Add Equipment...", self)
        add_eq_action.triggered.connect(self.on_add_equipment)
        equipment_menu.addAction(add_eq_action)

        edit_eq_action = QAction("Edit Equipment...", self)
        edit_eq_action.triggered.connect(self.on_edit_equipment)
        equipment_menu.addAction(edit_eq_action)

        equipment_menu.addSeparator()

        move_up_action = QAction("Move Row Up...", self)
        move_up_action.triggered.connect(lambda: self.on_move_equipment(-1))
        equipment_menu.addAction(move_up_action)

        move_down_action = QAction("Move Row Down...", self)
        move_down_action.triggered.connect(lambda: self.on_move_equipment(1))
        equipment_menu.addAction(move_down_action)

        equipment_menu.addSeparator()

        delete_eq_action = QAction("Delete Equipment...", self)
        delete_eq_action.triggered.connect(self.on_delete_equipment)
        equipment_menu.addAction(delete_eq_action)

        # Batches menu
        batch_menu = menubar.addMenu("&Batches")

        manage_batches_action = QAction("Manage Batches...", self)
        manage_batches_action.triggered.connect(self.on_manage_batches)
        batch_menu.addAction(manage_batches_action)

        # View menu
        view_menu = menubar.addMenu("&View")

        self.zoom_group = QActionGroup(self)
        self.zoom_group.setExclusive(True)
        for zoom in ZoomLevel:
            action = QAction(zoom.value.title(), self)
            action.setCheckable(True)
            action.setChecked(zoom is self.board.zoom)
            action.triggered.connect(lambda checked=False, z=zoom: self.board.set_zoom(z))
            self.zoom_group.addAction(action)
            view_menu.addAction(action)

        view_menu.addSeparator()

        now_action = QAction("Jump to Now", self)
        now_action.setShortcut(QKeySequence("Ctrl+T"))
        now_action.triggered.connect(lambda: self.board.jump_to_now())
        view_menu.addAction(now_action)

        view_menu.addSeparator()

        self.edit_mode_action = QAction("Edit Mode", self)
        self.edit_mode_action.setCheckable(True)
        self.edit_mode_action.setChecked(self.board.edit_mode)
        self.edit_mode_action.setShortcut(QKeySequence("Ctrl+E"))
        self.edit_mode_action.triggered.connect(
            lambda: self.run_command(Command.TOGGLE_EDIT_MODE)
        )
        view_menu.addAction(self.edit_mode_action)

        # Help menu
        help_menu = menubar.addMenu("&Help")

        about_action = QAction("About", self)
        about_action.triggered.connect(self.on_about)
        help_menu.addAction(about_action)

    def _setup_toolbar(self):
        """Set up the toolbar."""
        toolbar = QToolBar("Main Toolbar")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        toolbar.addAction(self.undo_action)
        toolbar.addAction(self.redo_action)
        toolbar.addSeparator()
        toolbar.addAction("Add", lambda: self.on_create_operation("", None))
        toolbar.addAction("Duplicate", self.on_duplicate)
        toolbar.addAction("Delete", self.on_delete)
        toolbar.addSeparator()
        toolbar.addAction("Now", lambda: self.board.jump_to_now())
        toolbar.addAction(self.edit_mode_action)

    def _setup_connections(self):
        """Set up signal/slot connections."""
        self.board.history.availability_changed.connect(self.on_history_changed)
        self.board.history.replayed.connect(
            lambda step: self.statusBar().showMessage(f"{step.title()} done", STATUS_TIMEOUT)
        )
        self.board.save_failed.connect(self.on_save_failed)
        self.board.refused.connect(
            lambda message: self.statusBar().showMessage(message, STATUS_TIMEOUT)
        )
        self.board.edit_mode_changed.connect(self.edit_mode_action.setChecked)
        self.board.selection_changed.connect(self.on_selection_changed)

        self.timeline.create_requested.connect(self.on_create_operation)
        self.timeline.edit_requested.connect(self.on_edit_operation)
        self.timeline.context_menu_requested.connect(self.on_context_menu)

    def run_command(self, command: Command):
        """Dispatch a command to the board, reporting domain errors."""
        try:
            self.board.execute(command)
        except TimelineError as e:
            QMessageBox.warning(self, "Action Failed", str(e))

    def _pick_equipment(self, title: str) -> Optional[Equipment]:
        equipment = self.board.model.equipment
        if not equipment:
            return None
        labels = [eq.tag_and_description for eq in equipment]
        label, ok = QInputDialog.getItem(self, title, "Equipment:", labels, 0, False)
        if not ok:
            return None
        return equipment[labels.index(label)]

    # =========================================================================
    # Slots
    # =========================================================================

    @Slot(bool, bool)
    def on_history_changed(self, can_undo: bool, can_redo: bool):
        self.undo_action.setEnabled(can_undo)
        self.redo_action.setEnabled(can_redo)
        self.undo_action.setText(
            f"Undo {self.board.history.undo_description()}".strip()
        )
        self.redo_action.setText(
            f"Redo {self.board.history.redo_description()}".strip()
        )

    @Slot(str)
    def on_save_failed(self, message: str):
        self.statusBar().showMessage(message, STATUS_TIMEOUT)

    @Slot(list)
    def on_selection_changed(self, ids: list):
        if ids:
            self.statusBar().showMessage(f"{len(ids)} operation(s) selected")
        else:
            self.statusBar().clearMessage()

    @Slot(str, object)
    def on_create_operation(self, equipment_id: str, start):
        """Open the operation dialog for a new operation."""
        dialog = OperationDialog(
            self.board.model.equipment,
            self.board.model.batches,
            equipment_id=equipment_id or None,
            start=start,
            parent=self,
        )
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        try:
            self.board.create_operation(dialog.get_result())
        except TimelineError as e:
            QMessageBox.warning(self, "Operation Not Created", str(e))

    @Slot(str)
    def on_edit_operation(self, operation_id: str):
        """Open the operation dialog for an existing operation."""
        operation = self.board.model.get_operation(operation_id)
        if operation is None:
            return
        dialog = OperationDialog(
            self.board.model.equipment,
            self.board.model.batches,
            operation=operation,
            parent=self,
        )
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        try:
            self.board.edit_operation(dialog.get_result())
        except TimelineError as e:
            QMessageBox.warning(self, "Operation Not Saved", str(e))

    @Slot(str, QPoint)
    def on_context_menu(self, operation_id: str, pos: QPoint):
        menu = QMenu(self)
        menu.addAction("Edit Operation...", lambda: self.on_edit_operation(operation_id))
        menu.addAction("Duplicate...", self.on_duplicate)
        menu.addSeparator()
        menu.addAction("Delete", self.on_delete)
        menu.exec(pos)

    @Slot()
    def on_duplicate(self):
        """Duplicate the selection into a chosen batch."""
        selection = self.board.selection
        if not selection:
            self.statusBar().showMessage("Select operations to duplicate", STATUS_TIMEOUT)
            return
        dialog = DuplicateDialog(
            len(selection),
            self.board.model.batches,
            offset_hours=self.board.settings.duplicate_offset_hours,
            parent=self,
        )
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        created = self.board.duplicate_selected(batch_id=dialog.get_result())
        if created:
            self.statusBar().showMessage(f"Duplicated {len(created)} operation(s)")

    @Slot()
    def on_delete(self):
        """Delete the selection after confirmation."""
        count = len(self.board.selection)
        if not count:
            return
        reply = QMessageBox.question(
            self,
            "Delete Operations",
            f"Delete {count} operation(s)?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
        )
        if reply == QMessageBox.StandardButton.Yes:
            self.run_command(Command.DELETE)

    @Slot()
    def on_add_equipment(self):
        dialog = EquipmentDialog(parent=self)
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        try:
            equipment = self.board.save_equipment(dialog.get_result())
        except (TimelineError, ValueError) as e:
            QMessageBox.warning(self, "Equipment Not Saved", str(e))
            return
        if equipment is not None:
            self.statusBar().showMessage(f"Added equipment {equipment.tag}")

    @Slot()
    def on_edit_equipment(self):
        equipment = self._pick_equipment("Edit Equipment")
        if equipment is None:
            return
        dialog = EquipmentDialog(equipment, parent=self)
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        try:
            self.board.save_equipment(dialog.get_result())
        except (TimelineError, ValueError) as e:
            QMessageBox.warning(self, "Equipment Not Saved", str(e))

    def on_move_equipment(self, step: int):
        equipment = self._pick_equipment("Move Row")
        if equipment is None:
            return
        index = self.board.model.group_ids().index(equipment.id)
        try:
            self.board.move_equipment(equipment.id, index + step)
        except TimelineError as e:
            QMessageBox.warning(self, "Row Not Moved", str(e))

    @Slot()
    def on_delete_equipment(self):
        equipment = self._pick_equipment("Delete Equipment")
        if equipment is None:
            return
        try:
            self.board.delete_equipment(equipment.id)
        except PolicyViolationError as e:
            QMessageBox.information(self, "Not Allowed", str(e))

    @Slot()
    def on_manage_batches(self):
        BatchManagementDialog(self.board, self).exec()

    @Slot()
    def on_export_database(self):
        """Save the raw database image to a file."""
        filepath, _ = QFileDialog.getSaveFileName(
            self, "Export Database", "operations.sqlite", DB_FILTER
        )
        if not filepath:
            return
        try:
            size = self.board.export_database(filepath)
            self.statusBar().showMessage(f"Exported database to {filepath} ({size} bytes)")
        except Exception as e:
            QMessageBox.warning(self, "Export Error", f"Failed to export database:\n{str(e)}")

    @Slot()
    def on_import_database(self):
        """Replace the live database with a previously exported one."""
        filepath, _ = QFileDialog.getOpenFileName(self, "Import Database", "", DB_FILTER)
        if not filepath:
            return

        reply = QMessageBox.question(
            self,
            "Import Database",
            "Replace the current database? Undo history will be cleared.",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
        )
        if reply != QMessageBox.StandardButton.Yes:
            return

        try:
            self.board.import_database(filepath)
            self.statusBar().showMessage(f"Imported database from {filepath}")
        except Exception as e:
            QMessageBox.warning(self, "Import Error", f"Failed to import database:\n{str(e)}")

    @Slot()
    def on_export_schedule(self):
        """Export all operations as a CSV schedule."""
        filepath, _ = QFileDialog.getSaveFileName(
            self, "Export Schedule", "schedule.csv", "CSV Files (*.csv)"
        )
        if not filepath:
            return
        if not filepath.endswith(".csv"):
            filepath += ".csv"
        try:
            rows = self.board.export_schedule(filepath)
            self.statusBar().showMessage(f"Exported {rows} operation(s) to {filepath}")
        except Exception as e:
            QMessageBox.warning(self, "Export Error", f"Failed to export schedule:\n{str(e)}")

    @Slot()
    def on_about(self):
        """Show about dialog."""
        QMessageBox.about(
            self,
            "About Operations Timeline",
            "Operations Timeline\n\n"
            "Scheduling board for equipment operations.\n\n"
            "Features:\n"
            "- Drag, resize and duplicate operations\n"
            "- Multi-select moves with debounced saving\n"
            "- Undo/redo of every change\n"
            "- Scrollable row window with view and edit modes\n"
            "- Local database export and import"
        )

    def closeEvent(self, event):
        """Commit pending changes before closing."""
        try:
            self.board.close()
        except TimelineError:
            logger.exception("Failed to commit pending changes on close")
        event.accept()

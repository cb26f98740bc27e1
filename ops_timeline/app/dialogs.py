"""
Dialog windows for the Operations Timeline application.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDateTimeEdit,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ..chart import batch_color
from ..core import (
    KEEP_BATCH,
    Batch,
    Board,
    Equipment,
    Operation,
    TimelineError,
)
from ..core.models import OPERATION_TYPES

DATETIME_FORMAT = "yyyy-MM-dd HH:mm"

# Combo data for "keep each source operation's batch"
_KEEP = "__keep__"

# Default length of a new operation
DEFAULT_DURATION = timedelta(hours=2)


def _datetime_edit(value: datetime) -> QDateTimeEdit:
    edit = QDateTimeEdit(value)
    edit.setDisplayFormat(DATETIME_FORMAT)
    edit.setCalendarPopup(True)
    return edit


def _batch_combo(batches: Sequence[Batch], current: Optional[str]) -> QComboBox:
    """Combo of batch keys with a leading "no batch" entry (data None)."""
    combo = QComboBox()
    combo.addItem("(No batch)", None)
    for batch in batches:
        combo.addItem(f"Batch {batch.key}", batch.key)
    if current:
        idx = combo.findData(current)
        if idx < 0:
            # Keep a key whose batch record is gone
            combo.addItem(f"Batch {current}", current)
            idx = combo.count() - 1
        combo.setCurrentIndex(idx)
    return combo


def _ok_cancel(dialog: QDialog, on_accept) -> QDialogButtonBox:
    button_box = QDialogButtonBox(
        QDialogButtonBox.StandardButton.Ok |
        QDialogButtonBox.StandardButton.Cancel
    )
    button_box.accepted.connect(on_accept)
    button_box.rejected.connect(dialog.reject)
    return button_box


class OperationDialog(QDialog):
    """Dialog for creating or editing an operation."""

    def __init__(
        self,
        equipment: Sequence[Equipment],
        batches: Sequence[Batch],
        operation: Optional[Operation] = None,
        equipment_id: Optional[str] = None,
        start: Optional[datetime] = None,
        parent: Optional[QWidget] = None
    ):
        super().__init__(parent)
        self.operation = operation
        self.equipment = list(equipment)
        self.batches = list(batches)

        start = start or datetime.now().replace(second=0, microsecond=0)
        self._initial = {
            "equipment_id": operation.equipment_id if operation else equipment_id,
            "batch_id": operation.batch_id if operation else None,
            "start_time": operation.start_time if operation else start,
            "end_time": operation.end_time if operation else start + DEFAULT_DURATION,
            "type": operation.type if operation else OPERATION_TYPES[0],
            "description": operation.description if operation else "",
            "allow_overlap": operation.allow_overlap if operation else False,
        }

        self.setWindowTitle("Edit Operation" if operation else "New Operation")
        self.setMinimumWidth(420)

        self._setup_ui()

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        form = QFormLayout()
        initial = self._initial

        self.equipment_combo = QComboBox()
        for eq in self.equipment:
            self.equipment_combo.addItem(eq.tag_and_description, eq.id)
        idx = self.equipment_combo.findData(initial["equipment_id"])
        if idx >= 0:
            self.equipment_combo.setCurrentIndex(idx)
        form.addRow("Equipment:", self.equipment_combo)

        self.batch_combo = _batch_combo(self.batches, initial["batch_id"])
        form.addRow("Batch:", self.batch_combo)

        self.type_combo = QComboBox()
        self.type_combo.setEditable(True)
        self.type_combo.addItems(OPERATION_TYPES)
        self.type_combo.setCurrentText(initial["type"])
        form.addRow("Type:", self.type_combo)

        self.description_edit = QLineEdit(initial["description"])
        form.addRow("Description:", self.description_edit)

        self.start_edit = _datetime_edit(initial["start_time"])
        form.addRow("Start:", self.start_edit)

        self.end_edit = _datetime_edit(initial["end_time"])
        form.addRow("End:", self.end_edit)

        self.overlap_check = QCheckBox("Allow overlap with other operations")
        self.overlap_check.setChecked(initial["allow_overlap"])
        form.addRow("", self.overlap_check)

        layout.addLayout(form)
        layout.addWidget(_ok_cancel(self, self._validate_and_accept))

    def _validate_and_accept(self):
        if self.equipment_combo.currentData() is None:
            QMessageBox.warning(self, "Invalid Operation", "Select an equipment row.")
            return
        if self.end_edit.dateTime() < self.start_edit.dateTime():
            QMessageBox.warning(self, "Invalid Operation", "End must not be before start.")
            return
        self.accept()

    def get_result(self) -> dict[str, Any]:
        """Fields of the operation; includes the id when editing."""
        result = {
            "equipment_id": self.equipment_combo.currentData(),
            "batch_id": self.batch_combo.currentData(),
            "type": self.type_combo.currentText().strip() or OPERATION_TYPES[0],
            "description": self.description_edit.text().strip(),
            "start_time": self.start_edit.dateTime().toPython(),
            "end_time": self.end_edit.dateTime().toPython(),
            "allow_overlap": self.overlap_check.isChecked(),
        }
        if self.operation is not None:
            result["id"] = self.operation.id
        return result


class EquipmentDialog(QDialog):
    """Dialog for adding or editing an equipment row."""

    def __init__(self, equipment: Optional[Equipment] = None, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.equipment = equipment

        self.setWindowTitle("Edit Equipment" if equipment else "New Equipment")
        self.setMinimumWidth(360)

        layout = QVBoxLayout(self)
        form = QFormLayout()

        self.tag_edit = QLineEdit(equipment.tag if equipment else "")
        self.tag_edit.setPlaceholderText("e.g. V-3300A")
        form.addRow("Tag:", self.tag_edit)

        self.description_edit = QLineEdit(equipment.description if equipment else "")
        form.addRow("Description:", self.description_edit)

        layout.addLayout(form)
        layout.addWidget(_ok_cancel(self, self._validate_and_accept))

    def _validate_and_accept(self):
        if not self.tag_edit.text().strip() or not self.description_edit.text().strip():
            QMessageBox.warning(self, "Invalid Equipment", "Tag and description are required.")
            return
        self.accept()

    def get_result(self) -> dict[str, Any]:
        tag = self.tag_edit.text().strip()
        description = self.description_edit.text().strip()
        result = {
            "tag": tag,
            "description": description,
        }
        if self.equipment is not None:
            result["id"] = self.equipment.id
        return result


class BatchDialog(QDialog):
    """Dialog for creating or renaming a batch."""

    def __init__(self, batch: Optional[Batch] = None, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.batch = batch

        self.setWindowTitle("Rename Batch" if batch else "New Batch")

        layout = QVBoxLayout(self)
        form = QFormLayout()

        self.number_edit = QLineEdit((batch.batch_number or "") if batch else "")
        self.number_edit.setPlaceholderText("e.g. 25-HTS-32")
        form.addRow("Batch Number:", self.number_edit)

        layout.addLayout(form)
        layout.addWidget(_ok_cancel(self, self._validate_and_accept))

    def _validate_and_accept(self):
        if not self.number_edit.text().strip():
            QMessageBox.warning(self, "Invalid Batch", "A batch number is required.")
            return
        self.accept()

    def get_result(self) -> dict[str, Any]:
        result = {"batch_number": self.number_edit.text().strip()}
        if self.batch is not None:
            result["id"] = self.batch.id
        return result


class BatchManagementDialog(QDialog):
    """Table of batches with create, rename and delete actions."""

    def __init__(self, board: Board, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.board = board

        self.setWindowTitle("Batch Management")
        self.setMinimumSize(560, 360)

        self._setup_ui()
        self._populate()

    def _setup_ui(self):
        layout = QVBoxLayout(self)

        buttons = QHBoxLayout()
        new_btn = QPushButton("New Batch...")
        new_btn.clicked.connect(self._new_batch)
        buttons.addWidget(new_btn)

        self.rename_btn = QPushButton("Rename...")
        self.rename_btn.clicked.connect(self._rename_batch)
        buttons.addWidget(self.rename_btn)

        self.delete_btn = QPushButton("Delete")
        self.delete_btn.clicked.connect(self._delete_batch)
        buttons.addWidget(self.delete_btn)

        buttons.addStretch()
        layout.addLayout(buttons)

        self.table = QTableWidget()
        self.table.setColumnCount(4)
        self.table.setHorizontalHeaderLabels(["Batch", "Color", "Created", "Modified"])
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.setSelectionBehavior(QTableWidget.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QTableWidget.SelectionMode.SingleSelection)
        self.table.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        layout.addWidget(self.table)

        hint = QLabel("Renaming a batch does not change operations that already use it.")
        hint.setStyleSheet("color: #888;")
        layout.addWidget(hint)

        button_box = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        button_box.rejected.connect(self.reject)
        layout.addWidget(button_box)

    def _populate(self):
        batches = self.board.model.batches
        self.table.setRowCount(len(batches))

        for i, batch in enumerate(batches):
            key_item = QTableWidgetItem(batch.key)
            key_item.setData(Qt.ItemDataRole.UserRole, batch.id)
            self.table.setItem(i, 0, key_item)

            color = batch_color(batch.key)
            color_item = QTableWidgetItem(color)
            color_item.setBackground(QColor(color))
            self.table.setItem(i, 1, color_item)

            for col, value in ((2, batch.created_on), (3, batch.modified_on)):
                text = value.strftime("%Y-%m-%d") if value else ""
                self.table.setItem(i, col, QTableWidgetItem(text))

        self.table.resizeColumnsToContents()

    def _current_batch(self) -> Optional[Batch]:
        row = self.table.currentRow()
        if row < 0:
            return None
        batch_id = self.table.item(row, 0).data(Qt.ItemDataRole.UserRole)
        return next((b for b in self.board.model.batches if b.id == batch_id), None)

    def _save(self, dialog: BatchDialog):
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        try:
            self.board.save_batch(dialog.get_result())
        except (TimelineError, ValueError) as e:
            QMessageBox.warning(self, "Batch Not Saved", str(e))
            return
        self._populate()

    def _new_batch(self):
        self._save(BatchDialog(parent=self))

    def _rename_batch(self):
        batch = self._current_batch()
        if batch is not None:
            self._save(BatchDialog(batch, parent=self))

    def _delete_batch(self):
        batch = self._current_batch()
        if batch is None:
            return
        try:
            self.board.delete_batch(batch.id)
        except TimelineError as e:
            QMessageBox.warning(self, "Batch Not Deleted", str(e))


class DuplicateDialog(QDialog):
    """Dialog for duplicating the selected operations into a batch."""

    def __init__(
        self,
        count: int,
        batches: Sequence[Batch],
        offset_hours: float = 24.0,
        parent: Optional[QWidget] = None
    ):
        super().__init__(parent)
        self.setWindowTitle("Duplicate Operations")

        layout = QVBoxLayout(self)

        info = QLabel(
            f"Duplicate {count} operation(s), shifted by {offset_hours:g} hours."
        )
        info.setWordWrap(True)
        layout.addWidget(info)

        form = QFormLayout()
        self.batch_combo = _batch_combo(batches, None)
        self.batch_combo.insertItem(0, "(Keep original batch)", _KEEP)
        self.batch_combo.setCurrentIndex(0)
        form.addRow("Batch for duplicates:", self.batch_combo)
        layout.addLayout(form)

        layout.addWidget(_ok_cancel(self, self.accept))

    def get_result(self) -> Any:
        """KEEP_BATCH, None for "no batch", or a batch key."""
        data = self.batch_combo.currentData()
        return KEEP_BATCH if data == _KEEP else data

"""
App module for the Operations Timeline application.
Contains Qt UI components and main window.
"""

from .main_window import MainWindow
from .dialogs import (
    BatchDialog,
    BatchManagementDialog,
    DuplicateDialog,
    EquipmentDialog,
    OperationDialog,
)

__all__ = [
    "MainWindow",
    "BatchDialog",
    "BatchManagementDialog",
    "DuplicateDialog",
    "EquipmentDialog",
    "OperationDialog",
]

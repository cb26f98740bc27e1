"""
Tests for main window key bindings.
"""
from PySide6.QtCore import Qt
from PySide6.QtGui import QKeySequence

from ops_timeline.app.main_window import DELETE_KEYS


class TestShortcuts:
    """Tests for shortcut tables."""

    def test_delete_keys(self):
        """Both Delete and Backspace delete the selection."""
        assert QKeySequence.StandardKey.Delete in DELETE_KEYS
        assert Qt.Key.Key_Backspace in DELETE_KEYS

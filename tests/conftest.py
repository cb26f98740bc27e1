"""
Shared pytest fixtures.
"""
import pytest
from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One Qt application for the whole session (timers and signals need it)."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app

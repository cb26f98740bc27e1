"""
Chart module for the Operations Timeline application.
Contains the pyqtgraph timeline with drag, resize and row scrolling.
"""

from .timeline_widget import TimelineWidget, batch_color

__all__ = ["TimelineWidget", "batch_color"]

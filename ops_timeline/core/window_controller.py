"""
Virtual row windowing: which slice of the (filtered) equipment rows is shown.
"""
from __future__ import annotations

import math
from typing import Optional, Sequence, TypeVar

from PySide6.QtCore import QObject, Signal

T = TypeVar("T")

DEFAULT_ROW_HEIGHT = 40
DEFAULT_HEADER_HEIGHT = 50
DEFAULT_WHEEL_STEP = 30

# Leftover space larger than this fraction of a row still gets one more row
PARTIAL_ROW_THRESHOLD = 0.7


def compute_rows_per_page(
    viewport_height: float,
    header_height: float = DEFAULT_HEADER_HEIGHT,
    row_height: float = DEFAULT_ROW_HEIGHT
) -> int:
    """
    Number of rows that fit the viewport below the header.

    A partially visible row counts when more than 70% of it fits. Never
    less than one row.
    """
    if row_height <= 0:
        raise ValueError("row_height must be positive")
    available = max(0.0, viewport_height - header_height)
    rows = math.floor(available / row_height)
    remainder = available - rows * row_height
    if remainder > PARTIAL_ROW_THRESHOLD * row_height:
        rows += 1
    return max(1, rows)


class WindowController(QObject):
    """
    Scroll offset into an ordered row list, clamped to the rows that exist.

    Wheel deltas accumulate and move one row per wheel step; pointer drags
    move by whole rows relative to the offset at drag start.
    """

    offset_changed = Signal(int)
    rows_per_page_changed = Signal(int)

    def __init__(
        self,
        row_height: int = DEFAULT_ROW_HEIGHT,
        header_height: int = DEFAULT_HEADER_HEIGHT,
        wheel_step: int = DEFAULT_WHEEL_STEP,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        if row_height <= 0 or wheel_step <= 0:
            raise ValueError("row_height and wheel_step must be positive")
        self.row_height = row_height
        self.header_height = header_height
        self.wheel_step = wheel_step

        self._offset = 0
        self._total_rows = 0
        self._rows_per_page = 1
        self._wheel_accumulator = 0.0

        # Pointer drag state
        self._drag_start_y: Optional[float] = None
        self._drag_start_offset = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def total_rows(self) -> int:
        return self._total_rows

    @property
    def rows_per_page(self) -> int:
        return self._rows_per_page

    @property
    def max_offset(self) -> int:
        return max(0, self._total_rows - self._rows_per_page)

    @property
    def is_dragging(self) -> bool:
        return self._drag_start_y is not None

    def set_offset(self, offset: int) -> int:
        """Set the offset, clamped to [0, max_offset]. Returns the applied value."""
        clamped = max(0, min(int(offset), self.max_offset))
        if clamped != self._offset:
            self._offset = clamped
            self.offset_changed.emit(clamped)
        return self._offset

    def scroll_by(self, rows: int) -> int:
        return self.set_offset(self._offset + rows)

    def set_total_rows(self, total: int) -> None:
        """Update the row count and re-clamp the offset."""
        self._total_rows = max(0, int(total))
        self.set_offset(self._offset)

    def set_rows_per_page(self, rows: int) -> None:
        rows = max(1, int(rows))
        if rows != self._rows_per_page:
            self._rows_per_page = rows
            self.rows_per_page_changed.emit(rows)
        self.set_offset(self._offset)

    def set_viewport_height(self, height: float) -> int:
        """Recompute rows per page for a new viewport height."""
        self.set_rows_per_page(
            compute_rows_per_page(height, self.header_height, self.row_height)
        )
        return self._rows_per_page

    def window(self, rows: Sequence[T]) -> list[T]:
        """The visible slice of rows. Also syncs the row count."""
        self.set_total_rows(len(rows))
        return list(rows[self._offset:self._offset + self._rows_per_page])

    # =========================================================================
    # Input
    # =========================================================================

    def wheel(self, delta_y: float) -> int:
        """
        Feed a wheel delta in pixels (positive scrolls down).

        Every full wheel step crossed moves the offset by one row.

        Returns:
            Number of rows the offset was asked to move.
        """
        self._wheel_accumulator += delta_y
        steps = 0
        while self._wheel_accumulator >= self.wheel_step:
            self._wheel_accumulator -= self.wheel_step
            steps += 1
        while self._wheel_accumulator <= -self.wheel_step:
            self._wheel_accumulator += self.wheel_step
            steps -= 1
        if steps:
            self.scroll_by(steps)
        return steps

    def begin_drag(self, y: float) -> None:
        """Start a pointer drag on empty canvas at vertical pixel y."""
        self._drag_start_y = y
        self._drag_start_offset = self._offset

    def drag_to(self, y: float) -> int:
        """
        Continue a pointer drag.

        Dragging down by one row height reveals the previous row. The offset
        is always computed from the drag start, not accumulated per frame.
        """
        if self._drag_start_y is None:
            return self._offset
        rows = int((y - self._drag_start_y) / self.row_height)
        return self.set_offset(self._drag_start_offset - rows)

    def end_drag(self) -> None:
        self._drag_start_y = None

"""
Timeline chart: equipment rows on a date axis with operation bars colored by batch.

The chart only draws the board layout and translates mouse gestures into
board calls; all state lives in the Board.
"""
from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import pyqtgraph as pg
from PySide6.QtCore import QPoint, Qt, Signal, Slot
from PySide6.QtWidgets import QHBoxLayout, QLabel, QVBoxLayout, QWidget

from ..core import Board, BoardLayout, ResizeEdge, TimelineItem


# Batch color palette
COLORS = [
    "#1f77b4",  # Blue
    "#ff7f0e",  # Orange
    "#2ca02c",  # Green
    "#d62728",  # Red
    "#9467bd",  # Purple
    "#8c564b",  # Brown
    "#e377c2",  # Pink
    "#bcbd22",  # Yellow-green
    "#17becf",  # Cyan
]

NO_BATCH_COLOR = "#7f7f7f"
SELECTED_COLOR = "#ffd54f"
NOW_COLOR = "#ff5252"

# Bar height as a fraction of the row
BAR_HEIGHT = 0.7

# Pointer distance (pixels) from a bar edge that grabs the resize handle
HANDLE_PX = 6


def batch_color(key: Optional[str]) -> str:
    """Stable palette color for a batch key."""
    if not key:
        return NO_BATCH_COLOR
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()
    return COLORS[int(digest[:8], 16) % len(COLORS)]


def snap_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


@dataclass
class DragGesture:
    """Drag in progress."""
    kind: str                      # "move", "resize" or "scroll"
    item_id: str = ""
    edge: Optional[ResizeEdge] = None
    origin_start: Optional[datetime] = None
    origin_end: Optional[datetime] = None
    origin_x: float = 0.0
    last_time: Optional[datetime] = None
    group: Optional[str] = None   # last row the pointer was over

    def follow_group(self, group: Optional[str]) -> Optional[str]:
        """Track the row under the pointer; off-row positions keep the last row."""
        if group is not None:
            self.group = group
        return self.group


class TimelineViewBox(pg.ViewBox):
    """ViewBox that hands mouse gestures to the chart instead of panning/zooming."""

    def __init__(self, chart: TimelineWidget):
        super().__init__(invertY=True, enableMenu=False)
        self._chart = chart
        self.setMouseEnabled(x=False, y=False)

    def mouseClickEvent(self, ev):
        self._chart.handle_click(ev)

    def mouseDragEvent(self, ev, axis=None):
        if ev.button() != Qt.MouseButton.LeftButton:
            ev.ignore()
            return
        self._chart.handle_drag(ev)

    def wheelEvent(self, ev, axis=None):
        self._chart.handle_wheel(ev)


class TimelineWidget(QWidget):
    """
    Chart of the board's current row window.

    Signals carry requests the chart cannot fulfil itself (dialogs, menus).
    """

    create_requested = Signal(str, object)         # equipment_id, start datetime
    edit_requested = Signal(str)                   # operation_id
    context_menu_requested = Signal(str, QPoint)   # operation_id, global position

    def __init__(self, board: Board, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self._board = board
        self._layout = BoardLayout()
        self._gesture: Optional[DragGesture] = None
        self._graphics: list = []

        self._setup_ui()

        board.layout_changed.connect(self.refresh)
        board.selection_changed.connect(self.refresh)
        board.edit_mode_changed.connect(self._update_status)

    def _setup_ui(self):
        """Set up the chart UI."""
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        # Toolbar
        toolbar = QHBoxLayout()
        toolbar.setContentsMargins(5, 2, 5, 2)

        self.title_label = QLabel("Operations")
        self.title_label.setStyleSheet("font-weight: bold;")
        toolbar.addWidget(self.title_label)

        toolbar.addStretch()

        self.rows_label = QLabel("")
        toolbar.addWidget(self.rows_label)

        self.mode_label = QLabel("")
        self.mode_label.setStyleSheet("padding-left: 12px;")
        toolbar.addWidget(self.mode_label)

        layout.addLayout(toolbar)

        pg.setConfigOptions(antialias=True, useOpenGL=False)

        self.view_box = TimelineViewBox(self)
        self.plot_widget = pg.PlotWidget(
            viewBox=self.view_box,
            axisItems={"bottom": pg.DateAxisItem(orientation="bottom")},
        )
        self.plot_widget.setBackground("#1e1e1e")
        self.plot_widget.showGrid(x=True, y=False, alpha=0.3)

        self.plot_item = self.plot_widget.getPlotItem()
        self.plot_item.hideButtons()
        self.plot_item.getAxis("left").setWidth(110)

        self.now_line = pg.InfiniteLine(
            angle=90, movable=False, pen=pg.mkPen(NOW_COLOR, width=1, style=Qt.PenStyle.DashLine)
        )
        self.plot_item.addItem(self.now_line, ignoreBounds=True)

        layout.addWidget(self.plot_widget)

    # =========================================================================
    # Drawing
    # =========================================================================

    @Slot()
    def refresh(self):
        """Redraw rows and bars from the board layout."""
        self._layout = self._board.layout()
        start, end = self._board.visible_range

        for graphic in self._graphics:
            self.plot_item.removeItem(graphic)
        self._graphics.clear()

        groups = self._layout.groups
        rows = {group.id: i for i, group in enumerate(groups)}
        self.plot_item.getAxis("left").setTicks([
            [(i + 0.5, "" if g.placeholder else g.title) for i, g in enumerate(groups)],
            [],
        ])

        bars = [item for item in self._layout.items if not item.placeholder]
        if bars:
            self._draw_bars(bars, rows, start)
        else:
            label = pg.TextItem("No operations in this range", color="#aaa", anchor=(0.5, 0.5))
            label.setPos(start.timestamp() + (end - start).total_seconds() / 2, 0.5)
            self.plot_item.addItem(label)
            self._graphics.append(label)

        self.now_line.setPos(datetime.now().timestamp())
        self.plot_item.setXRange(start.timestamp(), end.timestamp(), padding=0)
        self.plot_item.setYRange(0, max(len(groups), self._board.window.rows_per_page), padding=0)
        self._update_status()

    def _draw_bars(self, bars: list[TimelineItem], rows: dict[str, int], start: datetime):
        selection = set(self._board.selection)

        x0 = np.array([item.start.timestamp() for item in bars])
        x1 = np.array([item.end.timestamp() for item in bars])
        y = np.array([rows[item.group] + 0.5 for item in bars])

        brushes = [pg.mkBrush(batch_color(item.batch_id)) for item in bars]
        pens = [
            pg.mkPen(SELECTED_COLOR, width=2) if item.id in selection else pg.mkPen("#222", width=1)
            for item in bars
        ]

        graph = pg.BarGraphItem(x0=x0, x1=x1, y=y, height=BAR_HEIGHT, brushes=brushes, pens=pens)
        self.plot_item.addItem(graph)
        self._graphics.append(graph)

        # Labels start at the left edge of the view for bars that begin before it
        left = start.timestamp()
        for item, bx, by in zip(bars, np.maximum(x0, left), y):
            if not item.title:
                continue
            text = pg.TextItem(item.title, color="w", anchor=(0, 0.5))
            text.setPos(float(bx), float(by))
            self.plot_item.addItem(text)
            self._graphics.append(text)

    @Slot()
    def _update_status(self):
        layout = self._layout
        shown = len([g for g in layout.groups if not g.placeholder])
        if shown:
            self.rows_label.setText(
                f"Rows {layout.offset + 1}-{layout.offset + shown} of {layout.total_rows}"
            )
        else:
            self.rows_label.setText("No rows")
        self.mode_label.setText("Edit mode" if self._board.edit_mode else "View mode")

    def resizeEvent(self, event):
        """Recompute how many rows fit."""
        super().resizeEvent(event)
        self._board.window.set_viewport_height(self.plot_widget.height())

    # =========================================================================
    # Hit testing
    # =========================================================================

    def _group_at(self, y: float) -> Optional[str]:
        row = math.floor(y)
        groups = self._layout.groups
        if 0 <= row < len(groups) and not groups[row].placeholder:
            return groups[row].id
        return None

    def _hit(self, scene_pos) -> tuple[Optional[TimelineItem], Optional[ResizeEdge], Optional[str], float]:
        """Item, grabbed edge, row group and time (epoch seconds) under a scene position."""
        point = self.view_box.mapSceneToView(scene_pos)
        x, y = point.x(), point.y()
        group = self._group_at(y)
        if group is None:
            return None, None, None, x

        tolerance = HANDLE_PX * self.view_box.viewPixelSize()[0]
        for item in self._layout.items:
            if item.placeholder or item.group != group:
                continue
            left, right = item.start.timestamp(), item.end.timestamp()
            if not left - tolerance <= x <= right + tolerance:
                continue
            if abs(x - left) <= tolerance:
                return item, ResizeEdge.LEFT, group, x
            if abs(x - right) <= tolerance:
                return item, ResizeEdge.RIGHT, group, x
            return item, None, group, x
        return None, None, group, x

    # =========================================================================
    # Mouse gestures
    # =========================================================================

    def handle_click(self, ev):
        """Select, open the context menu, or request a create/edit dialog."""
        item, _edge, group, x = self._hit(ev.scenePos())

        if ev.button() == Qt.MouseButton.RightButton:
            if item is not None:
                ev.accept()
                if item.id not in self._board.selection:
                    self._board.select([item.id])
                self.context_menu_requested.emit(item.id, ev.screenPos().toPoint())
            return

        if ev.button() != Qt.MouseButton.LeftButton:
            return
        ev.accept()

        if ev.double():
            if item is not None:
                self.edit_requested.emit(item.id)
            elif group is not None and self._board.edit_mode:
                self.create_requested.emit(group, snap_to_hour(datetime.fromtimestamp(x)))
            return

        if item is None:
            self._board.clear_selection()
        elif ev.modifiers() & Qt.KeyboardModifier.ControlModifier:
            self._board.toggle_selection(item.id)
        else:
            self._board.select([item.id])

    def handle_drag(self, ev):
        """Move bars, resize one bar edge, or scroll rows on empty canvas."""
        ev.accept()
        if ev.isStart():
            self._gesture = self._start_gesture(ev)

        gesture = self._gesture
        if gesture is None:
            return

        pos = ev.scenePos()
        point = self.view_box.mapSceneToView(pos)

        if gesture.kind == "scroll":
            self._board.window.drag_to(pos.y())
        elif gesture.kind == "move":
            new_start = gesture.origin_start + timedelta(seconds=point.x() - gesture.origin_x)
            self._board.move_item(
                gesture.item_id, new_start, gesture.follow_group(self._group_at(point.y()))
            )
        elif gesture.kind == "resize":
            gesture.last_time = self._preview_resize(gesture, datetime.fromtimestamp(point.x()))

        if ev.isFinish():
            if gesture.kind == "scroll":
                self._board.window.end_drag()
            elif gesture.kind == "resize" and gesture.last_time is not None:
                self._board.resize_item(gesture.item_id, gesture.last_time, gesture.edge)
            self._gesture = None

    def _start_gesture(self, ev) -> DragGesture:
        down = ev.buttonDownScenePos()
        item, edge, _group, x = self._hit(down)

        # Bars are fixed in view mode; dragging anywhere scrolls
        if item is None or not self._board.edit_mode:
            self._board.window.begin_drag(down.y())
            return DragGesture("scroll")

        if edge is not None and len(self._board.selection) <= 1:
            self._board.select([item.id])
            return DragGesture(
                "resize", item.id, edge,
                origin_start=item.start, origin_end=item.end,
            )

        if item.id not in self._board.selection:
            self._board.select([item.id])
        return DragGesture(
            "move", item.id, origin_start=item.start, origin_x=x, group=item.group
        )

    def _preview_resize(self, gesture: DragGesture, time: datetime) -> datetime:
        """Show the dragged edge; the edge never crosses the opposite one."""
        if gesture.edge is ResizeEdge.LEFT:
            time = min(time, gesture.origin_end)
            self._board.model.move_item(gesture.item_id, time, gesture.origin_end)
        else:
            time = max(time, gesture.origin_start)
            self._board.model.move_item(gesture.item_id, gesture.origin_start, time)
        return time

    def handle_wheel(self, ev):
        """Scroll rows; a wheel notch (120 units) is one 30 px step."""
        ev.accept()
        self._board.window.wheel(-ev.delta() / 4)

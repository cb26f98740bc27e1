"""
Composition of the rows and items handed to the chart.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .models import PLACEHOLDER_ID, Equipment, TimelineGroup, TimelineItem
from .window_controller import WindowController


@dataclass
class BoardLayout:
    """What the chart renders for the current window."""
    groups: list[TimelineGroup] = field(default_factory=list)
    items: list[TimelineItem] = field(default_factory=list)
    total_rows: int = 0   # rows after the view-mode filter, before windowing
    offset: int = 0

    @property
    def has_placeholder(self) -> bool:
        return any(item.placeholder for item in self.items)


def filter_rows(
    equipment: Sequence[Equipment],
    items: Sequence[TimelineItem],
    start: datetime,
    end: datetime,
    edit_mode: bool
) -> list[Equipment]:
    """
    Rows eligible for display.

    In edit mode every row is shown; in view mode rows without any item in
    [start, end] are hidden.
    """
    if edit_mode:
        return list(equipment)
    active = {item.group for item in items if item.intersects(start, end)}
    return [eq for eq in equipment if eq.id in active]


def placeholder_group() -> TimelineGroup:
    return TimelineGroup(id=PLACEHOLDER_ID, title="", placeholder=True)


def placeholder_item(group_id: str, start: datetime, end: datetime) -> TimelineItem:
    return TimelineItem(
        id=PLACEHOLDER_ID, group=group_id, start=start, end=end, placeholder=True
    )


def compose_layout(
    equipment: Sequence[Equipment],
    items: Sequence[TimelineItem],
    start: datetime,
    end: datetime,
    edit_mode: bool,
    window: WindowController
) -> BoardLayout:
    """
    Filter rows, apply the row window and pick the visible items.

    When the window holds no visible item, exactly one placeholder item
    spanning [start, end] is added (with a placeholder row if there are no
    rows) so the chart always has something to draw.
    """
    rows = filter_rows(equipment, items, start, end, edit_mode)
    page = window.window(rows)
    page_ids = {eq.id for eq in page}

    groups = [TimelineGroup(id=eq.id, title=eq.tag) for eq in page]
    visible = [
        item for item in items
        if item.group in page_ids and item.intersects(start, end)
    ]

    if not visible:
        if not groups:
            groups.append(placeholder_group())
        visible.append(placeholder_item(groups[0].id, start, end))

    return BoardLayout(groups=groups, items=visible, total_rows=len(rows), offset=window.offset)

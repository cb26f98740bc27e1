"""
Tests for row filtering, windowing and placeholder composition.
"""
from datetime import datetime, timedelta

from ops_timeline.core import Equipment, TimelineItem, WindowController, compose_layout
from ops_timeline.core.layout import filter_rows
from ops_timeline.core.models import PLACEHOLDER_ID

START = datetime(2025, 9, 1)
END = datetime(2025, 9, 7)


def item(item_id, group, day):
    start = START + timedelta(days=day)
    return TimelineItem(id=item_id, group=group, start=start, end=start + timedelta(hours=4))


class TestLayout:
    """Tests for compose_layout."""

    def setup_method(self):
        self.equipment = [
            Equipment(id=f"e{i}", tag=f"V-{i}", order=i) for i in range(5)
        ]
        self.items = [
            item("in-range", "e1", 2),
            item("out-of-range", "e3", 30),
        ]
        self.window = WindowController()
        self.window.set_rows_per_page(3)

    def test_edit_mode_shows_every_row(self):
        """Edit mode shows every row, windowed to the page."""
        layout = compose_layout(self.equipment, self.items, START, END, True, self.window)

        assert [g.id for g in layout.groups] == ["e0", "e1", "e2"]
        assert layout.total_rows == 5
        assert [i.id for i in layout.items] == ["in-range"]
        assert not layout.has_placeholder

    def test_view_mode_hides_idle_rows(self):
        """View mode keeps only rows with work in range."""
        layout = compose_layout(self.equipment, self.items, START, END, False, self.window)

        assert [g.id for g in layout.groups] == ["e1"]
        assert layout.total_rows == 1

    def test_filter_rows(self):
        """Row filtering follows the mode."""
        assert len(filter_rows(self.equipment, self.items, START, END, True)) == 5
        assert [e.id for e in filter_rows(self.equipment, self.items, START, END, False)] == ["e1"]

    def test_placeholder_when_window_is_empty(self):
        """A page with no items gets a placeholder item."""
        self.window.set_total_rows(5)
        self.window.set_offset(2)

        layout = compose_layout(self.equipment, self.items, START, END, True, self.window)

        assert [g.id for g in layout.groups] == ["e2", "e3", "e4"]
        assert layout.offset == 2
        assert len(layout.items) == 1
        placeholder = layout.items[0]
        assert placeholder.placeholder
        assert placeholder.group == "e2"
        assert (placeholder.start, placeholder.end) == (START, END)

    def test_placeholder_row_without_equipment(self):
        """No equipment at all gives a single placeholder row."""
        layout = compose_layout([], [], START, END, True, self.window)

        assert len(layout.groups) == 1
        assert layout.groups[0].placeholder
        assert layout.items[0].group == PLACEHOLDER_ID

    def test_view_mode_with_nothing_in_range(self):
        """View mode with no work in range has no rows."""
        layout = compose_layout(
            self.equipment, self.items, END + timedelta(days=60), END + timedelta(days=61),
            False, self.window,
        )

        assert layout.total_rows == 0
        assert layout.has_placeholder
        assert layout.groups[0].placeholder

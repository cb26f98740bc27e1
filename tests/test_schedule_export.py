"""
Tests for the tabular schedule export.
"""
from datetime import datetime

from ops_timeline.core import Equipment, Operation, schedule_frame
from ops_timeline.core.schedule_export import SCHEDULE_COLUMNS


class TestScheduleFrame:
    """Tests for schedule_frame."""

    def setup_method(self):
        self.equipment = [
            Equipment(id="e2", tag="V-2", description="Second", order=1),
            Equipment(id="e1", tag="V-1", description="First", order=0),
        ]

    def test_empty(self):
        """No operations gives an empty frame with the schedule columns."""
        df = schedule_frame([], self.equipment)

        assert df.empty
        assert list(df.columns) == SCHEDULE_COLUMNS

    def test_sorted_by_row_order_then_start(self):
        """Rows sort by equipment order, then start; unknown rows go last."""
        ops = [
            Operation(id="3", equipment_id="ghost",
                      start_time=datetime(2025, 1, 1), end_time=datetime(2025, 1, 1, 1)),
            Operation(id="2", equipment_id="e2",
                      start_time=datetime(2025, 1, 1), end_time=datetime(2025, 1, 1, 6)),
            Operation(id="1", equipment_id="e1", batch_id="B-1",
                      start_time=datetime(2025, 1, 2), end_time=datetime(2025, 1, 2, 3)),
            Operation(id="0", equipment_id="e1",
                      start_time=datetime(2025, 1, 1), end_time=datetime(2025, 1, 1, 1, 30)),
        ]

        df = schedule_frame(ops, self.equipment)

        assert list(df["Operation ID"]) == ["0", "1", "2", "3"]
        assert list(df["Equipment"]) == ["V-1", "V-1", "V-2", "ghost"]
        assert list(df["Duration [h]"]) == [1.5, 3.0, 6.0, 1.0]
        assert df.loc[1, "Batch"] == "B-1"
        assert df.loc[3, "Equipment Description"] == ""

"""
Tests for the optimistic sync engine (debounced drags, immediate discrete actions).
"""
from dataclasses import replace
from datetime import datetime, timedelta

import pytest
from PySide6.QtCore import QEventLoop, QTimer

from ops_timeline.core import (
    KEEP_BATCH,
    HistoryManager,
    LocalDataProvider,
    PersistenceError,
    RecordNotFoundError,
    ResizeEdge,
    StoreHandle,
    SyncEngine,
    TimelineModel,
)

DAY = datetime(2025, 9, 1)


def run_event_loop(ms: int) -> None:
    """Process Qt events (timers included) for ms milliseconds."""
    loop = QEventLoop()
    QTimer.singleShot(ms, loop.quit)
    loop.exec()


def at(hour: int) -> datetime:
    return DAY + timedelta(hours=hour)


class CountingProvider(LocalDataProvider):
    """Provider that counts operation saves and can be made to fail."""

    def __init__(self, handle):
        super().__init__(handle)
        self.saves = []
        self.fail_saves = False

    def save_operation(self, partial):
        if self.fail_saves:
            raise PersistenceError("write failed")
        op = super().save_operation(partial)
        self.saves.append(op.id)
        return op


class EngineFixture:
    """Two equipment rows, two operations, engine wired like the board does."""

    def setup_method(self):
        self.provider = CountingProvider(StoreHandle(seed_demo=False))
        self.row1 = self.provider.save_equipment({"tag": "V-1"})
        self.row2 = self.provider.save_equipment({"tag": "V-2"})
        self.row3 = self.provider.save_equipment({"tag": "V-3"})
        self.a = self.provider.save_operation({
            "equipment_id": self.row1.id, "start_time": at(10), "end_time": at(12),
            "batch_id": "25-HTS-30",
        })
        self.b = self.provider.save_operation({
            "equipment_id": self.row1.id, "start_time": at(11), "end_time": at(13),
        })
        self.provider.saves.clear()

        self.model = TimelineModel()
        self.model.set_reference_data(self.provider.get_equipment(), self.provider.get_batches())
        self.model.set_operations(self.provider.get_operations(datetime.min, datetime.max))
        self.history = HistoryManager(self.model, self.provider)
        self.engine = SyncEngine(self.model, self.provider, self.history)

    def stored(self, op_id):
        ops = {op.id: op for op in self.provider.get_operations(datetime.min, datetime.max)}
        return ops.get(op_id)


class TestMove(EngineFixture):
    """Tests for debounced drag moves."""

    def test_multi_select_moves_by_same_delta(self):
        """Dragging A +4h moves the whole selection +4h; the store waits for the debounce."""
        selection = [self.a.id, self.b.id]

        moved = self.engine.move(self.a.id, at(14), selection=selection)

        assert set(moved) == {self.a.id, self.b.id}
        b_item = self.model.get_item(self.b.id)
        assert (b_item.start, b_item.end) == (at(15), at(17))
        assert self.stored(self.b.id).start_time == at(11)
        assert self.engine.timer_active
        assert self.engine.has_pending

        self.engine.flush()

        assert self.stored(self.b.id).start_time == at(15)
        assert self.model.get_operation(self.b.id).end_time == at(17)
        assert not self.engine.has_pending

    def test_one_save_per_record_per_gesture(self):
        """Many frames in one drag save each record once."""
        selection = [self.a.id, self.b.id]
        for hour in (11, 12, 13, 14):
            self.engine.move(self.a.id, at(hour), selection=selection)

        self.engine.flush()

        assert sorted(self.provider.saves) == sorted([self.a.id, self.b.id])
        assert self.history.undo_depth == 1

    def test_frames_are_relative_to_gesture_start(self):
        """Each frame moves from the drag origin, not the last frame."""
        self.engine.move(self.b.id, at(20))
        self.engine.move(self.b.id, at(12))
        self.engine.flush()

        assert self.stored(self.b.id).start_time == at(12)
        assert self.stored(self.b.id).end_time == at(14)

    def test_unselected_item_moves_alone(self):
        """Dragging an unselected item leaves the selection alone."""
        self.engine.move(self.b.id, at(12), selection=[self.a.id])
        self.engine.flush()

        assert self.stored(self.a.id).start_time == at(10)
        assert self.stored(self.b.id).start_time == at(12)

    def test_row_delta_is_clamped(self):
        """Moving A (row 1) down two rows takes B (row 2) down too, clamped at the last row."""
        selection = [self.a.id, self.b.id]
        self.model.upsert_operation(
            replace(self.model.get_operation(self.b.id), equipment_id=self.row2.id)
        )

        self.engine.move(self.a.id, at(10), new_group=self.row3.id, selection=selection)
        self.engine.flush()

        assert self.model.get_operation(self.a.id).equipment_id == self.row3.id
        assert self.model.get_operation(self.b.id).equipment_id == self.row3.id

    def test_no_change_means_no_save(self):
        """A drag that ends where it started saves nothing."""
        self.engine.move(self.a.id, at(14))
        self.engine.move(self.a.id, at(10))
        self.engine.flush()

        assert self.provider.saves == []
        assert self.history.undo_depth == 0

    def test_new_gesture_commits_previous(self):
        """Starting a new drag commits the previous one."""
        self.engine.move(self.a.id, at(14))

        self.engine.move(self.b.id, at(15))

        assert self.stored(self.a.id).start_time == at(14)
        assert self.engine.pending_ids() == [self.b.id]

    def test_unknown_item_is_ignored(self):
        """Moving a missing id does nothing."""
        assert self.engine.move("missing", at(1)) == []
        assert not self.engine.timer_active

    def test_failed_save_reports_once_and_keeps_position(self):
        """A failed commit reports once; the chart keeps the new position."""
        failures = []
        self.engine.save_failed.connect(failures.append)
        self.provider.fail_saves = True

        self.engine.move(self.a.id, at(14), selection=[self.a.id, self.b.id])
        self.engine.flush()

        assert len(failures) == 1
        assert self.model.get_operation(self.a.id).start_time == at(14)
        assert self.stored(self.a.id).start_time == at(10)

    def test_debounce_interval(self):
        """The quiet period defaults to 300 ms."""
        assert self.engine.debounce_ms == 300

    def test_timer_commits_after_quiet_period(self):
        """The timer fires on its own, once, after frames stop arriving."""
        selection = [self.a.id, self.b.id]
        self.engine.move(self.a.id, at(13), selection=selection)

        run_event_loop(150)
        assert self.stored(self.b.id).start_time == at(11)

        # A new frame restarts the quiet period
        self.engine.move(self.a.id, at(14), selection=selection)
        run_event_loop(200)
        assert self.engine.has_pending
        assert self.provider.saves == []

        run_event_loop(400)

        assert not self.engine.has_pending
        assert not self.engine.timer_active
        assert (self.stored(self.b.id).start_time, self.stored(self.b.id).end_time) == (at(15), at(17))
        assert sorted(self.provider.saves) == sorted(selection)
        assert self.history.undo_depth == 1


class TestDiscreteActions(EngineFixture):
    """Tests for resize, duplicate, delete, create and edit."""

    def test_resize_right_edge_persists_immediately(self):
        """Resizing the end saves at once as one undo step."""
        assert self.engine.resize(self.a.id, at(15), ResizeEdge.RIGHT) is True

        assert self.stored(self.a.id).end_time == at(15)
        assert self.stored(self.a.id).start_time == at(10)
        assert self.history.undo_depth == 1

    def test_resize_left_edge(self):
        """Resizing the start moves only the start."""
        self.engine.resize(self.a.id, at(8), ResizeEdge.LEFT, selection=[self.a.id])

        assert self.stored(self.a.id).start_time == at(8)

    def test_resize_refused_for_multi_select(self):
        """Resize is refused while several items are selected."""
        result = self.engine.resize(
            self.a.id, at(15), ResizeEdge.RIGHT, selection=[self.a.id, self.b.id]
        )

        assert result is False
        assert self.provider.saves == []

    def test_duplicate_shifts_by_a_day_and_keeps_batch(self):
        """Copies start a day later and keep their batch."""
        created = self.engine.duplicate([self.a.id, self.b.id])

        assert len(created) == 2
        copies = [self.model.get_operation(i) for i in created]
        assert copies[0].start_time == at(34)
        assert copies[0].batch_id == "25-HTS-30"
        assert copies[1].batch_id is None
        assert self.history.undo_depth == 1

    def test_duplicate_with_batch_override(self):
        """A batch override and offset apply to every copy."""
        created = self.engine.duplicate(
            [self.a.id, self.b.id], batch_id="25-HTS-31", offset=timedelta(hours=2)
        )

        copies = [self.stored(i) for i in created]
        assert [c.batch_id for c in copies] == ["25-HTS-31", "25-HTS-31"]
        assert copies[1].start_time == at(13)

    def test_duplicate_clearing_batch(self):
        """A None batch clears it on the copy only."""
        created = self.engine.duplicate([self.a.id], batch_id=None)

        assert self.stored(created[0]).batch_id is None
        assert self.stored(self.a.id).batch_id == "25-HTS-30"

    def test_duplicate_default_keeps_batch(self):
        """KEEP_BATCH keeps the source batch."""
        created = self.engine.duplicate([self.a.id], batch_id=KEEP_BATCH)

        assert self.stored(created[0]).batch_id == "25-HTS-30"

    def test_duplicate_nothing(self):
        """Duplicating only missing ids records no step."""
        assert self.engine.duplicate(["missing"]) == []
        assert self.history.undo_depth == 0

    def test_delete(self):
        """Delete skips duplicates and missing ids."""
        count = self.engine.delete([self.a.id, self.a.id, "missing"])

        assert count == 1
        assert self.stored(self.a.id) is None
        assert self.model.get_operation(self.a.id) is None
        assert self.history.undo_depth == 1

    def test_create(self):
        """Create stores the operation and adds it to its row."""
        op = self.engine.create({"equipment_id": self.row2.id, "start_time": at(1), "end_time": at(3)})

        assert self.stored(op.id) is not None
        assert self.model.get_item(op.id).group == self.row2.id

    def test_create_with_id_rejected(self):
        """Create refuses a caller-supplied id."""
        with pytest.raises(ValueError):
            self.engine.create({"id": "x", "equipment_id": self.row2.id})

    def test_create_failure_reports(self):
        """A failed create reports and returns None."""
        failures = []
        self.engine.save_failed.connect(failures.append)
        self.provider.fail_saves = True

        assert self.engine.create({"equipment_id": self.row2.id}) is None
        assert failures == ["Failed to save the new operation"]

    def test_apply_edit(self):
        """Edits reach the model and the store."""
        edited = self.engine.apply_edit({"id": self.b.id, "description": "CIP"})

        assert edited.description == "CIP"
        assert self.stored(self.b.id).description == "CIP"

    def test_apply_edit_unknown_id(self):
        """Editing a missing id raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            self.engine.apply_edit({"id": "missing", "description": "x"})

    def test_apply_edit_unknown_field(self):
        """An invalid edit records no undo step."""
        with pytest.raises(ValueError):
            self.engine.apply_edit({"id": self.b.id, "colour": "red"})

        assert self.history.undo_depth == 0

    def test_discrete_action_flushes_pending_drag(self):
        """A discrete action commits a pending drag first."""
        self.engine.move(self.b.id, at(20))

        self.engine.delete([self.a.id])

        assert self.stored(self.b.id).start_time == at(20)
        assert not self.engine.has_pending

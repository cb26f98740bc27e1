"""
Core data models for the Operations Timeline application.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

# Ownership/audit defaults applied to records created locally
DEFAULT_OWNER_ID = "system"
DEFAULT_OWNER_NAME = "System"
DEFAULT_OWNER_TYPE = "systemuser"
DEFAULT_STATE_CODE = "0"

DEFAULT_OPERATION_TYPE = "Production"
OPERATION_TYPES = ["Production", "Cleaning", "Maintenance", "Setup"]

PLACEHOLDER_ID = "__placeholder__"


class ResizeEdge(Enum):
    """Edge of an item being resized."""
    LEFT = "left"    # start time
    RIGHT = "right"  # end time


@dataclass
class Equipment:
    """A schedulable equipment row."""
    id: str = ""
    tag: str = ""
    description: str = ""
    order: Optional[int] = None  # display sequence only
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None

    owner_id: str = DEFAULT_OWNER_ID
    owner_name: str = DEFAULT_OWNER_NAME
    owner_type: str = DEFAULT_OWNER_TYPE
    state_code: str = DEFAULT_STATE_CODE

    @property
    def tag_and_description(self) -> str:
        if self.description:
            return f"{self.tag} - {self.description}"
        return self.tag

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "tag": self.tag,
            "description": self.description,
            "order": self.order,
            "created_on": self.created_on,
            "modified_on": self.modified_on,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "owner_type": self.owner_type,
            "state_code": self.state_code,
        }


def batch_key(batch_number: Optional[str], batch_id: Optional[str]) -> str:
    """Canonical batch key: the batch number, falling back to the storage id."""
    if batch_number is not None:
        return str(batch_number)
    if batch_id is not None:
        return str(batch_id)
    return ""


@dataclass(eq=False)
class Batch:
    """
    A production batch.

    The batch number is the canonical key. The storage id exists for engine
    compatibility only and never takes part in equality.
    """
    id: str = ""
    batch_number: Optional[str] = None
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None

    owner_id: str = DEFAULT_OWNER_ID
    owner_name: str = DEFAULT_OWNER_NAME
    owner_type: str = DEFAULT_OWNER_TYPE
    state_code: str = DEFAULT_STATE_CODE

    @property
    def key(self) -> str:
        return batch_key(self.batch_number, self.id or None)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Batch):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "created_on": self.created_on,
            "modified_on": self.modified_on,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "owner_type": self.owner_type,
            "state_code": self.state_code,
        }


@dataclass
class Operation:
    """A scheduled operation on one equipment row."""
    id: str = ""
    equipment_id: str = ""
    batch_id: Optional[str] = None  # canonical batch key, None for "no batch"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    type: str = DEFAULT_OPERATION_TYPE
    description: str = ""
    allow_overlap: bool = False
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None
    state_code: str = DEFAULT_STATE_CODE
    status_code: str = DEFAULT_STATE_CODE

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True if this operation's interval intersects [start, end]."""
        if self.start_time is None or self.end_time is None:
            return False
        return self.start_time <= end and self.end_time >= start

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "batch_id": self.batch_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "type": self.type,
            "description": self.description,
            "allow_overlap": self.allow_overlap,
            "created_on": self.created_on,
            "modified_on": self.modified_on,
            "state_code": self.state_code,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class Snapshot:
    """Immutable deep copy of the full operation collection; one undo/redo step."""
    operations: tuple[Operation, ...] = ()
    description: str = ""

    @classmethod
    def capture(cls, operations: Iterable[Operation], description: str = "") -> Snapshot:
        return cls(tuple(copy.deepcopy(list(operations))), description)

    def restore(self) -> list[Operation]:
        """Independent copies of the captured operations."""
        return copy.deepcopy(list(self.operations))

    @property
    def ids(self) -> set[str]:
        return {op.id for op in self.operations}

    def __repr__(self) -> str:
        return f"Snapshot({self.description!r}, {len(self.operations)} operations)"


@dataclass
class TimelineGroup:
    """A row as rendered by the chart."""
    id: str
    title: str
    placeholder: bool = False


@dataclass
class TimelineItem:
    """A bar as rendered by the chart; derived from an Operation."""
    id: str
    group: str
    start: datetime
    end: datetime
    title: str = ""
    batch_id: Optional[str] = None
    placeholder: bool = False

    @classmethod
    def from_operation(cls, op: Operation) -> TimelineItem:
        return cls(
            id=op.id,
            group=op.equipment_id,
            start=op.start_time,
            end=op.end_time,
            title=op.batch_id or op.type,
            batch_id=op.batch_id,
        )

    def intersects(self, start: datetime, end: datetime) -> bool:
        return self.start <= end and self.end >= start


@dataclass
class Selection:
    """Currently selected item ids, in selection order."""
    ids: list[str] = field(default_factory=list)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)

    def set(self, ids: Iterable[str]) -> None:
        self.ids = list(dict.fromkeys(ids))

    def toggle(self, item_id: str) -> None:
        if item_id in self.ids:
            self.ids.remove(item_id)
        else:
            self.ids.append(item_id)

    def discard(self, ids: Iterable[str]) -> None:
        drop = set(ids)
        self.ids = [i for i in self.ids if i not in drop]

    def clear(self) -> None:
        self.ids = []

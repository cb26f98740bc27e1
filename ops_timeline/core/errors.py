"""
Error taxonomy for the Operations Timeline core.
"""
from __future__ import annotations


class TimelineError(Exception):
    """Base class for all errors raised by the timeline core."""


class PolicyViolationError(TimelineError):
    """An action forbidden by product policy (e.g. deleting equipment)."""

    def __init__(self, action: str, record_id: str):
        self.action = action
        self.record_id = record_id
        super().__init__(f"{action} is disabled (requested for id {record_id!r})")


class RecordNotFoundError(TimelineError):
    """An update referenced a record id that does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id!r} not found")


class DuplicateBatchError(TimelineError):
    """Two batches would resolve to the same canonical key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Batch {key!r} already exists")


class RecordMappingError(TimelineError):
    """A stored row could not be mapped onto a domain record."""


class PersistenceError(TimelineError):
    """Writing, exporting or importing the database failed."""


class SchemaMigrationError(PersistenceError):
    """A schema migration step failed for a reason other than a duplicate column."""


class UnknownTableError(TimelineError):
    """A store call named a table outside the known schema."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Unknown table: {table!r}")

"""
Data provider: the seam between the board and durable storage.

Callers depend only on the DataProvider interface so that a hosted backend
can be substituted for the local record store without changing them.
"""
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from .errors import DuplicateBatchError, PolicyViolationError, RecordNotFoundError
from .mappers import (
    batch_to_row,
    equipment_to_row,
    operation_to_row,
    row_batch_key,
    row_to_batch,
    row_to_equipment,
    row_to_operation,
)
from .models import DEFAULT_OPERATION_TYPE, Batch, Equipment, Operation, batch_key
from .record_store import (
    BATCH_TABLE,
    EQUIPMENT_TABLE,
    OPERATION_TABLE,
    TABLE_KEYS,
    StoreHandle,
)

logger = logging.getLogger(__name__)

Partial = Union[Mapping[str, Any], Equipment, Batch, Operation]

# Audit fields owned by the provider; ignored when supplied in a partial update
_AUDIT_FIELDS = ("created_on", "modified_on")


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> datetime:
    """Current local time truncated to the store's millisecond precision."""
    return truncate_ms(datetime.now())


def truncate_ms(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def partial_fields(partial: Partial, record_type: type) -> dict[str, Any]:
    """
    Normalize a partial record into a field dictionary.

    Accepts a mapping of field names or a full record instance. Unknown
    field names raise ValueError.
    """
    names = [f.name for f in fields(record_type)]
    if is_dataclass(partial) and not isinstance(partial, type):
        if not isinstance(partial, record_type):
            raise TypeError(
                f"Expected {record_type.__name__}, got {type(partial).__name__}"
            )
        return {name: getattr(partial, name) for name in names}

    values = dict(partial)
    unknown = set(values) - set(names)
    if unknown:
        raise ValueError(
            f"Unknown {record_type.__name__} fields: {', '.join(sorted(unknown))}"
        )
    return values


class DataProvider(ABC):
    """Interface consumed by the board for equipment, batches and operations."""

    @abstractmethod
    def get_equipment(self) -> list[Equipment]:
        """All equipment rows (unsorted; order is carried in Equipment.order)."""

    @abstractmethod
    def get_batches(self) -> list[Batch]:
        """All batches."""

    @abstractmethod
    def get_operations(self, start: datetime, end: datetime) -> list[Operation]:
        """Operations whose interval overlaps [start, end]."""

    @abstractmethod
    def save_equipment(self, partial: Partial) -> Equipment:
        """Create (no id) or merge-update (id present) an equipment row."""

    @abstractmethod
    def save_batch(self, partial: Partial) -> Batch:
        """Create (no id) or merge-update (id present) a batch."""

    @abstractmethod
    def save_operation(self, partial: Partial) -> Operation:
        """Create (no id) or merge-update (id present) an operation."""

    @abstractmethod
    def upsert_operation(self, operation: Operation) -> Operation:
        """Write a complete operation under its own id, creating it if absent."""

    @abstractmethod
    def delete_operation(self, operation_id: str) -> None:
        """Hard-delete an operation."""

    def delete_equipment(self, equipment_id: str) -> None:
        """Equipment deletion is disabled by product policy."""
        raise PolicyViolationError("Equipment deletion", equipment_id)

    def delete_batch(self, batch_id: str) -> None:
        """Batch deletion is disabled by product policy."""
        raise PolicyViolationError("Batch deletion", batch_id)


class LocalDataProvider(DataProvider):
    """DataProvider backed by the embedded record store."""

    def __init__(self, handle: StoreHandle):
        self._handle = handle

    @property
    def handle(self) -> StoreHandle:
        return self._handle

    def _store(self):
        return self._handle.get()

    def _existing_row(self, table: str, kind: str, record_id: str) -> dict[str, Any]:
        row = self._store().get(table, record_id)
        if row is None:
            raise RecordNotFoundError(kind, record_id)
        return row

    @staticmethod
    def _without_key(table: str, row: dict[str, Any]) -> dict[str, Any]:
        key = TABLE_KEYS[table]
        return {k: v for k, v in row.items() if k != key}

    # =========================================================================
    # Queries
    # =========================================================================

    def get_equipment(self) -> list[Equipment]:
        return [row_to_equipment(r) for r in self._store().list(EQUIPMENT_TABLE)]

    def get_batches(self) -> list[Batch]:
        return [row_to_batch(r) for r in self._store().list(BATCH_TABLE)]

    def get_operations(self, start: datetime, end: datetime) -> list[Operation]:
        operations = [row_to_operation(r) for r in self._store().list(OPERATION_TABLE)]
        return [op for op in operations if op.overlaps(start, end)]

    # =========================================================================
    # Equipment
    # =========================================================================

    def save_equipment(self, partial: Partial) -> Equipment:
        values = partial_fields(partial, Equipment)
        equipment_id = values.pop("id", None) or None
        for name in _AUDIT_FIELDS:
            values.pop(name, None)
        now = now_ms()

        if equipment_id:
            row = self._existing_row(EQUIPMENT_TABLE, "Equipment", equipment_id)
            equipment = replace(row_to_equipment(row), **values, modified_on=now)
            self._store().update(
                EQUIPMENT_TABLE, TABLE_KEYS[EQUIPMENT_TABLE], equipment_id,
                self._without_key(EQUIPMENT_TABLE, equipment_to_row(equipment)),
            )
            logger.debug("Updated equipment %s", equipment_id)
            return equipment

        if values.get("order") is None:
            orders = [e.order for e in self.get_equipment() if e.order is not None]
            values["order"] = max(orders) + 1 if orders else 0
        equipment = Equipment(id=new_id(), created_on=now, modified_on=now, **values)
        self._store().insert(EQUIPMENT_TABLE, equipment_to_row(equipment))
        logger.info("Created equipment %s (%s)", equipment.id, equipment.tag)
        return equipment

    # =========================================================================
    # Batches
    # =========================================================================

    def _check_batch_key(self, key: str, own_id: Optional[str] = None) -> None:
        for row in self._store().list(BATCH_TABLE):
            if row_batch_key(row) == key and str(row["batch_id"]) != own_id:
                raise DuplicateBatchError(key)

    def save_batch(self, partial: Partial) -> Batch:
        values = partial_fields(partial, Batch)
        batch_id = values.pop("id", None) or None
        for name in _AUDIT_FIELDS:
            values.pop(name, None)
        now = now_ms()

        if batch_id:
            row = self._existing_row(BATCH_TABLE, "Batch", batch_id)
            batch = replace(row_to_batch(row), **values, modified_on=now)
            self._check_batch_key(batch.key, own_id=batch_id)
            self._store().update(
                BATCH_TABLE, TABLE_KEYS[BATCH_TABLE], batch_id,
                self._without_key(BATCH_TABLE, batch_to_row(batch)),
            )
            logger.debug("Updated batch %s", batch.key)
            return batch

        key = batch_key(values.get("batch_number"), None).strip()
        if not key:
            raise ValueError("A batch number is required")
        values["batch_number"] = key
        self._check_batch_key(key)
        batch = Batch(id=new_id(), created_on=now, modified_on=now, **values)
        self._store().insert(BATCH_TABLE, batch_to_row(batch))
        logger.info("Created batch %s", batch.key)
        return batch

    # =========================================================================
    # Operations
    # =========================================================================

    def save_operation(self, partial: Partial) -> Operation:
        values = partial_fields(partial, Operation)
        operation_id = values.pop("id", None) or None
        for name in _AUDIT_FIELDS:
            values.pop(name, None)
        for name in ("start_time", "end_time"):
            if name in values:
                values[name] = truncate_ms(values[name])
        if "batch_id" in values and not values["batch_id"]:
            values["batch_id"] = None
        now = now_ms()

        if operation_id:
            row = self._existing_row(OPERATION_TABLE, "Operation", operation_id)
            operation = replace(row_to_operation(row), **values, modified_on=now)
            self._store().update(
                OPERATION_TABLE, TABLE_KEYS[OPERATION_TABLE], operation_id,
                self._without_key(OPERATION_TABLE, operation_to_row(operation)),
            )
            logger.debug("Updated operation %s", operation_id)
            return operation

        values.setdefault("start_time", now)
        values.setdefault("end_time", values["start_time"])
        if values["start_time"] is None:
            values["start_time"] = now
        if values["end_time"] is None:
            values["end_time"] = values["start_time"]
        if not values.get("type"):
            values["type"] = DEFAULT_OPERATION_TYPE
        operation = Operation(id=new_id(), created_on=now, modified_on=now, **values)
        self._store().insert(OPERATION_TABLE, operation_to_row(operation))
        logger.debug("Created operation %s", operation.id)
        return operation

    def upsert_operation(self, operation: Operation) -> Operation:
        if not operation.id:
            raise ValueError("upsert_operation requires an operation id")
        store = self._store()
        row = operation_to_row(operation)
        if store.get(OPERATION_TABLE, operation.id) is None:
            store.insert(OPERATION_TABLE, row)
        else:
            store.update(
                OPERATION_TABLE, TABLE_KEYS[OPERATION_TABLE], operation.id,
                self._without_key(OPERATION_TABLE, row),
            )
        return operation

    def delete_operation(self, operation_id: str) -> None:
        self._store().delete(OPERATION_TABLE, TABLE_KEYS[OPERATION_TABLE], operation_id)
        logger.debug("Deleted operation %s", operation_id)

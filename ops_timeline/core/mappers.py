"""
Row <-> record mapping between the record store and the domain models.

Rows leave the store as untyped dictionaries; nothing past this module sees
them. Missing required columns or unparseable values raise RecordMappingError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .errors import RecordMappingError
from .models import (
    DEFAULT_OPERATION_TYPE,
    DEFAULT_OWNER_ID,
    DEFAULT_OWNER_NAME,
    DEFAULT_OWNER_TYPE,
    DEFAULT_STATE_CODE,
    Batch,
    Equipment,
    Operation,
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp (ISO-8601 text) back into a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise RecordMappingError(f"Invalid timestamp {value!r}") from e


def _parse_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RecordMappingError(f"Invalid integer {value!r}") from e


def _text(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def _require(row: dict[str, Any], kind: str, *columns: str) -> None:
    missing = [c for c in columns if row.get(c) is None]
    if missing:
        raise RecordMappingError(f"{kind} row is missing {', '.join(missing)}: {row!r}")


# =============================================================================
# Equipment
# =============================================================================

def row_to_equipment(row: dict[str, Any]) -> Equipment:
    _require(row, "Equipment", "equipment_id", "tag")
    return Equipment(
        id=str(row["equipment_id"]),
        tag=str(row["tag"]),
        description=_text(row.get("description")),
        order=_parse_int(row.get("sort_order")),
        created_on=parse_timestamp(row.get("created_on")),
        modified_on=parse_timestamp(row.get("modified_on")),
        owner_id=_text(row.get("owner_id"), DEFAULT_OWNER_ID),
        owner_name=_text(row.get("owner_name"), DEFAULT_OWNER_NAME),
        owner_type=_text(row.get("owner_type"), DEFAULT_OWNER_TYPE),
        state_code=_text(row.get("state_code"), DEFAULT_STATE_CODE),
    )


def equipment_to_row(equipment: Equipment) -> dict[str, Any]:
    return {
        "equipment_id": equipment.id,
        "tag": equipment.tag,
        "description": equipment.description,
        "tag_and_description": equipment.tag_and_description,
        "sort_order": equipment.order,
        "created_on": equipment.created_on,
        "modified_on": equipment.modified_on,
        "owner_id": equipment.owner_id,
        "owner_name": equipment.owner_name,
        "owner_type": equipment.owner_type,
        "state_code": equipment.state_code,
    }


# =============================================================================
# Batch
# =============================================================================

def row_to_batch(row: dict[str, Any]) -> Batch:
    _require(row, "Batch", "batch_id")
    number = row.get("batch_number")
    return Batch(
        id=str(row["batch_id"]),
        batch_number=None if number is None else str(number),
        created_on=parse_timestamp(row.get("created_on")),
        modified_on=parse_timestamp(row.get("modified_on")),
        owner_id=_text(row.get("owner_id"), DEFAULT_OWNER_ID),
        owner_name=_text(row.get("owner_name"), DEFAULT_OWNER_NAME),
        owner_type=_text(row.get("owner_type"), DEFAULT_OWNER_TYPE),
        state_code=_text(row.get("state_code"), DEFAULT_STATE_CODE),
    )


def batch_to_row(batch: Batch) -> dict[str, Any]:
    return {
        "batch_id": batch.id,
        "batch_number": batch.batch_number,
        "created_on": batch.created_on,
        "modified_on": batch.modified_on,
        "owner_id": batch.owner_id,
        "owner_name": batch.owner_name,
        "owner_type": batch.owner_type,
        "state_code": batch.state_code,
    }


def row_batch_key(row: dict[str, Any]) -> str:
    """Canonical key of a raw batch row (batch number, else storage id)."""
    number = row.get("batch_number")
    if number is not None:
        return str(number)
    batch_id = row.get("batch_id")
    return "" if batch_id is None else str(batch_id)


# =============================================================================
# Operation
# =============================================================================

def row_to_operation(row: dict[str, Any]) -> Operation:
    _require(row, "Operation", "operation_id", "start_time", "end_time")
    batch_id = row.get("batch_id")
    return Operation(
        id=str(row["operation_id"]),
        equipment_id=_text(row.get("equipment_id")),
        batch_id=None if batch_id in (None, "") else str(batch_id),
        start_time=parse_timestamp(row["start_time"]),
        end_time=parse_timestamp(row["end_time"]),
        type=_text(row.get("type"), DEFAULT_OPERATION_TYPE),
        description=_text(row.get("description")),
        allow_overlap=_parse_bool(row.get("allow_overlap")),
        created_on=parse_timestamp(row.get("created_on")),
        modified_on=parse_timestamp(row.get("modified_on")),
        state_code=_text(row.get("state_code"), DEFAULT_STATE_CODE),
        status_code=_text(row.get("status_code"), DEFAULT_STATE_CODE),
    )


def operation_to_row(operation: Operation) -> dict[str, Any]:
    return {
        "operation_id": operation.id,
        "equipment_id": operation.equipment_id,
        "batch_id": operation.batch_id,
        "start_time": operation.start_time,
        "end_time": operation.end_time,
        "type": operation.type,
        "description": operation.description,
        "allow_overlap": operation.allow_overlap,
        "created_on": operation.created_on,
        "modified_on": operation.modified_on,
        "state_code": operation.state_code,
        "status_code": operation.status_code,
    }

"""
Deterministic demo dataset written into a freshly created database.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .models import (
    DEFAULT_OPERATION_TYPE,
    DEFAULT_OWNER_ID,
    DEFAULT_OWNER_NAME,
    DEFAULT_OWNER_TYPE,
    DEFAULT_STATE_CODE,
)

if TYPE_CHECKING:
    from .record_store import RecordStore

DEMO_EQUIPMENT = [
    ("1", "V-3300A", "3A Fermenter"),
    ("2", "V-3300B", "3B Fermenter"),
    ("3", "V-3300C", "3C Fermenter"),
    ("4", "V-3300D", "3D Fermenter"),
    ("5", "V-3300E", "3E Fermenter"),
    ("6", "V-3300F", "3F Fermenter"),
    ("7", "U-4000", "Centrifuge"),
    ("8", "U-4400", "Decanter"),
    ("9", "U-4600", "Homogenizer"),
    ("10", "U-4700", "Ceramic Skid"),
    ("11", "U-4500", "Ultrafilter"),
]

DEMO_BATCHES = ["25-HTS-30", "25-HTS-31"]

# (operation id, equipment id, description, start, end) for the first batch
DEMO_OPERATIONS = [
    ("1", "1", "Fermentation", datetime(2025, 8, 28, 0, 0), datetime(2025, 9, 2, 12, 0)),
    ("2", "7", "Centrifugation", datetime(2025, 9, 2, 9, 0), datetime(2025, 9, 2, 12, 0)),
    ("3", "3", "Lyse buffer", datetime(2025, 9, 2, 9, 0), datetime(2025, 9, 3, 0, 0)),
    ("4", "9", "Homogenization", datetime(2025, 9, 2, 14, 0), datetime(2025, 9, 3, 0, 0)),
    ("5", "6", "Lysate holding", datetime(2025, 9, 2, 14, 0), datetime(2025, 9, 5, 12, 0)),
    ("6", "10", "Clarification", datetime(2025, 9, 3, 0, 0), datetime(2025, 9, 5, 12, 0)),
    ("7", "11", "Concentration", datetime(2025, 9, 3, 0, 0), datetime(2025, 9, 5, 18, 0)),
    ("8", "4", "Dextrose feed", datetime(2025, 8, 29, 0, 0), datetime(2025, 9, 2, 12, 0)),
    ("9", "2", "Fermentation", datetime(2025, 8, 28, 0, 0), datetime(2025, 9, 2, 12, 0)),
]

# Each later batch runs one week after the previous one
BATCH_SPACING = timedelta(weeks=1)
# Operation ids of later batches are offset by this much per batch
BATCH_ID_STRIDE = 10


def _owner_fields() -> dict[str, str]:
    return {
        "owner_id": DEFAULT_OWNER_ID,
        "owner_name": DEFAULT_OWNER_NAME,
        "owner_type": DEFAULT_OWNER_TYPE,
        "state_code": DEFAULT_STATE_CODE,
    }


def seed_demo_data(store: RecordStore) -> None:
    """Insert the demo equipment, batches and operations."""
    now = datetime.now()

    with store.deferred_persist():
        for order, (eq_id, tag, desc) in enumerate(DEMO_EQUIPMENT):
            store.insert("equipment", {
                "equipment_id": eq_id,
                "tag": tag,
                "description": desc,
                "tag_and_description": f"{tag} - {desc}",
                "sort_order": order,
                "created_on": now,
                "modified_on": now,
                **_owner_fields(),
            })

        for number in DEMO_BATCHES:
            store.insert("batches", {
                "batch_id": number,
                "batch_number": number,
                "created_on": now,
                "modified_on": now,
                **_owner_fields(),
            })

        for i, number in enumerate(DEMO_BATCHES):
            shift = BATCH_SPACING * i
            for op_id, eq_id, desc, start, end in DEMO_OPERATIONS:
                store.insert("operations", {
                    "operation_id": str(int(op_id) + BATCH_ID_STRIDE * i),
                    "equipment_id": eq_id,
                    "batch_id": number,
                    "start_time": start + shift,
                    "end_time": end + shift,
                    "type": DEFAULT_OPERATION_TYPE,
                    "description": desc,
                    "allow_overlap": False,
                    "created_on": now,
                    "modified_on": now,
                    "state_code": DEFAULT_STATE_CODE,
                    "status_code": DEFAULT_STATE_CODE,
                })

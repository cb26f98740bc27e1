"""
Tabular export of the schedule (operations joined with their equipment).
"""
from __future__ import annotations

from pathlib import Path
from typing import Sequence, Union

import pandas as pd

from .models import Equipment, Operation

SCHEDULE_COLUMNS = [
    "Equipment",
    "Equipment Description",
    "Batch",
    "Type",
    "Description",
    "Start",
    "End",
    "Duration [h]",
    "Operation ID",
]


def schedule_frame(
    operations: Sequence[Operation],
    equipment: Sequence[Equipment]
) -> pd.DataFrame:
    """
    Build a dataframe of operations, one row each, sorted by equipment order and start.

    Operations on unknown equipment keep the raw equipment id and sort last.
    """
    eq_by_id = {eq.id: eq for eq in equipment}

    records = []
    for op in operations:
        eq = eq_by_id.get(op.equipment_id)
        batch = op.batch_id or ""
        records.append({
            "Equipment": eq.tag if eq else op.equipment_id,
            "Equipment Description": eq.description if eq else "",
            "Batch": batch,
            "Type": op.type,
            "Description": op.description,
            "Start": op.start_time,
            "End": op.end_time,
            "Operation ID": op.id,
            "_order": eq.order if eq and eq.order is not None else len(eq_by_id),
        })

    if not records:
        return pd.DataFrame(columns=SCHEDULE_COLUMNS)

    df = pd.DataFrame.from_records(records)
    df["Start"] = pd.to_datetime(df["Start"])
    df["End"] = pd.to_datetime(df["End"])
    df["Duration [h]"] = (df["End"] - df["Start"]).dt.total_seconds() / 3600.0
    df = df.sort_values(["_order", "Start", "Operation ID"]).reset_index(drop=True)
    return df[SCHEDULE_COLUMNS]


def export_schedule_csv(
    path: Union[str, Path],
    operations: Sequence[Operation],
    equipment: Sequence[Equipment]
) -> int:
    """Write the schedule as CSV. Returns the number of rows written."""
    df = schedule_frame(operations, equipment)
    df.to_csv(path, index=False, date_format="%Y-%m-%d %H:%M")
    return len(df)

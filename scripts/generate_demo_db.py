#!/usr/bin/env python3
"""
Demo database generator for the Operations Timeline application.

Generates a database file with:
- The seeded demo equipment, batches and operations
- Optional extra equipment rows (to exercise row windowing)
- Random operations on the extra rows
"""

import argparse
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np

from ops_timeline.core import LocalDataProvider, StoreHandle
from ops_timeline.core.models import OPERATION_TYPES


def add_equipment_rows(provider: LocalDataProvider, count: int) -> list[str]:
    """Append extra equipment rows; returns their ids."""
    ids = []
    for i in range(count):
        equipment = provider.save_equipment({
            "tag": f"X-{5000 + i}",
            "description": f"Extra Unit {i + 1}",
        })
        ids.append(equipment.id)
    return ids


def add_random_operations(
    provider: LocalDataProvider,
    equipment_ids: list[str],
    per_row: int,
    start: datetime,
    days: int,
    seed: int
) -> int:
    """
    Add random operations spread over [start, start + days].

    Durations are 2 to 24 hours; about a third of operations have no batch.
    """
    rng = np.random.default_rng(seed)
    batches = [b.key for b in provider.get_batches()]
    count = 0

    for equipment_id in equipment_ids:
        offsets = np.sort(rng.uniform(0, days * 24, per_row))
        durations = rng.integers(2, 25, per_row)
        for offset, duration in zip(offsets, durations):
            op_start = start + timedelta(hours=float(np.floor(offset)))
            batch = None
            if batches and rng.random() > 0.33:
                batch = batches[int(rng.integers(0, len(batches)))]
            provider.save_operation({
                "equipment_id": equipment_id,
                "batch_id": batch,
                "start_time": op_start,
                "end_time": op_start + timedelta(hours=int(duration)),
                "type": OPERATION_TYPES[int(rng.integers(0, len(OPERATION_TYPES)))],
                "description": "Generated",
            })
            count += 1
    return count


def main():
    parser = argparse.ArgumentParser(description="Generate a demo database for Operations Timeline")
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("demo_data") / "database.db",
        help="Database file to write"
    )
    parser.add_argument(
        "--extra-rows",
        type=int,
        default=0,
        help="Number of extra equipment rows to add"
    )
    parser.add_argument(
        "--ops-per-row",
        type=int,
        default=5,
        help="Random operations per extra row"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=28,
        help="Days (from today) over which random operations are spread"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing database file"
    )

    args = parser.parse_args()

    if args.output.exists():
        if not args.force:
            parser.error(f"{args.output} exists (use --force to overwrite)")
        args.output.unlink()

    args.output.parent.mkdir(parents=True, exist_ok=True)

    handle = StoreHandle(args.output, seed_demo=True)
    provider = LocalDataProvider(handle)

    extra_ids = add_equipment_rows(provider, args.extra_rows)
    ops = 0
    if extra_ids:
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        ops = add_random_operations(
            provider, extra_ids, args.ops_per_row, today, args.days, args.seed
        )

    equipment = len(provider.get_equipment())
    operations = len(provider.get_operations(datetime.min, datetime.max))
    handle.close()

    print(f"Generated: {args.output} ({equipment} equipment, {operations} operations)")
    if extra_ids:
        print(f"  added {len(extra_ids)} extra rows with {ops} random operations")


if __name__ == "__main__":
    main()

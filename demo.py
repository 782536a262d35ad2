#!/usr/bin/env python3
"""
ObsDB Demo - Shows insertions, snapshots, series and search.

Runs against a throwaway SQLite database; no server required.
"""

import asyncio
import json
import tempfile
from datetime import datetime, timedelta, timezone

from tsdb.obsdb_server.backend import SqliteBackend
from tsdb.obsdb_server.config import StorageConfig, StoreConfig
from tsdb.obsdb_server.store import TimeSeriesStore, snapshot_to_dict


def show(value):
    print(json.dumps(value, indent=2, sort_keys=True, default=str))


async def main():
    print("=" * 60)
    print("ObsDB Demo - Insertions and Retrievals")
    print("=" * 60)
    print()

    with tempfile.TemporaryDirectory() as data_dir:
        print(f"[Setup] Using data directory: {data_dir}")

        # 1. Initialize
        print("\n[Step 1] Initializing store...")

        backend = SqliteBackend(StorageConfig(db_path=f"{data_dir}/obsdb.db", wal_mode=False))
        store = TimeSeriesStore(backend, StoreConfig(table_prefix="example"))
        await store.initialize()

        for table in store.router.tables():
            print(f"  - Partition: {table}")

        node = "id-1"
        start = datetime.now(timezone.utc).replace(microsecond=0)

        # 2. Insert an object
        print("\n[Step 2] Inserting object...")
        print("-" * 50)

        written = await store.insert_object(
            node,
            {"a": 1, "b": "Hello", "c": True, "d": start, "e": [1, 2, 3]},
            start,
        )
        print(f"  - Wrote {written} observations for {node}")

        # 3. Update one attribute a second later
        print("\n[Step 3] Updating a...")
        print("-" * 50)

        await store.insert_object(node, {"a": 2}, start + timedelta(seconds=1))
        print("  - a = 2 at +1s")

        # 4. Current state
        print("\n[Step 4] Current state...")
        print("-" * 50)
        show(snapshot_to_dict(await store.synthesize_object(node)))

        # 5. State before the update
        print("\n[Step 5] State at +0.5s...")
        print("-" * 50)
        past = await store.synthesize_object_at(node, start + timedelta(milliseconds=500))
        show(snapshot_to_dict(past))

        # 6. Series of one field
        print("\n[Step 6] Series of .a...")
        print("-" * 50)
        now = start + timedelta(seconds=2)
        for point in await store.get_series(node, ".a", now, 10):
            print(f"  {point.timestamp.isoformat()}  {point.value}")

        # 7. Search by date value
        print("\n[Step 7] Nodes whose .d was the start time...")
        print("-" * 50)
        for hit in await store.search(".d", start, now, 10):
            print(f"  {hit.node}: {hit.value.isoformat()} (recorded {hit.timestamp.isoformat()})")

        # 8. Stats and removal
        print("\n[Step 8] Stats and removal...")
        print("-" * 50)
        show(await store.get_stats())
        removed = await store.remove(node, confirmed=True)
        print(f"  - Removed {removed} observations, exists: {await store.exists(node)}")

        await store.close()

        print()
        print("=" * 60)
        print("Demo Complete!")
        print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())

"""
Store module for ObsDB - the time series engine.

This module handles:
- Classifying and encoding values per kind (codec)
- Routing kinds to their partitions (partitions)
- Flattening objects into field paths and rebuilding them (paths)
- Keeping the latest marker per (node, field) (latest)
- The public store operations (store)

Invariants:
    - One partition per storable kind
    - At most one latest row per (node, field) absent concurrent writers
    - Observations are immutable apart from the latest marker

How to change safely:
    - Keep codec encodings stable; stored data depends on them
    - Verify latest handling with out-of-order insert tests
"""

from .codec import ValueKind, classify, decode, encode, encode_value
from .partitions import Partition, PartitionRouter
from .paths import Leaf, flatten, snapshot_to_dict, unflatten
from .store import SearchHit, SeriesPoint, TimeSeriesStore

__all__ = [
    "ValueKind",
    "classify",
    "decode",
    "encode",
    "encode_value",
    "Partition",
    "PartitionRouter",
    "Leaf",
    "flatten",
    "unflatten",
    "snapshot_to_dict",
    "SearchHit",
    "SeriesPoint",
    "TimeSeriesStore",
]

"""
ObsDB Server - object-valued time series storage on a relational backend.

Nested objects are recorded as independent, timestamped, typed observations
and read back as point-in-time snapshots or per-attribute series:

    insert_object(node, {"a": 1, "sub": {"b": "x"}}, t)
                │
                ▼
    ┌──────────────────────┐
    │  flatten + encode    │   .a -> number, .sub.b -> string
    └──────────┬───────────┘
               │ one write per leaf, concurrently
               ▼
    ┌────────┬────────┬────────┬────────┬─────────┐
    │ string │ number │ array  │  date  │ boolean │   partitions
    └────────┴────────┴────────┴────────┴─────────┘
               │ fan-out reads, merged per path
               ▼
    synthesize_object(node) / get_series / search / exists / remove

Invariants:
    - One partition per value kind; partitions are keyed by kind only
    - Per (node, field) the latest marker sits on the newest observation
    - Observations are never updated except for the latest marker and
      never deleted except by whole-node removal

How to change safely:
    - Keep stored encodings stable
    - Statements must bind every literal as a parameter

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]

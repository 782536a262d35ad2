"""
ObsDB Test Suite.

This package contains:
- unit/: Unit tests (codec, paths, partitions, config, SQLite backend)
- integration/: Integration tests (store on SQLite, HTTP API, CLI)
"""

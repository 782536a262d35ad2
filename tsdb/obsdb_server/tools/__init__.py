"""
CLI tools for ObsDB administration.

This module provides command-line tools for:
- obsdb: inspect and modify a store without a running server

Invariants:
    - Tools work offline (no running server required)
    - Destructive commands require explicit confirmation
"""

from .cli import StoreCLI, main

__all__ = ["StoreCLI", "main"]

"""Storage package.

This package persists the output of analysis sessions. The default
implementation appends snapshots and alerts to JSONL files.
"""

from .snapshot_logger import SnapshotLogger, load_records

__all__ = ["SnapshotLogger", "load_records"]

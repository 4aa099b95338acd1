"""JSONL logging of crowd snapshots and alerts.

Every published snapshot is appended to ``snapshots.jsonl`` and every
high-risk alert to ``alerts.jsonl`` in the log directory, one JSON record
per line with a UTC timestamp. The files can be replayed or summarised
offline.
"""

from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from analytics.crowd_density import CrowdSnapshot
from analytics.risk_alerts import AlertEvent


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class SnapshotLogger:
    """Append snapshots and alerts to JSONL files."""

    def __init__(self, log_dir: Optional[str | Path] = None) -> None:
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.snapshot_file = self.log_dir / "snapshots.jsonl"
        self.alert_file = self.log_dir / "alerts.jsonl"

    def _append(self, path: Path, record: Dict[str, Any]) -> None:
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def log_snapshot(self, snapshot: CrowdSnapshot, source: str = "default") -> None:
        self._append(
            self.snapshot_file,
            {"logged_at": _utc_now(), "source": source, "snapshot": snapshot.to_dict()},
        )

    def log_alert(self, event: AlertEvent, source: str = "default") -> None:
        self._append(
            self.alert_file,
            {"logged_at": _utc_now(), "source": source, "event": event.to_dict()},
        )


def load_records(path: str | Path) -> List[Dict[str, Any]]:
    """Load records from a JSONL file, skipping malformed lines."""
    records: List[Dict[str, Any]] = []
    path = Path(path)
    if not path.exists():
        return records
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return records

"""Rolling crowd history and trend summary.

Keeps the snapshots of the last few minutes so that operators (or an
assistant answering questions about the feed) can see the peak headcount
and whether the crowd is growing or shrinking.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from .crowd_density import CrowdSnapshot

TREND_TOLERANCE = 0.1


@dataclass(frozen=True)
class TrendSummary:
    peak_count: int
    start_count: int
    end_count: int
    trend: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "peakCount": self.peak_count,
            "startCount": self.start_count,
            "endCount": self.end_count,
            "trend": self.trend,
        }


class SnapshotHistory:
    """Window of recent snapshots ordered by timestamp."""

    def __init__(self, window_ms: int = 5 * 60 * 1000) -> None:
        self.window_ms = window_ms
        self._snapshots: Deque[CrowdSnapshot] = deque()

    def __len__(self) -> int:
        return len(self._snapshots)

    def clear(self) -> None:
        self._snapshots.clear()

    def add(self, snapshot: CrowdSnapshot) -> None:
        # Amended snapshots share their original's timestamp; keep the newest copy.
        if self._snapshots and self._snapshots[-1].timestamp == snapshot.timestamp:
            self._snapshots[-1] = snapshot
        else:
            self._snapshots.append(snapshot)
        self._prune(snapshot.timestamp)

    def _prune(self, now_ms: int) -> None:
        while self._snapshots and now_ms - self._snapshots[0].timestamp >= self.window_ms:
            self._snapshots.popleft()

    def summary(self, now_ms: Optional[int] = None) -> Optional[TrendSummary]:
        """Summarise the window ending at ``now_ms``.

        Returns None when fewer than two snapshots fall inside the window.
        The trend compares the newest count with the oldest: more than 10%
        above is ``increasing``, more than 10% below is ``decreasing``.
        """
        if now_ms is None:
            if not self._snapshots:
                return None
            now_ms = self._snapshots[-1].timestamp
        recent = [s for s in self._snapshots if now_ms - s.timestamp < self.window_ms]
        if len(recent) < 2:
            return None

        start_count = recent[0].total_count
        end_count = recent[-1].total_count
        trend = "stable"
        if end_count > start_count * (1 + TREND_TOLERANCE):
            trend = "increasing"
        elif end_count < start_count * (1 - TREND_TOLERANCE):
            trend = "decreasing"
        return TrendSummary(
            peak_count=max(s.total_count for s in recent),
            start_count=start_count,
            end_count=end_count,
            trend=trend,
        )


def build_context(
    snapshot: Optional[CrowdSnapshot],
    summary: Optional[TrendSummary] = None,
    window_ms: int = 5 * 60 * 1000,
) -> str:
    """Describe the live crowd state and recent trend as plain text.

    The text is meant for an operator report or as grounding context for
    an assistant answering questions about the feed.
    """
    if snapshot is None:
        return "No live data available."
    recommendations = ", ".join(snapshot.recommendations) or "none"
    lines = [
        "Current crowd status:",
        f"- Headcount: {snapshot.total_count}",
        f"- Density: {snapshot.density:.2f}",
        f"- Risk level: {snapshot.risk_level.value}",
        f"- Recommendations: {recommendations}",
    ]
    if summary is not None:
        minutes = window_ms / 60000
        lines += [
            "",
            f"Historical trend (last {minutes:g} min):",
            f"- Peak headcount: {summary.peak_count}",
            f"- Trend: the crowd size is currently {summary.trend}.",
        ]
    return "\n".join(lines)

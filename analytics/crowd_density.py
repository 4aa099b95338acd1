"""Crowd density and risk analysis.

This module reduces the live track set to a `CrowdSnapshot`: headcount,
density over a fixed reference floor area, a discretised risk level and,
when enough people are present, a single congestion point at the mean of
all box centres. The congestion point is a centroid heuristic; separate
hotspots in the same frame are not distinguished.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from tracking.iou_tracker import BoundingBox, TrackedPerson


class RiskLevel(str, Enum):
    """Crowd risk category derived from density."""

    SAFE = "Safe"
    MODERATE = "Moderate"
    HIGH = "High"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {RiskLevel.SAFE: 0, RiskLevel.MODERATE: 1, RiskLevel.HIGH: 2}


@dataclass(frozen=True)
class CongestionPoint:
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class CrowdSnapshot:
    """Crowd state for one processed frame.

    Snapshots are immutable. Recommendations arrive asynchronously, so
    they are attached by deriving a new snapshot with
    `with_recommendations`, which keeps the original timestamp.
    """

    total_count: int
    density: float
    risk_level: RiskLevel
    congestion_points: Tuple[CongestionPoint, ...] = ()
    detections: Tuple[BoundingBox, ...] = ()
    recommendations: Tuple[str, ...] = ()
    timestamp: int = 0
    track_ids: Tuple[int, ...] = field(default=(), compare=False)

    def with_recommendations(self, recommendations: Sequence[str]) -> "CrowdSnapshot":
        return replace(self, recommendations=tuple(recommendations))

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the camelCase keys consumed by output sinks."""
        return {
            "totalCount": self.total_count,
            "density": self.density,
            "riskLevel": self.risk_level.value,
            "congestionPoints": [p.to_dict() for p in self.congestion_points],
            "detections": [d.to_dict() for d in self.detections],
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp,
        }


def classify_risk(
    density: float,
    moderate_threshold: float = 0.3,
    high_threshold: float = 0.55,
) -> RiskLevel:
    """Map a density to a risk level.

    Each band includes its lower bound: ``moderate_threshold`` itself is
    Moderate and ``high_threshold`` itself is High.
    """
    if density < moderate_threshold:
        return RiskLevel.SAFE
    if density < high_threshold:
        return RiskLevel.MODERATE
    return RiskLevel.HIGH


def congestion_centroid(boxes: Sequence[BoundingBox]) -> CongestionPoint:
    """Return the mean of the box centres."""
    centers = np.array([box.center for box in boxes], dtype=float)
    cx, cy = centers.mean(axis=0)
    return CongestionPoint(x=float(cx), y=float(cy))


class CrowdDensityMonitor:
    """Turn a live track set into crowd snapshots.

    Parameters
    ----------
    area : float
        Reference floor area the headcount is divided by.
    moderate_threshold, high_threshold : float
        Density bounds of the Moderate and High bands.
    congestion_min_count : int
        A congestion point is reported only when the headcount is strictly
        greater than this value.
    """

    def __init__(
        self,
        area: float = 200.0,
        moderate_threshold: float = 0.3,
        high_threshold: float = 0.55,
        congestion_min_count: int = 5,
    ) -> None:
        if area <= 0:
            raise ValueError("area must be positive")
        self.area = area
        self.moderate_threshold = moderate_threshold
        self.high_threshold = high_threshold
        self.congestion_min_count = congestion_min_count

    def analyze(
        self,
        tracks: Sequence[TrackedPerson],
        timestamp: int,
        previous: Optional[CrowdSnapshot] = None,
    ) -> CrowdSnapshot:
        """Build the snapshot for the current frame.

        Recommendations are carried over unchanged from ``previous``; they
        are owned by the recommendation trigger, not recomputed here.
        """
        boxes: List[BoundingBox] = [t.bbox for t in tracks]
        total_count = len(boxes)
        density = total_count / self.area
        risk_level = classify_risk(density, self.moderate_threshold, self.high_threshold)

        congestion_points: Tuple[CongestionPoint, ...] = ()
        if total_count > self.congestion_min_count:
            congestion_points = (congestion_centroid(boxes),)

        return CrowdSnapshot(
            total_count=total_count,
            density=density,
            risk_level=risk_level,
            congestion_points=congestion_points,
            detections=tuple(boxes),
            recommendations=previous.recommendations if previous is not None else (),
            timestamp=timestamp,
            track_ids=tuple(t.track_id for t in tracks),
        )

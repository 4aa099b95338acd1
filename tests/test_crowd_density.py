from __future__ import annotations

import pytest

from analytics.crowd_density import CrowdDensityMonitor, CrowdSnapshot, RiskLevel, classify_risk
from tracking.iou_tracker import BoundingBox, TrackedPerson


def _people(count: int) -> list[TrackedPerson]:
    return [TrackedPerson(i, BoundingBox(0.001 * i, 0.0, 0.001, 0.001)) for i in range(count)]


@pytest.mark.parametrize(
    "count, density, level",
    [
        (59, 0.295, RiskLevel.SAFE),
        (60, 0.30, RiskLevel.MODERATE),
        (109, 0.545, RiskLevel.MODERATE),
        (110, 0.55, RiskLevel.HIGH),
    ],
)
def test_density_boundaries(count: int, density: float, level: RiskLevel) -> None:
    snapshot = CrowdDensityMonitor().analyze(_people(count), timestamp=1)
    assert snapshot.total_count == count
    assert snapshot.density == pytest.approx(density)
    assert snapshot.risk_level is level


def test_classify_risk_lower_bounds_are_inclusive() -> None:
    assert classify_risk(0.0) is RiskLevel.SAFE
    assert classify_risk(0.3) is RiskLevel.MODERATE
    assert classify_risk(0.55) is RiskLevel.HIGH
    assert classify_risk(3.0) is RiskLevel.HIGH


def test_no_congestion_point_up_to_five_people() -> None:
    snapshot = CrowdDensityMonitor().analyze(_people(5), timestamp=1)
    assert snapshot.congestion_points == ()


def test_congestion_point_is_mean_of_centres() -> None:
    centres = [0.2, 0.3, 0.4, 0.5, 0.6, 0.7]
    tracks = [
        TrackedPerson(i, BoundingBox(c - 0.05, c - 0.05, 0.1, 0.1)) for i, c in enumerate(centres)
    ]
    snapshot = CrowdDensityMonitor().analyze(tracks, timestamp=1)

    assert len(snapshot.congestion_points) == 1
    point = snapshot.congestion_points[0]
    assert point.x == pytest.approx(0.45)
    assert point.y == pytest.approx(0.45)


def test_recommendations_carried_over_from_previous_snapshot() -> None:
    monitor = CrowdDensityMonitor()
    previous = monitor.analyze(_people(1), timestamp=1).with_recommendations(["Open gate B"])
    snapshot = monitor.analyze(_people(2), timestamp=2, previous=previous)
    assert snapshot.recommendations == ("Open gate B",)
    assert monitor.analyze(_people(2), timestamp=3).recommendations == ()


def test_snapshot_serialises_with_camel_case_keys() -> None:
    snapshot = CrowdDensityMonitor().analyze(_people(6), timestamp=42)
    data = snapshot.to_dict()
    assert set(data) == {
        "totalCount",
        "density",
        "riskLevel",
        "congestionPoints",
        "detections",
        "recommendations",
        "timestamp",
    }
    assert data["riskLevel"] == "Safe"
    assert data["timestamp"] == 42
    assert len(data["detections"]) == 6
    assert len(data["congestionPoints"]) == 1


def test_with_recommendations_keeps_timestamp_and_original() -> None:
    original = CrowdSnapshot(total_count=0, density=0.0, risk_level=RiskLevel.SAFE, timestamp=7)
    amended = original.with_recommendations(["Hold entry"])
    assert amended.timestamp == 7
    assert amended.recommendations == ("Hold entry",)
    assert original.recommendations == ()


def test_area_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CrowdDensityMonitor(area=0)

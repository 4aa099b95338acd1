from __future__ import annotations

from analytics.crowd_density import CrowdSnapshot, RiskLevel
from analytics.history import SnapshotHistory, TrendSummary, build_context
from analytics.risk_alerts import HighRiskAlert


def _snapshot(level: RiskLevel, timestamp: int, count: int = 0) -> CrowdSnapshot:
    return CrowdSnapshot(total_count=count, density=count / 200, risk_level=level, timestamp=timestamp)


def test_alert_fires_once_per_entry_into_high() -> None:
    fired = []
    alert = HighRiskAlert([fired.append])
    levels = [
        RiskLevel.SAFE,
        RiskLevel.HIGH,
        RiskLevel.HIGH,
        RiskLevel.MODERATE,
        RiskLevel.HIGH,
        RiskLevel.HIGH,
    ]
    for ts, level in enumerate(levels):
        alert.observe(_snapshot(level, ts, count=120))

    assert [event.snapshot.timestamp for event in fired] == [1, 4]
    assert fired[0].title == "High Risk Alert!"


def test_first_snapshot_in_high_fires_and_reset_rearms() -> None:
    alert = HighRiskAlert()
    assert alert.observe(_snapshot(RiskLevel.HIGH, 1)) is not None
    assert alert.observe(_snapshot(RiskLevel.HIGH, 2)) is None
    alert.reset()
    assert alert.observe(_snapshot(RiskLevel.HIGH, 3)) is not None


def test_failing_handler_does_not_stop_others() -> None:
    seen = []

    def broken(event) -> None:
        raise RuntimeError("speaker unplugged")

    alert = HighRiskAlert([broken, seen.append])
    alert.observe(_snapshot(RiskLevel.HIGH, 1))
    assert len(seen) == 1


def test_history_trend_and_peak() -> None:
    history = SnapshotHistory(window_ms=1000)
    for ts, count in [(0, 10), (200, 14), (400, 9), (600, 12)]:
        history.add(_snapshot(RiskLevel.SAFE, ts, count))

    summary = history.summary()
    assert summary is not None
    assert summary.peak_count == 14
    assert summary.trend == "increasing"

    history.add(_snapshot(RiskLevel.SAFE, 800, 8))
    assert history.summary().trend == "decreasing"

    history.add(_snapshot(RiskLevel.SAFE, 900, 10))
    assert history.summary().trend == "stable"


def test_history_window_drops_old_snapshots() -> None:
    history = SnapshotHistory(window_ms=1000)
    history.add(_snapshot(RiskLevel.SAFE, 0, 50))
    history.add(_snapshot(RiskLevel.SAFE, 1500, 5))
    assert len(history) == 1
    assert history.summary() is None

    history.add(_snapshot(RiskLevel.SAFE, 1600, 6))
    assert history.summary().peak_count == 6


def test_history_replaces_amended_snapshot() -> None:
    history = SnapshotHistory()
    snapshot = _snapshot(RiskLevel.MODERATE, 10, 60)
    history.add(snapshot)
    history.add(snapshot.with_recommendations(["Open exit"]))
    assert len(history) == 1


def test_context_lists_status_recommendations_and_trend() -> None:
    snapshot = _snapshot(RiskLevel.HIGH, 10, count=112).with_recommendations(
        ["Open exit B", "Pause entry"]
    )
    summary = TrendSummary(peak_count=115, start_count=90, end_count=112, trend="increasing")

    text = build_context(snapshot, summary)
    assert text.splitlines()[:5] == [
        "Current crowd status:",
        "- Headcount: 112",
        "- Density: 0.56",
        "- Risk level: High",
        "- Recommendations: Open exit B, Pause entry",
    ]
    assert "Historical trend (last 5 min):" in text
    assert "- Peak headcount: 115" in text
    assert text.endswith("- Trend: the crowd size is currently increasing.")

    assert "Recommendations: none" in build_context(_snapshot(RiskLevel.SAFE, 0, count=3))
    assert build_context(None) == "No live data available."

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Dict, List, Optional

from analytics.crowd_density import CrowdSnapshot, RiskLevel
from analytics.risk_alerts import AlertEvent
from camera_adapters.video_source import Frame
from config.settings import AdvisorySettings, SchedulerSettings, Settings
from pipeline.session import CrowdAnalysisSession

FAST = Settings(
    scheduler=SchedulerSettings(min_interval_ms=0, poll_interval_ms=1),
    advisory=AdvisorySettings(enable=False),
)


class ListFrameSource:
    """Serves a fixed number of 100x100 frames."""

    def __init__(self, count: Optional[int]) -> None:
        self.count = count
        self.index = 0
        self.released = False

    def open(self) -> None:
        self.index = 0
        self.released = False

    def read(self) -> Optional[Frame]:
        if self.count is not None and self.index >= self.count:
            return None
        self.index += 1
        return Frame(index=self.index, width=100, height=100)

    def release(self) -> None:
        self.released = True


class ScriptedDetector:
    """Returns one scripted list of raw detections per call."""

    def __init__(self, frames: List[Any]) -> None:
        self.frames = frames
        self.calls = 0

    async def detect(self, frame: Frame) -> List[Dict[str, Any]]:
        result = self.frames[min(self.calls, len(self.frames) - 1)]
        self.calls += 1
        if isinstance(result, Exception):
            raise result
        return result


def _person(x: float, y: float, score: float = 0.9) -> Dict[str, Any]:
    return {"bbox": [x, y, 5, 5], "class": "person", "score": score}


def _crowd(count: int) -> List[Dict[str, Any]]:
    return [_person((i % 10) * 10, (i // 10) * 10) for i in range(count)]


def _counter_clock() -> Any:
    counter = itertools.count(1000)
    return lambda: next(counter)


def test_single_person_keeps_identity_without_advisory() -> None:
    fetches: List[CrowdSnapshot] = []
    snapshots: List[CrowdSnapshot] = []

    async def fetch(snapshot: CrowdSnapshot) -> List[str]:
        fetches.append(snapshot)
        return []

    box = [{"bbox": [20, 30, 10, 40], "class": "person", "score": 0.95}]
    session = CrowdAnalysisSession(
        ScriptedDetector([box, box, box]),
        ListFrameSource(3),
        settings=FAST,
        fetch_recommendations=fetch,
        wall_clock=_counter_clock(),
    )
    session.subscribe(snapshots.append)
    asyncio.run(session.run())

    assert len(snapshots) == 3
    assert [s.track_ids for s in snapshots] == [(0,), (0,), (0,)]
    assert all(s.total_count == 1 for s in snapshots)
    assert all(s.risk_level is RiskLevel.SAFE for s in snapshots)
    assert fetches == []
    first = snapshots[0].detections[0]
    assert (first.x, first.y, first.width, first.height) == (0.2, 0.3, 0.1, 0.4)


def test_filter_drops_low_confidence_and_other_classes() -> None:
    snapshots: List[CrowdSnapshot] = []
    frame = [
        _person(0, 0, score=0.6),
        {"bbox": [50, 50, 5, 5], "class": "dog", "score": 0.99},
        {"bbox": [70, 70, 5, 5], "score": 0.99},
        _person(10, 10, score=0.61),
    ]
    session = CrowdAnalysisSession(
        ScriptedDetector([frame]), ListFrameSource(1), settings=FAST, fetch_recommendations=None
    )
    session.subscribe(snapshots.append)
    asyncio.run(session.run())
    assert [s.total_count for s in snapshots] == [1]


def test_snapshot_timestamps_strictly_increase() -> None:
    snapshots: List[CrowdSnapshot] = []
    session = CrowdAnalysisSession(
        ScriptedDetector([[_person(0, 0)]]),
        ListFrameSource(5),
        settings=FAST,
        wall_clock=lambda: 5000,
    )
    session.subscribe(snapshots.append)
    asyncio.run(session.run())
    timestamps = [s.timestamp for s in snapshots]
    assert timestamps == sorted(set(timestamps))
    assert len(timestamps) == 5


def test_detector_failure_skips_frame_and_continues() -> None:
    snapshots: List[CrowdSnapshot] = []
    detector = ScriptedDetector([RuntimeError("model crashed"), [_person(0, 0)], [_person(0, 0)]])
    session = CrowdAnalysisSession(detector, ListFrameSource(3), settings=FAST)
    session.subscribe(snapshots.append)
    asyncio.run(session.run())
    assert detector.calls == 3
    assert len(snapshots) == 2


def test_escalation_fetches_once_and_amends_latest_snapshot() -> None:
    snapshots: List[CrowdSnapshot] = []
    alerts: List[AlertEvent] = []
    fetches: List[CrowdSnapshot] = []

    async def fetch(snapshot: CrowdSnapshot) -> List[str]:
        fetches.append(snapshot)
        return ["Open all exits"]

    session = CrowdAnalysisSession(
        ScriptedDetector([_crowd(60)]),
        ListFrameSource(1),
        settings=FAST,
        fetch_recommendations=fetch,
        wall_clock=_counter_clock(),
    )
    session.subscribe(snapshots.append)
    session.on_alert(alerts.append)
    asyncio.run(session.run())

    assert len(fetches) == 1
    assert fetches[0].risk_level is RiskLevel.MODERATE
    assert [s.recommendations for s in snapshots] == [(), ("Open all exits",)]
    assert snapshots[0].timestamp == snapshots[1].timestamp
    assert alerts == []


def test_high_risk_alert_fires_on_entry() -> None:
    alerts: List[AlertEvent] = []
    snapshots: List[CrowdSnapshot] = []
    big_frame = [_person((i % 11) * 9, (i // 11) * 9) for i in range(110)]
    session = CrowdAnalysisSession(
        ScriptedDetector([big_frame[:10], big_frame, big_frame, big_frame]),
        ListFrameSource(4),
        settings=FAST,
    )
    session.subscribe(snapshots.append)
    session.on_alert(alerts.append)
    asyncio.run(session.run())

    assert [s.risk_level for s in snapshots] == [
        RiskLevel.SAFE,
        RiskLevel.HIGH,
        RiskLevel.HIGH,
        RiskLevel.HIGH,
    ]
    assert len(alerts) == 1
    assert alerts[0].message == "Crowd headcount is now 110. Please take immediate action."


def test_stop_resets_tracks_and_drops_in_flight_advisory() -> None:
    published: List[CrowdSnapshot] = []

    async def scenario() -> CrowdAnalysisSession:
        gate = asyncio.Event()
        first_snapshot = asyncio.Event()

        async def fetch(snapshot: CrowdSnapshot) -> List[str]:
            await gate.wait()
            return ["late advice"]

        def on_snapshot(snapshot: CrowdSnapshot) -> None:
            published.append(snapshot)
            first_snapshot.set()

        source = ListFrameSource(None)
        session = CrowdAnalysisSession(
            ScriptedDetector([_crowd(60)]),
            source,
            settings=FAST,
            fetch_recommendations=fetch,
        )
        session.subscribe(on_snapshot)
        session.start()
        await asyncio.wait_for(first_snapshot.wait(), timeout=5)
        assert session.loading_recommendations

        await session.stop()
        count_at_stop = len(published)
        gate.set()
        await asyncio.sleep(0.02)

        assert len(published) == count_at_stop
        assert source.released
        assert len(session.tracker) == 0
        assert session.latest is None

        # Restarting begins again from identifier 0.
        published.clear()
        first_snapshot.clear()
        session.start()
        await asyncio.wait_for(first_snapshot.wait(), timeout=5)
        await session.stop()
        return session

    asyncio.run(scenario())
    assert published[0].track_ids == tuple(range(60))


def test_context_reports_live_status_and_trend() -> None:
    contexts: List[str] = []
    frames = [_crowd(10), _crowd(10), _crowd(20)]
    session = CrowdAnalysisSession(
        ScriptedDetector(frames),
        ListFrameSource(3),
        settings=FAST,
        wall_clock=_counter_clock(),
    )
    assert session.context() == "No live data available."
    session.subscribe(lambda snapshot: contexts.append(session.context()))
    asyncio.run(session.run())

    assert "Headcount: 10" in contexts[0]
    assert "Historical trend" not in contexts[0]
    assert "Headcount: 20" in contexts[-1]
    assert "Density: 0.10" in contexts[-1]
    assert "Peak headcount: 20" in contexts[-1]
    assert "the crowd size is currently increasing" in contexts[-1]
    assert session.context() == "No live data available."

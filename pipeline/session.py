"""Crowd analysis session.

A session owns one frame source, one perception backend and the tracking
and analysis state built from them. Each accepted tick runs::

    frame -> detector -> filter -> tracker -> density monitor -> snapshot
          -> high-risk alert, recommendation trigger -> subscribers

All state is touched from a single asyncio task; the detector call and
the advisory request are the only points where the session suspends.
Stopping the session cancels the tick loop, discards in-flight advisory
replies and resets tracking so a restart begins from an empty track set
and identifier 0.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Optional

from advisory.client import AdvisoryClient
from advisory.trigger import RecommendationTrigger
from analytics.crowd_density import CrowdDensityMonitor, CrowdSnapshot
from analytics.history import SnapshotHistory, TrendSummary, build_context
from analytics.risk_alerts import AlertEvent, HighRiskAlert
from camera_adapters.video_source import Frame
from config.settings import Settings
from detection.person_detector import PersonDetector, filter_person_detections
from scheduling.frame_scheduler import FrameScheduler, monotonic_ms
from tracking.iou_tracker import IoUTracker

logger = logging.getLogger(__name__)

SnapshotHandler = Callable[[CrowdSnapshot], None]
FetchRecommendations = Callable[[CrowdSnapshot], Awaitable[List[str]]]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class CrowdAnalysisSession:
    """Run detection, tracking and crowd analysis over a frame source.

    Parameters
    ----------
    detector:
        Perception backend with an async ``detect(frame)`` method.
    frame_source:
        Object with ``open``, ``read`` and ``release``; ``read`` returns a
        `Frame` or ``None`` when the source is exhausted.
    settings:
        Session configuration; defaults are used when omitted.
    fetch_recommendations:
        Coroutine function used for advisory requests. When omitted and
        the advisory service is enabled, an `AdvisoryClient` is built from
        the settings.
    metrics:
        Optional `MetricsExporter`.
    clock, wall_clock:
        Monotonic tick clock and wall clock, both in milliseconds.
    """

    def __init__(
        self,
        detector: PersonDetector,
        frame_source,
        settings: Optional[Settings] = None,
        fetch_recommendations: Optional[FetchRecommendations] = None,
        metrics=None,
        clock: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        self.settings = settings or Settings()
        self.detector = detector
        self.frame_source = frame_source
        self.metrics = metrics
        self.wall_clock = wall_clock

        tracking = self.settings.tracking
        analytics = self.settings.analytics
        self.tracker = IoUTracker(tracking.iou_threshold, tracking.grace_period_ms)
        self.monitor = CrowdDensityMonitor(
            area=analytics.area,
            moderate_threshold=analytics.moderate_threshold,
            high_threshold=analytics.high_threshold,
            congestion_min_count=analytics.congestion_min_count,
        )
        self.history = SnapshotHistory(analytics.history_window_ms)
        self.alert = HighRiskAlert()

        self.advisory_client: Optional[AdvisoryClient] = None
        if fetch_recommendations is None and self.settings.advisory.enable:
            self.advisory_client = AdvisoryClient(self.settings.advisory.url, self.settings.advisory.timeout)
            fetch_recommendations = self.advisory_client.fetch_recommendations
        self.trigger: Optional[RecommendationTrigger] = None
        if fetch_recommendations is not None:
            self.trigger = RecommendationTrigger(
                fetch_recommendations,
                self._publish_amendment,
                on_discard=self._record_stale,
            )

        self.scheduler = FrameScheduler(
            self._tick,
            min_interval_ms=self.settings.scheduler.min_interval_ms,
            poll_interval_ms=self.settings.scheduler.poll_interval_ms,
            clock=clock,
        )

        self.latest: Optional[CrowdSnapshot] = None
        self._subscribers: List[SnapshotHandler] = []
        self._active = False

    # ------------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._active

    @property
    def loading_recommendations(self) -> bool:
        return self.trigger is not None and self.trigger.pending

    def subscribe(self, handler: SnapshotHandler) -> None:
        """Receive every published snapshot, amendments included."""
        self._subscribers.append(handler)

    def on_alert(self, handler: Callable[[AlertEvent], None]) -> None:
        self.alert.add_handler(handler)

    def trend(self) -> Optional[TrendSummary]:
        return self.history.summary()

    def context(self) -> str:
        """Latest status and recent trend, as text for reports or an assistant."""
        return build_context(self.latest, self.trend(), self.history.window_ms)

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Open the frame source and schedule the tick loop.

        Must be called from a running event loop.
        """
        if self._active:
            return
        self._reset_state()
        self.frame_source.open()
        self._active = True
        self.scheduler.start()
        logger.info("Crowd analysis started")

    async def stop(self) -> None:
        """Stop ticking, drop in-flight advisory work and reset state."""
        if not self._active:
            return
        self._active = False
        await self.scheduler.stop()
        logger.info("Session summary\n%s", self.context())
        self._reset_state()
        self.frame_source.release()
        logger.info("Crowd analysis stopped")

    async def run(self) -> None:
        """Run until the frame source ends, then stop."""
        self.start()
        try:
            await self.scheduler.wait()
            if self._active and self.trigger is not None:
                await self.trigger.wait()
        finally:
            await self.stop()

    async def close(self) -> None:
        await self.stop()
        if self.advisory_client is not None:
            await self.advisory_client.close()

    def _reset_state(self) -> None:
        if self.trigger is not None:
            self.trigger.cancel()
        self.tracker.reset()
        self.history.clear()
        self.alert.reset()
        self.latest = None

    # ------------------------------------------------------------------
    async def _tick(self, now_ms: float) -> bool:
        frame = self.frame_source.read()
        if frame is None:
            return False
        started = time.perf_counter()
        try:
            raw_detections = await self.detector.detect(frame)
        except Exception:
            logger.exception("Person detector failed on frame %d", frame.index)
            if self.metrics is not None:
                self.metrics.record_error(self.settings.source_name, "detector")
            return True
        if not self._active:
            return False
        snapshot = self.process_detections(raw_detections, frame, now_ms)
        if self.metrics is not None:
            self.metrics.record_snapshot(
                self.settings.source_name,
                snapshot,
                time.perf_counter() - started,
                active_tracks=len(self.tracker),
            )
        return True

    def process_detections(self, raw_detections, frame: Frame, now_ms: float) -> CrowdSnapshot:
        """Apply one frame of raw detector output and publish the snapshot."""
        detection = self.settings.detection
        boxes = filter_person_detections(
            raw_detections,
            frame.width,
            frame.height,
            label=detection.label,
            confidence_threshold=detection.confidence_threshold,
        )
        tracks = self.tracker.update(boxes, now_ms)
        snapshot = self.monitor.analyze(tracks, self._next_timestamp(), previous=self.latest)
        self._publish(snapshot)
        self.alert.observe(snapshot)
        if self.trigger is not None and self.trigger.observe(snapshot) is not None:
            if self.metrics is not None:
                self.metrics.record_advisory_request(self.settings.source_name)
        return snapshot

    def _next_timestamp(self) -> int:
        timestamp = int(self.wall_clock())
        if self.latest is not None and timestamp <= self.latest.timestamp:
            timestamp = self.latest.timestamp + 1
        return timestamp

    def _publish(self, snapshot: CrowdSnapshot) -> None:
        self.latest = snapshot
        self.history.add(snapshot)
        for handler in self._subscribers:
            try:
                handler(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber %r failed", handler)

    def _publish_amendment(self, snapshot: CrowdSnapshot) -> None:
        if not self._active:
            return
        logger.info("Recommendations updated: %s", "; ".join(snapshot.recommendations))
        self._publish(snapshot)

    def _record_stale(self, snapshot: CrowdSnapshot) -> None:
        if self.metrics is not None:
            self.metrics.record_stale_response(self.settings.source_name)

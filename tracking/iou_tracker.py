"""Greedy IoU tracker for person detections.

Each live track keeps the last matched box and the time it was last seen.
On every accepted frame the tracker pairs existing tracks with incoming
detections by Intersection-over-Union, starts new tracks for whatever is
left over, and drops tracks that have gone unseen for longer than the
grace period. Assignment is greedy and one-to-one; it is not an optimal
bipartite matching.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in coordinates normalised to the frame size."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0:
            object.__setattr__(self, "width", 0.0)
        if self.height < 0:
            object.__setattr__(self, "height", 0.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Compute intersection over union between two boxes."""
    inter_x1 = max(a.x, b.x)
    inter_y1 = max(a.y, b.y)
    inter_x2 = min(a.x + a.width, b.x + b.width)
    inter_y2 = min(a.y + a.height, b.y + b.height)
    inter_area = max(0.0, inter_x2 - inter_x1) * max(0.0, inter_y2 - inter_y1)
    if inter_area <= 0:
        return 0.0
    union = a.area + b.area - inter_area
    return inter_area / union if union > 0 else 0.0


@dataclass
class _Track:
    track_id: int
    bbox: BoundingBox
    last_seen: float


@dataclass(frozen=True)
class TrackedPerson:
    """Read-only view of a live track handed to consumers."""

    track_id: int
    bbox: BoundingBox


class IoUTracker:
    """Assign stable identifiers to person boxes across frames.

    Parameters
    ----------
    iou_threshold : float
        A detection only continues a track when their IoU is strictly
        greater than this value.
    grace_period_ms : float
        Tracks not matched for longer than this are removed.
    """

    def __init__(self, iou_threshold: float = 0.4, grace_period_ms: float = 500.0) -> None:
        self.iou_threshold = iou_threshold
        self.grace_period_ms = grace_period_ms

        # dict preserves insertion order, i.e. track creation order
        self._tracks: Dict[int, _Track] = {}
        self._next_track_id = 0

    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Drop every track and restart identifiers from zero."""
        self._tracks.clear()
        self._next_track_id = 0

    def __len__(self) -> int:
        return len(self._tracks)

    def tracks(self) -> List[TrackedPerson]:
        """Return copies of the live tracks in creation order."""
        return [TrackedPerson(track.track_id, track.bbox) for track in self._tracks.values()]

    # ------------------------------------------------------------------
    def update(self, detections: Sequence[BoundingBox], now_ms: float) -> List[TrackedPerson]:
        """Update the track set with one frame of filtered detections.

        Parameters
        ----------
        detections:
            Normalised person boxes for the current frame, in detector order.
        now_ms:
            Timestamp of the frame in milliseconds.

        Returns
        -------
        list of TrackedPerson
            The live tracks after matching, creation and expiry.
        """
        detections = list(detections)

        # Step 1: greedy one-to-one association.
        matches = self._associate(detections)
        claimed_detections = set()
        for track_id, det_idx in matches:
            track = self._tracks[track_id]
            track.bbox = detections[det_idx]
            track.last_seen = now_ms
            claimed_detections.add(det_idx)

        # Step 2: unclaimed detections start new tracks.
        for det_idx, bbox in enumerate(detections):
            if det_idx in claimed_detections:
                continue
            track = _Track(track_id=self._next_track_id, bbox=bbox, last_seen=now_ms)
            self._tracks[track.track_id] = track
            self._next_track_id += 1
            logger.debug("Started track %d", track.track_id)

        # Step 3: expire tracks past the grace period.
        stale = [
            track_id
            for track_id, track in self._tracks.items()
            if now_ms - track.last_seen > self.grace_period_ms
        ]
        for track_id in stale:
            del self._tracks[track_id]
            logger.debug("Expired track %d", track_id)

        return self.tracks()

    # ------------------------------------------------------------------
    def _associate(self, detections: Sequence[BoundingBox]) -> List[Tuple[int, int]]:
        """Return ``(track_id, detection_index)`` pairs.

        Candidates above the threshold are ranked by IoU descending, then
        detection index, then track age, so ties resolve the same way on
        every run.
        """
        if not self._tracks or not detections:
            return []

        candidates: List[Tuple[float, int, int, int]] = []
        for order, (track_id, track) in enumerate(self._tracks.items()):
            for det_idx, det in enumerate(detections):
                overlap = iou(track.bbox, det)
                if overlap > self.iou_threshold:
                    candidates.append((overlap, det_idx, order, track_id))
        candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

        matches: List[Tuple[int, int]] = []
        used_tracks = set()
        used_detections = set()
        for _, det_idx, _, track_id in candidates:
            if track_id in used_tracks or det_idx in used_detections:
                continue
            matches.append((track_id, det_idx))
            used_tracks.add(track_id)
            used_detections.add(det_idx)
        return matches

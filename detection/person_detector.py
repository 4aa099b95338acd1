"""Person detection backends and detection filtering.

A perception backend receives a frame and returns raw detections in pixel
coordinates, each a mapping of the form::

    {"bbox": [x, y, width, height], "class": "person", "score": 0.87}

`filter_person_detections` turns that raw output into normalised
`BoundingBox` values for the tracker, keeping only confident person
detections. Two backends are registered: ``hog`` runs OpenCV's pretrained
HOG people detector, and ``replay`` plays back detections recorded in a
JSONL file, one frame per line.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import numpy as np

from camera_adapters.video_source import Frame
from tracking.iou_tracker import BoundingBox

from .registry import register_backend

logger = logging.getLogger(__name__)

RawDetection = Mapping[str, Any]


class PersonDetector(Protocol):
    """Boundary of the external perception model."""

    async def detect(self, frame: Frame) -> List[Dict[str, Any]]:
        ...


def filter_person_detections(
    raw_detections: Iterable[RawDetection],
    frame_width: float,
    frame_height: float,
    label: str = "person",
    confidence_threshold: float = 0.6,
) -> List[BoundingBox]:
    """Keep confident person detections and normalise them to the frame.

    Entries with a missing or malformed class, score or box are skipped
    rather than raising.

    Parameters
    ----------
    raw_detections : iterable of mappings
        Detector output with ``bbox`` (pixels, ``[x, y, w, h]``),
        ``class`` and ``score`` keys.
    frame_width, frame_height : float
        Frame dimensions in pixels used for normalisation.
    label : str
        Class label to keep.
    confidence_threshold : float
        Scores must be strictly greater than this value.

    Returns
    -------
    boxes : list of BoundingBox
        Normalised boxes in detector order.
    """
    if frame_width <= 0 or frame_height <= 0:
        return []
    boxes: List[BoundingBox] = []
    for det in raw_detections:
        try:
            if det.get("class") != label:
                continue
            score = det.get("score")
            if score is None or not float(score) > confidence_threshold:
                continue
            x, y, w, h = (float(v) for v in det["bbox"])
        except (AttributeError, KeyError, TypeError, ValueError):
            continue
        boxes.append(
            BoundingBox(
                x=x / frame_width,
                y=y / frame_height,
                width=w / frame_width,
                height=h / frame_height,
            )
        )
    return boxes


@register_backend("hog")
class HOGPersonDetector:
    """Detect people with OpenCV's HOG descriptor and pretrained SVM.

    Detection is CPU bound, so it runs in a worker thread to keep the
    event loop responsive while the frame is being processed.
    """

    def __init__(
        self,
        win_stride: tuple = (8, 8),
        padding: tuple = (16, 16),
        scale: float = 1.05,
        **_: Any,
    ) -> None:
        import cv2

        self.win_stride = win_stride
        self.padding = padding
        self.scale = scale
        self.hog = cv2.HOGDescriptor()
        self.hog.setSVMDetector(cv2.HOGDescriptor_getDefaultPeopleDetector())

    async def detect(self, frame: Frame) -> List[Dict[str, Any]]:
        if frame.image is None:
            return []
        return await asyncio.to_thread(self._detect_sync, frame.image)

    def _detect_sync(self, image: np.ndarray) -> List[Dict[str, Any]]:
        rects, weights = self.hog.detectMultiScale(
            image,
            winStride=self.win_stride,
            padding=self.padding,
            scale=self.scale,
        )
        weights = np.asarray(weights, dtype=float).reshape(-1)
        detections: List[Dict[str, Any]] = []
        for (x, y, w, h), weight in zip(rects, weights):
            detections.append(
                {
                    "bbox": [int(x), int(y), int(w), int(h)],
                    "class": "person",
                    "score": float(weight),
                }
            )
        return detections


@register_backend("replay")
class ReplayDetector:
    """Play back recorded detections, one JSON array per line.

    Blank lines are treated as empty frames. Once the recording is
    exhausted every further call returns no detections, unless ``loop``
    is set.
    """

    def __init__(self, replay_path: Optional[str | Path] = None, loop: bool = False, **_: Any) -> None:
        if replay_path is None:
            raise ValueError("ReplayDetector requires a replay_path")
        self.replay_path = Path(replay_path)
        self.loop = loop
        self._frames: List[List[Dict[str, Any]]] = []
        with self.replay_path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    self._frames.append([])
                    continue
                try:
                    self._frames.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed replay line %d in %s", line_no, self.replay_path)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._frames)

    async def detect(self, frame: Frame) -> List[Dict[str, Any]]:
        if self._cursor >= len(self._frames):
            if not self.loop or not self._frames:
                return []
            self._cursor = 0
        detections = self._frames[self._cursor]
        self._cursor += 1
        return detections

"""Frame sources feeding the analysis session.

`VideoSource` wraps OpenCV's `VideoCapture`, so the same adapter reads
local video files, RTSP URLs and USB webcams (given as an integer index).
`BlankFrameSource` produces image-less frames of a fixed size; it drives
backends such as detection replay that do not look at pixels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import cv2
import numpy as np


@dataclass(frozen=True)
class Frame:
    """A captured frame and its pixel dimensions."""

    index: int
    width: int
    height: int
    image: Optional[np.ndarray] = None


class VideoSource:
    """Adapter for OpenCV capture devices, files and streams.

    Attributes
    ----------
    source : str or int
        File path, stream URL, or webcam index.
    capture : Optional[cv2.VideoCapture]
        The underlying OpenCV video capture object.
    """

    def __init__(self, source: Union[str, int]) -> None:
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.source = source
        self.capture: Optional[cv2.VideoCapture] = None
        self._index = 0

    def open(self) -> None:
        """Open the source for reading."""
        if self.capture is None:
            self.capture = cv2.VideoCapture(self.source)
        if not self.capture.isOpened():
            raise RuntimeError(f"Failed to open video source: {self.source}")

    def read(self) -> Optional[Frame]:
        """Read the next frame, or return None when the source is exhausted."""
        if self.capture is None:
            raise RuntimeError("VideoSource: source not opened. Call open() first.")
        ret, image = self.capture.read()
        if not ret or image is None:
            return None
        self._index += 1
        height, width = image.shape[:2]
        return Frame(index=self._index, width=width, height=height, image=image)

    def release(self) -> None:
        """Release the capture device."""
        if self.capture is not None:
            self.capture.release()
            self.capture = None


class BlankFrameSource:
    """Source of image-less frames with fixed dimensions.

    Produces `max_frames` frames, or runs forever when it is None.
    """

    def __init__(self, width: int = 640, height: int = 480, max_frames: Optional[int] = None) -> None:
        self.width = width
        self.height = height
        self.max_frames = max_frames
        self._index = 0

    def open(self) -> None:
        self._index = 0

    def read(self) -> Optional[Frame]:
        if self.max_frames is not None and self._index >= self.max_frames:
            return None
        self._index += 1
        return Frame(index=self._index, width=self.width, height=self.height)

    def release(self) -> None:
        pass

"""Camera adapters package.

This package provides a uniform interface for capturing frames from video
files, RTSP streams and webcams. Each adapter exposes `open`, `read` and
`release`; `read` returns a `Frame` or ``None`` once the source ends.
"""

from .video_source import BlankFrameSource, Frame, VideoSource

__all__ = [
    "BlankFrameSource",
    "Frame",
    "VideoSource",
]

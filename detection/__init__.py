"""Detection package.

This package wraps the external perception model. Each backend exposes an
asynchronous `detect` method that accepts a frame and returns raw person
detections in pixel coordinates; `filter_person_detections` normalises and
filters them before tracking.
"""

from .person_detector import (
    HOGPersonDetector,
    PersonDetector,
    ReplayDetector,
    filter_person_detections,
)
from .registry import available_backends, build_person_detector, register_backend

__all__ = [
    "HOGPersonDetector",
    "PersonDetector",
    "ReplayDetector",
    "filter_person_detections",
    "available_backends",
    "build_person_detector",
    "register_backend",
]

"""Tracking package.

This package assigns consistent identifiers to people detected in
successive frames. The implementation is a greedy Intersection-over-Union
tracker with a time-based grace period for missed detections.
"""

from .iou_tracker import BoundingBox, IoUTracker, TrackedPerson, iou

__all__ = ["BoundingBox", "IoUTracker", "TrackedPerson", "iou"]

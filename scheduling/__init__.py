"""Scheduling package.

Provides the throttled, cancellable loop that paces perception model
calls for an analysis session.
"""

from .frame_scheduler import FrameScheduler, FrameThrottle, monotonic_ms

__all__ = ["FrameScheduler", "FrameThrottle", "monotonic_ms"]

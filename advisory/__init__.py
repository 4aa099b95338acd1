"""Advisory package.

Requests crowd-management recommendations from an external text service
whenever the crowd risk escalates, and discards replies that arrive after
newer data has superseded them.
"""

from .client import (
    EMPTY_RECOMMENDATION,
    FALLBACK_RECOMMENDATION,
    AdvisoryClient,
    build_payload,
    build_prompt,
)
from .trigger import RecommendationTrigger, should_request

__all__ = [
    "EMPTY_RECOMMENDATION",
    "FALLBACK_RECOMMENDATION",
    "AdvisoryClient",
    "build_payload",
    "build_prompt",
    "RecommendationTrigger",
    "should_request",
]

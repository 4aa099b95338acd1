"""Edge-triggered recommendation fetching.

`RecommendationTrigger` watches the snapshot stream and requests advisory
text once per risk escalation: whenever the risk level changes to
``Moderate`` or ``High``. Sustained levels and drops to ``Safe`` do not
trigger a request.

Responses arrive out of band. Each in-flight request remembers the
timestamp of the snapshot it was made for, and its result is applied only
if no strictly newer snapshot has been observed since and the session has
not been stopped in the meantime. Otherwise the result is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, FrozenSet, List, Optional, Set, Tuple

from analytics.crowd_density import CrowdSnapshot, RiskLevel

from .client import FALLBACK_RECOMMENDATION

logger = logging.getLogger(__name__)

FetchRecommendations = Callable[[CrowdSnapshot], Awaitable[List[str]]]
PublishSnapshot = Callable[[CrowdSnapshot], None]

_LEVELS: Tuple[Optional[RiskLevel], ...] = (None, RiskLevel.SAFE, RiskLevel.MODERATE, RiskLevel.HIGH)

# (previous, current) pairs that warrant a fresh recommendation request.
ESCALATIONS: FrozenSet[Tuple[Optional[RiskLevel], RiskLevel]] = frozenset(
    (previous, current)
    for previous in _LEVELS
    for current in (RiskLevel.MODERATE, RiskLevel.HIGH)
    if previous != current
)


def should_request(previous: Optional[RiskLevel], current: RiskLevel) -> bool:
    return (previous, current) in ESCALATIONS


class RecommendationTrigger:
    """Request recommendations on risk escalation and fence stale replies.

    Parameters
    ----------
    fetch:
        Coroutine function returning recommendations for a snapshot.
    publish:
        Called with the amended snapshot when a response is applied.
    on_discard:
        Optional hook called with the originating snapshot whenever a
        response is dropped.
    """

    def __init__(
        self,
        fetch: FetchRecommendations,
        publish: PublishSnapshot,
        on_discard: Optional[PublishSnapshot] = None,
    ) -> None:
        self.fetch = fetch
        self.publish = publish
        self.on_discard = on_discard
        self.previous: Optional[RiskLevel] = None
        self.latest_timestamp: Optional[int] = None
        self.requests = 0
        self.applied = 0
        self.discarded = 0
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """True while at least one request is in flight."""
        return any(not t.done() for t in self._tasks)

    def observe(self, snapshot: CrowdSnapshot) -> Optional[asyncio.Task]:
        """Register a new snapshot; start a request if the risk escalated."""
        if self.latest_timestamp is None or snapshot.timestamp > self.latest_timestamp:
            self.latest_timestamp = snapshot.timestamp

        previous, self.previous = self.previous, snapshot.risk_level
        if not should_request(previous, snapshot.risk_level):
            return None

        self.requests += 1
        logger.info(
            "Risk changed %s -> %s, requesting recommendations",
            previous.value if previous else "none",
            snapshot.risk_level.value,
        )
        task = asyncio.get_running_loop().create_task(self._request(snapshot, self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _request(self, snapshot: CrowdSnapshot, generation: int) -> None:
        try:
            recommendations = await self.fetch(snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Recommendation fetch failed")
            recommendations = [FALLBACK_RECOMMENDATION]
        self._apply(snapshot, generation, recommendations)

    def _apply(self, snapshot: CrowdSnapshot, generation: int, recommendations: List[str]) -> None:
        if generation != self._generation:
            logger.debug("Dropping recommendations from a stopped session")
            return
        if self.latest_timestamp is not None and self.latest_timestamp > snapshot.timestamp:
            self.discarded += 1
            logger.debug(
                "Dropping stale recommendations for snapshot %d (latest %d)",
                snapshot.timestamp,
                self.latest_timestamp,
            )
            if self.on_discard is not None:
                self.on_discard(snapshot)
            return
        self.applied += 1
        self.publish(snapshot.with_recommendations(recommendations))

    async def wait(self) -> None:
        """Wait for every in-flight request to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Forget all state and neutralise in-flight requests."""
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.previous = None
        self.latest_timestamp = None

"""One-shot alerts on entry into high crowd risk.

`HighRiskAlert` watches the snapshot stream and fires its handlers once
each time the risk level enters ``High`` from any other state. A sustained
``High`` does not fire again; dropping out of ``High`` re-arms it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Tuple

from .crowd_density import CrowdSnapshot, RiskLevel

logger = logging.getLogger(__name__)

ALERT_TITLE = "High Risk Alert!"

# (previous, current) pairs that raise an alert. ``None`` is the state
# before the first snapshot of a session.
ALERT_TRANSITIONS: FrozenSet[Tuple[Optional[RiskLevel], RiskLevel]] = frozenset(
    (previous, RiskLevel.HIGH) for previous in (None, RiskLevel.SAFE, RiskLevel.MODERATE)
)


@dataclass(frozen=True)
class AlertEvent:
    title: str
    message: str
    snapshot: CrowdSnapshot

    def to_dict(self) -> dict:
        return {
            "type": "high_risk",
            "title": self.title,
            "message": self.message,
            "totalCount": self.snapshot.total_count,
            "timestamp": self.snapshot.timestamp,
        }


def alert_message(total_count: int) -> str:
    return f"Crowd headcount is now {total_count}. Please take immediate action."


class HighRiskAlert:
    """Edge-triggered high-risk notifier."""

    def __init__(self, handlers: Optional[List[Callable[[AlertEvent], None]]] = None) -> None:
        self.handlers: List[Callable[[AlertEvent], None]] = list(handlers or [])
        self.previous: Optional[RiskLevel] = None

    def add_handler(self, handler: Callable[[AlertEvent], None]) -> None:
        self.handlers.append(handler)

    def reset(self) -> None:
        self.previous = None

    def observe(self, snapshot: CrowdSnapshot) -> Optional[AlertEvent]:
        """Record the snapshot's risk level and return the alert if one fired."""
        transition = (self.previous, snapshot.risk_level)
        self.previous = snapshot.risk_level
        if transition not in ALERT_TRANSITIONS:
            return None

        event = AlertEvent(ALERT_TITLE, alert_message(snapshot.total_count), snapshot)
        logger.warning("%s %s", event.title, event.message)
        for handler in self.handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Alert handler %r failed", handler)
        return event

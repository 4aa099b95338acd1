"""Crowd analytics: density and risk, alerts, and rolling history."""

from .crowd_density import (
    CongestionPoint,
    CrowdDensityMonitor,
    CrowdSnapshot,
    RiskLevel,
    classify_risk,
)
from .history import SnapshotHistory, TrendSummary, build_context
from .risk_alerts import AlertEvent, HighRiskAlert

__all__ = [
    "CongestionPoint",
    "CrowdDensityMonitor",
    "CrowdSnapshot",
    "RiskLevel",
    "classify_risk",
    "SnapshotHistory",
    "TrendSummary",
    "build_context",
    "AlertEvent",
    "HighRiskAlert",
]

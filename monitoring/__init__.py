"""Monitoring package: Prometheus metrics for analysis sessions."""

from .metrics import MetricsExporter

__all__ = ["MetricsExporter"]

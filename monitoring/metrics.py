"""Prometheus metrics exporter for crowd analysis sessions."""

from __future__ import annotations

import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, REGISTRY, start_http_server

from analytics.crowd_density import CrowdSnapshot

_server_lock = threading.Lock()
_server_started_ports: set[int] = set()


class MetricsExporter:
    """Expose crowd state and pipeline health via Prometheus.

    Parameters
    ----------
    port : int, optional
        Serve ``/metrics`` on this port. ``None`` registers the metrics
        without starting an HTTP server.
    registry : CollectorRegistry, optional
        Registry to attach the metrics to; defaults to the global one.
    """

    def __init__(self, port: Optional[int] = 9095, registry: Optional[CollectorRegistry] = None) -> None:
        self.port = port
        self.registry = registry if registry is not None else REGISTRY
        if port is not None:
            with _server_lock:
                if port not in _server_started_ports:
                    start_http_server(port, registry=self.registry)
                    _server_started_ports.add(port)

        self.tick_latency = Histogram(
            "crowdsense_tick_latency_seconds",
            "Per-tick detection, tracking and analysis latency",
            ["source"],
            registry=self.registry,
        )
        self.headcount = Gauge(
            "crowdsense_headcount",
            "People counted in the latest snapshot",
            ["source"],
            registry=self.registry,
        )
        self.active_tracks = Gauge(
            "crowdsense_active_tracks",
            "Tracks held by the tracker, including ones inside their grace period",
            ["source"],
            registry=self.registry,
        )
        self.density = Gauge(
            "crowdsense_density",
            "Crowd density over the reference area",
            ["source"],
            registry=self.registry,
        )
        self.risk_level = Gauge(
            "crowdsense_risk_level",
            "Crowd risk level (0=Safe, 1=Moderate, 2=High)",
            ["source"],
            registry=self.registry,
        )
        self.advisory_requests = Counter(
            "crowdsense_advisory_requests_total",
            "Recommendation requests sent to the advisory service",
            ["source"],
            registry=self.registry,
        )
        self.stale_responses = Counter(
            "crowdsense_advisory_stale_responses_total",
            "Advisory responses discarded because newer data superseded them",
            ["source"],
            registry=self.registry,
        )
        self.errors = Counter(
            "crowdsense_pipeline_errors_total",
            "Count of runtime errors by type",
            ["source", "category"],
            registry=self.registry,
        )

    def record_snapshot(
        self,
        source: str,
        snapshot: CrowdSnapshot,
        latency_s: float,
        active_tracks: Optional[int] = None,
    ) -> None:
        self.tick_latency.labels(source).observe(max(latency_s, 0.0))
        self.headcount.labels(source).set(snapshot.total_count)
        self.active_tracks.labels(source).set(
            snapshot.total_count if active_tracks is None else active_tracks
        )
        self.density.labels(source).set(snapshot.density)
        self.risk_level.labels(source).set(snapshot.risk_level.severity)

    def record_advisory_request(self, source: str) -> None:
        self.advisory_requests.labels(source).inc()

    def record_stale_response(self, source: str) -> None:
        self.stale_responses.labels(source).inc()

    def record_error(self, source: str, category: str) -> None:
        self.errors.labels(source, category).inc()

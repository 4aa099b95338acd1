"""Session configuration loaded from YAML.

The YAML file is organised in sections (``scheduler``, ``detection``,
``tracking``, ``analytics``, ``advisory``, ``storage``, ``monitoring``,
``camera``). Every key is optional; missing keys fall back to the
defaults below. A couple of deployment-specific values can be overridden
from the environment:

    CROWDSENSE_ADVISORY_URL   advisory.url
    CROWDSENSE_LOG_LEVEL      log_level

Values are validated once at load time and a `ValueError` is raised for
anything out of range.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml


@dataclass(frozen=True)
class SchedulerSettings:
    min_interval_ms: float = 100.0
    poll_interval_ms: float = 16.0


@dataclass(frozen=True)
class DetectionSettings:
    backend: str = "hog"
    label: str = "person"
    confidence_threshold: float = 0.6
    replay_path: Optional[str] = None
    replay_loop: bool = False


@dataclass(frozen=True)
class TrackingSettings:
    iou_threshold: float = 0.4
    grace_period_ms: float = 500.0


@dataclass(frozen=True)
class AnalyticsSettings:
    area: float = 200.0
    moderate_threshold: float = 0.3
    high_threshold: float = 0.55
    congestion_min_count: int = 5
    history_window_ms: int = 5 * 60 * 1000


@dataclass(frozen=True)
class AdvisorySettings:
    enable: bool = True
    url: str = "http://localhost:8080/recommendations"
    timeout: float = 10.0


@dataclass(frozen=True)
class StorageSettings:
    enable: bool = True
    log_dir: str = "logs"


@dataclass(frozen=True)
class MonitoringSettings:
    enable: bool = False
    port: int = 9095


@dataclass(frozen=True)
class CameraSettings:
    source: Union[str, int] = 0
    width: int = 640
    height: int = 480


@dataclass(frozen=True)
class Settings:
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    tracking: TrackingSettings = field(default_factory=TrackingSettings)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    advisory: AdvisorySettings = field(default_factory=AdvisorySettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)
    camera: CameraSettings = field(default_factory=CameraSettings)
    source_name: str = "default"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate(self)


def _section(cls, values: Optional[Mapping[str, Any]]):
    values = dict(values or {})
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**values)


def _check_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


def validate(settings: Settings) -> None:
    """Raise ValueError if any setting is out of range."""
    if settings.scheduler.min_interval_ms < 0:
        raise ValueError("scheduler.min_interval_ms must not be negative")
    if settings.scheduler.poll_interval_ms <= 0:
        raise ValueError("scheduler.poll_interval_ms must be positive")
    _check_fraction("detection.confidence_threshold", settings.detection.confidence_threshold)
    _check_fraction("tracking.iou_threshold", settings.tracking.iou_threshold)
    if settings.tracking.grace_period_ms < 0:
        raise ValueError("tracking.grace_period_ms must not be negative")
    analytics = settings.analytics
    if analytics.area <= 0:
        raise ValueError("analytics.area must be positive")
    if not 0 <= analytics.moderate_threshold < analytics.high_threshold:
        raise ValueError("analytics thresholds must satisfy 0 <= moderate_threshold < high_threshold")
    if analytics.congestion_min_count < 0:
        raise ValueError("analytics.congestion_min_count must not be negative")
    if analytics.history_window_ms <= 0:
        raise ValueError("analytics.history_window_ms must be positive")
    if settings.advisory.timeout <= 0:
        raise ValueError("advisory.timeout must be positive")
    if settings.camera.width <= 0 or settings.camera.height <= 0:
        raise ValueError("camera.width and camera.height must be positive")


def settings_from_dict(config: Optional[Mapping[str, Any]], environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build `Settings` from a parsed YAML mapping plus environment overrides."""
    config = dict(config or {})
    environ = os.environ if environ is None else environ

    advisory = dict(config.get("advisory") or {})
    if environ.get("CROWDSENSE_ADVISORY_URL"):
        advisory["url"] = environ["CROWDSENSE_ADVISORY_URL"]

    return Settings(
        scheduler=_section(SchedulerSettings, config.get("scheduler")),
        detection=_section(DetectionSettings, config.get("detection")),
        tracking=_section(TrackingSettings, config.get("tracking")),
        analytics=_section(AnalyticsSettings, config.get("analytics")),
        advisory=_section(AdvisorySettings, advisory),
        storage=_section(StorageSettings, config.get("storage")),
        monitoring=_section(MonitoringSettings, config.get("monitoring")),
        camera=_section(CameraSettings, config.get("camera")),
        source_name=str(config.get("source_name", "default")),
        log_level=str(environ.get("CROWDSENSE_LOG_LEVEL") or config.get("log_level", "INFO")).upper(),
    )


def load_config(config_path: Union[str, Path], environ: Optional[Mapping[str, str]] = None) -> Settings:
    with open(config_path, "r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}
    return settings_from_dict(raw, environ)

"""Entry point for running a crowd analysis session.

This script stitches together the components from the various packages to
process a video stream: detect people, track them across frames, derive
crowd density and risk, request advisory recommendations on escalation,
and log snapshots and alerts. It reads configuration parameters from a
YAML file.

Usage
-----
```bash
crowdsense --config configs/default.yaml
python run_pipeline.py --config configs/default.yaml --replay recorded.jsonl
```
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
from typing import Optional, Sequence

from camera_adapters import BlankFrameSource, VideoSource
from config.settings import Settings, load_config, settings_from_dict
from detection import build_person_detector
from monitoring.metrics import MetricsExporter
from pipeline.session import CrowdAnalysisSession
from storage.snapshot_logger import SnapshotLogger

logger = logging.getLogger("crowdsense")


def create_frame_source(settings: Settings, detector):
    if settings.detection.backend == "replay":
        # A replay ends with its recording unless it loops.
        max_frames = None if settings.detection.replay_loop else len(detector)
        return BlankFrameSource(settings.camera.width, settings.camera.height, max_frames=max_frames)
    return VideoSource(settings.camera.source)


def create_detector(settings: Settings):
    detection = settings.detection
    return build_person_detector(
        detection.backend,
        replay_path=detection.replay_path,
        loop=detection.replay_loop,
    )


def build_session(settings: Settings) -> CrowdAnalysisSession:
    metrics: Optional[MetricsExporter] = None
    if settings.monitoring.enable:
        metrics = MetricsExporter(port=settings.monitoring.port)

    detector = create_detector(settings)
    session = CrowdAnalysisSession(
        detector,
        create_frame_source(settings, detector),
        settings=settings,
        metrics=metrics,
    )

    if settings.storage.enable:
        snapshot_logger = SnapshotLogger(settings.storage.log_dir)
        session.subscribe(lambda s: snapshot_logger.log_snapshot(s, settings.source_name))
        session.on_alert(lambda e: snapshot_logger.log_alert(e, settings.source_name))

    def report(snapshot) -> None:
        logger.info(
            "count=%d density=%.3f risk=%s hotspot=%s",
            snapshot.total_count,
            snapshot.density,
            snapshot.risk_level.value,
            [(round(p.x, 2), round(p.y, 2)) for p in snapshot.congestion_points] or "none",
        )

    session.subscribe(report)
    return session


async def run_session(settings: Settings) -> None:
    session = build_session(settings)
    try:
        await session.run()
    finally:
        await session.close()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the crowd analysis pipeline.")
    parser.add_argument("--config", type=str, help="Path to configuration file.")
    parser.add_argument("--source", type=str, help="Video file, stream URL or webcam index.")
    parser.add_argument("--replay", type=str, help="Replay detections from a JSONL recording.")
    parser.add_argument("--no-advisory", action="store_true", help="Disable recommendation requests.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    settings = load_config(args.config) if args.config else settings_from_dict({})

    if args.source is not None:
        settings = dataclasses.replace(
            settings, camera=dataclasses.replace(settings.camera, source=args.source)
        )
    if args.replay is not None:
        settings = dataclasses.replace(
            settings,
            detection=dataclasses.replace(settings.detection, backend="replay", replay_path=args.replay),
        )
    if args.no_advisory:
        settings = dataclasses.replace(
            settings, advisory=dataclasses.replace(settings.advisory, enable=False)
        )

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run_session(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()

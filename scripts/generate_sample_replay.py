"""Generate a synthetic detection recording for demos and tests.

The recording simulates a crowd that builds up past the high-risk density
and then disperses. Each line holds the raw detections of one frame in
pixel coordinates, ready for the ``replay`` detection backend::

    python scripts/generate_sample_replay.py --frames 300
    crowdsense --replay sample_data/sample_replay.jsonl
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List

import numpy as np


def generate_frames(
    frame_count: int = 300,
    peak_people: int = 130,
    width: int = 640,
    height: int = 480,
    seed: int = 7,
) -> List[List[Dict[str, object]]]:
    """Return per-frame detections for a crowd that rises and falls.

    People random-walk a few pixels per frame, so consecutive boxes of the
    same person overlap enough to keep their track.
    """
    rng = np.random.default_rng(seed)
    box_w, box_h = 12, 30
    positions = np.column_stack(
        (
            rng.uniform(0, width - box_w, peak_people),
            rng.uniform(0, height - box_h, peak_people),
        )
    )
    scores = rng.uniform(0.65, 0.99, peak_people)

    frames: List[List[Dict[str, object]]] = []
    for idx in range(frame_count):
        # Triangular ramp: empty -> peak at the midpoint -> empty.
        phase = 1.0 - abs(2.0 * idx / max(frame_count - 1, 1) - 1.0)
        visible = int(round(phase * peak_people))

        positions += rng.normal(0.0, 1.0, positions.shape)
        positions[:, 0] = np.clip(positions[:, 0], 0, width - box_w)
        positions[:, 1] = np.clip(positions[:, 1], 0, height - box_h)

        frames.append(
            [
                {
                    "bbox": [round(float(x), 1), round(float(y), 1), box_w, box_h],
                    "class": "person",
                    "score": round(float(score), 3),
                }
                for (x, y), score in zip(positions[:visible], scores[:visible])
            ]
        )
    return frames


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a synthetic replay recording.")
    parser.add_argument("--frames", type=int, default=300)
    parser.add_argument("--peak", type=int, default=130)
    parser.add_argument("--output", type=str, default=None)
    args = parser.parse_args()

    out_path = Path(args.output) if args.output else (
        Path(__file__).resolve().parent.parent / "sample_data" / "sample_replay.jsonl"
    )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as f:
        for frame in generate_frames(args.frames, args.peak):
            f.write(json.dumps(frame) + "\n")
    print(f"Sample replay written to {out_path}")


if __name__ == "__main__":
    main()

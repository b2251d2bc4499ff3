import argparse
import logging
import os
import time

import numpy as np
from tqdm import tqdm

from particlemorph.core import utils
from particlemorph.core.grid import ParticleGrid
from particlemorph.core.settings import Algorithm, GenerationSettings
from particlemorph.jobs.channel import Cancelled, Done, Error, PreviewUpdate, Progress
from particlemorph.jobs.runner import JobManager
from particlemorph.motion.simulator import MotionSimulator
from particlemorph.motion.state import MotionParams, MotionStyle, PlaybackSpeed
from particlemorph.visualization.preview import PreviewCollector, render_assignment_preview

POLL_INTERVAL_S = 0.05


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="particlemorph: move every pixel of one image onto another.")
    parser.add_argument("--source", required=True, help="Path to source image")
    parser.add_argument("--target", required=True, help="Path to target image")
    parser.add_argument("--sidelen", type=int, default=128, help="Resize both images to sidelen x sidelen (64-256)")
    parser.add_argument("--proximity", type=int, default=13, help="Proximity importance (0-50), 0 matches on color only")
    parser.add_argument("--algorithm", choices=[a.value for a in Algorithm], default=Algorithm.OPTIMAL.value)
    parser.add_argument("--metric", choices=["rgb", "lab"], default="rgb", help="Color distance")
    parser.add_argument("--generations", type=int, default=120, help="Heuristic generations")
    parser.add_argument("--swaps-per-pixel", type=float, default=1.0, help="Heuristic swap attempts per pixel per generation")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--out", default="out_morph", help="Output directory")
    parser.add_argument("--frames", action="store_true", help="Write solver preview PNGs")
    parser.add_argument("--style", choices=[s.value for s in MotionStyle], default=MotionStyle.LINEAR.value)
    parser.add_argument("--speed", choices=[s.name.lower() for s in PlaybackSpeed], default="normal", help="Playback speed for --ticks")
    parser.add_argument("--ticks", type=int, default=0, help="Simulate this many motion ticks and save the last frame")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def settings_from_args(args) -> GenerationSettings:
    return GenerationSettings(
        sidelen=args.sidelen,
        proximity_importance=args.proximity,
        algorithm=Algorithm(args.algorithm),
        color_metric=args.metric,
        seed=args.seed,
        generations=args.generations,
        swaps_per_pixel=args.swaps_per_pixel,
    )


def run_job(manager: JobManager, source, target, settings, collector=None):
    job = manager.start(source, target, settings)
    bar = tqdm(total=100, desc=settings.algorithm.value, unit="%")
    try:
        while True:
            for msg in manager.poll():
                if isinstance(msg, Progress):
                    bar.update(int(msg.fraction * 100) - bar.n)
                elif isinstance(msg, PreviewUpdate) and collector is not None:
                    collector.add(msg.image)
                elif isinstance(msg, (Done, Cancelled, Error)):
                    return msg
            time.sleep(POLL_INTERVAL_S)
    except KeyboardInterrupt:
        job.cancel()
        job.join()
        return Cancelled()
    finally:
        bar.close()


def render_frame(frame, sidelen: int) -> np.ndarray:
    """Splat particles onto a sidelen x sidelen canvas (nearest pixel)."""
    canvas = np.zeros((sidelen, sidelen, 3), dtype=np.uint8)
    xy = np.clip((frame.positions * sidelen).astype(np.int64), 0, sidelen - 1)
    canvas[xy[:, 1], xy[:, 0]] = frame.colors
    return canvas


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    settings = settings_from_args(args)
    os.makedirs(args.out, exist_ok=True)

    print("Loading images...")
    source = ParticleGrid.from_path(args.source, args.sidelen)
    target = ParticleGrid.from_path(args.target, args.sidelen)

    collector = PreviewCollector(out_dir=os.path.join(args.out, "previews"), keep_frames=False) if args.frames else None

    print(f"Running {settings.algorithm.value} solver on {len(source)} particles...")
    result = run_job(JobManager(), source, target, settings, collector)

    if isinstance(result, Cancelled):
        print("Cancelled.")
        return 1
    if isinstance(result, Error):
        print(f"Error: {result.message}")
        return 1

    stats = result.stats
    out_path = os.path.join(args.out, "result.png")
    utils.save_image(render_assignment_preview(source.colors, result.assignment, args.sidelen), args.sidelen, out_path)
    print(f"Cost: {stats['final_cost']:.4f} (identity {stats['identity_cost']:.4f}) • Time: {stats['duration_s']:.2f}s")
    print(f"Saved rearranged image to {out_path}")

    if args.ticks > 0:
        sim = MotionSimulator(source, target, result.assignment, MotionParams(style=MotionStyle(args.style), loop_playback=False))
        state = sim.new_state(args.seed)
        state.speed = PlaybackSpeed[args.speed.upper()]
        print(f"Simulating {args.ticks} ticks of {sim.style.label} motion at {state.speed.label}...")
        sim.prepare_play(state)
        frame = sim.frame(state)
        for _ in range(args.ticks):
            frame = sim.update(state, args.sidelen)
        frame_path = os.path.join(args.out, "motion_frame.png")
        utils.save_image(render_frame(frame, args.sidelen), args.sidelen, frame_path)
        print(f"Saved motion frame at phase {state.position:.3f} to {frame_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

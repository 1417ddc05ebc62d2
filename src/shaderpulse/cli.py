"""
CLI entry point for offline replay.

Runs a track's analysis through the engine with a simulated frame clock
and writes the per-frame uniform manifest.

Usage:
    shaderpulse-replay <analysis.json> [options]
    python -m shaderpulse <analysis.json> [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable

from shaderpulse.config import EngineConfig, load_config
from shaderpulse.core.composer import UniformRecord
from shaderpulse.core.errors import ShaderPulseError
from shaderpulse.engine import ReactiveEngine
from shaderpulse.io.exporter import ManifestMetadata, UniformExporter
from shaderpulse.io.loader import TrackAnalysis, load_analysis
from shaderpulse.session import AudioSession


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def replay(
    analysis: TrackAnalysis,
    config: EngineConfig,
    fps: int = 60,
    max_duration: float | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
) -> list[UniformRecord]:
    """
    Tick an engine through a whole track at a fixed frame rate.

    The percentile table is built synchronously so replays are
    reproducible.

    Args:
        analysis: Loaded analyzer output.
        config: Engine configuration.
        fps: Simulated frame rate.
        max_duration: Stop after this many seconds.
        progress_callback: Called with (frame, total) after each frame.

    Returns:
        One UniformRecord per frame.
    """
    duration = analysis.duration
    if max_duration is not None:
        duration = min(duration, max_duration)
    n_frames = max(1, int(duration * fps))
    frame_ms = 1000.0 / fps

    records = []
    with ReactiveEngine(config, session=AudioSession(background=False)) as engine:
        engine.load_track(analysis.history, analysis.timeline)
        engine.session.play()

        for i in range(n_frames):
            records.append(engine.tick(now_ms=i * frame_ms))
            engine.session.advance(1.0 / fps)
            if progress_callback is not None:
                progress_callback(i + 1, n_frames)

    return records


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="shaderpulse-replay",
        description="Replay an audio analysis through the parameter engine",
    )

    parser.add_argument(
        "analysis",
        type=Path,
        help="Analyzer output (JSON with featureHistory and timeline)",
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output path (default: <analysis>_uniforms.json)",
    )
    parser.add_argument("--fps", type=int, default=60, help="Simulated frame rate (default: 60)")
    parser.add_argument(
        "--mode", type=str, default=None,
        choices=["adaptive", "legacy"],
        help="Normalization mode (default: adaptive)",
    )
    parser.add_argument(
        "--policy", type=str, default=None,
        choices=["strobe", "punch"],
        help="Beat response policy (default: strobe)",
    )
    parser.add_argument(
        "--sensitivity", type=float, default=None,
        help="Adaptive sensitivity, 0-1 (default: 0.5)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for beat colors")
    parser.add_argument("--config", type=Path, default=None, help="Engine config JSON")
    parser.add_argument(
        "--max-duration", type=float, default=None,
        help="Limit replay to N seconds",
    )
    parser.add_argument(
        "--format", type=str, default="json",
        choices=["json", "numpy"],
        help="Output format (default: json)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if not args.analysis.exists():
        print(f"Error: Analysis file not found: {args.analysis}", file=sys.stderr)
        sys.exit(1)
    if args.fps <= 0:
        print("Error: --fps must be positive", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config(args.config) if args.config else EngineConfig()
        analysis = load_analysis(args.analysis)
    except (OSError, ValueError, ShaderPulseError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.mode is not None:
        config.mode = args.mode
    if args.policy is not None:
        config.beats.policy = args.policy
    if args.sensitivity is not None:
        config.normalizer.sensitivity = args.sensitivity
    if args.seed is not None:
        config.beats.seed = args.seed

    suffix = ".npz" if args.format == "numpy" else ".json"
    output = args.output
    if output is None:
        output = args.analysis.with_name(f"{args.analysis.stem}_uniforms{suffix}")

    print(f"Replaying: {args.analysis}")
    print(f"  Frames in history: {len(analysis.history)}")
    print(f"  Timeline events: {len(analysis.timeline)}")
    print(f"  Duration: {analysis.duration:.1f}s")
    if analysis.bpm:
        print(f"  BPM: {analysis.bpm:.1f}")
    print(f"  Mode: {config.mode}, Policy: {config.beats.policy}")

    t0 = time.time()
    try:
        records = replay(
            analysis,
            config,
            fps=args.fps,
            max_duration=args.max_duration,
            progress_callback=_progress_bar,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    metadata = ManifestMetadata(
        fps=args.fps,
        duration=len(records) / args.fps,
        n_frames=len(records),
        mode=config.mode,
        policy=config.beats.policy,
        bpm=analysis.bpm,
    )
    exporter = UniformExporter()
    if args.format == "numpy":
        output = exporter.export_numpy(records, metadata, output)
    else:
        output = exporter.export_json(records, metadata, output)

    print(f"\nDone! {len(records)} frames in {time.time() - t0:.1f}s")
    print(f"  Output: {output}")


if __name__ == "__main__":
    main()

"""
Command-line interface for mix analysis.
"""

import argparse
import json
import sys
from pathlib import Path

from mixscope.config import AnalysisConfig
from mixscope.core.source import CaptureError
from mixscope.modulation.router import ModulationRouter
from mixscope.pipeline import MixAnalysisPipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixscope",
        description="Extract mix-quality metrics and modulation deltas from audio files",
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output manifest file path (default: <input>_mix.json)",
    )

    parser.add_argument(
        "-f", "--fps",
        type=int,
        default=60,
        help="Ticks per second (default: 60)",
    )

    parser.add_argument(
        "-s", "--sample-rate",
        type=int,
        default=None,
        help="Resample audio to this rate (default: keep the file's rate)",
    )

    parser.add_argument(
        "--format",
        choices=["json", "numpy"],
        default="json",
        help="Output format (default: json)",
    )

    parser.add_argument(
        "--mono",
        action="store_true",
        help="Downmix to mono before analysis (disables stereo metrics)",
    )

    parser.add_argument(
        "--mappings",
        type=Path,
        default=None,
        help="Modulation mappings JSON to import before processing",
    )

    parser.add_argument(
        "--export-mappings",
        type=Path,
        default=None,
        help="Write the active modulation mappings to this JSON file",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output",
    )

    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print manifest summary to stdout",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    # Validate input
    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1

    router = ModulationRouter()
    if args.mappings is not None:
        try:
            payload = args.mappings.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error: Could not read mappings: {e}", file=sys.stderr)
            return 1
        if not router.import_mappings(payload):
            print(f"Error: Invalid mappings file: {args.mappings}", file=sys.stderr)
            return 1

    # Determine output path
    output_path = args.output
    if output_path is None:
        suffix = ".npz" if args.format == "numpy" else ".json"
        output_path = args.input.with_name(f"{args.input.stem}_mix{suffix}")

    pipeline = MixAnalysisPipeline(
        config=AnalysisConfig(target_fps=args.fps),
        router=router,
    )

    if not args.quiet:
        print(f"Processing: {args.input}")
        print(f"Target FPS: {args.fps}")

    try:
        result = pipeline.process(
            args.input,
            output_path=output_path,
            format=args.format,
            sample_rate=args.sample_rate,
            mono=args.mono,
        )
    except CaptureError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.export_mappings is not None:
        args.export_mappings.write_text(router.export_mappings(), encoding="utf-8")

    if not args.quiet:
        print(f"Channels: {result['channels']}")
        print(f"Duration: {result['duration']:.2f}s")
        print(f"Frames: {result['n_frames']}")
        print(f"Output: {result['output_path']}")

    if args.summary:
        manifest = result["manifest"]
        print("\n--- Manifest Summary ---")
        print(json.dumps(manifest["metadata"], indent=2))

        # Sample frames
        frames = manifest["frames"]
        if len(frames) > 0:
            print(f"\nFirst frame: {json.dumps(frames[0], indent=2)}")
        if len(frames) > 1:
            mid = len(frames) // 2
            print(f"\nMiddle frame ({mid}): {json.dumps(frames[mid], indent=2)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

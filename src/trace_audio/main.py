"""Command-line interface for silence trimming functionality."""

import argparse
import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path

from .silence_trimming.config import AGGRESSIVE_PRESET_NAME, DEFAULT_PRESET_NAME, DEFAULT_SPEED_MULTIPLIER
from .silence_trimming.exceptions import (
    NoSpeechDetectedError,
    SilenceTrimmingError,
    TrimmingCancelledError,
)
from .silence_trimming.logging_utils import configure_logging
from .silence_trimming.service import SilenceTrimmingService

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_SPEECH = 2

logger = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Silence Trimming CLI - Compact recordings for transcription and remap timestamps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m trace_audio.main analyze memo.wav                 # Show kept speech ranges
  python -m trace_audio.main analyze memo.wav --json          # Segment map as JSON
  python -m trace_audio.main trim memo.m4a --preset aggressive
  python -m trace_audio.main trim memo.m4a -o short.m4a       # Keep the compacted audio
  python -m trace_audio.main remap memo.wav 3.0 12.5          # Original times for API times
  python -m trace_audio.main compress memo.m4a                # Small mono file for upload
  python -m trace_audio.main -v analyze memo.wav              # Verbose logging

Exit codes: 0 success, 1 error, 2 no speech detected.
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes per-batch analysis)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analysis_options = argparse.ArgumentParser(add_help=False)
    analysis_options.add_argument("audio_file", help="Recording to analyze")
    analysis_options.add_argument(
        "--preset",
        choices=[DEFAULT_PRESET_NAME, AGGRESSIVE_PRESET_NAME],
        default=DEFAULT_PRESET_NAME,
        help="Silence detection preset (default: %(default)s)",
    )
    analysis_options.add_argument(
        "--speed",
        type=float,
        default=DEFAULT_SPEED_MULTIPLIER,
        metavar="FACTOR",
        help="Playback speed of the compacted audio (default: %(default)s)",
    )

    analyze_parser = subparsers.add_parser(
        "analyze", parents=[analysis_options], help="Detect speech and print the segment map"
    )
    analyze_parser.add_argument(
        "--json", action="store_true", help="Print the segment map as JSON"
    )

    trim_parser = subparsers.add_parser(
        "trim", parents=[analysis_options], help="Write compacted, sped-up audio"
    )
    trim_parser.add_argument(
        "--json", action="store_true", help="Print the result as JSON"
    )
    trim_parser.add_argument(
        "--output",
        "-o",
        metavar="PATH",
        help="Move the compacted audio here instead of leaving it in the temp directory",
    )

    remap_parser = subparsers.add_parser(
        "remap", parents=[analysis_options], help="Map compacted playback times to the original"
    )
    remap_parser.add_argument(
        "times", nargs="+", type=float, metavar="TIME", help="Playback times in seconds"
    )

    compress_parser = subparsers.add_parser(
        "compress", help="Write a small mono file for upload"
    )
    compress_parser.add_argument("audio_file", help="Recording to compress")

    return parser


def _print_analysis(args: argparse.Namespace, service: SilenceTrimmingService) -> int:
    analysis = service.analyze_file(args.audio_file, args.preset)
    segment_map = analysis.segment_map
    if args.json:
        print(json.dumps(segment_map.to_dict(), indent=2))
        return EXIT_OK

    print(f"Original duration:  {segment_map.original_duration:.2f}s")
    print(f"Compacted duration: {segment_map.compacted_duration:.2f}s")
    print(f"Playback duration:  {segment_map.playback_duration:.2f}s at {segment_map.speed_multiplier}x")
    print(f"Speech ranges ({len(analysis.speech_ranges)}):")
    for time_range in analysis.speech_ranges:
        print(f"  {time_range.start:8.2f}s - {time_range.end:8.2f}s")
    return EXIT_OK


def _print_remap(args: argparse.Namespace, service: SilenceTrimmingService) -> int:
    segment_map = service.analyze_file(args.audio_file, args.preset).segment_map
    for playback_time in args.times:
        print(f"{playback_time:.3f} -> {segment_map.to_original(playback_time):.3f}")
    return EXIT_OK


async def _run_trim(args: argparse.Namespace, service: SilenceTrimmingService) -> int:
    result = await service.trim_silence(args.audio_file, args.preset)
    audio_path = result.audio_path
    if args.output:
        try:
            audio_path = Path(shutil.move(str(audio_path), args.output))
        except OSError as e:
            service.cleanup_trimmed_file(result.audio_path)
            print(f"❌ Could not write {args.output}: {e}", file=sys.stderr)
            return EXIT_ERROR
        logger.debug(f"Moved compacted audio to {audio_path}")

    if args.json:
        payload = {
            "audio_path": str(audio_path),
            "was_trimmed": result.was_trimmed,
            "segment_map": result.segment_map.to_dict(),
        }
        print(json.dumps(payload, indent=2))
    else:
        mode = "trimmed and sped up" if result.was_trimmed else "sped up only"
        print(f"{audio_path} ({mode})")
    return EXIT_OK


async def _run_compress(args: argparse.Namespace, service: SilenceTrimmingService) -> int:
    output_path = await service.compress_for_upload(args.audio_file)
    print(output_path)
    return EXIT_OK


def run_command(args: argparse.Namespace) -> int:
    """
    Execute a parsed command.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Process exit code
    """
    try:
        speed = getattr(args, "speed", DEFAULT_SPEED_MULTIPLIER)
        service = SilenceTrimmingService(speed_multiplier=speed)

        if args.command == "analyze":
            return _print_analysis(args, service)
        if args.command == "remap":
            return _print_remap(args, service)
        if args.command == "trim":
            return asyncio.run(_run_trim(args, service))
        if args.command == "compress":
            return asyncio.run(_run_compress(args, service))
        logger.error(f"Unknown command: {args.command}")
        return EXIT_ERROR

    except NoSpeechDetectedError as e:
        print(f"🔇 {e}", file=sys.stderr)
        return EXIT_NO_SPEECH
    except TrimmingCancelledError as e:
        print(f"🛑 {e}", file=sys.stderr)
        return EXIT_ERROR
    except SilenceTrimmingError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_ERROR


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()
    args = parser.parse_args()

    configure_logging(verbose=args.verbose, trace=args.trace)

    try:
        sys.exit(run_command(args))
    except KeyboardInterrupt:
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    cli_entry_with_args()

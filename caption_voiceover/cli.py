"""CLI interface with subcommand routing and pipeline orchestration."""

import argparse
import logging
import os
import sys

from caption_voiceover.artifacts import init_output_dir, load_artifact, slug_from_path
from caption_voiceover.calibration import reference_duration, run_calibration
from caption_voiceover.config import load_settings
from caption_voiceover.constants import OUTPUT_DIR, REPORT_NAME, VERSION
from caption_voiceover.context import RunContext
from caption_voiceover.errors import VoiceoverError
from caption_voiceover.exporter import export_report
from caption_voiceover.media import REQUIRED_TOOLS, check_responsive, check_tools
from caption_voiceover.parser import load_captions
from caption_voiceover.tts import ENGINES, resolve_engine
from caption_voiceover.validator import validate_duration

logger = logging.getLogger(__name__)


def _fail(message: str):
    print(f"Error: {message}", file=sys.stderr)
    raise SystemExit(1)


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _settings_from_args(args):
    """Settings file first, then explicit flags."""
    settings = load_settings(getattr(args, "config", None))
    output_dir = getattr(args, "output_dir", None)
    cache_dir = getattr(args, "cache_dir", None)
    if output_dir and not cache_dir:
        cache_dir = os.path.join(output_dir, "cache")
    return settings.with_overrides(
        engine=getattr(args, "engine", None),
        voice=getattr(args, "voice", None),
        speed=getattr(args, "speed", None),
        max_iterations=getattr(args, "iterations", None),
        output_dir=output_dir,
        cache_dir=cache_dir,
    )


def _check_setup(settings) -> dict[str, str]:
    """Verify the external tools are installed and ffmpeg/ffprobe respond."""
    engine = resolve_engine(settings.engine, settings.command)
    resolved = check_tools([*REQUIRED_TOOLS, engine.executable])
    check_responsive()
    return resolved


def cmd_run(args):
    """Produce a voiceover for a caption file."""
    if args.target_duration is not None and args.target_duration <= 0:
        _fail(f"Target duration must be positive, got {args.target_duration}")

    try:
        settings = _settings_from_args(args)
        segments = load_captions(args.file)
        _check_setup(settings)
    except VoiceoverError as e:
        _fail(str(e))

    print(f"Parsed {len(segments)} segments from {args.file}")
    project_dir = init_output_dir(args.file, output_base=settings.output_dir)

    try:
        context = RunContext.create(settings, project_dir)
        result = run_calibration(segments, context, target=args.target_duration)
    except VoiceoverError as e:
        _fail(str(e))

    expected = reference_duration(segments)
    validation = validate_duration(result.last_report.final_duration, expected, args.target_duration)
    report_path = export_report(project_dir, args.file, settings, result, validation)

    print()
    print(f"Output: {result.final_path}")
    print(f"  Duration: {validation.final_duration:.3f}s (captions {expected:.3f}s"
          + (f", target {args.target_duration:.3f}s)" if args.target_duration else ")"))
    print(f"  Accuracy: {validation.accuracy:.2%} [{validation.tier}]")
    if validation.suggestion:
        print(f"  Suggestion: {validation.suggestion}")
    print(f"  Strategy: {result.analysis.strategy.label} ({result.analysis.per_gap:+.3f}s per gap)")
    print(f"  Report: {report_path}")


def cmd_parse(args):
    """Print the segments parsed from a caption file."""
    try:
        segments = load_captions(args.file)
    except VoiceoverError as e:
        _fail(str(e))

    print(f"{len(segments)} segments:")
    for seg in segments:
        print(f"  {seg.index:03d}  {seg.start:9.3f} → {seg.end:9.3f}  {seg.text}")


def cmd_check(args):
    """Check that the external tools are installed."""
    try:
        settings = _settings_from_args(args)
        resolved = _check_setup(settings)
    except VoiceoverError as e:
        _fail(str(e))

    for name, path in resolved.items():
        print(f"  [ok] {name}: {path}")
    print(f"Engine: {settings.engine}, voice: {settings.voice}, speed: {settings.speed}")


def cmd_engines(args):
    """List available synthesizer engines."""
    print("Available engines:")
    for name, engine in ENGINES.items():
        print(f"  {name:<10} ({engine.executable})")
    print("  command    (argv template from the 'command' setting)")


def cmd_report(args):
    """Show the report of a finished project."""
    project_dir = os.path.join(args.output_dir, slug_from_path(args.slug))
    report = load_artifact(os.path.join(project_dir, "final"), REPORT_NAME)
    if report is None:
        _fail(f"No report found for '{args.slug}' in {project_dir}")

    validation = report["validation"]
    analysis = report["analysis"]
    print(f"Project: {report['project']}")
    print(f"  Source: {report['source']}")
    print(f"  Output: {report['output']}")
    print(f"  Duration: {validation['final_duration']}s, accuracy {validation['accuracy']:.2%} [{validation['tier']}]")
    print(f"  Strategy: {analysis['strategy']} ({analysis['per_gap']:+.3f}s per gap)")
    print(f"  Passes: {report['calibration']['iterations']}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="caption-voiceover",
        description="Caption Voiceover: turn a caption track into a timed speech track",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run
    run_parser = subparsers.add_parser("run", help="Synthesize and assemble a voiceover")
    run_parser.add_argument("file", help="Path to the caption file (.vtt)")
    run_parser.add_argument("--target-duration", type=float, help="Desired output length in seconds")
    run_parser.add_argument("--engine", help="Synthesizer engine (see 'engines')")
    run_parser.add_argument("--voice", help="Voice identifier")
    run_parser.add_argument("--speed", type=float, help="Speed multiplier (1.0 = normal)")
    run_parser.add_argument("--iterations", type=int, help="Maximum calibration passes")
    run_parser.add_argument("--config", help="JSON settings file")
    run_parser.add_argument("--output-dir", help=f"Output base directory (default: {OUTPUT_DIR})")
    run_parser.add_argument("--cache-dir", help="Synthesis cache directory")
    run_parser.set_defaults(func=cmd_run)

    # parse
    parse_parser = subparsers.add_parser("parse", help="Show the parsed caption segments")
    parse_parser.add_argument("file", help="Path to the caption file")
    parse_parser.set_defaults(func=cmd_parse)

    # check
    check_parser = subparsers.add_parser("check", help="Check external tool setup")
    check_parser.add_argument("--engine", help="Synthesizer engine to check")
    check_parser.add_argument("--config", help="JSON settings file")
    check_parser.set_defaults(func=cmd_check)

    # engines
    engines_parser = subparsers.add_parser("engines", help="List synthesizer engines")
    engines_parser.set_defaults(func=cmd_engines)

    # report
    report_parser = subparsers.add_parser("report", help="Show a finished project's report")
    report_parser.add_argument("slug", help="Project slug or caption file name")
    report_parser.add_argument("--output-dir", default=OUTPUT_DIR, help="Output base directory")
    report_parser.set_defaults(func=cmd_report)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    _configure_logging(args.verbose)
    args.func(args)

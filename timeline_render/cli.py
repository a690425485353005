"""
Timeline Render CLI - thin entrypoint for operator commands.

Commands:
- validate: check a timeline JSON file without rendering
- compile:  print the FFmpeg command a timeline compiles to
- render:   render a timeline and print the result as JSON

Exit Codes:
===========
- 0: Success
- 1: Validation error (including unreadable input files)
- 2: Render error
"""

import argparse
import asyncio
import json
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Any

from timeline_render.config import get_settings
from timeline_render.exceptions import TimelineValidationError
from timeline_render.render.asset_resolver import AssetResolver
from timeline_render.render.compiler import GraphCompiler
from timeline_render.render.emitter import CommandEmitter
from timeline_render.render.executor import RenderJobExecutor
from timeline_render.render.merge_fields import MergeFieldResolver
from timeline_render.render.validator import TimelineValidator
from timeline_render.schemas.render import JobState, OutputOptions

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_RENDER = 2


class InputFileError(Exception):
    """A CLI input file is missing or is not valid JSON."""


def _load_json(path: Path) -> Any:
    if not path.exists():
        raise InputFileError(f"File not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InputFileError(f"Invalid JSON in {path}: {e}") from e


def _load_fields(args: argparse.Namespace) -> dict[str, Any]:
    if not args.fields:
        return {}
    fields = _load_json(Path(args.fields))
    if not isinstance(fields, dict):
        raise InputFileError(f"Merge fields in {args.fields} must be a JSON object")
    return fields


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a timeline file and list every issue found."""
    timeline_path = Path(args.timeline)
    try:
        data = _load_json(timeline_path)
    except InputFileError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION

    report = TimelineValidator().check(data)
    for warning in report.warnings:
        print(f"  warning: {warning}", file=sys.stderr)

    if not report.valid:
        print(f"✗ Timeline is invalid: {timeline_path}", file=sys.stderr)
        for issue in report.errors:
            print(f"  {issue}", file=sys.stderr)
        return EXIT_VALIDATION

    tracks = data.get("tracks", [])
    print(f"✓ Timeline is valid: {timeline_path}")
    print(f"  Tracks: {len(tracks)}")
    print(f"  Clips: {sum(len(track.get('clips', [])) for track in tracks)}")
    return EXIT_OK


def cmd_compile(args: argparse.Namespace) -> int:
    """Print the encoder command without running it."""
    settings = get_settings()
    try:
        data = _load_json(Path(args.timeline))
        fields = _load_fields(args)
        timeline = TimelineValidator().validate(data)
    except (InputFileError, TimelineValidationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION

    timeline = MergeFieldResolver().resolve(timeline, fields)
    output = OutputOptions(format=args.format, quality=args.quality)
    resolver = AssetResolver(args.assets_dir or settings.assets_dir)
    assets = resolver.resolve_timeline(timeline)
    background = resolver.resolve_background(timeline)

    output_dir = args.output_dir or settings.output_dir
    output_path = os.path.join(output_dir, f"preview.{output.format}")
    command = GraphCompiler().compile(timeline, assets, output_path, output, background)
    for warning in command.warnings:
        print(f"  warning: {warning}", file=sys.stderr)

    print(shlex.join(CommandEmitter().emit(command)))
    return EXIT_OK


def cmd_render(args: argparse.Namespace) -> int:
    """Render a timeline and print the job outcome as JSON."""
    settings = get_settings()
    try:
        data = _load_json(Path(args.timeline))
        fields = _load_fields(args)
    except InputFileError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_VALIDATION

    output = OutputOptions(format=args.format, quality=args.quality)
    asset_resolver = AssetResolver(args.assets_dir or settings.assets_dir)

    async def run() -> Any:
        executor = RenderJobExecutor(asset_resolver=asset_resolver, output_dir=args.output_dir)
        return await executor.render(data, fields, output)

    snapshot = asyncio.run(run())
    print(snapshot.model_dump_json(indent=2))

    if snapshot.state == JobState.COMPLETED:
        return EXIT_OK
    if snapshot.error is not None and snapshot.error.code == TimelineValidationError.code:
        return EXIT_VALIDATION
    return EXIT_RENDER


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timeline-render",
        description="Render JSON timelines to video with FFmpeg",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_validate = subparsers.add_parser("validate", help="Validate a timeline JSON file")
    parser_validate.add_argument("timeline", help="Path to timeline JSON file")
    parser_validate.set_defaults(func=cmd_validate)

    for name, func, help_text in (
        ("compile", cmd_compile, "Print the FFmpeg command for a timeline"),
        ("render", cmd_render, "Render a timeline to a video file"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("timeline", help="Path to timeline JSON file")
        sub.add_argument("--fields", help="Path to merge fields JSON object")
        sub.add_argument("--format", choices=["mp4", "webm", "mov"], default="mp4")
        sub.add_argument("--quality", choices=["low", "medium", "high", "ultra"], default="high")
        sub.add_argument("--assets-dir", help="Asset search root (default: settings.assets_dir)")
        sub.add_argument("--output-dir", help="Output directory (default: settings.output_dir)")
        sub.set_defaults(func=func)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return args.func(args)

#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10"
# ]
# ///
"""Burn one or more title overlays onto copies of a video."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple

from domain.title_overlay import (
    INVALID_CONFIG_CODE,
    ConfigError,
    EncodeError,
    EncodeEvent,
    ProbeError,
    StyleConfig,
    TitleVariant,
    build_variants,
    parse_font_weight,
    parse_text_position,
)
from service.encode_job import EncodeJob, EncoderSettings
from service.layout_plan import compute_layout
from service.media_probe import MemoizedProber
from service.overlay_filter import PlatformFontResolver, compile_overlay
from service.title_batch import DirectoryOutputLocator, run_batch, summarize_results

FFMPEG_PATH_ENV = "BURN_TITLES_FFMPEG_PATH"
FFPROBE_PATH_ENV = "BURN_TITLES_FFPROBE_PATH"
OUTPUT_DIR_ENV = "BURN_TITLES_OUTPUT_DIR"
FONT_PLATFORM_ENV = "BURN_TITLES_FONT_PLATFORM"
LOG_LEVEL_ENV = "BURN_TITLES_LOG_LEVEL"
DEFAULT_OUTPUT_DIR = "generated"
DEFAULT_COLOR = "white"
EXIT_OK = 0
EXIT_INVALID = 1
EXIT_PARTIAL = 3
LOGGER = logging.getLogger("burn_titles")


@dataclass(frozen=True)
class BurnRequest:
    """Parsed CLI request and runtime options."""

    input_video: str
    variants: Tuple[TitleVariant, ...]
    style: StyleConfig
    settings: EncoderSettings
    ffprobe_path: str
    output_dir: Path
    font_platform: str | None
    print_filter: bool

    def __post_init__(self) -> None:
        if not self.input_video.strip():
            raise ConfigError(INVALID_CONFIG_CODE, "input-video must be non-empty")
        if not self.variants:
            raise ConfigError(INVALID_CONFIG_CODE, "at least one --title is required")
        if not self.ffprobe_path.strip():
            raise ConfigError(INVALID_CONFIG_CODE, "ffprobe-path must be non-empty")


def configure_logging(env: dict[str, str]) -> None:
    """Configure logging from environment."""
    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.INFO
    if level_name == "DEBUG":
        level = logging.DEBUG
    elif level_name == "WARNING":
        level = logging.WARNING
    elif level_name == "ERROR":
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="burn_titles.py", add_help=True)
    parser.add_argument("--input-video", required=True)
    parser.add_argument("--title", action="append", default=[])
    parser.add_argument("--color", action="append", default=[])
    parser.add_argument("--output-dir", default=None)
    parser.add_argument("--ffmpeg-path", default=None)
    parser.add_argument("--ffprobe-path", default=None)
    parser.add_argument("--font-platform", default=None)
    parser.add_argument("--font-size-fraction", type=float, default=0.08)
    parser.add_argument("--position", default="top", help="top, center or bottom")
    parser.add_argument("--font-weight", default="black", help="normal, bold or black")
    parser.add_argument("--stroke-width", type=int, default=3)
    parser.add_argument("--stroke-color", default="black")
    parser.add_argument("--shadow-strength", type=float, default=0.9)
    parser.add_argument("--shadow-offset", type=int, default=4)
    parser.add_argument("--background-box", action="store_true")
    parser.add_argument("--background-opacity", type=float, default=0.4)
    parser.add_argument("--max-chars-per-line", type=int, default=None)
    parser.add_argument(
        "--print-filter",
        action="store_true",
        help="print the compiled filter graph per title without encoding",
    )
    return parser


def parse_args(argv: Sequence[str], env: dict[str, str]) -> BurnRequest:
    """Parse CLI arguments into a BurnRequest."""
    parsed = build_parser().parse_args(list(argv))
    style = StyleConfig(
        font_size_fraction=parsed.font_size_fraction,
        position=parse_text_position(parsed.position),
        font_weight=parse_font_weight(parsed.font_weight),
        stroke_width=parsed.stroke_width,
        stroke_color=parsed.stroke_color,
        shadow_strength=parsed.shadow_strength,
        shadow_offset=parsed.shadow_offset,
        background_box=parsed.background_box,
        background_opacity=parsed.background_opacity,
        max_chars_per_line=parsed.max_chars_per_line,
    )
    ffmpeg_path = env.get(FFMPEG_PATH_ENV, "ffmpeg")
    if parsed.ffmpeg_path is not None:
        ffmpeg_path = parsed.ffmpeg_path
    ffprobe_path = env.get(FFPROBE_PATH_ENV, "ffprobe")
    if parsed.ffprobe_path is not None:
        ffprobe_path = parsed.ffprobe_path
    output_dir = Path(env.get(OUTPUT_DIR_ENV, DEFAULT_OUTPUT_DIR))
    if parsed.output_dir:
        output_dir = Path(parsed.output_dir)
    font_platform = env.get(FONT_PLATFORM_ENV, "").strip() or None
    if parsed.font_platform:
        font_platform = parsed.font_platform

    return BurnRequest(
        input_video=parsed.input_video,
        variants=build_variants(parsed.title, parsed.color, DEFAULT_COLOR),
        style=style,
        settings=EncoderSettings(ffmpeg_path=ffmpeg_path),
        ffprobe_path=ffprobe_path,
        output_dir=output_dir,
        font_platform=font_platform,
        print_filter=parsed.print_filter,
    )


def build_font_resolver(font_platform: str | None) -> PlatformFontResolver:
    if font_platform:
        return PlatformFontResolver(platform_name=font_platform)
    return PlatformFontResolver()


def log_progress(job: EncodeJob, event: EncodeEvent) -> None:
    if event.percent is None:
        return
    LOGGER.debug(
        "burn_titles.encode.job_%d progress %.1f%%", job.index + 1, event.percent
    )


def emit_filters(request: BurnRequest, prober: MemoizedProber) -> list[dict[str, object]]:
    """Compile every title without encoding."""
    media = prober(request.input_video)
    resolver = build_font_resolver(request.font_platform)
    payload: list[dict[str, object]] = []
    for index, variant in enumerate(request.variants):
        layout = compute_layout(media.geometry, variant.text, request.style)
        payload.append(
            {
                "index": index,
                "title": variant.text,
                "color": variant.color,
                "font_size": layout.font_size,
                "lines": [line.source_text for line in layout.lines],
                "overflows": layout.overflows,
                "filter": compile_overlay(
                    layout, request.style, variant.color, resolver
                ),
            }
        )
    return payload


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    env = dict(os.environ)
    configure_logging(env)

    try:
        request = parse_args(list(argv) if argv is not None else sys.argv[1:], env)
        prober = MemoizedProber(ffprobe_path=request.ffprobe_path)
        if request.print_filter:
            json.dump(emit_filters(request, prober), sys.stdout, indent=2)
            sys.stdout.write("\n")
            return EXIT_OK
        results = run_batch(
            request.input_video,
            request.variants,
            locator=DirectoryOutputLocator(output_dir=request.output_dir),
            style=request.style,
            settings=request.settings,
            prober=prober,
            font_resolver=build_font_resolver(request.font_platform),
            observer=log_progress,
        )
    except ConfigError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return EXIT_INVALID
    except ProbeError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return EXIT_INVALID
    except EncodeError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return EXIT_INVALID
    except Exception as exc:
        LOGGER.error("burn_titles.unhandled_error: %s", str(exc).strip())
        return EXIT_INVALID

    json.dump([result.to_payload() for result in results], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return EXIT_OK if summarize_results(results).all_succeeded else EXIT_PARTIAL


if __name__ == "__main__":
    raise SystemExit(main())

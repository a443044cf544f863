"""drawtext filter graph compilation for burn_titles."""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Tuple

from domain.title_overlay import (
    FontWeight,
    LineLayout,
    StyleConfig,
    TitleLayout,
    parse_color_rgba,
    round_half_up,
)

# Characters with structural meaning in the drawtext option grammar, in
# escaping order. The backslash goes first so later escapes stay intact.
DRAWTEXT_SPECIAL_CHARACTERS = ("\\", "'", ":", ",", "%")
DIRECTIVE_SEPARATOR = ","
SHADOW_COLOR = "black"
BOX_COLOR = "black"
BOX_PADDING_RATIO = 0.2
LOGGER = logging.getLogger("burn_titles.overlay")

DEFAULT_FONT_TABLES: dict[str, dict[FontWeight, str]] = {
    "darwin": {
        FontWeight.BOLD: "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
        FontWeight.BLACK: "/System/Library/Fonts/Supplemental/Arial Black.ttf",
    },
    "linux": {
        FontWeight.BOLD: "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        FontWeight.BLACK: "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    },
    "windows": {
        FontWeight.BOLD: "C:/Windows/Fonts/arialbd.ttf",
        FontWeight.BLACK: "C:/Windows/Fonts/ariblk.ttf",
    },
}


def escape_drawtext(text_value: str) -> str:
    """Escape backslash, quote, colon, comma and percent for a drawtext value."""
    escaped = text_value
    for character in DRAWTEXT_SPECIAL_CHARACTERS:
        escaped = escaped.replace(character, "\\" + character)
    return escaped


def parse_color(color_value: str) -> str:
    """Convert a color name or hex value into an ffmpeg color token."""
    red, green, blue, alpha = parse_color_rgba(color_value)
    token = f"0x{red:02X}{green:02X}{blue:02X}"
    if alpha != 255:
        token = f"{token}@{format_ratio(alpha / 255.0)}"
    return token


def format_ratio(value: float) -> str:
    return f"{round(value, 3):g}"


class FontResolver(Protocol):
    """Maps a font weight to a font file usable by the encoder."""

    def resolve(self, weight: FontWeight) -> str | None:
        """Return a font file path, or None for the encoder default font."""


@dataclass(frozen=True)
class PlatformFontResolver:
    """Font resolver keyed by operating system family."""

    platform_name: str = field(default_factory=lambda: platform.system().lower())
    overrides: Mapping[FontWeight, str] = field(default_factory=dict)

    def resolve(self, weight: FontWeight) -> str | None:
        if weight in self.overrides:
            return self.overrides[weight]
        table = DEFAULT_FONT_TABLES.get(self.platform_name.strip().lower(), {})
        return table.get(weight)


def build_drawtext_directive(
    line: LineLayout,
    font_size: int,
    font_color: str,
    style: StyleConfig,
    font_file: str | None,
) -> str:
    """Build one drawtext directive for a laid out line."""
    options = [
        f"text='{line.text}'",
        f"fontsize={font_size}",
        f"fontcolor={font_color}",
        "x=(w-text_w)/2",
        f"y={line.vertical_offset}",
    ]
    if font_file:
        options.append(f"fontfile='{escape_drawtext(font_file)}'")
    options.extend(
        [
            f"shadowcolor={SHADOW_COLOR}@{format_ratio(style.shadow_strength)}",
            f"shadowx={style.shadow_offset}",
            f"shadowy={style.shadow_offset}",
        ]
    )
    if style.stroke_width > 0:
        options.extend(
            [
                f"borderw={style.stroke_width}",
                f"bordercolor={parse_color(style.stroke_color)}",
            ]
        )
    if style.background_box:
        options.extend(
            [
                "box=1",
                f"boxcolor={BOX_COLOR}@{format_ratio(style.background_opacity)}",
                f"boxborderw={round_half_up(font_size * BOX_PADDING_RATIO)}",
            ]
        )
    return "drawtext=" + ":".join(options)


def build_directives(
    layout: TitleLayout,
    style: StyleConfig,
    color: str,
    font_resolver: FontResolver,
) -> Tuple[str, ...]:
    font_color = parse_color(color)
    font_file = font_resolver.resolve(style.font_weight)
    return tuple(
        build_drawtext_directive(line, layout.font_size, font_color, style, font_file)
        for line in layout.lines
    )


def compile_overlay(
    layout: TitleLayout,
    style: StyleConfig,
    color: str,
    font_resolver: FontResolver | None = None,
) -> str:
    """Compile a title layout into a single-pass filter graph."""
    resolver = font_resolver if font_resolver is not None else PlatformFontResolver()
    directives = build_directives(layout, style, color, resolver)
    LOGGER.debug(
        "burn_titles.overlay.compiled: %d directives at %dpx",
        len(directives),
        layout.font_size,
    )
    return DIRECTIVE_SEPARATOR.join(directives)

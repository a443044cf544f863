"""Title layout computation for burn_titles."""

from __future__ import annotations

import logging
import math
from typing import Sequence, Tuple

from domain.title_overlay import (
    EMPTY_TITLE_CODE,
    ConfigError,
    FrameGeometry,
    LineLayout,
    StyleConfig,
    TextPosition,
    TitleLayout,
    round_half_up,
)
from service.overlay_filter import escape_drawtext

# drawtext renders glyphs at roughly 0.7 of the nominal font size
FONT_SIZE_COMPENSATION = 1.4
AVERAGE_GLYPH_WIDTH_RATIO = 0.6
MIN_CHARS_PER_LINE = 15
LINE_SPACING = 1.2
VERTICAL_MARGIN_RATIO = 0.05
LAYOUT_OVERFLOW_CODE = "burn_titles.layout.overflow"
LOGGER = logging.getLogger("burn_titles.layout")


def compute_font_size(geometry: FrameGeometry, font_size_fraction: float) -> int:
    """Compute the drawtext font size from the dominant frame dimension."""
    dominant = geometry.width if geometry.is_vertical else geometry.height
    return max(1, round_half_up(dominant * font_size_fraction * FONT_SIZE_COMPENSATION))


def resolve_max_chars_per_line(
    geometry: FrameGeometry, font_size: int, override: int | None
) -> int:
    """Return the wrapping limit, estimated from the frame width when unset."""
    if override is not None:
        limit = override
    else:
        limit = int(math.floor(geometry.width / (font_size * AVERAGE_GLYPH_WIDTH_RATIO)))
    return max(limit, MIN_CHARS_PER_LINE)


def wrap_title_words(title: str, max_chars_per_line: int) -> Tuple[str, ...]:
    """Greedily wrap words so each line stays within the character limit."""
    lines: list[str] = []
    current = ""
    for word in title.split():
        if current and len(current) + 1 + len(word) > max_chars_per_line:
            lines.append(current)
            current = word
        elif current:
            current = f"{current} {word}"
        else:
            current = word
    if current:
        lines.append(current)
    return tuple(lines)


def compute_line_height(font_size: int) -> int:
    return round_half_up(font_size * LINE_SPACING)


def compute_start_offset(
    geometry: FrameGeometry,
    position: TextPosition,
    line_count: int,
    line_height: int,
) -> int:
    """Compute the offset of the first line for the requested anchor."""
    margin = round_half_up(geometry.height * VERTICAL_MARGIN_RATIO)
    stacked_height = line_count * line_height
    if position == TextPosition.TOP:
        return margin
    if position == TextPosition.BOTTOM:
        return geometry.height - stacked_height - margin
    return round_half_up((geometry.height - stacked_height) / 2)


def stack_lines(
    raw_lines: Sequence[str], start_offset: int, line_height: int
) -> Tuple[LineLayout, ...]:
    return tuple(
        LineLayout(
            text=escape_drawtext(line),
            source_text=line,
            vertical_offset=start_offset + index * line_height,
        )
        for index, line in enumerate(raw_lines)
    )


def compute_layout(
    geometry: FrameGeometry, title: str, style: StyleConfig
) -> TitleLayout:
    """Compute font size, wrapped lines and vertical placement for a title.

    Stacked height is not clamped to the frame; a long title at a large font
    size can run past the frame edge. Such layouts report ``overflows`` and
    are logged so callers can decide whether to shrink the font or shorten
    the title.
    """
    if not title.strip():
        raise ConfigError(EMPTY_TITLE_CODE, "title text must be non-empty")

    font_size = compute_font_size(geometry, style.font_size_fraction)
    max_chars = resolve_max_chars_per_line(
        geometry, font_size, style.max_chars_per_line
    )
    raw_lines = wrap_title_words(title, max_chars)
    line_height = compute_line_height(font_size)
    start_offset = compute_start_offset(
        geometry, style.position, len(raw_lines), line_height
    )
    layout = TitleLayout(
        geometry=geometry,
        font_size=font_size,
        line_height=line_height,
        max_chars_per_line=max_chars,
        lines=stack_lines(raw_lines, start_offset, line_height),
    )
    if layout.overflows:
        LOGGER.warning(
            "%s: %d lines at %dpx exceed %dx%d frame",
            LAYOUT_OVERFLOW_CODE,
            len(layout.lines),
            font_size,
            geometry.width,
            geometry.height,
        )
    return layout

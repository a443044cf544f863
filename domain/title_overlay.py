"""Domain types and parsing for burn_titles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math

from PIL import ImageColor

INVALID_CONFIG_CODE = "burn_titles.input.invalid_config"
INVALID_COLOR_CODE = "burn_titles.input.invalid_color"
INVALID_POSITION_CODE = "burn_titles.input.invalid_position"
INVALID_WEIGHT_CODE = "burn_titles.input.invalid_font_weight"
EMPTY_TITLE_CODE = "burn_titles.input.empty_title"
INVALID_RESULT_CODE = "burn_titles.job.invalid_result"
PROBE_INPUT_CODE = "burn_titles.probe.input_missing"
PROBE_FAILED_CODE = "burn_titles.probe.failed"
PROBE_NO_VIDEO_CODE = "burn_titles.probe.no_video_stream"
PROBE_GEOMETRY_CODE = "burn_titles.probe.invalid_geometry"
FFMPEG_NOT_FOUND_CODE = "burn_titles.ffmpeg.not_found"
ENCODE_FAILED_CODE = "burn_titles.encode.failed"
ENCODE_CANCELLED_CODE = "burn_titles.encode.cancelled"
THUMBNAIL_CODE = "burn_titles.thumbnail.failed"
OUTPUT_ALLOCATE_CODE = "burn_titles.output.allocate_failed"


class ConfigError(ValueError):
    """Configuration or input value outside its valid domain."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class ProbeError(RuntimeError):
    """Source geometry could not be read."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class EncodeError(RuntimeError):
    """External encoder failure for a single rendition."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class TextPosition(str, Enum):
    """Vertical anchor for the title block."""

    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class FontWeight(str, Enum):
    """Font face weight used to pick a font file."""

    NORMAL = "normal"
    BOLD = "bold"
    BLACK = "black"


class JobState(str, Enum):
    """Lifecycle states for an encode job."""

    PENDING = "pending"
    STARTED = "started"
    PROGRESSING = "progressing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class FrameGeometry:
    """Decoded picture size of the source video."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ProbeError(
                PROBE_GEOMETRY_CODE,
                f"frame dimensions must be positive: {self.width}x{self.height}",
            )

    @property
    def is_vertical(self) -> bool:
        return self.height > self.width


@dataclass(frozen=True)
class MediaInfo:
    """Probe result for an input video."""

    geometry: FrameGeometry
    duration_seconds: float | None
    fps: float | None


@dataclass(frozen=True)
class StyleConfig:
    """Validated styling for burned-in titles."""

    font_size_fraction: float = 0.08
    position: TextPosition = TextPosition.TOP
    font_weight: FontWeight = FontWeight.BLACK
    stroke_width: int = 3
    stroke_color: str = "black"
    shadow_strength: float = 0.9
    shadow_offset: int = 4
    background_box: bool = False
    background_opacity: float = 0.4
    max_chars_per_line: int | None = None

    def __post_init__(self) -> None:
        if not is_finite_number(self.font_size_fraction):
            raise ConfigError(
                INVALID_CONFIG_CODE, "font_size_fraction must be a number"
            )
        if self.font_size_fraction <= 0 or self.font_size_fraction > 1:
            raise ConfigError(
                INVALID_CONFIG_CODE, "font_size_fraction must be in (0, 1]"
            )
        if not isinstance(self.position, TextPosition):
            raise ConfigError(INVALID_POSITION_CODE, "position is invalid")
        if not isinstance(self.font_weight, FontWeight):
            raise ConfigError(INVALID_WEIGHT_CODE, "font_weight is invalid")
        if not is_plain_int(self.stroke_width) or self.stroke_width < 0:
            raise ConfigError(
                INVALID_CONFIG_CODE, "stroke_width must be a non-negative integer"
            )
        if not is_plain_int(self.shadow_offset) or self.shadow_offset < 0:
            raise ConfigError(
                INVALID_CONFIG_CODE, "shadow_offset must be a non-negative integer"
            )
        if not is_finite_number(self.shadow_strength) or not (
            0.0 <= self.shadow_strength <= 1.0
        ):
            raise ConfigError(
                INVALID_CONFIG_CODE, "shadow_strength must be between 0 and 1"
            )
        if not is_finite_number(self.background_opacity) or not (
            0.0 <= self.background_opacity <= 1.0
        ):
            raise ConfigError(
                INVALID_CONFIG_CODE, "background_opacity must be between 0 and 1"
            )
        if self.max_chars_per_line is not None:
            if not is_plain_int(self.max_chars_per_line) or self.max_chars_per_line <= 0:
                raise ConfigError(
                    INVALID_CONFIG_CODE,
                    "max_chars_per_line must be a positive integer",
                )
        parse_color_rgba(self.stroke_color)


@dataclass(frozen=True)
class TitleVariant:
    """One requested title and color combination."""

    text: str
    color: str

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ConfigError(EMPTY_TITLE_CODE, "title text must be non-empty")
        if not self.color.strip():
            raise ConfigError(INVALID_COLOR_CODE, "title color must be non-empty")


@dataclass(frozen=True)
class LineLayout:
    """A wrapped title line and its vertical offset from the frame top."""

    text: str
    source_text: str
    vertical_offset: int


@dataclass(frozen=True)
class TitleLayout:
    """Font size and stacked lines for a single title."""

    geometry: FrameGeometry
    font_size: int
    line_height: int
    max_chars_per_line: int
    lines: tuple[LineLayout, ...]

    def __post_init__(self) -> None:
        if self.font_size <= 0:
            raise ConfigError(INVALID_CONFIG_CODE, "font_size must be positive")
        if not self.lines:
            raise ConfigError(EMPTY_TITLE_CODE, "layout contains no lines")

    @property
    def total_height(self) -> int:
        return self.line_height * len(self.lines)

    @property
    def overflows(self) -> bool:
        """Return True when the stacked lines leave the frame."""
        first = self.lines[0].vertical_offset
        last = self.lines[-1].vertical_offset + self.line_height
        return first < 0 or last > self.geometry.height


@dataclass(frozen=True)
class EncodeEvent:
    """Lifecycle notification emitted by an encode job."""

    state: JobState
    percent: float | None = None
    message: str | None = None


@dataclass(frozen=True)
class EncodeResult:
    """Terminal outcome for one title variant."""

    variant: TitleVariant
    index: int
    success: bool
    output_path: str | None = None
    error: str | None = None
    error_code: str | None = None

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ConfigError(INVALID_RESULT_CODE, "result index must be non-negative")
        if self.success:
            if not self.output_path:
                raise ConfigError(
                    INVALID_RESULT_CODE, "successful results require an output path"
                )
            if self.error is not None:
                raise ConfigError(
                    INVALID_RESULT_CODE, "successful results cannot carry an error"
                )
        else:
            if self.output_path is not None:
                raise ConfigError(
                    INVALID_RESULT_CODE, "failed results cannot carry an output path"
                )
            if not self.error:
                raise ConfigError(
                    INVALID_RESULT_CODE, "failed results require an error reason"
                )

    @classmethod
    def succeeded(
        cls, variant: TitleVariant, index: int, output_path: str
    ) -> "EncodeResult":
        return cls(variant=variant, index=index, success=True, output_path=output_path)

    @classmethod
    def failed(
        cls, variant: TitleVariant, index: int, code: str, reason: str
    ) -> "EncodeResult":
        return cls(
            variant=variant,
            index=index,
            success=False,
            error=reason,
            error_code=code,
        )

    def to_payload(self) -> dict[str, object]:
        """Build the outbound result record."""
        filename = None
        if self.output_path:
            filename = self.output_path.replace("\\", "/").rsplit("/", 1)[-1]
        return {
            "index": self.index,
            "title": self.variant.text,
            "color": self.variant.color,
            "success": self.success,
            "filename": filename,
            "path": self.output_path,
            "error": self.error,
            "error_code": self.error_code,
        }


def is_plain_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def parse_color_rgba(color_value: str) -> tuple[int, int, int, int]:
    """Parse a color name or hex value into an RGBA tuple."""
    normalized = color_value.strip()
    if not normalized:
        raise ConfigError(INVALID_COLOR_CODE, "color must be non-empty")
    if normalized.lower().startswith("0x"):
        normalized = f"#{normalized[2:]}"
    try:
        channels = ImageColor.getrgb(normalized)
    except ValueError as exc:
        raise ConfigError(
            INVALID_COLOR_CODE, f"invalid color value: {color_value!r}"
        ) from exc
    if len(channels) == 3:
        red, green, blue = channels
        return (red, green, blue, 255)
    red, green, blue, alpha = channels
    return (red, green, blue, alpha)


def parse_text_position(value: str) -> TextPosition:
    """Parse a position name into a TextPosition."""
    normalized = value.strip().lower()
    try:
        return TextPosition(normalized)
    except ValueError as exc:
        raise ConfigError(
            INVALID_POSITION_CODE, f"invalid position: {value!r}"
        ) from exc


def parse_font_weight(value: str) -> FontWeight:
    """Parse a weight name into a FontWeight."""
    normalized = value.strip().lower()
    try:
        return FontWeight(normalized)
    except ValueError as exc:
        raise ConfigError(
            INVALID_WEIGHT_CODE, f"invalid font weight: {value!r}"
        ) from exc


def build_variants(
    titles: list[str] | tuple[str, ...],
    colors: list[str] | tuple[str, ...],
    default_color: str = "white",
) -> tuple[TitleVariant, ...]:
    """Pair titles with colors, defaulting missing colors."""
    if len(colors) > len(titles):
        raise ConfigError(
            INVALID_CONFIG_CODE, "more colors than titles were supplied"
        )
    variants: list[TitleVariant] = []
    for index, title in enumerate(titles):
        color = colors[index] if index < len(colors) else default_color
        variants.append(TitleVariant(text=title, color=color))
    return tuple(variants)

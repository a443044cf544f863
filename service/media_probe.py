"""ffprobe/ffmpeg media inspection for burn_titles."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Tuple

from PIL import Image

from domain.title_overlay import (
    FFMPEG_NOT_FOUND_CODE,
    PROBE_FAILED_CODE,
    PROBE_GEOMETRY_CODE,
    PROBE_INPUT_CODE,
    PROBE_NO_VIDEO_CODE,
    THUMBNAIL_CODE,
    EncodeError,
    FrameGeometry,
    MediaInfo,
    ProbeError,
)

DEFAULT_THUMBNAIL_TIME = "00:00:01"
DEFAULT_THUMBNAIL_SIZE = (320, 240)
LOGGER = logging.getLogger("burn_titles.probe")


def build_probe_command(input_path: str, ffprobe_path: str) -> list[str]:
    return [
        ffprobe_path,
        "-v",
        "error",
        "-show_entries",
        "stream=codec_type,width,height,r_frame_rate:format=duration",
        "-of",
        "json",
        input_path,
    ]


def parse_frame_rate(raw_value: object) -> float | None:
    """Parse an ffprobe rational frame rate such as 30000/1001."""
    if not isinstance(raw_value, str) or not raw_value.strip():
        return None
    numerator, _, denominator = raw_value.strip().partition("/")
    try:
        value = float(numerator) / float(denominator or "1")
    except (ValueError, ZeroDivisionError):
        return None
    return value if value > 0 else None


def parse_duration(raw_value: object) -> float | None:
    if raw_value is None:
        return None
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def parse_probe_output(stdout_text: str, input_path: str) -> MediaInfo:
    """Parse ffprobe JSON output into MediaInfo."""
    try:
        payload = json.loads(stdout_text or "{}")
    except json.JSONDecodeError as exc:
        raise ProbeError(
            PROBE_FAILED_CODE, f"ffprobe output is not JSON for {input_path}"
        ) from exc
    if not isinstance(payload, dict):
        raise ProbeError(PROBE_FAILED_CODE, "ffprobe output must be an object")

    streams = payload.get("streams") or []
    video_stream = next(
        (
            stream
            for stream in streams
            if isinstance(stream, dict) and stream.get("codec_type") == "video"
        ),
        None,
    )
    if video_stream is None:
        raise ProbeError(
            PROBE_NO_VIDEO_CODE, f"no video stream found in {input_path}"
        )

    width = video_stream.get("width")
    height = video_stream.get("height")
    if not isinstance(width, int) or not isinstance(height, int):
        raise ProbeError(
            PROBE_GEOMETRY_CODE, f"video stream has no frame size in {input_path}"
        )
    geometry = FrameGeometry(width=width, height=height)

    format_section = payload.get("format") or {}
    duration = None
    if isinstance(format_section, dict):
        duration = parse_duration(format_section.get("duration"))
    return MediaInfo(
        geometry=geometry,
        duration_seconds=duration,
        fps=parse_frame_rate(video_stream.get("r_frame_rate")),
    )


def probe_media(input_path: str, ffprobe_path: str = "ffprobe") -> MediaInfo:
    """Query ffprobe for frame geometry, duration and frame rate."""
    if not os.path.isfile(input_path):
        raise ProbeError(PROBE_INPUT_CODE, f"input video not found: {input_path}")
    try:
        result = subprocess.run(
            build_probe_command(input_path, ffprobe_path),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise ProbeError(
            FFMPEG_NOT_FOUND_CODE, f"ffprobe could not be executed: {exc}"
        ) from exc
    if result.returncode != 0:
        stderr_text = result.stderr.strip()
        raise ProbeError(
            PROBE_FAILED_CODE,
            f"ffprobe failed with exit code {result.returncode}. {stderr_text}",
        )
    info = parse_probe_output(result.stdout, input_path)
    LOGGER.info(
        "burn_titles.probe.done: %s %dx%d duration=%s",
        input_path,
        info.geometry.width,
        info.geometry.height,
        info.duration_seconds,
    )
    return info


def probe(input_path: str, ffprobe_path: str = "ffprobe") -> FrameGeometry:
    """Return only the frame geometry of an input video."""
    return probe_media(input_path, ffprobe_path).geometry


@dataclass
class MemoizedProber:
    """Thread-safe per-path cache in front of probe_media."""

    ffprobe_path: str = "ffprobe"
    cache: dict[str, MediaInfo] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def __call__(self, input_path: str) -> MediaInfo:
        key = os.path.abspath(input_path)
        with self.lock:
            cached = self.cache.get(key)
        if cached is not None:
            return cached
        info = probe_media(input_path, self.ffprobe_path)
        with self.lock:
            self.cache[key] = info
        return info

    def forget(self, input_path: str) -> None:
        with self.lock:
            self.cache.pop(os.path.abspath(input_path), None)


def create_thumbnail(
    video_path: str,
    output_path: str,
    at: str = DEFAULT_THUMBNAIL_TIME,
    size: Tuple[int, int] = DEFAULT_THUMBNAIL_SIZE,
    ffmpeg_path: str = "ffmpeg",
) -> Tuple[int, int]:
    """Extract one frame as a still image and return its pixel size."""
    command = [
        ffmpeg_path,
        "-y",
        "-ss",
        at,
        "-i",
        video_path,
        "-frames:v",
        "1",
        "-s",
        f"{size[0]}x{size[1]}",
        output_path,
    ]
    try:
        subprocess.run(
            command,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = exc.stderr.strip() or exc.stdout.strip() or "ffmpeg failed"
        raise EncodeError(
            THUMBNAIL_CODE, f"thumbnail extraction failed: {detail}"
        ) from exc
    except OSError as exc:
        raise EncodeError(
            FFMPEG_NOT_FOUND_CODE, f"ffmpeg could not be executed: {exc}"
        ) from exc

    try:
        with Image.open(output_path) as image:
            image.verify()
            return image.size
    except FileNotFoundError as exc:
        raise EncodeError(
            THUMBNAIL_CODE, f"thumbnail was not written: {output_path}"
        ) from exc
    except Exception as exc:
        raise EncodeError(
            THUMBNAIL_CODE, f"thumbnail is not a readable image: {output_path}"
        ) from exc

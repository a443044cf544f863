"""Fake ffmpeg/ffprobe executables for burn_titles tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable

import pytest

FAKE_FFMPEG_SOURCE = '''
import json
import os
import sys
import time

args = sys.argv[1:]
log_path = os.environ.get("FAKE_FFMPEG_LOG")
if log_path:
    with open(log_path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(args) + "\\n")


def value_after(flag):
    if flag not in args:
        return None
    return args[args.index(flag) + 1]


input_path = value_after("-i")
filter_graph = value_after("-vf") or ""
output_path = args[-1]
if input_path is None or not os.path.exists(input_path):
    sys.stderr.write(f"{input_path}: No such file or directory\\n")
    sys.exit(1)
if "FAIL" in filter_graph:
    sys.stderr.write("Error initializing filter 'drawtext'\\n")
    sys.exit(1)
if output_path.endswith(".png"):
    from PIL import Image

    width, height = (int(part) for part in (value_after("-s") or "320x240").split("x"))
    Image.new("RGB", (width, height), (10, 20, 30)).save(output_path)
    sys.exit(0)

with open(output_path, "wb") as handle:
    handle.write(b"partial")
    handle.flush()
    if "SLOW" in filter_graph:
        print("out_time_us=100000")
        print("progress=continue", flush=True)
        time.sleep(30)
    for microseconds in (500000, 1000000, 2000000):
        print(f"out_time_us={microseconds}")
        print("progress=continue", flush=True)
print("progress=end", flush=True)
sys.exit(0)
'''

FAKE_FFPROBE_SOURCE = '''
import os
import sys

log_path = os.environ.get("FAKE_FFPROBE_LOG")
if log_path:
    with open(log_path, "a", encoding="utf-8") as handle:
        handle.write(sys.argv[-1] + "\\n")
if EXIT_CODE != 0:
    sys.stderr.write("Invalid data found when processing input\\n")
    sys.exit(EXIT_CODE)
sys.stdout.write(PAYLOAD)
'''


def write_executable(path: Path, source: str) -> Path:
    """Write a python script with a shebang for the running interpreter."""
    path.write_text(f"#!{sys.executable}\n{source}", encoding="utf-8")
    path.chmod(0o755)
    return path


def probe_payload(
    width: int = 1080,
    height: int = 1920,
    duration: str | None = "2.000000",
    frame_rate: str = "30/1",
) -> dict[str, object]:
    """Build an ffprobe JSON document for a single video stream."""
    payload: dict[str, object] = {
        "streams": [
            {"codec_type": "audio"},
            {
                "codec_type": "video",
                "width": width,
                "height": height,
                "r_frame_rate": frame_rate,
            },
        ],
        "format": {},
    }
    if duration is not None:
        payload["format"] = {"duration": duration}
    return payload


@pytest.fixture(autouse=True)
def skip_on_windows() -> None:
    if sys.platform.startswith("win"):
        pytest.skip("fake encoders rely on POSIX shebang scripts")


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Path:
    return write_executable(tmp_path / "fake-ffmpeg", FAKE_FFMPEG_SOURCE)


@pytest.fixture
def make_fake_ffprobe(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory writing a fake ffprobe that prints a fixed payload."""

    def factory(payload: object | None = None, exit_code: int = 0) -> Path:
        document = payload if payload is not None else probe_payload()
        text = document if isinstance(document, str) else json.dumps(document)
        source = f"PAYLOAD = {text!r}\nEXIT_CODE = {exit_code}\n{FAKE_FFPROBE_SOURCE}"
        return write_executable(tmp_path / f"fake-ffprobe-{exit_code}", source)

    return factory


@pytest.fixture
def sample_video(tmp_path: Path) -> Path:
    video_path = tmp_path / "input.mp4"
    video_path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return video_path

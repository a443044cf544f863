"""Tests for ffprobe media inspection and thumbnails."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from domain.title_overlay import (
    FFMPEG_NOT_FOUND_CODE,
    PROBE_FAILED_CODE,
    PROBE_GEOMETRY_CODE,
    PROBE_INPUT_CODE,
    PROBE_NO_VIDEO_CODE,
    THUMBNAIL_CODE,
    EncodeError,
    FrameGeometry,
    ProbeError,
)
from service.media_probe import (
    MemoizedProber,
    create_thumbnail,
    parse_frame_rate,
    parse_probe_output,
    probe,
    probe_media,
)


def test_probe_media_reads_first_video_stream(
    make_fake_ffprobe: Callable[..., Path], sample_video: Path
) -> None:
    ffprobe = make_fake_ffprobe()

    info = probe_media(str(sample_video), str(ffprobe))

    assert info.geometry == FrameGeometry(width=1080, height=1920)
    assert info.duration_seconds == pytest.approx(2.0)
    assert info.fps == pytest.approx(30.0)


def test_probe_returns_geometry_only(
    make_fake_ffprobe: Callable[..., Path], sample_video: Path
) -> None:
    ffprobe = make_fake_ffprobe()

    assert probe(str(sample_video), str(ffprobe)) == FrameGeometry(1080, 1920)


def test_probe_missing_input(tmp_path: Path, make_fake_ffprobe: Callable[..., Path]) -> None:
    ffprobe = make_fake_ffprobe()

    with pytest.raises(ProbeError) as excinfo:
        probe_media(str(tmp_path / "missing.mp4"), str(ffprobe))

    assert excinfo.value.code == PROBE_INPUT_CODE


def test_probe_missing_ffprobe(tmp_path: Path, sample_video: Path) -> None:
    with pytest.raises(ProbeError) as excinfo:
        probe_media(str(sample_video), str(tmp_path / "no-such-ffprobe"))

    assert excinfo.value.code == FFMPEG_NOT_FOUND_CODE


def test_probe_nonzero_exit(
    make_fake_ffprobe: Callable[..., Path], sample_video: Path
) -> None:
    ffprobe = make_fake_ffprobe(exit_code=1)

    with pytest.raises(ProbeError) as excinfo:
        probe_media(str(sample_video), str(ffprobe))

    assert excinfo.value.code == PROBE_FAILED_CODE
    assert "Invalid data found" in str(excinfo.value)


def test_probe_audio_only_input(
    make_fake_ffprobe: Callable[..., Path], sample_video: Path
) -> None:
    ffprobe = make_fake_ffprobe({"streams": [{"codec_type": "audio"}], "format": {}})

    with pytest.raises(ProbeError) as excinfo:
        probe_media(str(sample_video), str(ffprobe))

    assert excinfo.value.code == PROBE_NO_VIDEO_CODE


@pytest.mark.parametrize(
    ("stdout_text", "code"),
    [
        ("not json", PROBE_FAILED_CODE),
        ("[]", PROBE_FAILED_CODE),
        ('{"streams": [{"codec_type": "video"}]}', PROBE_GEOMETRY_CODE),
        ('{"streams": [{"codec_type": "video", "width": 0, "height": 720}]}', PROBE_GEOMETRY_CODE),
    ],
)
def test_parse_probe_output_errors(stdout_text: str, code: str) -> None:
    with pytest.raises(ProbeError) as excinfo:
        parse_probe_output(stdout_text, "clip.mp4")

    assert excinfo.value.code == code


def test_parse_probe_output_optional_fields() -> None:
    info = parse_probe_output(
        '{"streams": [{"codec_type": "video", "width": 640, "height": 360}],'
        ' "format": {"duration": "N/A"}}',
        "clip.mp4",
    )

    assert info.geometry == FrameGeometry(640, 360)
    assert info.duration_seconds is None
    assert info.fps is None


@pytest.mark.parametrize(
    ("raw_value", "expected"),
    [("30/1", 30.0), ("30000/1001", 29.97), ("25", 25.0), ("0/0", None), ("", None)],
)
def test_parse_frame_rate(raw_value: str, expected: float | None) -> None:
    value = parse_frame_rate(raw_value)

    if expected is None:
        assert value is None
    else:
        assert value == pytest.approx(expected, abs=0.01)


def test_memoized_prober_probes_once_per_path(
    tmp_path: Path,
    make_fake_ffprobe: Callable[..., Path],
    sample_video: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    log_path = tmp_path / "ffprobe.log"
    monkeypatch.setenv("FAKE_FFPROBE_LOG", str(log_path))
    prober = MemoizedProber(ffprobe_path=str(make_fake_ffprobe()))

    first = prober(str(sample_video))
    second = prober(str(sample_video))

    assert first is second
    assert len(log_path.read_text(encoding="utf-8").splitlines()) == 1

    prober.forget(str(sample_video))
    prober(str(sample_video))

    assert len(log_path.read_text(encoding="utf-8").splitlines()) == 2


def test_create_thumbnail(tmp_path: Path, fake_ffmpeg: Path, sample_video: Path) -> None:
    output_path = tmp_path / "thumb.png"

    size = create_thumbnail(
        str(sample_video), str(output_path), ffmpeg_path=str(fake_ffmpeg)
    )

    assert size == (320, 240)
    assert output_path.exists()


def test_create_thumbnail_failure(tmp_path: Path, fake_ffmpeg: Path) -> None:
    with pytest.raises(EncodeError) as excinfo:
        create_thumbnail(
            str(tmp_path / "missing.mp4"),
            str(tmp_path / "thumb.png"),
            ffmpeg_path=str(fake_ffmpeg),
        )

    assert excinfo.value.code == THUMBNAIL_CODE
    assert "No such file" in str(excinfo.value)

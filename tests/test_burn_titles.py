"""Tests for the burn_titles CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest

import burn_titles


def run_cli(
    argv: list[str],
    capsys: pytest.CaptureFixture[str],
) -> tuple[int, str, str]:
    """Run the CLI entrypoint and capture its output."""
    exit_code = burn_titles.main(argv)
    captured = capsys.readouterr()
    return exit_code, captured.out, captured.err


@pytest.fixture
def encoder_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_ffmpeg: Path,
    make_fake_ffprobe: Callable[..., Path],
) -> Path:
    """Point the CLI at the fake encoder tools and return the output directory."""
    output_dir = tmp_path / "generated"
    monkeypatch.setenv(burn_titles.FFMPEG_PATH_ENV, str(fake_ffmpeg))
    monkeypatch.setenv(burn_titles.FFPROBE_PATH_ENV, str(make_fake_ffprobe()))
    monkeypatch.setenv(burn_titles.OUTPUT_DIR_ENV, str(output_dir))
    monkeypatch.setenv(burn_titles.FONT_PLATFORM_ENV, "linux")
    return output_dir


def test_cli_renders_every_title(
    encoder_env: Path, sample_video: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code, stdout, _ = run_cli(
        [
            "--input-video",
            str(sample_video),
            "--title",
            "BEST DAY EVER",
            "--color",
            "yellow",
            "--title",
            "NO WAY OUT",
        ],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_OK
    payload = json.loads(stdout)
    assert [item["title"] for item in payload] == ["BEST DAY EVER", "NO WAY OUT"]
    assert [item["color"] for item in payload] == ["yellow", "white"]
    assert all(item["success"] for item in payload)
    for item in payload:
        assert Path(item["path"]).parent == encoder_env
        assert Path(item["path"]).exists()


def test_cli_partial_failure_exit_code(
    encoder_env: Path, sample_video: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code, stdout, _ = run_cli(
        [
            "--input-video",
            str(sample_video),
            "--title",
            "ONE",
            "--title",
            "FAIL HERE",
            "--title",
            "THREE",
        ],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_PARTIAL
    payload = json.loads(stdout)
    assert [item["success"] for item in payload] == [True, False, True]
    assert payload[1]["error_code"] == "burn_titles.encode.failed"


def test_cli_print_filter(
    encoder_env: Path, sample_video: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code, stdout, _ = run_cli(
        [
            "--input-video",
            str(sample_video),
            "--title",
            "UNFORGETTABLE MEMORIES",
            "--position",
            "bottom",
            "--background-box",
            "--print-filter",
        ],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_OK
    payload = json.loads(stdout)
    assert payload[0]["font_size"] == 121
    assert payload[0]["lines"] == ["UNFORGETTABLE", "MEMORIES"]
    assert payload[0]["overflows"] is False
    assert payload[0]["filter"].count("drawtext=") == 2
    assert "box=1" in payload[0]["filter"]
    assert not encoder_env.exists()


def test_cli_flags_override_environment(
    tmp_path: Path,
    encoder_env: Path,
    sample_video: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    flag_dir = tmp_path / "from-flag"

    exit_code, stdout, _ = run_cli(
        [
            "--input-video",
            str(sample_video),
            "--title",
            "HI",
            "--output-dir",
            str(flag_dir),
        ],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_OK
    assert Path(json.loads(stdout)[0]["path"]).parent == flag_dir


def test_cli_rejects_invalid_style(
    encoder_env: Path,
    sample_video: Path,
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    exit_code, stdout, _ = run_cli(
        [
            "--input-video",
            str(sample_video),
            "--title",
            "HI",
            "--font-size-fraction",
            "1.5",
        ],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_INVALID
    assert stdout == ""
    assert "burn_titles.input.invalid_config" in caplog.text


def test_cli_requires_a_title(
    encoder_env: Path,
    sample_video: Path,
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    exit_code, _, _ = run_cli(["--input-video", str(sample_video)], capsys)

    assert exit_code == burn_titles.EXIT_INVALID
    assert "at least one --title is required" in caplog.text


def test_cli_probe_failure(
    tmp_path: Path,
    encoder_env: Path,
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    exit_code, stdout, _ = run_cli(
        ["--input-video", str(tmp_path / "missing.mp4"), "--title", "HI"],
        capsys,
    )

    assert exit_code == burn_titles.EXIT_INVALID
    assert stdout == ""
    assert "burn_titles.probe.input_missing" in caplog.text


def test_cli_usage_error_exits_through_argparse(
    capsys: pytest.CaptureFixture[str],
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        burn_titles.main(["--title", "HI"])

    assert excinfo.value.code == 2
    assert "--input-video" in capsys.readouterr().err

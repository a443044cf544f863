"""ffmpeg encode job lifecycle for burn_titles."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections import deque
from concurrent import futures
from dataclasses import dataclass
from typing import Callable, Tuple

from domain.title_overlay import (
    ENCODE_CANCELLED_CODE,
    ENCODE_FAILED_CODE,
    FFMPEG_NOT_FOUND_CODE,
    INVALID_CONFIG_CODE,
    ConfigError,
    EncodeEvent,
    EncodeResult,
    JobState,
    TitleVariant,
)

VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
ENCODE_PRESET = "fast"
ENCODE_CRF = "23"
MOVFLAGS = "+faststart"
STDERR_TAIL_LINES = 20
DEFAULT_CANCEL_GRACE_SECONDS = 5.0
TERMINAL_STATES = (JobState.COMPLETED, JobState.FAILED)
LOGGER = logging.getLogger("burn_titles.encode")

EncodeObserver = Callable[["EncodeJob", EncodeEvent], None]


@dataclass(frozen=True)
class EncoderSettings:
    """Encoder location and shutdown timing; output encoding is fixed."""

    ffmpeg_path: str = "ffmpeg"
    cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS

    def __post_init__(self) -> None:
        if not self.ffmpeg_path.strip():
            raise ConfigError(INVALID_CONFIG_CODE, "ffmpeg-path must be non-empty")
        if self.cancel_grace_seconds <= 0:
            raise ConfigError(
                INVALID_CONFIG_CODE, "cancel-grace-seconds must be positive"
            )


def build_output_args() -> Tuple[str, ...]:
    """Build the fixed output encoding arguments."""
    return (
        "-c:v",
        VIDEO_CODEC,
        "-c:a",
        AUDIO_CODEC,
        "-preset",
        ENCODE_PRESET,
        "-crf",
        ENCODE_CRF,
        "-movflags",
        MOVFLAGS,
    )


def build_encode_command(
    settings: EncoderSettings,
    input_path: str,
    filter_graph: str,
    output_path: str,
) -> list[str]:
    command = [
        settings.ffmpeg_path,
        "-y",
        "-hide_banner",
        "-nostats",
        "-progress",
        "pipe:1",
        "-i",
        input_path,
        "-vf",
        filter_graph,
    ]
    command.extend(build_output_args())
    command.append(output_path)
    return command


def parse_progress_seconds(key: str, value: str) -> float | None:
    """Parse an ffmpeg -progress time entry into seconds."""
    # ffmpeg reports out_time_ms in microseconds as well
    if key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        microseconds = int(value.strip())
    except ValueError:
        return None
    if microseconds < 0:
        return None
    return microseconds / 1_000_000.0


def compute_percent(elapsed_seconds: float, duration_seconds: float | None) -> float | None:
    if duration_seconds is None or duration_seconds <= 0:
        return None
    return max(0.0, min(100.0, elapsed_seconds / duration_seconds * 100.0))


class EncodeJob:
    """One ffmpeg invocation resolving to an EncodeResult.

    The job moves pending -> started -> progressing* -> completed, or to
    failed from any non-terminal state. Exactly one terminal event is
    emitted and no progress event follows it. ``cancel`` resolves the job
    immediately and stops the encoder in the background; an encoder that
    refuses to exit is logged and abandoned.
    """

    def __init__(
        self,
        variant: TitleVariant,
        index: int,
        input_path: str,
        filter_graph: str,
        output_path: str,
        settings: EncoderSettings | None = None,
        duration_seconds: float | None = None,
        observer: EncodeObserver | None = None,
    ) -> None:
        self.variant = variant
        self.index = index
        self.input_path = input_path
        self.filter_graph = filter_graph
        self.output_path = output_path
        self.settings = settings if settings is not None else EncoderSettings()
        self.duration_seconds = duration_seconds
        self.observer = observer
        self.state = JobState.PENDING
        self.percent: float | None = None
        self._future: futures.Future[EncodeResult] = futures.Future()
        self._lock = threading.RLock()
        self._process: subprocess.Popen[str] | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    @property
    def future(self) -> futures.Future[EncodeResult]:
        return self._future

    @property
    def command(self) -> list[str]:
        return build_encode_command(
            self.settings, self.input_path, self.filter_graph, self.output_path
        )

    def start(self) -> futures.Future[EncodeResult]:
        """Spawn ffmpeg and return a future for the terminal result."""
        with self._lock:
            if self.state != JobState.PENDING:
                return self._future
            try:
                process = subprocess.Popen(
                    self.command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                )
            except OSError as exc:
                self._resolve_failure(
                    FFMPEG_NOT_FOUND_CODE, f"ffmpeg could not be executed: {exc}"
                )
                return self._future
            self._process = process
            self._transition(JobState.STARTED, message=" ".join(self.command))

        stderr_thread = threading.Thread(
            target=self._drain_stderr,
            args=(process,),
            name=f"burn-titles-stderr-{self.index}",
            daemon=True,
        )
        monitor_thread = threading.Thread(
            target=self._monitor,
            args=(process, stderr_thread),
            name=f"burn-titles-encode-{self.index}",
            daemon=True,
        )
        stderr_thread.start()
        monitor_thread.start()
        return self._future

    def cancel(self, reason: str = "encode cancelled") -> bool:
        """Mark the job failed and stop the encoder on a best-effort basis."""
        resolved = self._resolve_failure(ENCODE_CANCELLED_CODE, reason)
        with self._lock:
            process = self._process
        if process is not None and process.poll() is None:
            threading.Thread(
                target=self._stop_process,
                args=(process,),
                name=f"burn-titles-cancel-{self.index}",
                daemon=True,
            ).start()
        return resolved

    def _drain_stderr(self, process: subprocess.Popen[str]) -> None:
        if process.stderr is None:
            return
        for line in process.stderr:
            stripped = line.rstrip()
            if stripped:
                self._stderr_tail.append(stripped)

    def _monitor(
        self, process: subprocess.Popen[str], stderr_thread: threading.Thread
    ) -> None:
        elapsed_seconds = 0.0
        if process.stdout is not None:
            for line in process.stdout:
                key, _, value = line.strip().partition("=")
                seconds = parse_progress_seconds(key, value)
                if seconds is not None:
                    elapsed_seconds = seconds
                elif key == "progress":
                    self._report_progress(elapsed_seconds)
        return_code = process.wait()
        stderr_thread.join(timeout=self.settings.cancel_grace_seconds)

        if return_code == 0 and self._resolve_success():
            return
        if return_code != 0:
            detail = " ".join(self._stderr_tail) or "no diagnostic output"
            self._resolve_failure(
                ENCODE_FAILED_CODE,
                f"ffmpeg failed with exit code {return_code}. {detail}",
            )
        self._remove_partial_output()

    def _report_progress(self, elapsed_seconds: float) -> None:
        with self._lock:
            if self.state in TERMINAL_STATES:
                return
            percent = compute_percent(elapsed_seconds, self.duration_seconds)
            if percent is not None and self.percent is not None:
                percent = max(percent, self.percent)
            self.percent = percent
            self._transition(JobState.PROGRESSING, percent=percent)

    def _resolve_success(self) -> bool:
        with self._lock:
            if self.state in TERMINAL_STATES:
                return False
            result = EncodeResult.succeeded(self.variant, self.index, self.output_path)
            self._transition(JobState.COMPLETED, percent=100.0)
            self._future.set_result(result)
            return True

    def _resolve_failure(self, code: str, reason: str) -> bool:
        with self._lock:
            if self.state in TERMINAL_STATES:
                return False
            result = EncodeResult.failed(self.variant, self.index, code, reason)
            self._transition(JobState.FAILED, message=f"{code}: {reason}")
            self._future.set_result(result)
            return True

    def _transition(
        self,
        state: JobState,
        percent: float | None = None,
        message: str | None = None,
    ) -> None:
        self.state = state
        event = EncodeEvent(state=state, percent=percent, message=message)
        if state == JobState.FAILED:
            LOGGER.error("burn_titles.encode.job_%d %s", self.index + 1, message)
        elif state != JobState.PROGRESSING:
            LOGGER.info("burn_titles.encode.job_%d %s", self.index + 1, state.value)
        if self.observer is None:
            return
        try:
            self.observer(self, event)
        except Exception as exc:
            LOGGER.warning(
                "burn_titles.encode.observer_failed: %s", str(exc).strip()
            )

    def _stop_process(self, process: subprocess.Popen[str]) -> None:
        grace = self.settings.cancel_grace_seconds
        try:
            process.terminate()
            process.wait(timeout=grace)
            return
        except subprocess.TimeoutExpired:
            pass
        except OSError as exc:
            LOGGER.warning("%s: terminate failed: %s", ENCODE_CANCELLED_CODE, exc)
        try:
            process.kill()
            process.wait(timeout=grace)
        except (subprocess.TimeoutExpired, OSError) as exc:
            LOGGER.warning(
                "%s: ffmpeg pid %s did not exit: %s",
                ENCODE_CANCELLED_CODE,
                process.pid,
                exc,
            )

    def _remove_partial_output(self) -> None:
        try:
            os.remove(self.output_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.warning(
                "burn_titles.encode.cleanup_failed: %s (%s)", self.output_path, exc
            )


def run_encode(
    input_path: str,
    filter_graph: str,
    output_path: str,
    variant: TitleVariant,
    index: int = 0,
    settings: EncoderSettings | None = None,
    duration_seconds: float | None = None,
    observer: EncodeObserver | None = None,
) -> EncodeJob:
    """Start an encode job and return it.

    The result is available from ``job.future``; ``job.cancel`` stops it.
    """
    job = EncodeJob(
        variant=variant,
        index=index,
        input_path=input_path,
        filter_graph=filter_graph,
        output_path=output_path,
        settings=settings,
        duration_seconds=duration_seconds,
        observer=observer,
    )
    job.start()
    return job

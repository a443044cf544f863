"""Sequential batch orchestration for burn_titles."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence, Tuple

from domain.title_overlay import (
    ENCODE_CANCELLED_CODE,
    OUTPUT_ALLOCATE_CODE,
    ConfigError,
    EncodeError,
    EncodeResult,
    MediaInfo,
    StyleConfig,
    TitleVariant,
)
from service.encode_job import EncodeJob, EncodeObserver, EncoderSettings
from service.layout_plan import compute_layout
from service.media_probe import probe_media
from service.overlay_filter import FontResolver, PlatformFontResolver, compile_overlay

OUTPUT_PREFIX = "generated"
OUTPUT_SUFFIX = ".mp4"
LOGGER = logging.getLogger("burn_titles.batch")

Prober = Callable[[str], MediaInfo]


class OutputLocator(Protocol):
    """Allocates an output location for one rendition."""

    def allocate(self, index: int, variant: TitleVariant) -> str:
        """Return the output path for the variant at ``index``."""


@dataclass(frozen=True)
class DirectoryOutputLocator:
    """Names outputs by batch position plus a freshness token."""

    output_dir: Path
    clock: Callable[[], float] = time.time
    id_factory: Callable[[], str] = lambda: uuid.uuid4().hex[:8]

    def allocate(self, index: int, variant: TitleVariant) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        token = f"{int(self.clock() * 1000)}-{self.id_factory()}"
        filename = f"{OUTPUT_PREFIX}-{index + 1}-{token}{OUTPUT_SUFFIX}"
        return str(self.output_dir / filename)


@dataclass(frozen=True)
class BatchSummary:
    """Counts for a finished batch."""

    total: int
    succeeded: int
    failed: int

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


def summarize_results(results: Sequence[EncodeResult]) -> BatchSummary:
    succeeded = sum(1 for result in results if result.success)
    return BatchSummary(
        total=len(results), succeeded=succeeded, failed=len(results) - succeeded
    )


def render_variant(
    index: int,
    variant: TitleVariant,
    input_path: str,
    media: MediaInfo,
    style: StyleConfig,
    settings: EncoderSettings,
    locator: OutputLocator,
    font_resolver: FontResolver,
    observer: EncodeObserver | None,
) -> EncodeJob:
    """Lay out and compile one variant into a ready-to-start encode job."""
    layout = compute_layout(media.geometry, variant.text, style)
    filter_graph = compile_overlay(layout, style, variant.color, font_resolver)
    LOGGER.info(
        "burn_titles.batch.variant_%d: %d lines at %dpx: %s",
        index + 1,
        len(layout.lines),
        layout.font_size,
        [line.source_text for line in layout.lines],
    )
    return EncodeJob(
        variant=variant,
        index=index,
        input_path=input_path,
        filter_graph=filter_graph,
        output_path=locator.allocate(index, variant),
        settings=settings,
        duration_seconds=media.duration_seconds,
        observer=observer,
    )


def run_batch(
    input_path: str,
    variants: Sequence[TitleVariant],
    locator: OutputLocator,
    style: StyleConfig | None = None,
    settings: EncoderSettings | None = None,
    prober: Prober | None = None,
    font_resolver: FontResolver | None = None,
    observer: EncodeObserver | None = None,
    cancel_event: threading.Event | None = None,
) -> Tuple[EncodeResult, ...]:
    """Burn each variant onto a copy of the input, one encode at a time.

    The input is probed once; a ProbeError aborts the whole batch. Every
    other failure is recorded in that variant's result and the batch moves
    on, so the returned tuple always holds one result per variant in input
    order.
    """
    style = style if style is not None else StyleConfig()
    settings = settings if settings is not None else EncoderSettings()
    resolver = font_resolver if font_resolver is not None else PlatformFontResolver()
    media = prober(input_path) if prober is not None else probe_media(input_path)

    results: list[EncodeResult] = []
    for index, variant in enumerate(variants):
        if cancel_event is not None and cancel_event.is_set():
            results.append(
                EncodeResult.failed(
                    variant, index, ENCODE_CANCELLED_CODE, "batch cancelled"
                )
            )
            continue
        try:
            job = render_variant(
                index,
                variant,
                input_path,
                media,
                style,
                settings,
                locator,
                resolver,
                observer,
            )
        except (ConfigError, EncodeError) as exc:
            LOGGER.error("%s: variant %d: %s", exc.code, index + 1, exc)
            results.append(EncodeResult.failed(variant, index, exc.code, str(exc)))
            continue
        except OSError as exc:
            LOGGER.error("%s: variant %d: %s", OUTPUT_ALLOCATE_CODE, index + 1, exc)
            results.append(
                EncodeResult.failed(
                    variant,
                    index,
                    OUTPUT_ALLOCATE_CODE,
                    f"output location unavailable: {exc}",
                )
            )
            continue

        future = job.start()
        if cancel_event is not None:
            while not future.done():
                if cancel_event.wait(timeout=0.1):
                    job.cancel("batch cancelled")
                    break
        results.append(future.result())

    summary = summarize_results(results)
    LOGGER.info(
        "burn_titles.batch.done: %d succeeded, %d failed of %d",
        summary.succeeded,
        summary.failed,
        summary.total,
    )
    return tuple(results)

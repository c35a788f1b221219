"""Split one media file into ordered, time-bounded chunk files.

Planning is pure (``plan_fixed`` / ``plan_silence`` turn a duration into
spans); ``ChunkPlanner`` probes the input, picks a plan, and runs one
encoder subprocess per span, strictly in index order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .cancel import CancelToken
from .commands import build_chunk_args, build_silence_detect_args
from .errors import InvalidOption, MediaError
from .models import MEDIA_AUDIO, ChunkInfo, ChunkOptions, ChunkResult, SilencePeriod
from .monitoring import Metrics, metrics as default_metrics
from .probe import parse_silence_periods
from .size_control import next_chunk_duration, oversized_chunks
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

MIN_CONTENT_SPAN = 0.5  # seconds
DEFAULT_PREFIX = "chunk"
OUTPUT_DIR_MODE = 0o755


@dataclass(frozen=True)
class ChunkSpan:
    index: int
    start: float
    end: float  # logical end, reported in ChunkInfo
    produce_end: float  # end actually cut, includes any overlap

    @property
    def duration(self) -> float:
        return self.end - self.start


def plan_fixed(duration: float, chunk_duration: float, overlap: float = 0.0) -> List[ChunkSpan]:
    """Consecutive spans of ``chunk_duration``; the last one is cut short at ``duration``.

    Overlap extends the produced file of every non-terminal span but not
    its logical range, so reported ranges never overlap.
    """
    if chunk_duration <= 0:
        raise InvalidOption(f"chunk duration must be positive, got {chunk_duration}")
    spans: List[ChunkSpan] = []
    index = 0
    while True:
        # multiply rather than accumulate to keep float drift out of the boundaries
        start = index * chunk_duration
        if start >= duration:
            break
        end = min(start + chunk_duration, duration)
        produce_end = end
        if overlap > 0 and end < duration:
            produce_end = min(end + overlap, duration)
        spans.append(ChunkSpan(index=index, start=start, end=end, produce_end=produce_end))
        index += 1
    return spans


def plan_silence(duration: float, periods: Sequence[SilencePeriod]) -> List[ChunkSpan]:
    """Content spans between silence periods; spans shorter than MIN_CONTENT_SPAN are dropped."""
    spans: List[ChunkSpan] = []
    last_end = 0.0

    def emit(start: float, end: float) -> None:
        spans.append(ChunkSpan(index=len(spans), start=start, end=end, produce_end=end))

    for period in periods:
        start = min(max(period.start, 0.0), duration)
        if start - last_end >= MIN_CONTENT_SPAN:
            emit(last_end, start)
        last_end = max(last_end, min(period.end, duration))

    if duration - last_end >= MIN_CONTENT_SPAN:
        emit(last_end, duration)
    return spans


def validate_chunk_options(options: ChunkOptions) -> None:
    if not options.input:
        raise InvalidOption("input file is required")
    if not options.output_dir:
        raise InvalidOption("output directory is required")
    if not options.format:
        raise InvalidOption("output format is required")
    if options.chunk_duration <= 0:
        raise InvalidOption(f"chunk duration must be positive, got {options.chunk_duration}")
    if options.overlap_duration < 0:
        raise InvalidOption(f"overlap duration must not be negative, got {options.overlap_duration}")


def chunk_path(options: ChunkOptions, index: int) -> str:
    prefix = options.output_prefix or DEFAULT_PREFIX
    return os.path.join(options.output_dir, f"{prefix}_{index:04d}.{options.format}")


class ChunkPlanner:
    def __init__(
        self,
        supervisor: ProcessSupervisor,
        probe_duration: Callable[[str, Optional[CancelToken]], float],
        hwaccel: Optional[str] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._supervisor = supervisor
        self._probe_duration = probe_duration
        self._hwaccel = hwaccel
        self._metrics = metrics or default_metrics

    @property
    def threads(self) -> int:
        return self._supervisor.config.max_threads

    def chunk(self, options: ChunkOptions, media_type: str, cancel: Optional[CancelToken] = None) -> ChunkResult:
        validate_chunk_options(options)
        os.makedirs(options.output_dir, mode=OUTPUT_DIR_MODE, exist_ok=True)

        duration = self._probe_duration(options.input, cancel)
        if duration <= 0:
            raise InvalidOption(f"invalid media duration {duration} for {options.input}")

        if options.enable_silence_detection and media_type == MEDIA_AUDIO:
            chunks = self._chunk_on_silence(options, duration, cancel)
        else:
            chunks = self._chunk_fixed(options, duration, media_type, cancel)

        result = ChunkResult(
            chunks=chunks,
            total_chunks=len(chunks),
            total_size=sum(c.file_size for c in chunks),
            output_dir=options.output_dir,
        )
        logger.info(
            "Chunked %s into %d %s chunk(s), %d bytes", options.input, result.total_chunks, media_type, result.total_size
        )
        return result

    def detect_silence(self, options: ChunkOptions, cancel: Optional[CancelToken] = None) -> List[SilencePeriod]:
        args = build_silence_detect_args(
            options.input, options.silence_threshold, options.silence_min_length, self.threads
        )
        try:
            result = self._supervisor.run(args, cancel=cancel, capture_output=True)
        except MediaError as e:
            raise e.wrap("failed to detect silence periods") from e
        return parse_silence_periods(result.stderr)

    def _chunk_on_silence(
        self, options: ChunkOptions, duration: float, cancel: Optional[CancelToken]
    ) -> List[ChunkInfo]:
        periods = self.detect_silence(options, cancel)
        spans = plan_silence(duration, periods)
        logger.info("Silence plan for %s: %d period(s), %d chunk(s)", options.input, len(periods), len(spans))
        chunks = self._produce(options, spans, MEDIA_AUDIO, cancel)
        for c in oversized_chunks(chunks, options.max_chunk_size):
            logger.warning(
                "Chunk %d is %d bytes, above the %d byte limit", c.index, c.file_size, options.max_chunk_size
            )
        return chunks

    def _chunk_fixed(
        self, options: ChunkOptions, duration: float, media_type: str, cancel: Optional[CancelToken]
    ) -> List[ChunkInfo]:
        chunk_duration = options.chunk_duration
        overwrite = False
        while True:
            spans = plan_fixed(duration, chunk_duration, options.overlap_duration)
            logger.info(
                "Fixed plan for %s: %d chunk(s) of %.3fs", options.input, len(spans), chunk_duration
            )
            chunks = self._produce(options, spans, media_type, cancel, overwrite=overwrite)
            too_big = oversized_chunks(chunks, options.max_chunk_size)
            if not too_big:
                return chunks
            halved = next_chunk_duration(chunk_duration)
            if halved is None:
                logger.warning(
                    "%d chunk(s) still exceed %d bytes at %.3fs; keeping them",
                    len(too_big), options.max_chunk_size, chunk_duration,
                )
                return chunks
            logger.info(
                "%d chunk(s) exceed %d bytes; re-planning with %.3fs", len(too_big), options.max_chunk_size, halved
            )
            chunk_duration = halved
            overwrite = True

    def _produce(
        self,
        options: ChunkOptions,
        spans: Sequence[ChunkSpan],
        media_type: str,
        cancel: Optional[CancelToken],
        *,
        overwrite: bool = False,
    ) -> List[ChunkInfo]:
        chunks: List[ChunkInfo] = []
        for span in spans:
            path = chunk_path(options, span.index)
            args = build_chunk_args(
                options,
                span.start,
                span.produce_end,
                path,
                media_type,
                self.threads,
                self._hwaccel,
                progress=options.on_progress is not None,
                overwrite=overwrite,
            )
            try:
                self._supervisor.run(
                    args,
                    cancel=cancel,
                    on_progress=options.on_progress,
                    total_duration=span.produce_end - span.start,
                )
            except MediaError as e:
                raise e.wrap(f"failed to create chunk {span.index}") from e
            self._metrics.inc_chunks()
            chunks.append(
                ChunkInfo(
                    index=span.index,
                    start_time=span.start,
                    end_time=span.end,
                    duration=span.duration,
                    file_path=path,
                )
            )

        for c in chunks:
            try:
                c.file_size = os.stat(c.file_path).st_size
            except FileNotFoundError:
                logger.warning("Chunk %d was not written: %s", c.index, c.file_path)
        return chunks

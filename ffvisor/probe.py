"""Parsers for prober metadata and encoder silence diagnostics.

Both parsers are tolerant: a field that is missing or unreadable keeps
its zero value instead of failing the whole parse.
"""

from __future__ import annotations

import json
import logging
import re
from fractions import Fraction
from typing import Any, Dict, List, Optional, Union

from .errors import ParseFailure
from .models import MediaInfo, SilencePeriod

logger = logging.getLogger(__name__)

_SILENCE_START = re.compile(r"silence_start:\s*(-?[\d.]+(?:e[-+]?\d+)?)", re.IGNORECASE)
_SILENCE_END = re.compile(r"silence_end:\s*(-?[\d.]+(?:e[-+]?\d+)?)", re.IGNORECASE)


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_frame_rate(value: Any) -> float:
    """Convert a rational such as ``"30000/1001"`` to fps; zero denominators give 0."""
    if not isinstance(value, str) or "/" not in value:
        return _to_float(value) or 0.0
    num, _, den = value.partition("/")
    try:
        den_i = int(den or 1)
        if den_i == 0:
            return 0.0
        return float(Fraction(int(num or 0), den_i))
    except ValueError:
        return 0.0


def _first_stream(streams: List[Dict[str, Any]], codec_type: str) -> Dict[str, Any]:
    return next((s for s in streams if isinstance(s, dict) and s.get("codec_type") == codec_type), {})


def parse_media_info(data: Union[str, bytes, Dict[str, Any]]) -> MediaInfo:
    """Build MediaInfo from ``-print_format json -show_format -show_streams`` output.

    Codec fields come from the first stream of each kind; additional
    audio or video tracks are not reported.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise ParseFailure(f"failed to parse prober output: {e}") from e
    if not isinstance(data, dict):
        raise ParseFailure("prober output is not a JSON object")

    fmt = data.get("format") or {}
    streams = data.get("streams") or []
    info = MediaInfo()

    duration = _to_float(fmt.get("duration"))
    if duration is not None:
        info.duration = duration
    if fmt.get("bit_rate") is not None:
        info.bitrate = str(fmt["bit_rate"])

    video = _first_stream(streams, "video")
    if video:
        info.width = _to_int(video.get("width")) or 0
        info.height = _to_int(video.get("height")) or 0
        info.video_codec = str(video.get("codec_name") or "")
        info.frame_rate = parse_frame_rate(video.get("avg_frame_rate"))

    audio = _first_stream(streams, "audio")
    if audio:
        info.audio_codec = str(audio.get("codec_name") or "")

    return info


def parse_duration(output: Union[str, bytes]) -> float:
    """Parse ``-show_entries format=duration -of csv=p=0`` output."""
    if isinstance(output, bytes):
        output = output.decode(errors="replace")
    text = output.strip().splitlines()[0].strip() if output.strip() else ""
    value = _to_float(text.rstrip(","))
    if value is None:
        raise ParseFailure(f"failed to parse duration: {text!r}")
    return value


def parse_silence_periods(output: str) -> List[SilencePeriod]:
    """Pair ``silence_start:``/``silence_end:`` markers in file order.

    A start without a following end is dropped; a second start before an
    end replaces the first.
    """
    periods: List[SilencePeriod] = []
    current_start: Optional[float] = None

    for line in output.splitlines():
        m = _SILENCE_START.search(line)
        if m:
            start = _to_float(m.group(1))
            if start is not None:
                current_start = max(0.0, start)
            continue
        m = _SILENCE_END.search(line)
        if m and current_start is not None:
            end = _to_float(m.group(1))
            if end is None:
                continue
            periods.append(SilencePeriod(start=current_start, end=end))
            current_start = None

    if current_start is not None:
        logger.debug("Discarding unterminated silence starting at %.3f", current_start)
    return periods

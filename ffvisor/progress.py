from __future__ import annotations

from typing import Dict, Optional

from .models import ProgressInfo

_SENTINELS = ("continue", "end")


def _clock_to_seconds(value: str) -> Optional[float]:
    """``HH:MM:SS.micro`` to seconds."""
    try:
        h, m, s = value.replace(",", ".").split(":")
        return int(h) * 3600 + int(m) * 60 + float(s)
    except ValueError:
        return None


def _number(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ProgressParser:
    """Turns the encoder's ``-progress pipe:1`` stream into ProgressInfo records.

    The stream is blocks of ``key=value`` lines, each terminated by
    ``progress=continue`` or ``progress=end``. ``current_time`` never goes
    backwards across the records one parser emits.
    """

    def __init__(self, total_duration: float = 0.0) -> None:
        self.total_duration = max(0.0, total_duration)
        self._fields: Dict[str, str] = {}
        self._last_time = 0.0

    def feed(self, line: str) -> Optional[ProgressInfo]:
        line = line.strip()
        if "=" not in line:
            return None
        key, value = line.split("=", 1)
        key, value = key.strip(), value.strip()
        if key != "progress":
            self._fields[key] = value
            return None
        if value not in _SENTINELS:
            return None
        info = self._flush(final=(value == "end"))
        self._fields = {}
        return info

    def _current_time(self) -> Optional[float]:
        us = _number(self._fields.get("out_time_us"))
        if us is None:
            # out_time_ms is reported in microseconds as well
            us = _number(self._fields.get("out_time_ms"))
        if us is not None:
            return us / 1_000_000
        clock = self._fields.get("out_time")
        if clock and clock != "N/A":
            return _clock_to_seconds(clock)
        return None

    def _flush(self, final: bool) -> ProgressInfo:
        current = self._current_time()
        if current is not None and current > self._last_time:
            self._last_time = current

        if final:
            progress = 1.0
        elif self.total_duration > 0:
            progress = min(self._last_time / self.total_duration, 1.0)
        else:
            progress = 0.0

        speed = _number(self._fields.get("speed", "").rstrip("x").strip()) or 0.0
        fps = _number(self._fields.get("fps")) or 0.0
        bitrate = self._fields.get("bitrate", "")
        if bitrate == "N/A":
            bitrate = ""

        return ProgressInfo(
            duration=self.total_duration,
            current_time=self._last_time,
            progress=progress,
            speed=speed,
            bitrate=bitrate,
            fps=fps,
        )

from __future__ import annotations

import sys
from typing import Any, List, Optional

from .errors import UnsupportedPlatform
from .facade import FFmpeg
from .models import Config


class LinuxFFmpeg(FFmpeg):
    os_name = "linux"


class DarwinFFmpeg(FFmpeg):
    os_name = "darwin"
    ffmpeg_candidates = ("ffmpeg", "/usr/local/bin/ffmpeg", "/opt/homebrew/bin/ffmpeg", "/usr/bin/ffmpeg")
    ffprobe_candidates = ("ffprobe", "/usr/local/bin/ffprobe", "/opt/homebrew/bin/ffprobe", "/usr/bin/ffprobe")


class WindowsFFmpeg(FFmpeg):
    """Placeholder variant; every operation raises UnsupportedPlatform."""

    os_name = "windows"

    def _unsupported(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedPlatform("not supported on windows")

    init = get_system_info = get_media_info = get_media_duration = _unsupported
    convert = extract = convert_batch = extract_batch = _unsupported
    chunk_audio = chunk_video = _unsupported
    add_job = get_job = cancel_job = run_job = run_pending = _unsupported
    kill_all_processes = close = _unsupported

    def get_config(self) -> Config:
        return Config()

    def list_jobs(self) -> List[Any]:
        return []

    def get_active_processes(self) -> int:
        return 0


_VARIANTS = {
    "linux": LinuxFFmpeg,
    "darwin": DarwinFFmpeg,
    "win32": WindowsFFmpeg,
    "windows": WindowsFFmpeg,
}


def platform_tag(value: Optional[str] = None) -> str:
    value = (value or sys.platform).lower()
    if value.startswith("linux"):
        return "linux"
    return value


def make_ffmpeg(platform: Optional[str] = None, machine: Optional[str] = None, config: Optional[Config] = None) -> FFmpeg:
    """Pick the façade variant for ``platform`` (default: this host).

    With ``config`` the instance is initialised before it is returned.
    An unknown platform raises UnsupportedPlatform.
    """
    tag = platform_tag(platform)
    variant = _VARIANTS.get(tag)
    if variant is None:
        raise UnsupportedPlatform(f"unsupported platform: {tag}")
    ffmpeg = variant(machine=machine)
    if config is not None:
        ffmpeg.init(config)
    return ffmpeg

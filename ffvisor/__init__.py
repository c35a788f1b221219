"""Supervised ffmpeg/ffprobe subprocesses: probing, conversion, extraction and chunking."""

from .cancel import CancelToken
from .errors import (
    Cancelled,
    CapacityReached,
    DeadlineExceeded,
    ExecFailure,
    InvalidOption,
    MediaError,
    NotFound,
    ParseFailure,
    UnsupportedPlatform,
)
from .facade import FFmpeg
from .models import (
    BatchJob,
    ChunkInfo,
    ChunkOptions,
    ChunkResult,
    Config,
    ConvertOptions,
    ExtractOptions,
    MediaInfo,
    ProgressInfo,
    SilencePeriod,
    SystemInfo,
)
from .platforms import DarwinFFmpeg, LinuxFFmpeg, WindowsFFmpeg, make_ffmpeg

__all__ = [
    "BatchJob",
    "CancelToken",
    "Cancelled",
    "CapacityReached",
    "ChunkInfo",
    "ChunkOptions",
    "ChunkResult",
    "Config",
    "ConvertOptions",
    "DarwinFFmpeg",
    "DeadlineExceeded",
    "ExecFailure",
    "ExtractOptions",
    "FFmpeg",
    "InvalidOption",
    "LinuxFFmpeg",
    "MediaError",
    "MediaInfo",
    "NotFound",
    "ParseFailure",
    "ProgressInfo",
    "SilencePeriod",
    "SystemInfo",
    "UnsupportedPlatform",
    "WindowsFFmpeg",
    "make_ffmpeg",
]

"""Argument vectors for the encoder and prober.

Every builder here is pure: the same inputs give the same list and
nothing touches the filesystem, so vectors can be logged, compared in
tests, or pasted into a terminal.
"""

from __future__ import annotations

import shlex
from typing import Dict, List, Optional, Sequence

from .models import EXTRACT_AUDIO, EXTRACT_KEYFRAME, MEDIA_AUDIO, ChunkOptions, ConvertOptions, ExtractOptions

PROGRESS_ARGS = ["-progress", "pipe:1"]
KEYFRAME_FILTER = "select='eq(pict_type,I)'"
LOSSLESS_AUDIO_FORMAT = "wav"


def format_seconds(value: float) -> str:
    """Millisecond precision, as used for every time value on the command line."""
    return f"{value:.3f}"


def _prologue(input_path: str, threads: int, hwaccel: Optional[str]) -> List[str]:
    args = ["-i", input_path, "-threads", str(threads)]
    if hwaccel:
        args += ["-hwaccel", hwaccel]
    return args


def _extra_args(options: Dict[str, str]) -> List[str]:
    args: List[str] = []
    for key, value in options.items():
        args.append(key)
        # flag-only options such as {"-y": ""} carry no value
        if value != "":
            args.append(str(value))
    return args


def build_convert_args(options: ConvertOptions, threads: int, hwaccel: Optional[str] = None) -> List[str]:
    args = _prologue(options.input, threads, hwaccel)
    if options.format:
        args += ["-f", options.format]
    if options.quality:
        args += ["-q:v", options.quality]
    args += _extra_args(options.options)
    args += PROGRESS_ARGS
    args.append(options.output)
    return args


def build_extract_args(options: ExtractOptions, threads: int, hwaccel: Optional[str] = None) -> List[str]:
    args = _prologue(options.input, threads, hwaccel)
    if options.type == EXTRACT_AUDIO:
        args.append("-vn")
        if options.format:
            args += ["-f", options.format]
    elif options.type == EXTRACT_KEYFRAME:
        args += ["-an", "-vf", KEYFRAME_FILTER]
    else:
        raise ValueError(f"unknown extraction type: {options.type!r}")
    args += _extra_args(options.options)
    args += PROGRESS_ARGS
    args.append(options.output)
    return args


def build_chunk_args(
    options: ChunkOptions,
    start_time: float,
    end_time: float,
    output_path: str,
    media_type: str,
    threads: int,
    hwaccel: Optional[str] = None,
    *,
    progress: bool = False,
    overwrite: bool = False,
) -> List[str]:
    """Cut ``[start_time, end_time)`` of the input into ``output_path``.

    The seek is placed before ``-i`` so the encoder jumps straight to the
    start instead of decoding from the beginning of the file.
    """
    args = [
        "-ss", format_seconds(start_time),
        "-i", options.input,
        "-t", format_seconds(end_time - start_time),
        "-threads", str(threads),
    ]
    if hwaccel:
        args += ["-hwaccel", hwaccel]
    if media_type == MEDIA_AUDIO:
        args.append("-vn")
    if options.format:
        args += ["-f", options.format]
    args += _extra_args(options.options)
    if media_type == MEDIA_AUDIO and options.format == LOSSLESS_AUDIO_FORMAT:
        args += ["-acodec", "pcm_s16le"]
    if progress:
        args += PROGRESS_ARGS
    if overwrite:
        args.append("-y")
    args.append(output_path)
    return args


def build_silence_detect_args(input_path: str, threshold_db: float, min_length: float, threads: int) -> List[str]:
    return [
        "-i", input_path,
        "-threads", str(threads),
        "-af", f"silencedetect=noise={threshold_db:g}dB:d={min_length:g}",
        "-f", "null",
        "-",
    ]


def build_probe_args(input_path: str) -> List[str]:
    return [
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        input_path,
    ]


def build_duration_args(input_path: str) -> List[str]:
    return [
        "-v", "quiet",
        "-show_entries", "format=duration",
        "-of", "csv=p=0",
        input_path,
    ]


def command_as_string(binary: str, args: Sequence[str]) -> str:
    """Shell-quoted command line for logs."""
    return shlex.join([binary, *args])

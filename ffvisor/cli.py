from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from .cancel import CancelToken
from .errors import MediaError
from .facade import FFmpeg
from .models import (
    DEFAULT_AUDIO_FORMAT,
    DEFAULT_VIDEO_FORMAT,
    EXTRACT_AUDIO,
    ChunkOptions,
    Config,
    ConvertOptions,
    ExtractOptions,
)
from .monitoring import metrics
from .platforms import make_ffmpeg

logger = logging.getLogger("ffvisor")

INFO_TIMEOUT = 60.0
DEFAULT_TIMEOUT = 300.0


# ------------------------------
# Logging
# ------------------------------
def configure_logging(log_level: str = "INFO") -> None:
    # stdout carries the JSON result, so log lines go to stderr
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


@contextmanager
def deadline(seconds: float) -> Iterator[CancelToken]:
    token = CancelToken(timeout=seconds if seconds > 0 else None)
    try:
        yield token
    finally:
        token.release()


def reserve_temp_file(prefix: str, fmt: str) -> str:
    """A unique path that does not exist yet; the encoder refuses to clobber without -y."""
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=f".{fmt}")
    os.close(fd)
    os.remove(path)
    return path


def audio_options(args: argparse.Namespace) -> Dict[str, str]:
    options: Dict[str, str] = {}
    if args.bitrate:
        options["-b:a"] = args.bitrate
    if args.sample_rate:
        options["-ar"] = str(args.sample_rate)
    return options


# ------------------------------
# Subcommands
# ------------------------------
def cmd_info(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    with deadline(args.timeout or INFO_TIMEOUT) as token:
        return ffmpeg.get_media_info(args.path, token).to_dict()


def cmd_convert(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    output = args.output or reserve_temp_file("ffmpeg_convert_", args.format)
    opts = ConvertOptions(input=args.path, output=output, format=args.format, options=audio_options(args))
    with deadline(args.timeout or DEFAULT_TIMEOUT) as token:
        ffmpeg.convert(opts, token)
    return {"output": output}


def cmd_extract_audio(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    output = args.output or reserve_temp_file("ffmpeg_audio_", args.format)
    opts = ExtractOptions(
        input=args.path, output=output, type=EXTRACT_AUDIO, format=args.format, options=audio_options(args)
    )
    with deadline(args.timeout or DEFAULT_TIMEOUT) as token:
        ffmpeg.extract(opts, token)
    return {"output": output}


def cmd_chunk_audio(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    opts = ChunkOptions(
        input=args.path,
        output_dir=args.output_dir or tempfile.mkdtemp(prefix="ffmpeg_chunk_"),
        chunk_duration=args.max_duration,
        max_chunk_size=args.max_size,
        silence_threshold=args.silence_threshold,
        silence_min_length=1.0,
        enable_silence_detection=True,
        format=args.format,
        output_prefix="chunk",
    )
    with deadline(args.timeout or DEFAULT_TIMEOUT) as token:
        return ffmpeg.chunk_audio(opts, token).to_dict()


def cmd_chunk_video(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    opts = ChunkOptions(
        input=args.path,
        output_dir=args.output_dir or tempfile.mkdtemp(prefix="ffmpeg_chunk_"),
        chunk_duration=args.duration,
        overlap_duration=args.overlap,
        format=args.format,
        output_prefix="chunk",
    )
    with deadline(args.timeout or DEFAULT_TIMEOUT) as token:
        return ffmpeg.chunk_video(opts, token).to_dict()


def cmd_sysinfo(ffmpeg: FFmpeg, args: argparse.Namespace) -> Any:
    return ffmpeg.get_system_info().to_dict()


# ------------------------------
# CLI
# ------------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ffvisor", description="Run supervised ffmpeg/ffprobe jobs and print the result as JSON."
    )
    parser.add_argument("--ffmpeg", default="", help="Encoder binary (default: search PATH)")
    parser.add_argument("--ffprobe", default="", help="Prober binary (default: search PATH)")
    parser.add_argument("--work-dir", default="", help="Working directory for subprocesses")
    parser.add_argument("--max-processes", type=int, default=4,
                        help="Maximum concurrent subprocesses")
    parser.add_argument("--max-threads", type=int, default=8,
                        help="Worker threads per subprocess")
    parser.add_argument("--max-process-time", type=float, default=0.0,
                        help="Per-subprocess time limit in seconds (0 disables)")
    parser.add_argument("--gpu", action="store_true", help="Request hardware acceleration")
    parser.add_argument("--timeout", type=float, default=0.0,
                        help="Overall time limit for the command (default depends on the command)")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--metrics-port", type=int, default=0,
                        help="Expose Prometheus metrics on this port")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("info", help="Show media information")
    p.add_argument("path")
    p.set_defaults(handler=cmd_info)

    p = sub.add_parser("convert", help="Convert a media file")
    p.add_argument("path")
    p.add_argument("--format", required=True)
    p.add_argument("--output", default="")
    p.add_argument("--bitrate", default="", help="Audio bitrate, e.g. 128k")
    p.add_argument("--sample-rate", type=int, default=0)
    p.set_defaults(handler=cmd_convert)

    p = sub.add_parser("extract-audio", help="Extract the audio track")
    p.add_argument("path")
    p.add_argument("--format", default=DEFAULT_AUDIO_FORMAT)
    p.add_argument("--output", default="")
    p.add_argument("--bitrate", default="")
    p.add_argument("--sample-rate", type=int, default=0)
    p.set_defaults(handler=cmd_extract_audio)

    p = sub.add_parser("chunk-audio", help="Split audio on silence")
    p.add_argument("path")
    p.add_argument("--max-duration", type=float, default=600.0, help="Chunk duration in seconds")
    p.add_argument("--max-size", type=int, default=25_000_000, help="Chunk size limit in bytes")
    p.add_argument("--silence-threshold", type=float, default=-40.0, help="Silence threshold in dB")
    p.add_argument("--output-dir", default="")
    p.add_argument("--format", default=DEFAULT_AUDIO_FORMAT)
    p.set_defaults(handler=cmd_chunk_audio)

    p = sub.add_parser("chunk-video", help="Split video into fixed-length chunks")
    p.add_argument("path")
    p.add_argument("--duration", type=float, default=60.0, help="Chunk duration in seconds")
    p.add_argument("--overlap", type=float, default=0.0, help="Overlap in seconds")
    p.add_argument("--output-dir", default="")
    p.add_argument("--format", default=DEFAULT_VIDEO_FORMAT)
    p.set_defaults(handler=cmd_chunk_video)

    p = sub.add_parser("sysinfo", help="Show encoder versions, GPUs and hwaccels")
    p.set_defaults(handler=cmd_sysinfo)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    if args.metrics_port:
        metrics.start_server(args.metrics_port)

    config = Config(
        ffmpeg_path=args.ffmpeg,
        ffprobe_path=args.ffprobe,
        work_dir=args.work_dir,
        max_processes=args.max_processes,
        max_threads=args.max_threads,
        max_process_time=args.max_process_time,
        enable_gpu=args.gpu,
    )
    handler: Callable[[FFmpeg, argparse.Namespace], Any] = args.handler
    ffmpeg: Optional[FFmpeg] = None
    try:
        ffmpeg = make_ffmpeg(config=config)
        result = handler(ffmpeg, args)
    except MediaError as e:
        logger.error("%s: %s", e.kind, e)
        return 1
    finally:
        if ffmpeg is not None:
            ffmpeg.close()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

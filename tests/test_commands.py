import pytest

from ffvisor.commands import (
    build_chunk_args,
    build_convert_args,
    build_duration_args,
    build_extract_args,
    build_probe_args,
    build_silence_detect_args,
    command_as_string,
)
from ffvisor.models import ChunkOptions, ConvertOptions, ExtractOptions


def _in_order(args, expected):
    """True when ``expected`` appears in ``args`` as a subsequence."""
    it = iter(args)
    return all(any(a == e for a in it) for e in expected)


def test_keyframe_extraction_vector():
    opts = ExtractOptions(input="in.mp4", output="out.mp4", type="keyframe", format="mp4")
    args = build_extract_args(opts, threads=6)
    assert _in_order(
        args, ["-i", "in.mp4", "-threads", "6", "-an", "-vf", "select='eq(pict_type,I)'", "-progress", "pipe:1", "out.mp4"]
    )
    assert "-f" not in args
    assert args[-1] == "out.mp4"


def test_audio_extraction_puts_no_video_before_format():
    opts = ExtractOptions(input="in.mp4", output="out.mp3", type="audio", format="mp3", options={"-b:a": "128k"})
    args = build_extract_args(opts, threads=2)
    assert args.index("-vn") < args.index("-f")
    assert _in_order(args, ["-f", "mp3", "-b:a", "128k", "-progress", "pipe:1", "out.mp3"])


def test_unknown_extraction_kind_raises():
    with pytest.raises(ValueError):
        build_extract_args(ExtractOptions(input="a", output="b", type="subtitles"), threads=1)


def test_convert_vector_order_and_hwaccel():
    opts = ConvertOptions(
        input="in.mov", output="out.mp4", format="mp4", quality="2", options={"-c:v": "libx264", "-y": ""}
    )
    args = build_convert_args(opts, threads=4, hwaccel="videotoolbox")
    assert args[:6] == ["-i", "in.mov", "-threads", "4", "-hwaccel", "videotoolbox"]
    assert args[6:] == ["-f", "mp4", "-q:v", "2", "-c:v", "libx264", "-y", "-progress", "pipe:1", "out.mp4"]
    assert args.count("-i") == 1


def test_convert_is_pure():
    opts = ConvertOptions(input="in.mov", output="out.mp4", format="mp4")
    assert build_convert_args(opts, 3) == build_convert_args(opts, 3)
    assert "-hwaccel" not in build_convert_args(opts, 3)


def test_chunk_vector_for_wav_audio():
    opts = ChunkOptions(input="talk.flac", output_dir="/out", format="wav", chunk_duration=10)
    args = build_chunk_args(opts, 10.0, 20.5, "/out/chunk_0001.wav", "audio", threads=2)
    assert args[:4] == ["-ss", "10.000", "-i", "talk.flac"]
    assert _in_order(args, ["-t", "10.500", "-threads", "2", "-vn", "-f", "wav", "-acodec", "pcm_s16le"])
    assert args[-1] == "/out/chunk_0001.wav"
    assert "-progress" not in args and "-y" not in args


def test_chunk_vector_for_video_with_progress_and_overwrite():
    opts = ChunkOptions(input="film.mkv", output_dir="/out", format="mp4", chunk_duration=30)
    args = build_chunk_args(
        opts, 0.0, 1.0 / 3, "/out/c.mp4", "video", threads=8, hwaccel="auto", progress=True, overwrite=True
    )
    assert "-vn" not in args and "-acodec" not in args
    assert _in_order(args, ["-t", "0.333", "-hwaccel", "auto", "-progress", "pipe:1", "-y", "/out/c.mp4"])


def test_silence_and_duration_vectors():
    assert build_silence_detect_args("a.mp3", -40.0, 1.0, 4) == [
        "-i", "a.mp3", "-threads", "4", "-af", "silencedetect=noise=-40dB:d=1", "-f", "null", "-",
    ]
    assert build_duration_args("a.mp3") == [
        "-v", "quiet", "-show_entries", "format=duration", "-of", "csv=p=0", "a.mp3",
    ]


def test_metadata_vector_ends_with_input():
    assert build_probe_args("clip.mov") == [
        "-v", "quiet", "-print_format", "json", "-show_format", "-show_streams", "clip.mov",
    ]


def test_command_as_string_quotes():
    assert command_as_string("ffmpeg", ["-i", "my file.mp4"]) == "ffmpeg -i 'my file.mp4'"

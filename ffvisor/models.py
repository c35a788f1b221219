from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Union

DEFAULT_AUDIO_FORMAT = "mp3"
DEFAULT_VIDEO_FORMAT = "mp4"

# Job kinds
JOB_CONVERT = "convert"
JOB_EXTRACT = "extract"
JOB_KINDS = (JOB_CONVERT, JOB_EXTRACT)

# Job statuses
STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# Extraction kinds
EXTRACT_AUDIO = "audio"
EXTRACT_KEYFRAME = "keyframe"
EXTRACT_KINDS = (EXTRACT_AUDIO, EXTRACT_KEYFRAME)

# Chunking media kinds
MEDIA_AUDIO = "audio"
MEDIA_VIDEO = "video"


@dataclass(frozen=True)
class Config:
    ffmpeg_path: str = ""
    ffprobe_path: str = ""
    work_dir: str = ""
    max_processes: int = 0
    max_threads: int = 0
    max_process_time: float = 0.0  # seconds, 0 disables
    enable_gpu: bool = False
    gpu_index: int = -1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProgressInfo:
    duration: float = 0.0
    current_time: float = 0.0
    progress: float = 0.0
    speed: float = 0.0
    bitrate: str = ""
    fps: float = 0.0


ProgressCallback = Callable[[ProgressInfo], None]


@dataclass
class ConvertOptions:
    input: str = ""
    output: str = ""
    format: str = ""
    quality: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    stream: bool = False
    on_progress: Optional[ProgressCallback] = field(default=None, repr=False, compare=False)


@dataclass
class ExtractOptions:
    input: str = ""
    output: str = ""
    type: str = ""
    format: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    stream: bool = False
    on_progress: Optional[ProgressCallback] = field(default=None, repr=False, compare=False)


@dataclass
class ChunkOptions:
    input: str = ""
    output_dir: str = ""
    output_prefix: str = "chunk"
    chunk_duration: float = 0.0
    silence_threshold: float = -40.0  # dB
    silence_min_length: float = 1.0  # seconds
    format: str = ""
    overlap_duration: float = 0.0
    enable_silence_detection: bool = False
    max_chunk_size: int = 0  # bytes, 0 means unbounded
    options: Dict[str, str] = field(default_factory=dict)
    on_progress: Optional[ProgressCallback] = field(default=None, repr=False, compare=False)


@dataclass
class ChunkInfo:
    index: int
    start_time: float
    end_time: float
    duration: float
    file_path: str
    file_size: int = 0
    is_silence: bool = False


@dataclass
class ChunkResult:
    chunks: List[ChunkInfo] = field(default_factory=list)
    total_chunks: int = 0
    total_size: int = 0
    output_dir: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MediaInfo:
    duration: float = 0.0
    width: int = 0
    height: int = 0
    bitrate: str = ""
    frame_rate: float = 0.0
    audio_codec: str = ""
    video_codec: str = ""
    file_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SilencePeriod:
    start: float
    end: float


@dataclass
class SystemInfo:
    os: str
    ffmpeg_version: str = ""
    ffprobe_version: str = ""
    gpus: List[str] = field(default_factory=list)
    hwaccels: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


JobOptions = Union[ConvertOptions, ExtractOptions]


@dataclass
class BatchJob:
    """A queued unit of work.

    ``kind`` is the discriminator for ``options``: ``convert`` jobs carry
    ConvertOptions and ``extract`` jobs carry ExtractOptions. Use the
    ``convert``/``extract`` constructors rather than pairing them by hand.
    """

    id: str = ""
    kind: str = JOB_CONVERT
    options: Optional[JobOptions] = None
    status: str = STATUS_PENDING
    error: str = ""

    @classmethod
    def convert(cls, options: ConvertOptions, job_id: str = "") -> "BatchJob":
        return cls(id=job_id, kind=JOB_CONVERT, options=options)

    @classmethod
    def extract(cls, options: ExtractOptions, job_id: str = "") -> "BatchJob":
        return cls(id=job_id, kind=JOB_EXTRACT, options=options)

"""Operation surface shared by the per-OS variants.

A façade owns one Config, one process supervisor, one job registry and
one chunk planner. Nothing is global: build an instance with
``make_ffmpeg`` (or a platform class), call ``init`` and pass it around.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import tempfile
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from .cancel import CancelToken
from .chunking import ChunkPlanner
from .commands import build_convert_args, build_duration_args, build_extract_args, build_probe_args
from .errors import InvalidOption, MediaError, NotFound
from .executors import make_executor
from .gpu import detect_gpus, hwaccel_tag, list_hwaccels, version_line
from .jobs import JobRegistry
from .models import (
    EXTRACT_KINDS,
    JOB_CONVERT,
    MEDIA_AUDIO,
    MEDIA_VIDEO,
    BatchJob,
    ChunkOptions,
    ChunkResult,
    Config,
    ConvertOptions,
    ExtractOptions,
    MediaInfo,
    ProgressCallback,
    SystemInfo,
)
from .monitoring import Metrics, metrics as default_metrics
from .probe import parse_duration, parse_media_info
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class FFmpeg:
    os_name = ""
    ffmpeg_candidates: Sequence[str] = ("ffmpeg",)
    ffprobe_candidates: Sequence[str] = ("ffprobe",)

    def __init__(self, machine: Optional[str] = None, metrics: Optional[Metrics] = None) -> None:
        self.machine = machine or platform.machine()
        self._metrics = metrics or default_metrics
        self._init_lock = threading.Lock()
        self._config: Optional[Config] = None
        self._supervisor: Optional[ProcessSupervisor] = None
        self._planner: Optional[ChunkPlanner] = None
        self._jobs = JobRegistry()

    # ------------------------------
    # Configuration
    # ------------------------------

    @property
    def hwaccel(self) -> str:
        return hwaccel_tag(self.os_name, self.machine)

    def init(self, config: Optional[Config] = None) -> Config:
        """Fill defaults, verify both binaries resolve, and build the supervisor.

        A façade is initialised once; its Config never changes afterwards.
        """
        config = self._with_defaults(config or Config())
        self._verify_commands(config)
        with self._init_lock:
            if self._config is not None:
                raise InvalidOption("already initialised")
            supervisor = ProcessSupervisor(config, self._metrics)
            self._planner = ChunkPlanner(
                supervisor,
                self.get_media_duration,
                hwaccel=self._hwaccel_arg(config),
                metrics=self._metrics,
            )
            self._supervisor = supervisor
            self._config = config
        logger.info(
            "Initialised %s (%s): %d process(es), %d thread(s), work dir %s",
            self.os_name, config.ffmpeg_path, config.max_processes, config.max_threads, config.work_dir,
        )
        return config

    def _with_defaults(self, config: Config) -> Config:
        cpus = os.cpu_count() or 1
        return replace(
            config,
            ffmpeg_path=config.ffmpeg_path or self._find_binary(self.ffmpeg_candidates),
            ffprobe_path=config.ffprobe_path or self._find_binary(self.ffprobe_candidates),
            work_dir=config.work_dir or tempfile.gettempdir(),
            max_processes=config.max_processes if config.max_processes > 0 else cpus,
            max_threads=config.max_threads if config.max_threads > 0 else cpus,
            max_process_time=max(0.0, config.max_process_time),
        )

    @staticmethod
    def _find_binary(candidates: Sequence[str]) -> str:
        for candidate in candidates:
            if shutil.which(candidate):
                return candidate
        return candidates[0]

    @staticmethod
    def _verify_commands(config: Config) -> None:
        for path in (config.ffmpeg_path, config.ffprobe_path):
            if shutil.which(path) is None:
                raise NotFound(f"command verification failed: {path} not found")

    def get_config(self) -> Config:
        return self._config or Config()

    def _require(self) -> Tuple[Config, ProcessSupervisor]:
        config, supervisor = self._config, self._supervisor
        if config is None or supervisor is None:
            raise InvalidOption("not initialised; call init() first")
        return config, supervisor

    def _hwaccel_arg(self, config: Config) -> Optional[str]:
        return self.hwaccel if config.enable_gpu else None

    def get_system_info(self) -> SystemInfo:
        config, _ = self._require()
        return SystemInfo(
            os=self.os_name,
            ffmpeg_version=version_line(config.ffmpeg_path) or "",
            ffprobe_version=version_line(config.ffprobe_path) or "",
            gpus=detect_gpus(self.os_name),
            hwaccels=list_hwaccels(config.ffmpeg_path),
        )

    # ------------------------------
    # Probing
    # ------------------------------

    def get_media_info(self, path: str, cancel: Optional[CancelToken] = None) -> MediaInfo:
        config, supervisor = self._require()
        try:
            size = os.stat(path).st_size
        except FileNotFoundError as e:
            raise NotFound(f"failed to get file info: {path}") from e
        try:
            result = supervisor.run(
                build_probe_args(path), binary=config.ffprobe_path, cancel=cancel, capture_output=True
            )
        except MediaError as e:
            raise e.wrap("failed to get media info") from e

        info = parse_media_info(result.stdout)
        info.file_size = size
        return info

    def get_media_duration(self, path: str, cancel: Optional[CancelToken] = None) -> float:
        config, supervisor = self._require()
        try:
            result = supervisor.run(
                build_duration_args(path), binary=config.ffprobe_path, cancel=cancel, capture_output=True
            )
        except MediaError as e:
            raise e.wrap("failed to get media duration") from e
        return parse_duration(result.stdout)

    def _progress_total(self, path: str, on_progress: Optional[ProgressCallback], cancel: Optional[CancelToken]) -> float:
        if on_progress is None:
            return 0.0
        try:
            return self.get_media_duration(path, cancel)
        except MediaError as e:
            logger.debug("No duration for progress of %s: %s", path, e)
            return 0.0

    # ------------------------------
    # Convert / extract
    # ------------------------------

    def convert(self, options: ConvertOptions, cancel: Optional[CancelToken] = None) -> None:
        self._convert(options, cancel)

    def _convert(
        self,
        options: ConvertOptions,
        cancel: Optional[CancelToken],
        on_spawn: Optional[Callable[[str], None]] = None,
    ) -> None:
        config, supervisor = self._require()
        if not options.input:
            raise InvalidOption("input file is required")
        if not options.output:
            raise InvalidOption("output file is required")
        supervisor.admit()
        args = build_convert_args(options, config.max_threads, self._hwaccel_arg(config))
        total = self._progress_total(options.input, options.on_progress, cancel)
        supervisor.run(
            args, cancel=cancel, on_progress=options.on_progress, total_duration=total, on_spawn=on_spawn
        )

    def extract(self, options: ExtractOptions, cancel: Optional[CancelToken] = None) -> None:
        self._extract(options, cancel)

    def _extract(
        self,
        options: ExtractOptions,
        cancel: Optional[CancelToken],
        on_spawn: Optional[Callable[[str], None]] = None,
    ) -> None:
        config, supervisor = self._require()
        if not options.input:
            raise InvalidOption("input file is required")
        if not options.output:
            raise InvalidOption("output file is required")
        if options.type not in EXTRACT_KINDS:
            raise InvalidOption(f"unsupported extraction type: {options.type!r}")
        supervisor.admit()
        args = build_extract_args(options, config.max_threads, self._hwaccel_arg(config))
        total = self._progress_total(options.input, options.on_progress, cancel)
        supervisor.run(
            args, cancel=cancel, on_progress=options.on_progress, total_duration=total, on_spawn=on_spawn
        )

    def convert_batch(self, items: Sequence[ConvertOptions], cancel: Optional[CancelToken] = None) -> None:
        for options in items:
            self.convert(options, cancel)

    def extract_batch(self, items: Sequence[ExtractOptions], cancel: Optional[CancelToken] = None) -> None:
        for options in items:
            self.extract(options, cancel)

    # ------------------------------
    # Chunking
    # ------------------------------

    def chunk_audio(self, options: ChunkOptions, cancel: Optional[CancelToken] = None) -> ChunkResult:
        return self._chunk(options, MEDIA_AUDIO, cancel)

    def chunk_video(self, options: ChunkOptions, cancel: Optional[CancelToken] = None) -> ChunkResult:
        return self._chunk(options, MEDIA_VIDEO, cancel)

    def _chunk(self, options: ChunkOptions, media_type: str, cancel: Optional[CancelToken]) -> ChunkResult:
        _, supervisor = self._require()
        supervisor.admit()
        return self._planner.chunk(options, media_type, cancel)  # type: ignore[union-attr]

    # ------------------------------
    # Jobs
    # ------------------------------

    def add_job(self, job: BatchJob) -> str:
        return self._jobs.add(job)

    def get_job(self, job_id: str) -> BatchJob:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[BatchJob]:
        return self._jobs.list()

    def cancel_job(self, job_id: str) -> None:
        proc_id = self._jobs.cancel(job_id)
        # registry lock is released here; only now touch the process table
        if proc_id is not None and self._supervisor is not None:
            self._supervisor.terminate(proc_id)

    def run_job(self, job_id: str, cancel: Optional[CancelToken] = None) -> BatchJob:
        """Execute one pending job on the calling thread and return its final record."""
        self._require()
        job, token = self._jobs.start(job_id, parent=cancel)

        def on_spawn(proc_id: str) -> None:
            self._jobs.attach_process(job_id, proc_id)

        error: Optional[BaseException] = None
        try:
            if job.options is None:
                raise InvalidOption(f"job {job_id} has no options")
            if job.kind == JOB_CONVERT:
                self._convert(job.options, token, on_spawn)
            else:
                self._extract(job.options, token, on_spawn)
        except MediaError as e:
            error = e
        except BaseException as e:
            self._jobs.finish(job_id, e)
            raise
        return self._jobs.finish(job_id, error)

    def _run_if_pending(self, job_id: str) -> BatchJob:
        try:
            return self.run_job(job_id)
        except InvalidOption:
            # cancelled before a worker picked it up
            return self._jobs.get(job_id)

    def run_pending(self, max_workers: Optional[int] = None) -> List[BatchJob]:
        """Run every pending job on a thread pool and wait for all of them."""
        config, _ = self._require()
        job_ids = self._jobs.pending_ids()
        if not job_ids:
            return []
        with make_executor("thread", max_workers or config.max_processes) as pool:
            return list(pool.map(self._run_if_pending, job_ids))

    # ------------------------------
    # Process table
    # ------------------------------

    def get_active_processes(self) -> int:
        if self._supervisor is None:
            return 0
        return self._supervisor.active_count()

    def kill_all_processes(self) -> None:
        if self._supervisor is not None:
            self._supervisor.kill_all()

    def close(self) -> None:
        if self._supervisor is not None:
            self._supervisor.close()

"""Spawns encoder subprocesses under a concurrency ceiling and reaps them.

Every subprocess lives in the process table from admission until exit.
Admission and registration happen under the same write lock, so the
table can never hold more than ``Config.max_processes`` entries.
"""

from __future__ import annotations

import itertools
import logging
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import IO, Callable, Deque, Dict, List, Optional, Sequence

from .cancel import CancelToken
from .commands import command_as_string
from .errors import EXEC_FAILURE, CapacityReached, Cancelled, ExecFailure, error_for_reason
from .locks import RWLock
from .models import Config, ProgressCallback, ProgressInfo
from .monitoring import Metrics, metrics as default_metrics
from .progress import ProgressParser

logger = logging.getLogger(__name__)

TAIL_LINES = 20


@dataclass
class ExecResult:
    cmd: List[str]
    returncode: int
    stdout: str
    stderr: str


class _Tracked:
    __slots__ = ("proc", "killed")

    def __init__(self) -> None:
        self.proc: Optional[subprocess.Popen] = None
        self.killed = False


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.kill()


def _deliver(on_progress: ProgressCallback, info: ProgressInfo) -> None:
    try:
        on_progress(info)
    except Exception as e:
        logger.warning("Progress callback error: %s", e)


class ProcessSupervisor:
    def __init__(self, config: Config, metrics: Optional[Metrics] = None) -> None:
        self._config = config
        self._metrics = metrics or default_metrics
        self._lock = RWLock()
        self._processes: Dict[str, _Tracked] = {}
        self._closed = False
        self._seq = itertools.count()

    @property
    def config(self) -> Config:
        return self._config

    # ------------------------------
    # Process table
    # ------------------------------

    def active_count(self) -> int:
        with self._lock.read():
            return len(self._processes)

    def admit(self) -> None:
        """Fail fast when no slot is free; ``run`` re-checks when it registers."""
        with self._lock.read():
            self._check_admission()

    def _check_admission(self) -> None:
        if self._closed:
            raise Cancelled("process supervisor is closed")
        if len(self._processes) >= self._config.max_processes:
            raise CapacityReached(f"maximum processes ({self._config.max_processes}) reached")

    def _reserve(self) -> str:
        with self._lock.write():
            self._check_admission()
            proc_id = f"proc_{time.time_ns()}_{next(self._seq)}"
            self._processes[proc_id] = _Tracked()
        return proc_id

    def _attach(self, proc_id: str, proc: subprocess.Popen) -> Optional[_Tracked]:
        with self._lock.write():
            tracked = self._processes.get(proc_id)
            if tracked is not None:
                tracked.proc = proc
            return tracked

    def _release(self, proc_id: str) -> None:
        with self._lock.write():
            self._processes.pop(proc_id, None)

    def terminate(self, proc_id: str) -> bool:
        """Kill one tracked subprocess; its runner reaps it and frees the slot."""
        with self._lock.write():
            tracked = self._processes.get(proc_id)
            if tracked is None:
                return False
            tracked.killed = True
            if tracked.proc is None:
                # not spawned yet: dropping the reservation makes the runner abort
                del self._processes[proc_id]
            else:
                _kill(tracked.proc)
        logger.info("Terminated %s", proc_id)
        return True

    def kill_all(self) -> None:
        with self._lock.write():
            entries, self._processes = self._processes, {}
            for tracked in entries.values():
                tracked.killed = True
                if tracked.proc is not None:
                    _kill(tracked.proc)
        if entries:
            logger.info("Killed %d tracked process(es)", len(entries))

    def close(self) -> None:
        with self._lock.write():
            self._closed = True
        self.kill_all()

    # ------------------------------
    # Execution
    # ------------------------------

    def run(
        self,
        args: Sequence[str],
        *,
        binary: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        on_progress: Optional[ProgressCallback] = None,
        total_duration: float = 0.0,
        capture_output: bool = False,
        on_spawn: Optional[Callable[[str], None]] = None,
    ) -> ExecResult:
        """Run one subprocess to completion.

        Raises CapacityReached before spawning when the table is full,
        Cancelled or DeadlineExceeded when the token fires (the process is
        killed and reaped first), and ExecFailure on a non-zero exit.
        With ``capture_output`` the full stdout/stderr is returned;
        otherwise only a tail of stderr is kept for diagnostics.
        """
        cmd = [binary or self._config.ffmpeg_path, *args]
        timeout = self._config.max_process_time if self._config.max_process_time > 0 else None
        token = CancelToken(parent=cancel, timeout=timeout)
        try:
            token.raise_if_cancelled(f"{cmd[0]} cancelled before start")
            proc_id = self._reserve()
            try:
                return self._run_tracked(proc_id, cmd, token, on_progress, total_duration, capture_output, on_spawn)
            finally:
                self._release(proc_id)
        finally:
            token.release()

    def _run_tracked(
        self,
        proc_id: str,
        cmd: List[str],
        token: CancelToken,
        on_progress: Optional[ProgressCallback],
        total_duration: float,
        capture_output: bool,
        on_spawn: Optional[Callable[[str], None]],
    ) -> ExecResult:
        logger.debug("[%s] %s", proc_id, command_as_string(cmd[0], cmd[1:]))
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self._config.work_dir or None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            self._metrics.inc_failure(EXEC_FAILURE)
            raise ExecFailure(f"failed to start {cmd[0]}: {e}", cmd) from e

        self._metrics.inc_started()
        started = time.monotonic()

        tracked = self._attach(proc_id, proc)
        if tracked is None:
            _kill(proc)
            proc.communicate()
            raise Cancelled(f"{cmd[0]} cancelled: process table was cleared")

        stdout_lines: List[str] = []
        stderr_lines: Deque[str] = deque(maxlen=None if capture_output else TAIL_LINES)
        parser = ProgressParser(total_duration) if on_progress is not None else None
        readers = [
            threading.Thread(
                target=self._read_stdout,
                args=(proc.stdout, stdout_lines if capture_output else None, parser, on_progress),
                daemon=True,
            ),
            threading.Thread(target=self._drain, args=(proc.stderr, stderr_lines), daemon=True),
        ]
        for t in readers:
            t.start()

        remove_kill = token.add_callback(lambda: _kill(proc))
        try:
            if on_spawn is not None:
                on_spawn(proc_id)
            proc.wait()
        finally:
            remove_kill()
            if proc.poll() is None:
                _kill(proc)
                proc.wait()
            for t in readers:
                t.join()
            proc.stdout.close()
            proc.stderr.close()

        elapsed = time.monotonic() - started
        self._metrics.observe_process_time(elapsed)
        tail = "\n".join(list(stderr_lines)[-TAIL_LINES:])

        if proc.returncode != 0:
            if token.cancelled or tracked.killed:
                err = error_for_reason(token.reason, f"{cmd[0]} {token.reason or 'cancelled'} after {elapsed:.1f}s")
                logger.info("[%s] %s", proc_id, err)
            else:
                err = ExecFailure(f"ffmpeg execution failed: exit status {proc.returncode}", cmd, proc.returncode, tail)
                logger.debug("[%s] exit status %d\n%s", proc_id, proc.returncode, tail)
            self._metrics.inc_failure(err.kind)
            raise err

        logger.debug("[%s] finished in %.2fs", proc_id, elapsed)
        return ExecResult(cmd=cmd, returncode=0, stdout="".join(stdout_lines), stderr="\n".join(stderr_lines))

    @staticmethod
    def _read_stdout(
        stream: IO[str],
        lines: Optional[List[str]],
        parser: Optional[ProgressParser],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        for line in stream:
            if lines is not None:
                lines.append(line)
            if parser is not None and on_progress is not None:
                info = parser.feed(line)
                if info is not None:
                    _deliver(on_progress, info)

    @staticmethod
    def _drain(stream: IO[str], lines: Deque[str]) -> None:
        for line in stream:
            stripped = line.rstrip()
            if stripped:
                lines.append(stripped)

"""In-memory job table.

State machine: pending -> running -> completed | failed, plus
pending -> failed and running -> failed on cancellation. Nothing ever
returns to pending. The registry only records state; the façade drives
execution and tells the registry what happened.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .cancel import CancelToken
from .errors import CANCELLED, InvalidOption, NotFound
from .locks import RWLock
from .models import (
    JOB_CONVERT,
    JOB_EXTRACT,
    JOB_KINDS,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    BatchJob,
    ConvertOptions,
    ExtractOptions,
)

logger = logging.getLogger(__name__)

_OPTION_TYPES = {JOB_CONVERT: ConvertOptions, JOB_EXTRACT: ExtractOptions}


@dataclass
class _Entry:
    job: BatchJob
    token: Optional[CancelToken] = None
    proc_id: Optional[str] = None


class JobRegistry:
    def __init__(self) -> None:
        self._lock = RWLock()
        self._jobs: Dict[str, _Entry] = {}
        self._last_ns = 0

    def _new_id(self) -> str:
        # caller holds the write lock
        ns = max(time.time_ns(), self._last_ns + 1)
        self._last_ns = ns
        return f"job_{ns}"

    def add(self, job: BatchJob) -> str:
        if job.kind not in JOB_KINDS:
            raise InvalidOption(f"unknown job kind: {job.kind!r}")
        expected = _OPTION_TYPES[job.kind]
        if job.options is not None and not isinstance(job.options, expected):
            raise InvalidOption(
                f"{job.kind} job needs {expected.__name__}, got {type(job.options).__name__}"
            )
        with self._lock.write():
            job_id = job.id or self._new_id()
            if job_id in self._jobs:
                raise InvalidOption(f"job {job_id} already exists")
            self._jobs[job_id] = _Entry(job=replace(job, id=job_id, status=STATUS_PENDING, error=""))
        logger.info("Added %s job %s", job.kind, job_id)
        return job_id

    def get(self, job_id: str) -> BatchJob:
        with self._lock.read():
            entry = self._jobs.get(job_id)
            if entry is None:
                raise NotFound(f"job {job_id} not found")
            return replace(entry.job)

    def list(self) -> List[BatchJob]:
        with self._lock.read():
            return [replace(e.job) for e in self._jobs.values()]

    def pending_ids(self) -> List[str]:
        with self._lock.read():
            return [job_id for job_id, e in self._jobs.items() if e.job.status == STATUS_PENDING]

    def cancel(self, job_id: str) -> Optional[str]:
        """Mark a job failed/cancelled.

        Returns the process id backing a running job so the caller can
        terminate it once this lock is released. Cancelling a job that
        already finished is a no-op.
        """
        with self._lock.write():
            entry = self._jobs.get(job_id)
            if entry is None:
                raise NotFound(f"job {job_id} not found")
            if entry.job.status in (STATUS_COMPLETED, STATUS_FAILED):
                return None
            was = entry.job.status
            entry.job.status = STATUS_FAILED
            entry.job.error = CANCELLED
            token, proc_id = entry.token, entry.proc_id
        logger.info("Cancelled job %s (was %s)", job_id, was)
        if token is not None:
            token.cancel()
        return proc_id

    def start(self, job_id: str, parent: Optional[CancelToken] = None) -> Tuple[BatchJob, CancelToken]:
        """Move a pending job to running and hand out its cancel token."""
        with self._lock.write():
            entry = self._jobs.get(job_id)
            if entry is None:
                raise NotFound(f"job {job_id} not found")
            if entry.job.status != STATUS_PENDING:
                raise InvalidOption(f"job {job_id} is {entry.job.status}, not {STATUS_PENDING}")
            entry.job.status = STATUS_RUNNING
            entry.token = CancelToken(parent=parent)
            job, token = replace(entry.job), entry.token
        logger.info("Started job %s", job_id)
        return job, token

    def attach_process(self, job_id: str, proc_id: str) -> None:
        with self._lock.write():
            entry = self._jobs.get(job_id)
            if entry is not None and entry.job.status == STATUS_RUNNING:
                entry.proc_id = proc_id

    def finish(self, job_id: str, error: Optional[BaseException] = None) -> BatchJob:
        """Record the outcome of a run; a job cancelled meanwhile stays failed."""
        with self._lock.write():
            entry = self._jobs[job_id]
            token = entry.token
            entry.token = None
            entry.proc_id = None
            if entry.job.status == STATUS_RUNNING:
                if error is None:
                    entry.job.status = STATUS_COMPLETED
                else:
                    entry.job.status = STATUS_FAILED
                    entry.job.error = str(error)
            job = replace(entry.job)
        if token is not None:
            token.release()
        if job.status == STATUS_COMPLETED:
            logger.info("Job %s completed", job_id)
        else:
            logger.info("Job %s failed: %s", job_id, job.error)
        return job

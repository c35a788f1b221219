from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server


class Metrics:
    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else REGISTRY
        self.processes_started = Counter(
            "ffvisor_processes_started", "Encoder/prober subprocesses spawned", registry=self.registry
        )
        self.process_failures = Counter(
            "ffvisor_process_failures", "Subprocess runs that did not succeed", ["kind"], registry=self.registry
        )
        self.process_seconds = Histogram(
            "ffvisor_process_seconds", "Wall-clock time per subprocess (s)", registry=self.registry
        )
        self.chunks_created = Counter(
            "ffvisor_chunks_created", "Chunk files produced", registry=self.registry
        )

    def start_server(self, port: int = 8000) -> None:
        start_http_server(port, registry=self.registry)

    def inc_started(self) -> None:
        self.processes_started.inc()

    def inc_failure(self, kind: str) -> None:
        self.process_failures.labels(kind=kind).inc()

    def observe_process_time(self, duration: float) -> None:
        self.process_seconds.observe(duration)

    def inc_chunks(self, count: int = 1) -> None:
        self.chunks_created.inc(count)


metrics = Metrics()

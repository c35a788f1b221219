import json
import os
import stat
import sys
import time
from pathlib import Path
from typing import List

import pytest
from prometheus_client import CollectorRegistry

from ffvisor import Config, LinuxFFmpeg
from ffvisor.monitoring import Metrics

FAKE_SCRIPT = Path(__file__).with_name("fake_ffmpeg.py")


def _write_shim(path: Path, tool: str) -> None:
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_SCRIPT}" {tool} "$@"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def fake_bin(tmp_path, monkeypatch) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _write_shim(bin_dir / "ffmpeg", "ffmpeg")
    _write_shim(bin_dir / "ffprobe", "ffprobe")
    monkeypatch.setenv("FAKE_LOG", str(tmp_path / "calls.log"))
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return bin_dir


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(CollectorRegistry())


@pytest.fixture
def make_config(fake_bin, tmp_path):
    def _make(**overrides) -> Config:
        values = dict(
            ffmpeg_path=str(fake_bin / "ffmpeg"),
            ffprobe_path=str(fake_bin / "ffprobe"),
            work_dir=str(tmp_path),
            max_processes=4,
            max_threads=2,
        )
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def ffmpeg(make_config, metrics):
    ff = LinuxFFmpeg(metrics=metrics)
    ff.init(make_config())
    yield ff
    ff.close()


@pytest.fixture
def calls(tmp_path):
    """Read back every fake invocation as ``[tool, arg, ...]``."""

    def _read() -> List[List[str]]:
        log = tmp_path / "calls.log"
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines() if line]

    return _read


@pytest.fixture
def wait_for():
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""

    def _wait(predicate, timeout=5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return False

    return _wait

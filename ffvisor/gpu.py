"""Hardware-acceleration hints and best-effort host discovery.

Discovery helpers never raise: a missing tool simply yields an empty list.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

HWACCEL_AUTO = "auto"
HWACCEL_VIDEOTOOLBOX = "videotoolbox"

ARM64_MACHINES = ("arm64", "aarch64")


def hwaccel_tag(os_name: str, machine: str) -> str:
    """The ``-hwaccel`` value for a platform: native on Apple silicon, ``auto`` elsewhere."""
    if os_name == "darwin" and (machine or "").lower() in ARM64_MACHINES:
        return HWACCEL_VIDEOTOOLBOX
    return HWACCEL_AUTO


def _check_output(cmd: Sequence[str], timeout: float = 10.0) -> str:
    try:
        return subprocess.check_output(list(cmd), stderr=subprocess.STDOUT, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("%s unavailable: %s", cmd[0], e)
        return ""


def detect_nvidia_gpus() -> List[str]:
    out = _check_output(["nvidia-smi", "--list-gpus"])
    return [line.strip() for line in out.splitlines() if line.strip()]


def detect_darwin_gpus() -> List[str]:
    out = _check_output(["system_profiler", "SPDisplaysDataType"])
    gpus: List[str] = []
    for line in out.splitlines():
        line = line.strip()
        if line.startswith("Chipset Model:"):
            gpus.append(line.split(":", 1)[1].strip())
    return gpus


def detect_gpus(os_name: str) -> List[str]:
    if os_name == "darwin":
        return detect_darwin_gpus()
    if os_name == "linux":
        return detect_nvidia_gpus()
    return []


def list_hwaccels(ffmpeg_path: str) -> List[str]:
    """Methods listed by ``ffmpeg -hide_banner -hwaccels`` (header line skipped)."""
    out = _check_output([ffmpeg_path, "-hide_banner", "-hwaccels"])
    methods: List[str] = []
    for line in out.splitlines():
        line = line.strip()
        if not line or line.endswith(":"):
            continue
        methods.append(line)
    return methods


def version_line(binary: str) -> Optional[str]:
    out = _check_output([binary, "-version"])
    first = out.strip().splitlines()[0] if out.strip() else ""
    return first or None

import ffvisor.gpu as gpu
from ffvisor.executors import make_executor


def test_hwaccel_tag():
    assert gpu.hwaccel_tag("darwin", "arm64") == "videotoolbox"
    assert gpu.hwaccel_tag("darwin", "x86_64") == "auto"
    assert gpu.hwaccel_tag("linux", "aarch64") == "auto"


def test_darwin_gpu_names(monkeypatch):
    profile = """Graphics/Displays:

    Apple M2 Pro:

      Chipset Model: Apple M2 Pro
      Type: GPU
      Bus: Built-In

    Radeon:

      Chipset Model: AMD Radeon Pro 5500M
"""
    monkeypatch.setattr(gpu, "_check_output", lambda cmd, timeout=10.0: profile)
    assert gpu.detect_gpus("darwin") == ["Apple M2 Pro", "AMD Radeon Pro 5500M"]


def test_nvidia_gpu_list(monkeypatch):
    out = "GPU 0: NVIDIA A10G (UUID: GPU-1)\nGPU 1: NVIDIA A10G (UUID: GPU-2)\n"
    monkeypatch.setattr(gpu, "_check_output", lambda cmd, timeout=10.0: out)
    assert gpu.detect_gpus("linux") == ["GPU 0: NVIDIA A10G (UUID: GPU-1)", "GPU 1: NVIDIA A10G (UUID: GPU-2)"]
    assert gpu.detect_gpus("windows") == []


def test_missing_tools_give_empty_results(tmp_path):
    missing = str(tmp_path / "no-such-ffmpeg")
    assert gpu.list_hwaccels(missing) == []
    assert gpu.version_line(missing) is None


def test_hwaccels_from_encoder(fake_bin):
    assert gpu.list_hwaccels(str(fake_bin / "ffmpeg")) == ["vdpau", "cuda"]
    assert gpu.version_line(str(fake_bin / "ffprobe")).startswith("ffprobe version")


def test_thread_executor_preserves_order():
    with make_executor("thread", 3) as pool:
        assert list(pool.map(lambda x: x * x, range(6))) == [0, 1, 4, 9, 16, 25]

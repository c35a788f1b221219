"""Stand-in for the ffmpeg/ffprobe binaries used by the test suite.

Invoked as ``fake_ffmpeg.py <ffmpeg|ffprobe> ARGS...`` through a shell shim.
Behaviour is driven by environment variables:

FAKE_LOG              append each invocation (JSON list) to this file
FAKE_SLEEP            seconds to sleep before finishing
FAKE_EXIT             exit status for encoder runs
FAKE_FAIL_MATCH       exit 1 when the output path contains this text
FAKE_STDERR           text written to stderr by encoder runs
FAKE_DURATION         duration printed for ``-show_entries format=duration``
FAKE_PROBE_JSON       JSON printed for ``-show_format -show_streams``
FAKE_PROBE_EXIT       exit status for prober runs
FAKE_PROBE_SLEEP      seconds a metadata probe sleeps before answering
FAKE_SILENCE          silencedetect lines written to stderr
FAKE_BYTES_PER_SECOND output size per second of ``-t`` (default 1000)
"""

import json
import os
import sys
import time

DEFAULT_PROBE = {
    "format": {"duration": "35.000000", "bit_rate": "128000"},
    "streams": [
        {"codec_type": "video", "codec_name": "h264", "width": 1280, "height": 720, "avg_frame_rate": "30/1"},
        {"codec_type": "audio", "codec_name": "aac"},
    ],
}


def log_call(tool, args):
    path = os.environ.get("FAKE_LOG")
    if path:
        with open(path, "a") as f:
            f.write(json.dumps([tool] + args) + "\n")


def arg_after(args, flag, default=None):
    if flag in args:
        i = args.index(flag)
        if i + 1 < len(args):
            return args[i + 1]
    return default


def ffprobe(args):
    if "-version" in args:
        print("ffprobe version 6.1-fake Copyright (c) the fake developers")
        return 0
    code = int(os.environ.get("FAKE_PROBE_EXIT", "0"))
    if code:
        sys.stderr.write("fake ffprobe failure\n")
        return code
    if "-show_entries" in args:
        print(os.environ.get("FAKE_DURATION", "35.0"))
        return 0
    sleep = float(os.environ.get("FAKE_PROBE_SLEEP", "0"))
    if sleep:
        time.sleep(sleep)
    print(os.environ.get("FAKE_PROBE_JSON") or json.dumps(DEFAULT_PROBE))
    return 0


def ffmpeg(args):
    if "-version" in args:
        print("ffmpeg version 6.1-fake Copyright (c) the fake developers")
        return 0
    if "-hwaccels" in args:
        print("Hardware acceleration methods:")
        print("vdpau")
        print("cuda")
        return 0

    sleep = float(os.environ.get("FAKE_SLEEP", "0"))
    if sleep:
        time.sleep(sleep)

    if any(a.startswith("silencedetect") for a in args):
        sys.stderr.write(os.environ.get("FAKE_SILENCE", ""))
        sys.stderr.write("\n")
        return 0

    if "-progress" in args:
        for us in (1000000, 500000, 2000000):
            sys.stdout.write(f"out_time_us={us}\nspeed=2.0x\nfps=25\nbitrate=128.0kbits/s\nprogress=continue\n")
            sys.stdout.flush()
        sys.stdout.write("out_time_us=3000000\nprogress=end\n")
        sys.stdout.flush()

    stderr = os.environ.get("FAKE_STDERR")
    if stderr:
        sys.stderr.write(stderr + "\n")

    code = int(os.environ.get("FAKE_EXIT", "0"))
    if code:
        return code

    output = args[-1]
    match = os.environ.get("FAKE_FAIL_MATCH")
    if match and match in output:
        sys.stderr.write(f"cannot write {output}\n")
        return 1
    if output != "-":
        if os.path.exists(output) and "-y" not in args:
            sys.stderr.write(f"File '{output}' already exists. Exiting.\n")
            return 1
        seconds = float(arg_after(args, "-t", "1"))
        per_second = float(os.environ.get("FAKE_BYTES_PER_SECOND", "1000"))
        with open(output, "wb") as f:
            f.write(b"\0" * int(seconds * per_second))
    return 0


def main():
    tool, args = sys.argv[1], sys.argv[2:]
    log_call(tool, args)
    if tool == "ffprobe":
        return ffprobe(args)
    return ffmpeg(args)


if __name__ == "__main__":
    sys.exit(main())

"""ffmpeg/ffprobe preflight.

Both binaries must be on PATH and answer ``-version``. The wav muxer's help
tells us which broadcast-WAV chunk writers this build has, so outputs keep
BEXT/iXML metadata only when ffmpeg can actually write it.
"""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional


WAV_MUX_FLAGS = ("write_bext", "write_iXML")


@dataclass
class FFmpegStatus:
    available: bool
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    ffmpeg_version: Optional[str] = None
    wav_mux_opts: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _capture(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, errors="replace", check=False)
    except OSError as exc:
        return 1, "", str(exc)
    return proc.returncode, proc.stdout, proc.stderr


def wav_mux_opts_from_help(help_text: str) -> List[str]:
    """Return ``-write_bext 1`` style args for each flag the wav muxer lists."""
    opts: List[str] = []
    for flag in WAV_MUX_FLAGS:
        if flag in help_text:
            opts += [f"-{flag}", "1"]
    return opts


def probe_ffmpeg() -> FFmpegStatus:
    ffmpeg = shutil.which("ffmpeg")
    if not ffmpeg:
        return FFmpegStatus(available=False, error="ffmpeg not found in PATH")
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        return FFmpegStatus(available=False, ffmpeg_path=ffmpeg, error="ffprobe not found in PATH")

    status = FFmpegStatus(available=False, ffmpeg_path=ffmpeg, ffprobe_path=ffprobe)
    for binary in (ffmpeg, ffprobe):
        rc, out, err = _capture([binary, "-version"])
        if rc != 0:
            status.error = err.strip() or f"{binary} -version failed"
            return status
        if binary == ffmpeg and out:
            status.ffmpeg_version = out.splitlines()[0].strip()

    # Muxer help goes to stdout on current builds, stderr on some older ones
    rc, out, err = _capture([ffmpeg, "-hide_banner", "-h", "muxer=wav"])
    if rc == 0:
        status.wav_mux_opts = wav_mux_opts_from_help(out + err)
    status.available = True
    return status

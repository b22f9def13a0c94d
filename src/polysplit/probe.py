"""Media inspection via ffprobe.

Each query asks ffprobe for one scalar of the first audio stream, which keeps
parsing trivial and matches how ffprobe reports missing values ("N/A").
"""
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from loguru import logger

from .errors import ProbeError


PcmCodec = Literal["pcm_s16le", "pcm_s24le", "pcm_s32le", "pcm_f32le", "pcm_f64le"]

DEFAULT_PCM_CODEC: PcmCodec = "pcm_s32le"

# Checked in order against ffprobe's sample_fmt (e.g. "s16", "s32p", "flt", "dblp").
_FORMAT_HINTS: tuple[tuple[str, PcmCodec], ...] = (
    ("s16", "pcm_s16le"),
    ("s24", "pcm_s24le"),
    ("s32", "pcm_s32le"),
    ("flt", "pcm_f32le"),
    ("dbl", "pcm_f64le"),
)


@dataclass(frozen=True)
class MediaDescriptor:
    channels: int
    sample_rate: int
    codec: PcmCodec


def _ffprobe_value(path: Path, field: str, ffprobe: str = "ffprobe") -> Optional[str]:
    """Return one stream field of the first audio stream, or None when absent."""
    cmd = [
        ffprobe,
        "-v",
        "error",
        "-select_streams",
        "a:0",
        "-show_entries",
        f"stream={field}",
        "-of",
        "default=nw=1:nk=1",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, check=False)
    except OSError as exc:
        raise ProbeError(path, field, str(exc)) from exc
    if proc.returncode != 0:
        logger.debug(f"ffprobe {field} failed for {path}: {proc.stderr.strip()}")
        return None
    lines = [ln.strip() for ln in proc.stdout.splitlines() if ln.strip()]
    if not lines or lines[0] == "N/A":
        return None
    return lines[0]


def _required_int(path: Path, field: str, ffprobe: str) -> int:
    raw = _ffprobe_value(path, field, ffprobe)
    if raw is None:
        raise ProbeError(path, field)
    try:
        value = int(raw)
    except ValueError:
        raise ProbeError(path, field, f"unexpected value {raw!r}") from None
    if value <= 0:
        raise ProbeError(path, field, f"unexpected value {raw!r}")
    return value


def select_pcm_codec(sample_fmt: Optional[str], bits: Optional[str]) -> PcmCodec:
    """Pick the PCM codec that reproduces the source sample format exactly.

    An explicit bit depth of 16/24/32 wins over the format-string guess; at
    32 bits a float format string selects pcm_f32le.
    """
    fmt = (sample_fmt or "").lower()
    codec = DEFAULT_PCM_CODEC
    for hint, candidate in _FORMAT_HINTS:
        if hint in fmt:
            codec = candidate
            break

    if bits == "16":
        codec = "pcm_s16le"
    elif bits == "24":
        codec = "pcm_s24le"
    elif bits == "32":
        codec = "pcm_f32le" if "flt" in fmt else "pcm_s32le"
    return codec


def probe_codec(path: Path, ffprobe: str = "ffprobe") -> PcmCodec:
    fmt = _ffprobe_value(path, "sample_fmt", ffprobe)
    bits = _ffprobe_value(path, "bits_per_raw_sample", ffprobe)
    if bits is None:
        bits = _ffprobe_value(path, "bits_per_sample", ffprobe)
    # ffprobe reports 0 when a format has no fixed width
    if bits == "0":
        bits = None
    return select_pcm_codec(fmt, bits)


def probe_media(path: Path, ffprobe: str = "ffprobe") -> MediaDescriptor:
    """Probe channel count, sample rate and PCM codec of ``path``."""
    channels = _required_int(path, "channels", ffprobe)
    sample_rate = _required_int(path, "sample_rate", ffprobe)
    codec = probe_codec(path, ffprobe)
    logger.debug(f"probe {path.name}: channels={channels} sample_rate={sample_rate} codec={codec}")
    return MediaDescriptor(channels=channels, sample_rate=sample_rate, codec=codec)

"""ffmpeg command construction and execution for channel splits.

One ffmpeg process per source unit. Stitched sessions are fed through the
concat demuxer, so concatenation and splitting happen in the same run without
re-encoding.

Outputs are written atomically: every channel goes to a temporary file next
to its target and is renamed into place only after ffmpeg exits 0. A file
under its final name is always complete.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional, Sequence

from loguru import logger

from .planner import OutputPlan
from .scanner import SingleFile


FfmpegLogLevel = Literal["quiet", "error", "warning", "info", "verbose"]


@dataclass(frozen=True)
class EncodeOptions:
    ffmpeg: str = "ffmpeg"
    loglevel: FfmpegLogLevel = "info"
    threads: int = 1
    wav_mux_opts: tuple[str, ...] = ()


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def concat_escape(path: str) -> str:
    """Escape a path for a quoted concat demuxer entry: backslashes first, then quotes."""
    return path.replace("\\", "\\\\").replace("'", "\\'")


def concat_manifest(segments: Sequence[Path]) -> str:
    return "".join(f"file '{concat_escape(str(p))}'\n" for p in segments)


def write_concat_manifest(segments: Sequence[Path], directory: Optional[Path] = None) -> Path:
    """Write a concat demuxer list to a new temp file and return its path."""
    fd, name = tempfile.mkstemp(prefix="polysplit_concat.", suffix=".txt", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(concat_manifest(segments))
    return Path(name)


def _temp_out_path(final_path: Path) -> Path:
    """Return a unique temp file path in the same directory as final_path."""
    suffix = f".part-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    return final_path.with_name(final_path.name + suffix)


def build_split_cmd(
    plan: OutputPlan,
    input_args: List[str],
    targets: Dict[Path, Path],
    opts: EncodeOptions,
) -> List[str]:
    """Build the ffmpeg argv for ``plan``.

    input_args: ``["-i", file]`` or ``["-f", "concat", "-safe", "0", "-i", list]``
    targets: final path -> path ffmpeg should actually write
    """
    cmd = [
        opts.ffmpeg,
        "-hide_banner",
        "-nostdin",
        "-loglevel",
        opts.loglevel,
        "-y",
        "-threads",
        str(opts.threads),
        *input_args,
        "-filter_complex",
        plan.filter_complex,
    ]
    for out in plan.pending:
        cmd += [
            "-map",
            f"[{out.stream_label}]",
            "-c:a",
            plan.codec,
            "-map_metadata",
            "0",
            *opts.wav_mux_opts,
            # temp names carry no .wav extension
            "-f",
            "wav",
            str(targets.get(out.path, out.path)),
        ]
    return cmd


def input_args_for(plan: OutputPlan, manifest: Optional[Path] = None) -> List[str]:
    if isinstance(plan.unit, SingleFile):
        return ["-i", str(plan.unit.path)]
    if manifest is None:
        raise ValueError("stitched session needs a concat manifest")
    return ["-f", "concat", "-safe", "0", "-i", str(manifest)]


def run_ffmpeg(cmd: List[str]) -> tuple[int, str]:
    """Run FFmpeg and return the exit code and stderr."""
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, errors="replace")
    except OSError as exc:
        return 127, str(exc)
    return proc.returncode, proc.stderr or ""


def _cleanup(paths: Sequence[Path]) -> None:
    for p in paths:
        try:
            p.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove temp file {p}: {e}")


def run_split(plan: OutputPlan, opts: EncodeOptions) -> tuple[int, str]:
    """Run the split for one plan.

    Returns (0, "") on success, (non-zero, stderr) on failure. Nothing-to-do
    plans return success without starting ffmpeg.
    """
    if plan.nothing_to_do:
        return 0, ""

    manifest: Optional[Path] = None
    targets = {out.path: _temp_out_path(out.path) for out in plan.pending}
    try:
        if not isinstance(plan.unit, SingleFile):
            manifest = write_concat_manifest(plan.unit.segments)
        cmd = build_split_cmd(plan, input_args_for(plan, manifest), targets, opts)
        logger.debug("Running ffmpeg: {}", cmd_to_string(cmd))
        rc, err = run_ffmpeg(cmd)
        if rc != 0:
            _cleanup(list(targets.values()))
            return rc, err

        for final, tmp in targets.items():
            try:
                os.replace(tmp, final)
            except OSError as e:
                err_str = f"Rename failed: {e}"
                logger.error(err_str)
                _cleanup(list(targets.values()))
                return 1, err_str
        return 0, ""
    finally:
        if manifest is not None:
            _cleanup([manifest])

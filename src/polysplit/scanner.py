"""Source discovery: independent polywav files or stitched segment sessions."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Tuple, Union

from .logging import unit_log


StitchMode = Literal["off", "dir", "all"]

AUDIO_EXTENSIONS = frozenset({".wav", ".aif", ".aiff"})

# X32/M32 cards cap files at 4 GB and number them 00000001.WAV, 00000002.WAV, ...
_SEGMENT_RE = re.compile(r"^[0-9]{8}\.wav$", re.IGNORECASE)


@dataclass(frozen=True)
class SingleFile:
    path: Path

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def unit_id(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class StitchedSession:
    name: str
    directory: Path
    segments: Tuple[Path, ...]
    # False only when the session is the source root itself in "dir" mode,
    # in which case its outputs go straight into the output root.
    nested: bool = True

    @property
    def unit_id(self) -> str:
        return str(self.directory)


SourceUnit = Union[SingleFile, StitchedSession]


def is_segment_filename(name: str) -> bool:
    return bool(_SEGMENT_RE.match(name))


def is_audio_filename(name: str) -> bool:
    return Path(name).suffix.lower() in AUDIO_EXTENSIONS


def _is_excluded(path: Path, exclude: Iterable[Path]) -> bool:
    for ex in exclude:
        if path == ex or ex in path.parents:
            return True
    return False


def _walk_files(root: Path, exclude: Tuple[Path, ...]) -> Iterable[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        d = Path(dirpath)
        # Prune excluded directories so we never descend into our own outputs
        dirnames[:] = sorted(n for n in dirnames if not _is_excluded(d / n, exclude))
        for name in sorted(filenames):
            yield d / name


def list_segments_in_dir(directory: Path) -> List[Path]:
    """Return segment files directly inside ``directory``, sorted by filename bytes."""
    found = [
        p for p in directory.iterdir()
        if p.is_file() and is_segment_filename(p.name)
    ]
    return sorted(found, key=lambda p: os.fsencode(p.name))


def _session(directory: Path, *, nested: bool) -> StitchedSession | None:
    segments = list_segments_in_dir(directory)
    if not segments:
        unit_log(directory.name, "WARNING", "no segment files found, skipping.")
        return None
    return StitchedSession(
        name=directory.name,
        directory=directory,
        segments=tuple(segments),
        nested=nested,
    )


def discover_units(
    src_root: Path,
    stitch: StitchMode = "off",
    *,
    exclude: Iterable[Path] = (),
) -> List[SourceUnit]:
    """Classify everything under ``src_root`` into source units.

    - off: each .wav/.aif/.aiff file (recursive) is its own unit.
    - dir: ``src_root`` is one session if it directly holds segments;
      otherwise every directory below it that holds segments is a session.
    - all: ``src_root`` is exactly one session (direct children only).

    Paths inside ``exclude`` (output and work directories) are ignored.
    """
    src_root = src_root.resolve()
    ex = tuple(p.resolve() for p in exclude)

    if stitch == "off":
        return [
            SingleFile(path=p)
            for p in _walk_files(src_root, ex)
            if is_audio_filename(p.name)
        ]

    if stitch == "all":
        session = _session(src_root, nested=True)
        return [session] if session else []

    if list_segments_in_dir(src_root):
        session = _session(src_root, nested=False)
        return [session] if session else []

    by_dir: Dict[Path, None] = {}
    for p in _walk_files(src_root, ex):
        if is_segment_filename(p.name):
            by_dir.setdefault(p.parent, None)
    units: List[SourceUnit] = []
    for directory in sorted(by_dir, key=lambda d: os.fsencode(str(d))):
        session = _session(directory, nested=True)
        if session:
            units.append(session)
    return units

"""Channel label table and filename label normalization.

Labels come from a plain text file (``channels.txt``), one per line, in
console channel order. Blank lines and ``#`` comments are ignored.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Literal, Tuple

from .errors import MissingLabelsSource


NameStyle = Literal["default", "smart"]

_WHITESPACE_RE = re.compile(r"\s+")
_ILLEGAL_CHARS_RE = re.compile(r"[^A-Z0-9_+=.\-]")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")


def sanitize_label(raw: str) -> str:
    """Uppercase and reduce a label to ``[A-Z0-9_+=.-]`` with single underscores."""
    s = raw.upper()
    s = _WHITESPACE_RE.sub("_", s)
    s = _ILLEGAL_CHARS_RE.sub("_", s)
    s = _MULTIPLE_UNDERSCORES_RE.sub("_", s)
    return s.strip("_")


@dataclass(frozen=True)
class ChannelLabelTable:
    labels: Tuple[str, ...]
    source: Path | None = None

    def __len__(self) -> int:
        return len(self.labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def label_for(self, index: int) -> str:
        """Return the label for a 1-based channel index."""
        if index < 1 or index > len(self.labels):
            raise IndexError(f"channel {index} out of range 1..{len(self.labels)}")
        return self.labels[index - 1]


def parse_channel_labels(text: str) -> Tuple[str, ...]:
    out = []
    for line in text.splitlines():
        line = line.rstrip("\r")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        out.append(sanitize_label(line))
    return tuple(out)


def load_channel_labels(path: Path) -> ChannelLabelTable:
    """Load and sanitize channel labels from ``path``.

    The count is not checked here: the same table is reused for every source
    unit and each unit's channel count is only known once it is probed.
    """
    if not path.is_file():
        raise MissingLabelsSource(path)
    text = path.read_text(encoding="utf-8-sig")
    return ChannelLabelTable(labels=parse_channel_labels(text), source=path)


def _is_index(value: str, index: int) -> bool:
    # "3", "03", "003" all name channel 3
    return value.isdigit() and value.isascii() and int(value) == index


def normalize_label(index: int, raw: str, style: NameStyle = "smart", pad_width: int = 2) -> str:
    """Return the label segment to use in a filename, or "" to omit it.

    Under ``smart`` style, labels that only repeat the channel number
    ("12", "CH12", "CH_12", "12_12") are dropped so filenames don't read
    like ``SHOW_12_12.wav``.
    """
    if style == "default":
        return raw
    if not raw:
        return ""

    num = f"{index:0{pad_width}d}"
    redundant = (f"CH{num}", f"CH_{num}")
    prefix = re.compile(rf"^0*{index}(?:_|$)")

    if _is_index(raw, index) or raw in redundant:
        return ""
    # "12_KICK" -> "KICK"; the prefix is stripped once only
    m = prefix.match(raw)
    if not m:
        return raw
    rest = raw[m.end():]
    if not rest or _is_index(rest, index):
        return ""
    return rest

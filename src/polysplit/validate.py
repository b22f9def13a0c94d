"""Segment compatibility checks for stitched sessions."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

from loguru import logger

from .errors import SegmentMismatch
from .probe import MediaDescriptor, probe_media


def validate_segments(
    segments: Sequence[Path],
    *,
    probe: Callable[[Path], MediaDescriptor] = probe_media,
) -> MediaDescriptor:
    """Return the session descriptor once every segment matches the first.

    The first segment is the reference. Any other segment with a different
    channel count or sample rate raises SegmentMismatch, so nothing is
    concatenated from incompatible pieces.
    """
    if not segments:
        raise ValueError("validate_segments needs at least one segment")

    reference = probe(segments[0])
    for seg in segments[1:]:
        d = probe(seg)
        if d.channels != reference.channels:
            raise SegmentMismatch(seg, "channel", reference.channels, d.channels)
        if d.sample_rate != reference.sample_rate:
            raise SegmentMismatch(seg, "sample rate", reference.sample_rate, d.sample_rate)
    logger.debug(
        f"validated {len(segments)} segment(s): channels={reference.channels} "
        f"sample_rate={reference.sample_rate}"
    )
    return reference

"""Planner: decide every per-channel output for one source unit.

A plan is computed once per unit before anything is scheduled and is never
mutated afterwards. It fixes the output paths (including which are skipped
under resume), the PCM codec and the ffmpeg filter graph.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Tuple

from .errors import ChannelCountMismatch
from .labels import ChannelLabelTable, NameStyle, normalize_label
from .probe import MediaDescriptor, PcmCodec
from .scanner import SingleFile, SourceUnit, StitchedSession


Layout = Literal["flat", "folders"]
OutputMode = Literal["new", "backup", "overwrite", "resume", "final"]

OUTPUT_SUFFIX = ".wav"


@dataclass(frozen=True)
class ChannelOutput:
    index: int  # 1-based
    label: str  # normalized, may be ""
    stream_label: str  # filter graph pad, e.g. "ch00"
    path: Path
    skip: bool = False


@dataclass(frozen=True)
class OutputPlan:
    unit: SourceUnit
    descriptor: MediaDescriptor
    output_dir: Path
    filter_complex: str
    outputs: Tuple[ChannelOutput, ...]

    @property
    def codec(self) -> PcmCodec:
        return self.descriptor.codec

    @property
    def pending(self) -> Tuple[ChannelOutput, ...]:
        return tuple(o for o in self.outputs if not o.skip)

    @property
    def skipped(self) -> Tuple[ChannelOutput, ...]:
        return tuple(o for o in self.outputs if o.skip)

    @property
    def nothing_to_do(self) -> bool:
        return not self.pending


def unit_prefix(unit: SourceUnit) -> str:
    return unit.path.stem if isinstance(unit, SingleFile) else unit.name


def stream_label(index: int) -> str:
    return f"ch{index - 1:02d}"


def build_filter_complex(channels: int) -> str:
    """One mono stream per input channel, selected as-is (unity pan, no mixing)."""
    parts = [
        f"[0:a]pan=mono|c0=c{i}[{stream_label(i + 1)}]"
        for i in range(channels)
    ]
    return ";".join(parts)


def unit_output_dir(unit: SourceUnit, out_root: Path, layout: Layout) -> Path:
    if isinstance(unit, SingleFile):
        return out_root / unit.path.stem if layout == "folders" else out_root

    base = out_root / unit.name if unit.nested else out_root
    if layout == "flat":
        return base
    # folders: one directory per session, never <name>/<name>
    return base if base.name == unit.name else base / unit.name


def output_filename(prefix: str, num: str, label: str, layout: Layout) -> str:
    if layout == "folders":
        middle = f"{num}_{label}" if label else num
        return f"{middle}_{prefix}{OUTPUT_SUFFIX}"
    tail = f"{num}_{label}" if label else num
    return f"{prefix}_{tail}{OUTPUT_SUFFIX}"


def _already_written(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def plan_unit(
    unit: SourceUnit,
    descriptor: MediaDescriptor,
    labels: ChannelLabelTable,
    *,
    out_root: Path,
    layout: Layout = "flat",
    name_style: NameStyle = "smart",
    pad_width: int = 2,
    mode: OutputMode = "new",
) -> OutputPlan:
    """Plan all channel outputs for ``unit``.

    Raises ChannelCountMismatch when the label table does not have exactly
    one label per source channel: mislabeled multitracks are worse than none.
    Under ``resume``, channels whose target already exists and is non-empty
    are kept in the plan with ``skip=True``.
    """
    prefix = unit_prefix(unit)
    if len(labels) != descriptor.channels:
        raise ChannelCountMismatch(prefix, len(labels), descriptor.channels)

    out_dir = unit_output_dir(unit, out_root, layout)
    outputs: List[ChannelOutput] = []
    for index in range(1, descriptor.channels + 1):
        num = f"{index:0{pad_width}d}"
        label = normalize_label(index, labels.label_for(index), name_style, pad_width)
        path = out_dir / output_filename(prefix, num, label, layout)
        outputs.append(
            ChannelOutput(
                index=index,
                label=label,
                stream_label=stream_label(index),
                path=path,
                skip=(mode == "resume" and _already_written(path)),
            )
        )

    return OutputPlan(
        unit=unit,
        descriptor=descriptor,
        output_dir=out_dir,
        filter_complex=build_filter_complex(descriptor.channels),
        outputs=tuple(outputs),
    )

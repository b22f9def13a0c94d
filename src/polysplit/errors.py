"""Error taxonomy.

Run-level errors (config, destructive action refusal) abort before any
transcode starts. Unit-level errors (probe, count mismatch, segment mismatch)
are recorded against one source unit and the run continues with the rest.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_WITH_UNIT_ERRORS = 2
EXIT_PREFLIGHT_FAILED = 3


class PolysplitError(Exception):
    exit_code: int = EXIT_FATAL


class ConfigError(PolysplitError):
    """Missing required path or invalid setting."""


class MissingLabelsSource(ConfigError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Missing channel list: {path}")
        self.path = path


class ProbeError(PolysplitError):
    """A required media property could not be determined."""

    def __init__(self, path: Path, field: str, detail: str = "") -> None:
        msg = f"Cannot read {field} for: {path}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
        self.path = path
        self.field = field


class ChannelCountMismatch(PolysplitError):
    exit_code = EXIT_WITH_UNIT_ERRORS

    def __init__(self, unit_name: str, labels: int, channels: int) -> None:
        super().__init__(
            f"Channel name count ({labels}) != source channels ({channels}) for: {unit_name}"
        )
        self.unit_name = unit_name
        self.labels = labels
        self.channels = channels


class SegmentMismatch(PolysplitError):
    exit_code = EXIT_WITH_UNIT_ERRORS

    def __init__(self, path: Path, field: str, expected: int, actual: int) -> None:
        super().__init__(f"Segment {field} mismatch. Expected {expected}, got {actual} for: {path}")
        self.path = path
        self.field = field
        self.expected = expected
        self.actual = actual


class DestructiveActionRefused(PolysplitError):
    pass


class JobFailure(PolysplitError):
    exit_code = EXIT_WITH_UNIT_ERRORS

    def __init__(self, failed: Iterable[str]) -> None:
        self.failed: List[str] = list(failed)
        super().__init__(
            f"{len(self.failed)} job(s) failed: {', '.join(self.failed)}. "
            "Re-run with --workers 1 and/or --loglevel verbose for easier debugging."
        )

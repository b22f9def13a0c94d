"""Loguru sinks and helpers for split runs.

Console output goes to stderr; the optional JSON lines file gets every
record with its bound fields (``run_id``, ``unit``, ``action``) so a run can
be filtered after the fact.
"""
from __future__ import annotations

import sys
import uuid
from typing import Any, Dict, Optional

from loguru import logger

CONSOLE_FORMAT = "<level>{level: <8}</level> | <green>{time:HH:mm:ss}</green> | {message}"
TRUNCATED = "... (truncated)"


def setup_console(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=CONSOLE_FORMAT,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )


def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)


def bind_run(run_id: Optional[str] = None) -> str:
    rid = run_id or uuid.uuid4().hex[:12]
    logger.configure(extra={"run_id": rid})
    return rid


def unit_log(unit: str, level: str, message: str) -> None:
    """Log ``[unit] message`` with the unit name bound for the JSON sink."""
    logger.bind(unit=unit).log(level.upper(), f"[{unit}] {message}")


def log_event(action: str, **fields: Any) -> None:
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def log_dry_run(what: str) -> None:
    """Log a mutating action that a dry run skips."""
    logger.bind(dry_run=True).info(f"[DRY-RUN] {what}")


def truncate(text: str, max_len: int = 4096, max_lines: int = 20) -> str:
    """Keep the tail of ffmpeg's stderr; the error is usually on the last lines."""
    if not text:
        return ""
    lines = text.strip().splitlines()
    if len(lines) > max_lines:
        text = "\n".join([TRUNCATED] + lines[-max_lines:])
    else:
        text = "\n".join(lines)
    if len(text) > max_len:
        text = TRUNCATED + "\n" + text[-max_len:]
    return text

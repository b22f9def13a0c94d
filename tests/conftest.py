from pathlib import Path
from typing import List
from unittest.mock import patch

import pytest
from loguru import logger

from polysplit.ffmpeg_check import FFmpegStatus
from polysplit.labels import ChannelLabelTable
from polysplit.planner import OutputPlan, plan_unit
from polysplit.probe import MediaDescriptor
from polysplit.scanner import SingleFile


@pytest.fixture(autouse=True)
def setup_test_logger():
    # Ensure each test starts with a clean logger
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def log_messages() -> List[str]:
    messages: List[str] = []
    logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    return messages


@pytest.fixture
def ffmpeg_ok():
    status = FFmpegStatus(available=True, ffmpeg_path="ffmpeg", ffprobe_path="ffprobe", ffmpeg_version="test")
    with patch("polysplit.runner.probe_ffmpeg", return_value=status) as m:
        yield m


def write_labels(path: Path, *lines: str) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def touch(path: Path, data: bytes = b"RIFF") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def make_plan(tmp_path: Path, name: str = "take", channels: int = 2, **kwargs) -> OutputPlan:
    unit = SingleFile(path=tmp_path / "src" / f"{name}.wav")
    descriptor = MediaDescriptor(channels=channels, sample_rate=48000, codec="pcm_s24le")
    labels = ChannelLabelTable(labels=tuple(f"IN{i}" for i in range(1, channels + 1)))
    kwargs.setdefault("out_root", tmp_path / "out")
    return plan_unit(unit, descriptor, labels, **kwargs)

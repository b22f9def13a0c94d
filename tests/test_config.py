import os
from pathlib import Path

import pytest

from conftest import touch

from polysplit.config import PolysplitSettings
from polysplit.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in list(os.environ):
        if k.upper().startswith("POLYSPLIT_"):
            monkeypatch.delenv(k)


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path):
    cfg = PolysplitSettings.load(config_path=tmp_path / "missing.toml")
    assert cfg.layout == "flat"
    assert cfg.mode == "new"
    assert cfg.stitch == "off"
    assert cfg.name_style == "smart"
    assert cfg.pad_width == 2
    assert cfg.workers is None
    assert cfg.ffmpeg_loglevel == "info"
    assert cfg.config_path == tmp_path / "missing.toml"


def test_priority_file_env_cli(tmp_path, monkeypatch):
    cp = _write(tmp_path / "config.toml", 'layout = "folders"\nmode = "backup"\nworkers = 3\n')
    monkeypatch.setenv("POLYSPLIT_MODE", "resume")
    monkeypatch.setenv("POLYSPLIT_WORKERS", "5")

    cfg = PolysplitSettings.load(config_path=cp)
    assert (cfg.layout, cfg.mode, cfg.workers) == ("folders", "resume", 5)

    cfg = PolysplitSettings.load(config_path=cp, overrides={"mode": "final", "workers": None})
    assert (cfg.layout, cfg.mode, cfg.workers) == ("folders", "final", 5)


def test_invalid_enum_is_config_error(tmp_path):
    cp = _write(tmp_path / "config.toml", 'mode = "sideways"\n')
    with pytest.raises(ConfigError, match="mode"):
        PolysplitSettings.load(config_path=cp)


def test_invalid_override_is_config_error(tmp_path):
    with pytest.raises(ConfigError, match="pad_width"):
        PolysplitSettings.load(config_path=tmp_path / "none.toml", overrides={"pad_width": 0})


def test_broken_toml_is_config_error(tmp_path):
    cp = _write(tmp_path / "config.toml", "layout = \n")
    with pytest.raises(ConfigError, match="Invalid config file"):
        PolysplitSettings.load(config_path=cp)


def test_resolve_paths_defaults(tmp_path):
    src = tmp_path / "rec"
    src.mkdir()
    touch(src / "channels.txt", b"Kick\n")
    cfg = PolysplitSettings(src=src).resolve_paths(cwd=tmp_path / "elsewhere")
    assert cfg.out == src / "PolySplit_Final"
    assert cfg.channels == src / "channels.txt"


def test_resolve_paths_prefers_cwd_channels(tmp_path):
    src = tmp_path / "rec"
    src.mkdir()
    touch(src / "channels.txt", b"Kick\n")
    touch(tmp_path / "channels.txt", b"Kick\n")
    cfg = PolysplitSettings(src=src, out=tmp_path / "out").resolve_paths(cwd=tmp_path)
    assert cfg.channels == tmp_path / "channels.txt"
    assert cfg.out == tmp_path / "out"


def test_resolve_paths_errors(tmp_path):
    with pytest.raises(ConfigError, match="--src is required"):
        PolysplitSettings().resolve_paths(cwd=tmp_path)
    with pytest.raises(ConfigError, match="Source not found"):
        PolysplitSettings(src=tmp_path / "nope").resolve_paths(cwd=tmp_path)
    (tmp_path / "rec").mkdir()
    with pytest.raises(ConfigError, match="channels"):
        PolysplitSettings(src=tmp_path / "rec").resolve_paths(cwd=tmp_path)


def test_write_config_roundtrip(tmp_path):
    cfg = PolysplitSettings.load(
        config_path=tmp_path / "none.toml",
        overrides={"layout": "folders", "stitch": "dir", "src": tmp_path},
    )
    text = cfg.to_toml()
    assert 'layout = "folders"' in text
    assert "config_path" not in text
    assert "workers" not in text

    written = cfg.write(tmp_path / "cfg" / "config.toml")
    again = PolysplitSettings.load(config_path=written)
    assert (again.layout, again.stitch, again.src) == ("folders", "dir", tmp_path)


def test_wide_pad_width_is_accepted(tmp_path):
    cfg = PolysplitSettings.load(config_path=tmp_path / "none.toml", overrides={"pad_width": 8})
    assert cfg.pad_width == 8

import os
from unittest.mock import patch

import pytest

from polysplit.cli import build_parser, main
from polysplit.ffmpeg_check import FFmpegStatus


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in list(os.environ):
        if k.upper().startswith("POLYSPLIT_"):
            monkeypatch.delenv(k)


def test_parser_maps_split_flags():
    args = build_parser().parse_args(
        ["split", "--src", "/rec", "--loglevel", "error", "--pad", "3", "--name-style", "default", "--yes"]
    )
    assert args.cmd == "split"
    assert str(args.src) == "/rec"
    assert args.ffmpeg_loglevel == "error"
    assert args.pad_width == 3
    assert args.name_style == "default"
    assert args.yes is True
    assert args.dry_run is None


def test_invalid_choice_exits():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["split", "--mode", "sideways"])


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_write_config(tmp_path, capsys):
    cp = tmp_path / "config.toml"
    rc = main(["--config", str(cp), "--write-config", "split", "--layout", "folders"])
    assert rc == 0
    assert 'layout = "folders"' in cp.read_text(encoding="utf-8")
    assert str(cp) in capsys.readouterr().out


def test_split_passes_effective_settings(tmp_path):
    seen = {}

    def fake_split(cfg):
        seen["cfg"] = cfg
        return 0, {}

    with patch("polysplit.cli.cmd_split", side_effect=fake_split):
        rc = main(["--config", str(tmp_path / "none.toml"), "split", "--src", str(tmp_path), "--stitch", "all"])
    assert rc == 0
    assert seen["cfg"].src == tmp_path
    assert seen["cfg"].stitch == "all"
    assert seen["cfg"].yes is False


def test_split_returns_exit_code(tmp_path):
    with patch("polysplit.cli.cmd_split", return_value=(2, {})):
        assert main(["--config", str(tmp_path / "none.toml"), "split", "--src", str(tmp_path)]) == 2


def test_bad_config_returns_fatal(tmp_path):
    cp = tmp_path / "config.toml"
    cp.write_text('mode = "sideways"\n', encoding="utf-8")
    assert main(["--config", str(cp), "split"]) == 1


@pytest.mark.parametrize("available,expected", [(True, 0), (False, 3)])
def test_preflight(tmp_path, available, expected):
    status = FFmpegStatus(
        available=available,
        ffmpeg_path="/usr/bin/ffmpeg" if available else None,
        ffprobe_path="/usr/bin/ffprobe" if available else None,
        ffmpeg_version="ffmpeg version 7.0" if available else None,
        wav_mux_opts=["-write_bext", "1"] if available else [],
        error=None if available else "ffmpeg not found in PATH",
    )
    with patch("polysplit.cli.probe_ffmpeg", return_value=status):
        assert main(["--config", str(tmp_path / "none.toml"), "preflight"]) == expected

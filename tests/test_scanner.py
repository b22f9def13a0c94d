from pathlib import Path

from conftest import touch

from polysplit.scanner import (
    SingleFile,
    StitchedSession,
    discover_units,
    is_segment_filename,
    list_segments_in_dir,
)


def test_is_segment_filename():
    assert is_segment_filename("00000001.WAV")
    assert is_segment_filename("00000012.wav")
    assert not is_segment_filename("0000001.WAV")
    assert not is_segment_filename("000000001.WAV")
    assert not is_segment_filename("00000001.AIF")
    assert not is_segment_filename("notes.wav")


def test_off_mode_lists_audio_files_recursively(tmp_path):
    touch(tmp_path / "a.wav")
    touch(tmp_path / "B.WAV")
    touch(tmp_path / "sub" / "c.aiff")
    touch(tmp_path / "sub" / "d.AIF")
    touch(tmp_path / "sub" / "notes.txt")
    units = discover_units(tmp_path, "off")
    assert all(isinstance(u, SingleFile) for u in units)
    names = sorted(u.path.name for u in units)
    assert names == ["B.WAV", "a.wav", "c.aiff", "d.AIF"]


def test_off_mode_ignores_excluded_output_dir(tmp_path):
    touch(tmp_path / "show.wav")
    touch(tmp_path / "PolySplit_Final" / "show_01_KICK.wav")
    units = discover_units(tmp_path, "off", exclude=[tmp_path / "PolySplit_Final"])
    assert [u.path.name for u in units] == ["show.wav"]


def test_dir_mode_root_session_excludes_unrelated_files(tmp_path):
    for name in ("00000003.WAV", "00000001.WAV", "00000002.WAV", "notes.wav"):
        touch(tmp_path / name)
    units = discover_units(tmp_path, "dir")
    assert len(units) == 1
    session = units[0]
    assert isinstance(session, StitchedSession)
    assert [p.name for p in session.segments] == ["00000001.WAV", "00000002.WAV", "00000003.WAV"]
    assert session.name == tmp_path.name
    assert session.nested is False


def test_dir_mode_groups_nested_sessions_by_directory(tmp_path):
    touch(tmp_path / "5C22B94E" / "00000001.WAV")
    touch(tmp_path / "5C22B94E" / "00000002.WAV")
    touch(tmp_path / "card2" / "6A11C003" / "00000001.WAV")
    touch(tmp_path / "card2" / "other.wav")
    units = discover_units(tmp_path, "dir")
    assert [u.name for u in units] == ["5C22B94E", "6A11C003"]
    assert all(u.nested for u in units)
    assert len(units[0].segments) == 2
    assert len(units[1].segments) == 1


def test_dir_mode_without_segments_is_empty(tmp_path):
    touch(tmp_path / "show.wav")
    assert discover_units(tmp_path, "dir") == []


def test_all_mode_uses_only_direct_children(tmp_path, log_messages):
    touch(tmp_path / "00000002.WAV")
    touch(tmp_path / "00000001.WAV")
    touch(tmp_path / "deeper" / "00000003.WAV")
    units = discover_units(tmp_path, "all")
    assert len(units) == 1
    assert [p.name for p in units[0].segments] == ["00000001.WAV", "00000002.WAV"]
    assert units[0].nested is True


def test_all_mode_without_segments_skips_with_notice(tmp_path, log_messages):
    touch(tmp_path / "deeper" / "00000001.WAV")
    assert discover_units(tmp_path, "all") == []
    assert any("no segment files found" in m for m in log_messages)


def test_segments_sort_by_filename_bytes(tmp_path):
    # uppercase sorts before lowercase in byte order
    touch(tmp_path / "00000002.wav")
    touch(tmp_path / "00000002.WAV")
    touch(tmp_path / "00000001.wav")
    names = [p.name for p in list_segments_in_dir(tmp_path)]
    assert names == sorted(names, key=lambda n: n.encode())
    assert names[0] == "00000001.wav"

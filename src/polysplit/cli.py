from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger

from .config import PolysplitSettings, cli_overrides_from_args
from .errors import EXIT_OK, EXIT_PREFLIGHT_FAILED, PolysplitError
from .ffmpeg_check import probe_ffmpeg
from .logging import bind_run, setup_console, setup_json
from .runner import cmd_split


def configure_logging(log_level: str = "INFO", log_json_path: str | None = None) -> None:
    """Human console output on stderr plus an optional JSON lines file."""
    setup_console(log_level)
    if log_json_path:
        setup_json(log_json_path)


def cmd_preflight() -> int:
    st = probe_ffmpeg()
    if not st.available:
        logger.error("ffmpeg/ffprobe: NOT FOUND")
        if st.error:
            logger.error(st.error)
        return EXIT_PREFLIGHT_FAILED
    logger.info(f"ffmpeg: {st.ffmpeg_path}")
    logger.info(f"ffprobe: {st.ffprobe_path}")
    logger.info(f"version: {st.ffmpeg_version}")
    logger.info(f"wav muxer options: {' '.join(st.wav_mux_opts) or 'none'}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="polysplit",
        description="Split polywav recordings into labeled mono WAVs.",
    )
    # Config/Logging options (defaults resolved via PolysplitSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/polysplit/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument("--log-level", default=None, help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--log-json", dest="log_json", default=None, help="Path to write JSON lines log")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("preflight", help="Check ffmpeg/ffprobe availability and wav muxer options")

    s = sub.add_parser("split", help="Split (and optionally stitch) polywavs into mono WAVs")
    s.add_argument("--src", type=Path, default=None, help="Source root to scan for .wav/.aif/.aiff")
    s.add_argument("--out", type=Path, default=None, help="Output root (default: <src>/PolySplit_Final)")
    s.add_argument("--channels", type=Path, default=None, help="Channel labels file (default: ./channels.txt or <src>/channels.txt)")
    s.add_argument("--layout", choices=["flat", "folders"], default=None, help="Output layout (default: flat)")
    s.add_argument(
        "--mode",
        choices=["new", "backup", "overwrite", "resume", "final"],
        default=None,
        help="What to do when the output root exists (default: new)",
    )
    s.add_argument(
        "--stitch",
        choices=["off", "dir", "all"],
        default=None,
        help="off: split each file; dir: stitch 00000001.WAV-style segments per directory; all: src is one session",
    )
    s.add_argument("--name-style", dest="name_style", choices=["default", "smart"], default=None,
                   help="smart drops labels that only repeat the channel number (default: smart)")
    s.add_argument("--workers", type=int, default=None, help="Parallel jobs (default: CPUs/2, max 12)")
    s.add_argument("--ffmpeg-threads", dest="ffmpeg_threads", type=int, default=None, help="ffmpeg -threads per job (default: 1)")
    s.add_argument(
        "--loglevel",
        dest="ffmpeg_loglevel",
        choices=["quiet", "error", "warning", "info", "verbose"],
        default=None,
        help="ffmpeg loglevel (default: info)",
    )
    s.add_argument("--pad", dest="pad_width", type=int, default=None, help="Zero pad width (default: 2)")
    s.add_argument(
        "--final-conflict",
        dest="final_conflict",
        choices=["overwrite", "backup"],
        default=None,
        help="final mode: delete (default) or back up an existing output root before the swap",
    )
    s.add_argument("--yes", action="store_true", default=None, help="Skip destructive prompts (required for non-interactive overwrite)")
    s.add_argument("--dry-run", dest="dry_run", action="store_true", default=None, help="Print planned actions without writing")
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    config_path = Path(args.config_path).expanduser() if args.config_path else None
    try:
        cfg = PolysplitSettings.load(config_path=config_path, overrides=overrides)
    except PolysplitError as e:
        setup_console("INFO")
        logger.error(f"Error: {e}")
        return e.exit_code

    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    bind_run()
    try:
        if args.cmd == "preflight":
            return cmd_preflight()
        if args.cmd == "split":
            exit_code, _ = cmd_split(cfg)
            return exit_code
        p.error("unknown command")
        return 1
    finally:
        logger.complete()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

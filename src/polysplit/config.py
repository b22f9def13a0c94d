from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from tomlkit import dumps as toml_dumps

from .encoder import FfmpegLogLevel
from .errors import ConfigError
from .labels import NameStyle
from .lifecycle import FinalConflict
from .planner import Layout, OutputMode
from .scanner import StitchMode


DEFAULT_CONFIG_PATH = Path("~/.config/polysplit/config.toml").expanduser()
ENV_PREFIX = "POLYSPLIT_"
DEFAULT_OUT_NAME = "PolySplit_Final"
DEFAULT_CHANNELS_NAME = "channels.txt"


class PolysplitSettings(BaseSettings):
    """Settings for a split run.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/polysplit/config.toml)
    - Environment variables with prefix POLYSPLIT_
    - CLI overrides passed to `load(overrides=...)`

    Enumerated settings are Literal types, so an unknown layout/mode/stitch
    value is rejected here once and never reaches the pipeline.
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Paths
    src: Optional[Path] = Field(default=None, description="Source root to scan for polywavs")
    out: Optional[Path] = Field(default=None, description="Output root (default: <src>/PolySplit_Final)")
    channels: Optional[Path] = Field(default=None, description="Channel labels file")

    # Split behaviour
    layout: Layout = Field(default="flat", description="flat or folders")
    mode: OutputMode = Field(default="new", description="new|backup|overwrite|resume|final")
    stitch: StitchMode = Field(default="off", description="off|dir|all")
    name_style: NameStyle = Field(default="smart", description="default|smart")
    pad_width: int = Field(default=2, ge=1, description="Zero pad width for channel numbers")
    final_conflict: FinalConflict = Field(
        default="overwrite",
        description="How final mode clears an existing output root before the swap",
    )

    # Execution
    workers: Optional[int] = Field(default=None, ge=1, description="Parallel jobs; None=auto (CPUs/2, max 12)")
    ffmpeg_threads: int = Field(default=1, ge=1, description="ffmpeg -threads per job")
    ffmpeg_loglevel: FfmpegLogLevel = Field(default="info", description="ffmpeg -loglevel")
    yes: bool = Field(default=False, description="Skip destructive confirmations")
    dry_run: bool = Field(default=False, description="Log mutating actions instead of running them")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e
        return data

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "PolysplitSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/polysplit/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings, so drop file keys the env sets
        env_keys = {k[len(ENV_PREFIX):].lower() for k in os.environ if k.upper().startswith(ENV_PREFIX)}
        file_values = {k: v for k, v in file_values.items() if k not in env_keys}
        non_none = {k: v for k, v in (overrides or {}).items() if v is not None}
        try:
            # Build in two steps so env overrides the file and CLI overrides env
            base = cls(**file_values)
            merged = base.model_dump()
            merged.update(non_none)
            settings = cls(**merged)
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e)) from e
        settings.config_path = cp
        return settings

    def resolve_paths(self, cwd: Optional[Path] = None) -> "PolysplitSettings":
        """Return a copy with src/out/channels filled in and checked.

        - out defaults to <src>/PolySplit_Final
        - channels defaults to ./channels.txt, then <src>/channels.txt
        """
        here = cwd or Path.cwd()
        if self.src is None:
            raise ConfigError("--src is required")
        src = self.src.expanduser()
        if not src.is_dir():
            raise ConfigError(f"Source not found: {src}")

        out = self.out.expanduser() if self.out else src / DEFAULT_OUT_NAME

        channels = self.channels.expanduser() if self.channels else None
        if channels is None:
            for candidate in (here / DEFAULT_CHANNELS_NAME, src / DEFAULT_CHANNELS_NAME):
                if candidate.is_file():
                    channels = candidate
                    break
            else:
                raise ConfigError(f"--channels is required ({DEFAULT_CHANNELS_NAME} not found)")

        return self.model_copy(update={"src": src, "out": out, "channels": channels})

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True, mode="json")
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}")
    return "Invalid settings: " + "; ".join(parts)


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "src",
        "out",
        "channels",
        "layout",
        "mode",
        "stitch",
        "name_style",
        "pad_width",
        "final_conflict",
        "workers",
        "ffmpeg_threads",
        "ffmpeg_loglevel",
        "yes",
        "dry_run",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result

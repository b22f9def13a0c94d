"""Output root lifecycle: resolve the output directory once per run.

Modes
- new: existing path -> first free ``<path>_2``, ``<path>_3``, ...
- backup: existing path -> renamed to ``<path>__backup_<timestamp>``
- overwrite: existing path -> deleted after confirmation
- resume: existing path reused; the planner skips finished files
- final: build in ``<path>__work_<timestamp>`` and swap it into place only
  after every job succeeded, so ``<path>`` is never partially written
"""
from __future__ import annotations

import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Literal, Optional

from loguru import logger

from .errors import ConfigError, DestructiveActionRefused
from .logging import log_dry_run
from .planner import OutputMode


FinalConflict = Literal["overwrite", "backup"]
Resolution = Literal["fresh", "renamed-existing", "deleted-existing", "reused"]

CONFIRM_WORD = "DELETE"


def timestamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def sibling(path: Path, suffix: str) -> Path:
    """Return ``<path><suffix>`` next to ``path``; "." and "out/.." are resolved first."""
    if not path.name or path.name in (".", ".."):
        path = path.resolve()
    if not path.name:
        raise ConfigError(f"Output path has no name to derive siblings from: {path}")
    return path.with_name(path.name + suffix)


def unique_dir(base: Path) -> Path:
    """Return ``base`` if free, else ``base_2``, ``base_3``, ... (first free)."""
    if not base.exists():
        return base
    n = 2
    while True:
        candidate = sibling(base, f"_{n}")
        if not candidate.exists():
            return candidate
        n += 1


def is_root_like(target: Path) -> bool:
    raw = str(target)
    if raw in ("", ".", "/"):
        return True
    resolved = target.resolve()
    return resolved == Path(resolved.anchor) or resolved == Path.cwd().resolve()


def is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def prompt_delete(target: Path) -> bool:
    try:
        ans = input(f"About to DELETE permanently:\n  {target}\nType '{CONFIRM_WORD}' to confirm: ")
    except EOFError:
        return False
    return ans.strip() == CONFIRM_WORD


class OutputRoot:
    """Run-scoped owner of the output directory."""

    def __init__(
        self,
        requested: Path,
        mode: OutputMode = "new",
        *,
        dry_run: bool = False,
        assume_yes: bool = False,
        final_conflict: FinalConflict = "overwrite",
        interactive: Optional[bool] = None,
        prompt: Callable[[Path], bool] = prompt_delete,
        clock: Callable[[], str] = timestamp,
    ) -> None:
        self.requested = requested
        self.mode = mode
        self.dry_run = dry_run
        self.assume_yes = assume_yes
        self.final_conflict = final_conflict
        self.interactive = is_interactive() if interactive is None else interactive
        self._prompt = prompt
        self._clock = clock
        self.path: Optional[Path] = None
        self.resolution: Optional[Resolution] = None

    # -- mutating primitives (all dry-run aware) --

    def _mkdir(self, path: Path) -> None:
        if self.dry_run:
            log_dry_run(f"mkdir -p {path}")
            return
        path.mkdir(parents=True, exist_ok=True)

    def _rename(self, src: Path, dst: Path) -> None:
        if self.dry_run:
            log_dry_run(f"mv {src} {dst}")
            return
        src.rename(dst)

    def confirm_delete(self, target: Path) -> None:
        if self.dry_run or self.assume_yes:
            return
        if not self.interactive:
            raise DestructiveActionRefused(
                f"Refusing to delete '{target}' without --yes in non-interactive mode."
            )
        if not self._prompt(target):
            raise DestructiveActionRefused("Overwrite aborted.")

    def remove_tree(self, target: Path) -> None:
        if self.dry_run:
            log_dry_run(f"rm -rf {target}")
            return
        if is_root_like(target):
            raise DestructiveActionRefused(f"Refusing to remove root-like path: {target}")
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

    def backup(self, target: Path) -> Path:
        if not self.dry_run and is_root_like(target):
            raise DestructiveActionRefused(f"Refusing to move root-like path: {target}")
        dest = unique_dir(sibling(target, f"__backup_{self._clock()}"))
        logger.info(f"Moving existing output to: {dest}")
        self._rename(target, dest)
        return dest

    def delete(self, target: Path) -> None:
        if not self.dry_run and is_root_like(target):
            raise DestructiveActionRefused(f"Refusing to remove root-like path: {target}")
        self.confirm_delete(target)
        self.remove_tree(target)

    # -- lifecycle --

    def check_final_target(self) -> None:
        """Refuse a final-mode run up front when the swap could never be confirmed."""
        if self.dry_run or not self.requested.exists():
            return
        if is_root_like(self.requested):
            raise DestructiveActionRefused(f"Refusing to replace root-like path: {self.requested}")
        if self.final_conflict == "backup":
            return
        if not self.assume_yes and not self.interactive:
            raise DestructiveActionRefused(
                f"Refusing to replace '{self.requested}' without --yes in non-interactive mode."
            )

    def prepare(self) -> Path:
        """Resolve the directory jobs write into and create it."""
        if self.mode == "final":
            self.check_final_target()
            work = unique_dir(sibling(self.requested, f"__work_{self._clock()}"))
            logger.info(f"Building in work directory: {work}")
            self._mkdir(work)
            self.path, self.resolution = work, "fresh"
            return work

        target = self.requested
        resolution: Resolution = "fresh"
        if target.exists():
            if self.mode == "backup":
                self.backup(target)
                resolution = "renamed-existing"
            elif self.mode == "overwrite":
                self.delete(target)
                resolution = "deleted-existing"
            elif self.mode == "resume":
                resolution = "reused"
            else:
                target = unique_dir(target)
                logger.info(f"Using new directory: {target}")

        if target.exists() and not target.is_dir():
            raise ConfigError(f"Output path exists and is not a directory: {target}")
        self._mkdir(target)
        self.path, self.resolution = target, resolution
        return target

    def finalize(self, success: bool) -> Optional[Path]:
        """Complete the run. Returns where the results live, or None if not finalized.

        Only final mode moves anything: on success the work directory replaces
        the requested path; on failure the work directory stays for
        inspection and the requested path is left untouched.
        """
        if self.mode != "final":
            return self.path
        work = self.path
        if work is None:
            raise RuntimeError("finalize() called before prepare()")
        if not success:
            logger.error(f"Not finalizing; {self.requested} left untouched. Partial results kept in: {work}")
            return None

        if self.requested.exists():
            if self.final_conflict == "backup":
                self.backup(self.requested)
            else:
                self.delete(self.requested)
        self._rename(work, self.requested)
        logger.info(f"Finalized output: {self.requested}")
        self.path = self.requested
        return self.requested

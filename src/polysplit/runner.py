"""Run orchestration: config -> labels -> discovery -> plan -> schedule -> finalize."""

from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .config import PolysplitSettings
from .encoder import EncodeOptions, build_split_cmd, cmd_to_string, input_args_for, run_split
from .errors import (
    EXIT_OK,
    EXIT_PREFLIGHT_FAILED,
    EXIT_WITH_UNIT_ERRORS,
    ChannelCountMismatch,
    JobFailure,
    PolysplitError,
    ProbeError,
    SegmentMismatch,
)
from .ffmpeg_check import probe_ffmpeg
from .labels import ChannelLabelTable, load_channel_labels
from .lifecycle import OutputRoot, prompt_delete
from .logging import log_dry_run, log_event, truncate, unit_log
from .planner import OutputPlan, plan_unit
from .probe import MediaDescriptor, probe_media
from .scanner import SingleFile, SourceUnit, discover_units
from .scheduler import JobResult, default_workers, run_jobs
from .validate import validate_segments


def _empty_summary() -> dict[str, Any]:
    return {
        "units": 0,
        "planned_outputs": 0,
        "skipped_outputs": 0,
        "written_outputs": 0,
        "units_ok": 0,
        "units_nothing_to_do": 0,
        "units_failed": 0,
    }


def unit_label(unit: SourceUnit) -> str:
    return unit.path.name if isinstance(unit, SingleFile) else unit.name


def output_family(requested: Path) -> List[Path]:
    """Existing siblings a run may have produced from ``requested``.

    Covers ``<out>``, ``<out>_N``, ``<out>__backup_*`` and ``<out>__work_*`` so
    discovery never re-splits earlier outputs kept under the source tree.
    """
    if not requested.name or requested.name in (".", ".."):
        requested = requested.resolve()
    parent = requested.parent
    if not parent.is_dir():
        return [requested]
    pattern = re.compile(rf"^{re.escape(requested.name)}(?:_\d+|__backup_.+|__work_.+)?$")
    family = [p for p in parent.iterdir() if pattern.match(p.name)]
    return family or [requested]


def inspect_unit(unit: SourceUnit) -> MediaDescriptor:
    if isinstance(unit, SingleFile):
        return probe_media(unit.path)
    return validate_segments(unit.segments, probe=probe_media)


def plan_all(
    units: Sequence[SourceUnit],
    labels: ChannelLabelTable,
    cfg: PolysplitSettings,
    out_root: Path,
) -> Tuple[List[OutputPlan], List[str]]:
    """Inspect and plan every unit. Returns (plans, failed unit ids).

    Unit problems are logged and isolated. A probe failure on a session's
    first segment is re-raised: the reference probe failing means the
    recording itself is unreadable.
    """
    plans: List[OutputPlan] = []
    failed: List[str] = []
    claimed: Dict[Path, str] = {}

    for unit in units:
        name = unit_label(unit)
        try:
            descriptor = inspect_unit(unit)
            plan = plan_unit(
                unit,
                descriptor,
                labels,
                out_root=out_root,
                layout=cfg.layout,
                name_style=cfg.name_style,
                pad_width=cfg.pad_width,
                mode=cfg.mode,
            )
        except ProbeError as e:
            if not isinstance(unit, SingleFile) and e.path == unit.segments[0]:
                raise
            unit_log(name, "ERROR", str(e))
            failed.append(unit.unit_id)
            continue
        except (SegmentMismatch, ChannelCountMismatch) as e:
            unit_log(name, "ERROR", str(e))
            failed.append(unit.unit_id)
            continue

        clash = next((o.path for o in plan.outputs if o.path in claimed), None)
        if clash is not None:
            unit_log(name, "ERROR", f"output {clash} is already planned by {claimed[clash]}")
            failed.append(unit.unit_id)
            continue
        for o in plan.outputs:
            claimed[o.path] = unit.unit_id

        if plan.nothing_to_do:
            unit_log(name, "INFO", "nothing to do.")
        plans.append(plan)
    return plans, failed


def make_job(opts: EncodeOptions, *, dry_run: bool) -> Callable[[OutputPlan], Tuple[int, str]]:
    def _job(plan: OutputPlan) -> Tuple[int, str]:
        if dry_run:
            for out in plan.pending:
                log_dry_run(f"would write: {out.path}")
            manifest = Path("<concat-list>") if not isinstance(plan.unit, SingleFile) else None
            cmd = build_split_cmd(plan, input_args_for(plan, manifest), {}, opts)
            log_dry_run(cmd_to_string(cmd))
            return 0, ""
        plan.output_dir.mkdir(parents=True, exist_ok=True)
        return run_split(plan, opts)

    return _job


def _write_summary(summary: Dict[str, Any], log_json_path: Optional[str]) -> None:
    if not log_json_path:
        return
    summary_path = Path(str(log_json_path) + ".summary.json")
    try:
        with open(summary_path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        logger.debug(f"Run summary written: {summary_path}")
    except OSError as e:
        logger.warning(f"Failed to write run summary JSON: {e}")


def cmd_split(
    cfg: PolysplitSettings,
    *,
    interactive: Optional[bool] = None,
    prompt: Callable[[Path], bool] = prompt_delete,
) -> tuple[int, dict[str, Any]]:
    """Split every source unit under ``cfg.src`` into labeled mono WAVs."""
    counts = _empty_summary()
    t_start = time.time()
    try:
        cfg = cfg.resolve_paths()
        st = probe_ffmpeg()
        if not st.available:
            logger.error(f"ffmpeg preflight failed: {st.error}")
            return EXIT_PREFLIGHT_FAILED, counts

        labels = load_channel_labels(cfg.channels)
        workers = cfg.workers or default_workers()
        opts = EncodeOptions(
            ffmpeg=st.ffmpeg_path or "ffmpeg",
            loglevel=cfg.ffmpeg_loglevel,
            threads=cfg.ffmpeg_threads,
            wav_mux_opts=tuple(st.wav_mux_opts),
        )

        t_scan = time.time()
        units = discover_units(cfg.src, cfg.stitch, exclude=output_family(cfg.out))
        d_scan = time.time() - t_scan
        counts["units"] = len(units)
        if not units:
            logger.info("No source files found")
            return EXIT_OK, counts

        root = OutputRoot(
            cfg.out,
            cfg.mode,
            dry_run=cfg.dry_run,
            assume_yes=cfg.yes,
            final_conflict=cfg.final_conflict,
            interactive=interactive,
            prompt=prompt,
        )
        out_root = root.prepare()

        logger.info(f"Source:   {cfg.src}")
        logger.info(f"Output:   {out_root}")
        logger.info(
            f"Layout: {cfg.layout} | Mode: {cfg.mode} | Stitch: {cfg.stitch} | Names: {cfg.name_style}"
            f" | Workers: {workers} | ffmpeg threads: {cfg.ffmpeg_threads} | ffmpeg loglevel: {cfg.ffmpeg_loglevel}"
        )
        logger.info(f"Channels: {len(labels)} from {cfg.channels}")

        t_plan = time.time()
        plans, plan_failed = plan_all(units, labels, cfg, out_root)
        d_plan = time.time() - t_plan
        counts["planned_outputs"] = sum(len(p.outputs) for p in plans)
        counts["skipped_outputs"] = sum(len(p.skipped) for p in plans)
        logger.info(
            f"Units: {len(units)} | Planned: {len(plans)} | Outputs: {counts['planned_outputs']}"
            f" | Skip: {counts['skipped_outputs']} | Failed planning: {len(plan_failed)}"
        )

        done = 0
        runnable = sum(1 for p in plans if not p.nothing_to_do)

        def _report(plan: OutputPlan, result: JobResult) -> None:
            nonlocal done
            if result.skipped:
                return
            done += 1
            name = unit_label(plan.unit)
            status = "ok" if result.ok else "error"
            log_event(
                "split",
                msg=f"[{done}/{runnable}] {'OK ' if result.ok else 'ERR'} {name} ({len(plan.pending)} file(s))",
                level="INFO" if result.ok else "ERROR",
                unit=result.unit_id,
                status=status,
                rc=result.exit_code,
                elapsed_ms=int(result.elapsed_s * 1000),
            )
            if not result.ok and result.error:
                logger.error(truncate(result.error))

        t_split = time.time()
        results = run_jobs(plans, make_job(opts, dry_run=cfg.dry_run), workers=workers, on_result=_report)
        d_split = time.time() - t_split

        job_failed = [r.unit_id for r in results if not r.ok]
        by_id = {p.unit.unit_id: p for p in plans}
        counts["units_ok"] = sum(1 for r in results if r.ok and not r.skipped)
        counts["units_nothing_to_do"] = sum(1 for r in results if r.skipped)
        counts["units_failed"] = len(plan_failed) + len(job_failed)
        if not cfg.dry_run:
            counts["written_outputs"] = sum(
                len(by_id[r.unit_id].pending) for r in results if r.ok and not r.skipped
            )

        finalized = root.finalize(success=counts["units_failed"] == 0)

        d_total = time.time() - t_start
        logger.info(
            f"Timing: total={d_total:.3f}s scan={d_scan:.3f}s plan={d_plan:.3f}s split={d_split:.3f}s"
        )
        _write_summary(
            {
                "source": str(cfg.src),
                "dest": str(finalized or out_root),
                "mode": cfg.mode,
                "layout": cfg.layout,
                "stitch": cfg.stitch,
                "workers": workers,
                "dry_run": cfg.dry_run,
                "counts": counts,
                "failed_units": plan_failed + job_failed,
                "timing_s": {
                    "total": round(d_total, 3),
                    "scan": round(d_scan, 3),
                    "plan": round(d_plan, 3),
                    "split": round(d_split, 3),
                },
                "timestamp": int(time.time()),
            },
            cfg.log_json,
        )

        if job_failed:
            raise JobFailure(job_failed)
        if plan_failed:
            logger.error(f"{len(plan_failed)} unit(s) could not be planned; see errors above.")
            return EXIT_WITH_UNIT_ERRORS, counts
        logger.info("Done.")
        return EXIT_OK, counts
    except PolysplitError as e:
        logger.error(f"Error: {e}")
        return e.exit_code, counts

"""Bounded worker pool for running split jobs (standard library).

Each worker thread blocks on exactly one external process, so the number of
futures in flight is the number of concurrent ffmpeg processes. All
scheduling decisions happen on the calling thread.
"""
from __future__ import annotations

import os
import time
from concurrent.futures import ThreadPoolExecutor, Future, wait, FIRST_COMPLETED
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple, Any, Dict, Iterator, List, Sequence

from loguru import logger

from .planner import OutputPlan

MAX_DEFAULT_WORKERS = 12


def default_workers(cpu_count: Optional[int] = None) -> int:
    """Half the CPUs, clamped to 1..12: splitting is mostly disk bound."""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 4)
    return max(1, min(MAX_DEFAULT_WORKERS, cpus // 2))


@dataclass(frozen=True)
class JobResult:
    unit_id: str
    exit_code: int
    skipped: bool = False
    elapsed_s: float = 0.0
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class WorkerPool:
    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._exe = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="polysplit-worker")
        self._max_workers = max_workers

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def imap_unordered_bounded(
        self,
        fn: Callable[[Any], Any],
        iterable: Iterable[Any],
        max_pending: int,
    ) -> Iterator[Tuple[Any, Future]]:
        """Yield (item, future) as they complete while keeping <= max_pending futures in flight.

        The future is already done; callers decide how to treat its exception.
        """
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")

        it = iter(iterable)
        pending: Dict[Future, Any] = {}

        def try_submit() -> bool:
            try:
                item = next(it)
            except StopIteration:
                return False
            pending[self._exe.submit(fn, item)] = item
            return True

        # Prime the window
        while len(pending) < max_pending and try_submit():
            pass

        while pending:
            done_set, _ = wait(set(pending), return_when=FIRST_COMPLETED)
            for fut in done_set:
                item = pending.pop(fut)
                yield item, fut
                # Replenish after a completion
                if len(pending) < max_pending:
                    try_submit()

    def shutdown(self, wait: bool = True) -> None:
        self._exe.shutdown(wait=wait)


def run_jobs(
    plans: Sequence[OutputPlan],
    job: Callable[[OutputPlan], Tuple[int, str]],
    *,
    workers: int,
    on_result: Optional[Callable[[OutputPlan, JobResult], None]] = None,
) -> List[JobResult]:
    """Run ``job`` for every plan with at most ``workers`` running at once.

    Plans with nothing to do succeed immediately without a worker. A failing
    job never cancels its siblings; an exception raised by ``job`` is
    recorded as that unit's failure. Results come back in completion order.
    """
    results: List[JobResult] = []

    def _record(plan: OutputPlan, result: JobResult) -> None:
        results.append(result)
        if on_result is not None:
            on_result(plan, result)

    runnable = []
    for plan in plans:
        if plan.nothing_to_do:
            _record(plan, JobResult(unit_id=plan.unit.unit_id, exit_code=0, skipped=True))
        else:
            runnable.append(plan)
    if not runnable:
        return results

    def _timed(plan: OutputPlan) -> Tuple[int, str, float]:
        t0 = time.time()
        rc, err = job(plan)
        return rc, err, time.time() - t0

    logger.debug(f"scheduling {len(runnable)} job(s) on {workers} worker(s)")
    with WorkerPool(max_workers=workers) as pool:
        for plan, fut in pool.imap_unordered_bounded(_timed, runnable, max_pending=workers):
            exc = fut.exception()
            if exc is not None:
                result = JobResult(unit_id=plan.unit.unit_id, exit_code=1, error=f"{type(exc).__name__}: {exc}")
            else:
                rc, err, elapsed = fut.result()
                result = JobResult(unit_id=plan.unit.unit_id, exit_code=rc, elapsed_s=elapsed, error=err if rc else "")
            _record(plan, result)
    return results

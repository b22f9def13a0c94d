import threading
import time

import pytest

from conftest import make_plan, touch

from polysplit.scheduler import WorkerPool, default_workers, run_jobs


@pytest.mark.parametrize("cpus,expected", [(1, 1), (2, 1), (8, 4), (24, 12), (64, 12)])
def test_default_workers_clamp(cpus, expected):
    assert default_workers(cpus) == expected


def test_worker_pool_rejects_zero():
    with pytest.raises(ValueError):
        WorkerPool(0)


def test_run_jobs_respects_worker_bound(tmp_path):
    plans = [make_plan(tmp_path, name=f"take{i}") for i in range(8)]
    lock = threading.Lock()
    active = 0
    peak = 0

    def job(plan):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return 0, ""

    results = run_jobs(plans, job, workers=3)
    assert len(results) == 8
    assert all(r.ok for r in results)
    assert 1 <= peak <= 3


def test_failures_do_not_cancel_siblings(tmp_path):
    plans = [make_plan(tmp_path, name=f"take{i}") for i in range(4)]

    def job(plan):
        if plan.unit.name == "take1":
            raise RuntimeError("boom")
        if plan.unit.name == "take2":
            return 1, "Conversion failed!"
        return 0, ""

    results = {r.unit_id: r for r in run_jobs(plans, job, workers=2)}
    assert len(results) == 4
    by_name = {p.unit.name: results[p.unit.unit_id] for p in plans}
    assert by_name["take0"].ok and by_name["take3"].ok
    assert by_name["take1"].exit_code == 1
    assert "RuntimeError: boom" in by_name["take1"].error
    assert by_name["take2"].error == "Conversion failed!"


def test_nothing_to_do_plans_never_reach_a_worker(tmp_path):
    out = tmp_path / "out"
    touch(out / "done_01_IN1.wav")
    touch(out / "done_02_IN2.wav")
    done = make_plan(tmp_path, name="done", out_root=out, mode="resume")
    todo = make_plan(tmp_path, name="todo", out_root=out, mode="resume")
    called = []
    seen = []

    def job(plan):
        called.append(plan.unit.name)
        return 0, ""

    results = run_jobs([done, todo], job, workers=2, on_result=lambda p, r: seen.append((p.unit.name, r.skipped)))
    assert called == ["todo"]
    assert sorted(seen) == [("done", True), ("todo", False)]
    assert all(r.ok for r in results)

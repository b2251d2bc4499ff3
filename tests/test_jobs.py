import time

import numpy as np
import pytest

from particlemorph.core.assignment import is_permutation
from particlemorph.core.grid import ParticleGrid
from particlemorph.core.settings import Algorithm, GenerationSettings
from particlemorph.errors import GridMismatchError, SettingsError
from particlemorph.jobs.channel import Cancelled, Done, Error, Progress, is_terminal
from particlemorph.jobs import runner
from particlemorph.jobs.runner import JobManager, MorphJob


def _grids(sidelen, seed=0):
    rng = np.random.default_rng(seed)
    n = sidelen * sidelen
    src = ParticleGrid.from_image(rng.integers(0, 256, size=(n, 3), dtype=np.uint8))
    tgt = ParticleGrid.from_image(rng.integers(0, 256, size=(n, 3), dtype=np.uint8))
    return src, tgt


def _fast_settings(sidelen):
    return GenerationSettings(
        sidelen=sidelen,
        algorithm=Algorithm.HEURISTIC,
        generations=4,
        swaps_per_pixel=0.1,
        reoptimize_every=0,
        seed=0,
    )


def _wait_for_terminal(manager, timeout=120.0):
    seen = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        msgs = manager.poll()
        seen.extend(msgs)
        if msgs and is_terminal(msgs[-1]):
            return seen
        time.sleep(0.01)
    raise AssertionError("job did not finish")


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_job_ends_with_done_after_full_progress(algorithm):
    src, tgt = _grids(4)
    job = MorphJob(src, tgt, GenerationSettings(sidelen=4, algorithm=algorithm, generations=5, preview_every=1))
    job.run()
    msgs = job.channel.drain()
    assert isinstance(msgs[-1], Done)
    assert msgs[-2] == Progress(1.0)
    assert is_permutation(msgs[-1].assignment, 16)
    assert msgs[-1].stats["algorithm"] == algorithm.value
    assert sum(is_terminal(m) for m in msgs) == 1


def test_cancelled_job_sends_exactly_one_cancelled():
    src, tgt = _grids(4)
    job = MorphJob(src, tgt, GenerationSettings(sidelen=4))
    job.cancel()
    job.run()
    msgs = job.channel.drain()
    assert msgs == [Cancelled()]
    assert job.channel.finished


def test_failing_job_sends_error():
    src, _ = _grids(4)
    other, _ = _grids(2)
    job = MorphJob(src, other, GenerationSettings(sidelen=4))
    job.run()
    msgs = job.channel.drain()
    assert len(msgs) == 1
    assert isinstance(msgs[0], Error)
    assert "particles" in msgs[0].message


def test_manager_runs_job_in_background():
    src, tgt = _grids(64)
    manager = JobManager()
    job = manager.start(src, tgt, _fast_settings(64))
    assert manager.active is job
    msgs = _wait_for_terminal(manager)
    assert isinstance(msgs[-1], Done)
    assert manager.active is None
    assert job.join(5.0)


def test_manager_supersedes_previous_job():
    src, tgt = _grids(64)
    manager = JobManager()
    first = manager.start(src, tgt, _fast_settings(64).replace(generations=200))
    second = manager.start(tgt, src, _fast_settings(64))
    assert first.token.cancelled
    assert not second.token.cancelled
    assert manager.active is second

    msgs = _wait_for_terminal(manager)
    assert isinstance(msgs[-1], Done)
    assert first.join(60.0)
    # the first job's channel was never read by the manager
    leftovers = first.channel.drain()
    assert is_terminal(leftovers[-1])


def test_manager_cancel():
    src, tgt = _grids(64)
    manager = JobManager()
    manager.start(src, tgt, _fast_settings(64).replace(generations=100000))
    manager.cancel()
    msgs = _wait_for_terminal(manager)
    assert msgs[-1] == Cancelled()


def test_manager_rejects_bad_input_synchronously():
    manager = JobManager()
    src, tgt = _grids(64)
    small, _ = _grids(4)
    with pytest.raises(SettingsError):
        manager.start(small, small, GenerationSettings(sidelen=4))
    with pytest.raises(SettingsError):
        manager.start(src, tgt, _fast_settings(64).replace(shrink_every=0))
    with pytest.raises(GridMismatchError):
        manager.start(src, tgt, GenerationSettings(sidelen=128))
    assert manager.active is None
    assert manager.poll() == []


def test_cancel_landing_after_solve_returns_discards_result(monkeypatch):
    src, tgt = _grids(4)
    job = MorphJob(src, tgt, GenerationSettings(sidelen=4))

    def finish_then_get_cancelled(source, target, settings, cancel=None, progress=None):
        job.cancel()
        return np.arange(16), {"algorithm": "optimal"}

    monkeypatch.setattr(runner, "solve", finish_then_get_cancelled)
    job.run()
    assert job.channel.drain() == [Cancelled()]


def test_manager_cancels_running_optimal_job():
    src, tgt = _grids(64)
    manager = JobManager()
    settings = GenerationSettings(sidelen=64, algorithm=Algorithm.OPTIMAL, bids_per_check=64, preview_every=0)
    job = manager.start(src, tgt, settings)

    seen = []
    deadline = time.monotonic() + 120.0
    while not any(isinstance(m, Progress) for m in seen):
        assert time.monotonic() < deadline, "optimal job never reported progress"
        seen.extend(manager.poll())
        time.sleep(0.005)
    assert job.is_alive

    manager.cancel()
    seen.extend(_wait_for_terminal(manager))
    assert seen[-1] == Cancelled()
    assert not any(isinstance(m, Done) for m in seen)
    assert sum(is_terminal(m) for m in seen) == 1
    assert job.join(10.0)

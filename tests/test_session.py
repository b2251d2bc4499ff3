import time

import numpy as np

from particlemorph.core.grid import ParticleGrid
from particlemorph.core.settings import Algorithm, GenerationSettings
from particlemorph.jobs.channel import AssignmentUpdate, Cancelled, Done, Error, Progress
from particlemorph.motion.state import MotionParams
from particlemorph.session import MorphSession

SIDELEN = 64
N = SIDELEN * SIDELEN


class _FakeJob:
    def __init__(self, source, target):
        self.source = source
        self.target = target


def _grids(seed=0):
    rng = np.random.default_rng(seed)
    src = ParticleGrid.from_image(rng.integers(0, 256, size=(N, 3), dtype=np.uint8))
    tgt = ParticleGrid.from_image(rng.integers(0, 256, size=(N, 3), dtype=np.uint8))
    return src, tgt


def _settings():
    return GenerationSettings(
        sidelen=SIDELEN,
        algorithm=Algorithm.HEURISTIC,
        generations=3,
        swaps_per_pixel=0.1,
        reoptimize_every=0,
        seed=0,
    )


def test_session_plays_finished_job():
    src, tgt = _grids()
    session = MorphSession(params=MotionParams(loop_playback=False), seed=0)
    assert session.tick() is None

    session.request(src, tgt, _settings())
    assert session.busy
    deadline = time.monotonic() + 120.0
    while session.busy and time.monotonic() < deadline:
        session.tick()
        time.sleep(0.01)

    assert not session.busy
    assert session.error is None
    assert session.last_stats["algorithm"] == "heuristic"
    assert session.simulator is not None
    assert session.state.playing
    frame = session.tick()
    assert frame.positions.shape == (N, 2)
    assert session.state.position > 0.0


def test_partial_assignment_rolled_back_on_cancel():
    src, tgt = _grids()
    session = MorphSession(seed=0)
    job = _FakeJob(src, tgt)
    final = np.arange(N)[::-1].copy()

    session._job = job
    session.handle(Done(final, {"algorithm": "optimal"}))
    np.testing.assert_array_equal(session.simulator.assignment, final)
    sim = session.simulator

    session._job = job
    partial = np.random.default_rng(3).permutation(N)
    session.handle(Progress(0.3))
    session.handle(AssignmentUpdate(partial))
    assert session.last_progress == 0.3
    np.testing.assert_array_equal(session.simulator.assignment, partial)

    session.handle(Cancelled())
    assert session.simulator is sim
    np.testing.assert_array_equal(session.simulator.assignment, final)


def test_error_without_previous_result_clears_simulator():
    src, tgt = _grids()
    session = MorphSession()
    session._job = _FakeJob(src, tgt)
    session.handle(AssignmentUpdate(np.arange(N)))
    assert session.simulator is not None

    session.handle(Error("numerical failure"))
    assert session.error == "numerical failure"
    assert session.simulator is None
    assert session.tick() is None

"""
session.py

MorphSession: the glue a render loop calls once per frame.

It owns the JobManager, the live MotionSimulator and its SimulationState.
`tick()` drains the active job's channel without blocking, applies what it
finds, then advances the simulator. Work-in-progress assignments are shown
while a job runs and rolled back if the job is cancelled or fails.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Tuple

import numpy as np

from .core.grid import ParticleGrid
from .core.settings import GenerationSettings
from .jobs.channel import AssignmentUpdate, Cancelled, Done, Error, PreviewUpdate, Progress, ProgressMsg
from .jobs.runner import JobManager, MorphJob
from .motion.simulator import MotionSimulator, ParticleFrame
from .motion.state import MotionParams, SimulationState

logger = logging.getLogger(__name__)

_Snapshot = Tuple[Optional[MotionSimulator], Optional[SimulationState], Optional[np.ndarray]]


class MorphSession:
    def __init__(self, params: Optional[MotionParams] = None, seed: Optional[int] = None):
        self.jobs = JobManager()
        self.params = params or MotionParams()
        self.seed = seed
        self.simulator: Optional[MotionSimulator] = None
        self.state: Optional[SimulationState] = None
        self.last_progress = 0.0
        self.preview: Optional[np.ndarray] = None
        self.error: Optional[str] = None
        self.last_stats: Optional[dict] = None
        self._job: Optional[MorphJob] = None
        self._rollback: Optional[_Snapshot] = None

    @property
    def busy(self) -> bool:
        return self.jobs.active is not None

    def request(self, source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings) -> MorphJob:
        """Start a solve, replacing any job still running. Input errors raise here."""
        job = self.jobs.start(source, target, settings)
        self._discard_partial()
        self._job = job
        self.last_progress = 0.0
        self.preview = None
        self.error = None
        return job

    def cancel(self):
        self.jobs.cancel()

    def handle(self, msg: ProgressMsg):
        job = self._job
        if isinstance(msg, Progress):
            self.last_progress = msg.fraction
        elif isinstance(msg, PreviewUpdate):
            self.preview = msg.image
        elif isinstance(msg, AssignmentUpdate):
            if self._rollback is None:
                self._rollback = self._snapshot()
            self._install(job, msg.assignment)
        elif isinstance(msg, Done):
            self._install(job, msg.assignment)
            self.simulator.prepare_play(self.state, reverse=False)
            self.last_stats = msg.stats
            self._finish()
        elif isinstance(msg, Cancelled):
            self._discard_partial()
            self._finish()
        elif isinstance(msg, Error):
            logger.warning("solve failed: %s", msg.message)
            self.error = msg.message
            self._discard_partial()
            self._finish()

    def poll(self) -> List[ProgressMsg]:
        messages = self.jobs.poll()
        for msg in messages:
            self.handle(msg)
        return messages

    def tick(self) -> Optional[ParticleFrame]:
        self.poll()
        if self.simulator is None:
            return None
        return self.simulator.update(self.state, self.simulator.sidelen)

    def _finish(self):
        self._job = None
        self._rollback = None
        self.preview = None

    def _snapshot(self) -> _Snapshot:
        sim = self.simulator
        assignment = sim.assignment.copy() if sim is not None and sim.assignment is not None else None
        return sim, self.state, assignment

    def _discard_partial(self):
        if self._rollback is None:
            return
        sim, state, assignment = self._rollback
        self.simulator, self.state = sim, state
        if sim is not None and assignment is not None:
            sim.set_assignments(assignment, sim.sidelen)
        self._rollback = None

    def _install(self, job: MorphJob, assignment: np.ndarray):
        sim = self.simulator
        if sim is not None and sim.source is job.source and sim.target is job.target:
            sim.set_assignments(assignment, sim.sidelen)
        else:
            self.simulator = MotionSimulator(job.source, job.target, assignment, self.params)
            self.state = self.simulator.new_state(self.seed)

"""
runner.py

Background solve jobs.

A MorphJob owns one (source, target, settings) triple, a fresh cancellation
token, a fresh ProgressChannel and a daemon worker thread. JobManager keeps
at most one of them active: starting a new job cancels and forgets the old
one, so a superseded job's messages are never read.
"""

from __future__ import annotations
import logging
import threading
import uuid
from typing import List, Optional

from .channel import CancellationToken, Cancelled, Done, Error, ProgressChannel, ProgressMsg, is_terminal
from ..core.grid import ParticleGrid
from ..core.assignment import check_grids
from ..core.rearrange import solve
from ..core.settings import GenerationSettings
from ..errors import SolveCancelled

logger = logging.getLogger(__name__)


class MorphJob:
    def __init__(self, source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings):
        self.id = uuid.uuid4()
        self.source = source
        self.target = target
        self.settings = settings
        self.token = CancellationToken()
        self.channel = ProgressChannel(self.token)
        self._thread = threading.Thread(target=self.run, name=f"morph-job-{self.id.hex[:8]}", daemon=True)

    def start(self) -> "MorphJob":
        self._thread.start()
        return self

    def cancel(self):
        self.channel.cancel()

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def run(self):
        """Run the solve on the calling thread. Always ends with exactly one terminal message."""
        try:
            assignment, stats = solve(self.source, self.target, self.settings, cancel=self.token, progress=self.channel)
        except SolveCancelled:
            logger.info("job %s cancelled", self.id)
            self.channel.send(Cancelled())
            return
        except Exception as exc:
            logger.exception("job %s failed", self.id)
            self.channel.send(Error(str(exc) or type(exc).__name__))
            return

        # the channel turns this into Cancelled if cancel() got in first
        self.channel.send(Done(assignment, stats))


class JobManager:
    def __init__(self):
        self._active: Optional[MorphJob] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> Optional[MorphJob]:
        return self._active

    def start(self, source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings) -> MorphJob:
        """
        Validate inputs (raising SettingsError / GridMismatchError right here)
        and replace any running job with a new one.
        """
        settings.validate()
        check_grids(source, target, settings)

        job = MorphJob(source, target, settings)
        with self._lock:
            previous, self._active = self._active, job
        if previous is not None:
            previous.cancel()
            logger.info("job %s superseded by %s", previous.id, job.id)
        return job.start()

    def cancel(self):
        with self._lock:
            job = self._active
        if job is not None:
            job.cancel()

    def poll(self) -> List[ProgressMsg]:
        """Drain the active job's channel; a terminal message releases the job."""
        with self._lock:
            job = self._active
        if job is None:
            return []
        messages = job.channel.drain()
        if messages and is_terminal(messages[-1]):
            with self._lock:
                if self._active is job:
                    self._active = None
        return messages

"""
channel.py

One-way message stream from a solver thread to whoever owns the job.

Messages form a closed set. State messages (Progress, PreviewUpdate,
AssignmentUpdate) only matter in their latest form, so a newer one replaces a
still-buffered one of the same kind. Terminal messages (Done, Cancelled,
Error) are never dropped and close the channel: nothing is accepted after
them.
"""

from __future__ import annotations
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import numpy as np

from ..errors import SolveCancelled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Progress:
    fraction: float


@dataclass(frozen=True, eq=False)
class PreviewUpdate:
    image: np.ndarray

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True, eq=False)
class AssignmentUpdate:
    assignment: np.ndarray


@dataclass(frozen=True, eq=False)
class Done:
    assignment: np.ndarray
    stats: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class Error:
    message: str


ProgressMsg = Union[Progress, PreviewUpdate, AssignmentUpdate, Done, Cancelled, Error]

STATE_MESSAGES = (Progress, PreviewUpdate, AssignmentUpdate)
TERMINAL_MESSAGES = (Done, Cancelled, Error)


def is_terminal(msg: ProgressMsg) -> bool:
    return isinstance(msg, TERMINAL_MESSAGES)


class CancellationToken:
    """Shared cancel flag handed explicitly to every solver call."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise SolveCancelled("job cancelled")


class ProgressChannel:
    """
    Thread-safe single-consumer FIFO. When bound to the job's token, `cancel()`
    and the `Done` check share the channel lock: a `Done` sent after
    `cancel()` returned is delivered as `Cancelled`.
    """

    def __init__(self, token: Optional[CancellationToken] = None):
        self._token = token
        self._lock = threading.Lock()
        self._pending: deque = deque()
        self._closed = False
        self._finished = False
        self._last_fraction = 0.0

    def cancel(self):
        if self._token is None:
            raise RuntimeError("channel has no cancellation token")
        with self._lock:
            self._token.cancel()

    @property
    def closed(self) -> bool:
        """A terminal message has been sent; no more sends are accepted."""
        return self._closed

    @property
    def finished(self) -> bool:
        """The terminal message has also been drained by the consumer."""
        return self._finished

    def send(self, msg: ProgressMsg) -> bool:
        with self._lock:
            if self._closed:
                logger.debug("dropping %s sent after terminal message", type(msg).__name__)
                return False
            if isinstance(msg, Done) and self._token is not None and self._token.cancelled:
                logger.debug("discarding result sent after cancellation")
                msg = Cancelled()
            if isinstance(msg, Progress):
                # clamp and keep the stream non-decreasing
                fraction = min(1.0, max(self._last_fraction, float(msg.fraction)))
                self._last_fraction = fraction
                msg = Progress(fraction)
            if isinstance(msg, STATE_MESSAGES):
                for idx, old in enumerate(self._pending):
                    if type(old) is type(msg):
                        del self._pending[idx]
                        break
            self._pending.append(msg)
            if is_terminal(msg):
                self._closed = True
            return True

    def drain(self) -> List[ProgressMsg]:
        """Non-blocking: every buffered message in emission order, up to and including a terminal one."""
        out: List[ProgressMsg] = []
        with self._lock:
            while self._pending:
                msg = self._pending.popleft()
                out.append(msg)
                if is_terminal(msg):
                    self._finished = True
                    self._pending.clear()
                    break
        return out

    # sink helpers used by the solvers

    def report_progress(self, fraction: float):
        self.send(Progress(fraction))

    def report_preview(self, image: np.ndarray):
        self.send(PreviewUpdate(np.array(image, dtype=np.uint8, copy=True)))

    def report_assignment(self, assignment: np.ndarray):
        self.send(AssignmentUpdate(np.array(assignment, dtype=np.int64, copy=True)))

"""
simulator.py

MotionSimulator: moves every particle from its source position/color toward
its assigned target each render tick.

The simulator holds the grids and the installed assignment; the per-particle
seeds and playback state live in a SimulationState owned by the render loop
and passed into every call.
"""

from __future__ import annotations
import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .state import MotionParams, MotionStyle, SimulationState
from .styles import STYLE_FUNCTIONS, lerp
from ..core.assignment import is_permutation
from ..core.grid import ParticleGrid
from ..errors import AssignmentError, GridMismatchError, SimulationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ParticleFrame:
    positions: np.ndarray  # float64 (N, 2)
    colors: np.ndarray  # uint8 (N, 3)

    def __len__(self) -> int:
        return self.positions.shape[0]

    def packed(self) -> np.ndarray:
        """(N, 5) float32 buffer: x, y, r, g, b with colors in [0, 1]."""
        out = np.empty((len(self), 5), dtype=np.float32)
        out[:, :2] = self.positions
        out[:, 2:] = self.colors / 255.0
        return out


class MotionSimulator:
    def __init__(
        self,
        source: ParticleGrid,
        target: ParticleGrid,
        assignment: Optional[np.ndarray] = None,
        params: Optional[MotionParams] = None,
    ):
        if len(source) != len(target):
            raise GridMismatchError(f"source has {len(source)} particles but target has {len(target)}")
        self.source = source
        self.target = target
        self.params = dataclasses.replace(params or MotionParams()).validate()
        self._src_col = source.colors.astype(np.float64)
        self._assignment: Optional[np.ndarray] = None
        self._tgt_pos: Optional[np.ndarray] = None
        self._tgt_col: Optional[np.ndarray] = None
        if assignment is not None:
            self.set_assignments(assignment, source.sidelen)

    @property
    def n(self) -> int:
        return len(self.source)

    @property
    def sidelen(self) -> int:
        return self.source.sidelen

    @property
    def assignment(self) -> Optional[np.ndarray]:
        return self._assignment

    @property
    def style(self) -> MotionStyle:
        return self.params.style

    def new_state(self, seed: Optional[int] = None) -> SimulationState:
        return SimulationState.create(self.n, seed=seed)

    def set_style(self, style: MotionStyle, state: Optional[SimulationState] = None):
        self.params.style = style
        if state is not None:
            self._check_state(state)
            self._seed(state)

    def set_assignments(self, assignment, grid_width: int):
        """
        Install a new assignment. Validation happens before anything is
        touched, so a rejected call leaves the simulator as it was. Phases are
        not reset: in-flight particles head for their new targets next tick.
        """
        arr = np.asarray(assignment)
        if grid_width * grid_width != self.n:
            raise AssignmentError(f"grid width {grid_width} does not match a simulator of {self.n} particles")
        if arr.ndim != 1 or arr.shape[0] != self.n:
            raise AssignmentError(f"assignment has length {arr.shape[0] if arr.ndim else 0}, expected {self.n}")
        if not is_permutation(arr, self.n):
            raise AssignmentError("assignment is not a permutation")

        arr = arr.astype(np.int64)
        tgt_pos = self.target.positions[arr]
        tgt_col = self.target.colors[arr].astype(np.float64)
        self._assignment, self._tgt_pos, self._tgt_col = arr, tgt_pos, tgt_col
        logger.debug("installed assignment for %d particles", self.n)

    def prepare_play(self, state: SimulationState, reverse: bool = False):
        """Set the direction, re-seed style scratch values and start playing."""
        self._check_state(state)
        state.direction = -1 if reverse else 1
        self._seed(state)
        if not reverse and np.all(state.phase >= 1.0):
            state.phase[:] = 0.0
        elif reverse and np.all(state.phase <= 0.0):
            state.phase[:] = 1.0
        state.playing = True

    def pause(self, state: SimulationState):
        state.playing = False

    def seek(self, state: SimulationState, position: float):
        self._check_state(state)
        state.phase[:] = min(1.0, max(0.0, float(position)))

    def update(self, state: SimulationState, grid_width: int) -> ParticleFrame:
        """Advance one tick (if playing) and return the frame to draw."""
        self._require_assignment()
        if grid_width * grid_width != self.n:
            raise SimulationError(f"grid width {grid_width} does not match a simulator of {self.n} particles")
        self._check_state(state)
        if state.playing:
            self._advance(state)
        return self.frame(state)

    def frame(self, state: SimulationState) -> ParticleFrame:
        """The frame at the current phases, without advancing."""
        self._require_assignment()
        self._check_state(state)
        t = self._progress(state)
        positions, color_t = STYLE_FUNCTIONS[self.params.style](self.source.positions, self._tgt_pos, t, state, self.params)
        colors = np.clip(np.rint(lerp(self._src_col, self._tgt_col, color_t)), 0, 255).astype(np.uint8)
        return ParticleFrame(positions, colors)

    def _advance(self, state: SimulationState):
        p = self.params
        phase = state.phase
        forward = state.direction > 0
        finished = np.all(phase >= 1.0) if forward else np.all(phase <= 0.0)

        if finished and p.loop_playback:
            # wrap: show the starting frame this tick
            phase[:] = 0.0 if forward else 1.0
            return

        phase += state.direction * state.speed.multiplier * p.tick_rate
        np.clip(phase, 0.0, 1.0, out=phase)
        if not p.loop_playback and (np.all(phase >= 1.0) if forward else np.all(phase <= 0.0)):
            state.playing = False

    def _progress(self, state: SimulationState) -> np.ndarray:
        """Per-particle t after the dissolve stagger; exact at both ends."""
        dissolve = self.params.dissolve
        if dissolve <= 0.0:
            return state.phase.copy()
        return np.clip((state.phase - state.delay) / (1.0 - dissolve), 0.0, 1.0)

    def _seed(self, state: SimulationState):
        p = self.params
        rng = state.rng
        n = len(state)
        state.scratch.fill(0.0)
        if p.dissolve > 0.0:
            state.delay[:] = rng.uniform(0.0, p.dissolve, n)
        else:
            state.delay.fill(0.0)

        if p.style is MotionStyle.FLOAT:
            state.amplitude[:] = p.float_amplitude * rng.uniform(0.5, 1.5, n)
            state.frequency[:] = rng.uniform(0.5, 2.0, n)
            state.angle[:] = rng.uniform(0.0, 2.0 * np.pi, n)
        elif p.style is MotionStyle.SWIRL:
            state.spin[:] = rng.uniform(0.75, 1.25, n)
        elif p.style is MotionStyle.DUST:
            state.jitter[:] = rng.standard_normal((n, 2))

    def _check_state(self, state: SimulationState):
        if len(state) != self.n:
            raise SimulationError(f"state has {len(state)} particles, simulator has {self.n}")

    def _require_assignment(self):
        if self._assignment is None:
            raise SimulationError("no assignment installed")

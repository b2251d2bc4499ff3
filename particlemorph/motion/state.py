from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from ..errors import SettingsError

# dissolve staggers start times; keep some of the timeline for the slowest particle
MAX_DISSOLVE = 0.9


class MotionStyle(Enum):
    LINEAR = "linear"
    FLOAT = "float"
    SWIRL = "swirl"
    DUST = "dust"
    MAGNET_SNAP = "magnet_snap"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class PlaybackSpeed(Enum):
    QUARTER = 0.25
    HALF = 0.5
    NORMAL = 1.0
    DOUBLE = 2.0

    @property
    def multiplier(self) -> float:
        return float(self.value)

    @property
    def label(self) -> str:
        return f"{self.value:g}x"


@dataclass
class MotionParams:
    style: MotionStyle = MotionStyle.LINEAR
    swirl_amount: float = 0.0
    turbulence: float = 0.0
    snap_strength: float = 0.0
    dissolve: float = 0.0
    float_amplitude: float = 0.03
    duration: float = 3.0  # seconds for a full 0 -> 1 sweep at 1x
    ticks_per_second: float = 180.0  # 3 ticks per frame at 60 fps
    loop_playback: bool = True

    @property
    def tick_rate(self) -> float:
        return 1.0 / (self.duration * self.ticks_per_second)

    def validate(self) -> "MotionParams":
        if not isinstance(self.style, MotionStyle):
            raise SettingsError(f"unknown motion style {self.style!r}")
        for name in ("swirl_amount", "turbulence", "snap_strength"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise SettingsError(f"{name} must be in [0, 1], got {value!r}")
        if not 0.0 <= self.dissolve <= MAX_DISSOLVE:
            raise SettingsError(f"dissolve must be in [0, {MAX_DISSOLVE}], got {self.dissolve!r}")
        if self.float_amplitude < 0:
            raise SettingsError("float_amplitude must be >= 0")
        if self.duration <= 0 or self.ticks_per_second <= 0:
            raise SettingsError("duration and ticks_per_second must be > 0")
        return self


@dataclass(eq=False)
class SimulationState:
    """
    Per-particle seeds plus playback state. Owned by the render loop and
    only mutated through MotionSimulator.
    """

    phase: np.ndarray
    delay: np.ndarray
    amplitude: np.ndarray
    frequency: np.ndarray
    angle: np.ndarray
    spin: np.ndarray
    jitter: np.ndarray
    scratch: np.ndarray
    direction: int = 1
    speed: PlaybackSpeed = PlaybackSpeed.NORMAL
    playing: bool = False
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    @classmethod
    def create(cls, n: int, seed: Optional[int] = None) -> "SimulationState":
        return cls(
            phase=np.zeros(n, dtype=np.float64),
            delay=np.zeros(n, dtype=np.float64),
            amplitude=np.zeros(n, dtype=np.float64),
            frequency=np.ones(n, dtype=np.float64),
            angle=np.zeros(n, dtype=np.float64),
            spin=np.ones(n, dtype=np.float64),
            jitter=np.zeros((n, 2), dtype=np.float64),
            scratch=np.zeros(n, dtype=np.float64),
            rng=np.random.default_rng(seed),
        )

    def __len__(self) -> int:
        return self.phase.shape[0]

    @property
    def reverse(self) -> bool:
        return self.direction < 0

    @property
    def position(self) -> float:
        """Timeline position: mean phase."""
        return float(self.phase.mean()) if len(self) else 0.0

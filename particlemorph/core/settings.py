"""
settings.py

GenerationSettings: everything a single solve needs besides the two grids.
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .distance import COLOR_METRICS
from ..errors import SettingsError

SIDELEN_RANGE = (64, 256)
PROXIMITY_RANGE = (0, 50)
# proximity importance is calibrated on a 128 x 128 grid
REFERENCE_SIDELEN = 128
# slider value that weighs one unit of normalized distance like one unit of color distance
PROXIMITY_UNIT = 10.0


class Algorithm(Enum):
    OPTIMAL = "optimal"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class GenerationSettings:
    sidelen: int = 128
    proximity_importance: int = 13
    algorithm: Algorithm = Algorithm.OPTIMAL
    color_metric: str = "rgb"
    crop: Optional[Tuple[float, float, float, float]] = None
    seed: Optional[int] = None

    # heuristic budget
    generations: int = 120
    swaps_per_pixel: float = 1.0
    initial_max_dist: Optional[int] = None
    shrink_every: int = 10
    shrink_factor: float = 0.75
    start_temperature: float = 0.01
    reoptimize_every: int = 10
    reoptimize_block: int = 6

    # optimal budget
    epsilon_factor: float = 5.0
    bids_per_check: int = 4096

    # how often (in generations / bid batches) previews are emitted; 0 disables
    preview_every: int = 10

    def spatial_weight(self) -> float:
        """
        Weight applied to normalized spatial distance in the pair cost.

        The slider is rescaled by sidelen / 128 the same way on every
        resolution; distances are normalized by sidelen, so the two factors
        cancel and a given slider value pulls equally hard at any sidelen.
        """
        adjusted = self.proximity_importance / (self.sidelen / REFERENCE_SIDELEN)
        return adjusted * self.sidelen / (REFERENCE_SIDELEN * PROXIMITY_UNIT)

    def max_dist(self) -> int:
        if self.initial_max_dist is not None:
            return int(self.initial_max_dist)
        return max(1, self.sidelen // 8)

    def replace(self, **changes) -> "GenerationSettings":
        return dataclasses.replace(self, **changes)

    def validate(self) -> "GenerationSettings":
        lo, hi = SIDELEN_RANGE
        if not isinstance(self.sidelen, int) or not lo <= self.sidelen <= hi:
            raise SettingsError(f"sidelen must be an integer in [{lo}, {hi}], got {self.sidelen!r}")
        lo, hi = PROXIMITY_RANGE
        if not lo <= self.proximity_importance <= hi:
            raise SettingsError(f"proximity_importance must be in [{lo}, {hi}], got {self.proximity_importance!r}")
        if not isinstance(self.algorithm, Algorithm):
            raise SettingsError(f"unknown algorithm {self.algorithm!r}")
        if self.color_metric not in COLOR_METRICS:
            raise SettingsError(f"color_metric must be one of {COLOR_METRICS}, got {self.color_metric!r}")
        if self.crop is not None:
            left, top, right, bottom = self.crop
            if not (0.0 <= left < right <= 1.0 and 0.0 <= top < bottom <= 1.0):
                raise SettingsError(f"crop must be a normalized (left, top, right, bottom) box, got {self.crop!r}")
        if self.generations < 1:
            raise SettingsError("generations must be >= 1")
        if self.swaps_per_pixel <= 0:
            raise SettingsError("swaps_per_pixel must be > 0")
        if self.initial_max_dist is not None and self.initial_max_dist < 0:
            raise SettingsError("initial_max_dist must be >= 0")
        if self.shrink_every < 1:
            raise SettingsError("shrink_every must be >= 1")
        if self.reoptimize_every < 0 or self.reoptimize_block < 0:
            raise SettingsError("reoptimize_every and reoptimize_block must be >= 0")
        if not 0.0 < self.shrink_factor <= 1.0:
            raise SettingsError("shrink_factor must be in (0, 1]")
        if self.start_temperature < 0:
            raise SettingsError("start_temperature must be >= 0")
        if self.epsilon_factor <= 1.0:
            raise SettingsError("epsilon_factor must be > 1")
        if self.bids_per_check < 1:
            raise SettingsError("bids_per_check must be >= 1")
        if self.preview_every < 0:
            raise SettingsError("preview_every must be >= 0")
        return self

"""
assignment.py

Permutation helpers and the prepared matching problem shared by both solvers.

An assignment is an int64 array where assignment[source] = target. The swap
optimizer works on the inverse ("owner") form, owner[target] = source, the
way the rearranged image is indexed.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from . import distance
from .grid import ParticleGrid
from .settings import GenerationSettings
from ..errors import GridMismatchError


def identity_assignment(n: int) -> np.ndarray:
    return np.arange(n, dtype=np.int64)


def is_permutation(assignment, n: int) -> bool:
    arr = np.asarray(assignment)
    if arr.ndim != 1 or arr.shape[0] != n:
        return False
    if n == 0:
        return True
    if not np.issubdtype(arr.dtype, np.integer):
        return False
    if arr.min() < 0 or arr.max() >= n:
        return False
    return bool(np.all(np.bincount(arr, minlength=n) == 1))


def invert_permutation(perm: np.ndarray) -> np.ndarray:
    perm = np.asarray(perm, dtype=np.int64)
    inv = np.empty_like(perm)
    inv[perm] = np.arange(perm.shape[0], dtype=np.int64)
    return inv


def complete_permutation(partial: np.ndarray) -> np.ndarray:
    """
    Fill the -1 slots of a partial matching with the targets nobody holds,
    in ascending order. Used to turn a work-in-progress matching into
    something a simulator can install.
    """
    partial = np.asarray(partial, dtype=np.int64)
    n = partial.shape[0]
    out = partial.copy()
    holes = np.flatnonzero(out < 0)
    if holes.size:
        taken = np.zeros(n, dtype=bool)
        taken[out[out >= 0]] = True
        out[holes] = np.flatnonzero(~taken)[: holes.size]
    return out


def check_grids(source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings):
    if len(source) != len(target):
        raise GridMismatchError(f"source has {len(source)} particles but target has {len(target)}")
    n = settings.sidelen * settings.sidelen
    if len(source) != n:
        raise GridMismatchError(f"grids have {len(source)} particles, expected sidelen^2 = {n}")


@dataclass(frozen=True, eq=False)
class MatchingProblem:
    """Everything the solvers read, precomputed once per job."""

    sidelen: int
    src_pos: np.ndarray
    src_feat: np.ndarray
    tgt_pos: np.ndarray
    tgt_feat: np.ndarray
    src_colors: np.ndarray
    weight: float

    @property
    def n(self) -> int:
        return self.src_pos.shape[0]

    @classmethod
    def build(cls, source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings) -> "MatchingProblem":
        check_grids(source, target, settings)
        return cls(
            sidelen=settings.sidelen,
            src_pos=np.ascontiguousarray(source.positions, dtype=np.float64),
            src_feat=distance.color_features(source.colors, settings.color_metric),
            tgt_pos=np.ascontiguousarray(target.positions, dtype=np.float64),
            tgt_feat=distance.color_features(target.colors, settings.color_metric),
            src_colors=source.colors,
            weight=float(settings.spatial_weight()),
        )

    def cost(self, assignment) -> float:
        return distance.total_cost(assignment, self.src_pos, self.src_feat, self.tgt_pos, self.tgt_feat, self.weight)

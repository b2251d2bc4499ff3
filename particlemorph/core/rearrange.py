"""
rearrange.py

Core correspondence API for particlemorph.

Provides:
- `solve`, the solver contract: two grids + settings in, a permutation
  assignment[source] = target out, with cancellation and progress reporting
- `rearrange_optimal` (auction, exact for the scaled costs) and
  `rearrange_heuristic` (annealed pixel swaps)
- `rearrange`, a convenience entrypoint taking raw image arrays
"""

from __future__ import annotations
import logging
from typing import Dict, Optional, Tuple

import numpy as np

from . import anneal, auction
from .assignment import (  # noqa: F401  re-exported helpers
    MatchingProblem,
    complete_permutation,
    identity_assignment,
    invert_permutation,
    is_permutation,
)
from .grid import ParticleGrid
from .settings import Algorithm, GenerationSettings
from ..errors import SolveError

logger = logging.getLogger(__name__)


def rearrange_optimal(problem: MatchingProblem, settings: GenerationSettings, cancel=None, progress=None) -> Tuple[np.ndarray, Dict]:
    return auction.run_auction(
        problem,
        epsilon_factor=settings.epsilon_factor,
        bids_per_check=settings.bids_per_check,
        cancel=cancel,
        progress=progress,
        preview_every=settings.preview_every,
    )


def rearrange_heuristic(problem: MatchingProblem, settings: GenerationSettings, cancel=None, progress=None) -> Tuple[np.ndarray, Dict]:
    return anneal.run_swap_optimizer(
        problem,
        init_mode="identity",
        seed=settings.seed,
        generations=settings.generations,
        swaps_per_generation_per_pixel=settings.swaps_per_pixel,
        initial_max_dist=settings.max_dist(),
        shrink_every_gen=settings.shrink_every,
        shrink_factor=settings.shrink_factor,
        start_temperature=settings.start_temperature,
        reoptimize_every=settings.reoptimize_every,
        reoptimize_block=settings.reoptimize_block,
        cancel=cancel,
        progress=progress,
        preview_every=settings.preview_every,
    )


_STRATEGIES = {
    Algorithm.OPTIMAL: rearrange_optimal,
    Algorithm.HEURISTIC: rearrange_heuristic,
}


def solve(
    source: ParticleGrid,
    target: ParticleGrid,
    settings: GenerationSettings,
    cancel=None,
    progress=None,
) -> Tuple[np.ndarray, Dict]:
    """
    Compute the source -> target permutation for one job.

    Raises GridMismatchError on bad input, SolveCancelled when `cancel` is
    observed and SolveError if the strategy fails or produces something that
    is not a permutation.
    """
    problem = MatchingProblem.build(source, target, settings)
    try:
        strategy = _STRATEGIES[settings.algorithm]
    except KeyError:
        raise SolveError(f"no strategy for algorithm {settings.algorithm!r}") from None

    assignment, stats = strategy(problem, settings, cancel=cancel, progress=progress)
    if not is_permutation(assignment, problem.n):
        raise SolveError("solver returned an assignment that is not a permutation")
    stats["identity_cost"] = problem.cost(identity_assignment(problem.n))
    return np.asarray(assignment, dtype=np.int64), stats


def assignment_cost(source: ParticleGrid, target: ParticleGrid, settings: GenerationSettings, assignment) -> float:
    return MatchingProblem.build(source, target, settings).cost(assignment)


def rearrange(
    source_img: np.ndarray,
    target_img: np.ndarray,
    sidelen: int,
    mode: str = "heuristic",
    proximity_importance: int = 13,
    metric: str = "rgb",
    **kwargs,
) -> np.ndarray:
    """
    Unified entrypoint for raw arrays.

    Parameters
    ----------
    source_img, target_img : np.ndarray
        HxWx3 arrays or flattened (N,3) arrays already sized sidelen x sidelen.
    mode : 'heuristic' or 'optimal'
        Which solver to run.
    proximity_importance : int
        Spatial pull, 0 for color-only matching.
    metric : 'rgb' or 'lab'
    **kwargs
        Any other GenerationSettings field.
    Returns
    -------
    assignment : np.ndarray (N,) int64, assignment[source] = target
    """
    try:
        algorithm = Algorithm(mode)
    except ValueError:
        raise ValueError(f"Unknown mode '{mode}'. Expected 'optimal' or 'heuristic'.") from None

    settings = GenerationSettings(
        sidelen=sidelen,
        proximity_importance=proximity_importance,
        algorithm=algorithm,
        color_metric=metric,
        **kwargs,
    )
    source = ParticleGrid.from_image(source_img, sidelen)
    target = ParticleGrid.from_image(target_img, sidelen)
    assignment, _ = solve(source, target, settings)
    return assignment

from __future__ import annotations
import logging
import time
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from tqdm import trange

from . import greedy
from .assignment import MatchingProblem, invert_permutation
from ..errors import SolveError
from ..visualization.preview import render_assignment_preview

logger = logging.getLogger(__name__)

# temperature at the last generation relative to the first
_FINAL_TEMPERATURE_RATIO = 1e-3


def _pick_b_within_radius(a: np.ndarray, sidelen: int, max_dist: int, rng: np.random.Generator) -> np.ndarray:
    if max_dist <= 0:
        return rng.integers(0, sidelen * sidelen, size=a.shape[0])
    ax = a % sidelen
    ay = a // sidelen
    dx = rng.integers(-max_dist, max_dist + 1, size=a.shape[0])
    dy = rng.integers(-max_dist, max_dist + 1, size=a.shape[0])
    bx = np.clip(ax + dx, 0, sidelen - 1)
    by = np.clip(ay + dy, 0, sidelen - 1)
    return by * sidelen + bx


def _reoptimize_window(
    owners: np.ndarray,
    costs: np.ndarray,
    problem: MatchingProblem,
    block: int,
    rng: np.random.Generator,
) -> float:
    """
    Solve a random block x block window of targets exactly among the sources
    currently placed in it. Never increases the cost; returns the delta.
    """
    sidelen = problem.sidelen
    block = min(block, sidelen)
    if block < 2:
        return 0.0
    x0 = int(rng.integers(0, sidelen - block + 1))
    y0 = int(rng.integers(0, sidelen - block + 1))
    ys, xs = np.mgrid[y0:y0 + block, x0:x0 + block]
    targets = (ys * sidelen + xs).ravel()
    sources = owners[targets]

    dpos = problem.src_pos[sources][:, None, :] - problem.tgt_pos[targets][None, :, :]
    dcol = problem.src_feat[sources][:, None, :] - problem.tgt_feat[targets][None, :, :]
    cost = problem.weight * np.sqrt(np.sum(dpos * dpos, axis=2)) + np.sqrt(np.sum(dcol * dcol, axis=2))

    row_ind, col_ind = linear_sum_assignment(cost)
    new_costs = cost[row_ind, col_ind]
    delta = float(np.sum(new_costs) - np.sum(costs[targets]))
    if delta >= 0.0:
        return 0.0
    owners[targets[col_ind]] = sources[row_ind]
    costs[targets[col_ind]] = new_costs
    return delta


def run_swap_optimizer(
    problem: MatchingProblem,
    *,
    init_owners: Optional[np.ndarray] = None,
    init_mode: str = "identity",
    seed: Optional[int] = None,
    generations: int = 120,
    swaps_per_generation_per_pixel: float = 1.0,
    initial_max_dist: int = 8,
    min_max_dist: int = 1,
    shrink_every_gen: int = 10,
    shrink_factor: float = 0.75,
    start_temperature: float = 0.01,
    reoptimize_every: int = 10,
    reoptimize_block: int = 6,
    cancel=None,
    progress=None,
    preview_every: int = 10,
    verbose: bool = False,
) -> Tuple[np.ndarray, Dict]:
    """
    Simulated-annealing pixel swapper.

    Works on owner[target] = source, proposing swaps between a random target
    and a partner inside a radius that shrinks over time. Returns the best
    candidate seen as assignment[source] = target, plus run stats.
    """
    rng = np.random.default_rng(seed)
    N = problem.n
    sidelen = problem.sidelen

    if init_owners is None:
        owners = greedy.initialize_owners(problem, mode=init_mode, seed=seed)
    else:
        owners = np.asarray(init_owners, dtype=np.int64).copy()

    costs = greedy.owner_costs(owners, problem)
    current = float(np.sum(costs))
    best_owners = owners.copy()
    best_cost = current

    stats = {
        "algorithm": "heuristic",
        "start_time": time.time(),
        "initial_cost": current,
        "accepted_swaps": 0,
        "attempted_swaps": 0,
        "reoptimized_windows": 0,
        "frames_emitted": 0,
    }
    max_dist = int(initial_max_dist)
    cooling = _FINAL_TEMPERATURE_RATIO ** (1.0 / max(1, generations - 1))
    temperature = float(start_temperature)
    swaps_this_gen = max(1, int(np.round(swaps_per_generation_per_pixel * N)))
    logger.info("heuristic solve: N=%d generations=%d swaps/gen=%d", N, generations, swaps_this_gen)

    gen_iter = trange(generations, desc="generations") if verbose else range(generations)

    for gen in gen_iter:
        if cancel is not None:
            cancel.raise_if_cancelled()

        apos = rng.integers(0, N, size=swaps_this_gen)
        bpos = _pick_b_within_radius(apos, sidelen, max_dist, rng)
        uniforms = rng.random(swaps_this_gen)
        accepted_in_gen, delta = greedy.nb_swap_batch(
            owners, costs,
            problem.src_pos, problem.src_feat, problem.tgt_pos, problem.tgt_feat,
            problem.weight, apos, bpos, uniforms, temperature,
        )
        current += delta
        stats["attempted_swaps"] += swaps_this_gen
        stats["accepted_swaps"] += int(accepted_in_gen)

        if reoptimize_every > 0 and (gen + 1) % reoptimize_every == 0:
            current += _reoptimize_window(owners, costs, problem, reoptimize_block, rng)
            stats["reoptimized_windows"] += 1

        if not np.isfinite(current):
            raise SolveError("cost became non-finite during annealing")

        if current < best_cost:
            best_cost = current
            best_owners[:] = owners

        if (gen + 1) % shrink_every_gen == 0 and gen > 0:
            new_max = max(min_max_dist, int(round(max_dist * shrink_factor)))
            if new_max < max_dist:
                max_dist = new_max
        temperature *= cooling

        if progress is not None:
            if preview_every > 0 and ((gen % preview_every) == 0 or gen == generations - 1):
                snapshot = invert_permutation(best_owners)
                progress.report_assignment(snapshot)
                progress.report_preview(render_assignment_preview(problem.src_colors, snapshot, sidelen))
                stats["frames_emitted"] += 1
            progress.report_progress((gen + 1) / generations)

        logger.debug("gen %d: accepted=%d max_dist=%d T=%.3g cost=%.4f", gen, accepted_in_gen, max_dist, temperature, current)
        if verbose:
            gen_iter.set_postfix({"accepted": int(accepted_in_gen), "max_dist": max_dist})

    stats["final_cost"] = greedy.calc_total_heuristic(best_owners, problem)
    stats["end_time"] = time.time()
    stats["duration_s"] = stats["end_time"] - stats["start_time"]
    logger.info("heuristic solve done in %.2fs, cost %.4f -> %.4f", stats["duration_s"], stats["initial_cost"], stats["final_cost"])
    return invert_permutation(best_owners), stats

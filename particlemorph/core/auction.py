"""
auction.py

Optimal correspondence via the forward auction algorithm with epsilon scaling.

Sources bid for targets. A bid raises the target's price by the bidder's
margin over its second-best option plus epsilon; the previous holder goes
back into the unassigned pool. Each scaling phase restarts the matching but
keeps the prices, dividing epsilon until it drops below 1 / N, at which point
the matching is optimal for the integer-scaled costs (and within
N / COST_SCALE of the real-valued optimum).

Pair costs are recomputed inside the bid loop, so memory stays O(N) and the
N x N cost matrix is never built. Work is done in batches of bids so the
caller regains control to check cancellation and report progress.
"""

from __future__ import annotations
import logging
import math
import time
from typing import Dict, Tuple

import numpy as np
from numba import njit

from .assignment import MatchingProblem, complete_permutation
from .distance import pair_cost
from ..errors import SolveError
from ..visualization.preview import render_assignment_preview

logger = logging.getLogger(__name__)

# integer cost units per unit of normalized cost
COST_SCALE = 10000.0


@njit(cache=True)
def _int_cost(src_pos, src_feat, tgt_pos, tgt_feat, i, j, weight, scale):
    return math.floor(pair_cost(src_pos, src_feat, tgt_pos, tgt_feat, i, j, weight) * scale + 0.5)


@njit(cache=True)
def _bid_batch(src_pos, src_feat, tgt_pos, tgt_feat, weight, scale, prices, owner, person_obj, stack, stack_top, eps, max_bids):
    """
    Run up to max_bids bids from the unassigned stack. Returns the new stack size.
    """
    n = prices.shape[0]
    bids = 0
    while stack_top > 0 and bids < max_bids:
        stack_top -= 1
        i = stack[stack_top]

        best_j = -1
        best_val = -np.inf
        second_val = -np.inf
        for j in range(n):
            v = -_int_cost(src_pos, src_feat, tgt_pos, tgt_feat, i, j, weight, scale) - prices[j]
            if v > best_val:
                second_val = best_val
                best_val = v
                best_j = j
            elif v > second_val:
                second_val = v
        if n == 1:
            second_val = best_val

        prices[best_j] += best_val - second_val + eps
        prev = owner[best_j]
        owner[best_j] = i
        person_obj[i] = best_j
        if prev >= 0:
            person_obj[prev] = -1
            stack[stack_top] = prev
            stack_top += 1
        bids += 1
    return stack_top


def _cost_bound(problem: MatchingProblem) -> float:
    """Upper bound on any pair cost, used to size the first epsilon."""
    pos = np.vstack([problem.src_pos, problem.tgt_pos])
    feat = np.vstack([problem.src_feat, problem.tgt_feat])
    spatial = float(np.linalg.norm(pos.max(axis=0) - pos.min(axis=0)))
    color = float(np.linalg.norm(feat.max(axis=0) - feat.min(axis=0)))
    return problem.weight * spatial + color


def epsilon_schedule(max_cost: float, n: int, factor: float) -> list:
    final = 1.0 / (n + 1)
    eps = max(max_cost / factor, final)
    schedule = []
    while eps > final:
        schedule.append(eps)
        eps /= factor
    schedule.append(final)
    return schedule


def run_auction(
    problem: MatchingProblem,
    *,
    epsilon_factor: float = 5.0,
    bids_per_check: int = 4096,
    cancel=None,
    progress=None,
    preview_every: int = 10,
) -> Tuple[np.ndarray, Dict]:
    N = problem.n
    scale = COST_SCALE
    max_cost = math.ceil(_cost_bound(problem) * scale) + 1.0
    schedule = epsilon_schedule(max_cost, N, epsilon_factor)

    prices = np.zeros(N, dtype=np.float64)
    owner = np.full(N, -1, dtype=np.int64)
    person_obj = np.full(N, -1, dtype=np.int64)
    stack = np.empty(N, dtype=np.int64)

    stats = {
        "algorithm": "optimal",
        "start_time": time.time(),
        "phases": len(schedule),
        "bid_batches": 0,
        "frames_emitted": 0,
    }
    logger.info("optimal solve: N=%d phases=%d max_cost=%d", N, len(schedule), max_cost)

    checks = 0
    for phase, eps in enumerate(schedule):
        owner.fill(-1)
        person_obj.fill(-1)
        # reversed so the first pop is source 0
        stack[:] = np.arange(N - 1, -1, -1, dtype=np.int64)
        stack_top = N

        while stack_top > 0:
            if cancel is not None:
                cancel.raise_if_cancelled()

            stack_top = _bid_batch(
                problem.src_pos, problem.src_feat, problem.tgt_pos, problem.tgt_feat,
                problem.weight, scale, prices, owner, person_obj, stack, stack_top,
                eps, bids_per_check,
            )
            stats["bid_batches"] += 1
            checks += 1

            if not np.isfinite(prices).all():
                raise SolveError("auction prices diverged")

            if progress is not None:
                if preview_every > 0 and checks % preview_every == 0:
                    snapshot = complete_permutation(person_obj)
                    progress.report_assignment(snapshot)
                    progress.report_preview(render_assignment_preview(problem.src_colors, snapshot, problem.sidelen))
                    stats["frames_emitted"] += 1
                assigned = (N - stack_top) / N if N else 1.0
                progress.report_progress((phase + assigned) / len(schedule))

        logger.debug("phase %d/%d eps=%.4g done after %d batches", phase + 1, len(schedule), eps, stats["bid_batches"])

    assignment = person_obj.copy()
    stats["final_cost"] = problem.cost(assignment) if N else 0.0
    stats["end_time"] = time.time()
    stats["duration_s"] = stats["end_time"] - stats["start_time"]
    logger.info("optimal solve done in %.2fs, cost %.4f", stats["duration_s"], stats["final_cost"])
    if progress is not None:
        progress.report_progress(1.0)
    return assignment, stats

from __future__ import annotations
import numpy as np
from math import exp
from typing import Optional

from numba import njit

from . import distance
from .distance import pair_cost
from .assignment import MatchingProblem

INIT_MODES = ("identity", "random", "color_greedy")


def initialize_owners(
    problem: MatchingProblem,
    mode: str = "identity",
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Starting candidate in owner form: owner[target] = source.
    """
    N = problem.n
    rng = np.random.default_rng(seed)

    if mode == "identity":
        return np.arange(N, dtype=np.int64)

    elif mode == "random":
        perm = np.arange(N, dtype=np.int64)
        rng.shuffle(perm)
        return perm

    elif mode == "color_greedy":
        # O(N^2); each target (raster order) takes the cheapest free source
        available = np.ones(N, dtype=bool)
        owners = np.empty(N, dtype=np.int64)
        for t in range(N):
            costs = distance.pair_costs(
                problem.src_pos,
                problem.src_feat,
                np.broadcast_to(problem.tgt_pos[t], (N, 2)),
                np.broadcast_to(problem.tgt_feat[t], (N, 3)),
                problem.weight,
            )
            masked = np.where(available, costs, np.inf)
            best = int(np.argmin(masked))
            owners[t] = best
            available[best] = False
        return owners

    else:
        raise ValueError(f"Unknown init mode: {mode}")


def owner_costs(owners: np.ndarray, problem: MatchingProblem) -> np.ndarray:
    """Per-target cost of the source currently placed there."""
    return distance.pair_costs(
        problem.src_pos[owners],
        problem.src_feat[owners],
        problem.tgt_pos,
        problem.tgt_feat,
        problem.weight,
    )


def calc_total_heuristic(owners: np.ndarray, problem: MatchingProblem) -> float:
    if owners.shape[0] != problem.n:
        raise ValueError("owners length mismatch sidelen.")
    return float(np.sum(owner_costs(owners, problem)))


def local_swap_delta(owners: np.ndarray, problem: MatchingProblem, a: int, b: int) -> float:
    """
    Change in total cost if the sources at targets a and b trade places.
    """
    if a == b:
        return 0.0
    N = problem.n
    if not (0 <= a < N and 0 <= b < N):
        raise IndexError("a or b out of range")

    sa = int(owners[a])
    sb = int(owners[b])
    w = problem.weight
    sp, sf, tp, tf = problem.src_pos, problem.src_feat, problem.tgt_pos, problem.tgt_feat

    old = pair_cost(sp, sf, tp, tf, sa, a, w) + pair_cost(sp, sf, tp, tf, sb, b, w)
    new = pair_cost(sp, sf, tp, tf, sb, a, w) + pair_cost(sp, sf, tp, tf, sa, b, w)
    return float(new - old)


@njit(cache=True)
def nb_swap_batch(owners, costs, src_pos, src_feat, tgt_pos, tgt_feat, weight, apos, bpos, uniforms, temperature):
    """
    Try the proposed swaps in order, updating owners/costs in place.

    A swap is kept if it lowers the cost or, with temperature > 0, passes the
    Metropolis test against uniforms[k]. Returns (accepted, total delta).
    """
    accepted = 0
    total_delta = 0.0
    for k in range(apos.shape[0]):
        a = apos[k]
        b = bpos[k]
        if a == b:
            continue
        sa = owners[a]
        sb = owners[b]
        new_a = pair_cost(src_pos, src_feat, tgt_pos, tgt_feat, sb, a, weight)
        new_b = pair_cost(src_pos, src_feat, tgt_pos, tgt_feat, sa, b, weight)
        delta = new_a + new_b - costs[a] - costs[b]
        if delta < 0.0 or (temperature > 0.0 and uniforms[k] < exp(-delta / temperature)):
            owners[a] = sb
            owners[b] = sa
            costs[a] = new_a
            costs[b] = new_b
            accepted += 1
            total_delta += delta
    return accepted, total_delta

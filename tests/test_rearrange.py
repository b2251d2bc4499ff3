import numpy as np
import pytest
from scipy.optimize import linear_sum_assignment

from particlemorph.core import distance, rearrange
from particlemorph.core.assignment import MatchingProblem, complete_permutation, invert_permutation, is_permutation
from particlemorph.core.grid import ParticleGrid
from particlemorph.core.settings import Algorithm, GenerationSettings
from particlemorph.errors import GridMismatchError


def _gradient_pair(sidelen):
    src = np.zeros((sidelen, sidelen, 3), dtype=np.uint8)
    tgt = np.zeros_like(src)
    for y in range(sidelen):
        for x in range(sidelen):
            v = int((x + y) / (2 * sidelen) * 255)
            src[y, x] = [v, v, v]
            tgt[y, x] = [255 - v, 255 - v, 255 - v]
    return src, tgt


def _random_grids(sidelen, seed):
    rng = np.random.default_rng(seed)
    n = sidelen * sidelen
    src = ParticleGrid.from_image(rng.integers(0, 256, size=(n, 3), dtype=np.uint8))
    tgt = ParticleGrid.from_image(rng.integers(0, 256, size=(n, 3), dtype=np.uint8))
    return src, tgt


def _oracle_cost(source, target, settings):
    problem = MatchingProblem.build(source, target, settings)
    n = problem.n
    i, j = np.meshgrid(np.arange(n), np.arange(n), indexing="ij")
    cost = distance.pair_costs(
        problem.src_pos[i.ravel()], problem.src_feat[i.ravel()],
        problem.tgt_pos[j.ravel()], problem.tgt_feat[j.ravel()],
        problem.weight,
    ).reshape(n, n)
    rows, cols = linear_sum_assignment(cost)
    return float(cost[rows, cols].sum())


def test_rearrange_heuristic_small():
    sidelen = 8
    N = sidelen * sidelen
    src, tgt = _gradient_pair(sidelen)

    assignments = rearrange.rearrange(src, tgt, sidelen=sidelen, mode="heuristic", generations=20, seed=1)
    assert assignments.shape[0] == N
    assert is_permutation(assignments, N)


def test_rearrange_unknown_mode():
    src, tgt = _gradient_pair(4)
    with pytest.raises(ValueError):
        rearrange.rearrange(src, tgt, sidelen=4, mode="genetic")


def test_optimal_two_by_two_rotation():
    # corners in raster order: tl, tr, bl, br; rotate clockwise one step
    colors = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 255]], dtype=np.uint8)
    rotation = np.array([1, 3, 0, 2])
    target_colors = np.empty_like(colors)
    target_colors[rotation] = colors

    source = ParticleGrid.from_image(colors)
    target = ParticleGrid.from_image(target_colors)
    settings = GenerationSettings(sidelen=2, proximity_importance=0, algorithm=Algorithm.OPTIMAL)

    assignment, stats = rearrange.solve(source, target, settings)
    np.testing.assert_array_equal(assignment, rotation)

    spatial = distance.batch_spatial_distance(source.positions, target.positions[assignment])
    side = source.positions[1, 0] - source.positions[0, 0]
    assert abs(spatial.sum() - 4 * side) < 1e-12
    assert stats["final_cost"] < 1e-12


@pytest.mark.parametrize("metric", ["rgb", "lab"])
@pytest.mark.parametrize("seed", [0, 1])
def test_optimal_matches_linear_sum_assignment(metric, seed):
    source, target = _random_grids(4, seed)
    settings = GenerationSettings(sidelen=4, proximity_importance=13, color_metric=metric)

    assignment, stats = rearrange.solve(source, target, settings)
    assert is_permutation(assignment, 16)
    # integer-scaled costs are within half a unit per pair of the real ones
    assert stats["final_cost"] <= _oracle_cost(source, target, settings) + 16 / 1e4


def test_optimal_never_worse_than_identity():
    source, target = _random_grids(6, 3)
    settings = GenerationSettings(sidelen=6, proximity_importance=25)
    assignment, stats = rearrange.solve(source, target, settings)
    assert stats["final_cost"] <= stats["identity_cost"] + 1e-9
    assert abs(rearrange.assignment_cost(source, target, settings, assignment) - stats["final_cost"]) < 1e-9


def test_identical_images_map_to_themselves():
    source, _ = _random_grids(4, 7)
    settings = GenerationSettings(sidelen=4, proximity_importance=5)
    assignment, _ = rearrange.solve(source, source, settings)
    np.testing.assert_array_equal(assignment, np.arange(16))


def test_heuristic_improves_on_identity():
    src, tgt = _gradient_pair(8)
    source = ParticleGrid.from_image(src)
    target = ParticleGrid.from_image(tgt)
    settings = GenerationSettings(sidelen=8, proximity_importance=0, algorithm=Algorithm.HEURISTIC, generations=30, seed=0)

    assignment, stats = rearrange.solve(source, target, settings)
    assert is_permutation(assignment, 64)
    assert stats["final_cost"] < stats["identity_cost"]


def test_solve_rejects_mismatched_grids():
    a, _ = _random_grids(4, 0)
    b, _ = _random_grids(2, 0)
    with pytest.raises(GridMismatchError):
        rearrange.solve(a, b, GenerationSettings(sidelen=4))
    with pytest.raises(GridMismatchError):
        rearrange.solve(a, a, GenerationSettings(sidelen=8))


def test_permutation_helpers():
    perm = np.array([2, 0, 3, 1])
    inv = invert_permutation(perm)
    np.testing.assert_array_equal(perm[inv], np.arange(4))
    assert not is_permutation(np.array([0, 0, 1, 2]), 4)
    assert not is_permutation(np.array([0, 1, 2]), 4)

    filled = complete_permutation(np.array([3, -1, 0, -1]))
    np.testing.assert_array_equal(filled, [3, 1, 0, 2])

import numpy as np
from math import sqrt
from numba import njit
from skimage.color import rgb2lab

COLOR_METRICS = ("rgb", "lab")

# rgb features live in [0,1]^3 / sqrt(3) so black->white is exactly 1.0
_RGB_SCALE = 255.0 * sqrt(3.0)
# approximate diameter of the sRGB gamut in CIE Lab
_LAB_SCALE = 250.0


# color space util
def rgb_to_lab(image: np.ndarray) -> np.ndarray:
    """
    Convert an RGB image [0-255] to CIE Lab [0-100].
    """
    img = np.asarray(image).astype(np.float64) / 255.0
    return rgb2lab(img)


def color_features(colors: np.ndarray, metric: str = "rgb") -> np.ndarray:
    """
    Map (N,3) uint8 colors to float64 feature vectors whose Euclidean
    distance is on the same [0, ~1] scale as normalized spatial distance.
    """
    colors = np.asarray(colors)
    if metric == "rgb":
        return colors.astype(np.float64) / _RGB_SCALE
    if metric == "lab":
        lab = rgb_to_lab(colors.reshape(1, -1, 3))[0]
        return np.ascontiguousarray(lab / _LAB_SCALE, dtype=np.float64)
    raise ValueError(f"Unknown color metric '{metric}'. Expected one of {COLOR_METRICS}.")


# color dist metrics
def euclidean_rgb(a: np.ndarray, b: np.ndarray) -> float:
    """
    Euclidean distance in RGB space, normalized so black->white is 1.0.
    """
    diff = (np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)) / _RGB_SCALE
    return float(np.sqrt(np.sum(diff * diff)))


def euclidean_lab(a: np.ndarray, b: np.ndarray) -> float:
    """
    Euclidean distance in Lab space (perceptual difference), normalized.
    """
    a_lab = rgb_to_lab(np.asarray(a)[np.newaxis, np.newaxis, :])[0, 0]
    b_lab = rgb_to_lab(np.asarray(b)[np.newaxis, np.newaxis, :])[0, 0]
    diff = (a_lab - b_lab) / _LAB_SCALE
    return float(np.sqrt(np.sum(diff * diff)))


# spatial dist
def spatial_distance(p1: tuple, p2: tuple) -> float:
    """
    Euclidean distance between two (x, y) positions.
    """
    dx = p1[0] - p2[0]
    dy = p1[1] - p2[1]
    return sqrt(dx * dx + dy * dy)


# combined
def combined_distance(
    color_a: np.ndarray,
    color_b: np.ndarray,
    pos_a: tuple,
    pos_b: tuple,
    weight: float = 1.0,
    metric: str = "rgb",
) -> float:
    """
    Weighted sum of positional distance and color distance.

    D = weight * spatial_distance + color_distance
    """
    if metric == "lab":
        cdist = euclidean_lab(color_a, color_b)
    elif metric == "rgb":
        cdist = euclidean_rgb(color_a, color_b)
    else:
        raise ValueError(f"Unknown color metric '{metric}'.")

    sdist = spatial_distance(pos_a, pos_b)
    return weight * sdist + cdist


# vector version
def batch_color_distance(src: np.ndarray, tgt: np.ndarray) -> np.ndarray:
    """
    Row-wise distances between two feature arrays of the same shape (N,3).
    """
    diff = np.asarray(src, dtype=np.float64) - np.asarray(tgt, dtype=np.float64)
    return np.sqrt(np.sum(diff * diff, axis=1))


def batch_spatial_distance(src_pos: np.ndarray, tgt_pos: np.ndarray) -> np.ndarray:
    diff = np.asarray(src_pos, dtype=np.float64) - np.asarray(tgt_pos, dtype=np.float64)
    return np.sqrt(np.sum(diff * diff, axis=1))


def pair_costs(src_pos, src_feat, tgt_pos, tgt_feat, weight: float) -> np.ndarray:
    """
    Cost of pairing src row k with tgt row k, for every k.
    """
    return weight * batch_spatial_distance(src_pos, tgt_pos) + batch_color_distance(src_feat, tgt_feat)


def total_cost(assignment, src_pos, src_feat, tgt_pos, tgt_feat, weight: float) -> float:
    """
    Sum of pair costs when source i goes to target assignment[i].
    """
    assignment = np.asarray(assignment, dtype=np.int64)
    return float(np.sum(pair_costs(src_pos, src_feat, tgt_pos[assignment], tgt_feat[assignment], weight)))


@njit(cache=True)
def pair_cost(src_pos, src_feat, tgt_pos, tgt_feat, i, j, weight):
    dx = src_pos[i, 0] - tgt_pos[j, 0]
    dy = src_pos[i, 1] - tgt_pos[j, 1]
    c0 = src_feat[i, 0] - tgt_feat[j, 0]
    c1 = src_feat[i, 1] - tgt_feat[j, 1]
    c2 = src_feat[i, 2] - tgt_feat[j, 2]
    return weight * sqrt(dx * dx + dy * dy) + sqrt(c0 * c0 + c1 * c1 + c2 * c2)

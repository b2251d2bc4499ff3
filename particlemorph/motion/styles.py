"""
styles.py

One pure trajectory function per MotionStyle.

Each takes source positions, assigned target positions and the per-particle
progress t in [0, 1] and returns (positions, color_t). Every offset is
multiplied by an envelope that is exactly zero at t = 0 and t = 1, and the
base path is `a * (1 - t) + b * t`, so every style lands exactly on the
source at t = 0 and exactly on the target at t = 1.
"""

from __future__ import annotations
from typing import Callable, Dict, Tuple

import numpy as np

from .state import MotionParams, MotionStyle, SimulationState

TWO_PI = 2.0 * np.pi
# full swirl_amount turns the displacement by one revolution at the start
MAX_SWIRL = TWO_PI
# jitter radius at turbulence = 1, mid-transition
DUST_SCALE = 0.05
DUST_NOISE = 0.35

StyleFn = Callable[[np.ndarray, np.ndarray, np.ndarray, SimulationState, MotionParams], Tuple[np.ndarray, np.ndarray]]


def lerp(a: np.ndarray, b: np.ndarray, t: np.ndarray) -> np.ndarray:
    tt = t[:, None]
    return a * (1.0 - tt) + b * tt


def bell(t: np.ndarray) -> np.ndarray:
    return 4.0 * t * (1.0 - t)


def linear(src, tgt, t, state, params):
    return lerp(src, tgt, t), t


def float_(src, tgt, t, state, params):
    theta = state.angle + TWO_PI * state.frequency * t
    state.scratch[:] = theta
    radius = state.amplitude * bell(t)
    offset = radius[:, None] * np.stack([np.cos(theta), np.sin(theta)], axis=1)
    return lerp(src, tgt, t) + offset, t


def swirl(src, tgt, t, state, params):
    theta = params.swirl_amount * MAX_SWIRL * state.spin * (1.0 - t)
    state.scratch[:] = theta
    d = tgt - src
    c1 = np.cos(theta) - 1.0
    s = np.sin(theta)
    # (R(theta) - I) d, scaled by t
    bend = np.stack([c1 * d[:, 0] - s * d[:, 1], s * d[:, 0] + c1 * d[:, 1]], axis=1) * t[:, None]
    return lerp(src, tgt, t) + bend, t


def dust(src, tgt, t, state, params):
    scatter = params.turbulence * DUST_SCALE * bell(t)
    state.scratch[:] = scatter
    noise = state.rng.standard_normal(state.jitter.shape) * DUST_NOISE
    offset = scatter[:, None] * (state.jitter + noise)
    return lerp(src, tgt, t) + offset, t


def snap_threshold(snap_strength: float) -> float:
    return 1.0 - 0.5 * snap_strength


def magnet_snap(src, tgt, t, state, params):
    snap = params.snap_strength
    if snap <= 0.0:
        return lerp(src, tgt, t), t
    ts = snap_threshold(snap)
    u = np.clip((t - ts) / (1.0 - ts), 0.0, 1.0)
    pull = u ** (1.0 - snap)
    state.scratch[:] = np.where(t > ts, pull, 0.0)
    t_eff = np.where(t > ts, 1.0 - (1.0 - ts) * (1.0 - pull), t)
    return lerp(src, tgt, t_eff), t_eff


STYLE_FUNCTIONS: Dict[MotionStyle, StyleFn] = {
    MotionStyle.LINEAR: linear,
    MotionStyle.FLOAT: float_,
    MotionStyle.SWIRL: swirl,
    MotionStyle.DUST: dust,
    MotionStyle.MAGNET_SNAP: magnet_snap,
}

"""
grid.py

ParticleGrid: one particle per pixel of a sidelen x sidelen image.

Particle ids are raster indices (i = y * sidelen + x). Positions are pixel
centres in normalized image space, so a grid built at any resolution spans
the same unit square.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

import numpy as np
from PIL import Image

from . import utils
from ..errors import GridMismatchError


class Particle(NamedTuple):
    position: Tuple[float, float]
    color: Tuple[int, int, int]


def normalized_positions(sidelen: int) -> np.ndarray:
    return (utils.build_positions(sidelen).astype(np.float64) + 0.5) / float(sidelen)


def checked_colors(colors) -> np.ndarray:
    """Integer RGB values in 0..255 as uint8; anything else is rejected, never wrapped."""
    arr = np.asarray(colors)
    if arr.dtype == np.uint8:
        return arr
    if not np.issubdtype(arr.dtype, np.integer):
        raise GridMismatchError(f"colors must be integers in 0..255, got dtype {arr.dtype}")
    if arr.size and (arr.min() < 0 or arr.max() > 255):
        raise GridMismatchError(f"colors must be in 0..255, got range {arr.min()}..{arr.max()}")
    return arr.astype(np.uint8)


@dataclass(frozen=True, eq=False)
class ParticleGrid:
    sidelen: int
    positions: np.ndarray
    colors: np.ndarray

    def __post_init__(self):
        n = self.sidelen * self.sidelen
        positions = np.array(self.positions, dtype=np.float64, order="C")
        colors = np.array(checked_colors(self.colors), dtype=np.uint8, order="C")
        if positions.shape != (n, 2):
            raise GridMismatchError(f"positions must have shape ({n}, 2), got {positions.shape}")
        if colors.shape != (n, 3):
            raise GridMismatchError(f"colors must have shape ({n}, 3), got {colors.shape}")
        positions.flags.writeable = False
        colors.flags.writeable = False
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "colors", colors)

    def __len__(self) -> int:
        return self.positions.shape[0]

    def particle(self, i: int) -> Particle:
        x, y = self.positions[i]
        r, g, b = self.colors[i]
        return Particle((float(x), float(y)), (int(r), int(g), int(b)))

    def image(self) -> np.ndarray:
        return self.colors.reshape(self.sidelen, self.sidelen, 3).copy()

    @classmethod
    def from_image(cls, image, sidelen: Optional[int] = None, crop: Optional[utils.CropBox] = None) -> "ParticleGrid":
        """
        Build a grid from an HxWx3 array, an (N,3) flattened array or a PIL image.

        HxWx3 inputs that are not already sidelen x sidelen (or that need a
        crop) are resampled with Pillow first.
        """
        if isinstance(image, Image.Image):
            if sidelen is None:
                raise GridMismatchError("sidelen is required when building from a PIL image")
            arr = utils.resample(image, sidelen, crop)
            return cls(sidelen, normalized_positions(sidelen), arr.reshape(-1, 3))

        arr = np.asarray(image)
        if arr.ndim == 2 and arr.shape[1] == 3:
            side = int(round(np.sqrt(arr.shape[0])))
            if side * side != arr.shape[0]:
                raise GridMismatchError(f"flattened image with {arr.shape[0]} pixels is not square")
            if sidelen is not None and side != sidelen:
                raise GridMismatchError(f"flattened image is {side}x{side}, expected {sidelen}x{sidelen}")
            return cls(side, normalized_positions(side), arr)

        if arr.ndim == 3 and arr.shape[2] == 3:
            h, w = arr.shape[0], arr.shape[1]
            if sidelen is None:
                if h != w:
                    raise GridMismatchError(f"image is {w}x{h}; pass sidelen to resample it to a square")
                sidelen = h
            if (h, w) != (sidelen, sidelen) or crop is not None:
                arr = utils.resample(Image.fromarray(checked_colors(arr)), sidelen, crop)
            return cls(sidelen, normalized_positions(sidelen), arr.reshape(-1, 3))

        raise GridMismatchError(f"Unsupported image array shape {arr.shape}; expected HxWx3 or (N,3).")

    @classmethod
    def from_path(cls, path: str, sidelen: int, crop: Optional[utils.CropBox] = None) -> "ParticleGrid":
        arr = utils.load_image(path, sidelen, crop)
        return cls(sidelen, normalized_positions(sidelen), arr.reshape(-1, 3))

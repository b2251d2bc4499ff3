from __future__ import annotations
import os
from typing import List, Optional

import numpy as np
from PIL import Image


def render_assignment_preview(src_colors: np.ndarray, assignment: np.ndarray, sidelen: int) -> np.ndarray:
    """Place every source color at the target cell it is assigned to."""
    N = sidelen * sidelen
    if src_colors.shape[0] != N:
        raise ValueError("src_colors must be flattened (N,3) with N = sidelen^2")
    if assignment.shape[0] != N:
        raise ValueError("assignment must have length N")

    canvas = np.empty((N, 3), dtype=np.uint8)
    canvas[np.asarray(assignment, dtype=np.int64)] = np.asarray(src_colors, dtype=np.uint8)
    return canvas.reshape((sidelen, sidelen, 3))


def preview_to_image(preview: np.ndarray) -> Image.Image:
    return Image.fromarray(np.asarray(preview, dtype=np.uint8))


class PreviewCollector:

    def __init__(self, out_dir: Optional[str] = None, keep_frames: bool = True, png_prefix: str = "preview"):
        self.out_dir = out_dir
        self.keep_frames = keep_frames
        self.png_prefix = png_prefix
        self.frames: List[np.ndarray] = []
        self._counter = 0
        if self.out_dir is not None:
            os.makedirs(self.out_dir, exist_ok=True)

    def __len__(self) -> int:
        return self._counter

    def add(self, preview: np.ndarray):
        arr = np.asarray(preview, dtype=np.uint8)

        if self.keep_frames:
            self.frames.append(arr)

        if self.out_dir is not None:
            path = os.path.join(self.out_dir, f"{self.png_prefix}_{self._counter:04d}.png")
            preview_to_image(arr).save(path)

        self._counter += 1

from __future__ import annotations
from typing import Optional, Tuple

import numpy as np
from PIL import Image

CropBox = Tuple[float, float, float, float]


def crop_image(img: Image.Image, crop: Optional[CropBox]) -> Image.Image:
    """Crop by a normalized (left, top, right, bottom) box."""
    if crop is None:
        return img
    left, top, right, bottom = crop
    w, h = img.size
    box = (int(round(left * w)), int(round(top * h)), int(round(right * w)), int(round(bottom * h)))
    if box[2] <= box[0] or box[3] <= box[1]:
        raise ValueError(f"crop box {crop} is empty for a {w}x{h} image")
    return img.crop(box)


def resample(img: Image.Image, size: int, crop: Optional[CropBox] = None) -> np.ndarray:
    img = crop_image(img.convert("RGB"), crop)
    if img.size != (size, size):
        img = img.resize((size, size), Image.Resampling.LANCZOS)
    return np.asarray(img, dtype=np.uint8)


def load_image(path: str, size: int, crop: Optional[CropBox] = None) -> np.ndarray:
    with Image.open(path) as img:
        return resample(img, size, crop)


def save_image(array, sidelen: int, path: str):
    img = Image.fromarray(np.asarray(array).reshape(sidelen, sidelen, 3).astype(np.uint8))
    img.save(path)


def idx_to_xy(idx: int, sidelen: int) -> Tuple[int, int]:
    return (idx % sidelen, idx // sidelen)


def xy_to_idx(x: int, y: int, sidelen: int) -> int:
    return y * sidelen + x


def build_positions(sidelen: int) -> np.ndarray:
    """
    Returns positions as an (N,2) int array where N = sidelen**2.
    pos[i] = (x, y)
    """
    idx = np.arange(sidelen * sidelen, dtype=np.int32)
    return np.stack([idx % sidelen, idx // sidelen], axis=1)

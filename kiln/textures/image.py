# kiln/textures/image.py
"""
CPU-side images.

An image is a float32 numpy array of shape (height, width, 4) holding RGBA in
[0, 1], row 0 being the top row. Files are read and written as RGBA8 through
Pillow.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import numpy as np
from PIL import Image

from kiln.settings import GAP_EPSILON

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)

BLACK = (0.0, 0.0, 0.0, 1.0)
TRANSPARENT = (0.0, 0.0, 0.0, 0.0)


def new_image(
    width: int, height: int, color: Sequence[float] = TRANSPARENT
) -> np.ndarray:
    if width < 1 or height < 1:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    image = np.empty((height, width, 4), dtype=np.float32)
    image[...] = np.asarray(color, dtype=np.float32)
    return image


def as_image(data: np.ndarray | Image.Image) -> np.ndarray:
    """Coerce a PIL image or an array (uint8 or float, RGB or RGBA) to RGBA float."""
    if isinstance(data, Image.Image):
        data = np.asarray(data.convert("RGBA"))

    array = np.asarray(data)
    if array.ndim == 2:
        array = np.repeat(array[..., None], 3, axis=-1)

    if array.dtype == np.uint8:
        array = array.astype(np.float32) / 255.0
    else:
        array = array.astype(np.float32)

    if array.shape[-1] == 3:
        alpha = np.ones(array.shape[:-1] + (1,), dtype=np.float32)
        array = np.concatenate([array, alpha], axis=-1)

    if array.ndim != 3 or array.shape[-1] != 4:
        raise ValueError(f"Unsupported image shape {array.shape}")
    return array


def to_rgba8(image: np.ndarray) -> np.ndarray:
    return np.round(np.clip(image, 0.0, 1.0) * 255.0).astype(np.uint8)


def to_pil(image: np.ndarray) -> Image.Image:
    return Image.fromarray(to_rgba8(image))


def load_image(path: Path | str) -> np.ndarray:
    with Image.open(path) as img:
        return as_image(img.convert("RGBA"))


def save_image(image: np.ndarray, path: Path | str) -> None:
    """Write RGBA8 PNG (or whatever the suffix selects), creating directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_pil(image).save(path)


def luma(image: np.ndarray) -> np.ndarray:
    return image[..., :3] @ LUMA_WEIGHTS


def gap_mask(
    image: np.ndarray, is_transparent: bool = True, epsilon: float = GAP_EPSILON
) -> np.ndarray:
    """True where a pixel carries no color: alpha (or luma) below epsilon."""
    if is_transparent:
        return image[..., 3] < epsilon
    return luma(image) < epsilon


def convert_color_key_to_alpha(
    image: np.ndarray,
    color_key: Sequence[float] = BLACK,
    epsilon: float = GAP_EPSILON,
) -> np.ndarray:
    """Pixels matching the key (by luma difference) become transparent, the rest opaque."""
    diff = np.asarray(color_key, dtype=np.float32)[:3] - image[..., :3]
    keyed = np.abs(diff @ LUMA_WEIGHTS) < epsilon

    result = image.copy()
    result[..., 3] = 1.0
    result[keyed] = TRANSPARENT
    return result


def copy_image_alpha(dest: np.ndarray, source_alpha: np.ndarray) -> np.ndarray:
    result = dest.copy()
    result[..., 3] = source_alpha[..., 3]
    return result


def reset_image_alpha(image: np.ndarray, alpha: float = 1.0) -> np.ndarray:
    result = image.copy()
    result[..., 3] = alpha
    return result


def unpremultiply(image: np.ndarray, epsilon: float = GAP_EPSILON) -> np.ndarray:
    """Divide every channel of non-gap pixels by alpha (alpha becomes 1)."""
    alpha = image[..., 3:4]
    return np.where(alpha > epsilon, image / np.maximum(alpha, epsilon), image)


def next_level(image: np.ndarray) -> np.ndarray:
    """Half-resolution mip level (2x2 box filter); odd trailing rows/columns drop."""
    height, width = image.shape[:2]
    level = image
    if width > 1:
        w = width // 2 * 2
        level = (level[:, 0:w:2] + level[:, 1:w:2]) * 0.5
    if height > 1:
        h = height // 2 * 2
        level = (level[0:h:2] + level[1:h:2]) * 0.5
    return level.astype(np.float32)


def num_image_levels(image: np.ndarray) -> int:
    height, width = image.shape[:2]
    levels = 1
    while width > 1 or height > 1:
        levels += 1
        width >>= 1
        height >>= 1
    return levels


def generate_levels(image: np.ndarray) -> List[np.ndarray]:
    levels = [image]
    for _ in range(1, num_image_levels(image)):
        levels.append(next_level(levels[-1]))
    return levels


def adjust_levels_alpha(levels: Sequence[np.ndarray], factor: float) -> List[np.ndarray]:
    """Scale alpha of mip level i by factor**i; level 0 is untouched."""
    result = [levels[0]]
    k = factor
    for level in levels[1:]:
        adjusted = level.copy()
        adjusted[..., 3] *= k
        result.append(adjusted)
        k *= factor
    return result


def flip_normal_map_z(image: np.ndarray, epsilon: float = GAP_EPSILON) -> np.ndarray:
    result = image.copy()
    mask = luma(image) > epsilon
    result[mask, 2] = 1.0 - result[mask, 2]
    return result


def build_normal_map_alpha(image: np.ndarray, epsilon: float = GAP_EPSILON) -> np.ndarray:
    """Alpha 1 where the normal map holds data, 0 on empty (black) texels."""
    result = image.copy()
    result[..., 3] = np.where(luma(image) > epsilon, 1.0, 0.0)
    return result

# kiln/textures/noise.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from kiln.settings import Color, NoiseSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NoiseOctave:
    scale_x: float
    scale_y: float
    magnitude: float = 1.0
    seed: float = 0.0


def aspect_scale(width: int, height: int) -> Tuple[float, float]:
    """Per-axis scale keeping noise cells square on a non-square texture."""
    if width > height:
        return width / height, 1.0
    return 1.0, height / width


def smooth_step(edge0: float, edge1: float, x: np.ndarray) -> np.ndarray:
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def smooth_step_ex(x: np.ndarray, contrast: float) -> np.ndarray:
    """Blend between `x` (contrast 0) and its smooth step (contrast 1)."""
    return x + (smooth_step(0.0, 1.0, x) - x) * contrast


def apply_noise_modifiers(
    values: np.ndarray, total_magnitude: float, settings: NoiseSettings
) -> np.ndarray:
    """Normalize accumulated octaves, then apply bias, contrast and range."""
    if total_magnitude == 0:
        logger.warning("No noise octave contributed, result is flat")
        normalized = np.zeros_like(values)
    else:
        normalized = values / total_magnitude

    v = np.clip(normalized + settings.bias, 0.0, 1.0)
    v = smooth_step_ex(v, settings.contrast)
    lo, hi = settings.range
    return np.clip(lo + (hi - lo) * v, 0.0, 1.0).astype(np.float32)


def colorize(values: np.ndarray, first: Color, second: Color) -> np.ndarray:
    """Map scalar values in [0, 1] onto a two-color gradient."""
    a = np.asarray(first, dtype=np.float32)
    b = np.asarray(second, dtype=np.float32)
    return (a + (b - a) * values[..., None]).astype(np.float32)

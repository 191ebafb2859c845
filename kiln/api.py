# kiln/api.py
"""Entry points for callers that do not need the individual building blocks."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from kiln.geometry.primitives import build_mesh
from kiln.rendering.interface import Renderer
from kiln.rendering.resources import ResourceCache
from kiln.textures.description import TextureDescription
from kiln.textures.distance_field import fill_image_gaps
from kiln.textures.pipeline import TexturePipeline


def generate_textures(
    descriptions: Mapping[str, TextureDescription] | Iterable[Tuple[str, TextureDescription]],
    overrides: Optional[Mapping[str, np.ndarray]] = None,
    renderer: Optional[Renderer] = None,
    resources: Optional[ResourceCache] = None,
) -> Dict[str, np.ndarray]:
    """
    Generate named textures, returning the ones that succeeded.

    Uses a headless ModernGL renderer unless one is given. Failed entries are
    logged and left out of the result.
    """
    if renderer is None:
        from kiln.rendering.gl_renderer import ModernGLRenderer

        renderer = ModernGLRenderer()

    entries = descriptions.items() if isinstance(descriptions, Mapping) else descriptions
    report = TexturePipeline(renderer, resources).generate(entries, overrides)
    return report.textures


def fill_gaps(
    image: np.ndarray, downsample_levels: int = 0, is_transparent: bool = True
) -> np.ndarray:
    return fill_image_gaps(image, downsample_levels, is_transparent)


__all__ = ["build_mesh", "generate_textures", "fill_gaps"]

# kiln/rendering/resources.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import numpy as np

from kiln.geometry.model import MergedMesh
from kiln.rendering.interface import RenderPath
from kiln.rendering.material import Material
from kiln.textures.image import load_image

logger = logging.getLogger(__name__)


class ResourceCache(Protocol):
    """Lookup of named resources; every finder returns None when missing."""

    def find_material(self, name: str) -> Optional[Material]: ...

    def find_model(self, name: str) -> Optional[MergedMesh]: ...

    def find_render_path(self, name: str) -> Optional[RenderPath]: ...

    def find_texture(self, name: str) -> Optional[np.ndarray]: ...


class ResourceLibrary:
    """
    In-memory resource registry.

    Textures that were never registered are loaded from `root` on first
    request (PNG, JPG, anything Pillow reads) and kept.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = root
        self._materials: Dict[str, Material] = {}
        self._models: Dict[str, MergedMesh] = {}
        self._render_paths: Dict[str, RenderPath] = {}
        self._textures: Dict[str, np.ndarray] = {}

    def register_material(self, name: str, material: Material) -> None:
        self._materials[name] = material

    def register_model(self, name: str, model: MergedMesh) -> None:
        self._models[name] = model

    def register_render_path(self, name: str, render_path: RenderPath) -> None:
        self._render_paths[name] = render_path

    def register_texture(self, name: str, texture: np.ndarray) -> None:
        self._textures[name] = texture

    def find_material(self, name: str) -> Optional[Material]:
        return self._materials.get(name)

    def find_model(self, name: str) -> Optional[MergedMesh]:
        return self._models.get(name)

    def find_render_path(self, name: str) -> Optional[RenderPath]:
        return self._render_paths.get(name)

    def find_texture(self, name: str) -> Optional[np.ndarray]:
        texture = self._textures.get(name)
        if texture is not None or self.root is None:
            return texture

        path = self.root / name
        if not path.is_file():
            return None

        try:
            texture = load_image(path)
        except OSError as e:
            logger.error("Failed to load texture %s: %s", path, e)
            return None

        self._textures[name] = texture
        return texture

    def get_material(self, name: str) -> Material:
        return _require(self.find_material(name), "Material", name)

    def get_model(self, name: str) -> MergedMesh:
        return _require(self.find_model(name), "Model", name)

    def get_render_path(self, name: str) -> RenderPath:
        return _require(self.find_render_path(name), "Render path", name)

    def get_texture(self, name: str) -> np.ndarray:
        return _require(self.find_texture(name), "Texture", name)

    def exists(self, name: str) -> bool:
        """Whether a file with this name exists under the root."""
        return self.root is not None and (self.root / name).is_file()


def _require(value: Any, kind: str, name: str) -> Any:
    if value is None:
        raise KeyError(f"{kind} '{name}' not found")
    return value

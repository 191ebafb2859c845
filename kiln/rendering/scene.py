# kiln/rendering/scene.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np

from kiln.geometry.model import MergedMesh
from kiln.rendering.material import Material
from kiln.rendering.transform import (
    create_model_matrix,
    create_orthographic_projection,
    create_view_matrix,
)

logger = logging.getLogger(__name__)

Vector3 = Tuple[float, float, float]
Quaternion = Tuple[float, float, float, float]

IDENTITY_ROTATION: Quaternion = (0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True, slots=True)
class IntRect:
    """Pixel rectangle; right and bottom are exclusive."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(slots=True)
class CameraComponent:
    near_clip: float = 0.0
    far_clip: float = 1.0
    ortho_size: Tuple[float, float] = (1.0, 1.0)

    def projection(self) -> np.ndarray:
        return create_orthographic_projection(
            self.ortho_size[0], self.ortho_size[1], self.near_clip, self.far_clip
        )


@dataclass(slots=True)
class StaticModel:
    """Model drawn with one material per geometry slot."""

    model: MergedMesh
    materials: List[Optional[Material]] = field(default_factory=list)

    def material(self, geometry: int) -> Optional[Material]:
        if geometry < len(self.materials):
            return self.materials[geometry]
        return None


@dataclass(slots=True)
class SceneNode:
    name: str = ""
    position: Vector3 = (0.0, 0.0, 0.0)
    rotation: Quaternion = IDENTITY_ROTATION
    camera: Optional[CameraComponent] = None
    models: List[StaticModel] = field(default_factory=list)

    def world_matrix(self) -> np.ndarray:
        return create_model_matrix(self.position, self.rotation)

    def view_matrix(self) -> np.ndarray:
        return create_view_matrix(self.position, self.rotation)


class TransientScene:
    """
    Scene that exists for the duration of one `with` block.

    Nodes added inside the block are dropped on exit, whether or not
    rendering succeeded.
    """

    def __init__(self) -> None:
        self._nodes: List[SceneNode] = []
        self._active = False

    def __enter__(self) -> TransientScene:
        self._active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        logger.debug("Releasing transient scene with %d nodes", len(self._nodes))
        self._nodes.clear()
        self._active = False

    def add(self, node: SceneNode) -> SceneNode:
        if not self._active:
            raise RuntimeError("TransientScene used outside of its with block")
        self._nodes.append(node)
        return node

    @property
    def nodes(self) -> Tuple[SceneNode, ...]:
        return tuple(self._nodes)

    def drawables(self) -> Iterator[Tuple[SceneNode, StaticModel]]:
        for node in self._nodes:
            for model in node.models:
                yield node, model

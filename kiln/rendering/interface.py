# kiln/rendering/interface.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np

from kiln.rendering.scene import IntRect, SceneNode, TransientScene
from kiln.settings import Color


@dataclass(frozen=True, slots=True)
class RenderPath:
    """Shader pair that turns a scene into pixels of a render target."""

    name: str
    vertex_shader: str = ""
    fragment_shader: str = ""
    clear_color: Color = (0.0, 0.0, 0.0, 0.0)


class Renderer(ABC):
    """
    Offscreen rendering backend.

    A target is an opaque handle created per texture; every view of the
    texture is drawn into it before the pixels are read back.
    """

    @abstractmethod
    def create_target(self, width: int, height: int, clear_color: Color) -> Any:
        """Allocate a target of the given size, cleared to `clear_color`."""

    @abstractmethod
    def render_frame(
        self,
        scene: TransientScene,
        camera: SceneNode,
        viewport: IntRect,
        render_path: RenderPath,
        target: Any,
    ) -> None:
        """Draw every model of `scene` seen by `camera` into `viewport`."""

    @abstractmethod
    def read_target(self, target: Any) -> np.ndarray:
        """RGBA float image of the target, row 0 at the top."""

    def release_target(self, target: Any) -> None:
        pass

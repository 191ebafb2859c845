from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
import pytest

from kiln.geometry.primitives import create_quad_model
from kiln.rendering.interface import Renderer, RenderPath
from kiln.rendering.material import Material, TextureUnit
from kiln.rendering.resources import ResourceLibrary
from kiln.rendering.scene import IntRect, SceneNode, TransientScene
from kiln.textures.image import new_image


@dataclass
class FakeTarget:
    pixels: np.ndarray
    released: bool = False


@dataclass
class FakeFrame:
    camera: SceneNode
    viewport: IntRect
    render_path: RenderPath
    materials: List[Material] = field(default_factory=list)


class FakeRenderer(Renderer):
    """
    CPU stand-in for a GPU renderer.

    Every material paints its viewport with its diffuse texture (when it
    matches the target size) tinted by MatDiffColor, or with MatDiffColor
    alone.
    """

    def __init__(self) -> None:
        self.frames: List[FakeFrame] = []
        self.targets: List[FakeTarget] = []

    def create_target(self, width, height, clear_color):
        target = FakeTarget(new_image(width, height, clear_color))
        self.targets.append(target)
        return target

    def render_frame(self, scene: TransientScene, camera, viewport, render_path, target):
        frame = FakeFrame(camera, viewport, render_path)
        rows = slice(viewport.top, viewport.bottom)
        cols = slice(viewport.left, viewport.right)
        for _, static_model in scene.drawables():
            for material in static_model.materials:
                if material is None:
                    continue
                frame.materials.append(material)
                tint = np.asarray(
                    material.parameters.get("MatDiffColor", (1.0, 1.0, 1.0, 1.0)),
                    dtype=np.float32,
                )
                texture = material.texture(TextureUnit.DIFFUSE)
                if texture is not None and texture.shape == target.pixels.shape:
                    target.pixels[rows, cols] = texture[rows, cols] * tint
                else:
                    target.pixels[rows, cols] = tint
        self.frames.append(frame)

    def read_target(self, target):
        return target.pixels.copy()

    def release_target(self, target):
        target.released = True


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def quad():
    return create_quad_model()


@pytest.fixture
def library(quad):
    """Resource library with a quad model, a plain material and a render path."""
    lib = ResourceLibrary()
    lib.register_model("Quad", quad)
    lib.register_material("Plain", Material(name="Plain"))
    lib.register_render_path("Fake", RenderPath("Fake"))
    return lib


def solid(width: int, height: int, color: Tuple[float, float, float, float]) -> np.ndarray:
    return new_image(width, height, color)


@pytest.fixture
def make_image():
    return solid

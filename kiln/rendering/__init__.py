from kiln.rendering.interface import Renderer, RenderPath
from kiln.rendering.material import Material, TextureUnit, parse_texture_unit
from kiln.rendering.resources import ResourceCache, ResourceLibrary
from kiln.rendering.scene import (
    CameraComponent,
    IntRect,
    SceneNode,
    StaticModel,
    TransientScene,
)

__all__ = [
    "Renderer",
    "RenderPath",
    "Material",
    "TextureUnit",
    "parse_texture_unit",
    "ResourceCache",
    "ResourceLibrary",
    "CameraComponent",
    "IntRect",
    "SceneNode",
    "StaticModel",
    "TransientScene",
]

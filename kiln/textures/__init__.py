from kiln.textures.description import (
    GeometryDescription,
    OrthoCameraDescription,
    TextureDescription,
    TextureFactoryDescriptor,
)
from kiln.textures.distance_field import SignedDistanceField, fill_image_gaps
from kiln.textures.noise import NoiseOctave

__all__ = [
    "GeometryDescription",
    "OrthoCameraDescription",
    "TextureDescription",
    "TextureFactoryDescriptor",
    "SignedDistanceField",
    "fill_image_gaps",
    "NoiseOctave",
]

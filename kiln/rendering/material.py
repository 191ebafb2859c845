# kiln/rendering/material.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from kiln.errors import UnknownTextureUnitError

ParameterValue = Tuple[float, ...]


class TextureUnit(IntEnum):
    DIFFUSE = 0
    NORMAL = 1
    SPECULAR = 2
    EMISSIVE = 3

    @property
    def sampler_name(self) -> str:
        """Shader sampler uniform bound to this unit, e.g. u_diffuse."""
        return f"u_{self.name.lower()}"


_UNIT_ALIASES: Dict[str, TextureUnit] = {
    "diffuse": TextureUnit.DIFFUSE,
    "diff": TextureUnit.DIFFUSE,
    "0": TextureUnit.DIFFUSE,
    "normal": TextureUnit.NORMAL,
    "norm": TextureUnit.NORMAL,
    "1": TextureUnit.NORMAL,
    "specular": TextureUnit.SPECULAR,
    "spec": TextureUnit.SPECULAR,
    "2": TextureUnit.SPECULAR,
    "emissive": TextureUnit.EMISSIVE,
    "3": TextureUnit.EMISSIVE,
}


def parse_texture_unit(name: str) -> TextureUnit:
    """Map a unit name or number (case-insensitive, trimmed) to a TextureUnit."""
    try:
        return _UNIT_ALIASES[name.strip().lower()]
    except KeyError:
        raise UnknownTextureUnitError(name) from None


def as_parameter(value: float | Sequence[float]) -> ParameterValue:
    if isinstance(value, (int, float)):
        return (float(value),)
    return tuple(float(v) for v in value)


@dataclass(eq=False, slots=True)
class Material:
    """
    Textures per unit plus named shader parameters.

    Materials compare by identity: two materials with equal content are still
    different slots of a mesh.
    """

    name: str = ""
    textures: Dict[TextureUnit, np.ndarray] = field(default_factory=dict)
    parameters: Dict[str, ParameterValue] = field(default_factory=dict)

    def clone(self) -> Material:
        """Copy that can be modified without touching the shared asset."""
        return Material(
            name=self.name,
            textures=dict(self.textures),
            parameters=dict(self.parameters),
        )

    def set_texture(self, unit: TextureUnit, texture: np.ndarray) -> None:
        self.textures[unit] = texture

    def texture(self, unit: TextureUnit) -> Optional[np.ndarray]:
        return self.textures.get(unit)

    def set_shader_parameter(self, name: str, value: float | Sequence[float]) -> None:
        self.parameters[name] = as_parameter(value)

    def shader_parameter(self, name: str) -> Optional[ParameterValue]:
        return self.parameters.get(name)

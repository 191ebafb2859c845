# kiln/textures/description.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from kiln.geometry.model import MergedMesh
from kiln.rendering.interface import RenderPath
from kiln.rendering.material import Material, ParameterValue, TextureUnit, as_parameter
from kiln.rendering.scene import IDENTITY_ROTATION, IntRect, Quaternion, Vector3
from kiln.settings import Color

logger = logging.getLogger(__name__)

ModelRef = Union[str, MergedMesh]
MaterialRef = Union[str, Material, None]
RenderPathRef = Union[str, RenderPath]

EMPTY_RECT = IntRect(0, 0, 0, 0)


@dataclass(frozen=True, slots=True)
class OrthoCameraDescription:
    """
    Orthographic camera looking down +Z.

    An empty viewport covers the whole texture.
    """

    position: Vector3 = (0.0, 0.0, 0.0)
    rotation: Quaternion = IDENTITY_ROTATION
    far_clip: float = 1.0
    size: Tuple[float, float] = (1.0, 1.0)
    viewport: IntRect = EMPTY_RECT

    @staticmethod
    def identity(
        width: int, height: int, offset: Vector3 = (0.0, 0.0, 0.0)
    ) -> OrthoCameraDescription:
        """Camera framing the unit square [0, 1]^2 at depth 0..1."""
        return OrthoCameraDescription(
            position=(0.5 + offset[0], 0.5 + offset[1], offset[2]),
            far_clip=1.0,
            size=(1.0, 1.0),
            viewport=IntRect(0, 0, width, height),
        )

    def resolved_viewport(self, width: int, height: int) -> IntRect:
        if self.viewport.is_empty:
            return IntRect(0, 0, width, height)
        return self.viewport


@dataclass(slots=True)
class GeometryDescription:
    """Model plus one material per geometry slot; entries may be names."""

    model: ModelRef
    materials: List[MaterialRef] = field(default_factory=list)
    name: str = ""


@dataclass(slots=True)
class TextureDescription:
    width: int = 1
    height: int = 1
    color: Color = (1.0, 1.0, 1.0, 1.0)
    cameras: List[OrthoCameraDescription] = field(default_factory=list)
    geometries: List[GeometryDescription] = field(default_factory=list)
    textures: Dict[TextureUnit, str] = field(default_factory=dict)
    parameters: Dict[str, ParameterValue] = field(default_factory=dict)
    render_path: Optional[RenderPathRef] = None
    fill_gaps: bool = False

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"Texture size must be positive, got {self.width}x{self.height}"
            )

    @property
    def is_flat_fill(self) -> bool:
        """Nothing to render: the result is `color` everywhere."""
        return not self.cameras or not self.geometries or self.render_path is None

    def set_parameter(self, name: str, value: float | Sequence[float]) -> None:
        self.parameters[name] = as_parameter(value)

    def with_default_camera(self) -> TextureDescription:
        """Copy that renders through the identity camera if none is set."""
        if self.cameras:
            return self
        return replace(
            self,
            cameras=[OrthoCameraDescription.identity(self.width, self.height)],
        )

    @staticmethod
    def flat(color: Color, width: int = 1, height: int = 1) -> TextureDescription:
        return TextureDescription(width=width, height=height, color=color)


class TextureFactoryDescriptor:
    """
    Ordered set of named texture descriptions plus the files to write.

    Names are unique ignoring case. When no output is declared every texture
    is written as `<name>.png`.
    """

    def __init__(self) -> None:
        self._textures: List[Tuple[str, TextureDescription]] = []
        self._outputs: List[Tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self._textures)

    def __iter__(self) -> Iterator[Tuple[str, TextureDescription]]:
        return iter(self._textures)

    def find_texture(self, name: str) -> int:
        """Index of the texture called `name` (any case), -1 if absent."""
        key = name.lower()
        for i, (existing, _) in enumerate(self._textures):
            if existing.lower() == key:
                return i
        return -1

    def get_texture(self, name: str) -> TextureDescription:
        index = self.find_texture(name)
        if index < 0:
            raise KeyError(f"Texture '{name}' not found")
        return self._textures[index][1]

    def add_texture(self, name: str, description: TextureDescription) -> bool:
        if self.find_texture(name) >= 0:
            logger.error("Texture '%s' is already defined", name)
            return False
        self._textures.append((name, description))
        return True

    def add_variations(
        self,
        description: TextureDescription,
        render_paths: Mapping[str, RenderPathRef],
    ) -> int:
        """Add one copy of `description` per (name, render path); returns how many were added."""
        added = 0
        for name, render_path in render_paths.items():
            if self.add_texture(name, replace(description, render_path=render_path)):
                added += 1
        return added

    def remove_all_textures(self) -> None:
        self._textures.clear()

    def add_output(self, texture_name: str, file_name: str) -> None:
        self._outputs.append((texture_name, file_name))

    def remove_all_outputs(self) -> None:
        self._outputs.clear()

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._textures]

    @property
    def outputs(self) -> List[Tuple[str, str]]:
        return list(self._outputs)

    def resolved_outputs(self) -> List[Tuple[str, str]]:
        if self._outputs:
            return list(self._outputs)
        return [(name, f"{name}.png") for name, _ in self._textures]

    def check_all_outputs(self, directory: Path) -> bool:
        """True when every output file already exists under `directory`."""
        return all((directory / file_name).is_file() for _, file_name in self.resolved_outputs())

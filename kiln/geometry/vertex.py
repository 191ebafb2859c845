# kiln/geometry/vertex.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Sequence

import numpy as np


class VertexSemantic(str, Enum):
    POSITION = "position"
    NORMAL = "normal"
    BINORMAL = "binormal"
    TANGENT = "tangent"
    TEXCOORD = "texcoord"
    COLOR = "color"
    BLEND_WEIGHTS = "blend_weights"
    BLEND_INDICES = "blend_indices"


_ATTRIBUTE_NAMES = {
    VertexSemantic.POSITION: "in_pos",
    VertexSemantic.NORMAL: "in_normal",
    VertexSemantic.BINORMAL: "in_binormal",
    VertexSemantic.TANGENT: "in_tangent",
    VertexSemantic.TEXCOORD: "in_uv",
    VertexSemantic.COLOR: "in_color",
    VertexSemantic.BLEND_WEIGHTS: "in_blend_weights",
    VertexSemantic.BLEND_INDICES: "in_blend_indices",
}


class ElementType(Enum):
    """(component count, numpy base type, moderngl format code)"""

    FLOAT = (1, "<f4", "f")
    VECTOR2 = (2, "<f4", "f")
    VECTOR3 = (3, "<f4", "f")
    VECTOR4 = (4, "<f4", "f")
    UBYTE4 = (4, "u1", "u1")
    UBYTE4_NORM = (4, "u1", "nu1")
    INT = (1, "<i4", "i")

    @property
    def count(self) -> int:
        return self.value[0]

    @property
    def size(self) -> int:
        return self.count * np.dtype(self.value[1]).itemsize

    @property
    def gl_format(self) -> str:
        return f"{self.count}{self.value[2]}"


@dataclass(frozen=True, slots=True)
class VertexElement:
    type: ElementType
    semantic: VertexSemantic
    index: int = 0

    @property
    def field_name(self) -> str:
        """Name of the matching field in the layout's numpy dtype."""
        if self.index == 0:
            return self.semantic.value
        return f"{self.semantic.value}{self.index}"

    @property
    def attribute_name(self) -> str:
        """Shader attribute name, e.g. in_pos, in_uv, in_uv1."""
        base = _ATTRIBUTE_NAMES[self.semantic]
        return base if self.index == 0 else f"{base}{self.index}"


@dataclass(frozen=True)
class VertexLayout:
    """
    Immutable description of one interleaved vertex.

    Offsets and stride are derived from the element order; elements are packed
    without padding, which matches the engine vertex buffer rules.
    """

    elements: tuple[VertexElement, ...]

    def __post_init__(self) -> None:
        names = [e.field_name for e in self.elements]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate vertex elements in layout: {names}")

    @classmethod
    def of(cls, elements: Sequence[VertexElement]) -> VertexLayout:
        return cls(tuple(elements))

    @cached_property
    def offsets(self) -> tuple[int, ...]:
        offsets = []
        offset = 0
        for element in self.elements:
            offsets.append(offset)
            offset += element.type.size
        return tuple(offsets)

    @property
    def stride_bytes(self) -> int:
        return sum(e.type.size for e in self.elements)

    @property
    def attributes(self) -> tuple[str, ...]:
        return tuple(e.attribute_name for e in self.elements)

    @property
    def format(self) -> str:
        """moderngl buffer format string, e.g. "3f 3f 4f"."""
        return " ".join(e.type.gl_format for e in self.elements)

    @cached_property
    def dtype(self) -> np.dtype:
        fields = []
        for element in self.elements:
            count, base, _ = element.type.value
            if count == 1:
                fields.append((element.field_name, base))
            else:
                fields.append((element.field_name, base, (count,)))
        return np.dtype(fields)

    def find(
        self, semantic: VertexSemantic, index: int = 0
    ) -> tuple[VertexElement, int] | None:
        """Return (element, byte offset) for a semantic, or None."""
        for element, offset in zip(self.elements, self.offsets):
            if element.semantic == semantic and element.index == index:
                return element, offset
        return None

    def allocate(self, count: int) -> np.ndarray:
        """Zero-initialised structured vertex array in this layout."""
        return np.zeros(count, dtype=self.dtype)

    def unpack(self, data: bytes) -> np.ndarray:
        if len(data) % self.stride_bytes != 0:
            raise ValueError(
                f"Vertex data size {len(data)} is not a multiple of stride "
                f"{self.stride_bytes}"
            )
        return np.frombuffer(data, dtype=self.dtype).copy()


DEFAULT_VERTEX_ELEMENTS: tuple[VertexElement, ...] = (
    VertexElement(ElementType.VECTOR3, VertexSemantic.POSITION),
    VertexElement(ElementType.VECTOR3, VertexSemantic.TANGENT),
    VertexElement(ElementType.VECTOR3, VertexSemantic.BINORMAL),
    VertexElement(ElementType.VECTOR3, VertexSemantic.NORMAL, 0),
    VertexElement(ElementType.VECTOR3, VertexSemantic.NORMAL, 1),
    VertexElement(ElementType.VECTOR4, VertexSemantic.TEXCOORD, 0),
    VertexElement(ElementType.VECTOR4, VertexSemantic.TEXCOORD, 1),
    VertexElement(ElementType.VECTOR4, VertexSemantic.TEXCOORD, 2),
    VertexElement(ElementType.VECTOR4, VertexSemantic.TEXCOORD, 3),
    VertexElement(ElementType.VECTOR4, VertexSemantic.COLOR, 0),
    VertexElement(ElementType.VECTOR4, VertexSemantic.COLOR, 1),
    VertexElement(ElementType.VECTOR4, VertexSemantic.COLOR, 2),
    VertexElement(ElementType.VECTOR4, VertexSemantic.COLOR, 3),
    VertexElement(ElementType.UBYTE4, VertexSemantic.BLEND_INDICES),
    VertexElement(ElementType.VECTOR4, VertexSemantic.BLEND_WEIGHTS),
)

# Fat vertex: every channel the generators may write.
# "normal" is the shading normal, "normal1" the geometry normal.
DEFAULT_LAYOUT = VertexLayout(DEFAULT_VERTEX_ELEMENTS)

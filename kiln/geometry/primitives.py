# kiln/geometry/primitives.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from kiln.geometry.factory import GeometryBufferFactory
from kiln.geometry.model import MergedMesh
from kiln.geometry.vertex import DEFAULT_LAYOUT, VertexLayout

# Unit quad corners (x, y); z is fixed at 0.5 so the identity camera
# (far clip 1) sees it in the middle of its depth range.
_QUAD_CORNERS = ((0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0))
_QUAD_INDICES = (0, 2, 3, 0, 3, 1)


@dataclass(frozen=True, slots=True)
class GeometrySubmission:
    """One raw vertex/index stream addressed to a (material, LOD) group."""

    vertices: bytes
    num_vertices: int
    indices: bytes
    num_indices: int
    material: Any = None
    lod: int = 0
    adjust_indices: bool = True
    reuse_material: bool = True


def build_mesh(
    layout: VertexLayout,
    large_indices: bool,
    submissions: Sequence[GeometrySubmission],
) -> MergedMesh:
    factory = GeometryBufferFactory(layout, large_indices)
    for sub in submissions:
        group = factory.begin_group(sub.material, sub.lod, sub.reuse_material)
        group.submit(
            sub.vertices,
            sub.num_vertices,
            sub.indices,
            sub.num_indices,
            sub.adjust_indices,
        )
    return factory.build()


def create_quad_model(layout: VertexLayout = DEFAULT_LAYOUT) -> MergedMesh:
    """
    Unit quad over [0, 1]^2 used as the canvas of full-texture passes.

    UV0 is (x, 1 - y) so the top of the view samples the first image row;
    UV1 is all ones.
    """
    vertices = layout.allocate(4)
    for i, (x, y) in enumerate(_QUAD_CORNERS):
        vertices["position"][i] = (x, y, 0.5)
        if "texcoord" in vertices.dtype.names:
            vertices["texcoord"][i] = (x, 1.0 - y, 0.0, 0.0)
        if "texcoord1" in vertices.dtype.names:
            vertices["texcoord1"][i] = (1.0, 1.0, 1.0, 1.0)

    factory = GeometryBufferFactory(layout, large_indices=True)
    factory.begin_group(None).submit_arrays(vertices, _QUAD_INDICES)
    return factory.build()


class QuadModelCache:
    """Lazily built quad model shared by all passes of one orchestrator."""

    def __init__(self, layout: VertexLayout = DEFAULT_LAYOUT) -> None:
        self._layout = layout
        self._model: Optional[MergedMesh] = None

    def get(self) -> MergedMesh:
        if self._model is None:
            self._model = create_quad_model(self._layout)
        return self._model

    def clear(self) -> None:
        self._model = None

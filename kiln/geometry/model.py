# kiln/geometry/model.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from kiln.geometry.vertex import VertexLayout

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned box; `merge` returns a grown copy."""

    min: Vector3
    max: Vector3

    @staticmethod
    def from_points(points: np.ndarray) -> BoundingBox:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(points) == 0:
            raise ValueError("Cannot compute bounding box of an empty point set")
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return BoundingBox(
            (float(lo[0]), float(lo[1]), float(lo[2])),
            (float(hi[0]), float(hi[1]), float(hi[2])),
        )

    def merge(self, other: BoundingBox | Sequence[float]) -> BoundingBox:
        if isinstance(other, BoundingBox):
            points = np.array([self.min, self.max, other.min, other.max])
        else:
            points = np.array([self.min, self.max, tuple(other)[:3]])
        return BoundingBox.from_points(points)

    def contains(self, point: Sequence[float], eps: float = 0.0) -> bool:
        return all(
            lo - eps <= p <= hi + eps for lo, p, hi in zip(self.min, point, self.max)
        )

    @property
    def size(self) -> Vector3:
        return (
            self.max[0] - self.min[0],
            self.max[1] - self.min[1],
            self.max[2] - self.min[2],
        )


@dataclass(frozen=True, slots=True)
class DrawRange:
    """Triangle-list range of the shared index buffer used by one LOD."""

    index_offset: int
    index_count: int
    lod_distance: float = 0.0


@dataclass(frozen=True, slots=True)
class MergedMesh:
    """
    GPU-ready mesh: one vertex buffer, one index buffer and per-geometry
    LOD draw ranges. `geometries[i][lod]` is the range of material slot i.
    """

    vertices: bytes
    indices: bytes
    vertex_layout: VertexLayout
    large_indices: bool
    geometries: Tuple[Tuple[DrawRange, ...], ...]
    materials: Tuple[object, ...] = ()
    bounding_box: Optional[BoundingBox] = None

    @property
    def index_element_size(self) -> int:
        return 4 if self.large_indices else 2

    @property
    def num_vertices(self) -> int:
        return len(self.vertices) // self.vertex_layout.stride_bytes

    @property
    def num_indices(self) -> int:
        return len(self.indices) // self.index_element_size

    @property
    def num_geometries(self) -> int:
        return len(self.geometries)

    @property
    def aabb(self) -> Optional[Tuple[Vector3, Vector3]]:
        if self.bounding_box is None:
            return None
        return self.bounding_box.min, self.bounding_box.max

    def num_lod_levels(self, geometry: int) -> int:
        return len(self.geometries[geometry])

    def draw_range(self, geometry: int, lod: int = 0) -> DrawRange:
        return self.geometries[geometry][lod]

    def vertex_array(self) -> np.ndarray:
        return self.vertex_layout.unpack(self.vertices)

    def index_array(self) -> np.ndarray:
        dtype = "<u4" if self.large_indices else "<u2"
        return np.frombuffer(self.indices, dtype=dtype)


def pack_indices(indices: Iterable[int], large_indices: bool) -> bytes:
    array = np.asarray(list(indices) if not isinstance(indices, np.ndarray) else indices)
    limit = 0xFFFFFFFF if large_indices else 0xFFFF
    if array.size and (array.min() < 0 or array.max() > limit):
        raise ValueError(
            f"Index values out of range for {'32' if large_indices else '16'}-bit indices"
        )
    return array.astype("<u4" if large_indices else "<u2").tobytes()


def append_model_geometries(dest: MergedMesh, source: MergedMesh) -> MergedMesh:
    """
    Return `dest` extended with every geometry of `source`.

    Source vertices are appended to the shared buffer and its indices and
    draw ranges are shifted accordingly.
    """
    if dest.vertex_layout != source.vertex_layout:
        raise ValueError("Cannot append geometries with a different vertex layout")

    large = dest.large_indices or source.large_indices
    base_vertex = dest.num_vertices
    base_index = dest.num_indices

    indices = np.concatenate(
        [
            dest.index_array().astype(np.int64),
            source.index_array().astype(np.int64) + base_vertex,
        ]
    )
    shifted = tuple(
        tuple(replace(r, index_offset=r.index_offset + base_index) for r in levels)
        for levels in source.geometries
    )

    box = dest.bounding_box
    if source.bounding_box is not None:
        box = source.bounding_box if box is None else box.merge(source.bounding_box)

    return replace(
        dest,
        vertices=dest.vertices + source.vertices,
        indices=pack_indices(indices, large),
        large_indices=large,
        geometries=dest.geometries + shifted,
        materials=dest.materials + source.materials,
        bounding_box=box,
    )


def append_empty_lod(model: MergedMesh, distance: float) -> MergedMesh:
    """Add an empty LOD level at `distance` to every geometry (fade-out)."""
    geometries = tuple(
        levels + (DrawRange(index_offset=0, index_count=0, lod_distance=distance),)
        for levels in model.geometries
    )
    return replace(model, geometries=geometries)

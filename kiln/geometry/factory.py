# kiln/geometry/factory.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np

from kiln.geometry.model import BoundingBox, DrawRange, MergedMesh, pack_indices
from kiln.geometry.vertex import ElementType, VertexLayout, VertexSemantic

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GeometryGroup:
    """Vertex and index bytes of one (material, LOD) pair; indices are 0-based."""

    vertex_data: bytearray = field(default_factory=bytearray)
    index_data: bytearray = field(default_factory=bytearray)


def adjust_indices_base(index_data: bytearray, large_indices: bool, base: int, offset: int = 0) -> None:
    """Add `base` to every index stored in index_data[offset:] in place."""
    if base == 0 or offset >= len(index_data):
        return
    dtype = np.dtype("<u4" if large_indices else "<u2")
    view = np.frombuffer(bytes(index_data[offset:]), dtype=dtype)
    shifted = view.astype(np.int64) + base
    if shifted.size and shifted.max() > np.iinfo(dtype).max:
        raise ValueError(
            f"Index base {base} overflows {dtype.itemsize * 8}-bit indices"
        )
    index_data[offset:] = shifted.astype(dtype).tobytes()


@dataclass(frozen=True, slots=True)
class GroupHandle:
    """Token addressing one (material slot, LOD level) group of a factory."""

    factory: GeometryBufferFactory
    material_index: int
    lod: int
    generation: int = 0

    def submit(
        self,
        vertex_data: bytes,
        num_vertices: int,
        index_data: bytes,
        num_indices: int,
        adjust_indices: bool = True,
    ) -> None:
        self.factory._check_handle(self)
        self.factory._append(
            self.material_index,
            self.lod,
            vertex_data,
            num_vertices,
            index_data,
            num_indices,
            adjust_indices,
        )

    def submit_arrays(
        self,
        vertices: np.ndarray,
        indices: Iterable[int],
        adjust_indices: bool = True,
    ) -> None:
        """Submit a structured vertex array and a sequence of local indices."""
        self.factory._check_handle(self)
        self.factory._append_arrays(
            self.material_index, self.lod, vertices, indices, adjust_indices
        )

    @property
    def num_vertices(self) -> int:
        self.factory._check_handle(self)
        return self.factory.num_vertices(self.material_index, self.lod)


class GeometryBufferFactory:
    """
    Accumulates raw vertex/index submissions per material and LOD level and
    merges them into a single mesh.

    Two ways to address groups:
        - `begin_group(material, lod)` returns a GroupHandle to submit into.
        - `select_material` / `select_lod` / `submit_geometry` use a cursor
          owned by this factory (one caller at a time).
    """

    def __init__(
        self, layout: Optional[VertexLayout] = None, large_indices: bool = True
    ) -> None:
        self._layout: Optional[VertexLayout] = None
        self._large_indices = large_indices
        self._materials: List[Any] = []
        self._groups: List[List[GeometryGroup]] = []
        self._current_material = 0
        self._current_lod = 0
        self._generation = 0

        if layout is not None:
            self.reset(layout, large_indices)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reset(self, layout: VertexLayout, large_indices: bool) -> None:
        """Drop all groups and fix vertex stride and index width."""
        self._layout = layout
        self._large_indices = large_indices
        self._materials.clear()
        self._groups.clear()
        self._current_material = 0
        self._current_lod = 0
        self._generation += 1

    @property
    def layout(self) -> VertexLayout:
        if self._layout is None:
            raise RuntimeError("GeometryBufferFactory used before reset()")
        return self._layout

    @property
    def large_indices(self) -> bool:
        return self._large_indices

    @property
    def vertex_size(self) -> int:
        return self.layout.stride_bytes

    @property
    def index_size(self) -> int:
        return 4 if self._large_indices else 2

    # ------------------------------------------------------------------
    # Group addressing
    # ------------------------------------------------------------------

    def add_material(self, material: Any, reuse: bool = True) -> int:
        """Return the slot for `material`, reusing a slot holding the same object."""
        if reuse:
            for index, existing in enumerate(self._materials):
                if existing is material:
                    return index

        self._materials.append(material)
        self._groups.append([])
        return len(self._materials) - 1

    def begin_group(self, material: Any, lod: int = 0, reuse: bool = True) -> GroupHandle:
        if lod < 0:
            raise ValueError(f"LOD level must be >= 0, got {lod}")
        return GroupHandle(self, self.add_material(material, reuse), lod, self._generation)

    def _check_handle(self, handle: GroupHandle) -> None:
        if handle.factory is not self or handle.generation != self._generation:
            raise ValueError("GroupHandle was issued before the last reset() and is stale")

    def select_material(self, material: Any, reuse: bool = True) -> None:
        self._current_material = self.add_material(material, reuse)

    def select_lod(self, level: int) -> None:
        if level < 0:
            raise ValueError(f"LOD level must be >= 0, got {level}")
        self._current_lod = level

    def submit_geometry(
        self,
        vertex_data: bytes,
        num_vertices: int,
        index_data: bytes,
        num_indices: int,
        adjust_indices: bool = True,
    ) -> None:
        self._append(
            self._current_material,
            self._current_lod,
            vertex_data,
            num_vertices,
            index_data,
            num_indices,
            adjust_indices,
        )

    def submit_arrays(
        self, vertices: np.ndarray, indices: Iterable[int], adjust_indices: bool = True
    ) -> None:
        self._append_arrays(
            self._current_material, self._current_lod, vertices, indices, adjust_indices
        )

    @property
    def current_num_vertices(self) -> int:
        return self.num_vertices(self._current_material, self._current_lod)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _group(self, material_index: int, lod: int) -> GeometryGroup:
        if material_index >= len(self._groups):
            # Cursor submissions before any select_material get an unnamed slot.
            if material_index != 0 or self._groups:
                raise ValueError(f"Material slot {material_index} was never allocated")
            self._materials.append(None)
            self._groups.append([])

        levels = self._groups[material_index]
        while lod >= len(levels):
            levels.append(GeometryGroup())
        return levels[lod]

    def _append(
        self,
        material_index: int,
        lod: int,
        vertex_data: bytes,
        num_vertices: int,
        index_data: bytes,
        num_indices: int,
        adjust_indices: bool,
    ) -> None:
        vertex_bytes = num_vertices * self.vertex_size
        index_bytes = num_indices * self.index_size
        if len(vertex_data) != vertex_bytes:
            raise ValueError(
                f"Vertex data is {len(vertex_data)} bytes, expected {vertex_bytes} "
                f"({num_vertices} x stride {self.vertex_size})"
            )
        if len(index_data) != index_bytes:
            raise ValueError(
                f"Index data is {len(index_data)} bytes, expected {index_bytes} "
                f"({num_indices} x {self.index_size})"
            )

        group = self._group(material_index, lod)
        base = len(group.vertex_data) // self.vertex_size
        offset = len(group.index_data)

        group.vertex_data += vertex_data
        group.index_data += index_data

        if adjust_indices:
            adjust_indices_base(group.index_data, self._large_indices, base, offset)

        dtype = "<u4" if self._large_indices else "<u2"
        added = np.frombuffer(bytes(group.index_data[offset:]), dtype=dtype)
        total = base + num_vertices
        if added.size and int(added.max()) >= total:
            del group.vertex_data[base * self.vertex_size :]
            del group.index_data[offset:]
            raise ValueError(
                f"Index {int(added.max())} out of range for group with {total} vertices"
            )

    def _append_arrays(
        self,
        material_index: int,
        lod: int,
        vertices: np.ndarray,
        indices: Iterable[int],
        adjust_indices: bool,
    ) -> None:
        if vertices.dtype.itemsize != self.vertex_size:
            raise ValueError(
                f"Vertex array stride {vertices.dtype.itemsize} does not match layout "
                f"stride {self.vertex_size}"
            )
        index_data = pack_indices(indices, self._large_indices)
        self._append(
            material_index,
            lod,
            np.ascontiguousarray(vertices).tobytes(),
            len(vertices),
            index_data,
            len(index_data) // self.index_size,
            adjust_indices,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def materials(self) -> Sequence[Any]:
        return tuple(self._materials)

    @property
    def num_geometries(self) -> int:
        return len(self._groups)

    def num_levels(self, geometry: int) -> int:
        return len(self._groups[geometry]) if geometry < self.num_geometries else 0

    def num_vertices(self, geometry: int, lod: int) -> int:
        if lod >= self.num_levels(geometry):
            return 0
        return len(self._groups[geometry][lod].vertex_data) // self.vertex_size

    def num_indices(self, geometry: int, lod: int) -> int:
        if lod >= self.num_levels(geometry):
            return 0
        return len(self._groups[geometry][lod].index_data) // self.index_size

    def vertices(self, geometry: int, lod: int) -> Optional[bytes]:
        if lod >= self.num_levels(geometry):
            return None
        return bytes(self._groups[geometry][lod].vertex_data)

    def indices(self, geometry: int, lod: int) -> Optional[bytes]:
        if lod >= self.num_levels(geometry):
            return None
        return bytes(self._groups[geometry][lod].index_data)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> MergedMesh:
        """
        Merge every group into one vertex and one index buffer.

        Materials without LOD levels are dropped. Groups are concatenated in
        material order, then ascending LOD, and their indices are rebased on
        the running vertex count.
        """
        kept = [
            (material, levels)
            for material, levels in zip(self._materials, self._groups)
            if levels
        ]

        vertex_data = bytearray()
        index_data = bytearray()
        geometries: List[tuple[DrawRange, ...]] = []

        for _, levels in kept:
            ranges = []
            for group in levels:
                index_offset = len(index_data) // self.index_size
                base = len(vertex_data) // self.vertex_size
                offset = len(index_data)

                vertex_data += group.vertex_data
                index_data += group.index_data
                adjust_indices_base(index_data, self._large_indices, base, offset)

                ranges.append(
                    DrawRange(
                        index_offset=index_offset,
                        index_count=len(group.index_data) // self.index_size,
                    )
                )
            geometries.append(tuple(ranges))

        return MergedMesh(
            vertices=bytes(vertex_data),
            indices=bytes(index_data),
            vertex_layout=self.layout,
            large_indices=self._large_indices,
            geometries=tuple(geometries),
            materials=tuple(material for material, _ in kept),
            bounding_box=self._compute_bounding_box(bytes(vertex_data)),
        )

    def _compute_bounding_box(self, vertex_data: bytes) -> Optional[BoundingBox]:
        found = self.layout.find(VertexSemantic.POSITION, 0)
        if found is None:
            logger.error("Position was not found in vertex layout; no bounding box")
            return None

        element, offset = found
        if element.type not in (ElementType.VECTOR3, ElementType.VECTOR4):
            logger.error(
                "Position attribute must have type VECTOR3 or VECTOR4, got %s",
                element.type.name,
            )
            return None

        num_vertices = len(vertex_data) // self.vertex_size
        if num_vertices == 0:
            logger.warning("Merged mesh has no vertices; no bounding box")
            return None

        positions = np.ndarray(
            shape=(num_vertices, 3),
            dtype="<f4",
            buffer=vertex_data,
            offset=offset,
            strides=(self.vertex_size, 4),
        )
        return BoundingBox.from_points(positions)

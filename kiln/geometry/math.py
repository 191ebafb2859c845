# kiln/geometry/math.py
"""
Per-vertex geometry helpers operating on structured vertex arrays.

Vertex arrays use the field names of `VertexLayout.dtype`: "position",
"normal", "tangent", "binormal" and "texcoord" (UV channel 0). All
accumulations are vectorized with numpy; functions that compute derived
channels write them in place.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from kiln.geometry.model import BoundingBox

# Below this the UV cross product is treated as zero (parallel UV edges).
TANGENT_EPSILON = 1e-6

_NORMALIZED_FIELDS = frozenset({"normal", "normal1", "tangent", "binormal"})


def _triangles(indices: Sequence[int] | np.ndarray) -> np.ndarray:
    tris = np.asarray(indices, dtype=np.int64)
    if tris.size % 3 != 0:
        raise ValueError(f"Index count {tris.size} is not a multiple of 3")
    return tris.reshape(-1, 3)


def _normalize_rows(v: np.ndarray) -> np.ndarray:
    """Normalize along the last axis; zero-length rows stay zero."""
    length = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, length, out=np.zeros_like(v), where=length > 0.0)


def compute_bounding_box(vertices: np.ndarray) -> BoundingBox:
    if len(vertices) == 0:
        raise ValueError("Bounding box requires at least one vertex")
    return BoundingBox.from_points(vertices["position"])


def compute_normals(vertices: np.ndarray, indices: Sequence[int] | np.ndarray) -> None:
    """
    Accumulate face normals into "normal" and normalize.

    Face normals are the raw edge cross products, so larger faces weigh more.
    """
    tris = _triangles(indices)
    pos = vertices["position"].astype(np.float64)

    p0, p1, p2 = pos[tris[:, 0]], pos[tris[:, 1]], pos[tris[:, 2]]
    face = np.cross(p1 - p0, p2 - p0)

    acc = vertices["normal"].astype(np.float64)
    for corner in range(3):
        np.add.at(acc, tris[:, corner], face)

    vertices["normal"] = _normalize_rows(acc)


def compute_tangent(v0, v1, v2) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tangent and binormal of one triangle from position and UV0 deltas.

    Returns zero vectors when the UV edges are parallel.
    """
    vector1 = np.asarray(v1["position"], np.float64) - np.asarray(v0["position"], np.float64)
    vector2 = np.asarray(v2["position"], np.float64) - np.asarray(v0["position"], np.float64)

    uv1 = np.asarray(v1["texcoord"], np.float64) - np.asarray(v0["texcoord"], np.float64)
    uv2 = np.asarray(v2["texcoord"], np.float64) - np.asarray(v0["texcoord"], np.float64)

    cp = uv1[0] * uv2[1] - uv2[0] * uv1[1]
    if abs(cp) <= TANGENT_EPSILON:
        return np.zeros(3), np.zeros(3)

    den = 1.0 / cp
    tangent = (uv2[1] * vector1 - uv1[1] * vector2) * den
    binormal = (uv1[0] * vector2 - uv2[0] * vector1) * den
    return tangent, binormal


def compute_tangents(vertices: np.ndarray, indices: Sequence[int] | np.ndarray) -> None:
    """Accumulate per-triangle tangents/binormals per vertex and normalize."""
    tris = _triangles(indices)
    pos = vertices["position"].astype(np.float64)
    uv = vertices["texcoord"][:, :2].astype(np.float64)

    vector1 = pos[tris[:, 1]] - pos[tris[:, 0]]
    vector2 = pos[tris[:, 2]] - pos[tris[:, 0]]
    uv1 = uv[tris[:, 1]] - uv[tris[:, 0]]
    uv2 = uv[tris[:, 2]] - uv[tris[:, 0]]

    cp = uv1[:, 0] * uv2[:, 1] - uv2[:, 0] * uv1[:, 1]
    valid = np.abs(cp) > TANGENT_EPSILON
    den = np.divide(1.0, cp, out=np.zeros_like(cp), where=valid)[:, None]

    tangent = (uv2[:, 1:2] * vector1 - uv1[:, 1:2] * vector2) * den
    binormal = (uv1[:, 0:1] * vector2 - uv2[:, 0:1] * vector1) * den

    acc_t = vertices["tangent"].astype(np.float64)
    acc_b = vertices["binormal"].astype(np.float64)
    for corner in range(3):
        np.add.at(acc_t, tris[:, corner], tangent)
        np.add.at(acc_b, tris[:, corner], binormal)

    vertices["tangent"] = _normalize_rows(acc_t)
    vertices["binormal"] = _normalize_rows(acc_b)


def packed_tangent(vertices: np.ndarray) -> np.ndarray:
    """Tangent xyz plus binormal handedness in w (+1 or -1)."""
    tangent = np.asarray(vertices["tangent"], np.float64)
    normal = np.asarray(vertices["normal"], np.float64)
    binormal = np.asarray(vertices["binormal"], np.float64)
    sign = np.where(np.sum(np.cross(tangent, normal) * binormal, axis=-1) > 0, 1.0, -1.0)
    return np.concatenate([tangent, sign[..., None]], axis=-1)


def lerp_vertices(lhs, rhs, factor) -> np.ndarray:
    """
    Interpolate every float channel; integer channels (bone indices) come
    from `lhs`. Direction channels are re-normalized.

    Accepts single records or arrays; shapes broadcast against `factor`.
    """
    lhs = np.asarray(lhs)
    rhs = np.asarray(rhs)
    factor = np.asarray(factor, dtype=np.float64)

    shape = np.broadcast_shapes(lhs.shape, rhs.shape, factor.shape)
    lhs = np.broadcast_to(lhs, shape)
    rhs = np.broadcast_to(rhs, shape)
    factor = np.broadcast_to(factor, shape)

    result = np.empty(shape, dtype=lhs.dtype)
    for name in lhs.dtype.names:
        field = lhs.dtype[name]
        a = lhs[name]
        if not np.issubdtype(field.base, np.floating):
            result[name] = a
            continue

        f = factor.reshape(shape + (1,) * len(field.shape))
        value = a + (rhs[name].astype(np.float64) - a) * f
        if name in _NORMALIZED_FIELDS:
            value = _normalize_rows(value)
        result[name] = value
    return result


def qlerp_vertices(v0, v1, v2, v3, factor1, factor2) -> np.ndarray:
    """Bilinear interpolation: v0-v1 along factor1, then rows along factor2."""
    return lerp_vertices(
        lerp_vertices(v0, v1, factor1), lerp_vertices(v2, v3, factor1), factor2
    )


def append_quad_indices(
    indices: List[int],
    base: int,
    v0: int,
    v1: int,
    v2: int,
    v3: int,
    flipped: bool = False,
) -> None:
    """Two triangles for a quad laid out as v0 v1 (top) / v2 v3 (bottom)."""
    if not flipped:
        indices.extend((base + v0, base + v2, base + v3, base + v0, base + v3, base + v1))
    else:
        indices.extend((base + v0, base + v3, base + v2, base + v0, base + v1, base + v3))


def append_quad(
    vertices: Optional[np.ndarray],
    indices: List[int],
    v0,
    v1,
    v2,
    v3,
    flipped: bool = False,
) -> np.ndarray:
    """
    Append the four corners to `vertices` and their two triangles to `indices`.

    Indices are based on the vertex count before the append. Returns the
    grown vertex array; `vertices` may be None to start a new one.
    """
    quad = np.stack([np.asarray(v) for v in (v0, v1, v2, v3)])
    if vertices is None:
        base = 0
        grown = quad
    else:
        base = len(vertices)
        grown = np.concatenate([vertices, quad.astype(vertices.dtype)])
    append_quad_indices(indices, base, 0, 1, 2, 3, flipped)
    return grown


def tessellate_quad(
    v0,
    v1,
    v2,
    v3,
    steps_x: int,
    steps_z: int,
    flipped: bool = False,
) -> Tuple[np.ndarray, List[int]]:
    """
    Subdivide the quad into steps_x * steps_z cells.

    Vertices are emitted row by row ((steps_x + 1) per row); indices are
    0-based relative to the returned vertex array.
    """
    if steps_x < 1 or steps_z < 1:
        raise ValueError(f"Quad grid needs at least one step, got {steps_x}x{steps_z}")

    fx = np.arange(steps_x + 1, dtype=np.float64) / steps_x
    fz = np.arange(steps_z + 1, dtype=np.float64) / steps_z
    factor1 = np.tile(fx, steps_z + 1)
    factor2 = np.repeat(fz, steps_x + 1)

    vertices = qlerp_vertices(v0, v1, v2, v3, factor1, factor2)

    row = steps_x + 1
    indices: List[int] = []
    for j in range(steps_z):
        for i in range(steps_x):
            append_quad_indices(
                indices,
                0,
                j * row + i,
                j * row + i + 1,
                (j + 1) * row + i,
                (j + 1) * row + i + 1,
                flipped,
            )
    return vertices, indices

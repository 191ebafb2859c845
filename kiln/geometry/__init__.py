from kiln.geometry.factory import GeometryBufferFactory, GroupHandle
from kiln.geometry.math import (
    append_quad,
    compute_bounding_box,
    compute_normals,
    compute_tangent,
    compute_tangents,
    lerp_vertices,
    qlerp_vertices,
    tessellate_quad,
)
from kiln.geometry.model import (
    BoundingBox,
    DrawRange,
    MergedMesh,
    append_empty_lod,
    append_model_geometries,
)
from kiln.geometry.primitives import (
    GeometrySubmission,
    QuadModelCache,
    build_mesh,
    create_quad_model,
)
from kiln.geometry.vertex import (
    DEFAULT_LAYOUT,
    ElementType,
    VertexElement,
    VertexLayout,
    VertexSemantic,
)

__all__ = [
    "GeometryBufferFactory",
    "GroupHandle",
    "GeometrySubmission",
    "QuadModelCache",
    "build_mesh",
    "create_quad_model",
    "BoundingBox",
    "DrawRange",
    "MergedMesh",
    "append_empty_lod",
    "append_model_geometries",
    "append_quad",
    "compute_bounding_box",
    "compute_normals",
    "compute_tangent",
    "compute_tangents",
    "lerp_vertices",
    "qlerp_vertices",
    "tessellate_quad",
    "DEFAULT_LAYOUT",
    "ElementType",
    "VertexElement",
    "VertexLayout",
    "VertexSemantic",
]

import numpy as np
import pytest

from kiln.geometry.model import append_empty_lod, append_model_geometries, pack_indices
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


def test_default_layout_stride():
    assert DEFAULT_LAYOUT.stride_bytes == 208
    assert DEFAULT_LAYOUT.dtype.itemsize == 208


def test_quad_model_shape(quad):
    vertices = quad.vertex_array()

    assert quad.num_vertices == 4
    assert list(quad.index_array()) == [0, 2, 3, 0, 3, 1]
    assert quad.aabb == ((0.0, 0.0, 0.5), (1.0, 1.0, 0.5))
    np.testing.assert_allclose(vertices["texcoord"][2], [0, 0, 0, 0])
    np.testing.assert_allclose(vertices["texcoord"][0], [0, 1, 0, 0])
    np.testing.assert_allclose(vertices["texcoord1"], np.ones((4, 4)))


def test_quad_cache_builds_once():
    cache = QuadModelCache()

    first = cache.get()
    assert cache.get() is first

    cache.clear()
    assert cache.get() is not first


def test_build_mesh_from_submissions():
    vertices = DEFAULT_LAYOUT.allocate(3)
    vertices["position"] = [(0, 0, 0), (1, 0, 0), (0, 1, 0)]
    sub = GeometrySubmission(
        vertices=vertices.tobytes(),
        num_vertices=3,
        indices=pack_indices([0, 1, 2], False),
        num_indices=3,
        material="m",
    )

    mesh = build_mesh(DEFAULT_LAYOUT, False, [sub, sub])

    assert mesh.num_vertices == 6
    assert list(mesh.index_array()) == [0, 1, 2, 3, 4, 5]
    assert mesh.materials == ("m",)


def test_append_model_geometries(quad):
    merged = append_model_geometries(quad, quad)

    assert merged.num_vertices == 8
    assert merged.num_geometries == 2
    assert list(merged.index_array()[6:]) == [4, 6, 7, 4, 7, 5]
    assert merged.draw_range(1).index_offset == 6
    assert quad.num_vertices == 4


def test_append_rejects_other_layouts(quad):
    layout = VertexLayout.of([VertexElement(ElementType.VECTOR3, VertexSemantic.POSITION)])
    other = build_mesh(layout, True, [])

    with pytest.raises(ValueError):
        append_model_geometries(quad, other)


def test_append_empty_lod(quad):
    faded = append_empty_lod(quad, 40.0)

    assert faded.num_lod_levels(0) == 2
    assert faded.draw_range(0, 1).index_count == 0
    assert faded.draw_range(0, 1).lod_distance == 40.0


def test_pack_indices_range_check():
    with pytest.raises(ValueError):
        pack_indices([0, 70000], large_indices=False)

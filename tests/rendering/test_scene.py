import math

import numpy as np
import pytest

from kiln.rendering.scene import CameraComponent, IntRect, SceneNode, StaticModel, TransientScene
from kiln.rendering.transform import (
    create_orthographic_projection,
    quaternion_to_matrix,
    to_uniform_bytes,
)


def project(node, point):
    clip = node.camera.projection() @ node.view_matrix() @ np.array([*point, 1.0])
    return clip[:3] / clip[3]


def test_identity_camera_maps_unit_square_to_clip_space():
    node = SceneNode(position=(0.5, 0.5, 0.0), camera=CameraComponent())

    np.testing.assert_allclose(project(node, (0.0, 0.0, 0.5)), [-1, -1, 0], atol=1e-6)
    np.testing.assert_allclose(project(node, (1.0, 1.0, 0.5)), [1, 1, 0], atol=1e-6)


def test_depth_range_spans_clip_planes():
    node = SceneNode(camera=CameraComponent(near_clip=0.0, far_clip=2.0))

    assert project(node, (0, 0, 0))[2] == pytest.approx(-1.0)
    assert project(node, (0, 0, 2))[2] == pytest.approx(1.0)


def test_rotation_quaternion():
    half = math.sqrt(0.5)
    rot = quaternion_to_matrix((0.0, 0.0, half, half))  # 90 degrees about Z

    np.testing.assert_allclose(rot[:3, :3] @ [1, 0, 0], [0, 1, 0], atol=1e-6)


def test_view_matrix_inverts_world_matrix():
    half = math.sqrt(0.5)
    node = SceneNode(position=(1.0, 2.0, 3.0), rotation=(half, 0.0, 0.0, half))

    np.testing.assert_allclose(node.view_matrix() @ node.world_matrix(), np.eye(4), atol=1e-6)


def test_projection_rejects_zero_size():
    with pytest.raises(ValueError):
        create_orthographic_projection(0.0, 1.0, 0.0, 1.0)


def test_uniform_bytes_are_column_major():
    matrix = np.arange(16, dtype=np.float32).reshape(4, 4)

    data = np.frombuffer(to_uniform_bytes(matrix), dtype=np.float32)

    assert list(data[:4]) == [0.0, 4.0, 8.0, 12.0]


def test_rect_size():
    rect = IntRect(2, 1, 6, 4)
    assert (rect.width, rect.height) == (4, 3)
    assert not rect.is_empty
    assert IntRect(0, 0, 0, 5).is_empty


def test_transient_scene_is_cleared_on_exit(quad):
    node = SceneNode(models=[StaticModel(quad, [None])])

    with TransientScene() as scene:
        scene.add(node)
        assert len(list(scene.drawables())) == 1

    assert scene.nodes == ()
    with pytest.raises(RuntimeError):
        scene.add(node)


def test_transient_scene_is_cleared_on_error(quad):
    scene = TransientScene()
    with pytest.raises(KeyError):
        with scene:
            scene.add(SceneNode())
            raise KeyError("boom")

    assert scene.nodes == ()


def test_static_model_material_slots(quad):
    model = StaticModel(quad)
    assert model.material(0) is None

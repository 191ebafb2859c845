# kiln/rendering/transform.py
"""
Matrix helpers for scene nodes and cameras.

Matrices are column-vector (`M @ v`) float32 4x4 arrays; upload them
transposed so GLSL sees the same matrix.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

Quaternion = Sequence[float]


def quaternion_to_matrix(q: Quaternion) -> np.ndarray:
    """Rotation matrix of a unit quaternion given as (x, y, z, w)."""
    x, y, z, w = q[0], q[1], q[2], q[3]

    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z

    mat = np.eye(4, dtype=np.float32)
    mat[0, 0] = 1.0 - 2.0 * (yy + zz)
    mat[0, 1] = 2.0 * (xy - wz)
    mat[0, 2] = 2.0 * (xz + wy)
    mat[1, 0] = 2.0 * (xy + wz)
    mat[1, 1] = 1.0 - 2.0 * (xx + zz)
    mat[1, 2] = 2.0 * (yz - wx)
    mat[2, 0] = 2.0 * (xz - wy)
    mat[2, 1] = 2.0 * (yz + wx)
    mat[2, 2] = 1.0 - 2.0 * (xx + yy)
    return mat


def create_model_matrix(position: Sequence[float], rotation: Quaternion) -> np.ndarray:
    mat = quaternion_to_matrix(rotation)
    mat[:3, 3] = position[:3]
    return mat


def create_view_matrix(position: Sequence[float], rotation: Quaternion) -> np.ndarray:
    """World to camera space: the inverse of the camera node's model matrix."""
    rot = quaternion_to_matrix(rotation)[:3, :3]
    view = np.eye(4, dtype=np.float32)
    view[:3, :3] = rot.T
    view[:3, 3] = -(rot.T @ np.asarray(position[:3], dtype=np.float32))
    return view


def create_orthographic_projection(
    width: float, height: float, near: float, far: float
) -> np.ndarray:
    """
    Orthographic projection for a camera looking down +Z.

    Camera-space x in [-width/2, width/2] and y in [-height/2, height/2] map
    to clip [-1, 1]; depth [near, far] maps to [-1, 1].
    """
    if width == 0 or height == 0:
        raise ValueError(f"Orthographic size must be non-zero, got {width}x{height}")
    if near == far:
        far += 0.001

    mat = np.zeros((4, 4), dtype=np.float32)
    mat[0, 0] = 2.0 / width
    mat[1, 1] = 2.0 / height
    mat[2, 2] = 2.0 / (far - near)
    mat[2, 3] = -(far + near) / (far - near)
    mat[3, 3] = 1.0
    return mat


def to_uniform_bytes(matrix: np.ndarray) -> bytes:
    """Column-major float32 bytes ready for a mat4 uniform."""
    return np.ascontiguousarray(matrix.T, dtype=np.float32).tobytes()

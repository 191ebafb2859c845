# kiln/textures/distance_field.py
from __future__ import annotations

import logging
import math
from typing import List, Sequence, Tuple

import numpy as np

from kiln.settings import GAP_EPSILON
from kiln.textures.image import gap_mask, next_level, unpremultiply

logger = logging.getLogger(__name__)

# Neighbors already visited by a top-left to bottom-right raster scan,
# in comparison order, and their mirror for the reverse scan.
_FORWARD_NEIGHBORS = ((-1, -1), (0, -1), (1, -1), (-1, 0))
_BACKWARD_NEIGHBORS = ((1, 0), (-1, 1), (0, 1), (1, 1))


class SignedDistanceField:
    """
    Approximate distance transform of an image's gap mask.

    Every pixel stores the offset (dx, dy) to the nearest non-gap pixel and
    the length of that offset. Coordinates wrap around both axes, so fills
    stay tileable.

    Built with the two-pass 8-neighbor propagation: a forward raster pass
    comparing against up-left, up, up-right and left, then a backward pass
    comparing against right, down-left, down and down-right. The result is
    not an exact Euclidean transform.
    """

    def __init__(
        self,
        image: np.ndarray,
        is_transparent: bool = True,
        epsilon: float = GAP_EPSILON,
    ) -> None:
        self.height, self.width = image.shape[:2]

        gaps = gap_mask(image, is_transparent, epsilon).ravel()
        init = [math.inf if g else 0.0 for g in gaps.tolist()]
        dx = list(init)
        dy = list(init)
        dist = list(init)

        self._propagate(dx, dy, dist, range(self.height), range(self.width), _FORWARD_NEIGHBORS)
        self._propagate(
            dx,
            dy,
            dist,
            range(self.height - 1, -1, -1),
            range(self.width - 1, -1, -1),
            _BACKWARD_NEIGHBORS,
        )

        shape = (self.height, self.width)
        self._offsets = np.stack(
            [np.array(dx).reshape(shape), np.array(dy).reshape(shape)], axis=-1
        )
        self._distances = np.array(dist).reshape(shape)
        self._offsets.setflags(write=False)
        self._distances.setflags(write=False)

    def _propagate(
        self,
        dx: List[float],
        dy: List[float],
        dist: List[float],
        rows: Sequence[int],
        cols: Sequence[int],
        neighbors: Sequence[Tuple[int, int]],
    ) -> None:
        w, h = self.width, self.height
        for j in rows:
            for i in cols:
                idx = j * w + i
                current = dist[idx]
                for ox, oy in neighbors:
                    n = ((j + oy) % h) * w + (i + ox) % w
                    vx = dx[n] + ox
                    vy = dy[n] + oy
                    d = math.hypot(vx, vy)
                    if d < current:
                        current = d
                        dx[idx] = vx
                        dy[idx] = vy
                        dist[idx] = d

    def wrap(self, x: int, y: int) -> Tuple[int, int]:
        return x % self.width, y % self.height

    def pixel(self, x: int, y: int) -> Tuple[float, float, float]:
        """(dx, dy, distance) at a wrapped coordinate."""
        x, y = self.wrap(x, y)
        dx, dy = self._offsets[y, x]
        return float(dx), float(dy), float(self._distances[y, x])

    def distance(self, x: int, y: int) -> float:
        x, y = self.wrap(x, y)
        return float(self._distances[y, x])

    @property
    def distances(self) -> np.ndarray:
        return self._distances

    @property
    def is_empty(self) -> bool:
        """True when the source had no non-gap pixel at all."""
        return bool(np.isinf(self._distances).all())

    def nearest_pixel(self, x: int, y: int) -> Tuple[int, int]:
        """
        Wrapped coordinates of the nearest non-gap pixel.

        Returns the pixel itself when the field has no source pixel.
        """
        dx, dy, d = self.pixel(x, y)
        if math.isinf(d):
            return self.wrap(x, y)
        nx = math.floor(x + dx + 0.5)
        ny = math.floor(y + dy + 0.5)
        return self.wrap(nx, ny)

    def nearest_pixels(self) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized `nearest_pixel` for every pixel: (ys, xs) arrays."""
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]
        finite = np.isfinite(self._distances)
        offsets = np.where(finite[..., None], self._offsets, 0.0)
        nx = np.floor(xs + offsets[..., 0] + 0.5).astype(np.int64) % self.width
        ny = np.floor(ys + offsets[..., 1] + 0.5).astype(np.int64) % self.height
        return ny, nx


def fill_image_gaps(
    image: np.ndarray,
    downsample: int = 0,
    is_transparent: bool = True,
    epsilon: float = GAP_EPSILON,
) -> np.ndarray:
    """
    Replace the color of every gap pixel with the color of the nearest
    non-gap pixel, keeping the gap pixel's own alpha.

    With `downsample` > 0 the field is built on a mip level that many times
    smaller; colors of that level are un-premultiplied before sampling.
    """
    if downsample < 0:
        raise ValueError(f"downsample must be >= 0, got {downsample}")

    source = image
    for _ in range(downsample):
        source = next_level(source)
    if downsample > 0:
        source = unpremultiply(source, epsilon)

    field = SignedDistanceField(source, is_transparent, epsilon)
    if field.is_empty:
        logger.warning(
            "Image %dx%d has no valid pixels to fill gaps from",
            image.shape[1],
            image.shape[0],
        )
        return image.copy()

    factor = 1 << downsample
    height, width = image.shape[:2]
    ys, xs = np.mgrid[0:height, 0:width]
    near_y, near_x = field.nearest_pixels()

    sy = (ys // factor) % field.height
    sx = (xs // factor) % field.width
    fill = source[near_y[sy, sx], near_x[sy, sx]]

    gaps = gap_mask(image, is_transparent, epsilon)
    result = image.copy()
    result[gaps, :3] = fill[gaps, :3]

    logger.debug(
        "Filled %d gap pixels of %dx%d image (downsample %d)",
        int(gaps.sum()),
        width,
        height,
        downsample,
    )
    return result

"""
SmartWarp — Grid Mesh

A uniform lattice of control points laid over the rest-pose image.
Each point has a fixed origin and a current position. Each layer owns a
dense weight map (one float per point, 0-1) that scales how much of that
layer's displacement applies at the point.

Weight maps are keyed by layer id only, never by Layer object, so removing
a layer just drops its map.
"""

import math
from dataclasses import dataclass

import numpy as np

from core.safety import DEFAULT_DENSITY, validate_density
from physics import displacement

# Weights at or below this are treated as "no influence"
WEIGHT_EPSILON = 0.01


class MeshError(Exception):
    """Invalid mesh operation (bad weight data, unknown point)."""
    pass


@dataclass(frozen=True)
class Point:
    """Snapshot of one lattice point.

    origin: (ox, oy) rest-pose coordinates.
    position: (x, y) after the latest update.
    weights: {layer_id: weight} for every layer with a weight map.
    """
    origin: tuple
    position: tuple
    weights: dict


class GridMesh:
    """Deformable grid over a width x height image.

    Args:
        width: Rest-pose extent in pixels.
        height: Rest-pose extent in pixels.
        density: Number of rows. Columns = floor(density * width / height).
    """

    def __init__(self, width: float, height: float, density: int = DEFAULT_DENSITY):
        validate_density(density, width, height)
        self.width = float(width)
        self.height = float(height)
        self.rows = int(density)
        self.cols = int(math.floor(self.rows * self.width / self.height))

        ys, xs = np.mgrid[0:self.rows + 1, 0:self.cols + 1].astype(np.float64)
        ox = xs / self.cols * self.width
        oy = ys / self.rows * self.height
        self.origins = np.stack([ox.ravel(), oy.ravel()], axis=1)
        self.origins.setflags(write=False)
        self.positions = self.origins.copy()
        self._weights = {}

    def __len__(self):
        return len(self.origins)

    @property
    def size(self):
        return (self.width, self.height)

    def index(self, row: int, col: int) -> int:
        """Row-major index of the lattice point at (row, col)."""
        if not (0 <= row <= self.rows and 0 <= col <= self.cols):
            raise MeshError(f"Point ({row}, {col}) outside {self.rows + 1}x{self.cols + 1} lattice")
        return row * (self.cols + 1) + col

    def point(self, index: int) -> Point:
        """Read-only snapshot of a point."""
        return Point(
            origin=tuple(float(v) for v in self.origins[index]),
            position=tuple(float(v) for v in self.positions[index]),
            weights={lid: float(w[index]) for lid, w in self._weights.items()},
        )

    @property
    def points(self):
        return [self.point(i) for i in range(len(self))]

    # --- Weight maps ---

    @property
    def layer_ids(self):
        return list(self._weights)

    def weights(self, layer_id) -> np.ndarray:
        """Copy of a layer's weight map; all zeros if it was never painted."""
        w = self._weights.get(layer_id)
        if w is None:
            return np.zeros(len(self), dtype=np.float64)
        return w.copy()

    def set_weights(self, layer_id, values) -> None:
        """Replace a layer's weight map (used when loading a project)."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (len(self),):
            raise MeshError(
                f"Weight map for layer {layer_id} has {values.size} entries, "
                f"mesh has {len(self)} points"
            )
        self._weights[layer_id] = np.clip(values, 0.0, 1.0)

    def _weight_map(self, layer_id) -> np.ndarray:
        w = self._weights.get(layer_id)
        if w is None:
            w = np.zeros(len(self), dtype=np.float64)
            self._weights[layer_id] = w
        return w

    def paint(self, cx: float, cy: float, radius: float, strength: float,
              erase: bool, layer_id) -> int:
        """Brush a layer's weights around (cx, cy) with linear falloff.

        Distance is measured from each point's ORIGIN, so painting while
        the mesh is deformed still hits the rest-pose lattice.

        Returns:
            Number of points inside the brush.
        """
        if radius <= 0:
            return 0
        w = self._weight_map(layer_id)
        dist = np.hypot(self.origins[:, 0] - cx, self.origins[:, 1] - cy)
        inside = dist < radius
        delta = (1.0 - dist[inside] / radius) * strength
        if erase:
            w[inside] = np.maximum(0.0, w[inside] - delta)
        else:
            w[inside] = np.minimum(1.0, w[inside] + delta)
        assert w.min() >= 0.0 and w.max() <= 1.0, "weight left [0, 1]"
        return int(inside.sum())

    def fill(self, layer_id) -> None:
        self._weight_map(layer_id)[:] = 1.0

    def clear(self, layer_id) -> None:
        self._weight_map(layer_id)[:] = 0.0

    def drop_layer(self, layer_id) -> None:
        """Forget a removed layer's weights entirely."""
        self._weights.pop(layer_id, None)

    # --- Animation ---

    def update(self, tick: float, layers) -> None:
        """Recompute every position for global time `tick`.

        Each visible layer contributes weight * displacement at points where
        its weight exceeds WEIGHT_EPSILON. Points with no contributing layer
        snap back to their exact origin.

        Args:
            tick: Global time (the driver's integer tick counter).
            layers: Iterable of layers with layer_id, visible, config.
        """
        offset = np.zeros_like(self.origins)
        influenced = np.zeros(len(self), dtype=bool)
        ox = self.origins[:, 0]
        oy = self.origins[:, 1]

        for layer in layers:
            if not layer.visible:
                continue
            w = self._weights.get(layer.layer_id)
            if w is None:
                continue
            assert w.shape == (len(self),), "weight map / point count mismatch"
            active = w > WEIGHT_EPSILON
            if not active.any():
                continue
            config = layer.config
            dx, dy = displacement(
                (ox[active], oy[active]), tick * config.speed, config, self.size,
            )
            offset[active, 0] += dx * w[active]
            offset[active, 1] += dy * w[active]
            influenced |= active

        self.positions = np.where(influenced[:, None], self.origins + offset, self.origins)

    def reset(self) -> None:
        """Put every point back at its origin."""
        self.positions = self.origins.copy()

    def offsets(self) -> np.ndarray:
        """Per-point displacement (N, 2) from the rest pose."""
        return self.positions - self.origins

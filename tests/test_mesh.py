"""
SmartWarp -- Grid Mesh Tests
Lattice layout, weight painting, and per-tick position updates.

Run with: pytest tests/test_mesh.py -v
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.layer import Layer, LayerStack
from core.mesh import WEIGHT_EPSILON, GridMesh, MeshError
from core.safety import SafetyError
from physics import LayerConfig, PhysicsKind, default_config


def _layer(layer_id=1, kind=PhysicsKind.WIND, visible=True, **config):
    cfg = default_config(kind).with_updates(**config) if config else default_config(kind)
    return Layer(layer_id=layer_id, name=f"L{layer_id}", visible=visible, config=cfg)


class TestLattice:
    def test_point_count(self):
        mesh = GridMesh(200, 100, density=10)
        assert mesh.rows == 10
        assert mesh.cols == 20
        assert len(mesh) == 11 * 21

    def test_columns_floor_aspect(self):
        mesh = GridMesh(150, 100, density=5)
        assert mesh.cols == 7  # floor(7.5)

    def test_corners_and_spacing(self):
        mesh = GridMesh(200, 100, density=10)
        np.testing.assert_allclose(mesh.origins[mesh.index(0, 0)], (0, 0))
        np.testing.assert_allclose(mesh.origins[mesh.index(10, 20)], (200, 100))
        np.testing.assert_allclose(mesh.origins[mesh.index(3, 4)], (40, 30))

    def test_row_major_order(self):
        mesh = GridMesh(100, 100, density=4)
        assert mesh.index(1, 0) == mesh.cols + 1
        np.testing.assert_allclose(mesh.origins[1], (25, 0))

    def test_starts_at_rest(self):
        mesh = GridMesh(100, 80, density=8)
        np.testing.assert_array_equal(mesh.positions, mesh.origins)
        assert not np.any(mesh.offsets())

    def test_origins_read_only(self):
        mesh = GridMesh(100, 80, density=8)
        with pytest.raises(ValueError):
            mesh.origins[0, 0] = 5.0

    def test_index_out_of_range(self):
        mesh = GridMesh(100, 100, density=4)
        with pytest.raises(MeshError):
            mesh.index(5, 0)

    def test_point_snapshot(self):
        mesh = GridMesh(100, 100, density=4)
        mesh.fill(3)
        p = mesh.point(mesh.index(2, 2))
        assert p.origin == (50.0, 50.0)
        assert p.position == (50.0, 50.0)
        assert p.weights == {3: 1.0}
        assert len(mesh.points) == len(mesh)

    @pytest.mark.parametrize("density", [0, -3, 201, 2.5])
    def test_bad_density(self, density):
        with pytest.raises(SafetyError):
            GridMesh(100, 100, density=density)

    def test_too_narrow(self):
        with pytest.raises(SafetyError):
            GridMesh(5, 100, density=10)


class TestPaint:
    def test_linear_falloff(self):
        mesh = GridMesh(100, 100, density=10)
        center = mesh.index(5, 5)          # (50, 50)
        near = mesh.index(5, 6)            # 10px away
        count = mesh.paint(50, 50, 40, 0.5, False, 1)
        w = mesh.weights(1)
        assert w[center] == pytest.approx(0.5)
        assert w[near] == pytest.approx((1 - 10 / 40) * 0.5)
        assert count == int(np.sum(np.hypot(mesh.origins[:, 0] - 50, mesh.origins[:, 1] - 50) < 40))

    def test_outside_radius_untouched(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.paint(50, 50, 25, 1.0, False, 1)
        w = mesh.weights(1)
        far = np.hypot(mesh.origins[:, 0] - 50, mesh.origins[:, 1] - 50) >= 25
        assert np.all(w[far] == 0.0)
        assert mesh.weights(1)[mesh.index(0, 0)] == 0.0

    def test_clamped_to_unit(self):
        mesh = GridMesh(100, 100, density=10)
        for _ in range(20):
            mesh.paint(50, 50, 30, 0.8, False, 1)
        w = mesh.weights(1)
        assert w.max() == pytest.approx(1.0)
        assert w.min() >= 0.0

    def test_erase_clamps_at_zero(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.paint(50, 50, 30, 0.3, False, 1)
        for _ in range(5):
            mesh.paint(50, 50, 30, 0.5, True, 1)
        assert mesh.weights(1).min() == 0.0
        assert mesh.weights(1).max() == 0.0

    def test_layers_independent(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.paint(20, 20, 30, 1.0, False, 1)
        mesh.paint(80, 80, 30, 1.0, False, 2)
        assert mesh.weights(1)[mesh.index(8, 8)] == 0.0
        assert mesh.weights(2)[mesh.index(2, 2)] == 0.0

    def test_paint_uses_origins(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        mesh.update(5, [_layer(1, PhysicsKind.WIND)])
        mesh.paint(50, 50, 15, 0.5, False, 2)
        w = mesh.weights(2)
        assert w[mesh.index(5, 5)] == pytest.approx(0.5)

    def test_zero_radius_noop(self):
        mesh = GridMesh(100, 100, density=10)
        assert mesh.paint(50, 50, 0, 1.0, False, 1) == 0
        assert not mesh.weights(1).any()

    def test_fill_and_clear(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(4)
        assert np.all(mesh.weights(4) == 1.0)
        mesh.clear(4)
        assert np.all(mesh.weights(4) == 0.0)

    def test_weights_returns_copy(self):
        mesh = GridMesh(100, 100, density=10)
        w = mesh.weights(1)
        w[:] = 1.0
        assert not mesh.weights(1).any()

    def test_set_weights_validates(self):
        mesh = GridMesh(100, 100, density=4)
        with pytest.raises(MeshError):
            mesh.set_weights(1, [0.5] * 3)
        mesh.set_weights(1, [2.0] * len(mesh))
        assert np.all(mesh.weights(1) == 1.0)

    def test_drop_layer(self):
        mesh = GridMesh(100, 100, density=4)
        mesh.fill(7)
        mesh.drop_layer(7)
        assert 7 not in mesh.layer_ids
        mesh.drop_layer(7)


class TestUpdate:
    def test_unweighted_points_at_origin(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.paint(20, 20, 25, 1.0, False, 1)
        mesh.update(12, [_layer(1)])
        w = mesh.weights(1)
        still = w <= WEIGHT_EPSILON
        np.testing.assert_array_equal(mesh.positions[still], mesh.origins[still])
        assert np.any(mesh.positions[~still] != mesh.origins[~still])

    def test_hidden_layer_ignored(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        mesh.update(12, [_layer(1, visible=False)])
        np.testing.assert_array_equal(mesh.positions, mesh.origins)

    def test_weight_scales_offset(self):
        full = GridMesh(100, 100, density=10)
        half = GridMesh(100, 100, density=10)
        full.fill(1)
        half.set_weights(1, np.full(len(half), 0.5))
        layers = [_layer(1, PhysicsKind.WOBBLE)]
        full.update(9, layers)
        half.update(9, layers)
        np.testing.assert_allclose(half.offsets(), full.offsets() * 0.5, atol=1e-9)

    def test_layers_sum(self):
        mesh_a = GridMesh(100, 100, density=10)
        mesh_b = GridMesh(100, 100, density=10)
        both = GridMesh(100, 100, density=10)
        for m in (mesh_a, both):
            m.fill(1)
        for m in (mesh_b, both):
            m.fill(2)
        wind = _layer(1, PhysicsKind.WIND)
        water = _layer(2, PhysicsKind.WATER)
        mesh_a.update(7, [wind])
        mesh_b.update(7, [water])
        both.update(7, [wind, water])
        np.testing.assert_allclose(both.offsets(), mesh_a.offsets() + mesh_b.offsets(), atol=1e-9)

    def test_update_deterministic(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        layers = [_layer(1, PhysicsKind.FIRE)]
        mesh.update(30, layers)
        first = mesh.positions.copy()
        mesh.update(3, layers)
        mesh.update(30, layers)
        np.testing.assert_array_equal(mesh.positions, first)

    def test_clear_returns_to_rest(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        layers = [_layer(1)]
        mesh.update(10, layers)
        assert np.any(mesh.offsets())
        mesh.clear(1)
        mesh.update(11, layers)
        np.testing.assert_array_equal(mesh.positions, mesh.origins)

    def test_reset(self):
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        mesh.update(10, [_layer(1)])
        mesh.reset()
        np.testing.assert_array_equal(mesh.positions, mesh.origins)

    def test_accepts_layer_stack(self):
        mesh = GridMesh(100, 100, density=10)
        stack = LayerStack([_layer(1, PhysicsKind.PULSE, frequency=1)])
        mesh.fill(1)
        mesh.update(15, stack)
        assert np.any(mesh.offsets())

    def test_idle_breathing_end_to_end(self):
        """Center point bobs up and down; corners sit outside the falloff."""
        mesh = GridMesh(100, 100, density=10)
        mesh.fill(1)
        config = LayerConfig(kind="idle", amplitude=10, frequency=1, speed=0.1)
        layers = [Layer(layer_id=1, name="Idle", config=config)]
        center = mesh.index(5, 5)
        corner = mesh.index(0, 0)

        center_dy, corner_mag = [], []
        for tick in range(1, 21):
            mesh.update(tick, layers)
            off = mesh.offsets()
            center_dy.append(off[center, 1])
            corner_mag.append(np.hypot(*off[corner]))

        # Center moves only vertically, by -0.5 * amplitude * sin(t)
        expected = [-0.5 * 10 * np.sin(tick * 0.1) for tick in range(1, 21)]
        np.testing.assert_allclose(center_dy, expected, atol=1e-9)
        assert mesh.offsets()[center, 0] == pytest.approx(0.0)
        for tick, (c, d) in enumerate(zip(corner_mag, center_dy), start=1):
            assert c < abs(d), f"corner outran center at tick {tick}"

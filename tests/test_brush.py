"""
SmartWarp -- Brush Controller Tests

Run with: pytest tests/test_brush.py -v
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.brush import BRUSH_MAX, BRUSH_MIN, STROKE_STRENGTH, BrushController, BrushMode


class TestSize:
    def test_clamped(self, driver):
        brush = BrushController(driver, size=1000)
        assert brush.size == BRUSH_MAX
        brush.size = 0
        assert brush.size == BRUSH_MIN

    def test_toggle_mode(self, driver):
        brush = BrushController(driver)
        assert brush.toggle_mode() == BrushMode.ERASE
        assert brush.toggle_mode() == BrushMode.PAINT


class TestStrokes:
    def test_move_without_down_only_tracks(self, driver):
        brush = BrushController(driver)
        assert brush.pointer_move(40, 30) is False
        assert brush.cursor == (40, 30)
        assert not driver.mesh.weights(1).any()

    def test_stroke_paints_active_layer(self, driver):
        brush = BrushController(driver, size=20)
        brush.pointer_down(40, 30)
        brush.pointer_move(45, 30)
        brush.pointer_up()
        w = driver.mesh.weights(1)
        assert w.max() > STROKE_STRENGTH
        assert brush.pointer_move(10, 10) is False

    def test_erase(self, driver):
        driver.fill_layer()
        brush = BrushController(driver, size=20, mode="erase")
        brush.pointer_down(40, 30)
        assert driver.mesh.weights(1).min() < 1.0

    def test_leave_ends_stroke(self, driver):
        brush = BrushController(driver)
        brush.pointer_down(40, 30)
        brush.pointer_leave()
        assert brush.cursor is None
        assert not brush.drawing

    def test_ignored_while_animating(self, driver):
        brush = BrushController(driver)
        driver.start_animation()
        assert brush.pointer_down(40, 30) is False
        assert not driver.mesh.weights(1).any()

    def test_stop_animating_mid_stroke(self, driver):
        brush = BrushController(driver)
        brush.pointer_down(40, 30)
        driver.start_animation()
        before = driver.mesh.weights(1)
        assert brush.pointer_move(42, 30) is False
        np.testing.assert_array_equal(driver.mesh.weights(1), before)


class TestHandle:
    def test_named_events(self, driver):
        brush = BrushController(driver, size=20)
        assert brush.handle("down", 40, 30) is True
        assert brush.handle("move", 41, 30) is True
        assert brush.handle("up") is False
        assert brush.handle("leave") is False

    def test_unknown_event(self, driver):
        with pytest.raises(ValueError):
            BrushController(driver).handle("wheel", 0, 0)

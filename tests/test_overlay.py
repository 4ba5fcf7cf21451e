"""
SmartWarp -- Weight Overlay Tests

Run with: pytest tests/test_overlay.py -v
"""

import os
import sys

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.overlay import BACKDROP_COLOR, draw_weight_overlay


class TestOverlay:
    def test_no_weights_no_change(self, driver, gradient_frame):
        out = draw_weight_overlay(gradient_frame, driver.mesh, driver.layers, 1)
        np.testing.assert_array_equal(out, gradient_frame)
        assert out is not gradient_frame

    def test_rgba_flattened_on_backdrop(self, driver):
        frame = np.zeros((60, 80, 4), dtype=np.uint8)
        out = draw_weight_overlay(frame, driver.mesh, driver.layers, 1)
        assert out.shape == (60, 80, 3)
        assert tuple(out[10, 10]) == BACKDROP_COLOR

    def test_painted_weights_tint(self, driver, gradient_frame):
        driver.fill_layer()
        out = draw_weight_overlay(gradient_frame, driver.mesh, driver.layers, 1)
        assert np.any(out != gradient_frame)

    def test_mask_hidden(self, driver, gradient_frame):
        driver.fill_layer()
        out = draw_weight_overlay(gradient_frame, driver.mesh, driver.layers, 1, show_mask=False)
        np.testing.assert_array_equal(out, gradient_frame)

    def test_hidden_layer_not_drawn(self, driver, gradient_frame):
        driver.fill_layer()
        driver.toggle_layer_visibility(1)
        out = draw_weight_overlay(gradient_frame, driver.mesh, driver.layers, 1)
        np.testing.assert_array_equal(out, gradient_frame)

    def test_cursor_ring(self, driver, gradient_frame):
        out = draw_weight_overlay(gradient_frame, driver.mesh, driver.layers, 1,
                                  cursor=(40, 30), brush_size=15, show_mask=False)
        assert np.any(out != gradient_frame)
        # Ring only, center untouched
        np.testing.assert_array_equal(out[30, 40], gradient_frame[30, 40])

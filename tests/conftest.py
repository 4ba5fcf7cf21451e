"""
Conftest: shared fixtures for all SmartWarp test modules.

1. Synthetic source images (gradient, not blank), no files needed
2. Drivers with an image already loaded
3. Image files on disk for load / CLI / project tests
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.driver import FrameDriver
from core.layer import Layer, LayerStack
from physics import PhysicsKind, default_config


def _make_test_frame(width=80, height=60, alpha=False):
    """Generate a synthetic test frame (gradient, not blank)."""
    frame = np.zeros((height, width, 4 if alpha else 3), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)[None, :]  # R gradient
    frame[:, :, 1] = np.linspace(0, 255, height, dtype=np.uint8)[:, None]  # G gradient
    frame[:, :, 2] = 200
    if alpha:
        frame[:, :, 3] = 255
    return frame


@pytest.fixture
def gradient_frame():
    """80x60 RGB gradient."""
    return _make_test_frame()


@pytest.fixture
def rgba_frame():
    """80x60 RGBA gradient, fully opaque."""
    return _make_test_frame(alpha=True)


@pytest.fixture
def driver(gradient_frame):
    """LOADED driver, density 6, one idle layer with no weights painted."""
    d = FrameDriver(density=6)
    d.load_image(gradient_frame)
    return d


@pytest.fixture
def wind_driver(gradient_frame):
    """LOADED driver whose single wind layer is painted everywhere."""
    layers = LayerStack([Layer(layer_id=1, name="Wind", config=default_config(PhysicsKind.WIND))])
    d = FrameDriver(density=6, layers=layers)
    d.load_image(gradient_frame)
    d.fill_layer()
    return d


@pytest.fixture
def image_file(tmp_path, gradient_frame):
    """Gradient frame saved as PNG."""
    from PIL import Image
    path = tmp_path / "source.png"
    Image.fromarray(gradient_frame).save(path)
    return path

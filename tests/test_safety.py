"""
SmartWarp -- Safety & Resource Limit Tests
Oversized inputs, bad file types, degenerate meshes, runaway exports.

Run with: pytest tests/test_safety.py -v
"""

import os
import signal
import sys
import time

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import safety
from core.image_io import apply_alpha_mask, fit_to_working_size, load_image, working_size
from core.safety import (
    MAX_EXPORT_FRAMES, SafetyError, clear_processing_timeout, preflight,
    set_processing_timeout, validate_density, validate_export_length, validate_image,
)


class TestPreflight:
    def test_valid_file(self, image_file):
        info = preflight(str(image_file))
        assert info["extension"] == ".png"
        assert info["size_mb"] > 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            preflight(str(tmp_path / "missing.png"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.png"
        path.write_bytes(b"")
        with pytest.raises(SafetyError, match="empty"):
            preflight(str(path))

    def test_bad_extension(self, tmp_path):
        path = tmp_path / "script.sh"
        path.write_text("echo hi")
        with pytest.raises(SafetyError, match="not allowed"):
            preflight(str(path))

    def test_oversized(self, image_file, monkeypatch):
        monkeypatch.setattr(safety, "MAX_FILE_MB", 0.000001)
        with pytest.raises(SafetyError, match="exceeds"):
            preflight(str(image_file))


class TestValidators:
    @pytest.mark.parametrize("image", [
        None,
        [[1, 2, 3]],
        np.zeros((10, 10), dtype=np.uint8),
        np.zeros((10, 10, 2), dtype=np.uint8),
        np.zeros((0, 10, 3), dtype=np.uint8),
        np.zeros((10, 10, 3), dtype=np.float32),
    ])
    def test_bad_images(self, image):
        with pytest.raises(SafetyError):
            validate_image(image)

    def test_good_image(self, gradient_frame, rgba_frame):
        validate_image(gradient_frame)
        validate_image(rgba_frame)

    def test_density(self):
        validate_density(25, 800, 600)
        with pytest.raises(SafetyError):
            validate_density(True, 100, 100)
        with pytest.raises(SafetyError):
            validate_density(10, 0, 100)

    def test_export_length(self):
        validate_export_length(1)
        with pytest.raises(SafetyError):
            validate_export_length(0)
        with pytest.raises(SafetyError):
            validate_export_length(MAX_EXPORT_FRAMES + 1)


@pytest.mark.skipif(not hasattr(signal, "SIGALRM"), reason="SIGALRM not available")
class TestTimeout:
    def test_timeout_fires(self):
        set_processing_timeout(1)
        try:
            with pytest.raises(TimeoutError):
                time.sleep(3)
        finally:
            clear_processing_timeout()

    def test_clear(self):
        set_processing_timeout(1)
        clear_processing_timeout()
        time.sleep(1.2)


class TestImageIO:
    def test_load_rgba(self, image_file):
        img = load_image(str(image_file))
        assert img.shape == (60, 80, 4)
        assert img.dtype == np.uint8
        assert np.all(img[:, :, 3] == 255)

    def test_load_runs_preflight(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not an image")
        with pytest.raises(SafetyError):
            load_image(str(path))

    def test_working_size(self):
        assert working_size(400, 300, 800) == (400.0, 300.0)
        assert working_size(1600, 800, 800) == (800.0, 400.0)
        assert working_size(600, 1200, 800) == (400.0, 800.0)

    def test_fit_small_untouched(self, gradient_frame):
        out, size = fit_to_working_size(gradient_frame, 800)
        assert out is gradient_frame
        assert size == (80.0, 60.0)

    def test_fit_scales_down(self):
        img = np.zeros((500, 1000, 3), dtype=np.uint8)
        out, size = fit_to_working_size(img, 200)
        assert out.shape == (100, 200, 3)
        assert size == (200.0, 100.0)

    def test_alpha_mask_float(self, gradient_frame):
        mask = np.full(gradient_frame.shape[:2], 0.5, dtype=np.float32)
        out = apply_alpha_mask(gradient_frame, mask)
        assert out.shape == (60, 80, 4)
        assert np.all(out[:, :, 3] == 128)

    def test_alpha_mask_shape_mismatch(self, gradient_frame):
        with pytest.raises(ValueError):
            apply_alpha_mask(gradient_frame, np.zeros((5, 5), dtype=np.uint8))

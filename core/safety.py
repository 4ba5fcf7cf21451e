"""
SmartWarp — Safety & Resource Guards
Centralized preflight checks run before an image is loaded or exported.
Prevents oversized inputs, degenerate meshes, and runaway exports.
"""

import os
import signal
from pathlib import Path

import numpy as np

# --- Configurable Limits ---
MAX_FILE_MB = 50           # Maximum input image size
MAX_WORKING_DIM = 800      # Images are down-scaled to fit this box
DEFAULT_DENSITY = 25       # Mesh rows
MIN_DENSITY = 1
MAX_DENSITY = 200
MAX_EXPORT_FRAMES = 3000   # duration * fps ceiling
TIMEOUT_SEC = 300          # Default export timeout when one is requested
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"}


class SafetyError(Exception):
    """Raised when a preflight check fails."""
    pass


def preflight(input_path: str) -> dict:
    """Run all safety checks before loading an image file.

    Args:
        input_path: Path to the input image.

    Returns:
        dict with file metadata (path, size_mb, extension).

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    size_bytes = os.path.getsize(real_path)
    size_mb = size_bytes / (1024 * 1024)
    if size_bytes == 0:
        raise SafetyError(f"Input file is empty: {input_path}")
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.0f}MB, exceeds {MAX_FILE_MB}MB limit."
        )

    ext = Path(real_path).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }


def validate_image(image) -> None:
    """Check a decoded raster before a mesh is built over it.

    Raises:
        SafetyError: If the image is missing, zero-size, or not (H, W, 3|4) uint8.
    """
    if image is None:
        raise SafetyError("No image loaded")
    if not isinstance(image, np.ndarray):
        raise SafetyError(f"Image must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise SafetyError(f"Image must be (H, W, 3) or (H, W, 4), got {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise SafetyError(f"Image has zero size: {image.shape[1]}x{image.shape[0]}")
    if image.dtype != np.uint8:
        raise SafetyError(f"Image must be uint8, got {image.dtype}")


def validate_density(density: int, width: float, height: float) -> None:
    """Check that a mesh density yields at least one cell in each direction.

    Raises:
        SafetyError: If density is out of range or the aspect ratio leaves no columns.
    """
    if not isinstance(density, (int, np.integer)) or isinstance(density, bool):
        raise SafetyError(f"Mesh density must be an integer, got {density!r}")
    if density < MIN_DENSITY or density > MAX_DENSITY:
        raise SafetyError(
            f"Mesh density {density} out of range ({MIN_DENSITY}-{MAX_DENSITY})"
        )
    if width <= 0 or height <= 0:
        raise SafetyError(f"Mesh extent must be positive, got {width}x{height}")
    if int(density * width / height) < 1:
        raise SafetyError(
            f"Image {width:.0f}x{height:.0f} is too narrow for density {density} "
            f"(no mesh columns). Use a higher density."
        )


def validate_export_length(total_frames: int) -> None:
    """Check that an export has a sane number of frames.

    Raises:
        SafetyError: If the export would produce no frames or too many.
    """
    if total_frames < 1:
        raise SafetyError("Export must produce at least one frame")
    if total_frames > MAX_EXPORT_FRAMES:
        raise SafetyError(
            f"Export has {total_frames} frames, max is {MAX_EXPORT_FRAMES}. "
            f"Lower the duration or fps."
        )


def set_processing_timeout(seconds: int = TIMEOUT_SEC) -> None:
    """Set an alarm-based timeout for processing. Unix only.

    Call this before starting a long operation.
    The alarm will raise TimeoutError if processing exceeds the limit.
    """
    if not hasattr(signal, "SIGALRM"):
        return  # Windows — no SIGALRM support

    def _timeout_handler(signum, frame):
        raise TimeoutError(
            f"Export exceeded {seconds}s timeout. "
            f"Try a shorter duration or a lower mesh density."
        )

    signal.signal(signal.SIGALRM, _timeout_handler)
    signal.alarm(seconds)


def clear_processing_timeout() -> None:
    """Clear a previously set processing timeout."""
    if hasattr(signal, "SIGALRM"):
        signal.alarm(0)

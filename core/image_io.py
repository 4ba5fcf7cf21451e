"""
SmartWarp — Image I/O
Loads source images into numpy arrays, fits them to the working size,
applies external alpha masks, and writes frames back out.
"""

import numpy as np
from PIL import Image

from core.safety import MAX_WORKING_DIM, preflight, validate_image


def load_image(image_path: str) -> np.ndarray:
    """Load an image file as (H, W, 4) uint8 RGBA.

    Runs the safety preflight first.
    """
    info = preflight(image_path)
    with Image.open(info["path"]) as img:
        img.load()
        return np.array(img.convert("RGBA"))


def working_size(width: int, height: int, max_dim: int = MAX_WORKING_DIM) -> tuple[float, float]:
    """Size the mesh works at: the image size, shrunk to fit max_dim x max_dim.

    Returns float dimensions (the long side is exactly max_dim).
    """
    if width <= max_dim and height <= max_dim:
        return float(width), float(height)
    ratio = width / height
    if width > height:
        return float(max_dim), max_dim / ratio
    return max_dim * ratio, float(max_dim)


def fit_to_working_size(image: np.ndarray, max_dim: int = MAX_WORKING_DIM):
    """Down-scale an image so neither side exceeds max_dim.

    Returns:
        (resized_image, (mesh_width, mesh_height)). The raster is rounded
        to whole pixels; the mesh extent matches the raster.
    """
    validate_image(image)
    h, w = image.shape[:2]
    new_w, new_h = working_size(w, h, max_dim)
    if (new_w, new_h) == (float(w), float(h)):
        return image, (float(w), float(h))
    px_w, px_h = max(1, int(round(new_w))), max(1, int(round(new_h)))
    img = Image.fromarray(image)
    resized = np.array(img.resize((px_w, px_h), Image.LANCZOS))
    return resized, (float(px_w), float(px_h))


def apply_alpha_mask(image: np.ndarray, mask) -> np.ndarray:
    """Use a segmentation mask as the image's alpha channel.

    Args:
        image: (H, W, 3|4) uint8.
        mask: (H, W) array, uint8 0-255 or float 0-1.

    Returns:
        (H, W, 4) uint8 RGBA. Existing alpha is multiplied by the mask.
    """
    validate_image(image)
    mask = np.asarray(mask)
    if mask.ndim == 3 and mask.shape[2] == 1:
        mask = mask[:, :, 0]
    if mask.shape != image.shape[:2]:
        raise ValueError(f"Mask shape {mask.shape} does not match image {image.shape[:2]}")
    if mask.dtype == np.uint8:
        alpha = mask.astype(np.float32) / 255.0
    else:
        alpha = np.clip(mask.astype(np.float32), 0.0, 1.0)

    rgba = np.empty(image.shape[:2] + (4,), dtype=np.uint8)
    rgba[:, :, :3] = image[:, :, :3]
    base = image[:, :, 3].astype(np.float32) if image.shape[2] == 4 else 255.0
    rgba[:, :, 3] = np.clip(np.round(base * alpha), 0, 255).astype(np.uint8)
    return rgba


def save_frame(array: np.ndarray, output_path: str):
    """Save an (H, W, 3|4) array as PNG (or any Pillow format by extension)."""
    img = Image.fromarray(np.clip(array, 0, 255).astype(np.uint8))
    img.save(str(output_path))


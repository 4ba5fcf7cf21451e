"""
SmartWarp — Weight Overlay
Draws painted weights as tinted dots at each lattice origin, plus the brush
cursor ring, on top of an RGB frame. Used by the interactive studio.
"""

import cv2
import numpy as np

from core.renderer import composite_on_matte

# Weights at or below this are not drawn
OVERLAY_MIN_WEIGHT = 0.05

# Studio backdrop behind transparent pixels
BACKDROP_COLOR = (30, 34, 42)

_SHIFT = 4
_SCALE = 1 << _SHIFT


def _fixed(v: float) -> int:
    return int(round(v * _SCALE))


def draw_weight_overlay(frame: np.ndarray, mesh, layers, active_layer_id=None,
                        cursor=None, brush_size: float | None = None,
                        show_mask: bool = True) -> np.ndarray:
    """Overlay layer weights and the brush cursor.

    Args:
        frame: (H, W, 3) RGB or (H, W, 4) RGBA frame. RGBA is flattened
            onto BACKDROP_COLOR first.
        mesh: GridMesh whose weights are drawn.
        layers: LayerStack (or iterable of layers); hidden layers are skipped.
        active_layer_id: Drawn last so it sits on top.
        cursor: (x, y) brush position, or None.
        brush_size: Cursor ring radius.
        show_mask: Draw weight dots.

    Returns:
        New (H, W, 3) uint8 RGB image.
    """
    if frame.shape[2] == 4:
        out = composite_on_matte(frame, BACKDROP_COLOR)
    else:
        out = frame.copy()

    if show_mask:
        ordered = sorted(layers, key=lambda l: l.layer_id == active_layer_id)
        for layer in ordered:
            if not layer.visible:
                continue
            w = mesh.weights(layer.layer_id)
            idx = np.nonzero(w > OVERLAY_MIN_WEIGHT)[0]
            if idx.size == 0:
                continue
            r, g, b, alpha = layer.color
            tint = out.copy()
            for i in idx:
                ox, oy = mesh.origins[i]
                radius = 2 + w[i] * 2
                cv2.circle(tint, (_fixed(ox), _fixed(oy)), _fixed(radius), (r, g, b),
                           -1, cv2.LINE_AA, _SHIFT)
            out = cv2.addWeighted(tint, alpha, out, 1.0 - alpha, 0)

    if cursor is not None and brush_size:
        cx, cy = _fixed(cursor[0]), _fixed(cursor[1])
        cv2.circle(out, (cx, cy), _fixed(brush_size), (255, 255, 255), 2, cv2.LINE_AA, _SHIFT)
        cv2.circle(out, (cx, cy), _fixed(max(1, brush_size - 1)), (0, 0, 0), 1, cv2.LINE_AA, _SHIFT)

    return out

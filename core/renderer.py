"""
SmartWarp — Affine Triangle Renderer

Rebuilds a raster frame from the mesh's current vertex positions and the
rest-pose image. Every grid cell is split into two triangles; each one is
texture-mapped independently through the affine transform that carries its
rest-pose corners onto its displaced corners, clipped to the displaced
triangle.

Output frames are RGBA uint8. Pixels no triangle covers stay transparent.
"""

import logging

import cv2
import numpy as np

# |det| below this means the rest-pose triangle has no area
DET_EPSILON = 1e-9

# Chroma key shared with encoders that cannot store alpha (pure green)
MATTE_COLOR = (0, 255, 0)

# Fixed-point bits for sub-pixel triangle clipping
_SUBPIXEL_SHIFT = 4


class DegenerateTriangleError(ArithmeticError):
    """Three collinear (or coincident) rest-pose vertices."""
    pass


def solve_affine(src, dst, eps: float = DET_EPSILON):
    """Solve the affine map sending three src points onto three dst points.

    The map is (x, y) -> (a*x + c*y + e, b*x + d*y + f).

    Args:
        src: ((x0, y0), (x1, y1), (x2, y2)) rest-pose vertices.
        dst: ((u0, v0), (u1, v1), (u2, v2)) displaced vertices.
        eps: Minimum |determinant| of the src triangle.

    Returns:
        (a, b, c, d, e, f)

    Raises:
        DegenerateTriangleError: If the src triangle is (near) collinear.
    """
    (x0, y0), (x1, y1), (x2, y2) = [(float(x), float(y)) for x, y in src]
    (u0, v0), (u1, v1), (u2, v2) = [(float(u), float(v)) for u, v in dst]

    ta, tb, tc, td = x1 - x0, y1 - y0, x2 - x0, y2 - y0
    det = ta * td - tb * tc
    if abs(det) < eps:
        raise DegenerateTriangleError(f"Triangle {src} is degenerate (det={det:g})")
    r = 1.0 / det

    da, db, dc, dd = u1 - u0, v1 - v0, u2 - u0, v2 - v0
    a = (da * td - dc * tb) * r
    b = (db * td - dd * tb) * r
    c = (dc * ta - da * tc) * r
    d = (dd * ta - db * tc) * r
    e = u0 - a * x0 - c * y0
    f = v0 - b * x0 - d * y0
    return a, b, c, d, e, f


def affine_matrix(coeffs) -> np.ndarray:
    """(a, b, c, d, e, f) as the 2x3 matrix cv2.warpAffine expects."""
    a, b, c, d, e, f = coeffs
    return np.array([[a, c, e], [b, d, f]], dtype=np.float64)


def cell_triangles(rows: int, cols: int) -> np.ndarray:
    """Point-index triples for every triangle of a rows x cols grid.

    Each cell gives (TL, TR, BL) then (BL, TR, BR), so neighbouring
    triangles share identical edge vertices.

    Returns:
        (rows * cols * 2, 3) int array.
    """
    r, c = np.mgrid[0:rows, 0:cols]
    tl = (r * (cols + 1) + c).ravel()
    tr = tl + 1
    bl = ((r + 1) * (cols + 1) + c).ravel()
    br = bl + 1
    first = np.stack([tl, tr, bl], axis=1)
    second = np.stack([bl, tr, br], axis=1)
    return np.stack([first, second], axis=1).reshape(-1, 3)


def to_rgba(image: np.ndarray) -> np.ndarray:
    """(H, W, 3|4) uint8 -> (H, W, 4) uint8, opaque if there was no alpha."""
    if image.shape[2] == 4:
        return np.ascontiguousarray(image)
    alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([image, alpha], axis=2)


def composite_on_matte(rgba: np.ndarray, color=MATTE_COLOR) -> np.ndarray:
    """Flatten an RGBA frame over a solid color.

    Returns:
        (H, W, 3) uint8 RGB frame.
    """
    alpha = rgba[:, :, 3:4].astype(np.float32) / 255.0
    rgb = rgba[:, :, :3].astype(np.float32)
    matte = np.array(color, dtype=np.float32).reshape(1, 1, 3)
    out = rgb * alpha + matte * (1.0 - alpha)
    return np.clip(np.round(out), 0, 255).astype(np.uint8)


class TriangleRenderer:
    """Texture-maps the rest-pose image through a GridMesh.

    Args:
        source: Rest-pose image (H, W, 3|4) uint8 at the mesh's working size.
        mesh: The GridMesh whose positions drive the warp.
    """

    def __init__(self, source: np.ndarray, mesh):
        self.source = to_rgba(source)
        self.mesh = mesh
        self.height, self.width = self.source.shape[:2]
        self.triangles = cell_triangles(mesh.rows, mesh.cols)

    def render(self, matte=None) -> np.ndarray:
        """Draw all triangles for the mesh's current positions.

        Args:
            matte: Optional RGB color. When given, the frame is flattened
                onto it and returned as RGB instead of RGBA.
        """
        canvas = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        origins = self.mesh.origins
        positions = self.mesh.positions
        skipped = 0
        for tri in self.triangles:
            if not self.draw_triangle(canvas, origins[tri], positions[tri]):
                skipped += 1
        if skipped:
            logging.debug("Skipped %d degenerate triangles", skipped)
        if matte is not None:
            return composite_on_matte(canvas, matte)
        return canvas

    def draw_triangle(self, canvas: np.ndarray, src_tri, dst_tri) -> bool:
        """Warp the source through one triangle correspondence onto canvas.

        Returns:
            False if the rest-pose triangle was degenerate and skipped.
        """
        try:
            coeffs = solve_affine(src_tri, dst_tri)
        except DegenerateTriangleError:
            logging.debug("Skipping degenerate triangle %s", np.asarray(src_tri).tolist())
            return False

        dst_tri = np.asarray(dst_tri, dtype=np.float64)
        h, w = canvas.shape[:2]
        x_min = max(0, int(np.floor(dst_tri[:, 0].min())))
        y_min = max(0, int(np.floor(dst_tri[:, 1].min())))
        x_max = min(w, int(np.ceil(dst_tri[:, 0].max())) + 1)
        y_max = min(h, int(np.ceil(dst_tri[:, 1].max())) + 1)
        if x_max <= x_min or y_max <= y_min:
            return True  # entirely off-frame

        a, b, c, d, e, f = coeffs
        if abs(a * d - b * c) < DET_EPSILON:
            return True  # collapsed to a line, nothing to fill

        box_w, box_h = x_max - x_min, y_max - y_min
        m = affine_matrix((a, b, c, d, e - x_min, f - y_min))
        patch = cv2.warpAffine(
            self.source, m, (box_w, box_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0, 0),
        )

        mask = np.zeros((box_h, box_w), dtype=np.uint8)
        scale = 1 << _SUBPIXEL_SHIFT
        pts = np.round((dst_tri - (x_min, y_min)) * scale).astype(np.int32)
        cv2.fillConvexPoly(mask, pts, 1, lineType=cv2.LINE_8, shift=_SUBPIXEL_SHIFT)

        region = canvas[y_min:y_max, x_min:x_max]
        np.copyto(region, patch, where=mask[:, :, None].astype(bool))
        return True

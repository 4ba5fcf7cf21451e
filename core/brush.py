"""
SmartWarp — Brush Controller
Turns pointer events (down / move / up / leave) in mesh-local coordinates
into weight-painting strokes on the driver's active layer.

Input is ignored while the driver is animating or exporting.
"""

from enum import Enum

BRUSH_MIN = 5
BRUSH_MAX = 150
DEFAULT_BRUSH_SIZE = 40
STROKE_STRENGTH = 0.2  # weight added per pointer sample at the brush center


class BrushMode(str, Enum):
    PAINT = "paint"
    ERASE = "erase"


class BrushController:
    """Pointer-driven weight painting.

    Args:
        driver: FrameDriver to paint into.
        size: Brush radius in pixels (clamped to BRUSH_MIN-BRUSH_MAX).
        strength: Weight delta at the brush center per sample.
        mode: BrushMode.PAINT or BrushMode.ERASE.
    """

    def __init__(self, driver, size: float = DEFAULT_BRUSH_SIZE,
                 strength: float = STROKE_STRENGTH, mode: BrushMode = BrushMode.PAINT):
        self.driver = driver
        self._size = DEFAULT_BRUSH_SIZE
        self.size = size
        self.strength = strength
        self.mode = BrushMode(mode)
        self.drawing = False
        self.cursor = None

    @property
    def size(self) -> float:
        return self._size

    @size.setter
    def size(self, value: float):
        self._size = max(BRUSH_MIN, min(BRUSH_MAX, value))

    def toggle_mode(self) -> BrushMode:
        self.mode = BrushMode.ERASE if self.mode == BrushMode.PAINT else BrushMode.PAINT
        return self.mode

    def pointer_down(self, x: float, y: float) -> bool:
        """Start a stroke. Returns True if a brush sample was applied."""
        if not self.driver.can_paint:
            return False
        self.drawing = True
        return self.pointer_move(x, y)

    def pointer_move(self, x: float, y: float) -> bool:
        """Track the cursor; paint if a stroke is in progress."""
        self.cursor = (x, y)
        if not self.drawing or not self.driver.can_paint:
            return False
        self.driver.paint(x, y, self.size, self.strength, erase=self.mode == BrushMode.ERASE)
        return True

    def pointer_up(self) -> None:
        self.drawing = False

    def pointer_leave(self) -> None:
        self.drawing = False
        self.cursor = None

    def handle(self, event: str, x: float | None = None, y: float | None = None) -> bool:
        """Dispatch a named pointer event ("down", "move", "up", "leave")."""
        if event == "down":
            return self.pointer_down(x, y)
        if event == "move":
            return self.pointer_move(x, y)
        if event == "up":
            self.pointer_up()
            return False
        if event == "leave":
            self.pointer_leave()
            return False
        raise ValueError(f"Unknown pointer event: {event!r}")

"""
SmartWarp — Frame Driver / Exporter

Owns one editing session: the working image, its GridMesh, the layer stack,
the renderer, and the global tick counter.

    IDLE ──load_image──▶ LOADED ──start_animation──▶ ANIMATING
                           ▲   ◀──stop_animation───
                           └────── export() (EXPORTING, runs to completion)

Time is frame-counted: every step() or exported frame advances the tick by
exactly one, so an export of N frames is deterministic regardless of how
fast the host calls us. Only the animation / export loop moves time or
updates the mesh; painting is the only other writer and is rejected unless
the driver is LOADED.
"""

import logging
from enum import Enum

from core.encoders import EncoderSink
from core.export_models import ExportSettings
from core.image_io import apply_alpha_mask, fit_to_working_size, load_image
from core.layer import LayerStack
from core.mesh import GridMesh
from core.renderer import TriangleRenderer, composite_on_matte, to_rgba
from core.safety import (
    DEFAULT_DENSITY, MAX_WORKING_DIM,
    clear_processing_timeout, set_processing_timeout,
    validate_export_length, validate_image,
)
from physics import PhysicsKind

# Background for exports that did not ask for transparency
BACKGROUND_COLOR = (0, 0, 0)


class DriverState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    ANIMATING = "animating"
    EXPORTING = "exporting"


class SessionStateError(Exception):
    """Operation not allowed in the driver's current state."""
    pass


class ExportError(Exception):
    """An export failed; the driver is back in LOADED at rest pose."""
    pass


class FrameDriver:
    """One warp session: image + mesh + layers + clock.

    Args:
        density: Mesh rows for every image loaded into this session.
        max_dim: Images larger than this (either side) are down-scaled.
        layers: Initial LayerStack (default: one idle layer).
    """

    def __init__(self, density: int = DEFAULT_DENSITY, max_dim: int = MAX_WORKING_DIM,
                 layers: LayerStack | None = None):
        self.density = density
        self.max_dim = max_dim
        self.layers = layers if layers is not None else LayerStack()
        self.active_layer_id = self.layers.layers[0].layer_id
        self.state = DriverState.IDLE
        self.tick = 0
        self.image = None
        self.mesh = None
        self.renderer = None
        self.last_frame = None

    # --- Image lifecycle ---

    def load_image(self, image, segmenter=None):
        """Replace the working image and rebuild the mesh.

        Args:
            image: (H, W, 3|4) uint8 array.
            segmenter: Optional callable image -> (H, W) alpha mask. The mask
                becomes the source texture's alpha.

        Returns:
            The rest-pose frame (RGBA).
        """
        if self.state == DriverState.EXPORTING:
            raise SessionStateError("Cannot replace the image during an export")
        validate_image(image)
        if segmenter is not None:
            image = apply_alpha_mask(image, segmenter(image))

        # Build everything before touching session state
        working, (width, height) = fit_to_working_size(image, self.max_dim)
        mesh = GridMesh(width, height, self.density)
        renderer = TriangleRenderer(working, mesh)

        if self.state == DriverState.ANIMATING:
            self.stop_animation()
        self.image, self.mesh, self.renderer = working, mesh, renderer
        self.tick = 0
        self._set_state(DriverState.LOADED)
        self.last_frame = renderer.render()
        return self.last_frame

    def load_image_file(self, image_path: str, segmenter=None):
        return self.load_image(load_image(image_path), segmenter=segmenter)

    def _require_image(self):
        if self.mesh is None:
            raise SessionStateError("No image loaded")

    def _set_state(self, state: DriverState):
        if state != self.state:
            logging.debug("Driver state %s -> %s", self.state.value, state.value)
        self.state = state

    # --- Weight painting ---

    @property
    def can_paint(self) -> bool:
        return self.state == DriverState.LOADED

    def _require_paintable(self):
        self._require_image()
        if not self.can_paint:
            raise SessionStateError(f"Painting is disabled while {self.state.value}")

    def paint(self, x: float, y: float, radius: float, strength: float,
              erase: bool = False, layer_id=None) -> int:
        """Brush weights into a layer (default: the active layer)."""
        self._require_paintable()
        layer = self.layers.get(self.active_layer_id if layer_id is None else layer_id)
        return self.mesh.paint(x, y, radius, strength, erase, layer.layer_id)

    def fill_layer(self, layer_id=None) -> None:
        self._require_paintable()
        self.mesh.fill(self.layers.get(self.active_layer_id if layer_id is None else layer_id).layer_id)

    def clear_layer(self, layer_id=None) -> None:
        self._require_paintable()
        self.mesh.clear(self.layers.get(self.active_layer_id if layer_id is None else layer_id).layer_id)

    # --- Layers ---

    @property
    def active_layer(self):
        return self.layers.get(self.active_layer_id)

    def select_layer(self, layer_id) -> None:
        self.active_layer_id = self.layers.get(layer_id).layer_id

    def add_layer(self, kind=PhysicsKind.WIND, name: str | None = None):
        """Add a layer and make it active."""
        layer = self.layers.add(kind, name)
        self.active_layer_id = layer.layer_id
        return layer

    def remove_layer(self, layer_id) -> None:
        """Remove a layer and its weights; the last layer cannot be removed."""
        self.layers.remove(layer_id)
        if self.mesh is not None:
            self.mesh.drop_layer(layer_id)
        if self.active_layer_id == layer_id:
            self.active_layer_id = self.layers.layers[0].layer_id

    def replace_layers(self, layers: LayerStack, active_layer_id=None) -> None:
        """Swap in a whole layer stack (project load). Drops orphaned weights."""
        if self.state in (DriverState.ANIMATING, DriverState.EXPORTING):
            raise SessionStateError(f"Cannot replace layers while {self.state.value}")
        if self.mesh is not None:
            for lid in self.mesh.layer_ids:
                if lid not in layers:
                    self.mesh.drop_layer(lid)
        self.layers = layers
        if active_layer_id is not None and active_layer_id in layers:
            self.active_layer_id = active_layer_id
        else:
            self.active_layer_id = layers.layers[0].layer_id

    def update_layer_config(self, layer_id, **changes):
        """Edit a layer's physics; allowed while animating (next tick)."""
        return self.layers.update_config(layer_id, **changes)

    def change_layer_kind(self, layer_id, kind):
        return self.layers.change_kind(layer_id, kind)

    def toggle_layer_visibility(self, layer_id) -> bool:
        return self.layers.toggle_visibility(layer_id)

    # --- Live animation ---

    def start_animation(self) -> None:
        self._require_image()
        if self.state != DriverState.LOADED:
            raise SessionStateError(f"Cannot start animating while {self.state.value}")
        self._set_state(DriverState.ANIMATING)

    def step(self):
        """One animation callback: advance the tick, update, render.

        Returns:
            The new RGBA frame.
        """
        if self.state != DriverState.ANIMATING:
            raise SessionStateError(f"step() needs an animating driver, state is {self.state.value}")
        self.tick += 1
        self.mesh.update(self.tick, self.layers)
        self.last_frame = self.renderer.render()
        return self.last_frame

    def stop_animation(self):
        """Stop the loop and snap back to the rest pose."""
        if self.state != DriverState.ANIMATING:
            return self.last_frame
        self._reset_pose()
        self._set_state(DriverState.LOADED)
        self.last_frame = self.renderer.render()
        return self.last_frame

    def toggle_animation(self) -> bool:
        """Start or stop; returns True if now animating."""
        if self.state == DriverState.ANIMATING:
            self.stop_animation()
            return False
        self.start_animation()
        return True

    def _reset_pose(self):
        self.tick = 0
        self.mesh.reset()

    def render(self):
        """Render the mesh as it stands (no time advance)."""
        self._require_image()
        self.last_frame = self.renderer.render()
        return self.last_frame

    def preview_at(self, tick: int):
        """Render the pose at a given tick without leaving LOADED."""
        self._require_image()
        if self.state != DriverState.LOADED:
            raise SessionStateError(f"Cannot preview while {self.state.value}")
        try:
            self.mesh.update(tick, self.layers)
            return self.renderer.render()
        finally:
            self.mesh.reset()

    # --- Export ---

    def _export_frame(self, sink: EncoderSink, settings: ExportSettings):
        """Render one frame in the layout the sink accepts."""
        rgba = self.renderer.render()
        if sink.supports_alpha:
            if settings.transparent_background:
                return rgba
            return to_rgba(composite_on_matte(rgba, BACKGROUND_COLOR))
        matte = settings.matte_color if settings.transparent_background else BACKGROUND_COLOR
        return composite_on_matte(rgba, matte)

    def export(self, sink: EncoderSink, settings: ExportSettings,
               progress_callback=None, timeout: int | None = None) -> bytes:
        """Capture exactly settings.total_frames ticks into an encoder sink.

        Args:
            sink: Encoder sink; add_frame is called once per tick, in order.
            settings: Export settings (fps, duration, transparency, format).
            progress_callback: Optional fn(fraction) called after each frame
                with k / total_frames (last call is 1.0).
            timeout: Optional whole-export limit in seconds (Unix only).

        Returns:
            Encoded bytes from sink.finish().

        Raises:
            ExportError: Encoder or render failure. The driver is left LOADED
                at rest pose and can export again.
        """
        self._require_image()
        if self.state == DriverState.EXPORTING:
            raise SessionStateError("An export is already running")
        total = settings.total_frames
        validate_export_length(total)
        delay = settings.frame_delay_ms

        if self.state == DriverState.ANIMATING:
            self.stop_animation()
        self._set_state(DriverState.EXPORTING)
        self.tick = 0
        frame_idx = 0

        if timeout:
            set_processing_timeout(timeout)
        try:
            sink.open(self.renderer.width, self.renderer.height, settings)
            for frame_idx in range(total):
                self.tick += 1
                self.mesh.update(self.tick, self.layers)
                sink.add_frame(self._export_frame(sink, settings), delay)
                if progress_callback:
                    progress_callback((frame_idx + 1) / total)
            data = sink.finish()
        except Exception as e:
            logging.exception(f"Export failed at frame {frame_idx + 1}/{total}")
            sink.abort()
            raise ExportError(f"Export failed at frame {frame_idx + 1}/{total}: {e}") from e
        finally:
            if timeout:
                clear_processing_timeout()
            self._reset_pose()
            self._set_state(DriverState.LOADED)
            self.last_frame = self.renderer.render()
        return data

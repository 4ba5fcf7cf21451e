#!/usr/bin/env python3
"""
SmartWarp — Mesh Warp Animator
CLI entry point. Also importable as a library.

Usage:
    python smartwarp.py list-kinds
    python smartwarp.py preview photo.png --kind wind --tick 30 -o frame.png
    python smartwarp.py export photo.png --kind idle --fps 20 --duration 2 -o loop.gif
    python smartwarp.py export photo.png --project photo.warp.json --format webm --transparent
    python smartwarp.py studio photo.png
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.brush import BrushController
from core.driver import DriverState, ExportError, FrameDriver, SessionStateError
from core.encoders import make_encoder
from core.export_models import ExportFormat, ExportSettings, list_presets
from core.image_io import save_frame
from core.layer import LayerError
from core.project import apply_project, load_project, save_project
from core.safety import DEFAULT_DENSITY, MAX_WORKING_DIM
from physics import DIRECTIONAL_KINDS, KINDS, PhysicsKind, list_kinds

__version__ = "0.1.0"

CONFIG_ARGS = ("amplitude", "frequency", "speed", "direction_x", "direction_y", "turbulence")
DIRECTIONAL_NAMES = ", ".join(k.value for k in DIRECTIONAL_KINDS)


def _parse_region(val: str):
    """'cx,cy,radius' -> (cx, cy, radius)."""
    parts = val.replace(" ", "").split(",")
    if len(parts) != 3:
        raise ValueError(f"Region must be 'cx,cy,radius'. Got: '{val}'")
    cx, cy, radius = (float(p) for p in parts)
    if radius <= 0:
        raise ValueError(f"Region radius must be positive: {val}")
    return cx, cy, radius


def _build_driver(args) -> FrameDriver:
    """Load the image and set up layers from a project or CLI flags."""
    if args.project:
        data = load_project(args.project)
        driver = FrameDriver(
            density=data.get("density", DEFAULT_DENSITY),
            max_dim=data.get("max_dim", MAX_WORKING_DIM),
        )
        image = args.image or data.get("source")
        if not image:
            raise ValueError("Project has no source image; pass one on the command line")
        driver.load_image_file(image)
        apply_project(driver, data)
        return driver

    if not args.image:
        raise ValueError("An image path is required")
    driver = FrameDriver(density=args.density)
    driver.load_image_file(args.image)

    layer = driver.active_layer
    if args.kind:
        driver.change_layer_kind(layer.layer_id, args.kind)
    changes = {k: getattr(args, k) for k in CONFIG_ARGS if getattr(args, k, None) is not None}
    if changes:
        driver.update_layer_config(layer.layer_id, **changes)

    if getattr(args, "region", None):
        cx, cy, radius = _parse_region(args.region)
        driver.paint(cx, cy, radius, 1.0)
    else:
        driver.fill_layer()
    return driver


def _add_layer_args(p):
    p.add_argument("image", nargs="?", help="Source image (optional with --project)")
    p.add_argument("--project", help="Project JSON saved from the studio")
    p.add_argument("--density", type=int, default=DEFAULT_DENSITY, help="Mesh rows")
    p.add_argument("--kind", choices=[k.value for k in PhysicsKind], help="Physics kind for the layer")
    p.add_argument("--amplitude", type=float, help="Peak offset in pixels")
    p.add_argument("--frequency", type=float, help="Oscillation rate")
    p.add_argument("--speed", type=float, help="Layer time per tick")
    p.add_argument("--direction-x", dest="direction_x", type=float, help=f"Horizontal bias ({DIRECTIONAL_NAMES})")
    p.add_argument("--direction-y", dest="direction_y", type=float, help=f"Vertical bias ({DIRECTIONAL_NAMES})")
    p.add_argument("--turbulence", type=float, help="Noise mix 0-1 (wind)")
    p.add_argument("--region", help="Only animate inside 'cx,cy,radius' (default: whole image)")


def cmd_list_kinds(args):
    """List all physics kinds."""
    print(f"\n  Physics kinds ({len(KINDS)}):")
    print(f"  {'—' * 50}")
    for k in list_kinds():
        tag = " [direction]" if k["directional"] else ""
        print(f"    {k['name']:8s} {k['label']:26s} — {k['description']}{tag}")
    print()


def cmd_list_presets(args):
    """List export presets."""
    for p in list_presets():
        print(f"  {p['name']:14s} [{p['format']}]")


def cmd_preview(args):
    """Render a single tick to an image file."""
    driver = _build_driver(args)
    frame = driver.preview_at(args.tick)
    output = args.output or f"{Path(args.image or 'preview').stem}_t{args.tick}.png"
    save_frame(frame, output)
    print(f"Preview (tick {args.tick}): {output}")


def cmd_export(args):
    """Export an animation loop."""
    driver = _build_driver(args)

    overrides = {}
    if args.format:
        overrides["format"] = args.format
    if args.fps:
        overrides["fps"] = args.fps
    if args.duration:
        overrides["duration"] = args.duration
    if args.transparent:
        overrides["transparent_background"] = True
    if args.name:
        overrides["filename"] = args.name
    if args.preset:
        settings = ExportSettings.from_preset(args.preset, **overrides)
    else:
        settings = ExportSettings(**overrides)

    name = settings.filename or f"smartwarp_{int(time.time())}"
    output = Path(args.output or f"{name}{settings.get_output_extension()}")
    total = settings.total_frames
    print(f"  Exporting: {driver.renderer.width}x{driver.renderer.height} @ {settings.fps}fps, "
          f"{total} frames ({settings.format.value})")

    def progress(fraction):
        print(f"\r  Rendering: {fraction * 100:.0f}%", end="", flush=True)

    start = time.time()
    data = driver.export(make_encoder(settings), settings,
                         progress_callback=progress, timeout=args.timeout)
    print()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    print(f"  Export complete: {time.time() - start:.1f}s, {len(data) / 1024:.0f}KB")
    print(f"  Output: {output}")


STUDIO_HELP = """
  SmartWarp Studio
  ────────────────
  mouse drag   paint weights on the active layer
  space        play / stop
  e            toggle paint / erase
  [ ]          brush size
  f / c        fill / clear active layer
  n / d        new layer / delete active layer
  tab          next layer
  v            toggle layer visibility
  1-7          set layer kind (idle wind water fire pulse wobble spiral)
  m            show / hide weight mask
  s            save project
  g            export GIF
  q / esc      quit
"""


def handle_studio_key(key, driver, brush, project_path, image_path=None):
    """Apply one studio key press. Errors are printed and the session keeps going."""
    kinds = list(PhysicsKind)
    layer = driver.active_layer
    try:
        if key == ord(" "):
            print("  Playing" if driver.toggle_animation() else "  Stopped")
        elif key == ord("e"):
            print(f"  Brush: {brush.toggle_mode().value}")
        elif key == ord("["):
            brush.size -= 5
        elif key == ord("]"):
            brush.size += 5
        elif key == ord("f") and driver.can_paint:
            driver.fill_layer()
        elif key == ord("c") and driver.can_paint:
            driver.clear_layer()
        elif key == ord("n"):
            new = driver.add_layer()
            print(f"  Added layer {new.layer_id}: {new.name}")
        elif key == ord("d"):
            driver.remove_layer(layer.layer_id)
            print(f"  Removed layer {layer.layer_id}")
        elif key == 9:  # tab
            idx = driver.layers.index_of(layer.layer_id)
            driver.select_layer(driver.layers.layers[(idx + 1) % len(driver.layers)].layer_id)
            print(f"  Active layer: {driver.active_layer.name}")
        elif key == ord("v"):
            driver.toggle_layer_visibility(layer.layer_id)
        elif ord("1") <= key < ord("1") + len(kinds):
            driver.change_layer_kind(layer.layer_id, kinds[key - ord("1")])
            print(f"  {layer.name}: {layer.config.kind.value}")
        elif key == ord("s"):
            save_project(project_path, driver, source_path=image_path)
            print(f"  Saved: {project_path}")
        elif key == ord("g"):
            settings = ExportSettings(format=ExportFormat.GIF)
            out = Path(project_path).with_suffix(".gif")
            out.write_bytes(driver.export(make_encoder(settings), settings))
            print(f"  Exported: {out}")
    except (LayerError, SessionStateError, ExportError) as e:
        print(f"  {e}")


def cmd_studio(args):
    """Interactive OpenCV window: paint weights and preview the animation."""
    import cv2
    from core.overlay import draw_weight_overlay

    driver = _build_driver(args) if args.project else FrameDriver(density=args.density)
    if not args.project:
        driver.load_image_file(args.image)
    brush = BrushController(driver)
    show_mask = True
    project_path = Path(args.save or f"{Path(args.image or args.project).stem}.warp.json")
    window = "SmartWarp Studio"

    def on_mouse(event, x, y, flags, param):
        if event == cv2.EVENT_LBUTTONDOWN:
            brush.pointer_down(x, y)
        elif event == cv2.EVENT_MOUSEMOVE:
            brush.pointer_move(x, y)
        elif event == cv2.EVENT_LBUTTONUP:
            brush.pointer_up()

    print(STUDIO_HELP)
    cv2.namedWindow(window)
    cv2.setMouseCallback(window, on_mouse)
    delay = max(1, int(1000 / args.fps))

    while True:
        animating = driver.state == DriverState.ANIMATING
        frame = driver.step() if animating else driver.last_frame
        shown = draw_weight_overlay(
            frame, driver.mesh, driver.layers, driver.active_layer_id,
            cursor=None if animating else brush.cursor,
            brush_size=brush.size,
            show_mask=show_mask and not animating,
        )
        cv2.imshow(window, cv2.cvtColor(shown, cv2.COLOR_RGB2BGR))
        key = cv2.waitKey(delay) & 0xFF
        if key in (ord("q"), 27) or cv2.getWindowProperty(window, cv2.WND_PROP_VISIBLE) < 1:
            break
        if key == 255:
            if not animating:
                driver.render()
            continue

        if key == ord("m"):
            show_mask = not show_mask
        else:
            handle_studio_key(key, driver, brush, project_path, args.image)
        if driver.state == DriverState.LOADED:
            driver.render()

    cv2.destroyAllWindows()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="smartwarp",
        description="SmartWarp — paint-driven mesh warp animator",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # list-kinds
    sub.add_parser("list-kinds", help="List physics kinds")

    # list-presets
    sub.add_parser("list-presets", help="List export presets")

    # preview
    p = sub.add_parser("preview", help="Render one tick to an image")
    _add_layer_args(p)
    p.add_argument("--tick", type=int, default=10, help="Global tick to render")
    p.add_argument("-o", "--output", help="Output image path")

    # export
    p = sub.add_parser("export", help="Export an animated GIF / WebM / MP4")
    _add_layer_args(p)
    p.add_argument("--preset", help="Export preset (see list-presets)")
    p.add_argument("--format", choices=[f.value for f in ExportFormat])
    p.add_argument("--fps", type=int)
    p.add_argument("--duration", type=float, help="Seconds")
    p.add_argument("--transparent", action="store_true", help="Transparent background")
    p.add_argument("--timeout", type=int, help="Abort the export after N seconds")
    p.add_argument("--name", help="Output name without extension (used when -o is not given)")
    p.add_argument("-o", "--output", help="Output file path")

    # studio
    p = sub.add_parser("studio", help="Interactive painting window (OpenCV)")
    p.add_argument("image", nargs="?", help="Source image")
    p.add_argument("--project", help="Project JSON to open")
    p.add_argument("--density", type=int, default=DEFAULT_DENSITY, help="Mesh rows")
    p.add_argument("--fps", type=int, default=30, help="Preview frame rate")
    p.add_argument("--save", help="Project path for the 's' key")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "list-kinds": cmd_list_kinds,
        "list-presets": cmd_list_presets,
        "preview": cmd_preview,
        "export": cmd_export,
        "studio": cmd_studio,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()

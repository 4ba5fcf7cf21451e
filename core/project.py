"""
SmartWarp — Project Files
Saves and restores a session's layers, painted weights, mesh density and
source image path as a single JSON document.
"""

import json
from datetime import datetime
from pathlib import Path

from core.layer import LayerStack
from core.mesh import MeshError

PROJECT_VERSION = 1


def save_project(path, driver, source_path=None) -> Path:
    """Write the driver's layers and weights to a project JSON file.

    Args:
        path: Output .json path (parent dirs are created).
        driver: FrameDriver to save. Weights are saved only if an image is loaded.
        source_path: Source image path to record (optional).

    Returns:
        Path to the written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    weights = {}
    mesh = None
    if driver.mesh is not None:
        mesh = {"rows": driver.mesh.rows, "cols": driver.mesh.cols, "points": len(driver.mesh)}
        for layer in driver.layers:
            weights[str(layer.layer_id)] = [round(float(w), 4) for w in driver.mesh.weights(layer.layer_id)]

    data = {
        "version": PROJECT_VERSION,
        "name": path.stem,
        "created": datetime.now().isoformat(),
        "source": str(Path(source_path).resolve()) if source_path else None,
        "density": driver.density,
        "max_dim": driver.max_dim,
        "mesh": mesh,
        "active_layer_id": driver.active_layer_id,
        **driver.layers.to_dict(),
        "weights": weights,
    }
    path.write_text(json.dumps(data, indent=2))
    return path


def load_project(path) -> dict:
    """Load project JSON."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Project not found: {path}")
    data = json.loads(path.read_text())
    version = data.get("version")
    if version != PROJECT_VERSION:
        raise ValueError(f"Unsupported project version {version!r} in {path}")
    if not data.get("layers"):
        raise ValueError(f"Project {path} has no layers")
    return data


def apply_project(driver, data: dict) -> None:
    """Restore layers (and weights, if an image is loaded) into a driver.

    The driver must have been created with the project's density and have
    its image loaded, otherwise the weight maps will not line up.

    Raises:
        MeshError: If saved weights do not match the current mesh.
    """
    driver.replace_layers(LayerStack.from_dict(data), data.get("active_layer_id"))
    if driver.mesh is None:
        return
    for key, values in data.get("weights", {}).items():
        layer_id = int(key)
        if layer_id not in driver.layers:
            continue
        if len(values) != len(driver.mesh):
            raise MeshError(
                f"Project weights have {len(values)} points, mesh has {len(driver.mesh)}. "
                f"Load the same image with density {data.get('density')}."
            )
        driver.mesh.set_weights(layer_id, values)

"""
SmartWarp — Layer Model

Manages the ordered stack of animation layers.

Each layer has:
- A stable integer id (weight maps reference layers only by this id)
- A display name and overlay color
- A visibility flag (hidden layers contribute no displacement)
- A LayerConfig: physics kind + amplitude/frequency/speed/direction/turbulence

At least one layer exists at all times.
"""

from dataclasses import dataclass, field

from physics import DEFAULT_CONFIGS, LayerConfig, PhysicsKind, default_config


# Overlay tints (RGBA, alpha 0-1), cycled as layers are added
LAYER_COLORS = [
    (255, 50, 50, 0.4),    # Red
    (50, 255, 50, 0.4),    # Green
    (50, 100, 255, 0.4),   # Blue
    (255, 255, 50, 0.4),   # Yellow
    (255, 50, 255, 0.4),   # Magenta
    (50, 255, 255, 0.4),   # Cyan
]

DEFAULT_LAYER_NAME = "Breathing (Idle)"


class LayerError(Exception):
    """Invalid layer operation (unknown id, removing the last layer)."""
    pass


@dataclass
class Layer:
    """A single animation layer.

    Configuration (serializable):
        layer_id: Unique integer ID, stable for the layer's lifetime.
        name: Display name.
        visible: Hidden layers are skipped by GridMesh.update.
        color: Overlay tint (r, g, b, alpha).
        config: Physics parameters. Replaced (never mutated) on edits.
    """
    layer_id: int = 0
    name: str = ""
    visible: bool = True
    color: tuple = LAYER_COLORS[0]
    config: LayerConfig = field(default_factory=lambda: DEFAULT_CONFIGS[PhysicsKind.IDLE])

    def to_dict(self):
        return {
            "layer_id": self.layer_id,
            "name": self.name,
            "visible": self.visible,
            "color": list(self.color),
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, d):
        return cls(
            layer_id=int(d["layer_id"]),
            name=d.get("name", ""),
            visible=bool(d.get("visible", True)),
            color=tuple(d.get("color", LAYER_COLORS[0])),
            config=LayerConfig.from_dict(d["config"]) if "config" in d else default_config("idle"),
        )


class LayerStack:
    """Ordered, id-keyed collection of layers.

    Order is display order; it does not affect displacement, which sums
    over all visible layers.
    """

    def __init__(self, layers=None):
        if layers is None:
            layers = [Layer(layer_id=1, name=DEFAULT_LAYER_NAME)]
        layers = list(layers)
        if not layers:
            raise LayerError("A layer stack needs at least one layer")
        ids = [l.layer_id for l in layers]
        if len(set(ids)) != len(ids):
            raise LayerError(f"Duplicate layer ids: {ids}")
        self.layers = layers
        self._next_id = max(ids) + 1

    def __iter__(self):
        return iter(self.layers)

    def __len__(self):
        return len(self.layers)

    def __contains__(self, layer_id):
        return any(l.layer_id == layer_id for l in self.layers)

    def get(self, layer_id) -> Layer:
        """Get layer by ID."""
        for layer in self.layers:
            if layer.layer_id == layer_id:
                return layer
        raise LayerError(f"Unknown layer id: {layer_id}")

    def index_of(self, layer_id) -> int:
        return self.layers.index(self.get(layer_id))

    def visible(self):
        return [l for l in self.layers if l.visible]

    def add(self, kind=PhysicsKind.WIND, name: str | None = None) -> Layer:
        """Append a new layer with the kind's default config."""
        layer = Layer(
            layer_id=self._next_id,
            name=name or f"New Layer {len(self.layers) + 1}",
            color=LAYER_COLORS[len(self.layers) % len(LAYER_COLORS)],
            config=default_config(kind),
        )
        self._next_id += 1
        self.layers.append(layer)
        return layer

    def remove(self, layer_id) -> Layer:
        """Remove a layer. The last remaining layer cannot be removed."""
        layer = self.get(layer_id)
        if len(self.layers) <= 1:
            raise LayerError("Cannot remove the last layer")
        self.layers.remove(layer)
        return layer

    def move(self, layer_id, new_index: int) -> None:
        """Reorder: place a layer at new_index (clamped to the stack)."""
        layer = self.get(layer_id)
        self.layers.remove(layer)
        new_index = max(0, min(new_index, len(self.layers)))
        self.layers.insert(new_index, layer)

    def toggle_visibility(self, layer_id) -> bool:
        layer = self.get(layer_id)
        layer.visible = not layer.visible
        return layer.visible

    def rename(self, layer_id, name: str) -> None:
        self.get(layer_id).name = name

    def update_config(self, layer_id, **changes) -> LayerConfig:
        """Edit some config fields; safe while animating (read on next tick)."""
        layer = self.get(layer_id)
        try:
            layer.config = layer.config.with_updates(**changes)
        except (TypeError, ValueError) as e:
            raise LayerError(f"Invalid config update for layer {layer_id}: {e}") from e
        return layer.config

    def change_kind(self, layer_id, kind) -> Layer:
        """Switch kind: resets config to the kind's defaults and renames."""
        layer = self.get(layer_id)
        try:
            layer.config = default_config(kind)
        except ValueError as e:
            raise LayerError(f"Unknown physics kind: {kind}") from e
        layer.name = layer.config.kind.value.capitalize()
        return layer

    def to_dict(self):
        return {"layers": [l.to_dict() for l in self.layers]}

    @classmethod
    def from_dict(cls, d):
        layers = [Layer.from_dict(ld) for ld in d.get("layers", [])]
        return cls(layers)

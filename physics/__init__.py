"""
SmartWarp — Physics Registry
Closed set of displacement kinds and a uniform dispatch.
Every kind is a function: (ox, oy, t, config, width, height) -> (dx, dy)
"""

from dataclasses import asdict, dataclass, replace
from enum import Enum

from physics.displacement import idle, wind, water, fire, pulse, wobble, spiral


class PhysicsKind(str, Enum):
    """Displacement kind of a layer."""
    IDLE = "idle"
    WIND = "wind"
    WATER = "water"
    FIRE = "fire"
    PULSE = "pulse"
    WOBBLE = "wobble"
    SPIRAL = "spiral"


@dataclass(frozen=True)
class LayerConfig:
    """Parameters one layer feeds into its displacement function.

    Attributes:
        kind: Which displacement formula to use.
        amplitude: Peak offset in pixels.
        frequency: Oscillation rate (unitless, multiplies layer time).
        speed: Layer time = global tick * speed.
        direction_x: Horizontal bias (wind, water).
        direction_y: Vertical bias (wind, water).
        turbulence: 0-1 mix of the noise term (wind).
    """
    kind: PhysicsKind = PhysicsKind.IDLE
    amplitude: float = 3.0
    frequency: float = 1.0
    speed: float = 0.05
    direction_x: float = 0.0
    direction_y: float = 0.0
    turbulence: float = 0.0

    def __post_init__(self):
        # Accept plain strings ("wind") from JSON and the CLI
        object.__setattr__(self, "kind", PhysicsKind(self.kind))

    def with_updates(self, **changes) -> "LayerConfig":
        """Copy with some fields changed. Unknown fields raise TypeError."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "LayerConfig":
        return cls(**d)


# Per-kind starting points, used for new layers and kind changes
DEFAULT_CONFIGS = {
    PhysicsKind.IDLE: LayerConfig(PhysicsKind.IDLE, amplitude=3, frequency=1, speed=0.05),
    PhysicsKind.WIND: LayerConfig(PhysicsKind.WIND, amplitude=12, frequency=2, speed=0.15,
                                  direction_x=1, direction_y=0.2, turbulence=0.5),
    PhysicsKind.WATER: LayerConfig(PhysicsKind.WATER, amplitude=8, frequency=1.5, speed=0.08,
                                   direction_x=0, direction_y=1, turbulence=0.2),
    PhysicsKind.FIRE: LayerConfig(PhysicsKind.FIRE, amplitude=10, frequency=3, speed=0.2,
                                  direction_x=0, direction_y=-1, turbulence=0.8),
    PhysicsKind.PULSE: LayerConfig(PhysicsKind.PULSE, amplitude=6, frequency=4, speed=0.1),
    PhysicsKind.WOBBLE: LayerConfig(PhysicsKind.WOBBLE, amplitude=10, frequency=2, speed=0.1),
    PhysicsKind.SPIRAL: LayerConfig(PhysicsKind.SPIRAL, amplitude=8, frequency=1, speed=0.05),
}

# Master registry: kind -> (function, label, description)
KINDS = {
    PhysicsKind.IDLE: {
        "fn": idle,
        "label": "Idle (Natural Breathing)",
        "description": "Radial breathing from the center with a slight lift",
    },
    PhysicsKind.WIND: {
        "fn": wind,
        "label": "Wind / Flow",
        "description": "Directional sway with turbulent noise",
    },
    PhysicsKind.WATER: {
        "fn": water,
        "label": "Water / Ripple",
        "description": "Two orthogonal ripple waves",
    },
    PhysicsKind.FIRE: {
        "fn": fire,
        "label": "Fire / Heat",
        "description": "High-frequency heat shimmer drifting upward",
    },
    PhysicsKind.PULSE: {
        "fn": pulse,
        "label": "Pulse / Heartbeat",
        "description": "Sharp periodic radial kick",
    },
    PhysicsKind.WOBBLE: {
        "fn": wobble,
        "label": "Wobble / Jelly",
        "description": "Cross-coupled sinusoidal jelly motion",
    },
    PhysicsKind.SPIRAL: {
        "fn": spiral,
        "label": "Spiral / Vortex",
        "description": "Angular twist around the center",
    },
}

# Kinds whose direction_x / direction_y parameters matter
DIRECTIONAL_KINDS = (PhysicsKind.WIND, PhysicsKind.WATER)


def default_config(kind) -> LayerConfig:
    """Default parameters for a kind (name or PhysicsKind)."""
    return DEFAULT_CONFIGS[PhysicsKind(kind)]


def displacement(origin, layer_time: float, config: LayerConfig, size):
    """Offset of a rest-pose origin under one layer at layer time.

    Args:
        origin: (ox, oy), floats or equal-shape numpy arrays.
        layer_time: Global tick * config.speed.
        config: The owning layer's LayerConfig.
        size: (width, height) of the mesh rest pose.

    Returns:
        (dx, dy) with the same shape as the origin components.
    """
    ox, oy = origin
    width, height = size
    fn = KINDS[config.kind]["fn"]
    return fn(ox, oy, layer_time, config, width, height)


def list_kinds():
    """List all kinds with label, description and whether direction applies."""
    return [
        {"name": kind.value, "label": entry["label"], "description": entry["description"],
         "directional": kind in DIRECTIONAL_KINDS}
        for kind, entry in KINDS.items()
    ]

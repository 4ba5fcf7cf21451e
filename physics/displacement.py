"""
SmartWarp — Displacement Functions

One closed-form formula per physics kind. Every function maps a rest-pose
origin (scalar or numpy array) to a 2D offset at a given layer time:

    fn(ox, oy, t, config, width, height) -> (dx, dy)

Offsets depend only on the ORIGIN, never on the current displaced position,
so evaluating the same (origin, t, config) always gives the same offset.
`t` is the layer-local time: global tick * config.speed.
"""

import numpy as np


def _from_center(ox, oy, width, height):
    """Offset from the mesh center and its length."""
    rx = np.asarray(ox, dtype=np.float64) - width / 2.0
    ry = np.asarray(oy, dtype=np.float64) - height / 2.0
    return rx, ry, np.sqrt(rx * rx + ry * ry)


def _unit(rx, ry, dist):
    """Unit radius vector, zero at the center itself."""
    safe = np.where(dist > 0, dist, 1.0)
    return rx / safe, ry / safe


def idle(ox, oy, t, config, width, height):
    """Natural breathing: radial swell from the center with a slight lift.

    Strength falls off linearly to zero at half the mesh width from center.
    """
    rx, ry, dist = _from_center(ox, oy, width, height)
    norm_dist = dist / (width * 0.5)
    breath = np.sin(t * config.frequency) * config.amplitude * np.maximum(0.0, 1.0 - norm_dist)
    ux, uy = _unit(rx, ry, dist)
    dx = ux * breath * 0.5
    dy = uy * breath - breath * 0.5
    return dx, dy


def wind(ox, oy, t, config, width, height):
    """Wind / flow: two phase-shifted sinusoids plus a turbulent cross term."""
    ox = np.asarray(ox, dtype=np.float64)
    oy = np.asarray(oy, dtype=np.float64)
    noise = (np.sin(ox * 0.02 + oy * 0.02 + t)
             + np.cos(oy * 0.05 + t * 1.5) * config.turbulence)
    dx = (np.cos(t) + noise) * config.amplitude * config.direction_x
    dy = (np.sin(t * 0.7) + noise) * config.amplitude * config.direction_y
    return dx, dy


def water(ox, oy, t, config, width, height):
    """Water ripple: orthogonal waves along x and y."""
    wave1 = np.sin(np.asarray(ox, dtype=np.float64) * 0.05 + t * 2)
    wave2 = np.cos(np.asarray(oy, dtype=np.float64) * 0.05 + t * 1.5)
    dx = wave2 * config.amplitude * 0.3
    dy = wave1 * config.amplitude
    return dx, dy


def fire(ox, oy, t, config, width, height):
    """Heat shimmer with a constant upward drift."""
    ox = np.asarray(ox, dtype=np.float64)
    oy = np.asarray(oy, dtype=np.float64)
    noise_x = np.sin(ox * 0.1 + t * 5) * np.cos(oy * 0.05 + t * 2)
    noise_y = np.sin(oy * 0.1 + t * 3)
    dx = noise_x * (config.amplitude * 0.5)
    dy = noise_y * config.amplitude - np.abs(np.sin(t)) * 2
    return dx, dy


def pulse(ox, oy, t, config, width, height):
    """Heartbeat: sharp radial kick, sin^6 keeps the peak narrow."""
    rx, ry, dist = _from_center(ox, oy, width, height)
    beat = np.sin(t * config.frequency) ** 6
    ux, uy = _unit(rx, ry, dist)
    return ux * beat * config.amplitude, uy * beat * config.amplitude


def wobble(ox, oy, t, config, width, height):
    """Jelly wobble: x follows the row, y follows the column."""
    phase = t * config.frequency
    dx = np.sin(phase + np.asarray(oy, dtype=np.float64) * 0.05) * config.amplitude
    dy = np.cos(phase + np.asarray(ox, dtype=np.float64) * 0.05) * config.amplitude
    return dx, dy


def spiral(ox, oy, t, config, width, height):
    """Vortex twist: rotate about the center, more so further out."""
    rx, ry, dist = _from_center(ox, oy, width, height)
    angle = np.arctan2(ry, rx)
    twist = np.sin(t * config.frequency) * (config.amplitude * 0.01) * (dist / 100.0)
    new_angle = angle + twist
    cx, cy = width / 2.0, height / 2.0
    new_x = cx + np.cos(new_angle) * dist
    new_y = cy + np.sin(new_angle) * dist
    return new_x - (rx + cx), new_y - (ry + cy)

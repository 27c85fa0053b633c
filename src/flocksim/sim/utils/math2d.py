from __future__ import annotations

import math

from pygame.math import Vector2


def _wrap(value: float, limit: float) -> float:
    wrapped = value % limit
    # A tiny negative value can round up to `limit` itself.
    if wrapped >= limit:
        return 0.0
    return wrapped


def _normalize_or_zero(vector: Vector2) -> Vector2:
    magnitude_sq = vector.length_squared()
    if magnitude_sq == 0.0:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(vector.x * inv, vector.y * inv)


def _heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from pygame.math import Vector2

from ..utils.math2d import _clamp_value, _heading_from_velocity, _normalize_or_zero, _wrap


class ColorClass(str, Enum):
    BLACK = "black"
    YELLOW = "yellow"
    BLUE = "blue"
    MAGENTA = "magenta"
    GREEN = "green"
    RED = "red"
    CYAN = "cyan"

    @property
    def rgb(self) -> tuple[int, int, int]:
        return _COLOR_RGB[self]

    @classmethod
    def for_index(cls, index: int) -> "ColorClass":
        return _COLOR_ORDER[index % len(_COLOR_ORDER)]


_COLOR_ORDER = tuple(ColorClass)
_COLOR_RGB = {
    ColorClass.BLACK: (0, 0, 0),
    ColorClass.YELLOW: (255, 255, 0),
    ColorClass.BLUE: (0, 0, 255),
    ColorClass.MAGENTA: (255, 0, 255),
    ColorClass.GREEN: (0, 255, 0),
    ColorClass.RED: (255, 0, 0),
    ColorClass.CYAN: (0, 255, 255),
}


@dataclass(slots=True, eq=False)
class Agent:
    index: int
    position: Vector2
    velocity: Vector2
    color: ColorClass
    # Grid cell the agent was last indexed into
    row: int = 0
    col: int = 0

    @classmethod
    def spawn(cls, index: int, x: float, y: float, max_speed: float) -> "Agent":
        return cls(
            index=index,
            position=Vector2(x, y),
            velocity=Vector2(1.0, 1.0) * (max_speed / 2.0),
            color=ColorClass.for_index(index),
        )

    @property
    def heading(self) -> float:
        return _heading_from_velocity(self.velocity)

    @property
    def speed(self) -> float:
        return math.hypot(self.velocity.x, self.velocity.y)

    def advance(self, width: float, height: float) -> None:
        self.position.x = _wrap(self.position.x + self.velocity.x, width)
        self.position.y = _wrap(self.position.y + self.velocity.y, height)

    def apply_steering(self, direction: Vector2, max_speed: float, min_speed: float) -> None:
        """Add `direction` to the velocity, then enforce the speed limits.

        Each axis is clamped to ``[-max_speed, max_speed]`` first; only then is a
        velocity slower than ``min_speed`` stretched back up to exactly
        ``min_speed``. A zero velocity has no direction and stays zero.
        """
        vx = _clamp_value(self.velocity.x + direction.x, -max_speed, max_speed)
        vy = _clamp_value(self.velocity.y + direction.y, -max_speed, max_speed)
        self.velocity.update(vx, vy)
        if self.velocity.length_squared() < min_speed * min_speed:
            self.velocity = _normalize_or_zero(self.velocity) * min_speed

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Agent):
            return NotImplemented
        return self.position == other.position and self.velocity == other.velocity

    def __hash__(self) -> int:
        return hash((self.position.x, self.position.y, self.velocity.x, self.velocity.y))

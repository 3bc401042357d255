"""
Geometry Module - Link lengths, joint positions and angle helpers.

Coordinate system:
- O2 (input crank pivot) at the origin
- O4 (output rocker pivot) at (r1, 0)
- Angles measured counter-clockwise from +X

Internal units: radians. Public synthesis inputs are degrees.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, NamedTuple, Optional

import numpy as np

from .errors import InputShapeError


class AnglePair(NamedTuple):
    """One precision position: input and output angle in degrees."""
    theta: float
    phi: float


class AssemblyMode(Enum):
    """Which circle-intersection root the position solver returns."""
    OPEN = "open"
    CLOSED = "closed"
    NEAREST = "nearest"  # Continuity from the previous output angle

    @classmethod
    def parse(cls, value) -> "AssemblyMode":
        """Accept an AssemblyMode or its name ('crossed' means closed)."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key == "crossed":
            return cls.CLOSED
        try:
            return cls(key)
        except ValueError:
            raise InputShapeError(
                f"Unknown assembly mode {value!r}; expected one of "
                f"{[m.value for m in cls]} or 'crossed'"
            ) from None


@dataclass(frozen=True)
class LinkageLengths:
    """
    Four-bar link lengths, all in the unit of the ground link.

    Immutable: a new synthesis produces a new value.
    """
    r1: float  # Ground (O2 -> O4)
    r2: float  # Input crank (O2 -> A)
    r3: float  # Coupler (A -> B)
    r4: float  # Output rocker (O4 -> B)

    def as_tuple(self):
        return (self.r1, self.r2, self.r3, self.r4)

    def scaled(self, factor: float) -> "LinkageLengths":
        """Return a copy with every link multiplied by factor."""
        return LinkageLengths(*(r * factor for r in self.as_tuple()))

    def to_dict(self) -> Dict[str, float]:
        return {'r1': self.r1, 'r2': self.r2, 'r3': self.r3, 'r4': self.r4}


@dataclass
class PositionResult:
    """Solved configuration at one input angle."""
    theta: float        # Input angle (rad)
    phi: float          # Output angle (rad)
    O2: np.ndarray
    A: np.ndarray
    B: np.ndarray
    O4: np.ndarray
    mode: Optional[AssemblyMode] = field(default=None)  # Branch actually taken

    @property
    def theta_deg(self) -> float:
        return math.degrees(self.theta)

    @property
    def phi_deg(self) -> float:
        return math.degrees(self.phi)

    @property
    def coupler_length(self) -> float:
        """|B - A|, equal to r3 when the loop closes."""
        return float(np.linalg.norm(self.B - self.A))

    def joints(self) -> Dict[str, np.ndarray]:
        return {'O2': self.O2, 'A': self.A, 'B': self.B, 'O4': self.O4}


def normalize_angle(angle: float) -> float:
    """Wrap angle to (-pi, pi]."""
    a = math.fmod(angle, 2 * math.pi)
    if a <= -math.pi:
        a += 2 * math.pi
    elif a > math.pi:
        a -= 2 * math.pi
    return a


def crank_point(r2: float, theta: float) -> np.ndarray:
    """Moving end A of the input crank."""
    return np.array([r2 * math.cos(theta), r2 * math.sin(theta)])


def rocker_point(r1: float, r4: float, phi: float) -> np.ndarray:
    """Moving end B of the output rocker."""
    return np.array([r1 + r4 * math.cos(phi), r4 * math.sin(phi)])


def precision_pose(lengths: LinkageLengths, theta: float, phi: float) -> Dict[str, np.ndarray]:
    """
    Joint positions for a prescribed (theta, phi) pair, in radians.

    Unlike the position solver this does not enforce loop closure, so it is
    used to draw the requested precision positions as given.
    """
    return {
        'O2': np.zeros(2),
        'A': crank_point(lengths.r2, theta),
        'B': rocker_point(lengths.r1, lengths.r4, phi),
        'O4': np.array([lengths.r1, 0.0]),
    }

"""Error taxonomy for synthesis and position analysis.

All of these are expected outcomes of invalid input or geometry. None is
fatal; callers decide whether to skip a frame, show a message or exit.
"""


class FourBarError(ValueError):
    """Base class for every error raised by the fourbar core."""


class InputShapeError(FourBarError):
    """Malformed input: angle pair counts, ground length, or an unknown option value."""


class SingularSystemError(FourBarError):
    """The 3x3 synthesis system cannot be solved (duplicate or degenerate angles)."""


class InfeasibleGeometryError(FourBarError):
    """No real four-bar with positive link lengths meets the precision positions."""


class UnreachableConfigurationError(FourBarError):
    """The linkage cannot be assembled at the requested input angle."""

    def __init__(self, theta: float, distance: float, min_distance: float,
                 max_distance: float):
        self.theta = theta
        self.distance = distance
        self.min_distance = min_distance
        self.max_distance = max_distance
        super().__init__(
            f"cannot assemble at theta={theta:.6g} rad: |A-O4|={distance:.6g} "
            f"outside [{min_distance:.6g}, {max_distance:.6g}]"
        )

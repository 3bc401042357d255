"""
Analysis Module - Sweeps, animation sessions and validation.

Provides tools for:
- Stepping a linkage through input angles with branch continuity
- Mapping an animation slider onto the precision range
- Sampling φ(θ) curves for plotting
- Checking that a synthesized linkage reaches its precision positions
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import UnreachableConfigurationError
from .geometry import AssemblyMode, LinkageLengths, PositionResult, normalize_angle
from .solver import branch_angles, positions_for


class SweepSession:
    """
    One logical animation/sweep over a single linkage.

    Owns the continuity cell (previous φ). Switching mode, seeking or
    re-synthesizing starts a new sweep. Not safe to share between threads.
    """

    def __init__(self, lengths: LinkageLengths, mode=AssemblyMode.NEAREST):
        self.lengths = lengths
        self.mode = AssemblyMode.parse(mode)
        self.prev_phi: Optional[float] = None

    def step(self, theta_deg: float) -> PositionResult:
        """
        Solve at theta_deg and update the continuity cell.

        UnreachableConfigurationError propagates and leaves the cell as it was.
        """
        result = positions_for(self.lengths, math.radians(theta_deg),
                               self.prev_phi, self.mode)
        self.prev_phi = result.phi
        return result

    def reset(self):
        self.prev_phi = None

    def set_mode(self, mode):
        self.mode = AssemblyMode.parse(mode)
        self.reset()

    def seek(self, theta_deg: float) -> PositionResult:
        """Jump to theta_deg without continuity from the previous frame."""
        self.reset()
        return self.step(theta_deg)

    def resynthesize(self, lengths: LinkageLengths):
        self.lengths = lengths
        self.reset()


def theta_from_slider(t: float, theta_deg: Sequence[float]) -> float:
    """
    Map slider position t in [0, 1] to an input angle.

    The slider is split into equal segments between consecutive precision
    angles: with three angles, the first half runs θ1→θ2, the second θ2→θ3.
    """
    thetas = [float(v) for v in theta_deg]
    if len(thetas) == 1:
        return thetas[0]
    t = min(1.0, max(0.0, float(t)))
    n_seg = len(thetas) - 1
    pos = t * n_seg
    i = min(int(pos), n_seg - 1)
    local = pos - i
    return thetas[i] + local * (thetas[i + 1] - thetas[i])


def advance_slider(t: float, step: float = 0.002) -> float:
    """Next animation slider value, wrapping past the end back to 0."""
    nxt = t + step
    if nxt > 1:
        nxt = 0.0
    return nxt


@dataclass
class SweepCurves:
    """Sampled sweep over input angle, unreachable samples are NaN."""
    theta_deg: np.ndarray
    phi_deg: np.ndarray       # Unwrapped along each reachable run
    reachable: np.ndarray     # bool
    closed_branch: np.ndarray # bool, True where the closed root was taken
    a_xy: np.ndarray          # (N, 2)
    b_xy: np.ndarray          # (N, 2)
    coupler_error: np.ndarray # |B - A| - r3

    @property
    def n_unreachable(self) -> int:
        return int(np.count_nonzero(~self.reachable))


def compute_sweep(lengths: LinkageLengths,
                  theta_range_deg: Tuple[float, float],
                  n_points: int = 181,
                  mode=AssemblyMode.NEAREST) -> SweepCurves:
    """
    Sample the linkage over an input-angle range.

    Continuity restarts after every unreachable gap.
    """
    thetas = np.linspace(theta_range_deg[0], theta_range_deg[1], n_points)
    mode = AssemblyMode.parse(mode)

    phi = np.full(n_points, np.nan)
    reachable = np.zeros(n_points, dtype=bool)
    closed = np.zeros(n_points, dtype=bool)
    a_xy = np.full((n_points, 2), np.nan)
    b_xy = np.full((n_points, 2), np.nan)
    err = np.full(n_points, np.nan)

    prev = None
    for i, th in enumerate(thetas):
        try:
            r = positions_for(lengths, math.radians(th), prev, mode)
        except UnreachableConfigurationError:
            prev = None
            continue

        value = r.phi
        if prev is not None:
            value = prev + normalize_angle(value - prev)
        prev = value

        phi[i] = value
        reachable[i] = True
        closed[i] = r.mode is AssemblyMode.CLOSED
        a_xy[i] = r.A
        b_xy[i] = r.B
        err[i] = r.coupler_length - lengths.r3

    return SweepCurves(
        theta_deg=thetas,
        phi_deg=np.degrees(phi),
        reachable=reachable,
        closed_branch=closed,
        a_xy=a_xy,
        b_xy=b_xy,
        coupler_error=err,
    )


@dataclass
class PrecisionCheck:
    """How closely the linkage reproduces one precision position."""
    index: int
    theta_deg: float
    target_phi_deg: float
    achieved_phi_deg: float
    branch: Optional[AssemblyMode]
    angle_error_deg: float
    coupler_error: float  # ||B - A| - r3| at the prescribed angles
    passed: bool

    @property
    def reachable(self) -> bool:
        return self.branch is not None


def check_precision_positions(lengths: LinkageLengths,
                              theta_deg: Sequence[float],
                              phi_deg: Sequence[float],
                              angle_tol_deg: float = 1.0,
                              length_tol: float = 1.0) -> List[PrecisionCheck]:
    """
    Solve the linkage at each precision input angle and compare outputs.

    The branch closer to the target φ is reported, since which assembly
    mode passes through the positions depends on the design.
    """
    checks = []
    for i, (th, ph) in enumerate(zip(theta_deg, phi_deg)):
        theta = math.radians(th)
        target = math.radians(ph)

        a = np.array([lengths.r2 * math.cos(theta), lengths.r2 * math.sin(theta)])
        b = np.array([lengths.r1 + lengths.r4 * math.cos(target), lengths.r4 * math.sin(target)])
        coupler_error = abs(float(np.linalg.norm(b - a)) - lengths.r3)

        try:
            phi_open, phi_closed = branch_angles(*lengths.as_tuple(), theta)
        except UnreachableConfigurationError:
            checks.append(PrecisionCheck(
                index=i, theta_deg=float(th), target_phi_deg=float(ph),
                achieved_phi_deg=float('nan'), branch=None,
                angle_error_deg=float('nan'), coupler_error=coupler_error,
                passed=False,
            ))
            continue

        err_open = abs(normalize_angle(phi_open - target))
        err_closed = abs(normalize_angle(phi_closed - target))
        if err_closed < err_open:
            achieved, branch, angle_err = phi_closed, AssemblyMode.CLOSED, err_closed
        else:
            achieved, branch, angle_err = phi_open, AssemblyMode.OPEN, err_open

        angle_err_deg = math.degrees(angle_err)
        checks.append(PrecisionCheck(
            index=i,
            theta_deg=float(th),
            target_phi_deg=float(ph),
            achieved_phi_deg=math.degrees(normalize_angle(achieved)),
            branch=branch,
            angle_error_deg=angle_err_deg,
            coupler_error=coupler_error,
            passed=angle_err_deg <= angle_tol_deg and coupler_error <= length_tol,
        ))
    return checks


def design_branch(checks: Sequence[PrecisionCheck]) -> Optional[AssemblyMode]:
    """The assembly mode shared by all precision positions, if any."""
    branches = {c.branch for c in checks}
    if len(branches) == 1:
        return branches.pop()
    return None

"""
Solver Module - Position analysis of the four-bar loop.

Given link lengths and an input angle θ, B is the intersection of the
circle of radius r3 about A and the circle of radius r4 about O4. The two
roots are the open (δ + γ) and closed (δ - γ) assembly modes.

All angles in radians.
"""

import math
from typing import Optional, Tuple

import numpy as np

from .errors import InputShapeError, UnreachableConfigurationError
from .geometry import (AssemblyMode, LinkageLengths, PositionResult, crank_point,
                       normalize_angle, rocker_point)


def _pivot_offset(r1: float, r2: float, theta: float) -> Tuple[float, float, float]:
    """Vector O4 -> A and its length."""
    dx = r2 * math.cos(theta) - r1
    dy = r2 * math.sin(theta)
    return dx, dy, math.hypot(dx, dy)


def branch_angles(r1: float, r2: float, r3: float, r4: float,
                  theta: float) -> Tuple[float, float]:
    """
    Both output angles (open, closed) at input angle theta.

    Raises UnreachableConfigurationError if the loop cannot close, and
    InputShapeError for non-finite lengths or angle.
    """
    if not all(math.isfinite(v) for v in (r1, r2, r3, r4, theta)):
        raise InputShapeError(
            f"non-finite input: r=({r1}, {r2}, {r3}, {r4}), theta={theta}")
    dx, dy, d = _pivot_offset(r1, r2, theta)

    d_min, d_max = abs(r3 - r4), r3 + r4
    if d > d_max or d < d_min or d == 0.0:
        raise UnreachableConfigurationError(theta, d, d_min, d_max)

    delta = math.atan2(dy, dx)

    # Law of cosines at O4; clamp covers round-off at exact tangency
    cos_gamma = (d * d + r4 * r4 - r3 * r3) / (2 * d * r4)
    gamma = math.acos(min(1.0, max(-1.0, cos_gamma)))

    return delta + gamma, delta - gamma


def solve_phi(r1: float, r2: float, r3: float, r4: float, theta: float,
              prev_phi: Optional[float] = None,
              mode=AssemblyMode.OPEN) -> float:
    """
    Output rocker angle at input angle theta.

    Args:
        r1..r4: link lengths (ground, crank, coupler, rocker)
        theta: input angle (rad)
        prev_phi: previous output angle (rad), used by NEAREST mode
        mode: OPEN, CLOSED or NEAREST (also accepts their string names)

    Returns:
        phi (rad). Not wrapped: open/closed are δ ± γ as computed.
    """
    phi, _ = _resolve(r1, r2, r3, r4, theta, prev_phi, AssemblyMode.parse(mode))
    return phi


def _resolve(r1, r2, r3, r4, theta, prev_phi, mode: AssemblyMode):
    phi_open, phi_closed = branch_angles(r1, r2, r3, r4, theta)

    if mode is AssemblyMode.OPEN:
        return phi_open, AssemblyMode.OPEN
    if mode is AssemblyMode.CLOSED:
        return phi_closed, AssemblyMode.CLOSED

    # NEAREST: keep the branch closest to the previous step
    if prev_phi is None or math.isnan(prev_phi):
        return phi_open, AssemblyMode.OPEN
    diff_open = abs(normalize_angle(phi_open - prev_phi))
    diff_closed = abs(normalize_angle(phi_closed - prev_phi))
    if diff_closed < diff_open:
        return phi_closed, AssemblyMode.CLOSED
    return phi_open, AssemblyMode.OPEN


def compute_positions(r1: float, r2: float, r3: float, r4: float, theta: float,
                      prev_phi: Optional[float] = None,
                      mode=AssemblyMode.OPEN) -> PositionResult:
    """
    Solve the loop at theta and return all four joint positions.

    Returns:
        PositionResult with phi, O2=(0,0), A, B, O4=(r1,0) and the branch taken
    """
    phi, branch = _resolve(r1, r2, r3, r4, theta, prev_phi, AssemblyMode.parse(mode))
    return PositionResult(
        theta=theta,
        phi=phi,
        O2=np.zeros(2),
        A=crank_point(r2, theta),
        B=rocker_point(r1, r4, phi),
        O4=np.array([r1, 0.0]),
        mode=branch,
    )


def compute_positions_deg(r1: float, r2: float, r3: float, r4: float, theta_deg: float,
                          prev_phi_deg: Optional[float] = None,
                          mode=AssemblyMode.OPEN) -> PositionResult:
    """compute_positions with degrees at the boundary."""
    prev = None if prev_phi_deg is None else math.radians(prev_phi_deg)
    return compute_positions(r1, r2, r3, r4, math.radians(theta_deg), prev, mode)


def solve_phi_for(lengths: LinkageLengths, theta: float,
                  prev_phi: Optional[float] = None, mode=AssemblyMode.OPEN) -> float:
    return solve_phi(*lengths.as_tuple(), theta, prev_phi, mode)


def positions_for(lengths: LinkageLengths, theta: float,
                  prev_phi: Optional[float] = None, mode=AssemblyMode.OPEN) -> PositionResult:
    return compute_positions(*lengths.as_tuple(), theta, prev_phi, mode)


def is_reachable(lengths: LinkageLengths, theta: float) -> bool:
    """True if the linkage can be assembled at theta."""
    _, _, d = _pivot_offset(lengths.r1, lengths.r2, theta)
    return abs(lengths.r3 - lengths.r4) <= d <= lengths.r3 + lengths.r4 and d > 0.0

"""
Synthesis Module - Link lengths from prescribed precision positions.

Three positions are solved exactly. With the ground link normalized to 1,
the loop-closure equation

    r3² = 1 + r2² + r4² + 2·r4·cos φ - 2·r2·cos θ - 2·r2·r4·cos(θ - φ)

divided by 2·r2·r4 is linear in

    z1 = (1 + r2² + r4² - r3²) / (2·r2·r4),   z2 = 1/r2,   z3 = 1/r4

giving one row  z1 + z2·cos φ - z3·cos θ = cos(φ - θ)  per position.

Other position counts fall back to a least-squares fit behind the same
`synthesize_linkage` entry point.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

from .config import DEFAULT_TOLERANCES, SolverTolerances
from .errors import (InfeasibleGeometryError, InputShapeError,
                     SingularSystemError)
from .geometry import LinkageLengths, normalize_angle


@dataclass
class SynthesisResult:
    """Link lengths plus how well they meet the precision positions."""
    lengths: LinkageLengths
    strategy: str
    residual_rms: float  # RMS of |B_i - A_i| - r3 over all positions
    n_positions: int


def _angle_array(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1:
        raise InputShapeError(f"{name} must be a flat sequence of angles, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InputShapeError(f"{name} contains non-finite values")
    return arr


def _check_ground(r1: float) -> float:
    r1 = float(r1)
    if not math.isfinite(r1) or r1 <= 0:
        raise InputShapeError(f"ground length r1 must be positive, got {r1}")
    return r1


def _check_distinct(theta_deg: np.ndarray, tol_deg: float):
    """Input angles must differ pairwise (modulo 360°)."""
    for i in range(len(theta_deg)):
        for j in range(i + 1, len(theta_deg)):
            diff = normalize_angle(math.radians(theta_deg[i] - theta_deg[j]))
            if abs(math.degrees(diff)) <= tol_deg:
                raise SingularSystemError(
                    f"input angles {theta_deg[i]}° and {theta_deg[j]}° coincide; "
                    f"the three-position system is singular"
                )


def freudenstein_system(theta: np.ndarray, phi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rows [1, cos φ_i, -cos θ_i] and right-hand side cos(φ_i - θ_i).

    Args:
        theta, phi: angles in radians, one entry per position
    """
    A = np.column_stack([np.ones_like(theta), np.cos(phi), -np.cos(theta)])
    b = np.cos(phi - theta)
    return A, b


def solve_3x3(A: np.ndarray, b: np.ndarray, tol: float = DEFAULT_TOLERANCES.singular_det) -> np.ndarray:
    """Solve A·z = b by Cramer's rule."""
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    if A.shape != (3, 3) or b.shape != (3,):
        raise InputShapeError(f"expected a 3x3 system, got A{A.shape}, b{b.shape}")

    det = np.linalg.det(A)
    if abs(det) < tol:
        raise SingularSystemError(f"synthesis matrix is singular (det={det:.3e})")

    z = np.empty(3)
    for col in range(3):
        M = A.copy()
        M[:, col] = b
        z[col] = np.linalg.det(M) / det
    return z


def recover_lengths(z: Sequence[float], r1: float,
                    tolerances: SolverTolerances = DEFAULT_TOLERANCES) -> LinkageLengths:
    """
    Convert (z1, z2, z3) to physical link lengths scaled by r1.

    r3² slightly below zero is clamped to 0; clearly negative means no real
    linkage exists. z2 or z3 at (or within round-off of) zero means an
    unbounded crank or rocker.
    """
    z1, z2, z3 = (float(v) for v in z)
    if not (z2 > 0 and z3 > 0):
        raise InfeasibleGeometryError(
            f"crank/rocker lengths are not positive (1/r2={z2:.6g}, 1/r4={z3:.6g})"
        )
    if z2 < tolerances.degenerate_link or z3 < tolerances.degenerate_link:
        raise InfeasibleGeometryError(
            f"crank/rocker length is unbounded (1/r2={z2:.6g}, 1/r4={z3:.6g}); "
            f"the precision positions are degenerate"
        )
    r2 = 1.0 / z2
    r4 = 1.0 / z3

    r3_sq = 1.0 + r2 * r2 + r4 * r4 - 2.0 * r2 * r4 * z1
    if r3_sq < -tolerances.infeasible_r3_squared:
        raise InfeasibleGeometryError(
            f"coupler length squared is negative ({r3_sq:.6g}); "
            f"no real four-bar meets these positions"
        )
    r3 = math.sqrt(max(0.0, r3_sq))

    return LinkageLengths(r1=r1, r2=r2 * r1, r3=r3 * r1, r4=r4 * r1)


def coupler_residuals(lengths: LinkageLengths, theta: np.ndarray, phi: np.ndarray) -> np.ndarray:
    """|B_i - A_i| - r3 for each (θ_i, φ_i) pair in radians."""
    ax = lengths.r2 * np.cos(theta)
    ay = lengths.r2 * np.sin(theta)
    bx = lengths.r1 + lengths.r4 * np.cos(phi)
    by = lengths.r4 * np.sin(phi)
    return np.hypot(bx - ax, by - ay) - lengths.r3


def synthesize(theta_deg: Sequence[float], phi_deg: Sequence[float], r1: float,
               tolerances: SolverTolerances = DEFAULT_TOLERANCES) -> LinkageLengths:
    """
    Analytical three-position synthesis.

    Args:
        theta_deg: three input crank angles (degrees)
        phi_deg: three output rocker angles (degrees)
        r1: ground link length

    Returns:
        LinkageLengths(r1, r2, r3, r4)

    Raises:
        InputShapeError, SingularSystemError, InfeasibleGeometryError
    """
    theta_deg = _angle_array(theta_deg, "theta")
    phi_deg = _angle_array(phi_deg, "phi")
    if len(theta_deg) != 3 or len(phi_deg) != 3:
        raise InputShapeError(
            f"three-position synthesis needs exactly 3 angle pairs, "
            f"got {len(theta_deg)} input and {len(phi_deg)} output angles"
        )
    r1 = _check_ground(r1)
    _check_distinct(theta_deg, tolerances.duplicate_angle_deg)

    A, b = freudenstein_system(np.radians(theta_deg), np.radians(phi_deg))
    z = solve_3x3(A, b, tolerances.singular_det)
    return recover_lengths(z, r1, tolerances)


# ============================================================
# Strategies
# ============================================================

class SynthesisStrategy:
    """Turns N precision positions into link lengths."""

    name = "base"

    def accepts(self, n_positions: int) -> bool:
        raise NotImplementedError

    def synthesize(self, theta_deg: Sequence[float], phi_deg: Sequence[float],
                   r1: float) -> SynthesisResult:
        raise NotImplementedError


class ThreePositionSynthesis(SynthesisStrategy):
    """Exact closed-form solve for exactly three positions."""

    name = "three_position"

    def __init__(self, tolerances: SolverTolerances = DEFAULT_TOLERANCES):
        self.tolerances = tolerances

    def accepts(self, n_positions: int) -> bool:
        return n_positions == 3

    def synthesize(self, theta_deg, phi_deg, r1) -> SynthesisResult:
        lengths = synthesize(theta_deg, phi_deg, r1, self.tolerances)
        res = coupler_residuals(lengths, np.radians(theta_deg), np.radians(phi_deg))
        return SynthesisResult(
            lengths=lengths,
            strategy=self.name,
            residual_rms=float(np.sqrt(np.mean(res ** 2))),
            n_positions=3,
        )


class LeastSquaresSynthesis(SynthesisStrategy):
    """
    Approximate synthesis for two, or four and more, positions.

    Seed:
    - >= 3 positions: linear least squares on the Freudenstein rows
    - otherwise (or if the linear fit is not a real linkage): grid search
      over crank/rocker lengths, coupler = mean coupler distance

    Refine: scipy least_squares on |B_i - A_i| - r3 with positive bounds.
    """

    name = "least_squares"

    def __init__(self, grid_range: Tuple[float, float] = (0.05, 4.0),
                 grid_points: int = 80, max_nfev: int = 2000,
                 tolerances: SolverTolerances = DEFAULT_TOLERANCES):
        self.grid_range = grid_range
        self.grid_points = grid_points
        self.max_nfev = max_nfev
        self.tolerances = tolerances

    def accepts(self, n_positions: int) -> bool:
        return n_positions >= 2 and n_positions != 3

    def synthesize(self, theta_deg, phi_deg, r1) -> SynthesisResult:
        theta_deg = _angle_array(theta_deg, "theta")
        phi_deg = _angle_array(phi_deg, "phi")
        if len(theta_deg) != len(phi_deg):
            raise InputShapeError(
                f"got {len(theta_deg)} input angles but {len(phi_deg)} output angles"
            )
        if len(theta_deg) < 2:
            raise InputShapeError("least-squares synthesis needs at least 2 angle pairs")
        r1 = _check_ground(r1)

        theta = np.radians(theta_deg)
        phi = np.radians(phi_deg)

        x0 = self._seed(theta, phi)
        lower = 1e-9

        def residuals(x):
            return coupler_residuals(LinkageLengths(1.0, x[0], x[1], x[2]), theta, phi)

        sol = least_squares(
            residuals, np.maximum(x0, 2 * lower),
            bounds=([lower] * 3, [np.inf] * 3),
            method='trf', xtol=1e-14, ftol=1e-14, gtol=1e-14,
            max_nfev=self.max_nfev,
        )

        normalized = LinkageLengths(1.0, float(sol.x[0]), float(sol.x[1]), float(sol.x[2]))
        lengths = normalized.scaled(r1)
        res = coupler_residuals(lengths, theta, phi)
        return SynthesisResult(
            lengths=lengths,
            strategy=self.name,
            residual_rms=float(np.sqrt(np.mean(res ** 2))),
            n_positions=len(theta),
        )

    def _seed(self, theta: np.ndarray, phi: np.ndarray) -> np.ndarray:
        """Normalized (r2, r3, r4) starting point."""
        if len(theta) >= 3:
            A, b = freudenstein_system(theta, phi)
            z, *_ = np.linalg.lstsq(A, b, rcond=None)
            try:
                guess = recover_lengths(z, 1.0, self.tolerances)
            except InfeasibleGeometryError:
                # Linear fit is not a real linkage
                return self._grid_seed(theta, phi)
            if guess.r3 > 0:
                return np.array([guess.r2, guess.r3, guess.r4])
        return self._grid_seed(theta, phi)

    def _grid_seed(self, theta: np.ndarray, phi: np.ndarray) -> np.ndarray:
        """Crank/rocker pair whose coupler distances vary the least."""
        grid = np.linspace(self.grid_range[0], self.grid_range[1], self.grid_points)
        r2 = grid[:, None, None]
        r4 = grid[None, :, None]

        ax = r2 * np.cos(theta)
        ay = r2 * np.sin(theta)
        bx = 1.0 + r4 * np.cos(phi)
        by = r4 * np.sin(phi)
        d = np.hypot(bx - ax, by - ay)  # (n_r2, n_r4, n_positions)

        spread = d.var(axis=2)
        i, j = np.unravel_index(np.argmin(spread), spread.shape)
        return np.array([grid[i], d[i, j].mean(), grid[j]])


def select_strategy(n_positions: int,
                    tolerances: SolverTolerances = DEFAULT_TOLERANCES) -> SynthesisStrategy:
    """Analytical solve for three positions, least squares otherwise."""
    if n_positions == 3:
        return ThreePositionSynthesis(tolerances)
    if n_positions >= 2:
        return LeastSquaresSynthesis(tolerances=tolerances)
    raise InputShapeError(f"synthesis needs at least 2 angle pairs, got {n_positions}")


def synthesize_linkage(theta_deg: Sequence[float], phi_deg: Sequence[float], r1: float,
                       strategy: Optional[SynthesisStrategy] = None,
                       tolerances: SolverTolerances = DEFAULT_TOLERANCES) -> SynthesisResult:
    """
    Synthesize with the strategy matching the number of precision positions.

    An explicit strategy must accept the given count, otherwise InputShapeError.
    """
    n_theta, n_phi = len(theta_deg), len(phi_deg)
    if n_theta != n_phi:
        raise InputShapeError(f"got {n_theta} input angles but {n_phi} output angles")

    if strategy is None:
        strategy = select_strategy(n_theta, tolerances)
    elif not strategy.accepts(n_theta):
        raise InputShapeError(
            f"strategy '{strategy.name}' does not handle {n_theta} angle pairs"
        )
    return strategy.synthesize(theta_deg, phi_deg, r1)

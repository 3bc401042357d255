"""
Four-Bar Synthesis Package

Three-position synthesis and position analysis of planar four-bar linkages.

Modules:
- geometry: Link lengths, joint positions, assembly modes
- synthesis: Analytical three-position synthesis and fallback strategies
- solver: Loop-closure position analysis with branch selection
- analysis: Sweeps, animation sessions, precision-position checks
- visualization: Linkage drawing, φ–θ plot, interactive simulator
- config: Tolerances and session defaults (OmegaConf)

Usage:
    from fourbar import synthesize, SweepSession

    lengths = synthesize([35.02, 67.5, 100.0], [91.21, 101.79, 117.19], r1=4.5)
    session = SweepSession(lengths)
    frame = session.step(50.0)

Or run directly:
    python -m fourbar
    python -m fourbar --verify
"""

from .geometry import (AnglePair, AssemblyMode, LinkageLengths, PositionResult,
                       normalize_angle)
from .errors import (FourBarError, InputShapeError, SingularSystemError,
                     InfeasibleGeometryError, UnreachableConfigurationError)
from .config import FourBarConfig, SolverTolerances, load_config
from .synthesis import (synthesize, synthesize_linkage, select_strategy,
                        SynthesisResult, ThreePositionSynthesis, LeastSquaresSynthesis)
from .solver import (solve_phi, compute_positions, compute_positions_deg,
                     branch_angles, positions_for, solve_phi_for, is_reachable)
from .analysis import (SweepSession, SweepCurves, PrecisionCheck, compute_sweep,
                       check_precision_positions, theta_from_slider, advance_slider)


def create_default_linkage(config: FourBarConfig = None) -> LinkageLengths:
    """
    Synthesize the linkage described by a config (default: worked example).
    """
    config = config or FourBarConfig()
    return synthesize(config.theta_deg, config.phi_deg, config.r1, config.tolerances)


__all__ = [
    # Geometry
    'AnglePair', 'AssemblyMode', 'LinkageLengths', 'PositionResult', 'normalize_angle',
    # Errors
    'FourBarError', 'InputShapeError', 'SingularSystemError',
    'InfeasibleGeometryError', 'UnreachableConfigurationError',
    # Config
    'FourBarConfig', 'SolverTolerances', 'load_config',
    # Synthesis
    'synthesize', 'synthesize_linkage', 'select_strategy', 'SynthesisResult',
    'ThreePositionSynthesis', 'LeastSquaresSynthesis',
    # Solver
    'solve_phi', 'compute_positions', 'compute_positions_deg', 'branch_angles',
    'positions_for', 'solve_phi_for', 'is_reachable',
    # Analysis
    'SweepSession', 'SweepCurves', 'PrecisionCheck', 'compute_sweep',
    'check_precision_positions', 'theta_from_slider', 'advance_slider',
    # Convenience
    'create_default_linkage',
]

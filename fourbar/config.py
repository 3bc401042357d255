"""
Configuration for synthesis, position analysis and animation.

Defaults reproduce the three-position worked example. Values can be
overridden from a YAML file and/or `key=value` dotlist strings:

    cfg = load_config("configs/default.yaml", ["r1=6.0", "assembly_mode=closed"])
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from omegaconf import OmegaConf


@dataclass
class SolverTolerances:
    """Numeric thresholds used internally by the solvers."""
    singular_det: float = 1e-12           # |det(A)| below this is singular
    infeasible_r3_squared: float = 1e-6   # r3^2 below -this is infeasible
    duplicate_angle_deg: float = 1e-9     # Input angles closer than this coincide
    degenerate_link: float = 1e-9         # 1/r2 or 1/r4 below this: link length unbounded


@dataclass
class FourBarConfig:
    """Configuration for one synthesis + animation session."""

    # Precision positions (degrees) and ground length
    r1: float = 4.5
    theta_deg: List[float] = field(default_factory=lambda: [35.02, 67.50, 100.0])
    phi_deg: List[float] = field(default_factory=lambda: [91.21, 101.79, 117.19])

    # Position analysis
    assembly_mode: str = "nearest"  # open / closed / nearest

    # Sweep and animation
    sweep_points: int = 181
    animation_step: float = 0.002  # Slider fraction advanced per frame
    fps: int = 30

    tolerances: SolverTolerances = field(default_factory=SolverTolerances)


DEFAULT_TOLERANCES = SolverTolerances()


def load_config(path: Optional[str] = None,
                overrides: Optional[Sequence[str]] = None) -> FourBarConfig:
    """Merge YAML file and dotlist overrides onto the structured defaults."""
    cfg = OmegaConf.structured(FourBarConfig)
    if path is not None and Path(path).exists():
        cfg = OmegaConf.merge(cfg, OmegaConf.load(path))
    if overrides:
        cfg = OmegaConf.merge(cfg, OmegaConf.from_dotlist(list(overrides)))
    return OmegaConf.to_object(cfg)

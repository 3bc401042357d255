"""
Main entry point for four-bar synthesis.

Usage:
    python -m fourbar                                  # Interactive visualization
    python -m fourbar --verify                         # Print synthesis report
    python -m fourbar --theta 35.02,67.5,100 --phi 91.21,101.79,117.19 --r1 200 --verify
    python -m fourbar --save-animation out/sweep.gif   # Headless animation
    python -m fourbar --config configs/default.yaml --set assembly_mode=closed
"""

import argparse
import sys
from typing import List, Optional

import numpy as np
import matplotlib.pyplot as plt

from .analysis import check_precision_positions, compute_sweep, design_branch
from .config import FourBarConfig, load_config
from .errors import FourBarError
from .geometry import AssemblyMode
from .synthesis import SynthesisResult, synthesize_linkage
from .visualization import plot_phi_theta, render_animation, run_interactive


def _parse_angles(text: str) -> List[float]:
    try:
        return [float(s) for s in text.split(',') if s.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated numbers, got {text!r}")


def run_verification(config: FourBarConfig, synthesis: SynthesisResult) -> bool:
    """Print a synthesis and position-analysis report. Returns True if all checks pass."""
    lengths = synthesis.lengths

    print("=" * 70)
    print("FOUR-BAR SYNTHESIS VERIFICATION")
    print("=" * 70)

    print(f"\n{'='*70}")
    print("1. PRECISION POSITIONS")
    print("=" * 70)
    print("  #    θ (deg)    φ (deg)")
    print("  " + "-" * 30)
    for i, (th, ph) in enumerate(zip(config.theta_deg, config.phi_deg)):
        print(f"  {i + 1}   {th:8.2f}   {ph:8.2f}")
    print(f"  Ground length r1 = {config.r1}")

    print(f"\n{'='*70}")
    print("2. LINK LENGTHS")
    print("=" * 70)
    print(f"  Strategy:     {synthesis.strategy}")
    print(f"  r1 (ground):  {lengths.r1:.4f}")
    print(f"  r2 (crank):   {lengths.r2:.4f}")
    print(f"  r3 (coupler): {lengths.r3:.4f}")
    print(f"  r4 (rocker):  {lengths.r4:.4f}")
    print(f"  Coupler residual (RMS): {synthesis.residual_rms:.2e}")

    print(f"\n{'='*70}")
    print("3. PRECISION POSITION CHECK")
    print("=" * 70)
    print("  #   θ        target φ   achieved φ   branch    Δφ (deg)   Δr3       status")
    print("  " + "-" * 66)
    checks = check_precision_positions(lengths, config.theta_deg, config.phi_deg)
    for c in checks:
        branch = c.branch.value if c.branch else "-"
        status = "PASS" if c.passed else "FAIL"
        print(f"  {c.index + 1}  {c.theta_deg:7.2f}  {c.target_phi_deg:9.2f}  "
              f"{c.achieved_phi_deg:10.2f}   {branch:8s} {c.angle_error_deg:9.2e}  "
              f"{c.coupler_error:8.2e}  {status}")
    branch = design_branch(checks)
    print(f"  Assembly mode through all positions: {branch.value if branch else 'mixed'}")

    print(f"\n{'='*70}")
    print("4. SWEEP")
    print("=" * 70)
    lo, hi = min(config.theta_deg), max(config.theta_deg)
    mode = AssemblyMode.parse(config.assembly_mode)
    curves = compute_sweep(lengths, (lo, hi), config.sweep_points, mode)
    print(f"  Mode: {mode.value}, {config.sweep_points} samples over [{lo:.2f}°, {hi:.2f}°]")
    print("  θ (deg)    φ (deg)")
    print("  " + "-" * 22)
    stride = max(1, len(curves.theta_deg) // 10)
    for th, ph in zip(curves.theta_deg[::stride], curves.phi_deg[::stride]):
        print(f"  {th:7.2f}   {ph:8.2f}")
    print(f"  Unreachable samples: {curves.n_unreachable}")
    if curves.reachable.any():
        max_err = np.nanmax(np.abs(curves.coupler_error))
        print(f"  Max coupler length error: {max_err:.2e}")

    passed = all(c.passed for c in checks)
    print("\n" + "=" * 70)
    print("VERIFICATION PASSED" if passed else "VERIFICATION FAILED")
    print("=" * 70)
    return passed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Three-position four-bar synthesis")
    parser.add_argument("--config", default="configs/default.yaml", help="Config file")
    parser.add_argument("--set", dest="overrides", action="append", default=[],
                        metavar="KEY=VALUE", help="Override a config value")
    parser.add_argument("--theta", type=_parse_angles, help="Input angles (deg), comma-separated")
    parser.add_argument("--phi", type=_parse_angles, help="Output angles (deg), comma-separated")
    parser.add_argument("--r1", type=float, help="Ground link length")
    parser.add_argument("--mode", choices=["open", "closed", "crossed", "nearest"],
                        help="Assembly mode")
    parser.add_argument("--verify", action="store_true", help="Print verification report")
    parser.add_argument("--save-plot", help="Save φ–θ plot to this path")
    parser.add_argument("--save-animation", help="Save sweep animation (.gif/.mp4)")
    parser.add_argument("--frames", type=int, default=120, help="Animation frames")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config, args.overrides)
    if args.theta is not None:
        config.theta_deg = args.theta
    if args.phi is not None:
        config.phi_deg = args.phi
    if args.r1 is not None:
        config.r1 = args.r1
    if args.mode is not None:
        config.assembly_mode = args.mode

    try:
        config.assembly_mode = AssemblyMode.parse(config.assembly_mode).value
    except FourBarError as e:
        print(f"Invalid configuration: {e}")
        return 1

    try:
        synthesis = synthesize_linkage(config.theta_deg, config.phi_deg, config.r1,
                                       tolerances=config.tolerances)
    except FourBarError as e:
        print(f"Synthesis failed: {e}")
        return 1

    status = 0
    if args.verify:
        if not run_verification(config, synthesis):
            status = 1

    if args.save_plot:
        fig = plot_phi_theta(synthesis.lengths, config.theta_deg, config.phi_deg,
                             config.assembly_mode, config.sweep_points, args.save_plot)
        plt.close(fig)
        print(f"Saved φ–θ plot to {args.save_plot}")

    if args.save_animation:
        n = render_animation(synthesis.lengths, config.theta_deg, config.phi_deg,
                             args.save_animation, args.frames, config.fps,
                             config.assembly_mode)
        if n == 0:
            print("Linkage cannot be assembled anywhere in the sweep; animation not written")
            status = 1
        else:
            print(f"Saved animation to {args.save_animation} ({n} frames)")

    if not (args.verify or args.save_plot or args.save_animation):
        lengths = synthesis.lengths
        print("Starting Four-Bar Simulation...")
        print(f"Link lengths: r1={lengths.r1:.3f}, r2={lengths.r2:.3f}, "
              f"r3={lengths.r3:.3f}, r4={lengths.r4:.3f}")
        print("Drag the slider or press Play; switch assembly mode on the right.")
        print("Run with --verify for a verification report.\n")
        run_interactive(lengths, config.theta_deg, config.phi_deg,
                        config.assembly_mode, config.animation_step, config.fps)

    return status


if __name__ == '__main__':
    sys.exit(main())

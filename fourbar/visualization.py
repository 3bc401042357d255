"""
Visualization Module - Linkage drawing, φ–θ plot and animation.

Views:
1. Linkage View - Current mechanism plus the three precision positions
2. φ–θ View - Output angle over the precision range, with targets marked
3. Simulator - Slider, assembly-mode selector and play/pause
"""

import math
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from matplotlib.widgets import Button, RadioButtons, Slider
import imageio
import imageio.v3 as iio

from .analysis import SweepCurves, SweepSession, advance_slider, compute_sweep, theta_from_slider
from .errors import UnreachableConfigurationError
from .geometry import AssemblyMode, LinkageLengths, PositionResult, precision_pose


PRECISION_COLORS = ['#C0392B', '#27AE60', '#8E44AD']
LINK_COLOR = '#2E86AB'
JOINT_COLOR = '#1A5276'


def _align_degrees(values: np.ndarray, reference: float) -> np.ndarray:
    """Shift by a multiple of 360° so the mean sits nearest the reference."""
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return values
    k = np.round((finite.mean() - reference) / 360.0)
    return values - 360.0 * k


class LinkageView:
    """
    Mechanism view - ground, crank, coupler and rocker.
    """

    def __init__(self, fig, ax):
        self.fig = fig
        self.ax = ax

    def draw(self, result: Optional[PositionResult], lengths: LinkageLengths,
             theta_deg: Sequence[float], phi_deg: Sequence[float],
             message: Optional[str] = None):
        """Draw precision positions, then the solved linkage on top."""
        self.ax.clear()
        self.ax.set_aspect('equal')
        self.ax.grid(True, alpha=0.3, linestyle='--')
        self.ax.set_xlabel('X')
        self.ax.set_ylabel('Y')

        points = [np.zeros(2), np.array([lengths.r1, 0.0])]
        points += self._draw_precision(lengths, theta_deg, phi_deg)

        if result is not None:
            self._draw_linkage(result)
            points += [result.A, result.B]
            self.ax.set_title(
                f'θ = {result.theta_deg:.1f}°   φ = {math.degrees(result.phi) % 360:.1f}°',
                fontsize=12, fontweight='bold')
        else:
            self.ax.set_title('Four-bar linkage', fontsize=12, fontweight='bold')

        if message:
            self.ax.text(0.02, 0.98, message, transform=self.ax.transAxes,
                         fontsize=9, verticalalignment='top', color='#922B21',
                         bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.8))

        self._set_limits(points, lengths)

    def _draw_linkage(self, result: PositionResult):
        O2, A, B, O4 = result.O2, result.A, result.B, result.O4

        # Ground
        self.ax.plot([O2[0], O4[0]], [O2[1], O4[1]], color='#333333',
                     linewidth=4, solid_capstyle='round', zorder=5)
        # Crank, coupler, rocker
        self.ax.plot([O2[0], A[0], B[0], O4[0]], [O2[1], A[1], B[1], O4[1]],
                     color=LINK_COLOR, linewidth=4, solid_capstyle='round', zorder=10)

        for name, pos in result.joints().items():
            fixed = name in ('O2', 'O4')
            self.ax.plot(pos[0], pos[1], 's' if fixed else 'o',
                         markersize=10 if fixed else 8,
                         color=JOINT_COLOR if fixed else 'white',
                         markeredgecolor=JOINT_COLOR, markeredgewidth=2, zorder=11)

    def _draw_precision(self, lengths: LinkageLengths, theta_deg, phi_deg):
        """Draw each prescribed pose as given, labelled near the coupler joint."""
        drawn = []
        for i, (th, ph) in enumerate(zip(theta_deg, phi_deg)):
            color = PRECISION_COLORS[i % len(PRECISION_COLORS)]
            pose = precision_pose(lengths, math.radians(th), math.radians(ph))
            O2, A, B, O4 = pose['O2'], pose['A'], pose['B'], pose['O4']
            self.ax.plot([O2[0], A[0], B[0], O4[0]], [O2[1], A[1], B[1], O4[1]],
                         color=color, linewidth=1.5, alpha=0.6, zorder=3)
            self.ax.annotate(f'θ{i + 1}={th:.1f}°, φ{i + 1}={ph:.1f}°', B,
                             xytext=(5, 5), textcoords='offset points',
                             fontsize=8, color=color)
            drawn += [A, B]
        return drawn

    def _set_limits(self, points, lengths: LinkageLengths):
        pts = np.array(points)
        margin = 0.15 * max(lengths.as_tuple())
        self.ax.set_xlim(pts[:, 0].min() - margin, pts[:, 0].max() + margin)
        self.ax.set_ylim(pts[:, 1].min() - margin, pts[:, 1].max() + margin)


class PhiThetaView:
    """
    Output angle against input angle over the precision range.
    """

    def __init__(self, fig, ax):
        self.fig = fig
        self.ax = ax

    def draw(self, curves: SweepCurves, theta_deg: Sequence[float],
             phi_deg: Sequence[float], current: Optional[Tuple[float, float]] = None):
        """
        Args:
            curves: sampled sweep
            theta_deg, phi_deg: precision positions
            current: (θ, φ) in degrees of the displayed frame
        """
        ax = self.ax
        ax.clear()

        targets = np.asarray(phi_deg, dtype=float)
        ref = float(targets.mean()) if targets.size else 0.0
        phi_curve = _align_degrees(curves.phi_deg, ref)

        ax.plot(curves.theta_deg, phi_curve, color='#0077CC', linewidth=2,
                label='φ(θ)')
        ax.plot(theta_deg, targets, 'o', color='#E74C3C', markersize=8,
                markeredgecolor='white', label='Precision positions')

        if current is not None:
            th, ph = current
            ph = float(_align_degrees(np.array([ph]), ref)[0])
            ax.axvline(x=th, color='gray', linestyle='--', alpha=0.7)
            ax.plot(th, ph, 'o', color='#1A5276', markersize=8)
            ax.annotate(f'θ={th:.1f}°\nφ={ph:.1f}°', (th, ph), xytext=(5, 5),
                        textcoords='offset points', fontsize=9)

        if curves.n_unreachable:
            ax.text(0.02, 0.02, f'{curves.n_unreachable} unreachable samples',
                    transform=ax.transAxes, fontsize=8, color='#922B21')

        ax.set_xlabel('θ (deg)')
        ax.set_ylabel('φ (deg)')
        ax.set_title('Output vs Input Angle', fontweight='bold')
        ax.legend(loc='best', fontsize=8)
        ax.grid(True, alpha=0.3)


class LinkageSimulator:
    """
    Interactive simulator: slider over the precision range, assembly mode
    selector and play/pause animation.
    """

    MODES = ('nearest', 'open', 'closed')

    def __init__(self, lengths: LinkageLengths, theta_deg: Sequence[float],
                 phi_deg: Sequence[float], mode='nearest',
                 animation_step: float = 0.002, fps: int = 30, sweep_points: int = 181):
        self.lengths = lengths
        self.theta_deg = [float(v) for v in theta_deg]
        self.phi_deg = [float(v) for v in phi_deg]
        self.session = SweepSession(lengths, mode)
        self.animation_step = animation_step
        self.fps = fps
        self.sweep_points = sweep_points

        self.playing = False
        self.fig = None
        self.timer = None
        self.curves = None
        self.result = None

    def setup(self):
        """Create the window, views and controls."""
        self.fig = plt.figure(figsize=(14, 8))
        self.fig.canvas.manager.set_window_title('Four-Bar Synthesis')

        link_ax = self.fig.add_axes([0.05, 0.25, 0.5, 0.7])
        plot_ax = self.fig.add_axes([0.62, 0.25, 0.35, 0.7])
        self.linkage_view = LinkageView(self.fig, link_ax)
        self.phi_theta_view = PhiThetaView(self.fig, plot_ax)

        slider_ax = self.fig.add_axes([0.15, 0.1, 0.5, 0.04])
        self.slider = Slider(slider_ax, 'Position', 0.0, 1.0, valinit=0.0)
        self.slider.on_changed(self._on_slider)

        radio_ax = self.fig.add_axes([0.72, 0.03, 0.1, 0.15])
        self.radio = RadioButtons(radio_ax, self.MODES,
                                  active=self.MODES.index(self.session.mode.value))
        self.radio.on_clicked(self.set_mode)

        btn_ax = self.fig.add_axes([0.85, 0.08, 0.1, 0.06])
        self.btn_play = Button(btn_ax, 'Play')
        self.btn_play.on_clicked(self.toggle_play)

        self.timer = self.fig.canvas.new_timer(interval=int(1000 / self.fps))
        self.timer.add_callback(self._tick)

        self._compute_curves()

    def _compute_curves(self):
        lo, hi = min(self.theta_deg), max(self.theta_deg)
        self.curves = compute_sweep(self.lengths, (lo, hi), self.sweep_points,
                                    self.session.mode)

    def _on_slider(self, val):
        # Manual seek starts a new sweep
        if not self.playing:
            self.session.reset()
        self.update()

    def _tick(self):
        self.slider.set_val(advance_slider(self.slider.val, self.animation_step))

    def update(self, val=None):
        """Solve the current frame and redraw both views."""
        theta = theta_from_slider(self.slider.val, self.theta_deg)
        message = None
        try:
            self.result = self.session.step(theta)
        except UnreachableConfigurationError:
            self.result = None
            message = f'Cannot assemble at θ = {theta:.1f}°'

        self.linkage_view.draw(self.result, self.lengths, self.theta_deg,
                               self.phi_deg, message)
        current = None
        if self.result is not None:
            current = (theta, math.degrees(self.result.phi))
        self.phi_theta_view.draw(self.curves, self.theta_deg, self.phi_deg, current)
        self.fig.canvas.draw_idle()

    def set_mode(self, label):
        self.session.set_mode(label)
        self._compute_curves()
        self.update()

    def toggle_play(self, event=None):
        self.playing = not self.playing
        self.btn_play.label.set_text('Pause' if self.playing else 'Play')
        if self.playing:
            self.session.reset()
            self.timer.start()
        else:
            self.timer.stop()

    def run(self):
        """Start simulation."""
        self.setup()
        self.update()
        plt.show()


def run_interactive(lengths: LinkageLengths, theta_deg: Sequence[float],
                    phi_deg: Sequence[float], mode='nearest',
                    animation_step: float = 0.002, fps: int = 30):
    """Convenience function to run the simulator."""
    sim = LinkageSimulator(lengths, theta_deg, phi_deg, mode, animation_step, fps)
    sim.run()


def plot_phi_theta(lengths: LinkageLengths, theta_deg: Sequence[float],
                   phi_deg: Sequence[float], mode=AssemblyMode.NEAREST,
                   n_points: int = 181, save_path: Optional[str] = None) -> plt.Figure:
    """φ–θ curve over the precision range.

    Args:
        lengths: synthesized linkage
        theta_deg, phi_deg: precision positions
        mode: assembly mode for the sweep
        n_points: samples across the range
        save_path: If set, save figure

    Returns:
        Matplotlib Figure
    """
    curves = compute_sweep(lengths, (min(theta_deg), max(theta_deg)), n_points, mode)
    fig, ax = plt.subplots(figsize=(8, 6))
    PhiThetaView(fig, ax).draw(curves, theta_deg, phi_deg)
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def render_frames(lengths: LinkageLengths, theta_deg: Sequence[float],
                  phi_deg: Sequence[float], n_frames: int = 120,
                  mode=AssemblyMode.NEAREST, step: Optional[float] = None,
                  figsize=(6, 5), dpi: int = 80):
    """
    Render one sweep of the animation off-screen.

    Frames at unreachable input angles are skipped.

    Returns:
        List of (H, W, 3) uint8 RGB arrays
    """
    fig = Figure(figsize=figsize, dpi=dpi)
    canvas = FigureCanvasAgg(fig)
    view = LinkageView(fig, fig.add_subplot(111))
    session = SweepSession(lengths, mode)

    if step is None:
        step = 1.0 / max(n_frames - 1, 1)

    frames = []
    t = 0.0
    for _ in range(n_frames):
        theta = theta_from_slider(t, theta_deg)
        t = min(1.0, t + step)
        try:
            result = session.step(theta)
        except UnreachableConfigurationError:
            continue
        view.draw(result, lengths, theta_deg, phi_deg)
        canvas.draw()
        frames.append(np.asarray(canvas.buffer_rgba())[..., :3].copy())
    return frames


def render_animation(lengths: LinkageLengths, theta_deg: Sequence[float],
                     phi_deg: Sequence[float], output_path: str,
                     n_frames: int = 120, fps: int = 30,
                     mode=AssemblyMode.NEAREST) -> int:
    """Write the sweep animation to GIF or MP4.

    Args:
        output_path: .gif, or .mp4 (needs the imageio ffmpeg plugin)

    Returns:
        Number of frames written; 0 means nothing was reachable and no file
        was created
    """
    frames = render_frames(lengths, theta_deg, phi_deg, n_frames, mode)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if not frames:
        return 0

    if output_path.suffix.lower() == '.mp4':
        writer = imageio.get_writer(str(output_path), fps=fps, codec="libx264",
                                    quality=8, pixelformat="yuv420p")
        for frame in frames:
            writer.append_data(frame)
        writer.close()
    else:
        iio.imwrite(output_path, np.stack(frames), duration=1000 / fps, loop=0)
    return len(frames)

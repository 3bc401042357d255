"""
Tests for three-position synthesis and the fallback strategies.

Reference values are recomputed here with numpy rather than hard-coded.
"""

import dataclasses
import math

import numpy as np
import pytest

from fourbar.config import SolverTolerances
from fourbar.errors import (InfeasibleGeometryError, InputShapeError,
                            SingularSystemError)
from fourbar.geometry import AssemblyMode, LinkageLengths
from fourbar.solver import solve_phi
from fourbar.synthesis import (LeastSquaresSynthesis, ThreePositionSynthesis,
                               coupler_residuals, freudenstein_system, recover_lengths,
                               select_strategy, solve_3x3, synthesize, synthesize_linkage)


WORKED_THETA = [35.02, 67.50, 100.0]
WORKED_PHI = [91.21, 101.79, 117.19]
WORKED_R1 = 4.5


@pytest.fixture
def crank_rocker():
    return LinkageLengths(r1=4.0, r2=1.0, r3=3.5, r4=3.0)


def positions_of(lengths, theta_deg, mode):
    """Output angles (deg) the linkage actually takes at theta_deg."""
    return [math.degrees(solve_phi(*lengths.as_tuple(), math.radians(t), mode=mode))
            for t in theta_deg]


class TestWorkedExample:
    def test_matches_independent_solve(self):
        theta = np.radians(WORKED_THETA)
        phi = np.radians(WORKED_PHI)
        A = np.column_stack([np.ones(3), np.cos(phi), -np.cos(theta)])
        b = np.cos(phi - theta)
        z1, z2, z3 = np.linalg.solve(A, b)
        r2n, r4n = 1 / z2, 1 / z3
        r3n = math.sqrt(1 + r2n ** 2 + r4n ** 2 - 2 * r2n * r4n * z1)

        lengths = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)

        assert lengths.r1 == WORKED_R1
        assert lengths.r2 == pytest.approx(r2n * WORKED_R1, abs=1e-3)
        assert lengths.r3 == pytest.approx(r3n * WORKED_R1, abs=1e-3)
        assert lengths.r4 == pytest.approx(r4n * WORKED_R1, abs=1e-3)

    def test_lengths_close_loop_at_precision_positions(self):
        lengths = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        res = coupler_residuals(lengths, np.radians(WORKED_THETA), np.radians(WORKED_PHI))
        np.testing.assert_allclose(res, 0.0, atol=1e-9)

    def test_worked_example_lies_on_closed_branch(self):
        lengths = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        achieved = positions_of(lengths, WORKED_THETA, AssemblyMode.CLOSED)
        for got, want in zip(achieved, WORKED_PHI):
            assert (got - want + 180) % 360 - 180 == pytest.approx(0.0, abs=1e-6)

    def test_deterministic(self):
        a = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        b = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        assert a == b

    def test_result_is_immutable(self):
        lengths = synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            lengths.r2 = 1.0


class TestRecoverKnownLinkage:
    @pytest.mark.parametrize("mode", [AssemblyMode.OPEN, AssemblyMode.CLOSED])
    def test_recovers_lengths_from_own_positions(self, crank_rocker, mode):
        theta = [20.0, 70.0, 130.0]
        phi = positions_of(crank_rocker, theta, mode)

        lengths = synthesize(theta, phi, crank_rocker.r1)

        assert lengths.r2 == pytest.approx(crank_rocker.r2, rel=1e-6)
        assert lengths.r3 == pytest.approx(crank_rocker.r3, rel=1e-6)
        assert lengths.r4 == pytest.approx(crank_rocker.r4, rel=1e-6)

    def test_scales_with_ground_length(self, crank_rocker):
        theta = [20.0, 70.0, 130.0]
        phi = positions_of(crank_rocker, theta, AssemblyMode.OPEN)

        small = synthesize(theta, phi, 1.0)
        big = synthesize(theta, phi, 10.0)

        assert big.r2 == pytest.approx(10 * small.r2)
        assert big.r3 == pytest.approx(10 * small.r3)
        assert big.r4 == pytest.approx(10 * small.r4)


class TestSynthesisErrors:
    def test_duplicate_theta_is_singular(self):
        with pytest.raises(SingularSystemError):
            synthesize([10, 10, 50], [30, 60, 90], 2.0)

    def test_duplicate_theta_modulo_full_turn(self):
        with pytest.raises(SingularSystemError):
            synthesize([10, 370, 50], [30, 60, 90], 2.0)

    def test_constant_phi_is_singular(self):
        with pytest.raises(SingularSystemError):
            synthesize([20, 40, 60], [45, 45, 45], 2.0)

    @pytest.mark.parametrize("theta,phi", [
        ([10, 20], [30, 40]),
        ([10, 20, 30, 40], [30, 40, 50, 60]),
        ([10, 20, 30], [30, 40]),
    ])
    def test_wrong_shape(self, theta, phi):
        with pytest.raises(InputShapeError):
            synthesize(theta, phi, 1.0)

    @pytest.mark.parametrize("r1", [0.0, -1.0, float('nan')])
    def test_bad_ground_length(self, r1):
        with pytest.raises(InputShapeError):
            synthesize(WORKED_THETA, WORKED_PHI, r1)

    def test_constant_phase_offset_is_infeasible(self):
        # phi - theta constant: z = (cos 15°, 0, 0), crank and rocker unbounded
        with pytest.raises(InfeasibleGeometryError):
            synthesize([30, 60, 90], [45, 75, 105], 200.0)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            synthesize([10, 10, 50], [30, 60, 90], 2.0)


class TestLowLevel:
    def test_solve_3x3_matches_numpy(self):
        rng = np.random.default_rng(0)
        A = rng.normal(size=(3, 3)) + 3 * np.eye(3)
        b = rng.normal(size=3)
        np.testing.assert_allclose(solve_3x3(A, b), np.linalg.solve(A, b), rtol=1e-10)

    def test_solve_3x3_singular(self):
        A = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [0.0, 1.0, 1.0]])
        with pytest.raises(SingularSystemError):
            solve_3x3(A, np.ones(3))

    def test_solve_3x3_respects_tolerance(self):
        A = np.diag([1.0, 1.0, 1e-6])
        solve_3x3(A, np.ones(3))
        with pytest.raises(SingularSystemError):
            solve_3x3(A, np.ones(3), tol=1e-3)

    def test_freudenstein_rows(self):
        theta = np.radians([0.0, 90.0])
        phi = np.radians([90.0, 180.0])
        A, b = freudenstein_system(theta, phi)
        np.testing.assert_allclose(A, [[1, 0, -1], [1, -1, 0]], atol=1e-12)
        np.testing.assert_allclose(b, [0, 0], atol=1e-12)

    def test_recover_lengths(self):
        lengths = recover_lengths([1.0, 2.0, 4.0], r1=2.0)
        assert lengths.r2 == pytest.approx(1.0)
        assert lengths.r4 == pytest.approx(0.5)
        assert lengths.r3 == pytest.approx(2.0 * math.sqrt(1.0625))

    def test_negative_coupler_squared_is_infeasible(self):
        with pytest.raises(InfeasibleGeometryError):
            recover_lengths([5.0, 1.0, 1.0], r1=1.0)

    def test_tiny_negative_coupler_squared_is_clamped(self):
        lengths = recover_lengths([1.5 + 1e-9, 1.0, 1.0], r1=1.0)
        assert lengths.r3 == 0.0

    def test_clamp_threshold_is_configurable(self):
        strict = SolverTolerances(infeasible_r3_squared=1e-12)
        with pytest.raises(InfeasibleGeometryError):
            recover_lengths([1.5 + 1e-9, 1.0, 1.0], r1=1.0, tolerances=strict)

    @pytest.mark.parametrize("z", [(0.5, -1.0, 1.0), (0.5, 1.0, 0.0)])
    def test_non_positive_lengths_are_infeasible(self, z):
        with pytest.raises(InfeasibleGeometryError):
            recover_lengths(z, r1=1.0)

    @pytest.mark.parametrize("z", [(0.97, 1e-17, 1e-17), (0.5, 1.0, 1e-12)])
    def test_near_zero_inverse_length_is_infeasible(self, z):
        with pytest.raises(InfeasibleGeometryError):
            recover_lengths(z, r1=1.0)

    def test_degenerate_threshold_is_configurable(self):
        loose = SolverTolerances(degenerate_link=1e-15)
        lengths = recover_lengths((0.5, 1.0, 1e-12), r1=1.0, tolerances=loose)
        assert lengths.r4 == pytest.approx(1e12)


class TestStrategies:
    def test_select_by_count(self):
        assert isinstance(select_strategy(3), ThreePositionSynthesis)
        assert isinstance(select_strategy(2), LeastSquaresSynthesis)
        assert isinstance(select_strategy(5), LeastSquaresSynthesis)
        with pytest.raises(InputShapeError):
            select_strategy(1)

    def test_three_positions_use_analytical_path(self):
        result = synthesize_linkage(WORKED_THETA, WORKED_PHI, WORKED_R1)
        assert result.strategy == "three_position"
        assert result.lengths == synthesize(WORKED_THETA, WORKED_PHI, WORKED_R1)
        assert result.residual_rms < 1e-9

    def test_overdetermined_exact_data(self, crank_rocker):
        theta = [0.0, 40.0, 90.0, 150.0, 230.0]
        phi = positions_of(crank_rocker, theta, AssemblyMode.OPEN)

        result = synthesize_linkage(theta, phi, crank_rocker.r1)

        assert result.strategy == "least_squares"
        assert result.n_positions == 5
        assert result.lengths.r2 == pytest.approx(crank_rocker.r2, abs=1e-6)
        assert result.lengths.r3 == pytest.approx(crank_rocker.r3, abs=1e-6)
        assert result.lengths.r4 == pytest.approx(crank_rocker.r4, abs=1e-6)
        assert result.residual_rms < 1e-8

    def test_two_positions_fit_exactly(self, crank_rocker):
        theta = [30.0, 80.0]
        phi = positions_of(crank_rocker, theta, AssemblyMode.OPEN)

        result = synthesize_linkage(theta, phi, crank_rocker.r1)

        assert result.strategy == "least_squares"
        assert result.residual_rms < 1e-5
        assert min(result.lengths.as_tuple()) > 0

    def test_mismatched_counts(self):
        with pytest.raises(InputShapeError):
            synthesize_linkage([10, 20, 30], [10, 20], 1.0)

    def test_strategy_must_accept_count(self):
        with pytest.raises(InputShapeError):
            synthesize_linkage([10, 20, 30, 40], [1, 2, 3, 4], 1.0,
                               strategy=ThreePositionSynthesis())
        with pytest.raises(InputShapeError):
            synthesize_linkage(WORKED_THETA, WORKED_PHI, 1.0,
                               strategy=LeastSquaresSynthesis())

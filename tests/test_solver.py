"""Tests for the weighted damped least-squares solver."""

import math

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from ctr_teleop import ControllerConfig, default_geometry, joints, solver
from ctr_teleop.solver import SolveResult

HOME = jnp.array([0.0, 0.0, 0.0, -160.9e-3, -127.2e-3, -86.4e-3])


def test_tracking_weight_values():
    """1 mm of position costs as much as 2 degrees about z."""
    W = solver.tracking_weight(1.0)
    rot = (90.0 / math.pi) ** 2
    np.testing.assert_allclose(jnp.diag(W), jnp.array([1e6, 1e6, 1e6, 0.1 * rot, 0.1 * rot, rot]))
    np.testing.assert_allclose(1e6 * 1e-6, rot * math.radians(2.0) ** 2)


def test_damping_weight_values():
    W = solver.damping_weight(2.0, theta_deg=2.0)
    rot = (90.0 / math.pi) ** 2
    np.testing.assert_allclose(jnp.diag(W), 2.0 * jnp.array([rot, rot, rot, 1e6, 1e6, 1e6]))


def test_undamped_solve_is_least_squares():
    """With no damping or limit weight the solve reduces to exact tracking."""
    J = jnp.eye(6)
    twist = jnp.array([1e-3, -2e-3, 5e-4, 0.01, 0.0, -0.02])
    zeros = jnp.zeros((6, 6))
    result = solver.solve(J, solver.tracking_weight(1.0), zeros, zeros, twist)

    Jx = J @ joints.reparam_jacobian()
    expected = np.linalg.solve(np.asarray(Jx), np.asarray(twist))
    np.testing.assert_allclose(result.delta_x, expected, rtol=1e-9, atol=1e-15)
    assert float(result.residual) < 1e-8


def test_undamped_solve_equal_tube_lengths():
    """Equal tube lengths change nothing in the solve; it maps the twist through Jx^-1."""
    L = jnp.array([0.2, 0.2, 0.2])
    J = jnp.array(np.random.default_rng(0).normal(size=(6, 6))) + 3.0 * jnp.eye(6)
    twist = jnp.array([1e-3, 0.0, 0.0, 0.0, 0.01, 0.0])
    W_t = jnp.eye(6)
    zeros = jnp.zeros((6, 6))
    result = solver.solve(J, W_t, zeros, zeros, twist)

    Jx = J @ joints.reparam_jacobian()
    expected = np.linalg.lstsq(np.asarray(Jx), np.asarray(twist), rcond=None)[0]
    np.testing.assert_allclose(result.delta_x, expected, rtol=1e-8, atol=1e-12)
    # applying the increment in x-space and mapping back is consistent
    q_x = joints.to_x(jnp.array([0.0, 0.0, 0.0, -0.1, -0.1, -0.1]), L)
    q_beta = joints.to_beta(q_x + result.delta_x, L)
    np.testing.assert_allclose(J @ (q_beta - joints.to_beta(q_x, L)), twist, atol=1e-12)


def test_damping_handles_singular_jacobian():
    """A rank-deficient Jacobian still yields a finite, well-conditioned solve."""
    J = jnp.diag(jnp.array([1.0, 1.0, 1.0, 1.0, 1.0, 0.0]))
    twist = jnp.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.05])
    result = solver.solve(
        J, solver.tracking_weight(10.0), solver.damping_weight(50.0), jnp.eye(6), twist
    )
    assert jnp.all(jnp.isfinite(result.delta_x))
    np.testing.assert_allclose(result.delta_x, jnp.zeros(6), atol=1e-15)
    assert solver.is_well_conditioned(result, 1e12)


def test_solve_jit():
    """solve compiles."""
    twist = jnp.array([1e-3, 0.0, 0.0, 0.0, 0.0, 0.0])
    W = jnp.eye(6)
    result = jax.jit(solver.solve)(jnp.eye(6), W, W, W, twist)
    assert result.delta_x.shape == (6,)


@pytest.mark.parametrize("delta,cond,residual,expected", [
    ([0.0] * 6, 10.0, 0.0, True),
    ([jnp.nan] + [0.0] * 5, 10.0, 0.0, False),
    ([0.0] * 6, jnp.inf, 0.0, False),
    ([0.0] * 6, 1e13, 0.0, False),
    ([0.0] * 6, 10.0, 1e-3, False),
])
def test_is_well_conditioned(delta, cond, residual, expected):
    result = SolveResult(
        delta_x=jnp.array(delta), condition_number=jnp.asarray(cond), residual=jnp.asarray(residual)
    )
    assert solver.is_well_conditioned(result, 1e12) is expected


def test_step_zero_twist_holds():
    """No commanded motion leaves an interior joint vector unchanged."""
    out = solver.step(HOME, jnp.eye(6), jnp.zeros(6), jnp.zeros(3), default_geometry(), ControllerConfig())
    np.testing.assert_allclose(out.q, HOME, atol=1e-15)
    assert out.dh.shape == (3,)
    assert jnp.all(out.dh >= 0.0)
    assert not jnp.any(out.velocity_mask)
    assert not jnp.any(out.front_mask) and not jnp.any(out.back_mask)


def test_step_clamps_out_of_range_translation():
    """A tube beyond its travel is clamped back and flagged."""
    geometry = default_geometry()
    L = geometry.lengths
    q = joints.to_beta(jnp.array([0.0, 0.0, 0.0, 25.8e-3, 17.8e-3, L[2]]), L)
    out = solver.step(q, jnp.eye(6), jnp.zeros(6), jnp.zeros(3), geometry, ControllerConfig())

    x = joints.to_x(out.q, L)
    np.testing.assert_allclose(x[5], L[2] - 0.5e-3, atol=1e-12)
    np.testing.assert_array_equal(out.back_mask, jnp.array([False, False, True]))
    assert not jnp.any(out.front_mask)


def test_step_saturates_joint_rates():
    """With joint-rate saturation on, a fast rotation is capped per tick."""
    config = ControllerConfig(saturate_joint_rates=True)
    twist = jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    out = solver.step(HOME, jnp.eye(6), twist, jnp.zeros(3), default_geometry(), config)
    np.testing.assert_allclose(out.q[0] - HOME[0], 0.8 / config.rate, rtol=1e-12)
    assert bool(out.velocity_mask[0])


def test_step_without_saturation_follows_solve():
    """Joint-rate saturation is off by default."""
    twist = jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    out = solver.step(HOME, jnp.eye(6), twist, jnp.zeros(3), default_geometry(), ControllerConfig())
    np.testing.assert_allclose(out.q[0] - HOME[0], out.solve.delta_x[0], rtol=1e-12)
    assert float(out.q[0] - HOME[0]) > 0.9
    assert not jnp.any(out.velocity_mask)

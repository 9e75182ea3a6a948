"""Weighted damped least-squares resolved-rates solver.

Each control tick maps a desired tip twist to an x-space joint increment by
solving the normal equations

    (Jx^T W_t Jx + W_d + W_j) dx = Jx^T W_t twist,   Jx = J @ d(beta)/d(x)

where W_t weights task-space tracking, W_d damps actuator motion and W_j is
the joint-limit avoidance weight. A strictly positive W_d keeps the system
positive definite at kinematic singularities, so it is factorized with a
Cholesky decomposition.
"""

import math

import jax.numpy as jnp
from jax import Array
from jax.scipy.linalg import cho_factor, cho_solve
from flax import struct

from . import joints, limits, velocity
from .config import ControllerConfig
from .core import TubeGeometry


@struct.dataclass
class SolveResult:
    """Solution of one normal-equations system.

    Attributes:
        delta_x: (6,) x-space joint increment.
        condition_number: 2-norm condition number of the system matrix.
        residual: relative residual ||A dx - b|| / ||b||.
    """
    delta_x: Array
    condition_number: Array
    residual: Array


@struct.dataclass
class StepResult:
    """Outcome of one full resolved-rates update.

    Attributes:
        q: (6,) new beta-space joint vector.
        dh: (3,) joint-limit penalties, the next tick's dh_prev.
        solve: diagnostics of the linear solve.
        velocity_mask: (6,) joints whose rate was saturated.
        front_mask: (3,) tubes corrected at their retracted end.
        back_mask: (3,) tubes corrected at their extended end.
    """
    q: Array
    dh: Array
    solve: SolveResult
    velocity_mask: Array
    front_mask: Array
    back_mask: Array


def tracking_weight(lam) -> Array:
    """Task-space tracking weight: 1 mm of position error costs as much as
    2 degrees of rotation about z; rotation about x and y is weighted 10x
    less than about z."""
    rot = (180.0 / math.pi / 2.0) ** 2
    return jnp.diag(jnp.array([1.0e6, 1.0e6, 1.0e6, 0.1 * rot, 0.1 * rot, rot]) * lam)


def damping_weight(lam, theta_deg: float = 2.0) -> Array:
    """Actuator-space damping weight: theta_deg of tube rotation is damped
    as much as 1 mm of translation."""
    rot = (180.0 / theta_deg / math.pi) ** 2
    return jnp.diag(jnp.array([rot, rot, rot, 1.0e6, 1.0e6, 1.0e6]) * lam)


def solve(J: Array, W_t: Array, W_d: Array, W_j: Array, twist: Array) -> SolveResult:
    """
    Solve the weighted, damped normal equations for an x-space increment.

    Args:
        J: (6, 6) tip twist per beta-space joint rate
        W_t: (6, 6) tracking weight (task space)
        W_d: (6, 6) damping weight (actuator space)
        W_j: (6, 6) joint-limit weight (actuator space)
        twist: (6,) desired tip twist increment

    Returns:
        SolveResult with the increment and conditioning diagnostics.
    """
    Jx = J @ joints.reparam_jacobian()
    A = Jx.T @ W_t @ Jx + W_d + W_j
    b = Jx.T @ W_t @ twist

    delta_x = cho_solve(cho_factor(A), b)

    residual = jnp.linalg.norm(A @ delta_x - b) / jnp.maximum(
        jnp.linalg.norm(b), jnp.finfo(A.dtype).tiny
    )
    return SolveResult(
        delta_x=delta_x,
        condition_number=jnp.linalg.cond(A),
        residual=residual,
    )


def is_well_conditioned(result: SolveResult, max_condition_number: float,
                        max_residual: float = 1e-6) -> bool:
    """False when the solve produced non-finite values, an ill-conditioned
    system or a large residual."""
    if not bool(jnp.all(jnp.isfinite(result.delta_x))):
        return False
    if not bool(jnp.isfinite(result.condition_number)):
        return False
    if float(result.condition_number) > max_condition_number:
        return False
    return float(result.residual) <= max_residual


def step(q: Array, J: Array, twist: Array, dh_prev: Array,
         geometry: TubeGeometry, config: ControllerConfig) -> StepResult:
    """
    One resolved-rates update of a beta-space joint vector.

    Converts to x-space, builds the joint-limit weight from dh_prev, solves,
    optionally saturates joint rates, applies the configured position-level
    correction and converts back.

    Args:
        q: (6,) current beta-space joint vector
        J: (6, 6) current Jacobian
        twist: (6,) desired tip twist increment (already scaled)
        dh_prev: (3,) penalties from the previous tick
        geometry: tube lengths
        config: controller configuration

    Returns:
        StepResult
    """
    L = geometry.lengths
    q_x = joints.to_x(q, L)

    weighting = limits.build_weighting(
        q_x[3:], dh_prev, L, config.joint_limit_gain, config.weighting_margin
    )
    result = solve(
        J,
        tracking_weight(config.tracking_gain),
        damping_weight(config.damping_gain, config.damping_theta_deg),
        weighting.W,
        twist,
    )

    delta_x = result.delta_x
    velocity_mask = jnp.zeros(6, dtype=bool)
    if config.saturate_joint_rates:
        delta_x, velocity_mask = velocity.saturate_joint_velocities(
            delta_x, config.rate, config.max_tube_rotation_speed, config.max_tube_translation_speed
        )

    q_x, front, back = limits.correct_positions(
        q_x + delta_x, L, config.limit_policy, config.clamp_margin, config.carriages
    )

    return StepResult(
        q=joints.to_beta(q_x, L),
        dh=weighting.dh,
        solve=result,
        velocity_mask=velocity_mask,
        front_mask=front,
        back_mask=back,
    )
